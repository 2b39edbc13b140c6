"""Utility helpers for camlink."""

from __future__ import annotations

import ctypes
import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

LOG_FILE_NAME = "camlink.log"
LOG_MAX_BYTES = 5 * 1024 * 1024
LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


def _windows_documents_dir() -> Optional[Path]:
    from ctypes import wintypes

    path = ctypes.create_unicode_buffer(wintypes.MAX_PATH)
    # CSIDL_PERSONAL (5) is the Documents folder, flag 0 asks for its current location.
    if ctypes.windll.shell32.SHGetFolderPathW(None, 5, None, 0, path) != 0:
        return None
    return Path(path.value) if path.value else None


def _resolve_documents_dir() -> Path:
    """Folder the log directory lives under.

    ``CAMLINK_LOG_DIR`` wins, then the shell's Documents folder on Windows,
    then ``~/Documents``.
    """

    override = os.getenv("CAMLINK_LOG_DIR")
    if override:
        return Path(override).expanduser()

    if sys.platform.startswith("win"):
        try:
            documents = _windows_documents_dir()
        except (AttributeError, OSError):  # pragma: no cover - Windows only
            logging.getLogger(__name__).debug("Documents folder lookup failed.", exc_info=True)
            documents = None
        if documents is not None:
            return documents

    return Path.home() / "Documents"


def setup_file_logging(log_root: Path, *, level: int = logging.INFO) -> Path:
    """Send every record to ``<log_root>/camlink.log``, rotated at 5 MB.

    Calling it again for the same folder only updates the level.
    """

    try:
        log_root.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise RuntimeError(f"Could not create the log directory: {log_root}") from exc

    log_path = log_root / LOG_FILE_NAME
    root = logging.getLogger()
    installed = any(
        isinstance(h, RotatingFileHandler) and h.baseFilename == os.path.abspath(log_path)
        for h in root.handlers
    )
    if not installed:
        handler = RotatingFileHandler(log_path, maxBytes=LOG_MAX_BYTES, backupCount=1, encoding="utf-8")
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)

    root.setLevel(level)
    logging.captureWarnings(True)
    return log_path


def env_float(name: str, default: Optional[float]) -> Optional[float]:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        logging.getLogger(__name__).warning(
            "Ignoring %s=%r: not a number, using %r.", name, raw, default
        )
        return default


def env_list(name: str, default: list[str]) -> list[str]:
    raw = os.getenv(name)
    if not raw:
        return list(default)
    items = [item.strip() for item in raw.split(",")]
    return [item for item in items if item] or list(default)
