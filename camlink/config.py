"""Configuration constants for the camlink client."""

from __future__ import annotations

import os
import sys

from .utils import _resolve_documents_dir, env_float, env_list

SIGNALING_URL = os.getenv("CAMLINK_SIGNALING_URL", "http://127.0.0.1:8080")
OFFER_PATH = "/offer"
SIGNALING_TIMEOUT = env_float("CAMLINK_SIGNALING_TIMEOUT", 10.0)

STUN_URLS = env_list("CAMLINK_STUN_URLS", ["stun:stun.l.google.com:19302"])
# aiortc only implements unified-plan; kept for the status line and the logs.
SDP_SEMANTICS = "unified-plan"

VIDEO_KIND = "video"
VIDEO_CODEC = "H264/90000"

ICE_GATHERING_TIMEOUT = env_float("CAMLINK_ICE_TIMEOUT", None)
# Lets in-flight track-stop signalling flush before the connection is closed.
TEARDOWN_DELAY = 0.5


def _default_capture_devices() -> dict[str, tuple[str, str, dict[str, str]]]:
    """Return ``kind -> (file, format, options)`` for ``MediaPlayer``."""

    if sys.platform == "darwin":
        return {
            "video": ("default:none", "avfoundation", {"framerate": "30", "video_size": "640x480"}),
            "audio": ("none:default", "avfoundation", {}),
        }
    if sys.platform.startswith("win"):
        return {
            "video": ("video=Integrated Camera", "dshow", {"video_size": "640x480"}),
            "audio": ("audio=Microphone", "dshow", {}),
        }
    return {
        "video": ("/dev/video0", "v4l2", {"framerate": "30", "video_size": "640x480"}),
        "audio": ("default", "pulse", {}),
    }


CAPTURE_DEVICES = _default_capture_devices()
if os.getenv("CAMLINK_VIDEO_DEVICE"):
    _, _fmt, _opts = CAPTURE_DEVICES["video"]
    CAPTURE_DEVICES["video"] = (os.environ["CAMLINK_VIDEO_DEVICE"], _fmt, _opts)
if os.getenv("CAMLINK_AUDIO_DEVICE"):
    _, _fmt, _opts = CAPTURE_DEVICES["audio"]
    CAPTURE_DEVICES["audio"] = (os.environ["CAMLINK_AUDIO_DEVICE"], _fmt, _opts)

APP_TITLE = "camlink"

DARK_BG = "#2b2d31"
DARK_CARD = "#313338"
DARK_ELEV = "#1e1f22"
ACCENT = "#5865f2"
TEXT = "#e3e5e8"

LOG_ROOT = _resolve_documents_dir() / "camlink"

__all__ = [
    "SIGNALING_URL",
    "OFFER_PATH",
    "SIGNALING_TIMEOUT",
    "STUN_URLS",
    "SDP_SEMANTICS",
    "VIDEO_KIND",
    "VIDEO_CODEC",
    "ICE_GATHERING_TIMEOUT",
    "TEARDOWN_DELAY",
    "CAPTURE_DEVICES",
    "APP_TITLE",
    "DARK_BG",
    "DARK_CARD",
    "DARK_ELEV",
    "ACCENT",
    "TEXT",
    "LOG_ROOT",
]
