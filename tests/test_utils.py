import logging
from logging.handlers import RotatingFileHandler

import pytest

from camlink.utils import env_float, env_list, setup_file_logging


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield root
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


def test_setup_file_logging_is_idempotent(tmp_path, restore_root_logger):
    first = setup_file_logging(tmp_path / "logs")
    second = setup_file_logging(tmp_path / "logs", level=logging.DEBUG)

    assert first == second == tmp_path / "logs" / "camlink.log"
    assert first.parent.is_dir()
    file_handlers = [
        h
        for h in restore_root_logger.handlers
        if isinstance(h, RotatingFileHandler) and h.baseFilename == str(first)
    ]
    assert len(file_handlers) == 1
    assert file_handlers[0].maxBytes == 5 * 1024 * 1024
    assert restore_root_logger.level == logging.DEBUG


def test_env_float(monkeypatch, caplog):
    monkeypatch.delenv("CAMLINK_TEST_FLOAT", raising=False)
    assert env_float("CAMLINK_TEST_FLOAT", None) is None
    monkeypatch.setenv("CAMLINK_TEST_FLOAT", "2.5")
    assert env_float("CAMLINK_TEST_FLOAT", None) == 2.5
    monkeypatch.setenv("CAMLINK_TEST_FLOAT", "soon")
    with caplog.at_level(logging.WARNING, logger="camlink.utils"):
        assert env_float("CAMLINK_TEST_FLOAT", 1.0) == 1.0
    assert "CAMLINK_TEST_FLOAT" in caplog.text


def test_env_list(monkeypatch):
    monkeypatch.delenv("CAMLINK_TEST_LIST", raising=False)
    assert env_list("CAMLINK_TEST_LIST", ["a"]) == ["a"]
    monkeypatch.setenv("CAMLINK_TEST_LIST", " stun:x:1 , ,stun:y:2")
    assert env_list("CAMLINK_TEST_LIST", ["a"]) == ["stun:x:1", "stun:y:2"]
    monkeypatch.setenv("CAMLINK_TEST_LIST", " , ")
    assert env_list("CAMLINK_TEST_LIST", ["a"]) == ["a"]

