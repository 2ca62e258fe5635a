from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler

from replyqueue.core.logging.redact import redact_mapping, redact_string
from replyqueue.core.logging.setup import configure_logging


def test_configure_logging_is_idempotent(tmp_path, monkeypatch) -> None:
    monkeypatch.setenv("REPLYQUEUE_LOG_TO_FILE", "off")

    logger = logging.getLogger("replyqueue")
    logger.handlers = []

    configure_logging(tmp_path)
    first_count = len(logger.handlers)

    configure_logging(tmp_path)
    assert len(logger.handlers) == first_count


def test_logging_file_rotation_handler_configured(tmp_path, monkeypatch) -> None:
    monkeypatch.setenv("REPLYQUEUE_LOG_TO_FILE", "on")
    monkeypatch.setenv("REPLYQUEUE_LOG_DIR", str(tmp_path / "custom-logs"))

    logger = logging.getLogger("replyqueue")
    logger.handlers = []

    configure_logging(tmp_path / "state")
    configure_logging(tmp_path / "state")

    handlers = [h for h in logger.handlers if isinstance(h, RotatingFileHandler)]
    assert len(handlers) == 1
    assert (tmp_path / "custom-logs").exists()
    for handler in handlers:
        handler.close()
    logger.handlers = []


def test_logging_creates_state_log_dir_when_missing(tmp_path, monkeypatch) -> None:
    monkeypatch.setenv("REPLYQUEUE_LOG_TO_FILE", "on")
    monkeypatch.delenv("REPLYQUEUE_LOG_DIR", raising=False)

    logger = logging.getLogger("replyqueue")
    logger.handlers = []

    state_dir = tmp_path / "missing-state"
    configure_logging(state_dir)

    assert (state_dir / "logs").exists()
    for handler in logger.handlers:
        handler.close()
    logger.handlers = []


def test_secrets_are_redacted() -> None:
    assert redact_string("chat=1&key=s3cret&author=2") == "chat=1&key=***&author=2"
    assert redact_mapping({"task_key": "s3cret", "webhook_secret": "", "port": 3000}) == {
        "task_key": "***",
        "webhook_secret": "",
        "port": 3000,
    }
