from __future__ import annotations

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

from .json_formatter import JSONFormatter

_LOGGER_NAME = "replyqueue"
_MARKER = "_replyqueue_handler"
_LOG_FILE_NAME = "replyqueue.log"
_DEFAULT_MAX_BYTES = 5_000_000
_DEFAULT_BACKUP_COUNT = 5
# httpx logs every request at INFO
_QUIET_LOGGERS = ("httpx", "httpcore")


def _env_level(name: str, default: int = logging.INFO) -> int:
    raw = os.getenv(name, "").strip().upper()
    level = logging.getLevelName(raw) if raw else default
    return level if isinstance(level, int) else default


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, ""))
    except ValueError:
        return default


def _env_on(name: str, default: str = "on") -> bool:
    return os.getenv(name, default).strip().casefold() == "on"


def _owned(logger: logging.Logger) -> list[logging.Handler]:
    return [handler for handler in logger.handlers if getattr(handler, _MARKER, False)]


def _mark(handler: logging.Handler, formatter: logging.Formatter) -> logging.Handler:
    handler.setFormatter(formatter)
    setattr(handler, _MARKER, True)
    return handler


def resolve_log_dir(state_dir: Path) -> Path:
    return Path(os.getenv("REPLYQUEUE_LOG_DIR") or (Path(state_dir) / "logs")).expanduser()


def configure_logging(state_dir: Path) -> logging.Logger:
    """Attach JSON handlers to the ``replyqueue`` logger once per process.

    Calling it again (a second app startup in tests, for instance) only
    refreshes the level and adds the file handler if it was missing.
    """
    logger = logging.getLogger(_LOGGER_NAME)
    logger.setLevel(_env_level("REPLYQUEUE_LOG_LEVEL"))
    logger.propagate = False
    formatter = JSONFormatter()
    owned = _owned(logger)

    if not any(isinstance(handler, logging.StreamHandler) and not isinstance(handler, RotatingFileHandler) for handler in owned):
        logger.addHandler(_mark(logging.StreamHandler(stream=sys.stdout), formatter))

    if _env_on("REPLYQUEUE_LOG_TO_FILE"):
        log_dir = resolve_log_dir(state_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        log_path = (log_dir / _LOG_FILE_NAME).resolve()
        has_file = any(
            isinstance(handler, RotatingFileHandler) and Path(handler.baseFilename) == log_path for handler in owned
        )
        if not has_file:
            handler = RotatingFileHandler(
                filename=log_path,
                maxBytes=_env_int("REPLYQUEUE_LOG_MAX_BYTES", _DEFAULT_MAX_BYTES),
                backupCount=_env_int("REPLYQUEUE_LOG_BACKUP_COUNT", _DEFAULT_BACKUP_COUNT),
                encoding="utf-8",
            )
            logger.addHandler(_mark(handler, formatter))

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return logger
