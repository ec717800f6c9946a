"""Logging setup shared by the CLI and the diagnostics service."""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from typing import Optional

from .config import Settings

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

# Chatty third-party loggers kept at WARNING unless the root level is DEBUG.
_NOISY_LOGGERS = ("sqlalchemy.engine", "sqlalchemy.pool", "uvicorn.access")


def configure_logging(settings: Optional[Settings] = None, level: Optional[str] = None) -> None:
    """Install console and optional rotating file handlers on the root logger."""

    log_level = (level or (settings.log_level if settings else "INFO")).upper()
    log_file = settings.log_file if settings else None

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(log_file, maxBytes=5_000_000, backupCount=3)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    quiet_level = logging.DEBUG if log_level == "DEBUG" else logging.WARNING
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(quiet_level)


__all__ = ["configure_logging", "LOG_FORMAT"]
