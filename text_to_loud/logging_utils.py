"""Centralized logging configuration for the Text to Loud application."""

from __future__ import annotations

import logging
from logging import Logger
from pathlib import Path
from typing import Iterable, List


DEFAULT_LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
_HANDLER_MARKER = "_text_to_loud_handler"


def parse_log_level(value: str | int | None, default: int = logging.INFO) -> int:
    """Return the numeric level for *value* (``"debug"``, ``20``...)."""

    if value is None:
        return default
    if isinstance(value, int):
        return value
    candidate = logging.getLevelName(str(value).strip().upper())
    return candidate if isinstance(candidate, int) else default


def configure_logging(level: int = logging.INFO, *, handlers: Iterable[logging.Handler] | None = None) -> Logger:
    """Configure the root logger, replacing handlers installed by earlier calls."""

    logger = logging.getLogger()
    logger.setLevel(level)

    for existing in list(logger.handlers):
        if getattr(existing, _HANDLER_MARKER, False):
            logger.removeHandler(existing)
            existing.close()

    if handlers is None:
        stream_handler = logging.StreamHandler()
        stream_handler.setFormatter(logging.Formatter(DEFAULT_LOG_FORMAT))
        handlers = [stream_handler]

    for handler in handlers:
        setattr(handler, _HANDLER_MARKER, True)
        logger.addHandler(handler)

    return logger


def get_log_file_path(storage_root: Path) -> Path:
    """Return the default path for the application log file."""

    return storage_root / "text_to_loud.log"


def build_handlers(storage_root: Path, *, console: bool = True) -> List[logging.Handler]:
    """Return a file handler (plus an optional console handler) sharing one format."""

    formatter = logging.Formatter(DEFAULT_LOG_FORMAT)
    file_handler = logging.FileHandler(get_log_file_path(storage_root), encoding="utf-8")
    file_handler.setFormatter(formatter)
    handlers: List[logging.Handler] = [file_handler]
    if console:
        stream_handler = logging.StreamHandler()
        stream_handler.setFormatter(formatter)
        handlers.append(stream_handler)
    return handlers


__all__ = [
    "DEFAULT_LOG_FORMAT",
    "build_handlers",
    "configure_logging",
    "get_log_file_path",
    "parse_log_level",
]
