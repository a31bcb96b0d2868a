"""Centralized logging utility with colored console output."""

import logging
import os
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler


_loggers: dict[str, logging.Logger] = {}

LOG_LEVEL_ENV = "BACKUP_LOG_LEVEL"


def _default_level() -> int:
    """Resolve the default level from BACKUP_LOG_LEVEL, falling back to INFO."""
    name = os.getenv(LOG_LEVEL_ENV, "INFO").upper().strip()
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else logging.INFO


def get_logger(name: str, level: Optional[int] = None) -> logging.Logger:
    """
    Get or create a logger with colored console output.

    Args:
        name: Logger name (typically __name__ of calling module).
        level: Optional logging level. Defaults to BACKUP_LOG_LEVEL or INFO.

    Returns:
        Configured logger instance.
    """
    if name in _loggers:
        return _loggers[name]

    logger = logging.getLogger(name)
    logger.setLevel(level or _default_level())

    if not logger.handlers:
        handler = RichHandler(
            console=Console(stderr=True),
            show_time=True,
            show_path=False,
            rich_tracebacks=True,
        )
        handler.setFormatter(logging.Formatter("%(message)s"))
        logger.addHandler(handler)

    logger.propagate = False
    _loggers[name] = logger
    return logger


def set_log_level(level: int) -> None:
    """Apply a level to every logger created so far (used by CLI --verbose)."""
    for logger in _loggers.values():
        logger.setLevel(level)
