"""Process-wide logging for the schedule engine.

Services log one line per operation as ``message | key=value | key=value``
so scans and store writes can be grepped by entry id, term or room.
"""

from __future__ import annotations

import logging
import sys
from typing import Optional

from schedule_engine.utils.config import get_settings


LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

_LOGGER_INITIALIZED = False


def resolve_log_level(level: str) -> int:
    """Map a level name such as ``"info"`` to its numeric value.

    Unknown names raise ValueError naming the offending value.
    """
    name = level.strip().upper()
    resolved = logging.getLevelName(name)
    if not isinstance(resolved, int):
        raise ValueError(f"Unknown log level {level!r}")
    return resolved


def configure_logging(level: Optional[str] = None) -> None:
    """Configure process-wide logging once.

    Later calls are no-ops, so every module can call ``get_logger`` at import
    time while ``create_app`` still decides the level on first use.
    """

    global _LOGGER_INITIALIZED
    if _LOGGER_INITIALIZED:
        return

    resolved_level = resolve_log_level(level or get_settings().log_level)
    logging.basicConfig(level=resolved_level, format=LOG_FORMAT, stream=sys.stdout)
    _LOGGER_INITIALIZED = True


def get_logger(name: str) -> logging.Logger:
    """Return a configured logger for the requested module."""
    configure_logging()
    return logging.getLogger(name)
