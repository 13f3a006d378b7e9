"""Shared logging helpers."""

from __future__ import annotations

import logging
import os
from typing import Optional

_CONFIGURED = False
_DEFAULT_FORMAT = "%(asctime)s %(levelname)s %(name)s - %(message)s"


def _resolve_level(default: int) -> int:
    raw = os.getenv("LOG_LEVEL")
    if not raw:
        return default
    value = logging.getLevelName(raw.strip().upper())
    return value if isinstance(value, int) else default


def setup_logging(level: int = logging.INFO, *, fmt: Optional[str] = None) -> None:
    """Ensure root logger is configured once."""
    global _CONFIGURED
    if _CONFIGURED:
        return
    logging.basicConfig(level=_resolve_level(level), format=fmt or _DEFAULT_FORMAT)
    _CONFIGURED = True


def get_logger(name: str, *, level: int = logging.INFO) -> logging.Logger:
    """Return configured logger for a module."""
    setup_logging(level=level)
    logger = logging.getLogger(name)
    logger.setLevel(_resolve_level(level))
    return logger
