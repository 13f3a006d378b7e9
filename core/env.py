"""Typed readers for environment configuration.

Blank values count as unset. Invalid values are logged and replaced by the
caller's default so a typo never prevents start-up.
"""

from __future__ import annotations

import os
from typing import List, Optional

from core.logging import get_logger

logger = get_logger(__name__)

_TRUTHY = frozenset({"1", "true", "yes", "y", "on"})
_FALSY = frozenset({"0", "false", "no", "n", "off"})


def _raw(key: str) -> Optional[str]:
    value = os.getenv(key)
    if value is None:
        return None
    value = value.strip()
    return value or None


def env_str(key: str, default: Optional[str] = None) -> Optional[str]:
    value = _raw(key)
    return default if value is None else value


def env_int(key: str, default: int, *, minimum: Optional[int] = None, maximum: Optional[int] = None) -> int:
    """Integer setting; below ``minimum`` falls back to ``default``, above ``maximum`` is clamped."""
    raw = _raw(key)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning("Ignoring non-integer %s=%r; using %d.", key, raw, default)
        return default
    if minimum is not None and value < minimum:
        logger.warning("%s=%d is below the minimum %d; using %d.", key, value, minimum, default)
        return default
    if maximum is not None and value > maximum:
        logger.warning("%s=%d exceeds the maximum %d; clamping.", key, value, maximum)
        return maximum
    return value


def env_bool(key: str, default: bool) -> bool:
    raw = _raw(key)
    if raw is None:
        return default
    normalized = raw.lower()
    if normalized in _TRUTHY:
        return True
    if normalized in _FALSY:
        return False
    logger.warning("Ignoring non-boolean %s=%r; using %s.", key, raw, default)
    return default


def env_list(key: str, default: Optional[List[str]] = None) -> List[str]:
    """Comma separated list; blank entries are dropped."""
    raw = _raw(key)
    if raw is None:
        return list(default or [])
    return [part.strip() for part in raw.split(",") if part.strip()]


__all__ = ["env_bool", "env_int", "env_list", "env_str"]
