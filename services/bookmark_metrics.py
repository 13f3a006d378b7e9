"""Prometheus counters for reorder, transfer and share operations."""

from __future__ import annotations

from typing import Optional, Sequence

from prometheus_client import REGISTRY, Counter

from core.logging import get_logger

logger = get_logger(__name__)


def _counter(name: str, documentation: str, labelnames: Sequence[str]) -> Optional[Counter]:
    """Create a Counter, reusing an existing registration on module reload."""
    try:
        return Counter(name, documentation, tuple(labelnames))
    except ValueError:
        existing = getattr(REGISTRY, "_names_to_collectors", {}).get(name)
        if existing is None:
            logger.debug("Counter %s already registered but not found in registry.", name)
        return existing


_REORDER_COUNTER = _counter(
    "bookmark_reorder_total",
    "Sibling reorder requests grouped by entity kind and result.",
    ("kind", "result"),
)
_TRANSFER_COUNTER = _counter(
    "bookmark_transfer_total",
    "Export/import runs grouped by direction and result.",
    ("direction", "result"),
)
_TRANSFER_ENTITIES = _counter(
    "bookmark_transfer_entities_total",
    "Entities written or read by export/import grouped by direction and kind.",
    ("direction", "kind"),
)
_SHARE_COUNTER = _counter(
    "bookmark_share_total",
    "Share token operations grouped by action and result.",
    ("action", "result"),
)


def observe_reorder(kind: str, result: str) -> None:
    if _REORDER_COUNTER is None:
        return
    _REORDER_COUNTER.labels(kind=kind or "unknown", result=result or "unknown").inc()


def observe_transfer(direction: str, result: str, counts: Optional[dict] = None) -> None:
    if _TRANSFER_COUNTER is not None:
        _TRANSFER_COUNTER.labels(direction=direction, result=result or "unknown").inc()
    if _TRANSFER_ENTITIES is None or not counts:
        return
    for kind, count in counts.items():
        if count > 0:
            _TRANSFER_ENTITIES.labels(direction=direction, kind=kind).inc(count)


def observe_share(action: str, result: str) -> None:
    if _SHARE_COUNTER is None:
        return
    _SHARE_COUNTER.labels(action=action, result=result or "unknown").inc()


__all__ = ["observe_reorder", "observe_share", "observe_transfer"]
