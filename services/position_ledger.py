"""Pure ordering helpers for sibling positions.

Positions are zero-based and dense after any reorder or import: the entity at
index ``n`` of the desired sequence is stored with ``position = n``. Nothing in
this module touches the database.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Hashable, Iterable, List, Mapping, Sequence, TypeVar

from services.bookmark_errors import MalformedInputError

T = TypeVar("T")


@dataclass(frozen=True)
class PositionUpdate:
    id: Any
    position: int


def build_position_updates(ordered_ids: Iterable[Hashable]) -> List[PositionUpdate]:
    """Map every id to its index in ``ordered_ids``.

    The result is already sorted by ascending target position, which is the
    order writes must be applied in.
    """
    updates: List[PositionUpdate] = []
    seen: set = set()
    for index, entity_id in enumerate(ordered_ids):
        if entity_id in seen:
            raise MalformedInputError(f"Duplicate id in ordering: {entity_id}")
        seen.add(entity_id)
        updates.append(PositionUpdate(id=entity_id, position=index))
    return updates


def move_entry(sequence: Sequence[T], from_index: int, to_index: int) -> List[T]:
    """Return a copy of ``sequence`` with one element moved; others shift to fill the gap."""
    size = len(sequence)
    if not 0 <= from_index < size:
        raise IndexError(f"from_index {from_index} out of range for {size} siblings")
    if not 0 <= to_index < size:
        raise IndexError(f"to_index {to_index} out of range for {size} siblings")
    moved = list(sequence)
    entry = moved.pop(from_index)
    moved.insert(to_index, entry)
    return moved


def pending_updates(
    current_positions: Mapping[Hashable, int],
    updates: Sequence[PositionUpdate],
) -> List[PositionUpdate]:
    """Drop updates whose stored position already equals the target."""
    return [update for update in updates if current_positions.get(update.id) != update.position]


def dense_order(entries: Sequence[T], key: Callable[[T], Any]) -> List[T]:
    """Stable sort by ``key``; ties keep their input order."""
    indexed = list(enumerate(entries))
    indexed.sort(key=lambda pair: (key(pair[1]), pair[0]))
    return [entry for _, entry in indexed]


__all__ = [
    "PositionUpdate",
    "build_position_updates",
    "dense_order",
    "move_entry",
    "pending_updates",
]
