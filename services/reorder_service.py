"""Drag-to-reorder coordination for sibling collections, groups and items."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, is_dataclass, replace
from typing import Any, Callable, List, Optional, Protocol, Sequence, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from core.logging import get_logger
from services import hierarchy_service
from services.bookmark_errors import (
    BookmarkServiceError,
    MalformedInputError,
    NotFoundError,
    StoreFailureError,
)
from services.bookmark_metrics import observe_reorder
from services.position_ledger import build_position_updates, move_entry, pending_updates

logger = get_logger(__name__)


class SiblingStore(Protocol):
    """Persistence seam used by :class:`ReorderCoordinator`."""

    def persist_position(self, entity_id: Any, position: int) -> None:
        ...

    def load_siblings(self) -> Sequence[Any]:
        ...


@dataclass(frozen=True)
class SiblingSnapshot:
    """Local view of one parent's children, in display order."""

    kind: str
    parent_id: Any
    entries: Tuple[Any, ...]

    @property
    def ids(self) -> List[Any]:
        return [entry.id for entry in self.entries]

    def with_entries(self, entries: Sequence[Any]) -> "SiblingSnapshot":
        return SiblingSnapshot(kind=self.kind, parent_id=self.parent_id, entries=tuple(entries))


@dataclass(frozen=True)
class ReorderOutcome:
    snapshot: SiblingSnapshot
    changed: bool
    persisted: int
    error: Optional[BookmarkServiceError] = None
    recovered: bool = True

    @property
    def ok(self) -> bool:
        return self.error is None


def _renumbered(entries: Sequence[Any]) -> List[Any]:
    result = []
    for index, entry in enumerate(entries):
        if is_dataclass(entry) and getattr(entry, "position", index) != index:
            entry = replace(entry, position=index)
        result.append(entry)
    return result


def _as_service_error(exc: Exception) -> BookmarkServiceError:
    if isinstance(exc, BookmarkServiceError):
        return exc
    wrapped = StoreFailureError("Saving the new order failed.")
    wrapped.__cause__ = exc
    return wrapped


class ReorderCoordinator:
    """Optimistically reorders a snapshot, then persists it position by position.

    Writes go out strictly one at a time in ascending target position. The
    first failure stops the remaining writes and the snapshot is replaced with
    whatever the store reports, which may mix old and new positions. Failures
    are returned on the outcome; nothing is retried.
    """

    def __init__(
        self,
        store: SiblingStore,
        *,
        on_optimistic: Optional[Callable[[SiblingSnapshot], None]] = None,
    ) -> None:
        self._store = store
        self._on_optimistic = on_optimistic

    def move(self, snapshot: SiblingSnapshot, entity_id: Any, target_index: int) -> ReorderOutcome:
        if not snapshot.entries:
            return ReorderOutcome(snapshot=snapshot, changed=False, persisted=0)
        ids = snapshot.ids
        try:
            from_index = ids.index(entity_id)
        except ValueError as exc:
            raise NotFoundError(f"{snapshot.kind.capitalize()} {entity_id} is not in this list.") from exc
        if from_index == target_index:
            return ReorderOutcome(snapshot=snapshot, changed=False, persisted=0)
        try:
            reordered = move_entry(snapshot.entries, from_index, target_index)
        except IndexError as exc:
            raise MalformedInputError(str(exc)) from exc

        optimistic = snapshot.with_entries(_renumbered(reordered))
        if self._on_optimistic is not None:
            self._on_optimistic(optimistic)

        persisted = 0
        for update in build_position_updates(optimistic.ids):
            try:
                self._store.persist_position(update.id, update.position)
            except (BookmarkServiceError, SQLAlchemyError) as exc:
                logger.warning(
                    "Reorder of %s under %s stopped after %d writes: %s",
                    snapshot.kind,
                    snapshot.parent_id,
                    persisted,
                    exc,
                )
                return self._recover(snapshot, optimistic, persisted, _as_service_error(exc))
            persisted += 1
        observe_reorder(snapshot.kind, "ok")
        return ReorderOutcome(snapshot=optimistic, changed=True, persisted=persisted)

    def _recover(
        self,
        original: SiblingSnapshot,
        optimistic: SiblingSnapshot,
        persisted: int,
        error: BookmarkServiceError,
    ) -> ReorderOutcome:
        try:
            authoritative = self._store.load_siblings()
        except (BookmarkServiceError, SQLAlchemyError) as exc:
            logger.error("Reloading %s under %s after a failed reorder also failed: %s", original.kind, original.parent_id, exc)
            observe_reorder(original.kind, "unrecovered")
            return ReorderOutcome(
                snapshot=original,
                changed=persisted > 0,
                persisted=persisted,
                error=error,
                recovered=False,
            )
        observe_reorder(original.kind, "recovered")
        return ReorderOutcome(
            snapshot=original.with_entries(authoritative),
            changed=persisted > 0,
            persisted=persisted,
            error=error,
        )


class SessionSiblingStore:
    """:class:`SiblingStore` backed by the hierarchy service."""

    def __init__(self, session: Session, *, kind: str, parent_id: Any, user_id: Any) -> None:
        self._session = session
        self.kind = hierarchy_service.normalize_kind(kind)
        self.parent_id = parent_id
        self.user_id = user_id

    def persist_position(self, entity_id: Any, position: int) -> None:
        hierarchy_service.set_position(
            self._session,
            kind=self.kind,
            entity_id=entity_id,
            position=position,
            user_id=self.user_id,
        )

    def load_siblings(self) -> Sequence[Any]:
        return hierarchy_service.list_siblings(
            self._session,
            kind=self.kind,
            parent_id=self.parent_id,
            user_id=self.user_id,
        )

    def snapshot(self) -> SiblingSnapshot:
        return SiblingSnapshot(kind=self.kind, parent_id=self.parent_id, entries=tuple(self.load_siblings()))


@dataclass(frozen=True)
class ReorderResult:
    kind: str
    parent_id: Any
    ordered_ids: List[uuid.UUID]
    updated: int


def reorder_siblings(
    session: Session,
    *,
    kind: str,
    parent_id: Any,
    ordered_ids: Sequence[Any],
    user_id: Any,
    atomic: Optional[bool] = None,
) -> ReorderResult:
    """Store ``ordered_ids`` as the dense order of ``parent_id``'s children.

    ``ordered_ids`` must list every current child exactly once. Rows already
    at their target position are not written, so repeating a call is a no-op.
    """
    canonical = hierarchy_service.normalize_kind(kind)
    siblings = hierarchy_service.list_siblings(session, kind=canonical, parent_id=parent_id, user_id=user_id)
    try:
        requested = [uuid.UUID(str(value)) for value in ordered_ids]
    except (ValueError, TypeError) as exc:
        raise MalformedInputError("Ordered ids must be UUIDs.") from exc
    updates = build_position_updates(requested)
    current = {entry.id: entry.position for entry in siblings}
    if set(requested) != set(current):
        raise MalformedInputError(f"Ordered ids must list every {canonical} under the parent exactly once.")

    pending = pending_updates(current, updates)
    if pending:
        try:
            hierarchy_service.apply_position_updates(
                session,
                kind=canonical,
                parent_id=parent_id,
                updates=pending,
                user_id=user_id,
                atomic=atomic,
            )
        except BookmarkServiceError:
            observe_reorder(canonical, "error")
            raise
    observe_reorder(canonical, "ok" if pending else "noop")
    logger.info("Reordered %d/%d %ss under %s", len(pending), len(requested), canonical, parent_id)
    return ReorderResult(kind=canonical, parent_id=parent_id, ordered_ids=requested, updated=len(pending))


__all__ = [
    "ReorderCoordinator",
    "ReorderOutcome",
    "ReorderResult",
    "SessionSiblingStore",
    "SiblingSnapshot",
    "SiblingStore",
    "reorder_siblings",
]
