"""Bulk export and full-replace import of a user's bookmark hierarchy.

The export document holds three flat arrays (``collections``, ``groups``,
``items``) keyed by the original row ids. Import deletes everything the caller
owns and re-creates the document with fresh ids, rewriting parent references
through per-level id maps. Deletion and insertion share one database
transaction: if any step fails, the caller's previous data is left untouched.
"""

from __future__ import annotations

import uuid
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from core.logging import get_logger
from models.bookmark import Collection, Group, Item
from services.bookmark_errors import (
    BookmarkServiceError,
    DanglingReferenceError,
    MalformedInputError,
    StoreFailureError,
)
from services.bookmark_metrics import observe_transfer
from services.hierarchy_service import clip_description, clip_title, require_user, sanitize_color, slugify
from services.position_ledger import dense_order

logger = get_logger(__name__)

DOCUMENT_KEYS = ("collections", "groups", "items")
LEGACY_DOCUMENT_KEYS = ("boards", "folders", "links")
MAX_IMPORT_ENTITIES = 20000


class _TransferEntry(BaseModel):
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True, populate_by_name=True)

    @field_validator("id", "collection_id", "group_id", mode="before", check_fields=False)
    @classmethod
    def _stringify_reference(cls, value: Any) -> Any:
        if value is None or isinstance(value, str):
            return value
        if isinstance(value, (int, uuid.UUID)) and not isinstance(value, bool):
            return str(value)
        return value


class CollectionEntry(_TransferEntry):
    id: str = Field(min_length=1)
    name: str = Field(min_length=1, max_length=160)
    color: Optional[str] = None
    position: Optional[int] = None


class GroupEntry(_TransferEntry):
    id: str = Field(min_length=1)
    collection_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("collection_id", "board_id"))
    name: str = Field(min_length=1, max_length=160)
    color: Optional[str] = None
    position: Optional[int] = None


class ItemEntry(_TransferEntry):
    id: Optional[str] = None
    group_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("group_id", "folder_id"))
    title: Optional[str] = None
    url: str = Field(min_length=1)
    description: Optional[str] = None
    favicon: Optional[str] = None
    position: Optional[int] = None


@dataclass(frozen=True)
class ParsedDocument:
    collections: List[CollectionEntry]
    groups: List[GroupEntry]
    items: List[ItemEntry]


@dataclass(frozen=True)
class ImportCounts:
    collections: int
    groups: int
    items: int

    def as_dict(self) -> Dict[str, int]:
        return {"collections": self.collections, "groups": self.groups, "items": self.items}


# --------------------------------------------------------------------------- #
# Export
# --------------------------------------------------------------------------- #


def _plain_id(value: Any) -> Any:
    return str(value) if isinstance(value, uuid.UUID) else value


def export_hierarchy(session: Session, *, user_id: Any) -> Dict[str, List[Dict[str, Any]]]:
    """Return every collection, group and item owned by ``user_id``."""
    owner_id = require_user(user_id)
    try:
        collections = (
            session.query(Collection)
            .filter(Collection.owner_id == owner_id)
            .order_by(Collection.position.asc(), Collection.id.asc())
            .all()
        )
        collection_rank = {row.id: index for index, row in enumerate(collections)}
        groups: List[Group] = []
        if collection_rank:
            groups = session.query(Group).filter(Group.collection_id.in_(list(collection_rank))).all()
        groups.sort(key=lambda row: (collection_rank[row.collection_id], row.position, str(row.id)))
        group_rank = {row.id: index for index, row in enumerate(groups)}
        items: List[Item] = []
        if group_rank:
            items = session.query(Item).filter(Item.group_id.in_(list(group_rank))).all()
        items.sort(key=lambda row: (group_rank[row.group_id], row.position, str(row.id)))
    except SQLAlchemyError as exc:
        session.rollback()
        observe_transfer("export", "error")
        raise StoreFailureError("Export failed.") from exc

    document = {
        "collections": [
            {
                "id": _plain_id(row.id),
                "owner_id": _plain_id(row.owner_id),
                "name": row.name,
                "slug": row.slug,
                "color": row.color,
                "position": row.position,
            }
            for row in collections
        ],
        "groups": [
            {
                "id": _plain_id(row.id),
                "collection_id": _plain_id(row.collection_id),
                "name": row.name,
                "color": row.color,
                "position": row.position,
            }
            for row in groups
        ],
        "items": [
            {
                "id": _plain_id(row.id),
                "group_id": _plain_id(row.group_id),
                "title": row.title,
                "url": row.url,
                "description": row.description,
                "favicon": row.favicon,
                "position": row.position,
            }
            for row in items
        ],
    }
    counts = {key: len(document[key]) for key in DOCUMENT_KEYS}
    observe_transfer("export", "ok", counts)
    logger.info("Exported hierarchy for user=%s counts=%s", owner_id, counts)
    return document


# --------------------------------------------------------------------------- #
# Import
# --------------------------------------------------------------------------- #


def _format_validation_error(section: str, exc: ValidationError) -> str:
    first = exc.errors()[0] if exc.errors() else {}
    location = ".".join(str(part) for part in first.get("loc", ()))
    message = first.get("msg", "invalid value")
    return f"{section}{'.' + location if location else ''}: {message}"


def _validate_section(section: str, raw_entries: Sequence[Any], model) -> List[Any]:
    parsed = []
    for index, raw in enumerate(raw_entries):
        if not isinstance(raw, Mapping):
            raise MalformedInputError(f"{section}[{index}] must be an object.")
        try:
            parsed.append(model.model_validate(dict(raw)))
        except ValidationError as exc:
            raise MalformedInputError(_format_validation_error(f"{section}[{index}]", exc)) from exc
    return parsed


def _ensure_unique_ids(section: str, entries: Sequence[Any]) -> None:
    seen: set = set()
    for entry in entries:
        if entry.id is None:
            continue
        if entry.id in seen:
            raise MalformedInputError(f"{section} contains duplicate id {entry.id}.")
        seen.add(entry.id)


def parse_document(document: Any) -> ParsedDocument:
    """Validate the document shape; raises :class:`MalformedInputError` without side effects.

    Exactly three array fields are accepted, either ``collections/groups/items``
    or the older ``boards/folders/links`` naming.
    """
    if not isinstance(document, Mapping):
        raise MalformedInputError("Import document must be an object.")
    keys = set(document.keys())
    if keys == set(DOCUMENT_KEYS):
        names = DOCUMENT_KEYS
    elif keys == set(LEGACY_DOCUMENT_KEYS):
        names = LEGACY_DOCUMENT_KEYS
    else:
        raise MalformedInputError("Invalid import format. Expected exactly collections, groups and items arrays.")
    sections = [document[name] for name in names]
    for name, value in zip(names, sections):
        if not isinstance(value, list):
            raise MalformedInputError(f"Invalid import format. '{name}' must be an array.")
    if sum(len(section) for section in sections) > MAX_IMPORT_ENTITIES:
        raise MalformedInputError(f"Import documents are limited to {MAX_IMPORT_ENTITIES} entities.")

    collections = _validate_section(names[0], sections[0], CollectionEntry)
    groups = _validate_section(names[1], sections[1], GroupEntry)
    items = _validate_section(names[2], sections[2], ItemEntry)
    _ensure_unique_ids(names[0], collections)
    _ensure_unique_ids(names[1], groups)
    return ParsedDocument(collections=collections, groups=groups, items=items)


def _position_key(entry: Any) -> Tuple[int, int]:
    return (0, entry.position) if entry.position is not None else (1, 0)


def _delete_owned(session: Session, owner_id: uuid.UUID) -> Tuple[int, int, int]:
    """Remove the owner's rows bottom-up: items, then groups, then collections."""
    collection_ids = [value for (value,) in session.query(Collection.id).filter(Collection.owner_id == owner_id).all()]
    removed_items = removed_groups = 0
    if collection_ids:
        group_ids = [value for (value,) in session.query(Group.id).filter(Group.collection_id.in_(collection_ids)).all()]
        if group_ids:
            removed_items = session.query(Item).filter(Item.group_id.in_(group_ids)).delete(synchronize_session=False)
        removed_groups = (
            session.query(Group).filter(Group.collection_id.in_(collection_ids)).delete(synchronize_session=False)
        )
    removed_collections = (
        session.query(Collection).filter(Collection.owner_id == owner_id).delete(synchronize_session=False)
    )
    return removed_collections, removed_groups, removed_items


def _insert_collections(session: Session, owner_id: uuid.UUID, entries: Sequence[CollectionEntry]) -> Dict[str, uuid.UUID]:
    remap: Dict[str, uuid.UUID] = {}
    taken_slugs: set = set()
    for position, entry in enumerate(dense_order(entries, _position_key)):
        slug = base = slugify(entry.name)
        suffix = 2
        while slug in taken_slugs:
            slug = f"{base}-{suffix}"
            suffix += 1
        taken_slugs.add(slug)
        new_id = uuid.uuid4()
        session.add(
            Collection(
                id=new_id,
                owner_id=owner_id,
                name=entry.name,
                slug=slug,
                color=sanitize_color(entry.color),
                position=position,
            )
        )
        remap[entry.id] = new_id
    session.flush()
    return remap


def _insert_groups(
    session: Session,
    entries: Sequence[GroupEntry],
    collection_remap: Mapping[str, uuid.UUID],
) -> Dict[str, uuid.UUID]:
    by_parent: Dict[uuid.UUID, List[GroupEntry]] = defaultdict(list)
    for entry in entries:
        parent_id = collection_remap.get(entry.collection_id or "")
        if parent_id is None:
            raise DanglingReferenceError(
                f"Group {entry.id} references collection {entry.collection_id!r}, which is not in this import."
            )
        by_parent[parent_id].append(entry)

    remap: Dict[str, uuid.UUID] = {}
    for parent_id, siblings in by_parent.items():
        for position, entry in enumerate(dense_order(siblings, _position_key)):
            new_id = uuid.uuid4()
            session.add(
                Group(
                    id=new_id,
                    collection_id=parent_id,
                    name=entry.name,
                    color=sanitize_color(entry.color),
                    position=position,
                )
            )
            remap[entry.id] = new_id
    session.flush()
    return remap


def _insert_items(session: Session, entries: Sequence[ItemEntry], group_remap: Mapping[str, uuid.UUID]) -> int:
    by_parent: Dict[uuid.UUID, List[ItemEntry]] = defaultdict(list)
    for entry in entries:
        parent_id = group_remap.get(entry.group_id or "")
        if parent_id is None:
            raise DanglingReferenceError(
                f"Item {entry.id or entry.url} references group {entry.group_id!r}, which is not in this import."
            )
        by_parent[parent_id].append(entry)

    inserted = 0
    for parent_id, siblings in by_parent.items():
        for position, entry in enumerate(dense_order(siblings, _position_key)):
            session.add(
                Item(
                    group_id=parent_id,
                    title=clip_title(entry.title, entry.url),
                    url=entry.url,
                    description=clip_description(entry.description),
                    favicon=entry.favicon or None,
                    position=position,
                )
            )
            inserted += 1
    session.flush()
    return inserted


def import_hierarchy(session: Session, *, user_id: Any, document: Any) -> ImportCounts:
    """Replace everything ``user_id`` owns with the contents of ``document``."""
    owner_id = require_user(user_id)
    try:
        parsed = parse_document(document)
    except MalformedInputError:
        observe_transfer("import", "malformed")
        raise

    try:
        removed = _delete_owned(session, owner_id)
        collection_remap = _insert_collections(session, owner_id, parsed.collections)
        group_remap = _insert_groups(session, parsed.groups, collection_remap)
        item_count = _insert_items(session, parsed.items, group_remap)
        session.commit()
    except BookmarkServiceError as exc:
        session.rollback()
        observe_transfer("import", exc.code.rsplit(".", 1)[-1])
        logger.warning("Import for user=%s rolled back: %s", owner_id, exc)
        raise
    except SQLAlchemyError as exc:
        session.rollback()
        observe_transfer("import", "store_failure")
        logger.error("Import for user=%s rolled back after a store error: %s", owner_id, exc)
        raise StoreFailureError("Import failed; previous bookmarks were kept.") from exc

    counts = ImportCounts(collections=len(collection_remap), groups=len(group_remap), items=item_count)
    observe_transfer("import", "ok", counts.as_dict())
    logger.info(
        "Imported hierarchy for user=%s counts=%s (replaced collections=%d groups=%d items=%d)",
        owner_id,
        counts.as_dict(),
        *removed,
    )
    return counts


__all__ = [
    "CollectionEntry",
    "GroupEntry",
    "ImportCounts",
    "ItemEntry",
    "ParsedDocument",
    "export_hierarchy",
    "import_hierarchy",
    "parse_document",
]
