"""Ownership-scoped persistence helpers for collections, groups and items.

Every public function takes the caller's user id and walks the ownership chain
(item → group → collection → owner) before reading or writing. A missing row
raises :class:`NotFoundError`; a row owned by someone else raises
:class:`UnauthorizedError`.
"""

from __future__ import annotations

import re
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterator, List, Literal, Optional, Sequence, Tuple, Union
from urllib.parse import urlparse

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from core.env import env_bool
from core.logging import get_logger
from models.bookmark import DEFAULT_COLOR, Collection, Group, Item
from services.bookmark_errors import (
    MalformedInputError,
    NotFoundError,
    StoreFailureError,
    UnauthenticatedError,
    UnauthorizedError,
)
from services.position_ledger import PositionUpdate

logger = get_logger(__name__)

EntityKind = Literal["collection", "group", "item"]
ENTITY_KINDS: Tuple[str, ...] = ("collection", "group", "item")
KIND_ALIASES = {"board": "collection", "folder": "group", "link": "item"}

MAX_NAME_LENGTH = 160
MAX_TITLE_LENGTH = 500
MAX_DESCRIPTION_LENGTH = 2000
MAX_BULK_URLS = 200

IdLike = Union[uuid.UUID, str]


@dataclass(frozen=True)
class CollectionRecord:
    id: uuid.UUID
    owner_id: uuid.UUID
    name: str
    slug: Optional[str]
    color: str
    position: int
    created_at: Optional[datetime]
    updated_at: Optional[datetime]


@dataclass(frozen=True)
class GroupRecord:
    id: uuid.UUID
    collection_id: uuid.UUID
    name: str
    color: str
    position: int
    created_at: Optional[datetime]
    updated_at: Optional[datetime]


@dataclass(frozen=True)
class ItemRecord:
    id: uuid.UUID
    group_id: uuid.UUID
    title: str
    url: str
    description: Optional[str]
    favicon: Optional[str]
    position: int
    created_at: Optional[datetime]
    updated_at: Optional[datetime]


EntityRecord = Union[CollectionRecord, GroupRecord, ItemRecord]


def collection_record(row: Collection) -> CollectionRecord:
    return CollectionRecord(
        id=row.id,
        owner_id=row.owner_id,
        name=row.name,
        slug=row.slug,
        color=row.color or DEFAULT_COLOR,
        position=int(row.position or 0),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def group_record(row: Group) -> GroupRecord:
    return GroupRecord(
        id=row.id,
        collection_id=row.collection_id,
        name=row.name,
        color=row.color or DEFAULT_COLOR,
        position=int(row.position or 0),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def item_record(row: Item) -> ItemRecord:
    return ItemRecord(
        id=row.id,
        group_id=row.group_id,
        title=row.title,
        url=row.url,
        description=row.description,
        favicon=row.favicon,
        position=int(row.position or 0),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


@contextmanager
def store_guard(session: Session, action: str) -> Iterator[None]:
    """Roll back and re-raise database errors as :class:`StoreFailureError`."""
    try:
        yield
    except SQLAlchemyError as exc:
        session.rollback()
        logger.warning("%s failed: %s", action, exc)
        raise StoreFailureError(f"{action} failed.") from exc


def normalize_kind(value: Optional[str]) -> str:
    """Return the canonical entity kind; accepts board/folder/link aliases."""
    normalized = (value or "").strip().lower()
    normalized = KIND_ALIASES.get(normalized, normalized)
    if normalized not in ENTITY_KINDS:
        raise MalformedInputError(f"Unsupported resource type: {value!r}")
    return normalized


def require_user(user_id: Optional[IdLike]) -> uuid.UUID:
    if user_id is None or user_id == "":
        raise UnauthenticatedError("Sign-in is required for this operation.")
    if isinstance(user_id, uuid.UUID):
        return user_id
    try:
        return uuid.UUID(str(user_id))
    except (ValueError, TypeError) as exc:
        raise UnauthenticatedError("Caller identity is not valid.") from exc


def coerce_id(value: Optional[IdLike], label: str) -> uuid.UUID:
    """Parse an entity id; an unparsable id can never match a row."""
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (ValueError, TypeError) as exc:
        raise NotFoundError(f"{label} not found.") from exc


def _trim(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    trimmed = str(value).strip()
    return trimmed or None


def _require_text(value: Optional[str], label: str, max_length: int) -> str:
    text_value = _trim(value)
    if not text_value:
        raise MalformedInputError(f"{label} is required.")
    if len(text_value) > max_length:
        raise MalformedInputError(f"{label} is too long.")
    return text_value


def sanitize_color(value: Optional[str]) -> str:
    text_value = _trim(value)
    if not text_value or not text_value.startswith("#") or len(text_value) not in (4, 7):
        return DEFAULT_COLOR
    if all(ch in "0123456789abcdefABCDEF" for ch in text_value[1:]):
        return text_value
    return DEFAULT_COLOR


def normalize_url(value: Optional[str]) -> str:
    url = _trim(value)
    if not url:
        raise MalformedInputError("Item url must not be empty.")
    return url


def default_title(url: str) -> str:
    """Host name of ``url``; the url itself when it has none."""
    host = urlparse(url).hostname
    return host or url


def slugify(name: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", name.strip().lower()).strip("-")
    return slug or "collection"


def _unique_slug(session: Session, owner_id: uuid.UUID, name: str, *, exclude_id: Optional[uuid.UUID] = None) -> str:
    base = slugify(name)
    query = session.query(Collection.slug).filter(Collection.owner_id == owner_id, Collection.slug.like(f"{base}%"))
    if exclude_id is not None:
        query = query.filter(Collection.id != exclude_id)
    taken = {row[0] for row in query.all()}
    if base not in taken:
        return base
    suffix = 2
    while f"{base}-{suffix}" in taken:
        suffix += 1
    return f"{base}-{suffix}"


# --------------------------------------------------------------------------- #
# Ownership chain
# --------------------------------------------------------------------------- #


def _load_collection(session: Session, collection_id: IdLike, user_id: uuid.UUID) -> Collection:
    with store_guard(session, "Load collection"):
        row = session.get(Collection, coerce_id(collection_id, "Collection"))
    if row is None:
        raise NotFoundError("Collection not found.")
    if row.owner_id != user_id:
        raise UnauthorizedError("Collection belongs to another user.")
    return row


def _load_group(session: Session, group_id: IdLike, user_id: uuid.UUID) -> Group:
    with store_guard(session, "Load group"):
        row = session.get(Group, coerce_id(group_id, "Group"))
        parent = session.get(Collection, row.collection_id) if row is not None else None
    if row is None:
        raise NotFoundError("Group not found.")
    if parent is None or parent.owner_id != user_id:
        raise UnauthorizedError("Group belongs to another user.")
    return row


def _load_item(session: Session, item_id: IdLike, user_id: uuid.UUID) -> Item:
    with store_guard(session, "Load item"):
        row = session.get(Item, coerce_id(item_id, "Item"))
        group = session.get(Group, row.group_id) if row is not None else None
        parent = session.get(Collection, group.collection_id) if group is not None else None
    if row is None:
        raise NotFoundError("Item not found.")
    if parent is None or parent.owner_id != user_id:
        raise UnauthorizedError("Item belongs to another user.")
    return row


def _sibling_count(session: Session, column, parent_id: uuid.UUID) -> int:
    model = column.class_
    value = session.query(func.count(model.id)).filter(column == parent_id).scalar()
    return int(value or 0)


# --------------------------------------------------------------------------- #
# Collections
# --------------------------------------------------------------------------- #


def create_collection(
    session: Session,
    *,
    user_id: Optional[IdLike],
    name: str,
    color: Optional[str] = None,
) -> CollectionRecord:
    owner_id = require_user(user_id)
    safe_name = _require_text(name, "Collection name", MAX_NAME_LENGTH)
    with store_guard(session, "Create collection"):
        row = Collection(
            owner_id=owner_id,
            name=safe_name,
            slug=_unique_slug(session, owner_id, safe_name),
            color=sanitize_color(color),
            position=_sibling_count(session, Collection.owner_id, owner_id),
        )
        session.add(row)
        session.commit()
        session.refresh(row)
    return collection_record(row)


def list_collections(session: Session, *, user_id: Optional[IdLike]) -> List[CollectionRecord]:
    owner_id = require_user(user_id)
    with store_guard(session, "List collections"):
        rows = (
            session.query(Collection)
            .filter(Collection.owner_id == owner_id)
            .order_by(Collection.position.asc(), Collection.id.asc())
            .all()
        )
    return [collection_record(row) for row in rows]


def get_collection(session: Session, *, collection_id: IdLike, user_id: Optional[IdLike]) -> CollectionRecord:
    return collection_record(_load_collection(session, collection_id, require_user(user_id)))


def get_collection_by_slug(session: Session, *, slug: str, user_id: Optional[IdLike]) -> CollectionRecord:
    owner_id = require_user(user_id)
    with store_guard(session, "Load collection"):
        row = (
            session.query(Collection)
            .filter(Collection.owner_id == owner_id, Collection.slug == (slug or "").strip().lower())
            .first()
        )
    if row is None:
        raise NotFoundError("Collection not found.")
    return collection_record(row)


def update_collection(
    session: Session,
    *,
    collection_id: IdLike,
    user_id: Optional[IdLike],
    name: Optional[str] = None,
    color: Optional[str] = None,
) -> CollectionRecord:
    owner_id = require_user(user_id)
    row = _load_collection(session, collection_id, owner_id)
    with store_guard(session, "Update collection"):
        if name is not None:
            row.name = _require_text(name, "Collection name", MAX_NAME_LENGTH)
            row.slug = _unique_slug(session, owner_id, row.name, exclude_id=row.id)
        if color is not None:
            row.color = sanitize_color(color)
        session.commit()
        session.refresh(row)
    return collection_record(row)


def delete_collection(session: Session, *, collection_id: IdLike, user_id: Optional[IdLike]) -> None:
    row = _load_collection(session, collection_id, require_user(user_id))
    with store_guard(session, "Delete collection"):
        group_ids = [value for (value,) in session.query(Group.id).filter(Group.collection_id == row.id).all()]
        if group_ids:
            session.query(Item).filter(Item.group_id.in_(group_ids)).delete(synchronize_session=False)
            session.query(Group).filter(Group.id.in_(group_ids)).delete(synchronize_session=False)
        session.delete(row)
        session.commit()


# --------------------------------------------------------------------------- #
# Groups
# --------------------------------------------------------------------------- #


def create_group(
    session: Session,
    *,
    collection_id: IdLike,
    user_id: Optional[IdLike],
    name: str,
    color: Optional[str] = None,
) -> GroupRecord:
    parent = _load_collection(session, collection_id, require_user(user_id))
    safe_name = _require_text(name, "Group name", MAX_NAME_LENGTH)
    with store_guard(session, "Create group"):
        row = Group(
            collection_id=parent.id,
            name=safe_name,
            color=sanitize_color(color),
            position=_sibling_count(session, Group.collection_id, parent.id),
        )
        session.add(row)
        session.commit()
        session.refresh(row)
    return group_record(row)


def list_groups(session: Session, *, collection_id: IdLike, user_id: Optional[IdLike]) -> List[GroupRecord]:
    parent = _load_collection(session, collection_id, require_user(user_id))
    with store_guard(session, "List groups"):
        rows = (
            session.query(Group)
            .filter(Group.collection_id == parent.id)
            .order_by(Group.position.asc(), Group.id.asc())
            .all()
        )
    return [group_record(row) for row in rows]


def get_group(session: Session, *, group_id: IdLike, user_id: Optional[IdLike]) -> GroupRecord:
    return group_record(_load_group(session, group_id, require_user(user_id)))


def update_group(
    session: Session,
    *,
    group_id: IdLike,
    user_id: Optional[IdLike],
    name: Optional[str] = None,
    color: Optional[str] = None,
) -> GroupRecord:
    row = _load_group(session, group_id, require_user(user_id))
    with store_guard(session, "Update group"):
        if name is not None:
            row.name = _require_text(name, "Group name", MAX_NAME_LENGTH)
        if color is not None:
            row.color = sanitize_color(color)
        session.commit()
        session.refresh(row)
    return group_record(row)


def delete_group(session: Session, *, group_id: IdLike, user_id: Optional[IdLike]) -> None:
    row = _load_group(session, group_id, require_user(user_id))
    with store_guard(session, "Delete group"):
        session.query(Item).filter(Item.group_id == row.id).delete(synchronize_session=False)
        session.delete(row)
        session.commit()


# --------------------------------------------------------------------------- #
# Items
# --------------------------------------------------------------------------- #


def clip_title(title: Optional[str], url: str) -> str:
    """Trimmed title capped at ``MAX_TITLE_LENGTH``; falls back to the url's host name."""
    return (_trim(title) or default_title(url))[:MAX_TITLE_LENGTH]


def clip_description(description: Optional[str]) -> Optional[str]:
    safe_description = _trim(description)
    return safe_description[:MAX_DESCRIPTION_LENGTH] if safe_description else None


def _item_fields(
    url: Optional[str],
    title: Optional[str],
    description: Optional[str],
    favicon: Optional[str],
) -> Dict[str, Any]:
    safe_url = normalize_url(url)
    return {
        "url": safe_url,
        "title": clip_title(title, safe_url),
        "description": clip_description(description),
        "favicon": _trim(favicon),
    }


def create_item(
    session: Session,
    *,
    group_id: IdLike,
    user_id: Optional[IdLike],
    url: str,
    title: Optional[str] = None,
    description: Optional[str] = None,
    favicon: Optional[str] = None,
) -> ItemRecord:
    parent = _load_group(session, group_id, require_user(user_id))
    fields = _item_fields(url, title, description, favicon)
    with store_guard(session, "Create item"):
        row = Item(group_id=parent.id, position=_sibling_count(session, Item.group_id, parent.id), **fields)
        session.add(row)
        session.commit()
        session.refresh(row)
    return item_record(row)


def add_items_from_urls(
    session: Session,
    *,
    group_id: IdLike,
    user_id: Optional[IdLike],
    urls: Sequence[str],
) -> List[ItemRecord]:
    """Append one item per non-blank url, titled with the url's host name."""
    parent = _load_group(session, group_id, require_user(user_id))
    cleaned = [url.strip() for url in urls if isinstance(url, str) and url.strip()]
    if len(cleaned) > MAX_BULK_URLS:
        raise MalformedInputError(f"At most {MAX_BULK_URLS} urls can be added at once.")
    if not cleaned:
        return []
    rows: List[Item] = []
    with store_guard(session, "Add items"):
        next_position = _sibling_count(session, Item.group_id, parent.id)
        for offset, url in enumerate(cleaned):
            row = Item(group_id=parent.id, position=next_position + offset, **_item_fields(url, None, None, None))
            session.add(row)
            rows.append(row)
        session.commit()
        for row in rows:
            session.refresh(row)
    return [item_record(row) for row in rows]


def list_items(session: Session, *, group_id: IdLike, user_id: Optional[IdLike]) -> List[ItemRecord]:
    parent = _load_group(session, group_id, require_user(user_id))
    with store_guard(session, "List items"):
        rows = (
            session.query(Item)
            .filter(Item.group_id == parent.id)
            .order_by(Item.position.asc(), Item.id.asc())
            .all()
        )
    return [item_record(row) for row in rows]


def get_item(session: Session, *, item_id: IdLike, user_id: Optional[IdLike]) -> ItemRecord:
    return item_record(_load_item(session, item_id, require_user(user_id)))


def update_item(
    session: Session,
    *,
    item_id: IdLike,
    user_id: Optional[IdLike],
    url: Optional[str] = None,
    title: Optional[str] = None,
    description: Optional[str] = None,
    favicon: Optional[str] = None,
) -> ItemRecord:
    row = _load_item(session, item_id, require_user(user_id))
    with store_guard(session, "Update item"):
        if url is not None:
            row.url = normalize_url(url)
        if title is not None:
            row.title = clip_title(title, row.url)
        if description is not None:
            row.description = clip_description(description)
        if favicon is not None:
            row.favicon = _trim(favicon)
        session.commit()
        session.refresh(row)
    return item_record(row)


def delete_item(session: Session, *, item_id: IdLike, user_id: Optional[IdLike]) -> None:
    row = _load_item(session, item_id, require_user(user_id))
    with store_guard(session, "Delete item"):
        session.delete(row)
        session.commit()


# --------------------------------------------------------------------------- #
# Positions
# --------------------------------------------------------------------------- #

_KIND_MODELS = {"collection": Collection, "group": Group, "item": Item}
_KIND_RECORDS = {"collection": collection_record, "group": group_record, "item": item_record}


def _sibling_rows(session: Session, kind: str, parent_id: IdLike, user_id: uuid.UUID) -> List[Any]:
    if kind == "collection":
        if coerce_id(parent_id, "Owner") != user_id:
            raise UnauthorizedError("Collections can only be reordered by their owner.")
        model, column, parent_key = Collection, Collection.owner_id, user_id
    elif kind == "group":
        model, column, parent_key = Group, Group.collection_id, _load_collection(session, parent_id, user_id).id
    else:
        model, column, parent_key = Item, Item.group_id, _load_group(session, parent_id, user_id).id
    with store_guard(session, f"List {kind}s"):
        return session.query(model).filter(column == parent_key).order_by(model.position.asc(), model.id.asc()).all()


def list_siblings(
    session: Session,
    *,
    kind: str,
    parent_id: IdLike,
    user_id: Optional[IdLike],
) -> List[EntityRecord]:
    """Children of ``parent_id`` ordered by position; a collection's parent is its owner."""
    canonical = normalize_kind(kind)
    rows = _sibling_rows(session, canonical, parent_id, require_user(user_id))
    to_record = _KIND_RECORDS[canonical]
    return [to_record(row) for row in rows]


def set_position(
    session: Session,
    *,
    kind: str,
    entity_id: IdLike,
    position: int,
    user_id: Optional[IdLike],
) -> EntityRecord:
    """Single-row position write."""
    canonical = normalize_kind(kind)
    owner_id = require_user(user_id)
    if canonical == "collection":
        row = _load_collection(session, entity_id, owner_id)
    elif canonical == "group":
        row = _load_group(session, entity_id, owner_id)
    else:
        row = _load_item(session, entity_id, owner_id)
    with store_guard(session, f"Update {canonical} position"):
        row.position = int(position)
        session.commit()
    return _KIND_RECORDS[canonical](row)


def apply_position_updates(
    session: Session,
    *,
    kind: str,
    parent_id: IdLike,
    updates: Sequence[PositionUpdate],
    user_id: Optional[IdLike],
    atomic: Optional[bool] = None,
) -> int:
    """Persist ``updates`` for children of ``parent_id`` in ascending position order.

    ``atomic`` writes every row in one transaction; otherwise each row is
    committed on its own and a failure leaves the earlier rows in place.
    Defaults to ``BOOKMARKS_REORDER_ATOMIC``.
    """
    canonical = normalize_kind(kind)
    owner_id = require_user(user_id)
    rows = {row.id: row for row in _sibling_rows(session, canonical, parent_id, owner_id)}
    ordered = sorted(updates, key=lambda update: update.position)
    targets = []
    for update in ordered:
        row = rows.get(coerce_id(update.id, canonical.capitalize()))
        if row is None:
            raise MalformedInputError(f"{canonical.capitalize()} {update.id} is not a child of {parent_id}.")
        targets.append((row, update.position))
    if not targets:
        return 0
    use_transaction = env_bool("BOOKMARKS_REORDER_ATOMIC", True) if atomic is None else atomic
    if use_transaction:
        with store_guard(session, f"Reorder {canonical}s"):
            for row, position in targets:
                row.position = position
            session.commit()
    else:
        for row, position in targets:
            with store_guard(session, f"Update {canonical} position"):
                row.position = position
                session.commit()
    return len(targets)


__all__ = [
    "CollectionRecord",
    "ENTITY_KINDS",
    "EntityRecord",
    "GroupRecord",
    "ItemRecord",
    "add_items_from_urls",
    "apply_position_updates",
    "clip_description",
    "clip_title",
    "coerce_id",
    "collection_record",
    "create_collection",
    "create_group",
    "create_item",
    "default_title",
    "delete_collection",
    "delete_group",
    "delete_item",
    "get_collection",
    "get_collection_by_slug",
    "get_group",
    "get_item",
    "group_record",
    "item_record",
    "list_collections",
    "list_groups",
    "list_items",
    "list_siblings",
    "normalize_kind",
    "normalize_url",
    "require_user",
    "sanitize_color",
    "set_position",
    "slugify",
    "store_guard",
    "update_collection",
    "update_group",
    "update_item",
]
