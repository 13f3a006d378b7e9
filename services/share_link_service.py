"""Service layer for share link operations.

A share link is a capability: anyone holding the token can read the shared
collection, group or item (and everything below it) without signing in.
Tokens are not removed when their target is deleted; resolving such a token
reports ``NotFound``.
"""

import secrets
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, List, Optional, Union

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from core.env import env_int, env_str
from core.logging import get_logger
from models.bookmark import Collection, Group, Item
from models.share_link import ShareLink
from services import hierarchy_service
from services.bookmark_errors import ExpiredError, MalformedInputError, NotFoundError, StoreFailureError
from services.bookmark_metrics import observe_share
from services.hierarchy_service import CollectionRecord, GroupRecord, ItemRecord

logger = get_logger(__name__)

DEFAULT_SHARE_BASE_URL = "http://localhost:3000"
MAX_TOKEN_ATTEMPTS = 3
MAX_EXPIRY_DAYS = 365


@dataclass(frozen=True)
class ShareLinkRecord:
    id: uuid.UUID
    token: str
    resource_type: str
    resource_id: uuid.UUID
    created_by: uuid.UUID
    expires_at: Optional[datetime]
    view_count: int
    created_at: Optional[datetime]


@dataclass(frozen=True)
class ShareGrant:
    token: str
    url: str
    resource_type: str
    resource_id: uuid.UUID
    expires_at: Optional[datetime]


@dataclass(frozen=True)
class SharedSubtree:
    """Read-only view of a shared resource; ``kind`` tells which root field is set."""

    kind: str
    share: ShareLinkRecord
    resource: Union[CollectionRecord, GroupRecord, ItemRecord]
    groups: List[GroupRecord] = field(default_factory=list)
    items: List[ItemRecord] = field(default_factory=list)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes even for timezone-aware columns.
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def _to_record(row: ShareLink) -> ShareLinkRecord:
    return ShareLinkRecord(
        id=row.id,
        token=row.token,
        resource_type=row.resource_type,
        resource_id=row.resource_id,
        created_by=row.created_by,
        expires_at=_as_utc(row.expires_at),
        view_count=int(row.view_count or 0),
        created_at=_as_utc(row.created_at),
    )


def _generate_token() -> str:
    """Generate a cryptographically secure random token."""
    nbytes = env_int("SHARE_TOKEN_BYTES", 32, minimum=16, maximum=48)
    return secrets.token_urlsafe(nbytes)


def build_share_url(resource_type: str, token: str, *, base_url: Optional[str] = None) -> str:
    base = (base_url or env_str("SHARE_BASE_URL", DEFAULT_SHARE_BASE_URL) or DEFAULT_SHARE_BASE_URL).rstrip("/")
    return f"{base}/shared/{resource_type}/{token}"


def _verify_resource(session: Session, kind: str, resource_id: Any, user_id: Any) -> uuid.UUID:
    if kind == "collection":
        return hierarchy_service.get_collection(session, collection_id=resource_id, user_id=user_id).id
    if kind == "group":
        return hierarchy_service.get_group(session, group_id=resource_id, user_id=user_id).id
    return hierarchy_service.get_item(session, item_id=resource_id, user_id=user_id).id


def issue_share_token(
    session: Session,
    *,
    resource_type: str,
    resource_id: Any,
    issuer_id: Any,
    expires_in_days: Optional[int] = None,
    base_url: Optional[str] = None,
) -> ShareGrant:
    """Create a share link for a resource the issuer owns.

    Args:
        session: Database session
        resource_type: ``collection``, ``group`` or ``item`` (``board``/``folder``/``link`` accepted)
        resource_id: ID of the resource being shared
        issuer_id: ID of the user creating the share link
        expires_in_days: Days until the link stops resolving (None = never expires)
        base_url: Overrides ``SHARE_BASE_URL`` when building the returned url

    Returns:
        ShareGrant: the token and the url embedding it
    """
    kind = hierarchy_service.normalize_kind(resource_type)
    creator_id = hierarchy_service.require_user(issuer_id)
    target_id = _verify_resource(session, kind, resource_id, creator_id)

    expires_at = None
    if expires_in_days is not None:
        try:
            days = int(expires_in_days)
        except (TypeError, ValueError) as exc:
            raise MalformedInputError("expires_in_days must be a whole number of days.") from exc
        if isinstance(expires_in_days, bool) or not 1 <= days <= MAX_EXPIRY_DAYS:
            raise MalformedInputError(f"expires_in_days must be between 1 and {MAX_EXPIRY_DAYS}.")
        expires_at = _now() + timedelta(days=days)

    for _attempt in range(MAX_TOKEN_ATTEMPTS):
        share_link = ShareLink(
            token=_generate_token(),
            resource_type=kind,
            resource_id=target_id,
            created_by=creator_id,
            expires_at=expires_at,
        )
        try:
            session.add(share_link)
            session.commit()
        except IntegrityError:
            session.rollback()
            logger.info("Share token collision for %s %s; retrying.", kind, target_id)
            continue
        except SQLAlchemyError as exc:
            session.rollback()
            observe_share("issue", "error")
            raise StoreFailureError("Creating the share link failed.") from exc
        session.refresh(share_link)
        observe_share("issue", "ok")
        logger.info("Issued share link for %s %s by user=%s", kind, target_id, creator_id)
        return ShareGrant(
            token=share_link.token,
            url=build_share_url(kind, share_link.token, base_url=base_url),
            resource_type=kind,
            resource_id=target_id,
            expires_at=_as_utc(share_link.expires_at),
        )
    observe_share("issue", "collision")
    raise StoreFailureError("Failed to create a unique share link. Please retry.")


def _load_subtree(session: Session, kind: str, share: ShareLinkRecord) -> SharedSubtree:
    if kind == "collection":
        row = session.get(Collection, share.resource_id)
        if row is None:
            raise NotFoundError("Shared collection no longer exists.")
        groups = (
            session.query(Group)
            .filter(Group.collection_id == row.id)
            .order_by(Group.position.asc(), Group.id.asc())
            .all()
        )
        items: List[Item] = []
        if groups:
            rank = {group.id: index for index, group in enumerate(groups)}
            items = session.query(Item).filter(Item.group_id.in_(list(rank))).all()
            items.sort(key=lambda item: (rank[item.group_id], item.position, str(item.id)))
        return SharedSubtree(
            kind=kind,
            share=share,
            resource=hierarchy_service.collection_record(row),
            groups=[hierarchy_service.group_record(group) for group in groups],
            items=[hierarchy_service.item_record(item) for item in items],
        )
    if kind == "group":
        row = session.get(Group, share.resource_id)
        if row is None:
            raise NotFoundError("Shared group no longer exists.")
        items = (
            session.query(Item)
            .filter(Item.group_id == row.id)
            .order_by(Item.position.asc(), Item.id.asc())
            .all()
        )
        return SharedSubtree(
            kind=kind,
            share=share,
            resource=hierarchy_service.group_record(row),
            items=[hierarchy_service.item_record(item) for item in items],
        )
    row = session.get(Item, share.resource_id)
    if row is None:
        raise NotFoundError("Shared item no longer exists.")
    return SharedSubtree(kind=kind, share=share, resource=hierarchy_service.item_record(row))


def _increment_view_count(session: Session, share_id: uuid.UUID) -> None:
    try:
        session.query(ShareLink).filter(ShareLink.id == share_id).update(
            {ShareLink.view_count: ShareLink.view_count + 1},
            synchronize_session=False,
        )
        session.commit()
    except SQLAlchemyError:  # pragma: no cover - best effort
        session.rollback()
        logger.warning("Failed to record a view for share=%s", share_id)


def resolve_share_token(session: Session, *, resource_type: str, token: str) -> SharedSubtree:
    """Load the subtree behind ``token``. No ownership check: holding the token is the permission."""
    kind = hierarchy_service.normalize_kind(resource_type)
    safe_token = (token or "").strip()
    if not safe_token:
        raise NotFoundError("Share link not found.")
    try:
        row = (
            session.query(ShareLink)
            .filter(ShareLink.resource_type == kind, ShareLink.token == safe_token)
            .first()
        )
    except SQLAlchemyError as exc:
        session.rollback()
        raise StoreFailureError("Looking up the share link failed.") from exc
    if row is None:
        observe_share("resolve", "not_found")
        raise NotFoundError("Share link not found.")

    share = _to_record(row)
    if share.expires_at is not None and share.expires_at < _now():
        observe_share("resolve", "expired")
        raise ExpiredError("Share link has expired.")

    try:
        with hierarchy_service.store_guard(session, "Load shared resource"):
            subtree = _load_subtree(session, kind, share)
    except NotFoundError:
        observe_share("resolve", "dangling")
        logger.info("Share token for deleted %s %s was resolved.", kind, share.resource_id)
        raise
    _increment_view_count(session, share.id)
    observe_share("resolve", "ok")
    return subtree


def list_share_links(
    session: Session,
    *,
    resource_type: str,
    resource_id: Any,
    user_id: Any,
) -> List[ShareLinkRecord]:
    """Share links the user created for one resource, newest first."""
    kind = hierarchy_service.normalize_kind(resource_type)
    creator_id = hierarchy_service.require_user(user_id)
    target_id = hierarchy_service.coerce_id(resource_id, kind.capitalize())
    with hierarchy_service.store_guard(session, "List share links"):
        rows = (
            session.query(ShareLink)
            .filter(
                ShareLink.resource_type == kind,
                ShareLink.resource_id == target_id,
                ShareLink.created_by == creator_id,
            )
            .order_by(ShareLink.created_at.desc())
            .all()
        )
    return [_to_record(row) for row in rows]


def revoke_share_link(session: Session, *, token: str, user_id: Any) -> None:
    """Delete a share link created by ``user_id``."""
    creator_id = hierarchy_service.require_user(user_id)
    with hierarchy_service.store_guard(session, "Load share link"):
        share_link = (
            session.query(ShareLink)
            .filter(ShareLink.token == (token or "").strip(), ShareLink.created_by == creator_id)
            .first()
        )
    if share_link is None:
        raise NotFoundError("Share link not found.")
    with hierarchy_service.store_guard(session, "Revoke share link"):
        session.delete(share_link)
        session.commit()
    observe_share("revoke", "ok")


__all__ = [
    "ShareGrant",
    "ShareLinkRecord",
    "SharedSubtree",
    "build_share_url",
    "issue_share_token",
    "list_share_links",
    "resolve_share_token",
    "revoke_share_link",
]
