"""API endpoints for share link functionality."""

from __future__ import annotations

from typing import Literal

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session

from database import get_db
from schemas.api.share import (
    ShareLinkCreateRequest,
    ShareLinkCreateResponse,
    ShareLinkListResponse,
    ShareLinkResponse,
    SharedContentResponse,
)
from services import share_link_service
from services.bookmark_errors import BookmarkServiceError
from services.share_link_service import ShareLinkRecord, SharedSubtree
from services.web_utils import raise_http_error
from web.deps import get_current_user
from web.middleware.auth_context import AuthenticatedUser
from web.routers.bookmarks import serialize_collection, serialize_group, serialize_item

router = APIRouter(tags=["Share"])

ResourceTypeParam = Literal["collection", "group", "item", "board", "folder", "link"]


def _serialize_share(record: ShareLinkRecord) -> ShareLinkResponse:
    return ShareLinkResponse(
        token=record.token,
        resourceType=record.resource_type,
        resourceId=str(record.resource_id),
        viewCount=record.view_count or 0,
        expiresAt=record.expires_at.isoformat() if record.expires_at else None,
        createdAt=record.created_at.isoformat() if record.created_at else None,
    )


def _serialize_subtree(subtree: SharedSubtree) -> SharedContentResponse:
    payload = SharedContentResponse(
        resourceType=subtree.kind,
        sharedAt=subtree.share.created_at.isoformat() if subtree.share.created_at else None,
        viewCount=subtree.share.view_count or 0,
        groups=[serialize_group(group) for group in subtree.groups],
        items=[serialize_item(item) for item in subtree.items],
    )
    if subtree.kind == "collection":
        payload.collection = serialize_collection(subtree.resource)
    elif subtree.kind == "group":
        payload.group = serialize_group(subtree.resource)
    else:
        payload.item = serialize_item(subtree.resource)
    return payload


# Authenticated endpoints
@router.post(
    "/share",
    response_model=ShareLinkCreateResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a share link",
)
def create_share_link(
    payload: ShareLinkCreateRequest,
    db: Session = Depends(get_db),
    user: AuthenticatedUser = Depends(get_current_user),
) -> ShareLinkCreateResponse:
    try:
        grant = share_link_service.issue_share_token(
            db,
            resource_type=payload.resourceType,
            resource_id=payload.resourceId,
            issuer_id=user.id,
            expires_in_days=payload.expiresInDays,
        )
    except BookmarkServiceError as exc:
        raise_http_error(exc)
    return ShareLinkCreateResponse(
        token=grant.token,
        url=grant.url,
        resourceType=grant.resource_type,
        resourceId=str(grant.resource_id),
        expiresAt=grant.expires_at.isoformat() if grant.expires_at else None,
    )


@router.get("/share", response_model=ShareLinkListResponse, summary="List share links for a resource")
def list_share_links(
    resource_type: ResourceTypeParam = Query(..., alias="resourceType"),
    resource_id: str = Query(..., alias="resourceId"),
    db: Session = Depends(get_db),
    user: AuthenticatedUser = Depends(get_current_user),
) -> ShareLinkListResponse:
    try:
        records = share_link_service.list_share_links(
            db,
            resource_type=resource_type,
            resource_id=resource_id,
            user_id=user.id,
        )
    except BookmarkServiceError as exc:
        raise_http_error(exc)
    return ShareLinkListResponse(shares=[_serialize_share(record) for record in records])


@router.delete("/share/{token}", status_code=status.HTTP_204_NO_CONTENT, summary="Revoke a share link")
def delete_share_link(
    token: str,
    db: Session = Depends(get_db),
    user: AuthenticatedUser = Depends(get_current_user),
) -> Response:
    try:
        share_link_service.revoke_share_link(db, token=token, user_id=user.id)
    except BookmarkServiceError as exc:
        raise_http_error(exc)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# Public endpoint (no auth required)
@router.get(
    "/public/shared/{resource_type}/{token}",
    response_model=SharedContentResponse,
    summary="Open a shared collection, group or item",
)
def get_shared_content(
    resource_type: ResourceTypeParam,
    token: str,
    db: Session = Depends(get_db),
) -> SharedContentResponse:
    """Read-only view of a shared resource. Anyone holding the token may call this."""
    try:
        subtree = share_link_service.resolve_share_token(db, resource_type=resource_type, token=token)
    except BookmarkServiceError as exc:
        raise_http_error(exc)
    return _serialize_subtree(subtree)


__all__ = ["router"]
