"""FastAPI router for collections, groups, items and sibling reordering."""

from __future__ import annotations

from typing import Literal

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from database import get_db
from schemas.api.bookmarks import (
    CollectionCreateRequest,
    CollectionListResponse,
    CollectionResponse,
    CollectionUpdateRequest,
    GroupCreateRequest,
    GroupListResponse,
    GroupResponse,
    GroupUpdateRequest,
    ItemBulkCreateRequest,
    ItemCreateRequest,
    ItemListResponse,
    ItemResponse,
    ItemUpdateRequest,
    ReorderRequest,
    ReorderResponse,
)
from services import hierarchy_service, reorder_service
from services.bookmark_errors import BookmarkServiceError, MalformedInputError
from services.hierarchy_service import CollectionRecord, GroupRecord, ItemRecord
from services.web_utils import raise_http_error
from web.deps import get_current_user
from web.middleware.auth_context import AuthenticatedUser

router = APIRouter(prefix="/bookmarks", tags=["Bookmarks"])

_KIND_BY_PATH = {"collections": "collection", "groups": "group", "items": "item"}


def _iso(value) -> str | None:
    return value.isoformat() if value else None


def serialize_collection(record: CollectionRecord) -> CollectionResponse:
    return CollectionResponse(
        id=str(record.id),
        ownerId=str(record.owner_id),
        name=record.name,
        slug=record.slug,
        color=record.color,
        position=record.position,
        createdAt=_iso(record.created_at),
        updatedAt=_iso(record.updated_at),
    )


def serialize_group(record: GroupRecord) -> GroupResponse:
    return GroupResponse(
        id=str(record.id),
        collectionId=str(record.collection_id),
        name=record.name,
        color=record.color,
        position=record.position,
        createdAt=_iso(record.created_at),
        updatedAt=_iso(record.updated_at),
    )


def serialize_item(record: ItemRecord) -> ItemResponse:
    return ItemResponse(
        id=str(record.id),
        groupId=str(record.group_id),
        title=record.title,
        url=record.url,
        description=record.description,
        favicon=record.favicon,
        position=record.position,
        createdAt=_iso(record.created_at),
        updatedAt=_iso(record.updated_at),
    )


# Collections ---------------------------------------------------------------


@router.get("/collections", response_model=CollectionListResponse)
def list_collections(
    db: Session = Depends(get_db),
    user: AuthenticatedUser = Depends(get_current_user),
) -> CollectionListResponse:
    try:
        records = hierarchy_service.list_collections(db, user_id=user.id)
    except BookmarkServiceError as exc:
        raise_http_error(exc)
    return CollectionListResponse(collections=[serialize_collection(record) for record in records])


@router.post("/collections", response_model=CollectionResponse, status_code=status.HTTP_201_CREATED)
def create_collection(
    payload: CollectionCreateRequest,
    db: Session = Depends(get_db),
    user: AuthenticatedUser = Depends(get_current_user),
) -> CollectionResponse:
    try:
        record = hierarchy_service.create_collection(db, user_id=user.id, name=payload.name, color=payload.color)
    except BookmarkServiceError as exc:
        raise_http_error(exc)
    return serialize_collection(record)


@router.get("/collections/by-slug/{slug}", response_model=CollectionResponse)
def read_collection_by_slug(
    slug: str,
    db: Session = Depends(get_db),
    user: AuthenticatedUser = Depends(get_current_user),
) -> CollectionResponse:
    try:
        record = hierarchy_service.get_collection_by_slug(db, slug=slug, user_id=user.id)
    except BookmarkServiceError as exc:
        raise_http_error(exc)
    return serialize_collection(record)


@router.get("/collections/{collection_id}", response_model=CollectionResponse)
def read_collection(
    collection_id: str,
    db: Session = Depends(get_db),
    user: AuthenticatedUser = Depends(get_current_user),
) -> CollectionResponse:
    try:
        record = hierarchy_service.get_collection(db, collection_id=collection_id, user_id=user.id)
    except BookmarkServiceError as exc:
        raise_http_error(exc)
    return serialize_collection(record)


@router.patch("/collections/{collection_id}", response_model=CollectionResponse)
def update_collection(
    collection_id: str,
    payload: CollectionUpdateRequest,
    db: Session = Depends(get_db),
    user: AuthenticatedUser = Depends(get_current_user),
) -> CollectionResponse:
    try:
        record = hierarchy_service.update_collection(
            db,
            collection_id=collection_id,
            user_id=user.id,
            name=payload.name,
            color=payload.color,
        )
    except BookmarkServiceError as exc:
        raise_http_error(exc)
    return serialize_collection(record)


@router.delete("/collections/{collection_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_collection(
    collection_id: str,
    db: Session = Depends(get_db),
    user: AuthenticatedUser = Depends(get_current_user),
) -> Response:
    try:
        hierarchy_service.delete_collection(db, collection_id=collection_id, user_id=user.id)
    except BookmarkServiceError as exc:
        raise_http_error(exc)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# Groups --------------------------------------------------------------------


@router.get("/collections/{collection_id}/groups", response_model=GroupListResponse)
def list_groups(
    collection_id: str,
    db: Session = Depends(get_db),
    user: AuthenticatedUser = Depends(get_current_user),
) -> GroupListResponse:
    try:
        records = hierarchy_service.list_groups(db, collection_id=collection_id, user_id=user.id)
    except BookmarkServiceError as exc:
        raise_http_error(exc)
    return GroupListResponse(groups=[serialize_group(record) for record in records])


@router.post(
    "/collections/{collection_id}/groups",
    response_model=GroupResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_group(
    collection_id: str,
    payload: GroupCreateRequest,
    db: Session = Depends(get_db),
    user: AuthenticatedUser = Depends(get_current_user),
) -> GroupResponse:
    try:
        record = hierarchy_service.create_group(
            db,
            collection_id=collection_id,
            user_id=user.id,
            name=payload.name,
            color=payload.color,
        )
    except BookmarkServiceError as exc:
        raise_http_error(exc)
    return serialize_group(record)


@router.get("/groups/{group_id}", response_model=GroupResponse)
def read_group(
    group_id: str,
    db: Session = Depends(get_db),
    user: AuthenticatedUser = Depends(get_current_user),
) -> GroupResponse:
    try:
        record = hierarchy_service.get_group(db, group_id=group_id, user_id=user.id)
    except BookmarkServiceError as exc:
        raise_http_error(exc)
    return serialize_group(record)


@router.patch("/groups/{group_id}", response_model=GroupResponse)
def update_group(
    group_id: str,
    payload: GroupUpdateRequest,
    db: Session = Depends(get_db),
    user: AuthenticatedUser = Depends(get_current_user),
) -> GroupResponse:
    try:
        record = hierarchy_service.update_group(
            db,
            group_id=group_id,
            user_id=user.id,
            name=payload.name,
            color=payload.color,
        )
    except BookmarkServiceError as exc:
        raise_http_error(exc)
    return serialize_group(record)


@router.delete("/groups/{group_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_group(
    group_id: str,
    db: Session = Depends(get_db),
    user: AuthenticatedUser = Depends(get_current_user),
) -> Response:
    try:
        hierarchy_service.delete_group(db, group_id=group_id, user_id=user.id)
    except BookmarkServiceError as exc:
        raise_http_error(exc)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# Items ---------------------------------------------------------------------


@router.get("/groups/{group_id}/items", response_model=ItemListResponse)
def list_items(
    group_id: str,
    db: Session = Depends(get_db),
    user: AuthenticatedUser = Depends(get_current_user),
) -> ItemListResponse:
    try:
        records = hierarchy_service.list_items(db, group_id=group_id, user_id=user.id)
    except BookmarkServiceError as exc:
        raise_http_error(exc)
    return ItemListResponse(items=[serialize_item(record) for record in records])


@router.post("/groups/{group_id}/items", response_model=ItemResponse, status_code=status.HTTP_201_CREATED)
def create_item(
    group_id: str,
    payload: ItemCreateRequest,
    db: Session = Depends(get_db),
    user: AuthenticatedUser = Depends(get_current_user),
) -> ItemResponse:
    try:
        record = hierarchy_service.create_item(
            db,
            group_id=group_id,
            user_id=user.id,
            url=payload.url,
            title=payload.title,
            description=payload.description,
            favicon=payload.favicon,
        )
    except BookmarkServiceError as exc:
        raise_http_error(exc)
    return serialize_item(record)


@router.post("/groups/{group_id}/items/bulk", response_model=ItemListResponse, status_code=status.HTTP_201_CREATED)
def create_items_from_urls(
    group_id: str,
    payload: ItemBulkCreateRequest,
    db: Session = Depends(get_db),
    user: AuthenticatedUser = Depends(get_current_user),
) -> ItemListResponse:
    try:
        records = hierarchy_service.add_items_from_urls(
            db,
            group_id=group_id,
            user_id=user.id,
            urls=payload.all_urls(),
        )
    except BookmarkServiceError as exc:
        raise_http_error(exc)
    return ItemListResponse(items=[serialize_item(record) for record in records])


@router.get("/items/{item_id}", response_model=ItemResponse)
def read_item(
    item_id: str,
    db: Session = Depends(get_db),
    user: AuthenticatedUser = Depends(get_current_user),
) -> ItemResponse:
    try:
        record = hierarchy_service.get_item(db, item_id=item_id, user_id=user.id)
    except BookmarkServiceError as exc:
        raise_http_error(exc)
    return serialize_item(record)


@router.patch("/items/{item_id}", response_model=ItemResponse)
def update_item(
    item_id: str,
    payload: ItemUpdateRequest,
    db: Session = Depends(get_db),
    user: AuthenticatedUser = Depends(get_current_user),
) -> ItemResponse:
    try:
        record = hierarchy_service.update_item(
            db,
            item_id=item_id,
            user_id=user.id,
            url=payload.url,
            title=payload.title,
            description=payload.description,
            favicon=payload.favicon,
        )
    except BookmarkServiceError as exc:
        raise_http_error(exc)
    return serialize_item(record)


@router.delete("/items/{item_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_item(
    item_id: str,
    db: Session = Depends(get_db),
    user: AuthenticatedUser = Depends(get_current_user),
) -> Response:
    try:
        hierarchy_service.delete_item(db, item_id=item_id, user_id=user.id)
    except BookmarkServiceError as exc:
        raise_http_error(exc)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# Ordering ------------------------------------------------------------------


@router.put("/order/{kind}", response_model=ReorderResponse)
def reorder_siblings(
    kind: Literal["collections", "groups", "items"],
    payload: ReorderRequest,
    db: Session = Depends(get_db),
    user: AuthenticatedUser = Depends(get_current_user),
) -> ReorderResponse:
    entity_kind = _KIND_BY_PATH[kind]
    parent_id = str(user.id) if entity_kind == "collection" else payload.parentId
    try:
        if not parent_id:
            raise MalformedInputError(f"parentId is required when reordering {kind}.")
        result = reorder_service.reorder_siblings(
            db,
            kind=entity_kind,
            parent_id=parent_id,
            ordered_ids=payload.orderedIds,
            user_id=user.id,
        )
    except BookmarkServiceError as exc:
        raise_http_error(exc)
    return ReorderResponse(
        kind=result.kind,
        parentId=str(result.parent_id),
        orderedIds=[str(value) for value in result.ordered_ids],
        updated=result.updated,
    )


__all__ = ["router", "serialize_collection", "serialize_group", "serialize_item"]
