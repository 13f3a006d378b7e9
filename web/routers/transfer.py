"""Backup endpoints: download the whole hierarchy, or restore it from a backup."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from database import get_db
from schemas.api.transfer import ImportCountsSchema, ImportResponse
from services import transfer_service
from services.bookmark_errors import BookmarkServiceError
from services.web_utils import raise_http_error
from web.deps import get_current_user
from web.middleware.auth_context import AuthenticatedUser

router = APIRouter(prefix="/bookmarks", tags=["Bookmark Backup"])

EXPORT_FILENAME = "bookmarks-backup.json"


@router.get("/export", summary="Download every collection, group and item as JSON")
def export_bookmarks(
    db: Session = Depends(get_db),
    user: AuthenticatedUser = Depends(get_current_user),
) -> JSONResponse:
    try:
        document = transfer_service.export_hierarchy(db, user_id=user.id)
    except BookmarkServiceError as exc:
        raise_http_error(exc)
    return JSONResponse(
        content=document,
        headers={"Content-Disposition": f'attachment; filename="{EXPORT_FILENAME}"'},
    )


@router.post("/import", response_model=ImportResponse, summary="Replace all bookmarks with a backup document")
def import_bookmarks(
    payload: Any = Body(...),
    db: Session = Depends(get_db),
    user: AuthenticatedUser = Depends(get_current_user),
) -> ImportResponse:
    try:
        counts = transfer_service.import_hierarchy(db, user_id=user.id, document=payload)
    except BookmarkServiceError as exc:
        raise_http_error(exc)
    return ImportResponse(message="Data restored successfully", counts=ImportCountsSchema(**counts.as_dict()))


__all__ = ["router"]
