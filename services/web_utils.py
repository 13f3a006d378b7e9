"""Shared helpers for FastAPI routers and other web modules."""

from __future__ import annotations

from typing import Dict, NoReturn, Type

from fastapi import HTTPException, status

from services.bookmark_errors import (
    BookmarkServiceError,
    DanglingReferenceError,
    ExpiredError,
    MalformedInputError,
    NotFoundError,
    StoreFailureError,
    UnauthenticatedError,
    UnauthorizedError,
)

_STATUS_BY_ERROR: Dict[Type[BookmarkServiceError], int] = {
    UnauthenticatedError: status.HTTP_401_UNAUTHORIZED,
    UnauthorizedError: status.HTTP_403_FORBIDDEN,
    MalformedInputError: status.HTTP_400_BAD_REQUEST,
    DanglingReferenceError: 422,
    NotFoundError: status.HTTP_404_NOT_FOUND,
    ExpiredError: status.HTTP_410_GONE,
    StoreFailureError: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def http_status_for(exc: BookmarkServiceError) -> int:
    for error_type in type(exc).__mro__:
        code = _STATUS_BY_ERROR.get(error_type)
        if code is not None:
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def raise_http_error(exc: BookmarkServiceError) -> NoReturn:
    """Translate a service error into an ``HTTPException`` with ``{code, message}`` detail."""

    raise HTTPException(status_code=http_status_for(exc), detail=exc.to_detail()) from exc


__all__ = ["http_status_for", "raise_http_error"]
