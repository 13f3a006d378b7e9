"""Error taxonomy shared by the bookmark services."""

from __future__ import annotations


class BookmarkServiceError(RuntimeError):
    """Base class; ``code`` is stable and machine-readable, the message is for humans."""

    code = "bookmarks.error"

    def __init__(self, message: str, *, code: str | None = None):
        super().__init__(message)
        if code:
            self.code = code

    def to_detail(self) -> dict:
        return {"code": self.code, "message": str(self)}


class UnauthenticatedError(BookmarkServiceError):
    """No valid caller identity could be resolved."""

    code = "bookmarks.unauthenticated"


class UnauthorizedError(BookmarkServiceError):
    """Caller does not own the entity's ownership chain."""

    code = "bookmarks.unauthorized"


class MalformedInputError(BookmarkServiceError):
    code = "bookmarks.malformed_input"


class DanglingReferenceError(BookmarkServiceError):
    """An imported entity points at a parent that is not part of the same batch."""

    code = "bookmarks.dangling_reference"


class NotFoundError(BookmarkServiceError):
    code = "bookmarks.not_found"


class ExpiredError(BookmarkServiceError):
    code = "bookmarks.expired"


class StoreFailureError(BookmarkServiceError):
    """Wraps lower-level database errors."""

    code = "bookmarks.store_failure"


__all__ = [
    "BookmarkServiceError",
    "DanglingReferenceError",
    "ExpiredError",
    "MalformedInputError",
    "NotFoundError",
    "StoreFailureError",
    "UnauthenticatedError",
    "UnauthorizedError",
]
