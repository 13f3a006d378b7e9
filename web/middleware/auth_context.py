"""Attach authenticated user information from Authorization headers."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Optional

from fastapi import Request
from fastapi.responses import JSONResponse

from core.logging import get_logger
from services.auth_tokens import AuthTokenError, decode_token

logger = get_logger(__name__)

_BYPASS_PREFIXES = (
    "/api/v1/public",
    "/docs",
    "/openapi",
    "/healthz",
    "/metrics",
)


@dataclass(frozen=True)
class AuthenticatedUser:
    id: uuid.UUID
    email: Optional[str]


def _should_bypass(path: str) -> bool:
    path = path or ""
    return any(path.startswith(prefix) for prefix in _BYPASS_PREFIXES)


def _extract_bearer(header_value: Optional[str]) -> Optional[str]:
    if not header_value:
        return None
    value = header_value.strip()
    if not value:
        return None
    if value.lower().startswith("bearer "):
        token = value[7:].strip()
        return token or None
    return None


def _unauthenticated(code: str, message: str) -> JSONResponse:
    return JSONResponse(status_code=401, content={"detail": {"code": code, "message": message}})


async def auth_context_middleware(request: Request, call_next):
    path = request.url.path if request.url else ""
    if request.method == "OPTIONS" or _should_bypass(path):
        return await call_next(request)

    token = _extract_bearer(request.headers.get("authorization"))
    if not token:
        return await call_next(request)

    try:
        payload = decode_token(token, scope="access")
    except AuthTokenError as exc:
        logger.info("Rejected bearer token on %s: %s", path, exc.code)
        return _unauthenticated(exc.code, str(exc))

    try:
        user_id = uuid.UUID(str(payload.get("sub")))
    except (ValueError, TypeError):
        return _unauthenticated("auth.token_invalid", "Access token has no valid subject.")

    request.state.user = AuthenticatedUser(id=user_id, email=payload.get("email"))
    request.state.user_claims = payload
    return await call_next(request)


__all__ = ["AuthenticatedUser", "auth_context_middleware"]
