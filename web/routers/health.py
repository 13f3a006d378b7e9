"""Health endpoints for the bookmark store."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

from fastapi import APIRouter
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

import database

router = APIRouter(prefix="/health", tags=["Health"])


@dataclass(frozen=True)
class DatabaseStatus:
    ok: bool
    dialect: str
    latency_ms: Optional[float] = None
    error: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"ok": self.ok, "dialect": self.dialect}
        if self.latency_ms is not None:
            payload["latencyMs"] = self.latency_ms
        if self.error:
            payload["error"] = self.error
        return payload


def ping_database() -> DatabaseStatus:
    """Run ``SELECT 1`` against the bookmark store and time it."""
    dialect = database.engine.dialect.name
    started = time.perf_counter()
    db = database.SessionLocal()
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        return DatabaseStatus(ok=False, dialect=dialect, error=str(exc))
    finally:
        db.close()
    return DatabaseStatus(ok=True, dialect=dialect, latency_ms=round((time.perf_counter() - started) * 1000, 2))


@router.get("/status", summary="Bookmark store status")
def read_service_status() -> Dict[str, Any]:
    status = ping_database()
    return {"status": "ok" if status.ok else "degraded", "database": status.as_dict()}


__all__ = ["DatabaseStatus", "ping_database", "router"]
