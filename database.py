"""Engine and session factory for the bookmark store."""

from __future__ import annotations

from typing import Any, Dict, Iterator

from dotenv import load_dotenv
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy.pool import StaticPool

from core.env import env_bool, env_str

load_dotenv()

TEST_DATABASE_URL = env_str("TEST_DATABASE_URL")
DATABASE_URL = env_str("DATABASE_URL") or TEST_DATABASE_URL
if not DATABASE_URL:
    raise RuntimeError("Set DATABASE_URL (or TEST_DATABASE_URL) to the bookmark store DSN.")

ALLOW_NON_POSTGRES = env_bool("DATABASE_ALLOW_NON_POSTGRES", False)
IS_POSTGRES = DATABASE_URL.lower().startswith("postgresql")
if not IS_POSTGRES and not ALLOW_NON_POSTGRES:
    raise RuntimeError(
        f"Bookmark store expects a PostgreSQL DSN; set DATABASE_ALLOW_NON_POSTGRES=1 to use {DATABASE_URL}"
    )


def _engine_options(url: str) -> Dict[str, Any]:
    if url.startswith("sqlite"):
        options: Dict[str, Any] = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in url:
            # every checkout must see the same in-memory database
            options["poolclass"] = StaticPool
        return options
    return {"pool_pre_ping": True, "echo": env_bool("DATABASE_ECHO", False)}


engine: Engine = create_engine(DATABASE_URL, **_engine_options(DATABASE_URL))
SessionLocal = sessionmaker(bind=engine, autoflush=False)


class Base(DeclarativeBase):
    """Declarative base for collections, groups, items and share links."""


def get_db() -> Iterator[Session]:
    """One session per request; services commit, this only closes."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
