import os
import uuid
from typing import Generator, Iterator, Tuple

import pytest

os.environ.setdefault("DATABASE_ALLOW_NON_POSTGRES", "1")
os.environ.setdefault("TEST_DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("DATABASE_URL", os.getenv("DATABASE_URL", os.environ["TEST_DATABASE_URL"]))
os.environ.setdefault("AUTH_JWT_SECRET", "test-secret-for-bookmark-suite-0123456789")
os.environ.setdefault("SHARE_BASE_URL", "https://links.example.test")

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from database import Base
from models.bookmark import Collection, Group, Item
from models.share_link import ShareLink

BOOKMARK_TABLES = [
    Collection.__table__,
    Group.__table__,
    Item.__table__,
    ShareLink.__table__,
]


@pytest.fixture()
def engine() -> Generator[Engine, None, None]:
    test_engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=test_engine, tables=BOOKMARK_TABLES)
    try:
        yield test_engine
    finally:
        Base.metadata.drop_all(bind=test_engine, tables=BOOKMARK_TABLES)
        test_engine.dispose()


@pytest.fixture()
def db_session(engine: Engine) -> Generator[Session, None, None]:
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def owner_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture()
def other_user_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture()
def api_client(db_session: Session, owner_id: uuid.UUID) -> Iterator[Tuple["TestClient", Session, dict]]:
    """Full app client with the session overridden and a bearer token for ``owner_id``."""
    from fastapi.testclient import TestClient

    from database import get_db
    from services.auth_tokens import create_access_token
    from web.main import app

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    token, _ = create_access_token(user_id=str(owner_id), email="owner@example.test")
    client = TestClient(app)
    try:
        yield client, db_session, {"Authorization": f"Bearer {token}"}
    finally:
        client.close()
        app.dependency_overrides.pop(get_db, None)
