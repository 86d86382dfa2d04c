"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

import os

# ---------------------------------------------------------------------------
# Ensure a valid JWT_SECRET is always set for test runs.
# This must happen before any import of anonchat.api.deps which validates
# the secret at module-load time.
# ---------------------------------------------------------------------------
_TEST_JWT_SECRET = "test-secret-for-pytest-only-" + "x" * 40  # > 32 chars
os.environ.setdefault("JWT_SECRET", _TEST_JWT_SECRET)

import random  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy import Engine, create_engine  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from anonchat.config import ChatConfig  # noqa: E402
from anonchat.database.engine import configure_sqlite, create_db_engine, init_db  # noqa: E402
from anonchat.database.models import Base  # noqa: E402
from anonchat.services.chat_service import AnonymousChatService  # noqa: E402


@pytest.fixture
def db_engine() -> Engine:
    """Create an in-memory SQLite engine with all anonchat tables.

    Uses StaticPool so all threads share the same in-memory database
    (required by ``asyncio.to_thread`` used in ``run_db``).
    """
    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    configure_sqlite(engine)
    Base.metadata.create_all(engine)
    return engine


@pytest.fixture
def db_session(db_engine: Engine):
    """Provide a session that rolls back after each test."""
    with Session(db_engine, expire_on_commit=False) as session:
        yield session
        session.rollback()


@pytest.fixture
def file_engine(tmp_path):
    """A pooled, file-backed SQLite engine built the way the server builds one.

    Each worker thread gets its own connection, so concurrent callers really
    contend for the database lock.
    """
    engine = create_db_engine(f"sqlite:///{tmp_path / 'anonchat.db'}")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def chat_config() -> ChatConfig:
    """Defaults, but a low threshold so reveal tests stay short."""
    return ChatConfig(reveal_threshold=3)


@pytest.fixture
def service(db_engine: Engine, chat_config: ChatConfig) -> AnonymousChatService:
    return AnonymousChatService(db_engine, chat_config, rng=random.Random(42))


def make_token(sub: str) -> str:
    """Create a bearer JWT for *sub*.  Usable from any test module."""
    import jwt

    from anonchat.api.deps import JWT_ALGORITHM, JWT_SECRET

    return jwt.encode({"sub": sub}, JWT_SECRET, algorithm=JWT_ALGORITHM)


def auth(user_id: str) -> dict:
    return {"Authorization": f"Bearer {make_token(user_id)}"}


@pytest.fixture
def client(service: AnonymousChatService):
    """A FastAPI TestClient wired to the in-memory chat service."""
    from fastapi.testclient import TestClient

    from anonchat.api.deps import get_chat_service
    from anonchat.api.main import app

    app.dependency_overrides[get_chat_service] = lambda: service
    try:
        yield TestClient(app, raise_server_exceptions=False)
    finally:
        app.dependency_overrides.pop(get_chat_service, None)
