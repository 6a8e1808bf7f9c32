"""Pytest fixtures — per-test SQLite database, API client, and sync-session builders."""
import os

os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from fastapi.testclient import TestClient

from blocos.database import Base, get_db
from blocos.main import app

# Import all models so they register with Base.metadata
from blocos.models.event import BaseEvent                # noqa: F401
from blocos.models.override import UserEventOverride     # noqa: F401

from blocos.services.sync_queue import PendingSyncQueue
from blocos.services.sync_service import SyncSession
from blocos.storage.local_store import LocalStore, MemoryStorage
from tests.fakes import FakeRemoteStore


@pytest.fixture(scope="function")
def db_engine(tmp_path):
    """Create a fresh SQLite engine for each test."""
    engine = create_engine(f"sqlite:///{tmp_path / 'test.db'}", connect_args={"check_same_thread": False})

    # Enable WAL mode for better concurrency
    @event.listens_for(engine, "connect")
    def _set_sqlite_pragma(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(db_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture(scope="function")
def db(session_factory):
    """Yield a database session, closed after the test."""
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(scope="function")
def client(session_factory):
    """FastAPI TestClient with the database dependency overridden to use SQLite."""

    def _override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def local_store(storage):
    return LocalStore(storage)


@pytest.fixture
def remote():
    return FakeRemoteStore()


@pytest.fixture
def make_session(local_store, remote):
    """Build a SyncSession over the shared local store and fake remote."""

    def _make(**kwargs) -> SyncSession:
        queue = PendingSyncQueue(remote, max_retries=2, backoff_seconds=0, sleep=lambda _: None)
        kwargs.setdefault("queue", queue)
        return SyncSession(local_store, remote, **kwargs)

    return _make
