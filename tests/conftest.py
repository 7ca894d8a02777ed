"""Shared test fixtures."""

from collections.abc import AsyncIterator

import pytest
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from neuraband_server.models.base import Base
from neuraband_server.services.store import InMemoryStore, SQLAlchemyStore
from tests.helpers import FeedRecorder


@pytest.fixture
async def async_engine():
    """Create async SQLite engine for testing."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # Enable foreign keys for SQLite
    @event.listens_for(engine.sync_engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def session_factory(async_engine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the test engine."""
    return async_sessionmaker(
        async_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest.fixture
async def async_session(session_factory) -> AsyncIterator[AsyncSession]:
    """Create async session for testing."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def store(session_factory) -> SQLAlchemyStore:
    """Relational store on the test database."""
    return SQLAlchemyStore(session_factory)


@pytest.fixture
async def test_user(store: SQLAlchemyStore):
    """Create a test user."""
    return await store.create_user(email="wearer@example.com", display_name="Test Wearer")


@pytest.fixture
async def test_device(store: SQLAlchemyStore, test_user):
    """Register a device with default settings for the test user."""
    return await store.create_device(test_user.id, "NeuraBand A")


@pytest.fixture
def memory_store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def feeds() -> FeedRecorder:
    """Feed factory double; inspect built feeds via ``feeds.last``."""
    return FeedRecorder()
