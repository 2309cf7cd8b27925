"""
Shared test fixtures.

These replace real infrastructure with lightweight alternatives:
- The SQLite database file → a fresh file under tmp_path per test (sync
  fixtures, so worker threads can share it) or SQLite in memory (async API
  fixtures, via aiosqlite)
- The wall clock → FakeClock, which only moves when a test advances it
- HTTP server → httpx.AsyncClient with ASGI transport (no network)
"""

from datetime import datetime, timedelta

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker
from sqlalchemy.orm import sessionmaker

from models.base import Base, build_sync_engine
import models.job, models.session, models.usage_event  # noqa: F401  (register tables)
from api.main import create_app
from api.dependencies import get_db
from worker.store import JobStore

TEST_DB_URL = "sqlite+aiosqlite:///:memory:"


class FakeClock:
    """Callable clock returning a fixed naive-UTC time until advanced."""

    def __init__(self, start: datetime = datetime(2026, 1, 15, 12, 0, 0)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def session_factory(tmp_path):
    """Sync session factory bound to a fresh SQLite file."""
    engine = build_sync_engine(f"sqlite:///{tmp_path / 'jobs.db'}")
    Base.metadata.create_all(engine)
    yield sessionmaker(engine)
    engine.dispose()


@pytest.fixture
def store(session_factory, clock):
    return JobStore(session_factory, clock=clock)


@pytest_asyncio.fixture
async def async_engine():
    """Create a fresh in-memory database for each test."""
    engine = create_async_engine(TEST_DB_URL, echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def async_session(async_engine):
    factory = async_sessionmaker(async_engine, expire_on_commit=False)
    async with factory() as session:
        yield session


@pytest_asyncio.fixture
async def client(async_session):
    """
    Test HTTP client that talks directly to the FastAPI app.

    dependency_overrides swaps the real get_db for the in-memory session.
    """
    app = create_app()

    async def override_get_db():
        yield async_session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
