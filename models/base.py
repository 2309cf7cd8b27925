"""
SQLAlchemy engine and session factories.

Two separate engines exist because:
- FastAPI is async → needs the aiosqlite driver + async sessions
- Worker threads are sync → need the pysqlite driver + sync sessions

Both point at the same SQLite file. SQLite connections are bound to the
thread that opened them unless check_same_thread is disabled, and the worker
hands sessions to its poll and maintenance threads, so the sync engine
always disables it.
"""

from datetime import datetime, timezone

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase, sessionmaker
from sqlalchemy.pool import StaticPool

from config.settings import settings


class Base(DeclarativeBase):
    """Base class for all ORM models. SQLAlchemy uses this to track table metadata."""
    pass


def utcnow() -> datetime:
    """Default clock. Timestamps are stored as naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def build_sync_engine(url: str) -> Engine:
    """Create a sync engine usable from several worker threads."""
    kwargs = {"echo": False}
    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if url in ("sqlite://", "sqlite:///:memory:"):
            # one shared connection, otherwise every checkout sees an empty database
            kwargs["poolclass"] = StaticPool
    return create_engine(url, **kwargs)


# ── Async engine (for FastAPI) ──────────────────────────────────
async_engine = create_async_engine(settings.database_url, echo=False)
AsyncSessionLocal = async_sessionmaker(async_engine, expire_on_commit=False)

# ── Sync engine (for worker threads) ────────────────────────────
sync_engine = build_sync_engine(settings.sync_database_url)
SyncSessionLocal = sessionmaker(sync_engine)
