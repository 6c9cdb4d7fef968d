"""
Shared test fixtures.

Uses a file-backed SQLite database (via aiosqlite) per test so tests run
without Docker / PostgreSQL / Redis.  The production models are used
unchanged: coordinates are plain floats and the partial unique indexes are
declared for SQLite as well.

SQLite's Python driver opens transactions lazily, which lets two writers
interleave reads before either takes the write lock.  The engine below
switches to ``BEGIN IMMEDIATE`` so concurrent transactions serialise the
way row locks do in PostgreSQL.
"""

from typing import AsyncGenerator
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from autohaul.infrastructure.database import Base
from autohaul.infrastructure import models  # noqa: F401  (registers tables)


# ── Test DB (SQLite file) ─────────────────────────────────────────────


@pytest_asyncio.fixture
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    test_engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'autohaul.db'}",
        connect_args={"timeout": 30},
    )

    @event.listens_for(test_engine.sync_engine, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(test_engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield test_engine

    await test_engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


# ── Redis ─────────────────────────────────────────────────────────────


@pytest.fixture
def fake_redis() -> AsyncMock:
    """AsyncMock Redis whose get / set / delete share a dict."""
    data: dict[str, str] = {}

    async def _set(key, value, ex=None, px=None, nx=False):
        if nx and key in data:
            return None
        data[key] = value
        return True

    async def _get(key):
        return data.get(key)

    async def _delete(*keys):
        return sum(1 for key in keys if data.pop(key, None) is not None)

    redis = AsyncMock()
    redis.set = AsyncMock(side_effect=_set)
    redis.get = AsyncMock(side_effect=_get)
    redis.delete = AsyncMock(side_effect=_delete)
    redis.eval = AsyncMock(return_value=1)
    redis.data = data
    return redis
