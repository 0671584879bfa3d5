import os
from typing import AsyncGenerator

# Must be set before sweepstakes.core.config is imported anywhere
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./sweepstakes-test.db")
os.environ.setdefault("ADMIN_API_KEY", "test-admin-key")
os.environ.setdefault("LOG_JSON", "false")
os.environ.setdefault("TOKEN_HASH_ROUNDS", "4")

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

import sweepstakes.models  # noqa: F401
from sweepstakes.core.db import Base, get_db
from sweepstakes.main import app

ADMIN_KEY = os.environ["ADMIN_API_KEY"]


@pytest_asyncio.fixture
async def test_engine(tmp_path):
    """
    File-backed SQLite per test. Every transaction starts with BEGIN
    IMMEDIATE so concurrent sessions queue on the write lock (busy timeout)
    instead of interleaving, which is what row locks give us on Postgres.
    """
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        connect_args={"timeout": 30},
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _no_driver_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return async_sessionmaker(bind=test_engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest_asyncio.fixture
async def db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """
    A single session for sequential service tests. Tests that open other
    sessions (API calls, concurrency) must not keep this one mid-transaction.
    """
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    async def _get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = _get_db

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def admin_headers() -> dict:
    return {"X-Admin-Key": ADMIN_KEY, "X-Admin-User": "reviewer@test"}
