"""
Pytest configuration and shared fixtures.

Each service owns its own database, so every test gets fresh in-memory
SQLite databases built from the service's MetaData.  Tests that race two
sessions against each other use a database file instead, so that each
session holds its own connection.
"""

import os

# main.py モジュールは import 時に環境変数を読む
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("INVENTORY_SERVICE_URL", "http://inventory")
os.environ.setdefault("PAYMENT_SERVICE_URL", "http://payment")
os.environ.setdefault("ACCOUNT_SERVICE_URL", "http://account")

from unittest.mock import AsyncMock

import pytest
from sqlalchemy import MetaData, Update
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool


@pytest.fixture
async def engines():
    created = []
    yield created
    for engine in created:
        await engine.dispose()


async def _build_session_factory(engines, metadata: MetaData, url: str, **kwargs):
    engine = create_async_engine(url, **kwargs)
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)
    engines.append(engine)
    return sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def make_session_factory(engines):
    """Build an in-memory database for a service and return its session factory."""

    async def factory(metadata: MetaData):
        return await _build_session_factory(
            engines, metadata, "sqlite+aiosqlite://", poolclass=StaticPool
        )

    return factory


@pytest.fixture
def make_file_session_factory(engines, tmp_path):
    """Build a file-backed database; every session gets its own connection."""

    async def factory(metadata: MetaData):
        path = tmp_path / "service.db"
        return await _build_session_factory(engines, metadata, f"sqlite+aiosqlite:///{path}")

    return factory


@pytest.fixture
def redis():
    """Redis stand-in; tests inspect published events through publish.await_args_list."""
    return AsyncMock()


class InterleavedSession:
    """
    Wraps a session and runs `before_update` once, just before the first
    UPDATE statement reaches the database.

    Lets a test commit a competing write between a command's read and its
    conditional update.
    """

    def __init__(self, session: AsyncSession, before_update):
        self._session = session
        self._before_update = before_update

    async def execute(self, statement, *args, **kwargs):
        if self._before_update is not None and isinstance(statement, Update):
            before_update, self._before_update = self._before_update, None
            await before_update()
        return await self._session.execute(statement, *args, **kwargs)

    def __getattr__(self, name):
        return getattr(self._session, name)
