"""Shared fixtures for integration tests.

Provides real backends over test doubles: an SQLite file per test
(aiosqlite) and an in-memory Redis emulation (fakeredis).
"""

import fakeredis.aioredis
import pytest_asyncio

from session_guard.storage.cache import RedisInvalidationCache, RedisSessionStore
from session_guard.storage.database import (
    Database,
    DatabaseInvalidationCache,
    DatabaseSessionStore,
)


@pytest_asyncio.fixture
async def fakeredis_client():
    """fakeredis client (in-memory Redis emulation), closed after the test."""
    client = fakeredis.aioredis.FakeRedis(decode_responses=False)
    yield client
    await client.aclose()


@pytest_asyncio.fixture
async def database(tmp_path):
    """SQLite database file with the session tables created."""
    db = Database(f"sqlite+aiosqlite:///{tmp_path / 'session_guard.db'}")
    await db.create_all()
    yield db
    await db.close()


@pytest_asyncio.fixture
async def database_store(database):
    return DatabaseSessionStore(database)


@pytest_asyncio.fixture
async def database_cache(database):
    return DatabaseInvalidationCache(database)


@pytest_asyncio.fixture
async def redis_store(fakeredis_client):
    return RedisSessionStore(fakeredis_client, key_prefix="test:")


@pytest_asyncio.fixture
async def redis_cache(fakeredis_client):
    return RedisInvalidationCache(fakeredis_client, key_prefix="test:")
