"""Pytest fixtures for session guard package tests.

These fixtures provide reusable configuration, backends and test doubles
for unit and integration testing.
"""

from datetime import timedelta

import pytest
import pytest_asyncio
import structlog

from session_guard.models.config import SessionConfig
from session_guard.service import SessionManager
from session_guard.storage.memory import MemoryInvalidationCache, MemorySessionStore
from session_guard.tests.fixtures.mock_models import RecordingAuditBackend


@pytest.fixture
def test_session_config():
    """Fixture: SessionConfig for testing (memory storage, no audit)."""
    return SessionConfig(
        session_ttl=timedelta(hours=1),
        storage_type="memory",  # In-memory (fast, isolated)
        audit_type="noop",  # No audit noise in tests
    )


@pytest_asyncio.fixture
async def memory_store():
    """Fixture: empty MemorySessionStore, closed after the test."""
    store = MemorySessionStore()
    yield store
    await store.close()


@pytest_asyncio.fixture
async def memory_cache():
    """Fixture: MemoryInvalidationCache, closed after the test."""
    cache = MemoryInvalidationCache()
    yield cache
    await cache.close()


@pytest.fixture
def recording_audit():
    """Fixture: audit backend that records events."""
    return RecordingAuditBackend()


@pytest_asyncio.fixture
async def manager(test_session_config, memory_store, memory_cache, recording_audit):
    """Fixture: SessionManager over the in-memory backends."""
    session_manager = SessionManager(
        config=test_session_config,
        store=memory_store,
        invalidation_cache=memory_cache,
        audit=recording_audit,
    )
    yield session_manager
    await session_manager.close()


@pytest.fixture(autouse=True)
def reset_structlog():
    """Restore structlog defaults after tests that configure logging."""
    yield
    structlog.reset_defaults()
