"""Unit tests for SessionManager.

Registration decisions run against the real in-memory backends; failure
paths use AsyncMock stores and caches.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from freezegun import freeze_time

from session_guard.audit.noop import NoOpAuditBackend
from session_guard.errors import (
    InvalidInputError,
    SessionInvalidatedError,
    StorageUnavailableError,
)
from session_guard.models.config import SessionConfig
from session_guard.models.session import LocationInfo
from session_guard.service import SessionManager
from session_guard.storage.memory import MemoryInvalidationCache, MemorySessionStore
from session_guard.tests.fixtures.mock_models import (
    BROOKLYN,
    CHROME_DESKTOP,
    LONDON,
    NEW_YORK,
    StaticLocator,
)

T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class SlowMemorySessionStore(MemorySessionStore):
    """Memory store that yields to the loop before answering queries."""

    async def get_active_by_user(self, user_id):
        await asyncio.sleep(0.01)
        return await super().get_active_by_user(user_id)


class RacingMemorySessionStore(MemorySessionStore):
    """Memory store that holds each query until ``parties`` callers have read."""

    def __init__(self, parties: int) -> None:
        super().__init__()
        self.barrier = asyncio.Barrier(parties)

    async def get_active_by_user(self, user_id):
        active = await super().get_active_by_user(user_id)
        await self.barrier.wait()
        return active


@pytest.fixture
def mock_store():
    """Mock session store."""
    store = AsyncMock()
    store.get_active_by_user.return_value = []
    return store


@pytest.fixture
def mock_cache():
    """Mock invalidation cache."""
    return AsyncMock()


@pytest.fixture
def mocked_manager(test_session_config, mock_store, mock_cache):
    """Manager over mocked dependencies."""
    return SessionManager(
        config=test_session_config,
        store=mock_store,
        invalidation_cache=mock_cache,
    )


class TestManagerInitialization:
    """Test manager construction."""

    def test_default_audit_is_noop(self, test_session_config, mock_store, mock_cache):
        manager = SessionManager(test_session_config, mock_store, mock_cache)

        assert isinstance(manager.audit, NoOpAuditBackend)
        assert manager.locator is None


@pytest.mark.asyncio
class TestRegisterSession:
    """Test the registration decision."""

    async def test_first_session(self, manager, recording_audit):
        result = await manager.register_session("user-1", "s-1", CHROME_DESKTOP, NEW_YORK)

        assert result.session is not None
        assert result.session.session_id == "s-1"
        assert result.session.ttl_seconds == 3600
        assert result.is_new_location is False
        assert result.previous_location is None
        assert result.limit_exceeded is False
        assert result.active_sessions == [result.session]
        assert len(recording_audit.of_type("session_created")) == 1

    async def test_new_york_then_london_raises_alert(self, manager, recording_audit):
        await manager.register_session("user-1", "s-ny", CHROME_DESKTOP, NEW_YORK)

        result = await manager.register_session("user-1", "s-ldn", CHROME_DESKTOP, LONDON)

        assert result.is_new_location is True
        assert result.previous_location == NEW_YORK
        assert [s.session_id for s in result.active_sessions] == ["s-ldn", "s-ny"]

        alerts = recording_audit.of_type("suspicious_activity")
        assert len(alerts) == 1
        assert alerts[0]["session_id"] == "s-ldn"
        assert alerts[0]["suspicious_event"] == "new_location"
        assert 5500 < alerts[0]["distance_km"] < 5650
        assert alerts[0]["previous_city"] == "New York"
        assert alerts[0]["current_city"] == "London"

    async def test_nearby_location_no_alert(self, manager, recording_audit):
        await manager.register_session("user-1", "s-1", CHROME_DESKTOP, NEW_YORK)

        result = await manager.register_session("user-1", "s-2", CHROME_DESKTOP, BROOKLYN)

        assert result.is_new_location is False
        assert result.previous_location is None
        assert recording_audit.of_type("suspicious_activity") == []

    async def test_compares_against_most_recent_session(self, manager):
        with freeze_time(T0, real_asyncio=True) as frozen:
            await manager.register_session("user-1", "s-1", CHROME_DESKTOP, NEW_YORK)
            frozen.tick(timedelta(seconds=1))
            await manager.register_session("user-1", "s-2", CHROME_DESKTOP, LONDON)
            frozen.tick(timedelta(seconds=1))

            # London -> London: the older New York session is not the reference
            result = await manager.register_session(
                "user-1", "s-3", CHROME_DESKTOP, LONDON
            )

        assert result.is_new_location is False

    async def test_unknown_coordinates_alert_has_no_distance(
        self, manager, recording_audit
    ):
        paris = LocationInfo(ip="10.0.0.1", city="Paris", country="France")
        lyon = LocationInfo(ip="10.0.0.2", city="Lyon", country="France")
        await manager.register_session("user-1", "s-1", CHROME_DESKTOP, paris)

        result = await manager.register_session("user-1", "s-2", CHROME_DESKTOP, lyon)

        assert result.is_new_location is True
        assert "distance_km" not in recording_audit.of_type("suspicious_activity")[0]

    async def test_limit_admits_until_reached(self, manager, memory_store, recording_audit):
        first = await manager.register_session(
            "user-1", "s-1", CHROME_DESKTOP, NEW_YORK, concurrent_limit=2
        )
        second = await manager.register_session(
            "user-1", "s-2", CHROME_DESKTOP, NEW_YORK, concurrent_limit=2
        )
        third = await manager.register_session(
            "user-1", "s-3", CHROME_DESKTOP, NEW_YORK, concurrent_limit=2
        )

        assert first.limit_exceeded is False
        assert second.limit_exceeded is False
        assert third.limit_exceeded is True
        assert third.session is None
        assert {s.session_id for s in third.active_sessions} == {"s-1", "s-2"}

        # Nothing persisted for the rejected registration
        stored = await memory_store.get_active_by_user("user-1")
        assert {s.session_id for s in stored} == {"s-1", "s-2"}

        rejected = recording_audit.of_type("session_rejected")
        assert len(rejected) == 1
        assert rejected[0]["user_id"] == "user-1"
        assert rejected[0]["concurrent_limit"] == 2
        assert rejected[0]["active_sessions"] == 2

    async def test_rejected_registration_skips_location_check(
        self, manager, recording_audit
    ):
        await manager.register_session("user-1", "s-1", CHROME_DESKTOP, NEW_YORK)

        result = await manager.register_session(
            "user-1", "s-2", CHROME_DESKTOP, LONDON, concurrent_limit=1
        )

        assert result.limit_exceeded is True
        assert result.is_new_location is False
        assert recording_audit.of_type("suspicious_activity") == []

    async def test_zero_limit_is_unlimited(self, manager):
        for i in range(10):
            result = await manager.register_session(
                "user-1", f"s-{i}", CHROME_DESKTOP, NEW_YORK, concurrent_limit=0
            )
            assert result.limit_exceeded is False

        assert len(await manager.list_sessions("user-1")) == 10

    async def test_limit_frees_up_after_invalidation(self, manager):
        await manager.register_session(
            "user-1", "s-1", CHROME_DESKTOP, NEW_YORK, concurrent_limit=1
        )
        await manager.invalidate_session("s-1")

        result = await manager.register_session(
            "user-1", "s-2", CHROME_DESKTOP, NEW_YORK, concurrent_limit=1
        )

        assert result.limit_exceeded is False

    @pytest.mark.parametrize(
        "user_id,session_id,limit",
        [("", "s-1", 0), ("user-1", "", 0), ("user-1", "s-1", -1)],
    )
    async def test_invalid_input(self, mocked_manager, mock_store, user_id, session_id, limit):
        with pytest.raises(InvalidInputError):
            await mocked_manager.register_session(
                user_id, session_id, CHROME_DESKTOP, NEW_YORK, concurrent_limit=limit
            )

        mock_store.get_active_by_user.assert_not_called()
        mock_store.save.assert_not_called()

    async def test_save_failure_propagates(self, mocked_manager, mock_store):
        mock_store.save.side_effect = StorageUnavailableError("disk full")

        with pytest.raises(StorageUnavailableError):
            await mocked_manager.register_session(
                "user-1", "s-1", CHROME_DESKTOP, NEW_YORK
            )

    async def test_query_failure_propagates(self, mocked_manager, mock_store):
        mock_store.get_active_by_user.side_effect = StorageUnavailableError("down")

        with pytest.raises(StorageUnavailableError):
            await mocked_manager.register_session(
                "user-1", "s-1", CHROME_DESKTOP, NEW_YORK
            )

        mock_store.save.assert_not_called()

    async def test_expired_sessions_do_not_count(self, manager):
        with freeze_time(T0, real_asyncio=True) as frozen:
            await manager.register_session(
                "user-1", "s-1", CHROME_DESKTOP, NEW_YORK, concurrent_limit=1
            )
            frozen.move_to(T0 + timedelta(hours=1))

            assert await manager.list_sessions("user-1") == []
            result = await manager.register_session(
                "user-1", "s-2", CHROME_DESKTOP, LONDON, concurrent_limit=1
            )

        assert result.limit_exceeded is False
        # No active predecessor, so no location comparison
        assert result.is_new_location is False

    async def test_serialized_registrations_respect_limit(self, recording_audit):
        config = SessionConfig(
            storage_type="memory", audit_type="noop", serialize_registrations=True
        )
        manager = SessionManager(
            config, SlowMemorySessionStore(), MemoryInvalidationCache(), recording_audit
        )

        results = await asyncio.gather(
            *(
                manager.register_session(
                    "user-1", f"s-{i}", CHROME_DESKTOP, NEW_YORK, concurrent_limit=1
                )
                for i in range(5)
            )
        )
        await manager.close()

        assert sum(not r.limit_exceeded for r in results) == 1

    async def test_unserialized_registrations_can_overshoot(self):
        config = SessionConfig(storage_type="memory", audit_type="noop")
        manager = SessionManager(
            config, RacingMemorySessionStore(parties=3), MemoryInvalidationCache()
        )

        results = await asyncio.gather(
            *(
                manager.register_session(
                    "user-1", f"s-{i}", CHROME_DESKTOP, NEW_YORK, concurrent_limit=1
                )
                for i in range(3)
            )
        )
        await manager.close()

        # Known gap without serialization: every racer saw zero sessions
        assert all(not r.limit_exceeded for r in results)


@pytest.mark.asyncio
class TestInvalidation:
    """Test session revocation."""

    async def test_invalidate_then_check(self, manager, recording_audit):
        await manager.register_session("user-1", "s-1", CHROME_DESKTOP, NEW_YORK)

        await manager.invalidate_session("s-1")

        assert await manager.is_session_invalidated("s-1") is True
        assert await manager.list_sessions("user-1") == []

        events = recording_audit.of_type("session_invalidated")
        assert events[0]["session_id"] == "s-1"
        assert events[0]["reason"] == "user_logout"
        assert events[0]["invalidation_ttl_seconds"] == 3600

    async def test_never_registered_is_not_invalidated(self, manager):
        assert await manager.is_session_invalidated("never-seen") is False

    async def test_invalidating_unknown_session_still_records(self, manager):
        await manager.invalidate_session("external-id")

        assert await manager.is_session_invalidated("external-id") is True

    async def test_store_failure_prevents_cache_write(
        self, mocked_manager, mock_store, mock_cache
    ):
        mock_store.delete.side_effect = StorageUnavailableError("down")

        with pytest.raises(StorageUnavailableError):
            await mocked_manager.invalidate_session("s-1")

        mock_cache.set.assert_not_called()

    async def test_cache_uses_invalidation_ttl(
        self, mock_store, mock_cache
    ):
        config = SessionConfig(
            session_ttl=timedelta(hours=1),
            invalidation_ttl=timedelta(hours=6),
            storage_type="memory",
        )
        manager = SessionManager(config, mock_store, mock_cache)

        await manager.invalidate_session("s-1")

        mock_store.delete.assert_awaited_once_with("s-1")
        mock_cache.set.assert_awaited_once_with("s-1", timedelta(hours=6))

    async def test_empty_session_id_rejected(self, mocked_manager):
        with pytest.raises(InvalidInputError):
            await mocked_manager.invalidate_session("")

    async def test_invalidation_outlives_session_ttl(self, manager):
        with freeze_time(T0, real_asyncio=True) as frozen:
            await manager.register_session("user-1", "s-1", CHROME_DESKTOP, NEW_YORK)
            await manager.invalidate_session("s-1")

            frozen.move_to(T0 + timedelta(minutes=59))
            assert await manager.is_session_invalidated("s-1") is True

            frozen.move_to(T0 + timedelta(hours=1))
            assert await manager.is_session_invalidated("s-1") is False

    async def test_invalidate_all_except_current(self, manager):
        for session_id in ("s-1", "s-2", "s-3"):
            await manager.register_session("user-1", session_id, CHROME_DESKTOP, NEW_YORK)
        await manager.register_session("user-2", "other", CHROME_DESKTOP, NEW_YORK)

        count = await manager.invalidate_all_user_sessions(
            "user-1", except_session_id="s-2"
        )

        assert count == 2
        assert [s.session_id for s in await manager.list_sessions("user-1")] == ["s-2"]
        assert await manager.is_session_invalidated("s-1") is True
        assert await manager.is_session_invalidated("s-2") is False
        assert len(await manager.list_sessions("user-2")) == 1

    async def test_invalidate_all_for_unknown_user(self, manager):
        assert await manager.invalidate_all_user_sessions("nobody") == 0

    async def test_ensure_session_valid(self, manager):
        await manager.ensure_session_valid("s-1")

        await manager.invalidate_session("s-1")

        with pytest.raises(SessionInvalidatedError):
            await manager.ensure_session_valid("s-1")


@pytest.mark.asyncio
class TestListSessions:
    """Test listing."""

    async def test_empty_listing(self, manager):
        assert await manager.list_sessions("nobody") == []

    async def test_passthrough(self, mocked_manager, mock_store):
        await mocked_manager.list_sessions("user-1")

        mock_store.get_active_by_user.assert_awaited_once_with("user-1")


class TestExtractRequestInfo:
    """Test device/location extraction."""

    def test_without_locator(self, mocked_manager):
        device, location = mocked_manager.extract_request_info(
            {"User-Agent": CHROME_DESKTOP.user_agent}, "203.0.113.10:5555"
        )

        assert device.ip == "203.0.113.10"
        assert location == LocationInfo(ip="203.0.113.10")

    def test_with_locator(self, test_session_config, mock_store, mock_cache):
        locator = StaticLocator({"203.0.113.10": NEW_YORK})
        manager = SessionManager(
            test_session_config, mock_store, mock_cache, locator=locator
        )

        _, location = manager.extract_request_info({}, "203.0.113.10:5555")

        assert location == NEW_YORK

    def test_lookup_failure_degrades_to_ip_only(
        self, test_session_config, mock_store, mock_cache
    ):
        manager = SessionManager(
            test_session_config, mock_store, mock_cache, locator=StaticLocator({})
        )

        _, location = manager.extract_request_info({}, "198.51.100.99")

        assert location == LocationInfo(ip="198.51.100.99")


@pytest.mark.asyncio
class TestClose:
    """Test resource release."""

    async def test_closes_everything_once(self, test_session_config):
        store = AsyncMock()
        cache = AsyncMock()
        locator = MagicMock()
        manager = SessionManager(test_session_config, store, cache, locator=locator)

        await manager.close()
        await manager.close()

        store.close.assert_awaited_once()
        cache.close.assert_awaited_once()
        locator.close.assert_called_once()

    async def test_shared_store_and_cache_closed_once(self, test_session_config):
        shared = AsyncMock()
        manager = SessionManager(test_session_config, shared, shared)

        await manager.close()

        shared.close.assert_awaited_once()

    async def test_failures_are_collected(self, test_session_config):
        store = AsyncMock()
        store.close.side_effect = RuntimeError("store boom")
        cache = AsyncMock()
        locator = MagicMock()
        locator.close.side_effect = OSError("locator boom")
        manager = SessionManager(test_session_config, store, cache, locator=locator)

        with pytest.raises(StorageUnavailableError) as exc_info:
            await manager.close()

        cache.close.assert_awaited_once()
        failures = exc_info.value.details["failures"]
        assert len(failures) == 2
        assert "store boom" in failures[0]
        assert "locator boom" in failures[1]

    async def test_async_context_manager(self, test_session_config):
        store = AsyncMock()
        cache = AsyncMock()

        async with SessionManager(test_session_config, store, cache) as manager:
            assert manager.store is store

        store.close.assert_awaited_once()
