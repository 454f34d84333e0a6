"""Session manager service - orchestrator for the session lifecycle.

This is the main entry point for session management. It coordinates:
- Storage (active sessions, persistence)
- Invalidation cache (revocation ledger)
- Distance policy (new-location alerts)
- Audit (structured events)
- Locator (optional IP geolocation)
"""

import asyncio
import logging
import weakref
from collections.abc import AsyncIterator, Mapping
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any

from .audit.base import SessionAuditBackend
from .audit.noop import NoOpAuditBackend
from .distance import is_new_location, location_distance
from .enrichers.base import LocationLocator
from .enrichers.device import extract_device_info
from .errors import (
    GeoIPLookupError,
    InvalidInputError,
    NotConfiguredError,
    SessionInvalidatedError,
    StorageUnavailableError,
)
from .models.config import SessionConfig
from .models.results import RegistrationResult
from .models.session import DeviceInfo, LocationInfo, Session
from .storage.base import InvalidationCache, SessionStore

logger = logging.getLogger(__name__)


class SessionManager:
    """Session manager - orchestrator.

    Decides whether a login may open a session (concurrent session limit),
    flags logins from a new location, and revokes sessions.

    Design Pattern:
        - Facade Pattern: Simple interface to the storage/audit subsystem
        - Dependency Injection: All dependencies injected
        - Strategy Pattern: Pluggable store/cache/audit/locator

    Registration flow:
        1. Validate input
        2. Load the user's active sessions (newest first)
        3. Reject when the concurrent limit is reached (nothing persisted)
        4. Compare the location with the most recent session
        5. Save the new session
        6. Audit

    Example:
        ```python
        manager = SessionManager(
            config=SessionConfig(),
            store=MemorySessionStore(),
            invalidation_cache=MemoryInvalidationCache(),
            audit=LoggerAuditBackend(),
        )

        result = await manager.register_session(
            "user-1", "sess-abc", device, location, concurrent_limit=3
        )
        if result.limit_exceeded:
            ...
        ```
    """

    def __init__(
        self,
        config: SessionConfig,
        store: SessionStore,
        invalidation_cache: InvalidationCache,
        audit: SessionAuditBackend | None = None,
        locator: LocationLocator | None = None,
    ):
        """Initialize session manager.

        Args:
            config: Validated configuration
            store: Session store
            invalidation_cache: Revocation ledger
            audit: Optional audit backend (defaults to NoOp)
            locator: Optional IP geolocation provider
        """
        self.config = config
        self.store = store
        self.invalidation_cache = invalidation_cache
        self.audit = audit or NoOpAuditBackend()
        self.locator = locator
        self._user_locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )
        self._closed = False

    async def register_session(
        self,
        user_id: str,
        session_id: str,
        device: DeviceInfo,
        location: LocationInfo,
        concurrent_limit: int = 0,
    ) -> RegistrationResult:
        """Register a new session for a user.

        Args:
            user_id: User identifier
            session_id: Caller-generated unique session ID
            device: Device snapshot
            location: Location snapshot
            concurrent_limit: Maximum active sessions (0 = unlimited)

        Returns:
            RegistrationResult. When limit_exceeded is True nothing was saved.

        Raises:
            InvalidInputError: If IDs are empty or the limit is negative
            StorageUnavailableError: If the store fails (nothing persisted)
        """
        if not user_id:
            raise InvalidInputError("user_id must not be empty")
        if not session_id:
            raise InvalidInputError("session_id must not be empty")
        if concurrent_limit < 0:
            raise InvalidInputError(
                "concurrent_limit must not be negative",
                details={"concurrent_limit": concurrent_limit},
            )

        async with self._registration_lock(user_id):
            active = await self.store.get_active_by_user(user_id)

            if concurrent_limit > 0 and len(active) >= concurrent_limit:
                logger.debug(
                    "Rejecting session %s for user %s: %d active, limit %d",
                    session_id,
                    user_id,
                    len(active),
                    concurrent_limit,
                )
                await self.audit.log_session_rejected(
                    user_id,
                    context={
                        "session_id": session_id,
                        "concurrent_limit": concurrent_limit,
                        "active_sessions": len(active),
                        "ip_address": device.ip,
                    },
                )
                return RegistrationResult(
                    session=None, active_sessions=active, limit_exceeded=True
                )

            new_location = False
            previous_location: LocationInfo | None = None
            if active:
                previous = active[0].location
                if is_new_location(
                    previous, location, self.config.new_location_threshold_km
                ):
                    new_location = True
                    previous_location = previous

            session = Session(
                session_id=session_id,
                user_id=user_id,
                device=device,
                location=location,
                created_at=datetime.now(timezone.utc),
                ttl_seconds=self.config.session_ttl_seconds,
            )
            await self.store.save(session)

        if previous_location is not None:
            await self._audit_new_location(session, previous_location)

        await self.audit.log_session_created(
            session,
            context={
                "active_sessions": len(active) + 1,
                "is_new_location": new_location,
            },
        )

        return RegistrationResult(
            session=session,
            is_new_location=new_location,
            previous_location=previous_location,
            active_sessions=[session, *active],
        )

    async def invalidate_session(
        self, session_id: str, reason: str = "user_logout"
    ) -> None:
        """Revoke a session.

        Removes the session from the store, then records it in the
        invalidation cache. If the store fails, the cache is not written.

        Args:
            session_id: Session to revoke
            reason: Recorded in the audit event

        Raises:
            InvalidInputError: If session_id is empty
            StorageUnavailableError: If the store or cache fails
        """
        if not session_id:
            raise InvalidInputError("session_id must not be empty")

        await self.store.delete(session_id)
        await self.invalidation_cache.set(session_id, self.config.invalidation_ttl)

        await self.audit.log_session_invalidated(
            session_id,
            context={
                "reason": reason,
                "invalidation_ttl_seconds": int(
                    self.config.invalidation_ttl.total_seconds()
                ),
            },
        )

    async def invalidate_all_user_sessions(
        self,
        user_id: str,
        except_session_id: str | None = None,
        reason: str = "logout_all",
    ) -> int:
        """Revoke every active session of a user.

        Used for "logout everywhere" and after a password change.

        Args:
            user_id: User identifier
            except_session_id: Session to keep (typically the current one)
            reason: Recorded in each audit event

        Returns:
            Number of sessions revoked

        Raises:
            StorageUnavailableError: If the store or cache fails. Sessions
                revoked before the failure stay revoked.
        """
        if not user_id:
            raise InvalidInputError("user_id must not be empty")

        count = 0
        for session in await self.store.get_active_by_user(user_id):
            if session.session_id == except_session_id:
                continue
            await self.invalidate_session(session.session_id, reason=reason)
            count += 1
        return count

    async def is_session_invalidated(self, session_id: str) -> bool:
        """Check the revocation ledger.

        Independent of store state: IDs never registered return False.

        Raises:
            StorageUnavailableError: If the cache fails
        """
        return await self.invalidation_cache.exists(session_id)

    async def ensure_session_valid(self, session_id: str) -> None:
        """Raise if the session has been revoked.

        Raises:
            SessionInvalidatedError: If the session is in the ledger
            StorageUnavailableError: If the cache fails
        """
        if await self.invalidation_cache.exists(session_id):
            raise SessionInvalidatedError(
                "Session has been invalidated", details={"session_id": session_id}
            )

    async def list_sessions(self, user_id: str) -> list[Session]:
        """Active sessions for a user, newest first."""
        return await self.store.get_active_by_user(user_id)

    def extract_request_info(
        self, headers: Mapping[str, str], remote_addr: str
    ) -> tuple[DeviceInfo, LocationInfo]:
        """Build device and location snapshots for a request.

        Location lookup failures degrade to an IP-only location.

        Args:
            headers: Request headers
            remote_addr: Peer address

        Returns:
            (DeviceInfo, LocationInfo)
        """
        device = extract_device_info(headers, remote_addr)
        if self.locator is None:
            return device, LocationInfo(ip=device.ip)

        try:
            location = self.locator.lookup(device.ip)
        except (InvalidInputError, GeoIPLookupError, NotConfiguredError) as e:
            logger.debug("Location lookup failed for %s: %s", device.ip, e)
            location = LocationInfo(ip=device.ip)
        return device, location

    async def close(self) -> None:
        """Release store, cache and locator.

        Each resource is closed once, even when shared. Every close is
        attempted; failures are reported together.

        Raises:
            StorageUnavailableError: If any resource failed to close
        """
        if self._closed:
            return
        self._closed = True

        failures: list[str] = []
        closed: list[Any] = []
        for resource in (self.store, self.invalidation_cache):
            if any(resource is other for other in closed):
                continue
            closed.append(resource)
            try:
                await resource.close()
            except Exception as e:
                logger.warning("Failed to close %s: %s", type(resource).__name__, e)
                failures.append(f"{type(resource).__name__}: {e}")

        if self.locator is not None:
            try:
                self.locator.close()
            except Exception as e:
                logger.warning("Failed to close locator: %s", e)
                failures.append(f"{type(self.locator).__name__}: {e}")

        if failures:
            raise StorageUnavailableError(
                "Failed to close session manager resources",
                details={"failures": failures},
            )

    async def __aenter__(self) -> "SessionManager":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    @asynccontextmanager
    async def _registration_lock(self, user_id: str) -> AsyncIterator[None]:
        if not self.config.serialize_registrations:
            yield
            return

        lock = self._user_locks.get(user_id)
        if lock is None:
            lock = asyncio.Lock()
            self._user_locks[user_id] = lock
        async with lock:
            yield

    async def _audit_new_location(
        self, session: Session, previous: LocationInfo
    ) -> None:
        context: dict[str, Any] = {
            "user_id": session.user_id,
            "previous_ip": previous.ip,
            "current_ip": session.location.ip,
            "previous_city": previous.city,
            "previous_country": previous.country,
            "current_city": session.location.city,
            "current_country": session.location.country,
            "threshold_km": self.config.new_location_threshold_km,
        }
        distance = location_distance(previous, session.location)
        if distance is not None:
            context["distance_km"] = round(distance, 1)

        await self.audit.log_suspicious_activity(
            session.session_id, "new_location", context
        )
