"""In-memory session storage implementation.

Concrete implementations using Python dicts with TTL tracking.
No external dependencies - the reference backend, used for testing,
development, and single-process deployments.

Both classes guard their state with one coarse lock. Critical sections
never await, so the lock is never held across a suspension point, and the
same objects stay correct when shared between threads.
"""

import asyncio
import logging
import threading
from datetime import datetime, timedelta, timezone

from ..models.session import Session
from .base import InvalidationCache, SessionStore, validate_ttl

logger = logging.getLogger(__name__)

DEFAULT_CLEANUP_INTERVAL = timedelta(hours=48)
DEFAULT_CLEANUP_BATCH_SIZE = 1000


class MemorySessionStore(SessionStore):
    """In-memory dict storage with soft delete.

    Sessions stored in memory - lost on restart.

    Design Pattern:
        - Concrete implementation (no abstraction needed)
        - No external dependencies (pure Python)
        - Soft delete: deleted sessions are kept for audit but hidden
          from get_active_by_user

    Usage:
        ```python
        store = MemorySessionStore()
        await store.save(session)
        active = await store.get_active_by_user("user-123")
        ```

    Expired and soft-deleted records are physically removed by a background
    sweep every ``cleanup_interval`` (started on the first save inside a
    running event loop, cancelled by close()), or on demand via
    purge_expired().

    Note:
        Not suitable for production with multiple processes/servers.
        Use DatabaseSessionStore or RedisSessionStore for production.
    """

    def __init__(
        self, cleanup_interval: timedelta = DEFAULT_CLEANUP_INTERVAL
    ) -> None:
        """Initialize in-memory storage.

        Args:
            cleanup_interval: Time between background purges
        """
        if cleanup_interval <= timedelta(0):
            raise ValueError("cleanup_interval must be positive")

        self.cleanup_interval = cleanup_interval
        self._cleanup_task: asyncio.Task[None] | None = None
        self._closed = False
        self._lock = threading.Lock()
        self._sessions: dict[str, Session] = {}
        self._by_user: dict[str, set[str]] = {}
        self._invalidated_at: dict[str, datetime] = {}

    async def save(self, session: Session) -> None:
        """Store session in memory (overwrites an existing ID).

        Args:
            session: Session to save
        """
        with self._lock:
            previous = self._sessions.get(session.session_id)
            if previous is not None and previous.user_id != session.user_id:
                self._unindex(previous)

            self._sessions[session.session_id] = session
            self._by_user.setdefault(session.user_id, set()).add(session.session_id)
            self._invalidated_at.pop(session.session_id, None)
        self._ensure_cleanup_task()

    async def delete(self, session_id: str) -> None:
        """Soft delete: mark the session invalidated.

        Args:
            session_id: Session to delete
        """
        with self._lock:
            if session_id in self._sessions:
                self._invalidated_at.setdefault(session_id, datetime.now(timezone.utc))

    async def get_active_by_user(self, user_id: str) -> list[Session]:
        """List active sessions for user, most recent first.

        Args:
            user_id: User identifier

        Returns:
            List of sessions
        """
        now = datetime.now(timezone.utc)
        with self._lock:
            session_ids = self._by_user.get(user_id, ())
            active = [
                self._sessions[session_id]
                for session_id in session_ids
                if session_id not in self._invalidated_at
                and not self._sessions[session_id].is_expired(now)
            ]

        # Sort by most recent first
        active.sort(key=lambda s: s.created_at, reverse=True)
        return active

    async def close(self) -> None:
        """Stop the background purge."""
        self._closed = True
        await _cancel(self._cleanup_task)
        self._cleanup_task = None

    def invalidated_at(self, session_id: str) -> datetime | None:
        """When the session was soft deleted, or None.

        Useful for audit tooling and tests.
        """
        with self._lock:
            return self._invalidated_at.get(session_id)

    def purge_expired(self) -> int:
        """Physically remove expired and soft-deleted sessions.

        Retention jobs call this; active-visibility semantics are
        unaffected.

        Returns:
            Number of records removed
        """
        now = datetime.now(timezone.utc)
        with self._lock:
            dead = [
                session
                for session_id, session in self._sessions.items()
                if session_id in self._invalidated_at or session.is_expired(now)
            ]
            for session in dead:
                self._unindex(session)
                del self._sessions[session.session_id]
                self._invalidated_at.pop(session.session_id, None)
        return len(dead)

    def clear_all(self) -> None:
        """Clear all sessions from memory.

        Useful for testing.
        """
        with self._lock:
            self._sessions.clear()
            self._by_user.clear()
            self._invalidated_at.clear()

    def _unindex(self, session: Session) -> None:
        user_sessions = self._by_user.get(session.user_id)
        if user_sessions is None:
            return
        user_sessions.discard(session.session_id)
        if not user_sessions:
            del self._by_user[session.user_id]

    def _ensure_cleanup_task(self) -> None:
        if self._closed or (self._cleanup_task and not self._cleanup_task.done()):
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._cleanup_task = loop.create_task(self._cleanup_loop())

    async def _cleanup_loop(self) -> None:
        interval = self.cleanup_interval.total_seconds()
        while True:
            await asyncio.sleep(interval)
            try:
                removed = self.purge_expired()
            except Exception:
                logger.exception("Session store purge failed")
            else:
                if removed:
                    logger.debug("Purged %d expired or deleted sessions", removed)


class MemoryInvalidationCache(InvalidationCache):
    """In-memory invalidation ledger.

    Entries are dropped lazily when exists() sees them expired, and by a
    background sweep that runs every ``cleanup_interval``. The sweep scans
    in batches, releasing the lock between batches, so large ledgers never
    hold the lock for long.

    The sweep task starts on the first set() made inside a running event
    loop and is cancelled by close().

    Usage:
        ```python
        cache = MemoryInvalidationCache()
        await cache.set("session-1", timedelta(hours=24))
        assert await cache.exists("session-1")
        await cache.close()
        ```
    """

    def __init__(
        self,
        cleanup_interval: timedelta = DEFAULT_CLEANUP_INTERVAL,
        cleanup_batch_size: int = DEFAULT_CLEANUP_BATCH_SIZE,
    ) -> None:
        """Initialize in-memory cache.

        Args:
            cleanup_interval: Time between background sweeps
            cleanup_batch_size: Entries examined per lock acquisition
        """
        if cleanup_interval <= timedelta(0):
            raise ValueError("cleanup_interval must be positive")
        if cleanup_batch_size < 1:
            raise ValueError("cleanup_batch_size must be at least 1")

        self.cleanup_interval = cleanup_interval
        self.cleanup_batch_size = cleanup_batch_size
        self._lock = threading.Lock()
        self._entries: dict[str, datetime] = {}
        self._cleanup_task: asyncio.Task[None] | None = None
        self._closed = False

    async def set(self, session_id: str, ttl: timedelta) -> None:
        """Mark session ID invalidated until now + ttl.

        Args:
            session_id: Session to mark
            ttl: How long to remember the invalidation
        """
        validate_ttl(ttl)
        with self._lock:
            self._entries[session_id] = datetime.now(timezone.utc) + ttl
        self._ensure_cleanup_task()

    async def exists(self, session_id: str) -> bool:
        """Check whether session ID is invalidated and not expired.

        Args:
            session_id: Session to check

        Returns:
            True if invalidated and not expired
        """
        now = datetime.now(timezone.utc)
        with self._lock:
            expires_at = self._entries.get(session_id)
            if expires_at is None:
                return False
            if now >= expires_at:
                del self._entries[session_id]
                return False
            return True

    async def delete(self, session_id: str) -> None:
        """Remove an invalidation entry."""
        with self._lock:
            self._entries.pop(session_id, None)

    async def close(self) -> None:
        """Stop the background sweep."""
        self._closed = True
        await _cancel(self._cleanup_task)
        self._cleanup_task = None

    async def cleanup(self) -> int:
        """Remove expired entries in batches.

        Returns:
            Number of entries removed
        """
        with self._lock:
            keys = list(self._entries)

        removed = 0
        for start in range(0, len(keys), self.cleanup_batch_size):
            batch = keys[start : start + self.cleanup_batch_size]
            now = datetime.now(timezone.utc)
            with self._lock:
                for session_id in batch:
                    expires_at = self._entries.get(session_id)
                    if expires_at is not None and now >= expires_at:
                        del self._entries[session_id]
                        removed += 1
            # Let other coroutines run between batches
            await asyncio.sleep(0)

        if removed:
            logger.debug("Removed %d expired invalidation entries", removed)
        return removed

    def entry_count(self) -> int:
        """Number of entries currently held (including not-yet-swept expired ones)."""
        with self._lock:
            return len(self._entries)

    def _ensure_cleanup_task(self) -> None:
        if self._closed or (self._cleanup_task and not self._cleanup_task.done()):
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._cleanup_task = loop.create_task(self._cleanup_loop())

    async def _cleanup_loop(self) -> None:
        interval = self.cleanup_interval.total_seconds()
        while True:
            await asyncio.sleep(interval)
            try:
                await self.cleanup()
            except Exception:
                logger.exception("Invalidation cache sweep failed")


async def _cancel(task: asyncio.Task[None] | None) -> None:
    if task is None or task.done():
        return
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        if not task.cancelled():
            raise
