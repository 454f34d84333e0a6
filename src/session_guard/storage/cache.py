"""Redis-backed session storage implementation.

Uses redis.asyncio. Sessions are serialized to JSON; Redis key expiry
drives physical eviction while reads still check expires_at themselves.

Key layout (prefix defaults to "session_guard:"):
    {prefix}session:{session_id}      JSON record, TTL = remaining lifetime
    {prefix}user:{user_id}            sorted set of session IDs by created_at
    {prefix}invalidated:{session_id}  "1", TTL = invalidation TTL
"""

import json
import math
from datetime import datetime, timedelta, timezone
from typing import Any

from redis.asyncio import Redis
from redis.asyncio.client import Pipeline
from redis.exceptions import RedisError

from ..errors import StorageUnavailableError
from ..models.session import Session
from .base import InvalidationCache, SessionStore, validate_ttl

DEFAULT_KEY_PREFIX = "session_guard:"


class RedisSessionStore(SessionStore):
    """Redis session store.

    Design Pattern:
        - App provides the Redis client (connection pooling is the app's concern)
        - Package handles serialization and the per-user index
        - Soft delete: the JSON record gains an invalidated_at field and
          lives until its natural expiry
        - save and delete run as WATCH/MULTI transactions, retried when a
          concurrent writer touches the same keys

    Example:
        ```python
        from redis.asyncio import Redis

        redis_client = Redis.from_url("redis://localhost")
        store = RedisSessionStore(redis_client)
        ```
    """

    def __init__(
        self,
        redis_client: Redis,
        key_prefix: str = DEFAULT_KEY_PREFIX,
        close_client: bool = False,
    ):
        """Initialize with app's Redis client.

        Args:
            redis_client: redis.asyncio client
            key_prefix: Prefix for every key (typically ends with a colon)
            close_client: Close the client when the store is closed
        """
        self.redis = redis_client
        self.key_prefix = key_prefix
        self.close_client = close_client
        self._closed = False

    def _session_key(self, session_id: str) -> str:
        """Generate cache key for session (e.g., "session_guard:session:abc123")."""
        return f"{self.key_prefix}session:{session_id}"

    def _user_sessions_key(self, user_id: str) -> str:
        """Generate key for user's session index (e.g., "session_guard:user:u1")."""
        return f"{self.key_prefix}user:{user_id}"

    async def save(self, session: Session) -> None:
        """Serialize and store session with TTL, and index it by user.

        Args:
            session: Session to save

        Raises:
            StorageUnavailableError: If Redis fails
        """
        key = self._session_key(session.session_id)
        user_key = self._user_sessions_key(session.user_id)
        ttl_ms = _remaining_ms(session.expires_at)

        async def write(pipe: Pipeline) -> None:
            previous = _parse(await pipe.get(key))
            # Index outlives its longest-lived member (-2: missing, -1: no TTL)
            index_ttl_ms = max(await pipe.pttl(user_key), ttl_ms)

            pipe.multi()
            if previous is not None and previous["user_id"] != session.user_id:
                pipe.zrem(
                    self._user_sessions_key(previous["user_id"]), session.session_id
                )
            pipe.set(key, json.dumps(session.to_dict()), px=ttl_ms)
            pipe.zadd(user_key, {session.session_id: session.created_at.timestamp()})
            pipe.pexpire(user_key, index_ttl_ms)

        try:
            # WATCH both keys; redis-py retries the callback if either changes
            await self.redis.transaction(write, key, user_key)
        except RedisError as e:
            raise StorageUnavailableError(
                "Failed to save session",
                details={"session_id": session.session_id, "error": str(e)},
            ) from e

    async def delete(self, session_id: str) -> None:
        """Soft delete: record invalidated_at, keep remaining TTL.

        Args:
            session_id: Session to delete

        Raises:
            StorageUnavailableError: If Redis fails
        """
        key = self._session_key(session_id)

        async def mark_invalidated(pipe: Pipeline) -> None:
            data = _parse(await pipe.get(key))
            pipe.multi()
            if data is None or data.get("invalidated_at"):
                return

            data["invalidated_at"] = datetime.now(timezone.utc).isoformat()
            # keepttl preserves the record's natural expiry
            pipe.set(key, json.dumps(data), keepttl=True, xx=True)
            pipe.zrem(self._user_sessions_key(data["user_id"]), session_id)

        try:
            await self.redis.transaction(mark_invalidated, key)
        except RedisError as e:
            raise StorageUnavailableError(
                "Failed to invalidate session",
                details={"session_id": session_id, "error": str(e)},
            ) from e

    async def get_active_by_user(self, user_id: str) -> list[Session]:
        """List active sessions for user, most recent first.

        Index members whose records have disappeared are pruned.

        Args:
            user_id: User identifier

        Returns:
            List of sessions

        Raises:
            StorageUnavailableError: If Redis fails
        """
        user_key = self._user_sessions_key(user_id)
        now = datetime.now(timezone.utc)

        try:
            session_ids = [
                _decode(member) for member in await self.redis.zrange(user_key, 0, -1)
            ]
            if not session_ids:
                return []

            values = await self.redis.mget(
                [self._session_key(session_id) for session_id in session_ids]
            )

            active: list[Session] = []
            stale: list[str] = []
            for session_id, value in zip(session_ids, values):
                if value is None:
                    stale.append(session_id)
                    continue
                data = json.loads(_decode(value))
                if data.get("invalidated_at") or data.get("user_id") != user_id:
                    stale.append(session_id)
                    continue
                session = Session.from_dict(data)
                if session.is_expired(now):
                    stale.append(session_id)
                    continue
                active.append(session)

            if stale:
                await self.redis.zrem(user_key, *stale)
        except RedisError as e:
            raise StorageUnavailableError(
                "Failed to query sessions",
                details={"user_id": user_id, "error": str(e)},
            ) from e

        active.sort(key=lambda s: s.created_at, reverse=True)
        return active

    async def close(self) -> None:
        """Close the client if this store owns it."""
        if self._closed:
            return
        self._closed = True
        if self.close_client:
            await self.redis.aclose()


class RedisInvalidationCache(InvalidationCache):
    """Invalidation ledger using native Redis key expiry.

    Example:
        ```python
        cache = await RedisInvalidationCache.from_url("redis://localhost:6379/0")
        await cache.set("session-1", timedelta(hours=24))
        ```
    """

    def __init__(
        self,
        redis_client: Redis,
        key_prefix: str = DEFAULT_KEY_PREFIX,
        close_client: bool = False,
    ):
        """Initialize with app's Redis client.

        Args:
            redis_client: redis.asyncio client
            key_prefix: Prefix for every key (typically ends with a colon)
            close_client: Close the client when the cache is closed
        """
        self.redis = redis_client
        self.key_prefix = key_prefix
        self.close_client = close_client
        self._closed = False

    @classmethod
    async def from_url(
        cls, url: str, key_prefix: str = DEFAULT_KEY_PREFIX
    ) -> "RedisInvalidationCache":
        """Connect to Redis and verify the connection with PING.

        Args:
            url: Redis URL (e.g., redis://localhost:6379/0)
            key_prefix: Prefix for every key

        Returns:
            Cache owning its client

        Raises:
            StorageUnavailableError: If Redis is unreachable
        """
        client = Redis.from_url(url)
        try:
            await client.ping()
        except RedisError as e:
            await client.aclose()
            raise StorageUnavailableError(
                "Failed to connect to Redis", details={"error": str(e)}
            ) from e
        return cls(client, key_prefix=key_prefix, close_client=True)

    def _key(self, session_id: str) -> str:
        return f"{self.key_prefix}invalidated:{session_id}"

    async def set(self, session_id: str, ttl: timedelta) -> None:
        """Mark invalidated with TTL (refreshes an existing entry).

        Raises:
            StorageUnavailableError: If Redis fails
        """
        validate_ttl(ttl)
        ttl_ms = max(1, math.ceil(ttl.total_seconds() * 1000))
        try:
            await self.redis.set(self._key(session_id), "1", px=ttl_ms)
        except RedisError as e:
            raise StorageUnavailableError(
                "Failed to set invalidation",
                details={"session_id": session_id, "error": str(e)},
            ) from e

    async def exists(self, session_id: str) -> bool:
        """Check whether the invalidation key is present.

        Raises:
            StorageUnavailableError: If Redis fails
        """
        try:
            return await self.redis.exists(self._key(session_id)) > 0
        except RedisError as e:
            raise StorageUnavailableError(
                "Failed to check invalidation",
                details={"session_id": session_id, "error": str(e)},
            ) from e

    async def delete(self, session_id: str) -> None:
        """Remove an invalidation entry (useful for testing and admin tools)."""
        try:
            await self.redis.delete(self._key(session_id))
        except RedisError as e:
            raise StorageUnavailableError(
                "Failed to delete invalidation",
                details={"session_id": session_id, "error": str(e)},
            ) from e

    async def close(self) -> None:
        """Close the client if this cache owns it."""
        if self._closed:
            return
        self._closed = True
        if self.close_client:
            await self.redis.aclose()


def _remaining_ms(expires_at: datetime) -> int:
    remaining = (expires_at - datetime.now(timezone.utc)).total_seconds()
    # Redis rejects non-positive expiries; already-expired sessions get 1 ms
    return max(1, math.ceil(remaining * 1000))


def _parse(value: bytes | str | None) -> dict[str, Any] | None:
    return None if value is None else json.loads(_decode(value))


def _decode(value: bytes | str) -> str:
    return value.decode("utf-8") if isinstance(value, bytes) else value
