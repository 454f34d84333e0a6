"""Session storage abstract interfaces.

This module defines the two capability sets every backend must provide:

- SessionStore: durable session records and the "active sessions" query
- InvalidationCache: the TTL-bounded ledger of revoked session IDs

The session manager depends only on these abstractions; concrete variants
(memory, database, redis) are interchangeable.
"""

from abc import ABC, abstractmethod
from datetime import timedelta

from ..errors import InvalidInputError
from ..models.session import Session


class SessionStore(ABC):
    """Abstract interface for session storage implementations.

    All storage backends (database, redis, memory) must implement this
    interface and be safe for concurrent callers. Each individual operation
    must be atomic: no caller may ever observe a partially written record.

    Design Pattern:
        - Open-Closed Principle: Add new storage without modifying this interface
        - Liskov Substitution: All implementations are interchangeable
        - Dependency Inversion: SessionManager depends on this abstraction

    Implementations:
        - MemorySessionStore: In-memory dicts (reference implementation)
        - DatabaseSessionStore: Any SQLAlchemy async database (default: SQLite)
        - RedisSessionStore: Redis keys plus a per-user sorted set
    """

    @abstractmethod
    async def save(self, session: Session) -> None:
        """Persist a session.

        An existing record with the same session_id is overwritten
        (upsert, not an error).

        Args:
            session: Session to save

        Raises:
            StorageUnavailableError: If the backend fails
        """

    @abstractmethod
    async def delete(self, session_id: str) -> None:
        """Remove a session from active visibility.

        Built-in backends soft delete (mark invalidated, keep the record for
        audit). Deleting an unknown ID is a no-op.

        Args:
            session_id: Session to delete

        Raises:
            StorageUnavailableError: If the backend fails
        """

    @abstractmethod
    async def get_active_by_user(self, user_id: str) -> list[Session]:
        """List the user's non-expired, non-deleted sessions.

        Args:
            user_id: User identifier

        Returns:
            Sessions ordered by created_at descending (index 0 is the most
            recent). Empty list for unknown users.

        Raises:
            StorageUnavailableError: If the backend fails
        """

    @abstractmethod
    async def close(self) -> None:
        """Release backend resources. Safe to call more than once."""

    async def __aenter__(self) -> "SessionStore":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()


class InvalidationCache(ABC):
    """Abstract interface for the invalidated-session ledger.

    Entries expire on their own TTL, independent of the session's TTL. Once
    an entry expires the revocation may be forgotten.

    Implementations:
        - MemoryInvalidationCache: dict + periodic sweep
        - DatabaseInvalidationCache: invalidated_sessions table
        - RedisInvalidationCache: native Redis key expiry
    """

    @abstractmethod
    async def set(self, session_id: str, ttl: timedelta) -> None:
        """Mark a session ID as invalidated until now + ttl.

        Calling again for the same ID refreshes the expiry.

        Args:
            session_id: Session to mark
            ttl: How long to remember the invalidation

        Raises:
            InvalidInputError: If ttl is not positive
            StorageUnavailableError: If the backend fails
        """

    @abstractmethod
    async def exists(self, session_id: str) -> bool:
        """Check whether the session ID is invalidated and not yet expired.

        Args:
            session_id: Session to check

        Returns:
            True if invalidated and the TTL has not elapsed

        Raises:
            StorageUnavailableError: If the backend fails
        """

    @abstractmethod
    async def delete(self, session_id: str) -> None:
        """Forget an invalidation before its TTL elapses.

        Used by admin tooling and tests. Deleting an unknown ID is a no-op.

        Args:
            session_id: Session to forget

        Raises:
            StorageUnavailableError: If the backend fails
        """

    @abstractmethod
    async def close(self) -> None:
        """Release backend resources. Safe to call more than once."""

    async def __aenter__(self) -> "InvalidationCache":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()


def validate_ttl(ttl: timedelta) -> None:
    """Reject non-positive invalidation TTLs."""
    if ttl <= timedelta(0):
        raise InvalidInputError("ttl must be positive", details={"ttl": str(ttl)})
