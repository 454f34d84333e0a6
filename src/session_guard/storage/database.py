"""Database-agnostic session storage implementation.

Works with ANY SQLAlchemy async database (SQLite via aiosqlite, PostgreSQL
via asyncpg, MySQL via aiomysql). The default deployment is an embedded
SQLite file.

Provides:
    - Database: async engine + session factory wrapper
    - DatabaseSessionStore: SessionStore over the sessions table
    - DatabaseInvalidationCache: InvalidationCache over invalidated_sessions
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy import delete, event, insert, select, update
from sqlalchemy.dialects.mysql import insert as mysql_insert
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from ..errors import StorageUnavailableError
from ..models.session import DeviceInfo, LocationInfo, Session
from .base import InvalidationCache, SessionStore, validate_ttl
from .tables import Base, InvalidationRecord, SessionRecord

logger = logging.getLogger(__name__)


class Database:
    """Database connection and session management.

    This class manages the async engine and provides transactional
    sessions to the stores. It handles:
    - Connection pooling
    - Session lifecycle
    - Transaction management
    - WAL journaling for SQLite files (concurrent readers)

    Usage:
        db = Database("sqlite+aiosqlite:///session_guard.db")
        await db.create_all()
        async with db.get_session() as session:
            # Automatically commits on success, rolls back on error
            ...
    """

    def __init__(self, database_url: str, echo: bool = False, **engine_kwargs: Any):
        """Initialize database with connection parameters.

        Args:
            database_url: SQLAlchemy async URL (e.g., sqlite+aiosqlite:///x.db)
            echo: If True, log all SQL statements
            **engine_kwargs: Extra create_async_engine options (pool size, etc.)
        """
        self.database_url = database_url
        self.engine: AsyncEngine = create_async_engine(
            database_url,
            echo=echo,
            pool_pre_ping=True,  # Verify connections before use
            **engine_kwargs,
        )
        if self.engine.dialect.name == "sqlite":
            event.listen(self.engine.sync_engine, "connect", _enable_sqlite_wal)

        self.async_session = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )
        self._closed = False

    @asynccontextmanager
    async def get_session(self) -> AsyncGenerator[AsyncSession, None]:
        """Provide a transactional database session.

        This is a context manager that:
        - Creates a new session
        - Commits on successful exit
        - Rolls back on exception
        - Always closes the session

        Yields:
            AsyncSession: Database session for operations
        """
        async with self.async_session() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def create_all(self) -> None:
        """Create the session guard tables if they do not exist.

        Raises:
            StorageUnavailableError: If the database is unreachable
        """
        try:
            async with self.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        except SQLAlchemyError as e:
            raise StorageUnavailableError(
                "Failed to create session tables",
                details={"error": str(e)},
            ) from e

    async def drop_all(self) -> None:
        """Drop the session guard tables.

        Warning: This will delete all data! Only use for testing.
        """
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)

    async def close(self) -> None:
        """Close all database connections. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        await self.engine.dispose()


def _enable_sqlite_wal(dbapi_connection: Any, connection_record: Any) -> None:
    cursor = dbapi_connection.cursor()
    try:
        cursor.execute("PRAGMA journal_mode=WAL")
    finally:
        cursor.close()


def _record_to_session(record: SessionRecord) -> Session:
    return Session(
        session_id=record.session_id,
        user_id=record.user_id,
        device=DeviceInfo(
            ip=record.device_ip or "",
            user_agent=record.device_ua or "",
            browser=record.browser or "",
            os=record.os or "",
            device_type=record.device_type or "",
        ),
        location=LocationInfo(
            ip=record.loc_ip or "",
            city=record.loc_city or "",
            country=record.loc_country or "",
            latitude=record.loc_lat or 0.0,
            longitude=record.loc_lng or 0.0,
        ),
        created_at=record.created_at,
        ttl_seconds=record.ttl_seconds,
    )


def _session_values(session: Session) -> dict[str, Any]:
    return dict(
        session_id=session.session_id,
        user_id=session.user_id,
        device_ip=session.device.ip,
        device_ua=session.device.user_agent,
        browser=session.device.browser,
        os=session.device.os,
        device_type=session.device.device_type,
        loc_ip=session.location.ip,
        loc_city=session.location.city,
        loc_country=session.location.country,
        loc_lat=session.location.latitude,
        loc_lng=session.location.longitude,
        ttl_seconds=session.ttl_seconds,
        created_at=session.created_at,
        expires_at=session.expires_at,
        invalidated_at=None,
    )


async def _upsert(
    db: AsyncSession, model: type[Base], key: str, values: dict[str, Any]
) -> None:
    """Insert a row or overwrite the existing one in a single statement.

    SQLite, PostgreSQL and MySQL get their native upsert. Other dialects
    fall back to UPDATE, then INSERT inside a savepoint, retrying the
    UPDATE if a concurrent writer inserted first.
    """
    changes = {name: value for name, value in values.items() if name != key}
    dialect = db.get_bind().dialect.name

    if dialect in ("sqlite", "postgresql"):
        insert_ = sqlite_insert if dialect == "sqlite" else postgresql_insert
        stmt = insert_(model).values(values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[key],
            set_={name: stmt.excluded[name] for name in changes},
        )
        await db.execute(stmt)
        return
    if dialect in ("mysql", "mariadb"):
        stmt = mysql_insert(model).values(values)
        stmt = stmt.on_duplicate_key_update(
            {name: stmt.inserted[name] for name in changes}
        )
        await db.execute(stmt)
        return

    update_stmt = (
        update(model).where(getattr(model, key) == values[key]).values(changes)
    )
    result = await db.execute(update_stmt)
    if result.rowcount:
        return
    try:
        async with db.begin_nested():
            await db.execute(insert(model).values(values))
    except IntegrityError:
        await db.execute(update_stmt)


class DatabaseSessionStore(SessionStore):
    """Database-backed session store.

    Design Pattern:
        - Database-agnostic (SQLite, PostgreSQL, MySQL)
        - Soft delete: rows keep invalidated_at for audit
        - Atomic upsert (INSERT ... ON CONFLICT on SQLite and PostgreSQL,
          ON DUPLICATE KEY on MySQL) overwriting every column and clearing
          the soft-delete marker

    Example:
        ```python
        db = Database("sqlite+aiosqlite:///session_guard.db")
        await db.create_all()
        store = DatabaseSessionStore(db)
        ```

    Note:
        The store closes the Database it was given. When a store and a
        DatabaseInvalidationCache share one Database, closing both is safe.
    """

    def __init__(self, database: Database):
        """Initialize storage with a Database.

        Args:
            database: Database wrapper (engine + session factory)
        """
        self.db = database

    @classmethod
    async def from_url(
        cls, database_url: str, **engine_kwargs: Any
    ) -> "DatabaseSessionStore":
        """Create a store for a URL, creating tables if needed.

        Args:
            database_url: SQLAlchemy async URL
            **engine_kwargs: Extra engine options

        Returns:
            Ready-to-use store
        """
        database = Database(database_url, **engine_kwargs)
        await database.create_all()
        return cls(database)

    async def save(self, session: Session) -> None:
        """Upsert session row.

        Args:
            session: Session to save

        Raises:
            StorageUnavailableError: If database operation fails
        """
        try:
            async with self.db.get_session() as db:
                await _upsert(
                    db, SessionRecord, "session_id", _session_values(session)
                )
        except SQLAlchemyError as e:
            raise StorageUnavailableError(
                "Failed to save session",
                details={"session_id": session.session_id, "error": str(e)},
            ) from e

    async def delete(self, session_id: str) -> None:
        """Soft delete (sets invalidated_at once).

        Args:
            session_id: Session to delete

        Raises:
            StorageUnavailableError: If database operation fails
        """
        now = datetime.now(timezone.utc)
        try:
            async with self.db.get_session() as db:
                await db.execute(
                    update(SessionRecord)
                    .where(
                        SessionRecord.session_id == session_id,
                        SessionRecord.invalidated_at.is_(None),
                    )
                    .values(invalidated_at=now)
                )
        except SQLAlchemyError as e:
            raise StorageUnavailableError(
                "Failed to invalidate session",
                details={"session_id": session_id, "error": str(e)},
            ) from e

    async def get_active_by_user(self, user_id: str) -> list[Session]:
        """Query active sessions, most recent first.

        Args:
            user_id: User identifier

        Returns:
            List of sessions

        Raises:
            StorageUnavailableError: If database operation fails
        """
        now = datetime.now(timezone.utc)
        stmt = (
            select(SessionRecord)
            .where(
                SessionRecord.user_id == user_id,
                SessionRecord.expires_at > now,
                SessionRecord.invalidated_at.is_(None),
            )
            .order_by(SessionRecord.created_at.desc())
        )
        try:
            async with self.db.get_session() as db:
                result = await db.execute(stmt)
                records = list(result.scalars().all())
        except SQLAlchemyError as e:
            raise StorageUnavailableError(
                "Failed to query sessions",
                details={"user_id": user_id, "error": str(e)},
            ) from e

        return [_record_to_session(record) for record in records]

    async def get_invalidated_at(self, session_id: str) -> datetime | None:
        """Soft-delete timestamp for a session (audit helper)."""
        try:
            async with self.db.get_session() as db:
                result = await db.execute(
                    select(SessionRecord.invalidated_at).where(
                        SessionRecord.session_id == session_id
                    )
                )
                return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise StorageUnavailableError(
                "Failed to read session",
                details={"session_id": session_id, "error": str(e)},
            ) from e

    async def close(self) -> None:
        """Dispose the engine."""
        await self.db.close()


class DatabaseInvalidationCache(InvalidationCache):
    """Invalidation ledger stored in the invalidated_sessions table.

    Expired rows are ignored by exists() and removed by purge_expired().
    Entries are independent of the sessions table, so a session can be
    reported invalidated after its own row is purged.
    """

    def __init__(self, database: Database):
        """Initialize cache with a Database.

        Args:
            database: Database wrapper (may be shared with DatabaseSessionStore)
        """
        self.db = database

    async def set(self, session_id: str, ttl: timedelta) -> None:
        """Upsert ledger row with invalidated_until = now + ttl.

        Raises:
            StorageUnavailableError: If database operation fails
        """
        validate_ttl(ttl)
        now = datetime.now(timezone.utc)
        try:
            async with self.db.get_session() as db:
                await _upsert(
                    db,
                    InvalidationRecord,
                    "session_id",
                    {
                        "session_id": session_id,
                        "invalidated_at": now,
                        "invalidated_until": now + ttl,
                    },
                )
        except SQLAlchemyError as e:
            raise StorageUnavailableError(
                "Failed to set invalidation",
                details={"session_id": session_id, "error": str(e)},
            ) from e

    async def exists(self, session_id: str) -> bool:
        """Check for an unexpired ledger row.

        Raises:
            StorageUnavailableError: If database operation fails
        """
        now = datetime.now(timezone.utc)
        try:
            async with self.db.get_session() as db:
                result = await db.execute(
                    select(InvalidationRecord.session_id).where(
                        InvalidationRecord.session_id == session_id,
                        InvalidationRecord.invalidated_until > now,
                    )
                )
                return result.scalar_one_or_none() is not None
        except SQLAlchemyError as e:
            raise StorageUnavailableError(
                "Failed to check invalidation",
                details={"session_id": session_id, "error": str(e)},
            ) from e

    async def delete(self, session_id: str) -> None:
        """Remove a ledger row.

        Raises:
            StorageUnavailableError: If database operation fails
        """
        try:
            async with self.db.get_session() as db:
                await db.execute(
                    delete(InvalidationRecord).where(
                        InvalidationRecord.session_id == session_id
                    )
                )
        except SQLAlchemyError as e:
            raise StorageUnavailableError(
                "Failed to delete invalidation",
                details={"session_id": session_id, "error": str(e)},
            ) from e

    async def purge_expired(self) -> int:
        """Delete expired ledger rows.

        Returns:
            Number of rows deleted
        """
        now = datetime.now(timezone.utc)
        try:
            async with self.db.get_session() as db:
                result = await db.execute(
                    delete(InvalidationRecord).where(
                        InvalidationRecord.invalidated_until <= now
                    )
                )
                removed = result.rowcount or 0
        except SQLAlchemyError as e:
            raise StorageUnavailableError(
                "Failed to purge invalidations",
                details={"error": str(e)},
            ) from e

        if removed:
            logger.debug("Purged %d expired invalidation rows", removed)
        return removed

    async def close(self) -> None:
        """Dispose the engine."""
        await self.db.close()
