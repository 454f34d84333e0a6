"""Database models for the relational backend.

Two tables:
- sessions: one row per session, soft deleted via invalidated_at
- invalidated_sessions: the revocation ledger with its own expiry

Timestamps are stored as naive UTC (portable across SQLite, MySQL and
PostgreSQL) and returned timezone-aware.

Note: The package creates these tables for the embedded SQLite default.
Deployments on a shared database should manage schema with their own
migrations.
"""

from datetime import datetime, timezone

from sqlalchemy import DateTime, Float, Index, Integer, String, Text, TypeDecorator
from sqlalchemy.engine import Dialect
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class UTCDateTime(TypeDecorator[datetime]):
    """DateTime column that always round-trips timezone-aware UTC values."""

    impl = DateTime
    cache_ok = True

    def process_bind_param(
        self, value: datetime | None, dialect: Dialect
    ) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.replace(tzinfo=None)

    def process_result_value(
        self, value: datetime | None, dialect: Dialect
    ) -> datetime | None:
        if value is None:
            return None
        return value.replace(tzinfo=timezone.utc)


class Base(DeclarativeBase):
    """Declarative base for session guard tables."""


class SessionRecord(Base):
    """Session row.

    Fields mirror Session plus the derived expires_at (written alongside
    created_at and ttl_seconds so the active query can use the index) and
    the nullable soft-delete marker invalidated_at.

    Indexes:
        - idx_sessions_user_active: (user_id, expires_at, invalidated_at)
          for the active-session query
    """

    __tablename__ = "sessions"

    session_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False)

    # Device
    device_ip: Mapped[str] = mapped_column(String(45), default="")
    device_ua: Mapped[str] = mapped_column(Text, default="")
    browser: Mapped[str] = mapped_column(String(100), default="")
    os: Mapped[str] = mapped_column(String(100), default="")
    device_type: Mapped[str] = mapped_column(String(20), default="")

    # Location (0,0 = coordinates unknown)
    loc_ip: Mapped[str] = mapped_column(String(45), default="")
    loc_city: Mapped[str] = mapped_column(String(100), default="")
    loc_country: Mapped[str] = mapped_column(String(100), default="")
    loc_lat: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    loc_lng: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)

    # Lifetime
    ttl_seconds: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    invalidated_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime, nullable=True, default=None
    )

    __table_args__ = (
        Index("idx_sessions_user_active", "user_id", "expires_at", "invalidated_at"),
    )


class InvalidationRecord(Base):
    """Revocation ledger row."""

    __tablename__ = "invalidated_sessions"

    session_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    invalidated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    invalidated_until: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, index=True
    )
