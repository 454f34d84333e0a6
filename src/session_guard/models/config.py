"""Session guard configuration models.

This module provides the type-safe configuration for the session manager:
session and invalidation TTLs, the new-location threshold, and which
storage/audit backends the factory wires when none are injected.

Configuration can be provided via:
- Direct instantiation (for testing)
- Environment variables (see session_guard.settings)
"""

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Literal

logger = logging.getLogger(__name__)

DEFAULT_SESSION_TTL = timedelta(hours=24)
DEFAULT_THRESHOLD_KM = 100.0
DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///session_guard.db"
DEFAULT_CLEANUP_INTERVAL = timedelta(hours=48)


@dataclass
class SessionConfig:
    """Session manager configuration.

    Attributes:
        session_ttl: How long sessions remain active (default: 24 hours)
        invalidation_ttl: How long invalidations are remembered
            (default: same as session_ttl). Should be at least session_ttl,
            otherwise a revoked session ID could be forgotten before the
            session itself would have expired.
        new_location_threshold_km: Distance that triggers a new-location
            alert (default: 100 km). 0 flags any movement.
        storage_type: Backend built when no store is injected
            ("database", "memory", "redis")
        database_url: SQLAlchemy async URL for "database" storage
            (default: embedded SQLite file session_guard.db)
        geoip_database_path: Path to a MaxMind GeoLite2-City.mmdb file
        audit_type: Audit backend ("logger", "noop")
        cache_cleanup_interval: Sweep interval of the in-memory
            invalidation cache (default: 48 hours)
        serialize_registrations: Serialize registrations per user inside
            this process so concurrent logins cannot overshoot the limit

    Example:
        >>> config = SessionConfig(
        ...     session_ttl=timedelta(hours=12),
        ...     storage_type="memory",
        ... )
        >>> config.invalidation_ttl
        datetime.timedelta(seconds=43200)
    """

    # Session lifecycle
    session_ttl: timedelta = DEFAULT_SESSION_TTL
    invalidation_ttl: timedelta | None = None
    new_location_threshold_km: float = DEFAULT_THRESHOLD_KM

    # Backend configuration
    storage_type: Literal["database", "memory", "redis"] = "database"
    database_url: str = DEFAULT_DATABASE_URL
    geoip_database_path: str | None = None
    audit_type: Literal["logger", "noop"] = "logger"

    # Invalidation cache housekeeping
    cache_cleanup_interval: timedelta = DEFAULT_CLEANUP_INTERVAL

    # Hardening
    serialize_registrations: bool = False

    def __post_init__(self) -> None:
        """Validate configuration and resolve derived defaults.

        Raises:
            ValueError: If configuration is invalid
        """
        if self.session_ttl <= timedelta(0):
            raise ValueError("session_ttl must be positive")
        if self.invalidation_ttl is None:
            self.invalidation_ttl = self.session_ttl
        if self.invalidation_ttl <= timedelta(0):
            raise ValueError("invalidation_ttl must be positive")
        if self.new_location_threshold_km < 0:
            raise ValueError("new_location_threshold_km must not be negative")
        if self.cache_cleanup_interval <= timedelta(0):
            raise ValueError("cache_cleanup_interval must be positive")
        if self.storage_type not in ("database", "memory", "redis"):
            raise ValueError(
                f"Invalid storage_type: {self.storage_type}. "
                "Must be 'database', 'memory', or 'redis'"
            )
        if self.audit_type not in ("logger", "noop"):
            raise ValueError(
                f"Invalid audit_type: {self.audit_type}. Must be 'logger' or 'noop'"
            )

        if self.invalidation_ttl < self.session_ttl:
            logger.warning(
                "invalidation_ttl (%s) is shorter than session_ttl (%s); "
                "revoked session IDs may be forgotten before they expire",
                self.invalidation_ttl,
                self.session_ttl,
            )

    @property
    def session_ttl_seconds(self) -> int:
        return int(self.session_ttl.total_seconds())


# Default configurations for common scenarios

DEFAULT_CONFIG = SessionConfig()

TESTING_CONFIG = SessionConfig(
    session_ttl=timedelta(minutes=5),  # Short TTL for tests
    storage_type="memory",  # Isolated in-memory storage
    audit_type="noop",  # No audit noise in tests
)
