"""
Environment-driven configuration using Pydantic Settings.

Every field maps to a SESSION_GUARD_* environment variable (or an entry in
an optional .env file) and converts to a SessionConfig with to_config().

Usage:
    from session_guard.settings import get_settings

    settings = get_settings()
    config = settings.to_config()
"""

from datetime import timedelta
from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .models.config import DEFAULT_DATABASE_URL, SessionConfig


class SessionGuardSettings(BaseSettings):
    """
    Session guard settings (flat structure).

    Configuration precedence:
        1. Environment variables (SESSION_GUARD_ prefix)
        2. .env file in the working directory
        3. Default values
    """

    session_ttl_seconds: int = Field(
        default=86400,
        gt=0,
        description="How long sessions remain active",
    )
    invalidation_ttl_seconds: int | None = Field(
        default=None,
        gt=0,
        description="How long revocations are remembered (default: session TTL)",
    )
    new_location_threshold_km: float = Field(
        default=100.0,
        ge=0,
        description="Distance that triggers a new-location alert",
    )
    storage_type: Literal["database", "memory", "redis"] = Field(
        default="database",
        description="Session storage backend",
    )
    audit_type: Literal["logger", "noop"] = Field(
        default="logger",
        description="Audit backend",
    )
    database_url: str = Field(
        default=DEFAULT_DATABASE_URL,
        description="SQLAlchemy async URL for database storage",
    )
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis URL for redis storage",
    )
    geoip_database_path: str | None = Field(
        default=None,
        description="Path to a MaxMind GeoLite2-City.mmdb file",
    )
    cache_cleanup_interval_seconds: int = Field(
        default=172800,
        gt=0,
        description="Sweep interval of the in-memory invalidation cache",
    )
    serialize_registrations: bool = Field(
        default=False,
        description="Serialize registrations per user within one process",
    )
    log_json: bool = Field(
        default=False,
        description="Render audit events as JSON lines",
    )
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )

    model_config = SettingsConfigDict(
        env_prefix="SESSION_GUARD_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """
        Normalize and validate the log level name.

        Raises:
            ValueError: If the level is not a standard logging level.
        """
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Invalid log_level: {v}")
        return level

    @field_validator("geoip_database_path")
    @classmethod
    def empty_path_is_none(cls, v: str | None) -> str | None:
        """Treat an empty GeoIP path as not configured."""
        return v or None

    def to_config(self) -> SessionConfig:
        """Build the SessionConfig these settings describe."""
        invalidation_ttl = (
            timedelta(seconds=self.invalidation_ttl_seconds)
            if self.invalidation_ttl_seconds is not None
            else None
        )
        return SessionConfig(
            session_ttl=timedelta(seconds=self.session_ttl_seconds),
            invalidation_ttl=invalidation_ttl,
            new_location_threshold_km=self.new_location_threshold_km,
            storage_type=self.storage_type,
            database_url=self.database_url,
            geoip_database_path=self.geoip_database_path,
            audit_type=self.audit_type,
            cache_cleanup_interval=timedelta(
                seconds=self.cache_cleanup_interval_seconds
            ),
            serialize_registrations=self.serialize_registrations,
        )


@lru_cache
def get_settings() -> SessionGuardSettings:
    """
    Get cached settings instance.

    Loaded once per process; call get_settings.cache_clear() in tests
    after changing the environment.
    """
    return SessionGuardSettings()
