"""Session manager factory for dependency injection.

This module provides the factory functions that create fully-configured
SessionManager instances with all dependencies wired together.

Anything the application injects (store, cache, audit, locator, Redis
client) is used as-is; everything else is built from the configuration.
Defaults are resolved inside each call, never through module globals.

Usage:
    from session_guard.factory import create_session_manager
    from session_guard.models.config import SessionConfig

    manager = await create_session_manager(SessionConfig(storage_type="memory"))
"""

import logging

from redis.asyncio import Redis

from .audit.base import SessionAuditBackend
from .audit.logger import LoggerAuditBackend, configure_logging
from .audit.noop import NoOpAuditBackend
from .enrichers.base import LocationLocator
from .enrichers.geolocation import GeoIPLocator
from .models.config import DEFAULT_CONFIG, SessionConfig
from .service import SessionManager
from .settings import SessionGuardSettings, get_settings
from .storage.base import InvalidationCache, SessionStore
from .storage.cache import RedisInvalidationCache, RedisSessionStore
from .storage.database import (
    Database,
    DatabaseInvalidationCache,
    DatabaseSessionStore,
)
from .storage.memory import MemoryInvalidationCache, MemorySessionStore

logger = logging.getLogger(__name__)


async def create_session_manager(
    config: SessionConfig | None = None,
    *,
    store: SessionStore | None = None,
    invalidation_cache: InvalidationCache | None = None,
    audit: SessionAuditBackend | None = None,
    locator: LocationLocator | None = None,
    redis_client: Redis | None = None,
) -> SessionManager:
    """Create configured SessionManager instance.

    Args:
        config: Configuration (DEFAULT_CONFIG when omitted)
        store: Session store to use instead of building one
        invalidation_cache: Invalidation cache to use instead of building one
        audit: Audit backend to use instead of config.audit_type
        locator: Locator to use instead of config.geoip_database_path
        redis_client: Client for "redis" storage (required for it)

    Returns:
        Fully configured SessionManager instance

    Raises:
        ValueError: If required dependencies are missing for chosen config
        StorageUnavailableError: If the database tables cannot be created
        NotConfiguredError: If the GeoIP database cannot be opened

    Example:
        >>> manager = await create_session_manager(
        ...     SessionConfig(storage_type="memory"),
        ... )

    Example with an application-owned store:
        >>> manager = await create_session_manager(
        ...     store=DatabaseSessionStore(app_database),
        ... )
    """
    return await _create_session_manager(
        config or DEFAULT_CONFIG,
        store=store,
        invalidation_cache=invalidation_cache,
        audit=audit,
        locator=locator,
        redis_client=redis_client,
        owns_redis_client=False,
    )


async def create_session_manager_from_settings(
    settings: SessionGuardSettings | None = None,
) -> SessionManager:
    """Create a SessionManager from SESSION_GUARD_* environment settings.

    Configures structlog output when the logger audit backend is selected
    and opens a Redis client (owned by the manager) for "redis" storage.

    Args:
        settings: Settings instance (get_settings() when omitted)

    Returns:
        Fully configured SessionManager instance
    """
    settings = settings or get_settings()
    config = settings.to_config()

    if config.audit_type == "logger":
        configure_logging(use_json=settings.log_json, level=settings.log_level)

    redis_client = None
    if config.storage_type == "redis":
        redis_client = Redis.from_url(settings.redis_url)

    return await _create_session_manager(
        config,
        store=None,
        invalidation_cache=None,
        audit=None,
        locator=None,
        redis_client=redis_client,
        owns_redis_client=redis_client is not None,
    )


async def _create_session_manager(
    config: SessionConfig,
    *,
    store: SessionStore | None,
    invalidation_cache: InvalidationCache | None,
    audit: SessionAuditBackend | None,
    locator: LocationLocator | None,
    redis_client: Redis | None,
    owns_redis_client: bool,
) -> SessionManager:
    # Only resources built here are closed on failure; injected ones belong
    # to the caller
    built: list[SessionStore | InvalidationCache] = []
    if store is None:
        store, built_cache = await _create_storage(
            config, redis_client, owns_redis_client
        )
        built.append(store)
        # An injected cache wins; the unused built one holds no resources
        if invalidation_cache is None:
            invalidation_cache = built_cache
            built.append(built_cache)
    elif invalidation_cache is None:
        invalidation_cache = _create_memory_cache(config)
        built.append(invalidation_cache)

    if locator is None and config.geoip_database_path:
        try:
            locator = GeoIPLocator(config.geoip_database_path)
        except Exception:
            for resource in built:
                await resource.close()
            raise

    return SessionManager(
        config=config,
        store=store,
        invalidation_cache=invalidation_cache,
        audit=audit or _create_audit_backend(config),
        locator=locator,
    )


async def _create_storage(
    config: SessionConfig,
    redis_client: Redis | None,
    owns_redis_client: bool,
) -> tuple[SessionStore, InvalidationCache]:
    """Create store and invalidation cache based on configuration.

    Raises:
        ValueError: If storage_type is invalid or required dependencies missing
    """
    if config.storage_type == "database":
        database = Database(config.database_url)
        try:
            await database.create_all()
        except Exception:
            await database.close()
            raise
        logger.debug("Session tables ready at %s", config.database_url)
        return DatabaseSessionStore(database), DatabaseInvalidationCache(database)
    elif config.storage_type == "memory":
        return (
            MemorySessionStore(cleanup_interval=config.cache_cleanup_interval),
            _create_memory_cache(config),
        )
    elif config.storage_type == "redis":
        if redis_client is None:
            raise ValueError("redis_client is required for 'redis' storage")
        # Store and cache share one client; only the store may close it
        return (
            RedisSessionStore(redis_client, close_client=owns_redis_client),
            RedisInvalidationCache(redis_client),
        )
    else:
        raise ValueError(
            f"Invalid storage_type: {config.storage_type}. "
            "Must be 'database', 'memory', or 'redis'"
        )


def _create_memory_cache(config: SessionConfig) -> MemoryInvalidationCache:
    return MemoryInvalidationCache(cleanup_interval=config.cache_cleanup_interval)


def _create_audit_backend(config: SessionConfig) -> SessionAuditBackend:
    """Create audit backend based on configuration.

    Raises:
        ValueError: If audit_type is invalid
    """
    if config.audit_type == "logger":
        return LoggerAuditBackend()
    elif config.audit_type == "noop":
        return NoOpAuditBackend()
    else:
        raise ValueError(
            f"Invalid audit_type: {config.audit_type}. Must be 'logger' or 'noop'"
        )
