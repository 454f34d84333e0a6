"""Session Guard Package.

A framework-agnostic, async session guard: concurrent session limits,
new-location alerts and session revocation over pluggable storage.

Key Features:
    - Storage-agnostic (memory, SQLAlchemy async database, Redis)
    - Independent invalidation ledger with its own TTL
    - Haversine-based new-location detection
    - Pluggable audit backends (structlog / no-op)
    - Optional device parsing and MaxMind GeoIP lookup

Usage:
    ```python
    from session_guard import SessionConfig, create_session_manager

    manager = await create_session_manager(SessionConfig(storage_type="memory"))
    device, location = manager.extract_request_info(headers, remote_addr)
    result = await manager.register_session(
        "user-1", "sess-abc", device, location, concurrent_limit=3
    )
    ```
"""

from .errors import (
    ErrorCode,
    GeoIPLookupError,
    InvalidInputError,
    NotConfiguredError,
    SessionGuardError,
    SessionInvalidatedError,
    SessionLimitExceededError,
    StorageUnavailableError,
)
from .factory import create_session_manager, create_session_manager_from_settings
from .models import (
    DEFAULT_CONFIG,
    TESTING_CONFIG,
    DeviceInfo,
    LocationInfo,
    RegistrationResult,
    Session,
    SessionConfig,
)
from .service import SessionManager

__version__ = "0.1.0"

__all__ = [
    "DEFAULT_CONFIG",
    "TESTING_CONFIG",
    "DeviceInfo",
    "ErrorCode",
    "GeoIPLookupError",
    "InvalidInputError",
    "LocationInfo",
    "NotConfiguredError",
    "RegistrationResult",
    "Session",
    "SessionConfig",
    "SessionGuardError",
    "SessionInvalidatedError",
    "SessionLimitExceededError",
    "SessionManager",
    "StorageUnavailableError",
    "__version__",
    "create_session_manager",
    "create_session_manager_from_settings",
]
