"""Session guard domain models.

Exports:
    - DeviceInfo, LocationInfo, Session: session snapshot types
    - RegistrationResult: outcome of a registration decision
    - SessionConfig: manager configuration
"""

from .config import DEFAULT_CONFIG, TESTING_CONFIG, SessionConfig
from .results import RegistrationResult
from .session import DeviceInfo, LocationInfo, Session

__all__ = [
    "DEFAULT_CONFIG",
    "TESTING_CONFIG",
    "DeviceInfo",
    "LocationInfo",
    "RegistrationResult",
    "Session",
    "SessionConfig",
]
