"""Session audit backends."""

from .base import SessionAuditBackend
from .logger import LoggerAuditBackend, configure_logging
from .noop import NoOpAuditBackend

__all__ = [
    "LoggerAuditBackend",
    "NoOpAuditBackend",
    "SessionAuditBackend",
    "configure_logging",
]
