"""Session audit backend abstract interface.

This module defines the SessionAuditBackend interface for tracking
session operations (security monitoring, compliance, forensics).
"""

from abc import ABC, abstractmethod
from typing import Any

from ..models.session import Session


class SessionAuditBackend(ABC):
    """Abstract audit backend for session operations.

    Tracks session lifecycle events for security monitoring,
    compliance (audit trails), and forensics (incident investigation).

    Design Pattern:
        - Single Responsibility: Only concerns audit logging
        - Interface Segregation: Minimal focused interface
        - Open-Closed: Add new audit backends without changing interface

    Implementations:
        - LoggerAuditBackend: structlog structured events
        - NoOpAuditBackend: No-op for testing
    """

    @abstractmethod
    async def log_session_created(
        self, session: Session, context: dict[str, Any]
    ) -> None:
        """Log session creation event.

        Args:
            session: Newly created session
            context: Additional context (active session count, etc.)
        """

    @abstractmethod
    async def log_session_rejected(
        self, user_id: str, context: dict[str, Any]
    ) -> None:
        """Log a registration refused by the concurrent session limit.

        Args:
            user_id: User whose registration was refused
            context: Limit details

        Examples:
            context = {
                "session_id": "abc123",
                "concurrent_limit": 3,
                "active_sessions": 3
            }
        """

    @abstractmethod
    async def log_session_invalidated(
        self, session_id: str, context: dict[str, Any]
    ) -> None:
        """Log session invalidation event.

        Args:
            session_id: Invalidated session ID
            context: Reason and invalidation TTL
        """

    @abstractmethod
    async def log_suspicious_activity(
        self, session_id: str, event: str, context: dict[str, Any]
    ) -> None:
        """Log suspicious activity detected.

        Args:
            session_id: Session involved
            event: Suspicious event type ("new_location", etc.)
            context: Event details

        Examples:
            context = {
                "user_id": "user-1",
                "previous_city": "New York",
                "current_city": "London",
                "distance_km": 5570.2
            }
        """
