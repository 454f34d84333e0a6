"""No-op audit backend - does nothing.

Useful for testing and development when audit logging is not needed.
Default backend if no audit configured.
"""

from typing import Any

from ..models.session import Session
from .base import SessionAuditBackend


class NoOpAuditBackend(SessionAuditBackend):
    """No-op audit backend.

    Use Cases:
        - Testing (don't want audit noise)
        - Default fallback (if app doesn't configure audit)
    """

    async def log_session_created(
        self, session: Session, context: dict[str, Any]
    ) -> None:
        pass

    async def log_session_rejected(
        self, user_id: str, context: dict[str, Any]
    ) -> None:
        pass

    async def log_session_invalidated(
        self, session_id: str, context: dict[str, Any]
    ) -> None:
        pass

    async def log_suspicious_activity(
        self, session_id: str, event: str, context: dict[str, Any]
    ) -> None:
        pass
