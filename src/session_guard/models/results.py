"""Registration decision record."""

from dataclasses import dataclass, field
from typing import Any

from ..errors import SessionLimitExceededError
from .session import LocationInfo, Session


@dataclass
class RegistrationResult:
    """Outcome of SessionManager.register_session (not persisted).

    Attributes:
        session: Newly created session, None when the limit was exceeded.
        is_new_location: True if the login came from a new location.
        previous_location: Location compared against; only set when
            is_new_location is True.
        active_sessions: User's active sessions after the decision, newest
            first (includes the new session when it was admitted).
        limit_exceeded: True if the concurrent session limit was reached.
            The new session was NOT saved in that case.
    """

    session: Session | None = None
    is_new_location: bool = False
    previous_location: LocationInfo | None = None
    active_sessions: list[Session] = field(default_factory=list)
    limit_exceeded: bool = False

    def raise_for_limit(self) -> "RegistrationResult":
        """Raise if the registration was rejected, otherwise return self.

        Raises:
            SessionLimitExceededError: If limit_exceeded is True.
        """
        if self.limit_exceeded:
            raise SessionLimitExceededError(
                "Concurrent session limit exceeded",
                details={"active_sessions": len(self.active_sessions)},
            )
        return self

    def to_dict(self) -> dict[str, Any]:
        return {
            "session": self.session.to_dict() if self.session else None,
            "is_new_location": self.is_new_location,
            "previous_location": (
                self.previous_location.to_dict() if self.previous_location else None
            ),
            "active_sessions": [s.to_dict() for s in self.active_sessions],
            "limit_exceeded": self.limit_exceeded,
        }
