"""Logger audit backend - structured events via structlog.

Each audit event is a single structlog event carrying ``event_type`` and
the identifiers needed for forensics. Where the events end up (stdout,
JSON lines, a log shipper) is decided by structlog configuration, either
the app's own or configure_logging() below.
"""

import logging
import sys
from typing import Any

import structlog

from ..models.session import Session
from .base import SessionAuditBackend

DEFAULT_LOGGER_NAME = "session_guard.audit"


def configure_logging(use_json: bool = False, level: str = "INFO") -> None:
    """Configure structlog for audit output.

    Development gets the colored console renderer, CI and production get
    one JSON object per line.

    Args:
        use_json: JSON output when True, human-readable when False
        level: Minimum level name ("DEBUG", "INFO", ...)

    Raises:
        ValueError: If level is not a known logging level name
    """
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        raise ValueError(f"Unknown log level: {level}")

    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]

    if use_json:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=True,
    )


class LoggerAuditBackend(SessionAuditBackend):
    """Audit backend emitting structlog events.

    Levels:
        - session_created: info
        - session_rejected: warning
        - session_invalidated: warning
        - suspicious_activity: error

    Example:
        ```python
        configure_logging(use_json=True)
        audit = LoggerAuditBackend()
        manager = SessionManager(config, store, cache, audit=audit)
        ```
    """

    def __init__(self, logger_name: str = DEFAULT_LOGGER_NAME):
        """Initialize with logger name.

        Args:
            logger_name: Logger factory name, also bound as ``logger_name``
                on every event
        """
        self.logger_name = logger_name
        # Lazy proxy: picks up structlog configuration made after construction.
        # "logger" is reserved by structlog.wrap_logger.
        self.logger = structlog.get_logger(logger_name, logger_name=logger_name)

    async def log_session_created(
        self, session: Session, context: dict[str, Any]
    ) -> None:
        self.logger.info(
            "Session created",
            event_type="session_created",
            session_id=session.session_id,
            user_id=session.user_id,
            ip_address=session.device.ip,
            device_type=session.device.device_type,
            browser=session.device.browser,
            city=session.location.city,
            country=session.location.country,
            created_at=session.created_at.isoformat(),
            expires_at=session.expires_at.isoformat(),
            **context,
        )

    async def log_session_rejected(
        self, user_id: str, context: dict[str, Any]
    ) -> None:
        self.logger.warning(
            "Session rejected",
            event_type="session_rejected",
            user_id=user_id,
            **context,
        )

    async def log_session_invalidated(
        self, session_id: str, context: dict[str, Any]
    ) -> None:
        self.logger.warning(
            "Session invalidated",
            event_type="session_invalidated",
            session_id=session_id,
            **context,
        )

    async def log_suspicious_activity(
        self, session_id: str, event: str, context: dict[str, Any]
    ) -> None:
        self.logger.error(
            f"Suspicious activity: {event}",
            event_type="suspicious_activity",
            session_id=session_id,
            suspicious_event=event,
            **context,
        )
