"""Session domain models.

Sessions are immutable snapshots taken at registration time: the device and
location the client presented, when the session was created, and how long it
lives. Nothing about a session changes after creation; it ends either by
passing its expiry or by explicit invalidation.

A LocationInfo with latitude == longitude == 0 means "coordinates unknown".
The sentinel must survive every serialization format, so both fields default
to 0.0 rather than None.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any


@dataclass(frozen=True, slots=True)
class DeviceInfo:
    """Client device snapshot.

    Attributes:
        ip: Client IP address.
        user_agent: Raw User-Agent header.
        browser: Browser family and version (e.g. "Chrome 120.0.0").
        os: Operating system family and version (e.g. "Mac OS X 10.15.7").
        device_type: "mobile", "tablet", "desktop", "bot" or empty.
    """

    ip: str = ""
    user_agent: str = ""
    browser: str = ""
    os: str = ""
    device_type: str = ""

    def to_dict(self) -> dict[str, str]:
        return {
            "ip": self.ip,
            "user_agent": self.user_agent,
            "browser": self.browser,
            "os": self.os,
            "device_type": self.device_type,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DeviceInfo":
        return cls(
            ip=data.get("ip") or "",
            user_agent=data.get("user_agent") or "",
            browser=data.get("browser") or "",
            os=data.get("os") or "",
            device_type=data.get("device_type") or "",
        )


@dataclass(frozen=True, slots=True)
class LocationInfo:
    """Geographic location snapshot resolved from an IP address.

    Attributes:
        ip: IP address the location was resolved from.
        city: City name (may be empty).
        country: Country name (may be empty).
        latitude: Latitude in degrees, 0.0 if unknown.
        longitude: Longitude in degrees, 0.0 if unknown.
    """

    ip: str = ""
    city: str = ""
    country: str = ""
    latitude: float = 0.0
    longitude: float = 0.0

    @property
    def has_coordinates(self) -> bool:
        """False when both coordinates carry the 0,0 "unknown" sentinel."""
        return not (self.latitude == 0 and self.longitude == 0)

    def to_dict(self) -> dict[str, Any]:
        return {
            "ip": self.ip,
            "city": self.city,
            "country": self.country,
            "latitude": self.latitude,
            "longitude": self.longitude,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LocationInfo":
        return cls(
            ip=data.get("ip") or "",
            city=data.get("city") or "",
            country=data.get("country") or "",
            latitude=float(data.get("latitude") or 0.0),
            longitude=float(data.get("longitude") or 0.0),
        )


@dataclass(frozen=True, slots=True)
class Session:
    """One authenticated client instance.

    ``expires_at`` is derived from ``created_at`` and ``ttl_seconds`` and is
    never stored independently of them.

    Attributes:
        session_id: Caller-supplied unique identifier.
        user_id: Owning user (many sessions per user).
        device: Device snapshot at creation time.
        location: Location snapshot at creation time.
        created_at: Creation timestamp (timezone-aware UTC).
        ttl_seconds: Lifetime in seconds.
    """

    session_id: str
    user_id: str
    device: DeviceInfo = field(default_factory=DeviceInfo)
    location: LocationInfo = field(default_factory=LocationInfo)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    ttl_seconds: int = 0

    @property
    def expires_at(self) -> datetime:
        """When this session stops being active."""
        return self.created_at + timedelta(seconds=self.ttl_seconds)

    def is_expired(self, now: datetime | None = None) -> bool:
        """Check whether the session has passed its expiry.

        Args:
            now: Reference time (defaults to current UTC time).

        Returns:
            True once ``now`` reaches ``expires_at``.
        """
        now = now or datetime.now(timezone.utc)
        return now >= self.expires_at

    def to_dict(self) -> dict[str, Any]:
        """JSON-safe representation (ISO-8601 timestamps)."""
        return {
            "session_id": self.session_id,
            "user_id": self.user_id,
            "device": self.device.to_dict(),
            "location": self.location.to_dict(),
            "created_at": self.created_at.isoformat(),
            "ttl_seconds": self.ttl_seconds,
            "expires_at": self.expires_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Session":
        """Rebuild a session from ``to_dict`` output.

        ``expires_at`` in the input is ignored; it is always re-derived.
        """
        created_at = datetime.fromisoformat(data["created_at"])
        if created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=timezone.utc)
        return cls(
            session_id=data["session_id"],
            user_id=data["user_id"],
            device=DeviceInfo.from_dict(data.get("device") or {}),
            location=LocationInfo.from_dict(data.get("location") or {}),
            created_at=created_at,
            ttl_seconds=int(data["ttl_seconds"]),
        )
