"""Location locator abstract interface.

The session manager treats geolocation as an opaque ``ip -> LocationInfo``
lookup. Any provider (MaxMind database, HTTP API, fixed table in tests)
can be plugged in by implementing this interface.
"""

from abc import ABC, abstractmethod

from ..errors import GeoIPLookupError, InvalidInputError
from ..models.session import LocationInfo


class LocationLocator(ABC):
    """Abstract interface for IP geolocation providers.

    Design Pattern:
        - Strategy Pattern: The manager depends on this abstraction only
        - Optional: Registration works without any locator

    Implementations:
        - GeoIPLocator: MaxMind GeoIP2/GeoLite2 City database
    """

    @abstractmethod
    def lookup(self, ip: str) -> LocationInfo:
        """Resolve an IP address to a location.

        Args:
            ip: IPv4 or IPv6 address

        Returns:
            LocationInfo (coordinates (0, 0) when unknown)

        Raises:
            InvalidInputError: If ip is not a valid address
            GeoIPLookupError: If the address cannot be resolved
        """

    def lookup_with_fallback(self, ip: str) -> LocationInfo:
        """Resolve an IP, returning an IP-only location on any lookup error."""
        try:
            return self.lookup(ip)
        except (InvalidInputError, GeoIPLookupError):
            return LocationInfo(ip=ip)

    def close(self) -> None:
        """Release provider resources. Safe to call more than once."""
