"""GeoIP locator over a MaxMind GeoIP2/GeoLite2 City database."""

import ipaddress
import logging

import geoip2.database
import geoip2.errors
from maxminddb import InvalidDatabaseError

from ..errors import GeoIPLookupError, InvalidInputError, NotConfiguredError
from ..models.session import LocationInfo
from .base import LocationLocator

logger = logging.getLogger(__name__)


class GeoIPLocator(LocationLocator):
    """Resolve IPs with a local MaxMind City database.

    Names are returned in English when available, otherwise in whichever
    language the database provides first.

    Example:
        ```python
        locator = GeoIPLocator("/var/lib/GeoIP/GeoLite2-City.mmdb")
        location = locator.lookup("81.2.69.142")
        locator.close()
        ```
    """

    def __init__(self, db_path: str):
        """Open the database.

        Args:
            db_path: Path to a GeoIP2/GeoLite2 City .mmdb file

        Raises:
            NotConfiguredError: If db_path is empty or cannot be opened
        """
        if not db_path:
            raise NotConfiguredError("GeoIP database path is not configured")

        try:
            self._reader: geoip2.database.Reader | None = geoip2.database.Reader(
                db_path
            )
        except (OSError, ValueError, InvalidDatabaseError) as e:
            raise NotConfiguredError(
                "Failed to open GeoIP database",
                details={"path": db_path, "error": str(e)},
            ) from e
        self.db_path = db_path

    def lookup(self, ip: str) -> LocationInfo:
        """Resolve an IP address to a location.

        Raises:
            NotConfiguredError: If the locator has been closed
            InvalidInputError: If ip is not a valid address
            GeoIPLookupError: If the address is not in the database or the
                reader fails
        """
        if self._reader is None:
            raise NotConfiguredError("GeoIP database is closed")

        try:
            ipaddress.ip_address(ip)
        except ValueError as e:
            raise InvalidInputError(
                f"Invalid IP address: {ip}", details={"ip": ip}
            ) from e

        try:
            record = self._reader.city(ip)
        except geoip2.errors.AddressNotFoundError as e:
            raise GeoIPLookupError(
                "Address not found", details={"ip": ip}
            ) from e
        except (geoip2.errors.GeoIP2Error, InvalidDatabaseError, ValueError) as e:
            raise GeoIPLookupError(
                "GeoIP lookup failed", details={"ip": ip, "error": str(e)}
            ) from e

        return LocationInfo(
            ip=ip,
            city=_pick_name(record.city.names),
            country=_pick_name(record.country.names),
            latitude=record.location.latitude or 0.0,
            longitude=record.location.longitude or 0.0,
        )

    def close(self) -> None:
        """Close the database reader. Safe to call more than once."""
        reader, self._reader = self._reader, None
        if reader is not None:
            reader.close()


def _pick_name(names: dict[str, str]) -> str:
    if "en" in names:
        return names["en"]
    return next(iter(names.values()), "")
