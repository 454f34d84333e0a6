"""Geographic distance policy for new-location detection.

Distances are great-circle distances on a sphere of radius 6371 km
(haversine formula). A location whose latitude and longitude are both
exactly 0 is treated as "coordinates unknown"; such comparisons fall back
to city/country equality.
"""

import math

from .errors import InvalidInputError
from .models.session import LocationInfo

EARTH_RADIUS_KM = 6371.0


def haversine_distance(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance in kilometers between two coordinates.

    Args:
        lat1: Latitude of the first point (degrees).
        lng1: Longitude of the first point (degrees).
        lat2: Latitude of the second point (degrees).
        lng2: Longitude of the second point (degrees).

    Returns:
        Distance in kilometers (always >= 0).

    Example:
        >>> round(haversine_distance(40.7128, -74.0060, 51.5074, -0.1278))
        5570
    """
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)

    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(d_lng / 2) ** 2
    )
    # Rounding can push a just outside [0, 1] for antipodal points
    a = min(1.0, max(0.0, a))

    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def location_distance(previous: LocationInfo, current: LocationInfo) -> float | None:
    """Distance between two locations, or None if either lacks coordinates."""
    if not previous.has_coordinates or not current.has_coordinates:
        return None
    return haversine_distance(
        previous.latitude, previous.longitude, current.latitude, current.longitude
    )


def is_new_location(
    previous: LocationInfo, current: LocationInfo, threshold_km: float
) -> bool:
    """Decide whether ``current`` is a new location relative to ``previous``.

    Args:
        previous: Location of the most recent prior session.
        current: Location of the registration being evaluated.
        threshold_km: Distance above which the location counts as new.
            A distance exactly equal to the threshold is not new; 0 flags
            any movement at all.

    Returns:
        True if the location is new.

    Raises:
        InvalidInputError: If threshold_km is negative.
    """
    if threshold_km < 0:
        raise InvalidInputError(
            "threshold_km must not be negative",
            details={"threshold_km": threshold_km},
        )

    distance = location_distance(previous, current)
    if distance is None:
        return previous.city != current.city or previous.country != current.country

    return distance > threshold_km
