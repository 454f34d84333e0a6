"""Request enrichers: device extraction and IP geolocation."""

from .base import LocationLocator
from .device import extract_client_ip, extract_device_info, is_private_ip
from .geolocation import GeoIPLocator

__all__ = [
    "GeoIPLocator",
    "LocationLocator",
    "extract_client_ip",
    "extract_device_info",
    "is_private_ip",
]
