"""Unit tests for device extraction and the GeoIP locator.

The GeoIP reader is patched; no MaxMind database is needed.
"""

from unittest.mock import MagicMock, patch

import geoip2.errors
import pytest

from session_guard.enrichers.device import (
    extract_client_ip,
    extract_device_info,
    is_private_ip,
)
from session_guard.enrichers.geolocation import GeoIPLocator
from session_guard.errors import GeoIPLookupError, InvalidInputError, NotConfiguredError
from session_guard.models.session import LocationInfo

CHROME_MAC = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
IPHONE = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.0 Mobile/15E148 Safari/604.1"
)
IPAD = (
    "Mozilla/5.0 (iPad; CPU OS 16_6 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/16.6 Mobile/15E148 Safari/604.1"
)
GOOGLEBOT = "Mozilla/5.0 (compatible; Googlebot/2.1; +http://www.google.com/bot.html)"


class TestExtractClientIP:
    """Test client IP precedence."""

    def test_forwarded_for_first_entry_wins(self):
        headers = {
            "X-Forwarded-For": "203.0.113.7, 10.0.0.1",
            "X-Real-IP": "198.51.100.1",
        }

        assert extract_client_ip(headers, "10.0.0.2:443") == "203.0.113.7"

    def test_header_lookup_is_case_insensitive(self):
        assert extract_client_ip({"x-real-ip": "198.51.100.1"}, "") == "198.51.100.1"

    def test_invalid_forwarded_for_falls_through(self):
        headers = {"X-Forwarded-For": "unknown", "X-Real-IP": "198.51.100.1"}

        assert extract_client_ip(headers, "10.0.0.2:443") == "198.51.100.1"

    def test_cloudflare_header(self):
        headers = {"CF-Connecting-IP": "2001:db8::1"}

        assert extract_client_ip(headers, "10.0.0.2:443") == "2001:db8::1"

    @pytest.mark.parametrize(
        "remote_addr,expected",
        [
            ("192.0.2.1:51234", "192.0.2.1"),
            ("192.0.2.1", "192.0.2.1"),
            ("[2001:db8::2]:8080", "2001:db8::2"),
            ("2001:db8::2", "2001:db8::2"),
        ],
    )
    def test_remote_addr_fallback(self, remote_addr, expected):
        assert extract_client_ip({}, remote_addr) == expected


class TestExtractDeviceInfo:
    """Test user-agent parsing."""

    def test_desktop_chrome(self):
        device = extract_device_info({"User-Agent": CHROME_MAC}, "192.0.2.1:1")

        assert device.ip == "192.0.2.1"
        assert device.user_agent == CHROME_MAC
        assert device.browser.startswith("Chrome 120")
        assert device.os.startswith("Mac OS X 10")
        assert device.device_type == "desktop"

    def test_iphone_is_mobile(self):
        assert extract_device_info({"user-agent": IPHONE}, "").device_type == "mobile"

    def test_ipad_is_tablet(self):
        assert extract_device_info({"User-Agent": IPAD}, "").device_type == "tablet"

    def test_bot(self):
        assert extract_device_info({"User-Agent": GOOGLEBOT}, "").device_type == "bot"

    def test_tablet_keyword_fallback(self):
        device = extract_device_info(
            {"User-Agent": "ReaderApp/2.0 (Tablet; CustomOS)"}, ""
        )

        assert device.device_type == "tablet"

    def test_missing_user_agent(self):
        device = extract_device_info({}, "192.0.2.1:1")

        assert device.ip == "192.0.2.1"
        assert device.user_agent == ""
        assert device.browser == ""
        assert device.device_type == "desktop"


class TestIsPrivateIP:
    """Test private range detection."""

    @pytest.mark.parametrize(
        "ip",
        ["127.0.0.1", "::1", "10.1.2.3", "172.16.0.1", "172.31.255.255", "192.168.1.1", "fd00::1"],
    )
    def test_private(self, ip):
        assert is_private_ip(ip) is True

    @pytest.mark.parametrize(
        "ip", ["8.8.8.8", "172.32.0.1", "2001:4860:4860::8888", "not-an-ip", ""]
    )
    def test_public_or_invalid(self, ip):
        assert is_private_ip(ip) is False


def _city_record(city_names, country_names, latitude, longitude):
    record = MagicMock()
    record.city.names = city_names
    record.country.names = country_names
    record.location.latitude = latitude
    record.location.longitude = longitude
    return record


@pytest.fixture
def mock_reader():
    """Patch geoip2's Reader so GeoIPLocator opens a mock."""
    with patch("geoip2.database.Reader") as reader_cls:
        yield reader_cls.return_value


class TestGeoIPLocator:
    """Test GeoIPLocator behavior."""

    def test_empty_path_not_configured(self):
        with pytest.raises(NotConfiguredError):
            GeoIPLocator("")

    def test_missing_file_not_configured(self, tmp_path):
        with pytest.raises(NotConfiguredError) as exc_info:
            GeoIPLocator(str(tmp_path / "missing.mmdb"))

        assert exc_info.value.__cause__ is not None

    def test_corrupt_file_not_configured(self, tmp_path):
        path = tmp_path / "corrupt.mmdb"
        path.write_bytes(b"this is not a maxmind database")

        with pytest.raises(NotConfiguredError):
            GeoIPLocator(str(path))

    def test_lookup_prefers_english(self, mock_reader):
        mock_reader.city.return_value = _city_record(
            {"de": "London", "en": "London", "ja": "ロンドン"},
            {"en": "United Kingdom", "fr": "Royaume-Uni"},
            51.5142,
            -0.0931,
        )
        locator = GeoIPLocator("/fake/GeoLite2-City.mmdb")

        location = locator.lookup("81.2.69.142")

        assert location == LocationInfo(
            ip="81.2.69.142",
            city="London",
            country="United Kingdom",
            latitude=51.5142,
            longitude=-0.0931,
        )
        mock_reader.city.assert_called_once_with("81.2.69.142")

    def test_lookup_falls_back_to_any_name(self, mock_reader):
        mock_reader.city.return_value = _city_record(
            {"ja": "東京"}, {}, None, None
        )
        locator = GeoIPLocator("/fake/GeoLite2-City.mmdb")

        location = locator.lookup("192.0.2.5")

        assert location.city == "東京"
        assert location.country == ""
        assert location.has_coordinates is False

    def test_invalid_ip(self, mock_reader):
        locator = GeoIPLocator("/fake/GeoLite2-City.mmdb")

        with pytest.raises(InvalidInputError):
            locator.lookup("999.1.1.1")

        mock_reader.city.assert_not_called()

    def test_address_not_found(self, mock_reader):
        mock_reader.city.side_effect = geoip2.errors.AddressNotFoundError(
            "The address 10.0.0.1 is not in the database."
        )
        locator = GeoIPLocator("/fake/GeoLite2-City.mmdb")

        with pytest.raises(GeoIPLookupError):
            locator.lookup("10.0.0.1")

    def test_lookup_with_fallback(self, mock_reader):
        mock_reader.city.side_effect = geoip2.errors.AddressNotFoundError("missing")
        locator = GeoIPLocator("/fake/GeoLite2-City.mmdb")

        assert locator.lookup_with_fallback("10.0.0.1") == LocationInfo(ip="10.0.0.1")
        assert locator.lookup_with_fallback("bogus") == LocationInfo(ip="bogus")

    def test_close_is_idempotent(self, mock_reader):
        locator = GeoIPLocator("/fake/GeoLite2-City.mmdb")

        locator.close()
        locator.close()

        mock_reader.close.assert_called_once()
        with pytest.raises(NotConfiguredError):
            locator.lookup("81.2.69.142")
