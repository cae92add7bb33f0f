"""
Tests for device detection and geolocation serialization.
"""
import pytest

from jurissign.models import Geolocation
from jurissign.utils.geolocation import describe, parse_legacy_string, to_legacy_string
from jurissign.utils.user_agent import parse_user_agent, truncate_user_agent

CHROME_WINDOWS = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
EDGE_WINDOWS = CHROME_WINDOWS + " Edg/120.0.2210.91"
SAFARI_IPHONE = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_2 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.2 Mobile/15E148 Safari/604.1"
)
CHROME_ANDROID = (
    "Mozilla/5.0 (Linux; Android 14; Pixel 8) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Mobile Safari/537.36"
)
FIREFOX_MAC = "Mozilla/5.0 (Macintosh; Intel Mac OS X 14.2; rv:121.0) Gecko/20100101 Firefox/121.0"


class TestParseUserAgent:
    """Test parse_user_agent()."""

    @pytest.mark.parametrize("ua, device, browser, os_name", [
        (CHROME_WINDOWS, "Desktop", "Google Chrome", "Windows"),
        (EDGE_WINDOWS, "Desktop", "Microsoft Edge", "Windows"),
        (SAFARI_IPHONE, "iPhone", "Safari", "iOS"),
        (CHROME_ANDROID, "Celular", "Google Chrome", "Android"),
        (FIREFOX_MAC, "Desktop", "Mozilla Firefox", "macOS"),
    ])
    def test_known_agents(self, ua, device, browser, os_name):
        info = parse_user_agent(ua)

        assert (info.device, info.browser, info.os) == (device, browser, os_name)

    def test_empty_is_unknown(self):
        """Missing user agent gives unknown parts."""
        info = parse_user_agent(None)

        assert info.describe() == "unknown - unknown - unknown"

    def test_truncate(self):
        assert len(truncate_user_agent("x" * 900)) == 500
        assert truncate_user_agent("") is None


class TestGeolocationSerialization:
    """Legacy 'lat, lon|address' column."""

    def test_round_trip_with_address(self):
        geo = Geolocation(lat=-3.119028, lon=-60.021731, address="Manaus, AM")

        value = to_legacy_string(geo)

        assert value == "-3.119028, -60.021731|Manaus, AM"
        assert parse_legacy_string(value) == geo

    def test_without_address(self):
        geo = Geolocation(lat=1.5, lon=2.25)

        assert to_legacy_string(geo) == "1.500000, 2.250000"
        assert parse_legacy_string("1.5, 2.25").address is None

    @pytest.mark.parametrize("value", [None, "", "   ", "garbage", "1.0, abc", "95.0, 10.0"])
    def test_unparseable_values_ignored(self, value):
        """Malformed or out-of-range values parse to None."""
        assert parse_legacy_string(value) is None

    def test_describe(self):
        assert describe(None) == "Nao informada"
        assert describe(Geolocation(lat=1, lon=2, address="Centro")) == "1.000000, 2.000000 (Centro)"
