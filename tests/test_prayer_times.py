"""
Unit tests for live/prayer_times.py and live/geolocation.py
"""

import asyncio
from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo

import httpx

from live.fetcher import HttpFetcher
from live.geolocation import (
    IpGeolocator,
    find_city_in_text,
    haversine_km,
    is_public_ip,
    nearest_known_city,
)
from live.prayer_times import (
    PRAYER_ORDER,
    calculate_prayer_times,
    format_hijri,
    hijri_date,
    next_prayer,
)

RIYADH = ZoneInfo("Asia/Riyadh")


# =============================================================================
# Calculation
# =============================================================================


class TestCalculatePrayerTimes:
    """Tests for calculate_prayer_times()."""

    def test_makkah(self):
        times = calculate_prayer_times(date(2026, 3, 10), 21.3891, 39.8579, "Asia/Riyadh")
        assert list(times) == list(PRAYER_ORDER)
        moments = list(times.values())
        assert moments == sorted(moments)
        assert all(m.tzinfo is not None for m in moments)
        assert all(m.date() == date(2026, 3, 10) for m in moments)

        dhuhr = times["dhuhr"]
        assert datetime(2026, 3, 10, 12, 15, tzinfo=RIYADH) <= dhuhr
        assert dhuhr <= datetime(2026, 3, 10, 12, 45, tzinfo=RIYADH)
        assert 4 <= times["fajr"].hour <= 5
        assert times["maghrib"].hour == 18

    def test_fixed_isha_interval(self):
        times = calculate_prayer_times(date(2026, 3, 10), 21.3891, 39.8579, "Asia/Riyadh", method=4)
        assert times["isha"] - times["maghrib"] == timedelta(minutes=90)

    def test_rounded_to_minute(self):
        times = calculate_prayer_times(date(2026, 3, 10), 51.5074, -0.1278, "Europe/London", method=3)
        assert all(m.second == 0 and m.microsecond == 0 for m in times.values())

    def test_high_latitude_summer_omits_twilight_prayers(self):
        times = calculate_prayer_times(date(2026, 6, 21), 51.5074, -0.1278, "Europe/London", method=3)
        assert "fajr" not in times
        assert "isha" not in times
        assert "dhuhr" in times
        assert "maghrib" in times

    def test_unknown_method_uses_default(self):
        day = date(2026, 3, 10)
        assert calculate_prayer_times(day, 21.39, 39.86, "Asia/Riyadh", method=99) == (
            calculate_prayer_times(day, 21.39, 39.86, "Asia/Riyadh")
        )

    def test_hanafi_asr_is_later(self):
        day = date(2026, 3, 10)
        standard = calculate_prayer_times(day, 24.86, 67.0, "Asia/Karachi", method=1)
        hanafi = calculate_prayer_times(day, 24.86, 67.0, "Asia/Karachi", method=1, asr_factor=2)
        assert hanafi["asr"] > standard["asr"]


class TestNextPrayer:
    """Tests for next_prayer()."""

    def times(self, day):
        return {
            "fajr": datetime(2026, 3, day, 5, 0, tzinfo=RIYADH),
            "sunrise": datetime(2026, 3, day, 6, 20, tzinfo=RIYADH),
            "dhuhr": datetime(2026, 3, day, 12, 30, tzinfo=RIYADH),
            "isha": datetime(2026, 3, day, 20, 0, tzinfo=RIYADH),
        }

    def test_later_today(self):
        now = datetime(2026, 3, 10, 6, 0, tzinfo=RIYADH)
        assert next_prayer(self.times(10), self.times(11), now) == ("dhuhr", self.times(10)["dhuhr"])

    def test_sunrise_is_not_a_prayer(self):
        now = datetime(2026, 3, 10, 5, 30, tzinfo=RIYADH)
        assert next_prayer(self.times(10), self.times(11), now)[0] == "dhuhr"

    def test_rolls_over_to_tomorrow(self):
        now = datetime(2026, 3, 10, 21, 0, tzinfo=RIYADH)
        assert next_prayer(self.times(10), self.times(11), now) == ("fajr", self.times(11)["fajr"])

    def test_none(self):
        assert next_prayer({}, {}, datetime(2026, 3, 10, tzinfo=RIYADH)) is None


class TestHijri:
    """Tests for the tabular Hijri calendar."""

    def test_ramadan_1447(self):
        assert hijri_date(date(2026, 3, 10)) == (1447, 9, 21)
        assert format_hijri(date(2026, 3, 10)) == "21 Ramadan 1447 AH"


# =============================================================================
# Geolocation
# =============================================================================


class TestCities:
    """Tests for city lookup helpers."""

    def test_find_city(self):
        location = find_city_in_text("What time is Maghrib in Abu Dhabi?")
        assert location.city == "Abu Dhabi"
        assert location.timezone == "Asia/Dubai"

    def test_city_needs_word_boundary(self):
        assert find_city_in_text("doharound the clock") is None
        assert find_city_in_text("fajr time") is None

    def test_nearest_known_city(self):
        name, distance = nearest_known_city(21.40, 39.86)
        assert name == "Makkah"
        assert distance < 5

    def test_haversine(self):
        assert haversine_km(0, 0, 0, 0) == 0
        # London to Paris is roughly 344 km
        assert 330 < haversine_km(51.5074, -0.1278, 48.8566, 2.3522) < 360


class TestIpGeolocator:
    """Tests for IpGeolocator."""

    def test_is_public_ip(self):
        assert is_public_ip("8.8.8.8")
        assert not is_public_ip("192.168.1.10")
        assert not is_public_ip("127.0.0.1")
        assert not is_public_ip("not-an-ip")
        assert not is_public_ip(None)

    def test_private_ip_makes_no_request(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, json={})

        geolocator = IpGeolocator(HttpFetcher(transport=httpx.MockTransport(handler)))
        assert asyncio.run(geolocator.locate("10.0.0.1")) is None
        assert calls == []

    def test_ip_api_then_cache(self):
        calls = []

        def handler(request):
            calls.append(request.url.host)
            return httpx.Response(
                200,
                json={
                    "status": "success",
                    "country": "Egypt",
                    "city": "Cairo",
                    "lat": 30.04,
                    "lon": 31.24,
                    "timezone": "Africa/Cairo",
                },
            )

        geolocator = IpGeolocator(HttpFetcher(transport=httpx.MockTransport(handler)))
        first = asyncio.run(geolocator.locate("41.33.1.1"))
        second = asyncio.run(geolocator.locate("41.33.1.1"))
        assert first.city == "Cairo"
        assert first.timezone == "Africa/Cairo"
        assert second == first
        assert calls == ["ip-api.com"]

    def test_cache_is_bounded(self):
        def handler(request):
            return httpx.Response(
                200,
                json={"status": "success", "country": "Egypt", "city": "Cairo", "lat": 30.04, "lon": 31.24},
            )

        fetcher = HttpFetcher(transport=httpx.MockTransport(handler))
        geolocator = IpGeolocator(fetcher, cache_size=3)
        for last in range(1, 11):
            asyncio.run(geolocator.locate(f"41.33.1.{last}"))
        assert geolocator.cached_entries == 3

        uncached = IpGeolocator(fetcher, cache_ttl=0)
        for last in range(1, 11):
            asyncio.run(uncached.locate(f"41.33.1.{last}"))
        assert uncached.cached_entries == 0

    def test_least_recently_used_evicted(self):
        calls = []

        def handler(request):
            calls.append(request.url.path)
            return httpx.Response(
                200,
                json={"status": "success", "country": "Egypt", "city": "Cairo", "lat": 30.04, "lon": 31.24},
            )

        geolocator = IpGeolocator(HttpFetcher(transport=httpx.MockTransport(handler)), cache_size=2)
        for ip in ("41.33.1.1", "41.33.1.2", "41.33.1.1", "41.33.1.3", "41.33.1.1"):
            asyncio.run(geolocator.locate(ip))
        # .2 was evicted by .3; .1 stayed warm
        assert len(calls) == 3

    def test_falls_back_to_ipinfo(self):
        def handler(request):
            if request.url.host == "ip-api.com":
                return httpx.Response(200, json={"status": "fail", "message": "quota"})
            return httpx.Response(
                200,
                json={"city": "Doha", "country": "QA", "loc": "25.28,51.53", "timezone": "Asia/Qatar"},
            )

        geolocator = IpGeolocator(HttpFetcher(transport=httpx.MockTransport(handler)))
        location = asyncio.run(geolocator.locate("37.210.1.1"))
        assert location.city == "Doha"
        assert location.lat == 25.28

    def test_all_services_fail(self):
        geolocator = IpGeolocator(
            HttpFetcher(transport=httpx.MockTransport(lambda request: httpx.Response(503)), backoff_base=0)
        )
        assert asyncio.run(geolocator.locate("8.8.8.8")) is None
