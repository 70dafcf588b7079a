"""
Location resolution for location-time queries.

Three sources, tried in order by the location-time provider:
1. A known city named in the query text
2. The location the caller already resolved
3. IP geolocation of the client (ip-api.com, then ipinfo.io)

Private, loopback and unparseable addresses are never sent out. Lookups are
cached per IP for 30 minutes in a bounded LRU.
"""

import ipaddress
import logging
import math
import threading
import time
from collections import OrderedDict
from typing import Optional

from live.fetcher import HttpFetcher
from live.errors import ProviderParseError
from plugin_base.common import ResolvedLocation, normalize_text

logger = logging.getLogger(__name__)

IP_CACHE_TTL = 30 * 60
IP_CACHE_SIZE = 1024

# Known cities: name -> (lat, lng, timezone, country)
KNOWN_CITIES: dict[str, tuple[float, float, str, str]] = {
    "makkah": (21.3891, 39.8579, "Asia/Riyadh", "Saudi Arabia"),
    "mecca": (21.3891, 39.8579, "Asia/Riyadh", "Saudi Arabia"),
    "madina": (24.5247, 39.5692, "Asia/Riyadh", "Saudi Arabia"),
    "medina": (24.5247, 39.5692, "Asia/Riyadh", "Saudi Arabia"),
    "jerusalem": (31.7683, 35.2137, "Asia/Jerusalem", "Palestine"),
    "istanbul": (41.0082, 28.9784, "Europe/Istanbul", "Turkey"),
    "cairo": (30.0444, 31.2357, "Africa/Cairo", "Egypt"),
    "baghdad": (33.3152, 44.3661, "Asia/Baghdad", "Iraq"),
    "tehran": (35.6892, 51.3890, "Asia/Tehran", "Iran"),
    "karachi": (24.8607, 67.0011, "Asia/Karachi", "Pakistan"),
    "lahore": (31.5204, 74.3587, "Asia/Karachi", "Pakistan"),
    "islamabad": (33.6844, 73.0479, "Asia/Karachi", "Pakistan"),
    "delhi": (28.7041, 77.1025, "Asia/Kolkata", "India"),
    "mumbai": (19.0760, 72.8777, "Asia/Kolkata", "India"),
    "bangalore": (12.9716, 77.5946, "Asia/Kolkata", "India"),
    "hyderabad": (17.3850, 78.4867, "Asia/Kolkata", "India"),
    "kolkata": (22.5726, 88.3639, "Asia/Kolkata", "India"),
    "dhaka": (23.8103, 90.4125, "Asia/Dhaka", "Bangladesh"),
    "dubai": (25.2048, 55.2708, "Asia/Dubai", "United Arab Emirates"),
    "abu dhabi": (24.2992, 54.3773, "Asia/Dubai", "United Arab Emirates"),
    "doha": (25.2854, 51.5310, "Asia/Qatar", "Qatar"),
    "kuwait": (29.3759, 47.9774, "Asia/Kuwait", "Kuwait"),
    "riyadh": (24.7136, 46.6753, "Asia/Riyadh", "Saudi Arabia"),
    "jeddah": (21.4858, 39.1925, "Asia/Riyadh", "Saudi Arabia"),
    "casablanca": (33.5731, -7.5898, "Africa/Casablanca", "Morocco"),
    "algiers": (36.7372, 3.0869, "Africa/Algiers", "Algeria"),
    "tunis": (36.8065, 10.1815, "Africa/Tunis", "Tunisia"),
    "jakarta": (-6.2088, 106.8456, "Asia/Jakarta", "Indonesia"),
    "kuala lumpur": (3.1390, 101.6869, "Asia/Kuala_Lumpur", "Malaysia"),
    "singapore": (1.3521, 103.8198, "Asia/Singapore", "Singapore"),
    "london": (51.5074, -0.1278, "Europe/London", "United Kingdom"),
    "new york": (40.7128, -74.0060, "America/New_York", "United States"),
}


def find_city_in_text(text: str) -> Optional[ResolvedLocation]:
    """Return the known city mentioned in text, preferring longer names."""
    padded = f" {normalize_text(text)} "
    for name in sorted(KNOWN_CITIES, key=len, reverse=True):
        if f" {name} " in padded:
            lat, lng, tz, country = KNOWN_CITIES[name]
            return ResolvedLocation(
                lat=lat, lng=lng, timezone=tz, city=name.title(), country=country
            )
    return None


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance in kilometres."""
    r = 6371.0
    dlat = math.radians(lat2 - lat1)
    dlng = math.radians(lng2 - lng1)
    a = (
        math.sin(dlat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(dlng / 2) ** 2
    )
    return 2 * r * math.asin(math.sqrt(a))


def nearest_known_city(lat: float, lng: float) -> tuple[str, float]:
    """Name of and distance to the closest known city."""
    best = min(
        KNOWN_CITIES.items(),
        key=lambda item: haversine_km(lat, lng, item[1][0], item[1][1]),
    )
    return best[0].title(), haversine_km(lat, lng, best[1][0], best[1][1])


def is_public_ip(ip: Optional[str]) -> bool:
    """True only for a well-formed, globally routable address."""
    if not ip:
        return False
    try:
        address = ipaddress.ip_address(ip.strip())
    except ValueError:
        return False
    return address.is_global


class IpGeolocator:
    """Resolves client IPs to locations via public lookup services."""

    def __init__(
        self,
        fetcher: HttpFetcher,
        cache_ttl: int = IP_CACHE_TTL,
        cache_size: int = IP_CACHE_SIZE,
    ):
        self.fetcher = fetcher
        self.cache_ttl = cache_ttl
        self.cache_size = max(1, cache_size)
        self._cache: OrderedDict[str, tuple[float, ResolvedLocation]] = OrderedDict()
        self._lock = threading.Lock()

    @property
    def cached_entries(self) -> int:
        with self._lock:
            return len(self._cache)

    def _cache_get(self, ip: str, now: float) -> Optional[ResolvedLocation]:
        with self._lock:
            cached = self._cache.get(ip)
            if cached is None:
                return None
            if now - cached[0] >= self.cache_ttl:
                del self._cache[ip]
                return None
            self._cache.move_to_end(ip)
            return cached[1]

    def _cache_put(self, ip: str, now: float, location: ResolvedLocation) -> None:
        if self.cache_ttl <= 0:
            return
        with self._lock:
            expired = [
                key
                for key, (stored, _) in self._cache.items()
                if now - stored >= self.cache_ttl
            ]
            for key in expired:
                del self._cache[key]
            self._cache[ip] = (now, location)
            self._cache.move_to_end(ip)
            while len(self._cache) > self.cache_size:
                self._cache.popitem(last=False)

    async def locate(self, ip: Optional[str]) -> Optional[ResolvedLocation]:
        """
        Look up an IP address.

        Returns:
            ResolvedLocation, or None for private IPs and failed lookups
        """
        if not is_public_ip(ip):
            logger.debug(f"Not geolocating non-public address: {ip}")
            return None

        now = time.monotonic()
        cached = self._cache_get(ip, now)
        if cached:
            return cached

        for lookup in (self._ip_api, self._ipinfo):
            try:
                location = await lookup(ip)
            except ProviderParseError as e:
                logger.warning(f"Geolocation response unusable: {e}")
                continue
            if location:
                self._cache_put(ip, now, location)
                logger.info(
                    f"Geolocated {ip} to {location.city}, {location.country}"
                )
                return location

        logger.warning(f"All geolocation services failed for {ip}")
        return None

    async def _ip_api(self, ip: str) -> Optional[ResolvedLocation]:
        result = await self.fetcher.get(
            f"http://ip-api.com/json/{ip}",
            params={"fields": "status,message,country,regionName,city,lat,lon,timezone"},
            max_attempts=1,
        )
        if not result.ok:
            return None
        data = result.json()
        if not isinstance(data, dict):
            return None
        if data.get("status") != "success" or data.get("lat") is None:
            return None
        return ResolvedLocation(
            lat=float(data["lat"]),
            lng=float(data["lon"]),
            timezone=data.get("timezone") or "UTC",
            city=data.get("city", ""),
            country=data.get("country", ""),
        )

    async def _ipinfo(self, ip: str) -> Optional[ResolvedLocation]:
        result = await self.fetcher.get(f"https://ipinfo.io/{ip}/json", max_attempts=1)
        if not result.ok:
            return None
        data = result.json()
        if not isinstance(data, dict):
            return None
        loc = data.get("loc") or ""
        try:
            lat, lng = (float(part) for part in loc.split(","))
        except ValueError:
            return None
        return ResolvedLocation(
            lat=lat,
            lng=lng,
            timezone=data.get("timezone") or "UTC",
            city=data.get("city", ""),
            country=data.get("country", ""),
        )
