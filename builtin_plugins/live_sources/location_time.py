"""
Location & prayer time live source plugin.

Answers "what time is Fajr", "namaz ka waqt", "iftar time in Dubai" and
"current time" style questions for today and tomorrow only.

Location is resolved in order: a known city named in the query, the
caller-resolved location, IP geolocation of the client, then Makkah.

Timings come from the AlAdhan API; if it is unreachable the times are
calculated locally and flagged with source_name "calculated".
"""

import asyncio
import logging
from dataclasses import replace
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from live.errors import ProviderParseError
from live.fetcher import HttpFetcher
from live.geolocation import IpGeolocator, find_city_in_text, nearest_known_city
from live.prayer_times import (
    DEFAULT_METHOD,
    METHODS,
    PRAYER_ORDER,
    calculate_prayer_times,
    format_hijri,
    next_prayer,
)
from plugin_base.common import (
    DEFAULT_LOCATION,
    Domain,
    EnrichmentContext,
    ErrorKind,
    Query,
    ResolvedLocation,
    ResultItem,
)
from plugin_base.live_source import (
    LiveDataResult,
    ParamDefinition,
    PluginLiveSource,
)

logger = logging.getLogger(__name__)


class LocationTimeLiveSource(PluginLiveSource):
    """
    Prayer times, sehri/iftar and current local time for a location.

    Produces three items: the current local time (with the next prayer and
    the Hijri date), today's timetable and tomorrow's timetable.
    """

    source_type = "location_time"
    display_name = "Prayer & Local Time"
    description = "Prayer times, sehri/iftar and local time for today and tomorrow"
    domain = Domain.LOCATION_TIME
    best_for = "Prayer times, namaz waqt, sehri and iftar times, sunrise/sunset, current local time"
    default_cache_ttl = 21600  # 6 hours

    _abstract = False

    ALADHAN_URL = "https://api.aladhan.com/v1/timings/{date}"

    # Sehri ends this long before Fajr
    SEHRI_MARGIN = timedelta(minutes=15)

    @classmethod
    def get_param_definitions(cls) -> list[ParamDefinition]:
        return [
            ParamDefinition(
                name="location",
                description="Coordinates as 'lat,lng'",
                param_type="string",
                required=False,
                examples=["21.3891,39.8579", "51.5074,-0.1278"],
            ),
            ParamDefinition(
                name="timezone",
                description="IANA time zone for the coordinates",
                param_type="string",
                required=False,
                examples=["Asia/Riyadh", "Europe/London"],
            ),
            ParamDefinition(
                name="method",
                description="Calculation method id (AlAdhan numbering)",
                param_type="integer",
                required=False,
                default=DEFAULT_METHOD,
                examples=[str(m) for m in METHODS],
            ),
        ]

    def __init__(
        self,
        config: dict,
        fetcher: HttpFetcher,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.fetcher = fetcher
        self.method = int(config.get("method", DEFAULT_METHOD))
        self.use_api = config.get("use_api", True)
        self.geolocator = (
            IpGeolocator(fetcher) if config.get("ip_geolocation", True) else None
        )
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def fetch(
        self,
        query: Query,
        params: Optional[dict] = None,
        context: Optional[EnrichmentContext] = None,
    ) -> LiveDataResult:
        params = params or {}
        try:
            location = await self.resolve_location(query, params, context)
            method = int(params.get("method") or self.method)
            try:
                tz = ZoneInfo(location.timezone)
            except (ZoneInfoNotFoundError, ValueError):
                logger.warning(f"Unknown time zone {location.timezone!r}, using UTC")
                tz = ZoneInfo("UTC")
                location = replace(location, timezone="UTC")

            now_local = self._clock().astimezone(tz)
            today = now_local.date()
            tomorrow = today + timedelta(days=1)

            source_name = "aladhan.com"
            timetables = None
            if self.use_api:
                timetables = await self._fetch_timetables(
                    (today, tomorrow), location, method, tz
                )
            if timetables is None:
                source_name = "calculated"
                timetables = [
                    calculate_prayer_times(
                        day, location.lat, location.lng, location.timezone, method
                    )
                    for day in (today, tomorrow)
                ]

            items = [
                self._current_time_item(now_local, location, timetables, source_name)
            ]
            for day, label, times in (
                (today, "today", timetables[0]),
                (tomorrow, "tomorrow", timetables[1]),
            ):
                items.append(
                    self._timetable_item(
                        day, label, location, times, source_name, method, now_local
                    )
                )

            logger.info(
                f"Location-time data for {location.city or 'coordinates'} "
                f"({location.lat:.3f},{location.lng:.3f}) via {source_name}"
            )
            return LiveDataResult(
                success=True,
                items=items,
                source_type=self.source_type,
                cache_ttl=self._cache_ttl(now_local, timetables),
            )

        except Exception as e:
            logger.exception(f"Location-time lookup failed: {e}")
            return LiveDataResult.failure(self.source_type, ErrorKind.UNKNOWN, str(e))

    async def resolve_location(
        self,
        query: Query,
        params: dict,
        context: Optional[EnrichmentContext],
    ) -> ResolvedLocation:
        """City in the query, explicit params, caller location, IP, then Makkah."""
        city = find_city_in_text(query.raw_text)
        if city:
            return city

        if params.get("location"):
            try:
                lat, lng = (float(p) for p in str(params["location"]).split(","))
                return ResolvedLocation(
                    lat=lat, lng=lng, timezone=params.get("timezone") or "UTC"
                )
            except ValueError:
                logger.warning(f"Ignoring malformed location param: {params['location']!r}")

        if context and context.resolved_location:
            return context.resolved_location

        if self.geolocator and context and context.client_ip:
            located = await self.geolocator.locate(context.client_ip)
            if located:
                return located

        return ResolvedLocation(**DEFAULT_LOCATION.to_dict())

    async def _fetch_timetables(
        self,
        days: tuple[date, ...],
        location: ResolvedLocation,
        method: int,
        tz: ZoneInfo,
    ) -> Optional[list[dict[str, datetime]]]:
        results = await asyncio.gather(
            *(
                self.fetcher.get(
                    self.ALADHAN_URL.format(date=day.strftime("%d-%m-%Y")),
                    params={
                        "latitude": location.lat,
                        "longitude": location.lng,
                        "method": method,
                    },
                )
                for day in days
            )
        )
        timetables = []
        for day, result in zip(days, results):
            if not result.ok:
                logger.warning(
                    f"AlAdhan unavailable ({result.error}), calculating locally"
                )
                return None
            try:
                timetables.append(self._parse_aladhan(result.json(), day, tz))
            except ProviderParseError as e:
                logger.warning(f"AlAdhan response unusable ({e}), calculating locally")
                return None
        return timetables

    @staticmethod
    def _parse_aladhan(data: dict, day: date, tz: ZoneInfo) -> dict[str, datetime]:
        try:
            timings = data["data"]["timings"]
        except (KeyError, TypeError):
            raise ProviderParseError("AlAdhan response missing data.timings")

        times = {}
        for name in PRAYER_ORDER:
            value = timings.get(name.capitalize())
            if not value:
                continue
            try:
                hour, minute = (int(part) for part in value.strip()[:5].split(":"))
            except ValueError:
                raise ProviderParseError(f"Bad AlAdhan time for {name}: {value!r}")
            times[name] = datetime(day.year, day.month, day.day, hour, minute, tzinfo=tz)
        if "fajr" not in times or "maghrib" not in times:
            raise ProviderParseError("AlAdhan response missing Fajr/Maghrib")
        return times

    def _current_time_item(
        self,
        now_local: datetime,
        location: ResolvedLocation,
        timetables: list[dict[str, datetime]],
        source_name: str,
    ) -> ResultItem:
        place = self._place_name(location)
        lines = [
            f"Current local time in {place}: {now_local.strftime('%H:%M')} "
            f"on {now_local.strftime('%A, %d %B %Y')} ({location.timezone}).",
            f"Hijri date (approximate): {format_hijri(now_local.date())}.",
        ]
        upcoming = next_prayer(timetables[0], timetables[1], now_local)
        if upcoming:
            name, moment = upcoming
            minutes = int((moment - now_local).total_seconds() // 60)
            lines.append(
                f"Next prayer: {name.capitalize()} at {moment.strftime('%H:%M')} "
                f"(in {minutes // 60}h {minutes % 60}m)."
            )
        if location.is_default:
            lines.append("Location unknown; showing Makkah as the default.")

        return ResultItem(
            title=f"Current local time in {place}",
            body=" ".join(lines),
            summary=lines[0],
            source_name=source_name,
            published_at=now_local,
            category="local time",
            domain_tags={"local_time", "current"},
            metadata={
                "location": location.to_dict(),
                "next_prayer": upcoming[0] if upcoming else None,
            },
        )

    def _timetable_item(
        self,
        day: date,
        label: str,
        location: ResolvedLocation,
        times: dict[str, datetime],
        source_name: str,
        method: int,
        now_local: datetime,
    ) -> ResultItem:
        place = self._place_name(location)
        parts = [
            f"{name.capitalize()} {times[name].strftime('%H:%M')}"
            for name in PRAYER_ORDER
            if name in times
        ]
        if "fajr" in times:
            parts.append(f"Sehri ends {(times['fajr'] - self.SEHRI_MARGIN).strftime('%H:%M')}")
        if "maghrib" in times:
            parts.append(f"Iftar {times['maghrib'].strftime('%H:%M')}")

        method_name = METHODS.get(method, METHODS[DEFAULT_METHOD]).name
        body = (
            f"Prayer times for {place} on {day.strftime('%A, %d %B %Y')} "
            f"({format_hijri(day)}): " + " | ".join(parts) + f". Method: {method_name}."
        )
        source_url = ""
        if source_name != "calculated":
            source_url = (
                self.ALADHAN_URL.format(date=day.strftime("%d-%m-%Y"))
                + f"?latitude={location.lat}&longitude={location.lng}&method={method}"
            )

        return ResultItem(
            title=f"Prayer times {label} in {place} ({day.isoformat()})",
            body=body,
            summary=" | ".join(parts),
            source_url=source_url,
            source_name=source_name,
            published_at=now_local,
            category="prayer times",
            domain_tags={"prayer_times", label},
            metadata={
                "date": day.isoformat(),
                "times": {name: moment.isoformat() for name, moment in times.items()},
                "method": method,
                "location": location.to_dict(),
            },
        )

    @staticmethod
    def _place_name(location: ResolvedLocation) -> str:
        if location.city:
            return f"{location.city}, {location.country}" if location.country else location.city
        city, distance = nearest_known_city(location.lat, location.lng)
        if distance < 50:
            return f"near {city}"
        return f"{location.lat:.2f}, {location.lng:.2f}"

    def _cache_ttl(
        self, now_local: datetime, timetables: list[dict[str, datetime]]
    ) -> int:
        """Fresh until the next prayer or local midnight, whichever is sooner."""
        upcoming = next_prayer(timetables[0], timetables[1], now_local)
        midnight = datetime.combine(
            now_local.date() + timedelta(days=1), datetime.min.time(), tzinfo=now_local.tzinfo
        )
        horizon = min(upcoming[1], midnight) if upcoming else midnight
        seconds = int((horizon - now_local).total_seconds())
        return max(60, min(self.default_cache_ttl, seconds))
