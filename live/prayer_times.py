"""
Astronomical prayer time calculation.

Used when the online timings API is unreachable. Follows the usual solar
model: the sun's declination and the equation of time give solar noon, and
each prayer is the moment the sun reaches a given depression angle (Fajr,
Isha), the horizon (sunrise, sunset/Maghrib) or a shadow-length ratio (Asr).

Results are accurate to a couple of minutes at moderate latitudes. Where the
sun never reaches the required angle (high latitudes in summer) the prayer
is omitted.
"""

import math
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Optional
from zoneinfo import ZoneInfo


@dataclass(frozen=True)
class CalculationMethod:
    name: str
    fajr_angle: float
    isha_angle: Optional[float] = None
    isha_minutes: Optional[int] = None  # Fixed interval after Maghrib


# Keyed by the AlAdhan API method ids so both paths agree
METHODS: dict[int, CalculationMethod] = {
    1: CalculationMethod("University of Islamic Sciences, Karachi", 18.0, 18.0),
    2: CalculationMethod("Islamic Society of North America", 15.0, 15.0),
    3: CalculationMethod("Muslim World League", 18.0, 17.0),
    4: CalculationMethod("Umm Al-Qura University, Makkah", 18.5, isha_minutes=90),
    5: CalculationMethod("Egyptian General Authority of Survey", 19.5, 17.5),
}
DEFAULT_METHOD = 4

PRAYER_ORDER = ("fajr", "sunrise", "dhuhr", "asr", "maghrib", "isha")
PRAYER_NAMES = ("fajr", "dhuhr", "asr", "maghrib", "isha")

HIJRI_MONTHS = (
    "Muharram",
    "Safar",
    "Rabi al-Awwal",
    "Rabi al-Thani",
    "Jumada al-Awwal",
    "Jumada al-Thani",
    "Rajab",
    "Shaban",
    "Ramadan",
    "Shawwal",
    "Dhu al-Qadah",
    "Dhu al-Hijjah",
)

SUNRISE_ANGLE = 0.833


def _dsin(d: float) -> float:
    return math.sin(math.radians(d))


def _dcos(d: float) -> float:
    return math.cos(math.radians(d))


def _dtan(d: float) -> float:
    return math.tan(math.radians(d))


def _fix(value: float, base: float) -> float:
    value = value - base * math.floor(value / base)
    return value + base if value < 0 else value


def julian_day(year: int, month: int, day: int) -> float:
    if month <= 2:
        year -= 1
        month += 12
    a = math.floor(year / 100)
    b = 2 - a + math.floor(a / 4)
    return (
        math.floor(365.25 * (year + 4716))
        + math.floor(30.6001 * (month + 1))
        + day
        + b
        - 1524.5
    )


def _sun_position(jd: float) -> tuple[float, float]:
    """Declination (degrees) and equation of time (hours) for a Julian day."""
    d = jd - 2451545.0
    g = _fix(357.529 + 0.98560028 * d, 360)
    q = _fix(280.459 + 0.98564736 * d, 360)
    ecliptic_lng = _fix(q + 1.915 * _dsin(g) + 0.020 * _dsin(2 * g), 360)
    obliquity = 23.439 - 0.00000036 * d

    right_ascension = (
        math.degrees(
            math.atan2(_dcos(obliquity) * _dsin(ecliptic_lng), _dcos(ecliptic_lng))
        )
        / 15
    )
    right_ascension = _fix(right_ascension, 24)
    equation_of_time = q / 15 - right_ascension
    declination = math.degrees(math.asin(_dsin(obliquity) * _dsin(ecliptic_lng)))
    return declination, equation_of_time


class _SolarDay:
    """Solar quantities for one date and place, in local solar hours."""

    def __init__(self, day: date, lat: float, lng: float):
        self.lat = lat
        self.jd = julian_day(day.year, day.month, day.day) - lng / (15 * 24)

    def mid_day(self, hours: float) -> float:
        _, eqt = _sun_position(self.jd + hours / 24)
        return _fix(12 - eqt, 24)

    def sun_angle_time(
        self, angle: float, hours: float, before_noon: bool = False
    ) -> Optional[float]:
        decl, _ = _sun_position(self.jd + hours / 24)
        noon = self.mid_day(hours)
        cos_h = (-_dsin(angle) - _dsin(decl) * _dsin(self.lat)) / (
            _dcos(decl) * _dcos(self.lat)
        )
        if cos_h < -1 or cos_h > 1:
            return None
        t = math.degrees(math.acos(cos_h)) / 15
        return noon - t if before_noon else noon + t

    def asr_time(self, factor: int, hours: float) -> Optional[float]:
        decl, _ = _sun_position(self.jd + hours / 24)
        angle = -math.degrees(math.atan(1 / (factor + _dtan(abs(self.lat - decl)))))
        return self.sun_angle_time(angle, hours)


def calculate_prayer_times(
    day: date,
    lat: float,
    lng: float,
    tz_name: str,
    method: int = DEFAULT_METHOD,
    asr_factor: int = 1,
) -> dict[str, datetime]:
    """
    Prayer times for one day at one place.

    Args:
        day: Local calendar date
        lat, lng: Coordinates in degrees
        tz_name: IANA time zone name
        method: Calculation method id (see METHODS)
        asr_factor: 1 for the standard shadow ratio, 2 for Hanafi

    Returns:
        Dict of prayer name to timezone-aware datetime, in PRAYER_ORDER.
        Prayers the sun never reaches on that day are absent.
    """
    calc = METHODS.get(method, METHODS[DEFAULT_METHOD])
    tz = ZoneInfo(tz_name)
    solar = _SolarDay(day, lat, lng)

    raw: dict[str, Optional[float]] = {
        "fajr": solar.sun_angle_time(calc.fajr_angle, 5, before_noon=True),
        "sunrise": solar.sun_angle_time(SUNRISE_ANGLE, 6, before_noon=True),
        "dhuhr": solar.mid_day(12),
        "asr": solar.asr_time(asr_factor, 13),
        "maghrib": solar.sun_angle_time(SUNRISE_ANGLE, 18),
    }
    if calc.isha_minutes is not None:
        maghrib = raw["maghrib"]
        raw["isha"] = maghrib + calc.isha_minutes / 60 if maghrib is not None else None
    else:
        raw["isha"] = solar.sun_angle_time(calc.isha_angle, 18)

    local_noon = datetime.combine(day, time(12), tzinfo=tz)
    offset_hours = local_noon.utcoffset().total_seconds() / 3600
    midnight = datetime.combine(day, time(0), tzinfo=tz)

    times = {}
    for name in PRAYER_ORDER:
        value = raw.get(name)
        if value is None:
            continue
        local_hours = value + offset_hours - lng / 15
        moment = midnight + timedelta(hours=local_hours)
        # Round to the nearest minute
        moment = (moment + timedelta(seconds=30)).replace(second=0, microsecond=0)
        times[name] = moment
    return times


def next_prayer(
    times_today: dict[str, datetime],
    times_tomorrow: dict[str, datetime],
    now: datetime,
) -> Optional[tuple[str, datetime]]:
    """The first obligatory prayer strictly after now, looking into tomorrow."""
    for times in (times_today, times_tomorrow):
        for name in PRAYER_NAMES:
            moment = times.get(name)
            if moment is not None and moment > now:
                return name, moment
    return None


def hijri_date(day: date) -> tuple[int, int, int]:
    """
    Approximate Hijri (year, month, day) using the tabular Islamic calendar.

    Can differ by a day from sighting-based calendars.
    """
    jd = int(julian_day(day.year, day.month, day.day) + 0.5)
    l = jd - 1948440 + 10632
    n = (l - 1) // 10631
    l = l - 10631 * n + 354
    j = ((10985 - l) // 5316) * ((50 * l) // 17719) + (l // 5670) * (
        (43 * l) // 15238
    )
    l = (
        l
        - ((30 - j) // 15) * ((17719 * j) // 50)
        - (j // 16) * ((15238 * j) // 43)
        + 29
    )
    month = (24 * l) // 709
    hijri_day = l - (709 * month) // 24
    year = 30 * n + j - 30
    return year, month, hijri_day


def format_hijri(day: date) -> str:
    year, month, hijri_day = hijri_date(day)
    return f"{hijri_day} {HIJRI_MONTHS[month - 1]} {year} AH"
