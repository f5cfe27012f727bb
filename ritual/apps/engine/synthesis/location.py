"""City, season and week-boundary helpers for couples' planning weeks."""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass
from typing import Dict
from zoneinfo import ZoneInfo

DEFAULT_CITY = "New York"


@dataclass(frozen=True, slots=True)
class CityInfo:
    timezone: str
    country: str
    southern_hemisphere: bool = False


CITY_DATA: Dict[str, CityInfo] = {
    "London": CityInfo("Europe/London", "United Kingdom"),
    "Sydney": CityInfo("Australia/Sydney", "Australia", southern_hemisphere=True),
    "Melbourne": CityInfo("Australia/Melbourne", "Australia", southern_hemisphere=True),
    "New York": CityInfo("America/New_York", "United States"),
}

_SEASONAL_GUIDANCE = {
    "spring": "Outdoor activities emerging, mild weather, blooming nature",
    "summer": "Peak outdoor season, long daylight, beach/park activities",
    "autumn": "Cozy indoor-outdoor mix, changing foliage, harvest themes",
    "winter": "Indoor-focused with occasional outdoor adventures, warm experiences",
}


@dataclass(frozen=True, slots=True)
class LocationContext:
    city: str
    country: str
    timezone: str
    season: str
    time_of_day: str
    local_time: str
    seasonal_guidance: str


def resolve_city(city: str | None, default: str = DEFAULT_CITY) -> str:
    if city and city in CITY_DATA:
        return city
    return default if default in CITY_DATA else DEFAULT_CITY


def city_now(city: str, now: dt.datetime | None = None) -> dt.datetime:
    """Current wall-clock time in ``city``; ``now`` must be timezone-aware when given."""

    info = CITY_DATA[resolve_city(city)]
    moment = now or dt.datetime.now(dt.timezone.utc)
    return moment.astimezone(ZoneInfo(info.timezone))


def time_of_day(local: dt.datetime) -> str:
    hour = local.hour
    if 5 <= hour < 12:
        return "morning"
    if 12 <= hour < 17:
        return "afternoon"
    if 17 <= hour < 22:
        return "evening"
    return "night"


def season_for(month: int, southern_hemisphere: bool) -> str:
    if southern_hemisphere:
        if 9 <= month <= 11:
            return "spring"
        if month in (12, 1, 2):
            return "summer"
        if 3 <= month <= 5:
            return "autumn"
        return "winter"
    if 3 <= month <= 5:
        return "spring"
    if 6 <= month <= 8:
        return "summer"
    if 9 <= month <= 11:
        return "autumn"
    return "winter"


def week_start_date(city: str | None, now: dt.datetime | None = None) -> dt.date:
    """
    Monday of the current week in the city's timezone.

    Both partners must land on the same cycle regardless of where each device
    is, so the week boundary is always taken from the couple's preferred city.
    """

    local = city_now(resolve_city(city), now)
    return local.date() - dt.timedelta(days=local.weekday())


def get_location_context(city: str | None, now: dt.datetime | None = None) -> LocationContext:
    name = resolve_city(city)
    info = CITY_DATA[name]
    local = city_now(name, now)
    season = season_for(local.month, info.southern_hemisphere)
    guidance = _SEASONAL_GUIDANCE[season]
    if info.southern_hemisphere:
        guidance = f"{guidance} (Southern Hemisphere)"
    return LocationContext(
        city=name,
        country=info.country,
        timezone=info.timezone,
        season=season,
        time_of_day=time_of_day(local),
        local_time=local.strftime("%H:%M %Z"),
        seasonal_guidance=guidance,
    )


__all__ = [
    "CITY_DATA",
    "DEFAULT_CITY",
    "CityInfo",
    "LocationContext",
    "city_now",
    "get_location_context",
    "resolve_city",
    "season_for",
    "time_of_day",
    "week_start_date",
]
