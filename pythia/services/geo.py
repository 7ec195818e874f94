"""Place and time resolution for chart inputs.

Turns a free-text place plus a local calendar date and wall-clock time into
coordinates, an IANA zone and the UTC instant the ephemeris works from. The
geocoder and time-zone lookup are pluggable collaborators so tests can swap in
fixed answers.
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import requests

from .errors import InvalidLocalTime, ServiceMisconfigured, UnresolvableLocation, UnresolvableTimeZone

logger = logging.getLogger(__name__)

GEOCODE_URL = "https://maps.googleapis.com/maps/api/geocode/json"
TIMEZONE_URL = "https://maps.googleapis.com/maps/api/timezone/json"

_TIME_RE = re.compile(r"^(\d{1,2}):(\d{2})(?::(\d{2})(?:\.(\d{1,6}))?)?$")


@dataclass(frozen=True)
class Place:
    lat: float
    lng: float
    formatted_name: str


@dataclass(frozen=True)
class ResolvedInstant:
    latitude: float
    longitude: float
    formatted_location: str
    timezone: str
    utc_instant: datetime


def _http_timeout() -> float:
    return float(os.getenv("HTTP_TIMEOUT", "10"))


def _api_key(explicit: Optional[str]) -> str:
    key = explicit or os.getenv("GEOCODING_API_KEY")
    if not key:
        raise ServiceMisconfigured("GEOCODING_API_KEY is not configured")
    return key


class GoogleGeocoder:
    """Google Maps Geocoding API client."""

    def __init__(self, api_key: Optional[str] = None, session: Optional[requests.Session] = None) -> None:
        self.api_key = _api_key(api_key)
        self.session = session or requests.Session()

    def resolve_place(self, text: str) -> Place:
        try:
            resp = self.session.get(
                GEOCODE_URL,
                params={"address": text, "key": self.api_key},
                timeout=_http_timeout(),
            )
            resp.raise_for_status()
            data = resp.json()
        except (requests.RequestException, ValueError) as exc:
            raise UnresolvableLocation(f"Geocoding request failed for {text!r}: {exc}") from exc

        results = data.get("results") or []
        if data.get("status") != "OK" or not results:
            raise UnresolvableLocation(f"Could not geocode {text!r} (status={data.get('status')})")
        first = results[0]
        loc = first["geometry"]["location"]
        return Place(lat=float(loc["lat"]), lng=float(loc["lng"]), formatted_name=first.get("formatted_address") or text)


class GoogleTimeZoneLookup:
    """Google Maps Time Zone API client."""

    def __init__(self, api_key: Optional[str] = None, session: Optional[requests.Session] = None) -> None:
        self.api_key = _api_key(api_key)
        self.session = session or requests.Session()

    def resolve_time_zone(self, lat: float, lng: float, estimate: datetime) -> str:
        try:
            resp = self.session.get(
                TIMEZONE_URL,
                params={
                    "location": f"{lat},{lng}",
                    "timestamp": int(estimate.timestamp()),
                    "key": self.api_key,
                },
                timeout=_http_timeout(),
            )
            resp.raise_for_status()
            data = resp.json()
        except (requests.RequestException, ValueError) as exc:
            raise UnresolvableTimeZone(f"Time zone request failed for {lat},{lng}: {exc}") from exc

        if data.get("status") != "OK" or not data.get("timeZoneId"):
            raise UnresolvableTimeZone(f"No time zone for {lat},{lng} (status={data.get('status')})")
        return data["timeZoneId"]


class TimezoneFinderLookup:
    """Offline time-zone lookup backed by ``timezonefinder``."""

    def __init__(self) -> None:
        from timezonefinder import TimezoneFinder

        self._tf = TimezoneFinder()

    def resolve_time_zone(self, lat: float, lng: float, estimate: datetime) -> str:
        tz = self._tf.timezone_at(lng=lng, lat=lat)
        if not tz:
            raise UnresolvableTimeZone(f"No time zone for {lat},{lng}")
        return tz


def parse_local_datetime(year: int, month: int, day: int, time_str: str) -> datetime:
    """Build a naive local datetime from calendar parts and ``HH:MM[:SS]``."""

    m = _TIME_RE.match(time_str.strip())
    if not m:
        raise InvalidLocalTime(f"Invalid time {time_str!r}; expected HH:MM or HH:MM:SS")
    hh, mm, ss, frac = m.groups()
    micro = int((frac or "0").ljust(6, "0"))
    try:
        return datetime(int(year), int(month), int(day), int(hh), int(mm), int(ss or 0), micro)
    except ValueError as exc:
        raise InvalidLocalTime(f"Invalid date or time: {exc}") from exc


def localize(local: datetime, tz_name: str) -> datetime:
    """Attach ``tz_name`` to a naive wall-clock time and return it in UTC.

    Wall-clock times skipped by a DST transition are rejected; repeated ones
    resolve to their first occurrence.
    """

    try:
        tz = ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise UnresolvableTimeZone(f"Unknown time zone {tz_name!r}") from exc
    aware = local.replace(tzinfo=tz, fold=0)
    try:
        utc = aware.astimezone(timezone.utc)
        round_trip = utc.astimezone(tz).replace(tzinfo=None)
    except OverflowError as exc:
        raise InvalidLocalTime(f"{local.isoformat()} in {tz_name} is outside the supported date range") from exc
    if round_trip != local:
        raise InvalidLocalTime(f"{local.isoformat()} does not exist in {tz_name}")
    return utc


class GeoResolver:
    def __init__(self, geocoder, tz_lookup) -> None:
        self.geocoder = geocoder
        self.tz_lookup = tz_lookup

    def resolve(self, year: int, month: int, day: int, time_str: str, place: str) -> ResolvedInstant:
        found = self.geocoder.resolve_place(place)
        local = parse_local_datetime(year, month, day, time_str)
        tz_name = self.tz_lookup.resolve_time_zone(found.lat, found.lng, local.replace(tzinfo=timezone.utc))
        utc = localize(local, tz_name)
        logger.debug(
            "geo_resolved",
            extra={"place": place, "formatted": found.formatted_name, "tz": tz_name, "utc": utc.isoformat()},
        )
        return ResolvedInstant(
            latitude=found.lat,
            longitude=found.lng,
            formatted_location=found.formatted_name,
            timezone=tz_name,
            utc_instant=utc,
        )


def default_resolver() -> GeoResolver:
    """Build the resolver selected by ``TIMEZONE_BACKEND`` (google | timezonefinder)."""

    backend = os.getenv("TIMEZONE_BACKEND", "google").strip().lower()
    tz_lookup = TimezoneFinderLookup() if backend == "timezonefinder" else GoogleTimeZoneLookup()
    return GeoResolver(GoogleGeocoder(), tz_lookup)
