from contextlib import contextmanager
from datetime import datetime, timezone

import pytest

from pythia.schemas import ChartInputs
from pythia.services import chart_store
from pythia.services.errors import (
    BodyComputationFailed,
    HouseCalculationFailed,
    UnresolvableLocation,
    UnresolvableTimeZone,
)
from pythia.services.geo import GeoResolver, Place

# Sun in Capricorn, Moon in Scorpio ... one longitude per tracked body.
FIXED_LONGITUDES = {
    "Sun": 280.5,
    "Moon": 223.3,
    "Mercury": 271.9,
    "Venus": 241.6,
    "Mars": 327.9,
    "Jupiter": 25.3,
    "Saturn": 40.4,
    "Uranus": 314.8,
    "Neptune": 303.2,
    "Pluto": 251.5,
    "North Node": 124.0,
    "Chiron": 251.6,
}

EQUAL_CUSPS = [(100.0 + 30.0 * i) % 360.0 for i in range(12)]


class FakeGeocoder:
    def __init__(self, places=None):
        self.places = places if places is not None else {
            "Greenwich, UK": Place(51.48, 0.0, "Greenwich, London, UK"),
            "Greenwich, London, UK": Place(51.48, 0.0, "Greenwich, London, UK"),
            "New York, NY": Place(40.7128, -74.006, "New York, NY, USA"),
        }
        self.calls = []

    def resolve_place(self, text):
        self.calls.append(text)
        try:
            return self.places[text]
        except KeyError:
            raise UnresolvableLocation(f"Could not geocode {text!r}")


class FakeTimeZoneLookup:
    def __init__(self, zones=None):
        self.zones = zones if zones is not None else {(51.48, 0.0): "Europe/London", (40.7128, -74.006): "America/New_York"}
        self.calls = []

    def resolve_time_zone(self, lat, lng, estimate):
        self.calls.append((lat, lng, estimate))
        try:
            return self.zones[(lat, lng)]
        except KeyError:
            raise UnresolvableTimeZone(f"No time zone for {lat},{lng}")


class FakeEphemeris:
    """Deterministic stand-in for the Swiss Ephemeris capability."""

    def __init__(self, longitudes=None, cusps=None, failing=(), houses_fail=False):
        self.longitudes = dict(longitudes or FIXED_LONGITUDES)
        self.cusps = list(cusps if cusps is not None else EQUAL_CUSPS)
        self.failing = set(failing)
        self.houses_fail = houses_fail
        self.opened = 0
        self.closed = 0
        self.day_numbers = []
        self.house_calls = []

    @contextmanager
    def session(self):
        self.opened += 1
        try:
            yield self
        finally:
            self.closed += 1

    def day_number(self, year, month, day, hour):
        midnight = datetime(year, month, day, tzinfo=timezone.utc)
        jd = 2440587.5 + midnight.timestamp() / 86400.0 + hour / 24.0
        self.day_numbers.append(jd)
        return jd

    def body_position(self, jd, body):
        if body in self.failing:
            raise BodyComputationFailed(body, "ephemeris file not found")
        return self.longitudes[body], 0.5, 1.0 if body != "North Node" else -0.05

    def houses(self, jd, lat, lng, system):
        self.house_calls.append(system)
        if self.houses_fail:
            raise HouseCalculationFailed("Placidus undefined at this latitude")
        return list(self.cusps), self.cusps[0], self.cusps[9]


@pytest.fixture
def fake_library():
    return FakeEphemeris()


@pytest.fixture
def resolver():
    return GeoResolver(FakeGeocoder(), FakeTimeZoneLookup())


@pytest.fixture
def greenwich_inputs():
    return ChartInputs(year=2000, month=1, day=1, time="12:00", location="Greenwich, UK")


@pytest.fixture
def memory_store():
    store = chart_store.InMemoryChartStore()
    chart_store.set_store(store)
    yield store
    chart_store.set_store(None)


@pytest.fixture
def patched_engine(monkeypatch, fake_library, resolver):
    """Route the production defaults to the fakes."""

    from pythia.services import ephem, geo

    monkeypatch.setattr(geo, "default_resolver", lambda: resolver)
    monkeypatch.setattr(ephem, "SwissEphemeris", lambda *a, **k: fake_library)
    return fake_library
