"""Swiss Ephemeris adapter used by the chart assembler.

The adapter talks to an astronomical *library* object exposing
``session()``, ``day_number()``, ``body_position()`` and ``houses()``.
:class:`SwissEphemeris` binds that capability to ``pyswisseph``; tests hand in
deterministic fakes with the same methods.
"""

from __future__ import annotations

import logging
import os
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Iterator, List, Optional, Tuple

import swisseph as swe

from .constants import normalize_lon
from .errors import BodyComputationFailed, HouseCalculationFailed

logger = logging.getLogger(__name__)

# Engine version for stored documents
ENGINE_VERSION = f"swisseph-{swe.version}"

TRACKED_BODIES: Tuple[str, ...] = (
    "Sun",
    "Moon",
    "Mercury",
    "Venus",
    "Mars",
    "Jupiter",
    "Saturn",
    "Uranus",
    "Neptune",
    "Pluto",
    "North Node",
    "Chiron",
)

BODIES: Dict[str, int] = {
    "Sun": swe.SUN,
    "Moon": swe.MOON,
    "Mercury": swe.MERCURY,
    "Venus": swe.VENUS,
    "Mars": swe.MARS,
    "Jupiter": swe.JUPITER,
    "Saturn": swe.SATURN,
    "Uranus": swe.URANUS,
    "Neptune": swe.NEPTUNE,
    "Pluto": swe.PLUTO,
    "North Node": swe.TRUE_NODE,
    "Chiron": swe.CHIRON,
}

# swisseph keeps global state (open files, ephemeris path) and is not
# re-entrant, so every session holds this lock.
_SWE_LOCK = threading.Lock()


def _backend_flag() -> int:
    """Return the Swiss Ephemeris backend flag based on environment configuration."""

    raw_backend = os.getenv("EPHEMERIS_BACKEND")
    backend = raw_backend.strip().lower() if raw_backend else "swieph"
    if backend == "moseph":
        return swe.FLG_MOSEPH
    if backend == "jpl":
        return swe.FLG_JPLEPH
    return swe.FLG_SWIEPH


class SwissEphemeris:
    """``pyswisseph`` binding of the astronomical library capability."""

    def __init__(self, ephe_dir: Optional[str] = None, flags: Optional[int] = None) -> None:
        self.ephe_dir = ephe_dir if ephe_dir is not None else os.getenv("EPHEMERIS_DIR")
        self.flags = flags if flags is not None else _backend_flag()

    @contextmanager
    def session(self) -> Iterator["SwissEphemeris"]:
        """Hold the library for one computation and close its files afterwards."""

        with _SWE_LOCK:
            if self.ephe_dir and os.path.isdir(self.ephe_dir):
                swe.set_ephe_path(os.fspath(self.ephe_dir))
            try:
                yield self
            finally:
                swe.close()

    def day_number(self, year: int, month: int, day: int, hour: float) -> float:
        return swe.julday(year, month, day, hour, swe.GREG_CAL)

    def body_position(self, jd_ut: float, body: str) -> Tuple[float, float, float]:
        try:
            values, _ = swe.calc_ut(jd_ut, BODIES[body], self.flags | swe.FLG_SPEED)
        except swe.Error as exc:
            # Chiron needs the seas_18 asteroid file; missing files land here.
            raise BodyComputationFailed(body, str(exc)) from exc
        lon, lat, _dist, lon_speed, _lat_speed, _dist_speed = values
        return lon, lat, lon_speed

    def houses(self, jd_ut: float, lat: float, lng: float, system: str) -> Tuple[List[float], float, float]:
        try:
            cusps, ascmc = swe.houses(jd_ut, lat, lng, system.encode())
        except swe.Error as exc:
            raise HouseCalculationFailed(str(exc)) from exc
        return list(cusps), ascmc[0], ascmc[1]


@dataclass
class EphemerisResult:
    positions: Dict[str, Dict[str, float]]
    houses: Optional[Dict[str, object]] = None
    missing: List[str] = field(default_factory=list)


def fractional_hour(instant: datetime) -> float:
    return (
        instant.hour
        + instant.minute / 60
        + instant.second / 3600
        + instant.microsecond / 3_600_000_000
    )


def to_jd_ut(instant: datetime, library=None) -> float:
    """Convert an aware datetime to a UT Julian day."""

    library = library or SwissEphemeris()
    utc = instant.astimezone(timezone.utc)
    return library.day_number(utc.year, utc.month, utc.day, fractional_hour(utc))


def compute_positions(
    instant: datetime,
    lat: float,
    lng: float,
    house_system: str = "P",
    include_houses: bool = True,
    library=None,
) -> EphemerisResult:
    """Compute raw body positions and, optionally, house cusps for ``instant``.

    A body the library cannot compute is logged and listed in ``missing``. A
    failed house computation raises :class:`HouseCalculationFailed`.
    """

    library = library or SwissEphemeris()
    result = EphemerisResult(positions={})
    with library.session():
        jd = to_jd_ut(instant, library)
        for name in TRACKED_BODIES:
            try:
                lon, blat, speed = library.body_position(jd, name)
            except BodyComputationFailed as exc:
                logger.warning("chart_body_failed", extra={"body": name, "error": str(exc)})
                result.missing.append(name)
                continue
            result.positions[name] = {
                "longitude": normalize_lon(lon),
                "latitude": blat,
                "speed": speed,
            }

        if include_houses:
            cusps, asc, mc = library.houses(jd, lat, lng, house_system)
            if len(cusps) != 12:
                raise HouseCalculationFailed(f"expected 12 cusps, got {len(cusps)}")
            result.houses = {
                "system": house_system,
                "ascendant": normalize_lon(asc),
                "mc": normalize_lon(mc),
                "cusps": [normalize_lon(c) for c in cusps],
            }
    return result
