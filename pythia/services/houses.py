from typing import Optional, Sequence

from .constants import normalize_lon
from .errors import InvalidHouseSystem

HOUSE_CODE_MAP = {
    "placidus": "P",
    "koch": "K",
    "whole_sign": "W",
    "regiomontanus": "R",
    "campanus": "C",
    "equal": "E",
    "porphyry": "O",
    "alcabitius": "B",
    "morinus": "M",
    "topocentric": "T",
}

# One-letter codes understood by swe.houses that yield twelve cusps; Gauquelin
# ("G") yields 36 sectors and is not offered.
HOUSE_CODES = frozenset("PKORCEWBMTXUHAVNDFILQSY")


def house_system_code(system: Optional[str]) -> str:
    """Map a house-system selector (code or name) to its one-letter code."""

    if not system:
        return "P"
    raw = system.strip()
    if len(raw) == 1 and raw.upper() in HOUSE_CODES:
        return raw.upper()
    code = HOUSE_CODE_MAP.get(raw.lower().replace("-", "_").replace(" ", "_"))
    if code is None:
        raise InvalidHouseSystem(f"Unsupported house system: {system!r}")
    return code


def house_of(lon: float, cusps: Optional[Sequence[float]]) -> Optional[int]:
    """Return the 1-based house owning ``lon`` or ``None`` without 12 cusps.

    House *i* spans the half-open arc ``[cusps[i-1], cusps[i % 12])`` in the
    direction of increasing longitude. An arc whose lower cusp is greater than
    its upper one crosses 0° Aries.
    """

    if not cusps or len(cusps) < 12:
        return None
    lon = normalize_lon(lon)
    for i in range(12):
        lower = normalize_lon(cusps[i])
        upper = normalize_lon(cusps[(i + 1) % 12])
        if lower > upper:
            if lon >= lower or lon < upper:
                return i + 1
        elif lower <= lon < upper:
            return i + 1
    return None
