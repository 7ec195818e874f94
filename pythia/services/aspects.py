"""Aspect detection over ecliptic longitudes.

Catalogs are ordered tuples and the order is the tie-break: for each pair of
bodies the kinds are tried in declaration order and the first one within orb
is the pair's only aspect.
"""

from __future__ import annotations

from typing import List, Mapping, NamedTuple, Optional, Sequence, Tuple


class AspectKind(NamedTuple):
    name: str
    angle: float
    orb: float
    color: str


MAJOR_ASPECTS: Tuple[AspectKind, ...] = (
    AspectKind("conjunction", 0.0, 8.0, "#4a4a4a"),
    AspectKind("opposition", 180.0, 8.0, "#ff4d4d"),
    AspectKind("trine", 120.0, 8.0, "#2b8a3e"),
    AspectKind("square", 90.0, 8.0, "#e03131"),
    AspectKind("sextile", 60.0, 6.0, "#1c7ed6"),
    AspectKind("quincunx", 150.0, 3.0, "#f08c00"),
)

MINOR_ASPECTS: Tuple[AspectKind, ...] = (
    AspectKind("quintile", 72.0, 2.0, "#862e9c"),
    AspectKind("semisextile", 30.0, 2.0, "#495057"),
    AspectKind("semisquare", 45.0, 2.0, "#c92a2a"),
)

ALL_ASPECTS: Tuple[AspectKind, ...] = MAJOR_ASPECTS + MINOR_ASPECTS

ASPECT_ALIASES = {"inconjunct": "quincunx"}


def canonical_aspect(name: str) -> str:
    return ASPECT_ALIASES.get(name, name)


def select_catalog(names: Sequence[str]) -> Tuple[AspectKind, ...]:
    """Return the kinds named in ``names``, kept in catalog order."""

    wanted = {canonical_aspect(n.lower()) for n in names}
    return tuple(kind for kind in ALL_ASPECTS if kind.name in wanted)


def angular_separation(a: float, b: float) -> float:
    """Return the absolute separation of two longitudes folded to [0, 180]."""

    sep = abs(a - b) % 360.0
    if sep > 180.0:
        sep = 360.0 - sep
    return sep


def match_aspect(sep: float, catalog: Sequence[AspectKind] = ALL_ASPECTS) -> Optional[Tuple[AspectKind, float]]:
    for kind in catalog:
        orb = abs(sep - kind.angle)
        if orb <= kind.orb:
            return kind, orb
    return None


def find_aspects(longitudes: Mapping[str, float], catalog: Sequence[AspectKind] = ALL_ASPECTS) -> List[dict]:
    """Detect at most one aspect for every unordered pair of bodies.

    Pairs are enumerated in the mapping's iteration order, so the result order
    follows the order bodies were computed in.
    """

    res = []
    names = list(longitudes.keys())
    for i in range(len(names)):
        for j in range(i + 1, len(names)):
            p1, p2 = names[i], names[j]
            hit = match_aspect(angular_separation(longitudes[p1], longitudes[p2]), catalog)
            if hit is None:
                continue
            kind, orb = hit
            res.append({
                "planet1": p1,
                "planet2": p2,
                "aspect": kind.name,
                "orb": orb,
                "color": kind.color,
            })
    return res


def signed_delta(moving_lon: float, fixed_lon: float, aspect_angle: float) -> float:
    """Signed distance from the exact aspect in [-180, 180].

    Positive values mean the moving body has passed the exact aspect.
    """

    return ((moving_lon - fixed_lon) - aspect_angle + 540.0) % 360.0 - 180.0


def is_applying(moving_lon: float, moving_speed: float, fixed_lon: float, fixed_speed: float, aspect_angle: float) -> bool:
    delta = signed_delta(moving_lon, fixed_lon, aspect_angle)
    if abs(delta) < 1e-6:
        return True
    rate = moving_speed - fixed_speed
    if abs(rate) < 1e-6:
        return False
    # Aspects at 0° and 180° are symmetric; the others are reached from both sides.
    if aspect_angle not in (0.0, 180.0):
        mirrored = signed_delta(moving_lon, fixed_lon, -aspect_angle)
        if abs(mirrored) < abs(delta):
            delta = mirrored
    return delta * rate < 0


def find_cross_aspects(
    moving: Mapping[str, Mapping[str, float]],
    fixed: Mapping[str, Mapping[str, float]],
    catalog: Sequence[AspectKind] = MAJOR_ASPECTS,
) -> List[dict]:
    """Detect aspects from every ``moving`` body to every ``fixed`` body.

    Both mappings hold ``{"longitude": ..., "speed": ...}`` entries. A body may
    appear on both sides (transit Sun to natal Sun is a valid pair).
    """

    res: List[dict] = []
    for m_name, m in moving.items():
        for f_name, f in fixed.items():
            hit = match_aspect(angular_separation(m["longitude"], f["longitude"]), catalog)
            if hit is None:
                continue
            kind, orb = hit
            res.append({
                "moving": m_name,
                "fixed": f_name,
                "aspect": kind.name,
                "orb": orb,
                "applying": is_applying(
                    m["longitude"], m.get("speed", 0.0), f["longitude"], f.get("speed", 0.0), kind.angle
                ),
            })
    return sorted(res, key=lambda x: x["orb"])
