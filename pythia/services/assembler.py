"""Chart assembly: inputs in, canonical chart document out."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Dict, Optional, Sequence

from ..schemas.charts import Aspect, BodyPosition, ChartDocument, ChartInputs, ChartMeta, HouseSet
from . import aspects as aspects_svc, ephem, geo, houses as houses_svc
from .constants import sign_of

logger = logging.getLogger(__name__)

UTC_DATE_FORMAT = "%Y-%m-%d %H:%M:%S UTC"


def format_utc(instant: datetime) -> str:
    return instant.astimezone(timezone.utc).strftime(UTC_DATE_FORMAT)


def classify_positions(raw: Dict[str, Dict[str, float]], cusps: Optional[Sequence[float]] = None) -> Dict[str, BodyPosition]:
    out: Dict[str, BodyPosition] = {}
    for name, p in raw.items():
        sign, deg = sign_of(p["longitude"])
        out[name] = BodyPosition(
            longitude=p["longitude"],
            latitude=p["latitude"],
            speed=p["speed"],
            sign=sign,
            sign_degree=deg,
            house=houses_svc.house_of(p["longitude"], cusps),
        )
    return out


def compute_snapshot(utc_instant: datetime, library=None) -> Dict[str, BodyPosition]:
    """Positions at ``utc_instant`` with no houses, for transit/progressed context."""

    result = ephem.compute_positions(utc_instant, 0.0, 0.0, include_houses=False, library=library)
    return classify_positions(result.positions)


def compute_chart(
    inputs: ChartInputs,
    include_houses: bool = True,
    house_system: str = "P",
    resolver=None,
    library=None,
    catalog: Sequence[aspects_svc.AspectKind] = aspects_svc.ALL_ASPECTS,
) -> ChartDocument:
    """Compute the full chart document for ``inputs``.

    Raises the :mod:`pythia.services.errors` failures of the resolver and the
    ephemeris adapter unchanged. ``meta.inputs`` is ``inputs`` itself.
    """

    code = houses_svc.house_system_code(house_system)
    resolver = resolver or geo.default_resolver()
    resolved = resolver.resolve(inputs.year, inputs.month, inputs.day, inputs.time, inputs.location)

    result = ephem.compute_positions(
        resolved.utc_instant,
        resolved.latitude,
        resolved.longitude,
        house_system=code,
        include_houses=include_houses,
        library=library,
    )

    house_set = HouseSet(**result.houses) if result.houses else None
    positions = classify_positions(result.positions, house_set.cusps if house_set else None)
    found = aspects_svc.find_aspects({name: p.longitude for name, p in positions.items()}, catalog)

    logger.info(
        "chart_computed",
        extra={
            "location": resolved.formatted_location,
            "utc": resolved.utc_instant.isoformat(),
            "bodies": len(positions),
            "missing": result.missing,
            "aspects": len(found),
        },
    )
    return ChartDocument(
        meta=ChartMeta(
            date=format_utc(resolved.utc_instant),
            location=resolved.formatted_location,
            latitude=resolved.latitude,
            longitude=resolved.longitude,
            timezone=resolved.timezone,
            house_system=code if include_houses else None,
            engine_version=ephem.ENGINE_VERSION,
            inputs=inputs,
        ),
        positions=positions,
        houses=house_set,
        aspects=[Aspect(**a) for a in found],
    )
