"""Transit and progressed snapshots measured against a stored natal chart.

Snapshots carry positions only: house placement needs a location context the
moment itself does not have.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Dict, List, Sequence, Tuple

from ..schemas.charts import BodyPosition, ChartDocument
from . import aspects as aspects_svc
from .assembler import UTC_DATE_FORMAT, compute_snapshot


def natal_instant(natal: ChartDocument) -> datetime:
    return datetime.strptime(natal.meta.date, UTC_DATE_FORMAT).replace(tzinfo=timezone.utc)


def _as_points(positions: Dict[str, BodyPosition]) -> Dict[str, Dict[str, float]]:
    return {k: {"longitude": v.longitude, "speed": v.speed} for k, v in positions.items()}


def transit_aspects(
    natal: ChartDocument,
    at: datetime,
    catalog: Sequence[aspects_svc.AspectKind] = aspects_svc.MAJOR_ASPECTS,
    library=None,
) -> Tuple[Dict[str, BodyPosition], List[dict]]:
    """Transiting positions at ``at`` and their aspects to the natal bodies."""

    if at.tzinfo is None:
        at = at.replace(tzinfo=timezone.utc)
    moving = compute_snapshot(at, library=library)
    fixed = {k: {"longitude": v.longitude, "speed": 0.0} for k, v in natal.positions.items()}
    return moving, aspects_svc.find_cross_aspects(_as_points(moving), fixed, catalog)


def progressed_instant(natal: ChartDocument, target: datetime) -> datetime:
    """Secondary progression: one day after birth for each year of life."""

    birth = natal_instant(natal)
    if target.tzinfo is None:
        target = target.replace(tzinfo=timezone.utc)
    years = (target - birth).total_seconds() / (365.2425 * 86400)
    return birth + timedelta(days=years)


def progressed_aspects(
    natal: ChartDocument,
    target: datetime,
    catalog: Sequence[aspects_svc.AspectKind] = aspects_svc.MAJOR_ASPECTS,
    library=None,
) -> Tuple[Dict[str, BodyPosition], List[dict]]:
    moving = compute_snapshot(progressed_instant(natal, target), library=library)
    fixed = {k: {"longitude": v.longitude, "speed": 0.0} for k, v in natal.positions.items()}
    return moving, aspects_svc.find_cross_aspects(_as_points(moving), fixed, catalog)
