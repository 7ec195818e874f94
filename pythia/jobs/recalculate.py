"""Background recomputation of every stored chart.

Each stored document is recomputed from its original inputs. Documents written
before inputs were stored get inputs rebuilt from their UTC ``meta.date`` and
``meta.location``. That rebuild is lossy: the original local zone is gone, so
the wall-clock time is the UTC time. Such documents are flagged with
``meta.reconstructed``.

Records are processed one at a time and a failing record is logged and
skipped. Nothing is raised to the caller.
"""

from __future__ import annotations

import json
import logging
import re
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Union

from pydantic import ValidationError

from ..schemas.charts import ChartDocument, ChartInputs
from ..services.assembler import compute_chart
from ..services.chart_store import get_store
from ..services.errors import ChartError, MalformedLegacyRecord, MissingReconstructibleInputs

logger = logging.getLogger(__name__)

_LEGACY_DATE_RE = re.compile(
    r"^\s*(\d{4})-(\d{2})-(\d{2})[ T](\d{2}):(\d{2})(?::(\d{2}))?(?:\.\d+)?\s*(?:UTC|Z)?\s*$"
)


@dataclass(frozen=True)
class OriginalInputs:
    inputs: ChartInputs
    exact = True


@dataclass(frozen=True)
class ReconstructedInputs:
    """Inputs rebuilt from a stored UTC date; the local zone is not recoverable."""

    inputs: ChartInputs
    source_date: str
    exact = False


RecoveredInputs = Union[OriginalInputs, ReconstructedInputs]


def parse_event_data(raw: Any) -> Dict[str, Any]:
    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode("utf-8", errors="replace")
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError as exc:
            raise MalformedLegacyRecord(f"event_data is not valid JSON: {exc}") from exc
    if not isinstance(raw, dict):
        raise MalformedLegacyRecord(f"event_data is a {type(raw).__name__}, expected an object")
    return raw


def reconstruct_inputs(utc_date: str, location: str) -> ChartInputs:
    m = _LEGACY_DATE_RE.match(utc_date)
    if not m:
        raise MissingReconstructibleInputs(f"Unparseable legacy date {utc_date!r}")
    year, month, day, hh, mm, ss = m.groups()
    return ChartInputs(
        year=int(year),
        month=int(month),
        day=int(day),
        time=f"{hh}:{mm}:{ss or '00'}",
        location=location,
    )


def recover_inputs(doc: Dict[str, Any]) -> RecoveredInputs:
    """Return the inputs a stored document can be recomputed from."""

    meta = doc.get("meta")
    if not isinstance(meta, dict):
        raise MissingReconstructibleInputs("document has no meta block")

    stored = meta.get("inputs")
    if stored:
        try:
            inputs = ChartInputs.model_validate(stored)
        except ValidationError as exc:
            raise MalformedLegacyRecord(f"meta.inputs is invalid: {exc}") from exc
        if meta.get("reconstructed"):
            return ReconstructedInputs(inputs=inputs, source_date=str(meta.get("date", "")))
        return OriginalInputs(inputs=inputs)

    utc_date = meta.get("date")
    location = meta.get("location")
    if not isinstance(utc_date, str) or not isinstance(location, str) or not location:
        raise MissingReconstructibleInputs("document has neither meta.inputs nor meta.date/meta.location")
    return ReconstructedInputs(inputs=reconstruct_inputs(utc_date, location), source_date=utc_date)


def recompute_document(doc: Dict[str, Any], compute: Callable[..., ChartDocument] = compute_chart) -> ChartDocument:
    recovered = recover_inputs(doc)
    meta = doc.get("meta") or {}
    houses = doc.get("houses")
    system = meta.get("house_system") or (houses.get("system") if isinstance(houses, dict) else None) or "P"
    new_doc = compute(recovered.inputs, include_houses=True, house_system=system)
    if not recovered.exact:
        new_doc.meta.reconstructed = True
    return new_doc


def reconcile_all_charts(store=None, compute: Optional[Callable[..., ChartDocument]] = None) -> None:
    """Recompute and overwrite every stored chart, one record at a time."""

    store = store or get_store()
    compute = compute or compute_chart
    try:
        rows = store.list_all_charts()
    except Exception:
        logger.exception("reconcile_list_failed")
        return

    updated = skipped = failed = 0
    logger.info("reconcile_started", extra={"records": len(rows)})
    for row in rows:
        event_id = row.get("event_id")
        try:
            doc = parse_event_data(row.get("event_data"))
            new_doc = recompute_document(doc, compute)
            store.save_chart(event_id, new_doc)
            updated += 1
        except (MalformedLegacyRecord, MissingReconstructibleInputs) as exc:
            skipped += 1
            logger.warning("reconcile_record_skipped", extra={"event_id": event_id, "reason": str(exc)})
        except ChartError as exc:
            failed += 1
            logger.warning("reconcile_record_failed", extra={"event_id": event_id, "reason": str(exc)})
        except Exception:
            failed += 1
            logger.exception("reconcile_record_crashed", extra={"event_id": event_id})
    logger.info(
        "reconcile_finished",
        extra={"updated": updated, "skipped": skipped, "failed": failed},
    )


_reconcile_thread: Optional[threading.Thread] = None
_thread_lock = threading.Lock()


def ensure_reconcile_started(store=None) -> bool:
    """Start :func:`reconcile_all_charts` on a daemon thread unless one is running.

    Returns ``True`` when a new run was started.
    """

    global _reconcile_thread
    with _thread_lock:
        if _reconcile_thread and _reconcile_thread.is_alive():
            return False
        _reconcile_thread = threading.Thread(
            target=reconcile_all_charts, kwargs={"store": store}, name="chart-reconcile", daemon=True
        )
        _reconcile_thread.start()
        return True


def wait_for_reconcile(timeout: Optional[float] = None) -> None:
    thread = _reconcile_thread
    if thread is not None:
        thread.join(timeout)
