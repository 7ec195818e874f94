import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, HTTPException, Query
from fastapi.responses import JSONResponse

from ..schemas import ChartCreateRequest, ChartDocument, ComputeRequest, CreatedChart, StoredEvent, TransitsResponse
from ..services import errors
from ..services.aspects import MAJOR_ASPECTS, select_catalog
from ..services.assembler import compute_chart
from ..services.chart_store import ChartNotFound, get_store
from ..services.snapshots import progressed_aspects, transit_aspects
from ..jobs.recalculate import ensure_reconcile_started, parse_event_data

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1", tags=["charts"])

_STATUS = {
    errors.UnresolvableLocation: (400, "Could not geocode the provided location."),
    errors.InvalidLocalTime: (400, "Invalid date or time provided."),
    errors.InvalidHouseSystem: (400, "Unsupported house system."),
    errors.UnresolvableTimeZone: (502, "Could not determine the timezone for the location."),
    errors.HouseCalculationFailed: (500, "House calculation failed."),
    errors.ServiceMisconfigured: (500, "Chart service is not configured."),
}


def _error(exc: errors.ChartError) -> HTTPException:
    for cls, (status, message) in _STATUS.items():
        if isinstance(exc, cls):
            return HTTPException(status_code=status, detail={"error": message, "details": str(exc)})
    return HTTPException(status_code=500, detail={"error": "Chart computation failed.", "details": str(exc)})


def _parse_at(raw: Optional[str]) -> datetime:
    if not raw:
        return datetime.now(timezone.utc)
    try:
        at = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        raise HTTPException(status_code=400, detail={"error": "Invalid timestamp.", "details": raw})
    return at if at.tzinfo else at.replace(tzinfo=timezone.utc)


def _load_user_chart(user_id: str, event_id: int) -> ChartDocument:
    try:
        row = get_store().load_chart(event_id)
    except ChartNotFound:
        raise HTTPException(status_code=404, detail={"error": "Event not found."})
    if row.get("user_id") != user_id:
        raise HTTPException(status_code=404, detail={"error": "Event not found."})
    try:
        return ChartDocument.model_validate(parse_event_data(row["event_data"]))
    except (errors.MalformedLegacyRecord, ValueError) as exc:
        raise HTTPException(status_code=409, detail={"error": "Stored chart is not in the current format.", "details": str(exc)})


@router.post("/charts/compute", response_model=ChartDocument)
def compute(req: ComputeRequest):
    try:
        return compute_chart(req.chart_inputs(), include_houses=req.include_houses, house_system=req.house_system)
    except errors.ChartError as exc:
        raise _error(exc)


@router.post("/natal-chart", response_model=CreatedChart, status_code=201)
def create_natal_chart(req: ChartCreateRequest):
    try:
        doc = compute_chart(req.chart_inputs(), include_houses=True, house_system=req.house_system)
    except errors.ChartError as exc:
        logger.warning("natal_chart_failed", extra={"user_id": req.user_id, "error": str(exc)})
        raise _error(exc)
    event_id = get_store().create_chart(req.user_id, req.label, doc)
    return CreatedChart(event_id=event_id, **doc.model_dump())


@router.get("/events/{user_id}", response_model=list[StoredEvent])
def list_events(user_id: str):
    events = []
    for row in get_store().list_user_charts(user_id):
        try:
            data = parse_event_data(row["event_data"])
        except errors.MalformedLegacyRecord:
            logger.error("event_data_unparseable", extra={"event_id": row["event_id"]})
            data = {"error": "Failed to parse malformed JSON data from database."}
        events.append(StoredEvent(**{**row, "event_data": data}))
    return events


@router.get("/events/{user_id}/{event_id}/transits", response_model=TransitsResponse)
def event_transits(
    user_id: str,
    event_id: int,
    at: Optional[str] = None,
    aspects: Optional[list[str]] = Query(None),
):
    natal = _load_user_chart(user_id, event_id)
    when = _parse_at(at)
    catalog = select_catalog(aspects) if aspects else MAJOR_ASPECTS
    if not catalog:
        raise HTTPException(status_code=400, detail={"error": "Unknown aspect kinds.", "details": aspects})
    try:
        positions, found = transit_aspects(natal, when, catalog)
    except errors.ChartError as exc:
        raise _error(exc)
    return TransitsResponse(event_id=event_id, at=when.isoformat(), positions=positions, aspects=found)


@router.get("/events/{user_id}/{event_id}/progressions", response_model=TransitsResponse)
def event_progressions(user_id: str, event_id: int, at: Optional[str] = None):
    natal = _load_user_chart(user_id, event_id)
    when = _parse_at(at)
    try:
        positions, found = progressed_aspects(natal, when)
    except errors.ChartError as exc:
        raise _error(exc)
    return TransitsResponse(event_id=event_id, at=when.isoformat(), positions=positions, aspects=found)


@router.post("/charts/reconcile", status_code=202)
def reconcile():
    started = ensure_reconcile_started()
    return JSONResponse({"started": started}, status_code=202)
