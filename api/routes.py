# api/routes.py
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request

from analysis.coverage import coverage_status, coverage_summary, coverage_warning
from analysis.correlation import pre_crash_range
from analysis.filters import EventFilters, apply_filters
from api.context import AppContext
from api.schemas import (
    ImportEventsRequest,
    ImportHostCrashesRequest,
    IngestProfileRequest,
    IngestWindowRequest,
    SampleCrashRequest,
    SyncRangeRequest,
    SyncResultResponse,
)
from collectors import host_os_version
from constants import (
    APP_NAME,
    APP_VERSION,
    DEFAULT_CRASH_LIMIT,
    DEFAULT_LOCAL_EVENTS_LIMIT,
    DEFAULT_PRE_CRASH_WINDOW_MINUTES,
    MAX_CRASH_LIMIT,
)
from datamodels.events import EventCategory, EventSeverity, SupportedOs
from infra.errors import ErrorCodes, ValidationError
from ingest.session_pool import parse_export
from utils.timeutil import normalize_range

router = APIRouter()


def get_context(request: Request) -> AppContext:
    return request.app.state.context


def _events_payload(events) -> List[dict]:
    return [e.to_dict() for e in events]


def _enum_param(enum_cls, value: str, name: str):
    """Exact enum value from a query parameter; unknown values are rejected, not guessed."""
    try:
        return enum_cls(value.strip().lower())
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ValidationError(f"Unknown {name} {value!r}. Expected one of: {allowed}.")


# --- host / health ---

@router.get("/health")
def health_check(ctx: AppContext = Depends(get_context)):
    return {
        "status": "ok",
        "app": APP_NAME,
        "version": APP_VERSION,
        "os": ctx.host_os.value,
        "cachedEvents": ctx.store.count(),
    }


@router.get("/host/os")
def host_os(ctx: AppContext = Depends(get_context)):
    return {"os": ctx.host_os.value}


@router.get("/host/os-version")
def os_version(ctx: AppContext = Depends(get_context)):
    return {"version": host_os_version(ctx.host_os, ctx.collector.runner)}


# --- settings ---

@router.get("/settings/ingest-window")
def get_ingest_window(ctx: AppContext = Depends(get_context)):
    return {"days": ctx.settings.get_ingest_window_days()}


@router.put("/settings/ingest-window")
def set_ingest_window(body: IngestWindowRequest, ctx: AppContext = Depends(get_context)):
    return {"days": ctx.settings.set_ingest_window_days(body.days)}


@router.get("/settings/ingest-profile")
def get_ingest_profile(ctx: AppContext = Depends(get_context)):
    return ctx.settings.get_ingest_profile().to_dict()


@router.put("/settings/ingest-profile")
def set_ingest_profile(body: IngestProfileRequest, ctx: AppContext = Depends(get_context)):
    profile = ctx.settings.set_ingest_profile(body.model_dump(by_alias=True))
    return profile.to_dict()


# --- events ---

@router.post("/events/refresh", response_model=SyncResultResponse)
def refresh_local_events(ctx: AppContext = Depends(get_context)):
    result = ctx.coordinator.refresh()
    return SyncResultResponse(collected=result.collected, warnings=result.warnings)


@router.post("/events/sync-range", response_model=SyncResultResponse)
def sync_local_events_range(body: SyncRangeRequest, ctx: AppContext = Depends(get_context)):
    result = ctx.coordinator.sync_range(body.date_from, body.date_to, body.replace_outside_range)
    return SyncResultResponse(collected=result.collected, warnings=result.warnings)


@router.get("/events")
def get_local_events(
    limit: int = Query(DEFAULT_LOCAL_EVENTS_LIMIT, ge=0),
    text: Optional[str] = None,
    severity: Optional[List[str]] = Query(None),
    category: Optional[str] = None,
    log_name: Optional[str] = Query(None, alias="logName"),
    event_id: Optional[int] = Query(None, alias="eventId"),
    source: Optional[str] = None,
    date_from: Optional[str] = Query(None, alias="from"),
    date_to: Optional[str] = Query(None, alias="to"),
    ctx: AppContext = Depends(get_context),
):
    filters = EventFilters(
        text=text,
        severities=[_enum_param(EventSeverity, s, "severity") for s in severity or []],
        category=_enum_param(EventCategory, category, "category") if category else None,
        log_name=log_name,
        event_id=event_id,
        source=source,
        date_from=date_from,
        date_to=date_to,
    )
    result = ctx.store.query_by_filter(filters, limit, zone=ctx.zone)
    imported = apply_filters(ctx.pool.events(), filters, ctx.zone)
    return {
        "events": _events_payload(result.events),
        "truncated": result.truncated,
        "imported": _events_payload(imported),
        "coverageWarning": coverage_warning(ctx.store.coverage(), date_from, date_to, ctx.zone),
    }


@router.get("/events/range")
def get_local_events_range(
    date_from: str = Query(..., alias="from"),
    date_to: str = Query(..., alias="to"),
    limit: int = Query(DEFAULT_LOCAL_EVENTS_LIMIT, ge=0),
    ctx: AppContext = Depends(get_context),
):
    start, end = normalize_range(date_from, date_to, ctx.zone)
    result = ctx.store.query_range(start, end, limit)
    return {"events": _events_payload(result.events), "truncated": result.truncated}


@router.get("/events/coverage")
def get_coverage(
    date_from: Optional[str] = Query(None, alias="from"),
    date_to: Optional[str] = Query(None, alias="to"),
    ctx: AppContext = Depends(get_context),
):
    coverage = ctx.store.coverage()
    return {
        "coverage": None if coverage is None else {
            "start": coverage.start.isoformat(),
            "end": coverage.end.isoformat(),
            "count": coverage.count,
        },
        "status": coverage_status(coverage, date_from, date_to, ctx.zone).value,
        "summary": coverage_summary(coverage, ctx.zone),
        "warning": coverage_warning(coverage, date_from, date_to, ctx.zone),
    }


@router.post("/events/import")
def import_session_events(body: ImportEventsRequest, ctx: AppContext = Depends(get_context)):
    if body.records is not None:
        records = body.records
    elif body.content is not None:
        records = parse_export(body.content, body.filename)
    else:
        raise ValidationError("Provide either file content or records to import.",
                              ErrorCodes.MISSING_REQUIRED_FIELD)
    added = ctx.pool.import_records(records)
    return {"imported": added, "total": len(ctx.pool)}


@router.delete("/events/import")
def clear_session_events(ctx: AppContext = Depends(get_context)):
    return {"cleared": ctx.pool.clear()}


# --- crashes ---

@router.post("/crashes/import-host")
def import_host_crashes(body: ImportHostCrashesRequest, ctx: AppContext = Depends(get_context)):
    return {"added": ctx.importer.import_host_crashes(body.limit)}


@router.post("/crashes/sample")
def create_sample_crash(body: Optional[SampleCrashRequest] = None, ctx: AppContext = Depends(get_context)):
    os_value = SupportedOs.parse(body.os, default=ctx.host_os) if body and body.os else ctx.host_os
    return ctx.importer.add_sample_crash(os_value).to_dict()


@router.get("/crashes")
def get_crashes(limit: int = Query(DEFAULT_CRASH_LIMIT, ge=1), ctx: AppContext = Depends(get_context)):
    crashes = ctx.store.get_crashes(min(limit, MAX_CRASH_LIMIT))
    return {"crashes": [c.to_dict() for c in crashes]}


@router.get("/crashes/{crash_id}/related")
def get_crash_related_events(
    crash_id: str,
    window_minutes: Optional[int] = Query(None, alias="windowMinutes"),
    limit: Optional[int] = Query(None, ge=0),
    ctx: AppContext = Depends(get_context),
):
    events = ctx.correlation.related_events(crash_id, window_minutes, limit)
    return {"events": _events_payload(events)}


@router.get("/crashes/{crash_id}/pre-crash")
def get_pre_crash_focus(
    crash_id: str,
    pre_window_minutes: int = Query(DEFAULT_PRE_CRASH_WINDOW_MINUTES, alias="preWindowMinutes"),
    sync: bool = False,
    ctx: AppContext = Depends(get_context),
):
    crash = ctx.correlation.crash(crash_id)
    start, end = pre_crash_range(crash, pre_window_minutes)
    warnings: List[str] = []
    if sync:
        warnings = ctx.coordinator.sync_range(start, end).warnings
    result = ctx.correlation.pre_crash_focus(crash_id, pre_window_minutes)
    return {
        "mode": result.mode,
        "events": _events_payload(result.events),
        "range": {"start": start.isoformat(), "end": end.isoformat()},
        "warnings": warnings,
    }
