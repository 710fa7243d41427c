"""FastAPI route definitions for the Series Sentinel API."""

from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import ValidationError

import series_sentinel
from series_sentinel.api.deps import (
    get_collector,
    get_config,
    get_reader,
    get_registry,
    get_scheduler,
    get_store,
)
from series_sentinel.api.schemas import (
    AutoUpdateRequest,
    CoverageResponse,
    FredSearchResult,
    HealthResponse,
    LogListResponse,
    MessageResponse,
    MultiObservationResponse,
    ObservationListResponse,
    PruneResponse,
    SchedulerStatusResponse,
    SeriesActiveRequest,
    SeriesDeleteResponse,
    SeriesListResponse,
    SeriesResponse,
    SeriesUpsertRequest,
    SeriesUpsertResponse,
    SourceConfigRequest,
)
from series_sentinel.core.config import SentinelConfig
from series_sentinel.core.models import (
    BatchResult,
    ChangeResult,
    ConnectionResult,
    DashboardStats,
    FetchResult,
    LogStatus,
    Observation,
    PreviewResult,
    RefreshFrequency,
    Series,
    SeriesStats,
    SourceInfo,
    SourceType,
)
from series_sentinel.ingestion.collector import Collector
from series_sentinel.ingestion.reader import SeriesReader
from series_sentinel.ingestion.store import SqliteStore
from series_sentinel.scheduler.scheduler import Scheduler
from series_sentinel.sources.fred import FredSource
from series_sentinel.sources.registry import SourceRegistry

router = APIRouter()


def _series_response(series: Series, **extra) -> SeriesResponse:
    return SeriesResponse(**series.model_dump(), **extra)


async def _require_active(reader: SeriesReader, slug: str) -> None:
    if not await reader.exists(slug):
        raise HTTPException(status_code=404, detail=f"Series '{slug}' not found or inactive")


# -- Health --


@router.get("/health", response_model=HealthResponse)
async def health_check(store: SqliteStore = Depends(get_store)):
    """System health and basic counts."""
    healthy = await store.health_check()
    stats = await store.dashboard_stats() if healthy else None
    return HealthResponse(
        status="ok" if healthy else "degraded",
        version=series_sentinel.__version__,
        database=healthy,
        total_series=stats.total_series if stats else 0,
        total_observations=stats.total_observations if stats else 0,
    )


# -- Series --


@router.get("/series", response_model=SeriesListResponse)
async def list_series(
    q: str | None = Query(None, description="Search name and slug"),
    source_type: SourceType | None = Query(None),
    active_only: bool = Query(False),
    offset: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=500),
    store: SqliteStore = Depends(get_store),
):
    """List or search series."""
    if q:
        series = await store.search_series(q, limit=None, active_only=active_only)
        if source_type is not None:
            series = [s for s in series if s.source_type == source_type]
    else:
        series = await store.list_series(
            active_only=active_only,
            source_types=[source_type] if source_type is not None else None,
        )

    page = series[offset : offset + limit]
    return SeriesListResponse(
        total=len(series),
        offset=offset,
        limit=limit,
        items=[_series_response(s) for s in page],
    )


@router.get("/series/{slug}", response_model=SeriesResponse)
async def get_series(
    slug: str,
    store: SqliteStore = Depends(get_store),
    reader: SeriesReader = Depends(get_reader),
):
    """Series metadata, including inactive series."""
    series = await reader.series_info(slug)
    if series is None:
        raise HTTPException(status_code=404, detail=f"Series '{slug}' not found")
    bounds = await store.get_date_range(slug)
    return _series_response(
        series,
        observation_count=await store.count_observations(slug),
        first_date=bounds[0] if bounds else None,
        last_date=bounds[1] if bounds else None,
    )


@router.put("/series/{slug}", response_model=SeriesUpsertResponse)
async def upsert_series(
    slug: str,
    request: SeriesUpsertRequest,
    store: SqliteStore = Depends(get_store),
):
    """Create or update a series. Changing its source type is rejected."""
    try:
        series = Series(slug=slug, **request.model_dump())
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e
    action = await store.save_series(series)
    return SeriesUpsertResponse(slug=series.slug, action=str(action))


@router.patch("/series/{slug}", response_model=MessageResponse)
async def set_series_active(
    slug: str,
    request: SeriesActiveRequest,
    store: SqliteStore = Depends(get_store),
):
    """Activate or deactivate a series without touching its configuration."""
    if not await store.set_series_active(slug, request.is_active):
        raise HTTPException(status_code=404, detail=f"Series '{slug}' not found")
    state = "activated" if request.is_active else "deactivated"
    return MessageResponse(message=f"Series '{slug}' {state}")


@router.delete("/series/{slug}", response_model=SeriesDeleteResponse)
async def delete_series(slug: str, store: SqliteStore = Depends(get_store)):
    if await store.get_series(slug) is None:
        raise HTTPException(status_code=404, detail=f"Series '{slug}' not found")
    deleted = await store.delete_series(slug)
    return SeriesDeleteResponse(slug=slug, observations_deleted=deleted)


@router.get("/series/{slug}/observations", response_model=ObservationListResponse)
async def get_observations(
    slug: str,
    start: date | None = Query(None),
    end: date | None = Query(None),
    limit: int | None = Query(None, ge=1),
    months_back: int | None = Query(None, ge=1, le=1200, description="Trailing window"),
    reader: SeriesReader = Depends(get_reader),
):
    """Observations ascending, by explicit bounds or a trailing window."""
    if months_back is not None:
        if start is not None or end is not None or limit is not None:
            raise HTTPException(
                status_code=400, detail="months_back cannot be combined with start, end or limit"
            )
        data = await reader.data_range(slug, months_back)
    else:
        data = await reader.series_data(slug, start, end, limit)
    if data is None:
        raise HTTPException(status_code=404, detail=f"Series '{slug}' not found or inactive")
    return ObservationListResponse(slug=slug, count=len(data), items=data)


@router.get("/series/{slug}/coverage", response_model=CoverageResponse)
async def get_coverage(slug: str, reader: SeriesReader = Depends(get_reader)):
    """Observation count and date span of an active series."""
    await _require_active(reader, slug)
    bounds = await reader.date_range(slug)
    return CoverageResponse(
        slug=slug,
        count=await reader.count(slug),
        first_date=bounds[0] if bounds else None,
        last_date=bounds[1] if bounds else None,
    )


@router.get("/observations", response_model=MultiObservationResponse)
async def get_multiple(
    slug: list[str] = Query(..., description="Repeat for each series"),
    start: date | None = Query(None),
    end: date | None = Query(None),
    reader: SeriesReader = Depends(get_reader),
):
    """Observations for several series at once."""
    return MultiObservationResponse(items=await reader.multiple(slug, start, end))


@router.get("/series/{slug}/latest", response_model=Observation)
async def get_latest(slug: str, reader: SeriesReader = Depends(get_reader)):
    await _require_active(reader, slug)
    latest = await reader.latest_value(slug)
    if latest is None:
        raise HTTPException(status_code=404, detail=f"No observations for '{slug}'")
    return latest


@router.get("/series/{slug}/stats", response_model=SeriesStats)
async def get_stats(slug: str, reader: SeriesReader = Depends(get_reader)):
    await _require_active(reader, slug)
    return await reader.stats(slug)


@router.get("/series/{slug}/change", response_model=ChangeResult)
async def get_change(
    slug: str,
    periods: int = Query(1, ge=1, le=1000),
    reader: SeriesReader = Depends(get_reader),
):
    await _require_active(reader, slug)
    change = await reader.change(slug, periods)
    if change is None:
        raise HTTPException(
            status_code=404,
            detail="Not enough observations or previous value is zero",
        )
    return change


@router.post("/series/{slug}/fetch", response_model=FetchResult)
async def fetch_series(slug: str, collector: Collector = Depends(get_collector)):
    """Manually fetch one series. Failures are reported in the body."""
    return await collector.fetch_series(slug)


@router.post("/refresh", response_model=BatchResult)
async def refresh(
    frequency: RefreshFrequency | None = Query(None, description="Only stale series"),
    collector: Collector = Depends(get_collector),
):
    """Refresh all active series, or only those stale for ``frequency``."""
    if frequency is None:
        return await collector.refresh_all()
    return await collector.refresh_by_frequency(frequency)


# -- Sources --


@router.get("/sources", response_model=list[SourceInfo])
async def list_sources(collector: Collector = Depends(get_collector)):
    return collector.available_sources()


@router.get("/sources/fred/search", response_model=list[FredSearchResult])
async def search_fred(
    q: str = Query(..., min_length=1),
    limit: int = Query(20, ge=1, le=1000),
    registry: SourceRegistry = Depends(get_registry),
):
    """Keyword search of FRED series, most popular first."""
    fred: FredSource = registry.get(SourceType.FRED)
    return await fred.search(q, limit)


@router.post("/sources/{source_type}/test", response_model=ConnectionResult)
async def test_source(
    source_type: SourceType,
    request: SourceConfigRequest,
    collector: Collector = Depends(get_collector),
):
    return await collector.test_connection(source_type, request.as_strings())


@router.post("/sources/{source_type}/preview", response_model=PreviewResult)
async def preview_source(
    source_type: SourceType,
    request: SourceConfigRequest,
    collector: Collector = Depends(get_collector),
):
    return await collector.preview_data(source_type, request.as_strings(), request.limit)


# -- Logs --


@router.get("/logs", response_model=LogListResponse)
async def list_logs(
    series_slug: str | None = Query(None),
    status: LogStatus | None = Query(None),
    days: int | None = Query(None, ge=1),
    search: str | None = Query(None),
    offset: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=500),
    store: SqliteStore = Depends(get_store),
):
    """Audit log, newest first, with filtering and pagination."""
    total = await store.count_logs(series_slug=series_slug, status=status, days=days, search=search)
    items = await store.get_logs(
        limit=limit,
        offset=offset,
        series_slug=series_slug,
        status=status,
        days=days,
        search=search,
    )
    return LogListResponse(total=total, offset=offset, limit=limit, items=items)


@router.post("/logs/prune", response_model=PruneResponse)
async def prune_logs(
    retention_days: int | None = Query(None, ge=1),
    store: SqliteStore = Depends(get_store),
    config: SentinelConfig = Depends(get_config),
):
    days = retention_days or config.scheduler.log_retention_days
    deleted = await store.prune_logs(days)
    return PruneResponse(deleted=deleted, retention_days=days)


@router.get("/dashboard", response_model=DashboardStats)
async def dashboard(store: SqliteStore = Depends(get_store)):
    return await store.dashboard_stats()


# -- Scheduler --


@router.get("/scheduler", response_model=SchedulerStatusResponse)
async def scheduler_status(scheduler: Scheduler = Depends(get_scheduler)):
    # The flag may have been toggled from the CLI
    await scheduler.sync_auto_update()
    return SchedulerStatusResponse(auto_update=scheduler.auto_update, triggers=scheduler.status())


@router.post("/scheduler/trigger/{bucket}", response_model=MessageResponse)
async def trigger_bucket(bucket: str, scheduler: Scheduler = Depends(get_scheduler)):
    """Run a cadence bucket now. Unknown names are a 400."""
    return MessageResponse(message=await scheduler.manual_trigger(bucket))


@router.put("/scheduler/auto-update", response_model=MessageResponse)
async def set_auto_update(
    request: AutoUpdateRequest,
    scheduler: Scheduler = Depends(get_scheduler),
):
    return MessageResponse(message=await scheduler.set_auto_update(request.enabled))


@router.post("/scheduler/reschedule", response_model=MessageResponse)
async def reschedule(scheduler: Scheduler = Depends(get_scheduler)):
    return MessageResponse(message=await scheduler.reschedule())
