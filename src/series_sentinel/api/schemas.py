"""API-specific request/response schemas (Pydantic v2).

Core result models (``FetchResult``, ``BatchResult``, ``SourceInfo``...)
are returned as-is; only envelopes and request bodies live here.
"""

from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel, Field

from series_sentinel.core.models import (
    LogEntry,
    Observation,
    SourceType,
    TriggerStatus,
)


# -- Pagination --


class PaginatedResponse(BaseModel):
    """Wrapper for paginated list responses."""

    total: int
    offset: int
    limit: int


# -- Error --


class ErrorResponse(BaseModel):
    """Standard error envelope."""

    error: str
    detail: str | None = None


# -- Series --


class SeriesResponse(BaseModel):
    """Series metadata in API response format."""

    slug: str
    name: str
    source_type: SourceType
    source_config: dict[str, str]
    is_active: bool
    last_updated: datetime | None = None
    created_at: datetime | None = None
    observation_count: int | None = None
    first_date: date | None = None
    last_date: date | None = None


class SeriesListResponse(PaginatedResponse):
    items: list[SeriesResponse]


class SeriesUpsertRequest(BaseModel):
    """Request body for PUT /api/series/{slug}."""

    name: str = Field(..., min_length=1, max_length=200)
    source_type: SourceType
    source_config: dict[str, str | int | float | bool | None] = Field(default_factory=dict)
    is_active: bool = True


class SeriesUpsertResponse(BaseModel):
    slug: str
    action: str


class SeriesDeleteResponse(BaseModel):
    slug: str
    observations_deleted: int


class SeriesActiveRequest(BaseModel):
    """Request body for PATCH /api/series/{slug}."""

    is_active: bool


class ObservationListResponse(BaseModel):
    slug: str
    count: int
    items: list[Observation]


class MultiObservationResponse(BaseModel):
    """Observations keyed by slug; missing or inactive slugs are left out."""

    items: dict[str, list[Observation]]


class CoverageResponse(BaseModel):
    slug: str
    count: int
    first_date: date | None = None
    last_date: date | None = None


# -- Sources --


class SourceConfigRequest(BaseModel):
    """Request body for connection tests and previews."""

    config: dict[str, str | int | float | bool | None] = Field(default_factory=dict)
    limit: int = Field(default=10, ge=1, le=500)

    def as_strings(self) -> dict[str, str]:
        return {
            k: ("true" if v is True else "false" if v is False else str(v))
            for k, v in self.config.items()
            if v is not None
        }


class FredSearchResult(BaseModel):
    id: str | None = None
    title: str | None = None
    frequency: str | None = None
    units: str | None = None
    last_updated: str | None = None


# -- Logs --


class LogListResponse(PaginatedResponse):
    items: list[LogEntry]


class PruneResponse(BaseModel):
    deleted: int
    retention_days: int


# -- Scheduler --


class SchedulerStatusResponse(BaseModel):
    auto_update: bool
    triggers: list[TriggerStatus]


class AutoUpdateRequest(BaseModel):
    enabled: bool


class MessageResponse(BaseModel):
    message: str


# -- Health --


class HealthResponse(BaseModel):
    """Response for GET /api/health."""

    status: str = "ok"
    version: str
    database: bool
    total_series: int
    total_observations: int
