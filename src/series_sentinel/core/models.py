"""Pydantic data models: the system's type contracts."""

from __future__ import annotations

import re
from datetime import date, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

# --- Type Aliases ---

Slug = str
RawValue = str | float | int | None

_SLUG_RE = re.compile(r"^[a-z0-9][a-z0-9_\-]*$")

# --- Enumerations ---


class SourceType(StrEnum):
    """Registered data provider identifiers."""

    FRED = "fred"
    WORLDBANK = "worldbank"
    ALPHAVANTAGE = "alphavantage"
    DBNOMICS = "dbnomics"
    EUROSTAT = "eurostat"
    YAHOO = "yahoo"
    CSV = "csv"


class LogStatus(StrEnum):
    """Audit log entry outcome."""

    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class SeriesAction(StrEnum):
    """Which branch of the series upsert ran."""

    CREATED = "created"
    UPDATED = "updated"


class CadenceBucket(StrEnum):
    """Named recurring schedules driving batch refreshes."""

    HOURLY = "hourly"
    DAILY = "daily"
    WEEKLY = "weekly"
    CLEANUP = "cleanup"


class RefreshFrequency(StrEnum):
    """Staleness windows for frequency-scoped refresh."""

    HOURLY = "hourly"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"


class DateHint(StrEnum):
    """Grammar the normalizer should try first for a payload's dates."""

    AUTO = "auto"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"


class FieldType(StrEnum):
    """Input kinds for source configuration fields."""

    TEXT = "text"
    TEXTAREA = "textarea"
    SELECT = "select"
    DATE = "date"
    NUMBER = "number"
    URL = "url"
    PATH = "path"
    CHECKBOX = "checkbox"


# --- Series & Observation Models ---


class Series(BaseModel):
    """A named binding between a slug and one source configuration."""

    model_config = ConfigDict(frozen=True)

    slug: Slug
    name: str
    source_type: SourceType
    source_config: dict[str, str] = {}
    is_active: bool = True
    last_updated: datetime | None = None
    created_at: datetime | None = None

    @field_validator("slug")
    @classmethod
    def slug_format(cls, v: str) -> str:
        normalized = v.strip().lower()
        if not _SLUG_RE.match(normalized):
            raise ValueError(
                f"slug must contain only lowercase letters, digits, '-' or '_', got: {v!r}"
            )
        return normalized

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("name must not be empty")
        return v.strip()

    @field_validator("source_config", mode="before")
    @classmethod
    def config_values_are_strings(cls, v: Any) -> Any:
        """Stringify scalar config values; None entries are dropped."""
        if isinstance(v, dict):
            return {
                str(k): ("true" if val is True else "false" if val is False else str(val))
                for k, val in v.items()
                if val is not None
            }
        return v


class Observation(BaseModel):
    """One normalized data point."""

    model_config = ConfigDict(frozen=True)

    obs_date: date
    value: float


class RawPoint(BaseModel):
    """One unvalidated point as reported by a source adapter."""

    model_config = ConfigDict(frozen=True)

    raw_date: str
    raw_value: RawValue = None


class LogEntry(BaseModel):
    """An immutable audit record."""

    model_config = ConfigDict(frozen=True)

    id: int | None = None
    series_slug: Slug | None = None
    source_type: str | None = None
    action: str
    status: LogStatus
    message: str = ""
    created_at: datetime


# --- Source Descriptor Models ---


class FieldSpec(BaseModel):
    """Definition of one source configuration key."""

    model_config = ConfigDict(frozen=True)

    key: str
    label: str
    type: FieldType = FieldType.TEXT
    required: bool = False
    choices: dict[str, str] | None = None
    default: str | None = None
    help: str | None = None


class RateLimitInfo(BaseModel):
    """Provider request ceiling."""

    model_config = ConfigDict(frozen=True)

    requests: int
    period_seconds: float
    note: str | None = None

    @field_validator("requests")
    @classmethod
    def requests_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("requests must be >= 1")
        return v


class SourceInfo(BaseModel):
    """Capability descriptor for one registered adapter."""

    model_config = ConfigDict(frozen=True)

    source_type: SourceType
    name: str
    requires_api_key: bool
    description: str
    fields: list[FieldSpec]
    configured: bool
    rate_limit: RateLimitInfo | None = None


# --- Result Models ---


class ConnectionResult(BaseModel):
    """Outcome of a lightweight connection test."""

    model_config = ConfigDict(frozen=True)

    ok: bool
    message: str
    sample_count: int | None = None


class UpsertCounts(BaseModel):
    """Row counts from one observation upsert."""

    model_config = ConfigDict(frozen=True)

    inserted: int = 0
    updated: int = 0
    errors: int = 0

    @property
    def saved(self) -> int:
        return self.inserted + self.updated


class FetchResult(BaseModel):
    """Outcome of fetching and storing one series."""

    model_config = ConfigDict(frozen=True)

    slug: Slug
    ok: bool
    message: str
    inserted: int = 0
    updated: int = 0
    errors: int = 0


class BatchResult(BaseModel):
    """Aggregate outcome of a sequential multi-series refresh."""

    model_config = ConfigDict(frozen=True)

    label: str
    total: int = 0
    success: int = 0
    failed: int = 0
    details: list[FetchResult] = []

    @model_validator(mode="after")
    def counts_add_up(self) -> BatchResult:
        if self.success + self.failed != self.total:
            raise ValueError(
                f"success ({self.success}) + failed ({self.failed}) "
                f"must equal total ({self.total})"
            )
        return self

    @property
    def status(self) -> LogStatus:
        """Any failure makes the batch a warning, even if nothing succeeded."""
        return LogStatus.WARNING if self.failed > 0 else LogStatus.SUCCESS

    @property
    def failures(self) -> list[FetchResult]:
        return [d for d in self.details if not d.ok]


class PreviewResult(BaseModel):
    """Dry-run fetch result: first points plus totals, nothing stored."""

    model_config = ConfigDict(frozen=True)

    ok: bool
    message: str
    total_count: int = 0
    points: list[Observation] = []
    start: date | None = None
    end: date | None = None


class SeriesStats(BaseModel):
    """Aggregate statistics over one series' stored values."""

    model_config = ConfigDict(frozen=True)

    count: int
    min: float | None = None
    max: float | None = None
    avg: float | None = None


class DashboardStats(BaseModel):
    """System-wide counters for the overview screen."""

    model_config = ConfigDict(frozen=True)

    total_series: int
    active_series: int
    total_observations: int
    latest_observation: date | None = None
    recent_errors: int
    last_updates: list[LogEntry] = []


class ChangeResult(BaseModel):
    """Change between the latest point and the point `periods` back."""

    model_config = ConfigDict(frozen=True)

    current: float
    previous: float
    change: float
    percent_change: float
    current_date: date
    previous_date: date


class TriggerStatus(BaseModel):
    """Installed state of one cadence bucket."""

    model_config = ConfigDict(frozen=True)

    bucket: CadenceBucket
    scheduled: bool
    next_run: datetime | None = None
    human_time: str | None = None
