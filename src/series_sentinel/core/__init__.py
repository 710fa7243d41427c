"""series_sentinel.core: foundation types, config, and exceptions."""

from series_sentinel.core.config import (
    APIConfig,
    HttpConfig,
    NotifyConfig,
    SchedulerConfig,
    SentinelConfig,
    SourcesConfig,
    StorageConfig,
    load_config,
)
from series_sentinel.core.exceptions import (
    ConfigError,
    ParsingError,
    RateLimitError,
    SchedulerError,
    SeriesSentinelError,
    SourceError,
    StorageError,
)
from series_sentinel.core.models import (
    BatchResult,
    CadenceBucket,
    ChangeResult,
    ConnectionResult,
    DashboardStats,
    DateHint,
    FetchResult,
    FieldSpec,
    FieldType,
    LogEntry,
    LogStatus,
    Observation,
    PreviewResult,
    RateLimitInfo,
    RawPoint,
    RefreshFrequency,
    Series,
    SeriesAction,
    SeriesStats,
    Slug,
    SourceInfo,
    SourceType,
    TriggerStatus,
    UpsertCounts,
)

__all__ = [
    # Type aliases
    "Slug",
    # Enums
    "SourceType",
    "LogStatus",
    "SeriesAction",
    "CadenceBucket",
    "RefreshFrequency",
    "DateHint",
    "FieldType",
    # Data models
    "Series",
    "Observation",
    "RawPoint",
    "LogEntry",
    # Source descriptors
    "FieldSpec",
    "RateLimitInfo",
    "SourceInfo",
    # Results
    "ConnectionResult",
    "UpsertCounts",
    "FetchResult",
    "BatchResult",
    "PreviewResult",
    "SeriesStats",
    "DashboardStats",
    "ChangeResult",
    "TriggerStatus",
    # Config
    "SentinelConfig",
    "HttpConfig",
    "SourcesConfig",
    "StorageConfig",
    "SchedulerConfig",
    "NotifyConfig",
    "APIConfig",
    "load_config",
    # Exceptions
    "SeriesSentinelError",
    "ConfigError",
    "SourceError",
    "RateLimitError",
    "ParsingError",
    "StorageError",
    "SchedulerError",
]
