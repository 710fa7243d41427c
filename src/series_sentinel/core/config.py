"""Configuration loading, validation, and access."""

from __future__ import annotations

import os
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, field_validator, model_validator

from series_sentinel.core.exceptions import ConfigError
from series_sentinel.core.models import SourceType

_WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")

DEFAULT_PACING_DELAYS: dict[str, float] = {
    SourceType.FRED: 1.0,
    SourceType.ALPHAVANTAGE: 15.0,
    SourceType.YAHOO: 0.5,
    SourceType.WORLDBANK: 0.25,
    SourceType.EUROSTAT: 0.5,
    SourceType.DBNOMICS: 0.25,
    SourceType.CSV: 0.5,
}


class HttpConfig(BaseModel):
    """Outbound HTTP settings shared by every source adapter."""

    model_config = ConfigDict(frozen=True)

    user_agent: str = "series-sentinel/0.1"
    test_timeout: float = 30.0
    fetch_timeout: float = 60.0
    max_retries: int = 0

    @field_validator("test_timeout", "fetch_timeout")
    @classmethod
    def timeout_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("timeouts must be > 0")
        return v

    @field_validator("max_retries")
    @classmethod
    def retries_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("max_retries must be >= 0")
        return v


class SourcesConfig(BaseModel):
    """Provider credentials and local file access."""

    model_config = ConfigDict(frozen=True)

    fred_api_key: str | None = None
    alphavantage_api_key: str | None = None
    # CSV sources in file mode may only read below this directory
    csv_base_dir: str = "./data"


class StorageConfig(BaseModel):
    """SQLite storage configuration."""

    model_config = ConfigDict(frozen=True)

    sqlite_path: str = "./data/series_sentinel.db"


class SchedulerConfig(BaseModel):
    """Cadence buckets, retention, and per-source pacing."""

    model_config = ConfigDict(frozen=True)

    auto_update: bool = True
    log_retention_days: int = 30
    hourly_sources: list[SourceType] = [SourceType.YAHOO, SourceType.ALPHAVANTAGE]
    daily_sources: list[SourceType] = [
        SourceType.FRED,
        SourceType.WORLDBANK,
        SourceType.EUROSTAT,
        SourceType.DBNOMICS,
    ]
    pacing_delays: dict[str, float] = DEFAULT_PACING_DELAYS
    default_delay: float = 0.5
    daily_hour: int = 3
    weekly_day: str = "sunday"
    weekly_hour: int = 2
    cleanup_hour: int = 1
    poll_interval: float = 60.0

    @field_validator("log_retention_days")
    @classmethod
    def retention_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("log_retention_days must be >= 1")
        return v

    @field_validator("daily_hour", "weekly_hour", "cleanup_hour")
    @classmethod
    def hour_in_range(cls, v: int) -> int:
        if not 0 <= v <= 23:
            raise ValueError(f"hour must be in [0, 23], got {v}")
        return v

    @field_validator("weekly_day")
    @classmethod
    def weekday_known(cls, v: str) -> str:
        if v.lower() not in _WEEKDAYS:
            raise ValueError(f"weekly_day must be one of {', '.join(_WEEKDAYS)}")
        return v.lower()

    @field_validator("pacing_delays")
    @classmethod
    def delays_non_negative(cls, v: dict[str, float]) -> dict[str, float]:
        for key, delay in v.items():
            if delay < 0:
                raise ValueError(f"pacing delay for {key!r} must be >= 0")
        return v

    @property
    def weekly_weekday(self) -> int:
        """weekly_day as a datetime.weekday() index."""
        return _WEEKDAYS.index(self.weekly_day)


class NotifyConfig(BaseModel):
    """Failure summary email settings."""

    model_config = ConfigDict(frozen=True)

    error_emails: bool = False
    admin_email: str | None = None
    from_address: str = "series-sentinel@localhost"
    smtp_host: str = "localhost"
    smtp_port: int = 25

    @model_validator(mode="after")
    def admin_email_required_when_enabled(self) -> NotifyConfig:
        if self.error_emails and not self.admin_email:
            raise ValueError("admin_email is required when error_emails is enabled")
        return self


class APIConfig(BaseModel):
    """FastAPI server configuration."""

    model_config = ConfigDict(frozen=True)

    host: str = "0.0.0.0"
    port: int = 8000
    api_key: str | None = None


class SentinelConfig(BaseModel):
    """Root configuration for the entire series-sentinel system."""

    model_config = ConfigDict(frozen=True)

    http: HttpConfig = HttpConfig()
    sources: SourcesConfig = SourcesConfig()
    storage: StorageConfig = StorageConfig()
    scheduler: SchedulerConfig = SchedulerConfig()
    notify: NotifyConfig = NotifyConfig()
    api: APIConfig = APIConfig()


def load_config(
    config_path: str | None = None,
    env_prefix: str = "SERIES_SENTINEL_",
) -> SentinelConfig:
    """Load configuration from environment + YAML file + defaults.

    Resolution order (highest priority first):
    1. Environment variables (SERIES_SENTINEL_SOURCES__FRED_API_KEY, etc.)
    2. YAML file at config_path
    3. Built-in defaults

    Nested keys use double-underscore in env vars:
        SERIES_SENTINEL_SCHEDULER__LOG_RETENTION_DAYS=60  ->  scheduler.log_retention_days = 60
    """
    try:
        yaml_path = _resolve_config_path(config_path)
        base: dict = {}
        if yaml_path is not None:
            base = _load_yaml(yaml_path)

        merged = _merge_env_vars(base, env_prefix)
        return SentinelConfig.model_validate(merged)
    except Exception as e:
        if isinstance(e, ConfigError):
            raise
        raise ConfigError(str(e), context={"source": "load_config"}) from e


def _resolve_config_path(explicit: str | None) -> Path | None:
    """Determine config file path."""
    if explicit is not None:
        p = Path(explicit)
        if not p.exists():
            raise ConfigError(
                f"Config file not found: {explicit}",
                context={"field": "config_path", "value": explicit},
            )
        return p

    env_path = os.environ.get("SERIES_SENTINEL_CONFIG")
    if env_path:
        p = Path(env_path)
        if not p.exists():
            raise ConfigError(
                f"Config file from SERIES_SENTINEL_CONFIG not found: {env_path}",
                context={"field": "SERIES_SENTINEL_CONFIG", "value": env_path},
            )
        return p

    default = Path("series-sentinel.yml")
    if default.exists():
        return default

    return None


def _load_yaml(path: Path) -> dict:
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigError(
                f"YAML config must be a mapping, got {type(data).__name__}",
                context={"field": "config_file", "value": str(path)},
            )
        return data
    except yaml.YAMLError as e:
        raise ConfigError(
            f"Failed to parse YAML config: {e}",
            context={"field": "config_file", "value": str(path)},
        ) from e


def _merge_env_vars(base: dict, prefix: str) -> dict:
    """Overlay environment variables onto base config dict.

    Double-underscore separates nesting levels. Values are auto-cast.
    API keys stay strings even when they look numeric.
    """
    result = dict(base)

    for key, value in os.environ.items():
        if not key.startswith(prefix):
            continue

        parts = [p.lower() for p in key[len(prefix) :].split("__")]
        if parts == ["config"]:
            continue

        cast_value = value if parts[-1].endswith("api_key") else _auto_cast(value)

        target = result
        for part in parts[:-1]:
            if not isinstance(target.get(part), dict):
                target[part] = {}
            target = target[part]
        target[parts[-1]] = cast_value

    return result


def _auto_cast(value: str) -> str | int | float | bool:
    """Auto-cast string values from environment variables."""
    if value.lower() == "true":
        return True
    if value.lower() == "false":
        return False
    try:
        return int(value)
    except ValueError:
        pass
    try:
        return float(value)
    except ValueError:
        pass
    return value
