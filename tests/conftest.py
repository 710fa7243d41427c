"""Shared pytest fixtures for series-sentinel."""

from __future__ import annotations

import pytest

from series_sentinel.core.config import StorageConfig
from series_sentinel.core.models import (
    ConnectionResult,
    DateHint,
    FieldSpec,
    RawPoint,
    Series,
    SourceInfo,
    SourceType,
)
from series_sentinel.ingestion.store import SqliteStore
from series_sentinel.scheduler.pacing import PacingPolicy
from series_sentinel.sources.registry import SourceRegistry


class FakeAdapter:
    """In-memory adapter that records calls and returns canned points."""

    def __init__(
        self,
        source_type: SourceType = SourceType.FRED,
        points: list[RawPoint] | None = None,
        error: Exception | None = None,
        hint: DateHint | str = DateHint.AUTO,
    ) -> None:
        self.source_type = source_type
        self.points = points if points is not None else []
        self.error = error
        self.hint = hint
        self.fetch_calls: list[dict] = []
        self.test_calls: list[dict] = []
        self.failing_keys: set[str] = set()

    def config_fields(self) -> list[FieldSpec]:
        return [FieldSpec(key="series_id", label="Series ID", required=True)]

    def is_configured(self) -> bool:
        return True

    def rate_limit_info(self):
        return None

    def date_hint(self, config):
        return self.hint

    def describe(self) -> SourceInfo:
        return SourceInfo(
            source_type=self.source_type,
            name=f"Fake {self.source_type}",
            requires_api_key=False,
            description="test double",
            fields=self.config_fields(),
            configured=True,
        )

    def validate_config(self, config) -> None:
        from series_sentinel.core.exceptions import ConfigError

        if not config.get("series_id"):
            raise ConfigError("Series ID is required", context={"field": "series_id"})

    async def test_connection(self, config) -> ConnectionResult:
        self.test_calls.append(dict(config))
        return ConnectionResult(ok=True, message="Connection successful!", sample_count=1)

    async def fetch_data(self, config) -> list[RawPoint]:
        self.fetch_calls.append(dict(config))
        if self.error is not None or config.get("series_id") in self.failing_keys:
            raise self.error or RuntimeError("boom")
        return list(self.points)


# --- Fixtures ---


@pytest.fixture
async def store():
    """In-memory SqliteStore."""
    s = SqliteStore(StorageConfig(sqlite_path=":memory:"))
    await s.initialize()
    yield s
    await s.close()


@pytest.fixture
def make_series():
    """Factory for Series with overridable defaults."""

    def _make(**overrides):
        defaults = dict(
            slug="gdp",
            name="Gross Domestic Product",
            source_type=SourceType.FRED,
            source_config={"series_id": "GDP"},
            is_active=True,
        )
        defaults.update(overrides)
        return Series(**defaults)

    return _make


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def pacing(sleeps) -> PacingPolicy:
    """PacingPolicy that records delays instead of sleeping."""

    async def _sleep(seconds: float) -> None:
        sleeps.append(seconds)

    return PacingPolicy(sleep=_sleep)


@pytest.fixture
def fake_adapter() -> FakeAdapter:
    return FakeAdapter(
        points=[
            RawPoint(raw_date="2024-01", raw_value="1,234.5"),
            RawPoint(raw_date="2024-02", raw_value="."),
        ]
    )


@pytest.fixture
def registry(fake_adapter) -> SourceRegistry:
    r = SourceRegistry()
    r.register(fake_adapter)
    return r


@pytest.fixture
def make_adapter():
    """Factory for extra FakeAdapters, e.g. one per source type."""
    return FakeAdapter
