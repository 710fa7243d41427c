"""Integration test fixtures: real SQLite file, CSV series, no network."""

from __future__ import annotations

from pathlib import Path

import pytest

from series_sentinel.core.config import (
    APIConfig,
    SchedulerConfig,
    SentinelConfig,
    SourcesConfig,
    StorageConfig,
)

CSV_ROWS = "date,value\n2024-01-01,100\n2024-02-01,102.5\n2024-03-01,105\n"


@pytest.fixture
def csv_file(tmp_path: Path) -> Path:
    path = tmp_path / "monthly.csv"
    path.write_text(CSV_ROWS)
    return path


@pytest.fixture
def csv_config(csv_file: Path) -> dict[str, str]:
    """Source config for a local CSV file with a header row."""
    return {"csv_source": "file", "csv_file": str(csv_file)}


@pytest.fixture
def db_path(tmp_path: Path) -> str:
    return str(tmp_path / "sentinel.db")


@pytest.fixture
def integration_config(db_path: str, tmp_path: Path) -> SentinelConfig:
    """Config pointing at a throwaway database and CSV directory, with pacing disabled."""
    return SentinelConfig(
        storage=StorageConfig(sqlite_path=db_path),
        sources=SourcesConfig(csv_base_dir=str(tmp_path)),
        scheduler=SchedulerConfig(pacing_delays={}, default_delay=0),
    )


@pytest.fixture
def api_config(db_path: str, tmp_path: Path) -> SentinelConfig:
    return SentinelConfig(
        storage=StorageConfig(sqlite_path=db_path),
        sources=SourcesConfig(csv_base_dir=str(tmp_path)),
        scheduler=SchedulerConfig(pacing_delays={}, default_delay=0),
        api=APIConfig(api_key="secret"),
    )
