"""End-to-end pipeline: registry, collector, store, reader and scheduler.

Provider HTTP calls are mocked with respx; storage is a real SQLite file.
"""

from __future__ import annotations

from datetime import date

import httpx
import pytest
import respx

from series_sentinel.core.config import SentinelConfig
from series_sentinel.core.models import LogStatus, Series
from series_sentinel.ingestion import Collector, SeriesReader, create_store
from series_sentinel.scheduler import PacingPolicy, Scheduler
from series_sentinel.sources import create_registry


pytestmark = pytest.mark.integration

FRED_OBS = "https://api.stlouisfed.org/fred/series/observations"


@pytest.fixture
def pipeline_config(integration_config) -> SentinelConfig:
    sources = integration_config.sources.model_copy(update={"fred_api_key": "k"})
    return integration_config.model_copy(update={"sources": sources})


@pytest.fixture
async def pipeline(pipeline_config):
    store = await create_store(pipeline_config.storage)
    registry = create_registry(pipeline_config)
    collector = Collector(store, registry, PacingPolicy.from_config(pipeline_config.scheduler))
    scheduler = Scheduler(collector, store, pipeline_config.scheduler)
    await scheduler.initialize()
    yield store, collector, scheduler
    await registry.close()
    await store.close()


class TestPipeline:
    @respx.mock
    async def test_fred_and_csv_series_end_to_end(self, pipeline, csv_config):
        store, collector, scheduler = pipeline
        respx.get(FRED_OBS).mock(
            return_value=httpx.Response(
                200,
                json={
                    "observations": [
                        {"date": "2023-10-01", "value": "4.5"},
                        {"date": "2023-11-01", "value": "."},
                        {"date": "2023-12-01", "value": "4.75"},
                    ]
                },
            )
        )
        await store.save_series(
            Series(slug="rate", name="Policy Rate", source_type="fred", source_config={"series_id": "FEDFUNDS"})
        )
        await store.save_series(
            Series(slug="demo", name="Demo", source_type="csv", source_config=csv_config)
        )

        batch = await collector.refresh_all()
        assert (batch.total, batch.success, batch.failed) == (2, 2, 0)

        reader = SeriesReader(store)
        rate = await reader.series_data("rate")
        assert [(o.obs_date, o.value) for o in rate] == [
            (date(2023, 10, 1), 4.5),
            (date(2023, 12, 1), 4.75),
        ]
        assert (await reader.latest_value("demo")).value == 105.0

    @respx.mock
    async def test_daily_bucket_only_touches_daily_sources(self, pipeline, csv_config):
        store, _collector, scheduler = pipeline
        route = respx.get(FRED_OBS).mock(
            return_value=httpx.Response(200, json={"observations": [{"date": "2024-01-01", "value": "1"}]})
        )
        await store.save_series(
            Series(slug="rate", name="Policy Rate", source_type="fred", source_config={"series_id": "FEDFUNDS"})
        )
        await store.save_series(
            Series(slug="demo", name="Demo", source_type="csv", source_config=csv_config)
        )

        batch = await scheduler.run_bucket("daily")

        assert route.call_count == 1
        assert [d.slug for d in batch.details] == ["rate"]
        assert await store.count_observations("demo") == 0
        logs = await store.get_logs(search="Daily update:")
        assert logs[0].message == "Daily update: 1 successful, 0 failed out of 1 total"

    @respx.mock
    async def test_provider_error_is_logged_and_isolated(self, pipeline, csv_config):
        store, collector, _scheduler = pipeline
        respx.get(FRED_OBS).mock(
            return_value=httpx.Response(400, json={"error_message": "Bad series"})
        )
        await store.save_series(
            Series(slug="rate", name="Policy Rate", source_type="fred", source_config={"series_id": "NOPE"})
        )
        await store.save_series(
            Series(slug="demo", name="Demo", source_type="csv", source_config=csv_config)
        )

        batch = await collector.refresh_all()

        assert (batch.success, batch.failed) == (1, 1)
        assert batch.status == LogStatus.WARNING
        errors = await store.get_logs(status=LogStatus.ERROR, series_slug="rate")
        assert errors[0].message.startswith("Data fetch failed:")
        assert await store.count_observations("demo") == 3

    async def test_state_survives_reopen(self, pipeline_config, csv_config):
        store = await create_store(pipeline_config.storage)
        registry = create_registry(pipeline_config)
        collector = Collector(store, registry, PacingPolicy.from_config(pipeline_config.scheduler))
        scheduler = Scheduler(collector, store, pipeline_config.scheduler)
        await scheduler.initialize()
        await store.save_series(
            Series(slug="demo", name="Demo", source_type="csv", source_config=csv_config)
        )
        await collector.fetch_series("demo")
        await scheduler.set_auto_update(False)
        await registry.close()
        await store.close()

        reopened = await create_store(pipeline_config.storage)
        try:
            again = Scheduler(collector, reopened, pipeline_config.scheduler)
            await again.initialize()
            assert again.auto_update is False
            assert await reopened.count_observations("demo") == 3
        finally:
            await reopened.close()
