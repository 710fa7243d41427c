"""Collector: fetch → normalize → upsert → log, for one series or a batch.

Adapter exceptions never escape a collector operation. Every remote or
parse failure is caught here, written to the audit log with status
``error``, and returned as ``FetchResult(ok=False)``. A ``ConfigError``
(bad stored config, missing API key) is returned the same way but is not
logged as a fetch failure. Only a ``StorageError`` (an internal fault)
propagates.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from datetime import datetime, timedelta, timezone

from series_sentinel.core.exceptions import ConfigError, SeriesSentinelError
from series_sentinel.core.models import (
    BatchResult,
    ConnectionResult,
    FetchResult,
    LogStatus,
    PreviewResult,
    RefreshFrequency,
    Series,
    SourceInfo,
    SourceType,
)
from series_sentinel.ingestion.normalizer import normalize
from series_sentinel.ingestion.store import SqliteStore
from series_sentinel.scheduler.pacing import PacingPolicy
from series_sentinel.sources.registry import SourceRegistry

logger = logging.getLogger(__name__)

FREQUENCY_CUTOFFS: dict[RefreshFrequency, timedelta] = {
    RefreshFrequency.HOURLY: timedelta(hours=1),
    RefreshFrequency.DAILY: timedelta(days=1),
    RefreshFrequency.WEEKLY: timedelta(days=7),
    RefreshFrequency.MONTHLY: timedelta(days=30),
    RefreshFrequency.QUARTERLY: timedelta(days=90),
    RefreshFrequency.YEARLY: timedelta(days=365),
}


class Collector:
    """Orchestrates adapters, the normalizer and the store.

    Parameters
    ----------
    store : SqliteStore
        Initialized storage backend.
    registry : SourceRegistry
        Source type → adapter lookup.
    pacing : PacingPolicy | None
        Delay applied between consecutive series of a batch.
    """

    def __init__(
        self,
        store: SqliteStore,
        registry: SourceRegistry,
        pacing: PacingPolicy | None = None,
    ) -> None:
        self._store = store
        self._registry = registry
        self._pacing = pacing or PacingPolicy()

    # --- Single series ---

    async def fetch_series(self, slug: str) -> FetchResult:
        """Fetch, normalize and store one series."""
        series = await self._store.get_series(slug)
        if series is None:
            await self._store.log_action(
                "Data fetch", LogStatus.ERROR, "Data fetch failed: Series not found", series_slug=slug
            )
            return FetchResult(slug=slug, ok=False, message="Series not found")
        if not series.is_active:
            return await self._fail(series, "Series is not active")
        source_type = str(series.source_type)

        try:
            adapter = self._registry.get(series.source_type)
        except ConfigError:
            message = f"Unknown source type: {source_type}"
            await self._log_fetch(series, LogStatus.ERROR, f"Data fetch failed: {message}")
            return FetchResult(slug=slug, ok=False, message=message)

        try:
            adapter.validate_config(series.source_config)
            raw = await adapter.fetch_data(series.source_config)
        except ConfigError as e:
            # Configuration problems are reported, not logged as fetch failures
            logger.warning("Invalid configuration for %s: %s", slug, e)
            return FetchResult(slug=slug, ok=False, message=str(e))
        except SeriesSentinelError as e:
            return await self._fail(series, str(e))
        except Exception as e:
            logger.exception("Unexpected adapter failure for %s", slug)
            return await self._fail(series, f"{type(e).__name__}: {e}")

        if not raw:
            return await self._fail(series, "No data returned from source")

        observations = normalize(raw, adapter.date_hint(series.source_config))
        if not observations:
            return await self._fail(series, "No valid observations found in source data")

        counts = await self._store.save_observations(slug, observations)
        message = (
            f"Successfully fetched {len(observations)} observations "
            f"({counts.inserted} new, {counts.updated} updated)"
        )
        if counts.errors:
            message += f", {counts.errors} errors"
        await self._log_fetch(
            series, LogStatus.WARNING if counts.errors else LogStatus.SUCCESS, message
        )
        logger.info("%s: %s", slug, message)
        return FetchResult(
            slug=slug,
            ok=True,
            message=message,
            inserted=counts.inserted,
            updated=counts.updated,
            errors=counts.errors,
        )

    async def _fail(self, series: Series, cause: str) -> FetchResult:
        logger.warning("Fetch failed for %s: %s", series.slug, cause)
        await self._log_fetch(series, LogStatus.ERROR, f"Data fetch failed: {cause}")
        return FetchResult(slug=series.slug, ok=False, message=cause)

    async def _log_fetch(self, series: Series, status: LogStatus, message: str) -> None:
        await self._store.log_action(
            "Data fetch",
            status,
            message,
            series_slug=series.slug,
            source_type=str(series.source_type),
        )

    # --- Batches ---

    async def _run_batch(self, label: str, series_list: list[Series]) -> BatchResult:
        details: list[FetchResult] = []
        for i, series in enumerate(series_list):
            details.append(await self.fetch_series(series.slug))
            if i < len(series_list) - 1:
                await self._pacing.pause(str(series.source_type))
        success = sum(1 for d in details if d.ok)
        return BatchResult(
            label=label,
            total=len(details),
            success=success,
            failed=len(details) - success,
            details=details,
        )

    async def refresh_all(self) -> BatchResult:
        """Refresh every active series, paced by source type."""
        batch = await self._run_batch("Bulk refresh", await self._store.list_series(active_only=True))
        await self._store.log_action(
            "Bulk refresh",
            batch.status,
            f"Bulk refresh completed: {batch.success} successful, "
            f"{batch.failed} failed out of {batch.total} total",
        )
        return batch

    async def refresh_by_source_types(
        self,
        source_types: Iterable[SourceType | str],
        label: str = "Source refresh",
    ) -> BatchResult:
        """Refresh active series whose source type is in ``source_types``."""
        types = [str(t) for t in source_types]
        series_list = await self._store.list_series(active_only=True, source_types=types)
        batch = await self._run_batch(label, series_list)
        await self._store.log_action(
            "Source refresh",
            batch.status,
            f"{label} ({', '.join(types)}): {batch.success} successful, "
            f"{batch.failed} failed out of {batch.total} total",
        )
        return batch

    async def refresh_by_frequency(
        self,
        frequency: RefreshFrequency | str,
        now: datetime | None = None,
    ) -> BatchResult:
        """Refresh active series not updated within the frequency's window."""
        try:
            frequency = RefreshFrequency(frequency)
        except ValueError:
            raise ConfigError(
                f"Unknown refresh frequency: {frequency}",
                context={"field": "frequency", "value": str(frequency)},
            ) from None
        cutoff = (now or datetime.now(timezone.utc)) - FREQUENCY_CUTOFFS[frequency]
        series_list = await self._store.list_stale_series(cutoff)
        label = f"{frequency.value.capitalize()} refresh"
        batch = await self._run_batch(label, series_list)
        await self._store.log_action(
            "Frequency refresh",
            batch.status,
            f"{label}: {batch.success} successful, "
            f"{batch.failed} failed out of {batch.total} total",
        )
        return batch

    # --- Dry runs ---

    async def preview_data(
        self,
        source_type: SourceType | str,
        config: Mapping[str, str],
        limit: int = 10,
    ) -> PreviewResult:
        """Fetch and normalize without storing or logging a fetch."""
        try:
            adapter = self._registry.get(source_type)
            adapter.validate_config(config)
            raw = await adapter.fetch_data(config)
        except SeriesSentinelError as e:
            return PreviewResult(ok=False, message=str(e))
        except Exception as e:
            logger.exception("Unexpected adapter failure during preview of %s", source_type)
            return PreviewResult(ok=False, message=f"{type(e).__name__}: {e}")

        observations = normalize(raw, adapter.date_hint(config))
        if not observations:
            return PreviewResult(ok=False, message="No valid observations found in source data")
        return PreviewResult(
            ok=True,
            message=f"Found {len(observations)} total observations",
            total_count=len(observations),
            points=observations[:limit],
            start=observations[0].obs_date,
            end=observations[-1].obs_date,
        )

    async def test_connection(
        self,
        source_type: SourceType | str,
        config: Mapping[str, str],
    ) -> ConnectionResult:
        """Check a configuration against its source; configuration errors are not logged."""
        try:
            adapter = self._registry.get(source_type)
            adapter.validate_config(config)
        except ConfigError as e:
            return ConnectionResult(ok=False, message=str(e))

        result = await adapter.test_connection(config)
        await self._store.log_action(
            "Connection test",
            LogStatus.SUCCESS if result.ok else LogStatus.ERROR,
            result.message,
            source_type=str(source_type),
        )
        return result

    def available_sources(self) -> list[SourceInfo]:
        return self._registry.describe()
