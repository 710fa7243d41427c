"""Read-only views over stored series for consumers (API, CLI, templates)."""

from __future__ import annotations

from datetime import date, timedelta

from series_sentinel.core.models import ChangeResult, Observation, Series, SeriesStats
from series_sentinel.ingestion.store import SqliteStore


def _months_ago(today: date, months: int) -> date:
    year, month = divmod(today.year * 12 + today.month - 1 - months, 12)
    month += 1
    # Clamp the day to the target month's length
    next_month = date(year + month // 12, month % 12 + 1, 1)
    return date(year, month, min(today.day, (next_month - timedelta(days=1)).day))


class SeriesReader:
    """Lookups that hide inactive series from consumers."""

    def __init__(self, store: SqliteStore) -> None:
        self._store = store

    async def _active(self, slug: str) -> Series | None:
        series = await self._store.get_series(slug)
        return series if series is not None and series.is_active else None

    async def exists(self, slug: str) -> bool:
        return await self._active(slug) is not None

    async def series_info(self, slug: str) -> Series | None:
        return await self._store.get_series(slug)

    async def series_data(
        self,
        slug: str,
        start: date | None = None,
        end: date | None = None,
        limit: int | None = None,
    ) -> list[Observation] | None:
        """Observations ascending; None when the series is missing or inactive."""
        if await self._active(slug) is None:
            return None
        return await self._store.get_observations(slug, start, end, limit)

    async def latest_value(self, slug: str) -> Observation | None:
        if await self._active(slug) is None:
            return None
        latest = await self._store.get_latest_observations(slug, 1)
        return latest[0] if latest else None

    async def data_range(
        self, slug: str, months_back: int = 12, today: date | None = None
    ) -> list[Observation] | None:
        start = _months_ago(today or date.today(), months_back)
        return await self.series_data(slug, start=start)

    async def stats(self, slug: str) -> SeriesStats | None:
        if await self._active(slug) is None:
            return None
        return await self._store.get_stats(slug)

    async def date_range(self, slug: str) -> tuple[date, date] | None:
        if await self._active(slug) is None:
            return None
        return await self._store.get_date_range(slug)

    async def count(self, slug: str) -> int:
        if await self._active(slug) is None:
            return 0
        return await self._store.count_observations(slug)

    async def change(self, slug: str, periods: int = 1) -> ChangeResult | None:
        """Change from the point ``periods`` back to the latest point.

        None when there are not enough points or the previous value is 0.
        """
        if periods < 1 or await self._active(slug) is None:
            return None
        points = await self._store.get_latest_observations(slug, periods + 1)
        if len(points) <= periods:
            return None
        current, previous = points[0], points[periods]
        if previous.value == 0:
            return None
        delta = current.value - previous.value
        return ChangeResult(
            current=current.value,
            previous=previous.value,
            change=delta,
            percent_change=round(delta / previous.value * 100, 2),
            current_date=current.obs_date,
            previous_date=previous.obs_date,
        )

    async def multiple(
        self,
        slugs: list[str],
        start: date | None = None,
        end: date | None = None,
    ) -> dict[str, list[Observation]]:
        """Data for several slugs; missing or inactive slugs are omitted."""
        result: dict[str, list[Observation]] = {}
        for slug in slugs:
            data = await self.series_data(slug, start, end)
            if data is not None:
                result[slug] = data
        return result
