"""Source registry: source-type tag → adapter instance, resolved once at startup."""

from __future__ import annotations

import logging

import httpx

from series_sentinel.core.config import SentinelConfig
from series_sentinel.core.exceptions import ConfigError
from series_sentinel.core.models import SourceInfo, SourceType
from series_sentinel.sources.alphavantage import AlphaVantageSource
from series_sentinel.sources.base import SourceAdapter
from series_sentinel.sources.csv_source import CsvSource
from series_sentinel.sources.dbnomics import DBnomicsSource
from series_sentinel.sources.eurostat import EurostatSource
from series_sentinel.sources.fred import FredSource
from series_sentinel.sources.worldbank import WorldBankSource
from series_sentinel.sources.yahoo import YahooFinanceSource

logger = logging.getLogger(__name__)


class SourceRegistry:
    """Maps each source type to exactly one adapter.

    Owns the shared ``httpx.AsyncClient`` when built by ``create_registry``.
    Use via ``async with create_registry(config) as registry:`` or call
    ``close()`` explicitly.
    """

    def __init__(self, client: httpx.AsyncClient | None = None) -> None:
        self._adapters: dict[SourceType, SourceAdapter] = {}
        self._client = client

    async def __aenter__(self) -> SourceRegistry:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def register(self, adapter: SourceAdapter) -> None:
        if not isinstance(adapter, SourceAdapter):
            raise TypeError(f"{type(adapter).__name__} does not implement SourceAdapter")
        if adapter.source_type in self._adapters:
            logger.warning("Replacing adapter for source type %s", adapter.source_type)
        self._adapters[adapter.source_type] = adapter

    def get(self, source_type: SourceType | str) -> SourceAdapter:
        """Resolve an adapter, raising ConfigError for unregistered types."""
        try:
            key = SourceType(source_type)
        except ValueError:
            key = None
        adapter = self._adapters.get(key) if key is not None else None
        if adapter is None:
            raise ConfigError(
                f"Unknown source type: {source_type}",
                context={"field": "source_type", "value": str(source_type)},
            )
        return adapter

    def __contains__(self, source_type: object) -> bool:
        return source_type in self._adapters

    @property
    def source_types(self) -> list[SourceType]:
        return list(self._adapters)

    def describe(self) -> list[SourceInfo]:
        """Capability descriptors for every registered adapter."""
        return [adapter.describe() for adapter in self._adapters.values()]


def create_registry(
    config: SentinelConfig,
    client: httpx.AsyncClient | None = None,
) -> SourceRegistry:
    """Build the registry with every built-in adapter sharing one HTTP client."""
    owned = client is None
    client = client or httpx.AsyncClient(
        headers={"User-Agent": config.http.user_agent},
        follow_redirects=True,
    )
    registry = SourceRegistry(client=client if owned else None)
    keys = config.sources
    for adapter in (
        FredSource(config.http, client, api_key=keys.fred_api_key),
        WorldBankSource(config.http, client),
        AlphaVantageSource(config.http, client, api_key=keys.alphavantage_api_key),
        DBnomicsSource(config.http, client),
        EurostatSource(config.http, client),
        YahooFinanceSource(config.http, client),
        CsvSource(config.http, client, base_dir=config.sources.csv_base_dir),
    ):
        registry.register(adapter)
    return registry
