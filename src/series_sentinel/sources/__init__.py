"""Data provider adapters and the source registry."""

from series_sentinel.sources.alphavantage import AlphaVantageSource
from series_sentinel.sources.base import HttpSource, SourceAdapter
from series_sentinel.sources.csv_source import CsvSource
from series_sentinel.sources.dbnomics import DBnomicsSource
from series_sentinel.sources.eurostat import EurostatSource
from series_sentinel.sources.fred import FredSource
from series_sentinel.sources.registry import SourceRegistry, create_registry
from series_sentinel.sources.worldbank import WorldBankSource
from series_sentinel.sources.yahoo import YahooFinanceSource

__all__ = [
    "SourceAdapter",
    "HttpSource",
    "FredSource",
    "WorldBankSource",
    "AlphaVantageSource",
    "DBnomicsSource",
    "EurostatSource",
    "YahooFinanceSource",
    "CsvSource",
    "SourceRegistry",
    "create_registry",
]
