"""Series ingestion: normalizer, collector, storage, and read views."""

from series_sentinel.ingestion.collector import Collector
from series_sentinel.ingestion.normalizer import normalize, parse_date, parse_value
from series_sentinel.ingestion.reader import SeriesReader
from series_sentinel.ingestion.store import SqliteStore, StorageProtocol, create_store

__all__ = [
    "Collector",
    "SeriesReader",
    "SqliteStore",
    "StorageProtocol",
    "create_store",
    "normalize",
    "parse_date",
    "parse_value",
]
