"""series-sentinel: scheduled time-series ingestion from public data providers."""

__version__ = "0.1.0"
