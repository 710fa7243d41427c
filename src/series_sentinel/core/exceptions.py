"""Custom exception hierarchy for series-sentinel."""

from typing import Any


class SeriesSentinelError(Exception):
    """Base exception for all series-sentinel errors.

    All exceptions carry an optional `context` dict for structured error
    metadata that can be logged or serialized without parsing the message.
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message)
        self.context = context or {}


class ConfigError(SeriesSentinelError):
    """Invalid or missing configuration.

    Raised by load_config() during startup, and by adapters when a series'
    source configuration lacks a required field. Reported to the caller
    directly; never logged as a fetch failure.

    Context keys:
        field (str): the config field that failed validation
        value (Any): the invalid value (redacted for secrets)
    """


class SourceError(SeriesSentinelError):
    """A remote data provider call failed.

    Policy: log with status "error" and mark the series fetch as failed.
    Do not abort the batch. Not retried within the same invocation.

    Context keys:
        source_type (str): the adapter that failed
        url (str): the URL that was being fetched
        status_code (int | None): HTTP status if a response was received
    """


class RateLimitError(SourceError):
    """Provider rate limit exceeded (HTTP 429 or provider-reported note).

    Policy: fail the fetch. The next scheduled run retries.

    Context keys:
        retry_after (int | None): seconds to wait, if the provider said so
    """


class ParsingError(SourceError):
    """Provider response could not be parsed.

    Policy: fail the fetch. Individual bad points are not a ParsingError;
    those are dropped by the normalizer.

    Context keys:
        reason (str): why parsing failed
    """


class StorageError(SeriesSentinelError):
    """Database operation failed.

    Policy: raise immediately. Data integrity is critical. Row-level
    upsert failures are counted instead of raised.

    Context keys:
        operation (str): "insert", "query", "migrate", etc.
        table (str): the table involved
    """


class SchedulerError(SeriesSentinelError):
    """Unknown cadence bucket or invalid scheduler operation.

    Context keys:
        bucket (str): the requested bucket name
    """
