"""Source adapter protocol and the shared HTTP base class.

Architecture
------------
Every data provider is wrapped in an adapter that knows how to build a
request, fetch the raw payload, and flatten it into ``RawPoint`` records:

    series config → SourceAdapter.fetch_data → list[RawPoint] → normalizer

- **SourceAdapter** is the consumer-facing protocol. The collector and
  registry depend only on this interface.

- **HttpSource** is the common base for adapters that talk to a remote
  API. It owns request pacing (an ``AsyncLimiter`` sized from the
  provider's rate limit), timeouts, and the mapping from HTTP failures to
  ``SourceError``/``RateLimitError``.

Adapters never validate dates or values; that is the normalizer's job.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Mapping
from typing import Any, ClassVar, Protocol, runtime_checkable

import httpx
from aiolimiter import AsyncLimiter

from series_sentinel.core.config import HttpConfig
from series_sentinel.core.exceptions import (
    ConfigError,
    ParsingError,
    RateLimitError,
    SeriesSentinelError,
    SourceError,
)
from series_sentinel.core.models import (
    ConnectionResult,
    DateHint,
    FieldSpec,
    RateLimitInfo,
    RawPoint,
    SourceInfo,
    SourceType,
)

logger = logging.getLogger(__name__)

SourceConfig = Mapping[str, str]

_RETRYABLE_STATUSES = (500, 502, 503)


@runtime_checkable
class SourceAdapter(Protocol):
    """Contract implemented by every data provider adapter."""

    source_type: SourceType

    def config_fields(self) -> list[FieldSpec]:
        """Static description of the configuration keys a series must supply."""
        ...

    def is_configured(self) -> bool:
        """True when any externally required credential is present."""
        ...

    def rate_limit_info(self) -> RateLimitInfo | None: ...

    def date_hint(self, config: SourceConfig) -> DateHint | str:
        """Grammar the normalizer should try first for this payload."""
        ...

    def describe(self) -> SourceInfo: ...

    def validate_config(self, config: SourceConfig) -> None:
        """Raise ConfigError when a required field is missing or invalid."""
        ...

    async def test_connection(self, config: SourceConfig) -> ConnectionResult:
        """One lightweight call proving the config resolves to data.

        Never raises for expected failures (missing key, unknown id,
        provider 4xx); those become ``ok=False``.
        """
        ...

    async def fetch_data(self, config: SourceConfig) -> list[RawPoint]:
        """Full fetch of every point the provider reports.

        Raises
        ------
        SourceError
            Network failure, non-2xx status, malformed payload, or
            provider-reported rate limiting.
        ConfigError
            A required configuration field is missing.
        """
        ...


class HttpSource:
    """Base class for adapters backed by an HTTP API.

    Subclasses set the class-level descriptor attributes and implement
    ``config_fields``, ``_check_connection`` and ``fetch_data``.

    Parameters
    ----------
    http : HttpConfig
        Timeouts, user agent, and retry count.
    client : httpx.AsyncClient | None
        Shared client. One is created (and owned) if None.
    api_key : str | None
        Provider credential, for adapters with ``requires_api_key``.
    """

    source_type: ClassVar[SourceType]
    display_name: ClassVar[str]
    description: ClassVar[str]
    requires_api_key: ClassVar[bool] = False
    rate_limit: ClassVar[RateLimitInfo | None] = None
    # Minimum spacing enforced locally when the published limit is per-day
    limiter_override: ClassVar[RateLimitInfo | None] = None

    def __init__(
        self,
        http: HttpConfig | None = None,
        client: httpx.AsyncClient | None = None,
        api_key: str | None = None,
    ) -> None:
        self._http = http or HttpConfig()
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            headers={"User-Agent": self._http.user_agent},
            follow_redirects=True,
        )
        self._api_key = api_key or None
        pacing = self.limiter_override or self.rate_limit
        self._limiter = (
            AsyncLimiter(max_rate=pacing.requests, time_period=pacing.period_seconds)
            if pacing is not None
            else None
        )

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    # --- Descriptor ---

    def config_fields(self) -> list[FieldSpec]:
        raise NotImplementedError

    def is_configured(self) -> bool:
        return not self.requires_api_key or bool(self._api_key)

    def rate_limit_info(self) -> RateLimitInfo | None:
        return self.rate_limit

    def date_hint(self, config: SourceConfig) -> DateHint | str:
        return DateHint.AUTO

    def describe(self) -> SourceInfo:
        return SourceInfo(
            source_type=self.source_type,
            name=self.display_name,
            requires_api_key=self.requires_api_key,
            description=self.description,
            fields=self.config_fields(),
            configured=self.is_configured(),
            rate_limit=self.rate_limit_info(),
        )

    def validate_config(self, config: SourceConfig) -> None:
        """Raise ConfigError if a required field is missing or blank."""
        for spec in self.config_fields():
            if spec.required and not str(config.get(spec.key, "")).strip():
                raise ConfigError(
                    f"{spec.label} is required",
                    context={"field": spec.key, "source_type": str(self.source_type)},
                )

    def _require_api_key(self) -> str:
        if not self._api_key:
            raise ConfigError(
                f"{self.display_name} API key not configured",
                context={"field": f"{self.source_type}_api_key", "value": None},
            )
        return self._api_key

    # --- Operations ---

    async def test_connection(self, config: SourceConfig) -> ConnectionResult:
        """Run the adapter's connection check, converting expected failures to ok=False."""
        try:
            if self.requires_api_key:
                self._require_api_key()
            self.validate_config(config)
            return await self._check_connection(config)
        except SeriesSentinelError as e:
            logger.info("%s connection test failed: %s", self.source_type, e)
            return ConnectionResult(ok=False, message=str(e))

    async def _check_connection(self, config: SourceConfig) -> ConnectionResult:
        raise NotImplementedError

    async def fetch_data(self, config: SourceConfig) -> list[RawPoint]:
        raise NotImplementedError

    # --- HTTP ---

    async def _get(
        self,
        url: str,
        params: Mapping[str, Any] | list[tuple[str, Any]] | None = None,
        *,
        quick: bool = False,
        headers: Mapping[str, str] | None = None,
    ) -> httpx.Response:
        """GET with pacing, timeout, and error mapping.

        Retry policy:
            - HTTP 429: raise RateLimitError immediately.
            - HTTP 500/502/503 and connection errors: retry up to
              ``http.max_retries`` times with exponential backoff.
            - Timeouts: raise SourceError, never retried.
            - Other non-2xx: raise SourceError with the adapter's message.

        Parameters
        ----------
        quick : bool
            Use the short connection-test timeout instead of the fetch one.
        """
        timeout = self._http.test_timeout if quick else self._http.fetch_timeout
        max_retries = self._http.max_retries
        context = {"source_type": str(self.source_type), "url": url}

        for attempt in range(max_retries + 1):
            try:
                if self._limiter is not None:
                    await self._limiter.acquire()
                response = await self._client.get(
                    url, params=params, headers=headers, timeout=timeout
                )
            except httpx.TimeoutException as e:
                raise SourceError(
                    f"{self.display_name} request timed out after {timeout:g}s",
                    context=context,
                ) from e
            except httpx.ConnectError as e:
                if attempt < max_retries:
                    delay = 2**attempt
                    logger.warning(
                        "Connection error on %s, retrying in %ds (attempt %d/%d)",
                        url, delay, attempt + 1, max_retries,
                    )
                    await asyncio.sleep(delay)
                    continue
                raise SourceError(
                    f"Could not connect to {self.display_name}: {e}",
                    context=context,
                ) from e
            except httpx.HTTPError as e:
                raise SourceError(
                    f"{self.display_name} request failed: {e}", context=context
                ) from e

            status = response.status_code
            if 200 <= status < 300:
                return response

            if status == 429:
                retry_after = response.headers.get("Retry-After")
                raise RateLimitError(
                    self._error_message(response),
                    context={
                        **context,
                        "status_code": status,
                        "retry_after": int(retry_after) if retry_after and retry_after.isdigit() else None,
                    },
                )

            if status in _RETRYABLE_STATUSES and attempt < max_retries:
                delay = 2**attempt
                logger.warning(
                    "Server error %d on %s, retrying in %ds (attempt %d/%d)",
                    status, url, delay, attempt + 1, max_retries,
                )
                await asyncio.sleep(delay)
                continue

            raise SourceError(
                self._error_message(response),
                context={**context, "status_code": status},
            )

        # Loop always returns or raises; kept for type checkers
        raise SourceError(f"{self.display_name} request failed: {url}", context=context)

    def _error_message(self, response: httpx.Response) -> str:
        """Human-readable description of a failed response.

        Adapters override this to surface the provider's own error field.
        """
        return f"{self.display_name} HTTP error {response.status_code}"

    def _json(self, response: httpx.Response) -> Any:
        try:
            return response.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ParsingError(
                f"Invalid JSON response from {self.display_name}",
                context={"source_type": str(self.source_type), "reason": str(e)},
            ) from e

    @staticmethod
    def _json_body(response: httpx.Response) -> Any:
        """Best-effort JSON decode of an error body. None if not JSON."""
        try:
            return response.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            return None
