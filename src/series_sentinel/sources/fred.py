"""Federal Reserve Economic Data (FRED) adapter."""

from __future__ import annotations

import logging
import re
from typing import Any

import httpx

from series_sentinel.core.exceptions import ConfigError, ParsingError, SourceError
from series_sentinel.core.models import (
    ConnectionResult,
    FieldSpec,
    FieldType,
    RateLimitInfo,
    RawPoint,
    SourceType,
)
from series_sentinel.sources.base import HttpSource, SourceConfig

logger = logging.getLogger(__name__)

_BASE_URL = "https://api.stlouisfed.org/fred/"
_SERIES_ID_RE = re.compile(r"^[A-Z0-9_#\-.]+$")
_MAX_OBSERVATIONS = 100000

_STATUS_MESSAGES: dict[int, str] = {
    400: "Bad request - check series ID format",
    401: "Invalid API key",
    403: "Access forbidden - check API key permissions",
    404: "Series not found",
    429: "Rate limit exceeded - please wait before retrying",
    500: "FRED server error - please try again later",
}


class FredSource(HttpSource):
    """St. Louis Fed FRED API.

    Observations arrive as a flat ``observations`` array of
    ``{"date": "YYYY-MM-DD", "value": "123.4"}``; ``"."`` marks a missing
    value and is left for the normalizer to drop.
    """

    source_type = SourceType.FRED
    display_name = "FRED (Federal Reserve Economic Data)"
    description = "Economic data from the Federal Reserve Bank of St. Louis"
    requires_api_key = True
    rate_limit = RateLimitInfo(
        requests=120, period_seconds=60, note="120 requests per minute"
    )

    def __init__(self, *args: Any, base_url: str = _BASE_URL, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self._base_url = base_url

    def config_fields(self) -> list[FieldSpec]:
        return [
            FieldSpec(
                key="series_id",
                label="FRED Series ID",
                required=True,
                help="e.g. GDP, UNRATE, CPIAUCSL",
            ),
            FieldSpec(
                key="start_date",
                label="Start Date",
                type=FieldType.DATE,
                help="Leave empty for all available data",
            ),
            FieldSpec(
                key="end_date",
                label="End Date",
                type=FieldType.DATE,
                help="Leave empty for latest data",
            ),
        ]

    @staticmethod
    def validate_series_id(series_id: str) -> bool:
        return bool(_SERIES_ID_RE.match(series_id.strip().upper()))

    def validate_config(self, config: SourceConfig) -> None:
        super().validate_config(config)
        series_id = config["series_id"].strip().upper()
        if not self.validate_series_id(series_id):
            raise ConfigError(
                f"Invalid FRED series ID: {series_id}",
                context={"field": "series_id", "value": series_id},
            )

    def _series_id(self, config: SourceConfig) -> str:
        self.validate_config(config)
        return config["series_id"].strip().upper()

    async def _check_connection(self, config: SourceConfig) -> ConnectionResult:
        series_id = self._series_id(config)
        response = await self._get(
            self._base_url + "series",
            {
                "series_id": series_id,
                "api_key": self._require_api_key(),
                "file_type": "json",
            },
            quick=True,
        )
        data = self._json(response)
        found = data.get("seriess") or []
        if not found:
            return ConnectionResult(ok=False, message="Series not found")
        info = found[0]
        return ConnectionResult(
            ok=True,
            message=(
                "Connection successful! Found series: "
                f"{info.get('title', series_id)} ({info.get('id', series_id)})"
            ),
        )

    async def fetch_data(self, config: SourceConfig) -> list[RawPoint]:
        series_id = self._series_id(config)
        params: dict[str, Any] = {
            "series_id": series_id,
            "api_key": self._require_api_key(),
            "file_type": "json",
            "limit": _MAX_OBSERVATIONS,
        }
        if config.get("start_date"):
            params["observation_start"] = config["start_date"]
        if config.get("end_date"):
            params["observation_end"] = config["end_date"]

        response = await self._get(self._base_url + "series/observations", params)
        data = self._json(response)
        if not isinstance(data, dict) or "observations" not in data:
            raise ParsingError(
                "Invalid response format from FRED API",
                context={"source_type": str(self.source_type), "reason": "missing observations"},
            )

        points = [
            RawPoint(raw_date=str(obs.get("date", "")), raw_value=obs.get("value"))
            for obs in data["observations"]
        ]
        logger.debug("FRED %s returned %d observations", series_id, len(points))
        return points

    async def search(self, text: str, limit: int = 20) -> list[dict[str, Any]]:
        """Search FRED series by keyword. Returns id/title/frequency/units."""
        if not text.strip():
            return []
        response = await self._get(
            self._base_url + "series/search",
            {
                "search_text": text,
                "api_key": self._require_api_key(),
                "file_type": "json",
                "limit": limit,
                "order_by": "popularity",
                "sort_order": "desc",
            },
            quick=True,
        )
        data = self._json(response)
        if not isinstance(data, dict):
            raise SourceError(
                "Invalid search response from FRED API",
                context={"source_type": str(self.source_type)},
            )
        return [
            {
                "id": s.get("id"),
                "title": s.get("title"),
                "frequency": s.get("frequency"),
                "units": s.get("units"),
                "last_updated": s.get("last_updated"),
            }
            for s in data.get("seriess", [])
        ]

    def _error_message(self, response: httpx.Response) -> str:
        status = response.status_code
        message = _STATUS_MESSAGES.get(status, f"HTTP error {status}")
        body = self._json_body(response)
        if isinstance(body, dict) and body.get("error_message"):
            message += f": {body['error_message']}"
        return f"FRED API error: {message}"
