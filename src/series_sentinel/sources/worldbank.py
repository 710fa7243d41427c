"""World Bank Open Data adapter."""

from __future__ import annotations

import logging
import math
from datetime import date
from typing import Any

import httpx

from series_sentinel.core.exceptions import ParsingError
from series_sentinel.core.models import (
    ConnectionResult,
    DateHint,
    FieldSpec,
    FieldType,
    RateLimitInfo,
    RawPoint,
    SourceType,
)
from series_sentinel.sources.base import HttpSource, SourceConfig

logger = logging.getLogger(__name__)

_BASE_URL = "https://api.worldbank.org/v2/"
_PER_PAGE = 10000
_DEFAULT_START_YEAR = 1960


class WorldBankSource(HttpSource):
    """World Bank indicators API (v2).

    Responses are a two-element array ``[metadata, observations]``. When
    ``metadata.total`` exceeds one page, the remaining pages are fetched
    sequentially. Dates are bare years.
    """

    source_type = SourceType.WORLDBANK
    display_name = "World Bank Open Data"
    description = "Global development indicators from the World Bank"
    # Page requests are spaced 0.25s apart
    rate_limit = RateLimitInfo(requests=4, period_seconds=1, note="No published limit")

    def __init__(self, *args: Any, base_url: str = _BASE_URL, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self._base_url = base_url

    def config_fields(self) -> list[FieldSpec]:
        return [
            FieldSpec(
                key="indicator_code",
                label="Indicator Code",
                required=True,
                help="e.g. NY.GDP.MKTP.CD",
            ),
            FieldSpec(
                key="country_code",
                label="Country Code",
                default="US",
                help="ISO country code, 'all' for every country",
            ),
            FieldSpec(key="start_year", label="Start Year", type=FieldType.NUMBER),
            FieldSpec(key="end_year", label="End Year", type=FieldType.NUMBER),
        ]

    def date_hint(self, config: SourceConfig) -> DateHint:
        return DateHint.YEARLY

    def _url(self, config: SourceConfig) -> str:
        country = (config.get("country_code") or "US").strip().upper()
        indicator = config["indicator_code"].strip()
        return f"{self._base_url}country/{country}/indicator/{indicator}"

    async def _check_connection(self, config: SourceConfig) -> ConnectionResult:
        this_year = date.today().year
        response = await self._get(
            self._url(config),
            {"format": "json", "per_page": 5, "date": f"{this_year - 5}:{this_year}"},
            quick=True,
        )
        meta, observations = self._split(self._json(response))
        if int(meta.get("total", 0) or 0) == 0:
            return ConnectionResult(
                ok=False,
                message="No data found for this indicator and country combination",
            )
        return ConnectionResult(
            ok=True,
            message=f"Connection successful! Found {meta['total']} data points",
            sample_count=len(observations),
        )

    async def fetch_data(self, config: SourceConfig) -> list[RawPoint]:
        self.validate_config(config)
        start = config.get("start_year") or _DEFAULT_START_YEAR
        end = config.get("end_year") or date.today().year
        url = self._url(config)
        params: dict[str, Any] = {
            "format": "json",
            "per_page": _PER_PAGE,
            "date": f"{start}:{end}",
        }

        response = await self._get(url, params)
        meta, observations = self._split(self._json(response))
        rows = list(observations)

        total = int(meta.get("total", 0) or 0)
        if total > _PER_PAGE:
            pages = math.ceil(total / _PER_PAGE)
            for page in range(2, pages + 1):
                page_response = await self._get(url, {**params, "page": page})
                _, page_rows = self._split(self._json(page_response))
                rows.extend(page_rows)
            logger.debug("World Bank %s: fetched %d pages", url, pages)

        return [
            RawPoint(raw_date=str(row.get("date", "")), raw_value=row.get("value"))
            for row in rows
            if isinstance(row, dict)
        ]

    def _split(self, data: Any) -> tuple[dict, list]:
        """Unpack ``[metadata, observations]``, surfacing API error bodies."""
        if not isinstance(data, list) or not data:
            raise ParsingError(
                "Invalid response format from World Bank API",
                context={"source_type": str(self.source_type), "reason": "expected array"},
            )
        meta = data[0] if isinstance(data[0], dict) else {}
        if "message" in meta:
            raise ParsingError(
                f"World Bank API error: {self._message_text(meta['message'])}",
                context={"source_type": str(self.source_type), "reason": "api error"},
            )
        observations = data[1] if len(data) > 1 and isinstance(data[1], list) else []
        return meta, observations

    @staticmethod
    def _message_text(message: Any) -> str:
        if isinstance(message, list) and message and isinstance(message[0], dict):
            return str(message[0].get("value") or message[0].get("key") or message[0])
        return str(message)

    def _error_message(self, response: httpx.Response) -> str:
        text = f"World Bank API error: HTTP {response.status_code}"
        body = self._json_body(response)
        if isinstance(body, list) and body and isinstance(body[0], dict) and "message" in body[0]:
            text += f" - {self._message_text(body[0]['message'])}"
        return text
