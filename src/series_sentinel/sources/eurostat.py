"""Eurostat dissemination API adapter (JSON-stat 2.0)."""

from __future__ import annotations

import itertools
import logging
import math
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

_BASE_URL = "https://ec.europa.eu/eurostat/api/dissemination/statistics/1.0/data/"
_TIME_DIMENSIONS = ("time", "time_period")

_TIME_FORMATS: dict[str, str] = {
    "auto": "Auto-detect",
    "monthly": "Monthly (2023M01)",
    "quarterly": "Quarterly (2023Q1)",
    "yearly": "Yearly (2023)",
}


def parse_filters(text: str | None) -> list[tuple[str, str]]:
    """Parse ``key=value`` lines (or ``&``-separated pairs) into query params.

    Blank lines and lines without ``=`` are ignored. Repeated keys are kept,
    which the API treats as OR.
    """
    if not text:
        return []
    pairs: list[tuple[str, str]] = []
    for chunk in text.replace("&", "\n").splitlines():
        key, sep, value = chunk.partition("=")
        if sep and key.strip() and value.strip():
            pairs.append((key.strip(), value.strip()))
    return pairs


def flatten_jsonstat(data: dict[str, Any]) -> list[RawPoint]:
    """Recover one value per time period from a JSON-stat dataset.

    The ``value`` container is addressed by a row-major flat index over the
    dimensions in ``id`` with extents in ``size``:

        flat = Σ coord_i · stride_i,   stride_i = Π size[i+1:]

    For each time category, the non-time dimensions are walked in category
    order and the first non-null value wins.

    Parameters
    ----------
    data : dict
        A JSON-stat 2.0 dataset (``id``, ``size``, ``dimension``, ``value``).

    Returns
    -------
    list[RawPoint]
        One point per time category that has at least one value.
    """
    ids: list[str] = data.get("id") or []
    sizes: list[int] = data.get("size") or []
    dimensions: dict[str, Any] = data.get("dimension") or {}
    values = data.get("value")
    if not ids or len(ids) != len(sizes) or values is None:
        raise ParsingError(
            "Invalid JSON-stat structure in Eurostat response",
            context={"source_type": str(SourceType.EUROSTAT), "reason": "missing id/size/value"},
        )

    time_pos = next((i for i, d in enumerate(ids) if d.lower() in _TIME_DIMENSIONS), None)
    if time_pos is None:
        raise ParsingError(
            "No time dimension found in Eurostat response",
            context={"source_type": str(SourceType.EUROSTAT), "reason": "no time dimension"},
        )

    strides = [math.prod(sizes[i + 1 :]) for i in range(len(sizes))]
    time_index: dict[str, int] = (
        dimensions.get(ids[time_pos], {}).get("category", {}).get("index") or {}
    )
    if isinstance(time_index, list):
        time_index = {label: pos for pos, label in enumerate(time_index)}

    other_ranges = [range(sizes[i]) for i in range(len(ids)) if i != time_pos]
    other_positions = [i for i in range(len(ids)) if i != time_pos]

    points: list[RawPoint] = []
    for period, t in sorted(time_index.items(), key=lambda kv: kv[1]):
        for combo in itertools.product(*other_ranges):
            flat = t * strides[time_pos] + sum(
                c * strides[pos] for c, pos in zip(combo, other_positions)
            )
            value = _lookup(values, flat)
            if value is not None:
                points.append(RawPoint(raw_date=str(period), raw_value=value))
                break
    return points


def _lookup(values: dict[str, Any] | list[Any], flat: int) -> Any:
    if isinstance(values, dict):
        return values.get(str(flat))
    if 0 <= flat < len(values):
        return values[flat]
    return None


class EurostatSource(HttpSource):
    """Eurostat statistics API.

    Responses are JSON-stat cubes; ``filters`` narrow the cube to one
    slice per time period (``geo=DE``, ``unit=PC_GDP``).
    """

    source_type = SourceType.EUROSTAT
    display_name = "Eurostat"
    description = "Official statistics of the European Union"
    rate_limit = RateLimitInfo(requests=2, period_seconds=1, note="No published limit")

    def __init__(self, *args: Any, base_url: str = _BASE_URL, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self._base_url = base_url

    def config_fields(self) -> list[FieldSpec]:
        return [
            FieldSpec(
                key="dataset_code",
                label="Dataset Code",
                required=True,
                help="e.g. nama_10_gdp, prc_hicp_manr",
            ),
            FieldSpec(
                key="filters",
                label="Filters",
                type=FieldType.TEXTAREA,
                help="One key=value per line, e.g. geo=DE",
            ),
            FieldSpec(
                key="time_format",
                label="Time Format",
                type=FieldType.SELECT,
                choices=dict(_TIME_FORMATS),
                default="auto",
            ),
            FieldSpec(key="start_period", label="Start Period", help="e.g. 2015 or 2015-Q1"),
            FieldSpec(key="end_period", label="End Period"),
        ]

    def date_hint(self, config: SourceConfig) -> DateHint:
        try:
            return DateHint((config.get("time_format") or "auto").lower())
        except ValueError:
            return DateHint.AUTO

    def _params(self, config: SourceConfig) -> list[tuple[str, str]]:
        params = [("format", "JSON"), ("compressed", "false"), ("lang", "en")]
        params.extend(parse_filters(config.get("filters")))
        return params

    def _url(self, config: SourceConfig) -> str:
        return self._base_url + config["dataset_code"].strip()

    async def _check_connection(self, config: SourceConfig) -> ConnectionResult:
        params = self._params(config) + [("lastTimePeriod", "1")]
        response = await self._get(self._url(config), params, quick=True)
        data = self._json(response)
        points = flatten_jsonstat(data)
        if not points:
            return ConnectionResult(ok=False, message="No data found for this dataset and filters")
        label = data.get("label") or config["dataset_code"]
        return ConnectionResult(
            ok=True,
            message=f"Connection successful! Found dataset: {label}",
            sample_count=len(points),
        )

    async def fetch_data(self, config: SourceConfig) -> list[RawPoint]:
        self.validate_config(config)
        params = self._params(config)
        if config.get("start_period"):
            params.append(("sinceTimePeriod", config["start_period"]))
        if config.get("end_period"):
            params.append(("untilTimePeriod", config["end_period"]))

        response = await self._get(self._url(config), params)
        points = flatten_jsonstat(self._json(response))
        logger.debug("Eurostat %s returned %d periods", config["dataset_code"], len(points))
        return points

    def _error_message(self, response: httpx.Response) -> str:
        if response.status_code == 413:
            return "Eurostat API error: request too large, add filters to narrow the dataset"
        body = self._json_body(response)
        if isinstance(body, dict):
            error = body.get("error")
            if isinstance(error, list) and error:
                error = error[0]
            if isinstance(error, dict) and error.get("label"):
                return f"Eurostat API error: {error['label']}"
        return f"Eurostat API error: HTTP {response.status_code}"
