"""Yahoo Finance adapter: historical prices via the CSV download endpoint.

Uses the unauthenticated ``/v7/finance/download/`` endpoint via httpx.
The response is CSV text with a fixed header::

    Date,Open,High,Low,Close,Adj Close,Volume

One column is selected per series by its configured ``data_type``.
"""

from __future__ import annotations

import csv
import io
import logging
from datetime import datetime, timedelta, timezone
from typing import Any

from series_sentinel.core.exceptions import ConfigError, ParsingError
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

_BASE_URL = "https://query1.finance.yahoo.com/v7/finance/download/"
_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0 Safari/537.36"
)
_EXPECTED_HEADER = ("Date", "Open", "High", "Low", "Close")
_MIN_COLUMNS = 6

# Map data_type choices to CSV column names
_COLUMN_MAP: dict[str, str] = {
    "open": "Open",
    "high": "High",
    "low": "Low",
    "close": "Close",
    "adj_close": "Adj Close",
    "volume": "Volume",
}

_PERIOD_DAYS: dict[str, int | None] = {
    "1y": 365,
    "2y": 730,
    "5y": 1825,
    "10y": 3650,
    "max": None,
}


def parse_history_csv(text: str, data_type: str = "adj_close") -> list[RawPoint]:
    """Parse Yahoo history CSV into raw points for one price column.

    Parameters
    ----------
    text : str
        Raw CSV body, header included.
    data_type : str
        One of ``open``, ``high``, ``low``, ``close``, ``adj_close``,
        ``volume``.

    Returns
    -------
    list[RawPoint]
        In file order. Rows with fewer than 6 cells are skipped; ``null``
        cells are passed through for the normalizer to drop.
    """
    column = _COLUMN_MAP.get(data_type)
    if column is None:
        raise ConfigError(
            f"Unknown Yahoo data type: {data_type}",
            context={"field": "data_type", "value": data_type},
        )

    rows = list(csv.reader(io.StringIO(text.strip())))
    if not rows or tuple(h.strip() for h in rows[0][: len(_EXPECTED_HEADER)]) != _EXPECTED_HEADER:
        raise ParsingError(
            "Invalid CSV format from Yahoo Finance",
            context={"source_type": str(SourceType.YAHOO), "reason": "unexpected header"},
        )

    header = [h.strip() for h in rows[0]]
    if column not in header:
        raise ParsingError(
            f"Column '{column}' not present in Yahoo Finance response",
            context={"source_type": str(SourceType.YAHOO), "reason": "missing column"},
        )
    idx = header.index(column)

    points: list[RawPoint] = []
    for row in rows[1:]:
        if len(row) < _MIN_COLUMNS or idx >= len(row):
            continue
        points.append(RawPoint(raw_date=row[0].strip(), raw_value=row[idx].strip()))
    return points


class YahooFinanceSource(HttpSource):
    """Fetches daily price history from Yahoo Finance.

    Parameters
    ----------
    base_url : str
        Override base URL (useful for testing).
    """

    source_type = SourceType.YAHOO
    display_name = "Yahoo Finance"
    description = "Stock, ETF, index, and currency prices from Yahoo Finance"
    rate_limit = RateLimitInfo(requests=2, period_seconds=1, note="Unofficial endpoint")

    def __init__(self, *args: Any, base_url: str = _BASE_URL, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self._base_url = base_url

    def config_fields(self) -> list[FieldSpec]:
        return [
            FieldSpec(
                key="symbol",
                label="Symbol",
                required=True,
                help="e.g. AAPL, ^GSPC, EURUSD=X",
            ),
            FieldSpec(
                key="period",
                label="History Period",
                type=FieldType.SELECT,
                choices={"1y": "1 Year", "2y": "2 Years", "5y": "5 Years", "10y": "10 Years", "max": "Maximum"},
                default="2y",
            ),
            FieldSpec(
                key="data_type",
                label="Price Type",
                type=FieldType.SELECT,
                choices={
                    "close": "Close",
                    "adj_close": "Adjusted Close",
                    "open": "Open",
                    "high": "High",
                    "low": "Low",
                    "volume": "Volume",
                },
                default="adj_close",
            ),
        ]

    def _url(self, config: SourceConfig) -> str:
        self.validate_config(config)
        return self._base_url + config["symbol"].strip().upper()

    @staticmethod
    def _window(days: int | None) -> tuple[int, int]:
        """(period1, period2) as Unix timestamps ending now."""
        now = datetime.now(timezone.utc)
        start = now - timedelta(days=days) if days is not None else datetime(1970, 1, 2, tzinfo=timezone.utc)
        return int(start.timestamp()), int(now.timestamp())

    async def _download(self, config: SourceConfig, days: int | None, quick: bool = False) -> str:
        period1, period2 = self._window(days)
        response = await self._get(
            self._url(config),
            {
                "period1": period1,
                "period2": period2,
                "interval": "1d",
                "events": "history",
                "includeAdjustedClose": "true",
            },
            quick=quick,
            headers={"User-Agent": _USER_AGENT},
        )
        return response.text

    async def _check_connection(self, config: SourceConfig) -> ConnectionResult:
        text = await self._download(config, days=5, quick=True)
        points = parse_history_csv(text, config.get("data_type") or "adj_close")
        return ConnectionResult(
            ok=True,
            message=f"Connection successful! Found {len(points)} recent data points",
            sample_count=len(points),
        )

    async def fetch_data(self, config: SourceConfig) -> list[RawPoint]:
        period = (config.get("period") or "2y").lower()
        if period not in _PERIOD_DAYS:
            raise ConfigError(
                f"Unknown history period: {period}",
                context={"field": "period", "value": period},
            )
        text = await self._download(config, _PERIOD_DAYS[period])
        points = parse_history_csv(text, config.get("data_type") or "adj_close")
        logger.debug("Yahoo %s returned %d rows", config.get("symbol"), len(points))
        return points
