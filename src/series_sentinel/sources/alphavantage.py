"""Alpha Vantage adapter (equities, FX, crypto, US economic indicators)."""

from __future__ import annotations

import logging
from typing import Any

from series_sentinel.core.exceptions import (
    ConfigError,
    ParsingError,
    RateLimitError,
    SourceError,
)
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

_BASE_URL = "https://www.alphavantage.co/query"

_FUNCTIONS: dict[str, str] = {
    "TIME_SERIES_DAILY": "Daily Stock Prices",
    "TIME_SERIES_WEEKLY": "Weekly Stock Prices",
    "TIME_SERIES_MONTHLY": "Monthly Stock Prices",
    "GLOBAL_QUOTE": "Current Stock Quote",
    "FX_DAILY": "Daily Forex Rates",
    "FX_WEEKLY": "Weekly Forex Rates",
    "FX_MONTHLY": "Monthly Forex Rates",
    "DIGITAL_CURRENCY_DAILY": "Daily Crypto Prices",
    "REAL_GDP": "Real GDP",
    "INFLATION": "Inflation Rate",
    "UNEMPLOYMENT": "Unemployment Rate",
}

_STOCK_FUNCTIONS = {
    "TIME_SERIES_DAILY",
    "TIME_SERIES_WEEKLY",
    "TIME_SERIES_MONTHLY",
    "GLOBAL_QUOTE",
}
_FX_FUNCTIONS = {"FX_DAILY", "FX_WEEKLY", "FX_MONTHLY"}
_CRYPTO_FUNCTIONS = {"DIGITAL_CURRENCY_DAILY"}
_ECONOMIC_FUNCTIONS = {"REAL_GDP", "INFLATION", "UNEMPLOYMENT"}

# Top-level payload key holding the date-keyed series, per function
_SERIES_KEYS: dict[str, str] = {
    "TIME_SERIES_DAILY": "Time Series (Daily)",
    "TIME_SERIES_WEEKLY": "Weekly Time Series",
    "TIME_SERIES_MONTHLY": "Monthly Time Series",
    "FX_DAILY": "Time Series FX (Daily)",
    "FX_WEEKLY": "Time Series FX (Weekly)",
    "FX_MONTHLY": "Time Series FX (Monthly)",
    "DIGITAL_CURRENCY_DAILY": "Time Series (Digital Currency Daily)",
}

_CLOSE_KEYS = ("4. close", "Close", "close")
_RATE_LIMIT_MARKERS = ("call frequency", "rate limit", "requests per day")


class AlphaVantageSource(HttpSource):
    """Alpha Vantage query API.

    Time-series functions return an object keyed by date string under a
    function-specific key (``"Time Series (Daily)"``); the value is buried
    under a per-field label (``"4. close"``). Economic indicators return a
    ``data`` list of ``{date, value}``.
    """

    source_type = SourceType.ALPHAVANTAGE
    display_name = "Alpha Vantage"
    description = "Stock prices, forex, crypto, and US economic indicators"
    requires_api_key = True
    rate_limit = RateLimitInfo(
        requests=25, period_seconds=86400, note="25 requests per day (free tier)"
    )
    limiter_override = RateLimitInfo(requests=5, period_seconds=60)

    def __init__(self, *args: Any, base_url: str = _BASE_URL, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self._base_url = base_url

    def config_fields(self) -> list[FieldSpec]:
        return [
            FieldSpec(
                key="function",
                label="Data Type",
                type=FieldType.SELECT,
                required=True,
                choices=dict(_FUNCTIONS),
                default="TIME_SERIES_DAILY",
            ),
            FieldSpec(
                key="symbol",
                label="Symbol",
                help="Stock ticker (AAPL) or crypto symbol (BTC)",
            ),
            FieldSpec(key="from_symbol", label="From Currency", help="FX only, e.g. EUR"),
            FieldSpec(key="to_symbol", label="To Currency", help="FX only, e.g. USD"),
            FieldSpec(
                key="market",
                label="Market",
                default="USD",
                help="Crypto only, quote currency",
            ),
            FieldSpec(
                key="outputsize",
                label="Output Size",
                type=FieldType.SELECT,
                choices={"compact": "Compact (100 points)", "full": "Full history"},
                default="compact",
            ),
        ]

    @staticmethod
    def _function(config: SourceConfig) -> str:
        return (config.get("function") or "TIME_SERIES_DAILY").strip().upper()

    def build_params(self, config: SourceConfig) -> dict[str, str]:
        """Query parameters for the configured function, minus the API key."""
        function = self._function(config)
        if function not in _FUNCTIONS:
            raise ConfigError(
                f"Unsupported Alpha Vantage function: {function}",
                context={"source_type": str(self.source_type), "field": "function", "value": function},
            )
        params = {"function": function}
        outputsize = config.get("outputsize") or "compact"

        if function in _STOCK_FUNCTIONS:
            params["symbol"] = self._required(config, "symbol", function)
            if function != "GLOBAL_QUOTE":
                params["outputsize"] = outputsize
        elif function in _FX_FUNCTIONS:
            params["from_symbol"] = (
                config.get("from_symbol") or self._required(config, "symbol", function)
            ).upper()
            params["to_symbol"] = self._required(config, "to_symbol", function).upper()
            params["outputsize"] = outputsize
        elif function in _CRYPTO_FUNCTIONS:
            params["symbol"] = self._required(config, "symbol", function)
            params["market"] = self._market(config)
        return params

    def _required(self, config: SourceConfig, key: str, function: str) -> str:
        value = (config.get(key) or "").strip()
        if not value:
            raise ConfigError(
                f"'{key}' is required for {function}",
                context={"field": key, "source_type": str(self.source_type)},
            )
        return value.upper() if key == "symbol" else value

    async def _query(self, config: SourceConfig, quick: bool = False) -> dict[str, Any]:
        params = {**self.build_params(config), "apikey": self._require_api_key()}
        response = await self._get(self._base_url, params, quick=quick)
        data = self._json(response)
        if not isinstance(data, dict):
            raise ParsingError(
                "Invalid response format from Alpha Vantage",
                context={"source_type": str(self.source_type), "reason": "expected object"},
            )
        self._raise_for_payload(data)
        return data

    def _raise_for_payload(self, data: dict[str, Any]) -> None:
        """Alpha Vantage reports errors with HTTP 200 and a message field."""
        if "Error Message" in data:
            raise SourceError(
                f"Alpha Vantage Error: {data['Error Message']}",
                context={"source_type": str(self.source_type)},
            )
        for key in ("Note", "Information"):
            note = str(data.get(key, ""))
            if note and any(marker in note.lower() for marker in _RATE_LIMIT_MARKERS):
                raise RateLimitError(
                    "Alpha Vantage rate limit exceeded - please wait",
                    context={"source_type": str(self.source_type), "retry_after": None},
                )

    @staticmethod
    def _market(config: SourceConfig) -> str:
        return (config.get("market") or "USD").strip().upper()

    async def _check_connection(self, config: SourceConfig) -> ConnectionResult:
        data = await self._query(config, quick=True)
        points = self.extract_points(self._function(config), data, self._market(config))
        if not points:
            return ConnectionResult(ok=False, message="No data returned for this configuration")
        return ConnectionResult(
            ok=True,
            message=f"Connection successful! Found {len(points)} data points",
            sample_count=len(points),
        )

    async def fetch_data(self, config: SourceConfig) -> list[RawPoint]:
        function = self._function(config)
        data = await self._query(config)
        return self.extract_points(function, data, self._market(config))

    def extract_points(
        self, function: str, data: dict[str, Any], market: str = "USD"
    ) -> list[RawPoint]:
        """Flatten a function-specific payload into raw points.

        ``market`` selects the crypto close column, e.g. ``4a. close (EUR)``.
        """
        if function in _ECONOMIC_FUNCTIONS:
            rows = data.get("data")
            if not isinstance(rows, list):
                raise ParsingError(
                    f"No data found in Alpha Vantage response for {function}",
                    context={"source_type": str(self.source_type), "reason": "missing data"},
                )
            return [
                RawPoint(
                    raw_date=str(row.get("date", "")),
                    raw_value=row.get("value", row.get("Value")),
                )
                for row in rows
                if isinstance(row, dict)
            ]

        if function == "GLOBAL_QUOTE":
            quote = data.get("Global Quote") or {}
            if not quote:
                return []
            return [
                RawPoint(
                    raw_date=str(quote.get("07. latest trading day", "")),
                    raw_value=quote.get("05. price"),
                )
            ]

        series_key = _SERIES_KEYS[function]
        series = data.get(series_key)
        if not isinstance(series, dict):
            raise ParsingError(
                f"No time series found in Alpha Vantage response (expected '{series_key}')",
                context={"source_type": str(self.source_type), "reason": "missing series key"},
            )
        keys = _CLOSE_KEYS
        if function in _CRYPTO_FUNCTIONS:
            keys = (f"4a. close ({market})", f"4b. close ({market})") + _CLOSE_KEYS
        return [
            RawPoint(raw_date=day, raw_value=self._pick_value(fields, keys))
            for day, fields in series.items()
            if isinstance(fields, dict)
        ]

    @staticmethod
    def _pick_value(fields: dict[str, Any], keys: tuple[str, ...]) -> Any:
        for key in keys:
            if key in fields:
                return fields[key]
        # Fall back to the first numeric field
        for value in fields.values():
            try:
                float(value)
                return value
            except (TypeError, ValueError):
                continue
        return None
