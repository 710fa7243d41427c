"""DBnomics adapter: aggregated statistics from IMF, OECD, ECB, Eurostat, etc."""

from __future__ import annotations

import logging
from typing import Any

import httpx

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

_BASE_URL = "https://api.db.nomics.world/v22/"

_PROVIDERS: dict[str, str] = {
    "auto": "Auto-detect from series code",
    "IMF": "International Monetary Fund",
    "OECD": "OECD",
    "ECB": "European Central Bank",
    "Eurostat": "Eurostat",
    "WB": "World Bank",
    "BIS": "Bank for International Settlements",
    "ILO": "International Labour Organization",
}


class DBnomicsSource(HttpSource):
    """DBnomics series API (v22).

    The series document lives at ``series.docs[0]``. Observations come as
    parallel ``period``/``value`` arrays, or, in older payloads, as an
    ``observations`` list of ``{period, value}``. Periods mix granularities
    (``2023``, ``2023-Q1``, ``2023-01``, ``2023-01-15``). ``"NA"`` marks a
    missing value.
    """

    source_type = SourceType.DBNOMICS
    display_name = "DBnomics"
    description = "Economic data aggregated from IMF, OECD, ECB, Eurostat and others"
    rate_limit = RateLimitInfo(requests=4, period_seconds=1, note="No published limit")

    def __init__(self, *args: Any, base_url: str = _BASE_URL, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self._base_url = base_url

    def config_fields(self) -> list[FieldSpec]:
        return [
            FieldSpec(
                key="series_code",
                label="Series Code",
                required=True,
                help="provider/dataset/series, e.g. IMF/IFS/A.US.NGDP_R_XDC",
            ),
            FieldSpec(
                key="provider",
                label="Provider",
                type=FieldType.SELECT,
                choices=dict(_PROVIDERS),
                default="auto",
            ),
            FieldSpec(key="start_date", label="Start Date", type=FieldType.DATE),
            FieldSpec(key="end_date", label="End Date", type=FieldType.DATE),
        ]

    def _series_path(self, config: SourceConfig) -> str:
        self.validate_config(config)
        code = config["series_code"].strip().strip("/")
        provider = (config.get("provider") or "auto").strip()
        if provider and provider != "auto" and not code.startswith(provider + "/"):
            code = f"{provider}/{code}"
        if len([p for p in code.split("/") if p]) < 3:
            raise ConfigError(
                "Invalid series code format. Expected: provider/dataset/series",
                context={"field": "series_code", "value": code},
            )
        return code

    async def _check_connection(self, config: SourceConfig) -> ConnectionResult:
        code = self._series_path(config)
        response = await self._get(
            f"{self._base_url}series/{code}",
            {"observations": 1, "format": "json"},
            quick=True,
        )
        doc = self._first_doc(self._json(response))
        if doc is None:
            return ConnectionResult(ok=False, message="Series not found in DBnomics")
        points = self.extract_points(doc)
        name = doc.get("series_name") or doc.get("series_code") or code
        return ConnectionResult(
            ok=True,
            message=f"Connection successful! Found series: {name} ({len(points)} observations)",
            sample_count=len(points),
        )

    async def fetch_data(self, config: SourceConfig) -> list[RawPoint]:
        code = self._series_path(config)
        params: dict[str, Any] = {"observations": 1, "format": "json"}
        if config.get("start_date"):
            params["observations_attributes.period[gte]"] = config["start_date"]
        if config.get("end_date"):
            params["observations_attributes.period[lte]"] = config["end_date"]

        response = await self._get(f"{self._base_url}series/{code}", params)
        doc = self._first_doc(self._json(response))
        if doc is None:
            raise ParsingError(
                "Series not found in DBnomics",
                context={"source_type": str(self.source_type), "reason": "empty docs"},
            )
        return self.extract_points(doc)

    @staticmethod
    def _first_doc(data: Any) -> dict[str, Any] | None:
        if not isinstance(data, dict):
            return None
        docs = (data.get("series") or {}).get("docs") or []
        return docs[0] if docs and isinstance(docs[0], dict) else None

    def extract_points(self, doc: dict[str, Any]) -> list[RawPoint]:
        """Flatten either observation layout into raw points."""
        periods = doc.get("period")
        values = doc.get("value")
        if isinstance(periods, list) and isinstance(values, list):
            if len(periods) != len(values):
                logger.warning(
                    "DBnomics period/value length mismatch (%d vs %d), truncating",
                    len(periods), len(values),
                )
            return [
                RawPoint(raw_date=str(p), raw_value=v)
                for p, v in zip(periods, values)
            ]

        observations = doc.get("observations")
        if isinstance(observations, list):
            return [
                RawPoint(raw_date=str(o.get("period", "")), raw_value=o.get("value"))
                for o in observations
                if isinstance(o, dict)
            ]

        raise ParsingError(
            "No observations found in DBnomics series",
            context={"source_type": str(self.source_type), "reason": "missing period/value"},
        )

    def _error_message(self, response: httpx.Response) -> str:
        if response.status_code == 404:
            return "Series not found in DBnomics"
        body = self._json_body(response)
        if isinstance(body, dict) and body.get("message"):
            return f"DBnomics API error: {body['message']}"
        return f"DBnomics API error: HTTP {response.status_code}"
