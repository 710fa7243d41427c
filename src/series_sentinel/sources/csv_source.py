"""CSV adapter: imports a date/value column pair from a URL or local file.

Columns are chosen by 0-based index or by header name (case-insensitive),
so any spreadsheet export can feed a series without a dedicated adapter.
"""

from __future__ import annotations

import csv
import io
import logging
from pathlib import Path

import httpx

from series_sentinel.core.config import HttpConfig
from series_sentinel.core.exceptions import ConfigError, ParsingError, SourceError
from series_sentinel.core.models import (
    ConnectionResult,
    DateHint,
    FieldSpec,
    FieldType,
    RawPoint,
    SourceType,
)
from series_sentinel.sources.base import HttpSource, SourceConfig

logger = logging.getLogger(__name__)

_PREVIEW_ROWS = 5

_DELIMITERS: dict[str, str] = {
    ",": "Comma (,)",
    ";": "Semicolon (;)",
    "\t": "Tab",
    "|": "Pipe (|)",
}

# date_format choices mapped to strptime formats for the normalizer hint
_DATE_FORMATS: dict[str, str | None] = {
    "auto": None,
    "Y-m-d": "%Y-%m-%d",
    "m/d/Y": "%m/%d/%Y",
    "d/m/Y": "%d/%m/%Y",
    "Y-m": DateHint.MONTHLY,
    "Y": DateHint.YEARLY,
}

_TRUTHY = {"1", "true", "yes", "on"}


def is_likely_csv(text: str, delimiter: str = ",", sample_lines: int = 5) -> bool:
    """Heuristic: the first non-empty lines share a non-zero delimiter count."""
    lines = [line for line in text.strip().splitlines() if line.strip()][:sample_lines]
    if not lines:
        return False
    counts = {line.count(delimiter) for line in lines}
    return len(counts) == 1 and counts.pop() > 0


def _resolve_column(spec: str, header: list[str] | None, label: str) -> int:
    """Column index from a 0-based number or a header name."""
    spec = spec.strip()
    if spec.isdigit():
        return int(spec)
    if header is None:
        raise ConfigError(
            f"{label} '{spec}' is a name but the file has no header row",
            context={"field": label.lower().replace(" ", "_"), "value": spec},
        )
    lowered = [h.strip().lower() for h in header]
    if spec.lower() not in lowered:
        raise ParsingError(
            f"{label} '{spec}' not found in CSV header: {', '.join(header)}",
            context={"source_type": str(SourceType.CSV), "reason": "missing column"},
        )
    return lowered.index(spec.lower())


def parse_csv_points(
    text: str,
    date_column: str = "0",
    value_column: str = "1",
    has_header: bool = True,
    delimiter: str = ",",
    max_rows: int | None = None,
) -> list[RawPoint]:
    """Extract (date, value) cells from CSV text.

    Parameters
    ----------
    text : str
        The CSV body.
    date_column, value_column : str
        0-based index (``"0"``) or header name (``"Date"``).
    has_header : bool
        Whether the first row is a header.
    delimiter : str
        Field separator.
    max_rows : int | None
        Stop after this many data rows (used by connection tests).

    Returns
    -------
    list[RawPoint]
        In file order. Rows too short for either column are skipped.
    """
    rows = [r for r in csv.reader(io.StringIO(text.lstrip("\ufeff")), delimiter=delimiter) if r]
    if not rows:
        return []

    header = rows[0] if has_header else None
    body = rows[1:] if has_header else rows
    date_idx = _resolve_column(date_column, header, "Date column")
    value_idx = _resolve_column(value_column, header, "Value column")

    points: list[RawPoint] = []
    for row in body:
        if max_rows is not None and len(points) >= max_rows:
            break
        if date_idx >= len(row) or value_idx >= len(row):
            continue
        points.append(RawPoint(raw_date=row[date_idx].strip(), raw_value=row[value_idx].strip()))
    return points


class CsvSource(HttpSource):
    """CSV from a URL (fetched with the shared HTTP client) or a local file."""

    source_type = SourceType.CSV
    display_name = "CSV File / URL"
    description = "Import data from a CSV file or any URL serving CSV"

    def __init__(
        self,
        http: HttpConfig | None = None,
        client: httpx.AsyncClient | None = None,
        base_dir: str | Path | None = None,
    ) -> None:
        """``base_dir`` confines file mode to one directory tree; None allows any path."""
        super().__init__(http, client)
        self._base_dir = Path(base_dir).expanduser().resolve() if base_dir is not None else None

    def _file_path(self, config: SourceConfig) -> Path:
        """Resolve ``csv_file``, relative to the base directory when one is set."""
        path = Path(config["csv_file"].strip()).expanduser()
        if self._base_dir is None:
            return path
        if not path.is_absolute():
            path = self._base_dir / path
        path = path.resolve()
        if not path.is_relative_to(self._base_dir):
            raise ConfigError(
                f"CSV file must be inside {self._base_dir}",
                context={"field": "csv_file", "value": str(path)},
            )
        return path

    def config_fields(self) -> list[FieldSpec]:
        return [
            FieldSpec(
                key="csv_source",
                label="CSV Source",
                type=FieldType.SELECT,
                choices={"url": "URL", "file": "Local File"},
                default="url",
            ),
            FieldSpec(key="csv_url", label="CSV URL", type=FieldType.URL),
            FieldSpec(key="csv_file", label="CSV File Path", type=FieldType.PATH),
            FieldSpec(
                key="date_column",
                label="Date Column",
                default="0",
                help="0-based column number or header name",
            ),
            FieldSpec(
                key="value_column",
                label="Value Column",
                default="1",
                help="0-based column number or header name",
            ),
            FieldSpec(
                key="has_header",
                label="Has Header Row",
                type=FieldType.CHECKBOX,
                default="true",
            ),
            FieldSpec(
                key="delimiter",
                label="Delimiter",
                type=FieldType.SELECT,
                choices=dict(_DELIMITERS),
                default=",",
            ),
            FieldSpec(
                key="date_format",
                label="Date Format",
                type=FieldType.SELECT,
                choices={k: k if k != "auto" else "Auto-detect" for k in _DATE_FORMATS},
                default="auto",
            ),
        ]

    def date_hint(self, config: SourceConfig) -> DateHint | str:
        fmt = _DATE_FORMATS.get(config.get("date_format") or "auto")
        return fmt if fmt is not None else DateHint.AUTO

    def validate_config(self, config: SourceConfig) -> None:
        mode = (config.get("csv_source") or "url").lower()
        if mode not in ("url", "file"):
            raise ConfigError(
                f"Unknown CSV source: {mode}",
                context={"field": "csv_source", "value": mode},
            )
        key = "csv_url" if mode == "url" else "csv_file"
        if not (config.get(key) or "").strip():
            raise ConfigError(
                "CSV URL is required" if mode == "url" else "CSV file path is required",
                context={"field": key},
            )
        if mode == "file":
            self._file_path(config)
        delimiter = self._delimiter(config)
        if delimiter not in _DELIMITERS:
            raise ConfigError(
                f"Unsupported delimiter: {delimiter!r}",
                context={"field": "delimiter", "value": delimiter},
            )

    @staticmethod
    def _delimiter(config: SourceConfig) -> str:
        value = config.get("delimiter") or ","
        return "\t" if value in ("\\t", "tab") else value

    async def _read(self, config: SourceConfig, quick: bool = False) -> str:
        self.validate_config(config)
        if (config.get("csv_source") or "url").lower() == "file":
            path = self._file_path(config)
            if not path.is_file():
                raise SourceError(
                    f"CSV file not found: {path}",
                    context={"source_type": str(self.source_type), "path": str(path)},
                )
            try:
                return path.read_text(encoding="utf-8-sig")
            except (OSError, UnicodeDecodeError) as e:
                raise SourceError(
                    f"Could not read CSV file {path}: {e}",
                    context={"source_type": str(self.source_type), "path": str(path)},
                ) from e
        response = await self._get(config["csv_url"].strip(), quick=quick)
        return response.text

    def _parse(self, text: str, config: SourceConfig, max_rows: int | None = None) -> list[RawPoint]:
        return parse_csv_points(
            text,
            date_column=config.get("date_column") or "0",
            value_column=config.get("value_column") or "1",
            has_header=(config.get("has_header") or "true").lower() in _TRUTHY,
            delimiter=self._delimiter(config),
            max_rows=max_rows,
        )

    async def _check_connection(self, config: SourceConfig) -> ConnectionResult:
        text = await self._read(config, quick=True)
        if not is_likely_csv(text, self._delimiter(config)):
            return ConnectionResult(
                ok=False, message="Content does not look like CSV with the chosen delimiter"
            )
        points = self._parse(text, config, max_rows=_PREVIEW_ROWS)
        return ConnectionResult(
            ok=True,
            message=f"Connection successful! Parsed {len(points)} sample rows",
            sample_count=len(points),
        )

    async def fetch_data(self, config: SourceConfig) -> list[RawPoint]:
        text = await self._read(config)
        points = self._parse(text, config)
        logger.debug("CSV source returned %d rows", len(points))
        return points

