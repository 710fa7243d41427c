"""Date/value normalization shared by every source adapter.

Adapters emit ``RawPoint`` records without validating them. This module
turns those into canonical ``Observation`` records:

    list[RawPoint] → parse_date / parse_value → dedup by date → sorted list

Everything here is pure: no I/O, no logging side effects beyond debug
messages, no dependency on storage or the network.
"""

from __future__ import annotations

import logging
import math
import re
from collections.abc import Callable, Iterable
from datetime import date, datetime

from dateutil import parser as dtparser

from series_sentinel.core.models import DateHint, Observation, RawPoint

logger = logging.getLogger(__name__)

_ISO_DAY_RE = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})(?:[T ].*)?$")
_YEAR_MONTH_RE = re.compile(r"^(\d{4})-(\d{1,2})$")
_YEAR_RE = re.compile(r"^(\d{4})$")
_QUARTER_RE = re.compile(r"^(\d{4})[- ]?Q([1-4])$", re.IGNORECASE)
_MONTH_CODE_RE = re.compile(r"^(\d{4})-?M(\d{1,2})$", re.IGNORECASE)
_SLASH_RE = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$")

# Characters stripped from numeric strings before float conversion
_VALUE_STRIP_RE = re.compile(r"[\s,$€£¥% ]")
_MISSING_SENTINELS = {"", ".", "..", "-", "na", "n/a", "null", "none", "nan"}


# --- Date parsing ---


def _safe_date(year: int, month: int, day: int) -> date | None:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def _parse_iso_day(text: str) -> date | None:
    m = _ISO_DAY_RE.match(text)
    if m is None:
        return None
    return _safe_date(int(m.group(1)), int(m.group(2)), int(m.group(3)))


def _parse_year_month(text: str) -> date | None:
    m = _YEAR_MONTH_RE.match(text) or _MONTH_CODE_RE.match(text)
    if m is None:
        return None
    return _safe_date(int(m.group(1)), int(m.group(2)), 1)


def _parse_year(text: str) -> date | None:
    m = _YEAR_RE.match(text)
    if m is None:
        return None
    return _safe_date(int(m.group(1)), 1, 1)


def _parse_quarter(text: str) -> date | None:
    m = _QUARTER_RE.match(text)
    if m is None:
        return None
    quarter = int(m.group(2))
    return _safe_date(int(m.group(1)), (quarter - 1) * 3 + 1, 1)


def _parse_slash(text: str) -> date | None:
    """US order (m/d/Y) first, then day-first (d/m/Y)."""
    m = _SLASH_RE.match(text)
    if m is None:
        return None
    a, b, year = int(m.group(1)), int(m.group(2)), int(m.group(3))
    return _safe_date(year, a, b) or _safe_date(year, b, a)


def _parse_flexible(text: str) -> date | None:
    try:
        return dtparser.parse(text).date()
    except (ValueError, OverflowError):
        return None


_AUTO_ORDER: list[Callable[[str], date | None]] = [
    _parse_iso_day,
    _parse_year_month,
    _parse_year,
    _parse_quarter,
    _parse_slash,
]

_HINT_FIRST: dict[DateHint, Callable[[str], date | None]] = {
    DateHint.MONTHLY: _parse_year_month,
    DateHint.QUARTERLY: _parse_quarter,
    DateHint.YEARLY: _parse_year,
}


def parse_date(raw: object, hint: DateHint | str | None = None) -> date | None:
    """Parse a provider date representation into a calendar day.

    Parameters
    ----------
    raw : object
        A string (``2024-01-15``, ``2024-01``, ``2024``, ``2024-Q3``,
        ``2024M07``, ``01/15/2024``, ...), an int year, or a date/datetime.
    hint : DateHint | str | None
        ``monthly``/``quarterly``/``yearly`` tries that grammar first.
        Any other non-``auto`` string is treated as a strptime format
        (``%d/%m/%Y``) and tried first.

    Returns
    -------
    date | None
        Sub-day periods map to their first day. None if nothing matches.
    """
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw

    text = str(raw).strip()
    if not text:
        return None

    if hint:
        hinted = _HINT_FIRST.get(hint)
        if hinted is not None:
            result = hinted(text)
            if result is not None:
                return result
        elif hint != DateHint.AUTO:
            try:
                return datetime.strptime(text, str(hint)).date()
            except ValueError:
                pass

    for parser in _AUTO_ORDER:
        result = parser(text)
        if result is not None:
            return result

    # Bare numbers are only dates in compact YYYYMMDD form
    if text.replace(".", "", 1).isdigit():
        if len(text) == 8:
            return _safe_date(int(text[:4]), int(text[4:6]), int(text[6:]))
        return None
    return _parse_flexible(text)


# --- Value parsing ---


def parse_value(raw: object) -> float | None:
    """Parse a provider value into a float.

    Strips whitespace, thousands separators, currency and percent symbols.
    Returns None for missing sentinels (``""``, ``"."``, ``"null"``, ...),
    non-numeric text, NaN, and infinities.
    """
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        value = float(raw)
    else:
        text = str(raw).strip()
        if text.lower() in _MISSING_SENTINELS:
            return None
        cleaned = _VALUE_STRIP_RE.sub("", text)
        if cleaned.lower() in _MISSING_SENTINELS:
            return None
        try:
            value = float(cleaned)
        except ValueError:
            return None
    if math.isnan(value) or math.isinf(value):
        return None
    return value


# --- Normalization ---


def normalize(
    points: Iterable[RawPoint],
    hint: DateHint | str | None = None,
) -> list[Observation]:
    """Convert raw points into deduplicated, date-sorted observations.

    Points with an unparsable date or value are dropped. When a date
    repeats, the last-seen value wins.
    """
    by_date: dict[date, float] = {}
    dropped = 0
    for point in points:
        obs_date = parse_date(point.raw_date, hint)
        value = parse_value(point.raw_value)
        if obs_date is None or value is None:
            dropped += 1
            continue
        by_date[obs_date] = value

    if dropped:
        logger.debug("Dropped %d unparsable points", dropped)

    return [Observation(obs_date=d, value=by_date[d]) for d in sorted(by_date)]
