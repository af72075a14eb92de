# hr_platform/modules/payroll/services/normalizers.py

"""
Canonical forms for workbook-supplied values.

Payroll names are folded to a comparison key, spreadsheet cells are parsed
into Decimal amounts and month identifiers are kept as ``MM/YYYY`` period
keys throughout the payroll module.
"""

import re
import unicodedata
from calendar import monthrange
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Optional, Tuple
from zoneinfo import ZoneInfo

from hr_platform.core.config import settings

MIN_PERIOD_YEAR = 2015
MAX_PERIOD_YEAR = 2100

_NON_WORD_RE = re.compile(r"[^\w\s]|_", re.UNICODE)
_WHITESPACE_RE = re.compile(r"\s+")
_NUMERIC_STRIP_RE = re.compile(r"[^\d.\-]")
_MONTH_YEAR_RE = re.compile(r"^(\d{1,2})\s*[/\-]\s*(\d{4})$")
_PERIOD_KEY_RE = re.compile(r"^(\d{2})/(\d{4})$")


def normalize_payroll_name(raw: Optional[str]) -> str:
    """
    Fold a free-text payroll name into its comparison key.

    Accents are stripped, punctuation becomes whitespace, whitespace is
    collapsed and the result is lower-cased. The function is idempotent.
    """
    if raw is None:
        return ""
    decomposed = unicodedata.normalize("NFKD", str(raw))
    without_marks = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    spaced = _NON_WORD_RE.sub(" ", without_marks)
    return _WHITESPACE_RE.sub(" ", spaced).strip().lower()


def _cell_result(value: Any) -> Any:
    # Formula cells arrive as {"formula": ..., "result": ...}
    if isinstance(value, dict):
        return value.get("result")
    if hasattr(value, "result") and not isinstance(value, (str, bytes)):
        return getattr(value, "result")
    return value


def parse_cell_number(value: Any) -> Optional[Decimal]:
    """
    Parse a spreadsheet cell into a Decimal amount.

    Accepts numbers, formatted strings such as ``"PKR 15,000"`` and formula
    cells carrying a ``result``. Returns None for empty, boolean,
    non-finite or non-numeric input.
    """
    value = _cell_result(value)

    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, (int, float, Decimal)):
        try:
            parsed = Decimal(str(value))
        except InvalidOperation:
            return None
        return parsed if parsed.is_finite() else None

    if isinstance(value, str):
        cleaned = _NUMERIC_STRIP_RE.sub("", value)
        if not cleaned:
            return None
        try:
            parsed = Decimal(cleaned)
        except InvalidOperation:
            return None
        return parsed if parsed.is_finite() else None

    return None


def _key_if_valid(month: int, year: int) -> Optional[str]:
    if not 1 <= month <= 12:
        return None
    if not MIN_PERIOD_YEAR <= year <= MAX_PERIOD_YEAR:
        return None
    return f"{month:02d}/{year}"


def payroll_local(value: date) -> date:
    """Aware datetimes are moved into the payroll timezone; dates and naive values pass through."""
    if isinstance(value, datetime) and value.utcoffset() is not None:
        return value.astimezone(ZoneInfo(settings.payroll_default_timezone))
    return value


def to_period_key(value: date) -> str:
    """Serialize a date to its ``MM/YYYY`` period key in the payroll timezone."""
    value = payroll_local(value)
    return f"{value.month:02d}/{value.year}"


def parse_period_key(value: Any) -> Optional[str]:
    """
    Parse a cell holding a payroll month into a ``MM/YYYY`` key.

    Accepts dates, ISO date strings, formula cells and ``M/YYYY`` or
    ``M-YYYY`` strings. Years outside 2015-2100 are rejected.
    """
    value = _cell_result(value)

    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, (date, datetime)):
        value = payroll_local(value)
        return _key_if_valid(value.month, value.year)

    if not isinstance(value, str):
        return None

    text = value.strip()
    if not text:
        return None

    match = _MONTH_YEAR_RE.match(text)
    if match:
        return _key_if_valid(int(match.group(1)), int(match.group(2)))

    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        try:
            parsed = datetime.fromisoformat(text[:10])
        except ValueError:
            return None
    parsed = payroll_local(parsed)
    return _key_if_valid(parsed.month, parsed.year)


def period_key_to_date(key: Optional[str]) -> Optional[date]:
    """First day of the month named by a ``MM/YYYY`` key, or None."""
    if not key:
        return None
    match = _PERIOD_KEY_RE.match(key.strip())
    if not match:
        return None
    month, year = int(match.group(1)), int(match.group(2))
    if not 1 <= month <= 12:
        return None
    return date(year, month, 1)


def period_label_from_key(key: str) -> str:
    return f"Payroll {key}"


def period_bounds(key: str) -> Tuple[date, date]:
    """
    Calendar month boundaries for a period key.

    Raises:
        ValueError: If the key is not a valid ``MM/YYYY`` string
    """
    start = period_key_to_date(key)
    if start is None:
        raise ValueError(f"Invalid period key: {key!r}")
    last_day = monthrange(start.year, start.month)[1]
    return start, date(start.year, start.month, last_day)


def previous_period_key(key: str) -> str:
    start, _ = period_bounds(key)
    if start.month == 1:
        return f"12/{start.year - 1}"
    return f"{start.month - 1:02d}/{start.year}"


def sort_period_keys(keys) -> list:
    """Distinct valid keys in chronological order."""
    valid = {key for key in keys if period_key_to_date(key) is not None}
    return sorted(valid, key=period_key_to_date)
