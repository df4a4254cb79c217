"""Tolerant statement-date normalization to ISO ``YYYY-MM-DD``.

Statement dates are day-first (``DD/MM/YYYY``, ``DD-MM-YY``, ``05 Jan 2024``)
or already ISO. Anything unreadable becomes :data:`EPOCH_SENTINEL` instead of
raising, so one bad row never aborts a batch. Zero-padded ISO strings compare
correctly as plain strings, which the date-range filter relies on.
"""

from __future__ import annotations

import re
from datetime import date, datetime
from typing import Any

EPOCH_SENTINEL = "1970-01-01"

_DAY_FIRST_RE = re.compile(r"^(\d{1,2})[/.-](\d{1,2})[/.-](\d{2}|\d{4})$")
_YEAR_FIRST_RE = re.compile(r"^(\d{4})[/-](\d{1,2})[/-](\d{1,2})$")
_MONTH_NAME_FORMATS = ("%d %b %Y", "%d-%b-%Y", "%d-%b-%y", "%d %b %y", "%d %B %Y", "%b %d, %Y")


def _safe_date(year: int, month: int, day: int) -> date | None:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def parse_statement_date(value: Any) -> date | None:
    """Return a :class:`~datetime.date` for ``value`` or ``None``."""

    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None
    s = value.strip()
    if not s:
        return None
    # Drop a time component ("2024-01-05T10:00:00", "05/01/2024 10:00").
    first = s.split("T", 1)[0] if re.match(r"^\d{4}-", s) else s.split(" ", 1)[0]

    m = _YEAR_FIRST_RE.match(first)
    if m:
        return _safe_date(int(m.group(1)), int(m.group(2)), int(m.group(3)))

    m = _DAY_FIRST_RE.match(first)
    if m:
        year_s = m.group(3)
        year = 2000 + int(year_s) if len(year_s) == 2 else int(year_s)
        return _safe_date(year, int(m.group(2)), int(m.group(1)))

    for fmt in _MONTH_NAME_FORMATS:
        try:
            return datetime.strptime(s, fmt).date()
        except ValueError:
            continue
    return None


def to_iso_date(value: Any) -> str:
    """Normalize ``value`` to ``YYYY-MM-DD``; :data:`EPOCH_SENTINEL` on failure."""

    d = parse_statement_date(value)
    return d.isoformat() if d is not None else EPOCH_SENTINEL


def is_date_column(column: str) -> bool:
    return "date" in column.lower()


__all__ = ["EPOCH_SENTINEL", "is_date_column", "parse_statement_date", "to_iso_date"]
