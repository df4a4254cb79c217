"""Amount parsing and display formatting.

Statements arrive with amounts such as ``"1,23,456.50"``, ``"₹ 500"``,
``"(1,200.00)"``, ``"1.5e3"`` or plain numbers. :func:`parse_amount` turns any
of them into a ``float`` and never raises; :func:`format_amount` renders a
display string. Computation always uses the parsed number, never the display
string.
"""

from __future__ import annotations

import math
import re
from enum import StrEnum
from typing import Any

# Leading currency markers commonly found in Indian/UK/US statements.
_CURRENCY_PREFIX_RE = re.compile(r"^(?:₹|\$|£|€|rs\.?|inr)\s*", re.IGNORECASE)
# Longest numeric prefix, mirroring how lenient float parsers read "500.00 Cr".
_NUMBER_PREFIX_RE = re.compile(r"^[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")


class Grouping(StrEnum):
    INDIAN = "indian"  # 12,34,567.00
    WESTERN = "western"  # 1,234,567.00


def parse_amount(raw: Any) -> float:
    """Parse ``raw`` into a finite float; ``0.0`` when it cannot be read.

    - ``int``/``float`` input is returned as a float (non-finite → ``0.0``).
    - Strings: thousands separators and whitespace are removed, a leading
      currency marker is dropped, surrounding parentheses mean negative, and
      the longest numeric prefix is parsed (scientific notation included).
    - ``None``, empty strings and anything else yield ``0.0``.
    """

    if isinstance(raw, bool):
        return 0.0
    if isinstance(raw, (int, float)):
        value = float(raw)
        return value if math.isfinite(value) else 0.0
    if not isinstance(raw, str):
        return 0.0

    s = raw.replace(",", "").strip()
    negative = False
    if len(s) >= 2 and s.startswith("(") and s.endswith(")"):
        negative = True
        s = s[1:-1].strip()
    if s.startswith("-") and _CURRENCY_PREFIX_RE.match(s[1:].lstrip()):
        negative = not negative
        s = s[1:].lstrip()
    s = _CURRENCY_PREFIX_RE.sub("", s).replace(" ", "")

    m = _NUMBER_PREFIX_RE.match(s)
    if not m:
        return 0.0
    try:
        value = float(m.group(0))
    except ValueError:  # pragma: no cover - regex only admits float syntax
        return 0.0
    if not math.isfinite(value):
        return 0.0
    return -value if negative else value


def _group_indian(digits: str) -> str:
    if len(digits) <= 3:
        return digits
    head, tail = digits[:-3], digits[-3:]
    pairs: list[str] = []
    while len(head) > 2:
        pairs.insert(0, head[-2:])
        head = head[:-2]
    if head:
        pairs.insert(0, head)
    return ",".join(pairs) + "," + tail


def format_amount(value: Any, grouping: Grouping | str = Grouping.INDIAN) -> str:
    """Render ``value`` with exactly two decimals and thousands grouping."""

    number = parse_amount(value)
    text = f"{abs(number):.2f}"
    int_part, frac = text.split(".")
    if Grouping(grouping) is Grouping.INDIAN:
        grouped = _group_indian(int_part)
    else:
        grouped = f"{int(int_part):,}"
    sign = "-" if number < 0 and text != "0.00" else ""
    return f"{sign}{grouped}.{frac}"


def round2(value: float) -> float:
    """Round to 2 decimal places; used after every accumulation step."""

    return round(value, 2)


__all__ = ["Grouping", "format_amount", "parse_amount", "round2"]
