"""Filter pipeline over canonical rows.

Criteria combine with AND. The tag criterion is the one exception: a row
passes when it carries *any* of the selected tag names. An empty
:class:`~super_bank.models.FilterCriteria` is the identity.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from .ctv import BANK_NAME, CanonicalField, CanonicalRow
from .dates import EPOCH_SENTINEL, is_date_column
from .logging_setup import get_logger
from .models import DateRange, FilterCriteria

_logger = get_logger("super_bank.filters")

SEARCH_ALL = "all"
SEARCH_BANK_NAME = "Bank Name"


def date_column(row: CanonicalRow) -> str | None:
    """Return the first date-like header column present on ``row``."""

    for column in row.values:
        if is_date_column(column):
            return column
    return None


# ---------------------------------------------------------------------------
# Individual predicates
# ---------------------------------------------------------------------------


def matches_search(row: CanonicalRow, needle: str, field: str = SEARCH_ALL) -> bool:
    if not needle:
        return True
    n = needle.lower()
    if field == SEARCH_ALL:
        for _, value in row.scalar_items():
            if n in str(value).lower():
                return True
        return n in ", ".join(row.tag_names).lower()
    column = BANK_NAME if field == SEARCH_BANK_NAME else field
    return n in str(row.get(column)).lower()


def matches_date_range(row: CanonicalRow, date_range: DateRange | None) -> bool:
    if date_range is None or not date_range.active:
        return True
    column = date_column(row)
    if column is None:
        # Nothing to compare against: the range cannot exclude the row.
        return True
    value = str(row.get(column)).strip()
    if not value or value == EPOCH_SENTINEL:
        return False
    if date_range.date_from and value < date_range.date_from:
        return False
    if date_range.date_to and value > date_range.date_to:
        return False
    return True


def matches_account(row: CanonicalRow, account_filter: str) -> bool:
    if not account_filter:
        return True
    # The account picker shows "<account> - <bank>"; only the account part counts.
    account = account_filter.split(" - ", 1)[0].strip()
    return row.account_number == account


def matches_tags(row: CanonicalRow, tag_filters: Sequence[str]) -> bool:
    if not tag_filters:
        return True
    names = set(row.tag_names)
    return any(t in names for t in tag_filters)


def matches(row: CanonicalRow, criteria: FilterCriteria) -> bool:
    """Return whether ``row`` passes every criterion in ``criteria``."""

    if criteria.tagged_only and not row.is_tagged:
        return False
    if criteria.untagged_only and row.is_tagged:
        return False
    if not matches_tags(row, criteria.tag_filters):
        return False
    if not matches_search(row, criteria.search, criteria.search_field):
        return False
    if not matches_date_range(row, criteria.date_range):
        return False
    if criteria.bank_filter and row.bank_name != criteria.bank_filter:
        return False
    if not matches_account(row, criteria.account_filter):
        return False
    if criteria.dr_cr_filter and row.dr_cr != criteria.dr_cr_filter:
        return False
    return True


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------


def apply_filters(rows: Iterable[CanonicalRow], criteria: FilterCriteria | None = None) -> list[CanonicalRow]:
    """Return the rows passing ``criteria``, in input order."""

    rows = list(rows)
    if criteria is None or criteria == FilterCriteria():
        return rows
    out = [r for r in rows if matches(r, criteria)]
    _logger.debug("filter:applied rows_in=%d rows_out=%d", len(rows), len(out))
    return out


def sort_rows(
    rows: Iterable[CanonicalRow],
    *,
    column: str | None = None,
    descending: bool = False,
) -> list[CanonicalRow]:
    """Sort rows by ``column`` (default: the date column).

    ``Amount`` sorts by the parsed amount; date columns compare as ISO
    strings; anything else compares as lower-cased text. The sort is
    stable, so ties keep their input order.
    """

    rows = list(rows)
    if not rows:
        return rows
    if column is None or is_date_column(column):
        column = date_column(rows[0]) if column is None else column
        if column is None:
            return rows
        return sorted(rows, key=lambda r: str(r.get(column)), reverse=descending)
    if column == CanonicalField.AMOUNT:
        return sorted(rows, key=lambda r: r.amount_raw, reverse=descending)
    return sorted(rows, key=lambda r: str(r.get(column)).lower(), reverse=descending)


__all__ = [
    "SEARCH_ALL",
    "SEARCH_BANK_NAME",
    "apply_filters",
    "date_column",
    "matches",
    "matches_account",
    "matches_date_range",
    "matches_search",
    "matches_tags",
    "sort_rows",
]
