"""Report builders over canonical rows.

- :func:`tags_summary` - per-tag credit/debit/balance with a per-bank
  breakdown, covering every tag in the vocabulary (unused tags show zeros).
- :func:`overview` - the headline counters of the Super Bank view.
- :func:`export_table` - header and display-string rows aligned column for
  column, ready for a CSV/PDF renderer.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

from .aggregate import movement, totals
from .amounts import round2
from .ctv import CanonicalRow
from .logging_setup import get_logger
from .models import Tag

_logger = get_logger("super_bank.reports")

# ---------------------------------------------------------------------------
# Tag summary
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class BankBreakdown:
    credit: float = 0.0
    debit: float = 0.0
    transaction_count: int = 0
    accounts: list[str] = field(default_factory=list)

    @property
    def balance(self) -> float:
        return round2(self.credit - self.debit)


@dataclass(slots=True)
class TagSummary:
    tag_id: str
    tag_name: str
    credit: float = 0.0
    debit: float = 0.0
    transaction_count: int = 0
    statement_ids: list[str] = field(default_factory=list)
    bank_breakdown: dict[str, BankBreakdown] = field(default_factory=dict)

    @property
    def balance(self) -> float:
        return round2(self.credit - self.debit)

    def to_dict(self) -> dict[str, object]:
        return {
            "tagId": self.tag_id,
            "tagName": self.tag_name,
            "credit": self.credit,
            "debit": self.debit,
            "balance": self.balance,
            "transactionCount": self.transaction_count,
            "statementIds": list(self.statement_ids),
            "bankBreakdown": {
                name: {
                    "credit": b.credit,
                    "debit": b.debit,
                    "balance": b.balance,
                    "transactionCount": b.transaction_count,
                    "accounts": list(b.accounts),
                }
                for name, b in self.bank_breakdown.items()
            },
        }


def tags_summary(rows: Iterable[CanonicalRow], tags: Iterable[Tag] = ()) -> list[TagSummary]:
    """Summarize money movement per tag, sorted by tag name.

    Rows without a movement (zero/unknown amount) are skipped. Every tag in
    ``tags`` appears in the result even when no row carries it.
    """

    by_id: dict[str, TagSummary] = {}
    for tag in tags:
        by_id.setdefault(tag.id, TagSummary(tag_id=tag.id, tag_name=tag.name))

    skipped = 0
    for row in rows:
        if not row.tags:
            continue
        m = movement(row)
        if m.amount == 0:
            skipped += 1
            continue
        for tag in row.tags:
            entry = by_id.get(tag.id)
            if entry is None:
                entry = by_id[tag.id] = TagSummary(tag_id=tag.id, tag_name=tag.name)
            entry.credit = round2(entry.credit + m.credit)
            entry.debit = round2(entry.debit + m.debit)
            entry.transaction_count += 1
            if row.statement_id and row.statement_id not in entry.statement_ids:
                entry.statement_ids.append(row.statement_id)

            bank = entry.bank_breakdown.get(row.bank_name)
            if bank is None:
                bank = entry.bank_breakdown[row.bank_name] = BankBreakdown()
            bank.credit = round2(bank.credit + m.credit)
            bank.debit = round2(bank.debit + m.debit)
            bank.transaction_count += 1
            if row.account_number and row.account_number not in bank.accounts:
                bank.accounts.append(row.account_number)

    if skipped:
        _logger.debug("tags_summary:skipped_zero_amount count=%d", skipped)
    return sorted(by_id.values(), key=lambda s: s.tag_name.casefold())


# ---------------------------------------------------------------------------
# Overview
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Overview:
    total_transactions: int
    total_banks: int
    total_accounts: int
    total_amount: float
    total_credit: float
    total_debit: float
    tagged: int
    untagged: int

    @property
    def balance(self) -> float:
        return round2(self.total_credit - self.total_debit)


def overview(rows: Iterable[CanonicalRow]) -> Overview:
    rows = list(rows)
    stat = totals(rows)
    return Overview(
        total_transactions=stat.total_transactions,
        total_banks=len({r.bank_id for r in rows}),
        total_accounts=len({r.account_id for r in rows}),
        total_amount=stat.total_amount,
        total_credit=stat.total_credit,
        total_debit=stat.total_debit,
        tagged=stat.tagged,
        untagged=stat.untagged,
    )


# ---------------------------------------------------------------------------
# Export
# ---------------------------------------------------------------------------


def _display(value: object) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return "" if value is None else str(value)


def export_table(rows: Iterable[CanonicalRow], header: Sequence[str]) -> tuple[list[str], list[list[str]]]:
    """Return ``(header, body)`` with one display string per header column.

    Amounts are the pre-formatted display values and tags are joined names,
    so every body row has exactly ``len(header)`` cells.
    """

    cols = list(header)
    body = [[_display(row.get(c)) for c in cols] for row in rows]
    return cols, body


__all__ = [
    "BankBreakdown",
    "Overview",
    "TagSummary",
    "export_table",
    "overview",
    "tags_summary",
]
