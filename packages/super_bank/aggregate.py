"""Grouped totals over canonical rows.

Credit/debit come from the normalized ``Dr./Cr.`` indicator and the
absolute ``AmountRaw``. Banks that export separate deposit and withdrawal
columns (and no single amount) leave ``AmountRaw`` at ``0``; for those rows
the deposit/withdrawal columns are read instead.

Every accumulation step is rounded to 2 decimal places so long sums do not
drift.
"""

from __future__ import annotations

from collections.abc import Hashable, Iterable
from dataclasses import dataclass
from enum import StrEnum

from .amounts import parse_amount, round2
from .ctv import CanonicalRow
from .logging_setup import get_logger
from .models import AggregateStat

_logger = get_logger("super_bank.aggregate")

_DEPOSIT_COLUMNS: tuple[str, ...] = ("Deposit Amt.", "Deposit Amt", "Deposit Amount")
_WITHDRAWAL_COLUMNS: tuple[str, ...] = ("Withdrawal Amt.", "Withdrawal Amt", "Withdrawal Amount")


class GroupBy(StrEnum):
    BANK = "bank"
    ACCOUNT = "account"
    TAG = "tag"


type GroupKey = Hashable


@dataclass(frozen=True, slots=True)
class Movement:
    """Per-row contribution to credit, debit and total amount."""

    credit: float = 0.0
    debit: float = 0.0
    amount: float = 0.0


def _first_present(row: CanonicalRow, columns: tuple[str, ...]) -> float:
    for column in columns:
        v = row.values.get(column)
        if v in (None, ""):
            v = row.raw.get(column)
        if v not in (None, ""):
            return parse_amount(v)
    return 0.0


def movement(row: CanonicalRow) -> Movement:
    """Return how ``row`` contributes to credit/debit/amount totals."""

    if row.amount_raw == 0:
        deposit = _first_present(row, _DEPOSIT_COLUMNS)
        withdrawal = _first_present(row, _WITHDRAWAL_COLUMNS)
        return Movement(
            credit=abs(deposit) if deposit > 0 else 0.0,
            debit=abs(withdrawal) if withdrawal > 0 else 0.0,
            amount=abs(deposit) + abs(withdrawal),
        )
    amount = abs(row.amount_raw)
    if row.dr_cr == "CR":
        return Movement(credit=amount, amount=amount)
    if row.dr_cr == "DR":
        return Movement(debit=amount, amount=amount)
    return Movement(amount=amount)


def accumulate(stat: AggregateStat, row: CanonicalRow, move: Movement | None = None) -> None:
    """Add ``row`` into ``stat`` in place."""

    m = move if move is not None else movement(row)
    stat.total_transactions += 1
    stat.total_amount = round2(stat.total_amount + m.amount)
    stat.total_credit = round2(stat.total_credit + m.credit)
    stat.total_debit = round2(stat.total_debit + m.debit)
    if row.is_tagged:
        stat.tagged += 1
    else:
        stat.untagged += 1


def account_label(row: CanonicalRow) -> str:
    return f"{row.account_number} - {row.bank_name}"


def aggregate(rows: Iterable[CanonicalRow], group_by: GroupBy | str) -> dict[GroupKey, AggregateStat]:
    """Group ``rows`` and total each group.

    Keys:

    - ``bank``: bank id (label: bank display name);
    - ``account``: ``(bank_id, account_number)`` (label ``"<account> - <bank>"``);
    - ``tag``: tag id (label: tag name). A row with several tags counts in
      each of them, so tag totals may exceed the ungrouped totals; untagged
      rows do not appear.

    Insertion order follows first appearance in ``rows``.
    """

    group = GroupBy(group_by)
    out: dict[GroupKey, AggregateStat] = {}
    count = 0
    for row in rows:
        count += 1
        m = movement(row)
        if group is GroupBy.BANK:
            stat = out.get(row.bank_id)
            if stat is None:
                stat = out[row.bank_id] = AggregateStat(label=row.bank_name)
            accumulate(stat, row, m)
        elif group is GroupBy.ACCOUNT:
            key = (row.bank_id, row.account_number)
            stat = out.get(key)
            if stat is None:
                stat = out[key] = AggregateStat(label=account_label(row))
            accumulate(stat, row, m)
        else:
            for tag in row.tags:
                stat = out.get(tag.id)
                if stat is None:
                    stat = out[tag.id] = AggregateStat(label=tag.name)
                accumulate(stat, row, m)
    _logger.debug("aggregate:grouped by=%s rows=%d groups=%d", group.value, count, len(out))
    return out


def totals(rows: Iterable[CanonicalRow], label: str = "All") -> AggregateStat:
    """Ungrouped totals over ``rows``."""

    stat = AggregateStat(label=label)
    for row in rows:
        accumulate(stat, row)
    return stat


__all__ = ["GroupBy", "GroupKey", "Movement", "account_label", "accumulate", "aggregate", "movement", "totals"]
