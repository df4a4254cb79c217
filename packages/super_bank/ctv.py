"""Canonical row model for the unified Super Bank view.

A :class:`CanonicalRow` is derived from one raw transaction and its bank's
field mapping; it is never persisted as a source of truth. The configurable
``super_header`` columns live in ``values``; identity, amount, direction and
tags are typed attributes so the filter and aggregation passes never probe
arbitrary keys.

The :meth:`CanonicalRow.get` accessor is total: unknown columns read as
``""``.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from .models import Scalar, Tag


class CanonicalField(StrEnum):
    """Well-known canonical column names."""

    DATE = "Date"
    DESCRIPTION = "Description"
    REFERENCE = "Reference No."
    AMOUNT = "Amount"
    DR_CR = "Dr./Cr."
    BALANCE = "Balance"
    TAGS = "Tags"


DEFAULT_SUPER_HEADER: tuple[str, ...] = (
    CanonicalField.DATE,
    CanonicalField.DESCRIPTION,
    CanonicalField.REFERENCE,
    CanonicalField.AMOUNT,
    CanonicalField.DR_CR,
    CanonicalField.BALANCE,
    CanonicalField.TAGS,
)

# Column names exposed by ``CanonicalRow.get`` besides the header columns.
AMOUNT_RAW = "AmountRaw"
BANK_NAME = "bankName"
ACCOUNT_NUMBER = "accountNumber"


@dataclass(frozen=True, slots=True)
class CanonicalRow:
    """One transaction in the shared, bank-independent schema.

    ``amount_raw`` is finite and non-negative (``0.0`` when unparsable);
    direction is carried by ``dr_cr`` (``"CR"``, ``"DR"`` or ``""``).
    ``raw`` keeps the source record for bank-specific fallbacks (separate
    deposit/withdrawal columns) and is excluded from search and export.
    """

    id: str
    bank_id: str
    account_id: str
    statement_id: str
    account_number: str
    bank_name: str
    amount_raw: float
    amount: str
    dr_cr: str
    tags: tuple[Tag, ...] = ()
    values: Mapping[str, Scalar] = field(default_factory=dict)
    raw: Mapping[str, Any] = field(default_factory=dict, repr=False, compare=False)

    def get(self, column: str) -> Scalar:
        """Return the display value for ``column`` (``""`` when absent)."""

        if column == CanonicalField.AMOUNT:
            return self.amount
        if column == CanonicalField.DR_CR:
            return self.dr_cr
        if column == CanonicalField.TAGS:
            return ", ".join(t.name for t in self.tags)
        if column in self.values:
            return self.values[column]
        match column:
            case "id":
                return self.id
            case "bankId":
                return self.bank_id
            case "accountId":
                return self.account_id
            case "statementId":
                return self.statement_id
            case "accountNumber":
                return self.account_number
            case "bankName":
                return self.bank_name
            case "AmountRaw":
                return self.amount_raw
        return ""

    def scalar_items(self) -> Iterator[tuple[str, Scalar]]:
        """Yield every searchable ``(column, value)`` pair (tags excluded)."""

        yield "id", self.id
        yield "bankId", self.bank_id
        yield "accountId", self.account_id
        yield "statementId", self.statement_id
        yield ACCOUNT_NUMBER, self.account_number
        yield BANK_NAME, self.bank_name
        yield CanonicalField.AMOUNT.value, self.amount
        yield CanonicalField.DR_CR.value, self.dr_cr
        for k, v in self.values.items():
            if k not in (CanonicalField.AMOUNT, CanonicalField.DR_CR):
                yield k, v

    @property
    def tag_names(self) -> tuple[str, ...]:
        return tuple(t.name for t in self.tags)

    @property
    def is_tagged(self) -> bool:
        return len(self.tags) > 0


__all__ = [
    "ACCOUNT_NUMBER",
    "AMOUNT_RAW",
    "BANK_NAME",
    "DEFAULT_SUPER_HEADER",
    "CanonicalField",
    "CanonicalRow",
]
