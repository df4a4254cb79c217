"""Raw transaction → :class:`~super_bank.ctv.CanonicalRow` normalization.

Every bank exports its own columns; the bank's
:class:`~super_bank.models.BankFieldMapping` resolves each ``super_header``
column through :func:`super_bank.rules.resolve_field`. A handful of columns
get dedicated treatment:

- ``Tags``: the list found on the raw key containing ``"tag"``, resolved
  through the tag vocabulary;
- date-like columns: normalized to ISO ``YYYY-MM-DD`` (epoch sentinel when
  unreadable);
- ``Amount``: parsed to an absolute float (``AmountRaw``) and formatted for
  display;
- ``Description``: probed across the usual narration aliases.

Row building never raises; gaps become ``""`` / ``0.0`` / the date sentinel.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping, Sequence
from typing import Any

from .amounts import Grouping, format_amount, parse_amount
from .bulk_tags import TAGS_KEY
from .ctv import CanonicalField, CanonicalRow
from .dates import is_date_column, to_iso_date
from .logging_setup import get_logger
from .models import BankFieldMapping, Scalar, Tag, is_scalar
from .rules import resolve_field

_logger = get_logger("super_bank.normalizers")

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

_DESCRIPTION_ALIASES: tuple[str, ...] = (
    "Description",
    "description",
    "Narration",
    "narration",
    "Transaction Description",
    "transaction description",
    "Particulars",
    "particulars",
    "Reference",
    "reference",
    "Reference No.",
    "reference no.",
    "Remarks",
    "remarks",
)

_ACCOUNT_NUMBER_KEYS: tuple[str, ...] = ("accountNumber", "accountNo", "account", "userAccountNumber")


def _str_field(tx: Mapping[str, Any], key: str) -> str:
    v = tx.get(key)
    if v is None or isinstance(v, bool):
        return ""
    return str(v) if is_scalar(v) else ""


def _tag_column(tx: Mapping[str, Any]) -> str | None:
    if TAGS_KEY in tx:
        return TAGS_KEY
    for key, value in tx.items():
        if "tag" in str(key).lower() and isinstance(value, Sequence) and not isinstance(value, str):
            return key
    return None


def _resolve_tags(raw: Any, tags_by_id: Mapping[str, Tag] | None) -> tuple[Tag, ...]:
    """Resolve stored tag references (ids, ``{id, name}`` objects or names).

    With a vocabulary, references are looked up by id, then by name
    (case-insensitive); unknown references are dropped. Without one, only
    complete tag objects can be used.
    """

    if not isinstance(raw, Sequence) or isinstance(raw, str):
        return ()
    by_name: dict[str, Tag] = {}
    if tags_by_id is not None:
        by_name = {t.name.casefold(): t for t in tags_by_id.values()}

    out: list[Tag] = []
    seen: set[str] = set()
    for ref in raw:
        tag: Tag | None = None
        if isinstance(ref, Tag):
            tag = tags_by_id.get(ref.id, ref) if tags_by_id is not None else ref
        elif isinstance(ref, Mapping):
            ref_id = ref.get("id")
            if tags_by_id is not None:
                tag = tags_by_id.get(str(ref_id)) if ref_id is not None else None
                if tag is None and isinstance(ref.get("name"), str):
                    tag = by_name.get(ref["name"].strip().casefold())
            else:
                try:
                    tag = Tag.model_validate(ref)
                except ValueError:
                    tag = None
        elif isinstance(ref, str) and tags_by_id is not None:
            tag = tags_by_id.get(ref) or by_name.get(ref.strip().casefold())
        if tag is None:
            _logger.debug("normalize:tag_dropped ref=%r", ref)
            continue
        if tag.id not in seen:
            seen.add(tag.id)
            out.append(tag)
    return tuple(out)


def description_of(tx: Mapping[str, Any], mapping: BankFieldMapping | None = None) -> str:
    """First non-empty narration-like value (mapped column first, then raw)."""

    direct = mapping.mapping if mapping is not None else {}
    for alias in _DESCRIPTION_ALIASES:
        v = tx.get(direct.get(alias) or alias)
        if isinstance(v, str) and v.strip():
            return v.strip()
    for alias in _DESCRIPTION_ALIASES:
        v = tx.get(alias)
        if isinstance(v, str) and v.strip():
            return v.strip()
    return ""


def normalize_dr_cr(value: Any) -> str:
    """Normalize a resolved direction value to ``"CR"``, ``"DR"`` or ``""``.

    Only the explicit indicator counts: the sign of the amount is never used
    to infer a direction.
    """

    if value is None or not is_scalar(value):
        return ""
    s = str(value).strip().upper()
    if s in ("CR", "CREDIT"):
        return "CR"
    if s in ("DR", "DEBIT"):
        return "DR"
    return ""


def _account_number(tx: Mapping[str, Any]) -> str:
    for key in _ACCOUNT_NUMBER_KEYS:
        s = _str_field(tx, key)
        if s:
            return s
    return _str_field(tx, "accountId")


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def build_row(
    tx: Mapping[str, Any],
    mapping: BankFieldMapping | None,
    super_header: Sequence[str],
    *,
    bank_names: Mapping[str, str] | None = None,
    tags_by_id: Mapping[str, Tag] | None = None,
    grouping: Grouping | str = Grouping.INDIAN,
) -> CanonicalRow:
    """Build the canonical row for one raw transaction.

    ``mapping`` may be ``None`` (unknown bank): every column then falls back
    to the raw field of the same name.
    """

    bank_id = _str_field(tx, "bankId")
    values: dict[str, Scalar] = {}
    amount_raw = abs(parse_amount(resolve_field(tx, mapping, CanonicalField.AMOUNT)))
    tags: tuple[Tag, ...] = ()

    for column in super_header:
        if column == CanonicalField.TAGS:
            tag_col = _tag_column(tx)
            tags = _resolve_tags(tx.get(tag_col), tags_by_id) if tag_col is not None else ()
        elif column in (CanonicalField.AMOUNT, CanonicalField.DR_CR):
            # Typed attributes on the row; see below.
            continue
        elif column == CanonicalField.DESCRIPTION:
            values[column] = description_of(tx, mapping)
        elif is_date_column(column):
            values[column] = to_iso_date(resolve_field(tx, mapping, column))
        else:
            v = resolve_field(tx, mapping, column)
            values[column] = v if v is not None else ""

    if CanonicalField.TAGS not in super_header:
        # Tags are always carried so tag filters and grouping keep working.
        tag_col = _tag_column(tx)
        tags = _resolve_tags(tx.get(tag_col), tags_by_id) if tag_col is not None else ()

    names = bank_names or {}
    return CanonicalRow(
        id=_str_field(tx, "id"),
        bank_id=bank_id,
        account_id=_str_field(tx, "accountId"),
        statement_id=_str_field(tx, "statementId"),
        account_number=_account_number(tx),
        bank_name=names.get(bank_id) or bank_id,
        amount_raw=amount_raw,
        amount=format_amount(amount_raw, grouping),
        dr_cr=normalize_dr_cr(resolve_field(tx, mapping, CanonicalField.DR_CR)),
        tags=tags,
        values=values,
        raw=tx,
    )


def iter_rows(
    transactions: Iterable[Mapping[str, Any]],
    mappings: Mapping[str, BankFieldMapping],
    super_header: Sequence[str],
    *,
    bank_names: Mapping[str, str] | None = None,
    tags_by_id: Mapping[str, Tag] | None = None,
    grouping: Grouping | str = Grouping.INDIAN,
) -> Iterator[CanonicalRow]:
    for tx in transactions:
        yield build_row(
            tx,
            mappings.get(_str_field(tx, "bankId")),
            super_header,
            bank_names=bank_names,
            tags_by_id=tags_by_id,
            grouping=grouping,
        )


def build_rows(
    transactions: Iterable[Mapping[str, Any]],
    mappings: Mapping[str, BankFieldMapping],
    super_header: Sequence[str],
    *,
    bank_names: Mapping[str, str] | None = None,
    tags_by_id: Mapping[str, Tag] | None = None,
    grouping: Grouping | str = Grouping.INDIAN,
) -> list[CanonicalRow]:
    """Build canonical rows for ``transactions``, preserving input order.

    ``mappings`` is keyed by bank id; transactions from banks without a
    mapping still produce rows via the identity fallback.
    """

    rows = list(
        iter_rows(
            transactions,
            mappings,
            super_header,
            bank_names=bank_names,
            tags_by_id=tags_by_id,
            grouping=grouping,
        )
    )
    _logger.debug("normalize:built rows=%d header=%d", len(rows), len(super_header))
    return rows


__all__ = ["build_row", "build_rows", "description_of", "iter_rows", "normalize_dr_cr"]
