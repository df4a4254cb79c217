"""Data models and type aliases for ``super_bank``.

Raw transactions are deliberately left as open mappings: every bank exports a
different set of columns, and the per-bank :class:`BankFieldMapping` (data,
not code) is what reconciles them. Wire-facing shapes that arrive as JSON
(tags, bank mappings, bulk-update payloads) are validated with pydantic;
in-process value objects are frozen dataclasses.
"""

from __future__ import annotations

from collections.abc import Mapping, MutableMapping, Sequence
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .logging_setup import get_logger

_logger = get_logger("super_bank.models")

# ---------------------------------------------------------------------------
# Raw records
# ---------------------------------------------------------------------------

type RawTransaction = MutableMapping[str, Any]
"""A single imported transaction: bank-specific columns plus identity fields.

Identity keys are ``id``, ``bankId``, ``accountId`` and ``statementId``. The
tag list lives under ``tags`` and is the only key mutated after ingestion.
"""

type Scalar = str | int | float


def is_scalar(value: Any) -> bool:
    """True for ``str``/``int``/``float`` values (``bool`` excluded)."""

    return isinstance(value, (str, int, float)) and not isinstance(value, bool)


# ---------------------------------------------------------------------------
# Tags
# ---------------------------------------------------------------------------


class Tag(BaseModel):
    """A named, coloured label from the shared tag vocabulary.

    Stored tag documents may carry extra bookkeeping keys (``userId``,
    ``createdAt``); they are ignored here.
    """

    model_config = ConfigDict(frozen=True, extra="ignore", str_strip_whitespace=True)

    id: str
    name: str
    color: str | None = None

    @field_validator("id", "name")
    @classmethod
    def _non_empty(cls, v: str) -> str:
        if not v:
            raise ValueError("must be non-empty")
        return v


# ---------------------------------------------------------------------------
# Bank field mappings and conditions
# ---------------------------------------------------------------------------


class ConditionOp(StrEnum):
    PRESENT = "present"
    NOT_PRESENT = "not_present"
    EQ = "=="
    NE = "!="
    GE = ">="
    LE = "<="
    GT = ">"
    LT = "<"


@dataclass(frozen=True, slots=True)
class LiteralValue:
    """A ``then`` value used verbatim."""

    value: str | int | float


@dataclass(frozen=True, slots=True)
class FieldRef:
    """A ``then`` value naming a raw field whose value is copied.

    ``literal_fallback`` is set for the untyped stored form (a bare string):
    when the record has no such field, the name itself is the value.
    """

    name: str
    literal_fallback: bool = False


type ThenValue = LiteralValue | FieldRef


def _to_then_value(raw: Any) -> ThenValue | None:
    if isinstance(raw, (LiteralValue, FieldRef)):
        return raw
    if isinstance(raw, Mapping):
        if isinstance(raw.get("field"), str):
            return FieldRef(raw["field"])
        if "literal" in raw and is_scalar(raw["literal"]):
            return LiteralValue(raw["literal"])
        return None
    if isinstance(raw, str):
        return FieldRef(raw, literal_fallback=True)
    if is_scalar(raw):
        return LiteralValue(raw)
    return None


class ConditionIf(BaseModel):
    model_config = ConfigDict(extra="ignore")

    field: str
    # Kept as the raw string: an unknown operator is a configuration gap that
    # makes the condition never match rather than a load failure.
    op: str
    value: Any = None

    @field_validator("op", mode="before")
    @classmethod
    def _strip_op(cls, v: Any) -> str:
        return str(v).strip()


class Condition(BaseModel):
    """``{"if": {field, op, value}, "then": {canonical_field: value}}``."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    when: ConditionIf = Field(alias="if")
    then: dict[str, LiteralValue | FieldRef] = Field(default_factory=dict)

    @field_validator("then", mode="before")
    @classmethod
    def _parse_then(cls, v: Any) -> dict[str, ThenValue]:
        if not isinstance(v, Mapping):
            return {}
        out: dict[str, ThenValue] = {}
        for key, raw in v.items():
            parsed = _to_then_value(raw)
            if parsed is not None:
                out[str(key)] = parsed
        return out

    @property
    def operator(self) -> ConditionOp | None:
        try:
            return ConditionOp(self.when.op)
        except ValueError:
            return None


class BankFieldMapping(BaseModel):
    """Per-bank rules resolving canonical fields from raw statement columns.

    ``mapping`` is ``{canonical_field: raw_field}``. ``conditions`` are
    evaluated in order and the first match wins. Invalid condition entries
    are dropped (and logged) at load time.
    """

    model_config = ConfigDict(extra="ignore")

    header: list[str] = Field(default_factory=list)
    mapping: dict[str, str] = Field(default_factory=dict)
    conditions: list[Condition] = Field(default_factory=list)

    @field_validator("header", mode="before")
    @classmethod
    def _clean_header(cls, v: Any) -> list[str]:
        if not isinstance(v, Sequence) or isinstance(v, str):
            return []
        return [str(h) for h in v if h is not None and str(h).strip()]

    @field_validator("mapping", mode="before")
    @classmethod
    def _clean_mapping(cls, v: Any) -> dict[str, str]:
        if not isinstance(v, Mapping):
            return {}
        return {str(k): val for k, val in v.items() if isinstance(val, str) and val.strip()}

    @field_validator("conditions", mode="before")
    @classmethod
    def _clean_conditions(cls, v: Any) -> list[Condition]:
        if not isinstance(v, Sequence) or isinstance(v, str):
            return []
        out: list[Condition] = []
        for pos, raw in enumerate(v):
            try:
                out.append(Condition.model_validate(raw))
            except ValidationError as e:
                _logger.warning(
                    "bank_mapping:condition_dropped position=%d errors=%d", pos, e.error_count()
                )
        return out


# ---------------------------------------------------------------------------
# Filtering
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class DateRange:
    """Inclusive ISO (``YYYY-MM-DD``) bounds; either side may be open."""

    date_from: str | None = None
    date_to: str | None = None

    @property
    def active(self) -> bool:
        return bool(self.date_from or self.date_to)


@dataclass(frozen=True, slots=True)
class FilterCriteria:
    """Filter selection applied to canonical rows.

    All criteria combine with AND, except ``tag_filters`` which matches a row
    carrying *any* of the named tags.
    """

    search: str = ""
    search_field: str = "all"
    date_range: DateRange | None = None
    bank_filter: str = ""
    account_filter: str = ""
    dr_cr_filter: str = ""
    tag_filters: tuple[str, ...] = ()
    tagged_only: bool = False
    untagged_only: bool = False

    def __post_init__(self) -> None:
        if self.tagged_only and self.untagged_only:
            raise ValueError("tagged_only and untagged_only are mutually exclusive")
        if self.dr_cr_filter not in ("", "CR", "DR"):
            raise ValueError("dr_cr_filter must be 'CR', 'DR' or empty")
        # Accept any sequence from callers but keep the value object hashable.
        object.__setattr__(self, "tag_filters", tuple(self.tag_filters))


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class AggregateStat:
    """Grouped totals. ``balance`` is derived on read and never stored."""

    label: str
    total_transactions: int = 0
    total_amount: float = 0.0
    total_credit: float = 0.0
    total_debit: float = 0.0
    tagged: int = 0
    untagged: int = 0

    @property
    def balance(self) -> float:
        return round(self.total_credit - self.total_debit, 2)


# ---------------------------------------------------------------------------
# Bulk tag updates
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class BulkTagRequest:
    transaction_id: str
    tags: tuple[str, ...]
    bank_name: str

    def to_payload(self) -> dict[str, Any]:
        return {
            "transactionId": self.transaction_id,
            "tags": list(self.tags),
            "bankName": self.bank_name,
        }


@dataclass(frozen=True, slots=True)
class BulkFailure:
    id: str
    error: str


@dataclass(frozen=True, slots=True)
class BulkTagResult:
    successful: int
    failed: tuple[BulkFailure, ...] = field(default_factory=tuple)

    @property
    def failed_ids(self) -> tuple[str, ...]:
        return tuple(f.id for f in self.failed)

    def summary(self) -> str:
        return f"{self.successful} succeeded, {len(self.failed)} failed"

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> BulkTagResult:
        """Build from the sink's JSON shape ``{successful, failed: [{id, error}]}``."""

        failed_raw = payload.get("failed") or []
        failed = tuple(
            BulkFailure(id=str(f.get("id")), error=str(f.get("error") or "unknown error"))
            for f in failed_raw
            if isinstance(f, Mapping) and f.get("id") is not None
        )
        successful = payload.get("successful")
        return cls(successful=int(successful) if isinstance(successful, int) else 0, failed=failed)


__all__ = [
    "AggregateStat",
    "BankFieldMapping",
    "BulkFailure",
    "BulkTagRequest",
    "BulkTagResult",
    "Condition",
    "ConditionIf",
    "ConditionOp",
    "DateRange",
    "FieldRef",
    "FilterCriteria",
    "LiteralValue",
    "RawTransaction",
    "Scalar",
    "Tag",
    "ThenValue",
    "is_scalar",
]
