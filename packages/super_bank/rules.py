"""Per-bank field rule evaluation.

Rules are configuration, not code: every bank-specific difference (a single
signed ``Amount`` column vs. separate deposit/withdrawal columns, a ``Type``
column vs. a ``Dr./Cr.`` column) lives in the bank's
:class:`~super_bank.models.BankFieldMapping`. :func:`resolve_field` applies
three tiers, first success wins:

1. conditions, in order, whose ``then`` defines the field;
2. the direct ``mapping`` entry;
3. the raw field of the same name.

Nothing here raises on malformed rules or records; a gap simply falls
through to the next tier.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from typing import Any

from .logging_setup import get_logger
from .models import (
    BankFieldMapping,
    Condition,
    ConditionOp,
    FieldRef,
    LiteralValue,
    Scalar,
    ThenValue,
    is_scalar,
)

_logger = get_logger("super_bank.rules")


def _as_trimmed_str(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _as_finite_number(s: str) -> float | None:
    # float() accepts digit separators ("1_000"); statement values never do.
    if not s or "_" in s:
        return None
    try:
        n = float(s)
    except ValueError:
        return None
    return n if math.isfinite(n) else None


def evaluate_condition(row: Mapping[str, Any], condition: Condition) -> bool:
    """Return whether ``condition.if`` holds for ``row``.

    Both sides are compared as trimmed strings. When both also read as finite
    numbers, comparisons are numeric; otherwise ``==``/``!=`` are exact
    (case-sensitive) string comparisons and the ordering operators never
    match.
    """

    op = condition.operator
    if op is None:
        _logger.debug("rules:unknown_operator op=%r field=%s", condition.when.op, condition.when.field)
        return False

    val_s = _as_trimmed_str(row.get(condition.when.field))
    if op is ConditionOp.PRESENT:
        return val_s != ""
    if op is ConditionOp.NOT_PRESENT:
        return val_s == ""

    cmp_s = _as_trimmed_str(condition.when.value)
    val_n = _as_finite_number(val_s)
    cmp_n = _as_finite_number(cmp_s)
    numeric = val_n is not None and cmp_n is not None

    if op is ConditionOp.EQ:
        return val_n == cmp_n if numeric else val_s == cmp_s
    if op is ConditionOp.NE:
        return val_n != cmp_n if numeric else val_s != cmp_s
    if not numeric:
        return False
    assert val_n is not None and cmp_n is not None
    match op:
        case ConditionOp.GE:
            return val_n >= cmp_n
        case ConditionOp.LE:
            return val_n <= cmp_n
        case ConditionOp.GT:
            return val_n > cmp_n
        case ConditionOp.LT:
            return val_n < cmp_n
    return False  # pragma: no cover - enum is exhaustive


def resolve_then(row: Mapping[str, Any], then: ThenValue) -> Scalar | None:
    """Resolve a matched ``then`` value against ``row`` (one level only)."""

    if isinstance(then, LiteralValue):
        return then.value
    if isinstance(then, FieldRef):
        if then.name in row:
            v = row[then.name]
            return v if is_scalar(v) else None
        return then.name if then.literal_fallback else None
    return None  # pragma: no cover - closed variant


def resolve_field(
    row: Mapping[str, Any],
    mapping: BankFieldMapping | None,
    canonical_field: str,
) -> Scalar | None:
    """Resolve ``canonical_field`` for a raw ``row`` using its bank's rules.

    Returns ``None`` when no tier yields a scalar value.
    """

    if mapping is not None:
        for cond in mapping.conditions:
            then = cond.then.get(canonical_field)
            if then is None:
                continue
            if evaluate_condition(row, cond):
                return resolve_then(row, then)

        raw_field = mapping.mapping.get(canonical_field)
        if raw_field and raw_field in row:
            v = row[raw_field]
            return v if is_scalar(v) else None

    if canonical_field in row:
        v = row[canonical_field]
        return v if is_scalar(v) else None
    return None


__all__ = ["evaluate_condition", "resolve_field", "resolve_then"]
