"""Environment-driven settings.

Only the CLI reads the environment (after loading ``.env``); library code
receives a :class:`Settings` instance explicitly.

Variables
---------
- ``SUPER_BANK_DATABASE_URL`` (falls back to ``DATABASE_URL``)
- ``SUPER_BANK_USER_ID``
- ``SUPER_BANK_SUPER_HEADER``: comma-separated column list
- ``SUPER_BANK_AMOUNT_GROUPING``: ``indian`` (default) or ``western``
- ``SUPER_BANK_INGEST_MAX_RETRIES`` (default 3)
- ``SUPER_BANK_INGEST_RETRY_DELAY`` seconds (default 1.0)
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass

from .amounts import Grouping
from .ctv import DEFAULT_SUPER_HEADER


def _int_env(env: Mapping[str, str], key: str, default: int) -> int:
    raw = (env.get(key) or "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{key} must be an integer, got {raw!r}") from None
    if value < 0:
        raise ValueError(f"{key} must be >= 0, got {value}")
    return value


def _float_env(env: Mapping[str, str], key: str, default: float) -> float:
    raw = (env.get(key) or "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ValueError(f"{key} must be a number, got {raw!r}") from None
    if value < 0:
        raise ValueError(f"{key} must be >= 0, got {value}")
    return value


def parse_header(raw: str) -> tuple[str, ...]:
    return tuple(c.strip() for c in raw.split(",") if c.strip())


@dataclass(frozen=True, slots=True)
class Settings:
    database_url: str | None = None
    user_id: str | None = None
    super_header: tuple[str, ...] | None = None
    grouping: Grouping = Grouping.INDIAN
    ingest_max_retries: int = 3
    ingest_retry_delay: float = 1.0

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> Settings:
        """Build settings from ``env`` (default: ``os.environ``).

        Raises ``ValueError`` for malformed numeric values or an unknown
        grouping.
        """

        e = os.environ if env is None else env
        header_raw = (e.get("SUPER_BANK_SUPER_HEADER") or "").strip()
        grouping_raw = (e.get("SUPER_BANK_AMOUNT_GROUPING") or "").strip().lower()
        try:
            grouping = Grouping(grouping_raw) if grouping_raw else Grouping.INDIAN
        except ValueError:
            raise ValueError(
                f"SUPER_BANK_AMOUNT_GROUPING must be 'indian' or 'western', got {grouping_raw!r}"
            ) from None
        return cls(
            database_url=(e.get("SUPER_BANK_DATABASE_URL") or e.get("DATABASE_URL") or "").strip() or None,
            user_id=(e.get("SUPER_BANK_USER_ID") or "").strip() or None,
            super_header=parse_header(header_raw) or None,
            grouping=grouping,
            ingest_max_retries=_int_env(e, "SUPER_BANK_INGEST_MAX_RETRIES", 3),
            ingest_retry_delay=_float_env(e, "SUPER_BANK_INGEST_RETRY_DELAY", 1.0),
        )

    def resolve_header(self, stored: tuple[str, ...] | list[str] | None = None) -> tuple[str, ...]:
        """Configured header, else the stored one, else the default columns."""

        if self.super_header:
            return self.super_header
        if stored:
            return tuple(stored)
        return DEFAULT_SUPER_HEADER


__all__ = ["Settings", "parse_header"]
