"""Exception types raised by ``super_bank``.

Malformed statement data and rule-configuration gaps never raise; they
degrade to safe defaults. What remains are transport failures (which callers
may retry) and tag-vocabulary conflicts (which callers resolve by reusing the
existing tag).
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import Tag


class SuperBankError(Exception):
    """Base class for all package errors."""


class TransportError(SuperBankError):
    """A collaborator (feed, store, bulk sink) could not be reached or dropped."""


class IngestionError(TransportError):
    """Ingestion gave up after exhausting its reconnect attempts."""

    def __init__(self, message: str, *, attempts: int, received: int) -> None:
        super().__init__(message)
        self.attempts = attempts
        self.received = received


class InvalidTagNameError(SuperBankError, ValueError):
    """Tag name failed validation (empty, too long, disallowed characters)."""


class TagConflictError(SuperBankError):
    """A tag with the same case-insensitive name already exists."""

    def __init__(self, existing: Tag) -> None:
        super().__init__(f"tag {existing.name!r} already exists (id={existing.id})")
        self.existing = existing


class TagNotFoundError(SuperBankError, LookupError):
    def __init__(self, tag_id: str) -> None:
        super().__init__(f"tag not found: {tag_id!r}")
        self.tag_id = tag_id


__all__ = [
    "IngestionError",
    "InvalidTagNameError",
    "SuperBankError",
    "TagConflictError",
    "TagNotFoundError",
    "TransportError",
]
