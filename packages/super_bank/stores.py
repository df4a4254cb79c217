"""Narrow interfaces to the backing stores.

The engine only ever talks to these protocols; :mod:`super_bank.persistence`
provides the SQLAlchemy implementations used by the CLI, and tests plug in
in-memory fakes.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping, Sequence
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from .ingest import FeedEvent
from .models import BankFieldMapping, BulkTagRequest, BulkTagResult, Tag
from .tags import CreateTagResult


@runtime_checkable
class TransactionSource(Protocol):
    def stream(self, user_id: str) -> Iterator[FeedEvent]:
        """Yield feed events for ``user_id``; raise ``TransportError`` on a dropped connection."""
        ...


@runtime_checkable
class BankMappingStore(Protocol):
    """Per-bank field mappings and display names, loaded once per instance."""

    def load_mappings(self) -> Mapping[str, BankFieldMapping]: ...

    def load_bank_names(self) -> Mapping[str, str]: ...

    def load_super_header(self) -> Sequence[str] | None:
        """The stored unified header, or ``None`` when none is configured."""
        ...


@runtime_checkable
class TagStore(Protocol):
    def list_tags(self) -> list[Tag]: ...

    def create_tag(self, name: str, color: str | None = None) -> CreateTagResult: ...

    def update_tag(self, tag_id: str, *, name: str | None = None, color: str | None = None) -> Tag: ...

    def delete_tag(self, tag_id: str) -> int:
        """Delete the tag and strip it from every transaction; returns transactions touched."""
        ...


@runtime_checkable
class BulkUpdateSink(Protocol):
    def bulk_update(self, requests: Sequence[BulkTagRequest]) -> BulkTagResult:
        """Replace each transaction's tag list; raise ``TransportError`` if unreachable."""
        ...


@dataclass(frozen=True, slots=True)
class Stores:
    """The collaborators a session needs, bundled for :func:`~super_bank.session.load_session`."""

    transactions: TransactionSource
    banks: BankMappingStore
    tags: TagStore
    sink: BulkUpdateSink


__all__ = ["BankMappingStore", "BulkUpdateSink", "Stores", "TagStore", "TransactionSource"]
