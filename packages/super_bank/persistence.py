"""SQLAlchemy implementations of the store protocols.

Tables are owned by ``libs/db`` (``db.models.superbank``); sessions come from
``db.client.session_scope``. Each store method runs in its own short
transaction.

Scope:
- ``SqlBankMappingStore``: bank field mappings, display names, stored header.
- ``SqlTagStore``: the per-user tag vocabulary.
- ``SqlTransactionSource``: streams a user's transactions as feed events.
- ``SqlBulkUpdateSink``: replaces tag lists, reporting per-transaction failures.
- ``upsert_transactions`` / ``save_bank``: import helpers used by the CLI.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterable, Iterator, Mapping, Sequence
from contextlib import contextmanager
from typing import Any

from db.client import session_scope
from db.models.superbank import SbBank, SbTag, SbTransaction
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from .bulk_tags import tag_ids_of
from .errors import TagConflictError, TagNotFoundError, TransportError
from .ingest import CompleteEvent, FeedEvent, ProgressEvent, StatusEvent, TransactionEvent
from .logging_setup import get_logger
from .models import BankFieldMapping, BulkFailure, BulkTagRequest, BulkTagResult, Tag
from .normalizers import description_of
from .tags import CreateTagResult, pick_color, require_valid_name

_logger = get_logger("super_bank.persistence")

# The unified header is stored as a pseudo-bank entry under this name.
SUPER_BANK_NAME = "SUPER BANK"

_IDENTITY_KEYS = ("id", "userId", "bankId", "accountId", "statementId", "tags")


def _norm_str(v: Any) -> str | None:
    if v is None:
        return None
    s = str(v).strip()
    return s if s else None


def _tag_from_row(row: SbTag) -> Tag:
    return Tag(id=row.id, name=row.name, color=row.color)


@contextmanager
def _store_scope(database_url: str | None, what: str) -> Iterator[Session]:
    """``session_scope`` with database failures surfaced as :class:`TransportError`."""

    try:
        with session_scope(database_url=database_url) as session:
            yield session
    except SQLAlchemyError as e:
        raise TransportError(f"{what} failed: {e}") from e


# ---------------------------------------------------------------------------
# Import helpers
# ---------------------------------------------------------------------------


def save_bank(
    session: Session,
    *,
    bank_id: str,
    bank_name: str,
    header: Sequence[str] = (),
    mapping: Mapping[str, str] | None = None,
    conditions: Sequence[Mapping[str, Any]] = (),
) -> None:
    """Insert or replace a bank's mapping. Conditions are validated first."""

    validated = BankFieldMapping.model_validate(
        {"header": list(header), "mapping": dict(mapping or {}), "conditions": list(conditions)}
    )
    if len(validated.conditions) != len(conditions):
        raise ValueError(f"bank {bank_name!r}: {len(conditions) - len(validated.conditions)} invalid condition(s)")

    row = session.get(SbBank, bank_id)
    if row is None:
        row = SbBank(id=bank_id, bank_name=bank_name)
        session.add(row)
    row.bank_name = bank_name
    row.header = list(header)
    row.mapping = dict(mapping or {})
    row.conditions = [dict(c) for c in conditions]
    session.flush()


def upsert_transactions(
    session: Session,
    *,
    user_id: str,
    bank_id: str,
    records: Iterable[Mapping[str, Any]],
    account_id: str | None = None,
    statement_id: str | None = None,
) -> int:
    """Insert or update raw transactions for ``bank_id``; returns rows written.

    Identity keys (``id``, ``accountId``, ``statementId``, ``tags``) are
    lifted out of the record; everything else is stored verbatim in
    ``raw_record``. Records without an ``id`` get a fresh UUID. Existing rows
    keep their tags unless the record carries a tag list.
    """

    if session.get(SbBank, bank_id) is None:
        raise ValueError(f"unknown bank id: {bank_id!r}")

    written = 0
    for rec in records:
        tx_id = _norm_str(rec.get("id")) or str(uuid.uuid4())
        raw = {k: v for k, v in rec.items() if k not in _IDENTITY_KEYS}
        acct = _norm_str(rec.get("accountId")) or account_id
        stmt = _norm_str(rec.get("statementId")) or statement_id
        desc = description_of(raw) or None

        row = session.get(SbTransaction, tx_id)
        if row is None:
            row = SbTransaction(
                id=tx_id,
                user_id=user_id,
                bank_id=bank_id,
                tags=tag_ids_of(rec.get("tags")),
                raw_record=raw,
            )
            session.add(row)
        else:
            if row.user_id != user_id:
                raise ValueError(f"transaction {tx_id!r} belongs to another user")
            row.raw_record = raw
            row.bank_id = bank_id
            row.updated_at = func.now()
            if "tags" in rec:
                row.tags = tag_ids_of(rec.get("tags"))
        row.account_id = acct
        row.statement_id = stmt
        row.description = desc
        written += 1

    session.flush()
    _logger.info("persist:upsert bank=%s rows=%d", bank_id, written)
    return written


# ---------------------------------------------------------------------------
# Bank mappings
# ---------------------------------------------------------------------------


class SqlBankMappingStore:
    """Loads every bank once; later calls return the cached values."""

    def __init__(self, *, database_url: str | None = None) -> None:
        self._database_url = database_url
        self._mappings: dict[str, BankFieldMapping] | None = None
        self._names: dict[str, str] | None = None
        self._super_header: list[str] | None = None

    def _load(self) -> None:
        if self._mappings is not None:
            return
        mappings: dict[str, BankFieldMapping] = {}
        names: dict[str, str] = {}
        super_header: list[str] | None = None
        try:
            with session_scope(database_url=self._database_url) as session:
                for bank in session.execute(select(SbBank).order_by(SbBank.bank_name)).scalars():
                    if bank.bank_name == SUPER_BANK_NAME:
                        super_header = [str(h) for h in bank.header or []]
                        continue
                    mappings[bank.id] = BankFieldMapping.model_validate(
                        {"header": bank.header, "mapping": bank.mapping, "conditions": bank.conditions}
                    )
                    names[bank.id] = bank.bank_name
        except SQLAlchemyError as e:
            raise TransportError(f"failed to load bank mappings: {e}") from e
        self._mappings, self._names, self._super_header = mappings, names, super_header
        _logger.debug("banks:loaded count=%d", len(mappings))

    def load_mappings(self) -> Mapping[str, BankFieldMapping]:
        self._load()
        assert self._mappings is not None
        return self._mappings

    def load_bank_names(self) -> Mapping[str, str]:
        self._load()
        assert self._names is not None
        return self._names

    def load_super_header(self) -> Sequence[str] | None:
        self._load()
        return self._super_header


# ---------------------------------------------------------------------------
# Tags
# ---------------------------------------------------------------------------


class SqlTagStore:
    """Per-user tag vocabulary with case-insensitive unique names."""

    def __init__(self, user_id: str, *, database_url: str | None = None) -> None:
        self.user_id = user_id
        self._database_url = database_url

    def _by_name(self, session: Session, name: str) -> SbTag | None:
        return (
            session.execute(
                select(SbTag).where(
                    SbTag.user_id == self.user_id, func.lower(SbTag.name) == name.lower()
                )
            )
            .scalars()
            .first()
        )

    def _get(self, session: Session, tag_id: str) -> SbTag:
        row = session.get(SbTag, tag_id)
        if row is None or row.user_id != self.user_id:
            raise TagNotFoundError(tag_id)
        return row

    def list_tags(self) -> list[Tag]:
        with _store_scope(self._database_url, "listing tags") as session:
            rows = (
                session.execute(
                    select(SbTag).where(SbTag.user_id == self.user_id).order_by(func.lower(SbTag.name))
                )
                .scalars()
                .all()
            )
            return [_tag_from_row(r) for r in rows]

    def create_tag(self, name: str, color: str | None = None) -> CreateTagResult:
        """Create ``name`` unless a case-insensitive duplicate exists.

        Returns the existing tag with ``created=False`` on a duplicate. When
        ``color`` is omitted the first unused palette colour is assigned.
        """

        n = require_valid_name(name)
        with _store_scope(self._database_url, "creating tag") as session:
            existing = self._by_name(session, n)
            if existing is not None:
                return CreateTagResult(tag=_tag_from_row(existing), created=False)

            if not color:
                rows = session.execute(select(SbTag).where(SbTag.user_id == self.user_id)).scalars()
                color = pick_color(_tag_from_row(r) for r in rows)
            row = SbTag(id=str(uuid.uuid4()), user_id=self.user_id, name=n, color=color)
            try:
                session.add(row)
                session.flush()
            except IntegrityError:  # pragma: no cover - concurrent insert of the same name
                session.rollback()
                existing = self._by_name(session, n)
                if existing is None:
                    raise
                return CreateTagResult(tag=_tag_from_row(existing), created=False)
            _logger.info("tags:created id=%s name=%s", row.id, n)
            return CreateTagResult(tag=_tag_from_row(row), created=True)

    def update_tag(self, tag_id: str, *, name: str | None = None, color: str | None = None) -> Tag:
        """Rename and/or recolour a tag.

        Raises
        ------
        TagConflictError
            When another tag already uses ``name`` (case-insensitive).
        TagNotFoundError
            When ``tag_id`` is not one of this user's tags.
        """

        with _store_scope(self._database_url, "updating tag") as session:
            row = self._get(session, tag_id)
            if name is not None:
                n = require_valid_name(name)
                other = self._by_name(session, n)
                if other is not None and other.id != row.id:
                    raise TagConflictError(_tag_from_row(other))
                row.name = n
            if color is not None:
                row.color = color or None
            session.flush()
            return _tag_from_row(row)

    def delete_tag(self, tag_id: str) -> int:
        """Delete the tag and remove its id from every transaction of this user."""

        with _store_scope(self._database_url, "deleting tag") as session:
            row = self._get(session, tag_id)
            session.delete(row)
            touched = 0
            txs = session.execute(
                select(SbTransaction).where(SbTransaction.user_id == self.user_id)
            ).scalars()
            for tx in txs:
                ids = tag_ids_of(tx.tags)
                if tag_id in ids:
                    tx.tags = [t for t in ids if t != tag_id]
                    tx.updated_at = func.now()
                    touched += 1
            _logger.info("tags:deleted id=%s transactions=%d", tag_id, touched)
            return touched


# ---------------------------------------------------------------------------
# Transaction feed
# ---------------------------------------------------------------------------


def _record_of(row: SbTransaction) -> dict[str, Any]:
    rec: dict[str, Any] = dict(row.raw_record or {})
    rec["id"] = row.id
    rec["userId"] = row.user_id
    rec["bankId"] = row.bank_id
    if row.account_id is not None:
        rec["accountId"] = row.account_id
    if row.statement_id is not None:
        rec["statementId"] = row.statement_id
    rec["tags"] = tag_ids_of(row.tags)
    return rec


class SqlTransactionSource:
    """Streams a user's transactions bank by bank in batches."""

    def __init__(self, *, database_url: str | None = None, batch_size: int = 250) -> None:
        if batch_size <= 0:
            raise ValueError("batch_size must be positive")
        self._database_url = database_url
        self._batch_size = batch_size

    def stream(self, user_id: str) -> Iterator[FeedEvent]:
        try:
            yield from self._stream(user_id)
        except SQLAlchemyError as e:
            raise TransportError(f"transaction feed failed: {e}") from e

    def _stream(self, user_id: str) -> Iterator[FeedEvent]:
        total = 0
        with session_scope(database_url=self._database_url) as session:
            banks = session.execute(select(SbBank).order_by(SbBank.bank_name)).scalars().all()
            for bank in banks:
                if bank.bank_name == SUPER_BANK_NAME:
                    continue
                stmt = (
                    select(SbTransaction)
                    .where(SbTransaction.user_id == user_id, SbTransaction.bank_id == bank.id)
                    .order_by(SbTransaction.created_at, SbTransaction.id)
                    .execution_options(yield_per=self._batch_size)
                )
                bank_count = 0
                for batch in session.execute(stmt).scalars().partitions():
                    for row in batch:
                        yield TransactionEvent(_record_of(row))
                    bank_count += len(batch)
                    total += len(batch)
                    yield ProgressEvent(bank_name=bank.bank_name, bank_count=bank_count, total_count=total)
                yield StatusEvent(f"Completed {bank.bank_name}: {bank_count} transactions")
        yield CompleteEvent(total)


# ---------------------------------------------------------------------------
# Bulk updates
# ---------------------------------------------------------------------------


class SqlBulkUpdateSink:
    """Replaces tag lists transaction by transaction.

    Unknown (or foreign) transaction ids are reported as per-item failures;
    a database that cannot be reached or committed raises
    :class:`TransportError` for the whole batch.
    """

    def __init__(self, user_id: str, *, database_url: str | None = None) -> None:
        self.user_id = user_id
        self._database_url = database_url

    def bulk_update(self, requests: Sequence[BulkTagRequest]) -> BulkTagResult:
        failed: list[BulkFailure] = []
        successful = 0
        try:
            with session_scope(database_url=self._database_url) as session:
                for req in requests:
                    row = session.get(SbTransaction, req.transaction_id)
                    if row is None or row.user_id != self.user_id:
                        failed.append(BulkFailure(id=req.transaction_id, error="transaction not found"))
                        continue
                    row.tags = list(req.tags)
                    row.updated_at = func.now()
                    successful += 1
        except SQLAlchemyError as e:
            raise TransportError(f"bulk update failed: {e}") from e
        _logger.info("persist:bulk_update requests=%d succeeded=%d failed=%d", len(requests), successful, len(failed))
        return BulkTagResult(successful=successful, failed=tuple(failed))


__all__ = [
    "SUPER_BANK_NAME",
    "SqlBankMappingStore",
    "SqlBulkUpdateSink",
    "SqlTagStore",
    "SqlTransactionSource",
    "save_bank",
    "upsert_transactions",
]
