"""The Super Bank read-path entry point.

A :class:`SuperBankSession` carries everything the view needs explicitly:
the unified header, per-bank mappings and display names, the tag vocabulary
and the in-memory transaction set. Rows are rebuilt from the transactions on
demand, so tag changes made through :meth:`SuperBankSession.bulk_operation`
show up in the next :meth:`SuperBankSession.rows` call.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field

from .aggregate import GroupBy, GroupKey, aggregate, totals
from .amounts import Grouping
from .bulk_tags import BulkTagOperation
from .config import Settings
from .ctv import DEFAULT_SUPER_HEADER, CanonicalRow
from .filters import apply_filters
from .ingest import IngestionResult, ingest_transactions
from .logging_setup import get_logger
from .models import AggregateStat, BankFieldMapping, FilterCriteria, RawTransaction, Tag
from .normalizers import build_rows
from .reports import Overview, TagSummary, overview, tags_summary
from .stores import BulkUpdateSink, Stores

_logger = get_logger("super_bank.session")


@dataclass(slots=True)
class SuperBankSession:
    super_header: tuple[str, ...] = DEFAULT_SUPER_HEADER
    mappings: Mapping[str, BankFieldMapping] = field(default_factory=dict)
    bank_names: Mapping[str, str] = field(default_factory=dict)
    tags: list[Tag] = field(default_factory=list)
    transactions: list[RawTransaction] = field(default_factory=list)
    grouping: Grouping = Grouping.INDIAN

    @property
    def tags_by_id(self) -> dict[str, Tag]:
        return {t.id: t for t in self.tags}

    @property
    def transactions_by_id(self) -> dict[str, RawTransaction]:
        """Live view keyed by id; values are the same objects as in ``transactions``."""

        return {str(tx["id"]): tx for tx in self.transactions if tx.get("id") is not None}

    def add_transaction(self, tx: RawTransaction) -> None:
        self.transactions.append(tx)

    def set_tags(self, tags: Iterable[Tag]) -> None:
        self.tags = list(tags)

    # ---- read path --------------------------------------------------------

    def rows(self) -> list[CanonicalRow]:
        return build_rows(
            self.transactions,
            self.mappings,
            self.super_header,
            bank_names=self.bank_names,
            tags_by_id=self.tags_by_id,
            grouping=self.grouping,
        )

    def filtered(self, criteria: FilterCriteria | None = None) -> list[CanonicalRow]:
        return apply_filters(self.rows(), criteria)

    def aggregate(
        self, group_by: GroupBy | str, criteria: FilterCriteria | None = None
    ) -> dict[GroupKey, AggregateStat]:
        return aggregate(self.filtered(criteria), group_by)

    def totals(self, criteria: FilterCriteria | None = None) -> AggregateStat:
        return totals(self.filtered(criteria))

    def overview(self, criteria: FilterCriteria | None = None) -> Overview:
        return overview(self.filtered(criteria))

    def tags_summary(self, criteria: FilterCriteria | None = None) -> list[TagSummary]:
        return tags_summary(self.filtered(criteria), self.tags)

    # ---- write path -------------------------------------------------------

    def bulk_operation(self, sink: BulkUpdateSink) -> BulkTagOperation:
        """A bulk tag operation writing through ``sink`` into this session's transactions."""

        return BulkTagOperation(self.transactions_by_id, sink, bank_names=self.bank_names)


@dataclass(frozen=True, slots=True)
class LoadedSession:
    session: SuperBankSession
    ingestion: IngestionResult


def load_session(
    stores: Stores,
    *,
    user_id: str,
    settings: Settings,
    cancel: threading.Event | None = None,
) -> LoadedSession:
    """Fetch mappings, names and tags once, then ingest the user's transactions.

    Transport failures while ingesting propagate as
    :class:`~super_bank.errors.IngestionError`; cancellation returns the
    partially loaded session with a ``CANCELLED`` ingestion status.
    """

    mappings = stores.banks.load_mappings()
    names = stores.banks.load_bank_names()
    stored_header: Sequence[str] | None = stores.banks.load_super_header()
    session = SuperBankSession(
        super_header=settings.resolve_header(list(stored_header) if stored_header else None),
        mappings=mappings,
        bank_names=names,
        tags=stores.tags.list_tags(),
        grouping=settings.grouping,
    )
    result = ingest_transactions(
        stores.transactions,
        user_id=user_id,
        on_transaction=session.add_transaction,
        cancel=cancel,
        max_retries=settings.ingest_max_retries,
        retry_delay=settings.ingest_retry_delay,
    )
    _logger.info(
        "session:loaded user=%s banks=%d tags=%d transactions=%d status=%s",
        user_id,
        len(mappings),
        len(session.tags),
        len(session.transactions),
        result.status.value,
    )
    return LoadedSession(session=session, ingestion=result)


__all__ = ["LoadedSession", "SuperBankSession", "load_session"]
