"""Public interface for the ``super_bank`` package.

This module exposes the engine's entry points and public models/types as the
stable import surface. There is no runtime logic here, only symbol
re-exports. The SQL stores live in :mod:`super_bank.persistence` and are not
imported here so the pure engine stays usable without a database.
"""

from .aggregate import GroupBy, aggregate, totals
from .amounts import Grouping, format_amount, parse_amount
from .bulk_tags import BulkState, BulkTagOperation
from .config import Settings
from .ctv import DEFAULT_SUPER_HEADER, CanonicalField, CanonicalRow
from .dates import EPOCH_SENTINEL, to_iso_date
from .errors import (
    IngestionError,
    InvalidTagNameError,
    SuperBankError,
    TagConflictError,
    TagNotFoundError,
    TransportError,
)
from .filters import apply_filters, sort_rows
from .ingest import IngestionResult, IngestionStatus, decode_feed, ingest_transactions
from .models import (
    AggregateStat,
    BankFieldMapping,
    BulkTagRequest,
    BulkTagResult,
    Condition,
    DateRange,
    FilterCriteria,
    RawTransaction,
    Tag,
)
from .normalizers import build_row, build_rows
from .reports import export_table, overview, tags_summary
from .rules import evaluate_condition, resolve_field
from .session import SuperBankSession, load_session
from .stores import Stores
from .tags import CreateTagResult, normalize_name, pick_color, validate_name

__all__ = [
    # Engine
    "apply_filters",
    "aggregate",
    "build_row",
    "build_rows",
    "decode_feed",
    "evaluate_condition",
    "export_table",
    "format_amount",
    "ingest_transactions",
    "load_session",
    "normalize_name",
    "overview",
    "parse_amount",
    "pick_color",
    "resolve_field",
    "sort_rows",
    "tags_summary",
    "to_iso_date",
    "totals",
    "validate_name",
    # Models / types
    "AggregateStat",
    "BankFieldMapping",
    "BulkState",
    "BulkTagOperation",
    "BulkTagRequest",
    "BulkTagResult",
    "CanonicalField",
    "CanonicalRow",
    "Condition",
    "CreateTagResult",
    "DateRange",
    "DEFAULT_SUPER_HEADER",
    "EPOCH_SENTINEL",
    "FilterCriteria",
    "GroupBy",
    "Grouping",
    "IngestionResult",
    "IngestionStatus",
    "RawTransaction",
    "Settings",
    "Stores",
    "SuperBankSession",
    "Tag",
    # Errors
    "IngestionError",
    "InvalidTagNameError",
    "SuperBankError",
    "TagConflictError",
    "TagNotFoundError",
    "TransportError",
]
