"""Incremental transaction feed consumption.

The transaction source is a stream of :data:`FeedEvent` values, framed on the
wire as ``data: {json}`` lines (see :func:`decode_feed`). Ingestion appends
transactions as they arrive, survives dropped connections with a bounded
number of fixed-delay reconnects, and stops promptly when cancelled.

Cancellation is a result status, never an exception and never retried.
Transport failures raise :class:`~super_bank.errors.IngestionError` once
reconnects are exhausted.
"""

from __future__ import annotations

import json
import threading
from collections.abc import Callable, Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Protocol

from .errors import IngestionError, TransportError
from .logging_setup import get_logger
from .models import RawTransaction

_logger = get_logger("super_bank.ingest")

# ---------------------------------------------------------------------------
# Feed events
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class StatusEvent:
    message: str


@dataclass(frozen=True, slots=True)
class ProgressEvent:
    bank_name: str
    bank_count: int
    total_count: int


@dataclass(frozen=True, slots=True)
class TransactionEvent:
    transaction: Mapping[str, Any]


@dataclass(frozen=True, slots=True)
class ItemErrorEvent:
    """A per-item problem on the producer side (e.g. one bank table missing)."""

    message: str


@dataclass(frozen=True, slots=True)
class CompleteEvent:
    total_transactions: int


type FeedEvent = StatusEvent | ProgressEvent | TransactionEvent | ItemErrorEvent | CompleteEvent

_DATA_PREFIX = "data:"


def _event_from_payload(payload: Mapping[str, Any]) -> FeedEvent | None:
    kind = payload.get("type")
    if kind == "transaction":
        data = payload.get("data")
        return TransactionEvent(dict(data)) if isinstance(data, Mapping) else None
    if kind == "progress":
        return ProgressEvent(
            bank_name=str(payload.get("bankName") or ""),
            bank_count=int(payload.get("bankCount") or 0),
            total_count=int(payload.get("totalCount") or 0),
        )
    if kind == "status":
        return StatusEvent(str(payload.get("message") or ""))
    if kind == "error":
        return ItemErrorEvent(str(payload.get("message") or ""))
    if kind == "complete":
        return CompleteEvent(int(payload.get("totalTransactions") or 0))
    return None


def decode_feed(lines: Iterable[str]) -> Iterator[FeedEvent]:
    """Decode ``data: {json}`` lines into feed events.

    Blank lines (frame separators) and non-``data`` lines are ignored;
    malformed payloads are logged and skipped.
    """

    for lineno, line in enumerate(lines, start=1):
        s = line.strip()
        if not s or not s.startswith(_DATA_PREFIX):
            continue
        body = s[len(_DATA_PREFIX) :].strip()
        try:
            payload = json.loads(body)
        except json.JSONDecodeError:
            _logger.warning("feed:malformed_line line=%d", lineno)
            continue
        if not isinstance(payload, Mapping):
            _logger.warning("feed:malformed_line line=%d", lineno)
            continue
        try:
            event = _event_from_payload(payload)
        except (TypeError, ValueError):
            event = None
        if event is None:
            _logger.warning("feed:unknown_event line=%d type=%r", lineno, payload.get("type"))
            continue
        yield event


def encode_event(event: FeedEvent) -> str:
    """Frame ``event`` as one ``data: {json}`` line (no trailing blank line)."""

    match event:
        case TransactionEvent(transaction=tx):
            payload: dict[str, Any] = {"type": "transaction", "data": dict(tx)}
        case ProgressEvent(bank_name=b, bank_count=bc, total_count=tc):
            payload = {"type": "progress", "bankName": b, "bankCount": bc, "totalCount": tc}
        case StatusEvent(message=m):
            payload = {"type": "status", "message": m}
        case ItemErrorEvent(message=m):
            payload = {"type": "error", "message": m}
        case CompleteEvent(total_transactions=n):
            payload = {"type": "complete", "totalTransactions": n}
    return f"{_DATA_PREFIX} {json.dumps(payload, default=str)}"


# ---------------------------------------------------------------------------
# Ingestion
# ---------------------------------------------------------------------------


class _FeedSource(Protocol):
    def stream(self, user_id: str) -> Iterable[FeedEvent]: ...


class IngestionStatus(StrEnum):
    COMPLETED = "completed"
    CANCELLED = "cancelled"


@dataclass(slots=True)
class IngestionResult:
    status: IngestionStatus
    received: int = 0
    duplicates: int = 0
    item_errors: int = 0
    reconnects: int = 0
    last_progress: ProgressEvent | None = None
    messages: list[str] = field(default_factory=list)


def ingest_transactions(
    source: _FeedSource,
    *,
    user_id: str,
    on_transaction: Callable[[RawTransaction], None],
    cancel: threading.Event | None = None,
    max_retries: int = 3,
    retry_delay: float = 1.0,
) -> IngestionResult:
    """Consume the feed for ``user_id``, handing each new transaction to ``on_transaction``.

    Parameters
    ----------
    source:
        Anything with ``stream(user_id) -> Iterable[FeedEvent]``. Raising
        :class:`TransportError` (or ending without a ``CompleteEvent``)
        counts as a dropped connection.
    cancel:
        Checked between items and during reconnect waits; when set, the
        partial result is returned with status ``CANCELLED``.
    max_retries / retry_delay:
        Maximum reconnects and the fixed wait in seconds. A reconnect replays the
        feed from the start; transactions already seen (by ``id``) are
        skipped.

    Raises
    ------
    IngestionError
        When the feed still fails after ``max_retries`` reconnects.
    """

    stop = cancel or threading.Event()
    seen: set[str] = set()
    result = IngestionResult(status=IngestionStatus.COMPLETED)
    attempt = 0

    while True:
        if stop.is_set():
            result.status = IngestionStatus.CANCELLED
            return result
        try:
            completed = _consume_once(source, user_id, on_transaction, stop, seen, result)
        except TransportError as e:
            error: TransportError = e
        else:
            if completed:
                _logger.info(
                    "ingest:complete received=%d duplicates=%d item_errors=%d reconnects=%d",
                    result.received,
                    result.duplicates,
                    result.item_errors,
                    result.reconnects,
                )
                return result
            if stop.is_set():
                _logger.info("ingest:cancelled received=%d", result.received)
                result.status = IngestionStatus.CANCELLED
                return result
            error = TransportError("feed ended without a completion event")

        attempt += 1
        if attempt > max_retries:
            _logger.error("ingest:failed attempts=%d error=%s", attempt, error)
            raise IngestionError(
                f"transaction feed failed after {attempt} attempts: {error}",
                attempts=attempt,
                received=result.received,
            ) from error
        _logger.warning(
            "ingest:reconnect attempt=%d/%d delay=%.2f error=%s", attempt, max_retries, retry_delay, error
        )
        result.reconnects += 1
        # Event.wait returns True as soon as cancel is set.
        if stop.wait(retry_delay):
            result.status = IngestionStatus.CANCELLED
            return result


def _consume_once(
    source: _FeedSource,
    user_id: str,
    on_transaction: Callable[[RawTransaction], None],
    stop: threading.Event,
    seen: set[str],
    result: IngestionResult,
) -> bool:
    """Run one pass over the feed; True when a ``CompleteEvent`` was seen."""

    for event in source.stream(user_id):
        if stop.is_set():
            return False
        match event:
            case TransactionEvent(transaction=tx):
                tx_id = tx.get("id")
                key = str(tx_id) if tx_id is not None else None
                if key is not None and key in seen:
                    result.duplicates += 1
                    continue
                if key is not None:
                    seen.add(key)
                on_transaction(dict(tx))
                result.received += 1
            case ProgressEvent():
                result.last_progress = event
                _logger.debug(
                    "ingest:progress bank=%s bank_count=%d total=%d",
                    event.bank_name,
                    event.bank_count,
                    event.total_count,
                )
            case StatusEvent(message=m):
                result.messages.append(m)
                _logger.debug("ingest:status message=%s", m)
            case ItemErrorEvent(message=m):
                result.item_errors += 1
                _logger.warning("ingest:item_error message=%s", m)
            case CompleteEvent():
                return True
    return False


__all__ = [
    "CompleteEvent",
    "FeedEvent",
    "IngestionResult",
    "IngestionStatus",
    "ItemErrorEvent",
    "ProgressEvent",
    "StatusEvent",
    "TransactionEvent",
    "decode_feed",
    "encode_event",
    "ingest_transactions",
]
