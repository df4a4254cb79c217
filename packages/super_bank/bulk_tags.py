"""Bulk tag apply/remove with per-transaction outcomes.

A :class:`BulkTagOperation` works against the in-memory transaction set
(``{id: raw transaction}``) and a :class:`~super_bank.stores.BulkUpdateSink`.
Each submission sends one request per transaction carrying its complete new
tag list; the sink reports which ones failed. Successes are merged into the
in-memory set immediately, failures are kept with their reasons and can be
re-submitted with :meth:`BulkTagOperation.retry`. Nothing retries
automatically.

State machine::

    IDLE -> MATCHING -> APPLYING -> COMPLETED | PARTIALLY_FAILED
    PARTIALLY_FAILED -> RETRYING -> COMPLETED | PARTIALLY_FAILED
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, MutableMapping, Sequence
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from .errors import TransportError
from .logging_setup import get_logger
from .models import BulkFailure, BulkTagRequest, BulkTagResult, RawTransaction, Tag, is_scalar
from .stores import BulkUpdateSink

_logger = get_logger("super_bank.bulk_tags")

TAGS_KEY = "tags"


class BulkState(StrEnum):
    IDLE = "idle"
    MATCHING = "matching"
    APPLYING = "applying"
    COMPLETED = "completed"
    PARTIALLY_FAILED = "partially_failed"
    RETRYING = "retrying"


class BulkKind(StrEnum):
    APPLY = "apply"
    REMOVE = "remove"


@dataclass(frozen=True, slots=True)
class _Submission:
    """Everything needed to re-run a submission for a subset of transactions."""

    kind: BulkKind
    tag_ids: tuple[str, ...]


def tag_ids_of(raw_tags: Any) -> list[str]:
    """Return tag ids from a stored tag list (ids, tag objects or ``{id}`` dicts)."""

    if not isinstance(raw_tags, Sequence) or isinstance(raw_tags, str):
        return []
    out: list[str] = []
    for ref in raw_tags:
        if isinstance(ref, Tag):
            tid: Any = ref.id
        elif isinstance(ref, Mapping):
            tid = ref.get("id")
        else:
            tid = ref
        if isinstance(tid, str) and tid and tid not in out:
            out.append(tid)
    return out


def text_matches(tx: Mapping[str, Any], needle: str) -> bool:
    """Case-insensitive substring match across non-tag scalar fields."""

    n = needle.lower()
    for key, value in tx.items():
        if key == TAGS_KEY or not is_scalar(value):
            continue
        if n in str(value).lower():
            return True
    return False


class BulkTagOperation:
    """Apply or remove tags across many transactions.

    Parameters
    ----------
    transactions:
        The live in-memory set keyed by transaction id. Successful updates
        replace the transaction's ``tags`` entry in place.
    sink:
        Receives one batch of :class:`BulkTagRequest` per submission.
    bank_names:
        Bank id → display name, sent with each request so the sink can
        route the write.
    """

    def __init__(
        self,
        transactions: MutableMapping[str, RawTransaction],
        sink: BulkUpdateSink,
        *,
        bank_names: Mapping[str, str] | None = None,
    ) -> None:
        self._transactions = transactions
        self._sink = sink
        self._bank_names = dict(bank_names or {})
        self.state = BulkState.IDLE
        self.targets: tuple[str, ...] = ()
        self.tag: Tag | None = None
        self.failures: tuple[BulkFailure, ...] = ()
        self.last_result: BulkTagResult | None = None
        self._submission: _Submission | None = None

    # ------------------------------------------------------------------
    # Matching
    # ------------------------------------------------------------------

    def match(
        self,
        tag: Tag,
        *,
        transaction_ids: Iterable[str] | None = None,
        text: str | None = None,
    ) -> tuple[str, ...]:
        """Compute the target set for applying ``tag`` and return it for preview.

        Explicit ``transaction_ids`` win over ``text``; unknown ids are
        ignored. Nothing is mutated until :meth:`apply`.
        """

        self._require_not_busy("match")
        if transaction_ids is None and not (text and text.strip()):
            raise ValueError("match requires transaction_ids or a non-empty text")
        self.state = BulkState.MATCHING
        if transaction_ids is not None:
            wanted = list(dict.fromkeys(transaction_ids))
            targets = tuple(t for t in wanted if t in self._transactions)
            if len(targets) != len(wanted):
                _logger.warning("bulk_tags:unknown_ids count=%d", len(wanted) - len(targets))
        else:
            assert text is not None
            needle = text.strip()
            targets = tuple(tid for tid, tx in self._transactions.items() if text_matches(tx, needle))
        self.tag = tag
        self.targets = targets
        _logger.info("bulk_tags:matched tag=%s targets=%d", tag.name, len(targets))
        return targets

    # ------------------------------------------------------------------
    # Submissions
    # ------------------------------------------------------------------

    def apply(self) -> BulkTagResult:
        """Add the matched tag to every target (``existing ∪ {tag}``)."""

        if self.state is not BulkState.MATCHING or self.tag is None:
            raise RuntimeError("apply() requires a preceding match()")
        self.state = BulkState.APPLYING
        self._submission = _Submission(BulkKind.APPLY, (self.tag.id,))
        return self._submit(self.targets)

    def remove(self, tag_ids: Iterable[str], transaction_ids: Iterable[str]) -> BulkTagResult:
        """Remove ``tag_ids`` from each of ``transaction_ids`` (``existing minus tags``)."""

        self._require_not_busy("remove")
        ids = tuple(dict.fromkeys(tag_ids))
        if not ids:
            raise ValueError("remove requires at least one tag id")
        self.state = BulkState.APPLYING
        self.tag = None
        self.targets = tuple(t for t in dict.fromkeys(transaction_ids) if t in self._transactions)
        self._submission = _Submission(BulkKind.REMOVE, ids)
        return self._submit(self.targets)

    def retry(self) -> BulkTagResult:
        """Re-submit exactly the failed transactions with the same tag change."""

        if self.state is not BulkState.PARTIALLY_FAILED or self._submission is None:
            raise RuntimeError("retry() is only available after a partial failure")
        self.state = BulkState.RETRYING
        return self._submit(tuple(f.id for f in self.failures))

    def summary(self) -> str:
        if self.last_result is None:
            return "0 succeeded, 0 failed"
        return self.last_result.summary()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _require_not_busy(self, op: str) -> None:
        if self.state in (BulkState.APPLYING, BulkState.RETRYING):
            raise RuntimeError(f"{op}() while a submission is in flight")

    def _new_tags(self, tx: Mapping[str, Any], sub: _Submission) -> tuple[str, ...]:
        existing = tag_ids_of(tx.get(TAGS_KEY))
        if sub.kind is BulkKind.APPLY:
            return tuple(existing + [t for t in sub.tag_ids if t not in existing])
        return tuple(t for t in existing if t not in sub.tag_ids)

    def _build_requests(self, ids: Sequence[str], sub: _Submission) -> list[BulkTagRequest]:
        requests: list[BulkTagRequest] = []
        for tid in ids:
            tx = self._transactions.get(tid)
            if tx is None:
                continue
            bank_id = str(tx.get("bankId") or "")
            requests.append(
                BulkTagRequest(
                    transaction_id=tid,
                    tags=self._new_tags(tx, sub),
                    bank_name=self._bank_names.get(bank_id) or bank_id,
                )
            )
        return requests

    def _submit(self, ids: Sequence[str]) -> BulkTagResult:
        sub = self._submission
        assert sub is not None
        requests = self._build_requests(ids, sub)
        if not requests:
            result = BulkTagResult(successful=0)
        else:
            try:
                result = self._sink.bulk_update(requests)
            except TransportError as e:
                _logger.warning("bulk_tags:transport_error requests=%d error=%s", len(requests), e)
                result = BulkTagResult(
                    successful=0,
                    failed=tuple(BulkFailure(id=r.transaction_id, error=str(e)) for r in requests),
                )
            except Exception as e:
                # Leave the operation retryable, then propagate.
                self.failures = tuple(BulkFailure(id=r.transaction_id, error=str(e)) for r in requests)
                self.last_result = BulkTagResult(successful=0, failed=self.failures)
                self.state = BulkState.PARTIALLY_FAILED
                _logger.error("bulk_tags:sink_error requests=%d error=%r", len(requests), e)
                raise

        failed_ids = set(result.failed_ids)
        for req in requests:
            if req.transaction_id not in failed_ids:
                self._transactions[req.transaction_id][TAGS_KEY] = list(req.tags)

        self.failures = result.failed
        self.last_result = result
        self.state = BulkState.PARTIALLY_FAILED if result.failed else BulkState.COMPLETED
        log = _logger.warning if result.failed else _logger.info
        log(
            "bulk_tags:%s kind=%s succeeded=%d failed=%d",
            self.state.value,
            sub.kind.value,
            result.successful,
            len(result.failed),
        )
        return result


__all__ = ["TAGS_KEY", "BulkKind", "BulkState", "BulkTagOperation", "tag_ids_of", "text_matches"]
