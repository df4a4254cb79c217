import pytest

from super_bank import BulkState, BulkTagOperation, Tag
from super_bank.bulk_tags import tag_ids_of, text_matches

from tests.helpers.fakes import FakeSink

FOOD = Tag(id="t-food", name="Food")
RENT = Tag(id="t-rent", name="Rent")


@pytest.fixture
def transactions():
    return {
        "1": {"id": "1", "bankId": "hdfc", "Narration": "SWIGGY ORDER 1", "tags": []},
        "2": {"id": "2", "bankId": "hdfc", "Narration": "swiggy order 2", "tags": ["t-rent"]},
        "3": {"id": "3", "bankId": "sbi", "Description": "Swiggy Instamart", "tags": ["t-food"]},
        "4": {"id": "4", "bankId": "sbi", "Description": "RENT FEB", "tags": ["t-rent"]},
    }


def _op(transactions, sink):
    return BulkTagOperation(transactions, sink, bank_names={"hdfc": "HDFC Bank", "sbi": "SBI"})


# ---- Matching ----------------------------------------------------------------


def test_match_by_text_previews_without_mutating(transactions):
    sink = FakeSink()
    op = _op(transactions, sink)
    targets = op.match(FOOD, text="swiggy")
    assert targets == ("1", "2", "3")
    assert op.state is BulkState.MATCHING
    assert sink.batches == []
    assert transactions["1"]["tags"] == []


def test_match_by_ids_ignores_unknown_and_duplicates(transactions):
    op = _op(transactions, FakeSink())
    assert op.match(FOOD, transaction_ids=["4", "nope", "4", "1"]) == ("4", "1")


def test_match_requires_ids_or_text(transactions):
    op = _op(transactions, FakeSink())
    with pytest.raises(ValueError):
        op.match(FOOD)
    with pytest.raises(ValueError):
        op.match(FOOD, text="   ")


def test_text_match_skips_tag_lists():
    assert not text_matches({"id": "9", "tags": ["food"]}, "food")
    assert text_matches({"id": "9", "Amount": 450}, "45")


# ---- Apply / retry -----------------------------------------------------------


def test_apply_adds_tag_once_and_preserves_existing(transactions):
    sink = FakeSink()
    op = _op(transactions, sink)
    op.match(FOOD, text="swiggy")
    result = op.apply()

    assert result.successful == 3
    assert op.state is BulkState.COMPLETED
    assert op.summary() == "3 succeeded, 0 failed"
    assert transactions["1"]["tags"] == ["t-food"]
    assert transactions["2"]["tags"] == ["t-rent", "t-food"]
    # Already tagged: the tag list is unchanged.
    assert transactions["3"]["tags"] == ["t-food"]

    (batch,) = sink.batches
    assert [(r.transaction_id, r.tags, r.bank_name) for r in batch] == [
        ("1", ("t-food",), "HDFC Bank"),
        ("2", ("t-rent", "t-food"), "HDFC Bank"),
        ("3", ("t-food",), "SBI"),
    ]


def test_partial_failure_then_retry_completes(transactions):
    sink = FakeSink(failing_ids={"2"})
    op = _op(transactions, sink)
    op.match(FOOD, text="swiggy")
    op.apply()

    assert op.state is BulkState.PARTIALLY_FAILED
    assert op.summary() == "2 succeeded, 1 failed"
    assert [(f.id, f.error) for f in op.failures] == [("2", "write rejected")]
    assert transactions["1"]["tags"] == ["t-food"]
    assert transactions["2"]["tags"] == ["t-rent"]

    sink.failing_ids.clear()
    op.retry()
    assert op.state is BulkState.COMPLETED
    assert [r.transaction_id for r in sink.batches[-1]] == ["2"]
    assert transactions["2"]["tags"] == ["t-rent", "t-food"]
    assert op.summary() == "1 succeeded, 0 failed"


def test_transport_failure_marks_every_request_failed(transactions):
    sink = FakeSink(down=True)
    op = _op(transactions, sink)
    op.match(RENT, transaction_ids=["1", "3"])
    result = op.apply()
    assert result.successful == 0
    assert set(result.failed_ids) == {"1", "3"}
    assert all("sink unreachable" in f.error for f in result.failed)
    assert op.state is BulkState.PARTIALLY_FAILED
    assert transactions["1"]["tags"] == []


def test_retry_only_after_partial_failure(transactions):
    op = _op(transactions, FakeSink())
    with pytest.raises(RuntimeError):
        op.retry()
    op.match(FOOD, transaction_ids=["1"])
    op.apply()
    with pytest.raises(RuntimeError):
        op.retry()


def test_apply_requires_match(transactions):
    op = _op(transactions, FakeSink())
    with pytest.raises(RuntimeError):
        op.apply()
    assert op.summary() == "0 succeeded, 0 failed"


def test_empty_match_applies_nothing(transactions):
    sink = FakeSink()
    op = _op(transactions, sink)
    assert op.match(FOOD, text="no such text") == ()
    result = op.apply()
    assert result.successful == 0
    assert sink.batches == []
    assert op.state is BulkState.COMPLETED


def test_applying_twice_is_idempotent(transactions):
    sink = FakeSink()
    op = _op(transactions, sink)
    op.match(FOOD, transaction_ids=["2"])
    op.apply()
    op.match(FOOD, transaction_ids=["2"])
    op.apply()
    assert transactions["2"]["tags"] == ["t-rent", "t-food"]


# ---- Remove ------------------------------------------------------------------


def test_remove_strips_only_named_tags(transactions):
    sink = FakeSink()
    op = _op(transactions, sink)
    result = op.remove(["t-rent"], ["2", "3", "4", "unknown"])
    assert result.successful == 3
    assert transactions["2"]["tags"] == []
    assert transactions["3"]["tags"] == ["t-food"]
    assert transactions["4"]["tags"] == []
    assert op.state is BulkState.COMPLETED


def test_remove_requires_tag_ids(transactions):
    with pytest.raises(ValueError):
        _op(transactions, FakeSink()).remove([], ["1"])


def test_remove_partial_failure_retries_same_change(transactions):
    sink = FakeSink(failing_ids={"4"})
    op = _op(transactions, sink)
    op.remove(["t-rent"], ["2", "4"])
    assert op.summary() == "1 succeeded, 1 failed"
    sink.failing_ids.clear()
    op.retry()
    assert transactions["4"]["tags"] == []
    assert sink.batches[-1][0].tags == ()


def test_tag_ids_of_accepts_mixed_references():
    assert tag_ids_of(["a", {"id": "b"}, FOOD, "a", None, 3]) == ["a", "b", "t-food"]
    assert tag_ids_of("a") == []
    assert tag_ids_of(None) == []


def test_unexpected_sink_error_leaves_operation_retryable(transactions):
    sink = FakeSink(crash=KeyError("boom"))
    op = _op(transactions, sink)
    op.match(FOOD, transaction_ids=["1"])
    with pytest.raises(KeyError):
        op.apply()
    assert op.state is BulkState.PARTIALLY_FAILED
    assert op.summary() == "0 succeeded, 1 failed"
    assert transactions["1"]["tags"] == []

    sink.crash = None
    op.retry()
    assert op.state is BulkState.COMPLETED
    assert transactions["1"]["tags"] == ["t-food"]
    # A fresh match is accepted again.
    assert op.match(RENT, transaction_ids=["2"]) == ("2",)
