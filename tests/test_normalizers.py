import pytest

from super_bank import DEFAULT_SUPER_HEADER, BankFieldMapping, Tag, build_row, build_rows
from super_bank.aggregate import totals
from super_bank.amounts import Grouping
from super_bank.dates import EPOCH_SENTINEL
from super_bank.normalizers import description_of, normalize_dr_cr

from tests.helpers.db import HDFC_MAPPING, HDFC_RECORDS, SBI_MAPPING, SBI_RECORDS

GROCERIES = Tag(id="t1", name="Groceries", color="#10B981")
SALARY = Tag(id="t2", name="Salary", color="#3B82F6")
TAGS_BY_ID = {t.id: t for t in (GROCERIES, SALARY)}


def _with_bank(records, bank_id):
    return [{**r, "bankId": bank_id} for r in records]


def _mappings():
    return {
        "hdfc": BankFieldMapping.model_validate(HDFC_MAPPING),
        "sbi": BankFieldMapping.model_validate(SBI_MAPPING),
    }


def test_type_column_bank_end_to_end():
    rows = build_rows(
        _with_bank(HDFC_RECORDS, "hdfc"),
        _mappings(),
        DEFAULT_SUPER_HEADER,
        bank_names={"hdfc": "HDFC Bank"},
    )
    credit, debit = rows
    assert (credit.dr_cr, credit.amount_raw, credit.amount) == ("CR", 1234.5, "1,234.50")
    assert (debit.dr_cr, debit.amount_raw, debit.amount) == ("DR", 500.0, "500.00")
    assert credit.get("Date") == "2024-01-05"
    assert credit.get("Description") == "SALARY JAN"
    assert credit.get("Reference No.") == "REF001"
    assert credit.get("Balance") == "10,234.50"
    assert credit.bank_name == "HDFC Bank"
    assert credit.account_number == "50100"

    stat = totals(rows)
    assert (stat.total_credit, stat.total_debit, stat.balance) == (1234.5, 500.0, 734.5)


def test_direct_dr_cr_column_and_description_alias():
    (row,) = build_rows(_with_bank(SBI_RECORDS, "sbi"), _mappings(), DEFAULT_SUPER_HEADER)
    assert row.dr_cr == "DR"
    assert row.amount_raw == 200.0
    assert row.get("Date") == "2024-01-10"
    # No mapping entry for Description: the raw "Description" column is used.
    assert row.get("Description") == "ATM WITHDRAWAL"
    # No display name known: the bank id stands in.
    assert row.bank_name == "sbi"


def test_unknown_bank_falls_back_to_same_named_fields():
    tx = {"id": "x1", "bankId": "nobank", "Date": "31/12/2023", "Amount": "(42.00)", "Dr./Cr.": "debit"}
    row = build_row(tx, None, DEFAULT_SUPER_HEADER)
    assert row.amount_raw == 42.0
    assert row.dr_cr == "DR"
    assert row.get("Date") == "2023-12-31"
    assert row.get("Reference No.") == ""
    assert row.get("Tags") == ""


def test_gaps_degrade_to_defaults():
    row = build_row({"bankId": "b", "Date": "sometime", "Amount": "n/a"}, None, DEFAULT_SUPER_HEADER)
    assert row.id == ""
    assert row.amount_raw == 0.0
    assert row.amount == "0.00"
    assert row.dr_cr == ""
    assert row.get("Date") == EPOCH_SENTINEL
    assert row.get("Description") == ""
    assert row.get("Not A Column") == ""


def test_tags_resolve_by_id_then_name_and_unknown_are_dropped():
    tx = {"id": "1", "bankId": "b", "tags": ["t2", {"id": "zzz", "name": "groceries"}, "missing", "t2"]}
    row = build_row(tx, None, DEFAULT_SUPER_HEADER, tags_by_id=TAGS_BY_ID)
    assert row.tags == (SALARY, GROCERIES)
    assert row.get("Tags") == "Salary, Groceries"
    assert row.is_tagged


def test_tags_without_vocabulary_need_full_objects():
    tx = {"id": "1", "bankId": "b", "tags": [{"id": "t9", "name": "Rent"}, "t1"]}
    row = build_row(tx, None, DEFAULT_SUPER_HEADER)
    assert row.tag_names == ("Rent",)


def test_tags_are_carried_even_when_header_omits_them():
    tx = {"id": "1", "bankId": "b", "Tags": ["t1"]}
    row = build_row(tx, None, ("Date", "Amount"), tags_by_id=TAGS_BY_ID)
    assert row.tags == (GROCERIES,)
    assert "Tags" not in row.values


def test_canonical_tags_key_wins_over_other_tag_like_columns():
    tx = {"id": "1", "bankId": "b", "Percentage": "5", "Amount": "10", "tags": ["t1"]}
    row = build_row(tx, None, DEFAULT_SUPER_HEADER, tags_by_id=TAGS_BY_ID)
    assert row.tags == (GROCERIES,)
    # A scalar column that merely mentions "tag" is never read as the tag list.
    tx = {"id": "2", "bankId": "b", "Stage": "final", "Tags": ["t2"]}
    assert build_row(tx, None, DEFAULT_SUPER_HEADER, tags_by_id=TAGS_BY_ID).tags == (SALARY,)


def test_custom_header_columns_and_western_grouping():
    tx = {"id": "1", "bankId": "b", "Amount": "1234567", "Posting Date": "01-02-2024", "Branch": "MG Road"}
    row = build_row(tx, None, ("Posting Date", "Branch", "Amount"), grouping=Grouping.WESTERN)
    assert row.get("Posting Date") == "2024-02-01"
    assert row.get("Branch") == "MG Road"
    assert row.get("Amount") == "1,234,567.00"
    assert row.get("AmountRaw") == 1234567.0


def test_build_rows_preserves_order_and_identity():
    txs = _with_bank(HDFC_RECORDS, "hdfc") + _with_bank(SBI_RECORDS, "sbi")
    rows = build_rows(txs, _mappings(), DEFAULT_SUPER_HEADER)
    assert [r.id for r in rows] == ["h1", "h2", "s1"]
    assert [r.statement_id for r in rows] == ["st-h-1", "st-h-1", "st-s-1"]
    assert rows[0].raw is txs[0]


@pytest.mark.parametrize(
    ("raw", "expected"),
    [("CR", "CR"), ("credit", "CR"), (" Cr ", "CR"), ("DEBIT", "DR"), ("dr", "DR"), ("", ""), ("X", ""), (None, ""), (5, "")],
)
def test_normalize_dr_cr(raw, expected):
    assert normalize_dr_cr(raw) == expected


def test_description_prefers_mapped_column():
    m = BankFieldMapping.model_validate({"mapping": {"Description": "Txn Remarks"}})
    assert description_of({"Txn Remarks": " NEFT IN ", "Narration": "other"}, m) == "NEFT IN"
    assert description_of({"Narration": "fallback"}, m) == "fallback"
    assert description_of({"Particulars": "  "}) == ""
