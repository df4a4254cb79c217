import math
from datetime import date

import pytest

from super_bank.amounts import Grouping, format_amount, parse_amount, round2
from super_bank.dates import EPOCH_SENTINEL, is_date_column, parse_statement_date, to_iso_date


# ---- Amounts -----------------------------------------------------------------


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("1,23,456.50", 123456.5),
        ("1,234.50", 1234.5),
        ("₹ 500", 500.0),
        ("Rs. 75", 75.0),
        ("-₹500", -500.0),
        ("(1,200.00)", -1200.0),
        ("1.5e3", 1500.0),
        ("500.00 Cr", 500.0),
        ("-500", -500.0),
        (42, 42.0),
        (12.5, 12.5),
    ],
)
def test_parse_amount_reads_statement_formats(raw, expected):
    assert parse_amount(raw) == pytest.approx(expected)


@pytest.mark.parametrize("raw", [None, "", "   ", "abc", "Cr", True, float("inf"), float("nan"), [1], {"a": 1}])
def test_parse_amount_never_raises_and_defaults_to_zero(raw):
    value = parse_amount(raw)
    assert value == 0.0
    assert math.isfinite(value)


def test_format_amount_groups_indian_and_western():
    assert format_amount(1234567) == "12,34,567.00"
    assert format_amount(100000) == "1,00,000.00"
    assert format_amount(999) == "999.00"
    assert format_amount(1234567, Grouping.WESTERN) == "1,234,567.00"
    assert format_amount("1234.5", "western") == "1,234.50"


def test_format_amount_sign_and_unparsable():
    assert format_amount(-500) == "-500.00"
    # Rounds to zero: no negative zero in the display string.
    assert format_amount(-0.001) == "0.00"
    assert format_amount("not a number") == "0.00"


def test_round2_keeps_two_decimals():
    total = 0.0
    for _ in range(10):
        total = round2(total + 0.1)
    assert total == 1.0


# ---- Dates -------------------------------------------------------------------


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("05/01/2024", "2024-01-05"),
        ("5/1/2024", "2024-01-05"),
        ("05-01-24", "2024-01-05"),
        ("05.01.2024", "2024-01-05"),
        ("2024-01-05", "2024-01-05"),
        ("2024/1/5", "2024-01-05"),
        ("2024-01-05T10:30:00", "2024-01-05"),
        ("05/01/2024 10:30", "2024-01-05"),
        ("05 Jan 2024", "2024-01-05"),
        ("05-Jan-24", "2024-01-05"),
        (date(2024, 1, 5), "2024-01-05"),
    ],
)
def test_to_iso_date_normalizes_day_first_and_iso(raw, expected):
    assert to_iso_date(raw) == expected


@pytest.mark.parametrize("raw", [None, "", "garbage", "31/02/2024", "2024-13-01", 20240105])
def test_to_iso_date_unreadable_becomes_sentinel(raw):
    assert to_iso_date(raw) == EPOCH_SENTINEL


def test_parse_statement_date_returns_none_for_unreadable():
    assert parse_statement_date("not a date") is None
    assert parse_statement_date("01/01/2024") == date(2024, 1, 1)


def test_iso_strings_order_like_dates():
    dates = [to_iso_date(d) for d in ("10/02/2024", "09/12/2023", "01/02/2024")]
    assert sorted(dates) == ["2023-12-09", "2024-02-01", "2024-02-10"]


def test_is_date_column():
    assert is_date_column("Date")
    assert is_date_column("Value Date")
    assert is_date_column("txn date")
    assert not is_date_column("Description")
