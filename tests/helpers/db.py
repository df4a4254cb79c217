"""DB helpers for tests: bootstrap a temporary SQLite DB and seed Super Bank data."""

from __future__ import annotations

import os
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any

from db.client import create_schema, get_engine, session_scope
from sqlalchemy import event

from super_bank.persistence import SUPER_BANK_NAME, save_bank, upsert_transactions

# Two banks with deliberately different statement layouts.
HDFC_MAPPING: dict[str, Any] = {
    "header": ["Txn Date", "Narration", "Chq./Ref.No.", "Txn Amount", "Type", "Closing Balance"],
    "mapping": {
        "Date": "Txn Date",
        "Description": "Narration",
        "Reference No.": "Chq./Ref.No.",
        "Amount": "Txn Amount",
        "Balance": "Closing Balance",
    },
    "conditions": [
        {"if": {"field": "Type", "op": "==", "value": "Credit"}, "then": {"Dr./Cr.": "CR"}},
        {"if": {"field": "Type", "op": "==", "value": "Debit"}, "then": {"Dr./Cr.": "DR"}},
    ],
}

SBI_MAPPING: dict[str, Any] = {
    "header": ["Value Date", "Description", "Ref No./Cheque No.", "Amount", "Dr / Cr", "Balance"],
    "mapping": {
        "Date": "Value Date",
        "Reference No.": "Ref No./Cheque No.",
        "Amount": "Amount",
        "Dr./Cr.": "Dr / Cr",
    },
    "conditions": [],
}

HDFC_RECORDS: list[dict[str, Any]] = [
    {
        "id": "h1",
        "accountId": "acc-h",
        "accountNumber": "50100",
        "statementId": "st-h-1",
        "Txn Date": "05/01/2024",
        "Narration": "SALARY JAN",
        "Chq./Ref.No.": "REF001",
        "Txn Amount": "1,234.50",
        "Type": "Credit",
        "Closing Balance": "10,234.50",
    },
    {
        "id": "h2",
        "accountId": "acc-h",
        "accountNumber": "50100",
        "statementId": "st-h-1",
        "Txn Date": "07/01/2024",
        "Narration": "SWIGGY ORDER",
        "Chq./Ref.No.": "REF002",
        "Txn Amount": "-500",
        "Type": "Debit",
        "Closing Balance": "9,734.50",
    },
]

SBI_RECORDS: list[dict[str, Any]] = [
    {
        "id": "s1",
        "accountId": "acc-s",
        "accountNumber": "30200",
        "statementId": "st-s-1",
        "Value Date": "2024-01-10",
        "Description": "ATM WITHDRAWAL",
        "Ref No./Cheque No.": "ATM99",
        "Amount": "200.00",
        "Dr / Cr": "DR",
        "Balance": "800.00",
    },
]


def bootstrap_sqlite_db(db_file: Path, *, set_default_env: bool = False) -> str:
    """Create a SQLite database file, initialize schema, and return the URL.

    Using a file-backed SQLite DB ensures multiple SQLAlchemy connections share
    the same state (in-memory DBs are per-connection by default).
    """

    url = f"sqlite+pysqlite:///{db_file}"
    db_file.parent.mkdir(parents=True, exist_ok=True)
    engine = get_engine(database_url=url)

    # Enforce FKs on every pooled connection.
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_conn, _):  # pragma: no cover - tiny bridge
        dbapi_conn.execute("PRAGMA foreign_keys = ON")

    create_schema(database_url=url)

    if set_default_env:
        os.environ.setdefault("SUPER_BANK_DATABASE_URL", url)
    return url


def seed_bank(
    *,
    database_url: str,
    bank_id: str,
    bank_name: str,
    mapping: Mapping[str, Any],
) -> None:
    with session_scope(database_url=database_url) as session:
        save_bank(
            session,
            bank_id=bank_id,
            bank_name=bank_name,
            header=mapping.get("header") or [],
            mapping=mapping.get("mapping") or {},
            conditions=mapping.get("conditions") or [],
        )


def seed_super_header(*, database_url: str, header: Sequence[str]) -> None:
    with session_scope(database_url=database_url) as session:
        save_bank(session, bank_id="super", bank_name=SUPER_BANK_NAME, header=header)


def seed_transactions(
    *,
    database_url: str,
    user_id: str,
    bank_id: str,
    records: Sequence[Mapping[str, Any]],
) -> int:
    with session_scope(database_url=database_url) as session:
        return upsert_transactions(session, user_id=user_id, bank_id=bank_id, records=records)


def seed_two_banks(*, database_url: str, user_id: str = "u1") -> None:
    """HDFC (two rows, type-column direction) and SBI (one row, direct Dr/Cr column)."""

    seed_bank(database_url=database_url, bank_id="hdfc", bank_name="HDFC Bank", mapping=HDFC_MAPPING)
    seed_bank(database_url=database_url, bank_id="sbi", bank_name="SBI", mapping=SBI_MAPPING)
    seed_transactions(database_url=database_url, user_id=user_id, bank_id="hdfc", records=HDFC_RECORDS)
    seed_transactions(database_url=database_url, user_id=user_id, bank_id="sbi", records=SBI_RECORDS)
