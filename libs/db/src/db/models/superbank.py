from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import (
    JSON,
    DateTime,
    ForeignKey,
    Index,
    String,
    Text,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


# ---------------------------
# Reference: sb_banks
# ---------------------------


class SbBank(Base):
    """A bank and its statement-to-canonical field mapping.

    ``header``, ``mapping`` and ``conditions`` are stored as JSON exactly as
    the mapping editor writes them; ``super_bank.models.BankFieldMapping``
    validates them on read.
    """

    __tablename__ = "sb_banks"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    bank_name: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    header: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    mapping: Mapped[dict[str, str]] = mapped_column(JSON, nullable=False, default=dict)
    conditions: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )


# ---------------------------
# Reference: sb_tags
# ---------------------------


class SbTag(Base):
    __tablename__ = "sb_tags"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    user_id: Mapped[str] = mapped_column(String, nullable=False)
    # Uniqueness is case-insensitive per user; see ``ix_sb_tags_user_lower_name``.
    name: Mapped[str] = mapped_column(String, nullable=False)
    color: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        Index("ix_sb_tags_user_lower_name", user_id, func.lower(name), unique=True),
    )


# ---------------------------
# Core: sb_transactions
# ---------------------------


class SbTransaction(Base):
    __tablename__ = "sb_transactions"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    user_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    bank_id: Mapped[str] = mapped_column(
        String, ForeignKey("sb_banks.id"), nullable=False, index=True
    )
    account_id: Mapped[str | None] = mapped_column(String, nullable=True)
    statement_id: Mapped[str | None] = mapped_column(String, nullable=True)
    # Bank-specific columns exactly as imported from the statement. Never
    # mutated after ingestion.
    raw_record: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    # Tag ids (references into sb_tags); the only mutable part of a row.
    tags: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )


__all__ = [
    "Base",
    "SbBank",
    "SbTag",
    "SbTransaction",
]
