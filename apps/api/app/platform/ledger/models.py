from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from decimal import Decimal

from sqlalchemy import Boolean, CheckConstraint, Date, DateTime, ForeignKey, Index, Integer, Numeric, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LedgerAccount(Base):
    __tablename__ = "ledger_account"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tenant_id: Mapped[str] = mapped_column(String(128), nullable=False)
    parent_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("ledger_account.id", ondelete="SET NULL"),
        nullable=True,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    code: Mapped[str] = mapped_column(String(64), nullable=False)
    type: Mapped[str] = mapped_column(String(32), nullable=False)
    currency: Mapped[str] = mapped_column(String(16), nullable=False)
    is_group: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    opening_balance: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False, default=Decimal("0"), server_default="0")
    current_balance: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False, default=Decimal("0"), server_default="0")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default="true")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    transactions: Mapped[list[LedgerTransaction]] = relationship("LedgerTransaction", back_populates="account")

    __table_args__ = (
        UniqueConstraint("tenant_id", "code", name="uq_ledger_account_code"),
        Index("ix_ledger_account_scope", "tenant_id", "type"),
    )


class Voucher(Base):
    __tablename__ = "ledger_voucher"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tenant_id: Mapped[str] = mapped_column(String(128), nullable=False)
    voucher_type: Mapped[str] = mapped_column(String(32), nullable=False)
    voucher_number: Mapped[str] = mapped_column(String(64), nullable=False)
    voucher_date: Mapped[date] = mapped_column(Date(), nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="draft", server_default="draft")
    narration: Mapped[str | None] = mapped_column(Text, nullable=True)
    source_type: Mapped[str | None] = mapped_column(String(64), nullable=True)
    source_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False, default=Decimal("0"), server_default="0")
    created_by: Mapped[str] = mapped_column(String(255), nullable=False)
    posted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    entries: Mapped[list[VoucherEntry]] = relationship(
        "VoucherEntry",
        back_populates="voucher",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="VoucherEntry.line_no",
    )
    transactions: Mapped[list[LedgerTransaction]] = relationship(
        "LedgerTransaction",
        back_populates="voucher",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        UniqueConstraint("tenant_id", "voucher_number", name="uq_ledger_voucher_number"),
        Index("ix_ledger_voucher_scope_date", "tenant_id", "voucher_type", "voucher_date"),
        Index("ix_ledger_voucher_source", "tenant_id", "source_type", "source_id"),
    )


class VoucherEntry(Base):
    __tablename__ = "ledger_voucher_entry"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    voucher_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("ledger_voucher.id", ondelete="CASCADE"),
        nullable=False,
    )
    line_no: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    account_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("ledger_account.id", ondelete="RESTRICT"),
        nullable=False,
    )
    debit_amount: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False, default=Decimal("0"), server_default="0")
    credit_amount: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False, default=Decimal("0"), server_default="0")
    narration: Mapped[str | None] = mapped_column(Text, nullable=True)

    voucher: Mapped[Voucher] = relationship("Voucher", back_populates="entries")

    __table_args__ = (
        CheckConstraint("debit_amount >= 0", name="ck_ledger_voucher_entry_debit_nonnegative"),
        CheckConstraint("credit_amount >= 0", name="ck_ledger_voucher_entry_credit_nonnegative"),
        CheckConstraint(
            "((debit_amount > 0 AND credit_amount = 0) OR (credit_amount > 0 AND debit_amount = 0))",
            name="ck_ledger_voucher_entry_single_sided",
        ),
    )


class LedgerTransaction(Base):
    __tablename__ = "ledger_transaction"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tenant_id: Mapped[str] = mapped_column(String(128), nullable=False)
    voucher_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("ledger_voucher.id", ondelete="CASCADE"),
        nullable=False,
    )
    account_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("ledger_account.id", ondelete="RESTRICT"),
        nullable=False,
    )
    transaction_date: Mapped[date] = mapped_column(Date(), nullable=False)
    debit: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False, default=Decimal("0"), server_default="0")
    credit: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False, default=Decimal("0"), server_default="0")
    narration: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    voucher: Mapped[Voucher] = relationship("Voucher", back_populates="transactions")
    account: Mapped[LedgerAccount] = relationship("LedgerAccount", back_populates="transactions")

    __table_args__ = (
        CheckConstraint("debit >= 0", name="ck_ledger_transaction_debit_nonnegative"),
        CheckConstraint("credit >= 0", name="ck_ledger_transaction_credit_nonnegative"),
        CheckConstraint(
            "((debit > 0 AND credit = 0) OR (credit > 0 AND debit = 0))",
            name="ck_ledger_transaction_single_sided",
        ),
        Index("ix_ledger_transaction_account_date", "account_id", "transaction_date"),
        Index("ix_ledger_transaction_voucher", "voucher_id"),
    )
