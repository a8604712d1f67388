from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from decimal import Decimal

from sqlalchemy import CheckConstraint, Date, DateTime, ForeignKey, Index, Integer, Numeric, String, Text, UniqueConstraint, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


_ACTIVE_PERIOD_INVOICE = text("period_id IS NOT NULL AND status <> 'cancelled'")
_ACTIVE_WORK_INVOICE = text("work_id IS NOT NULL AND period_id IS NULL AND status <> 'cancelled'")


class Invoice(Base):
    __tablename__ = "billing_invoice"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tenant_id: Mapped[str] = mapped_column(String(128), nullable=False)
    customer_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("catalog_customer.id", ondelete="RESTRICT"),
        nullable=False,
    )
    work_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("works_work.id", ondelete="SET NULL"),
        nullable=True,
    )
    period_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("works_recurring_period.id", ondelete="SET NULL"),
        nullable=True,
    )
    invoice_number: Mapped[str] = mapped_column(String(64), nullable=False)
    currency: Mapped[str] = mapped_column(String(16), nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="draft", server_default="draft")
    issue_date: Mapped[date] = mapped_column(Date(), nullable=False)
    due_date: Mapped[date] = mapped_column(Date(), nullable=False)
    subtotal: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False, default=Decimal("0"), server_default="0")
    tax_amount: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False, default=Decimal("0"), server_default="0")
    total: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False, default=Decimal("0"), server_default="0")
    income_account_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("ledger_account.id", ondelete="SET NULL"),
        nullable=True,
    )
    customer_account_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("ledger_account.id", ondelete="SET NULL"),
        nullable=True,
    )
    origin: Mapped[str] = mapped_column(String(16), nullable=False, default="manual", server_default="manual")
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_by: Mapped[str | None] = mapped_column(String(128), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    lines: Mapped[list[InvoiceLine]] = relationship(
        "InvoiceLine",
        back_populates="invoice",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="InvoiceLine.line_no",
    )

    __table_args__ = (
        UniqueConstraint("tenant_id", "invoice_number", name="uq_billing_invoice_number"),
        CheckConstraint(
            "status IN ('draft','sent','paid','overdue','cancelled')",
            name="ck_billing_invoice_status",
        ),
        CheckConstraint("origin IN ('auto','manual')", name="ck_billing_invoice_origin"),
        Index(
            "uq_billing_invoice_active_period",
            "period_id",
            unique=True,
            postgresql_where=_ACTIVE_PERIOD_INVOICE,
            sqlite_where=_ACTIVE_PERIOD_INVOICE,
        ),
        Index(
            "uq_billing_invoice_active_work",
            "work_id",
            unique=True,
            postgresql_where=_ACTIVE_WORK_INVOICE,
            sqlite_where=_ACTIVE_WORK_INVOICE,
        ),
        Index("ix_billing_invoice_scope_status", "tenant_id", "status", "due_date"),
        Index("ix_billing_invoice_customer", "tenant_id", "customer_id"),
    )


class InvoiceLine(Base):
    __tablename__ = "billing_invoice_line"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    invoice_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("billing_invoice.id", ondelete="CASCADE"),
        nullable=False,
    )
    line_no: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    quantity: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False)
    rate: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False)
    tax_rate: Mapped[Decimal] = mapped_column(Numeric(9, 4), nullable=False, default=Decimal("0"), server_default="0")
    tax_amount: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False, default=Decimal("0"), server_default="0")
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False)

    invoice: Mapped[Invoice] = relationship("Invoice", back_populates="lines")

    __table_args__ = (
        UniqueConstraint("invoice_id", "line_no", name="uq_billing_invoice_line_no"),
        CheckConstraint("quantity > 0", name="ck_billing_invoice_line_quantity"),
        Index("ix_billing_invoice_line_invoice", "invoice_id"),
    )
