from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from decimal import Decimal

from sqlalchemy import Boolean, CheckConstraint, Date, DateTime, ForeignKey, Index, Integer, Numeric, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ServiceTemplate(Base):
    __tablename__ = "catalog_service"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tenant_id: Mapped[str] = mapped_column(String(128), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    default_price: Mapped[Decimal | None] = mapped_column(Numeric(18, 6), nullable=True)
    tax_rate: Mapped[Decimal] = mapped_column(Numeric(9, 4), nullable=False, default=Decimal("0"), server_default="0")
    payment_terms_days: Mapped[int | None] = mapped_column(Integer, nullable=True)
    income_account_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("ledger_account.id", ondelete="SET NULL"),
        nullable=True,
    )
    default_recurrence: Mapped[str | None] = mapped_column(String(32), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default="true")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    task_templates: Mapped[list[TaskTemplate]] = relationship(
        "TaskTemplate",
        back_populates="service",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="TaskTemplate.sort_order",
    )

    __table_args__ = (
        UniqueConstraint("tenant_id", "name", name="uq_catalog_service_name"),
        CheckConstraint("tax_rate >= 0", name="ck_catalog_service_tax_nonnegative"),
        Index("ix_catalog_service_scope", "tenant_id", "is_active"),
    )


class TaskTemplate(Base):
    __tablename__ = "catalog_task_template"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    service_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("catalog_service.id", ondelete="CASCADE"),
        nullable=False,
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    granularity: Mapped[str] = mapped_column(String(32), nullable=False, default="inherit", server_default="inherit")
    exact_due_date: Mapped[date | None] = mapped_column(Date(), nullable=True)
    due_day_of_month: Mapped[int | None] = mapped_column(Integer, nullable=True)
    due_offset_days: Mapped[int | None] = mapped_column(Integer, nullable=True)
    due_offset_months: Mapped[int | None] = mapped_column(Integer, nullable=True)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default="true")

    service: Mapped[ServiceTemplate] = relationship("ServiceTemplate", back_populates="task_templates")

    __table_args__ = (
        CheckConstraint(
            "due_day_of_month IS NULL OR (due_day_of_month BETWEEN 1 AND 31)",
            name="ck_catalog_task_template_day",
        ),
        Index("ix_catalog_task_template_service", "service_id", "sort_order"),
    )


class Customer(Base):
    __tablename__ = "catalog_customer"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tenant_id: Mapped[str] = mapped_column(String(128), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    ledger_account_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("ledger_account.id", ondelete="SET NULL"),
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    service_prices: Mapped[list[CustomerServicePrice]] = relationship(
        "CustomerServicePrice",
        back_populates="customer",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        Index("ix_catalog_customer_scope", "tenant_id", "name"),
    )


class CustomerServicePrice(Base):
    __tablename__ = "catalog_customer_service_price"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    customer_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("catalog_customer.id", ondelete="CASCADE"),
        nullable=False,
    )
    service_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("catalog_service.id", ondelete="CASCADE"),
        nullable=False,
    )
    price: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    customer: Mapped[Customer] = relationship("Customer", back_populates="service_prices")

    __table_args__ = (
        UniqueConstraint("customer_id", "service_id", name="uq_catalog_customer_service_price"),
    )
