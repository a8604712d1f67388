from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from decimal import Decimal

from sqlalchemy import Boolean, CheckConstraint, Date, DateTime, ForeignKey, Index, Integer, Numeric, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Work(Base):
    __tablename__ = "works_work"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tenant_id: Mapped[str] = mapped_column(String(128), nullable=False)
    customer_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("catalog_customer.id", ondelete="RESTRICT"),
        nullable=False,
    )
    service_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("catalog_service.id", ondelete="RESTRICT"),
        nullable=False,
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    recurrence_pattern: Mapped[str | None] = mapped_column(String(32), nullable=True)
    start_date: Mapped[date] = mapped_column(Date(), nullable=False)
    end_date: Mapped[date | None] = mapped_column(Date(), nullable=True)
    anchor_type: Mapped[str] = mapped_column(String(16), nullable=False, default="current", server_default="current")
    assigned_to: Mapped[str | None] = mapped_column(String(128), nullable=True)
    billing_amount: Mapped[Decimal | None] = mapped_column(Numeric(18, 6), nullable=True)
    auto_bill: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default="true")
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="pending", server_default="pending")
    billing_status: Mapped[str] = mapped_column(String(32), nullable=False, default="not_billed", server_default="not_billed")
    invoice_id: Mapped[uuid.UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True)
    last_backfill_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_by: Mapped[str | None] = mapped_column(String(128), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    tasks: Mapped[list[WorkTask]] = relationship(
        "WorkTask",
        back_populates="work",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="WorkTask.sort_order",
    )
    documents: Mapped[list[WorkDocument]] = relationship(
        "WorkDocument",
        back_populates="work",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    periods: Mapped[list[RecurringPeriod]] = relationship(
        "RecurringPeriod",
        back_populates="work",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="RecurringPeriod.period_start",
    )

    __table_args__ = (
        CheckConstraint("status IN ('pending','in_progress','completed','cancelled')", name="ck_works_work_status"),
        CheckConstraint("billing_status IN ('not_billed','billed','paid')", name="ck_works_work_billing_status"),
        CheckConstraint("anchor_type IN ('current','previous','next')", name="ck_works_work_anchor"),
        CheckConstraint("end_date IS NULL OR end_date >= start_date", name="ck_works_work_dates"),
        Index("ix_works_work_scope", "tenant_id", "status"),
        Index("ix_works_work_customer", "tenant_id", "customer_id"),
    )

    @property
    def is_recurring(self) -> bool:
        return self.recurrence_pattern is not None


class WorkTask(Base):
    __tablename__ = "works_work_task"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    work_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("works_work.id", ondelete="CASCADE"),
        nullable=False,
    )
    task_template_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("catalog_task_template.id", ondelete="SET NULL"),
        nullable=True,
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    due_date: Mapped[date] = mapped_column(Date(), nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="pending", server_default="pending")
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_by: Mapped[str | None] = mapped_column(String(128), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    work: Mapped[Work] = relationship("Work", back_populates="tasks")

    __table_args__ = (
        CheckConstraint("status IN ('pending','in_progress','completed')", name="ck_works_work_task_status"),
        Index("ix_works_work_task_work", "work_id", "sort_order"),
    )


class WorkDocument(Base):
    __tablename__ = "works_work_document"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    work_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("works_work.id", ondelete="CASCADE"),
        nullable=False,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    is_required: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default="true")
    is_collected: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    work: Mapped[Work] = relationship("Work", back_populates="documents")


class RecurringPeriod(Base):
    __tablename__ = "works_recurring_period"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tenant_id: Mapped[str] = mapped_column(String(128), nullable=False)
    work_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("works_work.id", ondelete="CASCADE"),
        nullable=False,
    )
    period_start: Mapped[date] = mapped_column(Date(), nullable=False)
    period_end: Mapped[date] = mapped_column(Date(), nullable=False)
    name: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="pending", server_default="pending")
    total_tasks: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    completed_tasks: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    all_tasks_completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    withheld_tasks: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    billing_amount: Mapped[Decimal | None] = mapped_column(Numeric(18, 6), nullable=True)
    is_billed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    invoice_id: Mapped[uuid.UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    work: Mapped[Work] = relationship("Work", back_populates="periods")
    tasks: Mapped[list[PeriodTask]] = relationship(
        "PeriodTask",
        back_populates="period",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="PeriodTask.due_date",
    )
    documents: Mapped[list[PeriodDocument]] = relationship(
        "PeriodDocument",
        back_populates="period",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        UniqueConstraint("work_id", "period_start", name="uq_works_period_start"),
        CheckConstraint("period_end >= period_start", name="ck_works_period_bounds"),
        CheckConstraint("status IN ('pending','overdue','completed')", name="ck_works_period_status"),
        Index("ix_works_period_scope", "tenant_id", "status"),
    )


class PeriodTask(Base):
    __tablename__ = "works_period_task"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    period_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("works_recurring_period.id", ondelete="CASCADE"),
        nullable=False,
    )
    task_template_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("catalog_task_template.id", ondelete="SET NULL"),
        nullable=True,
    )
    instance_key: Mapped[str] = mapped_column(String(16), nullable=False, default="", server_default="")
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    due_date: Mapped[date] = mapped_column(Date(), nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="pending", server_default="pending")
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_by: Mapped[str | None] = mapped_column(String(128), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    period: Mapped[RecurringPeriod] = relationship("RecurringPeriod", back_populates="tasks")

    __table_args__ = (
        UniqueConstraint("period_id", "task_template_id", "instance_key", name="uq_works_period_task_instance"),
        CheckConstraint("status IN ('pending','in_progress','completed')", name="ck_works_period_task_status"),
        Index("ix_works_period_task_due", "period_id", "due_date"),
    )


class PeriodDocument(Base):
    __tablename__ = "works_period_document"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    period_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("works_recurring_period.id", ondelete="CASCADE"),
        nullable=False,
    )
    work_document_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("works_work_document.id", ondelete="CASCADE"),
        nullable=False,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    is_collected: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    period: Mapped[RecurringPeriod] = relationship("RecurringPeriod", back_populates="documents")

    __table_args__ = (
        UniqueConstraint("period_id", "work_document_id", name="uq_works_period_document"),
    )
