from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator


AnchorType = Literal["current", "previous", "next"]
WorkStatus = Literal["pending", "in_progress", "completed", "cancelled"]
BillingStatus = Literal["not_billed", "billed", "paid"]
TaskStatus = Literal["pending", "in_progress", "completed"]
PeriodStatus = Literal["pending", "overdue", "completed"]


class WorkCreate(BaseModel):
    customer_id: UUID
    service_id: UUID
    title: str = Field(min_length=1, max_length=255)
    description: str | None = None
    is_recurring: bool = False
    recurrence_pattern: str | None = None
    start_date: date
    end_date: date | None = None
    anchor_type: AnchorType = "current"
    assigned_to: str | None = None
    billing_amount: Decimal | None = Field(default=None, ge=Decimal("0"))
    auto_bill: bool = True
    documents: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def validate_dates(self) -> WorkCreate:
        if self.end_date is not None and self.end_date < self.start_date:
            raise ValueError("end_date must not precede start_date")
        return self


class WorkStatusUpdate(BaseModel):
    status: WorkStatus


class TaskStatusUpdate(BaseModel):
    status: TaskStatus


class PeriodTaskCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    due_date: date
    sort_order: int = 0


class WorkDocumentCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    is_required: bool = True


class DocumentCollectedUpdate(BaseModel):
    is_collected: bool


class WorkTaskRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    work_id: UUID
    task_template_id: UUID | None
    title: str
    due_date: date
    status: TaskStatus | str
    sort_order: int
    completed_at: datetime | None
    completed_by: str | None


class WorkDocumentRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    work_id: UUID
    name: str
    is_required: bool
    is_collected: bool


class PeriodTaskRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    period_id: UUID
    task_template_id: UUID | None
    instance_key: str
    title: str
    due_date: date
    status: TaskStatus | str
    sort_order: int
    completed_at: datetime | None
    completed_by: str | None


class PeriodDocumentRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    period_id: UUID
    work_document_id: UUID
    name: str
    is_collected: bool


class PeriodRead(BaseModel):
    id: UUID
    work_id: UUID
    period_start: date
    period_end: date
    name: str
    status: PeriodStatus | str
    total_tasks: int
    completed_tasks: int
    all_tasks_completed: bool
    withheld_tasks: int
    billing_amount: Decimal | None
    is_billed: bool
    invoice_id: UUID | None
    completed_at: datetime | None
    tasks: list[PeriodTaskRead] = Field(default_factory=list)
    documents: list[PeriodDocumentRead] = Field(default_factory=list)


class WorkRead(BaseModel):
    id: UUID
    tenant_id: str
    customer_id: UUID
    service_id: UUID
    title: str
    description: str | None
    is_recurring: bool
    recurrence_pattern: str | None
    start_date: date
    end_date: date | None
    anchor_type: AnchorType | str
    assigned_to: str | None
    billing_amount: Decimal | None
    auto_bill: bool
    status: WorkStatus | str
    billing_status: BillingStatus | str
    invoice_id: UUID | None
    last_backfill_at: datetime | None
    created_at: datetime
    updated_at: datetime
    tasks: list[WorkTaskRead] = Field(default_factory=list)
    documents: list[WorkDocumentRead] = Field(default_factory=list)
    period_count: int = 0


class TaskStatusResult(BaseModel):
    task_id: UUID
    task_status: TaskStatus | str
    aggregate_status: str
    previous_aggregate_status: str
    completed_tasks: int
    total_tasks: int
    invoice_id: UUID | None = None


class BackfillRead(BaseModel):
    work_id: UUID
    periods_created: int
    tasks_created: int
    periods_visited: int
    cap_reached: bool
    period_ids: list[UUID] = Field(default_factory=list)


class TenantBackfillRead(BaseModel):
    tenant_id: str
    works: int
    periods_created: int
    tasks_created: int
    periods_status_changed: int
    invoices_marked_overdue: int
    failed_work_ids: list[UUID] = Field(default_factory=list)


class RecalculateDueDatesRead(BaseModel):
    work_id: UUID
    updated_tasks: int


class PeriodUpdate(BaseModel):
    billing_amount: Decimal | None = Field(default=None, ge=Decimal("0"))
