from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


RecurrencePattern = Literal["weekly", "monthly", "quarterly", "half_yearly", "yearly"]
TaskGranularity = Literal["inherit", "weekly", "monthly", "quarterly", "half_yearly", "yearly"]


class TaskTemplateCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: str | None = None
    granularity: TaskGranularity = "inherit"
    exact_due_date: date | None = None
    due_day_of_month: int | None = Field(default=None, ge=1, le=31)
    due_offset_days: int | None = None
    due_offset_months: int | None = None
    sort_order: int = 0
    is_active: bool = True


class TaskTemplateRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    service_id: UUID
    title: str
    description: str | None
    granularity: str
    exact_due_date: date | None
    due_day_of_month: int | None
    due_offset_days: int | None
    due_offset_months: int | None
    sort_order: int
    is_active: bool


class ServiceTemplateCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    description: str | None = None
    default_price: Decimal | None = Field(default=None, ge=Decimal("0"))
    tax_rate: Decimal = Field(default=Decimal("0"), ge=Decimal("0"), le=Decimal("100"))
    payment_terms_days: int | None = Field(default=None, ge=0, le=365)
    income_account_id: UUID | None = None
    default_recurrence: RecurrencePattern | None = None
    task_templates: list[TaskTemplateCreate] = Field(default_factory=list)


class ServiceTemplateRead(BaseModel):
    id: UUID
    tenant_id: str
    name: str
    description: str | None
    default_price: Decimal | None
    tax_rate: Decimal
    payment_terms_days: int | None
    income_account_id: UUID | None
    default_recurrence: str | None
    is_active: bool
    created_at: datetime
    task_templates: list[TaskTemplateRead] = Field(default_factory=list)


class CustomerCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    email: str | None = Field(default=None, max_length=255)
    ledger_account_id: UUID | None = None


class CustomerRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    tenant_id: str
    name: str
    email: str | None
    ledger_account_id: UUID | None
    created_at: datetime


class CustomerServicePriceUpsert(BaseModel):
    price: Decimal = Field(ge=Decimal("0"))


class CustomerServicePriceRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    customer_id: UUID
    service_id: UUID
    price: Decimal
