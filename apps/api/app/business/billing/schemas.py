from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


InvoiceStatus = Literal["draft", "sent", "paid", "overdue", "cancelled"]
InvoiceOrigin = Literal["auto", "manual"]
BillingSourceType = Literal["period", "work"]


class InvoiceLineInput(BaseModel):
    description: str = Field(min_length=1)
    quantity: Decimal = Field(default=Decimal("1"), gt=Decimal("0"))
    rate: Decimal = Field(ge=Decimal("0"))
    tax_rate: Decimal = Field(default=Decimal("0"), ge=Decimal("0"))


class InvoiceCreate(BaseModel):
    customer_id: UUID
    work_id: UUID | None = None
    period_id: UUID | None = None
    issue_date: date | None = None
    due_date: date | None = None
    income_account_id: UUID | None = None
    notes: str | None = None
    lines: list[InvoiceLineInput] = Field(min_length=1)


class InvoiceStatusUpdate(BaseModel):
    status: InvoiceStatus
    payment_date: date | None = None


class ManualInvoiceRequest(BaseModel):
    source_type: BillingSourceType
    source_id: UUID


class InvoiceLineRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    invoice_id: UUID
    line_no: int
    description: str
    quantity: Decimal
    rate: Decimal
    tax_rate: Decimal
    tax_amount: Decimal
    amount: Decimal


class InvoiceRead(BaseModel):
    id: UUID
    tenant_id: str
    customer_id: UUID
    work_id: UUID | None
    period_id: UUID | None
    invoice_number: str
    currency: str
    status: InvoiceStatus | str
    issue_date: date
    due_date: date
    subtotal: Decimal
    tax_amount: Decimal
    total: Decimal
    income_account_id: UUID | None
    customer_account_id: UUID | None
    origin: InvoiceOrigin | str
    notes: str | None
    paid_at: datetime | None
    created_at: datetime
    updated_at: datetime
    voucher_ids: list[UUID] = Field(default_factory=list)
    lines: list[InvoiceLineRead] = Field(default_factory=list)


class NextInvoiceNumberRead(BaseModel):
    invoice_number: str


class RefreshOverdueResponse(BaseModel):
    updated_count: int
