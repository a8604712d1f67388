from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator


LedgerAccountType = Literal["asset", "liability", "equity", "income", "expense"]
VoucherStatus = Literal["draft", "posted", "cancelled"]
VoucherType = Literal["sales", "receipt", "payment", "journal", "contra", "credit_note"]


class LedgerAccountCreate(BaseModel):
    code: str = Field(min_length=1, max_length=64)
    name: str = Field(min_length=1, max_length=255)
    type: LedgerAccountType
    currency: str | None = Field(default=None, min_length=1, max_length=16)
    parent_id: UUID | None = None
    is_group: bool = False
    opening_balance: Decimal = Decimal("0")


class LedgerAccountRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    tenant_id: str
    parent_id: UUID | None
    code: str
    name: str
    type: str
    currency: str
    is_group: bool
    opening_balance: Decimal
    current_balance: Decimal
    is_active: bool
    created_at: datetime


class VoucherEntryInput(BaseModel):
    account_id: UUID
    debit_amount: Decimal = Field(default=Decimal("0"), ge=Decimal("0"))
    credit_amount: Decimal = Field(default=Decimal("0"), ge=Decimal("0"))
    narration: str | None = None


class VoucherCreate(BaseModel):
    voucher_type: VoucherType
    voucher_date: date
    narration: str | None = None
    source_type: str | None = None
    source_id: str | None = None
    entries: list[VoucherEntryInput] = Field(min_length=2)
    post: bool = False

    @model_validator(mode="after")
    def _single_sided(self) -> VoucherCreate:
        for entry in self.entries:
            if (entry.debit_amount > 0) == (entry.credit_amount > 0):
                raise ValueError("each voucher entry must be single-sided")
        return self


class VoucherEntryRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    line_no: int
    account_id: UUID
    debit_amount: Decimal
    credit_amount: Decimal
    narration: str | None


class VoucherRead(BaseModel):
    id: UUID
    tenant_id: str
    voucher_type: str
    voucher_number: str
    voucher_date: date
    status: VoucherStatus | str
    narration: str | None
    source_type: str | None
    source_id: str | None
    total_amount: Decimal
    created_by: str
    posted_at: datetime | None
    created_at: datetime
    entries: list[VoucherEntryRead] = Field(default_factory=list)


class LedgerTransactionRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    voucher_id: UUID
    account_id: UUID
    transaction_date: date
    debit: Decimal
    credit: Decimal
    narration: str | None


class StatementLine(BaseModel):
    transaction_id: UUID
    voucher_id: UUID
    transaction_date: date
    narration: str | None
    debit: Decimal
    credit: Decimal
    running_balance: Decimal


class AccountStatement(BaseModel):
    account_id: UUID
    opening_balance: Decimal
    closing_balance: Decimal
    lines: list[StatementLine] = Field(default_factory=list)


class SeedChartAccountsRequest(BaseModel):
    currency: str | None = Field(default=None, min_length=1)
