from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


UnmappedIncomePolicy = Literal["allow", "block"]
VoucherType = Literal["sales", "receipt", "payment", "journal", "contra", "credit_note"]

DEFAULT_VOUCHER_PREFIXES: dict[str, str] = {
    "sales": "SV",
    "receipt": "RCT",
    "payment": "PAY",
    "journal": "JV",
    "contra": "CNT",
    "credit_note": "CN",
}


@dataclass(frozen=True, slots=True)
class NumberFormat:
    prefix: str
    suffix: str = ""
    width: int = 4
    zero_pad: bool = True
    starting_number: int = 1

    def render(self, number: int) -> str:
        body = str(number).zfill(self.width) if self.zero_pad else str(number)
        parts = [self.prefix, body] if self.prefix else [body]
        if self.suffix:
            parts.append(self.suffix)
        return "-".join(parts)


@dataclass(frozen=True, slots=True)
class TenantConfig:
    """Per-tenant engine configuration, passed explicitly into every operation."""

    tenant_id: str
    currency: str = "INR"
    invoice_numbering: NumberFormat = NumberFormat(prefix="INV")
    voucher_numbering: dict[str, NumberFormat] = field(default_factory=dict)
    default_income_account_id: UUID | None = None
    default_cash_account_id: UUID | None = None
    fiscal_year_start_month: int = 4
    unmapped_income_policy: UnmappedIncomePolicy = "allow"
    lookahead_periods: int = 0
    default_payment_terms_days: int = 30

    def voucher_format(self, voucher_type: str) -> NumberFormat:
        configured = self.voucher_numbering.get(voucher_type)
        if configured is not None:
            return configured
        return NumberFormat(prefix=DEFAULT_VOUCHER_PREFIXES.get(voucher_type, "JV"), width=6)


class VoucherNumberingInput(BaseModel):
    prefix: str = Field(min_length=1, max_length=16)
    suffix: str = Field(default="", max_length=16)
    width: int = Field(default=6, ge=1, le=12)
    zero_pad: bool = True
    starting_number: int = Field(default=1, ge=0)


class TenantConfigUpdate(BaseModel):
    currency: str | None = Field(default=None, min_length=1, max_length=16)
    invoice_prefix: str | None = Field(default=None, max_length=32)
    invoice_suffix: str | None = Field(default=None, max_length=32)
    invoice_number_width: int | None = Field(default=None, ge=1, le=12)
    invoice_zero_pad: bool | None = None
    invoice_starting_number: int | None = Field(default=None, ge=0)
    voucher_numbering: dict[VoucherType, VoucherNumberingInput] | None = None
    default_income_account_id: UUID | None = None
    default_cash_account_id: UUID | None = None
    fiscal_year_start_month: int | None = Field(default=None, ge=1, le=12)
    unmapped_income_policy: UnmappedIncomePolicy | None = None
    lookahead_periods: int | None = Field(default=None, ge=0, le=12)
    default_payment_terms_days: int | None = Field(default=None, ge=0, le=365)


class TenantConfigRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    tenant_id: str
    currency: str
    invoice_prefix: str
    invoice_suffix: str
    invoice_number_width: int
    invoice_zero_pad: bool
    invoice_starting_number: int
    voucher_numbering: dict[str, VoucherNumberingInput] = Field(default_factory=dict)
    default_income_account_id: UUID | None
    default_cash_account_id: UUID | None
    fiscal_year_start_month: int
    unmapped_income_policy: str
    lookahead_periods: int
    default_payment_terms_days: int
    updated_at: datetime | None = None
