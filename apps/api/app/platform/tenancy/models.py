from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, CheckConstraint, DateTime, Integer, JSON, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TenantSettings(Base):
    __tablename__ = "tenant_settings"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tenant_id: Mapped[str] = mapped_column(String(128), nullable=False)
    currency: Mapped[str] = mapped_column(String(16), nullable=False, default="INR", server_default="INR")
    invoice_prefix: Mapped[str] = mapped_column(String(32), nullable=False, default="INV", server_default="INV")
    invoice_suffix: Mapped[str] = mapped_column(String(32), nullable=False, default="", server_default="")
    invoice_number_width: Mapped[int] = mapped_column(Integer, nullable=False, default=4, server_default="4")
    invoice_zero_pad: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default="true")
    invoice_starting_number: Mapped[int] = mapped_column(Integer, nullable=False, default=1, server_default="1")
    voucher_numbering_json: Mapped[dict[str, dict[str, object]] | None] = mapped_column(JSON, nullable=True)
    default_income_account_id: Mapped[uuid.UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True)
    default_cash_account_id: Mapped[uuid.UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True)
    fiscal_year_start_month: Mapped[int] = mapped_column(Integer, nullable=False, default=4, server_default="4")
    unmapped_income_policy: Mapped[str] = mapped_column(String(16), nullable=False, default="allow", server_default="allow")
    lookahead_periods: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    default_payment_terms_days: Mapped[int] = mapped_column(Integer, nullable=False, default=30, server_default="30")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint("tenant_id", name="uq_tenant_settings_tenant"),
        CheckConstraint("fiscal_year_start_month BETWEEN 1 AND 12", name="ck_tenant_settings_fiscal_month"),
        CheckConstraint("invoice_number_width >= 1", name="ck_tenant_settings_invoice_width"),
        CheckConstraint("lookahead_periods >= 0", name="ck_tenant_settings_lookahead"),
    )
