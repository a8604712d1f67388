from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app import audit
from app.platform.security.context import AuthContext
from app.platform.tenancy.models import TenantSettings
from app.platform.tenancy.schemas import (
    NumberFormat,
    TenantConfig,
    TenantConfigRead,
    TenantConfigUpdate,
    VoucherNumberingInput,
)


@dataclass(slots=True)
class TenantConfigService:
    def get_config(self, session: Session, tenant_id: str) -> TenantConfig:
        row = self._get_row(session, tenant_id)
        if row is None:
            return TenantConfig(tenant_id=tenant_id)
        return self.to_config(row)

    def read_config(self, session: Session, ctx: AuthContext, tenant_id: str) -> TenantConfigRead:
        row = self._get_row(session, tenant_id)
        if row is None:
            row = TenantSettings(tenant_id=tenant_id)
            self._apply_column_defaults(row)
        return self._to_read(row)

    def upsert_config(self, session: Session, ctx: AuthContext, tenant_id: str, payload: TenantConfigUpdate) -> TenantConfigRead:
        row = self._get_row(session, tenant_id)
        before = self._to_read(row).model_dump(mode="json") if row is not None else None
        if row is None:
            row = TenantSettings(tenant_id=tenant_id)
            self._apply_column_defaults(row)
            session.add(row)

        changes = payload.model_dump(mode="python", exclude_unset=True)
        voucher_numbering = changes.pop("voucher_numbering", None)
        for key, value in changes.items():
            if value is None and key not in {"default_income_account_id", "default_cash_account_id"}:
                continue
            setattr(row, key, value)
        if voucher_numbering is not None:
            merged = dict(row.voucher_numbering_json or {})
            for voucher_type, numbering in voucher_numbering.items():
                merged[voucher_type] = dict(numbering)
            row.voucher_numbering_json = merged

        try:
            session.commit()
        except IntegrityError:
            session.rollback()
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="tenant settings already exist")
        session.refresh(row)

        result = self._to_read(row)
        audit.record(
            actor_user_id=ctx.user_id,
            entity_type="tenant.settings",
            entity_id=tenant_id,
            action="tenant.settings.updated",
            before=before,
            after=result.model_dump(mode="json"),
            correlation_id=ctx.correlation_id,
            tenant_id=tenant_id,
        )
        return result

    @staticmethod
    def to_config(row: TenantSettings) -> TenantConfig:
        voucher_numbering: dict[str, NumberFormat] = {}
        for voucher_type, raw in (row.voucher_numbering_json or {}).items():
            parsed = VoucherNumberingInput.model_validate(raw)
            voucher_numbering[voucher_type] = NumberFormat(
                prefix=parsed.prefix,
                suffix=parsed.suffix,
                width=parsed.width,
                zero_pad=parsed.zero_pad,
                starting_number=parsed.starting_number,
            )
        return TenantConfig(
            tenant_id=row.tenant_id,
            currency=row.currency,
            invoice_numbering=NumberFormat(
                prefix=row.invoice_prefix,
                suffix=row.invoice_suffix or "",
                width=row.invoice_number_width,
                zero_pad=row.invoice_zero_pad,
                starting_number=row.invoice_starting_number,
            ),
            voucher_numbering=voucher_numbering,
            default_income_account_id=row.default_income_account_id,
            default_cash_account_id=row.default_cash_account_id,
            fiscal_year_start_month=row.fiscal_year_start_month,
            unmapped_income_policy="block" if row.unmapped_income_policy == "block" else "allow",
            lookahead_periods=max(0, row.lookahead_periods),
            default_payment_terms_days=row.default_payment_terms_days,
        )

    @staticmethod
    def _get_row(session: Session, tenant_id: str) -> TenantSettings | None:
        return session.scalar(select(TenantSettings).where(TenantSettings.tenant_id == tenant_id))

    @staticmethod
    def _apply_column_defaults(row: TenantSettings) -> None:
        defaults: dict[str, Any] = {
            "currency": "INR",
            "invoice_prefix": "INV",
            "invoice_suffix": "",
            "invoice_number_width": 4,
            "invoice_zero_pad": True,
            "invoice_starting_number": 1,
            "fiscal_year_start_month": 4,
            "unmapped_income_policy": "allow",
            "lookahead_periods": 0,
            "default_payment_terms_days": 30,
        }
        for key, value in defaults.items():
            if getattr(row, key) is None:
                setattr(row, key, value)

    @staticmethod
    def _to_read(row: TenantSettings) -> TenantConfigRead:
        payload = {
            "tenant_id": row.tenant_id,
            "currency": row.currency,
            "invoice_prefix": row.invoice_prefix,
            "invoice_suffix": row.invoice_suffix,
            "invoice_number_width": row.invoice_number_width,
            "invoice_zero_pad": row.invoice_zero_pad,
            "invoice_starting_number": row.invoice_starting_number,
            "voucher_numbering": row.voucher_numbering_json or {},
            "default_income_account_id": row.default_income_account_id,
            "default_cash_account_id": row.default_cash_account_id,
            "fiscal_year_start_month": row.fiscal_year_start_month,
            "unmapped_income_policy": row.unmapped_income_policy,
            "lookahead_periods": row.lookahead_periods,
            "default_payment_terms_days": row.default_payment_terms_days,
            "updated_at": row.updated_at,
        }
        return TenantConfigRead.model_validate(payload)


tenant_config_service = TenantConfigService()
