from __future__ import annotations

from datetime import date
import uuid

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.api.deps import get_auth_context, get_tenant_config
from app.core.database import get_db
from app.platform.ledger.schemas import (
    AccountStatement,
    LedgerAccountCreate,
    LedgerAccountRead,
    LedgerTransactionRead,
    SeedChartAccountsRequest,
    VoucherCreate,
    VoucherRead,
)
from app.platform.ledger.service import ledger_service
from app.platform.security.context import AuthContext
from app.platform.tenancy.schemas import TenantConfig


router = APIRouter(prefix="/ledger", tags=["ledger"])


@router.post("/accounts", response_model=LedgerAccountRead, status_code=status.HTTP_201_CREATED)
def create_account(
    payload: LedgerAccountCreate,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
    config: TenantConfig = Depends(get_tenant_config),
) -> LedgerAccountRead:
    return ledger_service.create_account(db, ctx, config, payload)


@router.get("/accounts", response_model=list[LedgerAccountRead])
def list_accounts(
    account_type: str | None = Query(default=None, alias="type"),
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> list[LedgerAccountRead]:
    return ledger_service.list_accounts(db, ctx, tenant_id=ctx.require_tenant(), account_type=account_type)


@router.get("/accounts/{account_id}", response_model=LedgerAccountRead)
def get_account(
    account_id: uuid.UUID,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> LedgerAccountRead:
    return ledger_service.get_account(db, ctx, account_id)


@router.get("/accounts/{account_id}/transactions", response_model=list[LedgerTransactionRead])
def list_account_transactions(
    account_id: uuid.UUID,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> list[LedgerTransactionRead]:
    return ledger_service.list_transactions(db, ctx, account_id)


@router.get("/accounts/{account_id}/statement", response_model=AccountStatement)
def account_statement(
    account_id: uuid.UUID,
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> AccountStatement:
    return ledger_service.account_statement(db, ctx, account_id, start_date=start_date, end_date=end_date)


@router.post("/accounts/{account_id}/recalculate", response_model=LedgerAccountRead)
def recalculate_balance(
    account_id: uuid.UUID,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> LedgerAccountRead:
    return ledger_service.recalculate_balance(db, ctx, account_id)


@router.post("/seed", response_model=list[LedgerAccountRead], status_code=status.HTTP_201_CREATED)
def seed_chart_of_accounts(
    payload: SeedChartAccountsRequest,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
    config: TenantConfig = Depends(get_tenant_config),
) -> list[LedgerAccountRead]:
    return ledger_service.seed_chart_of_accounts(
        db,
        ctx,
        tenant_id=config.tenant_id,
        currency=payload.currency or config.currency,
    )


@router.post("/vouchers", response_model=VoucherRead, status_code=status.HTTP_201_CREATED)
def create_voucher(
    payload: VoucherCreate,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
    config: TenantConfig = Depends(get_tenant_config),
) -> VoucherRead:
    voucher = ledger_service.create_voucher(db, ctx, config, payload)
    return ledger_service.to_voucher_read(voucher)


@router.get("/vouchers", response_model=list[VoucherRead])
def list_vouchers(
    voucher_type: str | None = Query(default=None),
    source_type: str | None = Query(default=None),
    source_id: str | None = Query(default=None),
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> list[VoucherRead]:
    return ledger_service.list_vouchers(
        db,
        ctx,
        tenant_id=ctx.require_tenant(),
        voucher_type=voucher_type,
        source_type=source_type,
        source_id=source_id,
    )


@router.get("/vouchers/{voucher_id}", response_model=VoucherRead)
def get_voucher(
    voucher_id: uuid.UUID,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> VoucherRead:
    return ledger_service.get_voucher(db, ctx, voucher_id)


@router.post("/vouchers/{voucher_id}/post", response_model=VoucherRead)
def post_voucher(
    voucher_id: uuid.UUID,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> VoucherRead:
    return ledger_service.post_voucher(db, ctx, voucher_id)


@router.post("/vouchers/{voucher_id}/unpost", response_model=VoucherRead)
def unpost_voucher(
    voucher_id: uuid.UUID,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> VoucherRead:
    return ledger_service.unpost_voucher(db, ctx, voucher_id)


@router.post("/vouchers/{voucher_id}/cancel", response_model=VoucherRead)
def cancel_voucher(
    voucher_id: uuid.UUID,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> VoucherRead:
    return ledger_service.cancel_voucher(db, ctx, voucher_id)
