from __future__ import annotations

import uuid
from datetime import date

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.api.deps import get_auth_context, get_tenant_config
from app.business.billing.schemas import (
    InvoiceCreate,
    InvoiceRead,
    InvoiceStatusUpdate,
    ManualInvoiceRequest,
    NextInvoiceNumberRead,
    RefreshOverdueResponse,
)
from app.business.billing.service import billing_service
from app.core.database import get_db
from app.platform.security.context import AuthContext
from app.platform.tenancy.schemas import TenantConfig


router = APIRouter(prefix="/billing", tags=["billing"])


@router.post("/invoices", response_model=InvoiceRead, status_code=status.HTTP_201_CREATED)
def create_invoice(
    payload: InvoiceCreate,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
    config: TenantConfig = Depends(get_tenant_config),
) -> InvoiceRead:
    return billing_service.create_invoice(db, ctx, config, payload)


@router.post("/invoices/generate", response_model=InvoiceRead, status_code=status.HTTP_201_CREATED)
def generate_invoice_for_source(
    payload: ManualInvoiceRequest,
    as_of: date | None = Query(default=None),
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
    config: TenantConfig = Depends(get_tenant_config),
) -> InvoiceRead:
    return billing_service.generate_for_source(db, ctx, config, payload, today=as_of)


@router.get("/invoices", response_model=list[InvoiceRead])
def list_invoices(
    invoice_status: str | None = Query(default=None, alias="status"),
    customer_id: uuid.UUID | None = Query(default=None),
    work_id: uuid.UUID | None = Query(default=None),
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> list[InvoiceRead]:
    return billing_service.list_invoices(db, ctx, invoice_status=invoice_status, customer_id=customer_id, work_id=work_id)


@router.get("/invoices/next-number", response_model=NextInvoiceNumberRead)
def preview_next_invoice_number(
    db: Session = Depends(get_db),
    config: TenantConfig = Depends(get_tenant_config),
) -> NextInvoiceNumberRead:
    return billing_service.next_invoice_number(db, config)


@router.post("/invoices/refresh-overdue", response_model=RefreshOverdueResponse)
def refresh_overdue_invoices(
    as_of: date | None = Query(default=None),
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
    config: TenantConfig = Depends(get_tenant_config),
) -> RefreshOverdueResponse:
    return billing_service.refresh_overdue_invoices(db, ctx, config, as_of or date.today())


@router.get("/invoices/{invoice_id}", response_model=InvoiceRead)
def get_invoice(
    invoice_id: uuid.UUID,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> InvoiceRead:
    return billing_service.get_invoice(db, ctx, invoice_id)


@router.patch("/invoices/{invoice_id}/status", response_model=InvoiceRead)
def update_invoice_status(
    invoice_id: uuid.UUID,
    payload: InvoiceStatusUpdate,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
    config: TenantConfig = Depends(get_tenant_config),
) -> InvoiceRead:
    return billing_service.update_status(db, ctx, config, invoice_id, payload)
