from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from app.api.deps import get_auth_context
from app.business.catalog.schemas import (
    CustomerCreate,
    CustomerRead,
    CustomerServicePriceRead,
    CustomerServicePriceUpsert,
    ServiceTemplateCreate,
    ServiceTemplateRead,
    TaskTemplateCreate,
    TaskTemplateRead,
)
from app.business.catalog.service import catalog_service
from app.core.database import get_db
from app.platform.security.context import AuthContext


router = APIRouter(prefix="/catalog", tags=["catalog"])


@router.post("/services", response_model=ServiceTemplateRead, status_code=status.HTTP_201_CREATED)
def create_service(
    payload: ServiceTemplateCreate,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> ServiceTemplateRead:
    return catalog_service.create_service(db, ctx, payload)


@router.get("/services", response_model=list[ServiceTemplateRead])
def list_services(
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> list[ServiceTemplateRead]:
    return catalog_service.list_services(db, ctx)


@router.get("/services/{service_id}", response_model=ServiceTemplateRead)
def get_service(
    service_id: uuid.UUID,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> ServiceTemplateRead:
    return catalog_service.get_service(db, ctx, service_id)


@router.post("/services/{service_id}/task-templates", response_model=TaskTemplateRead, status_code=status.HTTP_201_CREATED)
def add_task_template(
    service_id: uuid.UUID,
    payload: TaskTemplateCreate,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> TaskTemplateRead:
    return catalog_service.add_task_template(db, ctx, service_id, payload)


@router.post("/customers", response_model=CustomerRead, status_code=status.HTTP_201_CREATED)
def create_customer(
    payload: CustomerCreate,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> CustomerRead:
    return catalog_service.create_customer(db, ctx, payload)


@router.get("/customers", response_model=list[CustomerRead])
def list_customers(
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> list[CustomerRead]:
    return catalog_service.list_customers(db, ctx)


@router.get("/customers/{customer_id}", response_model=CustomerRead)
def get_customer(
    customer_id: uuid.UUID,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> CustomerRead:
    return catalog_service.get_customer(db, ctx, customer_id)


@router.put("/customers/{customer_id}/prices/{service_id}", response_model=CustomerServicePriceRead)
def upsert_customer_price(
    customer_id: uuid.UUID,
    service_id: uuid.UUID,
    payload: CustomerServicePriceUpsert,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> CustomerServicePriceRead:
    return catalog_service.upsert_customer_price(db, ctx, customer_id, service_id, payload)
