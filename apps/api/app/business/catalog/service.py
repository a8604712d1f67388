from __future__ import annotations

import uuid
from dataclasses import dataclass
from decimal import Decimal

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from app.business.catalog.models import Customer, CustomerServicePrice, ServiceTemplate, TaskTemplate
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
from app.platform.ledger.models import LedgerAccount
from app.platform.security.context import AuthContext


@dataclass(slots=True)
class CatalogService:
    def create_service(self, session: Session, ctx: AuthContext, dto: ServiceTemplateCreate) -> ServiceTemplateRead:
        tenant_id = ctx.require_tenant()
        payload = dto.model_dump(mode="python", exclude={"task_templates"})
        if dto.income_account_id is not None:
            self._assert_account(session, tenant_id, dto.income_account_id)

        service = ServiceTemplate(tenant_id=tenant_id, **payload)
        service.task_templates = [TaskTemplate(**item.model_dump(mode="python")) for item in dto.task_templates]
        session.add(service)
        try:
            session.commit()
        except IntegrityError:
            session.rollback()
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="service already exists")
        return self.get_service(session, ctx, service.id)

    def add_task_template(
        self,
        session: Session,
        ctx: AuthContext,
        service_id: uuid.UUID,
        dto: TaskTemplateCreate,
    ) -> TaskTemplateRead:
        service = self._get_service(session, ctx.require_tenant(), service_id)
        template = TaskTemplate(service_id=service.id, **dto.model_dump(mode="python"))
        session.add(template)
        session.commit()
        session.refresh(template)
        return TaskTemplateRead.model_validate(template)

    def list_services(self, session: Session, ctx: AuthContext) -> list[ServiceTemplateRead]:
        rows = session.scalars(
            select(ServiceTemplate)
            .where(ServiceTemplate.tenant_id == ctx.require_tenant())
            .options(selectinload(ServiceTemplate.task_templates))
            .order_by(ServiceTemplate.name.asc())
        ).all()
        return [self._to_service_read(row) for row in rows]

    def get_service(self, session: Session, ctx: AuthContext, service_id: uuid.UUID) -> ServiceTemplateRead:
        return self._to_service_read(self._get_service(session, ctx.require_tenant(), service_id))

    def create_customer(self, session: Session, ctx: AuthContext, dto: CustomerCreate) -> CustomerRead:
        tenant_id = ctx.require_tenant()
        if dto.ledger_account_id is not None:
            self._assert_account(session, tenant_id, dto.ledger_account_id)
        customer = Customer(tenant_id=tenant_id, **dto.model_dump(mode="python"))
        session.add(customer)
        session.commit()
        session.refresh(customer)
        return CustomerRead.model_validate(customer)

    def list_customers(self, session: Session, ctx: AuthContext) -> list[CustomerRead]:
        rows = session.scalars(
            select(Customer).where(Customer.tenant_id == ctx.require_tenant()).order_by(Customer.name.asc())
        ).all()
        return [CustomerRead.model_validate(row) for row in rows]

    def get_customer(self, session: Session, ctx: AuthContext, customer_id: uuid.UUID) -> CustomerRead:
        return CustomerRead.model_validate(self._get_customer(session, ctx.require_tenant(), customer_id))

    def upsert_customer_price(
        self,
        session: Session,
        ctx: AuthContext,
        customer_id: uuid.UUID,
        service_id: uuid.UUID,
        dto: CustomerServicePriceUpsert,
    ) -> CustomerServicePriceRead:
        tenant_id = ctx.require_tenant()
        customer = self._get_customer(session, tenant_id, customer_id)
        service = self._get_service(session, tenant_id, service_id)
        row = session.scalar(
            select(CustomerServicePrice).where(
                CustomerServicePrice.customer_id == customer.id,
                CustomerServicePrice.service_id == service.id,
            )
        )
        if row is None:
            row = CustomerServicePrice(customer_id=customer.id, service_id=service.id, price=dto.price)
            session.add(row)
        else:
            row.price = dto.price
        session.commit()
        session.refresh(row)
        return CustomerServicePriceRead.model_validate(row)

    def customer_price_for(self, session: Session, customer_id: uuid.UUID, service_id: uuid.UUID) -> Decimal | None:
        return session.scalar(
            select(CustomerServicePrice.price).where(
                CustomerServicePrice.customer_id == customer_id,
                CustomerServicePrice.service_id == service_id,
            )
        )

    def active_task_templates(self, session: Session, service_id: uuid.UUID) -> list[TaskTemplate]:
        return list(
            session.scalars(
                select(TaskTemplate)
                .where(TaskTemplate.service_id == service_id, TaskTemplate.is_active.is_(True))
                .order_by(TaskTemplate.sort_order.asc(), TaskTemplate.title.asc())
            ).all()
        )

    @staticmethod
    def _assert_account(session: Session, tenant_id: str, account_id: uuid.UUID) -> None:
        account = session.scalar(
            select(LedgerAccount).where(LedgerAccount.id == account_id, LedgerAccount.tenant_id == tenant_id)
        )
        if account is None:
            raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="ledger account not found")

    @staticmethod
    def _get_service(session: Session, tenant_id: str, service_id: uuid.UUID) -> ServiceTemplate:
        service = session.scalar(
            select(ServiceTemplate)
            .where(ServiceTemplate.id == service_id, ServiceTemplate.tenant_id == tenant_id)
            .options(selectinload(ServiceTemplate.task_templates))
        )
        if service is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="service not found")
        return service

    @staticmethod
    def _get_customer(session: Session, tenant_id: str, customer_id: uuid.UUID) -> Customer:
        customer = session.scalar(select(Customer).where(Customer.id == customer_id, Customer.tenant_id == tenant_id))
        if customer is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="customer not found")
        return customer

    @staticmethod
    def _to_service_read(service: ServiceTemplate) -> ServiceTemplateRead:
        payload = {
            "id": service.id,
            "tenant_id": service.tenant_id,
            "name": service.name,
            "description": service.description,
            "default_price": service.default_price,
            "tax_rate": service.tax_rate,
            "payment_terms_days": service.payment_terms_days,
            "income_account_id": service.income_account_id,
            "default_recurrence": service.default_recurrence,
            "is_active": service.is_active,
            "created_at": service.created_at,
            "task_templates": [TaskTemplateRead.model_validate(item) for item in service.task_templates],
        }
        return ServiceTemplateRead.model_validate(payload)


catalog_service = CatalogService()
