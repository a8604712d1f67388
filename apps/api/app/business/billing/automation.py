"""Invoice generation for completed periods and one-off works.

Preconditions that are not met are skips, not errors: they are logged,
counted, and re-evaluated on the next completion. The manual entry point
reuses the same evaluation but turns a skip into an HTTP error.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import NoReturn

from fastapi import HTTPException, status
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app import audit, events
from app.business.billing.models import Invoice, InvoiceLine
from app.business.catalog.models import Customer, ServiceTemplate
from app.business.catalog.service import catalog_service
from app.business.works.models import RecurringPeriod, Work
from app.metrics import observe_billing_skipped, observe_invoice_generated
from app.platform.ledger.service import ledger_service
from app.platform.numbering import insert_numbered
from app.platform.security.context import AuthContext
from app.platform.tenancy.schemas import TenantConfig


logger = logging.getLogger("app.billing.automation")

PERIOD_SOURCE = "period"
WORK_SOURCE = "work"

SKIP_AUTO_BILL_DISABLED = "auto_bill_disabled"
SKIP_NOT_COMPLETED = "not_completed"
SKIP_ALREADY_BILLED = "already_billed"
SKIP_NO_PRICE = "no_price"
SKIP_INCOME_UNMAPPED = "income_account_unmapped"
SKIP_MISSING_DATA = "missing_data"

_CENT = Decimal("0.01")


class BillingSkipped(Exception):
    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


@dataclass(frozen=True, slots=True)
class InvoicePlan:
    source_type: str
    work: Work
    period: RecurringPeriod | None
    customer: Customer
    service: ServiceTemplate
    price: Decimal
    tax_rate: Decimal
    tax_amount: Decimal
    income_account_id: uuid.UUID | None
    issue_date: date
    due_date: date
    label: str

    @property
    def total(self) -> Decimal:
        return self.price + self.tax_amount


def resolve_price(
    period_override: Decimal | None,
    work_override: Decimal | None,
    customer_price: Decimal | None,
    default_price: Decimal | None,
) -> Decimal | None:
    for candidate in (period_override, work_override, customer_price, default_price):
        if candidate is not None:
            return Decimal(candidate)
    return None


def compute_tax(price: Decimal, rate: Decimal) -> Decimal:
    return (Decimal(price) * Decimal(rate) / Decimal("100")).quantize(_CENT, rounding=ROUND_HALF_UP)


@dataclass(slots=True)
class BillingAutomation:
    def on_completion(
        self,
        session: Session,
        ctx: AuthContext,
        config: TenantConfig,
        *,
        source_type: str,
        source_id: uuid.UUID,
        today: date,
    ) -> Invoice | None:
        """Create the invoice for a source that just transitioned into completed.

        Returns None when a precondition is not met. The caller owns the
        transaction.
        """
        try:
            plan = self._plan(session, config, source_type, source_id, today, require_auto_bill=True)
        except BillingSkipped as exc:
            observe_billing_skipped(exc.reason)
            logger.info(
                "billing_skipped",
                extra={"tenant_id": config.tenant_id, "reason": exc.reason, f"{source_type}_id": str(source_id)},
            )
            return None
        return self._create_invoice(session, ctx, config, plan, trigger="auto")

    def manually_generate_invoice(
        self,
        session: Session,
        ctx: AuthContext,
        config: TenantConfig,
        *,
        source_type: str,
        source_id: uuid.UUID,
        today: date,
    ) -> Invoice:
        try:
            plan = self._plan(session, config, source_type, source_id, today, require_auto_bill=False)
        except BillingSkipped as exc:
            if exc.reason == SKIP_MISSING_DATA:
                raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"{source_type} not found")
            if exc.reason == SKIP_ALREADY_BILLED:
                raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=f"{source_type} already billed")
            raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=f"cannot invoice {source_type}: {exc.reason}")
        invoice = self._create_invoice(session, ctx, config, plan, trigger="manual")
        session.commit()
        session.refresh(invoice)
        return invoice

    def _plan(
        self,
        session: Session,
        config: TenantConfig,
        source_type: str,
        source_id: uuid.UUID,
        today: date,
        *,
        require_auto_bill: bool,
    ) -> InvoicePlan:
        period: RecurringPeriod | None = None
        if source_type == PERIOD_SOURCE:
            period = session.get(RecurringPeriod, source_id)
            if period is None or period.tenant_id != config.tenant_id:
                self._missing(config, source_type, source_id)
            work = session.get(Work, period.work_id)
        elif source_type == WORK_SOURCE:
            work = session.get(Work, source_id)
        else:
            raise ValueError(f"unknown billing source {source_type!r}")
        if work is None or work.tenant_id != config.tenant_id:
            self._missing(config, source_type, source_id)

        customer = session.get(Customer, work.customer_id)
        service = session.get(ServiceTemplate, work.service_id)
        if customer is None or service is None:
            self._missing(config, source_type, source_id)

        if require_auto_bill and not work.auto_bill:
            raise BillingSkipped(SKIP_AUTO_BILL_DISABLED)
        if period is not None:
            if period.status != "completed":
                raise BillingSkipped(SKIP_NOT_COMPLETED)
            if period.is_billed or period.invoice_id is not None:
                raise BillingSkipped(SKIP_ALREADY_BILLED)
        else:
            if work.is_recurring:
                raise BillingSkipped(SKIP_NOT_COMPLETED)
            if work.status != "completed":
                raise BillingSkipped(SKIP_NOT_COMPLETED)
            if work.billing_status != "not_billed" or work.invoice_id is not None:
                raise BillingSkipped(SKIP_ALREADY_BILLED)
        if self._active_invoice_exists(session, work.id, period.id if period is not None else None):
            raise BillingSkipped(SKIP_ALREADY_BILLED)

        price = resolve_price(
            period.billing_amount if period is not None else None,
            work.billing_amount,
            catalog_service.customer_price_for(session, customer.id, service.id),
            service.default_price,
        )
        if price is None or price <= Decimal("0"):
            raise BillingSkipped(SKIP_NO_PRICE)

        income_account_id = service.income_account_id or config.default_income_account_id
        if income_account_id is None and config.unmapped_income_policy == "block":
            raise BillingSkipped(SKIP_INCOME_UNMAPPED)

        tax_rate = Decimal(service.tax_rate or 0)
        terms = service.payment_terms_days if service.payment_terms_days is not None else config.default_payment_terms_days
        return InvoicePlan(
            source_type=source_type,
            work=work,
            period=period,
            customer=customer,
            service=service,
            price=Decimal(price),
            tax_rate=tax_rate,
            tax_amount=compute_tax(price, tax_rate),
            income_account_id=income_account_id,
            issue_date=today,
            due_date=today + timedelta(days=terms),
            label=period.name if period is not None else work.title,
        )

    def _create_invoice(self, session: Session, ctx: AuthContext, config: TenantConfig, plan: InvoicePlan, *, trigger: str) -> Invoice:
        customer = plan.customer
        if customer.ledger_account_id is None:
            account = ledger_service.ensure_customer_account(session, config, customer.name)
            customer.ledger_account_id = account.id
            logger.info(
                "customer_account_created",
                extra={"tenant_id": config.tenant_id, "reason": customer.name, "document_number": account.code},
            )
        if plan.income_account_id is None:
            logger.warning(
                "invoice_income_account_unmapped",
                extra={"tenant_id": config.tenant_id, "work_id": str(plan.work.id)},
            )

        work = plan.work
        period = plan.period
        count_stmt = select(func.count()).select_from(Invoice).where(Invoice.tenant_id == config.tenant_id)

        def build(number: str) -> Invoice:
            invoice = Invoice(
                tenant_id=config.tenant_id,
                customer_id=customer.id,
                work_id=work.id,
                period_id=period.id if period is not None else None,
                invoice_number=number,
                currency=config.currency,
                status="draft",
                issue_date=plan.issue_date,
                due_date=plan.due_date,
                subtotal=plan.price,
                tax_amount=plan.tax_amount,
                total=plan.total,
                income_account_id=plan.income_account_id,
                customer_account_id=customer.ledger_account_id,
                origin="auto" if trigger == "auto" else "manual",
                notes=f"Auto-generated for {plan.label}",
                created_by=ctx.user_id,
            )
            invoice.lines = [
                InvoiceLine(
                    line_no=1,
                    description=f"{plan.service.name} - {plan.label}",
                    quantity=Decimal("1"),
                    rate=plan.price,
                    tax_rate=plan.tax_rate,
                    tax_amount=plan.tax_amount,
                    amount=plan.price,
                )
            ]
            return invoice

        def recheck() -> None:
            if self._active_invoice_exists(session, work.id, period.id if period is not None else None):
                raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=f"{plan.source_type} already billed")

        invoice = insert_numbered(
            session,
            fmt=config.invoice_numbering,
            count_stmt=count_stmt,
            build=build,
            document="invoice",
            recheck=recheck,
        )

        if period is not None:
            period.is_billed = True
            period.invoice_id = invoice.id
        else:
            work.billing_status = "billed"
            work.invoice_id = invoice.id
        session.flush()

        observe_invoice_generated(plan.source_type, trigger)
        logger.info(
            "invoice_generated",
            extra={
                "tenant_id": config.tenant_id,
                "invoice_id": str(invoice.id),
                "invoice_number": invoice.invoice_number,
                "work_id": str(work.id),
                "period_id": str(period.id) if period is not None else None,
                "reason": trigger,
            },
        )
        events.publish(
            {
                "event_type": "billing.invoice.created",
                "tenant_id": config.tenant_id,
                "payload": {
                    "invoice_id": str(invoice.id),
                    "invoice_number": invoice.invoice_number,
                    "source_type": plan.source_type,
                    "work_id": str(work.id),
                    "period_id": str(period.id) if period is not None else None,
                    "total": str(invoice.total),
                    "trigger": trigger,
                },
            }
        )
        audit.record(
            actor_user_id=ctx.user_id,
            entity_type="billing.invoice",
            entity_id=str(invoice.id),
            action="billing.invoice.created",
            before=None,
            after={"invoice_number": invoice.invoice_number, "total": str(invoice.total), "trigger": trigger},
            correlation_id=ctx.correlation_id,
            tenant_id=config.tenant_id,
        )
        return invoice

    @staticmethod
    def _active_invoice_exists(session: Session, work_id: uuid.UUID, period_id: uuid.UUID | None) -> bool:
        stmt = select(Invoice.id).where(Invoice.status != "cancelled")
        if period_id is not None:
            stmt = stmt.where(Invoice.period_id == period_id)
        else:
            stmt = stmt.where(Invoice.work_id == work_id, Invoice.period_id.is_(None))
        return session.scalar(stmt.limit(1)) is not None

    @staticmethod
    def _missing(config: TenantConfig, source_type: str, source_id: uuid.UUID) -> NoReturn:
        logger.warning(
            "billing_source_incomplete",
            extra={"tenant_id": config.tenant_id, "reason": f"{source_type} {source_id} or its customer/service is missing"},
        )
        raise BillingSkipped(SKIP_MISSING_DATA)


billing_automation = BillingAutomation()
