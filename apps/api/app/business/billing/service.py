from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

from fastapi import HTTPException, status
from sqlalchemy import Select, func, select
from sqlalchemy.orm import Session, selectinload

from app import audit, events
from app.business.billing.automation import billing_automation, compute_tax
from app.business.billing.models import Invoice, InvoiceLine
from app.business.billing.posting import invoice_poster
from app.business.billing.schemas import (
    InvoiceCreate,
    InvoiceLineRead,
    InvoiceRead,
    InvoiceStatusUpdate,
    ManualInvoiceRequest,
    NextInvoiceNumberRead,
    RefreshOverdueResponse,
)
from app.business.catalog.models import Customer
from app.business.works.models import RecurringPeriod, Work
from app.platform.ledger.service import ledger_service
from app.platform.numbering import insert_numbered, next_number
from app.platform.security.context import AuthContext
from app.platform.tenancy.schemas import TenantConfig


logger = logging.getLogger("app.billing")

INVOICE_TRANSITIONS: dict[str, set[str]] = {
    "draft": {"sent", "cancelled"},
    "sent": {"paid", "overdue", "draft", "cancelled"},
    "overdue": {"paid", "sent", "draft", "cancelled"},
    "paid": {"sent", "draft", "cancelled"},
    "cancelled": {"draft"},
}


@dataclass(slots=True)
class BillingService:
    def create_invoice(self, session: Session, ctx: AuthContext, config: TenantConfig, dto: InvoiceCreate) -> InvoiceRead:
        tenant_id = config.tenant_id
        customer = session.scalar(select(Customer).where(Customer.id == dto.customer_id, Customer.tenant_id == tenant_id))
        if customer is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="customer not found")
        self._assert_source(session, tenant_id, dto.work_id, dto.period_id)
        if customer.ledger_account_id is None:
            customer.ledger_account_id = ledger_service.ensure_customer_account(session, config, customer.name).id

        issue_date = dto.issue_date or date.today()
        due_date = dto.due_date or issue_date + timedelta(days=config.default_payment_terms_days)
        if due_date < issue_date:
            raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="due date precedes issue date")

        lines: list[dict[str, object]] = []
        subtotal = Decimal("0")
        tax_total = Decimal("0")
        for index, item in enumerate(dto.lines, start=1):
            amount = self._q(Decimal(item.quantity) * Decimal(item.rate))
            tax_amount = compute_tax(amount, item.tax_rate)
            subtotal += amount
            tax_total += tax_amount
            lines.append(
                {
                    "line_no": index,
                    "description": item.description,
                    "quantity": self._q(item.quantity),
                    "rate": self._q(item.rate),
                    "tax_rate": item.tax_rate,
                    "tax_amount": tax_amount,
                    "amount": amount,
                }
            )

        income_account_id = dto.income_account_id or config.default_income_account_id

        def build(number: str) -> Invoice:
            invoice = Invoice(
                tenant_id=tenant_id,
                customer_id=customer.id,
                work_id=dto.work_id,
                period_id=dto.period_id,
                invoice_number=number,
                currency=config.currency,
                status="draft",
                issue_date=issue_date,
                due_date=due_date,
                subtotal=self._q(subtotal),
                tax_amount=self._q(tax_total),
                total=self._q(subtotal + tax_total),
                income_account_id=income_account_id,
                customer_account_id=customer.ledger_account_id,
                origin="manual",
                notes=dto.notes,
                created_by=ctx.user_id,
            )
            invoice.lines = [InvoiceLine(**line) for line in lines]
            return invoice

        def recheck() -> None:
            if (dto.work_id or dto.period_id) and self._active_invoice_for(session, dto.work_id, dto.period_id) is not None:
                raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="source already has an active invoice")

        recheck()
        invoice = insert_numbered(
            session,
            fmt=config.invoice_numbering,
            count_stmt=self._count_stmt(tenant_id),
            build=build,
            document="invoice",
            recheck=recheck,
        )
        self._mark_source_billed(session, invoice)
        session.commit()

        events.publish(
            {
                "event_type": "billing.invoice.created",
                "tenant_id": tenant_id,
                "payload": {"invoice_id": str(invoice.id), "invoice_number": invoice.invoice_number, "trigger": "manual"},
            }
        )
        return self.get_invoice(session, ctx, invoice.id)

    def generate_for_source(
        self,
        session: Session,
        ctx: AuthContext,
        config: TenantConfig,
        dto: ManualInvoiceRequest,
        *,
        today: date | None = None,
    ) -> InvoiceRead:
        invoice = billing_automation.manually_generate_invoice(
            session,
            ctx,
            config,
            source_type=dto.source_type,
            source_id=dto.source_id,
            today=today or date.today(),
        )
        return self.get_invoice(session, ctx, invoice.id)

    def update_status(
        self,
        session: Session,
        ctx: AuthContext,
        config: TenantConfig,
        invoice_id: uuid.UUID,
        dto: InvoiceStatusUpdate,
    ) -> InvoiceRead:
        invoice = self._get_invoice(session, config.tenant_id, invoice_id)
        previous = invoice.status
        target = dto.status
        if target == previous:
            return self._to_invoice_read(session, invoice)
        if target not in INVOICE_TRANSITIONS.get(previous, set()):
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=f"invalid invoice transition {previous} -> {target}")

        if previous == "cancelled":
            if self._active_invoice_for(session, invoice.work_id, invoice.period_id, exclude=invoice.id) is not None:
                raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="source already has an active invoice")

        invoice.status = target
        session.flush()

        if target in ("draft", "cancelled"):
            invoice_poster.remove_postings(session, ctx, invoice)
            invoice.paid_at = None
        else:
            invoice_poster.post_invoice(session, ctx, config, invoice)
            if target == "paid":
                payment_date = dto.payment_date or date.today()
                invoice.paid_at = datetime.now(timezone.utc)
                invoice_poster.record_receipt(session, ctx, config, invoice, payment_date)
            elif previous == "paid":
                invoice_poster.remove_postings(session, ctx, invoice, receipts_only=True)
                invoice.paid_at = None

        if target == "cancelled":
            self._release_source(session, invoice)
        elif previous == "cancelled":
            self._mark_source_billed(session, invoice)
        self._sync_work_billing_status(session, invoice)

        audit.record(
            actor_user_id=ctx.user_id,
            entity_type="billing.invoice",
            entity_id=str(invoice.id),
            action="billing.invoice.status_changed",
            before={"status": previous},
            after={"status": target},
            correlation_id=ctx.correlation_id,
            tenant_id=invoice.tenant_id,
        )
        session.commit()
        logger.info(
            "invoice_status_changed",
            extra={"tenant_id": invoice.tenant_id, "invoice_id": str(invoice.id), "invoice_number": invoice.invoice_number, "status": target},
        )
        events.publish(
            {
                "event_type": f"billing.invoice.{target}",
                "tenant_id": invoice.tenant_id,
                "payload": {"invoice_id": str(invoice.id), "previous_status": previous, "status": target},
            }
        )
        return self.get_invoice(session, ctx, invoice.id)

    def refresh_overdue_invoices(self, session: Session, ctx: AuthContext, config: TenantConfig, today: date) -> RefreshOverdueResponse:
        rows = session.scalars(
            select(Invoice).where(
                Invoice.tenant_id == config.tenant_id,
                Invoice.status == "sent",
                Invoice.due_date < today,
            )
        ).all()
        for invoice in rows:
            invoice.status = "overdue"
            events.publish(
                {
                    "event_type": "billing.invoice.overdue",
                    "tenant_id": invoice.tenant_id,
                    "payload": {"invoice_id": str(invoice.id), "due_date": invoice.due_date.isoformat()},
                }
            )
        session.commit()
        return RefreshOverdueResponse(updated_count=len(rows))

    def list_invoices(
        self,
        session: Session,
        ctx: AuthContext,
        *,
        invoice_status: str | None = None,
        customer_id: uuid.UUID | None = None,
        work_id: uuid.UUID | None = None,
    ) -> list[InvoiceRead]:
        stmt: Select[tuple[Invoice]] = (
            select(Invoice).where(Invoice.tenant_id == ctx.require_tenant()).options(selectinload(Invoice.lines))
        )
        if invoice_status is not None:
            stmt = stmt.where(Invoice.status == invoice_status)
        if customer_id is not None:
            stmt = stmt.where(Invoice.customer_id == customer_id)
        if work_id is not None:
            stmt = stmt.where(Invoice.work_id == work_id)
        rows = session.scalars(stmt.order_by(Invoice.issue_date.desc(), Invoice.invoice_number.desc())).all()
        return [self._to_invoice_read(session, row) for row in rows]

    def get_invoice(self, session: Session, ctx: AuthContext, invoice_id: uuid.UUID) -> InvoiceRead:
        invoice = self._get_invoice(session, ctx.require_tenant(), invoice_id)
        session.refresh(invoice)
        return self._to_invoice_read(session, invoice)

    def next_invoice_number(self, session: Session, config: TenantConfig) -> NextInvoiceNumberRead:
        return NextInvoiceNumberRead(
            invoice_number=next_number(session, config.invoice_numbering, self._count_stmt(config.tenant_id))
        )

    @staticmethod
    def _count_stmt(tenant_id: str) -> Select[tuple[int]]:
        return select(func.count()).select_from(Invoice).where(Invoice.tenant_id == tenant_id)

    @staticmethod
    def _assert_source(session: Session, tenant_id: str, work_id: uuid.UUID | None, period_id: uuid.UUID | None) -> None:
        if work_id is not None:
            work = session.get(Work, work_id)
            if work is None or work.tenant_id != tenant_id:
                raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="work not found")
        if period_id is not None:
            period = session.get(RecurringPeriod, period_id)
            if period is None or period.tenant_id != tenant_id:
                raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="period not found")
            if work_id is not None and period.work_id != work_id:
                raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="period does not belong to work")

    @staticmethod
    def _active_invoice_for(
        session: Session,
        work_id: uuid.UUID | None,
        period_id: uuid.UUID | None,
        *,
        exclude: uuid.UUID | None = None,
    ) -> Invoice | None:
        stmt = select(Invoice).where(Invoice.status != "cancelled")
        if period_id is not None:
            stmt = stmt.where(Invoice.period_id == period_id)
        elif work_id is not None:
            stmt = stmt.where(Invoice.work_id == work_id, Invoice.period_id.is_(None))
        else:
            return None
        if exclude is not None:
            stmt = stmt.where(Invoice.id != exclude)
        return session.scalar(stmt.limit(1))

    @staticmethod
    def _mark_source_billed(session: Session, invoice: Invoice) -> None:
        if invoice.period_id is not None:
            period = session.get(RecurringPeriod, invoice.period_id)
            if period is not None:
                period.is_billed = True
                period.invoice_id = invoice.id
        elif invoice.work_id is not None:
            work = session.get(Work, invoice.work_id)
            if work is not None and not work.is_recurring:
                work.billing_status = "billed"
                work.invoice_id = invoice.id

    @staticmethod
    def _release_source(session: Session, invoice: Invoice) -> None:
        if invoice.period_id is not None:
            period = session.get(RecurringPeriod, invoice.period_id)
            if period is not None and period.invoice_id == invoice.id:
                period.is_billed = False
                period.invoice_id = None
        elif invoice.work_id is not None:
            work = session.get(Work, invoice.work_id)
            if work is not None and work.invoice_id == invoice.id:
                work.billing_status = "not_billed"
                work.invoice_id = None

    @staticmethod
    def _sync_work_billing_status(session: Session, invoice: Invoice) -> None:
        if invoice.period_id is not None or invoice.work_id is None:
            return
        work = session.get(Work, invoice.work_id)
        if work is None or work.invoice_id != invoice.id:
            return
        work.billing_status = "paid" if invoice.status == "paid" else "billed"

    @staticmethod
    def _get_invoice(session: Session, tenant_id: str, invoice_id: uuid.UUID) -> Invoice:
        invoice = session.scalar(
            select(Invoice)
            .where(Invoice.id == invoice_id, Invoice.tenant_id == tenant_id)
            .options(selectinload(Invoice.lines))
        )
        if invoice is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="invoice not found")
        return invoice

    @staticmethod
    def _q(value: Decimal) -> Decimal:
        return Decimal(value).quantize(Decimal("0.000001"))

    def _to_invoice_read(self, session: Session, invoice: Invoice) -> InvoiceRead:
        payload = {
            "id": invoice.id,
            "tenant_id": invoice.tenant_id,
            "customer_id": invoice.customer_id,
            "work_id": invoice.work_id,
            "period_id": invoice.period_id,
            "invoice_number": invoice.invoice_number,
            "currency": invoice.currency,
            "status": invoice.status,
            "issue_date": invoice.issue_date,
            "due_date": invoice.due_date,
            "subtotal": invoice.subtotal,
            "tax_amount": invoice.tax_amount,
            "total": invoice.total,
            "income_account_id": invoice.income_account_id,
            "customer_account_id": invoice.customer_account_id,
            "origin": invoice.origin,
            "notes": invoice.notes,
            "paid_at": invoice.paid_at,
            "created_at": invoice.created_at,
            "updated_at": invoice.updated_at,
            "voucher_ids": [item.id for item in invoice_poster.all_vouchers(session, invoice)],
            "lines": [InvoiceLineRead.model_validate(line) for line in invoice.lines],
        }
        return InvoiceRead.model_validate(payload)


billing_service = BillingService()
