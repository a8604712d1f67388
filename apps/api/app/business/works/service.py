from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import date

from fastapi import HTTPException, status
from sqlalchemy import Select, func, select
from sqlalchemy.orm import Session, selectinload

from app import audit, events
from app.business.billing.service import billing_service
from app.business.catalog.models import Customer, ServiceTemplate
from app.business.catalog.service import catalog_service
from app.business.works.backfill import backfill_driver
from app.business.works.completion import aggregate_period
from app.business.works.due_dates import one_off_due_date
from app.business.works.models import PeriodDocument, PeriodTask, RecurringPeriod, Work, WorkDocument, WorkTask
from app.business.works.pipeline import completion_pipeline
from app.business.works.recurrence import normalize_pattern
from app.business.works.schemas import (
    BackfillRead,
    DocumentCollectedUpdate,
    PeriodDocumentRead,
    PeriodRead,
    PeriodTaskCreate,
    PeriodTaskRead,
    PeriodUpdate,
    RecalculateDueDatesRead,
    TaskStatusResult,
    TaskStatusUpdate,
    TenantBackfillRead,
    WorkCreate,
    WorkDocumentCreate,
    WorkDocumentRead,
    WorkRead,
    WorkStatusUpdate,
    WorkTaskRead,
)
from app.platform.security.context import AuthContext
from app.platform.tenancy.schemas import TenantConfig


logger = logging.getLogger("app.works")


@dataclass(slots=True)
class WorkService:
    def create_work(self, session: Session, ctx: AuthContext, config: TenantConfig, dto: WorkCreate, *, today: date) -> WorkRead:
        tenant_id = config.tenant_id
        customer = session.scalar(select(Customer).where(Customer.id == dto.customer_id, Customer.tenant_id == tenant_id))
        if customer is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="customer not found")
        service = session.scalar(
            select(ServiceTemplate).where(ServiceTemplate.id == dto.service_id, ServiceTemplate.tenant_id == tenant_id)
        )
        if service is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="service not found")

        pattern: str | None = None
        if dto.recurrence_pattern is not None or dto.is_recurring:
            pattern = normalize_pattern(dto.recurrence_pattern or service.default_recurrence)

        work = Work(
            tenant_id=tenant_id,
            customer_id=customer.id,
            service_id=service.id,
            title=dto.title,
            description=dto.description,
            recurrence_pattern=pattern,
            start_date=dto.start_date,
            end_date=dto.end_date,
            anchor_type=dto.anchor_type,
            assigned_to=dto.assigned_to,
            billing_amount=dto.billing_amount,
            auto_bill=dto.auto_bill,
            created_by=ctx.user_id,
        )
        work.documents = [WorkDocument(name=name) for name in dto.documents]
        if pattern is None:
            work.tasks = [
                WorkTask(
                    task_template_id=template.id,
                    title=template.title,
                    due_date=one_off_due_date(template, dto.start_date),
                    sort_order=template.sort_order,
                )
                for template in catalog_service.active_task_templates(session, service.id)
            ]
        session.add(work)
        session.flush()

        audit.record(
            actor_user_id=ctx.user_id,
            entity_type="works.work",
            entity_id=str(work.id),
            action="works.work.created",
            before=None,
            after={"title": work.title, "recurrence_pattern": pattern, "start_date": dto.start_date.isoformat()},
            correlation_id=ctx.correlation_id,
            tenant_id=tenant_id,
        )
        session.commit()
        logger.info("work_created", extra={"tenant_id": tenant_id, "work_id": str(work.id), "status": work.status})
        events.publish(
            {
                "event_type": "works.work.created",
                "tenant_id": tenant_id,
                "payload": {"work_id": str(work.id), "recurring": pattern is not None},
            }
        )

        if pattern is not None:
            backfill_driver.backfill(session, ctx, config, work, today)
        return self.get_work(session, ctx, work.id)

    def list_works(
        self,
        session: Session,
        ctx: AuthContext,
        *,
        work_status: str | None = None,
        customer_id: uuid.UUID | None = None,
        recurring: bool | None = None,
    ) -> list[WorkRead]:
        stmt: Select[tuple[Work]] = (
            select(Work)
            .where(Work.tenant_id == ctx.require_tenant())
            .options(selectinload(Work.tasks), selectinload(Work.documents))
        )
        if work_status is not None:
            stmt = stmt.where(Work.status == work_status)
        if customer_id is not None:
            stmt = stmt.where(Work.customer_id == customer_id)
        if recurring is True:
            stmt = stmt.where(Work.recurrence_pattern.is_not(None))
        elif recurring is False:
            stmt = stmt.where(Work.recurrence_pattern.is_(None))
        rows = session.scalars(stmt.order_by(Work.created_at.desc())).all()
        return [self._to_work_read(session, row) for row in rows]

    def get_work(self, session: Session, ctx: AuthContext, work_id: uuid.UUID) -> WorkRead:
        work = self._get_work(session, ctx.require_tenant(), work_id)
        session.refresh(work)
        return self._to_work_read(session, work)

    def update_status(
        self,
        session: Session,
        ctx: AuthContext,
        config: TenantConfig,
        work_id: uuid.UUID,
        dto: WorkStatusUpdate,
        *,
        today: date,
    ) -> WorkRead:
        work = completion_pipeline.transition_work(session, ctx, config, work_id, dto.status, today=today)
        return self.get_work(session, ctx, work.id)

    def update_work_task(
        self,
        session: Session,
        ctx: AuthContext,
        config: TenantConfig,
        work_id: uuid.UUID,
        task_id: uuid.UUID,
        dto: TaskStatusUpdate,
        *,
        today: date,
    ) -> TaskStatusResult:
        return completion_pipeline.update_work_task(session, ctx, config, work_id, task_id, dto.status, today=today)

    def update_period_task(
        self,
        session: Session,
        ctx: AuthContext,
        config: TenantConfig,
        period_id: uuid.UUID,
        task_id: uuid.UUID,
        dto: TaskStatusUpdate,
        *,
        today: date,
    ) -> TaskStatusResult:
        return completion_pipeline.update_period_task(session, ctx, config, period_id, task_id, dto.status, today=today)

    def add_period_task(
        self,
        session: Session,
        ctx: AuthContext,
        period_id: uuid.UUID,
        dto: PeriodTaskCreate,
        *,
        today: date,
    ) -> PeriodTaskRead:
        period = self._get_period(session, ctx.require_tenant(), period_id)
        task = PeriodTask(
            period_id=period.id,
            task_template_id=None,
            instance_key="",
            title=dto.title,
            due_date=dto.due_date,
            sort_order=dto.sort_order,
            status="pending",
        )
        session.add(task)
        session.flush()
        aggregate_period(session, period, today)
        session.commit()
        session.refresh(task)
        return PeriodTaskRead.model_validate(task)

    def list_work_tasks(self, session: Session, ctx: AuthContext, work_id: uuid.UUID) -> list[WorkTaskRead]:
        work = self._get_work(session, ctx.require_tenant(), work_id)
        rows = session.scalars(
            select(WorkTask).where(WorkTask.work_id == work.id).order_by(WorkTask.due_date.asc(), WorkTask.sort_order.asc())
        ).all()
        return [WorkTaskRead.model_validate(row) for row in rows]

    def list_periods(self, session: Session, ctx: AuthContext, work_id: uuid.UUID) -> list[PeriodRead]:
        work = self._get_work(session, ctx.require_tenant(), work_id)
        rows = session.scalars(
            select(RecurringPeriod)
            .where(RecurringPeriod.work_id == work.id)
            .options(selectinload(RecurringPeriod.tasks), selectinload(RecurringPeriod.documents))
            .order_by(RecurringPeriod.period_start.asc())
        ).all()
        return [self._to_period_read(row) for row in rows]

    def get_period(self, session: Session, ctx: AuthContext, period_id: uuid.UUID) -> PeriodRead:
        period = self._get_period(session, ctx.require_tenant(), period_id)
        session.refresh(period)
        return self._to_period_read(period)

    def update_period(self, session: Session, ctx: AuthContext, period_id: uuid.UUID, dto: PeriodUpdate) -> PeriodRead:
        period = self._get_period(session, ctx.require_tenant(), period_id)
        if period.is_billed:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="period already billed")
        period.billing_amount = dto.billing_amount
        session.commit()
        return self.get_period(session, ctx, period.id)

    def add_document(self, session: Session, ctx: AuthContext, work_id: uuid.UUID, dto: WorkDocumentCreate) -> WorkDocumentRead:
        work = self._get_work(session, ctx.require_tenant(), work_id)
        document = WorkDocument(work_id=work.id, name=dto.name, is_required=dto.is_required)
        session.add(document)
        session.commit()
        session.refresh(document)
        return WorkDocumentRead.model_validate(document)

    def list_documents(self, session: Session, ctx: AuthContext, work_id: uuid.UUID) -> list[WorkDocumentRead]:
        work = self._get_work(session, ctx.require_tenant(), work_id)
        rows = session.scalars(select(WorkDocument).where(WorkDocument.work_id == work.id).order_by(WorkDocument.name.asc())).all()
        return [WorkDocumentRead.model_validate(row) for row in rows]

    def set_document_collected(
        self,
        session: Session,
        ctx: AuthContext,
        work_id: uuid.UUID,
        document_id: uuid.UUID,
        dto: DocumentCollectedUpdate,
    ) -> WorkDocumentRead:
        work = self._get_work(session, ctx.require_tenant(), work_id)
        document = session.scalar(select(WorkDocument).where(WorkDocument.id == document_id, WorkDocument.work_id == work.id))
        if document is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="document not found")
        document.is_collected = dto.is_collected
        session.commit()
        session.refresh(document)
        return WorkDocumentRead.model_validate(document)

    def set_period_document_collected(
        self,
        session: Session,
        ctx: AuthContext,
        period_id: uuid.UUID,
        document_id: uuid.UUID,
        dto: DocumentCollectedUpdate,
    ) -> PeriodDocumentRead:
        period = self._get_period(session, ctx.require_tenant(), period_id)
        document = session.scalar(
            select(PeriodDocument).where(PeriodDocument.id == document_id, PeriodDocument.period_id == period.id)
        )
        if document is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="document not found")
        document.is_collected = dto.is_collected
        session.commit()
        session.refresh(document)
        return PeriodDocumentRead.model_validate(document)

    def backfill_work(
        self,
        session: Session,
        ctx: AuthContext,
        config: TenantConfig,
        work_id: uuid.UUID,
        *,
        today: date,
        full: bool = False,
    ) -> BackfillRead:
        work = self._get_work(session, config.tenant_id, work_id)
        if not work.is_recurring:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="work is not recurring")
        result = backfill_driver.backfill(session, ctx, config, work, today, full=full)
        return BackfillRead(
            work_id=work.id,
            periods_created=result.periods_created,
            tasks_created=result.tasks_created,
            periods_visited=result.periods_visited,
            cap_reached=result.cap_reached,
            period_ids=[uuid.UUID(item) for item in result.period_ids],
        )

    def backfill_tenant(self, session: Session, ctx: AuthContext, config: TenantConfig, *, today: date) -> TenantBackfillRead:
        """Periodic tick for one tenant: backfill, then refresh period and invoice overdue state."""
        summary = backfill_driver.backfill_all(session, ctx, config, today)
        periods_changed = backfill_driver.refresh_overdue(session, ctx, config, today)
        invoices = billing_service.refresh_overdue_invoices(session, ctx, config, today)
        return TenantBackfillRead(
            tenant_id=config.tenant_id,
            works=summary.works,
            periods_created=summary.periods_created,
            tasks_created=summary.tasks_created,
            periods_status_changed=periods_changed,
            invoices_marked_overdue=invoices.updated_count,
            failed_work_ids=[uuid.UUID(item) for item in summary.failed_work_ids],
        )

    def recalculate_due_dates(
        self,
        session: Session,
        ctx: AuthContext,
        config: TenantConfig,
        work_id: uuid.UUID,
        *,
        today: date,
    ) -> RecalculateDueDatesRead:
        work = self._get_work(session, config.tenant_id, work_id)
        updated = backfill_driver.recalculate_due_dates(session, ctx, config, work, today)
        return RecalculateDueDatesRead(work_id=work.id, updated_tasks=updated)

    @staticmethod
    def _get_work(session: Session, tenant_id: str, work_id: uuid.UUID) -> Work:
        work = session.scalar(select(Work).where(Work.id == work_id, Work.tenant_id == tenant_id))
        if work is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="work not found")
        return work

    @staticmethod
    def _get_period(session: Session, tenant_id: str, period_id: uuid.UUID) -> RecurringPeriod:
        period = session.scalar(
            select(RecurringPeriod)
            .where(RecurringPeriod.id == period_id, RecurringPeriod.tenant_id == tenant_id)
            .options(selectinload(RecurringPeriod.tasks), selectinload(RecurringPeriod.documents))
        )
        if period is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="period not found")
        return period

    @staticmethod
    def _to_period_read(period: RecurringPeriod) -> PeriodRead:
        payload = {
            "id": period.id,
            "work_id": period.work_id,
            "period_start": period.period_start,
            "period_end": period.period_end,
            "name": period.name,
            "status": period.status,
            "total_tasks": period.total_tasks,
            "completed_tasks": period.completed_tasks,
            "all_tasks_completed": period.all_tasks_completed,
            "withheld_tasks": period.withheld_tasks,
            "billing_amount": period.billing_amount,
            "is_billed": period.is_billed,
            "invoice_id": period.invoice_id,
            "completed_at": period.completed_at,
            "tasks": [PeriodTaskRead.model_validate(item) for item in sorted(period.tasks, key=lambda t: (t.due_date, t.sort_order))],
            "documents": [PeriodDocumentRead.model_validate(item) for item in period.documents],
        }
        return PeriodRead.model_validate(payload)

    @staticmethod
    def _to_work_read(session: Session, work: Work) -> WorkRead:
        period_count = session.scalar(
            select(func.count()).select_from(RecurringPeriod).where(RecurringPeriod.work_id == work.id)
        )
        payload = {
            "id": work.id,
            "tenant_id": work.tenant_id,
            "customer_id": work.customer_id,
            "service_id": work.service_id,
            "title": work.title,
            "description": work.description,
            "is_recurring": work.is_recurring,
            "recurrence_pattern": work.recurrence_pattern,
            "start_date": work.start_date,
            "end_date": work.end_date,
            "anchor_type": work.anchor_type,
            "assigned_to": work.assigned_to,
            "billing_amount": work.billing_amount,
            "auto_bill": work.auto_bill,
            "status": work.status,
            "billing_status": work.billing_status,
            "invoice_id": work.invoice_id,
            "last_backfill_at": work.last_backfill_at,
            "created_at": work.created_at,
            "updated_at": work.updated_at,
            "tasks": [WorkTaskRead.model_validate(item) for item in work.tasks],
            "documents": [WorkDocumentRead.model_validate(item) for item in work.documents],
            "period_count": period_count or 0,
        }
        return WorkRead.model_validate(payload)


work_service = WorkService()
