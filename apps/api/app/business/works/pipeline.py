"""Completion pipeline.

The single orchestrator for task status changes: apply the change,
re-aggregate the owning period (or one-off work), bill when the aggregate
has just transitioned into ``completed``, then commit. Billing runs inside
a SAVEPOINT; when it fails only the savepoint is rolled back and the status
change still commits.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import date, datetime, timezone

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from app import events
from app.business.billing.automation import PERIOD_SOURCE, WORK_SOURCE, billing_automation
from app.business.works.completion import COMPLETED, AggregateChange, aggregate_period, aggregate_work
from app.business.works.models import PeriodTask, RecurringPeriod, Work, WorkTask
from app.business.works.schemas import TaskStatusResult
from app.metrics import observe_billing_failure
from app.otel import get_tracer, set_span_attributes
from app.platform.security.context import AuthContext
from app.platform.tenancy.schemas import TenantConfig


logger = logging.getLogger("app.works.pipeline")
tracer = get_tracer("app.works.pipeline")

WORK_TRANSITIONS: dict[str, set[str]] = {
    "pending": {"in_progress", "cancelled"},
    "in_progress": {"completed", "cancelled", "pending"},
    "completed": {"in_progress"},
    "cancelled": set(),
}


@dataclass(slots=True)
class CompletionPipeline:
    def update_period_task(
        self,
        session: Session,
        ctx: AuthContext,
        config: TenantConfig,
        period_id: uuid.UUID,
        task_id: uuid.UUID,
        new_status: str,
        *,
        today: date,
    ) -> TaskStatusResult:
        with tracer.start_as_current_span("works.pipeline.period_task") as span:
            set_span_attributes(span, period_id=period_id, tenant_id=config.tenant_id)
            period = session.scalar(
                select(RecurringPeriod).where(RecurringPeriod.id == period_id, RecurringPeriod.tenant_id == config.tenant_id)
            )
            if period is None:
                raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="period not found")
            work = session.get(Work, period.work_id)
            if work is not None and work.status == "cancelled":
                raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="work is cancelled")
            task = session.scalar(select(PeriodTask).where(PeriodTask.id == task_id, PeriodTask.period_id == period.id))
            if task is None:
                raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="task not found")

            previous_task_status = task.status
            self._apply(task, new_status, ctx)
            change = aggregate_period(session, period, today)

            if work is not None and work.status == "pending" and new_status != "pending":
                work.status = "in_progress"

            invoice_id = None
            if change.became_completed:
                invoice_id = self._bill(session, ctx, config, PERIOD_SOURCE, period.id, today)
            span.set_attribute("period_status", change.status)

            session.commit()
            self._publish(config, task.id, previous_task_status, new_status, change, period_id=period.id)
            return self._result(task.id, new_status, change, invoice_id)

    def update_work_task(
        self,
        session: Session,
        ctx: AuthContext,
        config: TenantConfig,
        work_id: uuid.UUID,
        task_id: uuid.UUID,
        new_status: str,
        *,
        today: date,
    ) -> TaskStatusResult:
        with tracer.start_as_current_span("works.pipeline.work_task") as span:
            set_span_attributes(span, work_id=work_id, tenant_id=config.tenant_id)
            work = self._get_work(session, config, work_id)
            if work.status == "cancelled":
                raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="work is cancelled")
            task = session.scalar(select(WorkTask).where(WorkTask.id == task_id, WorkTask.work_id == work.id))
            if task is None:
                raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="task not found")

            previous_task_status = task.status
            self._apply(task, new_status, ctx)
            change = aggregate_work(session, work)

            invoice_id = None
            if change.became_completed:
                invoice_id = self._bill(session, ctx, config, WORK_SOURCE, work.id, today)

            session.commit()
            self._publish(config, task.id, previous_task_status, new_status, change, work_id=work.id)
            return self._result(task.id, new_status, change, invoice_id)

    def transition_work(
        self,
        session: Session,
        ctx: AuthContext,
        config: TenantConfig,
        work_id: uuid.UUID,
        new_status: str,
        *,
        today: date,
    ) -> Work:
        work = self._get_work(session, config, work_id)
        previous = work.status
        if new_status == previous:
            return work
        if new_status not in WORK_TRANSITIONS.get(previous, set()):
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=f"invalid work transition {previous} -> {new_status}")

        work.status = new_status
        session.flush()
        if new_status == COMPLETED and not work.is_recurring:
            self._bill(session, ctx, config, WORK_SOURCE, work.id, today)
        session.commit()

        logger.info("work_status_changed", extra={"tenant_id": work.tenant_id, "work_id": str(work.id), "status": new_status})
        events.publish(
            {
                "event_type": "works.work.status_changed",
                "tenant_id": work.tenant_id,
                "payload": {"work_id": str(work.id), "previous_status": previous, "status": new_status},
            }
        )
        return work

    def _bill(
        self,
        session: Session,
        ctx: AuthContext,
        config: TenantConfig,
        source_type: str,
        source_id: uuid.UUID,
        today: date,
    ) -> uuid.UUID | None:
        try:
            with session.begin_nested():
                invoice = billing_automation.on_completion(
                    session,
                    ctx,
                    config,
                    source_type=source_type,
                    source_id=source_id,
                    today=today,
                )
        except Exception:
            observe_billing_failure()
            logger.exception(
                "billing_auto_invoice_failed",
                extra={"tenant_id": config.tenant_id, f"{source_type}_id": str(source_id)},
            )
            return None
        return invoice.id if invoice is not None else None

    @staticmethod
    def _apply(task: PeriodTask | WorkTask, new_status: str, ctx: AuthContext) -> None:
        task.status = new_status
        if new_status == COMPLETED:
            task.completed_at = task.completed_at or datetime.now(timezone.utc)
            task.completed_by = task.completed_by or ctx.user_id
        else:
            task.completed_at = None
            task.completed_by = None

    @staticmethod
    def _get_work(session: Session, config: TenantConfig, work_id: uuid.UUID) -> Work:
        work = session.scalar(select(Work).where(Work.id == work_id, Work.tenant_id == config.tenant_id))
        if work is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="work not found")
        return work

    @staticmethod
    def _publish(
        config: TenantConfig,
        task_id: uuid.UUID,
        previous_status: str,
        new_status: str,
        change: AggregateChange,
        *,
        period_id: uuid.UUID | None = None,
        work_id: uuid.UUID | None = None,
    ) -> None:
        if previous_status == new_status:
            return
        events.publish(
            {
                "event_type": "works.task.status_changed",
                "tenant_id": config.tenant_id,
                "payload": {
                    "task_id": str(task_id),
                    "period_id": str(period_id) if period_id is not None else None,
                    "work_id": str(work_id) if work_id is not None else None,
                    "previous_status": previous_status,
                    "status": new_status,
                    "aggregate_status": change.status,
                },
            }
        )

    @staticmethod
    def _result(task_id: uuid.UUID, task_status: str, change: AggregateChange, invoice_id: uuid.UUID | None) -> TaskStatusResult:
        return TaskStatusResult(
            task_id=task_id,
            task_status=task_status,
            aggregate_status=change.status,
            previous_aggregate_status=change.previous_status,
            completed_tasks=change.completed,
            total_tasks=change.total,
            invoice_id=invoice_id,
        )


completion_pipeline = CompletionPipeline()
