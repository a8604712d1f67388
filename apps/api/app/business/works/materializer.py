from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app import events
from app.business.works.completion import AggregateChange, aggregate_period
from app.business.works.due_dates import ResolvedTask
from app.business.works.models import PeriodDocument, PeriodTask, RecurringPeriod, Work, WorkDocument
from app.business.works.recurrence import PeriodBounds, normalize_pattern
from app.metrics import observe_period_materialized, observe_period_tasks_materialized


logger = logging.getLogger("app.works.materializer")


@dataclass(slots=True)
class MaterializeResult:
    period: RecurringPeriod
    period_created: bool
    tasks_created: int
    documents_copied: int
    change: AggregateChange


@dataclass(slots=True)
class PeriodMaterializer:
    """Idempotent writer for periods, their task instances and document checklist."""

    def materialize(
        self,
        session: Session,
        work: Work,
        bounds: PeriodBounds,
        tasks: Sequence[ResolvedTask],
        *,
        today: date,
        expected_instances: int | None = None,
    ) -> MaterializeResult:
        period, created = self._get_or_create_period(session, work, bounds)

        existing_keys = {
            (row.task_template_id, row.instance_key)
            for row in session.scalars(select(PeriodTask).where(PeriodTask.period_id == period.id)).all()
            if row.task_template_id is not None
        }
        tasks_created = 0
        for task in tasks:
            key = (task.template_id, task.instance_key)
            if key in existing_keys:
                continue
            if self._insert_task(session, period, task):
                tasks_created += 1
            existing_keys.add(key)

        documents_copied = self._copy_documents(session, work, period)

        if expected_instances is not None:
            period.withheld_tasks = max(0, expected_instances - len(existing_keys))
        change = aggregate_period(session, period, today)

        if created or tasks_created:
            pattern = normalize_pattern(work.recurrence_pattern)
            if created:
                observe_period_materialized(pattern)
            observe_period_tasks_materialized(tasks_created)
            logger.info(
                "period_materialized",
                extra={
                    "tenant_id": work.tenant_id,
                    "work_id": str(work.id),
                    "period_id": str(period.id),
                    "period_start": period.period_start.isoformat(),
                    "count": tasks_created,
                    "status": period.status,
                },
            )
            events.publish(
                {
                    "event_type": "works.period.materialized",
                    "tenant_id": work.tenant_id,
                    "payload": {
                        "work_id": str(work.id),
                        "period_id": str(period.id),
                        "period_start": period.period_start.isoformat(),
                        "period_created": created,
                        "tasks_created": tasks_created,
                    },
                }
            )

        return MaterializeResult(
            period=period,
            period_created=created,
            tasks_created=tasks_created,
            documents_copied=documents_copied,
            change=change,
        )

    def _get_or_create_period(self, session: Session, work: Work, bounds: PeriodBounds) -> tuple[RecurringPeriod, bool]:
        existing = self._find_period(session, work, bounds.start)
        if existing is not None:
            return existing, False

        period = RecurringPeriod(
            tenant_id=work.tenant_id,
            work_id=work.id,
            period_start=bounds.start,
            period_end=bounds.end,
            name=bounds.name,
            status="pending",
        )
        try:
            with session.begin_nested():
                session.add(period)
                session.flush()
        except IntegrityError:
            logger.warning(
                "period_insert_conflict",
                extra={"work_id": str(work.id), "period_start": bounds.start.isoformat()},
            )
            existing = self._find_period(session, work, bounds.start)
            if existing is None:
                raise
            return existing, False
        return period, True

    @staticmethod
    def _find_period(session: Session, work: Work, period_start: date) -> RecurringPeriod | None:
        return session.scalar(
            select(RecurringPeriod).where(
                RecurringPeriod.work_id == work.id,
                RecurringPeriod.period_start == period_start,
            )
        )

    @staticmethod
    def _insert_task(session: Session, period: RecurringPeriod, task: ResolvedTask) -> bool:
        row = PeriodTask(
            period_id=period.id,
            task_template_id=task.template_id,
            instance_key=task.instance_key,
            title=task.title,
            due_date=task.due_date,
            sort_order=task.sort_order,
            status="pending",
        )
        try:
            with session.begin_nested():
                session.add(row)
                session.flush()
        except IntegrityError:
            logger.warning(
                "period_task_insert_conflict",
                extra={"period_id": str(period.id), "reason": task.instance_key or "whole_period"},
            )
            return False
        return True

    @staticmethod
    def _copy_documents(session: Session, work: Work, period: RecurringPeriod) -> int:
        work_documents = session.scalars(select(WorkDocument).where(WorkDocument.work_id == work.id)).all()
        if not work_documents:
            return 0
        copied_ids = set(
            session.scalars(select(PeriodDocument.work_document_id).where(PeriodDocument.period_id == period.id)).all()
        )
        copied = 0
        for document in work_documents:
            if document.id in copied_ids:
                continue
            row = PeriodDocument(period_id=period.id, work_document_id=document.id, name=document.name, is_collected=False)
            try:
                with session.begin_nested():
                    session.add(row)
                    session.flush()
            except IntegrityError:
                continue
            copied += 1
        return copied


period_materializer = PeriodMaterializer()
