"""Backfill driver.

Walks a recurring work's calendar from its anchor period towards ``today``
and hands every eligible period to the materializer. Runs resume from the
earliest period that still has withheld task instances (or the latest
existing period), so repeated ticks do not re-walk the full history.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import date, datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.business.catalog.service import catalog_service
from app.business.works.completion import PENDING, OVERDUE, aggregate_period, aggregate_work
from app.business.works.due_dates import ResolvedTask, due_dates_for, one_off_due_date, resolve_tasks
from app.business.works.eligibility import is_eligible
from app.business.works.materializer import period_materializer
from app.business.works.models import PeriodTask, RecurringPeriod, Work, WorkTask
from app.business.works.recurrence import (
    PeriodBounds,
    next_period_after,
    normalize_pattern,
    period_bounds_for,
    previous_period_before,
)
from app.core.config import get_settings
from app.metrics import observe_backfill
from app.otel import get_tracer, set_span_attributes
from app.platform.security.context import AuthContext
from app.platform.tenancy.schemas import TenantConfig


logger = logging.getLogger("app.works.backfill")
tracer = get_tracer("app.works.backfill")


@dataclass(slots=True)
class BackfillResult:
    work_id: str
    periods_created: int = 0
    tasks_created: int = 0
    periods_visited: int = 0
    cap_reached: bool = False
    period_ids: list[str] = field(default_factory=list)


@dataclass(slots=True)
class TenantBackfillResult:
    tenant_id: str
    works: int = 0
    periods_created: int = 0
    tasks_created: int = 0
    failed_work_ids: list[str] = field(default_factory=list)


@dataclass(slots=True)
class BackfillDriver:
    def backfill(
        self,
        session: Session,
        ctx: AuthContext,
        config: TenantConfig,
        work: Work,
        today: date,
        *,
        full: bool = False,
        commit: bool = True,
    ) -> BackfillResult:
        result = BackfillResult(work_id=str(work.id))
        if not work.is_recurring or work.status == "cancelled":
            return result

        started = time.perf_counter()
        with tracer.start_as_current_span("works.backfill") as span:
            set_span_attributes(span, work_id=work.id, tenant_id=work.tenant_id)
            try:
                self._walk(session, config, work, today, result, full=full)
            except Exception:
                observe_backfill("failed", time.perf_counter() - started)
                raise
            span.set_attribute("periods_created", result.periods_created)

        work.last_backfill_at = datetime.now(timezone.utc)
        if commit:
            session.commit()
        observe_backfill("capped" if result.cap_reached else "ok", time.perf_counter() - started)
        logger.info(
            "backfill_completed",
            extra={
                "tenant_id": work.tenant_id,
                "work_id": str(work.id),
                "count": result.periods_created,
                "status": "capped" if result.cap_reached else "ok",
            },
        )
        return result

    def backfill_all(self, session: Session, ctx: AuthContext, config: TenantConfig, today: date) -> TenantBackfillResult:
        """Backfill every active recurring work of a tenant, one transaction per work."""
        summary = TenantBackfillResult(tenant_id=config.tenant_id)
        work_ids = session.scalars(
            select(Work.id).where(
                Work.tenant_id == config.tenant_id,
                Work.recurrence_pattern.is_not(None),
                Work.status != "cancelled",
            ).order_by(Work.created_at.asc())
        ).all()
        for work_id in work_ids:
            work = session.get(Work, work_id)
            if work is None:
                continue
            try:
                result = self.backfill(session, ctx, config, work, today)
            except Exception:
                session.rollback()
                summary.failed_work_ids.append(str(work_id))
                logger.exception("backfill_failed", extra={"tenant_id": config.tenant_id, "work_id": str(work_id)})
                continue
            summary.works += 1
            summary.periods_created += result.periods_created
            summary.tasks_created += result.tasks_created
        return summary

    def refresh_overdue(self, session: Session, ctx: AuthContext, config: TenantConfig, today: date) -> int:
        """Re-derive pending/overdue for open periods; returns how many changed."""
        periods = session.scalars(
            select(RecurringPeriod).where(
                RecurringPeriod.tenant_id == config.tenant_id,
                RecurringPeriod.status.in_((PENDING, OVERDUE)),
            )
        ).all()
        changed = 0
        for period in periods:
            change = aggregate_period(session, period, today)
            if change.status != change.previous_status:
                changed += 1
        session.commit()
        if changed:
            logger.info("periods_overdue_refreshed", extra={"tenant_id": config.tenant_id, "count": changed})
        return changed

    def recalculate_due_dates(self, session: Session, ctx: AuthContext, config: TenantConfig, work: Work, today: date) -> int:
        """Re-resolve due dates of still-open tasks from their templates."""
        templates = {item.id: item for item in catalog_service.active_task_templates(session, work.service_id)}
        updated = 0
        if work.is_recurring:
            pattern = normalize_pattern(work.recurrence_pattern)
            for period in work.periods:
                bounds = PeriodBounds(start=period.period_start, end=period.period_end, name=period.name)
                open_tasks = session.scalars(
                    select(PeriodTask).where(PeriodTask.period_id == period.id, PeriodTask.status != "completed")
                ).all()
                for task in open_tasks:
                    template = templates.get(task.task_template_id) if task.task_template_id else None
                    if template is None:
                        continue
                    resolved = {
                        item.instance_key: item
                        for item in due_dates_for(template, bounds, pattern, fiscal_year_start_month=config.fiscal_year_start_month)
                    }
                    match = resolved.get(task.instance_key)
                    if match is not None and match.due_date != task.due_date:
                        task.due_date = match.due_date
                        updated += 1
                aggregate_period(session, period, today)
        else:
            open_tasks = session.scalars(
                select(WorkTask).where(WorkTask.work_id == work.id, WorkTask.status != "completed")
            ).all()
            for task in open_tasks:
                template = templates.get(task.task_template_id) if task.task_template_id else None
                if template is None:
                    continue
                due = one_off_due_date(template, work.start_date)
                if due != task.due_date:
                    task.due_date = due
                    updated += 1
            aggregate_work(session, work)
        session.commit()
        logger.info("due_dates_recalculated", extra={"tenant_id": work.tenant_id, "work_id": str(work.id), "count": updated})
        return updated

    def _walk(self, session: Session, config: TenantConfig, work: Work, today: date, result: BackfillResult, *, full: bool) -> None:
        pattern = normalize_pattern(work.recurrence_pattern)
        fiscal = config.fiscal_year_start_month
        templates = catalog_service.active_task_templates(session, work.service_id)
        if not templates:
            logger.info("backfill_skipped", extra={"work_id": str(work.id), "reason": "no_task_templates"})
            return

        cap = get_settings().scheduler_max_periods_per_run
        bounds = None if full else self._resume_bounds(session, work, today, cap)
        if bounds is None:
            bounds = self._anchor_bounds(config, work, pattern)

        lookahead_left = max(0, config.lookahead_periods)
        while True:
            if result.periods_visited >= cap:
                result.cap_reached = True
                logger.warning(
                    "backfill_cap_reached",
                    extra={"work_id": str(work.id), "period_start": bounds.start.isoformat(), "reason": f"cap={cap}"},
                )
                break
            if work.end_date is not None and bounds.start > work.end_date:
                break
            result.periods_visited += 1

            tasks = resolve_tasks(templates, bounds, pattern, fiscal_year_start_month=fiscal)
            if bounds.start > today:
                if lookahead_left <= 0:
                    break
                lookahead_left -= 1
                if tasks:
                    self._materialize(session, work, bounds, tasks, today, result, expected=_reachable(work, tasks))
            else:
                decision = is_eligible(work.start_date, bounds, tasks, today, work_end=work.end_date)
                if decision.materialize_period:
                    eligible = list(decision.eligible_tasks)
                    self._materialize(session, work, bounds, eligible, today, result, expected=_reachable(work, tasks))
                elif config.lookahead_periods > 0 and bounds.contains(today) and tasks:
                    self._materialize(session, work, bounds, tasks, today, result, expected=_reachable(work, tasks))

            bounds = next_period_after(bounds.end, pattern, fiscal_year_start_month=fiscal)

    def _materialize(
        self,
        session: Session,
        work: Work,
        bounds: PeriodBounds,
        tasks: list[ResolvedTask],
        today: date,
        result: BackfillResult,
        *,
        expected: int,
    ) -> None:
        outcome = period_materializer.materialize(session, work, bounds, tasks, today=today, expected_instances=expected)
        result.tasks_created += outcome.tasks_created
        if outcome.period_created:
            result.periods_created += 1
            result.period_ids.append(str(outcome.period.id))

    @staticmethod
    def _anchor_bounds(config: TenantConfig, work: Work, pattern: str) -> PeriodBounds:
        fiscal = config.fiscal_year_start_month
        bounds = period_bounds_for(work.start_date, pattern, fiscal_year_start_month=fiscal, week_anchor=work.start_date)
        if work.anchor_type == "previous":
            return previous_period_before(bounds.start, pattern, fiscal_year_start_month=fiscal)
        if work.anchor_type == "next":
            return next_period_after(bounds.end, pattern, fiscal_year_start_month=fiscal)
        return bounds

    @staticmethod
    def _resume_bounds(session: Session, work: Work, today: date, cap: int) -> PeriodBounds | None:
        withheld = session.scalar(
            select(RecurringPeriod)
            .where(RecurringPeriod.work_id == work.id, RecurringPeriod.withheld_tasks > 0)
            .order_by(RecurringPeriod.period_start.asc())
            .limit(1)
        )
        latest_started = session.scalar(
            select(RecurringPeriod)
            .where(RecurringPeriod.work_id == work.id, RecurringPeriod.period_start <= today)
            .order_by(RecurringPeriod.period_start.desc())
            .limit(1)
        )
        resume = withheld or latest_started
        if withheld is not None and latest_started is not None:
            behind = session.scalar(
                select(func.count())
                .select_from(RecurringPeriod)
                .where(
                    RecurringPeriod.work_id == work.id,
                    RecurringPeriod.period_start >= withheld.period_start,
                    RecurringPeriod.period_start <= latest_started.period_start,
                )
            ) or 0
            # the walk must still reach today within one run
            if behind >= cap:
                logger.warning(
                    "backfill_withheld_resume_skipped",
                    extra={"work_id": str(work.id), "period_start": withheld.period_start.isoformat(), "count": behind},
                )
                resume = latest_started
        if resume is None:
            resume = session.scalar(
                select(RecurringPeriod)
                .where(RecurringPeriod.work_id == work.id)
                .order_by(RecurringPeriod.period_start.asc())
                .limit(1)
            )
        if resume is None:
            return None
        return PeriodBounds(start=resume.period_start, end=resume.period_end, name=resume.name)


def _reachable(work: Work, tasks: list[ResolvedTask]) -> int:
    """Instances that can still become eligible; those due before the work start never do."""
    return sum(1 for task in tasks if task.due_date >= work.start_date)


backfill_driver = BackfillDriver()
