"""Completion aggregation for periods and one-off works.

Status is always derived from the task rows, so the aggregate is reversible:
a completed period that gains an incomplete task drops back to pending or
overdue.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.business.works.models import PeriodTask, RecurringPeriod, Work, WorkTask


logger = logging.getLogger("app.works.completion")

COMPLETED = "completed"
PENDING = "pending"
OVERDUE = "overdue"
IN_PROGRESS = "in_progress"
CANCELLED = "cancelled"


class TaskRow(Protocol):
    status: str
    due_date: date


@dataclass(frozen=True, slots=True)
class AggregateChange:
    previous_status: str
    status: str
    total: int
    completed: int

    @property
    def became_completed(self) -> bool:
        return self.status == COMPLETED and self.previous_status != COMPLETED

    @property
    def left_completed(self) -> bool:
        return self.previous_status == COMPLETED and self.status != COMPLETED


def period_status(tasks: Iterable[TaskRow], today: date) -> str:
    rows = list(tasks)
    if rows and all(item.status == COMPLETED for item in rows):
        return COMPLETED
    if any(item.status != COMPLETED and item.due_date < today for item in rows):
        return OVERDUE
    return PENDING


def work_status(tasks: Iterable[TaskRow], current: str) -> str:
    rows = list(tasks)
    if current == CANCELLED:
        return current
    if rows and all(item.status == COMPLETED for item in rows):
        return COMPLETED
    if any(item.status in (COMPLETED, IN_PROGRESS) for item in rows):
        return IN_PROGRESS
    if current == COMPLETED:
        return IN_PROGRESS if rows else PENDING
    return current


def aggregate_period(session: Session, period: RecurringPeriod, today: date) -> AggregateChange:
    tasks = session.scalars(select(PeriodTask).where(PeriodTask.period_id == period.id)).all()
    previous = period.status
    completed = sum(1 for item in tasks if item.status == COMPLETED)

    period.total_tasks = len(tasks)
    period.completed_tasks = completed
    period.all_tasks_completed = bool(tasks) and completed == len(tasks)
    period.status = period_status(tasks, today)
    if period.status == COMPLETED and previous != COMPLETED:
        period.completed_at = datetime.now(timezone.utc)
    elif period.status != COMPLETED:
        period.completed_at = None
    session.flush()

    change = AggregateChange(previous_status=previous, status=period.status, total=len(tasks), completed=completed)
    if change.left_completed:
        logger.info(
            "period_reopened",
            extra={"tenant_id": period.tenant_id, "period_id": str(period.id), "status": period.status},
        )
    return change


def aggregate_work(session: Session, work: Work) -> AggregateChange:
    """Aggregate a one-off work over its own task list."""
    tasks = session.scalars(select(WorkTask).where(WorkTask.work_id == work.id)).all()
    previous = work.status
    completed = sum(1 for item in tasks if item.status == COMPLETED)
    work.status = work_status(tasks, previous)
    session.flush()
    return AggregateChange(previous_status=previous, status=work.status, total=len(tasks), completed=completed)
