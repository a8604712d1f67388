"""Eligibility gate.

A period materializes once at least one of its task instances has a due
date inside ``[work start, today]``; only those instances are inserted. Tasks
still in the future are withheld for a later run.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date

from app.business.works.due_dates import ResolvedTask
from app.business.works.recurrence import PeriodBounds


@dataclass(frozen=True, slots=True)
class EligibilityDecision:
    materialize_period: bool
    eligible_tasks: tuple[ResolvedTask, ...] = field(default_factory=tuple)
    withheld_tasks: tuple[ResolvedTask, ...] = field(default_factory=tuple)


def is_task_eligible(task: ResolvedTask, work_start: date, today: date) -> bool:
    return work_start <= task.due_date <= today


def is_eligible(
    work_start: date,
    period: PeriodBounds,
    tasks: list[ResolvedTask],
    today: date,
    *,
    work_end: date | None = None,
) -> EligibilityDecision:
    if work_end is not None and period.start > work_end:
        return EligibilityDecision(materialize_period=False, withheld_tasks=tuple(tasks))

    eligible = tuple(task for task in tasks if is_task_eligible(task, work_start, today))
    withheld = tuple(task for task in tasks if not is_task_eligible(task, work_start, today))
    return EligibilityDecision(materialize_period=bool(eligible), eligible_tasks=eligible, withheld_tasks=withheld)
