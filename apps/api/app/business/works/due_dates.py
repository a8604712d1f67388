"""Task due-date resolution against period bounds."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Protocol

from app.business.works.recurrence import (
    DEFAULT_FISCAL_YEAR_START_MONTH,
    PeriodBounds,
    add_months,
    clamp_day,
    is_finer,
    normalize_pattern,
    sub_period_label,
    sub_periods,
)


FALLBACK_OFFSET_DAYS = 10
INHERIT = "inherit"
TITLE_SEPARATOR = " – "


class TaskTemplateLike(Protocol):
    id: uuid.UUID | None
    title: str
    granularity: str
    exact_due_date: date | None
    due_day_of_month: int | None
    due_offset_days: int | None
    due_offset_months: int | None
    sort_order: int


@dataclass(frozen=True, slots=True)
class DueDateRule:
    exact_date: date | None = None
    day_of_month: int | None = None
    offset_days: int | None = None
    offset_months: int | None = None

    @classmethod
    def from_template(cls, template: TaskTemplateLike) -> DueDateRule:
        return cls(
            exact_date=template.exact_due_date,
            day_of_month=template.due_day_of_month,
            offset_days=template.due_offset_days,
            offset_months=template.due_offset_months,
        )


@dataclass(frozen=True, slots=True)
class ResolvedTask:
    template_id: uuid.UUID | None
    title: str
    due_date: date
    instance_key: str
    sort_order: int = 0


def resolve_due_date(rule: DueDateRule, start: date, end: date) -> date | None:
    """Apply the first configured rule; None means the template has no instance in this window."""
    if rule.exact_date is not None:
        return rule.exact_date if start <= rule.exact_date <= end else None
    if rule.day_of_month is not None:
        return clamp_day(start.year, start.month, rule.day_of_month)
    if rule.offset_days is not None:
        return end + timedelta(days=rule.offset_days)
    if rule.offset_months is not None:
        return add_months(end, rule.offset_months)
    return end + timedelta(days=FALLBACK_OFFSET_DAYS)


def due_dates_for(
    template: TaskTemplateLike,
    period: PeriodBounds,
    pattern: str,
    *,
    fiscal_year_start_month: int = DEFAULT_FISCAL_YEAR_START_MONTH,
) -> list[ResolvedTask]:
    rule = DueDateRule.from_template(template)
    granularity = template.granularity or INHERIT
    pattern = normalize_pattern(pattern)

    if granularity == INHERIT or not is_finer(normalize_pattern(granularity), pattern):
        due = resolve_due_date(rule, period.start, period.end)
        if due is None:
            return []
        return [ResolvedTask(template_id=template.id, title=template.title, due_date=due, instance_key="", sort_order=template.sort_order)]

    granularity = normalize_pattern(granularity)
    resolved: list[ResolvedTask] = []
    for index, window in enumerate(sub_periods(period, granularity, fiscal_year_start_month=fiscal_year_start_month), start=1):
        due = resolve_due_date(rule, window.start, window.end)
        if due is None:
            continue
        label = sub_period_label(window, granularity, index)
        resolved.append(
            ResolvedTask(
                template_id=template.id,
                title=f"{template.title}{TITLE_SEPARATOR}{label}",
                due_date=due,
                instance_key=window.start.isoformat(),
                sort_order=template.sort_order,
            )
        )
    return resolved


def resolve_tasks(
    templates: list[TaskTemplateLike],
    period: PeriodBounds,
    pattern: str,
    *,
    fiscal_year_start_month: int = DEFAULT_FISCAL_YEAR_START_MONTH,
) -> list[ResolvedTask]:
    """All task instances for a period, ordered by due date then template order."""
    resolved: list[ResolvedTask] = []
    for template in templates:
        resolved.extend(due_dates_for(template, period, pattern, fiscal_year_start_month=fiscal_year_start_month))
    return sorted(resolved, key=lambda item: (item.due_date, item.sort_order, item.title))


def one_off_due_date(template: TaskTemplateLike, start: date) -> date:
    """Due date of a template instantiated for a one-off work starting on ``start``."""
    rule = DueDateRule.from_template(template)
    if rule.exact_date is not None:
        return rule.exact_date
    due = resolve_due_date(rule, start, start)
    return due if due is not None else start + timedelta(days=FALLBACK_OFFSET_DAYS)
