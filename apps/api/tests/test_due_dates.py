from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import date

from app.business.works.due_dates import DueDateRule, due_dates_for, one_off_due_date, resolve_due_date, resolve_tasks
from app.business.works.eligibility import is_eligible
from app.business.works.recurrence import period_bounds_for


@dataclass
class Template:
    title: str
    granularity: str = "inherit"
    exact_due_date: date | None = None
    due_day_of_month: int | None = None
    due_offset_days: int | None = None
    due_offset_months: int | None = None
    sort_order: int = 0
    id: uuid.UUID = field(default_factory=uuid.uuid4)


OCTOBER = (date(2025, 10, 1), date(2025, 10, 31))


def test_exact_date_only_applies_inside_window() -> None:
    inside = DueDateRule(exact_date=date(2025, 10, 20))
    outside = DueDateRule(exact_date=date(2025, 11, 20))
    assert resolve_due_date(inside, *OCTOBER) == date(2025, 10, 20)
    assert resolve_due_date(outside, *OCTOBER) is None


def test_day_of_month_clamps_to_month_length() -> None:
    rule = DueDateRule(day_of_month=31)
    assert resolve_due_date(rule, date(2025, 2, 1), date(2025, 2, 28)) == date(2025, 2, 28)
    assert resolve_due_date(rule, date(2024, 2, 1), date(2024, 2, 29)) == date(2024, 2, 29)
    assert resolve_due_date(DueDateRule(day_of_month=10), *OCTOBER) == date(2025, 10, 10)


def test_offsets_are_counted_from_period_end() -> None:
    assert resolve_due_date(DueDateRule(offset_days=10), *OCTOBER) == date(2025, 11, 10)
    assert resolve_due_date(DueDateRule(offset_months=1), *OCTOBER) == date(2025, 11, 30)
    assert resolve_due_date(DueDateRule(), *OCTOBER) == date(2025, 11, 10)


def test_first_configured_rule_wins() -> None:
    rule = DueDateRule(day_of_month=5, offset_days=20, offset_months=2)
    assert resolve_due_date(rule, *OCTOBER) == date(2025, 10, 5)

    rule = DueDateRule(offset_days=3, offset_months=2)
    assert resolve_due_date(rule, *OCTOBER) == date(2025, 11, 3)


def test_monthly_template_under_quarterly_work_expands_per_month() -> None:
    quarter = period_bounds_for(date(2025, 8, 1), "quarterly")
    monthly = Template(title="GSTR-1", granularity="monthly", due_day_of_month=21, sort_order=1)
    quarterly = Template(title="Quarterly review", due_offset_days=10, sort_order=2)

    tasks = resolve_tasks([quarterly, monthly], quarter, "quarterly")

    assert [(task.title, task.due_date) for task in tasks] == [
        ("GSTR-1 – July", date(2025, 7, 21)),
        ("GSTR-1 – August", date(2025, 8, 21)),
        ("GSTR-1 – September", date(2025, 9, 21)),
        ("Quarterly review", date(2025, 10, 10)),
    ]
    assert [task.instance_key for task in tasks] == ["2025-07-01", "2025-08-01", "2025-09-01", ""]

    late = is_eligible(date(2025, 7, 1), quarter, tasks, date(2025, 11, 21))
    assert late.materialize_period
    assert len(late.eligible_tasks) == 4
    assert late.withheld_tasks == ()

    early = is_eligible(date(2025, 7, 1), quarter, tasks, date(2025, 9, 25))
    assert early.materialize_period
    assert [task.title for task in early.withheld_tasks] == ["Quarterly review"]


def test_coarser_granularity_resolves_against_whole_period() -> None:
    month = period_bounds_for(date(2025, 10, 1), "monthly")
    yearly = Template(title="Annual return", granularity="yearly", due_day_of_month=15)
    tasks = due_dates_for(yearly, month, "monthly")
    assert [(task.title, task.due_date, task.instance_key) for task in tasks] == [("Annual return", date(2025, 10, 15), "")]


def test_exact_date_template_skips_months_outside_window() -> None:
    quarter = period_bounds_for(date(2025, 8, 1), "quarterly")
    template = Template(title="Audit visit", granularity="monthly", exact_due_date=date(2025, 8, 18))
    tasks = due_dates_for(template, quarter, "quarterly")
    assert [(task.title, task.due_date) for task in tasks] == [("Audit visit – August", date(2025, 8, 18))]


def test_one_off_due_date() -> None:
    start = date(2025, 10, 7)
    assert one_off_due_date(Template(title="Filing", exact_due_date=date(2025, 12, 1)), start) == date(2025, 12, 1)
    assert one_off_due_date(Template(title="Filing", due_offset_days=5), start) == date(2025, 10, 12)
    assert one_off_due_date(Template(title="Filing"), start) == date(2025, 10, 17)
