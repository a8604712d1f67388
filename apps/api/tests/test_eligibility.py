from __future__ import annotations

from datetime import date, timedelta
from types import SimpleNamespace

from app.business.works.completion import COMPLETED, OVERDUE, PENDING, period_status
from app.business.works.due_dates import ResolvedTask
from app.business.works.eligibility import is_eligible
from app.business.works.recurrence import period_bounds_for


OCTOBER = period_bounds_for(date(2025, 10, 1), "monthly")


def _task(title: str, due: date) -> ResolvedTask:
    return ResolvedTask(template_id=None, title=title, due_date=due, instance_key="")


def test_eligibility_is_monotonic_in_today() -> None:
    tasks = [_task("Early", date(2025, 10, 10)), _task("Late", date(2025, 10, 25))]
    previous = 0
    day = date(2025, 10, 1)
    while day <= date(2025, 11, 5):
        decision = is_eligible(date(2025, 9, 1), OCTOBER, tasks, day)
        assert len(decision.eligible_tasks) >= previous
        assert len(decision.eligible_tasks) + len(decision.withheld_tasks) == len(tasks)
        previous = len(decision.eligible_tasks)
        day += timedelta(days=1)
    assert previous == 2


def test_period_not_materialized_before_first_due_date() -> None:
    decision = is_eligible(date(2025, 9, 1), OCTOBER, [_task("File", date(2025, 10, 10))], date(2025, 10, 9))
    assert not decision.materialize_period
    assert decision.eligible_tasks == ()


def test_task_due_before_work_start_is_withheld() -> None:
    tasks = [_task("Before start", date(2025, 10, 5)), _task("After start", date(2025, 10, 20))]
    decision = is_eligible(date(2025, 10, 7), OCTOBER, tasks, date(2025, 10, 31))
    assert [task.title for task in decision.eligible_tasks] == ["After start"]
    assert [task.title for task in decision.withheld_tasks] == ["Before start"]


def test_period_after_work_end_is_not_materialized() -> None:
    decision = is_eligible(
        date(2025, 1, 1),
        OCTOBER,
        [_task("File", date(2025, 10, 10))],
        date(2025, 12, 1),
        work_end=date(2025, 9, 30),
    )
    assert not decision.materialize_period
    assert len(decision.withheld_tasks) == 1


def test_period_status_aggregation() -> None:
    today = date(2025, 10, 13)
    done = SimpleNamespace(status=COMPLETED, due_date=date(2025, 10, 10))
    late = SimpleNamespace(status="pending", due_date=date(2025, 10, 10))
    upcoming = SimpleNamespace(status="in_progress", due_date=date(2025, 10, 20))

    assert period_status([done], today) == COMPLETED
    assert period_status([done, late], today) == OVERDUE
    assert period_status([done, upcoming], today) == PENDING
    assert period_status([], today) == PENDING
