from __future__ import annotations

import dataclasses
from collections.abc import Callable
from datetime import date

import pytest
from fastapi import HTTPException
from sqlalchemy import select
from sqlalchemy.orm import Session

from app import events
from app.business.catalog.models import TaskTemplate
from app.business.works.backfill import BackfillDriver, backfill_driver
from app.business.works.models import Work
from app.business.works.schemas import WorkRead
from app.business.works.service import work_service
from app.core.config import get_settings
from app.platform.security.context import AuthContext
from app.platform.tenancy.schemas import TenantConfig


def _periods(db_session: Session, ctx: AuthContext, work: WorkRead) -> list:
    return work_service.list_periods(db_session, ctx, work.id)


def test_lookahead_materializes_next_period_with_all_tasks(
    db_session: Session, ctx: AuthContext, config: TenantConfig, make_work: Callable[..., WorkRead]
) -> None:
    today = date(2025, 10, 13)
    work = make_work(today=today, recurrence_pattern="monthly", tenant_config=dataclasses.replace(config, lookahead_periods=1))

    periods = _periods(db_session, ctx, work)
    assert [(item.name, item.status) for item in periods] == [("October 2025", "overdue"), ("November 2025", "pending")]
    assert [task.due_date for task in periods[0].tasks] == [date(2025, 10, 10)]
    assert [task.due_date for task in periods[1].tasks] == [date(2025, 11, 10)]


def test_no_future_periods_without_lookahead(
    db_session: Session, ctx: AuthContext, make_work: Callable[..., WorkRead]
) -> None:
    work = make_work(today=date(2025, 10, 13), recurrence_pattern="monthly")

    periods = _periods(db_session, ctx, work)
    assert [item.name for item in periods] == ["October 2025"]
    assert all(task.due_date <= date(2025, 10, 13) for item in periods for task in item.tasks)


def test_backfill_is_idempotent_and_progressive(
    db_session: Session, ctx: AuthContext, config: TenantConfig, make_work: Callable[..., WorkRead]
) -> None:
    work = make_work(today=date(2025, 10, 13), recurrence_pattern="monthly")

    again = work_service.backfill_work(db_session, ctx, config, work.id, today=date(2025, 10, 13))
    assert again.periods_created == 0
    assert again.tasks_created == 0

    later = work_service.backfill_work(db_session, ctx, config, work.id, today=date(2025, 11, 12))
    assert later.periods_created == 1
    assert later.tasks_created == 1
    assert [item.name for item in _periods(db_session, ctx, work)] == ["October 2025", "November 2025"]


def test_withheld_tasks_are_added_on_later_runs(
    db_session: Session,
    ctx: AuthContext,
    config: TenantConfig,
    make_service: Callable[..., object],
    make_work: Callable[..., WorkRead],
) -> None:
    service = make_service(
        [
            {"title": "File GSTR-3B", "due_day_of_month": 10, "sort_order": 1},
            {"title": "Reconcile books", "due_offset_days": 20, "sort_order": 2},
        ]
    )
    work = make_work(today=date(2025, 10, 13), service=service, recurrence_pattern="monthly")
    october = _periods(db_session, ctx, work)[0]
    assert october.total_tasks == 1
    assert october.withheld_tasks == 1

    work_service.backfill_work(db_session, ctx, config, work.id, today=date(2025, 11, 12))
    result = work_service.backfill_work(db_session, ctx, config, work.id, today=date(2025, 11, 21))
    assert result.periods_created == 0
    assert result.tasks_created == 1

    october, november = _periods(db_session, ctx, work)
    assert [task.title for task in october.tasks] == ["File GSTR-3B", "Reconcile books"]
    assert october.withheld_tasks == 0
    assert november.withheld_tasks == 1


def test_run_stops_at_period_cap_and_resumes(
    monkeypatch: pytest.MonkeyPatch,
    db_session: Session,
    ctx: AuthContext,
    config: TenantConfig,
    make_work: Callable[..., WorkRead],
) -> None:
    monkeypatch.setenv("SCHEDULER_MAX_PERIODS_PER_RUN", "3")
    get_settings.cache_clear()

    work = make_work(today=date(2025, 10, 13), recurrence_pattern="monthly", start_date=date(2025, 1, 1))
    assert work.period_count == 3

    result = work_service.backfill_work(db_session, ctx, config, work.id, today=date(2025, 10, 13))
    assert result.cap_reached
    assert result.periods_visited == 3
    assert result.periods_created == 2
    assert [item.name for item in _periods(db_session, ctx, work)][-1] == "May 2025"


def test_instances_due_before_start_do_not_hold_back_the_walk(
    monkeypatch: pytest.MonkeyPatch,
    db_session: Session,
    ctx: AuthContext,
    config: TenantConfig,
    make_service: Callable[..., object],
    make_work: Callable[..., WorkRead],
) -> None:
    monkeypatch.setenv("SCHEDULER_MAX_PERIODS_PER_RUN", "4")
    get_settings.cache_clear()
    service = make_service(
        [
            {"title": "Pay advance tax", "due_day_of_month": 5, "sort_order": 1},
            {"title": "File GSTR-1", "due_day_of_month": 20, "sort_order": 2},
        ]
    )
    work = make_work(today=date(2025, 10, 21), service=service, recurrence_pattern="monthly")
    october = _periods(db_session, ctx, work)[0]
    assert [task.title for task in october.tasks] == ["File GSTR-1"]
    assert october.withheld_tasks == 0

    for today in (date(2026, 2, 21), date(2026, 3, 21), date(2026, 4, 21), date(2026, 5, 21)):
        work_service.backfill_work(db_session, ctx, config, work.id, today=today)

    names = [item.name for item in _periods(db_session, ctx, work)]
    assert names[0] == "October 2025"
    assert names[-1] == "May 2026"
    assert len(names) == 8


def test_distant_withheld_period_does_not_stall_progress(
    monkeypatch: pytest.MonkeyPatch,
    db_session: Session,
    ctx: AuthContext,
    config: TenantConfig,
    make_service: Callable[..., object],
    make_work: Callable[..., WorkRead],
) -> None:
    monkeypatch.setenv("SCHEDULER_MAX_PERIODS_PER_RUN", "3")
    get_settings.cache_clear()
    service = make_service(
        [
            {"title": "File GSTR-3B", "due_day_of_month": 10, "sort_order": 1},
            {"title": "Annual reconciliation", "due_offset_months": 6, "sort_order": 2},
        ]
    )
    work = make_work(today=date(2025, 3, 12), service=service, recurrence_pattern="monthly", start_date=date(2025, 1, 1))
    assert [item.withheld_tasks for item in _periods(db_session, ctx, work)] == [1, 1, 1]

    result = work_service.backfill_work(db_session, ctx, config, work.id, today=date(2025, 6, 12))
    assert result.periods_created == 2
    assert [item.name for item in _periods(db_session, ctx, work)][-1] == "May 2025"

    full = work_service.backfill_work(db_session, ctx, config, work.id, today=date(2025, 8, 12), full=True)
    assert full.tasks_created == 1
    january = _periods(db_session, ctx, work)[0]
    assert january.total_tasks == 2
    assert january.withheld_tasks == 0


def test_full_backfill_restarts_from_anchor(
    db_session: Session, ctx: AuthContext, config: TenantConfig, make_work: Callable[..., WorkRead]
) -> None:
    work = make_work(today=date(2025, 3, 12), recurrence_pattern="monthly", start_date=date(2025, 1, 1))
    result = work_service.backfill_work(db_session, ctx, config, work.id, today=date(2025, 3, 12), full=True)
    assert result.periods_visited == 4
    assert result.periods_created == 0


def test_end_date_bounds_the_schedule(
    db_session: Session, ctx: AuthContext, make_work: Callable[..., WorkRead]
) -> None:
    work = make_work(
        today=date(2025, 10, 13),
        recurrence_pattern="monthly",
        start_date=date(2025, 1, 1),
        end_date=date(2025, 3, 15),
    )
    assert [item.name for item in _periods(db_session, ctx, work)] == ["January 2025", "February 2025", "March 2025"]


def test_previous_anchor_starts_one_period_early(
    db_session: Session,
    ctx: AuthContext,
    make_service: Callable[..., object],
    make_work: Callable[..., WorkRead],
) -> None:
    service = make_service([{"title": "File return", "due_offset_days": 10}])
    work = make_work(today=date(2025, 10, 13), service=service, recurrence_pattern="monthly", anchor_type="previous")

    periods = _periods(db_session, ctx, work)
    assert [item.name for item in periods] == ["September 2025"]
    assert periods[0].tasks[0].due_date == date(2025, 10, 10)


def test_documents_are_copied_into_each_period(
    db_session: Session, ctx: AuthContext, config: TenantConfig, make_work: Callable[..., WorkRead]
) -> None:
    work = make_work(today=date(2025, 10, 13), recurrence_pattern="monthly", documents=["Sales register", "Bank statement"])
    work_service.backfill_work(db_session, ctx, config, work.id, today=date(2025, 11, 12))

    periods = _periods(db_session, ctx, work)
    assert len(periods) == 2
    for period in periods:
        assert sorted(item.name for item in period.documents) == ["Bank statement", "Sales register"]
        assert not any(item.is_collected for item in period.documents)


def test_weekly_pattern_uses_start_date_as_anchor(
    db_session: Session,
    ctx: AuthContext,
    make_service: Callable[..., object],
    make_work: Callable[..., WorkRead],
) -> None:
    service = make_service([{"title": "Weekly payroll", "due_offset_days": 0}])
    work = make_work(today=date(2025, 10, 20), service=service, recurrence_pattern="weekly")

    periods = _periods(db_session, ctx, work)
    assert [(item.period_start, item.period_end) for item in periods] == [
        (date(2025, 10, 7), date(2025, 10, 13)),
        (date(2025, 10, 14), date(2025, 10, 20)),
    ]
    assert periods[0].name == "07 Oct 2025 - 13 Oct 2025"


def test_quarterly_work_with_monthly_template(
    db_session: Session,
    ctx: AuthContext,
    make_service: Callable[..., object],
    make_work: Callable[..., WorkRead],
) -> None:
    service = make_service(
        [
            {"title": "GSTR-1", "granularity": "monthly", "due_day_of_month": 21, "sort_order": 1},
            {"title": "Quarterly review", "due_offset_days": 10, "sort_order": 2},
        ]
    )
    work = make_work(today=date(2025, 11, 21), service=service, recurrence_pattern="quarterly", start_date=date(2025, 7, 1))

    q3, q4 = _periods(db_session, ctx, work)
    assert q3.name == "Q3 2025"
    assert [task.title for task in q3.tasks] == [
        "GSTR-1 – July",
        "GSTR-1 – August",
        "GSTR-1 – September",
        "Quarterly review",
    ]
    assert q3.withheld_tasks == 0
    assert q4.name == "Q4 2025"
    assert [task.due_date for task in q4.tasks] == [date(2025, 10, 21), date(2025, 11, 21)]
    assert q4.withheld_tasks == 2


def test_backfill_rejects_one_off_work(
    db_session: Session, ctx: AuthContext, config: TenantConfig, make_work: Callable[..., WorkRead]
) -> None:
    work = make_work(today=date(2025, 10, 13))
    assert not work.is_recurring
    assert len(work.tasks) == 1

    with pytest.raises(HTTPException) as exc:
        work_service.backfill_work(db_session, ctx, config, work.id, today=date(2025, 10, 13))
    assert exc.value.status_code == 409


def test_tenant_tick_isolates_failing_work(
    monkeypatch: pytest.MonkeyPatch,
    db_session: Session,
    ctx: AuthContext,
    config: TenantConfig,
    make_work: Callable[..., WorkRead],
) -> None:
    healthy = make_work(today=date(2025, 10, 13), recurrence_pattern="monthly")
    broken = make_work(today=date(2025, 10, 13), recurrence_pattern="monthly")

    original_walk = BackfillDriver._walk

    def flaky_walk(self, session, tenant_config, work, today, result, *, full):  # type: ignore[no-untyped-def]
        if work.id == broken.id:
            raise RuntimeError("calendar exploded")
        return original_walk(self, session, tenant_config, work, today, result, full=full)

    monkeypatch.setattr(BackfillDriver, "_walk", flaky_walk)

    summary = work_service.backfill_tenant(db_session, ctx, config, today=date(2025, 11, 12))
    assert summary.failed_work_ids == [broken.id]
    assert summary.works == 1
    assert summary.periods_created == 1
    assert [item.name for item in _periods(db_session, ctx, healthy)] == ["October 2025", "November 2025"]
    assert [item.name for item in _periods(db_session, ctx, broken)] == ["October 2025"]


def test_refresh_overdue_moves_pending_periods(
    db_session: Session, ctx: AuthContext, config: TenantConfig, make_work: Callable[..., WorkRead]
) -> None:
    work = make_work(today=date(2025, 10, 8), recurrence_pattern="monthly", tenant_config=dataclasses.replace(config, lookahead_periods=1))
    assert [item.status for item in _periods(db_session, ctx, work)] == ["pending", "pending"]

    changed = backfill_driver.refresh_overdue(db_session, ctx, config, date(2025, 10, 13))
    assert changed == 1
    assert [item.status for item in _periods(db_session, ctx, work)] == ["overdue", "pending"]


def test_recalculate_due_dates_follows_template_changes(
    db_session: Session, ctx: AuthContext, config: TenantConfig, make_work: Callable[..., WorkRead]
) -> None:
    work = make_work(today=date(2025, 10, 13), recurrence_pattern="monthly")
    row = db_session.scalar(select(Work).where(Work.id == work.id))
    assert row is not None
    template = db_session.scalar(select(TaskTemplate).where(TaskTemplate.service_id == row.service_id))
    assert template is not None
    template.due_day_of_month = 20
    db_session.commit()

    result = work_service.recalculate_due_dates(db_session, ctx, config, work.id, today=date(2025, 10, 13))
    assert result.updated_tasks == 1
    october = _periods(db_session, ctx, work)[0]
    assert october.tasks[0].due_date == date(2025, 10, 20)
    assert october.status == "pending"


def test_materialization_publishes_events(make_work: Callable[..., WorkRead]) -> None:
    make_work(today=date(2025, 10, 13), recurrence_pattern="monthly")
    names = [item["event_type"] for item in events.published_events]
    assert "works.work.created" in names
    assert "works.period.materialized" in names
