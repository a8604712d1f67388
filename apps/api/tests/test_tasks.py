from __future__ import annotations

from collections.abc import Callable
from datetime import date

import pytest
from sqlalchemy.orm import Session

from app import tasks
from app.business.works.schemas import WorkRead
from app.business.works.service import work_service
from app.platform.security.context import AuthContext


@pytest.fixture()
def task_session(monkeypatch: pytest.MonkeyPatch, db_session: Session) -> Session:
    monkeypatch.setattr(tasks, "SessionLocal", lambda: db_session)
    return db_session


def test_tenant_tick_backfills_and_reports(
    task_session: Session, ctx: AuthContext, make_work: Callable[..., WorkRead]
) -> None:
    work = make_work(today=date(2025, 10, 13), recurrence_pattern="monthly")

    result = tasks.run_tenant_tick("tenant-a", date(2025, 11, 12))

    assert result["tenant_id"] == "tenant-a"
    assert result["works"] == 1
    assert result["periods_created"] == 1
    assert result["failed_work_ids"] == []
    names = [item.name for item in work_service.list_periods(task_session, ctx, work.id)]
    assert names == ["October 2025", "November 2025"]


def test_backfill_all_tenants_visits_each_tenant(
    task_session: Session, make_work: Callable[..., WorkRead]
) -> None:
    make_work(today=date(2025, 10, 13), recurrence_pattern="monthly")
    make_work(today=date(2025, 10, 13))

    results = tasks.backfill_all_tenants(as_of="2025-12-15")

    assert [item["tenant_id"] for item in results] == ["tenant-a"]
    assert results[0]["works"] == 1
    assert results[0]["periods_created"] == 2


def test_backfill_work_task(task_session: Session, make_work: Callable[..., WorkRead]) -> None:
    work = make_work(today=date(2025, 10, 13), recurrence_pattern="quarterly")

    result = tasks.backfill_work("tenant-a", str(work.id), as_of="2026-01-20")

    assert result["work_id"] == str(work.id)
    assert result["periods_created"] == 1
