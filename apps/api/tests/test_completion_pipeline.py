from __future__ import annotations

import dataclasses
from collections.abc import Callable
from datetime import date
from decimal import Decimal

import pytest
from fastapi import HTTPException
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app import events
from app.business.billing.automation import BillingAutomation
from app.business.billing.models import Invoice
from app.business.billing.schemas import InvoiceStatusUpdate
from app.business.billing.service import billing_service
from app.business.catalog.schemas import ServiceTemplateRead
from app.business.works.schemas import PeriodTaskCreate, TaskStatusUpdate, WorkRead, WorkStatusUpdate
from app.business.works.service import work_service
from app.platform.ledger.models import LedgerAccount
from app.platform.security.context import AuthContext
from app.platform.tenancy.schemas import TenantConfig


TODAY = date(2025, 10, 13)


@pytest.fixture()
def billable_service(
    chart: dict[str, LedgerAccount], make_service: Callable[..., ServiceTemplateRead]
) -> ServiceTemplateRead:
    return make_service(
        [{"title": "File GSTR-3B", "due_day_of_month": 10}],
        tax_rate=Decimal("18"),
        income_account_id=chart["4000"].id,
    )


def _complete_october(
    db_session: Session, ctx: AuthContext, config: TenantConfig, work: WorkRead, status: str = "completed"
):
    period = work_service.list_periods(db_session, ctx, work.id)[0]
    task = period.tasks[0]
    return period, work_service.update_period_task(
        db_session, ctx, config, period.id, task.id, TaskStatusUpdate(status=status), today=TODAY
    )


def _invoice_count(db_session: Session) -> int:
    return db_session.scalar(select(func.count()).select_from(Invoice)) or 0


def test_completing_period_generates_invoice(
    db_session: Session,
    ctx: AuthContext,
    config: TenantConfig,
    billable_service: ServiceTemplateRead,
    make_work: Callable[..., WorkRead],
) -> None:
    work = make_work(today=TODAY, service=billable_service, recurrence_pattern="monthly")
    period, result = _complete_october(db_session, ctx, config, work)

    assert result.aggregate_status == "completed"
    assert result.previous_aggregate_status == "overdue"
    assert result.completed_tasks == result.total_tasks == 1
    assert result.invoice_id is not None

    invoice = billing_service.get_invoice(db_session, ctx, result.invoice_id)
    assert invoice.invoice_number == "INV-0001"
    assert invoice.period_id == period.id
    assert invoice.status == "draft"
    assert invoice.origin == "auto"
    assert invoice.subtotal == Decimal("1000")
    assert invoice.tax_amount == Decimal("180")
    assert invoice.total == Decimal("1180")
    assert invoice.due_date == date(2025, 11, 12)
    assert invoice.income_account_id is not None
    assert invoice.customer_account_id is not None
    assert invoice.voucher_ids == []

    refreshed = work_service.get_period(db_session, ctx, period.id)
    assert refreshed.is_billed
    assert refreshed.invoice_id == invoice.id
    assert work_service.get_work(db_session, ctx, work.id).status == "in_progress"

    customer_account = db_session.get(LedgerAccount, invoice.customer_account_id)
    assert customer_account is not None
    assert customer_account.code == "1100-0001"


def test_reopen_and_recomplete_keeps_single_invoice(
    db_session: Session,
    ctx: AuthContext,
    config: TenantConfig,
    billable_service: ServiceTemplateRead,
    make_work: Callable[..., WorkRead],
) -> None:
    work = make_work(today=TODAY, service=billable_service, recurrence_pattern="monthly")
    _complete_october(db_session, ctx, config, work)

    _, reopened = _complete_october(db_session, ctx, config, work, status="pending")
    assert reopened.aggregate_status == "overdue"
    assert reopened.previous_aggregate_status == "completed"

    _, again = _complete_october(db_session, ctx, config, work)
    assert again.aggregate_status == "completed"
    assert again.invoice_id is None
    assert _invoice_count(db_session) == 1


def test_billing_failure_does_not_roll_back_status_change(
    monkeypatch: pytest.MonkeyPatch,
    db_session: Session,
    ctx: AuthContext,
    config: TenantConfig,
    billable_service: ServiceTemplateRead,
    make_work: Callable[..., WorkRead],
) -> None:
    work = make_work(today=TODAY, service=billable_service, recurrence_pattern="monthly")

    def explode(self, *args, **kwargs):  # type: ignore[no-untyped-def]
        raise RuntimeError("numbering backend unavailable")

    monkeypatch.setattr(BillingAutomation, "on_completion", explode)

    period, result = _complete_october(db_session, ctx, config, work)
    assert result.aggregate_status == "completed"
    assert result.invoice_id is None

    db_session.expire_all()
    stored = work_service.get_period(db_session, ctx, period.id)
    assert stored.status == "completed"
    assert stored.tasks[0].status == "completed"
    assert not stored.is_billed
    assert _invoice_count(db_session) == 0


def test_auto_bill_disabled_skips_invoice(
    db_session: Session,
    ctx: AuthContext,
    config: TenantConfig,
    billable_service: ServiceTemplateRead,
    make_work: Callable[..., WorkRead],
) -> None:
    work = make_work(today=TODAY, service=billable_service, recurrence_pattern="monthly", auto_bill=False)
    period, result = _complete_october(db_session, ctx, config, work)
    assert result.aggregate_status == "completed"
    assert result.invoice_id is None
    assert not work_service.get_period(db_session, ctx, period.id).is_billed


def test_missing_price_skips_invoice(
    db_session: Session,
    ctx: AuthContext,
    config: TenantConfig,
    make_service: Callable[..., ServiceTemplateRead],
    make_work: Callable[..., WorkRead],
) -> None:
    service = make_service([{"title": "File GSTR-3B", "due_day_of_month": 10}], default_price=None)
    work = make_work(today=TODAY, service=service, recurrence_pattern="monthly")
    _, result = _complete_october(db_session, ctx, config, work)
    assert result.invoice_id is None
    assert _invoice_count(db_session) == 0


def test_unmapped_income_account_policy(
    db_session: Session,
    ctx: AuthContext,
    config: TenantConfig,
    chart: dict[str, LedgerAccount],
    make_work: Callable[..., WorkRead],
) -> None:
    allowed = make_work(today=TODAY, recurrence_pattern="monthly")
    _, result = _complete_october(db_session, ctx, config, allowed)
    assert result.invoice_id is not None
    invoice = billing_service.get_invoice(db_session, ctx, result.invoice_id)
    assert invoice.income_account_id is None

    sent = billing_service.update_status(db_session, ctx, config, invoice.id, InvoiceStatusUpdate(status="sent"))
    assert sent.status == "sent"
    assert sent.voucher_ids == []

    paid = billing_service.update_status(
        db_session, ctx, config, invoice.id, InvoiceStatusUpdate(status="paid", payment_date=date(2025, 10, 20))
    )
    assert paid.status == "paid"
    assert paid.voucher_ids == []
    receivable = db_session.get(LedgerAccount, paid.customer_account_id)
    assert receivable is not None
    assert receivable.current_balance == Decimal("0")
    cash = db_session.get(LedgerAccount, chart["1000"].id)
    assert cash is not None
    assert cash.current_balance == Decimal("0")

    blocking = dataclasses.replace(config, unmapped_income_policy="block")
    blocked = make_work(today=TODAY, recurrence_pattern="monthly")
    _, result = _complete_october(db_session, ctx, blocking, blocked)
    assert result.aggregate_status == "completed"
    assert result.invoice_id is None


def test_one_off_work_is_billed_when_its_tasks_complete(
    db_session: Session,
    ctx: AuthContext,
    config: TenantConfig,
    billable_service: ServiceTemplateRead,
    make_work: Callable[..., WorkRead],
) -> None:
    work = make_work(today=TODAY, service=billable_service, billing_amount=Decimal("2500"))
    task = work.tasks[0]
    assert task.due_date == date(2025, 10, 10)

    result = work_service.update_work_task(
        db_session, ctx, config, work.id, task.id, TaskStatusUpdate(status="completed"), today=TODAY
    )
    assert result.aggregate_status == "completed"
    assert result.invoice_id is not None

    refreshed = work_service.get_work(db_session, ctx, work.id)
    assert refreshed.status == "completed"
    assert refreshed.billing_status == "billed"
    assert refreshed.invoice_id == result.invoice_id
    assert billing_service.get_invoice(db_session, ctx, result.invoice_id).subtotal == Decimal("2500")


def test_work_transitions(
    db_session: Session,
    ctx: AuthContext,
    config: TenantConfig,
    billable_service: ServiceTemplateRead,
    make_work: Callable[..., WorkRead],
) -> None:
    work = make_work(today=TODAY, service=billable_service)

    with pytest.raises(HTTPException) as exc:
        work_service.update_status(db_session, ctx, config, work.id, WorkStatusUpdate(status="completed"), today=TODAY)
    assert exc.value.status_code == 409

    work_service.update_status(db_session, ctx, config, work.id, WorkStatusUpdate(status="in_progress"), today=TODAY)
    completed = work_service.update_status(
        db_session, ctx, config, work.id, WorkStatusUpdate(status="completed"), today=TODAY
    )
    assert completed.status == "completed"
    assert completed.billing_status == "billed"

    cancelled = make_work(today=TODAY, service=billable_service)
    work_service.update_status(db_session, ctx, config, cancelled.id, WorkStatusUpdate(status="cancelled"), today=TODAY)
    with pytest.raises(HTTPException) as exc:
        work_service.update_status(db_session, ctx, config, cancelled.id, WorkStatusUpdate(status="pending"), today=TODAY)
    assert exc.value.status_code == 409


def test_cancelled_work_rejects_period_task_updates(
    db_session: Session,
    ctx: AuthContext,
    config: TenantConfig,
    billable_service: ServiceTemplateRead,
    make_work: Callable[..., WorkRead],
) -> None:
    work = make_work(today=TODAY, service=billable_service, recurrence_pattern="monthly")
    work_service.update_status(db_session, ctx, config, work.id, WorkStatusUpdate(status="cancelled"), today=TODAY)

    with pytest.raises(HTTPException) as exc:
        _complete_october(db_session, ctx, config, work)
    assert exc.value.status_code == 409
    assert _invoice_count(db_session) == 0
    period = work_service.list_periods(db_session, ctx, work.id)[0]
    assert period.tasks[0].status != "completed"


def test_adhoc_task_reopens_completed_period(
    db_session: Session,
    ctx: AuthContext,
    config: TenantConfig,
    billable_service: ServiceTemplateRead,
    make_work: Callable[..., WorkRead],
) -> None:
    work = make_work(today=TODAY, service=billable_service, recurrence_pattern="monthly")
    period, _ = _complete_october(db_session, ctx, config, work)

    work_service.add_period_task(
        db_session, ctx, period.id, PeriodTaskCreate(title="Reply to notice", due_date=date(2025, 10, 20)), today=TODAY
    )
    reopened = work_service.get_period(db_session, ctx, period.id)
    assert reopened.status == "pending"
    assert reopened.total_tasks == 2
    assert reopened.completed_tasks == 1
    assert reopened.is_billed


def test_status_changes_publish_events(
    db_session: Session,
    ctx: AuthContext,
    config: TenantConfig,
    billable_service: ServiceTemplateRead,
    make_work: Callable[..., WorkRead],
) -> None:
    work = make_work(today=TODAY, service=billable_service, recurrence_pattern="monthly")
    events.published_events.clear()
    _complete_october(db_session, ctx, config, work)

    names = [item["event_type"] for item in events.published_events]
    assert "billing.invoice.created" in names
    assert "works.task.status_changed" in names
    changed = next(item for item in events.published_events if item["event_type"] == "works.task.status_changed")
    assert changed["payload"]["aggregate_status"] == "completed"
