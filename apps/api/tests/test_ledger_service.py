from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest
from fastapi import HTTPException
from sqlalchemy.orm import Session

from app import audit
from app.platform.ledger.models import LedgerAccount, Voucher
from app.platform.ledger.schemas import VoucherCreate, VoucherEntryInput
from app.platform.ledger.service import ledger_service
from app.platform.security.context import AuthContext
from app.platform.tenancy.schemas import NumberFormat, TenantConfig


def _journal(debit_account: LedgerAccount, credit_account: LedgerAccount, amount: str, *, post: bool = True) -> VoucherCreate:
    return VoucherCreate(
        voucher_type="sales",
        voucher_date=date(2025, 10, 13),
        narration="Retainer",
        post=post,
        entries=[
            VoucherEntryInput(account_id=debit_account.id, debit_amount=Decimal(amount)),
            VoucherEntryInput(account_id=credit_account.id, credit_amount=Decimal(amount)),
        ],
    )


def test_seeded_chart_of_accounts(chart: dict[str, LedgerAccount]) -> None:
    assert sorted(chart) == ["1000", "1010", "1100", "2100", "2300", "4000", "5000"]
    assert chart["1100"].is_group
    assert chart["4000"].type == "income"
    assert all(item.currency == "INR" for item in chart.values())


def test_seeding_twice_is_a_noop(db_session: Session, ctx: AuthContext, chart: dict[str, LedgerAccount]) -> None:
    created = ledger_service.seed_chart_of_accounts(db_session, ctx, tenant_id="tenant-a", currency="INR")
    assert created == []


def test_unbalanced_voucher_is_rejected(
    db_session: Session, ctx: AuthContext, config: TenantConfig, chart: dict[str, LedgerAccount]
) -> None:
    dto = VoucherCreate(
        voucher_type="journal",
        voucher_date=date(2025, 10, 13),
        entries=[
            VoucherEntryInput(account_id=chart["1000"].id, debit_amount=Decimal("100")),
            VoucherEntryInput(account_id=chart["4000"].id, credit_amount=Decimal("99.99")),
        ],
    )
    with pytest.raises(HTTPException) as exc:
        ledger_service.create_voucher(db_session, ctx, config, dto)
    assert exc.value.status_code == 422


def test_voucher_from_other_tenant_account_is_rejected(
    db_session: Session, ctx: AuthContext, config: TenantConfig, chart: dict[str, LedgerAccount]
) -> None:
    foreign = LedgerAccount(tenant_id="tenant-b", code="1000", name="Cash", type="asset", currency="INR")
    db_session.add(foreign)
    db_session.commit()

    with pytest.raises(HTTPException) as exc:
        ledger_service.create_voucher(db_session, ctx, config, _journal(foreign, chart["4000"], "10"))
    assert exc.value.status_code == 422


def test_post_and_unpost_restore_balances(
    db_session: Session, ctx: AuthContext, config: TenantConfig, chart: dict[str, LedgerAccount]
) -> None:
    voucher = ledger_service.create_voucher(db_session, ctx, config, _journal(chart["1000"], chart["4000"], "250.50"))
    assert voucher.voucher_number == "SV-000001"
    assert voucher.status == "posted"

    cash = db_session.get(LedgerAccount, chart["1000"].id)
    income = db_session.get(LedgerAccount, chart["4000"].id)
    assert cash is not None and income is not None
    assert cash.current_balance == Decimal("250.50")
    assert income.current_balance == Decimal("-250.50")
    assert len(ledger_service.list_transactions(db_session, ctx, cash.id)) == 1

    unposted = ledger_service.unpost_voucher(db_session, ctx, voucher.id)
    assert unposted.status == "draft"
    db_session.refresh(cash)
    db_session.refresh(income)
    assert cash.current_balance == Decimal("0")
    assert income.current_balance == Decimal("0")
    assert ledger_service.list_transactions(db_session, ctx, cash.id) == []

    reposted = ledger_service.post_voucher(db_session, ctx, voucher.id)
    assert reposted.status == "posted"
    with pytest.raises(HTTPException) as exc:
        ledger_service.post_voucher(db_session, ctx, voucher.id)
    assert exc.value.status_code == 409

    cancelled = ledger_service.cancel_voucher(db_session, ctx, voucher.id)
    assert cancelled.status == "cancelled"
    db_session.refresh(cash)
    assert cash.current_balance == Decimal("0")
    assert any(item["action"] == "ledger.voucher.cancelled" for item in audit.audit_entries)


def test_voucher_numbering_is_per_type_and_configurable(
    db_session: Session, ctx: AuthContext, config: TenantConfig, chart: dict[str, LedgerAccount]
) -> None:
    first = ledger_service.create_voucher(db_session, ctx, config, _journal(chart["1000"], chart["4000"], "10"))
    second = ledger_service.create_voucher(db_session, ctx, config, _journal(chart["1000"], chart["4000"], "20"))
    assert [first.voucher_number, second.voucher_number] == ["SV-000001", "SV-000002"]

    custom = TenantConfig(
        tenant_id=config.tenant_id,
        voucher_numbering={"sales": NumberFormat(prefix="SALE", suffix="25", width=3)},
    )
    third = ledger_service.create_voucher(db_session, ctx, custom, _journal(chart["1000"], chart["4000"], "30"))
    assert third.voucher_number == "SALE-003-25"


def test_voided_vouchers_keep_their_numbers(
    db_session: Session, ctx: AuthContext, config: TenantConfig, chart: dict[str, LedgerAccount]
) -> None:
    journal = _journal(chart["1000"], chart["4000"], "10")
    created = [ledger_service.create_voucher(db_session, ctx, config, journal) for _ in range(6)]
    for item in created[:5]:
        voucher = db_session.get(Voucher, item.id)
        assert voucher is not None
        ledger_service.void_voucher(db_session, ctx, voucher)
    db_session.commit()

    cash = db_session.get(LedgerAccount, chart["1000"].id)
    assert cash is not None
    assert cash.current_balance == Decimal("10")
    assert db_session.get(Voucher, created[0].id).status == "cancelled"

    following = ledger_service.create_voucher(db_session, ctx, config, journal)
    assert following.voucher_number == "SV-000007"


def test_customer_accounts_are_numbered_under_receivables(
    db_session: Session, config: TenantConfig, chart: dict[str, LedgerAccount]
) -> None:
    first = ledger_service.ensure_customer_account(db_session, config, "Acme Traders")
    second = ledger_service.ensure_customer_account(db_session, config, "Globex")
    db_session.commit()

    assert [first.code, second.code] == ["1100-0001", "1100-0002"]
    assert first.parent_id == chart["1100"].id
    assert second.name == "Globex"


def test_account_statement_running_balance(
    db_session: Session, ctx: AuthContext, config: TenantConfig, chart: dict[str, LedgerAccount]
) -> None:
    ledger_service.create_voucher(db_session, ctx, config, _journal(chart["1000"], chart["4000"], "100"))
    refund = VoucherCreate(
        voucher_type="payment",
        voucher_date=date(2025, 10, 20),
        post=True,
        entries=[
            VoucherEntryInput(account_id=chart["4000"].id, debit_amount=Decimal("40")),
            VoucherEntryInput(account_id=chart["1000"].id, credit_amount=Decimal("40")),
        ],
    )
    ledger_service.create_voucher(db_session, ctx, config, refund)

    statement = ledger_service.account_statement(db_session, ctx, chart["1000"].id)
    assert statement.opening_balance == Decimal("0")
    assert [line.running_balance for line in statement.lines] == [Decimal("100"), Decimal("60")]
    assert statement.closing_balance == Decimal("60")

    later = ledger_service.account_statement(db_session, ctx, chart["1000"].id, start_date=date(2025, 10, 15))
    assert later.opening_balance == Decimal("100")
    assert len(later.lines) == 1

    recalculated = ledger_service.recalculate_balance(db_session, ctx, chart["1000"].id)
    assert recalculated.current_balance == Decimal("60")
