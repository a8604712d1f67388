from __future__ import annotations

from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from app import audit
from app.core.auth import AuthUser, get_current_user
from app.main import app
from app.platform.security.context import AuthContext
from app.platform.tenancy.schemas import NumberFormat, TenantConfigUpdate, VoucherNumberingInput
from app.platform.tenancy.service import tenant_config_service


def test_missing_settings_fall_back_to_defaults(db_session: Session) -> None:
    config = tenant_config_service.get_config(db_session, "tenant-a")
    assert config.currency == "INR"
    assert config.invoice_numbering == NumberFormat(prefix="INV")
    assert config.fiscal_year_start_month == 4
    assert config.unmapped_income_policy == "allow"
    assert config.lookahead_periods == 0
    assert config.default_payment_terms_days == 30
    assert config.voucher_format("receipt") == NumberFormat(prefix="RCT", width=6)


def test_upsert_round_trips_into_engine_config(db_session: Session, ctx: AuthContext) -> None:
    read = tenant_config_service.upsert_config(
        db_session,
        ctx,
        "tenant-a",
        TenantConfigUpdate(
            invoice_prefix="ACME",
            invoice_suffix="FY25",
            invoice_number_width=5,
            invoice_starting_number=1001,
            fiscal_year_start_month=1,
            unmapped_income_policy="block",
            lookahead_periods=2,
            voucher_numbering={"sales": VoucherNumberingInput(prefix="SAL", width=4)},
        ),
    )
    assert read.invoice_prefix == "ACME"
    assert read.voucher_numbering["sales"].prefix == "SAL"

    config = tenant_config_service.get_config(db_session, "tenant-a")
    assert config.invoice_numbering.render(config.invoice_numbering.starting_number) == "ACME-01001-FY25"
    assert config.fiscal_year_start_month == 1
    assert config.unmapped_income_policy == "block"
    assert config.lookahead_periods == 2
    assert config.voucher_format("sales").render(1) == "SAL-0001"
    assert config.voucher_format("journal").render(1) == "JV-000001"

    tenant_config_service.upsert_config(db_session, ctx, "tenant-a", TenantConfigUpdate(lookahead_periods=0))
    updated = tenant_config_service.get_config(db_session, "tenant-a")
    assert updated.lookahead_periods == 0
    assert updated.invoice_numbering.prefix == "ACME"
    assert [item["action"] for item in audit.audit_entries] == ["tenant.settings.updated", "tenant.settings.updated"]


def test_config_api_round_trip(client: TestClient, headers: dict[str, str]) -> None:
    response = client.get("/tenants/tenant-a/config", headers=headers)
    assert response.status_code == 200
    assert response.json()["invoice_prefix"] == "INV"

    response = client.put("/tenants/tenant-a/config", json={"currency": "USD", "lookahead_periods": 1}, headers=headers)
    assert response.status_code == 200
    body = response.json()
    assert body["currency"] == "USD"
    assert body["lookahead_periods"] == 1


def test_config_write_requires_permission(client: TestClient, headers: dict[str, str]) -> None:
    app.dependency_overrides[get_current_user] = lambda: AuthUser(sub="viewer", roles=["user"])

    response = client.put("/tenants/tenant-a/config", json={"currency": "USD"}, headers=headers)
    assert response.status_code == 403


def test_config_rejects_other_tenant(client: TestClient, headers: dict[str, str]) -> None:
    response = client.get("/tenants/tenant-b/config", headers=headers)
    assert response.status_code == 403


def test_invalid_config_values_are_rejected(client: TestClient, headers: dict[str, str]) -> None:
    response = client.put("/tenants/tenant-a/config", json={"fiscal_year_start_month": 13}, headers=headers)
    assert response.status_code == 422
