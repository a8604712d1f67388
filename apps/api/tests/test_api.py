from __future__ import annotations

from decimal import Decimal

from fastapi.testclient import TestClient


def _setup_catalog(client: TestClient, headers: dict[str, str]) -> tuple[str, str]:
    seeded = client.post("/ledger/seed", json={}, headers=headers)
    assert seeded.status_code == 201
    accounts = {item["code"]: item for item in seeded.json()}
    assert "4000" in accounts

    service = client.post(
        "/catalog/services",
        json={
            "name": "GST Monthly Return",
            "default_price": "1000",
            "tax_rate": "18",
            "income_account_id": accounts["4000"]["id"],
            "default_recurrence": "monthly",
            "task_templates": [{"title": "File GSTR-3B", "due_day_of_month": 10}],
        },
        headers=headers,
    )
    assert service.status_code == 201
    assert len(service.json()["task_templates"]) == 1

    customer = client.post("/catalog/customers", json={"name": "Acme Traders"}, headers=headers)
    assert customer.status_code == 201
    return service.json()["id"], customer.json()["id"]


def test_recurring_work_end_to_end(client: TestClient, headers: dict[str, str]) -> None:
    service_id, customer_id = _setup_catalog(client, headers)

    created = client.post(
        "/works?as_of=2025-10-13",
        json={
            "customer_id": customer_id,
            "service_id": service_id,
            "title": "GST compliance",
            "is_recurring": True,
            "start_date": "2025-10-07",
            "documents": ["Sales register"],
        },
        headers=headers,
    )
    assert created.status_code == 201
    work = created.json()
    assert work["recurrence_pattern"] == "monthly"
    assert work["period_count"] == 1

    periods = client.get(f"/works/{work['id']}/periods", headers=headers)
    assert periods.status_code == 200
    [october] = periods.json()
    assert october["name"] == "October 2025"
    assert october["status"] == "overdue"
    assert [item["name"] for item in october["documents"]] == ["Sales register"]

    task_id = october["tasks"][0]["id"]
    completed = client.patch(
        f"/works/periods/{october['id']}/tasks/{task_id}?as_of=2025-10-13",
        json={"status": "completed"},
        headers=headers,
    )
    assert completed.status_code == 200
    result = completed.json()
    assert result["aggregate_status"] == "completed"
    invoice_id = result["invoice_id"]
    assert invoice_id is not None

    invoice = client.get(f"/billing/invoices/{invoice_id}", headers=headers)
    assert invoice.status_code == 200
    assert invoice.json()["invoice_number"] == "INV-0001"
    assert Decimal(invoice.json()["total"]) == Decimal("1180")

    sent = client.patch(f"/billing/invoices/{invoice_id}/status", json={"status": "sent"}, headers=headers)
    assert sent.status_code == 200
    assert len(sent.json()["voucher_ids"]) == 1

    next_number = client.get("/billing/invoices/next-number", headers=headers)
    assert next_number.json() == {"invoice_number": "INV-0002"}

    backfilled = client.post(f"/works/{work['id']}/backfill?as_of=2025-11-12", headers=headers)
    assert backfilled.status_code == 200
    assert backfilled.json()["periods_created"] == 1

    tick = client.post("/works/backfill?as_of=2025-11-20", headers=headers)
    assert tick.status_code == 200
    assert tick.json()["works"] == 1
    assert tick.json()["invoices_marked_overdue"] == 1
    assert tick.json()["failed_work_ids"] == []

    overdue = client.get("/billing/invoices?status=overdue", headers=headers)
    assert [item["id"] for item in overdue.json()] == [invoice_id]


def test_one_off_work_via_api(client: TestClient, headers: dict[str, str]) -> None:
    service_id, customer_id = _setup_catalog(client, headers)

    created = client.post(
        "/works?as_of=2025-10-13",
        json={"customer_id": customer_id, "service_id": service_id, "title": "Annual audit", "start_date": "2025-10-07"},
        headers=headers,
    )
    assert created.status_code == 201
    work = created.json()
    assert work["is_recurring"] is False
    assert work["period_count"] == 0

    tasks = client.get(f"/works/{work['id']}/tasks", headers=headers).json()
    assert [item["due_date"] for item in tasks] == ["2025-10-10"]

    done = client.patch(
        f"/works/{work['id']}/tasks/{tasks[0]['id']}?as_of=2025-10-13",
        json={"status": "completed"},
        headers=headers,
    )
    assert done.status_code == 200
    assert done.json()["invoice_id"] is not None

    manual = client.post(
        "/billing/invoices/generate?as_of=2025-10-13",
        json={"source_type": "work", "source_id": work["id"]},
        headers=headers,
    )
    assert manual.status_code == 409

    refreshed = client.get(f"/works/{work['id']}", headers=headers).json()
    assert refreshed["status"] == "completed"
    assert refreshed["billing_status"] == "billed"


def test_unknown_work_returns_404(client: TestClient, headers: dict[str, str]) -> None:
    response = client.get("/works/00000000-0000-4000-8000-000000000000", headers=headers)
    assert response.status_code == 404


def test_tenant_header_is_required(client: TestClient) -> None:
    response = client.get("/works")
    assert response.status_code == 400


def test_health_and_correlation_header(client: TestClient) -> None:
    response = client.get("/health", headers={"x-correlation-id": "corr-health-1"})
    assert response.status_code == 200
    assert response.json()["status"] == "ok"
    assert response.headers["x-correlation-id"] == "corr-health-1"

    generated = client.get("/health")
    assert generated.headers.get("x-correlation-id")


def test_me_reports_current_user(client: TestClient) -> None:
    response = client.get("/me")
    assert response.status_code == 200
    assert response.json()["sub"] == "ops-user"
