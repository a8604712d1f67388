from __future__ import annotations

import logging
import uuid
from collections.abc import Callable

import pytest
from fastapi.testclient import TestClient

from app.business.catalog.schemas import CustomerRead, ServiceTemplateRead


def test_logs_include_correlation_id_for_http(
    client: TestClient, headers: dict[str, str], caplog: pytest.LogCaptureFixture
) -> None:
    caplog.set_level(logging.INFO)

    response = client.get(f"/works/{uuid.uuid4()}", headers={**headers, "X-Correlation-Id": "abc-123"})
    assert response.status_code == 404

    records = [record for record in caplog.records if record.name == "app.request" and record.getMessage() == "http.request"]
    assert records
    assert any(
        getattr(record, "correlation_id", None) == "abc-123"
        and getattr(record, "method", None) == "GET"
        and getattr(record, "path", None) == "/works/{id}"
        and getattr(record, "status_code", None) == 404
        and isinstance(getattr(record, "duration_ms", None), float)
        for record in records
    )


def test_backfill_logs_carry_work_and_correlation_id(
    client: TestClient,
    headers: dict[str, str],
    make_service: Callable[..., ServiceTemplateRead],
    make_customer: Callable[..., CustomerRead],
    caplog: pytest.LogCaptureFixture,
) -> None:
    caplog.set_level(logging.INFO)
    service = make_service([{"title": "File GSTR-3B", "due_day_of_month": 10}])
    customer = make_customer()

    response = client.post(
        "/works?as_of=2025-10-13",
        json={
            "customer_id": str(customer.id),
            "service_id": str(service.id),
            "title": "GST compliance",
            "recurrence_pattern": "monthly",
            "start_date": "2025-10-07",
        },
        headers={**headers, "X-Correlation-Id": "backfill-corr-1"},
    )
    assert response.status_code == 201
    work_id = response.json()["id"]

    backfill_records = [record for record in caplog.records if record.name == "app.works.backfill"]
    assert backfill_records
    assert any(
        record.getMessage() == "backfill_completed"
        and getattr(record, "work_id", None) == work_id
        and getattr(record, "tenant_id", None) == "tenant-a"
        and getattr(record, "count", None) == 1
        and getattr(record, "correlation_id", None) == "backfill-corr-1"
        for record in backfill_records
    )
