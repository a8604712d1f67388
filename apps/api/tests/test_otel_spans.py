from __future__ import annotations

from collections.abc import Callable
from datetime import date

import pytest
from fastapi.testclient import TestClient
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from sqlalchemy.orm import Session

from app.business.catalog.schemas import ServiceTemplateRead
from app.business.works.schemas import TaskStatusUpdate, WorkRead
from app.business.works.service import work_service
from app.otel import setup_inmemory_otel
from app.platform.security.context import AuthContext
from app.platform.tenancy.schemas import TenantConfig


@pytest.fixture()
def span_exporter() -> InMemorySpanExporter:
    exporter = setup_inmemory_otel("recurra-api")
    exporter.clear()
    return exporter


def test_request_span_contains_correlation_id(client: TestClient, span_exporter: InMemorySpanExporter) -> None:
    response = client.get("/health", headers={"X-Correlation-Id": "otel-corr-1"})
    assert response.status_code == 200

    spans = span_exporter.get_finished_spans()
    assert spans
    assert any(span.attributes.get("correlation_id") == "otel-corr-1" for span in spans)


def test_backfill_span_contains_work_id(
    span_exporter: InMemorySpanExporter, make_work: Callable[..., WorkRead]
) -> None:
    work = make_work(today=date(2025, 10, 13), recurrence_pattern="monthly")

    spans = [span for span in span_exporter.get_finished_spans() if span.name == "works.backfill"]
    assert spans
    assert any(
        span.attributes.get("work_id") == str(work.id)
        and span.attributes.get("tenant_id") == "tenant-a"
        and span.attributes.get("periods_created") == 1
        for span in spans
    )


def test_completion_pipeline_span(
    db_session: Session,
    ctx: AuthContext,
    config: TenantConfig,
    span_exporter: InMemorySpanExporter,
    make_service: Callable[..., ServiceTemplateRead],
    make_work: Callable[..., WorkRead],
) -> None:
    service = make_service([{"title": "File GSTR-3B", "due_day_of_month": 10}])
    work = make_work(today=date(2025, 10, 13), service=service, recurrence_pattern="monthly")
    period = work_service.list_periods(db_session, ctx, work.id)[0]

    work_service.update_period_task(
        db_session, ctx, config, period.id, period.tasks[0].id, TaskStatusUpdate(status="completed"), today=date(2025, 10, 13)
    )

    spans = [span for span in span_exporter.get_finished_spans() if span.name == "works.pipeline.period_task"]
    assert spans
    assert any(span.attributes.get("period_id") == str(period.id) for span in spans)
