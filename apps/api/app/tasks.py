"""Celery entry points for the periodic scheduler tick."""

from __future__ import annotations

import logging
import uuid
from datetime import date

from sqlalchemy import select

from app.business.works.models import Work
from app.business.works.service import work_service
from app.context import reset_correlation_id, reset_tenant_id, set_correlation_id, set_tenant_id
from app.core.celery_app import celery_app
from app.core.database import SessionLocal
from app.logging import configure_logging
from app.otel import get_tracer, set_span_attributes
from app.platform.security.context import system_context
from app.platform.tenancy.service import tenant_config_service


configure_logging()
logger = logging.getLogger("app.tasks")
tracer = get_tracer("app.tasks")


def _today(as_of: str | None) -> date:
    return date.fromisoformat(as_of) if as_of else date.today()


def run_tenant_tick(tenant_id: str, today: date) -> dict[str, object]:
    correlation_id = f"scheduler-{uuid.uuid4()}"
    correlation_token = set_correlation_id(correlation_id)
    tenant_token = set_tenant_id(tenant_id)
    session = SessionLocal()
    try:
        with tracer.start_as_current_span("scheduler.tenant_tick") as span:
            set_span_attributes(span, tenant_id=tenant_id, correlation_id=correlation_id)
            config = tenant_config_service.get_config(session, tenant_id)
            ctx = system_context(tenant_id, correlation_id=correlation_id)
            result = work_service.backfill_tenant(session, ctx, config, today=today)
        return result.model_dump(mode="json")
    finally:
        session.close()
        reset_tenant_id(tenant_token)
        reset_correlation_id(correlation_token)


@celery_app.task(name="app.tasks.backfill_all_tenants")
def backfill_all_tenants(as_of: str | None = None) -> list[dict[str, object]]:
    today = _today(as_of)
    session = SessionLocal()
    try:
        tenant_ids = session.scalars(
            select(Work.tenant_id).where(Work.recurrence_pattern.is_not(None)).distinct().order_by(Work.tenant_id)
        ).all()
    finally:
        session.close()

    results: list[dict[str, object]] = []
    for tenant_id in tenant_ids:
        try:
            results.append(run_tenant_tick(tenant_id, today))
        except Exception:
            logger.exception("scheduler_tenant_tick_failed", extra={"tenant_id": tenant_id})
    logger.info("scheduler_tick_completed", extra={"count": len(results)})
    return results


@celery_app.task(name="app.tasks.backfill_work")
def backfill_work(tenant_id: str, work_id: str, as_of: str | None = None, full: bool = False) -> dict[str, object]:
    session = SessionLocal()
    token = set_tenant_id(tenant_id)
    try:
        config = tenant_config_service.get_config(session, tenant_id)
        ctx = system_context(tenant_id)
        result = work_service.backfill_work(session, ctx, config, uuid.UUID(work_id), today=_today(as_of), full=full)
        return result.model_dump(mode="json")
    finally:
        session.close()
        reset_tenant_id(token)
