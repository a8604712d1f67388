from __future__ import annotations

import uuid
from datetime import date

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.api.deps import get_auth_context, get_tenant_config
from app.business.works.schemas import (
    BackfillRead,
    DocumentCollectedUpdate,
    PeriodDocumentRead,
    PeriodRead,
    PeriodTaskCreate,
    PeriodTaskRead,
    PeriodUpdate,
    RecalculateDueDatesRead,
    TaskStatusResult,
    TaskStatusUpdate,
    TenantBackfillRead,
    WorkCreate,
    WorkDocumentCreate,
    WorkDocumentRead,
    WorkRead,
    WorkStatusUpdate,
    WorkTaskRead,
)
from app.business.works.service import work_service
from app.core.database import get_db
from app.platform.security.context import AuthContext
from app.platform.tenancy.schemas import TenantConfig


router = APIRouter(prefix="/works", tags=["works"])


def get_today(as_of: date | None = Query(default=None)) -> date:
    return as_of or date.today()


@router.post("", response_model=WorkRead, status_code=status.HTTP_201_CREATED)
def create_work(
    payload: WorkCreate,
    today: date = Depends(get_today),
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
    config: TenantConfig = Depends(get_tenant_config),
) -> WorkRead:
    return work_service.create_work(db, ctx, config, payload, today=today)


@router.get("", response_model=list[WorkRead])
def list_works(
    work_status: str | None = Query(default=None, alias="status"),
    customer_id: uuid.UUID | None = Query(default=None),
    recurring: bool | None = Query(default=None),
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> list[WorkRead]:
    return work_service.list_works(db, ctx, work_status=work_status, customer_id=customer_id, recurring=recurring)


@router.post("/backfill", response_model=TenantBackfillRead)
def backfill_tenant(
    today: date = Depends(get_today),
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
    config: TenantConfig = Depends(get_tenant_config),
) -> TenantBackfillRead:
    return work_service.backfill_tenant(db, ctx, config, today=today)


@router.get("/periods/{period_id}", response_model=PeriodRead)
def get_period(
    period_id: uuid.UUID,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> PeriodRead:
    return work_service.get_period(db, ctx, period_id)


@router.patch("/periods/{period_id}", response_model=PeriodRead)
def update_period(
    period_id: uuid.UUID,
    payload: PeriodUpdate,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> PeriodRead:
    return work_service.update_period(db, ctx, period_id, payload)


@router.post("/periods/{period_id}/tasks", response_model=PeriodTaskRead, status_code=status.HTTP_201_CREATED)
def add_period_task(
    period_id: uuid.UUID,
    payload: PeriodTaskCreate,
    today: date = Depends(get_today),
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> PeriodTaskRead:
    return work_service.add_period_task(db, ctx, period_id, payload, today=today)


@router.patch("/periods/{period_id}/tasks/{task_id}", response_model=TaskStatusResult)
def update_period_task(
    period_id: uuid.UUID,
    task_id: uuid.UUID,
    payload: TaskStatusUpdate,
    today: date = Depends(get_today),
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
    config: TenantConfig = Depends(get_tenant_config),
) -> TaskStatusResult:
    return work_service.update_period_task(db, ctx, config, period_id, task_id, payload, today=today)


@router.patch("/periods/{period_id}/documents/{document_id}", response_model=PeriodDocumentRead)
def set_period_document_collected(
    period_id: uuid.UUID,
    document_id: uuid.UUID,
    payload: DocumentCollectedUpdate,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> PeriodDocumentRead:
    return work_service.set_period_document_collected(db, ctx, period_id, document_id, payload)


@router.get("/{work_id}", response_model=WorkRead)
def get_work(
    work_id: uuid.UUID,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> WorkRead:
    return work_service.get_work(db, ctx, work_id)


@router.patch("/{work_id}/status", response_model=WorkRead)
def update_work_status(
    work_id: uuid.UUID,
    payload: WorkStatusUpdate,
    today: date = Depends(get_today),
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
    config: TenantConfig = Depends(get_tenant_config),
) -> WorkRead:
    return work_service.update_status(db, ctx, config, work_id, payload, today=today)


@router.post("/{work_id}/backfill", response_model=BackfillRead)
def backfill_work(
    work_id: uuid.UUID,
    full: bool = Query(default=False),
    today: date = Depends(get_today),
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
    config: TenantConfig = Depends(get_tenant_config),
) -> BackfillRead:
    return work_service.backfill_work(db, ctx, config, work_id, today=today, full=full)


@router.post("/{work_id}/recalculate-due-dates", response_model=RecalculateDueDatesRead)
def recalculate_due_dates(
    work_id: uuid.UUID,
    today: date = Depends(get_today),
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
    config: TenantConfig = Depends(get_tenant_config),
) -> RecalculateDueDatesRead:
    return work_service.recalculate_due_dates(db, ctx, config, work_id, today=today)


@router.get("/{work_id}/periods", response_model=list[PeriodRead])
def list_periods(
    work_id: uuid.UUID,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> list[PeriodRead]:
    return work_service.list_periods(db, ctx, work_id)


@router.get("/{work_id}/tasks", response_model=list[WorkTaskRead])
def list_work_tasks(
    work_id: uuid.UUID,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> list[WorkTaskRead]:
    return work_service.list_work_tasks(db, ctx, work_id)


@router.patch("/{work_id}/tasks/{task_id}", response_model=TaskStatusResult)
def update_work_task(
    work_id: uuid.UUID,
    task_id: uuid.UUID,
    payload: TaskStatusUpdate,
    today: date = Depends(get_today),
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
    config: TenantConfig = Depends(get_tenant_config),
) -> TaskStatusResult:
    return work_service.update_work_task(db, ctx, config, work_id, task_id, payload, today=today)


@router.post("/{work_id}/documents", response_model=WorkDocumentRead, status_code=status.HTTP_201_CREATED)
def add_document(
    work_id: uuid.UUID,
    payload: WorkDocumentCreate,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> WorkDocumentRead:
    return work_service.add_document(db, ctx, work_id, payload)


@router.get("/{work_id}/documents", response_model=list[WorkDocumentRead])
def list_documents(
    work_id: uuid.UUID,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> list[WorkDocumentRead]:
    return work_service.list_documents(db, ctx, work_id)


@router.patch("/{work_id}/documents/{document_id}", response_model=WorkDocumentRead)
def set_document_collected(
    work_id: uuid.UUID,
    document_id: uuid.UUID,
    payload: DocumentCollectedUpdate,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> WorkDocumentRead:
    return work_service.set_document_collected(db, ctx, work_id, document_id, payload)
