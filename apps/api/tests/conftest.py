from __future__ import annotations

import uuid
from collections.abc import Callable, Generator
from datetime import date
from decimal import Decimal
from typing import Any

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event, select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app import audit, events
from app.business.catalog.schemas import CustomerCreate, CustomerRead, ServiceTemplateCreate, ServiceTemplateRead, TaskTemplateCreate
from app.business.catalog.service import catalog_service
from app.business.works.schemas import WorkCreate, WorkRead
from app.business.works.service import work_service
from app.core.auth import AuthUser, get_current_user
from app.core.config import get_settings
from app.core.database import Base, get_db
from app.core.rbac import METRICS_READ, TENANT_CONFIG_WRITE
from app.main import app
from app.platform.ledger.models import LedgerAccount
from app.platform.ledger.service import ledger_service
from app.platform.security.context import AuthContext, system_context
from app.platform.tenancy.schemas import TenantConfig


TENANT_ID = "tenant-a"


@pytest.fixture()
def db_session() -> Generator[Session, None, None]:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # pysqlite only emits SAVEPOINT correctly when it does not manage transactions itself
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record) -> None:  # type: ignore[no-untyped-def]
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _on_begin(conn) -> None:  # type: ignore[no-untyped-def]
        conn.exec_driver_sql("BEGIN")

    SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def clear_stubs() -> Generator[None, None, None]:
    audit.audit_entries.clear()
    events.published_events.clear()
    get_settings.cache_clear()
    yield
    audit.audit_entries.clear()
    events.published_events.clear()
    get_settings.cache_clear()


@pytest.fixture()
def ctx() -> AuthContext:
    return AuthContext(user_id="ops-user", tenant_id=TENANT_ID, correlation_id="corr-test")


@pytest.fixture()
def config() -> TenantConfig:
    return TenantConfig(tenant_id=TENANT_ID)


@pytest.fixture()
def chart(db_session: Session) -> dict[str, LedgerAccount]:
    ledger_service.seed_chart_of_accounts(db_session, system_context(TENANT_ID), tenant_id=TENANT_ID, currency="INR")
    accounts = db_session.scalars(select(LedgerAccount).where(LedgerAccount.tenant_id == TENANT_ID)).all()
    return {item.code: item for item in accounts}


@pytest.fixture()
def make_service(db_session: Session, ctx: AuthContext) -> Callable[..., ServiceTemplateRead]:
    def _make(templates: list[dict[str, Any]] | None = None, name: str | None = None, **fields: Any) -> ServiceTemplateRead:
        fields.setdefault("default_price", Decimal("1000"))
        dto = ServiceTemplateCreate(
            name=name or f"GST Return {uuid.uuid4().hex[:6]}",
            task_templates=[TaskTemplateCreate(**item) for item in (templates or [])],
            **fields,
        )
        return catalog_service.create_service(db_session, ctx, dto)

    return _make


@pytest.fixture()
def make_customer(db_session: Session, ctx: AuthContext) -> Callable[..., CustomerRead]:
    def _make(name: str = "Acme Traders", **fields: Any) -> CustomerRead:
        return catalog_service.create_customer(db_session, ctx, CustomerCreate(name=name, **fields))

    return _make


@pytest.fixture()
def make_work(
    db_session: Session,
    ctx: AuthContext,
    config: TenantConfig,
    make_service: Callable[..., ServiceTemplateRead],
    make_customer: Callable[..., CustomerRead],
) -> Callable[..., WorkRead]:
    def _make(
        *,
        today: date,
        service: ServiceTemplateRead | None = None,
        customer: CustomerRead | None = None,
        tenant_config: TenantConfig | None = None,
        **fields: Any,
    ) -> WorkRead:
        service = service or make_service([{"title": "File GSTR-3B", "due_day_of_month": 10}])
        customer = customer or make_customer()
        payload: dict[str, Any] = {
            "customer_id": customer.id,
            "service_id": service.id,
            "title": "GST compliance",
            "start_date": date(2025, 10, 7),
            **fields,
        }
        return work_service.create_work(db_session, ctx, tenant_config or config, WorkCreate(**payload), today=today)

    return _make


@pytest.fixture()
def auth_user() -> AuthUser:
    return AuthUser(sub="ops-user", roles=["user", TENANT_CONFIG_WRITE, METRICS_READ])


@pytest.fixture()
def client(db_session: Session, auth_user: AuthUser) -> Generator[TestClient, None, None]:
    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    def override_get_current_user() -> AuthUser:
        return auth_user

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user] = override_get_current_user

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture()
def headers() -> dict[str, str]:
    return {"x-tenant-id": TENANT_ID}
