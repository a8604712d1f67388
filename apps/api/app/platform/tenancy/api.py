from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from app.api.deps import get_auth_context
from app.core.auth import AuthUser
from app.core.rbac import TENANT_CONFIG_WRITE, require_permissions
from app.core.database import get_db
from app.platform.security.context import AuthContext
from app.platform.tenancy.schemas import TenantConfigRead, TenantConfigUpdate
from app.platform.tenancy.service import tenant_config_service


router = APIRouter(prefix="/tenants", tags=["tenants"])


def _assert_same_tenant(ctx: AuthContext, tenant_id: str) -> None:
    if ctx.tenant_id != tenant_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="tenant mismatch")


@router.get("/{tenant_id}/config", response_model=TenantConfigRead)
def get_tenant_config(
    tenant_id: str,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> TenantConfigRead:
    _assert_same_tenant(ctx, tenant_id)
    return tenant_config_service.read_config(db, ctx, tenant_id)


@router.put("/{tenant_id}/config", response_model=TenantConfigRead)
def update_tenant_config(
    tenant_id: str,
    payload: TenantConfigUpdate,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
    _: AuthUser = Depends(require_permissions(TENANT_CONFIG_WRITE)),
) -> TenantConfigRead:
    _assert_same_tenant(ctx, tenant_id)
    return tenant_config_service.upsert_config(db, ctx, tenant_id, payload)
