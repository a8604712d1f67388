from __future__ import annotations

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.orm import Session

from app.context import get_correlation_id, set_tenant_id
from app.core.auth import AuthUser, get_current_user
from app.core.database import get_db
from app.platform.security.context import AuthContext
from app.platform.tenancy.schemas import TenantConfig
from app.platform.tenancy.service import tenant_config_service


def get_auth_context(
    request: Request,
    auth_user: AuthUser = Depends(get_current_user),
    tenant_id_header: str | None = Header(default=None, alias="x-tenant-id"),
) -> AuthContext:
    tenant_id = tenant_id_header or auth_user.tenant_id
    if not tenant_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="x-tenant-id header is required")
    if auth_user.tenant_id and tenant_id_header and auth_user.tenant_id != tenant_id_header:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="tenant mismatch")

    set_tenant_id(tenant_id)
    correlation_id = get_correlation_id() or getattr(request.state, "correlation_id", None)
    return AuthContext(user_id=auth_user.sub, tenant_id=tenant_id, correlation_id=correlation_id)


def get_tenant_config(
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> TenantConfig:
    return tenant_config_service.get_config(db, ctx.require_tenant())
