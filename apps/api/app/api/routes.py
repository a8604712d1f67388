from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import Response

from app.business.billing.api import router as billing_router
from app.business.catalog.api import router as catalog_router
from app.business.works.api import router as works_router
from app.core.auth import AuthUser, get_current_user
from app.core.config import get_settings
from app.core.rbac import METRICS_READ, require_permissions
from app.metrics import generate_metrics_payload, metrics_content_type
from app.platform.ledger.api import router as ledger_router
from app.platform.tenancy.api import router as tenancy_router

router = APIRouter()
router.include_router(tenancy_router)
router.include_router(catalog_router)
router.include_router(works_router)
router.include_router(billing_router)
router.include_router(ledger_router)


@router.get("/health", tags=["system"])
def health() -> dict[str, str]:
    settings = get_settings()
    return {
        "status": "ok",
        "service": settings.app_name,
        "environment": settings.app_env,
    }


@router.get("/me", tags=["auth"])
async def me(user: AuthUser = Depends(get_current_user)) -> dict[str, str | list[str] | None]:
    return {
        "sub": user.sub,
        "roles": user.roles,
        "tenant_id": user.tenant_id,
    }


@router.get("/metrics", tags=["system"])
def metrics(user: AuthUser = Depends(require_permissions(METRICS_READ))) -> Response:
    settings = get_settings()
    if not settings.metrics_enabled:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="not found")
    return Response(content=generate_metrics_payload(), media_type=metrics_content_type())
