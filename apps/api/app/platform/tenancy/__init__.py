from app.platform.tenancy.models import TenantSettings
from app.platform.tenancy.schemas import NumberFormat, TenantConfig, TenantConfigRead, TenantConfigUpdate
from app.platform.tenancy.service import TenantConfigService, tenant_config_service

__all__ = [
    "TenantSettings",
    "NumberFormat",
    "TenantConfig",
    "TenantConfigRead",
    "TenantConfigUpdate",
    "TenantConfigService",
    "tenant_config_service",
]
