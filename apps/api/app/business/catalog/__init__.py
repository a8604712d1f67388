from app.business.catalog.models import Customer, CustomerServicePrice, ServiceTemplate, TaskTemplate
from app.business.catalog.schemas import (
    CustomerCreate,
    CustomerRead,
    ServiceTemplateCreate,
    ServiceTemplateRead,
    TaskTemplateCreate,
    TaskTemplateRead,
)
from app.business.catalog.service import CatalogService, catalog_service

__all__ = [
    "Customer",
    "CustomerServicePrice",
    "ServiceTemplate",
    "TaskTemplate",
    "CustomerCreate",
    "CustomerRead",
    "ServiceTemplateCreate",
    "ServiceTemplateRead",
    "TaskTemplateCreate",
    "TaskTemplateRead",
    "CatalogService",
    "catalog_service",
]
