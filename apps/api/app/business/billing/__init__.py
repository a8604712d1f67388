from app.business.billing.models import Invoice, InvoiceLine
from app.business.billing.schemas import (
    InvoiceCreate,
    InvoiceLineRead,
    InvoiceRead,
    InvoiceStatusUpdate,
    ManualInvoiceRequest,
    RefreshOverdueResponse,
)

__all__ = [
    "Invoice",
    "InvoiceLine",
    "InvoiceCreate",
    "InvoiceRead",
    "InvoiceLineRead",
    "InvoiceStatusUpdate",
    "ManualInvoiceRequest",
    "RefreshOverdueResponse",
]
