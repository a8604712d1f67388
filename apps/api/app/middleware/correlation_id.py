from __future__ import annotations

import uuid

from opentelemetry import trace
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from app.context import reset_correlation_id, reset_tenant_id, set_correlation_id, set_tenant_id
from app.otel import set_span_attributes


CORRELATION_HEADER = "x-correlation-id"
TENANT_HEADER = "x-tenant-id"


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Bind correlation and tenant ids to the request context and echo the correlation id."""

    async def dispatch(self, request: Request, call_next):  # type: ignore[no-untyped-def]
        correlation_id = request.headers.get(CORRELATION_HEADER) or str(uuid.uuid4())
        tenant_id = request.headers.get(TENANT_HEADER)
        request.state.correlation_id = correlation_id
        token = set_correlation_id(correlation_id)
        tenant_token = set_tenant_id(tenant_id)

        span = trace.get_current_span()
        if span.is_recording():
            set_span_attributes(span, correlation_id=correlation_id, tenant_id=tenant_id)
        try:
            response = await call_next(request)
        finally:
            reset_tenant_id(tenant_token)
            reset_correlation_id(token)

        response.headers[CORRELATION_HEADER] = correlation_id
        return response
