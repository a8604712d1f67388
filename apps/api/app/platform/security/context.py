from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True)
class AuthContext:
    """Caller identity threaded through service calls."""

    user_id: str
    tenant_id: str | None = None
    correlation_id: str | None = None

    def require_tenant(self) -> str:
        if not self.tenant_id:
            raise ValueError("tenant context is required")
        return self.tenant_id


SYSTEM_SCHEDULER = "system.scheduler"
SYSTEM_BILLING = "system.billing"


def system_context(tenant_id: str, correlation_id: str | None = None, user_id: str = SYSTEM_SCHEDULER) -> AuthContext:
    return AuthContext(user_id=user_id, tenant_id=tenant_id, correlation_id=correlation_id)
