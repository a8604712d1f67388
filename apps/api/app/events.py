from __future__ import annotations

from typing import Any

from app.context import get_correlation_id, get_tenant_id
from app.core.events import event_bus

published_events: list[dict[str, Any]] = []


def publish(envelope: dict[str, Any]) -> None:
    """Record a domain event and fan it out to in-process subscribers.

    Subscribers are notification-only; engine steps are sequenced by the
    completion pipeline, never by event handlers.
    """
    if envelope.get("correlation_id") is None:
        envelope["correlation_id"] = get_correlation_id()
    if envelope.get("tenant_id") is None:
        tenant_id = get_tenant_id()
        if tenant_id is not None:
            envelope["tenant_id"] = tenant_id

    published_events.append(envelope)
    event_type = envelope.get("event_type")
    if isinstance(event_type, str) and event_type:
        event_bus.publish(event_type, envelope)
