from __future__ import annotations

import re

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from starlette.requests import Request


http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
)

periods_materialized_total = Counter(
    "periods_materialized_total",
    "Total recurring periods created by the materializer",
    ["pattern"],
)

period_tasks_materialized_total = Counter(
    "period_tasks_materialized_total",
    "Total period task instances created by the materializer",
)

backfill_runs_total = Counter(
    "backfill_runs_total",
    "Total backfill runs by outcome",
    ["outcome"],
)

backfill_duration_seconds = Histogram(
    "backfill_duration_seconds",
    "Backfill run duration in seconds",
)

invoices_generated_total = Counter(
    "invoices_generated_total",
    "Total invoices created by billing automation",
    ["source_type", "trigger"],
)

billing_automation_skipped_total = Counter(
    "billing_automation_skipped_total",
    "Total billing automation skips by reason",
    ["reason"],
)

billing_automation_failures_total = Counter(
    "billing_automation_failures_total",
    "Total billing automation failures",
)

number_allocation_conflicts_total = Counter(
    "number_allocation_conflicts_total",
    "Document number conflicts retried",
    ["document"],
)

vouchers_posted_count = Counter(
    "vouchers_posted_count",
    "Total posted vouchers",
    ["voucher_type"],
)

ledger_transactions_posted_count = Counter(
    "ledger_transactions_posted_count",
    "Total posted ledger transactions",
)

ledger_post_failures_count = Counter(
    "ledger_post_failures_count",
    "Total ledger post failures by reason",
    ["reason"],
)


_UUID_RE = re.compile(
    r"\b[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[1-5][0-9a-fA-F]{3}-[89abAB][0-9a-fA-F]{3}-[0-9a-fA-F]{12}\b"
)
_INT_RE = re.compile(r"/\d+\b")
_PATH_PARAM_RE = re.compile(r"\{[^{}]+\}")


def _sanitize_path(path: str) -> str:
    without_uuids = _UUID_RE.sub("{id}", path)
    return _INT_RE.sub("/{id}", without_uuids)


def resolve_http_path_label(request: Request) -> str:
    route = request.scope.get("route")
    if route is not None:
        for attribute in ("path_format", "path"):
            value = getattr(route, attribute, None)
            if isinstance(value, str) and value:
                return _PATH_PARAM_RE.sub("{id}", value)
    return _sanitize_path(request.url.path)


def observe_http_request(method: str, path: str, status: int, duration: float) -> None:
    http_requests_total.labels(method=method, path=path, status=str(status)).inc()
    http_request_duration_seconds.labels(method=method, path=path).observe(duration)


def observe_period_materialized(pattern: str) -> None:
    periods_materialized_total.labels(pattern=pattern).inc()


def observe_period_tasks_materialized(count: int) -> None:
    if count > 0:
        period_tasks_materialized_total.inc(count)


def observe_backfill(outcome: str, duration: float) -> None:
    backfill_runs_total.labels(outcome=outcome).inc()
    backfill_duration_seconds.observe(duration)


def observe_invoice_generated(source_type: str, trigger: str) -> None:
    invoices_generated_total.labels(source_type=source_type, trigger=trigger).inc()


def observe_billing_skipped(reason: str) -> None:
    billing_automation_skipped_total.labels(reason=reason).inc()


def observe_billing_failure() -> None:
    billing_automation_failures_total.inc()


def observe_number_conflict(document: str) -> None:
    number_allocation_conflicts_total.labels(document=document).inc()


def observe_voucher_posted(voucher_type: str, line_count: int) -> None:
    vouchers_posted_count.labels(voucher_type=voucher_type).inc()
    if line_count > 0:
        ledger_transactions_posted_count.inc(line_count)


def observe_ledger_post_failure(reason: str) -> None:
    ledger_post_failures_count.labels(reason=reason).inc()


def generate_metrics_payload() -> bytes:
    return generate_latest()


def metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
