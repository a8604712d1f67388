from celery import Celery
from celery.signals import worker_process_init

from app.core.config import get_settings
from app.otel import WORKER_SERVICE_NAME, setup_otel

settings = get_settings()

celery_app = Celery("recurra_engine", broker=settings.redis_url, backend=settings.redis_url, include=["app.tasks"])
celery_app.conf.beat_schedule = {
    "backfill-all-tenants": {
        "task": "app.tasks.backfill_all_tenants",
        "schedule": float(settings.scheduler_backfill_interval_seconds),
    },
}
celery_app.conf.timezone = "UTC"
celery_app.conf.task_acks_late = True
celery_app.conf.worker_prefetch_multiplier = 1


@worker_process_init.connect
def _init_worker_tracing(**_: object) -> None:
    setup_otel(WORKER_SERVICE_NAME, get_settings().otel_enabled)


@celery_app.task(name="app.tasks.ping")
def ping_task() -> str:
    return "pong"
