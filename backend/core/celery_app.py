from __future__ import annotations

from celery import Celery
from celery.signals import setup_logging as celery_setup_logging

from core.config import settings
from core.logging import setup_logging


celery_app = Celery(
    "seat_allocator",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=["services.tasks"],
)

# shared_task resolves the current app per thread; request threads must see this one.
celery_app.set_default()

celery_app.conf.update(
    task_always_eager=settings.celery_task_always_eager,
    task_eager_propagates=True,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_prefetch_multiplier=1,
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
)

celery_app.conf.beat_schedule = {
    "dispatch-stale-allocation-runs": {
        "task": "services.tasks.dispatch_stale_runs",
        "schedule": 60.0,
    },
}


@celery_setup_logging.connect
def _configure_worker_logging(**_kwargs) -> None:
    setup_logging(environment=settings.environment, seating_level=settings.seating_log_level)
