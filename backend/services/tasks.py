from __future__ import annotations

import logging
import time
import uuid
from datetime import datetime, timedelta, timezone

from celery import shared_task
from celery.exceptions import SoftTimeLimitExceeded
from sqlalchemy import select

from core.celery_app import celery_app  # noqa: F401  (makes it the default app for shared tasks)
from core.config import settings
from core.database import SessionLocal
from models.allocation_run import AllocationRun
from services.allocation_runs import execute_run, mark_failed


logger = logging.getLogger(__name__)

# Hard kill a little after the soft limit so the failure can still be recorded.
_HARD_LIMIT_GRACE_SECONDS = 30


@shared_task(
    name="services.tasks.run_allocation",
    acks_late=True,
    reject_on_worker_lost=True,
    soft_time_limit=settings.job_timeout_seconds,
    time_limit=settings.job_timeout_seconds + _HARD_LIMIT_GRACE_SECONDS,
)
def run_allocation(run_id: str) -> dict:
    deadline = time.monotonic() + float(settings.job_timeout_seconds)
    db = SessionLocal()
    try:
        return execute_run(
            db,
            uuid.UUID(str(run_id)),
            deadline=deadline,
            timeout_errors=(SoftTimeLimitExceeded,),
        )
    finally:
        db.close()


@shared_task(name="services.tasks.dispatch_stale_runs")
def dispatch_stale_runs() -> int:
    """Re-enqueue queued runs whose message never reached a worker.

    Runs stuck in `running` past the hard time limit belong to a worker that
    was killed; they are failed with a timeout so the exam is unblocked.
    """
    now = datetime.now(timezone.utc)
    cutoff = now - timedelta(seconds=int(settings.stale_queued_seconds))
    hard_cutoff = now - timedelta(seconds=float(settings.job_timeout_seconds) + _HARD_LIMIT_GRACE_SECONDS)
    db = SessionLocal()
    try:
        stuck = (
            db.execute(
                select(AllocationRun.id)
                .where(AllocationRun.status == "running")
                .where(AllocationRun.started_at < hard_cutoff)
            )
            .scalars()
            .all()
        )
        for run_id in stuck:
            mark_failed(db, run_id, error="timeout", error_type="WorkerLost")

        run_ids = (
            db.execute(
                select(AllocationRun.id)
                .where(AllocationRun.status == "queued")
                .where(AllocationRun.created_at < cutoff)
                .order_by(AllocationRun.created_at.asc())
            )
            .scalars()
            .all()
        )
    finally:
        db.close()

    for run_id in run_ids:
        logger.warning("Re-dispatching stale queued run %s", run_id)
        run_allocation.delay(str(run_id))
    return len(run_ids)
