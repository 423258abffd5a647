from __future__ import annotations

import threading
import time
from datetime import datetime, timedelta, timezone

from sqlalchemy import func, select, update

from models import Allocation, AllocationRun
from services import allocation_runs
from services.allocation_runs import execute_run
from services.tasks import dispatch_stale_runs, run_allocation


def _queued_run(db, exam, **extra) -> AllocationRun:
    run = AllocationRun(exam_id=exam.id, status="queued", shuffle_seed="fixed-seed", **extra)
    db.add(run)
    db.commit()
    return run


def _allocation_count(db, run_id) -> int:
    return db.execute(select(func.count(Allocation.id)).where(Allocation.run_id == run_id)).scalar_one()


def test_executing_twice_completes_once(db, make_exam, make_hall, register_students):
    exam = make_exam()
    make_hall()
    register_students(exam, {"A": 6, "B": 6})
    run = _queued_run(db, exam)

    first = execute_run(db, run.id)
    second = execute_run(db, run.id)

    db.refresh(run)
    assert run.status == "completed"
    assert run.attempts == 1
    assert second == first
    assert _allocation_count(db, run.id) == 12


def test_worker_restart_reexecutes_running_run(db, make_exam, make_hall, register_students):
    exam = make_exam()
    make_hall()
    register_students(exam, {"A": 5})
    # A worker claimed the run and died before committing anything.
    run = _queued_run(db, exam)
    db.execute(update(AllocationRun).where(AllocationRun.id == run.id).values(status="running", attempts=1))
    db.commit()

    summary = execute_run(db, run.id)

    db.refresh(run)
    assert run.status == "completed"
    assert run.attempts == 2
    assert summary["total_students"] == 5
    assert _allocation_count(db, run.id) == 5


def test_superseded_worker_discards_its_result(db, make_exam, make_hall, register_students, monkeypatch):
    exam = make_exam()
    make_hall()
    register_students(exam, {"A": 3})
    run = _queued_run(db, exam)

    real_pipeline = allocation_runs._run_pipeline

    def _pipeline_then_reclaimed(session, run_obj, *, deadline):
        summary = real_pipeline(session, run_obj, deadline=deadline)
        # Another worker claims the run while this one is still finishing.
        session.execute(
            update(AllocationRun).where(AllocationRun.id == run_obj.id).values(attempts=AllocationRun.attempts + 1)
        )
        return summary

    monkeypatch.setattr(allocation_runs, "_run_pipeline", _pipeline_then_reclaimed)
    execute_run(db, run.id)

    db.refresh(run)
    assert run.status == "running"
    assert _allocation_count(db, run.id) == 0


def test_deadline_marks_run_failed_with_timeout(db, make_exam, make_hall, register_students):
    exam = make_exam()
    make_hall()
    register_students(exam, {"A": 4})
    run = _queued_run(db, exam)

    summary = execute_run(db, run.id, deadline=time.monotonic() - 1)

    db.refresh(run)
    assert run.status == "failed"
    assert summary["error"] == "timeout"
    assert run.metadata_json["error_type"] == "AllocationTimeout"
    assert _allocation_count(db, run.id) == 0


def test_celery_task_runs_pipeline(db, make_exam, make_hall, register_students):
    exam = make_exam()
    make_hall()
    register_students(exam, {"A": 2, "B": 2})
    run = _queued_run(db, exam)

    result = run_allocation.apply(args=[str(run.id)]).get()

    assert result["total_students"] == 4
    db.refresh(run)
    assert run.status == "completed"


def test_stale_queued_runs_are_redispatched(db, make_exam, make_hall, register_students):
    exam = make_exam()
    make_hall()
    register_students(exam, {"A": 3})
    stale = _queued_run(db, exam, created_at=datetime.now(timezone.utc) - timedelta(hours=1))

    assert dispatch_stale_runs.apply().get() == 1

    db.refresh(stale)
    assert stale.status == "completed"
    assert dispatch_stale_runs.apply().get() == 0


def test_fresh_queued_runs_are_left_alone(db, make_exam):
    exam = make_exam()
    fresh = _queued_run(db, exam)

    assert dispatch_stale_runs.apply().get() == 0
    db.refresh(fresh)
    assert fresh.status == "queued"


def test_runs_stuck_past_hard_limit_are_failed(db, make_exam):
    exam = make_exam()
    stuck = _queued_run(db, exam)
    db.execute(
        update(AllocationRun)
        .where(AllocationRun.id == stuck.id)
        .values(status="running", attempts=1, started_at=datetime.now(timezone.utc) - timedelta(days=1))
    )
    db.commit()

    assert dispatch_stale_runs.apply().get() == 0

    db.refresh(stuck)
    assert stuck.status == "failed"
    assert stuck.metadata_json == {"error": "timeout", "error_type": "WorkerLost", "warnings": []}


def test_dispatch_from_request_thread_uses_configured_app(db, make_exam, make_hall, register_students):
    from core.celery_app import celery_app

    exam = make_exam()
    make_hall()
    register_students(exam, {"A": 3, "B": 3})
    run = _queued_run(db, exam)

    seen = {}

    def _request_thread():
        seen["app"] = run_allocation.app
        allocation_runs.dispatch_run(run.id)

    worker = threading.Thread(target=_request_thread)
    worker.start()
    worker.join()

    assert seen["app"] is celery_app
    assert seen["app"].conf.task_always_eager is True
    db.refresh(run)
    assert run.status == "completed"
    assert _allocation_count(db, run.id) == 6
