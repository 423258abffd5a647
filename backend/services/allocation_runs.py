from __future__ import annotations

import logging
import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from core.config import settings
from core.errors import (
    AllocationNotFound,
    AllocationTimeout,
    GenerationInProgress,
    InsufficientCapacity,
    JobDispatchFailed,
    NoActiveHalls,
    RunNotFound,
)
from models.allocation import Allocation
from models.allocation_run import NON_TERMINAL_STATUSES, AllocationRun
from models.examinee import Examinee
from models.hall import Hall
from models.hall_teacher import TeacherHallAssignment
from models.seat_conflict import SeatConflict
from seating.capacity import ensure_capacity
from seating.conflicts import detect_conflicts
from seating.planner import SeatPlan, plan_seats
from seating.repair import RepairOutcome, resolve_conflicts
from services import hall_registry
from services.cohort_loader import get_exam, load_cohort


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RunConfig:
    mode: str = "auto"
    seat_numbering: str = "row_major"
    adjacency_strictness: str = "hard"
    notes: str | None = None


@dataclass(frozen=True)
class GenerateOutcome:
    run: AllocationRun
    is_async: bool
    summary: dict[str, Any] | None = None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def get_run(db: Session, run_id: uuid.UUID) -> AllocationRun:
    run = db.get(AllocationRun, run_id)
    if run is None:
        raise RunNotFound(details={"run_id": str(run_id)})
    return run


def _active_run_for_exam(db: Session, exam_id: uuid.UUID) -> AllocationRun | None:
    return (
        db.execute(
            select(AllocationRun)
            .where(AllocationRun.exam_id == exam_id)
            .where(AllocationRun.status.in_(NON_TERMINAL_STATUSES))
            .limit(1)
        )
        .scalars()
        .first()
    )


def _in_progress(exam_id: uuid.UUID, run_id: Any = None) -> GenerationInProgress:
    details: dict[str, Any] = {"exam_id": str(exam_id)}
    if run_id is not None:
        details["run_id"] = str(run_id)
    return GenerationInProgress("An allocation run is already queued or running for this exam", details=details)


def dispatch_run(run_id: uuid.UUID) -> None:
    # Imported lazily: the task module imports this one.
    from services.tasks import run_allocation

    run_allocation.delay(str(run_id))


def generate(
    db: Session,
    *,
    exam_id: uuid.UUID,
    config: RunConfig,
    run_async: bool | None = None,
    created_by: uuid.UUID | None = None,
    regenerated_from: uuid.UUID | None = None,
) -> GenerateOutcome:
    """Validate, create a queued run and execute it inline or in the background.

    Every rejection (unknown exam, missing class data, empty cohort, too little
    capacity, a run already in flight) happens before the run row exists.
    """
    cohort = load_cohort(db, exam_id)

    stats = hall_registry.capacity_stats(db)
    try:
        ensure_capacity(stats, cohort.size)
    except (NoActiveHalls, InsufficientCapacity) as exc:
        logger.warning("Generation rejected for exam_id=%s students=%s: %s", exam_id, cohort.size, exc)
        raise

    active = _active_run_for_exam(db, exam_id)
    if active is not None:
        raise _in_progress(exam_id, active.id)

    run = AllocationRun(
        exam_id=exam_id,
        created_by=created_by,
        mode=config.mode,
        seat_numbering=config.seat_numbering,
        adjacency_strictness=config.adjacency_strictness,
        status="queued",
        shuffle_seed=secrets.token_hex(16),
        attempts=0,
        regenerated_from=regenerated_from,
        notes=(config.notes or "").strip() or None,
        metadata_json={},
    )
    db.add(run)
    try:
        db.commit()
    except IntegrityError:
        # Lost the race against a concurrent generate for the same exam.
        db.rollback()
        raise _in_progress(exam_id)
    db.refresh(run)

    use_async = run_async if run_async is not None else cohort.size > int(settings.async_student_threshold)
    logger.info(
        "Allocation run queued run_id=%s exam_id=%s students=%s async=%s strictness=%s numbering=%s",
        run.id,
        exam_id,
        cohort.size,
        use_async,
        run.adjacency_strictness,
        run.seat_numbering,
    )

    if use_async:
        try:
            dispatch_run(run.id)
        except Exception as exc:
            # The run would otherwise sit in queued and block the exam.
            logger.exception("Could not dispatch run %s", run.id)
            mark_failed(db, run.id, error="dispatch failed", error_type=type(exc).__name__)
            raise JobDispatchFailed(
                "The allocation job could not be queued; try again or run it synchronously",
                details={"run_id": str(run.id), "error_type": type(exc).__name__},
            ) from exc
        return GenerateOutcome(run=run, is_async=True)

    summary = execute_run(db, run.id)
    db.refresh(run)
    return GenerateOutcome(run=run, is_async=False, summary=summary)


def regenerate(
    db: Session,
    run_id: uuid.UUID,
    *,
    run_async: bool | None = None,
    created_by: uuid.UUID | None = None,
) -> GenerateOutcome:
    """Fresh run with the source run's exam and configuration; the source is not touched."""
    source = get_run(db, run_id)
    config = RunConfig(
        mode=str(source.mode),
        seat_numbering=str(source.seat_numbering),
        adjacency_strictness=str(source.adjacency_strictness),
        notes=f"Regenerated from run {source.id}",
    )
    return generate(
        db,
        exam_id=source.exam_id,
        config=config,
        run_async=run_async,
        created_by=created_by,
        regenerated_from=source.id,
    )


def _claim(db: Session, run_id: uuid.UUID) -> int | None:
    """Move a non-terminal run to running and return its new attempt number."""
    attempt = db.execute(
        update(AllocationRun)
        .where(AllocationRun.id == run_id)
        .where(AllocationRun.status.in_(NON_TERMINAL_STATUSES))
        .values(status="running", attempts=AllocationRun.attempts + 1, started_at=_utcnow())
        .returning(AllocationRun.attempts)
        .execution_options(synchronize_session=False)
    ).scalar_one_or_none()
    db.commit()
    return attempt


def _finish(db: Session, run_id: uuid.UUID, *, attempt: int, status: str, metadata: dict[str, Any]) -> bool:
    """Write the terminal state unless another worker has claimed the run since."""
    finished = db.execute(
        update(AllocationRun)
        .where(AllocationRun.id == run_id)
        .where(AllocationRun.status == "running")
        .where(AllocationRun.attempts == attempt)
        .values({AllocationRun.status: status, AllocationRun.metadata_json: metadata, AllocationRun.completed_at: _utcnow()})
        .returning(AllocationRun.id)
        .execution_options(synchronize_session=False)
    ).scalar_one_or_none()
    return finished is not None


def _persist(db: Session, run: AllocationRun, plan: SeatPlan, outcome: RepairOutcome) -> None:
    db.add_all(
        [
            Allocation(
                id=p.allocation_id,
                run_id=run.id,
                exam_id=run.exam_id,
                hall_id=p.hall_id,
                student_id=p.student_id,
                row=p.row,
                column=p.column,
                seat_number=p.seat_number,
                class_level=p.class_level,
            )
            for p in plan.placements
        ]
    )
    # Conflicts reference allocations; make sure those rows exist first.
    db.flush()
    db.add_all(
        [
            SeatConflict(
                run_id=run.id,
                conflict_type=c.conflict_type,
                allocation_id=c.first.allocation_id,
                conflicting_allocation_id=c.second.allocation_id,
                class_level=c.class_level,
                details_json=c.details,
                resolved=c.resolved,
            )
            for c in outcome.conflicts
        ]
    )
    db.flush()


def _run_pipeline(db: Session, run: AllocationRun, *, deadline: float | None) -> dict[str, Any]:
    cohort = load_cohort(db, run.exam_id, seed=run.shuffle_seed)
    halls = hall_registry.load_active_halls(db)

    plan = plan_seats(halls, cohort.groups, numbering=str(run.seat_numbering), deadline=deadline)
    conflicts = detect_conflicts(plan.placements)

    if str(run.adjacency_strictness) == "hard" and conflicts:
        outcome = resolve_conflicts(
            plan.placements,
            conflicts,
            budget=int(settings.conflict_repair_budget),
            deadline=deadline,
            halls=plan.halls,
            numbering=str(run.seat_numbering),
        )
    else:
        outcome = RepairOutcome(conflicts=conflicts, attempts=0, swaps=0)

    _persist(db, run, plan, outcome)

    seated_per_hall: dict[Any, int] = {}
    for p in plan.placements:
        seated_per_hall[p.hall_id] = seated_per_hall.get(p.hall_id, 0) + 1

    warnings: list[dict[str, Any]] = []
    if str(run.adjacency_strictness) == "hard" and outcome.unresolved:
        warnings.append(
            {
                "code": "UNRESOLVED_CONFLICTS",
                "message": f"{outcome.unresolved} same-class adjacency conflict(s) could not be repaired",
                "count": outcome.unresolved,
            }
        )
        logger.warning(
            "Run %s completed with %s unresolved conflicts after %s repair attempts",
            run.id,
            outcome.unresolved,
            outcome.attempts,
        )

    return {
        "total_students": len(plan.placements),
        "halls_used": plan.halls_used,
        "halls": [
            {"hall_id": str(h.id), "name": h.name, "capacity": h.capacity, "seated": seated_per_hall.get(h.id, 0)}
            for h in plan.halls
        ],
        "total_conflicts": len(outcome.conflicts),
        "unresolved_conflicts": outcome.unresolved,
        "resolved_conflicts": outcome.resolved,
        "repair_attempts": outcome.attempts,
        "repair_swaps": outcome.swaps,
        "repair_moves": outcome.moves,
        "class_distribution": cohort.class_distribution,
        "seat_numbering_used": str(run.seat_numbering),
        "adjacency_strictness": str(run.adjacency_strictness),
        "warnings": warnings,
    }


def execute_run(
    db: Session,
    run_id: uuid.UUID,
    *,
    deadline: float | None = None,
    timeout_errors: tuple[type[BaseException], ...] = (),
) -> dict[str, Any]:
    """Run the placement pipeline for one run and record its terminal state.

    Safe to call more than once for the same run: terminal runs are returned as
    they are, and a worker whose claim was superseded discards its result.
    Allocations and conflicts are written in the same commit that marks the run
    completed; on any pipeline error nothing is written but the failure.
    """
    run = get_run(db, run_id)
    if run.is_terminal:
        logger.info("Run %s already %s; skipping", run_id, run.status)
        return dict(run.metadata_json or {})

    attempt = _claim(db, run_id)
    if attempt is None:
        db.refresh(run)
        logger.info("Run %s was finished by another worker; skipping", run_id)
        return dict(run.metadata_json or {})
    db.refresh(run)
    logger.info("Run %s started (attempt %s)", run_id, attempt)

    try:
        summary = _run_pipeline(db, run, deadline=deadline)
        if not _finish(db, run_id, attempt=attempt, status="completed", metadata=summary):
            db.rollback()
            logger.warning("Run %s attempt %s was superseded; discarding its result", run_id, attempt)
            db.refresh(run)
            return dict(run.metadata_json or {})
        db.commit()
    except (AllocationTimeout, *timeout_errors) as exc:
        db.rollback()
        logger.error("Run %s timed out (attempt %s)", run_id, attempt)
        summary = {"error": "timeout", "error_type": type(exc).__name__, "warnings": []}
        _record_failure(db, run_id, attempt=attempt, metadata=summary)
    except Exception as exc:
        db.rollback()
        logger.exception("Run %s failed (attempt %s)", run_id, attempt)
        summary = {"error": str(exc) or type(exc).__name__, "error_type": type(exc).__name__, "warnings": []}
        _record_failure(db, run_id, attempt=attempt, metadata=summary)
    else:
        logger.info(
            "Run %s completed: students=%s halls=%s conflicts=%s unresolved=%s",
            run_id,
            summary["total_students"],
            summary["halls_used"],
            summary["total_conflicts"],
            summary["unresolved_conflicts"],
        )

    db.refresh(run)
    return summary


def _record_failure(db: Session, run_id: uuid.UUID, *, attempt: int, metadata: dict[str, Any]) -> None:
    if _finish(db, run_id, attempt=attempt, status="failed", metadata=metadata):
        db.commit()
    else:
        db.rollback()
        logger.warning("Run %s attempt %s was superseded; not recording its failure", run_id, attempt)


def mark_failed(db: Session, run_id: uuid.UUID, *, error: str, error_type: str) -> bool:
    """Fail a non-terminal run from outside the pipeline (e.g. a killed worker)."""
    done = db.execute(
        update(AllocationRun)
        .where(AllocationRun.id == run_id)
        .where(AllocationRun.status.in_(NON_TERMINAL_STATUSES))
        .values(
            {
                AllocationRun.status: "failed",
                AllocationRun.metadata_json: {"error": error, "error_type": error_type, "warnings": []},
                AllocationRun.completed_at: _utcnow(),
            }
        )
        .returning(AllocationRun.id)
        .execution_options(synchronize_session=False)
    ).scalar_one_or_none()
    db.commit()
    if done is not None:
        logger.error("Run %s marked failed: %s", run_id, error)
    return done is not None


def list_runs(db: Session, exam_id: uuid.UUID) -> list[AllocationRun]:
    get_exam(db, exam_id)
    return (
        db.execute(
            select(AllocationRun)
            .where(AllocationRun.exam_id == exam_id)
            .order_by(AllocationRun.created_at.desc(), AllocationRun.id.desc())
        )
        .scalars()
        .all()
    )


def get_run_allocations(db: Session, run_id: uuid.UUID) -> list[tuple[Allocation, Examinee | None, Hall | None]]:
    return db.execute(
        select(Allocation, Examinee, Hall)
        .outerjoin(Examinee, Examinee.id == Allocation.student_id)
        .outerjoin(Hall, Hall.id == Allocation.hall_id)
        .where(Allocation.run_id == run_id)
        .order_by(Hall.name.asc(), Allocation.seat_number.asc())
    ).all()


def get_conflicts(db: Session, run_id: uuid.UUID) -> list[SeatConflict]:
    get_run(db, run_id)
    return (
        db.execute(
            select(SeatConflict)
            .where(SeatConflict.run_id == run_id)
            .order_by(SeatConflict.resolved.asc(), SeatConflict.created_at.asc(), SeatConflict.id.asc())
        )
        .scalars()
        .all()
    )


def find_student_seat(db: Session, exam_id: uuid.UUID, student_id: uuid.UUID) -> dict[str, Any]:
    """The student's seat in the newest completed run for the exam."""
    get_exam(db, exam_id)
    row = db.execute(
        select(Allocation, AllocationRun, Hall)
        .join(AllocationRun, AllocationRun.id == Allocation.run_id)
        .join(Hall, Hall.id == Allocation.hall_id)
        .where(AllocationRun.exam_id == exam_id)
        .where(AllocationRun.status == "completed")
        .where(Allocation.student_id == student_id)
        .order_by(AllocationRun.created_at.desc())
        .limit(1)
    ).first()
    if row is None:
        raise AllocationNotFound(
            "No seat found for this student in a completed run",
            details={"exam_id": str(exam_id), "student_id": str(student_id)},
        )
    alloc, run, hall = row

    invigilators = (
        db.execute(
            select(TeacherHallAssignment)
            .where(TeacherHallAssignment.hall_id == hall.id)
            .where(TeacherHallAssignment.exam_id == exam_id)
            .where((TeacherHallAssignment.run_id == run.id) | (TeacherHallAssignment.run_id.is_(None)))
            .order_by(TeacherHallAssignment.assigned_at.asc(), TeacherHallAssignment.id.asc())
        )
        .scalars()
        .all()
    )
    examinee = db.get(Examinee, student_id)
    return {
        "allocation": alloc,
        "run": run,
        "hall": hall,
        "student": examinee,
        "invigilators": invigilators,
    }
