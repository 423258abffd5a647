from __future__ import annotations

import logging
import uuid
from typing import Any, Iterable

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from core.errors import InvalidTeacherAssignment
from models.allocation_run import AllocationRun
from models.hall_teacher import TeacherHallAssignment
from services.allocation_runs import get_run
from services.cohort_loader import get_exam
from services.hall_registry import get_hall


logger = logging.getLogger(__name__)

ROLES = ("invigilator", "chief_invigilator", "assistant")


def _scope(q, *, hall_id: uuid.UUID, exam_id: uuid.UUID, run_id: uuid.UUID | None):
    q = q.where(TeacherHallAssignment.hall_id == hall_id).where(TeacherHallAssignment.exam_id == exam_id)
    if run_id is None:
        return q.where(TeacherHallAssignment.run_id.is_(None))
    return q.where(TeacherHallAssignment.run_id == run_id)


def _resolve_exam(db: Session, *, exam_id: uuid.UUID | None, run_id: uuid.UUID | None) -> tuple[uuid.UUID, AllocationRun | None]:
    run = get_run(db, run_id) if run_id is not None else None
    if exam_id is None:
        if run is None:
            raise InvalidTeacherAssignment("Either exam_id or allocation_run_id is required")
        exam_id = run.exam_id
    get_exam(db, exam_id)
    if run is not None and run.exam_id != exam_id:
        raise InvalidTeacherAssignment(
            "Allocation run does not belong to this exam",
            details={"exam_id": str(exam_id), "run_id": str(run.id)},
        )
    return exam_id, run


def assign_teachers(
    db: Session,
    *,
    hall_id: uuid.UUID,
    exam_id: uuid.UUID | None,
    run_id: uuid.UUID | None = None,
    teachers: Iterable[dict[str, Any]],
) -> tuple[list[TeacherHallAssignment], list[dict[str, Any]]]:
    """Replace the hall's invigilators for the exam (or run) in one transaction.

    Returns the new assignments and soft warnings; a shortfall against the
    hall's `teachers_needed` is reported, not rejected.
    """
    hall = get_hall(db, hall_id)
    exam_id, run = _resolve_exam(db, exam_id=exam_id, run_id=run_id)

    entries = list(teachers)
    if not entries:
        raise InvalidTeacherAssignment("At least one teacher is required")

    seen: set[uuid.UUID] = set()
    dupes: list[str] = []
    for entry in entries:
        role = str(entry.get("role") or "invigilator")
        if role not in ROLES:
            raise InvalidTeacherAssignment(f"Unknown invigilator role '{role}'", details={"allowed": list(ROLES)})
        teacher_id = entry["teacher_id"]
        if teacher_id in seen:
            dupes.append(str(teacher_id))
        seen.add(teacher_id)
    if dupes:
        raise InvalidTeacherAssignment(
            "A teacher can only be assigned once per hall",
            details={"duplicate_teacher_ids": dupes},
        )

    db.execute(_scope(delete(TeacherHallAssignment), hall_id=hall_id, exam_id=exam_id, run_id=run_id))
    created = [
        TeacherHallAssignment(
            hall_id=hall_id,
            exam_id=exam_id,
            run_id=run.id if run is not None else None,
            teacher_id=entry["teacher_id"],
            role=str(entry.get("role") or "invigilator"),
        )
        for entry in entries
    ]
    db.add_all(created)
    db.commit()

    warnings: list[dict[str, Any]] = []
    needed = int(hall.teachers_needed or 1)
    if len(seen) < needed:
        warnings.append(
            {
                "code": "INSUFFICIENT_INVIGILATORS",
                "message": f"Hall needs {needed} invigilator(s) but {len(seen)} assigned",
                "required": needed,
                "assigned": len(seen),
            }
        )
        logger.warning(
            "Hall %s (%s) has %s of %s invigilators for exam %s",
            hall.id,
            hall.name,
            len(seen),
            needed,
            exam_id,
        )

    return created, warnings


def list_assignments(
    db: Session,
    *,
    hall_id: uuid.UUID,
    exam_id: uuid.UUID | None = None,
) -> list[TeacherHallAssignment]:
    get_hall(db, hall_id)
    q = select(TeacherHallAssignment).where(TeacherHallAssignment.hall_id == hall_id)
    if exam_id is not None:
        q = q.where(TeacherHallAssignment.exam_id == exam_id)
    return db.execute(q.order_by(TeacherHallAssignment.assigned_at.asc(), TeacherHallAssignment.id.asc())).scalars().all()
