from __future__ import annotations

import logging
import uuid

from fastapi import APIRouter, Body, Depends
from sqlalchemy.orm import Session

from api.deps import Principal, require_admin
from core.database import get_db
from schemas.allocation import (
    AllocationOut,
    AllocationRunDetail,
    AllocationRunOut,
    ConflictOut,
    GenerateAllocationRequest,
    GenerateAllocationResponse,
    GenerateResult,
    InvigilatorOut,
    ListConflictsResponse,
    ListRunsResponse,
    RegenerateRequest,
    RegenerateResponse,
    RunDetailResponse,
    RunStatusOut,
    StudentSeatOut,
)
from services import allocation_runs
from services.allocation_runs import RunConfig


logger = logging.getLogger(__name__)


router = APIRouter()


@router.post("/generate", response_model=GenerateAllocationResponse)
def generate_allocation(
    payload: GenerateAllocationRequest,
    admin: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
) -> GenerateAllocationResponse:
    outcome = allocation_runs.generate(
        db,
        exam_id=payload.exam_id,
        config=RunConfig(
            mode=payload.mode,
            seat_numbering=payload.seat_numbering,
            adjacency_strictness=payload.adjacency_strictness,
            notes=payload.notes,
        ),
        run_async=payload.run_async,
        created_by=admin.user_id,
    )
    run = outcome.run
    summary = outcome.summary or {}

    result = None
    if not outcome.is_async and run.status == "completed":
        result = GenerateResult(
            allocations_count=int(summary.get("total_students", 0)),
            halls_used=int(summary.get("halls_used", 0)),
            conflicts_count=int(summary.get("total_conflicts", 0)),
            unresolved_conflicts=int(summary.get("unresolved_conflicts", 0)),
            warnings=list(summary.get("warnings") or []),
        )
    return GenerateAllocationResponse(
        is_async=outcome.is_async,
        allocation_run_id=run.id,
        status=run.status,
        result=result,
        error=summary.get("error") if run.status == "failed" else None,
    )


@router.get("/exams/{exam_id}/runs", response_model=ListRunsResponse)
def list_runs(
    exam_id: uuid.UUID,
    _admin=Depends(require_admin),
    db: Session = Depends(get_db),
) -> ListRunsResponse:
    runs = allocation_runs.list_runs(db, exam_id)
    return ListRunsResponse(allocations=[AllocationRunOut.model_validate(r) for r in runs])


@router.get("/runs/{run_id}", response_model=RunDetailResponse)
def get_run(
    run_id: uuid.UUID,
    _admin=Depends(require_admin),
    db: Session = Depends(get_db),
) -> RunDetailResponse:
    run = allocation_runs.get_run(db, run_id)
    rows = allocation_runs.get_run_allocations(db, run_id)
    allocations = [
        AllocationOut(
            id=a.id,
            run_id=a.run_id,
            hall_id=a.hall_id,
            hall_name=getattr(hall, "name", None),
            student_id=a.student_id,
            registration_number=getattr(examinee, "registration_number", None),
            full_name=getattr(examinee, "full_name", None),
            row=a.row,
            column=a.column,
            seat_number=a.seat_number,
            class_level=a.class_level,
        )
        for a, examinee, hall in rows
    ]
    detail = AllocationRunDetail(**AllocationRunOut.model_validate(run).model_dump(), allocations=allocations)
    return RunDetailResponse(run=detail)


@router.get("/runs/{run_id}/status", response_model=RunStatusOut)
def get_run_status(
    run_id: uuid.UUID,
    _admin=Depends(require_admin),
    db: Session = Depends(get_db),
) -> RunStatusOut:
    run = allocation_runs.get_run(db, run_id)
    return RunStatusOut(
        allocation_run_id=run.id,
        status=run.status,
        attempts=int(run.attempts or 0),
        created_at=run.created_at,
        started_at=run.started_at,
        completed_at=run.completed_at,
        metadata=dict(run.metadata_json or {}),
    )


@router.get("/runs/{run_id}/conflicts", response_model=ListConflictsResponse)
def get_conflicts(
    run_id: uuid.UUID,
    _admin=Depends(require_admin),
    db: Session = Depends(get_db),
) -> ListConflictsResponse:
    conflicts = allocation_runs.get_conflicts(db, run_id)
    return ListConflictsResponse(
        conflicts=[ConflictOut.model_validate(c) for c in conflicts],
        total=len(conflicts),
        unresolved=sum(1 for c in conflicts if not c.resolved),
    )


@router.post("/runs/{run_id}/regenerate", response_model=RegenerateResponse)
def regenerate(
    run_id: uuid.UUID,
    payload: RegenerateRequest | None = Body(default=None),
    admin: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
) -> RegenerateResponse:
    outcome = allocation_runs.regenerate(
        db,
        run_id,
        run_async=payload.run_async if payload is not None else None,
        created_by=admin.user_id,
    )
    return RegenerateResponse(
        allocation_run_id=outcome.run.id,
        regenerated_from=run_id,
        is_async=outcome.is_async,
        status=outcome.run.status,
    )


@router.get("/exams/{exam_id}/students/{student_id}", response_model=StudentSeatOut)
def get_student_seat(
    exam_id: uuid.UUID,
    student_id: uuid.UUID,
    _admin=Depends(require_admin),
    db: Session = Depends(get_db),
) -> StudentSeatOut:
    found = allocation_runs.find_student_seat(db, exam_id, student_id)
    alloc, hall, student = found["allocation"], found["hall"], found["student"]
    return StudentSeatOut(
        exam_id=exam_id,
        allocation_run_id=found["run"].id,
        allocation_id=alloc.id,
        student_id=student_id,
        registration_number=getattr(student, "registration_number", None),
        full_name=getattr(student, "full_name", None),
        class_level=alloc.class_level,
        hall_id=hall.id,
        hall_name=hall.name,
        row=alloc.row,
        column=alloc.column,
        seat_number=alloc.seat_number,
        invigilators=[InvigilatorOut(teacher_id=t.teacher_id, role=t.role) for t in found["invigilators"]],
    )
