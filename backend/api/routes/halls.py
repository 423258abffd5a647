from __future__ import annotations

import logging
import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from api.deps import require_admin
from core.database import get_db
from schemas.hall import GridLayoutOut, HallCreate, HallListItem, HallOut, HallStatsOut, HallUpdate
from schemas.teacher_assignment import (
    AssignTeachersRequest,
    AssignTeachersResponse,
    ListTeacherAssignmentsResponse,
    TeacherAssignmentOut,
)
from services import hall_registry, teacher_assignment


logger = logging.getLogger(__name__)


router = APIRouter()


@router.get("/", response_model=list[HallListItem])
def list_halls(
    active_only: bool = Query(default=False),
    search: str | None = Query(default=None, max_length=255),
    _admin=Depends(require_admin),
    db: Session = Depends(get_db),
) -> list[HallListItem]:
    rows = hall_registry.list_halls(db, active_only=active_only, search=search)
    return [
        HallListItem(**HallOut.model_validate(hall).model_dump(), allocations_count=count)
        for hall, count in rows
    ]


@router.get("/stats", response_model=HallStatsOut)
def hall_stats(
    _admin=Depends(require_admin),
    db: Session = Depends(get_db),
) -> HallStatsOut:
    return HallStatsOut(**hall_registry.capacity_stats(db).as_dict())


@router.post("/", response_model=HallOut, status_code=201)
def create_hall(
    payload: HallCreate,
    _admin=Depends(require_admin),
    db: Session = Depends(get_db),
) -> HallOut:
    return hall_registry.create_hall(db, payload.model_dump())


@router.get("/{hall_id}", response_model=HallOut)
def get_hall(
    hall_id: uuid.UUID,
    _admin=Depends(require_admin),
    db: Session = Depends(get_db),
) -> HallOut:
    return hall_registry.get_hall(db, hall_id)


@router.patch("/{hall_id}", response_model=HallOut)
def update_hall(
    hall_id: uuid.UUID,
    payload: HallUpdate,
    _admin=Depends(require_admin),
    db: Session = Depends(get_db),
) -> HallOut:
    return hall_registry.update_hall(db, hall_id, payload.model_dump(exclude_unset=True))


@router.delete("/{hall_id}")
def delete_hall(
    hall_id: uuid.UUID,
    _admin=Depends(require_admin),
    db: Session = Depends(get_db),
) -> dict:
    hall_registry.delete_hall(db, hall_id)
    return {"ok": True}


@router.get("/{hall_id}/grid-layout", response_model=GridLayoutOut)
def grid_layout(
    hall_id: uuid.UUID,
    allocation_run_id: uuid.UUID | None = Query(default=None),
    _admin=Depends(require_admin),
    db: Session = Depends(get_db),
) -> GridLayoutOut:
    layout = hall_registry.grid_layout(db, hall_id, run_id=allocation_run_id)
    layout["hall"] = HallOut.model_validate(layout["hall"])
    return GridLayoutOut(**layout)


@router.post("/{hall_id}/assign-teachers", response_model=AssignTeachersResponse)
def assign_teachers(
    hall_id: uuid.UUID,
    payload: AssignTeachersRequest,
    _admin=Depends(require_admin),
    db: Session = Depends(get_db),
) -> AssignTeachersResponse:
    assignments, warnings = teacher_assignment.assign_teachers(
        db,
        hall_id=hall_id,
        exam_id=payload.exam_id,
        run_id=payload.allocation_run_id,
        teachers=[t.model_dump() for t in payload.teachers],
    )
    exam_id = assignments[0].exam_id
    return AssignTeachersResponse(
        hall_id=hall_id,
        exam_id=exam_id,
        assignments=[TeacherAssignmentOut.model_validate(a) for a in assignments],
        warnings=warnings,
    )


@router.get("/{hall_id}/teachers", response_model=ListTeacherAssignmentsResponse)
def list_teachers(
    hall_id: uuid.UUID,
    exam_id: uuid.UUID | None = Query(default=None),
    _admin=Depends(require_admin),
    db: Session = Depends(get_db),
) -> ListTeacherAssignmentsResponse:
    assignments = teacher_assignment.list_assignments(db, hall_id=hall_id, exam_id=exam_id)
    return ListTeacherAssignmentsResponse(
        hall_id=hall_id,
        assignments=[TeacherAssignmentOut.model_validate(a) for a in assignments],
    )
