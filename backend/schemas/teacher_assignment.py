from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field


InvigilatorRole = Literal["invigilator", "chief_invigilator", "assistant"]


class TeacherSlot(BaseModel):
    teacher_id: uuid.UUID
    role: InvigilatorRole = "invigilator"


class AssignTeachersRequest(BaseModel):
    exam_id: uuid.UUID | None = None
    allocation_run_id: uuid.UUID | None = None
    teachers: list[TeacherSlot] = Field(min_length=1)


class TeacherAssignmentOut(BaseModel):
    id: uuid.UUID
    hall_id: uuid.UUID
    exam_id: uuid.UUID
    run_id: uuid.UUID | None = None
    teacher_id: uuid.UUID
    role: InvigilatorRole
    assigned_at: datetime | None = None

    class Config:
        from_attributes = True


class AssignTeachersResponse(BaseModel):
    ok: bool = True
    hall_id: uuid.UUID
    exam_id: uuid.UUID
    assignments: list[TeacherAssignmentOut]
    warnings: list[dict[str, Any]] = Field(default_factory=list)


class ListTeacherAssignmentsResponse(BaseModel):
    hall_id: uuid.UUID
    assignments: list[TeacherAssignmentOut]
