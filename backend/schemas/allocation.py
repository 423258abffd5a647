from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field


RunStatus = Literal["queued", "running", "completed", "failed"]
RunMode = Literal["auto", "manual"]
SeatNumbering = Literal["row_major", "column_major"]
AdjacencyStrictness = Literal["hard", "soft"]


class GenerateAllocationRequest(BaseModel):
    exam_id: uuid.UUID
    mode: RunMode = "auto"
    seat_numbering: SeatNumbering = "row_major"
    adjacency_strictness: AdjacencyStrictness = "hard"
    notes: str | None = Field(default=None, max_length=2000)
    # None lets the service decide from the cohort size.
    run_async: bool | None = Field(default=None, alias="async")

    class Config:
        populate_by_name = True


class RegenerateRequest(BaseModel):
    run_async: bool | None = Field(default=None, alias="async")

    class Config:
        populate_by_name = True


class GenerateResult(BaseModel):
    allocations_count: int
    halls_used: int
    conflicts_count: int
    unresolved_conflicts: int = 0
    warnings: list[dict[str, Any]] = Field(default_factory=list)


class GenerateAllocationResponse(BaseModel):
    is_async: bool
    allocation_run_id: uuid.UUID
    status: RunStatus
    result: GenerateResult | None = None
    error: str | None = None


class AllocationRunOut(BaseModel):
    id: uuid.UUID
    exam_id: uuid.UUID
    created_by: uuid.UUID | None = None
    mode: RunMode
    seat_numbering: SeatNumbering
    adjacency_strictness: AdjacencyStrictness
    status: RunStatus
    attempts: int = 0
    regenerated_from: uuid.UUID | None = None
    notes: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict, validation_alias="metadata_json")
    created_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None

    class Config:
        from_attributes = True
        populate_by_name = True


class AllocationOut(BaseModel):
    id: uuid.UUID
    run_id: uuid.UUID
    hall_id: uuid.UUID
    hall_name: str | None = None
    student_id: uuid.UUID
    registration_number: str | None = None
    full_name: str | None = None
    row: int
    column: int
    seat_number: int
    class_level: str | None = None


class AllocationRunDetail(AllocationRunOut):
    allocations: list[AllocationOut] = Field(default_factory=list)


class RunDetailResponse(BaseModel):
    run: AllocationRunDetail


class ListRunsResponse(BaseModel):
    allocations: list[AllocationRunOut]


class RunStatusOut(BaseModel):
    allocation_run_id: uuid.UUID
    status: RunStatus
    attempts: int = 0
    created_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class ConflictOut(BaseModel):
    id: uuid.UUID
    run_id: uuid.UUID
    type: str = Field(validation_alias="conflict_type")
    allocation_id: uuid.UUID
    conflicting_allocation_id: uuid.UUID
    class_level: str | None = None
    details: dict[str, Any] = Field(default_factory=dict, validation_alias="details_json")
    resolved: bool = False

    class Config:
        from_attributes = True
        populate_by_name = True


class ListConflictsResponse(BaseModel):
    conflicts: list[ConflictOut]
    total: int
    unresolved: int


class RegenerateResponse(BaseModel):
    allocation_run_id: uuid.UUID
    regenerated_from: uuid.UUID
    is_async: bool
    status: RunStatus


class InvigilatorOut(BaseModel):
    teacher_id: uuid.UUID
    role: str


class StudentSeatOut(BaseModel):
    exam_id: uuid.UUID
    allocation_run_id: uuid.UUID
    allocation_id: uuid.UUID
    student_id: uuid.UUID
    registration_number: str | None = None
    full_name: str | None = None
    class_level: str | None = None
    hall_id: uuid.UUID
    hall_name: str
    row: int
    column: int
    seat_number: int
    invigilators: list[InvigilatorOut] = Field(default_factory=list)
