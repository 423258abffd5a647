from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, Field


class HallBase(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    rows: int = Field(ge=1, le=100)
    columns: int = Field(ge=1, le=100)
    teachers_needed: int = Field(default=1, ge=1, le=10)
    notes: str | None = None
    is_active: bool = True


class HallCreate(HallBase):
    pass


class HallUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    rows: int | None = Field(default=None, ge=1, le=100)
    columns: int | None = Field(default=None, ge=1, le=100)
    teachers_needed: int | None = Field(default=None, ge=1, le=10)
    notes: str | None = None
    is_active: bool | None = None


class HallOut(HallBase):
    id: uuid.UUID
    capacity: int
    created_at: datetime | None = None
    updated_at: datetime | None = None

    class Config:
        from_attributes = True


class HallListItem(HallOut):
    allocations_count: int = 0


class HallStatsOut(BaseModel):
    active_halls: int
    total_capacity: int
    average_capacity: float


class GridStudentOut(BaseModel):
    id: uuid.UUID
    registration_number: str | None = None
    full_name: str | None = None
    class_level: str | None = None


class GridCellOut(BaseModel):
    row: int
    column: int
    seat_number: int | None = None
    allocation_id: uuid.UUID | None = None
    student: GridStudentOut | None = None


class GridLayoutOut(BaseModel):
    hall: HallOut
    allocation_run_id: uuid.UUID | None = None
    occupied_seats: int = 0
    # row -> column -> cell
    grid: dict[int, dict[int, GridCellOut]]
