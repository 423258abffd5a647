from __future__ import annotations

import uuid

from sqlalchemy import Column, DateTime, ForeignKey, Integer, Text, UniqueConstraint, Uuid
from sqlalchemy.sql import func

from models.base import Base


class Allocation(Base):
    __tablename__ = "allocations"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    run_id = Column(Uuid, ForeignKey("allocation_runs.id", ondelete="CASCADE"), nullable=False, index=True)
    exam_id = Column(Uuid, nullable=False)
    hall_id = Column(Uuid, ForeignKey("halls.id"), nullable=False, index=True)
    student_id = Column(Uuid, nullable=False, index=True)
    row = Column(Integer, nullable=False)
    column = Column(Integer, nullable=False)
    seat_number = Column(Integer, nullable=False)
    # Denormalized for conflict scans and reports.
    class_level = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        UniqueConstraint("run_id", "hall_id", "row", "column", name="uq_allocations_run_hall_cell"),
        UniqueConstraint("run_id", "student_id", name="uq_allocations_run_student"),
        UniqueConstraint("run_id", "hall_id", "seat_number", name="uq_allocations_run_hall_seat"),
    )
