from __future__ import annotations

import uuid

from sqlalchemy import Column, DateTime, Enum, ForeignKey, Index, Uuid
from sqlalchemy.sql import func

from models.base import Base


INVIGILATOR_ROLE = Enum(
    "invigilator",
    "chief_invigilator",
    "assistant",
    name="invigilator_role",
    native_enum=False,
)


class TeacherHallAssignment(Base):
    __tablename__ = "hall_teachers"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    hall_id = Column(Uuid, ForeignKey("halls.id", ondelete="CASCADE"), nullable=False)
    exam_id = Column(Uuid, ForeignKey("exams.id", ondelete="CASCADE"), nullable=False)
    run_id = Column(Uuid, ForeignKey("allocation_runs.id", ondelete="CASCADE"), nullable=True)
    # Teachers live in the external user directory.
    teacher_id = Column(Uuid, nullable=False, index=True)
    role = Column(INVIGILATOR_ROLE, nullable=False, default="invigilator")
    assigned_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        Index("ix_hall_teachers_hall_exam", "hall_id", "exam_id"),
    )
