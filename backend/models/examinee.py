from __future__ import annotations

import uuid

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Text, UniqueConstraint, Uuid
from sqlalchemy.sql import func

from models.base import Base


class Examinee(Base):
    """Student record supplied by the student-records service; read-only here."""

    __tablename__ = "examinees"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    registration_number = Column(Text, nullable=False, unique=True)
    full_name = Column(Text, nullable=False)
    class_level = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class ExamRegistration(Base):
    __tablename__ = "exam_registrations"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    exam_id = Column(Uuid, ForeignKey("exams.id", ondelete="CASCADE"), nullable=False, index=True)
    student_id = Column(Uuid, ForeignKey("examinees.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        UniqueConstraint("exam_id", "student_id", name="uq_exam_registrations_exam_student"),
    )
