from __future__ import annotations

import uuid

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, Integer, String, Text, Uuid
from sqlalchemy.sql import func

from models.base import Base


class Hall(Base):
    __tablename__ = "halls"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False, unique=True)
    rows = Column(Integer, nullable=False)
    columns = Column(Integer, nullable=False)
    # Denormalized rows * columns; only the hall registry writes it.
    capacity = Column(Integer, nullable=False)
    teachers_needed = Column(Integer, nullable=False, default=1)
    notes = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint("rows >= 1 and rows <= 100", name="ck_halls_rows"),
        CheckConstraint("columns >= 1 and columns <= 100", name="ck_halls_columns"),
        CheckConstraint("capacity = rows * columns", name="ck_halls_capacity"),
        CheckConstraint("teachers_needed >= 1 and teachers_needed <= 10", name="ck_halls_teachers_needed"),
    )
