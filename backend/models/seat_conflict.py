from __future__ import annotations

import uuid

from sqlalchemy import Boolean, Column, DateTime, Enum, ForeignKey, Text, Uuid
from sqlalchemy.sql import func

from models.base import JSON_DOC, Base


CONFLICT_TYPE = Enum(
    "same_class_adjacent",
    "same_class_front_back",
    "same_class_diagonal",
    name="seat_conflict_type",
    native_enum=False,
)


class SeatConflict(Base):
    __tablename__ = "seat_conflicts"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    run_id = Column(Uuid, ForeignKey("allocation_runs.id", ondelete="CASCADE"), nullable=False, index=True)
    conflict_type = Column(CONFLICT_TYPE, nullable=False)
    allocation_id = Column(Uuid, ForeignKey("allocations.id", ondelete="CASCADE"), nullable=False, index=True)
    conflicting_allocation_id = Column(Uuid, ForeignKey("allocations.id", ondelete="CASCADE"), nullable=False)
    class_level = Column(Text, nullable=True)
    details_json = Column("details", JSON_DOC, nullable=False, default=dict)
    resolved = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
