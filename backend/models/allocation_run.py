from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Enum, ForeignKey, Index, Integer, Text, Uuid, text
from sqlalchemy.sql import func

from models.base import JSON_DOC, Base


RUN_STATUS = Enum("queued", "running", "completed", "failed", name="allocation_run_status", native_enum=False)
RUN_MODE = Enum("auto", "manual", name="allocation_mode", native_enum=False)
SEAT_NUMBERING = Enum("row_major", "column_major", name="seat_numbering", native_enum=False)
ADJACENCY_STRICTNESS = Enum("hard", "soft", name="adjacency_strictness", native_enum=False)

NON_TERMINAL_STATUSES = ("queued", "running")
TERMINAL_STATUSES = ("completed", "failed")

_ACTIVE_RUN_PREDICATE = text("status IN ('queued', 'running')")


class AllocationRun(Base):
    __tablename__ = "allocation_runs"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    exam_id = Column(Uuid, ForeignKey("exams.id", ondelete="CASCADE"), nullable=False, index=True)
    created_by = Column(Uuid, nullable=True, index=True)
    mode = Column(RUN_MODE, nullable=False, default="auto")
    seat_numbering = Column(SEAT_NUMBERING, nullable=False, default="row_major")
    adjacency_strictness = Column(ADJACENCY_STRICTNESS, nullable=False, default="hard")
    status = Column(RUN_STATUS, nullable=False, default="queued")
    shuffle_seed = Column(Text, nullable=False)
    # Bumped on every claim; a worker only commits if nobody re-claimed after it.
    attempts = Column(Integer, nullable=False, default=0)
    regenerated_from = Column(Uuid, nullable=True)
    notes = Column(Text, nullable=True)
    metadata_json = Column("metadata", JSON_DOC, nullable=False, default=dict)
    # Python-side default keeps sub-second ordering on SQLite.
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=func.now(),
        index=True,
    )
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        # Single writer per exam: at most one queued/running run.
        Index(
            "ux_allocation_runs_active_exam",
            "exam_id",
            unique=True,
            postgresql_where=_ACTIVE_RUN_PREDICATE,
            sqlite_where=_ACTIVE_RUN_PREDICATE,
        ),
    )

    @property
    def is_terminal(self) -> bool:
        return str(self.status) in TERMINAL_STATUSES
