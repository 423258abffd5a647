from __future__ import annotations

import random
import uuid
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.orm import Session

from core.errors import CohortEmpty, ExamNotFound, MissingClassData
from models.exam import Exam
from models.examinee import Examinee, ExamRegistration
from seating.planner import Candidate


_MISSING_SAMPLE = 20


@dataclass(frozen=True)
class Cohort:
    exam_id: uuid.UUID
    # class_level -> candidates in seating order; keys sorted by class level.
    groups: dict[str, list[Candidate]]

    @property
    def size(self) -> int:
        return sum(len(g) for g in self.groups.values())

    @property
    def class_distribution(self) -> dict[str, int]:
        return {k: len(v) for k, v in self.groups.items()}


def get_exam(db: Session, exam_id: uuid.UUID) -> Exam:
    exam = db.get(Exam, exam_id)
    if exam is None:
        raise ExamNotFound(details={"exam_id": str(exam_id)})
    return exam


def load_cohort(db: Session, exam_id: uuid.UUID, *, seed: str | None = None) -> Cohort:
    """Active examinees registered for `exam_id`, grouped by class level.

    Within a group students are ordered by registration number, then shuffled
    with `seed` when one is given. The same roster and seed always yield the
    same grouping and order.
    """
    get_exam(db, exam_id)

    examinees = (
        db.execute(
            select(Examinee)
            .join(ExamRegistration, ExamRegistration.student_id == Examinee.id)
            .where(ExamRegistration.exam_id == exam_id)
            .where(Examinee.is_active.is_(True))
            .order_by(Examinee.registration_number.asc(), Examinee.id.asc())
        )
        .scalars()
        .unique()
        .all()
    )
    if not examinees:
        raise CohortEmpty(
            "No eligible students are registered for this exam",
            details={"exam_id": str(exam_id)},
        )

    missing = [e for e in examinees if not (e.class_level or "").strip()]
    if missing:
        raise MissingClassData(
            f"{len(missing)} registered student(s) have no class level",
            details={
                "count": len(missing),
                "registration_numbers": [e.registration_number for e in missing[:_MISSING_SAMPLE]],
            },
        )

    grouped: dict[str, list[Candidate]] = {}
    for e in examinees:
        level = e.class_level.strip()
        grouped.setdefault(level, []).append(Candidate(student_id=e.id, class_level=level))

    groups: dict[str, list[Candidate]] = {}
    for level in sorted(grouped):
        members = grouped[level]
        if seed is not None:
            # One stream per class, so adding a student to one class leaves the others' order alone.
            random.Random(f"{seed}:{level}").shuffle(members)
        groups[level] = members

    return Cohort(exam_id=exam_id, groups=groups)
