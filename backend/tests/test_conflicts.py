from __future__ import annotations

import uuid
from collections import Counter

from seating.conflicts import detect_conflicts
from seating.planner import Candidate, HallSpec, Placement, plan_seats
from seating.repair import resolve_conflicts


def _single_class_hall(rows: int = 4, columns: int = 4):
    hall = HallSpec(id=uuid.uuid4(), name="Annex", rows=rows, columns=columns)
    groups = {"A": [Candidate(student_id=uuid.uuid4(), class_level="A") for _ in range(rows * columns)]}
    return plan_seats([hall], groups, numbering="row_major")


def test_full_single_class_hall_reports_every_adjacent_pair():
    plan = _single_class_hall()
    conflicts = detect_conflicts(plan.placements)

    assert len(conflicts) == 42
    assert Counter(c.conflict_type for c in conflicts) == {
        "same_class_adjacent": 12,
        "same_class_front_back": 12,
        "same_class_diagonal": 18,
    }
    assert len({c.key for c in conflicts}) == 42
    assert all(c.class_level == "A" for c in conflicts)


def test_conflict_details_carry_both_positions():
    plan = _single_class_hall(rows=1, columns=2)
    (conflict,) = detect_conflicts(plan.placements)
    assert conflict.conflict_type == "same_class_adjacent"
    assert conflict.details["class"] == "A"
    assert [(p["row"], p["column"]) for p in conflict.details["positions"]] == [(1, 1), (1, 2)]


def test_different_halls_never_conflict():
    h1, h2 = uuid.uuid4(), uuid.uuid4()
    placements = [
        Placement(student_id="s1", class_level="A", hall_id=h1, row=1, column=1, seat_number=1),
        Placement(student_id="s2", class_level="A", hall_id=h2, row=1, column=2, seat_number=1),
    ]
    assert detect_conflicts(placements) == []


def test_repair_cannot_fix_single_class_hall():
    plan = _single_class_hall()
    conflicts = detect_conflicts(plan.placements)
    outcome = resolve_conflicts(plan.placements, conflicts, budget=1000)

    assert outcome.unresolved == 42
    assert outcome.resolved == 0
    assert outcome.swaps == 0
    assert outcome.attempts <= 1000


def test_repair_swaps_in_a_student_from_another_class():
    hall_id = uuid.uuid4()
    a1 = Placement(student_id="a1", class_level="A", hall_id=hall_id, row=1, column=1, seat_number=1)
    a2 = Placement(student_id="a2", class_level="A", hall_id=hall_id, row=1, column=2, seat_number=2)
    b1 = Placement(student_id="b1", class_level="B", hall_id=hall_id, row=1, column=3, seat_number=3)
    placements = [a1, a2, b1]

    conflicts = detect_conflicts(placements)
    assert len(conflicts) == 1

    outcome = resolve_conflicts(placements, conflicts, budget=10)
    assert outcome.unresolved == 0
    assert outcome.resolved == 1
    assert outcome.swaps == 1
    assert detect_conflicts(placements) == []
    # Seat numbers stay attached to cells.
    assert sorted((p.column, p.seat_number) for p in placements) == [(1, 1), (2, 2), (3, 3)]


def test_zero_budget_leaves_conflicts_standing():
    hall_id = uuid.uuid4()
    placements = [
        Placement(student_id="a1", class_level="A", hall_id=hall_id, row=1, column=1, seat_number=1),
        Placement(student_id="a2", class_level="A", hall_id=hall_id, row=1, column=2, seat_number=2),
        Placement(student_id="b1", class_level="B", hall_id=hall_id, row=1, column=3, seat_number=3),
    ]
    conflicts = detect_conflicts(placements)
    outcome = resolve_conflicts(placements, conflicts, budget=0)
    assert outcome.attempts == 0
    assert outcome.unresolved == 1


def test_repair_moves_into_an_empty_seat():
    hall = HallSpec(id=uuid.uuid4(), name="Side Room", rows=1, columns=4)
    a1 = Placement(student_id="a1", class_level="A", hall_id=hall.id, row=1, column=1, seat_number=1)
    a2 = Placement(student_id="a2", class_level="A", hall_id=hall.id, row=1, column=2, seat_number=2)
    placements = [a1, a2]

    conflicts = detect_conflicts(placements)
    outcome = resolve_conflicts(placements, conflicts, budget=10, halls=[hall])

    assert outcome.unresolved == 0
    assert outcome.swaps == 0
    assert outcome.moves == 1
    assert (a1.row, a1.column) == (1, 4)
    # Seats are renumbered over the new layout.
    assert (a2.seat_number, a1.seat_number) == (1, 2)


def test_without_hall_dimensions_empty_seats_are_not_used():
    hall_id = uuid.uuid4()
    placements = [
        Placement(student_id="a1", class_level="A", hall_id=hall_id, row=1, column=1, seat_number=1),
        Placement(student_id="a2", class_level="A", hall_id=hall_id, row=1, column=2, seat_number=2),
    ]
    outcome = resolve_conflicts(placements, detect_conflicts(placements), budget=10)
    assert outcome.unresolved == 1
    assert outcome.moves == 0
