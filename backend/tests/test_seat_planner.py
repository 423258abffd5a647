from __future__ import annotations

import time
import uuid

import pytest

from core.errors import AllocationTimeout, InsufficientCapacity
from seating.conflicts import detect_conflicts
from seating.grid import bin_of, lattice_of, seating_patterns, traversal
from seating.planner import Candidate, HallSpec, interleave, number_seats, order_halls, plan_seats
from seating.repair import resolve_conflicts


def _groups(counts: dict[str, int]) -> dict[str, list[Candidate]]:
    return {level: [Candidate(student_id=uuid.uuid4(), class_level=level) for _ in range(n)] for level, n in counts.items()}


def _hall(name: str = "Hall", rows: int = 10, columns: int = 10) -> HallSpec:
    return HallSpec(id=uuid.uuid4(), name=name, rows=rows, columns=columns)


def test_traversal_orders():
    assert list(traversal(2, 3, "row_major")) == [(1, 1), (1, 2), (1, 3), (2, 1), (2, 2), (2, 3)]
    assert list(traversal(2, 3, "column_major")) == [(1, 1), (2, 1), (1, 2), (2, 2), (1, 3), (2, 3)]
    with pytest.raises(ValueError):
        list(traversal(2, 2, "diagonal"))


def test_same_lattice_cells_never_touch():
    cells = list(traversal(6, 6, "row_major"))
    for r1, c1 in cells:
        for r2, c2 in cells:
            if (r1, c1) == (r2, c2) or lattice_of(r1, c1) != lattice_of(r2, c2):
                continue
            assert max(abs(r1 - r2), abs(c1 - c2)) >= 2


@pytest.mark.parametrize("pattern", seating_patterns(8))
def test_same_bin_cells_never_touch(pattern):
    cells = list(traversal(7, 9, "row_major"))
    for r1, c1 in cells:
        for r2, c2 in cells:
            if (r1, c1) == (r2, c2) or bin_of(r1, c1, pattern) != bin_of(r2, c2, pattern):
                continue
            assert max(abs(r1 - r2), abs(c1 - c2)) >= 2


def test_interleave_round_robin():
    a1, a2, a3 = (Candidate(student_id=f"a{i}", class_level="A") for i in range(3))
    b1 = Candidate(student_id="b1", class_level="B")
    assert interleave({"A": [a1, a2, a3], "B": [b1]}) == [a1, b1, a2, a3]


def test_halls_ordered_largest_first():
    small, big, mid = _hall("S", 2, 2), _hall("B", 5, 5), _hall("M", 3, 3)
    assert [h.name for h in order_halls([small, big, mid])] == ["B", "M", "S"]


def test_three_classes_in_one_hall_are_conflict_free_and_numbered_row_major():
    hall = _hall(rows=10, columns=10)
    plan = plan_seats([hall], _groups({"A": 20, "B": 20, "C": 20}), numbering="row_major")

    assert len(plan.placements) == 60
    assert plan.halls_used == 1
    assert sorted(p.seat_number for p in plan.placements) == list(range(1, 61))
    by_seat = sorted(plan.placements, key=lambda p: p.seat_number)
    assert [(p.row, p.column) for p in by_seat] == sorted((p.row, p.column) for p in plan.placements)
    assert detect_conflicts(plan.placements) == []


def test_four_equal_classes_fill_every_lattice():
    plan = plan_seats([_hall(rows=10, columns=10)], _groups({"A": 25, "B": 25, "C": 25, "D": 25}), numbering="row_major")
    assert len(plan.placements) == 100
    assert detect_conflicts(plan.placements) == []


def test_column_major_numbering():
    plan = plan_seats([_hall(rows=4, columns=4)], _groups({"A": 3, "B": 3}), numbering="column_major")
    by_seat = sorted(plan.placements, key=lambda p: p.seat_number)
    assert [(p.column, p.row) for p in by_seat] == sorted((p.column, p.row) for p in plan.placements)


def test_every_student_seated_once_across_halls():
    halls = [_hall("First", 3, 3), _hall("Second", 3, 3)]
    groups = _groups({"A": 6, "B": 6})
    plan = plan_seats(halls, groups, numbering="row_major")

    seated = [p.student_id for p in plan.placements]
    expected = [c.student_id for g in groups.values() for c in g]
    assert sorted(map(str, seated)) == sorted(map(str, expected))
    assert plan.halls_used == 2

    for hall in halls:
        in_hall = [p for p in plan.placements if p.hall_id == hall.id]
        assert sorted(p.seat_number for p in in_hall) == list(range(1, len(in_hall) + 1))
        assert len({(p.row, p.column) for p in in_hall}) == len(in_hall)


def test_largest_hall_used_first():
    small, big = _hall("Small", 2, 2), _hall("Big", 5, 5)
    plan = plan_seats([small, big], _groups({"A": 5, "B": 5}), numbering="row_major")
    assert plan.halls_used == 1
    assert {p.hall_id for p in plan.placements} == {big.id}


def test_insufficient_capacity_reports_deficit():
    with pytest.raises(InsufficientCapacity) as exc:
        plan_seats([_hall(rows=2, columns=2)], _groups({"A": 3, "B": 3}), numbering="row_major")
    assert exc.value.required == 6
    assert exc.value.available == 4
    assert exc.value.deficit == 2


def test_single_class_fills_whole_hall_best_effort():
    plan = plan_seats([_hall(rows=4, columns=4)], _groups({"A": 16}), numbering="row_major")
    assert len(plan.placements) == 16
    assert len({(p.row, p.column) for p in plan.placements}) == 16


def test_expired_deadline_raises_timeout():
    with pytest.raises(AllocationTimeout):
        plan_seats(
            [_hall(rows=4, columns=4)],
            _groups({"A": 4}),
            numbering="row_major",
            deadline=time.monotonic() - 1,
        )


def _quarter_hall_cases():
    # Some bin pattern splits these grids into four equal bins, so up to four
    # classes of a quarter hall each always have a conflict-free seating.
    for rows in range(2, 9):
        for columns in range(2, 9):
            if (rows % 2 or columns % 2) and rows % 4 and columns % 4:
                continue
            size = rows * columns // 4
            for class_count in (2, 3, 4):
                yield rows, columns, {chr(ord("A") + i): size for i in range(class_count)}


def _unresolved_after_repair(halls, counts) -> int:
    plan = plan_seats(halls, _groups(counts), numbering="row_major")
    conflicts = detect_conflicts(plan.placements)
    outcome = resolve_conflicts(plan.placements, conflicts, budget=1000, halls=plan.halls)
    assert len(plan.placements) == sum(counts.values())
    return outcome.unresolved


@pytest.mark.parametrize("rows,columns,counts", list(_quarter_hall_cases()))
def test_quarter_hall_classes_seat_without_conflicts(rows, columns, counts):
    assert _unresolved_after_repair([_hall(rows=rows, columns=columns)], counts) == 0


@pytest.mark.parametrize(
    "rows,columns,counts",
    [
        (3, 4, {"A": 3, "B": 3, "C": 3}),
        (3, 6, {"A": 4, "B": 4, "C": 4}),
        (4, 5, {"A": 5, "B": 5, "C": 5, "D": 5}),
        (6, 5, {"A": 7, "B": 7, "C": 7, "D": 7}),
    ],
)
def test_uneven_lattices_fall_back_to_stripes(rows, columns, counts):
    plan = plan_seats([_hall(rows=rows, columns=columns)], _groups(counts), numbering="row_major")
    assert detect_conflicts(plan.placements) == []


def test_five_classes_use_a_five_bin_stripe():
    plan = plan_seats([_hall(rows=10, columns=10)], _groups({c: 20 for c in "ABCDE"}), numbering="row_major")
    assert len(plan.placements) == 100
    assert detect_conflicts(plan.placements) == []


def test_small_class_rides_along_in_three_equal_halls():
    halls = [_hall(f"Room {i}", rows=4, columns=5) for i in range(3)]
    assert _unresolved_after_repair(halls, {"A": 5, "B": 5, "C": 1, "D": 5}) == 0


def test_number_seats_follows_traversal():
    hall = _hall(rows=2, columns=3)
    plan = plan_seats([hall], _groups({"A": 2, "B": 2}), numbering="row_major")
    for p in plan.placements:
        p.seat_number = 0

    number_seats(plan.placements, [hall], numbering="column_major")
    by_seat = sorted(plan.placements, key=lambda p: p.seat_number)
    assert [p.seat_number for p in by_seat] == [1, 2, 3, 4]
    assert [(p.column, p.row) for p in by_seat] == sorted((p.column, p.row) for p in plan.placements)
