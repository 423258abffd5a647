from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable

from seating.grid import FORWARD_OFFSETS, adjacency_type
from seating.planner import Placement


@dataclass
class DetectedConflict:
    conflict_type: str
    first: Placement
    second: Placement
    class_level: str
    details: dict[str, Any] = field(default_factory=dict)
    resolved: bool = False

    @property
    def key(self) -> frozenset:
        return frozenset((self.first.student_id, self.second.student_id))

    def still_conflicting(self) -> bool:
        a, b = self.first, self.second
        if a.hall_id != b.hall_id or a.class_level != b.class_level:
            return False
        return max(abs(a.row - b.row), abs(a.column - b.column)) == 1


def index_cells(placements: Iterable[Placement]) -> dict[tuple[Any, int, int], Placement]:
    return {p.cell: p for p in placements}


def detect_conflicts(placements: Iterable[Placement]) -> list[DetectedConflict]:
    """Every pair of touching seats (4-neighbour or diagonal) in one hall that
    share a class level. Each unordered pair is reported once, scanning seats
    hall by hall in (row, column) order.
    """
    placements = list(placements)
    grid = index_cells(placements)

    conflicts: list[DetectedConflict] = []
    for p in sorted(placements, key=lambda x: (str(x.hall_id), x.row, x.column)):
        if p.class_level is None:
            continue
        for dr, dc in FORWARD_OFFSETS:
            other = grid.get((p.hall_id, p.row + dr, p.column + dc))
            if other is None or other.class_level != p.class_level:
                continue
            conflicts.append(
                DetectedConflict(
                    conflict_type=adjacency_type(dr, dc),
                    first=p,
                    second=other,
                    class_level=p.class_level,
                    details={
                        "student1": str(p.student_id),
                        "student2": str(other.student_id),
                        "class": p.class_level,
                        "hall_id": str(p.hall_id),
                        "positions": [
                            {"row": p.row, "column": p.column, "seat_number": p.seat_number},
                            {"row": other.row, "column": other.column, "seat_number": other.seat_number},
                        ],
                    },
                )
            )
    return conflicts
