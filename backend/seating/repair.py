from __future__ import annotations

from collections import defaultdict, deque
from dataclasses import dataclass
from typing import Any, Iterable, Sequence

from seating.conflicts import DetectedConflict, detect_conflicts, index_cells
from seating.grid import ALL_OFFSETS, ROW_MAJOR, check_deadline, traversal
from seating.planner import HallSpec, Placement, number_seats


@dataclass
class RepairOutcome:
    conflicts: list[DetectedConflict]
    attempts: int
    swaps: int
    moves: int = 0

    @property
    def unresolved(self) -> int:
        return sum(1 for c in self.conflicts if not c.resolved)

    @property
    def resolved(self) -> int:
        return sum(1 for c in self.conflicts if c.resolved)


def _fits(
    class_level: str | None,
    cell: tuple[Any, int, int],
    grid: dict[tuple[Any, int, int], Placement],
    *,
    moving: tuple[Placement, Placement],
) -> bool:
    if class_level is None:
        return True
    hall_id, row, column = cell
    for dr, dc in ALL_OFFSETS:
        occupant = grid.get((hall_id, row + dr, column + dc))
        if occupant is None or occupant is moving[0] or occupant is moving[1]:
            continue
        if occupant.class_level == class_level:
            return False
    return True


def _swap(a: Placement, b: Placement, grid: dict[tuple[Any, int, int], Placement]) -> None:
    a.row, b.row = b.row, a.row
    a.column, b.column = b.column, a.column
    # Seat numbers belong to the cell, not the student.
    a.seat_number, b.seat_number = b.seat_number, a.seat_number
    grid[a.cell] = a
    grid[b.cell] = b


class _Repairer:
    def __init__(
        self,
        placements: list[Placement],
        halls: Sequence[HallSpec],
        numbering: str,
        deadline: float | None,
    ):
        self.grid = index_cells(placements)
        self.deadline = deadline
        self.by_hall: dict[Any, list[Placement]] = defaultdict(list)
        for p in sorted(placements, key=lambda x: x.seat_number):
            self.by_hall[p.hall_id].append(p)
        # Unoccupied cells per hall, in seat order; only known for halls passed in.
        self.empty: dict[Any, list[tuple[int, int]]] = {}
        for hall in halls:
            if hall.id not in self.by_hall:
                continue
            self.empty[hall.id] = [
                cell
                for cell in traversal(hall.rows, hall.columns, numbering)
                if (hall.id, cell[0], cell[1]) not in self.grid
            ]

    def swap(self, conflict: DetectedConflict) -> bool:
        for mover in (conflict.first, conflict.second):
            check_deadline(self.deadline)
            for partner in self.by_hall[mover.hall_id]:
                if partner is conflict.first or partner is conflict.second:
                    continue
                # Both parties share a class, so differing from the mover differs from both.
                if partner.class_level == mover.class_level:
                    continue
                moving = (mover, partner)
                if not _fits(mover.class_level, partner.cell, self.grid, moving=moving):
                    continue
                if not _fits(partner.class_level, mover.cell, self.grid, moving=moving):
                    continue
                _swap(mover, partner, self.grid)
                return True
        return False

    def move(self, conflict: DetectedConflict) -> bool:
        for mover in (conflict.first, conflict.second):
            check_deadline(self.deadline)
            free = self.empty.get(mover.hall_id)
            if not free:
                continue
            for i, (row, column) in enumerate(free):
                if not _fits(mover.class_level, (mover.hall_id, row, column), self.grid, moving=(mover, mover)):
                    continue
                del self.grid[mover.cell]
                free[i] = (mover.row, mover.column)
                mover.row, mover.column = row, column
                self.grid[mover.cell] = mover
                return True
        return False


def resolve_conflicts(
    placements: Iterable[Placement],
    conflicts: list[DetectedConflict],
    *,
    budget: int,
    deadline: float | None = None,
    halls: Sequence[HallSpec] = (),
    numbering: str = ROW_MAJOR,
) -> RepairOutcome:
    """Bounded local repair within a hall.

    Each attempt first looks for a seat swap with a student of another class,
    then for an empty seat in `halls` with no classmate next to it. A change is
    only taken when the moved students end up next to no classmate, so every
    one strictly lowers the conflict count and never creates a new pair.
    Stops when nothing is left, `budget` attempts are spent, or a full pass
    over the pending conflicts finds nothing to do. Placements are mutated in
    place; seats are renumbered when anyone moved into an empty seat, and the
    returned conflicts carry their final `resolved` flag.
    """
    placements = list(placements)
    repairer = _Repairer(placements, halls, numbering, deadline)

    pending = deque(conflicts)
    attempts = 0
    swaps = 0
    moves = 0
    stalled = 0
    while pending and attempts < budget:
        conflict = pending.popleft()
        if not conflict.still_conflicting():
            continue
        attempts += 1
        if repairer.swap(conflict):
            swaps += 1
        elif repairer.move(conflict):
            moves += 1
        else:
            pending.append(conflict)
            stalled += 1
            if stalled >= len(pending):
                break
            continue
        stalled = 0
        pending = deque(c for c in pending if c.still_conflicting())

    if moves:
        number_seats(placements, halls, numbering=numbering)

    for c in conflicts:
        c.resolved = not c.still_conflicting()

    known = {c.key for c in conflicts}
    leftovers = [c for c in detect_conflicts(placements) if c.key not in known]

    return RepairOutcome(conflicts=list(conflicts) + leftovers, attempts=attempts, swaps=swaps, moves=moves)
