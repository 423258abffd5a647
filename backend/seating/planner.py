from __future__ import annotations

import logging
import uuid
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Sequence

from core.errors import InsufficientCapacity
from seating.grid import bin_of, check_deadline, neighbours, seating_patterns, traversal


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HallSpec:
    id: Any
    name: str
    rows: int
    columns: int

    @property
    def capacity(self) -> int:
        return int(self.rows) * int(self.columns)


@dataclass(frozen=True)
class Candidate:
    student_id: Any
    class_level: str | None


@dataclass
class Placement:
    student_id: Any
    class_level: str | None
    hall_id: Any
    row: int
    column: int
    seat_number: int = 0
    allocation_id: uuid.UUID = field(default_factory=uuid.uuid4)

    @property
    def cell(self) -> tuple[Any, int, int]:
        return self.hall_id, self.row, self.column


@dataclass
class SeatPlan:
    placements: list[Placement]
    halls: list[HallSpec]

    @property
    def halls_used(self) -> int:
        return len(self.halls)


_SPILL = -1
_DEADLINE_CHECK_EVERY = 1024


def order_halls(halls: Iterable[HallSpec]) -> list[HallSpec]:
    """Largest halls first so the cohort lands in as few halls as possible."""
    return sorted(halls, key=lambda h: (-h.capacity, str(h.name), str(h.id)))


def interleave(groups: Mapping[Any, Sequence[Candidate]]) -> list[Candidate]:
    """Round-robin across groups: one student from each non-empty group per step."""
    queues = [deque(g) for g in groups.values() if g]
    out: list[Candidate] = []
    while queues:
        for q in queues:
            out.append(q.popleft())
        queues = [q for q in queues if q]
    return out


class _SpillQueue:
    """Round-robin over oversized class groups with the checkerboard bias.

    `pop` normally returns the next group in turn, but skips ahead to the first
    group whose class is not already sitting next to the seat being filled.
    """

    def __init__(self, groups: Sequence[Sequence[Candidate]]):
        self._queues = [deque(g) for g in groups if g]
        self._cursor = 0

    def __len__(self) -> int:
        return sum(len(q) for q in self._queues)

    def pop(self, blocked: set[str]) -> Candidate:
        n = len(self._queues)
        for step in range(n):
            i = (self._cursor + step) % n
            head = self._queues[i][0]
            if head.class_level is None or head.class_level not in blocked:
                return self._take(i)
        return self._take(self._cursor % n)

    def _take(self, i: int) -> Candidate:
        cand = self._queues[i].popleft()
        if self._queues[i]:
            self._cursor = i + 1
        else:
            del self._queues[i]
            self._cursor = i
        self._cursor = self._cursor % len(self._queues) if self._queues else 0
        return cand


def _group_in_order(chunk: Sequence[Candidate]) -> dict[Any, list[Candidate]]:
    groups: dict[Any, list[Candidate]] = {}
    for cand in chunk:
        groups.setdefault(cand.class_level, []).append(cand)
    return groups


def _pack_bins(
    groups: Mapping[Any, list[Candidate]],
    room: list[int],
) -> tuple[dict[int, list[list[Candidate]]], list[list[Candidate]]]:
    pure: dict[int, list[list[Candidate]]] = {k: [] for k in range(len(room))}
    spilled: list[list[Candidate]] = []

    # Largest classes claim a bin first; sorted() is stable so ties keep class order.
    for _class_level, members in sorted(groups.items(), key=lambda kv: -len(kv[1])):
        k = max(range(len(room)), key=lambda i: (room[i], -i))
        if len(members) <= room[k]:
            pure[k].append(members)
            room[k] -= len(members)
        else:
            spilled.append(members)
    return pure, spilled


def _choose_layout(
    hall: HallSpec,
    cells: Sequence[tuple[int, int]],
    groups: Mapping[Any, list[Candidate]],
) -> tuple[dict[int, list[tuple[int, int]]], list[int], dict[int, list[list[Candidate]]], list[list[Candidate]]]:
    """Pick the bin pattern that leaves the fewest students to spill.

    Earlier patterns win ties, and the search stops at the first pattern that
    seats every class inside a bin of its own.
    """
    best = None
    for pattern in seating_patterns(len(groups)):
        by_bin: dict[int, list[tuple[int, int]]] = {k: [] for k in range(pattern[1])}
        for cell in cells:
            by_bin[bin_of(cell[0], cell[1], pattern)].append(cell)
        room = [len(by_bin[k]) for k in range(pattern[1])]
        pure, spilled = _pack_bins(groups, room)
        overflow = sum(len(members) for members in spilled)
        if best is None or overflow < best[0]:
            best = (overflow, by_bin, room, pure, spilled)
        if overflow == 0:
            break
    overflow, by_bin, room, pure, spilled = best
    if overflow:
        logger.debug("Hall %s: %s student(s) spill outside a single-class bin", hall.name, overflow)
    return by_bin, room, pure, spilled


def _place_in_hall(
    hall: HallSpec,
    chunk: Sequence[Candidate],
    *,
    numbering: str,
    deadline: float | None,
) -> list[Placement]:
    cells = list(traversal(hall.rows, hall.columns, numbering))
    by_bin, room, pure, spilled = _choose_layout(hall, cells, _group_in_order(chunk))
    bins = range(len(by_bin))

    pure_queues = {k: deque(interleave(dict(enumerate(pure[k])))) for k in bins}
    spill_queue = _SpillQueue(spilled)

    slot: dict[tuple[int, int], int] = {}
    for k in bins:
        for cell in by_bin[k][: len(pure_queues[k])]:
            slot[cell] = k

    # Oversized classes take the leftover seats, roomiest bin first.
    remaining = len(spill_queue)
    for k in sorted(bins, key=lambda i: (-room[i], i)):
        if remaining <= 0:
            break
        free = by_bin[k][len(pure_queues[k]) :][:remaining]
        for cell in free:
            slot[cell] = _SPILL
        remaining -= len(free)

    seated: dict[tuple[int, int], str | None] = {}
    placements: list[Placement] = []
    for i, cell in enumerate(cells):
        if i % _DEADLINE_CHECK_EVERY == 0:
            check_deadline(deadline)
        kind = slot.get(cell)
        if kind is None:
            continue
        if kind == _SPILL:
            blocked = {
                seated[n]
                for n in neighbours(cell[0], cell[1], hall.rows, hall.columns)
                if n in seated and seated[n] is not None
            }
            cand = spill_queue.pop(blocked)
        else:
            cand = pure_queues[kind].popleft()

        seated[cell] = cand.class_level
        # Seats are numbered contiguously in traversal order, skipping empty cells.
        placements.append(
            Placement(
                student_id=cand.student_id,
                class_level=cand.class_level,
                hall_id=hall.id,
                row=cell[0],
                column=cell[1],
                seat_number=len(placements) + 1,
            )
        )
    return placements


def plan_seats(
    halls: Iterable[HallSpec],
    groups: Mapping[Any, Sequence[Candidate]],
    *,
    numbering: str,
    deadline: float | None = None,
) -> SeatPlan:
    """Seat every candidate across `halls`.

    Halls are packed largest-first with a round-robin mix of class groups.
    Inside a hall, seats are split into bins (the four row/column parity
    lattices first, then diagonal stripes); no two seats of one bin touch, so
    a class that fits inside one bin is conflict-free by construction. Classes
    too large for any bin are spread over the leftover seats with the
    checkerboard bias, and whatever adjacency remains is left for conflict
    detection.

    Raises InsufficientCapacity (nothing is placed) when the halls can't hold
    the cohort.
    """
    halls = list(halls)
    sequence = interleave(groups)
    total_capacity = sum(h.capacity for h in halls)
    if total_capacity < len(sequence):
        raise InsufficientCapacity(required=len(sequence), available=total_capacity)

    placements: list[Placement] = []
    used: list[HallSpec] = []
    start = 0
    for hall in order_halls(halls):
        if start >= len(sequence):
            break
        check_deadline(deadline)
        chunk = sequence[start : start + hall.capacity]
        start += len(chunk)
        placements.extend(_place_in_hall(hall, chunk, numbering=numbering, deadline=deadline))
        used.append(hall)

    return SeatPlan(placements=placements, halls=used)


def number_seats(placements: Iterable[Placement], halls: Iterable[HallSpec], *, numbering: str) -> None:
    """Renumber occupied seats 1..n per hall in traversal order."""
    by_hall: dict[Any, list[Placement]] = {}
    for p in placements:
        by_hall.setdefault(p.hall_id, []).append(p)
    for hall in halls:
        seated = by_hall.get(hall.id)
        if not seated:
            continue
        order = {cell: i for i, cell in enumerate(traversal(hall.rows, hall.columns, numbering))}
        for n, p in enumerate(sorted(seated, key=lambda x: order[(x.row, x.column)]), start=1):
            p.seat_number = n
