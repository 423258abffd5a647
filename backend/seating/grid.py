from __future__ import annotations

import time
from typing import Iterator

from core.errors import AllocationTimeout


ROW_MAJOR = "row_major"
COLUMN_MAJOR = "column_major"

# Offsets that point "forward" from a cell, so each unordered neighbour pair is
# visited exactly once when scanning a grid.
FORWARD_OFFSETS: tuple[tuple[int, int], ...] = ((0, 1), (1, 0), (1, -1), (1, 1))

ALL_OFFSETS: tuple[tuple[int, int], ...] = (
    (-1, -1),
    (-1, 0),
    (-1, 1),
    (0, -1),
    (0, 1),
    (1, -1),
    (1, 0),
    (1, 1),
)


def traversal(rows: int, columns: int, numbering: str) -> Iterator[tuple[int, int]]:
    """Yield 1-based (row, column) cells in seat numbering order."""
    if numbering == COLUMN_MAJOR:
        for c in range(1, columns + 1):
            for r in range(1, rows + 1):
                yield r, c
        return
    if numbering != ROW_MAJOR:
        raise ValueError(f"Unknown seat numbering '{numbering}'")
    for r in range(1, rows + 1):
        for c in range(1, columns + 1):
            yield r, c


LATTICE = "lattice"
STRIPE = "stripe"
STRIPE_T = "stripe_t"

# Widest stripe pattern tried; more bins only pay off with many classes.
_MAX_STRIPE_WIDTH = 8


def lattice_of(row: int, column: int) -> int:
    # Cells sharing a lattice index are at least two rows or two columns apart,
    # so they are never neighbours (not even diagonally).
    return 2 * ((row - 1) % 2) + ((column - 1) % 2)


def bin_of(row: int, column: int, pattern: tuple[str, int]) -> int:
    """Bin index of a cell under `pattern`; cells of one bin never touch.

    Stripes use (2*row + column) mod width, or its transpose. Stepping to any
    of the eight neighbours shifts that value by 1, 2 or 3, so any width >= 4
    keeps neighbours in different bins.
    """
    kind, width = pattern
    if kind == LATTICE:
        return lattice_of(row, column)
    if kind == STRIPE:
        return (2 * row + column) % width
    if kind == STRIPE_T:
        return (row + 2 * column) % width
    raise ValueError(f"Unknown seating pattern '{kind}'")


def seating_patterns(class_count: int) -> list[tuple[str, int]]:
    """Bin layouts to try for a hall, in order of preference."""
    patterns = [(LATTICE, 4), (STRIPE, 4), (STRIPE_T, 4)]
    for width in range(5, min(max(5, class_count), _MAX_STRIPE_WIDTH) + 1):
        patterns.append((STRIPE, width))
        patterns.append((STRIPE_T, width))
    return patterns


def adjacency_type(d_row: int, d_column: int) -> str:
    if d_row == 0:
        return "same_class_adjacent"
    if d_column == 0:
        return "same_class_front_back"
    return "same_class_diagonal"


def neighbours(row: int, column: int, rows: int, columns: int) -> Iterator[tuple[int, int]]:
    for dr, dc in ALL_OFFSETS:
        r, c = row + dr, column + dc
        if 1 <= r <= rows and 1 <= c <= columns:
            yield r, c


def check_deadline(deadline: float | None) -> None:
    """Raise AllocationTimeout once time.monotonic() passes `deadline`."""
    if deadline is not None and time.monotonic() > deadline:
        raise AllocationTimeout("Allocation exceeded its wall-clock budget")
