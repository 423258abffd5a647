from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable

from core.errors import InsufficientCapacity, NoActiveHalls


@dataclass(frozen=True)
class CapacitySummary:
    active_halls: int
    total_capacity: int
    average_capacity: float

    def as_dict(self) -> dict[str, Any]:
        return {
            "active_halls": self.active_halls,
            "total_capacity": self.total_capacity,
            "average_capacity": self.average_capacity,
        }


def summarize_capacity(capacities: Iterable[int]) -> CapacitySummary:
    caps = [int(c) for c in capacities]
    total = sum(caps)
    average = round(total / len(caps), 2) if caps else 0.0
    return CapacitySummary(active_halls=len(caps), total_capacity=total, average_capacity=average)


def ensure_capacity(summary: CapacitySummary, required: int) -> None:
    """Pre-flight check run before any allocation run row exists."""
    if summary.active_halls == 0:
        raise NoActiveHalls("No active halls available. Please configure halls first.")
    if summary.total_capacity < int(required):
        raise InsufficientCapacity(required=int(required), available=summary.total_capacity)
