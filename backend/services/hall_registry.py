from __future__ import annotations

import logging
import uuid
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from core.errors import (
    DuplicateHallName,
    HallNotFound,
    InvalidHallConfiguration,
    ResourceInUse,
    RunNotFound,
)
from models.allocation import Allocation
from models.allocation_run import NON_TERMINAL_STATUSES, AllocationRun
from models.examinee import Examinee
from models.hall import Hall
from seating.capacity import CapacitySummary, summarize_capacity
from seating.planner import HallSpec


logger = logging.getLogger(__name__)

MAX_DIMENSION = 100
MAX_TEACHERS_NEEDED = 10

# Changing these while a run is in flight would invalidate its capacity snapshot.
_PLANNING_FIELDS = ("rows", "columns", "is_active")


def _validate_dimensions(*, rows: Any, columns: Any) -> tuple[int, int]:
    errors: list[str] = []
    try:
        rows = int(rows)
        columns = int(columns)
    except (TypeError, ValueError):
        raise InvalidHallConfiguration("Hall rows and columns must be integers")
    if not 1 <= rows <= MAX_DIMENSION:
        errors.append(f"rows must be between 1 and {MAX_DIMENSION}")
    if not 1 <= columns <= MAX_DIMENSION:
        errors.append(f"columns must be between 1 and {MAX_DIMENSION}")
    if errors:
        raise InvalidHallConfiguration("Invalid hall dimensions", details={"errors": errors})
    return rows, columns


def _validate_teachers_needed(value: Any) -> int:
    try:
        value = int(value)
    except (TypeError, ValueError):
        raise InvalidHallConfiguration("teachers_needed must be an integer")
    if not 1 <= value <= MAX_TEACHERS_NEEDED:
        raise InvalidHallConfiguration(
            f"teachers_needed must be between 1 and {MAX_TEACHERS_NEEDED}",
            details={"teachers_needed": value},
        )
    return value


def _clean_name(value: Any) -> str:
    name = str(value or "").strip()
    if not name:
        raise InvalidHallConfiguration("Hall name is required")
    if len(name) > 255:
        raise InvalidHallConfiguration("Hall name must be at most 255 characters")
    return name


def _ensure_unique_name(db: Session, *, name: str, exclude_hall_id: uuid.UUID | None) -> None:
    q = select(Hall.id).where(func.lower(Hall.name) == name.lower())
    if exclude_hall_id is not None:
        q = q.where(Hall.id != exclude_hall_id)
    if db.execute(q.limit(1)).first() is not None:
        raise DuplicateHallName(f"A hall named '{name}' already exists", details={"name": name})


def _has_allocations(db: Session, hall_id: uuid.UUID) -> bool:
    return db.execute(select(Allocation.id).where(Allocation.hall_id == hall_id).limit(1)).first() is not None


def _active_run_id(db: Session) -> uuid.UUID | None:
    return db.execute(
        select(AllocationRun.id).where(AllocationRun.status.in_(NON_TERMINAL_STATUSES)).limit(1)
    ).scalar_one_or_none()


def get_hall(db: Session, hall_id: uuid.UUID) -> Hall:
    hall = db.get(Hall, hall_id)
    if hall is None:
        raise HallNotFound(details={"hall_id": str(hall_id)})
    return hall


def list_halls(
    db: Session,
    *,
    active_only: bool = False,
    search: str | None = None,
) -> list[tuple[Hall, int]]:
    """Halls ordered by name, each paired with its allocation count across all runs."""
    counts = (
        select(Allocation.hall_id, func.count(Allocation.id).label("n"))
        .group_by(Allocation.hall_id)
        .subquery()
    )
    q = select(Hall, func.coalesce(counts.c.n, 0)).outerjoin(counts, counts.c.hall_id == Hall.id)
    if active_only:
        q = q.where(Hall.is_active.is_(True))
    term = (search or "").strip()
    if term:
        q = q.where(Hall.name.ilike(f"%{term}%"))
    rows = db.execute(q.order_by(Hall.name.asc())).all()
    return [(hall, int(n)) for hall, n in rows]


def create_hall(db: Session, data: dict[str, Any]) -> Hall:
    name = _clean_name(data.get("name"))
    rows, columns = _validate_dimensions(rows=data.get("rows"), columns=data.get("columns"))
    teachers_needed = _validate_teachers_needed(data.get("teachers_needed", 1))
    notes = data.get("notes")
    if notes is not None:
        notes = str(notes).strip() or None

    _ensure_unique_name(db, name=name, exclude_hall_id=None)

    hall = Hall(
        name=name,
        rows=rows,
        columns=columns,
        capacity=rows * columns,
        teachers_needed=teachers_needed,
        notes=notes,
        is_active=bool(data.get("is_active", True)),
    )
    db.add(hall)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise DuplicateHallName(f"A hall named '{name}' already exists", details={"name": name})
    db.refresh(hall)
    logger.info("Hall created id=%s name=%s capacity=%s", hall.id, hall.name, hall.capacity)
    return hall


def update_hall(db: Session, hall_id: uuid.UUID, updates: dict[str, Any]) -> Hall:
    hall = get_hall(db, hall_id)

    if "name" in updates and updates["name"] is not None:
        updates["name"] = _clean_name(updates["name"])
        _ensure_unique_name(db, name=updates["name"], exclude_hall_id=hall_id)
    if "teachers_needed" in updates and updates["teachers_needed"] is not None:
        updates["teachers_needed"] = _validate_teachers_needed(updates["teachers_needed"])
    if "notes" in updates and updates["notes"] is not None:
        updates["notes"] = str(updates["notes"]).strip() or None

    rows = updates.get("rows") if updates.get("rows") is not None else hall.rows
    columns = updates.get("columns") if updates.get("columns") is not None else hall.columns
    rows, columns = _validate_dimensions(rows=rows, columns=columns)

    changed = [
        f
        for f in _PLANNING_FIELDS
        if f in updates and updates[f] is not None and updates[f] != getattr(hall, f)
    ]
    if changed:
        run_id = _active_run_id(db)
        if run_id is not None:
            raise ResourceInUse(
                "Hall layout cannot change while an allocation run is in progress",
                details={"hall_id": str(hall_id), "fields": changed, "run_id": str(run_id)},
            )
        if (rows, columns) != (hall.rows, hall.columns) and _has_allocations(db, hall_id):
            # Past runs keep their own seat coordinates.
            logger.warning(
                "Hall dimensions changed for hall_id=%s (name=%s) from %sx%s to %sx%s but past runs reference it",
                str(hall_id),
                str(hall.name),
                hall.rows,
                hall.columns,
                rows,
                columns,
            )

    for k in ("name", "teachers_needed", "notes", "is_active"):
        if k in updates and (updates[k] is not None or k == "notes"):
            setattr(hall, k, updates[k])
    hall.rows = rows
    hall.columns = columns
    hall.capacity = rows * columns

    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise DuplicateHallName(details={"name": hall.name})
    db.refresh(hall)
    return hall


def delete_hall(db: Session, hall_id: uuid.UUID) -> None:
    hall = get_hall(db, hall_id)
    if _has_allocations(db, hall_id):
        raise ResourceInUse(
            "Hall is referenced by existing allocations and cannot be deleted",
            details={"hall_id": str(hall_id)},
        )
    run_id = _active_run_id(db)
    if run_id is not None:
        raise ResourceInUse(
            "Halls cannot be deleted while an allocation run is in progress",
            details={"hall_id": str(hall_id), "run_id": str(run_id)},
        )
    db.delete(hall)
    db.commit()
    logger.info("Hall deleted id=%s name=%s", hall_id, hall.name)


def capacity_stats(db: Session) -> CapacitySummary:
    caps = db.execute(select(Hall.capacity).where(Hall.is_active.is_(True))).scalars().all()
    return summarize_capacity(caps)


def load_active_halls(db: Session) -> list[HallSpec]:
    halls = db.execute(select(Hall).where(Hall.is_active.is_(True))).scalars().all()
    return [HallSpec(id=h.id, name=h.name, rows=int(h.rows), columns=int(h.columns)) for h in halls]


def grid_layout(db: Session, hall_id: uuid.UUID, *, run_id: uuid.UUID | None = None) -> dict[str, Any]:
    """Every cell of the hall keyed row -> column.

    With a run, occupied cells carry the seat number and student; cells the run
    left empty (and every cell without a run) have seat_number None.
    """
    hall = get_hall(db, hall_id)

    occupied: dict[tuple[int, int], tuple[Allocation, Examinee | None]] = {}
    if run_id is not None:
        if db.get(AllocationRun, run_id) is None:
            raise RunNotFound(details={"run_id": str(run_id)})
        rows = db.execute(
            select(Allocation, Examinee)
            .outerjoin(Examinee, Examinee.id == Allocation.student_id)
            .where(Allocation.run_id == run_id)
            .where(Allocation.hall_id == hall_id)
        ).all()
        occupied = {(a.row, a.column): (a, e) for a, e in rows}

    grid: dict[int, dict[int, dict[str, Any]]] = {}
    for r in range(1, int(hall.rows) + 1):
        grid[r] = {}
        for c in range(1, int(hall.columns) + 1):
            cell: dict[str, Any] = {
                "row": r,
                "column": c,
                "seat_number": None,
                "allocation_id": None,
                "student": None,
            }
            hit = occupied.get((r, c))
            if hit is not None:
                alloc, examinee = hit
                cell["seat_number"] = alloc.seat_number
                cell["allocation_id"] = alloc.id
                cell["student"] = {
                    "id": alloc.student_id,
                    "registration_number": getattr(examinee, "registration_number", None),
                    "full_name": getattr(examinee, "full_name", None),
                    "class_level": alloc.class_level,
                }
            grid[r][c] = cell

    return {
        "hall": hall,
        "allocation_run_id": run_id,
        "occupied_seats": len(occupied),
        "grid": grid,
    }

