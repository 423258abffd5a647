from __future__ import annotations

from typing import Any


class AllocationError(Exception):
    """Base for errors the seat allocation subsystem reports to callers.

    Each subclass maps to one machine-readable `code` and an HTTP status; the
    handler in main.py renders them as {"code", "message", "details"}.
    """

    code = "ALLOCATION_ERROR"
    status_code = 400

    def __init__(self, message: str | None = None, *, details: dict[str, Any] | None = None):
        self.message = message or self.code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}


class HallNotFound(AllocationError):
    code = "HALL_NOT_FOUND"
    status_code = 404


class ExamNotFound(AllocationError):
    code = "EXAM_NOT_FOUND"
    status_code = 404


class RunNotFound(AllocationError):
    code = "RUN_NOT_FOUND"
    status_code = 404


class AllocationNotFound(AllocationError):
    code = "ALLOCATION_NOT_FOUND"
    status_code = 404


class InvalidHallConfiguration(AllocationError):
    code = "INVALID_HALL_CONFIGURATION"
    status_code = 422


class DuplicateHallName(AllocationError):
    code = "HALL_NAME_ALREADY_EXISTS"
    status_code = 409


class ResourceInUse(AllocationError):
    code = "RESOURCE_IN_USE"
    status_code = 409


class MissingClassData(AllocationError):
    code = "MISSING_CLASS_DATA"
    status_code = 422


class NoActiveHalls(AllocationError):
    code = "NO_ACTIVE_HALLS"
    status_code = 422


class CohortEmpty(AllocationError):
    code = "COHORT_EMPTY"
    status_code = 422


class InsufficientCapacity(AllocationError):
    code = "INSUFFICIENT_CAPACITY"
    status_code = 422

    def __init__(self, *, required: int, available: int):
        self.required = int(required)
        self.available = int(available)
        self.deficit = self.required - self.available
        super().__init__(
            f"Insufficient capacity: {self.required} students need seats but only "
            f"{self.available} available (short by {self.deficit}).",
            details={"required": self.required, "available": self.available, "deficit": self.deficit},
        )


class GenerationInProgress(AllocationError):
    code = "GENERATION_IN_PROGRESS"
    status_code = 409


class InvalidTeacherAssignment(AllocationError):
    code = "INVALID_TEACHER_ASSIGNMENT"
    status_code = 422


class AllocationTimeout(AllocationError):
    code = "ALLOCATION_TIMEOUT"
    status_code = 504


class JobDispatchFailed(AllocationError):
    code = "JOB_DISPATCH_FAILED"
    status_code = 503
