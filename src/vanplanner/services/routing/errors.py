"""Typed planning failures.

Each failure names what a dispatcher has to fix: the student and school whose
window cannot be met, or the van that runs out of seats.
"""

from __future__ import annotations

from typing import Any, Optional


class PlanningError(Exception):
    code: str = "PLANNING_ERROR"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message}


class EmptyDemand(PlanningError):
    """No student needs the van for the requested day and period."""

    code = "EMPTY_DEMAND"

    def __init__(self, van_id: str, day: str, period: str) -> None:
        super().__init__(f"No active students for van {van_id} on {day} ({period}).")
        self.van_id = van_id
        self.day = day
        self.period = period

    def to_dict(self) -> dict[str, Any]:
        return {**super().to_dict(), "van_id": self.van_id, "day": self.day, "period": self.period}


class InfeasibleWindow(PlanningError):
    code = "INFEASIBLE_WINDOW"

    def __init__(self, student_id: str, school_id: str, late_by_min: Optional[float] = None) -> None:
        message = f"Student {student_id} cannot reach school {school_id} before its entry time"
        if late_by_min is not None:
            message += f" (late by {late_by_min:.1f} min)"
        super().__init__(message + ".")
        self.student_id = student_id
        self.school_id = school_id
        self.late_by_min = late_by_min

    def to_dict(self) -> dict[str, Any]:
        return {**super().to_dict(), "student_id": self.student_id, "school_id": self.school_id}


class CapacityExceeded(PlanningError):
    """The van has too few seats for a school group.

    For a group boarding at the school gate ``required`` is the group size.
    For drop-offs at school the van may run several trips; ``student_id`` then
    names the student left without a seat on any trip that still arrives in
    time, and ``required`` counts the students bound for that school.
    """

    code = "CAPACITY_EXCEEDED"

    def __init__(
        self,
        van_id: str,
        capacity: int,
        required: int,
        school_id: Optional[str] = None,
        student_id: Optional[str] = None,
    ) -> None:
        if student_id is None:
            message = f"Van {van_id} has {capacity} seats but {required} students must ride together"
            if school_id:
                message += f" at school {school_id}"
        else:
            message = (
                f"Van {van_id} has {capacity} seats and cannot bring all {required} students to school "
                f"{school_id} before its entry time, even with extra trips; student {student_id} has no seat"
            )
        super().__init__(message + ".")
        self.van_id = van_id
        self.capacity = capacity
        self.required = required
        self.school_id = school_id
        self.student_id = student_id

    def to_dict(self) -> dict[str, Any]:
        payload = {**super().to_dict(), "van_id": self.van_id, "capacity": self.capacity, "required": self.required}
        if self.student_id is not None:
            payload.update(student_id=self.student_id, school_id=self.school_id)
        return payload


class ProviderUnavailable(PlanningError):
    code = "PROVIDER_UNAVAILABLE"
