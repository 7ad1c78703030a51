"""Select the stop requests a van must serve for one day and period."""

from __future__ import annotations

import logging
from typing import Optional

from ...data.entity_store import FleetSnapshot
from ...models.domain import DAYS_OF_WEEK, PERIODS, School, Student
from .errors import EmptyDemand
from .models import StopRequest

logger = logging.getLogger(__name__)

# (shift, direction) sub-flows served by each period.
PERIOD_FLOWS: dict[str, tuple[tuple[str, str], ...]] = {
    "EARLY": (("MORNING", "OUTBOUND"),),
    "MIDDAY": (("MORNING", "INBOUND"), ("AFTERNOON", "OUTBOUND")),
    "LATE": (("AFTERNOON", "INBOUND"),),
}


def _uses_direction(student: Student, direction: str) -> bool:
    return student.goes_to_school if direction == "OUTBOUND" else student.returns_from_school


def _home_request(student: Student, kind: str, direction: str) -> StopRequest:
    return StopRequest(
        student_id=student.student_id,
        school_id=student.school_id,
        kind=kind,
        side="HOME",
        direction=direction,
        shift=student.shift,
        address=student.address,
        latitude=student.latitude,
        longitude=student.longitude,
    )


def _school_request(student: Student, school: School, kind: str, direction: str) -> StopRequest:
    return StopRequest(
        student_id=student.student_id,
        school_id=school.school_id,
        kind=kind,
        side="SCHOOL",
        direction=direction,
        shift=student.shift,
        address=school.address,
        latitude=school.latitude,
        longitude=school.longitude,
    )


def select_demand(
    snapshot: FleetSnapshot,
    van_id: str,
    day: str,
    period: str,
    shift: Optional[str] = None,
) -> list[StopRequest]:
    """Return paired pickup/dropoff requests for every active student on the van.

    Outbound students board at home and alight at school; inbound students
    board at school and alight at home. ``shift`` narrows MIDDAY to one of its
    two sub-flows.

    Raises:
        LookupError: the van does not exist.
        ValueError: unknown day/period or a shift the period never serves.
        EmptyDemand: nobody needs the van.
    """
    if van_id not in snapshot.vans:
        raise LookupError(f"Van '{van_id}' not found.")
    if day not in DAYS_OF_WEEK:
        raise ValueError(f"Unknown day '{day}'. Expected one of {', '.join(DAYS_OF_WEEK)}.")
    if period not in PERIODS:
        raise ValueError(f"Unknown period '{period}'. Expected one of {', '.join(PERIODS)}.")

    flows = PERIOD_FLOWS[period]
    if shift is not None:
        flows = tuple(flow for flow in flows if flow[0] == shift)
        if not flows:
            raise ValueError(f"Period {period} does not serve the {shift} shift.")

    requests: list[StopRequest] = []
    for student in snapshot.students_for_van(van_id):
        if day not in student.days_of_week or snapshot.is_absent(student.student_id, day):
            continue
        school = snapshot.schools.get(student.school_id)
        if school is None:
            logger.warning(f"Student {student.student_id} references missing school {student.school_id}, skipping")
            continue
        for flow_shift, direction in flows:
            if student.shift != flow_shift or not _uses_direction(student, direction):
                continue
            if direction == "OUTBOUND":
                requests.append(_home_request(student, "PICKUP", direction))
                requests.append(_school_request(student, school, "DROPOFF", direction))
            else:
                requests.append(_school_request(student, school, "PICKUP", direction))
                requests.append(_home_request(student, "DROPOFF", direction))

    if not requests:
        raise EmptyDemand(van_id, day, period)

    logger.info(f"Selected {len(requests) // 2} students for van {van_id} on {day} ({period})")
    return requests
