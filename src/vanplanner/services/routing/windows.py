"""Attach school time windows and dwell durations to stop requests."""

from __future__ import annotations

from dataclasses import replace
from typing import Sequence

from ...data.entity_store import FleetSnapshot
from ...models.domain import minutes_of_day
from .models import StopRequest


def resolve_windows(snapshot: FleetSnapshot, requests: Sequence[StopRequest]) -> list[StopRequest]:
    """Return copies of ``requests`` carrying deadlines, release times and dwell.

    Dropoffs at school must finish by the shift entry time; pickups at school
    may not start before the shift exit time. Home stops only take the
    student's own dwell. Whether a deadline can be met is the planner's call.
    """
    resolved: list[StopRequest] = []
    for request in requests:
        if request.side == "SCHOOL":
            school = snapshot.schools[request.school_id]
            window = school.window(request.shift)
            if request.kind == "DROPOFF":
                resolved.append(
                    replace(request, dwell_min=school.dwell_min, deadline_min=minutes_of_day(window.entry))
                )
            else:
                resolved.append(
                    replace(request, dwell_min=school.dwell_min, release_min=minutes_of_day(window.exit))
                )
        else:
            student = snapshot.students[request.student_id]
            resolved.append(replace(request, dwell_min=student.dwell_min))
    return resolved
