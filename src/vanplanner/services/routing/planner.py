"""Construct a feasible stop sequence for one van.

The problem is a single-vehicle pickup-and-delivery problem with time
windows. It is solved by construction rather than search:

1. every student contributes one job (a pickup paired with a dropoff);
2. jobs are grouped by school and direction, and the groups are served in
   order of their anchor time (entry time for drop-offs at school, exit time
   for pick-ups at school), earliest first;
3. inside a group, home stops are taken in nearest-neighbour order from the
   van's running position and inserted where they add the least distance,
   subject to seat capacity and the school's deadline.

The result is deterministic for a given snapshot and travel matrix.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Optional, Sequence

from ...config import settings
from ...data.entity_store import FleetSnapshot
from ...models.domain import Van, format_clock
from .errors import CapacityExceeded, InfeasibleWindow
from .models import ClusterDecision, RoutePlan, RouteStep, StopRequest
from .travel_time import TravelMatrix, TravelTimeAdapter

logger = logging.getLogger(__name__)

EPSILON = 1e-6


@dataclass(slots=True)
class Job:
    student_id: str
    school_id: str
    direction: str
    home: StopRequest
    school: StopRequest
    home_node: int = 0
    school_node: int = 0

    @property
    def anchor_min(self) -> float:
        if self.direction == "OUTBOUND":
            return self.school.deadline_min
        return self.school.release_min


@dataclass(slots=True)
class Visit:
    node: int
    kind: str
    side: str
    school_id: str
    address: str
    latitude: float
    longitude: float
    dwell_min: float
    student_ids: list[str] = field(default_factory=list)
    deadline_min: Optional[float] = None
    release_min: Optional[float] = None


class _WindowMiss(Exception):
    """A job that could not be placed on time; ``seat_bound`` when it was pushed to a later trip."""

    def __init__(self, job: Job, late_by: Optional[float], seat_bound: bool = False) -> None:
        super().__init__(job.student_id)
        self.job = job
        self.late_by = late_by
        self.seat_bound = seat_bound


def pair_jobs(requests: Sequence[StopRequest]) -> list[Job]:
    """Pair each student's pickup and dropoff into one job, ordered by student id."""
    halves: dict[tuple[str, str], dict[str, StopRequest]] = defaultdict(dict)
    for request in requests:
        halves[(request.student_id, request.direction)][request.kind] = request

    jobs: list[Job] = []
    for (student_id, direction), pair in sorted(halves.items()):
        if "PICKUP" not in pair or "DROPOFF" not in pair:
            raise ValueError(f"Student {student_id} has an unpaired {direction.lower()} stop request.")
        pickup, dropoff = pair["PICKUP"], pair["DROPOFF"]
        home, school = (pickup, dropoff) if direction == "OUTBOUND" else (dropoff, pickup)
        if direction == "OUTBOUND" and school.deadline_min is None:
            raise ValueError(f"School dropoff for student {student_id} has no deadline; resolve windows first.")
        if direction == "INBOUND" and school.release_min is None:
            raise ValueError(f"School pickup for student {student_id} has no release time; resolve windows first.")
        jobs.append(
            Job(student_id=student_id, school_id=school.school_id, direction=direction, home=home, school=school)
        )
    return jobs


def _visit(request: StopRequest, node: int, student_ids: list[str]) -> Visit:
    return Visit(
        node=node,
        kind=request.kind,
        side=request.side,
        school_id=request.school_id,
        address=request.address,
        latitude=request.latitude,
        longitude=request.longitude,
        dwell_min=request.dwell_min,
        student_ids=student_ids,
        deadline_min=request.deadline_min,
        release_min=request.release_min,
    )


class _RouteBuilder:
    def __init__(self, van: Van, matrix: TravelMatrix, max_backtracks: int) -> None:
        self.van = van
        self.capacity = van.capacity
        self.matrix = matrix
        self.max_backtracks = max_backtracks

    def distance(self, origin: int, destination: int) -> float:
        return self.matrix.distances_km[origin][destination]

    def duration(self, origin: int, destination: int) -> float:
        return self.matrix.durations_min[origin][destination]

    def finish_time(self, visits: Sequence[Visit], node: int, clock: float) -> tuple[int, float]:
        """Position and clock after serving ``visits`` starting from ``node`` at ``clock``."""
        for visit in visits:
            arrival = clock + self.duration(node, visit.node)
            if visit.release_min is not None and arrival < visit.release_min:
                arrival = visit.release_min
            clock = arrival + visit.dwell_min
            node = visit.node
        return node, clock

    # -- outbound: home -> school -------------------------------------------

    def _trip_visits(self, trip: Sequence[Job]) -> list[Visit]:
        visits = [_visit(job.home, job.home_node, [job.student_id]) for job in trip]
        school = trip[0].school
        visits.append(_visit(school, trip[0].school_node, sorted(job.student_id for job in trip)))
        return visits

    def _insert_pickup(
        self, trip: list[Job], job: Job, start_node: int, start_clock: float
    ) -> tuple[bool, Optional[float]]:
        """Insert ``job`` at the cheapest position that keeps the trip on time.

        Returns (placed, smallest lateness seen when not placed).
        """
        if len(trip) >= self.capacity:
            return False, None
        path = [start_node] + [j.home_node for j in trip] + [job.school_node]
        x = job.home_node

        def added_km(k: int) -> float:
            return self.distance(path[k], x) + self.distance(x, path[k + 1]) - self.distance(path[k], path[k + 1])

        best_late: Optional[float] = None
        for k in sorted(range(len(trip) + 1), key=lambda k: (added_km(k), k)):
            trial = trip[:k] + [job] + trip[k:]
            _, finish = self.finish_time(self._trip_visits(trial), start_node, start_clock)
            late = finish - job.anchor_min
            if late <= EPSILON:
                trip.insert(k, job)
                return True, None
            best_late = late if best_late is None else min(best_late, late)
        return False, best_late

    def _solo_lateness(self, job: Job, node: int, clock: float) -> float:
        _, finish = self.finish_time(self._trip_visits([job]), node, clock)
        return finish - job.anchor_min

    def _next_job(self, remaining: dict[str, Job], priority: Sequence[str], cursor: int) -> Job:
        for student_id in priority:
            if student_id in remaining:
                return remaining[student_id]
        return min(remaining.values(), key=lambda j: (self.distance(cursor, j.home_node), j.student_id))

    def _outbound_attempt(
        self, jobs: Sequence[Job], priority: Sequence[str], node: int, clock: float
    ) -> list[list[Job]]:
        remaining = {job.student_id: job for job in jobs}
        trips: list[list[Job]] = [[]]
        trip_node, trip_clock = node, clock
        cursor = node
        while remaining:
            job = self._next_job(remaining, priority, cursor)
            del remaining[job.student_id]
            placed, late = self._insert_pickup(trips[-1], job, trip_node, trip_clock)
            if not placed and len(trips[-1]) >= self.capacity:
                # No seat left: drop this trip at school, then come back for the rest.
                trip_node, trip_clock = self.finish_time(self._trip_visits(trips[-1]), trip_node, trip_clock)
                trips.append([])
                placed, late = self._insert_pickup(trips[-1], job, trip_node, trip_clock)
                if not placed:
                    raise _WindowMiss(job, late, seat_bound=True)
            if not placed:
                raise _WindowMiss(job, late)
            cursor = job.home_node
        return trips

    def outbound(self, jobs: Sequence[Job], node: int, clock: float) -> tuple[list[Visit], int, int]:
        """Visits for one school's drop-offs, the number of trips and of reorderings."""
        priority: list[str] = []
        first_miss: Optional[_WindowMiss] = None
        seat_miss: Optional[_WindowMiss] = None
        for attempt in range(self.max_backtracks + 1):
            try:
                trips = self._outbound_attempt(jobs, priority, node, clock)
            except _WindowMiss as miss:
                first_miss = first_miss or miss
                if miss.seat_bound:
                    seat_miss = seat_miss or miss
                if miss.job.student_id in priority:
                    break
                priority.append(miss.job.student_id)
                logger.debug(f"Student {miss.job.student_id} misses school {miss.job.school_id}; retrying with priority")
                continue
            visits = [visit for trip in trips for visit in self._trip_visits(trip)]
            return visits, len(trips), attempt

        for job in jobs:
            late = self._solo_lateness(job, node, clock)
            if late > EPSILON:
                raise InfeasibleWindow(job.student_id, job.school_id, late)
        if seat_miss is not None:
            # Everyone makes it alone; only the seat count forces the late trip.
            raise CapacityExceeded(
                self.van.van_id, self.capacity, len(jobs), seat_miss.job.school_id, seat_miss.job.student_id
            )
        raise InfeasibleWindow(first_miss.job.student_id, first_miss.job.school_id, first_miss.late_by)

    # -- inbound: school -> home --------------------------------------------

    def inbound(self, jobs: Sequence[Job], node: int, clock: float) -> list[Visit]:
        """Visits for one school's released group: one boarding stop, then home drop-offs."""
        if len(jobs) > self.capacity:
            # A released group boards together; nobody is left waiting at the gate.
            raise CapacityExceeded(self.van.van_id, self.capacity, len(jobs), jobs[0].school_id)

        school_node = jobs[0].school_node
        boarding = _visit(jobs[0].school, school_node, sorted(job.student_id for job in jobs))

        order: list[Job] = []
        remaining = {job.student_id: job for job in jobs}
        cursor = school_node
        while remaining:
            job = min(remaining.values(), key=lambda j: (self.distance(cursor, j.home_node), j.student_id))
            del remaining[job.student_id]
            path = [school_node] + [j.home_node for j in order]
            x = job.home_node

            def added_km(k: int) -> float:
                if k + 1 == len(path):
                    return self.distance(path[k], x)
                return self.distance(path[k], x) + self.distance(x, path[k + 1]) - self.distance(path[k], path[k + 1])

            position = min(range(len(order) + 1), key=lambda k: (added_km(k), k))
            order.insert(position, job)
            cursor = x

        return [boarding] + [_visit(job.home, job.home_node, [job.student_id]) for job in order]


def _navigation_url(latitude: float, longitude: float) -> str:
    return settings.navigation_url_template.format(latitude=latitude, longitude=longitude)


def _describe(visit: Visit, snapshot: FleetSnapshot) -> str:
    school = snapshot.schools.get(visit.school_id)
    school_name = school.name if school else visit.school_id
    if visit.side == "SCHOOL":
        count = len(visit.student_ids)
        noun = "student" if count == 1 else "students"
        if visit.kind == "DROPOFF":
            return f"Drop off {count} {noun} at {school_name}"
        return f"Pick up {count} {noun} at {school_name}"
    student = snapshot.students.get(visit.student_ids[0])
    name = student.name if student else visit.student_ids[0]
    if visit.kind == "PICKUP":
        return f"Pick up {name}"
    return f"Drop off {name} at home"


def _materialize(
    van: Van, visits: Sequence[Visit], matrix: TravelMatrix, start_min: float, snapshot: FleetSnapshot
) -> list[RouteStep]:
    steps = [
        RouteStep(
            sequence=1,
            type="START",
            time_min=start_min,
            arrival_min=start_min,
            address=van.start_address,
            latitude=van.start_latitude,
            longitude=van.start_longitude,
            description=f"Depart from {van.start_address}",
            action_url=_navigation_url(van.start_latitude, van.start_longitude),
        )
    ]
    node, clock, onboard = 0, start_min, 0
    for visit in visits:
        leg = matrix.leg(node, visit.node)
        arrival = clock + leg.duration_min
        wait = max(0.0, visit.release_min - arrival) if visit.release_min is not None else 0.0
        departure = arrival + wait + visit.dwell_min
        onboard += len(visit.student_ids) if visit.kind == "PICKUP" else -len(visit.student_ids)
        if onboard > van.capacity:
            raise CapacityExceeded(van.van_id, van.capacity, onboard, visit.school_id)
        if visit.deadline_min is not None and departure > visit.deadline_min + EPSILON:
            raise InfeasibleWindow(visit.student_ids[0], visit.school_id, departure - visit.deadline_min)
        steps.append(
            RouteStep(
                sequence=len(steps) + 1,
                type=visit.kind,
                time_min=departure,
                arrival_min=arrival,
                address=visit.address,
                latitude=visit.latitude,
                longitude=visit.longitude,
                distance_from_prev_km=leg.distance_km,
                duration_from_prev_min=leg.duration_min,
                wait_min=wait,
                dwell_min=visit.dwell_min,
                onboard=onboard,
                student_ids=list(visit.student_ids),
                school_id=visit.school_id if visit.side == "SCHOOL" else None,
                deadline_min=visit.deadline_min,
                estimated=leg.estimated,
                traffic=leg.traffic,
                description=_describe(visit, snapshot),
                action_url=_navigation_url(visit.latitude, visit.longitude),
            )
        )
        node, clock = visit.node, departure

    last = steps[-1]
    steps.append(
        RouteStep(
            sequence=len(steps) + 1,
            type="END",
            time_min=clock,
            arrival_min=clock,
            address=last.address,
            latitude=last.latitude,
            longitude=last.longitude,
            onboard=onboard,
            description=f"Route ends at {last.address}",
        )
    )
    return steps


def summarize(van: Van, day: str, period: str, clusters: Sequence[ClusterDecision], matrix: TravelMatrix) -> str:
    students = sum(cluster.students for cluster in clusters)
    lines = [
        f"Van {van.van_number} ({van.capacity} seats) on {day}, {period}: {students} students in "
        f"{len(clusters)} school group(s), served earliest deadline first."
    ]
    for index, cluster in enumerate(clusters, start=1):
        if cluster.direction == "OUTBOUND":
            line = (
                f"{index}. {cluster.school_name}: drop off {cluster.students} by {format_clock(cluster.anchor_min)}, "
                f"done {format_clock(cluster.completed_min)} ({cluster.margin_min:.0f} min margin)"
            )
            if cluster.trips > 1:
                line += f" in {cluster.trips} trips to stay within {van.capacity} seats"
        else:
            line = (
                f"{index}. {cluster.school_name}: pick up {cluster.students} after {format_clock(cluster.anchor_min)}, "
                f"last drop-off {format_clock(cluster.completed_min)}"
            )
        if cluster.reordered:
            line += f"; pickups reordered {cluster.reordered}x to meet the entry time"
        lines.append(line + ".")
    if matrix.source == "osrm" and not matrix.estimated_cells:
        lines.append("Travel times from the routing provider.")
    else:
        lines.append(
            f"Travel times estimated from straight-line distance at {settings.fallback_average_speed_kmh:.0f} km/h."
        )
    return "\n".join(lines)


def plan_van_route(
    snapshot: FleetSnapshot,
    van: Van,
    requests: Sequence[StopRequest],
    adapter: TravelTimeAdapter,
    *,
    day: str,
    period: str,
    start_min: float,
    max_backtracks: int | None = None,
) -> RoutePlan:
    """Build the stop sequence serving ``requests`` with ``van``.

    ``requests`` must already carry windows and dwell times. Raises
    InfeasibleWindow or CapacityExceeded instead of returning a late or
    overfull route.
    """
    jobs = pair_jobs(requests)
    if not jobs:
        raise ValueError("At least one job is required to plan a route.")

    coordinates: list[tuple[float, float]] = [(van.start_latitude, van.start_longitude)]
    node_of: dict[tuple[float, float], int] = {coordinates[0]: 0}

    def node_for(coordinate: tuple[float, float]) -> int:
        if coordinate not in node_of:
            node_of[coordinate] = len(coordinates)
            coordinates.append(coordinate)
        return node_of[coordinate]

    for job in jobs:
        job.home_node = node_for(job.home.coordinate)
        job.school_node = node_for(job.school.coordinate)

    matrix = adapter.matrix(coordinates)
    builder = _RouteBuilder(
        van, matrix, settings.max_backtracks if max_backtracks is None else max_backtracks
    )

    groups: dict[tuple[str, str], list[Job]] = defaultdict(list)
    for job in jobs:
        groups[(job.school_id, job.direction)].append(job)
    ordered_groups = sorted(
        groups.items(), key=lambda item: (item[1][0].anchor_min, item[0][0], item[0][1])
    )

    visits: list[Visit] = []
    clusters: list[ClusterDecision] = []
    node, clock = 0, start_min
    for (school_id, direction), group in ordered_groups:
        anchor = group[0].anchor_min
        if direction == "OUTBOUND":
            group_visits, trips, reordered = builder.outbound(group, node, clock)
        else:
            group_visits, trips, reordered = builder.inbound(group, node, clock), 1, 0
        node, clock = builder.finish_time(group_visits, node, clock)
        school = snapshot.schools.get(school_id)
        clusters.append(
            ClusterDecision(
                school_id=school_id,
                school_name=school.name if school else school_id,
                direction=direction,
                anchor_min=anchor,
                students=len(group),
                trips=trips,
                completed_min=clock,
                margin_min=anchor - clock if direction == "OUTBOUND" else None,
                reordered=reordered,
            )
        )
        visits.extend(group_visits)

    steps = _materialize(van, visits, matrix, start_min, snapshot)
    total_distance = sum(step.distance_from_prev_km for step in steps)
    logger.info(
        f"Planned van {van.van_id} {day}/{period}: {len(jobs)} students, {len(steps)} steps, "
        f"{total_distance:.1f} km ({matrix.source})"
    )
    return RoutePlan(
        van_id=van.van_id,
        day=day,
        period=period,
        steps=steps,
        summary=summarize(van, day, period, clusters, matrix),
        total_distance_km=total_distance,
        total_duration_min=steps[-1].time_min - start_min,
        travel_source=matrix.source,
        estimated=matrix.estimated,
        clusters=clusters,
    )
