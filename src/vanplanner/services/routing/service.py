"""Routing orchestration service."""

from __future__ import annotations

import logging

from ...config import settings
from ...data.entity_store import EntityStore, FleetSnapshot
from ...data.fleet_repository import get_entity_store
from ...models.domain import Van, minutes_of_day, parse_clock
from ...persistence.filesystem import FileStorage
from ...schemas.routing import RoutePlanModel, RoutingRequest, RoutingResponse
from ..export.geojson import plan_to_geojson, save_geojson
from ..outputs.routing_formatter import plan_to_csv, plan_to_json
from .demand import select_demand
from .errors import EmptyDemand, ProviderUnavailable
from .models import RoutePlan, RouteStep
from .planner import plan_van_route
from .travel_time import TravelTimeAdapter
from .windows import resolve_windows

logger = logging.getLogger(__name__)


def _start_minutes(payload: RoutingRequest) -> float:
    clock = payload.start_time or getattr(settings, f"{payload.period.lower()}_start_time")
    return minutes_of_day(parse_clock(clock))


def _empty_plan(van: Van, payload: RoutingRequest, start_min: float) -> RoutePlan:
    """A plan that leaves and returns to the van's start without moving."""
    common = dict(
        time_min=start_min,
        arrival_min=start_min,
        address=van.start_address,
        latitude=van.start_latitude,
        longitude=van.start_longitude,
    )
    return RoutePlan(
        van_id=van.van_id,
        day=payload.day,
        period=payload.period,
        steps=[
            RouteStep(sequence=1, type="START", description=f"Depart from {van.start_address}", **common),
            RouteStep(sequence=2, type="END", description="No students to transport", **common),
        ],
        summary=f"No students need van {van.van_number} on {payload.day} ({payload.period}).",
        total_distance_km=0.0,
        total_duration_min=0.0,
        travel_source="none",
        estimated=False,
    )


def _attach_polyline(plan: RoutePlan, adapter: TravelTimeAdapter) -> None:
    coordinates = [(step.latitude, step.longitude) for step in plan.steps if step.type != "END"]
    try:
        plan.polyline = adapter.estimate(coordinates).polyline
    except ProviderUnavailable as exc:
        # Timings already came from the matrix; the street geometry is display only.
        logger.warning(f"Route geometry unavailable for van {plan.van_id}, using straight segments: {exc}")
        plan.polyline = coordinates


def _occupancy_warnings(snapshot: FleetSnapshot, van: Van) -> list[str]:
    assigned = len(snapshot.students_for_van(van.van_id))
    if assigned >= van.capacity:
        return [f"Van {van.van_number} is full: {assigned} students assigned to {van.capacity} seats."]
    return []


def _persist_outputs(plan: RoutePlan, payload: RoutingRequest, storage: FileStorage | None) -> str | None:
    try:
        storage = storage or FileStorage()
        prefix = payload.run_label or f"route_{plan.van_id}_{plan.day}_{plan.period}"
        run_dir = storage.make_run_directory(prefix=prefix.replace(" ", "_"))
        storage.write_json(run_dir / "summary.json", plan_to_json(plan))
        storage.write_csv(run_dir / "steps.csv", plan_to_csv(plan))
    except OSError as exc:
        logger.warning(f"Failed to write route outputs for van {plan.van_id}: {exc}")
        return None

    try:
        save_geojson(plan_to_geojson(plan), run_dir / "route.geojson")
    except Exception as exc:
        # Log error but don't fail the entire request
        logger.warning(f"Failed to generate GeoJSON export: {exc}")
    return str(run_dir)


def plan_route(
    payload: RoutingRequest,
    store: EntityStore | None = None,
    adapter: TravelTimeAdapter | None = None,
    storage: FileStorage | None = None,
) -> RoutingResponse:
    """Plan one van's route for a day and period.

    Raises LookupError for an unknown van, ValueError for an invalid
    day/period/shift combination and PlanningError subclasses when no
    feasible route exists.
    """
    snapshot = (store or get_entity_store()).snapshot()
    van = snapshot.vans.get(payload.van_id)
    if van is None:
        raise LookupError(f"Van '{payload.van_id}' not found.")

    start_min = _start_minutes(payload)
    adapter = adapter or TravelTimeAdapter()

    try:
        requests = select_demand(snapshot, payload.van_id, payload.day, payload.period, payload.shift)
    except EmptyDemand:
        if not payload.allow_empty:
            raise
        logger.info(f"No demand for van {payload.van_id} on {payload.day} ({payload.period}); returning empty plan")
        plan = _empty_plan(van, payload, start_min)
    else:
        plan = plan_van_route(
            snapshot,
            van,
            resolve_windows(snapshot, requests),
            adapter,
            day=payload.day,
            period=payload.period,
            start_min=start_min,
        )
        _attach_polyline(plan, adapter)

    metadata: dict = {
        "status": "complete" if plan.student_count else "empty",
        "van_number": van.van_number,
        "student_count": plan.student_count,
        "warnings": _occupancy_warnings(snapshot, van),
    }
    if payload.requested_by:
        metadata["author"] = payload.requested_by
    if payload.run_label:
        metadata["run_label"] = payload.run_label
    if payload.persist:
        run_directory = _persist_outputs(plan, payload, storage)
        if run_directory:
            metadata["run_directory"] = run_directory

    return RoutingResponse(plan=RoutePlanModel(**plan_to_json(plan)), metadata=metadata)
