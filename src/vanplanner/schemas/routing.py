"""Routing request/response schemas."""

from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from .fleet import CLOCK_PATTERN, DayOfWeek


class RoutingRequest(BaseModel):
    van_id: str
    day: DayOfWeek
    period: Literal["EARLY", "MIDDAY", "LATE"]
    shift: Optional[Literal["MORNING", "AFTERNOON"]] = Field(
        default=None,
        description="Restrict MIDDAY to one shift's flow (morning returns or afternoon arrivals).",
    )
    start_time: Optional[str] = Field(
        default=None,
        pattern=CLOCK_PATTERN,
        description="Time the van leaves its start address (HH:MM). Defaults to the period's configured start.",
    )
    allow_empty: bool = Field(
        default=False,
        description="Return a START/END-only plan instead of an error when nobody needs the van.",
    )
    persist: bool = Field(default=False, description="Whether to write summary, CSV and GeoJSON outputs.")
    requested_by: Optional[str] = Field(default=None, description="Person or system requesting the run.")
    run_label: Optional[str] = Field(default=None, description="Friendly name for persisted outputs.")


class RouteStepModel(BaseModel):
    sequence: int
    type: Literal["START", "PICKUP", "DROPOFF", "END"]
    time: str
    arrival: str
    time_min: float
    arrival_min: float
    address: str
    latitude: float
    longitude: float
    distance_from_prev_km: float
    duration_from_prev_min: float
    wait_min: float
    dwell_min: float
    onboard: int
    student_ids: List[str]
    school_id: Optional[str] = None
    deadline_min: Optional[float] = None
    estimated: bool
    traffic: Optional[Literal["LIGHT", "MODERATE", "HEAVY"]] = None
    description: str
    action_url: Optional[str] = None


class ClusterDecisionModel(BaseModel):
    school_id: str
    school_name: str
    direction: Literal["OUTBOUND", "INBOUND"]
    anchor_min: float
    students: int
    trips: int
    completed_min: float
    margin_min: Optional[float] = None
    reordered: int = 0


class RoutePlanModel(BaseModel):
    van_id: str
    day: str
    period: str
    summary: str
    total_distance_km: float
    total_duration_min: float
    student_count: int
    travel_source: str
    estimated: bool
    clusters: List[ClusterDecisionModel]
    steps: List[RouteStepModel]
    polyline: List[tuple[float, float]] = Field(default_factory=list)


class RoutingResponse(BaseModel):
    plan: RoutePlanModel
    metadata: dict


class PlanningErrorModel(BaseModel):
    code: str
    message: str
    student_id: Optional[str] = None
    school_id: Optional[str] = None
    van_id: Optional[str] = None
    capacity: Optional[int] = None
    required: Optional[int] = None


class PlanningErrorResponse(BaseModel):
    """Body of a failed planning request (FastAPI wraps the error under ``detail``)."""

    detail: PlanningErrorModel
