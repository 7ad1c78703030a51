"""Routing domain models."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Literal, Optional

StopKind = Literal["PICKUP", "DROPOFF"]
StopSide = Literal["HOME", "SCHOOL"]
Direction = Literal["OUTBOUND", "INBOUND"]
StepType = Literal["START", "PICKUP", "DROPOFF", "END"]
Traffic = Literal["LIGHT", "MODERATE", "HEAVY"]


@dataclass(frozen=True, slots=True)
class StopRequest:
    """One half of a student's trip: boarding or alighting at home or school."""

    student_id: str
    school_id: str
    kind: StopKind
    side: StopSide
    direction: Direction
    shift: str
    address: str
    latitude: float
    longitude: float
    dwell_min: float = 0.0
    deadline_min: Optional[float] = None
    release_min: Optional[float] = None

    @property
    def coordinate(self) -> tuple[float, float]:
        return (self.latitude, self.longitude)


@dataclass(slots=True)
class RouteStep:
    sequence: int
    type: StepType
    time_min: float
    arrival_min: float
    address: str
    latitude: float
    longitude: float
    distance_from_prev_km: float = 0.0
    duration_from_prev_min: float = 0.0
    wait_min: float = 0.0
    dwell_min: float = 0.0
    onboard: int = 0
    student_ids: List[str] = field(default_factory=list)
    school_id: Optional[str] = None
    deadline_min: Optional[float] = None
    estimated: bool = False
    traffic: Optional[Traffic] = None
    description: str = ""
    action_url: Optional[str] = None


@dataclass(slots=True)
class ClusterDecision:
    """Why a school cluster sits where it does in the route."""

    school_id: str
    school_name: str
    direction: Direction
    anchor_min: float
    students: int
    trips: int
    completed_min: float
    margin_min: Optional[float]
    reordered: int = 0


@dataclass(slots=True)
class RoutePlan:
    van_id: str
    day: str
    period: str
    steps: List[RouteStep]
    summary: str
    total_distance_km: float
    total_duration_min: float
    travel_source: str
    estimated: bool
    polyline: List[tuple[float, float]] = field(default_factory=list)
    clusters: List[ClusterDecision] = field(default_factory=list)

    @property
    def student_count(self) -> int:
        return len({sid for step in self.steps if step.type == "PICKUP" for sid in step.student_ids})
