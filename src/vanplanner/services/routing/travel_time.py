"""Travel-time lookups backed by OSRM with a great-circle fallback.

Provider answers are marked ``estimated=False``; anything computed from
straight-line distance at a fixed average speed is marked ``estimated=True``
so consumers can tell verified timings from guesses.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional, Protocol, Sequence

from ...config import settings
from ..geospatial import haversine_km
from .errors import ProviderUnavailable
from .osrm_client import OSRMClient, decode_polyline

logger = logging.getLogger(__name__)

Coordinate = tuple[float, float]


class RoutingProvider(Protocol):
    def table(self, coordinates: Sequence[Coordinate]) -> dict: ...

    def route(self, coordinates: Sequence[Coordinate]) -> dict: ...


def classify_traffic(distance_km: float, duration_min: float) -> Optional[str]:
    """Label a provider leg by its implied average speed."""
    if duration_min <= 0 or distance_km <= 0:
        return None
    speed_kmh = distance_km / (duration_min / 60.0)
    if speed_kmh < settings.heavy_traffic_speed_kmh:
        return "HEAVY"
    if speed_kmh < settings.moderate_traffic_speed_kmh:
        return "MODERATE"
    return "LIGHT"


@dataclass(frozen=True, slots=True)
class Leg:
    distance_km: float
    duration_min: float
    estimated: bool
    traffic: Optional[str] = None


@dataclass(slots=True)
class TravelMatrix:
    coordinates: list[Coordinate]
    distances_km: list[list[float]]
    durations_min: list[list[float]]
    estimated_cells: set[tuple[int, int]] = field(default_factory=set)
    source: str = "osrm"

    @property
    def estimated(self) -> bool:
        return self.source != "osrm" or bool(self.estimated_cells)

    def leg(self, origin: int, destination: int) -> Leg:
        distance = self.distances_km[origin][destination]
        duration = self.durations_min[origin][destination]
        estimated = self.source != "osrm" or (origin, destination) in self.estimated_cells
        traffic = None if estimated else classify_traffic(distance, duration)
        return Leg(distance_km=distance, duration_min=duration, estimated=estimated, traffic=traffic)


@dataclass(slots=True)
class TravelEstimate:
    legs: list[Leg]
    polyline: list[Coordinate]
    source: str

    @property
    def estimated(self) -> bool:
        return self.source != "osrm" or any(leg.estimated for leg in self.legs)


class TravelTimeAdapter:
    """Answers travel questions for the planner, degrading to estimates on provider failure."""

    def __init__(
        self,
        provider: RoutingProvider | None = None,
        *,
        average_speed_kmh: float | None = None,
        allow_fallback: bool | None = None,
    ) -> None:
        self._provider = provider
        self._provider_checked = provider is not None
        self.average_speed_kmh = average_speed_kmh or settings.fallback_average_speed_kmh
        self.allow_fallback = settings.allow_estimated_travel if allow_fallback is None else allow_fallback

    def _get_provider(self) -> RoutingProvider | None:
        if not self._provider_checked:
            self._provider_checked = True
            try:
                self._provider = OSRMClient()
            except ValueError as e:
                logger.info(f"Routing provider disabled: {e}")
                self._provider = None
        return self._provider

    def _straight_leg(self, origin: Coordinate, destination: Coordinate) -> tuple[float, float]:
        distance_km = haversine_km(origin[0], origin[1], destination[0], destination[1])
        return distance_km, distance_km / self.average_speed_kmh * 60.0

    def _fallback_allowed(self, reason: str) -> None:
        if not self.allow_fallback:
            raise ProviderUnavailable(f"Routing provider unavailable and estimated travel is disabled: {reason}")
        logger.warning(f"Using great-circle travel estimates: {reason}")

    def _fallback_matrix(self, coordinates: Sequence[Coordinate]) -> TravelMatrix:
        n = len(coordinates)
        distances = [[0.0] * n for _ in range(n)]
        durations = [[0.0] * n for _ in range(n)]
        for i in range(n):
            for j in range(n):
                if i != j:
                    distances[i][j], durations[i][j] = self._straight_leg(coordinates[i], coordinates[j])
        return TravelMatrix(
            coordinates=list(coordinates),
            distances_km=distances,
            durations_min=durations,
            source="haversine",
        )

    def matrix(self, coordinates: Sequence[Coordinate]) -> TravelMatrix:
        """Pairwise distances (km) and durations (min) between all coordinates."""
        if len(coordinates) < 2:
            return self._fallback_matrix(coordinates)

        provider = self._get_provider()
        if provider is None:
            self._fallback_allowed("no routing provider configured")
            return self._fallback_matrix(coordinates)

        try:
            table = provider.table(coordinates)
            raw_distances = table["distances"]
            raw_durations = table["durations"]
        except (ConnectionError, ValueError, KeyError, TypeError) as e:
            self._fallback_allowed(f"OSRM table request failed: {e}")
            return self._fallback_matrix(coordinates)

        n = len(coordinates)
        if len(raw_distances) != n or len(raw_durations) != n:
            self._fallback_allowed(f"OSRM table size mismatch ({len(raw_durations)} rows for {n} coordinates)")
            return self._fallback_matrix(coordinates)

        distances = [[0.0] * n for _ in range(n)]
        durations = [[0.0] * n for _ in range(n)]
        unreachable: set[tuple[int, int]] = set()
        for i in range(n):
            for j in range(n):
                if i == j:
                    continue
                meters, seconds = raw_distances[i][j], raw_durations[i][j]
                if meters is None or seconds is None:
                    unreachable.add((i, j))
                    distances[i][j], durations[i][j] = self._straight_leg(coordinates[i], coordinates[j])
                else:
                    distances[i][j] = float(meters) / 1000.0
                    durations[i][j] = float(seconds) / 60.0

        if unreachable:
            self._fallback_allowed(f"{len(unreachable)} OSRM table cells unreachable")
        return TravelMatrix(
            coordinates=list(coordinates),
            distances_km=distances,
            durations_min=durations,
            estimated_cells=unreachable,
            source="osrm",
        )

    def _fallback_estimate(self, coordinates: Sequence[Coordinate]) -> TravelEstimate:
        legs = []
        for origin, destination in zip(coordinates, coordinates[1:]):
            distance_km, duration_min = self._straight_leg(origin, destination)
            legs.append(Leg(distance_km=distance_km, duration_min=duration_min, estimated=True))
        return TravelEstimate(legs=legs, polyline=list(coordinates), source="haversine")

    def estimate(self, coordinates: Sequence[Coordinate]) -> TravelEstimate:
        """Per-segment distance/duration and a street polyline for a visiting order."""
        if len(coordinates) < 2:
            return TravelEstimate(legs=[], polyline=list(coordinates), source="haversine")

        provider = self._get_provider()
        if provider is None:
            self._fallback_allowed("no routing provider configured")
            return self._fallback_estimate(coordinates)

        try:
            route = provider.route(coordinates)["routes"][0]
            raw_legs = route["legs"]
            if len(raw_legs) != len(coordinates) - 1:
                raise ValueError(f"expected {len(coordinates) - 1} legs, got {len(raw_legs)}")
            polyline = decode_polyline(route["geometry"]) if route.get("geometry") else list(coordinates)
            legs = []
            for raw in raw_legs:
                distance_km = float(raw["distance"]) / 1000.0
                duration_min = float(raw["duration"]) / 60.0
                legs.append(
                    Leg(
                        distance_km=distance_km,
                        duration_min=duration_min,
                        estimated=False,
                        traffic=classify_traffic(distance_km, duration_min),
                    )
                )
        except (ConnectionError, ValueError, KeyError, IndexError, TypeError) as e:
            self._fallback_allowed(f"OSRM route request failed: {e}")
            return self._fallback_estimate(coordinates)

        return TravelEstimate(legs=legs, polyline=polyline, source="osrm")
