"""GeoJSON export of route plans for map display."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List

from shapely.geometry import LineString, Point, mapping

from ...models.domain import format_clock
from ..routing.models import RoutePlan

STEP_COLORS = {
    "START": "#38e000",
    "PICKUP": "#13aae0",
    "DROPOFF": "#e0af00",
    "END": "#e0003e",
}


def route_line(plan: RoutePlan) -> LineString | None:
    """Street polyline when known, otherwise the straight path through the steps.

    Shapely uses (x, y), so coordinates are flipped to (lon, lat).
    """
    coordinates = plan.polyline or [(step.latitude, step.longitude) for step in plan.steps]
    unique = [coord for i, coord in enumerate(coordinates) if i == 0 or coord != coordinates[i - 1]]
    if len(unique) < 2:
        return None
    return LineString([(lon, lat) for lat, lon in unique])


def plan_to_geojson(plan: RoutePlan) -> Dict[str, Any]:
    """Convert a route plan to a GeoJSON FeatureCollection.

    Args:
        plan: Planned route for one van

    Returns:
        FeatureCollection with one LineString for the route and one Point per step
    """
    features: List[Dict[str, Any]] = []

    line = route_line(plan)
    if line is not None:
        features.append(
            {
                "type": "Feature",
                "geometry": mapping(line),
                "properties": {
                    "kind": "route",
                    "van_id": plan.van_id,
                    "day": plan.day,
                    "period": plan.period,
                    "total_distance_km": round(plan.total_distance_km, 3),
                    "total_duration_min": round(plan.total_duration_min, 1),
                    "travel_source": plan.travel_source,
                    "estimated": plan.estimated,
                    "wkt": line.wkt,
                },
            }
        )

    for step in plan.steps:
        features.append(
            {
                "type": "Feature",
                "geometry": mapping(Point(step.longitude, step.latitude)),
                "properties": {
                    "kind": "step",
                    "sequence": step.sequence,
                    "type": step.type,
                    "time": format_clock(step.time_min),
                    "address": step.address,
                    "student_ids": list(step.student_ids),
                    "school_id": step.school_id,
                    "onboard": step.onboard,
                    "description": step.description,
                    "marker-color": STEP_COLORS.get(step.type, "#611cc7"),
                },
            }
        )

    return {"type": "FeatureCollection", "features": features}


def save_geojson(collection: Dict[str, Any], output_path: Path) -> None:
    """Save a FeatureCollection to disk."""
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with output_path.open("w", encoding="utf-8") as f:
        json.dump(collection, f, indent=2, ensure_ascii=False)
