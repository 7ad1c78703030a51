"""Serializers for route plan outputs."""

from __future__ import annotations

import csv
import io
from dataclasses import asdict

from ...models.domain import format_clock
from ..routing.models import RoutePlan


def plan_to_json(plan: RoutePlan) -> dict:
    return {
        "van_id": plan.van_id,
        "day": plan.day,
        "period": plan.period,
        "summary": plan.summary,
        "total_distance_km": plan.total_distance_km,
        "total_duration_min": plan.total_duration_min,
        "student_count": plan.student_count,
        "travel_source": plan.travel_source,
        "estimated": plan.estimated,
        "clusters": [asdict(cluster) for cluster in plan.clusters],
        "steps": [
            {**asdict(step), "time": format_clock(step.time_min), "arrival": format_clock(step.arrival_min)}
            for step in plan.steps
        ],
        "polyline": [list(coordinate) for coordinate in plan.polyline],
    }


def plan_to_csv(plan: RoutePlan) -> str:
    buffer = io.StringIO()
    fieldnames = [
        "van_id",
        "day",
        "period",
        "sequence",
        "type",
        "arrival",
        "time",
        "address",
        "latitude",
        "longitude",
        "student_ids",
        "school_id",
        "onboard",
        "distance_from_prev_km",
        "duration_from_prev_min",
        "wait_min",
        "estimated",
        "traffic",
    ]
    writer = csv.DictWriter(buffer, fieldnames=fieldnames)
    writer.writeheader()
    for step in plan.steps:
        writer.writerow(
            {
                "van_id": plan.van_id,
                "day": plan.day,
                "period": plan.period,
                "sequence": step.sequence,
                "type": step.type,
                "arrival": format_clock(step.arrival_min),
                "time": format_clock(step.time_min),
                "address": step.address,
                "latitude": step.latitude,
                "longitude": step.longitude,
                "student_ids": ";".join(step.student_ids),
                "school_id": step.school_id or "",
                "onboard": step.onboard,
                "distance_from_prev_km": round(step.distance_from_prev_km, 3),
                "duration_from_prev_min": round(step.duration_from_prev_min, 2),
                "wait_min": round(step.wait_min, 2),
                "estimated": step.estimated,
                "traffic": step.traffic or "",
            }
        )
    return buffer.getvalue()
