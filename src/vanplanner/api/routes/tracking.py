"""Live-position endpoints."""

from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter, HTTPException, status

from ...data.fleet_repository import get_entity_store
from ...schemas.fleet import PositionModel, PositionUpdate, TrackingResponse
from ...services.tracking.feed import get_position_feed

router = APIRouter(prefix="/tracking", tags=["tracking"])


def _require_van(van_id: str) -> None:
    if get_entity_store().get_van(van_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Van '{van_id}' not found")


@router.post("/{van_id}", response_model=PositionModel, status_code=status.HTTP_201_CREATED)
def publish_position(van_id: str, payload: PositionUpdate) -> PositionModel:
    _require_van(van_id)
    fix = get_position_feed().publish(van_id, payload.latitude, payload.longitude, payload.recorded_at)
    return PositionModel(**asdict(fix))


@router.get("/{van_id}", response_model=TrackingResponse)
def get_positions(van_id: str) -> TrackingResponse:
    _require_van(van_id)
    feed = get_position_feed()
    latest = feed.latest(van_id)
    return TrackingResponse(
        van_id=van_id,
        latest=PositionModel(**asdict(latest)) if latest else None,
        history=[PositionModel(**asdict(fix)) for fix in feed.history(van_id)],
    )
