"""Routing endpoints."""

from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, status

from ...schemas.routing import PlanningErrorResponse, RoutingRequest, RoutingResponse
from ...services.routing.errors import (
    CapacityExceeded,
    EmptyDemand,
    InfeasibleWindow,
    PlanningError,
    ProviderUnavailable,
)
from ...services.routing.service import plan_route

router = APIRouter(prefix="/routes", tags=["routes"])

PLANNING_STATUS = {
    EmptyDemand: status.HTTP_422_UNPROCESSABLE_ENTITY,
    InfeasibleWindow: status.HTTP_409_CONFLICT,
    CapacityExceeded: status.HTTP_409_CONFLICT,
    ProviderUnavailable: status.HTTP_503_SERVICE_UNAVAILABLE,
}


@router.post(
    "/plan",
    response_model=RoutingResponse,
    status_code=status.HTTP_200_OK,
    responses={
        404: {"description": "Unknown van"},
        409: {"model": PlanningErrorResponse, "description": "INFEASIBLE_WINDOW or CAPACITY_EXCEEDED"},
        422: {"description": "EMPTY_DEMAND or an invalid request"},
        503: {"model": PlanningErrorResponse, "description": "PROVIDER_UNAVAILABLE"},
    },
)
def plan(payload: RoutingRequest) -> RoutingResponse:
    try:
        return plan_route(payload)
    except PlanningError as exc:
        code = PLANNING_STATUS.get(type(exc), status.HTTP_500_INTERNAL_SERVER_ERROR)
        logging.info(f"Planning failed for van {payload.van_id}: {exc.code} {exc.message}")
        raise HTTPException(status_code=code, detail=exc.to_dict()) from exc
    except LookupError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    except Exception as exc:
        logging.exception(f"Error planning route: {exc}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to plan route: {str(exc)}",
        ) from exc
