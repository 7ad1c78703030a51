"""Health endpoints."""

from __future__ import annotations

from fastapi import APIRouter, status

from ...config import settings

router = APIRouter(tags=["health"])


@router.get("/health", status_code=status.HTTP_200_OK)
def health_root() -> dict:
    """Simple health check endpoint that doesn't require any dependencies."""
    return {"status": "ok"}


def _get_osrm_health_check():
    """Lazy import to avoid startup failures."""
    from ...services.routing.osrm_client import check_health as osrm_health_check
    return osrm_health_check


@router.get("/health/osrm", status_code=status.HTTP_200_OK)
def health_osrm() -> dict:
    """Check OSRM service health."""
    if not settings.osrm_base_url:
        return {
            "service": "osrm",
            "configured": False,
            "healthy": False,
            "fallback": "haversine" if settings.allow_estimated_travel else None,
        }
    try:
        osrm_health_check = _get_osrm_health_check()
        status_flag = osrm_health_check()
        return {"service": "osrm", "configured": True, "healthy": status_flag}
    except Exception as e:
        return {"service": "osrm", "configured": True, "healthy": False, "error": str(e)}


@router.get("/health/database", status_code=status.HTTP_200_OK)
def check_database() -> dict:
    """Check database connection and fleet record counts."""
    from ...db.supabase import get_supabase_client
    from ...persistence.database import load_records_from_database

    supabase = get_supabase_client()
    if not supabase:
        return {
            "configured": False,
            "store_file": str(settings.store_file) if settings.store_file else None,
            "message": "Supabase not configured. Set VANPLAN_SUPABASE_URL and VANPLAN_SUPABASE_KEY environment variables.",
        }

    records = load_records_from_database()
    if records is None:
        return {
            "configured": True,
            "connected": False,
            "message": "Database connection error; see server logs.",
        }
    counts = {kind: len(items) for kind, items in records.items()}
    return {
        "configured": True,
        "connected": True,
        "counts": counts,
        "message": f"Database connected. Found {counts.get('students', 0)} students in database.",
    }
