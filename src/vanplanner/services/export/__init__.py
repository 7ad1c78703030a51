"""Export services."""

from .geojson import plan_to_geojson, save_geojson

__all__ = [
    "plan_to_geojson",
    "save_geojson",
]
