"""Route group exports."""

from . import fleet, health, routes, tracking

__all__ = ["fleet", "routes", "health", "tracking"]
