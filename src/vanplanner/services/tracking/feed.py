"""In-memory live-position feed for vans on the road.

Positions are display-only; planning never reads them.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from functools import lru_cache
from typing import Deque, Optional

from ...config import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class PositionFix:
    van_id: str
    latitude: float
    longitude: float
    recorded_at: datetime


class LivePositionFeed:
    def __init__(self, history_size: int | None = None) -> None:
        self.history_size = history_size or settings.tracking_history_size
        self._lock = threading.Lock()
        self._fixes: dict[str, Deque[PositionFix]] = {}

    def publish(
        self,
        van_id: str,
        latitude: float,
        longitude: float,
        recorded_at: Optional[datetime] = None,
    ) -> PositionFix:
        if not -90.0 <= latitude <= 90.0 or not -180.0 <= longitude <= 180.0:
            raise ValueError(f"Coordinate out of range: ({latitude}, {longitude})")
        fix = PositionFix(
            van_id=van_id,
            latitude=latitude,
            longitude=longitude,
            recorded_at=recorded_at or datetime.now(timezone.utc),
        )
        with self._lock:
            history = self._fixes.setdefault(van_id, deque(maxlen=self.history_size))
            history.append(fix)
        logger.debug(f"Van {van_id} at ({latitude:.5f}, {longitude:.5f})")
        return fix

    def latest(self, van_id: str) -> Optional[PositionFix]:
        with self._lock:
            history = self._fixes.get(van_id)
            return history[-1] if history else None

    def history(self, van_id: str) -> list[PositionFix]:
        """Recent fixes for ``van_id``, oldest first."""
        with self._lock:
            return list(self._fixes.get(van_id, ()))

    def forget(self, van_id: str) -> None:
        with self._lock:
            self._fixes.pop(van_id, None)

    def clear(self) -> None:
        with self._lock:
            self._fixes.clear()


@lru_cache(maxsize=1)
def get_position_feed() -> LivePositionFeed:
    return LivePositionFeed()
