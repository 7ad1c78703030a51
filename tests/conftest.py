from datetime import time

import pytest

from vanplanner.data.entity_store import EntityStore
from vanplanner.models.domain import School, ShiftWindow, Student, Van
from vanplanner.services.geospatial import haversine_km

# One kilometre of latitude, close enough for test geometry.
KM = 1 / 111.195
ORIGIN = (-23.55, -46.63)


def north(km: float) -> tuple[float, float]:
    return (ORIGIN[0] + km * KM, ORIGIN[1])


def make_van(van_id: str = "V1", capacity: int = 15, start: tuple[float, float] = ORIGIN) -> Van:
    return Van(
        van_id=van_id,
        van_number=van_id.lstrip("V") or "1",
        capacity=capacity,
        start_address="Garage",
        start_latitude=start[0],
        start_longitude=start[1],
        driver_name="Driver",
    )


def make_school(
    school_id: str = "SCH1",
    at: tuple[float, float] = north(8),
    morning: tuple[str, str] = ("07:30", "12:00"),
    afternoon: tuple[str, str] = ("13:00", "17:30"),
    dwell_min: float = 5.0,
) -> School:
    def window(pair: tuple[str, str]) -> ShiftWindow:
        entry, exit_ = (time(*map(int, value.split(":"))) for value in pair)
        return ShiftWindow(entry=entry, exit=exit_)

    return School(
        school_id=school_id,
        name=f"School {school_id}",
        address=f"{school_id} street",
        latitude=at[0],
        longitude=at[1],
        morning=window(morning),
        afternoon=window(afternoon),
        dwell_min=dwell_min,
    )


def make_student(
    student_id: str,
    at: tuple[float, float],
    van_id: str = "V1",
    school_id: str = "SCH1",
    shift: str = "MORNING",
    days: tuple[str, ...] = ("SEG", "QUA", "SEX"),
    goes: bool = True,
    returns: bool = True,
) -> Student:
    return Student(
        student_id=student_id,
        name=f"Student {student_id}",
        address=f"{student_id} home",
        latitude=at[0],
        longitude=at[1],
        van_id=van_id,
        school_id=school_id,
        shift=shift,
        days_of_week=frozenset(days),
        goes_to_school=goes,
        returns_from_school=returns,
    )


class DummyOSRM:
    """Road network where every leg is the straight line driven at 40 km/h."""

    def __init__(self) -> None:
        self.table_calls = 0
        self.route_calls = 0

    def table(self, coordinates):
        self.table_calls += 1
        distances = [[haversine_km(*a, *b) * 1000.0 for b in coordinates] for a in coordinates]
        durations = [[meters / 1000.0 / 40.0 * 3600.0 for meters in row] for row in distances]
        return {"code": "Ok", "distances": distances, "durations": durations}

    def route(self, coordinates):
        self.route_calls += 1
        legs = []
        for a, b in zip(coordinates, coordinates[1:]):
            meters = haversine_km(*a, *b) * 1000.0
            legs.append({"distance": meters, "duration": meters / 1000.0 / 40.0 * 3600.0})
        return {"code": "Ok", "routes": [{"legs": legs}]}


@pytest.fixture
def store() -> EntityStore:
    return EntityStore()


@pytest.fixture(autouse=True)
def clear_process_caches():
    from vanplanner.data.fleet_repository import get_entity_store
    from vanplanner.services.tracking.feed import get_position_feed

    get_entity_store.cache_clear()
    get_position_feed.cache_clear()
    yield
    get_entity_store.cache_clear()
    get_position_feed.cache_clear()
