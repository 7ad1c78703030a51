import pytest

from conftest import make_school, make_student, make_van, north
from vanplanner.data.entity_store import EntityStore
from vanplanner.services.routing.demand import select_demand
from vanplanner.services.routing.errors import EmptyDemand
from vanplanner.services.routing.windows import resolve_windows


@pytest.fixture
def fleet(store: EntityStore) -> EntityStore:
    store.create_van(make_van())
    store.create_van(make_van("V2"))
    store.create_school(make_school())
    store.create_student(make_student("S1", north(2)))
    store.create_student(make_student("S2", north(5), returns=False))
    store.create_student(make_student("S3", north(3), shift="AFTERNOON"))
    store.create_student(make_student("S4", north(4), van_id="V2"))
    return store


def test_early_selects_morning_outbound_pairs(fleet: EntityStore) -> None:
    requests = select_demand(fleet.snapshot(), "V1", "SEG", "EARLY")

    assert [(r.student_id, r.kind, r.side) for r in requests] == [
        ("S1", "PICKUP", "HOME"),
        ("S1", "DROPOFF", "SCHOOL"),
        ("S2", "PICKUP", "HOME"),
        ("S2", "DROPOFF", "SCHOOL"),
    ]
    assert {r.direction for r in requests} == {"OUTBOUND"}


def test_absent_student_contributes_no_requests(fleet: EntityStore) -> None:
    fleet.mark_absent("S1", "SEG")

    requests = select_demand(fleet.snapshot(), "V1", "SEG", "EARLY")

    assert {r.student_id for r in requests} == {"S2"}
    # Absence is per weekday.
    assert {r.student_id for r in select_demand(fleet.snapshot(), "V1", "QUA", "EARLY")} == {"S1", "S2"}


def test_inactive_day_raises_empty_demand(fleet: EntityStore) -> None:
    with pytest.raises(EmptyDemand) as excinfo:
        select_demand(fleet.snapshot(), "V1", "TER", "EARLY")

    assert excinfo.value.code == "EMPTY_DEMAND"
    assert excinfo.value.to_dict()["van_id"] == "V1"


def test_midday_merges_morning_returns_and_afternoon_arrivals(fleet: EntityStore) -> None:
    requests = select_demand(fleet.snapshot(), "V1", "SEG", "MIDDAY")

    flows = {(r.student_id, r.direction, r.kind, r.side) for r in requests}
    assert flows == {
        ("S1", "INBOUND", "PICKUP", "SCHOOL"),
        ("S1", "INBOUND", "DROPOFF", "HOME"),
        ("S3", "OUTBOUND", "PICKUP", "HOME"),
        ("S3", "OUTBOUND", "DROPOFF", "SCHOOL"),
    }


def test_midday_shift_narrows_to_one_flow(fleet: EntityStore) -> None:
    requests = select_demand(fleet.snapshot(), "V1", "SEG", "MIDDAY", shift="AFTERNOON")

    assert {r.student_id for r in requests} == {"S3"}
    assert {r.direction for r in requests} == {"OUTBOUND"}


def test_late_selects_afternoon_inbound(fleet: EntityStore) -> None:
    requests = select_demand(fleet.snapshot(), "V1", "SEG", "LATE")

    assert [(r.student_id, r.kind, r.side) for r in requests] == [
        ("S3", "PICKUP", "SCHOOL"),
        ("S3", "DROPOFF", "HOME"),
    ]


def test_unknown_van_and_bad_arguments(fleet: EntityStore) -> None:
    snapshot = fleet.snapshot()

    with pytest.raises(LookupError):
        select_demand(snapshot, "V9", "SEG", "EARLY")
    with pytest.raises(ValueError):
        select_demand(snapshot, "V1", "MON", "EARLY")
    with pytest.raises(ValueError):
        select_demand(snapshot, "V1", "SEG", "EARLY", shift="AFTERNOON")


def test_resolve_windows_attaches_deadlines_and_dwell(fleet: EntityStore) -> None:
    snapshot = fleet.snapshot()
    resolved = resolve_windows(snapshot, select_demand(snapshot, "V1", "SEG", "MIDDAY"))
    by_key = {(r.student_id, r.kind): r for r in resolved}

    afternoon_dropoff = by_key[("S3", "DROPOFF")]
    assert afternoon_dropoff.deadline_min == 13 * 60
    assert afternoon_dropoff.dwell_min == 5.0

    morning_pickup = by_key[("S1", "PICKUP")]
    assert morning_pickup.release_min == 12 * 60
    assert morning_pickup.deadline_min is None

    home_dropoff = by_key[("S1", "DROPOFF")]
    assert home_dropoff.deadline_min is None and home_dropoff.release_min is None
    assert home_dropoff.dwell_min == 2.0
