from dataclasses import replace
from datetime import time

import pytest

from conftest import make_school, make_student, make_van, north
from vanplanner.data.entity_store import EntityStore, ValidationError
from vanplanner.models.domain import ShiftWindow


def _seed(store: EntityStore) -> None:
    store.create_van(make_van())
    store.create_school(make_school())
    store.create_student(make_student("S1", north(2)))


def test_create_and_list_records(store: EntityStore) -> None:
    _seed(store)

    assert [van.van_id for van in store.list_vans()] == ["V1"]
    assert store.get_school("SCH1").name == "School SCH1"
    assert store.get_student("S1").van_id == "V1"
    assert store.van_occupancy("V1") == 1


def test_van_capacity_must_be_positive(store: EntityStore) -> None:
    with pytest.raises(ValidationError) as excinfo:
        store.create_van(make_van(capacity=0))

    assert excinfo.value.field == "capacity"
    assert store.list_vans() == []


def test_school_entry_must_precede_exit(store: EntityStore) -> None:
    school = replace(make_school(), morning=ShiftWindow(entry=time(12, 0), exit=time(7, 30)))

    with pytest.raises(ValidationError) as excinfo:
        store.create_school(school)

    assert excinfo.value.field == "morning"


def test_student_needs_a_direction(store: EntityStore) -> None:
    store.create_van(make_van())
    store.create_school(make_school())

    with pytest.raises(ValidationError) as excinfo:
        store.create_student(make_student("S1", north(2), goes=False, returns=False))

    assert excinfo.value.field == "goes_to_school"
    assert store.get_student("S1") is None


def test_student_references_must_exist(store: EntityStore) -> None:
    store.create_school(make_school())

    with pytest.raises(ValidationError) as excinfo:
        store.create_student(make_student("S1", north(2), van_id="NOPE"))

    assert excinfo.value.field == "van_id"


def test_student_needs_known_weekdays(store: EntityStore) -> None:
    _seed(store)

    with pytest.raises(ValidationError) as excinfo:
        store.create_student(make_student("S2", north(3), days=("MON",)))

    assert excinfo.value.field == "days_of_week"


def test_duplicate_ids_are_rejected_unless_replacing(store: EntityStore) -> None:
    _seed(store)

    with pytest.raises(ValidationError):
        store.create_van(make_van())

    store.create_van(make_van(capacity=20), replace=True)
    assert store.get_van("V1").capacity == 20


def test_full_van_still_accepts_students(store: EntityStore, caplog: pytest.LogCaptureFixture) -> None:
    store.create_van(make_van(capacity=1))
    store.create_school(make_school())
    store.create_student(make_student("S1", north(2)))

    store.create_student(make_student("S2", north(3)))

    assert store.van_occupancy("V1") == 2
    assert "CAPACITY_EXCEEDED" in caplog.text


def test_referenced_van_and_school_cannot_be_deleted(store: EntityStore) -> None:
    _seed(store)

    with pytest.raises(ValidationError) as van_error:
        store.delete_van("V1")
    with pytest.raises(ValidationError) as school_error:
        store.delete_school("SCH1")

    assert van_error.value.field == "van_id"
    assert school_error.value.field == "school_id"

    store.delete_student("S1")
    store.delete_van("V1")
    store.delete_school("SCH1")
    assert store.list_vans() == [] and store.list_schools() == []


def test_delete_unknown_id_raises_key_error(store: EntityStore) -> None:
    with pytest.raises(KeyError):
        store.delete_student("missing")


def test_absences_are_separate_from_enrollment(store: EntityStore) -> None:
    _seed(store)

    store.mark_absent("S1", "SEG")

    assert store.absences() == [("S1", "SEG")]
    assert store.get_student("S1").days_of_week == frozenset({"SEG", "QUA", "SEX"})

    store.clear_absent("S1", "SEG")
    assert store.absences() == []


def test_mark_absent_validates_day_and_student(store: EntityStore) -> None:
    _seed(store)

    with pytest.raises(ValidationError) as excinfo:
        store.mark_absent("S1", "MONDAY")
    assert excinfo.value.field == "day"

    with pytest.raises(KeyError):
        store.mark_absent("S9", "SEG")


def test_reset_absences_and_delete_student_drop_flags(store: EntityStore) -> None:
    _seed(store)
    store.create_student(make_student("S2", north(3)))
    store.mark_absent("S1", "SEG")
    store.mark_absent("S2", "QUA")

    store.delete_student("S2")
    assert store.absences() == [("S1", "SEG")]

    assert store.reset_absences() == 1
    assert store.absences() == []


def test_snapshot_does_not_observe_later_writes(store: EntityStore) -> None:
    _seed(store)
    snapshot = store.snapshot()

    store.create_student(make_student("S2", north(3)))
    store.mark_absent("S1", "SEG")

    assert set(snapshot.students) == {"S1"}
    assert not snapshot.is_absent("S1", "SEG")
    assert set(store.snapshot().students) == {"S1", "S2"}
    with pytest.raises(TypeError):
        snapshot.students["S3"] = snapshot.students["S1"]


def test_clear_removes_everything(store: EntityStore) -> None:
    _seed(store)
    store.mark_absent("S1", "SEG")

    store.clear()

    snapshot = store.snapshot()
    assert not snapshot.vans and not snapshot.schools and not snapshot.students
    assert snapshot.absences == frozenset()
