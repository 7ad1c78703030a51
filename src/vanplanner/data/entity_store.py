"""In-process store for vans, schools, students and daily absences.

Records are immutable values held in plain dictionaries guarded by a lock.
Readers take a :class:`FleetSnapshot`, a frozen copy of the maps, so planning
never observes writes that land after the request started.
"""

from __future__ import annotations

import logging
import math
import threading
from collections import deque
from dataclasses import asdict, dataclass, field
from types import MappingProxyType
from typing import Any, Callable, Mapping, Protocol

from ..models.domain import (
    DAYS_OF_WEEK,
    SHIFTS,
    School,
    ShiftWindow,
    Student,
    Van,
    parse_clock,
)

logger = logging.getLogger(__name__)

KINDS: tuple[str, ...] = ("vans", "schools", "students", "absences")


class ValidationError(ValueError):
    """Raised when an entity mutation violates a record invariant."""

    def __init__(self, field: str, message: str) -> None:
        super().__init__(f"{field}: {message}")
        self.field = field
        self.message = message


class StoreBackend(Protocol):
    """Write-through persistence used by :class:`EntityStore`."""

    def load(self) -> dict[str, list[dict[str, Any]]]: ...

    def save(self, kind: str, record_id: str, payload: dict[str, Any]) -> None: ...

    def delete(self, kind: str, record_id: str) -> None: ...

    def clear(self) -> None: ...


@dataclass(frozen=True, slots=True)
class FleetSnapshot:
    vans: Mapping[str, Van] = field(default_factory=dict)
    schools: Mapping[str, School] = field(default_factory=dict)
    students: Mapping[str, Student] = field(default_factory=dict)
    absences: frozenset[tuple[str, str]] = frozenset()

    def is_absent(self, student_id: str, day: str) -> bool:
        return (student_id, day) in self.absences

    def students_for_van(self, van_id: str) -> list[Student]:
        return sorted(
            (student for student in self.students.values() if student.van_id == van_id),
            key=lambda student: student.student_id,
        )


def _check_coordinate(latitude: float, longitude: float, lat_field: str, lon_field: str) -> None:
    if not isinstance(latitude, (int, float)) or math.isnan(latitude) or not -90 <= latitude <= 90:
        raise ValidationError(lat_field, f"latitude must be within [-90, 90], got {latitude!r}")
    if not isinstance(longitude, (int, float)) or math.isnan(longitude) or not -180 <= longitude <= 180:
        raise ValidationError(lon_field, f"longitude must be within [-180, 180], got {longitude!r}")


def validate_van(van: Van) -> None:
    if not van.van_id:
        raise ValidationError("van_id", "must not be empty")
    if isinstance(van.capacity, bool) or not isinstance(van.capacity, int) or van.capacity < 1:
        raise ValidationError("capacity", f"must be a positive integer, got {van.capacity!r}")
    _check_coordinate(van.start_latitude, van.start_longitude, "start_latitude", "start_longitude")


def validate_school(school: School) -> None:
    if not school.school_id:
        raise ValidationError("school_id", "must not be empty")
    _check_coordinate(school.latitude, school.longitude, "latitude", "longitude")
    if school.dwell_min < 0:
        raise ValidationError("dwell_min", "must not be negative")
    for name, window in (("morning", school.morning), ("afternoon", school.afternoon)):
        if window.entry >= window.exit:
            raise ValidationError(name, f"entry {window.entry:%H:%M} must be before exit {window.exit:%H:%M}")


def validate_student(student: Student) -> None:
    if not student.student_id:
        raise ValidationError("student_id", "must not be empty")
    _check_coordinate(student.latitude, student.longitude, "latitude", "longitude")
    if student.shift not in SHIFTS:
        raise ValidationError("shift", f"must be one of {', '.join(SHIFTS)}")
    if not student.days_of_week:
        raise ValidationError("days_of_week", "at least one weekday is required")
    unknown_days = set(student.days_of_week) - set(DAYS_OF_WEEK)
    if unknown_days:
        raise ValidationError("days_of_week", f"unknown weekdays: {', '.join(sorted(unknown_days))}")
    if not (student.goes_to_school or student.returns_from_school):
        raise ValidationError(
            "goes_to_school",
            "a student must use at least one direction (goes_to_school or returns_from_school)",
        )
    if student.dwell_min < 0:
        raise ValidationError("dwell_min", "must not be negative")


def record_to_payload(record: Van | School | Student) -> dict[str, Any]:
    payload = asdict(record)
    if isinstance(record, School):
        for name in ("morning", "afternoon"):
            window: ShiftWindow = getattr(record, name)
            payload[name] = {"entry": window.entry.strftime("%H:%M"), "exit": window.exit.strftime("%H:%M")}
    if isinstance(record, Student):
        payload["days_of_week"] = sorted(record.days_of_week, key=DAYS_OF_WEEK.index)
    return payload


def van_from_payload(payload: dict[str, Any]) -> Van:
    return Van(**payload)


def school_from_payload(payload: dict[str, Any]) -> School:
    data = dict(payload)
    for name in ("morning", "afternoon"):
        window = data[name]
        data[name] = ShiftWindow(entry=parse_clock(window["entry"]), exit=parse_clock(window["exit"]))
    return School(**data)


def student_from_payload(payload: dict[str, Any]) -> Student:
    data = dict(payload)
    data["days_of_week"] = frozenset(data["days_of_week"])
    return Student(**data)


class EntityStore:
    """Thread-safe record store with snapshot reads and optional write-through."""

    def __init__(self, backend: StoreBackend | None = None) -> None:
        self._lock = threading.RLock()
        self._vans: dict[str, Van] = {}
        self._schools: dict[str, School] = {}
        self._students: dict[str, Student] = {}
        self._absences: set[tuple[str, str]] = set()
        self._backend = backend
        # Backend writes queued under _lock, applied in order outside it.
        self._pending: deque[tuple[str, Callable[[], Any]]] = deque()
        self._backend_lock = threading.Lock()
        if backend is not None:
            self._load(backend.load())

    def _load(self, data: dict[str, list[dict[str, Any]]]) -> None:
        skipped = 0
        for payload in data.get("vans", []):
            try:
                van = van_from_payload(payload)
                validate_van(van)
                self._vans[van.van_id] = van
            except (KeyError, TypeError, ValueError) as exc:
                skipped += 1
                logger.warning(f"Skipping invalid van record: {exc}")
        for payload in data.get("schools", []):
            try:
                school = school_from_payload(payload)
                validate_school(school)
                self._schools[school.school_id] = school
            except (KeyError, TypeError, ValueError) as exc:
                skipped += 1
                logger.warning(f"Skipping invalid school record: {exc}")
        for payload in data.get("students", []):
            try:
                student = student_from_payload(payload)
                validate_student(student)
                self._students[student.student_id] = student
            except (KeyError, TypeError, ValueError) as exc:
                skipped += 1
                logger.warning(f"Skipping invalid student record: {exc}")
        for payload in data.get("absences", []):
            student_id, day = payload.get("student_id"), payload.get("day")
            if student_id in self._students and day in DAYS_OF_WEEK:
                self._absences.add((student_id, day))
        logger.info(
            f"Loaded {len(self._vans)} vans, {len(self._schools)} schools, "
            f"{len(self._students)} students ({skipped} skipped)"
        )

    def _persist(self, kind: str, record_id: str, payload: dict[str, Any] | None) -> None:
        """Queue a backend write; callers hold ``_lock`` and call :meth:`_flush` after releasing it."""
        if self._backend is None:
            return
        backend = self._backend
        if payload is None:
            self._pending.append((f"delete {kind} record '{record_id}'", lambda: backend.delete(kind, record_id)))
        else:
            self._pending.append((f"persist {kind} record '{record_id}'", lambda: backend.save(kind, record_id, payload)))

    def _flush(self) -> None:
        if self._backend is None:
            return
        with self._backend_lock:
            while True:
                with self._lock:
                    if not self._pending:
                        return
                    action, write = self._pending.popleft()
                try:
                    write()
                except Exception as exc:
                    # The in-memory record stays authoritative for this process.
                    logger.warning(f"Failed to {action}: {exc}")

    # -- vans -----------------------------------------------------------------

    def create_van(self, van: Van, *, replace: bool = False) -> Van:
        validate_van(van)
        with self._lock:
            if not replace and van.van_id in self._vans:
                raise ValidationError("van_id", f"van '{van.van_id}' already exists")
            if replace and van.van_id in self._vans:
                onboard = len([s for s in self._students.values() if s.van_id == van.van_id])
                if onboard > van.capacity:
                    logger.warning(
                        f"Van {van.van_id} capacity reduced to {van.capacity} with {onboard} students assigned"
                    )
            self._vans[van.van_id] = van
            self._persist("vans", van.van_id, record_to_payload(van))
        self._flush()
        return van

    def delete_van(self, van_id: str) -> None:
        with self._lock:
            if van_id not in self._vans:
                raise KeyError(van_id)
            riders = sorted(s.student_id for s in self._students.values() if s.van_id == van_id)
            if riders:
                raise ValidationError("van_id", f"van '{van_id}' is still assigned to students: {', '.join(riders)}")
            del self._vans[van_id]
            self._persist("vans", van_id, None)
        self._flush()

    def get_van(self, van_id: str) -> Van | None:
        with self._lock:
            return self._vans.get(van_id)

    def list_vans(self) -> list[Van]:
        with self._lock:
            return sorted(self._vans.values(), key=lambda van: van.van_id)

    def van_occupancy(self, van_id: str) -> int:
        with self._lock:
            return sum(1 for student in self._students.values() if student.van_id == van_id)

    # -- schools --------------------------------------------------------------

    def create_school(self, school: School, *, replace: bool = False) -> School:
        validate_school(school)
        with self._lock:
            if not replace and school.school_id in self._schools:
                raise ValidationError("school_id", f"school '{school.school_id}' already exists")
            self._schools[school.school_id] = school
            self._persist("schools", school.school_id, record_to_payload(school))
        self._flush()
        return school

    def delete_school(self, school_id: str) -> None:
        with self._lock:
            if school_id not in self._schools:
                raise KeyError(school_id)
            enrolled = sorted(s.student_id for s in self._students.values() if s.school_id == school_id)
            if enrolled:
                raise ValidationError(
                    "school_id", f"school '{school_id}' is still referenced by students: {', '.join(enrolled)}"
                )
            del self._schools[school_id]
            self._persist("schools", school_id, None)
        self._flush()

    def get_school(self, school_id: str) -> School | None:
        with self._lock:
            return self._schools.get(school_id)

    def list_schools(self) -> list[School]:
        with self._lock:
            return sorted(self._schools.values(), key=lambda school: school.school_id)

    # -- students -------------------------------------------------------------

    def create_student(self, student: Student, *, replace: bool = False) -> Student:
        validate_student(student)
        with self._lock:
            if not replace and student.student_id in self._students:
                raise ValidationError("student_id", f"student '{student.student_id}' already exists")
            van = self._vans.get(student.van_id)
            if van is None:
                raise ValidationError("van_id", f"unknown van '{student.van_id}'")
            if student.school_id not in self._schools:
                raise ValidationError("school_id", f"unknown school '{student.school_id}'")
            occupancy = sum(
                1
                for other in self._students.values()
                if other.van_id == van.van_id and other.student_id != student.student_id
            )
            if occupancy >= van.capacity:
                logger.warning(
                    f"Van {van.van_id} already has {occupancy} students for {van.capacity} seats; "
                    f"routes may fail with CAPACITY_EXCEEDED"
                )
            self._students[student.student_id] = student
            self._persist("students", student.student_id, record_to_payload(student))
        self._flush()
        return student

    def delete_student(self, student_id: str) -> None:
        with self._lock:
            if student_id not in self._students:
                raise KeyError(student_id)
            del self._students[student_id]
            self._persist("students", student_id, None)
            for key in sorted(key for key in self._absences if key[0] == student_id):
                self._absences.discard(key)
                self._persist("absences", f"{key[0]}:{key[1]}", None)
        self._flush()

    def get_student(self, student_id: str) -> Student | None:
        with self._lock:
            return self._students.get(student_id)

    def list_students(self) -> list[Student]:
        with self._lock:
            return sorted(self._students.values(), key=lambda student: student.student_id)

    # -- absences -------------------------------------------------------------

    def mark_absent(self, student_id: str, day: str) -> None:
        if day not in DAYS_OF_WEEK:
            raise ValidationError("day", f"must be one of {', '.join(DAYS_OF_WEEK)}")
        with self._lock:
            if student_id not in self._students:
                raise KeyError(student_id)
            self._absences.add((student_id, day))
            self._persist("absences", f"{student_id}:{day}", {"student_id": student_id, "day": day})
        self._flush()

    def clear_absent(self, student_id: str, day: str) -> None:
        with self._lock:
            if (student_id, day) in self._absences:
                self._absences.discard((student_id, day))
                self._persist("absences", f"{student_id}:{day}", None)
        self._flush()

    def reset_absences(self) -> int:
        with self._lock:
            cleared = sorted(self._absences)
            self._absences.clear()
            for student_id, day in cleared:
                self._persist("absences", f"{student_id}:{day}", None)
        self._flush()
        return len(cleared)

    def absences(self) -> list[tuple[str, str]]:
        with self._lock:
            return sorted(self._absences)

    # -- whole store ----------------------------------------------------------

    def clear(self) -> None:
        with self._lock:
            self._vans.clear()
            self._schools.clear()
            self._students.clear()
            self._absences.clear()
            if self._backend is not None:
                self._pending.append(("clear persisted records", self._backend.clear))
        self._flush()

    def snapshot(self) -> FleetSnapshot:
        with self._lock:
            return FleetSnapshot(
                vans=MappingProxyType(dict(self._vans)),
                schools=MappingProxyType(dict(self._schools)),
                students=MappingProxyType(dict(self._students)),
                absences=frozenset(self._absences),
            )
