"""Domain models for vans, schools and students."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import time
from typing import Literal, Optional

Shift = Literal["MORNING", "AFTERNOON"]
Period = Literal["EARLY", "MIDDAY", "LATE"]
DayOfWeek = Literal["SEG", "TER", "QUA", "QUI", "SEX", "SAB", "DOM"]

SHIFTS: tuple[str, ...] = ("MORNING", "AFTERNOON")
PERIODS: tuple[str, ...] = ("EARLY", "MIDDAY", "LATE")
DAYS_OF_WEEK: tuple[str, ...] = ("SEG", "TER", "QUA", "QUI", "SEX", "SAB", "DOM")


@dataclass(frozen=True, slots=True)
class Van:
    """A vehicle with a seat capacity and the location its routes start from."""

    van_id: str
    van_number: str
    capacity: int
    start_address: str
    start_latitude: float
    start_longitude: float
    driver_name: Optional[str] = None
    model: Optional[str] = None
    plate: Optional[str] = None


@dataclass(frozen=True, slots=True)
class ShiftWindow:
    entry: time
    exit: time


@dataclass(frozen=True, slots=True)
class School:
    """A school with one entry/exit window per shift."""

    school_id: str
    name: str
    address: str
    latitude: float
    longitude: float
    morning: ShiftWindow
    afternoon: ShiftWindow
    dwell_min: float = 5.0

    def window(self, shift: str) -> ShiftWindow:
        return self.morning if shift == "MORNING" else self.afternoon


@dataclass(frozen=True, slots=True)
class Student:
    """A transport user enrolled on one van for one school and shift."""

    student_id: str
    name: str
    address: str
    latitude: float
    longitude: float
    van_id: str
    school_id: str
    shift: str
    days_of_week: frozenset[str]
    goes_to_school: bool = True
    returns_from_school: bool = True
    dwell_min: float = 2.0
    guardian_phone: Optional[str] = None


def parse_clock(value: str | time) -> time:
    """Parse an ``HH:MM`` string into a time-of-day."""

    if isinstance(value, time):
        return value
    hours, _, minutes = value.strip().partition(":")
    return time(int(hours), int(minutes))


def minutes_of_day(value: time) -> float:
    return value.hour * 60 + value.minute + value.second / 60.0


def format_clock(minutes: float) -> str:
    """Render minutes since midnight as ``HH:MM``, rounding to the nearest minute."""

    total = int(round(minutes))
    return f"{(total // 60) % 24:02d}:{total % 60:02d}"
