"""Pydantic request/response models for fleet, absence and tracking endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

CLOCK_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"

DayOfWeek = Literal["SEG", "TER", "QUA", "QUI", "SEX", "SAB", "DOM"]


class VanModel(BaseModel):
    van_id: str = Field(..., min_length=1)
    van_number: str = Field(..., description="Number painted on the vehicle.")
    capacity: int = Field(..., description="Seats available for students.")
    start_address: str
    start_latitude: float
    start_longitude: float
    driver_name: Optional[str] = None
    model: Optional[str] = None
    plate: Optional[str] = None


class VanResponse(VanModel):
    occupancy: int = Field(0, description="Students currently assigned to the van.")
    is_full: bool = False


class ShiftWindowModel(BaseModel):
    entry: str = Field(..., pattern=CLOCK_PATTERN, description="Entry time (HH:MM).")
    exit: str = Field(..., pattern=CLOCK_PATTERN, description="Exit time (HH:MM).")


class SchoolModel(BaseModel):
    school_id: str = Field(..., min_length=1)
    name: str
    address: str
    latitude: float
    longitude: float
    morning: ShiftWindowModel
    afternoon: ShiftWindowModel
    dwell_min: float = Field(5.0, description="Minutes spent at every stop at this school.")


class StudentModel(BaseModel):
    student_id: str = Field(..., min_length=1)
    name: str
    address: str
    latitude: float
    longitude: float
    van_id: str
    school_id: str
    shift: Literal["MORNING", "AFTERNOON"]
    days_of_week: List[DayOfWeek] = Field(..., description="Weekdays the student rides.")
    goes_to_school: bool = True
    returns_from_school: bool = True
    dwell_min: float = 2.0
    guardian_phone: Optional[str] = None


class AbsenceModel(BaseModel):
    student_id: str
    day: str


class PositionUpdate(BaseModel):
    latitude: float = Field(..., ge=-90.0, le=90.0)
    longitude: float = Field(..., ge=-180.0, le=180.0)
    recorded_at: Optional[datetime] = None


class PositionModel(BaseModel):
    van_id: str
    latitude: float
    longitude: float
    recorded_at: datetime


class TrackingResponse(BaseModel):
    van_id: str
    latest: Optional[PositionModel]
    history: List[PositionModel]
