"""Fleet endpoints: vans, schools, students and daily absences."""

from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, Query, status

from ...data.entity_store import (
    ValidationError,
    record_to_payload,
    school_from_payload,
    student_from_payload,
    van_from_payload,
)
from ...data.fleet_repository import get_entity_store
from ...schemas.fleet import AbsenceModel, SchoolModel, StudentModel, VanModel, VanResponse
from ...services.tracking.feed import get_position_feed

logger = logging.getLogger(__name__)

router = APIRouter(tags=["fleet"])


def _invalid(exc: ValidationError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        detail={"field": exc.field, "message": exc.message},
    )


def _not_found(kind: str, record_id: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"{kind} '{record_id}' not found")


def _van_response(van) -> VanResponse:
    occupancy = get_entity_store().van_occupancy(van.van_id)
    return VanResponse(**record_to_payload(van), occupancy=occupancy, is_full=occupancy >= van.capacity)


# -- vans ---------------------------------------------------------------------


@router.post("/vans", response_model=VanResponse, status_code=status.HTTP_201_CREATED)
def create_van(
    payload: VanModel,
    replace: bool = Query(default=False, description="Overwrite an existing van with the same id."),
) -> VanResponse:
    try:
        van = get_entity_store().create_van(van_from_payload(payload.model_dump()), replace=replace)
    except ValidationError as exc:
        raise _invalid(exc) from exc
    return _van_response(van)


@router.get("/vans", response_model=list[VanResponse])
def list_vans() -> list[VanResponse]:
    return [_van_response(van) for van in get_entity_store().list_vans()]


@router.get("/vans/{van_id}", response_model=VanResponse)
def get_van(van_id: str) -> VanResponse:
    van = get_entity_store().get_van(van_id)
    if van is None:
        raise _not_found("Van", van_id)
    return _van_response(van)


@router.delete("/vans/{van_id}", status_code=status.HTTP_200_OK)
def delete_van(van_id: str) -> dict:
    try:
        get_entity_store().delete_van(van_id)
    except KeyError as exc:
        raise _not_found("Van", van_id) from exc
    except ValidationError as exc:
        raise _invalid(exc) from exc
    get_position_feed().forget(van_id)
    return {"success": True, "message": f"Van {van_id} deleted"}


# -- schools ------------------------------------------------------------------


@router.post("/schools", response_model=SchoolModel, status_code=status.HTTP_201_CREATED)
def create_school(payload: SchoolModel, replace: bool = Query(default=False)) -> SchoolModel:
    try:
        school = get_entity_store().create_school(school_from_payload(payload.model_dump()), replace=replace)
    except ValidationError as exc:
        raise _invalid(exc) from exc
    return SchoolModel(**record_to_payload(school))


@router.get("/schools", response_model=list[SchoolModel])
def list_schools() -> list[SchoolModel]:
    return [SchoolModel(**record_to_payload(school)) for school in get_entity_store().list_schools()]


@router.get("/schools/{school_id}", response_model=SchoolModel)
def get_school(school_id: str) -> SchoolModel:
    school = get_entity_store().get_school(school_id)
    if school is None:
        raise _not_found("School", school_id)
    return SchoolModel(**record_to_payload(school))


@router.delete("/schools/{school_id}", status_code=status.HTTP_200_OK)
def delete_school(school_id: str) -> dict:
    try:
        get_entity_store().delete_school(school_id)
    except KeyError as exc:
        raise _not_found("School", school_id) from exc
    except ValidationError as exc:
        raise _invalid(exc) from exc
    return {"success": True, "message": f"School {school_id} deleted"}


# -- students -----------------------------------------------------------------


@router.post("/students", response_model=StudentModel, status_code=status.HTTP_201_CREATED)
def create_student(payload: StudentModel, replace: bool = Query(default=False)) -> StudentModel:
    try:
        student = get_entity_store().create_student(student_from_payload(payload.model_dump()), replace=replace)
    except ValidationError as exc:
        raise _invalid(exc) from exc
    return StudentModel(**record_to_payload(student))


@router.get("/students", response_model=list[StudentModel])
def list_students(van_id: str | None = Query(default=None, description="Only students riding this van")) -> list:
    students = get_entity_store().list_students()
    if van_id:
        students = [student for student in students if student.van_id == van_id]
    return [StudentModel(**record_to_payload(student)) for student in students]


@router.get("/students/{student_id}", response_model=StudentModel)
def get_student(student_id: str) -> StudentModel:
    student = get_entity_store().get_student(student_id)
    if student is None:
        raise _not_found("Student", student_id)
    return StudentModel(**record_to_payload(student))


@router.delete("/students/{student_id}", status_code=status.HTTP_200_OK)
def delete_student(student_id: str) -> dict:
    try:
        get_entity_store().delete_student(student_id)
    except KeyError as exc:
        raise _not_found("Student", student_id) from exc
    return {"success": True, "message": f"Student {student_id} deleted"}


# -- absences -----------------------------------------------------------------


@router.put("/students/{student_id}/absences/{day}", response_model=AbsenceModel)
def mark_absent(student_id: str, day: str) -> AbsenceModel:
    """Mark a student absent on a weekday; the enrollment record is untouched."""
    try:
        get_entity_store().mark_absent(student_id, day)
    except KeyError as exc:
        raise _not_found("Student", student_id) from exc
    except ValidationError as exc:
        raise _invalid(exc) from exc
    return AbsenceModel(student_id=student_id, day=day)


@router.delete("/students/{student_id}/absences/{day}", status_code=status.HTTP_200_OK)
def clear_absent(student_id: str, day: str) -> dict:
    store = get_entity_store()
    if store.get_student(student_id) is None:
        raise _not_found("Student", student_id)
    store.clear_absent(student_id, day)
    return {"success": True, "message": f"Student {student_id} present on {day}"}


@router.get("/absences", response_model=list[AbsenceModel])
def list_absences() -> list[AbsenceModel]:
    return [AbsenceModel(student_id=student_id, day=day) for student_id, day in get_entity_store().absences()]


@router.delete("/absences", status_code=status.HTTP_200_OK)
def reset_absences() -> dict:
    cleared = get_entity_store().reset_absences()
    return {"success": True, "cleared_count": cleared, "message": f"Cleared {cleared} absence flag(s)"}


@router.delete("/fleet", status_code=status.HTTP_200_OK)
def clear_fleet() -> dict:
    """Delete every van, school, student and absence.

    WARNING: this cannot be undone.
    """
    get_entity_store().clear()
    get_position_feed().clear()
    logger.warning("All fleet data cleared")
    return {"success": True, "message": "All fleet data cleared"}
