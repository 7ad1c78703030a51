from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from conftest import DummyOSRM, north
from vanplanner.main import create_app

VAN = {
    "van_id": "V1",
    "van_number": "7",
    "capacity": 2,
    "start_address": "Garage",
    "start_latitude": -23.55,
    "start_longitude": -46.63,
    "driver_name": "Carlos",
    "plate": "ABC-1234",
}

SCHOOL = {
    "school_id": "SCH1",
    "name": "Escola Central",
    "address": "Rua da Escola, 100",
    "latitude": north(8)[0],
    "longitude": north(8)[1],
    "morning": {"entry": "07:30", "exit": "12:00"},
    "afternoon": {"entry": "13:00", "exit": "17:30"},
}


def _student(student_id: str, km: float, **overrides) -> dict:
    lat, lon = north(km)
    payload = {
        "student_id": student_id,
        "name": f"Aluno {student_id}",
        "address": f"Casa {student_id}",
        "latitude": lat,
        "longitude": lon,
        "van_id": "V1",
        "school_id": "SCH1",
        "shift": "MORNING",
        "days_of_week": ["SEG", "QUA", "SEX"],
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def api_client(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> TestClient:
    from vanplanner.config import settings
    from vanplanner.persistence.filesystem import FileStorage
    from vanplanner.services.routing import service as routing_service
    from vanplanner.services.routing import travel_time

    monkeypatch.setattr(settings, "store_file", None)
    monkeypatch.setattr(travel_time, "OSRMClient", lambda *args, **kwargs: DummyOSRM())
    # ensure filesystem writes go to tmpdir
    monkeypatch.setattr(routing_service, "FileStorage", lambda: FileStorage(root=tmp_path))

    return TestClient(create_app())


@pytest.fixture
def seeded_client(api_client: TestClient) -> TestClient:
    assert api_client.post("/api/vans", json=VAN).status_code == 201
    assert api_client.post("/api/schools", json=SCHOOL).status_code == 201
    assert api_client.post("/api/students", json=_student("S1", 2)).status_code == 201
    assert api_client.post("/api/students", json=_student("S2", 5)).status_code == 201
    return api_client


def test_health(api_client: TestClient) -> None:
    assert api_client.get("/api/health").json() == {"status": "ok"}


def test_fleet_crud(seeded_client: TestClient) -> None:
    vans = seeded_client.get("/api/vans").json()
    assert vans[0]["occupancy"] == 2
    assert vans[0]["is_full"] is True

    school = seeded_client.get("/api/schools/SCH1").json()
    assert school["morning"] == {"entry": "07:30", "exit": "12:00"}

    students = seeded_client.get("/api/students", params={"van_id": "V1"}).json()
    assert [student["student_id"] for student in students] == ["S1", "S2"]

    assert seeded_client.delete("/api/students/S2").status_code == 200
    assert seeded_client.get("/api/students/S2").status_code == 404


def test_validation_errors_name_the_field(seeded_client: TestClient) -> None:
    response = seeded_client.post("/api/vans", json={**VAN, "van_id": "V2", "capacity": 0})
    assert response.status_code == 422
    assert response.json()["detail"]["field"] == "capacity"

    response = seeded_client.post("/api/students", json=_student("S3", 3, van_id="NOPE"))
    assert response.status_code == 422
    assert response.json()["detail"]["field"] == "van_id"

    response = seeded_client.delete("/api/vans/V1")
    assert response.status_code == 422
    assert response.json()["detail"]["field"] == "van_id"


def test_unknown_ids_return_404(api_client: TestClient) -> None:
    assert api_client.get("/api/vans/V9").status_code == 404
    assert api_client.delete("/api/schools/SCH9").status_code == 404
    assert api_client.put("/api/students/S9/absences/SEG").status_code == 404


def test_plan_endpoint(seeded_client: TestClient, tmp_path: Path) -> None:
    response = seeded_client.post(
        "/api/routes/plan", json={"van_id": "V1", "day": "SEG", "period": "EARLY", "persist": True}
    )

    assert response.status_code == 200
    payload = response.json()
    steps = payload["plan"]["steps"]
    assert [step["type"] for step in steps] == ["START", "PICKUP", "PICKUP", "DROPOFF", "END"]
    assert steps[1]["student_ids"] == ["S1"]
    assert payload["plan"]["travel_source"] == "osrm"
    assert payload["metadata"]["warnings"]

    output_dirs = list((tmp_path / "outputs").glob("route_V1_SEG_EARLY_*"))
    assert output_dirs
    assert (output_dirs[0] / "route.geojson").exists()


def test_absence_toggles_demand(seeded_client: TestClient) -> None:
    assert seeded_client.put("/api/students/S1/absences/SEG").status_code == 200
    assert seeded_client.put("/api/students/S2/absences/SEG").status_code == 200
    assert len(seeded_client.get("/api/absences").json()) == 2

    response = seeded_client.post("/api/routes/plan", json={"van_id": "V1", "day": "SEG", "period": "EARLY"})
    assert response.status_code == 422
    assert response.json()["detail"]["code"] == "EMPTY_DEMAND"

    assert seeded_client.delete("/api/students/S1/absences/SEG").status_code == 200
    response = seeded_client.post("/api/routes/plan", json={"van_id": "V1", "day": "SEG", "period": "EARLY"})
    assert response.status_code == 200

    assert seeded_client.delete("/api/absences").json()["cleared_count"] == 1


def test_plan_errors_map_to_status_codes(seeded_client: TestClient) -> None:
    response = seeded_client.post("/api/routes/plan", json={"van_id": "V9", "day": "SEG", "period": "EARLY"})
    assert response.status_code == 404

    seeded_client.post("/api/students", json=_student("S3", 3, shift="AFTERNOON"))
    response = seeded_client.post("/api/routes/plan", json={"van_id": "V1", "day": "SEG", "period": "LATE"})
    assert response.status_code == 200

    response = seeded_client.post(
        "/api/routes/plan", json={"van_id": "V1", "day": "SEG", "period": "EARLY", "start_time": "07:25"}
    )
    assert response.status_code == 409
    detail = response.json()["detail"]
    assert detail["code"] == "INFEASIBLE_WINDOW"
    assert detail["school_id"] == "SCH1"

    response = seeded_client.post(
        "/api/routes/plan", json={"van_id": "V1", "day": "SEG", "period": "EARLY", "shift": "AFTERNOON"}
    )
    assert response.status_code == 422


def test_inbound_overflow_returns_conflict(seeded_client: TestClient) -> None:
    for student_id, km in (("A1", 1), ("A2", 2), ("A3", 3)):
        seeded_client.post("/api/students", json=_student(student_id, km, shift="AFTERNOON"))

    response = seeded_client.post("/api/routes/plan", json={"van_id": "V1", "day": "SEG", "period": "LATE"})

    assert response.status_code == 409
    assert response.json()["detail"] == {
        "code": "CAPACITY_EXCEEDED",
        "message": response.json()["detail"]["message"],
        "van_id": "V1",
        "capacity": 2,
        "required": 3,
    }


def test_tracking_feed(seeded_client: TestClient) -> None:
    assert seeded_client.post("/api/tracking/V9", json={"latitude": 0, "longitude": 0}).status_code == 404

    for km in (1, 2, 3):
        lat, lon = north(km)
        response = seeded_client.post("/api/tracking/V1", json={"latitude": lat, "longitude": lon})
        assert response.status_code == 201

    payload = seeded_client.get("/api/tracking/V1").json()
    assert payload["latest"]["latitude"] == pytest.approx(north(3)[0])
    assert len(payload["history"]) == 3


def test_clear_fleet(seeded_client: TestClient) -> None:
    assert seeded_client.delete("/api/fleet").status_code == 200

    assert seeded_client.get("/api/vans").json() == []
    assert seeded_client.get("/api/students").json() == []


def test_plan_error_bodies_are_documented(api_client: TestClient) -> None:
    schema = api_client.get("/openapi.json").json()

    responses = schema["paths"]["/api/routes/plan"]["post"]["responses"]
    for code in ("409", "503"):
        assert responses[code]["content"]["application/json"]["schema"] == {
            "$ref": "#/components/schemas/PlanningErrorResponse"
        }
    assert "student_id" in schema["components"]["schemas"]["PlanningErrorModel"]["properties"]


def test_outbound_seat_shortage_returns_conflict(api_client: TestClient) -> None:
    api_client.post("/api/vans", json={**VAN, "capacity": 1})
    lat, lon = north(10)
    school = {**SCHOOL, "latitude": lat, "longitude": lon, "morning": {"entry": "07:40", "exit": "12:00"}}
    api_client.post("/api/schools", json=school)
    api_client.post("/api/students", json=_student("A", 1))
    api_client.post("/api/students", json=_student("B", -10))

    response = api_client.post(
        "/api/routes/plan", json={"van_id": "V1", "day": "SEG", "period": "EARLY", "start_time": "06:30"}
    )

    assert response.status_code == 409
    detail = response.json()["detail"]
    assert detail["code"] == "CAPACITY_EXCEEDED"
    assert (detail["van_id"], detail["school_id"], detail["student_id"]) == ("V1", "SCH1", "B")
