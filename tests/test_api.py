import re
from datetime import datetime, timedelta

from models import utcnow


def parse_time(value):
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def add(client, **overrides):
    body = {"full_name": "John Doe", "id_number": "1234567890", "consultation_room": 1}
    body.update(overrides)
    return client.post("/patients", json=body)


def test_add_patient_forces_waiting_status(client):
    response = add(client, status="completed")

    assert response.status_code == 201
    data = response.json()
    assert data["status"] == "waiting"
    assert data["id"] > 0
    assert data["created_at"] == data["updated_at"]


def test_add_patient_rejects_room_out_of_range(client):
    response = add(client, consultation_room=9)

    assert response.status_code == 422
    assert "consultation_room" in response.json()["detail"]
    assert client.get("/patients").json() == []


def test_add_patient_rejects_empty_name(client):
    response = add(client, full_name="")

    assert response.status_code == 422
    assert client.get("/patients").json() == []


def test_add_patient_keeps_whitespace_only_text(client):
    response = add(client, full_name="   ", id_number=" ")

    assert response.status_code == 201
    assert response.json()["full_name"] == "   "
    assert response.json()["id_number"] == " "


def test_arrival_time_is_returned_in_utc(client):
    response = add(client, arrival_time="2026-03-01T10:00:00+02:00")

    assert parse_time(response.json()["arrival_time"]) == parse_time("2026-03-01T08:00:00+00:00")


def test_call_next_scenario(client):
    a = add(client, full_name="Patient A").json()
    earlier = (utcnow() - timedelta(minutes=10)).isoformat()
    b = add(client, full_name="Patient B", id_number="000000001111", arrival_time=earlier).json()

    response = client.post("/rooms/1/call-next")

    assert response.status_code == 200
    assert response.json()["id"] == b["id"]
    assert response.json()["status"] == "in_consultation"
    room = client.get("/rooms/1/patients").json()
    assert {p["id"]: p["status"] for p in room} == {a["id"]: "waiting", b["id"]: "in_consultation"}


def test_call_next_with_nobody_waiting_returns_null(client):
    response = client.post("/rooms/3/call-next")

    assert response.status_code == 200
    assert response.json() is None


def test_call_next_bad_room(client):
    assert client.post("/rooms/0/call-next").status_code == 422


def test_update_status(client):
    patient = add(client).json()

    response = client.patch(f"/patients/{patient['id']}/status", json={"status": "cancelled"})

    assert response.status_code == 200
    assert response.json()["status"] == "cancelled"
    assert parse_time(response.json()["updated_at"]) > parse_time(patient["updated_at"])


def test_update_status_unknown_patient(client):
    response = client.patch("/patients/999/status", json={"status": "completed"})

    assert response.status_code == 404
    assert "999" in response.json()["detail"]


def test_update_status_rejects_unknown_value(client):
    patient = add(client).json()

    response = client.patch(f"/patients/{patient['id']}/status", json={"status": "gone"})

    assert response.status_code == 422


def test_waiting_list(client):
    first = add(client, consultation_room=2).json()
    second = add(client, consultation_room=5).json()
    client.post("/rooms/2/call-next")

    waiting = client.get("/patients/waiting").json()

    assert [p["id"] for p in waiting] == [second["id"]]
    assert first["id"] != second["id"]


def test_public_display_is_redacted(client):
    add(client, full_name="Patient C", id_number="55", consultation_room=4)
    done = add(client, full_name="Done", id_number="111222333", consultation_room=4).json()
    client.patch(f"/patients/{done['id']}/status", json={"status": "completed"})

    response = client.get("/display")

    assert response.status_code == 200
    assert response.json() == [{
        "id_last_three": "55",
        "full_name": "Patient C",
        "consultation_room": 4,
        "status": "waiting",
    }]


def test_room_overview_and_summary(client):
    add(client, consultation_room=6)
    client.post("/rooms/6/call-next")
    add(client, consultation_room=6)

    overview = client.get("/rooms/6").json()
    assert overview["current"]["status"] == "in_consultation"
    assert overview["can_call_next"] is False
    assert len(overview["waiting"]) == 1

    summary = client.get("/summary").json()
    assert summary["total"] == 2
    assert summary["by_status"]["in_consultation"] == 1
    assert summary["rooms"][5] == {"consultation_room": 6, "waiting": 1, "in_consultation": 1}


def test_room_listing_bad_room(client):
    assert client.get("/rooms/12/patients").status_code == 422


def test_health(client):
    add(client)

    data = client.get("/health").json()

    assert data["status"] == "ok"
    assert data["patients"] == 1
    assert data["redis"] == "unavailable"


def test_views_render(client):
    for path in ("/secretary", "/doctor?room=3", "/board"):
        response = client.get(path)
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/html")
        assert not re.search(r"__[A-Z_]+__", response.text)

    assert "Consultation room 3" in client.get("/doctor?room=3").text
    assert client.get("/doctor?room=9").status_code == 422


def test_secretary_view_masks_id_numbers(client):
    html = client.get("/secretary").text

    assert "esc(p.id_number.slice(-3))" in html
    assert "esc(p.id_number)}" not in html


def test_doctor_view_lists_room_history(client):
    html = client.get("/doctor?room=4").text

    assert 'id="history"' in html
    assert "/rooms/${ROOM}/patients" in html
    assert "const ROOM = 4;" in html


def test_board_view_listens_for_events(client):
    html = client.get("/board").text

    assert "new EventSource('/display/events')" in html
    assert "'Z'" not in html
