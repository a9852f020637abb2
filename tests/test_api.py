import asyncio
import datetime

import pytest
from fastapi.testclient import TestClient

from school_attendance.config import settings
from school_attendance.database import build_engine
from school_attendance.errors import TransportError
from school_attendance.main import app
from school_attendance.models import Base
from school_attendance.routers import notifications as notifications_module

DIMENSION = 128


def face(axis: int, scale: float = 1.0) -> list[float]:
    vector = [0.0] * DIMENSION
    vector[axis] = scale
    return vector


async def _reset_schema():
    engine = build_engine(settings.DATABASE_URL)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    await engine.dispose()


@pytest.fixture
def client():
    asyncio.run(_reset_schema())
    with TestClient(app) as test_client:
        yield test_client


def register(client, user_id, name, axis, employee_id=None):
    return client.post(
        "/persons/register",
        json={
            "user_id": user_id,
            "display_name": name,
            "embedding": face(axis),
            "employee_id": employee_id,
        },
    )


def test_health(client):
    assert client.get("/health/").json()["status"] == "ok"
    assert client.get("/health/db").json() == {"status": "up", "database": "connected"}


def test_register_then_identify_marks_once(client):
    assert register(client, "stu-1", "Ada", 0).status_code == 200
    assert register(client, "stu-2", "Alan", 1).status_code == 200

    first = client.post("/attendance/identify", json={"embedding": face(0), "camera_id": "gate"})
    second = client.post("/attendance/identify", json={"embedding": face(0)})

    body = first.json()
    assert body["status"] == "success"
    assert body["user_id"] == "stu-1"
    assert body["attendance_status"] in ("present", "late")
    assert body["confidence"] == pytest.approx(1.0)
    assert second.json()["status"] == "ignored"

    history = client.get("/attendance/history").json()
    assert len(history) == 1
    assert history[0]["source"]["camera_id"] == "gate"
    assert client.get("/attendance/users/stu-1/count").json()["count"] == 1


def test_unknown_face(client):
    register(client, "stu-1", "Ada", 0)

    response = client.post("/attendance/identify", json={"embedding": face(5)})

    assert response.status_code == 200
    assert response.json()["status"] == "unknown"


def test_registration_rejects_duplicates_and_bad_descriptors(client):
    register(client, "stu-1", "Ada", 0, employee_id="E-1")

    same_face = register(client, "stu-2", "Impostor", 0)
    same_employee = register(client, "stu-3", "Other", 2, employee_id="E-1")
    short = client.post(
        "/persons/register", json={"user_id": "stu-4", "embedding": [0.1, 0.2]}
    )

    assert same_face.status_code == 400
    assert "Face already registered" in same_face.json()["detail"]
    assert same_employee.status_code == 400
    assert short.status_code == 400
    assert [p["user_id"] for p in client.get("/persons/").json()] == ["stu-1"]


def test_absentees_mark_and_stats(client):
    for user_id, axis in (("stu-1", 0), ("stu-2", 1), ("stu-3", 2)):
        register(client, user_id, user_id.upper(), axis)
    client.post("/attendance/identify", json={"embedding": face(0)})
    today = datetime.date.today().isoformat()

    computed = client.get("/attendance/absentees", params={"date": today}).json()
    assert sorted(a["user_id"] for a in computed) == ["stu-2", "stu-3"]

    first = client.post("/attendance/absentees/mark", json={"date": today}).json()
    second = client.post("/attendance/absentees/mark", json={"date": today}).json()
    assert first["absentees_marked"] == 2
    assert second["absentees_marked"] == 0

    recorded = client.get("/attendance/absentees/recorded", params={"date": today}).json()
    assert sorted(a["display_name"] for a in recorded) == ["STU-2", "STU-3"]

    stats = client.get("/attendance/stats", params={"date": today}).json()
    assert stats["total"] == 3
    assert stats["present"] + stats["late"] == 1
    assert stats["absent"] == 2
    assert stats["absent_percentage"] == 67


def test_bad_date_is_rejected(client):
    response = client.get("/attendance/absentees", params={"date": "04/03/2024"})
    assert response.status_code == 400


def test_contacts_crud(client):
    created = client.post(
        "/contacts/",
        json={
            "student_id": "stu-1",
            "name": "Parent",
            "email": "p@example.com",
            "notification_preferences": {"email": True, "sms": False},
        },
    )
    assert created.status_code == 201
    contact_id = created.json()["id"]

    assert client.get(f"/contacts/{contact_id}").json()["email"] == "p@example.com"
    assert len(client.get("/contacts/", params={"student_id": "stu-1"}).json()) == 1
    assert client.delete(f"/contacts/{contact_id}").status_code == 204
    assert client.get(f"/contacts/{contact_id}").status_code == 404
    assert client.delete(f"/contacts/{contact_id}").status_code == 404


def test_send_single_notification(client):
    response = client.post(
        "/notifications/send",
        json={"type": "sms", "recipient": "+15550100", "message": "Hello"},
    )

    body = response.json()
    assert body["success"] is True
    assert body["data"]["method"] == "sms"
    assert body["data"]["id"]
    assert body["message"] == "SMS notification sent successfully"


def test_send_reports_transport_failure(client, monkeypatch):
    class RejectingEmail:
        async def send(self, to, subject, body):
            raise TransportError("mailbox full")

    monkeypatch.setattr(notifications_module, "get_email_transport", RejectingEmail)

    response = client.post(
        "/notifications/send",
        json={"type": "email", "recipient": "p@example.com", "subject": "S", "message": "M"},
    )

    assert response.status_code == 502
    assert response.json() == {"success": False, "error": "mailbox full"}


def test_notify_absentees_logs_each_delivery(client):
    register(client, "stu-1", "Ada", 0)
    register(client, "stu-2", "Alan", 1)
    client.post(
        "/contacts/",
        json={
            "student_id": "stu-1",
            "name": "Mrs Lovelace",
            "email": "ada.parent@example.com",
            "notification_preferences": {"email": True},
        },
    )
    today = datetime.date.today().isoformat()
    client.post("/attendance/absentees/mark", json={"date": today})

    summary = client.post("/notifications/absentees", json={"date": today}).json()

    # stu-2 has no contact on file.
    assert summary == {"sent": 1, "failed": 1}
    logs = client.get("/notifications/logs").json()
    assert len(logs) == 1
    assert logs[0]["status"] == "sent"
    assert logs[0]["email_status"] == "sent"
    assert logs[0]["sms_status"] == "skipped"
    assert logs[0]["student_name"] == "Ada"


def test_identify_rejects_wrong_dimension(client):
    register(client, "stu-1", "Ada", 0)

    response = client.post("/attendance/identify", json={"embedding": [0.1] * 512})

    assert response.status_code == 400
    assert "expected 128" in response.json()["detail"]
    assert client.get("/attendance/history").json() == []
