from config.session_config import MINUTE_MS
from session_timeout.policy import now_ms

from conftest import iso, login_as


def attempt_row(minutes_ago, duration=60):
    return {
        "attempt_id": "att-1",
        "exam_id": "exam-9",
        "start_time": iso(now_ms() - minutes_ago * MINUTE_MS),
        "status": "in_progress",
        "exam_title": "Physics Midterm",
        "duration": duration,
    }


def test_running_attempt_is_returned(client, db):
    db.active_attempt = attempt_row(minutes_ago=15)
    login_as(client, "student", user_id=3)

    body = client.get("/api/attempts/active").get_json()

    attempt = body["attempt"]
    assert attempt["attempt_id"] == "att-1"
    assert attempt["exam_title"] == "Physics Midterm"
    assert attempt["duration"] == 60
    assert 44 * 60 <= attempt["remaining_seconds"] <= 45 * 60


def test_expired_attempt_is_not_returned(client, db):
    db.active_attempt = attempt_row(minutes_ago=65)
    login_as(client, "student")
    assert client.get("/api/attempts/active").get_json()["attempt"] is None


def test_no_attempt(client, db):
    login_as(client, "student")
    assert client.get("/api/attempts/active").get_json() == {"status": "success", "attempt": None}


def test_admins_never_get_an_attempt(client, db):
    db.active_attempt = attempt_row(minutes_ago=1)
    login_as(client, "admin")
    assert client.get("/api/attempts/active").get_json()["attempt"] is None
    assert db.attempt_lookups == 0


def test_lookup_failure_is_a_server_error(client, db):
    db.active_attempt = RuntimeError("db down")
    login_as(client, "student")
    response = client.get("/api/attempts/active")
    assert response.status_code == 500


def test_anti_cheat_event_is_logged(client, db):
    db.add("exam_attempts", id="att-1", student_id=3)
    login_as(client, "student", user_id=3)

    response = client.post("/api/attempts/att-1/anti-cheat",
                           json={"event_type": "tab_switch", "metadata": {"count": 2}})

    assert response.status_code == 200
    [log] = db.tables["anti_cheat_logs"]
    assert log["attempt_id"] == "att-1"
    assert log["event_type"] == "tab_switch"
    assert log["metadata"].obj == {"count": 2}


def test_anti_cheat_event_needs_a_type(client, db):
    login_as(client, "student")
    assert client.post("/api/attempts/att-1/anti-cheat", json={}).status_code == 400


def test_anti_cheat_event_on_someone_elses_attempt(client, db):
    db.add("exam_attempts", id="att-1", student_id=99)
    login_as(client, "student", user_id=3)
    response = client.post("/api/attempts/att-1/anti-cheat", json={"event_type": "copy"})
    assert response.status_code == 404
