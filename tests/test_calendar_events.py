from lms_app import db
from lms_app.models import Classroom, Enrollment


def _event(client, **overrides):
    body = {"title": "Midterm", "type": "academic", "date": "2026-11-02T09:00:00"}
    body.update(overrides)
    return client.post("/api/calendar-events", json=body)


def test_professor_manages_events(client, classroom, login):
    login("ada@example.com")
    resp = _event(client, class_id=classroom, priority="high", category="exam")
    assert resp.status_code == 201
    event = resp.get_json()["data"]["event"]
    assert event["class_name"] == "Algorithms"
    assert event["priority"] == "high"
    _event(client, title="Diwali", type="holiday", date="2026-10-20")
    _event(client, title="Grade papers", type="todo", date="2026-11-10")

    events = client.get("/api/calendar-events").get_json()["data"]["events"]
    assert [e["title"] for e in events] == ["Diwali", "Midterm", "Grade papers"]
    todos = client.get("/api/calendar-events?type=todo").get_json()["data"]["events"]
    assert [e["title"] for e in todos] == ["Grade papers"]
    window = client.get(
        "/api/calendar-events?start_date=2026-11-01&end_date=2026-11-05"
    ).get_json()["data"]["events"]
    assert [e["title"] for e in window] == ["Midterm"]

    resp = client.put(f"/api/calendar-events/{event['id']}", json={"date": "2026-11-03T09:00:00", "priority": ""})
    assert resp.status_code == 200
    updated = resp.get_json()["data"]["event"]
    assert updated["date"].startswith("2026-11-03")
    assert updated["priority"] is None
    assert updated["title"] == "Midterm"

    assert client.delete(f"/api/calendar-events/{event['id']}").status_code == 200
    assert client.delete(f"/api/calendar-events/{event['id']}").status_code == 404


def test_event_validation(client, classroom, make_user, login):
    make_user("Grace Hopper", "grace@example.com", "professor")
    login("ada@example.com")
    assert _event(client, type="party").status_code == 400
    assert _event(client, date="someday").status_code == 400
    assert _event(client, title="  ").status_code == 400
    assert _event(client, priority="urgent").status_code == 400
    event_id = _event(client, class_id=classroom).get_json()["data"]["event"]["id"]

    login("grace@example.com")
    assert _event(client, class_id=classroom).status_code == 404
    assert client.put(f"/api/calendar-events/{event_id}", json={"title": "Mine"}).status_code == 404
    assert client.delete(f"/api/calendar-events/{event_id}").status_code == 404

    login("sam@example.com")
    assert _event(client).status_code == 403


def test_students_see_events_of_enrolled_classes(client, app, classroom, student, make_user, login):
    grace = make_user("Grace Hopper", "grace@example.com", "professor")
    with app.app_context():
        other = Classroom(name="Compilers", code="CS305", professor_id_fk=grace)
        db.session.add(other)
        db.session.commit()
        other_id = other.class_id

    login("ada@example.com")
    _event(client, title="Quiz day", class_id=classroom, date="2026-11-05")
    _event(client, title="Ada's todo", type="todo")
    login("grace@example.com")
    _event(client, title="Parser lab", class_id=other_id, date="2026-11-01")

    login("sam@example.com")
    events = client.get("/api/calendar-events").get_json()["data"]["events"]
    assert [e["title"] for e in events] == ["Quiz day"]

    with app.app_context():
        db.session.add(Enrollment(student_id_fk=student, class_id_fk=other_id))
        db.session.commit()
    events = client.get("/api/calendar-events").get_json()["data"]["events"]
    assert [e["title"] for e in events] == ["Parser lab", "Quiz day"]
