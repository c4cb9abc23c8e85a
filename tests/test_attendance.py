from datetime import datetime

import pytest

from lms_app.api_utils import ValidationError
from lms_app.attendance.routes import report_window


@pytest.fixture()
def roster(make_user, classroom):
    """Second enrolled student plus one outsider; returns their ids."""
    lee = make_user("Lee Chen", "lee@example.com")
    outsider = make_user("Out Sider", "out@example.com")
    return lee, outsider


def _enroll(app, class_id, student_id):
    from lms_app import db
    from lms_app.models import Enrollment
    with app.app_context():
        db.session.add(Enrollment(student_id_fk=student_id, class_id_fk=class_id))
        db.session.commit()


def _session(client, class_id, date, title=None):
    resp = client.post("/api/attendance/sessions", json={"class_id": class_id, "date": date, "title": title})
    assert resp.status_code == 201
    return resp.get_json()["data"]["id"]


def _mark_march(app, client, classroom, student, roster, login):
    lee, outsider = roster
    _enroll(app, classroom, lee)
    login("ada@example.com")
    first = _session(client, classroom, "2026-03-02T09:00:00", "Lecture 1")
    second = _session(client, classroom, "2026-03-03T09:00:00", "Lecture 2")
    resp = client.put("/api/attendance/mark", json={"session_id": first, "records": [
        {"student_id": student, "status": "present"},
        {"student_id": lee, "status": "EXCUSED", "notes": "Doctor"},
        {"student_id": outsider, "status": "PRESENT"},
    ]})
    assert resp.status_code == 200
    assert resp.get_json()["data"]["skipped"] == [outsider]
    resp = client.post("/api/attendance/mark", json={"session_id": second, "student_id": student, "status": "LATE"})
    assert resp.get_json()["data"]["status"] == "LATE"
    return first, second


def test_session_detail_lists_unmarked_students(client, app, classroom, student, roster, login):
    first, second = _mark_march(app, client, classroom, student, roster, login)
    detail = client.get(f"/api/attendance/sessions/{second}").get_json()["data"]
    assert [r["status"] for r in detail["records"]] == ["LATE"]
    assert [s["email"] for s in detail["unmarked_students"]] == ["lee@example.com"]

    sessions = client.get(f"/api/attendance/sessions?class_id={classroom}").get_json()["data"]["sessions"]
    assert [s["id"] for s in sessions] == [second, first]


def test_marking_validation(client, classroom, student, roster, login):
    lee, outsider = roster
    login("ada@example.com")
    session_id = _session(client, classroom, "2026-03-02")
    resp = client.post("/api/attendance/mark", json={"session_id": session_id, "student_id": student, "status": "HERE"})
    assert resp.status_code == 400
    resp = client.post("/api/attendance/mark", json={"session_id": session_id, "student_id": outsider, "status": "PRESENT"})
    assert resp.get_json()["error"]["code"] == "not_enrolled"

    # Re-marking updates the existing record
    client.post("/api/attendance/mark", json={"session_id": session_id, "student_id": student, "status": "ABSENT"})
    client.post("/api/attendance/mark", json={"session_id": session_id, "student_id": student, "status": "PRESENT"})
    detail = client.get(f"/api/attendance/sessions/{session_id}").get_json()["data"]
    assert [r["status"] for r in detail["records"]] == ["PRESENT"]


def test_reports_use_weighted_rates(client, app, classroom, student, roster, login):
    _mark_march(app, client, classroom, student, roster, login)
    base = f"/api/attendance/reports?class_id={classroom}&period=custom&start_date=2026-03-01&end_date=2026-03-31"

    data = client.get(base).get_json()["data"]
    rows = {r["student_email"]: r for r in data["reports"]}
    assert rows["sam@example.com"]["attendance_rate"] == 75.0
    assert rows["sam@example.com"]["total_sessions"] == 2
    assert rows["lee@example.com"]["attendance_rate"] == 75.0
    assert rows["lee@example.com"]["total_sessions"] == 1
    assert data["summary"]["total_students"] == 2
    assert data["summary"]["date_range"] == {"start": "2026-03-01", "end": "2026-03-31"}

    data = client.get(base + "&include_not_marked=true").get_json()["data"]
    rows = {r["student_email"]: r for r in data["reports"]}
    assert rows["lee@example.com"]["attendance_rate"] == 37.5
    assert rows["lee@example.com"]["not_marked"] == 1
    assert [r["student_email"] for r in data["reports"]] == ["sam@example.com", "lee@example.com"]
    assert data["summary"]["average_attendance_rate"] == 56.25

    assert client.get(f"/api/attendance/reports?class_id={classroom}&period=yearly").status_code == 400
    assert client.get(f"/api/attendance/reports?class_id={classroom}&period=custom").status_code == 400


def test_class_report_and_print_view(client, app, classroom, student, roster, login):
    _mark_march(app, client, classroom, student, roster, login)
    url = f"/api/attendance/report?class_id={classroom}&start_date=2026-03-01&end_date=2026-03-02"
    report = client.get(url).get_json()["data"]
    assert report["total_sessions"] == 1
    assert report["teacher_name"] == "Ada Lovelace"
    rates = {s["student_email"]: s["attendance_rate"] for s in report["student_stats"]}
    assert rates == {"sam@example.com": 100.0, "lee@example.com": 75.0}
    assert report["average_attendance"] == 87.5
    assert report["daily_stats"][0]["excused"] == 1

    resp = client.get(f"/attendance/print?class_id={classroom}&start_date=2026-03-01&end_date=2026-03-31")
    assert resp.status_code == 200
    assert b"Algorithms" in resp.data
    assert client.get(f"/attendance/print?class_id={classroom}").status_code == 400


def test_attendance_analytics_by_role(client, app, classroom, student, roster, login):
    _mark_march(app, client, classroom, student, roster, login)
    overview = client.get(f"/api/attendance/analytics?class_id={classroom}&period=3650").get_json()["data"]
    assert overview["total_sessions"] == 2
    assert overview["total_present"] == 1
    assert overview["overall_attendance_rate"] == 75.0

    personal = client.get(
        f"/api/attendance/analytics?class_id={classroom}&student_id={student}&period=3650"
    ).get_json()["data"]
    assert personal["late"] == 1

    login("sam@example.com")
    mine = client.get(f"/api/attendance/analytics?class_id={classroom}&period=3650").get_json()["data"]
    assert mine["total_sessions"] == 2
    assert mine["attendance_rate"] == 75.0
    assert [s["status"] for s in mine["sessions"]] == ["LATE", "PRESENT"]
    sessions = client.get("/api/attendance/sessions").get_json()["data"]["sessions"]
    assert {s["my_status"] for s in sessions} == {"PRESENT", "LATE"}

    login("out@example.com")
    assert client.get(f"/api/attendance/analytics?class_id={classroom}").status_code == 403


def test_deleting_session_removes_records(client, classroom, student, login):
    login("ada@example.com")
    session_id = _session(client, classroom, "2026-03-02")
    client.post("/api/attendance/mark", json={"session_id": session_id, "student_id": student, "status": "PRESENT"})
    assert client.delete(f"/api/attendance/sessions/{session_id}").status_code == 200
    assert client.get(f"/api/attendance/sessions/{session_id}").status_code == 404


def test_report_window_periods():
    now = datetime(2026, 3, 18, 14, 30)
    assert report_window("daily", now=now) == (datetime(2026, 3, 18), datetime(2026, 3, 18, 23, 59, 59))
    assert report_window("weekly", now=now) == (datetime(2026, 3, 11, 14, 30), now)
    assert report_window("monthly", now=now) == (datetime(2026, 3, 1), now)
    start, end = report_window("custom", "2026-02-01", "2026-02-10", now=now)
    assert (start, end) == (datetime(2026, 2, 1), datetime(2026, 2, 10, 23, 59, 59))
    with pytest.raises(ValidationError):
        report_window("custom", "2026-02-10", "2026-02-01", now=now)
