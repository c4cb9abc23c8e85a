import json
from datetime import timedelta
from io import BytesIO

import pytest
from openpyxl import load_workbook

from lms_app.models import utc_now


@pytest.fixture()
def activity(client, classroom, student, login):
    """One quiz taken twice (0% then 100%), one assignment graded 45/50, one PRESENT mark."""
    login("ada@example.com")
    quiz = client.post("/api/quizzes", json={
        "title": "Check-in",
        "class_id": classroom,
        "status": "PUBLISHED",
        "max_attempts": 2,
        "questions": [{"text": "Sorted input helps binary search", "type": "TRUE_FALSE", "correct_answer": "true"}],
    }).get_json()["data"]
    assignment_id = client.post("/api/assignments", json={
        "title": "Essay",
        "class_id": classroom,
        "status": "PUBLISHED",
        "max_grade": 50,
        "due_date": (utc_now() + timedelta(days=5)).isoformat(),
    }).get_json()["data"]["id"]
    session_id = client.post("/api/attendance/sessions", json={
        "class_id": classroom, "date": utc_now().isoformat(),
    }).get_json()["data"]["id"]
    client.post("/api/attendance/mark", json={"session_id": session_id, "student_id": student, "status": "PRESENT"})

    login("sam@example.com")
    question_id = quiz["questions"][0]["id"]
    for choice in ("False", "True"):
        client.post("/api/quizzes/submit", json={
            "quiz_id": quiz["id"], "answers": [{"question_id": question_id, "selected_options": [choice]}],
        })
    submission_id = client.post("/api/assignments/submit", data={
        "assignment_id": str(assignment_id), "file": (BytesIO(b"essay text"), "essay.txt"),
    }, content_type="multipart/form-data").get_json()["data"]["id"]

    login("ada@example.com")
    client.post(f"/api/assignments/submissions/{submission_id}/grade", json={"grade": 45})
    return {"quiz_id": quiz["id"], "assignment_id": assignment_id}


def test_professor_analytics_overview(client, activity):
    data = client.get("/api/dashboard/analytics").get_json()["data"]
    assert data["total_students"] == 1
    assert data["total_classes"] == 1
    # Best quiz attempt (100) and assignment grade (90)
    assert data["average_grade"] == 95.0
    assert data["completion_rate"] == 100
    assert data["active_students"] == 1
    assert len(data["monthly_stats"]) == 6
    assert data["monthly_stats"][-1]["quizzes"] == 1
    assert data["performance_metrics"]["quiz_performance"] == 100

    breakdown = data["class_analytics"][0]
    assert breakdown["quiz_performance"]["total_attempts"] == 2
    assert breakdown["quiz_performance"]["average_score"] == 100.0
    assert breakdown["quiz_performance"]["top_performers"][0]["attempts_count"] == 2
    assert breakdown["assignment_performance"]["average_grade"] == 90.0
    assert breakdown["attendance_performance"]["average_attendance"] == 100.0
    assert breakdown["overall_performance"]["engagement_score"] == 100.0
    assert "generated_at" in data


def test_student_report(client, activity, student, make_user, login):
    report = client.get(f"/api/dashboard/students/{student}/analytics").get_json()["data"]
    assert report["quiz_performance"][0]["percentage"] == 100.0
    assert report["quiz_performance"][0]["attempts"] == 2
    assert report["overall_stats"]["average_assignment_grade"] == 90.0
    assert report["overall_stats"]["attendance_rate"] == 100.0
    assert report["overall_stats"]["completion_rate"] == 100.0
    assert report["assignment_submissions"][0]["status"] == "graded"

    make_user("Other Prof", "other@example.com", "professor")
    login("other@example.com")
    assert client.get(f"/api/dashboard/students/{student}/analytics").status_code == 403
    assert client.get("/api/dashboard/students/9999/analytics").status_code == 404

    login("sam@example.com")
    assert client.get(f"/api/dashboard/students/{student}/analytics").status_code == 200
    assert client.get(f"/students/{student}/print").status_code == 200


def test_dashboard_stats(client, activity, login):
    stats = client.get("/api/dashboard/professor/stats").get_json()["data"]
    assert stats["total_classes"] == 1
    assert stats["total_students"] == 1
    assert stats["pending_submissions"] == 0
    assert stats["average_score"] == 100
    assert {item["type"] for item in stats["recent_activity"]} == {"quiz", "assignment"}

    roster = client.get("/api/dashboard/students?query=sam").get_json()["data"]["students"]
    assert roster[0]["classes"][0]["code"] == "CS201"

    login("sam@example.com")
    stats = client.get("/api/dashboard/student/stats").get_json()["data"]
    assert stats["enrolled_classes"] == 1
    assert stats["completed_quizzes"] == 1
    assert stats["completed_assignments"] == 1
    assert stats["average_score"] == 100
    assert any(item["type"] == "assignment" and item["graded"] for item in stats["upcoming_deadlines"])

    due = client.get("/api/dashboard/student/assignments").get_json()["data"]["assignments"]
    assert due[0]["submitted"] is True
    assert due[0]["grade"] == 45
    performance = client.get("/api/dashboard/student/quiz-performance").get_json()["data"]["attempts"]
    assert [a["percentage"] for a in performance] == [100.0, 0.0]

    unread = client.get("/api/dashboard/student/unread-counts").get_json()["data"]
    assert unread["quizzes"] == 1
    assert unread["assignments"] == 1
    marked = client.post("/api/dashboard/student/mark-all-viewed").get_json()["data"]
    assert marked == {"notes_marked": 0, "quizzes_marked": 1, "assignments_marked": 1}
    unread = client.get("/api/dashboard/student/unread-counts").get_json()["data"]
    assert unread["quizzes"] == 0
    assert unread["assignments"] == 0
    assert client.get("/").status_code == 302
    assert client.get("/dashboard").status_code == 200


def test_export_formats(client, activity, login):
    resp = client.post("/api/dashboard/analytics/export", json={"format": "json"})
    assert resp.status_code == 200
    assert "analytics-" in resp.headers["Content-Disposition"]
    assert resp.headers["Content-Disposition"].endswith(".json")
    body = json.loads(resp.data)
    assert body["role"] == "professor"
    assert body["data"]["total_students"] == 1

    resp = client.post("/api/dashboard/analytics/export", json={"format": "xlsx"})
    assert resp.status_code == 200
    wb = load_workbook(BytesIO(resp.data))
    assert wb.sheetnames == ["Overview", "Monthly", "Classes"]
    assert wb["Classes"]["B2"].value == "CS201"

    assert client.post("/api/dashboard/analytics/export", json={"format": "csv"}).status_code == 400

    login("sam@example.com")
    resp = client.post("/api/dashboard/analytics/export", json={"format": "xlsx"})
    wb = load_workbook(BytesIO(resp.data))
    assert wb.sheetnames == ["Overview", "Quizzes", "Assignments", "Attendance"]
    assert wb["Quizzes"]["A2"].value == "Check-in"


def test_print_views_and_email_without_mail_server(client, activity):
    resp = client.get("/analytics/print")
    assert resp.status_code == 200
    assert b"CS201" in resp.data

    resp = client.post("/api/dashboard/analytics/email", json={"email": "not-an-address"})
    assert resp.status_code == 400
    resp = client.post("/api/dashboard/analytics/email", json={"email": "dean@example.com"})
    assert resp.status_code == 502
    assert resp.get_json()["error"]["code"] == "email_failed"


def test_students_cannot_read_professor_analytics(client, classroom, login):
    login("sam@example.com")
    assert client.get("/api/dashboard/analytics").status_code == 403
    assert client.get("/api/dashboard/professor/stats").status_code == 403


def test_rates_ignore_students_who_left(client, activity, classroom, student, make_user, login):
    make_user("Lee Chen", "lee@example.com")
    login("lee@example.com")
    assert client.post("/api/enrollments", json={"class_id": classroom}).status_code == 201
    client.post("/api/assignments/submit", data={
        "assignment_id": str(activity["assignment_id"]), "file": (BytesIO(b"lee essay"), "essay.txt"),
    }, content_type="multipart/form-data")

    login("sam@example.com")
    assert client.delete(f"/api/enrollments/{classroom}").status_code == 200
    stats = client.get("/api/dashboard/student/stats").get_json()["data"]
    assert stats["completed_quizzes"] == 0
    assert stats["completed_assignments"] == 0
    report = client.get(f"/api/dashboard/students/{student}/analytics").get_json()["data"]
    assert report["overall_stats"]["completion_rate"] == 0

    login("ada@example.com")
    data = client.get("/api/dashboard/analytics").get_json()["data"]
    assert data["total_students"] == 1
    assert data["completion_rate"] == 100
    assert data["active_students"] == 1
    assert data["performance_metrics"]["student_engagement"] == 100
    breakdown = data["class_analytics"][0]
    assert breakdown["quiz_performance"]["completion_rate"] == 0
    assert breakdown["assignment_performance"]["completion_rate"] == 100.0
    assert breakdown["overall_performance"]["completion_rate"] == 100.0
    assert breakdown["overall_performance"]["engagement_score"] == 33.33
