import os
from datetime import timedelta
from io import BytesIO

from lms_app.models import utc_now


def _create_assignment(client, class_id, **overrides):
    body = {
        "title": "Problem set 1",
        "class_id": class_id,
        "status": "PUBLISHED",
        "due_date": (utc_now() + timedelta(days=3)).isoformat(),
        "max_grade": 50,
    }
    body.update(overrides)
    return client.post("/api/assignments", json=body)


def _submit(client, assignment_id, filename="work.pdf", body=b"%PDF-1.4 my answers", comment=None):
    data = {"assignment_id": str(assignment_id), "file": (BytesIO(body), filename)}
    if comment:
        data["comment"] = comment
    return client.post("/api/assignments/submit", data=data, content_type="multipart/form-data")


def test_create_and_list_assignments(client, classroom, login):
    login("ada@example.com")
    resp = _create_assignment(client, classroom)
    assert resp.status_code == 201
    assignment = resp.get_json()["data"]
    assert assignment["max_grade"] == 50
    _create_assignment(client, classroom, title="Draft set", status="DRAFT")

    listing = client.get("/api/assignments").get_json()["data"]["assignments"]
    assert len(listing) == 2
    assert all(a["submission_count"] == 0 for a in listing)

    assert _create_assignment(client, classroom, max_grade=0).status_code == 400
    assert _create_assignment(client, classroom, max_grade="nan").status_code == 400

    login("sam@example.com")
    listing = client.get("/api/assignments").get_json()["data"]["assignments"]
    assert [a["title"] for a in listing] == ["Problem set 1"]
    assert listing[0]["submitted"] is False
    items = client.get("/api/notifications").get_json()["data"]["items"]
    assert [i["type"] for i in items] == ["assignment"]


def test_submission_upload_checks(client, app, classroom, login):
    login("ada@example.com")
    assignment_id = _create_assignment(client, classroom).get_json()["data"]["id"]

    login("sam@example.com")
    resp = client.post("/api/assignments/submit", data={"assignment_id": str(assignment_id)},
                       content_type="multipart/form-data")
    assert resp.get_json()["error"]["code"] == "file_required"

    resp = _submit(client, assignment_id, filename="run.exe")
    assert resp.status_code == 400
    assert resp.get_json()["error"]["code"] == "invalid_file_type"

    resp = _submit(client, assignment_id, filename="домашка.pdf")
    assert resp.status_code == 201
    submission = resp.get_json()["data"]
    assert submission["original_filename"] == "домашка.pdf"
    assert submission["file_url"].endswith("_upload.pdf")

    app.config["ASSIGNMENT_MAX_UPLOAD_BYTES"] = 8
    resp = _submit(client, assignment_id)
    assert resp.status_code == 400
    assert resp.get_json()["error"]["code"] == "file_too_large"


def test_submission_gates(client, classroom, make_user, login):
    make_user("Outsider", "out@example.com")
    login("ada@example.com")
    draft_id = _create_assignment(client, classroom, status="DRAFT").get_json()["data"]["id"]
    closed_id = _create_assignment(
        client, classroom, due_date=(utc_now() - timedelta(days=1)).isoformat()
    ).get_json()["data"]["id"]
    open_id = _create_assignment(client, classroom).get_json()["data"]["id"]

    login("sam@example.com")
    resp = _submit(client, draft_id)
    assert resp.get_json()["error"]["code"] == "assignment_not_open"
    resp = _submit(client, closed_id)
    assert resp.status_code == 400
    assert resp.get_json()["error"]["code"] == "past_due"
    assert client.get(f"/api/assignments/{closed_id}/submission").get_json()["data"]["can_submit"] is False
    assert _submit(client, 9999).status_code == 404

    login("out@example.com")
    assert _submit(client, open_id).status_code == 403


def test_submit_resubmit_and_grade(client, app, classroom, login):
    login("ada@example.com")
    assignment_id = _create_assignment(client, classroom).get_json()["data"]["id"]

    login("sam@example.com")
    resp = _submit(client, assignment_id, comment="First try")
    assert resp.status_code == 201
    submission = resp.get_json()["data"]
    assert submission["is_resubmission"] is False
    assert submission["original_filename"] == "work.pdf"
    assert submission["file_url"].startswith("/uploads/submissions/")
    stored = os.listdir(os.path.join(app.config["UPLOAD_ROOT"], "submissions"))
    assert len(stored) == 1
    assert client.get(submission["file_url"]).status_code == 200

    login("ada@example.com")
    overview = client.get(f"/api/assignments/{assignment_id}/submissions").get_json()["data"]
    assert overview["stats"] == {"total_enrolled": 1, "total_submitted": 1, "total_graded": 0}
    assert overview["not_submitted"] == []
    notes = client.get("/api/notifications").get_json()["data"]["items"]
    assert notes[0]["title"] == "New assignment submission"

    grade_url = f"/api/assignments/submissions/{submission['id']}/grade"
    resp = client.post(grade_url, json={})
    assert resp.get_json()["error"]["message"] == "Grade is required"
    resp = client.post(grade_url, json={"grade": -1})
    assert resp.get_json()["error"]["message"] == "Grade must be a non-negative number"
    resp = client.post(grade_url, json={"grade": 60})
    assert resp.get_json()["error"]["message"] == "Grade cannot exceed 50"
    for bogus in ("nan", "inf", "-inf"):
        resp = client.post(grade_url, json={"grade": bogus})
        assert resp.status_code == 400
    assert client.get(f"/api/assignments/{assignment_id}/submissions").get_json()["data"]["stats"]["total_graded"] == 0
    resp = client.post(grade_url, json={"grade": 45, "feedback": "Solid work"})
    assert resp.status_code == 200
    assert resp.get_json()["data"]["grade"] == 45

    login("sam@example.com")
    types = [i["type"] for i in client.get("/api/notifications").get_json()["data"]["items"]]
    assert "assignment_graded" in types
    mine = client.get(f"/api/assignments/{assignment_id}/submission").get_json()["data"]
    assert mine["submission"]["feedback"] == "Solid work"
    assert mine["can_submit"] is True

    resp = _submit(client, assignment_id, filename="work-v2.docx")
    assert resp.status_code == 200
    resubmitted = resp.get_json()["data"]
    assert resubmitted["is_resubmission"] is True
    assert resubmitted["id"] == submission["id"]
    assert resubmitted["grade"] is None
    assert resubmitted["feedback"] is None
    assert resubmitted["resubmission_count"] == 1


def test_other_professor_cannot_grade(client, classroom, make_user, login):
    make_user("Other Prof", "other@example.com", "professor")
    login("ada@example.com")
    assignment_id = _create_assignment(client, classroom).get_json()["data"]["id"]
    login("sam@example.com")
    submission_id = _submit(client, assignment_id).get_json()["data"]["id"]

    login("other@example.com")
    resp = client.post(f"/api/assignments/submissions/{submission_id}/grade", json={"grade": 10})
    assert resp.status_code == 404
    assert client.get(f"/api/assignments/{assignment_id}/submissions").status_code == 404


def test_submitted_files_are_private_to_student_and_professor(client, classroom, make_user, login):
    make_user("Lee Chen", "lee@example.com")
    make_user("Other Prof", "other@example.com", "professor")
    login("ada@example.com")
    assignment_id = _create_assignment(client, classroom).get_json()["data"]["id"]
    login("sam@example.com")
    file_url = _submit(client, assignment_id).get_json()["data"]["file_url"]
    assert client.get(file_url).status_code == 200

    login("ada@example.com")
    assert client.get(file_url).status_code == 200

    login("lee@example.com")
    assert client.get(file_url).status_code == 404
    login("other@example.com")
    assert client.get(file_url).status_code == 404
    assert client.get("/uploads/submissions/missing.pdf").status_code == 404


def test_student_marks_assignment_viewed(client, classroom, make_user, login):
    make_user("Outsider", "out@example.com")
    login("ada@example.com")
    open_id = _create_assignment(client, classroom).get_json()["data"]["id"]
    draft_id = _create_assignment(client, classroom, status="DRAFT").get_json()["data"]["id"]
    assert client.post(f"/api/assignments/{open_id}/view").status_code == 403

    login("sam@example.com")
    listing = client.get("/api/assignments").get_json()["data"]["assignments"]
    assert listing[0]["viewed"] is False
    assert client.get("/api/dashboard/student/unread-counts").get_json()["data"]["assignments"] == 1

    assert client.post(f"/api/assignments/{open_id}/view").get_json()["data"] == {"viewed": True}
    assert client.post(f"/api/assignments/{open_id}/view").status_code == 200
    assert client.post(f"/api/assignments/{draft_id}/view").status_code == 404
    listing = client.get("/api/assignments").get_json()["data"]["assignments"]
    assert listing[0]["viewed"] is True
    assert client.get("/api/dashboard/student/unread-counts").get_json()["data"]["assignments"] == 0

    login("out@example.com")
    assert client.post(f"/api/assignments/{open_id}/view").status_code == 404
