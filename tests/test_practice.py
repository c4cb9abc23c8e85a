from io import BytesIO


def _question(client, class_id, **overrides):
    body = {
        "class_id": class_id,
        "text": "Binary search runs in?",
        "type": "MULTIPLE_CHOICE",
        "difficulty": "easy",
        "points": 2,
        "explanation": "The range halves each step.",
        "options": [{"text": "O(n)", "is_correct": False}, {"text": "O(log n)", "is_correct": True}],
    }
    body.update(overrides)
    return client.post("/api/practice/questions", json=body)


def _option_ids(question):
    correct = [o["id"] for o in question["options"] if o["is_correct"]]
    wrong = [o["id"] for o in question["options"] if not o["is_correct"]]
    return correct, wrong


def test_question_validation(client, classroom, login):
    login("ada@example.com")
    resp = _question(client, classroom, options=[{"text": "A", "is_correct": True}, {"text": "B", "is_correct": True}])
    assert resp.status_code == 400
    resp = _question(client, classroom, options=[{"text": "Only", "is_correct": True}])
    assert resp.status_code == 400
    resp = _question(client, classroom, type="SHORT_ANSWER")
    assert resp.status_code == 400

    resp = _question(client, classroom, type="TRUE_FALSE", options=None, correct_answer="false")
    assert resp.status_code == 201
    options = resp.get_json()["data"]["options"]
    assert [(o["text"], o["is_correct"]) for o in options] == [("True", False), ("False", True)]


def test_students_see_questions_without_answers(client, classroom, login):
    login("ada@example.com")
    assert _question(client, classroom).status_code == 201
    _question(client, classroom, text="Hash lookup is?", difficulty="HARD")

    login("sam@example.com")
    questions = client.get(f"/api/practice/questions?class_id={classroom}").get_json()["data"]["questions"]
    assert len(questions) == 2
    for q in questions:
        assert "explanation" not in q
        assert all("is_correct" not in o for o in q["options"])
    hard = client.get(f"/api/practice/questions?class_id={classroom}&difficulty=hard").get_json()["data"]
    assert [q["text"] for q in hard["questions"]] == ["Hash lookup is?"]

    classes = client.get("/api/practice/classes").get_json()["data"]["classes"]
    assert classes[0]["question_count"] == 2


def test_attempts_are_scored_and_tracked(client, classroom, login):
    login("ada@example.com")
    question = _question(client, classroom).get_json()["data"]
    correct, wrong = _option_ids(question)

    login("sam@example.com")
    resp = client.post("/api/practice/attempts", json={
        "question_id": question["id"], "selected_option_ids": wrong, "time_spent": 12,
    })
    assert resp.status_code == 201
    result = resp.get_json()["data"]
    assert result["is_correct"] is False
    assert result["score"] == 0
    assert result["correct_option_ids"] == correct
    assert result["explanation"] == "The range halves each step."

    resp = client.post("/api/practice/attempts", json={
        "question_id": question["id"], "selected_option_ids": correct, "time_spent": 8,
    })
    assert resp.get_json()["data"]["score"] == 2

    stats = client.get("/api/practice/stats").get_json()["data"]
    assert stats["total_attempts"] == 2
    assert stats["correct_attempts"] == 1
    assert stats["accuracy"] == 50.0
    assert stats["questions_attempted"] == 1
    assert stats["total_questions"] == 1
    assert stats["total_time_spent"] == 20

    assert client.post("/api/practice/attempts", json={
        "question_id": question["id"], "selected_option_ids": [],
    }).status_code == 400

    login("ada@example.com")
    teacher = client.get(f"/api/practice/teacher/stats?class_id={classroom}").get_json()["data"]
    assert teacher["total_attempts"] == 2
    assert teacher["question_stats"][0]["success_rate"] == 50.0
    assert teacher["student_stats"][0]["student_email"] == "sam@example.com"


def test_multiple_selection_needs_exact_set(client, classroom, login):
    login("ada@example.com")
    question = _question(client, classroom, type="MULTIPLE_SELECTION", options=[
        {"text": "Stack", "is_correct": True},
        {"text": "Queue", "is_correct": True},
        {"text": "Banana", "is_correct": False},
    ]).get_json()["data"]
    correct, wrong = _option_ids(question)

    login("sam@example.com")
    partial = client.post("/api/practice/attempts", json={"question_id": question["id"], "selected_option_ids": correct[:1]})
    assert partial.get_json()["data"]["is_correct"] is False
    full = client.post("/api/practice/attempts", json={"question_id": question["id"], "selected_option_ids": correct})
    assert full.get_json()["data"]["is_correct"] is True


def test_outsiders_cannot_attempt(client, classroom, make_user, login):
    make_user("Out Sider", "out@example.com")
    login("ada@example.com")
    question = _question(client, classroom).get_json()["data"]

    login("out@example.com")
    correct, _ = _option_ids(question)
    resp = client.post("/api/practice/attempts", json={"question_id": question["id"], "selected_option_ids": correct})
    assert resp.status_code == 404
    assert client.get(f"/api/practice/questions?class_id={classroom}").status_code == 404


def test_update_and_delete_question(client, classroom, login):
    login("ada@example.com")
    question_id = _question(client, classroom).get_json()["data"]["id"]
    resp = client.put(f"/api/practice/questions/{question_id}", json={
        "difficulty": "HARD",
        "options": [{"text": "O(1)"}, {"text": "O(log n)", "is_correct": True}, {"text": "O(n)"}],
    })
    data = resp.get_json()["data"]
    assert data["difficulty"] == "HARD"
    assert len(data["options"]) == 3
    assert client.delete(f"/api/practice/questions/{question_id}").status_code == 200
    assert client.get(f"/api/practice/questions/{question_id}").status_code == 404


def test_practice_files(client, classroom, login):
    login("ada@example.com")
    resp = client.post("/api/practice/files", data={
        "class_id": str(classroom),
        "file": (BytesIO(b"slides"), "week1.pptx"),
    }, content_type="multipart/form-data")
    assert resp.status_code == 201
    record = resp.get_json()["data"]
    assert record["title"] == "week1.pptx"
    assert record["file_url"].startswith("/uploads/practice/")

    resp = client.post("/api/practice/files", json={"class_id": classroom, "file_url": "/etc/passwd"})
    assert resp.status_code == 400
    resp = client.post("/api/practice/files", json={"class_id": classroom, "file_url": "/uploads/submissions/x.pdf"})
    assert resp.status_code == 400
    resp = client.post("/api/practice/files", json={
        "class_id": classroom, "file_url": "/uploads/practice/shared.pdf", "title": "Shared notes",
    })
    assert resp.status_code == 201

    login("sam@example.com")
    files = client.get(f"/api/practice/files?class_id={classroom}").get_json()["data"]["files"]
    assert {f["title"] for f in files} == {"week1.pptx", "Shared notes"}
    assert client.get(record["file_url"]).status_code == 200
    assert client.delete(f"/api/practice/files/{record['id']}").status_code == 403

    login("ada@example.com")
    assert client.delete(f"/api/practice/files/{record['id']}").status_code == 200


def test_changing_type_revalidates_options(client, classroom, login):
    login("ada@example.com")
    question = _question(client, classroom, type="MULTIPLE_SELECTION", options=[
        {"text": "Stack", "is_correct": True},
        {"text": "Queue", "is_correct": True},
        {"text": "Tree", "is_correct": False},
    ]).get_json()["data"]
    url = f"/api/practice/questions/{question['id']}"

    assert client.put(url, json={"type": "MULTIPLE_CHOICE"}).status_code == 400
    assert client.get(url).get_json()["data"]["type"] == "MULTIPLE_SELECTION"
    assert client.put(url, json={"type": "TRUE_FALSE"}).status_code == 400

    resp = client.put(url, json={"type": "TRUE_FALSE", "correct_answer": "true"})
    assert resp.status_code == 200
    assert [o["text"] for o in resp.get_json()["data"]["options"]] == ["True", "False"]
    resp = client.put(url, json={"type": "MULTIPLE_CHOICE"})
    assert resp.status_code == 200
