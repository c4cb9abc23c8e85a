QUESTIONS = [
    {"text": "2 + 2 = 4", "type": "TRUE_FALSE", "correct_answer": "True", "points": 1},
    {"text": "Pick the prime", "type": "MULTIPLE_CHOICE", "options": ["4", "6", "7"], "correct_answer": "7", "points": 2},
    {"text": "Pick the even numbers", "type": "MULTIPLE_SELECTION", "options": ["2", "3", "4"],
     "correct_answers": ["2", "4"], "points": 3},
]


def _create_quiz(client, class_id, **overrides):
    body = {"title": "Warm-up", "class_id": class_id, "questions": QUESTIONS,
            "status": "PUBLISHED", "max_attempts": 2}
    body.update(overrides)
    return client.post("/api/quizzes", json=body)


def _answers(quiz, choices):
    return [{"question_id": q["id"], "selected_options": choice} for q, choice in zip(quiz["questions"], choices)]


def test_create_quiz_builds_questions(client, classroom, login):
    login("ada@example.com")
    resp = _create_quiz(client, classroom)
    assert resp.status_code == 201
    quiz = resp.get_json()["data"]
    assert quiz["total_points"] == 6
    assert [q["type"] for q in quiz["questions"]] == ["TRUE_FALSE", "MULTIPLE_CHOICE", "MULTIPLE_SELECTION"]
    tf = quiz["questions"][0]["options"]
    assert [(o["text"], o["is_correct"]) for o in tf] == [("True", True), ("False", False)]


def test_invalid_questions_are_reported_together(client, classroom, login):
    login("ada@example.com")
    resp = _create_quiz(client, classroom, questions=[
        {"text": "Fine", "type": "TRUE_FALSE", "correct_answer": "false"},
        {"text": "", "type": "MULTIPLE_CHOICE"},
        {"text": "Missing answer", "type": "MULTIPLE_CHOICE", "options": ["a", "b"], "correct_answer": "c"},
    ])
    assert resp.status_code == 400
    details = resp.get_json()["error"]["details"]
    assert len(details) == 2
    assert details[0].startswith("Question 2:")
    assert details[1].startswith("Question 3:")

    resp = _create_quiz(client, classroom, questions=[])
    assert resp.status_code == 400


def test_students_do_not_see_answers(client, classroom, login):
    login("ada@example.com")
    quiz_id = _create_quiz(client, classroom).get_json()["data"]["id"]

    login("sam@example.com")
    quiz = client.get(f"/api/quizzes/{quiz_id}").get_json()["data"]
    for question in quiz["questions"]:
        assert all("is_correct" not in o for o in question["options"])
    listing = client.get("/api/quizzes").get_json()["data"]["quizzes"][0]
    assert listing["can_attempt"] is True
    assert listing["attempts_used"] == 0


def test_submission_is_graded_and_attempts_are_capped(client, classroom, login):
    login("ada@example.com")
    quiz = _create_quiz(client, classroom).get_json()["data"]

    login("sam@example.com")
    resp = client.post("/api/quizzes/submit", json={
        "quiz_id": quiz["id"],
        "answers": _answers(quiz, [["True"], ["6"], ["4", "2"]]),
    })
    assert resp.status_code == 201
    result = resp.get_json()["data"]
    assert result["score"] == 4
    assert result["total_points"] == 6
    assert result["percentage"] == 66.67
    assert result["attempts_remaining"] == 1

    # Skipped questions still count toward the total
    resp = client.post("/api/quizzes/submit", json={
        "quiz_id": quiz["id"],
        "answers": _answers(quiz, [["True"]]),
    })
    assert resp.get_json()["data"]["percentage"] == 16.67

    resp = client.post("/api/quizzes/submit", json={"quiz_id": quiz["id"], "answers": _answers(quiz, [["True"]])})
    assert resp.status_code == 400
    assert resp.get_json()["error"]["code"] == "max_attempts_reached"

    attempts = client.get(f"/api/quizzes/{quiz['id']}/attempts").get_json()["data"]["attempts"]
    assert len(attempts) == 2

    login("ada@example.com")
    stats = client.get(f"/api/quizzes/{quiz['id']}/stats").get_json()["data"]
    assert stats["total_attempts"] == 2
    assert stats["unique_students"] == 1
    assert stats["question_stats"][0]["success_rate"] == 100.0


def test_draft_quiz_rejects_submissions(client, classroom, login):
    login("ada@example.com")
    quiz = _create_quiz(client, classroom, status="DRAFT").get_json()["data"]

    login("sam@example.com")
    assert client.get("/api/quizzes").get_json()["data"]["quizzes"] == []
    resp = client.post("/api/quizzes/submit", json={"quiz_id": quiz["id"], "answers": _answers(quiz, [["True"]])})
    assert resp.status_code == 400
    assert resp.get_json()["error"]["code"] == "quiz_not_open"


def test_publishing_quiz_notifies_students(client, classroom, login):
    login("ada@example.com")
    quiz_id = _create_quiz(client, classroom, status="DRAFT").get_json()["data"]["id"]
    resp = client.put(f"/api/quizzes/{quiz_id}", json={"status": "PUBLISHED", "time_limit": 15})
    assert resp.get_json()["data"]["time_limit"] == 15

    login("sam@example.com")
    items = client.get("/api/notifications").get_json()["data"]["items"]
    assert [i["type"] for i in items] == ["quiz"]
    assert client.get("/api/dashboard/student/unread-counts").get_json()["data"]["quizzes"] == 1
    client.post(f"/api/quizzes/{quiz_id}/view")
    assert client.get("/api/dashboard/student/unread-counts").get_json()["data"]["quizzes"] == 0


def test_replacing_questions_keeps_quiz(client, classroom, login):
    login("ada@example.com")
    quiz_id = _create_quiz(client, classroom).get_json()["data"]["id"]
    resp = client.put(f"/api/quizzes/{quiz_id}", json={
        "questions": [{"text": "Only one", "type": "TRUE_FALSE", "correct_answer": "false", "points": 5}],
    })
    data = resp.get_json()["data"]
    assert data["question_count"] == 1
    assert data["total_points"] == 5
