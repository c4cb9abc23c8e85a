from flask import request, current_app
from flask_login import login_required, current_user
from sqlalchemy import select
from . import quizzes_bp
from .services import build_questions, replace_questions, grade_submission
from .. import db, csrf_required
from ..access import owned_class, can_view_class, is_enrolled, enrolled_class_ids
from ..api_utils import (
    api_success, api_error, not_found, request_data, require_str, optional_str, parse_int,
    parse_choice, parse_datetime, validation_error, ValidationError,
)
from ..dashboard.services import quiz_statistics
from ..decorators import role_required
from ..models import Note, Quiz, QuizAttempt, QuizView, CONTENT_STATUSES, utc_now
from ..notifications.services import announce_to_class, email_users


def _quiz_payload(quiz, include_answers=False, with_questions=True):
    data = {
        "id": quiz.quiz_id,
        "title": quiz.title,
        "description": quiz.description,
        "status": quiz.status,
        "time_limit": quiz.time_limit,
        "max_attempts": quiz.max_attempts,
        "class_id": quiz.class_id_fk,
        "class_name": quiz.classroom.name if quiz.classroom else None,
        "note_id": quiz.note_id_fk,
        "total_points": quiz.total_points,
        "question_count": len(quiz.questions),
        "created_at": quiz.created_at.isoformat() if quiz.created_at else None,
    }
    if with_questions:
        questions = []
        for q in quiz.questions:
            item = {
                "id": q.question_id,
                "text": q.text,
                "type": q.question_type,
                "points": q.points,
                "order": q.position,
                "options": [],
            }
            for o in q.options:
                opt = {"id": o.option_id, "text": o.text, "order": o.position}
                if include_answers:
                    opt["is_correct"] = bool(o.is_correct)
                item["options"].append(opt)
            questions.append(item)
        data["questions"] = questions
    return data


def _apply_settings(quiz, data):
    if "title" in data:
        quiz.title = require_str(data, "title", max_length=255)
    if "description" in data:
        quiz.description = optional_str(data, "description")
    if "time_limit" in data:
        quiz.time_limit = parse_int(data.get("time_limit"), "time_limit", default=30, minimum=1, maximum=180)
    if "max_attempts" in data:
        quiz.max_attempts = parse_int(data.get("max_attempts"), "max_attempts", default=1, minimum=1, maximum=10)
    if "status" in data:
        quiz.status = parse_choice(data.get("status"), "status", CONTENT_STATUSES)
    if "note_id" in data:
        note_id = parse_int(data.get("note_id"), "note_id", default=0) or None
        if note_id:
            note = db.session.get(Note, note_id)
            if not note or note.professor_id_fk != current_user.user_id:
                raise ValidationError("note_id must reference one of your notes")
        quiz.note_id_fk = note_id


def _announce(quiz):
    return announce_to_class(
        quiz.classroom,
        "New quiz available",
        f"{quiz.title} is now available in {quiz.classroom.name}.",
        "quiz",
    )


@quizzes_bp.route("/api/quizzes", methods=["POST"])
@login_required
@role_required("professor")
@csrf_required
def create_quiz():
    data = request_data()
    try:
        title = require_str(data, "title", max_length=255)
        class_id = parse_int(data.get("class_id"), "class_id")
    except ValidationError as e:
        return validation_error(e)
    c = owned_class(class_id)
    if not c:
        return not_found("Class")
    quiz = Quiz(title=title, class_id_fk=class_id, professor_id_fk=current_user.user_id,
                status="DRAFT", time_limit=30, max_attempts=1)
    try:
        _apply_settings(quiz, data)
        build_questions(quiz, data.get("questions"))
    except ValidationError as e:
        db.session.rollback()
        return validation_error(e)
    db.session.add(quiz)
    db.session.flush()
    recipients = []
    if quiz.status == "PUBLISHED":
        recipients = _announce(quiz)
    db.session.commit()
    email_users(recipients, "new_quiz", classroom=quiz.classroom, quiz=quiz)
    current_app.logger.info(f"Quiz {quiz.quiz_id} created with {len(quiz.questions)} question(s)")
    return api_success(_quiz_payload(quiz, include_answers=True), status=201)


@quizzes_bp.route("/api/quizzes", methods=["GET"])
@login_required
def list_quizzes():
    try:
        class_id = parse_int(request.args.get("class_id"), "class_id", default=0) or None
    except ValidationError as e:
        return validation_error(e)
    q = select(Quiz)
    role = (current_user.role or "").lower()
    if role == "professor":
        q = q.filter(Quiz.professor_id_fk == current_user.user_id)
    elif role == "student":
        q = q.filter(Quiz.class_id_fk.in_(enrolled_class_ids(current_user.user_id)), Quiz.status != "DRAFT")
    if class_id:
        q = q.filter(Quiz.class_id_fk == class_id)
    quizzes = db.session.execute(q.order_by(Quiz.created_at.desc(), Quiz.quiz_id.desc())).scalars().all()

    items = []
    for quiz in quizzes:
        item = _quiz_payload(quiz, with_questions=False)
        if role == "student":
            mine = [a for a in quiz.attempts if a.student_id_fk == current_user.user_id]
            item["attempts_used"] = len(mine)
            item["best_percentage"] = max((a.percentage or 0 for a in mine), default=None)
            item["can_attempt"] = quiz.status == "PUBLISHED" and len(mine) < (quiz.max_attempts or 1)
        else:
            item["attempt_count"] = len(quiz.attempts)
        items.append(item)
    return api_success({"quizzes": items}, {"total": len(items)})


def _readable_quiz(quiz_id):
    quiz = db.session.get(Quiz, quiz_id)
    if not quiz or not can_view_class(quiz.classroom):
        return None
    if current_user.is_student and quiz.status == "DRAFT":
        return None
    return quiz


@quizzes_bp.route("/api/quizzes/<int:quiz_id>", methods=["GET"])
@login_required
def get_quiz(quiz_id):
    quiz = _readable_quiz(quiz_id)
    if not quiz:
        return not_found("Quiz")
    return api_success(_quiz_payload(quiz, include_answers=not current_user.is_student))


@quizzes_bp.route("/api/quizzes/<int:quiz_id>", methods=["PUT"])
@login_required
@role_required("professor")
@csrf_required
def update_quiz(quiz_id):
    quiz = db.session.get(Quiz, quiz_id)
    if not quiz or quiz.professor_id_fk != current_user.user_id:
        return not_found("Quiz")
    data = request_data()
    was_published = quiz.status == "PUBLISHED"
    try:
        _apply_settings(quiz, data)
        if "questions" in data:
            replace_questions(quiz, data.get("questions"))
    except ValidationError as e:
        db.session.rollback()
        return validation_error(e)
    recipients = []
    if quiz.status == "PUBLISHED" and not was_published:
        recipients = _announce(quiz)
    db.session.commit()
    email_users(recipients, "new_quiz", classroom=quiz.classroom, quiz=quiz)
    return api_success(_quiz_payload(quiz, include_answers=True))


@quizzes_bp.route("/api/quizzes/<int:quiz_id>", methods=["DELETE"])
@login_required
@role_required("professor")
@csrf_required
def delete_quiz(quiz_id):
    quiz = db.session.get(Quiz, quiz_id)
    if not quiz or quiz.professor_id_fk != current_user.user_id:
        return not_found("Quiz")
    db.session.delete(quiz)
    db.session.commit()
    return api_success({"deleted": quiz_id})


@quizzes_bp.route("/api/quizzes/submit", methods=["POST"])
@login_required
@role_required("student")
@csrf_required
def submit_quiz():
    data = request_data()
    try:
        quiz_id = parse_int(data.get("quiz_id"), "quiz_id")
        started = parse_datetime(data.get("start_time"), "start_time")
        answers = data.get("answers")
        if not isinstance(answers, list) or not answers:
            raise ValidationError("At least one answer is required")
    except ValidationError as e:
        return validation_error(e)

    quiz = db.session.get(Quiz, quiz_id)
    if not quiz or not is_enrolled(current_user.user_id, quiz.class_id_fk):
        return not_found("Quiz")
    if quiz.status != "PUBLISHED":
        return api_error("quiz_not_open", "This quiz is not open for submissions", 400)
    used = db.session.query(QuizAttempt).filter_by(quiz_id_fk=quiz_id, student_id_fk=current_user.user_id).count()
    if used >= (quiz.max_attempts or 1):
        return api_error(
            "max_attempts_reached",
            f"You have reached the maximum number of attempts ({quiz.max_attempts}) for this quiz",
            400,
        )

    now = utc_now()
    attempt = QuizAttempt(
        quiz_id_fk=quiz_id,
        student_id_fk=current_user.user_id,
        started_at=started or now,
        completed_at=now,
        time_spent=max(0, int((now - started).total_seconds())) if started else None,
    )
    score, total_points = grade_submission(quiz, attempt, answers)
    db.session.add(attempt)
    db.session.commit()
    current_app.logger.info(f"Attempt {attempt.attempt_id} on quiz {quiz_id}: {score}/{total_points}")
    return api_success({
        "attempt_id": attempt.attempt_id,
        "score": score,
        "total_points": total_points,
        "percentage": attempt.percentage,
        "time_spent": attempt.time_spent,
        "completed_at": attempt.completed_at.isoformat(),
        "attempts_remaining": max(0, (quiz.max_attempts or 1) - used - 1),
    }, status=201)


@quizzes_bp.route("/api/quizzes/<int:quiz_id>/attempts", methods=["GET"])
@login_required
def my_attempts(quiz_id):
    quiz = _readable_quiz(quiz_id)
    if not quiz:
        return not_found("Quiz")
    q = select(QuizAttempt).filter_by(quiz_id_fk=quiz_id)
    if current_user.is_student:
        q = q.filter(QuizAttempt.student_id_fk == current_user.user_id)
    attempts = db.session.execute(q.order_by(QuizAttempt.started_at.desc())).scalars().all()
    items = []
    for a in attempts:
        item = a.to_dict()
        item["answers"] = [{
            "question_id": ans.question_id_fk,
            "selected_options": ans.selected_options,
            "text_answer": ans.text_answer,
            "is_correct": bool(ans.is_correct),
            "points": ans.points,
        } for ans in a.answers]
        items.append(item)
    return api_success({"attempts": items, "max_attempts": quiz.max_attempts})


@quizzes_bp.route("/api/quizzes/<int:quiz_id>/stats", methods=["GET"])
@login_required
@role_required("professor")
def quiz_stats(quiz_id):
    quiz = db.session.get(Quiz, quiz_id)
    if not quiz or quiz.professor_id_fk != current_user.user_id:
        return not_found("Quiz")
    return api_success(quiz_statistics(quiz))


@quizzes_bp.route("/api/quizzes/<int:quiz_id>/view", methods=["POST"])
@login_required
@role_required("student")
@csrf_required
def mark_viewed(quiz_id):
    quiz = db.session.get(Quiz, quiz_id)
    if not quiz or quiz.status == "DRAFT" or not is_enrolled(current_user.user_id, quiz.class_id_fk):
        return not_found("Quiz")
    view = db.session.execute(
        select(QuizView).filter_by(student_id_fk=current_user.user_id, quiz_id_fk=quiz_id)
    ).scalars().first()
    if view:
        view.viewed_at = utc_now()
    else:
        db.session.add(QuizView(student_id_fk=current_user.user_id, quiz_id_fk=quiz_id))
    db.session.commit()
    return api_success({"viewed": True})
