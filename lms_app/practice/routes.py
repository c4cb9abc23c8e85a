import json
from flask import request, current_app
from flask_login import login_required, current_user
from sqlalchemy import select
from . import practice_bp
from .. import db, csrf_required
from ..access import owned_class, can_view_class, is_enrolled
from ..api_utils import (
    api_success, api_error, not_found, forbidden, request_data, require_str, optional_str,
    parse_int, parse_choice, validation_error, ValidationError,
)
from ..dashboard.services import practice_student_stats, practice_teacher_stats, professor_classes, student_classes
from ..decorators import role_required
from ..models import (
    Classroom, PracticeAttempt, PracticeFile, PracticeOption, PracticeQuestion,
    DIFFICULTIES, PRACTICE_QUESTION_TYPES,
)
from ..uploads import PRACTICE_FILE_EXTENSIONS, UploadError, save_upload


def _question_payload(q, include_answers=False):
    data = {
        "id": q.practice_question_id,
        "class_id": q.class_id_fk,
        "text": q.text,
        "type": q.question_type,
        "points": q.points,
        "difficulty": q.difficulty,
        "created_at": q.created_at.isoformat() if q.created_at else None,
        "options": [],
    }
    for o in q.options:
        opt = {"id": o.option_id, "text": o.text, "order": o.position}
        if include_answers:
            opt["is_correct"] = bool(o.is_correct)
        data["options"].append(opt)
    if include_answers:
        data["explanation"] = q.explanation
        data["attempt_count"] = len(q.attempts)
    return data


def _build_options(qtype, data):
    """Options arrive as [{"text", "is_correct"}]; TRUE_FALSE may send only correct_answer."""
    raw = data.get("options") or []
    if qtype == "TRUE_FALSE" and not raw:
        answer = str(data.get("correct_answer") or "").strip().lower()
        if answer not in ("true", "false"):
            raise ValidationError("correct_answer must be True or False")
        raw = [{"text": "True", "is_correct": answer == "true"}, {"text": "False", "is_correct": answer == "false"}]
    if not isinstance(raw, list):
        raise ValidationError("options must be a list")
    options = []
    for i, item in enumerate(raw, start=1):
        if isinstance(item, dict):
            text = str(item.get("text") or "").strip()
            correct = bool(item.get("is_correct"))
        else:
            text, correct = str(item).strip(), False
        if text:
            options.append(PracticeOption(text=text, is_correct=correct, position=i))
    _check_options(qtype, options)
    return options


def _check_options(qtype, options):
    if len(options) < 2:
        raise ValidationError("At least two options are required")
    correct_count = sum(1 for o in options if o.is_correct)
    if qtype == "MULTIPLE_SELECTION":
        if correct_count < 1:
            raise ValidationError("Mark at least one option as correct")
    elif correct_count != 1:
        raise ValidationError("Exactly one option must be marked correct")


def _apply_question(q, data, creating=False):
    previous_type = q.question_type
    if creating or "text" in data:
        q.text = require_str(data, "text", label="Question text")
    if creating or "type" in data:
        q.question_type = parse_choice(data.get("type"), "type", PRACTICE_QUESTION_TYPES)
    if creating or "points" in data:
        q.points = parse_int(data.get("points"), "points", default=1, minimum=1, maximum=10)
    if creating or "difficulty" in data:
        q.difficulty = parse_choice(data.get("difficulty"), "difficulty", DIFFICULTIES, default="MEDIUM")
    if "explanation" in data:
        q.explanation = optional_str(data, "explanation")
    type_changed = not creating and q.question_type != previous_type
    if (creating or "options" in data or "correct_answer" in data
            or (type_changed and q.question_type == "TRUE_FALSE")):
        options = _build_options(q.question_type, data)
        q.options.clear()
        db.session.flush()
        q.options.extend(options)
    elif type_changed:
        _check_options(q.question_type, q.options)


def _visible_class(class_id):
    c = db.session.get(Classroom, class_id)
    if not c or not can_view_class(c):
        return None
    return c


@practice_bp.route("/api/practice/classes", methods=["GET"])
@login_required
def practice_classes():
    if current_user.is_professor:
        classes = professor_classes(current_user.user_id)
    elif current_user.is_student:
        classes = student_classes(current_user.user_id)
    else:
        classes = db.session.execute(select(Classroom).order_by(Classroom.name)).scalars().all()
    items = []
    for c in classes:
        items.append({
            "id": c.class_id,
            "name": c.name,
            "code": c.code,
            "professor_name": c.professor.name if c.professor else None,
            "question_count": len(c.practice_questions),
            "file_count": len(c.practice_files),
        })
    return api_success({"classes": items})


@practice_bp.route("/api/practice/questions", methods=["POST"])
@login_required
@role_required("professor")
@csrf_required
def create_question():
    data = request_data()
    try:
        class_id = parse_int(data.get("class_id"), "class_id")
    except ValidationError as e:
        return validation_error(e)
    if not owned_class(class_id):
        return not_found("Class")
    q = PracticeQuestion(class_id_fk=class_id, professor_id_fk=current_user.user_id)
    try:
        _apply_question(q, data, creating=True)
    except ValidationError as e:
        db.session.rollback()
        return validation_error(e)
    db.session.add(q)
    db.session.commit()
    current_app.logger.info(f"Practice question {q.practice_question_id} added to class {class_id}")
    return api_success(_question_payload(q, include_answers=True), status=201)


@practice_bp.route("/api/practice/questions", methods=["GET"])
@login_required
def list_questions():
    try:
        class_id = parse_int(request.args.get("class_id"), "class_id")
        difficulty = parse_choice(request.args.get("difficulty"), "difficulty", DIFFICULTIES) \
            if request.args.get("difficulty") else None
    except ValidationError as e:
        return validation_error(e)
    if not _visible_class(class_id):
        return not_found("Class")
    q = select(PracticeQuestion).filter_by(class_id_fk=class_id)
    if difficulty:
        q = q.filter(PracticeQuestion.difficulty == difficulty)
    rows = db.session.execute(q.order_by(PracticeQuestion.created_at.desc())).scalars().all()
    reveal = not current_user.is_student
    return api_success({"questions": [_question_payload(r, include_answers=reveal) for r in rows]},
                       {"total": len(rows)})


@practice_bp.route("/api/practice/questions/<int:question_id>", methods=["GET"])
@login_required
def get_question(question_id):
    q = db.session.get(PracticeQuestion, question_id)
    if not q or not can_view_class(q.classroom):
        return not_found("Question")
    return api_success(_question_payload(q, include_answers=not current_user.is_student))


@practice_bp.route("/api/practice/questions/<int:question_id>", methods=["PUT"])
@login_required
@role_required("professor")
@csrf_required
def update_question(question_id):
    q = db.session.get(PracticeQuestion, question_id)
    if not q or q.professor_id_fk != current_user.user_id:
        return not_found("Question")
    try:
        _apply_question(q, request_data())
    except ValidationError as e:
        db.session.rollback()
        return validation_error(e)
    db.session.commit()
    return api_success(_question_payload(q, include_answers=True))


@practice_bp.route("/api/practice/questions/<int:question_id>", methods=["DELETE"])
@login_required
@role_required("professor")
@csrf_required
def delete_question(question_id):
    q = db.session.get(PracticeQuestion, question_id)
    if not q or q.professor_id_fk != current_user.user_id:
        return not_found("Question")
    db.session.delete(q)
    db.session.commit()
    return api_success({"deleted": question_id})


@practice_bp.route("/api/practice/attempts", methods=["POST"])
@login_required
@role_required("student")
@csrf_required
def submit_attempt():
    data = request_data()
    try:
        question_id = parse_int(data.get("question_id"), "question_id")
        time_spent = parse_int(data.get("time_spent"), "time_spent", default=0, minimum=0)
        selected = data.get("selected_option_ids")
        if not isinstance(selected, list) or not selected:
            raise ValidationError("Select at least one option")
        try:
            selected = [int(s) for s in selected]
        except (TypeError, ValueError):
            raise ValidationError("selected_option_ids must be integers")
    except ValidationError as e:
        return validation_error(e)

    q = db.session.get(PracticeQuestion, question_id)
    if not q or not is_enrolled(current_user.user_id, q.class_id_fk):
        return not_found("Question")
    correct_ids = {o.option_id for o in q.options if o.is_correct}
    if q.question_type == "MULTIPLE_SELECTION":
        is_correct = set(selected) == correct_ids
    else:
        is_correct = len(selected) == 1 and selected[0] in correct_ids
    attempt = PracticeAttempt(
        question_id_fk=question_id,
        student_id_fk=current_user.user_id,
        selected_options_json=json.dumps(selected),
        is_correct=is_correct,
        score=(q.points or 0) if is_correct else 0,
        time_spent=time_spent,
    )
    db.session.add(attempt)
    db.session.commit()
    return api_success({
        "attempt_id": attempt.attempt_id,
        "is_correct": is_correct,
        "score": attempt.score,
        "correct_option_ids": sorted(correct_ids),
        "explanation": q.explanation,
    }, status=201)


@practice_bp.route("/api/practice/stats", methods=["GET"])
@login_required
@role_required("student")
def student_stats():
    try:
        class_id = parse_int(request.args.get("class_id"), "class_id", default=0) or None
    except ValidationError as e:
        return validation_error(e)
    attempts_q = select(PracticeAttempt).filter(PracticeAttempt.student_id_fk == current_user.user_id)
    if class_id:
        if not is_enrolled(current_user.user_id, class_id):
            return forbidden("You are not enrolled in this class")
        attempts_q = attempts_q.join(PracticeQuestion).filter(PracticeQuestion.class_id_fk == class_id)
        total_questions = db.session.query(PracticeQuestion).filter_by(class_id_fk=class_id).count()
    else:
        class_ids = [c.class_id for c in student_classes(current_user.user_id)]
        total_questions = db.session.query(PracticeQuestion).filter(
            PracticeQuestion.class_id_fk.in_(class_ids)).count() if class_ids else 0
    attempts = db.session.execute(attempts_q).scalars().all()
    return api_success(practice_student_stats(attempts, total_questions))


@practice_bp.route("/api/practice/teacher/stats", methods=["GET"])
@login_required
@role_required("professor")
def teacher_stats():
    try:
        class_id = parse_int(request.args.get("class_id"), "class_id", default=0) or None
    except ValidationError as e:
        return validation_error(e)
    q = select(PracticeQuestion).filter(PracticeQuestion.professor_id_fk == current_user.user_id)
    if class_id:
        if not owned_class(class_id):
            return not_found("Class")
        q = q.filter(PracticeQuestion.class_id_fk == class_id)
    questions = db.session.execute(q).scalars().all()
    return api_success(practice_teacher_stats(questions))


@practice_bp.route("/api/practice/files", methods=["GET"])
@login_required
def list_files():
    try:
        class_id = parse_int(request.args.get("class_id"), "class_id")
    except ValidationError as e:
        return validation_error(e)
    if not _visible_class(class_id):
        return not_found("Class")
    files = db.session.execute(
        select(PracticeFile).filter_by(class_id_fk=class_id).order_by(PracticeFile.uploaded_at.desc())
    ).scalars().all()
    return api_success({"files": [f.to_dict() for f in files]})


@practice_bp.route("/api/practice/files", methods=["POST"])
@login_required
@role_required("professor")
@csrf_required
def upload_file():
    data = request_data()
    try:
        class_id = parse_int(data.get("class_id"), "class_id")
        title = optional_str(data, "title")
        description = optional_str(data, "description")
    except ValidationError as e:
        return validation_error(e)
    if not owned_class(class_id):
        return not_found("Class")

    upload = request.files.get("file")
    if upload is not None and upload.filename:
        try:
            file_url, original = save_upload(upload, "practice", PRACTICE_FILE_EXTENSIONS,
                                             current_app.config.get("ASSIGNMENT_MAX_UPLOAD_BYTES"))
        except UploadError as e:
            return api_error(e.code, str(e), e.status)
        title = title or original
    else:
        file_url = optional_str(data, "file_url")
        if (not file_url or not file_url.startswith("/uploads/") or ".." in file_url
                or file_url.startswith("/uploads/submissions/")):
            return api_error("validation_error", "A file or an uploaded file_url is required", 400)
        title = title or file_url.rsplit("/", 1)[-1]

    record = PracticeFile(
        class_id_fk=class_id,
        professor_id_fk=current_user.user_id,
        title=title[:255],
        description=description,
        file_url=file_url,
    )
    db.session.add(record)
    db.session.commit()
    return api_success(record.to_dict(), status=201)


@practice_bp.route("/api/practice/files/<int:file_id>", methods=["DELETE"])
@login_required
@role_required("professor")
@csrf_required
def delete_file(file_id):
    record = db.session.get(PracticeFile, file_id)
    if not record or record.professor_id_fk != current_user.user_id:
        return not_found("File")
    db.session.delete(record)
    db.session.commit()
    return api_success({"deleted": file_id})
