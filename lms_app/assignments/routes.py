from flask import request, current_app
from flask_login import login_required, current_user
from sqlalchemy import select
from . import assignments_bp
from .. import db, csrf_required
from ..access import owned_class, can_view_class, is_enrolled, enrolled_class_ids
from ..api_utils import (
    api_success, api_error, not_found, request_data, require_str, optional_str, parse_int,
    parse_float, parse_choice, parse_datetime, validation_error, ValidationError,
)
from ..decorators import role_required
from ..email_utils import send_template_email
from ..models import Assignment, AssignmentSubmission, AssignmentView, Note, CONTENT_STATUSES, utc_now
from ..notifications.services import announce_to_class, email_users, notify
from ..uploads import ASSIGNMENT_EXTENSIONS, UploadError, validate_upload, store_upload, save_upload


def _apply_fields(a, data):
    if "title" in data:
        a.title = require_str(data, "title", max_length=255)
    if "description" in data:
        a.description = optional_str(data, "description")
    if "due_date" in data:
        a.due_date = parse_datetime(data.get("due_date"), "due_date")
    if "status" in data:
        a.status = parse_choice(data.get("status"), "status", CONTENT_STATUSES)
    if "category" in data:
        a.category = optional_str(data, "category")
    if "file_url" in data:
        a.file_url = optional_str(data, "file_url")
    if "max_grade" in data:
        max_grade = parse_float(data.get("max_grade"), "max_grade")
        if max_grade <= 0:
            raise ValidationError("max_grade must be positive")
        a.max_grade = max_grade
    if "note_id" in data:
        note_id = parse_int(data.get("note_id"), "note_id", default=0) or None
        if note_id:
            note = db.session.get(Note, note_id)
            if not note or note.professor_id_fk != current_user.user_id:
                raise ValidationError("note_id must reference one of your notes")
        a.note_id_fk = note_id


def _announce(a):
    due = a.due_date.strftime("%Y-%m-%d %H:%M") if a.due_date else "no due date"
    return announce_to_class(
        a.classroom,
        "New assignment posted",
        f"{a.title} was posted in {a.classroom.name} (due {due}).",
        "assignment",
    )


@assignments_bp.route("/api/assignments", methods=["POST"])
@login_required
@role_required("professor")
@csrf_required
def create_assignment():
    data = request_data()
    try:
        title = require_str(data, "title", max_length=255)
        class_id = parse_int(data.get("class_id"), "class_id")
    except ValidationError as e:
        return validation_error(e)
    c = owned_class(class_id)
    if not c:
        return not_found("Class")
    a = Assignment(title=title, class_id_fk=class_id, professor_id_fk=current_user.user_id, status="DRAFT", max_grade=100)
    try:
        _apply_fields(a, data)
        attachment = request.files.get("file")
        if attachment is not None and attachment.filename:
            a.file_url, _ = save_upload(attachment, "assignments", ASSIGNMENT_EXTENSIONS,
                                        current_app.config.get("ASSIGNMENT_MAX_UPLOAD_BYTES"))
    except ValidationError as e:
        return validation_error(e)
    except UploadError as e:
        return api_error(e.code, str(e), e.status)
    db.session.add(a)
    db.session.flush()
    recipients = []
    if a.status == "PUBLISHED":
        recipients = _announce(a)
    db.session.commit()
    email_users(recipients, "new_assignment", classroom=a.classroom, assignment=a)
    current_app.logger.info(f"Assignment {a.assignment_id} created in class {class_id}")
    return api_success(a.to_dict(), status=201)


@assignments_bp.route("/api/assignments", methods=["GET"])
@login_required
def list_assignments():
    try:
        class_id = parse_int(request.args.get("class_id"), "class_id", default=0) or None
    except ValidationError as e:
        return validation_error(e)
    q = select(Assignment)
    role = (current_user.role or "").lower()
    if role == "professor":
        q = q.filter(Assignment.professor_id_fk == current_user.user_id)
    elif role == "student":
        q = q.filter(Assignment.class_id_fk.in_(enrolled_class_ids(current_user.user_id)), Assignment.status != "DRAFT")
    if class_id:
        q = q.filter(Assignment.class_id_fk == class_id)
    rows = db.session.execute(q.order_by(Assignment.due_date.asc(), Assignment.assignment_id.asc())).scalars().all()
    viewed = set()
    if role == "student" and rows:
        viewed = {v[0] for v in db.session.execute(
            select(AssignmentView.assignment_id_fk).filter(
                AssignmentView.student_id_fk == current_user.user_id,
                AssignmentView.assignment_id_fk.in_([a.assignment_id for a in rows]),
            )
        ).all()}

    items = []
    for a in rows:
        item = a.to_dict()
        if role == "student":
            mine = next((s for s in a.submissions if s.student_id_fk == current_user.user_id), None)
            item["viewed"] = a.assignment_id in viewed
            item["submitted"] = mine is not None
            item["graded"] = bool(mine and mine.grade is not None)
            item["grade"] = mine.grade if mine else None
            item["submitted_at"] = mine.submitted_at.isoformat() if mine and mine.submitted_at else None
        else:
            item["submission_count"] = len(a.submissions)
        items.append(item)
    return api_success({"assignments": items}, {"total": len(items)})


@assignments_bp.route("/api/assignments/<int:assignment_id>", methods=["GET"])
@login_required
def get_assignment(assignment_id):
    a = db.session.get(Assignment, assignment_id)
    if not a or not can_view_class(a.classroom) or (current_user.is_student and a.status == "DRAFT"):
        return not_found("Assignment")
    return api_success(a.to_dict())


@assignments_bp.route("/api/assignments/<int:assignment_id>/view", methods=["POST"])
@login_required
@role_required("student")
@csrf_required
def mark_viewed(assignment_id):
    a = db.session.get(Assignment, assignment_id)
    if not a or a.status == "DRAFT" or not is_enrolled(current_user.user_id, a.class_id_fk):
        return not_found("Assignment")
    view = db.session.execute(
        select(AssignmentView).filter_by(student_id_fk=current_user.user_id, assignment_id_fk=assignment_id)
    ).scalars().first()
    if view:
        view.viewed_at = utc_now()
    else:
        db.session.add(AssignmentView(student_id_fk=current_user.user_id, assignment_id_fk=assignment_id))
    db.session.commit()
    return api_success({"viewed": True})


@assignments_bp.route("/api/assignments/<int:assignment_id>", methods=["PUT"])
@login_required
@role_required("professor")
@csrf_required
def update_assignment(assignment_id):
    a = db.session.get(Assignment, assignment_id)
    if not a or a.professor_id_fk != current_user.user_id:
        return not_found("Assignment")
    was_published = a.status == "PUBLISHED"
    try:
        _apply_fields(a, request_data())
    except ValidationError as e:
        db.session.rollback()
        return validation_error(e)
    recipients = []
    if a.status == "PUBLISHED" and not was_published:
        recipients = _announce(a)
    db.session.commit()
    email_users(recipients, "new_assignment", classroom=a.classroom, assignment=a)
    return api_success(a.to_dict())


@assignments_bp.route("/api/assignments/<int:assignment_id>", methods=["DELETE"])
@login_required
@role_required("professor")
@csrf_required
def delete_assignment(assignment_id):
    a = db.session.get(Assignment, assignment_id)
    if not a or a.professor_id_fk != current_user.user_id:
        return not_found("Assignment")
    db.session.delete(a)
    db.session.commit()
    return api_success({"deleted": assignment_id})


@assignments_bp.route("/api/assignments/submit", methods=["POST"])
@login_required
@role_required("student")
@csrf_required
def submit_assignment():
    try:
        assignment_id = parse_int(request.form.get("assignment_id"), "assignment_id")
    except ValidationError as e:
        return validation_error(e)
    upload = request.files.get("file")
    try:
        safe_name = validate_upload(upload, ASSIGNMENT_EXTENSIONS, current_app.config.get("ASSIGNMENT_MAX_UPLOAD_BYTES"))
    except UploadError as e:
        return api_error(e.code, str(e), e.status)

    a = db.session.get(Assignment, assignment_id)
    if not a:
        return not_found("Assignment")
    if a.status != "PUBLISHED":
        return api_error("assignment_not_open", "This assignment is not accepting submissions", 400)
    if not is_enrolled(current_user.user_id, a.class_id_fk):
        return api_error("forbidden", "You are not enrolled in this class", 403)
    now = utc_now()
    if a.due_date and now > a.due_date:
        return api_error("past_due", "The due date for this assignment has passed", 400)

    file_url = store_upload(upload, "submissions", safe_name)
    comment = (request.form.get("comment") or "").strip() or None
    sub = db.session.execute(
        select(AssignmentSubmission).filter_by(assignment_id_fk=assignment_id, student_id_fk=current_user.user_id)
    ).scalars().first()
    is_resubmission = sub is not None
    if is_resubmission:
        sub.file_url = file_url
        sub.original_filename = upload.filename
        sub.comment = comment
        sub.submitted_at = now
        sub.grade = None
        sub.feedback = None
        sub.graded_at = None
        sub.graded_by_fk = None
        sub.resubmission_count = (sub.resubmission_count or 0) + 1
    else:
        sub = AssignmentSubmission(
            assignment_id_fk=assignment_id,
            student_id_fk=current_user.user_id,
            file_url=file_url,
            original_filename=upload.filename,
            comment=comment,
            submitted_at=now,
        )
        db.session.add(sub)

    verb = "resubmitted" if is_resubmission else "submitted"
    notify([a.professor_id_fk], "New assignment submission",
           f"{current_user.name} {verb} {a.title} ({a.classroom.code}).", "assignment")
    db.session.commit()
    current_app.logger.info(f"Submission {sub.submission_id} {verb} for assignment {assignment_id}")
    if a.professor and a.professor.email:
        send_template_email(a.professor.email, "assignment_submitted", recipient=a.professor,
                            assignment=a, student=current_user, submission=sub, is_resubmission=is_resubmission)
    data = sub.to_dict()
    data["is_resubmission"] = is_resubmission
    return api_success(data, status=200 if is_resubmission else 201)


@assignments_bp.route("/api/assignments/<int:assignment_id>/submission", methods=["GET"])
@login_required
@role_required("student")
def my_submission(assignment_id):
    a = db.session.get(Assignment, assignment_id)
    if not a or not is_enrolled(current_user.user_id, a.class_id_fk):
        return not_found("Assignment")
    sub = db.session.execute(
        select(AssignmentSubmission).filter_by(assignment_id_fk=assignment_id, student_id_fk=current_user.user_id)
    ).scalars().first()
    now = utc_now()
    return api_success({
        "submission": sub.to_dict() if sub else None,
        "can_submit": a.status == "PUBLISHED" and not (a.due_date and now > a.due_date),
        "due_date": a.due_date.isoformat() if a.due_date else None,
    })


@assignments_bp.route("/api/assignments/<int:assignment_id>/submissions", methods=["GET"])
@login_required
@role_required("professor")
def list_submissions(assignment_id):
    a = db.session.get(Assignment, assignment_id)
    if not a or a.professor_id_fk != current_user.user_id:
        return not_found("Assignment")
    subs = sorted(a.submissions, key=lambda s: s.submitted_at or utc_now(), reverse=True)
    submitted_ids = {s.student_id_fk for s in subs}
    missing = [
        {"id": e.student.user_id, "name": e.student.name, "email": e.student.email}
        for e in a.classroom.enrollments if e.student_id_fk not in submitted_ids
    ]
    return api_success({
        "assignment": a.to_dict(),
        "submissions": [s.to_dict() for s in subs],
        "not_submitted": missing,
        "stats": {
            "total_enrolled": len(a.classroom.enrollments),
            "total_submitted": len(subs),
            "total_graded": sum(1 for s in subs if s.grade is not None),
        },
    })


@assignments_bp.route("/api/assignments/submissions/<int:submission_id>/grade", methods=["POST"])
@login_required
@role_required("professor")
@csrf_required
def grade_submission(submission_id):
    sub = db.session.get(AssignmentSubmission, submission_id)
    if not sub or sub.assignment.professor_id_fk != current_user.user_id:
        return not_found("Submission")
    data = request_data()
    raw = data.get("grade")
    if raw is None or raw == "":
        return api_error("validation_error", "Grade is required", 400)
    try:
        grade = parse_float(raw, "grade")
    except ValidationError:
        return api_error("validation_error", "Grade must be a non-negative number", 400)
    if grade < 0:
        return api_error("validation_error", "Grade must be a non-negative number", 400)
    max_grade = sub.assignment.max_grade or 100
    if grade > max_grade:
        return api_error("validation_error", f"Grade cannot exceed {max_grade:g}", 400)

    sub.grade = grade
    sub.feedback = optional_str(data, "feedback")
    sub.graded_at = utc_now()
    sub.graded_by_fk = current_user.user_id
    notify([sub.student_id_fk], "Assignment graded",
           f"{sub.assignment.title} was graded: {grade:g}/{max_grade:g}.", "assignment_graded")
    db.session.commit()
    if sub.student and sub.student.email:
        send_template_email(sub.student.email, "assignment_graded", recipient=sub.student,
                            assignment=sub.assignment, submission=sub)
    return api_success(sub.to_dict())
