import json
from io import BytesIO
from flask import request, current_app, render_template, Response, abort
from flask_login import login_required, current_user
from openpyxl import Workbook
from sqlalchemy import select, or_
from . import dashboard_bp
from . import services
from .. import db, cache, limiter, csrf_required
from ..access import enrolled_class_ids
from ..api_utils import (
    EMAIL_RE, api_success, api_error, not_found, forbidden, request_data, parse_bool, parse_int,
    validation_error, ValidationError,
)
from ..decorators import role_required
from ..email_utils import send_email
from ..models import (
    Assignment, AssignmentSubmission, AssignmentView, Enrollment, Note, NoteView, Notification, Quiz,
    QuizAttempt, QuizView, User, utc_now,
)

XLSX_MIMETYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def analytics_cache_key(user_id):
    return f"analytics_overview_{user_id}"


def cached_professor_analytics(professor_id, refresh=False):
    key = analytics_cache_key(professor_id)
    if refresh:
        cache.delete(key)
    else:
        data = cache.get(key)
        if data is not None:
            return data
    data = services.professor_analytics(professor_id)
    data["generated_at"] = utc_now().isoformat()
    cache.set(key, data, timeout=current_app.config.get("ANALYTICS_CACHE_SECONDS", 60))
    return data


@dashboard_bp.route("/api/dashboard/analytics", methods=["GET"])
@login_required
@role_required("professor")
def analytics():
    refresh = parse_bool(request.args.get("refresh"), False)
    return api_success(cached_professor_analytics(current_user.user_id, refresh=refresh))


@dashboard_bp.route("/api/dashboard/analytics/email", methods=["POST"])
@login_required
@role_required("professor")
@limiter.limit("5 per hour")
@csrf_required
def email_analytics():
    data = request_data()
    email = (data.get("email") or "").strip()
    if not email:
        return api_error("validation_error", "Email address is required", 400)
    if not EMAIL_RE.match(email):
        return api_error("validation_error", "Email must be a valid email address", 400)
    professor_name = (data.get("professor_name") or "").strip() or current_user.name

    analytics_data = cached_professor_analytics(current_user.user_id, refresh=parse_bool(data.get("refresh"), False))
    generated_at = utc_now()
    context = dict(analytics=analytics_data, professor_name=professor_name, generated_at=generated_at)
    html_body = render_template("emails/analytics_summary.html", **context)
    report_html = render_template("emails/analytics_report.html", **context)
    attachment = (f"analytics-report-{generated_at.strftime('%Y-%m-%d')}.html", report_html, "text/html")

    sent = send_email(
        f"Analytics report for {professor_name} - {generated_at.strftime('%Y-%m-%d')}",
        email,
        f"Analytics summary for {professor_name}. The detailed report is attached.",
        html_body,
        attachments=[attachment],
    )
    if not sent:
        return api_error("email_failed", "Failed to send email. Check the mail server configuration.", 502)
    current_app.logger.info(f"Analytics report for professor {current_user.user_id} emailed to {email}")
    return api_success({"sent": True, "email": email})


def _sheet(wb, title, headers, rows, first=False):
    ws = wb.active if first else wb.create_sheet()
    ws.title = title
    ws.append(headers)
    for row in rows:
        ws.append(row)
    return ws


def _professor_workbook(data):
    wb = Workbook()
    _sheet(wb, "Overview", ["Metric", "Value"], [
        ["Total students", data["total_students"]],
        ["Total classes", data["total_classes"]],
        ["Average grade", data["average_grade"]],
        ["Completion rate", data["completion_rate"]],
        ["Active students", data["active_students"]],
        ["Assignments", data["total_assignments"]],
        ["Quizzes", data["total_quizzes"]],
        ["Notes", data["total_notes"]],
    ], first=True)
    _sheet(wb, "Monthly", ["Month", "New students", "Assignments", "Quizzes"], [
        [m["month"], m["students"], m["assignments"], m["quizzes"]] for m in data["monthly_stats"]
    ])
    _sheet(wb, "Classes", [
        "Class", "Code", "Students", "Quiz average", "Quiz completion", "Assignment average",
        "Assignment completion", "Attendance", "Engagement",
    ], [[
        c["class_name"], c["class_code"], c["student_count"],
        c["quiz_performance"]["average_score"], c["quiz_performance"]["completion_rate"],
        c["assignment_performance"]["average_grade"], c["assignment_performance"]["completion_rate"],
        c["attendance_performance"]["average_attendance"], c["overall_performance"]["engagement_score"],
    ] for c in data["class_analytics"]])
    return wb


def _student_workbook(data):
    wb = Workbook()
    overall = data["overall_stats"]
    _sheet(wb, "Overview", ["Metric", "Value"], [
        ["Student", data["student"]["name"]],
        ["Classes", overall["total_classes"]],
        ["Quizzes taken", overall["total_quizzes"]],
        ["Assignments submitted", overall["total_assignments"]],
        ["Average quiz score", overall["average_quiz_score"]],
        ["Average assignment grade", overall["average_assignment_grade"]],
        ["Attendance rate", overall["attendance_rate"]],
        ["Completion rate", overall["completion_rate"]],
    ], first=True)
    _sheet(wb, "Quizzes", ["Quiz", "Class", "Score", "Max", "Percentage", "Attempts"], [
        [q["quiz_title"], q["class_code"], q["score"], q["max_score"], q["percentage"], q["attempts"]]
        for q in data["quiz_performance"]
    ])
    _sheet(wb, "Assignments", ["Assignment", "Class", "Grade", "Max grade", "Status", "Submitted"], [
        [a["assignment_title"], a["class_name"], a["grade"], a["max_grade"], a["status"], a["submitted_at"]]
        for a in data["assignment_submissions"]
    ])
    _sheet(wb, "Attendance", ["Class", "Present", "Late", "Excused", "Absent", "Rate"], [
        [s["class_code"], s["present"], s["late"], s["excused"], s["absent"], s["attendance_rate"]]
        for s in data["subject_attendance_stats"]
    ])
    return wb


@dashboard_bp.route("/api/dashboard/analytics/export", methods=["POST"])
@login_required
@role_required("professor", "student")
@csrf_required
def export_analytics():
    data = request_data()
    fmt = (data.get("format") or "json").strip().lower()
    if fmt not in ("json", "xlsx"):
        return api_error("validation_error", "format must be json or xlsx", 400)

    if current_user.is_professor:
        payload = cached_professor_analytics(current_user.user_id, refresh=parse_bool(data.get("refresh"), False))
        build = _professor_workbook
    else:
        payload = services.student_report(current_user)
        build = _student_workbook

    stamp = utc_now().strftime("%Y-%m-%d")
    if fmt == "json":
        body = json.dumps({"exported_at": utc_now().isoformat(), "role": current_user.role, "data": payload}, indent=2)
        return Response(body, mimetype="application/json", headers={
            "Content-Disposition": f"attachment; filename=analytics-{stamp}.json"
        })
    bio = BytesIO()
    build(payload).save(bio)
    bio.seek(0)
    return Response(bio.read(), mimetype=XLSX_MIMETYPE, headers={
        "Content-Disposition": f"attachment; filename=analytics-{stamp}.xlsx"
    })


@dashboard_bp.route("/analytics/print", methods=["GET"])
@login_required
@role_required("professor")
def print_analytics():
    return render_template(
        "print/analytics.html",
        analytics=cached_professor_analytics(current_user.user_id),
        professor_name=current_user.name,
        generated_at=utc_now(),
    )


@dashboard_bp.route("/api/dashboard/professor/stats", methods=["GET"])
@login_required
@role_required("professor")
def professor_stats():
    return api_success(services.professor_dashboard_stats(current_user.user_id))


@dashboard_bp.route("/api/dashboard/student/stats", methods=["GET"])
@login_required
@role_required("student")
def student_stats():
    return api_success(services.student_dashboard_stats(current_user))


@dashboard_bp.route("/api/dashboard/student/assignments", methods=["GET"])
@login_required
@role_required("student")
def student_assignments():
    class_ids = enrolled_class_ids(current_user.user_id)
    if not class_ids:
        return api_success({"assignments": []})
    now = utc_now()
    rows = db.session.execute(
        select(Assignment).filter(
            Assignment.class_id_fk.in_(class_ids),
            Assignment.status == "PUBLISHED",
            or_(Assignment.due_date.is_(None), Assignment.due_date >= now),
        ).order_by(Assignment.due_date.asc())
    ).scalars().all()
    mine = {s.assignment_id_fk: s for s in db.session.execute(
        select(AssignmentSubmission).filter_by(student_id_fk=current_user.user_id)
    ).scalars().all()}
    items = []
    for a in rows:
        item = a.to_dict()
        sub = mine.get(a.assignment_id)
        item["submitted"] = sub is not None
        item["grade"] = sub.grade if sub else None
        items.append(item)
    return api_success({"assignments": items})


@dashboard_bp.route("/api/dashboard/student/quiz-performance", methods=["GET"])
@login_required
@role_required("student")
def student_quiz_performance():
    attempts = db.session.execute(
        select(QuizAttempt).filter_by(student_id_fk=current_user.user_id)
        .order_by(QuizAttempt.started_at.desc()).limit(20)
    ).scalars().all()
    return api_success({"attempts": [{
        "id": a.attempt_id,
        "quiz_id": a.quiz_id_fk,
        "quiz_title": a.quiz.title,
        "class_code": a.quiz.classroom.code,
        "score": a.score,
        "total_points": a.total_points,
        "percentage": a.percentage,
        "completed_at": a.completed_at.isoformat() if a.completed_at else None,
    } for a in attempts]})


def _published(model, class_ids):
    if not class_ids:
        return []
    return db.session.execute(
        select(model).filter(model.class_id_fk.in_(class_ids), model.status == "PUBLISHED")
    ).scalars().all()


@dashboard_bp.route("/api/dashboard/student/mark-all-viewed", methods=["POST"])
@login_required
@role_required("student")
@csrf_required
def mark_all_viewed():
    class_ids = enrolled_class_ids(current_user.user_id)
    uid = current_user.user_id
    seen_notes = {v.note_id_fk for v in db.session.execute(select(NoteView).filter_by(student_id_fk=uid)).scalars()}
    seen_quizzes = {v.quiz_id_fk for v in db.session.execute(select(QuizView).filter_by(student_id_fk=uid)).scalars()}
    seen_assignments = {v.assignment_id_fk for v in db.session.execute(select(AssignmentView).filter_by(student_id_fk=uid)).scalars()}
    notes = [n for n in _published(Note, class_ids) if n.note_id not in seen_notes]
    quizzes = [q for q in _published(Quiz, class_ids) if q.quiz_id not in seen_quizzes]
    assignments = [a for a in _published(Assignment, class_ids) if a.assignment_id not in seen_assignments]
    for n in notes:
        db.session.add(NoteView(student_id_fk=uid, note_id_fk=n.note_id))
    for q in quizzes:
        db.session.add(QuizView(student_id_fk=uid, quiz_id_fk=q.quiz_id))
    for a in assignments:
        db.session.add(AssignmentView(student_id_fk=uid, assignment_id_fk=a.assignment_id))
    db.session.commit()
    return api_success({
        "notes_marked": len(notes),
        "quizzes_marked": len(quizzes),
        "assignments_marked": len(assignments),
    })


@dashboard_bp.route("/api/dashboard/student/unread-counts", methods=["GET"])
@login_required
@role_required("student")
def unread_counts():
    class_ids = enrolled_class_ids(current_user.user_id)
    uid = current_user.user_id
    seen_notes = {v.note_id_fk for v in db.session.execute(select(NoteView).filter_by(student_id_fk=uid)).scalars()}
    seen_quizzes = {v.quiz_id_fk for v in db.session.execute(select(QuizView).filter_by(student_id_fk=uid)).scalars()}
    seen_assignments = {v.assignment_id_fk for v in db.session.execute(select(AssignmentView).filter_by(student_id_fk=uid)).scalars()}
    notes = sum(1 for n in _published(Note, class_ids) if n.note_id not in seen_notes)
    quizzes = sum(1 for q in _published(Quiz, class_ids) if q.quiz_id not in seen_quizzes)
    assignments = sum(1 for a in _published(Assignment, class_ids) if a.assignment_id not in seen_assignments)
    notifications = db.session.query(Notification).filter_by(user_id_fk=uid, is_read=False).count()
    return api_success({
        "notes": notes,
        "quizzes": quizzes,
        "assignments": assignments,
        "notifications": notifications,
    })


@dashboard_bp.route("/api/dashboard/students", methods=["GET"])
@login_required
@role_required("professor")
def students():
    try:
        class_id = parse_int(request.args.get("class_id"), "class_id", default=0) or None
    except ValidationError as e:
        return validation_error(e)
    classes = services.professor_classes(current_user.user_id)
    if class_id:
        classes = [c for c in classes if c.class_id == class_id]
        if not classes:
            return not_found("Class")
    term = (request.args.get("query") or "").strip().lower()
    by_student = {}
    for c in classes:
        for e in c.enrollments:
            s = e.student
            if term and term not in (s.name or "").lower() and term not in (s.email or "").lower():
                continue
            row = by_student.setdefault(s.user_id, {"id": s.user_id, "name": s.name, "email": s.email, "classes": []})
            row["classes"].append({"id": c.class_id, "name": c.name, "code": c.code})
    rows = sorted(by_student.values(), key=lambda r: (r["name"] or "").lower())
    return api_success({"students": rows}, {"total": len(rows)})


def _viewable_student(student_id):
    """The student if the current user may read their analytics, else None."""
    student = db.session.get(User, student_id)
    if not student or not student.is_student:
        return None
    if current_user.user_id == student.user_id or (current_user.role or "").lower() == "admin":
        return student
    if current_user.is_professor:
        shared = db.session.execute(
            select(Enrollment.enrollment_id)
            .filter(Enrollment.student_id_fk == student_id,
                    Enrollment.class_id_fk.in_([c.class_id for c in services.professor_classes(current_user.user_id)]))
        ).first()
        if shared:
            return student
    return None


@dashboard_bp.route("/api/dashboard/students/<int:student_id>/analytics", methods=["GET"])
@login_required
def student_analytics(student_id):
    student = _viewable_student(student_id)
    if not student:
        if db.session.get(User, student_id) is None:
            return not_found("Student")
        return forbidden("You cannot view this student's analytics")
    return api_success(services.student_report(student))


@dashboard_bp.route("/students/<int:student_id>/print", methods=["GET"])
@login_required
def print_student(student_id):
    student = _viewable_student(student_id)
    if not student:
        abort(404)
    return render_template("print/student.html", report=services.student_report(student), generated_at=utc_now())
