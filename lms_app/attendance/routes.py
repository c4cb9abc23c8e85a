from datetime import timedelta, datetime
from flask import request, current_app, render_template, abort
from flask_login import login_required, current_user
from sqlalchemy import select
from . import attendance_bp
from .. import db, csrf_required
from ..access import owned_class, is_enrolled, enrolled_class_ids, enrolled_student_ids
from ..api_utils import (
    api_success, api_error, not_found, forbidden, request_data, optional_str, parse_int,
    parse_bool, parse_choice, parse_datetime, validation_error, ValidationError,
)
from ..dashboard.services import (
    attendance_student_rows, attendance_class_report, average, class_attendance_overview,
    enrolled_students, personal_attendance, sessions_between,
)
from ..decorators import role_required
from ..models import AttendanceSession, AttendanceRecord, Classroom, ATTENDANCE_STATUSES, utc_now

REPORT_PERIODS = ("daily", "weekly", "monthly", "custom")


def _owned_session(session_id):
    session = db.session.get(AttendanceSession, session_id)
    if not session or session.professor_id_fk != current_user.user_id:
        return None
    return session


def _upsert_record(session, student_id, status, notes):
    record = db.session.execute(
        select(AttendanceRecord).filter_by(session_id_fk=session.session_id, student_id_fk=student_id)
    ).scalars().first()
    if record:
        record.status = status
        record.notes = notes
        record.marked_by_fk = current_user.user_id
        record.marked_at = utc_now()
    else:
        record = AttendanceRecord(
            session_id_fk=session.session_id,
            student_id_fk=student_id,
            status=status,
            notes=notes,
            marked_by_fk=current_user.user_id,
        )
        db.session.add(record)
    return record


def report_window(period, start_date=None, end_date=None, now=None):
    """
    Returns (start, end) for a report period.
    daily is today, weekly the last 7 days, monthly the current month to date.
    """
    now = now or utc_now()
    if period == "custom":
        start = parse_datetime(start_date, "start_date", required=True)
        end = parse_datetime(end_date, "end_date", required=True)
        if end.hour == 0 and end.minute == 0 and end.second == 0:
            end = end.replace(hour=23, minute=59, second=59)
        if start > end:
            raise ValidationError("start_date must be before end_date")
        return start, end
    if period == "daily":
        start = now.replace(hour=0, minute=0, second=0, microsecond=0)
        return start, start.replace(hour=23, minute=59, second=59)
    if period == "weekly":
        return now - timedelta(days=7), now
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0), now


@attendance_bp.route("/api/attendance/sessions", methods=["POST"])
@login_required
@role_required("professor")
@csrf_required
def create_session():
    data = request_data()
    try:
        class_id = parse_int(data.get("class_id"), "class_id")
        session_date = parse_datetime(data.get("date"), "date", required=True)
        title = optional_str(data, "title")
        description = optional_str(data, "description")
    except ValidationError as e:
        return validation_error(e)
    if not owned_class(class_id):
        return not_found("Class")
    session = AttendanceSession(
        class_id_fk=class_id,
        professor_id_fk=current_user.user_id,
        session_date=session_date,
        title=title,
        description=description,
    )
    db.session.add(session)
    db.session.commit()
    current_app.logger.info(f"Attendance session {session.session_id} created for class {class_id}")
    return api_success(session.to_dict(), status=201)


@attendance_bp.route("/api/attendance/sessions", methods=["GET"])
@login_required
def list_sessions():
    try:
        class_id = parse_int(request.args.get("class_id"), "class_id", default=0) or None
    except ValidationError as e:
        return validation_error(e)
    q = select(AttendanceSession)
    if current_user.is_professor:
        q = q.filter(AttendanceSession.professor_id_fk == current_user.user_id)
    elif current_user.is_student:
        q = q.filter(AttendanceSession.class_id_fk.in_(enrolled_class_ids(current_user.user_id)))
    if class_id:
        q = q.filter(AttendanceSession.class_id_fk == class_id)
    sessions = db.session.execute(q.order_by(AttendanceSession.session_date.desc())).scalars().all()

    items = []
    for s in sessions:
        item = s.to_dict()
        if current_user.is_student:
            mine = next((r for r in s.records if r.student_id_fk == current_user.user_id), None)
            item["my_status"] = mine.status if mine else "NOT_MARKED"
            item.pop("record_count", None)
        items.append(item)
    return api_success({"sessions": items}, {"total": len(items)})


@attendance_bp.route("/api/attendance/sessions/<int:session_id>", methods=["GET"])
@login_required
@role_required("professor")
def get_session(session_id):
    session = _owned_session(session_id)
    if not session:
        return not_found("Session")
    data = session.to_dict()
    data["records"] = [r.to_dict() for r in session.records]
    marked = {r.student_id_fk for r in session.records}
    data["unmarked_students"] = [
        {"id": s.user_id, "name": s.name, "email": s.email}
        for s in enrolled_students(session.class_id_fk) if s.user_id not in marked
    ]
    return api_success(data)


@attendance_bp.route("/api/attendance/sessions/<int:session_id>", methods=["DELETE"])
@login_required
@role_required("professor")
@csrf_required
def delete_session(session_id):
    session = _owned_session(session_id)
    if not session:
        return not_found("Session")
    db.session.delete(session)
    db.session.commit()
    current_app.logger.info(f"Attendance session {session_id} deleted")
    return api_success({"deleted": session_id})


@attendance_bp.route("/api/attendance/mark", methods=["POST"])
@login_required
@role_required("professor")
@csrf_required
def mark_one():
    data = request_data()
    try:
        session_id = parse_int(data.get("session_id"), "session_id")
        student_id = parse_int(data.get("student_id"), "student_id")
        status = parse_choice(data.get("status"), "status", ATTENDANCE_STATUSES)
        notes = optional_str(data, "notes")
    except ValidationError as e:
        return validation_error(e)
    session = _owned_session(session_id)
    if not session:
        return not_found("Session")
    if not is_enrolled(student_id, session.class_id_fk):
        return api_error("not_enrolled", "Student is not enrolled in this class", 400)
    record = _upsert_record(session, student_id, status, notes)
    db.session.commit()
    return api_success(record.to_dict())


@attendance_bp.route("/api/attendance/mark", methods=["PUT"])
@login_required
@role_required("professor")
@csrf_required
def mark_bulk():
    data = request_data()
    try:
        session_id = parse_int(data.get("session_id"), "session_id")
        records = data.get("records")
        if not isinstance(records, list):
            raise ValidationError("records must be a list")
        parsed = []
        for i, item in enumerate(records, start=1):
            if not isinstance(item, dict):
                raise ValidationError(f"Record {i}: must be an object")
            status = parse_choice(item.get("status"), f"records[{i}].status", ATTENDANCE_STATUSES)
            parsed.append((parse_int(item.get("student_id"), f"records[{i}].student_id"), status,
                           (item.get("notes") or "").strip() or None))
    except ValidationError as e:
        return validation_error(e)
    session = _owned_session(session_id)
    if not session:
        return not_found("Session")

    enrolled = set(enrolled_student_ids(session.class_id_fk))
    saved, skipped = [], []
    for student_id, status, notes in parsed:
        if student_id not in enrolled:
            skipped.append(student_id)
            continue
        saved.append(_upsert_record(session, student_id, status, notes))
    db.session.commit()
    if skipped:
        current_app.logger.info(f"Session {session_id}: skipped non-enrolled students {skipped}")
    return api_success({"records": [r.to_dict() for r in saved], "skipped": skipped})


@attendance_bp.route("/api/attendance/analytics", methods=["GET"])
@login_required
def analytics():
    args = request.args
    try:
        class_id = parse_int(args.get("class_id"), "class_id")
        student_id = parse_int(args.get("student_id"), "student_id", default=0) or None
        period = parse_int(args.get("period"), "period", default=30, minimum=1, maximum=3650)
    except ValidationError as e:
        return validation_error(e)
    since = utc_now() - timedelta(days=period)

    if current_user.is_professor:
        classroom = owned_class(class_id)
        if not classroom:
            return forbidden("Access denied")
        sessions = sessions_between(class_id, start=since, professor_id=current_user.user_id)
        if student_id:
            return api_success(personal_attendance(sessions, student_id))
        return api_success(class_attendance_overview(sessions, enrolled_students(class_id)))

    if not is_enrolled(current_user.user_id, class_id):
        return forbidden("Access denied")
    sessions = sessions_between(class_id, start=since)
    return api_success(personal_attendance(sessions, current_user.user_id))


@attendance_bp.route("/api/attendance/reports", methods=["GET"])
@login_required
@role_required("professor")
def reports():
    args = request.args
    try:
        class_id = parse_int(args.get("class_id"), "class_id")
        period = (args.get("period") or "monthly").lower()
        if period not in REPORT_PERIODS:
            raise ValidationError(f"period must be one of: {', '.join(REPORT_PERIODS)}")
        start, end = report_window(period, args.get("start_date"), args.get("end_date"))
        include_not_marked = parse_bool(args.get("include_not_marked"), False)
    except ValidationError as e:
        return validation_error(e)
    if not owned_class(class_id):
        return not_found("Class")

    sessions = sessions_between(class_id, start, end)
    rows = attendance_student_rows(enrolled_students(class_id), sessions, include_not_marked=include_not_marked)
    return api_success({
        "reports": rows,
        "summary": {
            "total_students": len(rows),
            "average_attendance_rate": average([r["attendance_rate"] for r in rows]),
            "date_range": {"start": start.date().isoformat(), "end": end.date().isoformat()},
        },
    })


def _report_args():
    args = request.args
    class_id = parse_int(args.get("class_id"), "class_id")
    start = parse_datetime(args.get("start_date"), "start_date", required=True)
    end = parse_datetime(args.get("end_date"), "end_date", required=True)
    end = datetime.combine(end.date(), datetime.max.time().replace(microsecond=0))
    if start > end:
        raise ValidationError("start_date must be before end_date")
    return class_id, start, end


@attendance_bp.route("/api/attendance/report", methods=["GET"])
@login_required
@role_required("professor")
def report():
    try:
        class_id, start, end = _report_args()
    except ValidationError as e:
        return validation_error(e)
    classroom = owned_class(class_id)
    if not classroom:
        return not_found("Class")
    return api_success(attendance_class_report(classroom, start, end))


@attendance_bp.route("/attendance/print", methods=["GET"])
@login_required
@role_required("professor")
def print_report():
    try:
        class_id, start, end = _report_args()
    except ValidationError:
        abort(400)
    classroom = db.session.get(Classroom, class_id)
    if not classroom or classroom.professor_id_fk != current_user.user_id:
        abort(404)
    return render_template(
        "print/attendance.html",
        report=attendance_class_report(classroom, start, end),
        generated_at=utc_now(),
    )
