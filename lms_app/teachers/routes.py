import re
from flask import request, current_app
from flask_login import login_required, current_user
from sqlalchemy import select, or_, func
from . import teachers_bp
from .. import db, csrf_required
from ..api_utils import (
    api_success, not_found, request_data, optional_str, parse_pagination, pagination_meta,
    validation_error, ValidationError,
)
from ..decorators import role_required
from ..models import User, Classroom, Enrollment, TeacherProfile, TEACHER_PROFILE_FIELDS

URL_RE = re.compile(r"^https?://[^\s/$.?#][^\s]*$", re.I)
USER_FIELDS = ("bio", "university", "department")
FIELD_LIMITS = {"college": 128, "phone": 32, "website": 255, "linkedin": 255, "university": 128, "department": 128}


def _class_counts(professor_ids):
    """Active class and distinct student totals keyed by professor id."""
    if not professor_ids:
        return {}
    counts = {pid: {"total_classes": 0, "total_students": 0} for pid in professor_ids}
    rows = db.session.execute(
        select(Classroom.professor_id_fk, func.count(Classroom.class_id))
        .filter(Classroom.professor_id_fk.in_(professor_ids), Classroom.is_archived.is_(False))
        .group_by(Classroom.professor_id_fk)
    ).all()
    for pid, n in rows:
        counts[pid]["total_classes"] = n
    rows = db.session.execute(
        select(Classroom.professor_id_fk, func.count(func.distinct(Enrollment.student_id_fk)))
        .join(Enrollment, Enrollment.class_id_fk == Classroom.class_id)
        .filter(Classroom.professor_id_fk.in_(professor_ids), Classroom.is_archived.is_(False))
        .group_by(Classroom.professor_id_fk)
    ).all()
    for pid, n in rows:
        counts[pid]["total_students"] = n
    return counts


def _teacher_payload(user, counts=None):
    out = user.to_dict()
    out.pop("is_active", None)
    profile = user.teacher_profile
    out["profile"] = profile.to_dict() if profile else {f: None for f in TEACHER_PROFILE_FIELDS}
    out.update(counts or {"total_classes": 0, "total_students": 0})
    return out


@teachers_bp.route("/api/teachers", methods=["GET"])
@teachers_bp.route("/api/teachers/search", methods=["GET"])
@login_required
def list_teachers():
    args = request.args
    try:
        limit, offset = parse_pagination(args)
    except ValidationError as e:
        return validation_error(e)
    q = select(User).filter(func.lower(User.role) == "professor", User.is_active.is_(True))
    term = (args.get("query") or args.get("search") or "").strip()
    if term:
        like = f"%{term}%"
        q = q.filter(or_(
            User.name.ilike(like), User.email.ilike(like), User.bio.ilike(like),
            User.university.ilike(like), User.department.ilike(like),
        ))
    university = (args.get("university") or "").strip()
    if university:
        q = q.filter(User.university.ilike(f"%{university}%"))
    department = (args.get("department") or "").strip()
    if department:
        q = q.filter(User.department.ilike(f"%{department}%"))

    total = db.session.execute(select(func.count()).select_from(q.subquery())).scalar() or 0
    rows = db.session.execute(q.order_by(User.name, User.user_id).limit(limit).offset(offset)).scalars().all()
    counts = _class_counts([u.user_id for u in rows])
    teachers = [_teacher_payload(u, counts.get(u.user_id)) for u in rows]
    return api_success({"teachers": teachers}, pagination_meta(total, limit, offset))


@teachers_bp.route("/api/teachers/<int:teacher_id>", methods=["GET"])
@login_required
def get_teacher(teacher_id):
    user = db.session.get(User, teacher_id)
    if not user or not user.is_professor or not user.is_active:
        return not_found("Teacher")
    classes = db.session.execute(
        select(Classroom)
        .filter(Classroom.professor_id_fk == teacher_id, Classroom.is_archived.is_(False))
        .order_by(Classroom.created_at.desc())
    ).scalars().all()
    payload = _teacher_payload(user, _class_counts([teacher_id]).get(teacher_id))
    payload["classes"] = [
        {
            "id": c.class_id,
            "name": c.name,
            "code": c.code,
            "description": c.description,
            "is_private": bool(c.is_private),
            "student_count": len(c.enrollments),
        }
        for c in classes
    ]
    return api_success({"teacher": payload})


@teachers_bp.route("/api/teachers/profile", methods=["GET"])
@login_required
@role_required("professor")
def get_own_profile():
    counts = _class_counts([current_user.user_id]).get(current_user.user_id)
    return api_success({"teacher": _teacher_payload(current_user, counts)})


def _clean_profile_field(data, field):
    value = optional_str(data, field)
    limit = FIELD_LIMITS.get(field)
    label = field.replace("_", " ").capitalize()
    if value and limit and len(value) > limit:
        raise ValidationError(f"{label} must be at most {limit} characters")
    if value and field in ("website", "linkedin") and not URL_RE.match(value):
        raise ValidationError(f"{label} must be a valid http(s) URL")
    return value


@teachers_bp.route("/api/teachers/profile", methods=["POST", "PUT"])
@login_required
@role_required("professor")
@csrf_required
def update_own_profile():
    data = request_data()
    try:
        user_values = {f: _clean_profile_field(data, f) for f in USER_FIELDS if f in data}
        profile_values = {f: _clean_profile_field(data, f) for f in TEACHER_PROFILE_FIELDS if f in data}
    except ValidationError as e:
        return validation_error(e)

    for field, value in user_values.items():
        setattr(current_user, field, value)
    profile = current_user.teacher_profile
    if profile is None:
        profile = TeacherProfile(user_id_fk=current_user.user_id)
        db.session.add(profile)
        current_user.teacher_profile = profile
    for field, value in profile_values.items():
        setattr(profile, field, value)
    db.session.commit()
    current_app.logger.info(f"Professor {current_user.user_id} updated teacher profile")
    counts = _class_counts([current_user.user_id]).get(current_user.user_id)
    return api_success({"teacher": _teacher_payload(current_user, counts)})
