from flask import request, current_app, url_for
from flask_login import login_required, current_user
from itsdangerous import URLSafeTimedSerializer, BadSignature, SignatureExpired
from sqlalchemy import select, or_, func
from . import classes_bp
from .. import db, csrf_required, limiter
from ..access import owned_class, can_view_class, is_enrolled
from ..api_utils import (
    api_success, api_error, not_found, forbidden, request_data, require_str, optional_str,
    parse_bool, parse_int, parse_pagination, pagination_meta, validation_error, ValidationError,
)
from ..decorators import role_required
from ..email_utils import send_template_email
from ..models import Classroom, ClassInvitation, Enrollment, User, utc_now
from ..notifications.services import notify

INVITE_SALT = "class-invitation"


def _get_serializer():
    secret = current_app.config.get("SECRET_KEY") or "dev-secret-key"
    return URLSafeTimedSerializer(secret)


def _class_payload(c):
    data = c.to_dict()
    data["counts"] = {
        "enrollments": len(c.enrollments),
        "notes": len(c.notes),
        "quizzes": len(c.quizzes),
        "assignments": len(c.assignments),
    }
    return data


def _apply_class_fields(c, data):
    if "name" in data:
        c.name = require_str(data, "name", "Class name", max_length=128)
    if "description" in data:
        c.description = optional_str(data, "description")
    if "is_private" in data:
        c.is_private = parse_bool(data.get("is_private"))
    if "gradient_color" in data:
        c.gradient_color = optional_str(data, "gradient_color")
    if "image_url" in data:
        c.image_url = optional_str(data, "image_url")


@classes_bp.route("/api/classes", methods=["POST"])
@login_required
@role_required("professor")
@csrf_required
def create_class():
    data = request_data()
    try:
        name = require_str(data, "name", "Class name", max_length=128)
        code = require_str(data, "code", "Class code", max_length=32)
    except ValidationError as e:
        return validation_error(e)
    if db.session.execute(select(Classroom).filter_by(code=code)).scalars().first():
        return api_error("code_taken", "Class code already exists", 400)
    c = Classroom(name=name, code=code, professor_id_fk=current_user.user_id)
    try:
        _apply_class_fields(c, data)
    except ValidationError as e:
        return validation_error(e)
    db.session.add(c)
    db.session.commit()
    current_app.logger.info(f"Class {c.code} created by {current_user.user_id}")
    return api_success(_class_payload(c), status=201)


@classes_bp.route("/api/classes", methods=["GET"])
@login_required
def search_classes():
    args = request.args
    try:
        limit, offset = parse_pagination(args)
        professor_id = parse_int(args.get("professor_id"), "professor_id", default=0) or None
    except ValidationError as e:
        return validation_error(e)
    query = (args.get("query") or "").strip()
    university = (args.get("university") or "").strip()

    q = select(Classroom).join(User, User.user_id == Classroom.professor_id_fk)
    if not parse_bool(args.get("include_archived"), default=False):
        q = q.filter(Classroom.is_archived.is_(False))
    if not parse_bool(args.get("include_private"), default=True):
        q = q.filter(Classroom.is_private.is_(False))
    if query:
        like = f"%{query}%"
        q = q.filter(or_(
            Classroom.name.ilike(like),
            Classroom.code.ilike(like),
            Classroom.description.ilike(like),
            User.name.ilike(like),
        ))
    if professor_id:
        q = q.filter(Classroom.professor_id_fk == professor_id)
    if university:
        q = q.filter(User.university.ilike(f"%{university}%"))

    total = db.session.execute(select(func.count()).select_from(q.subquery())).scalar() or 0
    rows = db.session.execute(
        q.order_by(Classroom.created_at.desc(), Classroom.class_id.desc()).limit(limit).offset(offset)
    ).scalars().all()
    return api_success({"classes": [_class_payload(c) for c in rows]}, pagination_meta(total, limit, offset))


@classes_bp.route("/api/classes/<int:class_id>", methods=["GET"])
@login_required
def get_class(class_id):
    c = db.session.get(Classroom, class_id)
    if not c:
        return not_found("Class")
    data = _class_payload(c)
    data["is_owner"] = c.professor_id_fk == current_user.user_id
    data["is_enrolled"] = is_enrolled(current_user.user_id, class_id)
    return api_success(data)


@classes_bp.route("/api/classes/<int:class_id>", methods=["PUT"])
@login_required
@role_required("professor")
@csrf_required
def update_class(class_id):
    c = owned_class(class_id)
    if not c:
        return not_found("Class")
    data = request_data()
    try:
        if "code" in data:
            code = require_str(data, "code", "Class code", max_length=32)
            clash = db.session.execute(select(Classroom).filter(Classroom.code == code, Classroom.class_id != class_id)).scalars().first()
            if clash:
                return api_error("code_taken", "Class code already exists", 400)
            c.code = code
        _apply_class_fields(c, data)
    except ValidationError as e:
        db.session.rollback()
        return validation_error(e)
    db.session.commit()
    return api_success(_class_payload(c))


@classes_bp.route("/api/classes/<int:class_id>", methods=["DELETE"])
@login_required
@role_required("professor")
@csrf_required
def delete_class(class_id):
    c = owned_class(class_id)
    if not c:
        return not_found("Class")
    db.session.delete(c)
    db.session.commit()
    current_app.logger.info(f"Class {class_id} deleted by {current_user.user_id}")
    return api_success({"deleted": class_id})


@classes_bp.route("/api/classes/<int:class_id>/archive", methods=["PUT"])
@login_required
@role_required("professor")
@csrf_required
def archive_class(class_id):
    c = owned_class(class_id)
    if not c:
        return not_found("Class")
    data = request_data()
    if "is_archived" not in data:
        return api_error("validation_error", "is_archived is required", 400)
    archived = parse_bool(data.get("is_archived"))
    c.is_archived = archived
    c.archived_at = utc_now() if archived else None
    db.session.commit()
    return api_success(_class_payload(c))


# --- Roster ---

@classes_bp.route("/api/classes/<int:class_id>/enrollments", methods=["GET"])
@login_required
@role_required("professor", "admin")
def class_enrollments(class_id):
    c = db.session.get(Classroom, class_id)
    if not c or not can_view_class(c):
        return not_found("Class")
    rows = db.session.execute(
        select(Enrollment).filter_by(class_id_fk=class_id).order_by(Enrollment.enrolled_at.asc())
    ).scalars().all()
    items = [{
        "enrollment_id": e.enrollment_id,
        "enrolled_at": e.enrolled_at.isoformat() if e.enrolled_at else None,
        "student": {"id": e.student.user_id, "name": e.student.name, "email": e.student.email},
    } for e in rows]
    return api_success({"enrollments": items}, {"total": len(items)})


@classes_bp.route("/api/classes/<int:class_id>/enrollments/<int:student_id>", methods=["DELETE"])
@login_required
@role_required("professor")
@csrf_required
def remove_enrollment(class_id, student_id):
    if not owned_class(class_id):
        return not_found("Class")
    e = db.session.execute(
        select(Enrollment).filter_by(class_id_fk=class_id, student_id_fk=student_id)
    ).scalars().first()
    if not e:
        return not_found("Enrollment")
    db.session.delete(e)
    db.session.commit()
    return api_success({"removed": student_id})


@classes_bp.route("/api/classes/<int:class_id>/available-students", methods=["GET"])
@login_required
@role_required("professor")
def available_students(class_id):
    if not owned_class(class_id):
        return not_found("Class")
    enrolled = select(Enrollment.student_id_fk).filter(Enrollment.class_id_fk == class_id)
    q = select(User).filter(User.role == "student", User.is_active.is_(True), User.user_id.not_in(enrolled))
    term = (request.args.get("query") or "").strip()
    if term:
        q = q.filter(or_(User.name.ilike(f"%{term}%"), User.email.ilike(f"%{term}%")))
    rows = db.session.execute(q.order_by(User.name.asc()).limit(50)).scalars().all()
    return api_success({"students": [{"id": u.user_id, "name": u.name, "email": u.email} for u in rows]})


@classes_bp.route("/api/classes/<int:class_id>/invite-existing", methods=["POST"])
@login_required
@role_required("professor")
@csrf_required
def invite_existing(class_id):
    c = owned_class(class_id)
    if not c:
        return not_found("Class")
    data = request_data()
    raw_ids = data.get("student_ids") or []
    if not isinstance(raw_ids, list) or not raw_ids:
        return api_error("validation_error", "At least one student is required", 400)
    try:
        ids = [parse_int(v, "student_ids") for v in raw_ids]
    except ValidationError as e:
        return validation_error(e)

    students = db.session.execute(
        select(User).filter(User.user_id.in_(ids), User.role == "student")
    ).scalars().all()
    enrolled, skipped = [], []
    for student in students:
        if is_enrolled(student.user_id, class_id):
            skipped.append(student.user_id)
            continue
        db.session.add(Enrollment(student_id_fk=student.user_id, class_id_fk=class_id))
        enrolled.append(student.user_id)
    notify(enrolled, "Added to class", f"You have been added to {c.name} ({c.code}).", "announcement")
    db.session.commit()
    return api_success({"enrolled": enrolled, "skipped": skipped})


@classes_bp.route("/api/classes/<int:class_id>/invite", methods=["POST"])
@login_required
@role_required("professor")
@csrf_required
@limiter.limit("20 per hour")
def invite_by_email(class_id):
    c = owned_class(class_id)
    if not c:
        return not_found("Class")
    data = request_data()
    emails = data.get("emails") or []
    if isinstance(emails, str):
        emails = [e for e in emails.replace(";", ",").split(",")]
    emails = [e.strip().lower() for e in emails if e and e.strip()]
    if not emails:
        return api_error("validation_error", "At least one email is required", 400)

    s = _get_serializer()
    invited = []
    for email in dict.fromkeys(emails):
        inv = ClassInvitation(class_id_fk=class_id, email=email, invited_by_fk=current_user.user_id)
        db.session.add(inv)
        db.session.flush()
        token = s.dumps(
            {"invitation_id": inv.invitation_id, "class_id": class_id, "nonce": inv.token_nonce}, salt=INVITE_SALT
        )
        link = url_for("classes.describe_invitation", token=token, _external=True)
        invited.append({"email": email, "token": token, "link": link})
    db.session.commit()
    for item in invited:
        item["email_sent"] = send_template_email(
            item["email"], "class_invitation", classroom=c, professor=current_user, link=item.pop("link")
        )
    current_app.logger.info(f"{len(invited)} invitation(s) created for class {class_id}")
    return api_success({"invitations": invited}, status=201)


def _load_invitation(token):
    max_age = current_app.config.get("INVITATION_TOKEN_MAX_AGE", 7 * 24 * 3600)
    try:
        data = _get_serializer().loads(token, salt=INVITE_SALT, max_age=max_age)
    except SignatureExpired:
        return None, api_error("invitation_expired", "Invitation link expired", 400)
    except BadSignature:
        return None, api_error("invitation_invalid", "Invalid invitation link", 400)
    inv = db.session.get(ClassInvitation, data.get("invitation_id"))
    if not inv or inv.class_id_fk != data.get("class_id") or inv.token_nonce != data.get("nonce"):
        return None, api_error("invitation_invalid", "Invalid invitation link", 400)
    return inv, None


@classes_bp.route("/api/invitations/<token>", methods=["GET"])
def describe_invitation(token):
    inv, error = _load_invitation(token)
    if error:
        return error
    c = inv.classroom
    return api_success({
        "email": inv.email,
        "status": inv.status,
        "class": {"id": c.class_id, "name": c.name, "code": c.code, "description": c.description},
        "professor": {"name": c.professor.name if c.professor else ""},
    })


@classes_bp.route("/api/invitations/<token>", methods=["POST"])
@login_required
@role_required("student")
@csrf_required
def accept_invitation(token):
    inv, error = _load_invitation(token)
    if error:
        return error
    if (inv.email or "").lower() != (current_user.email or "").lower():
        return forbidden("This invitation was sent to a different email address")
    if inv.status == "ACCEPTED":
        return api_error("invitation_used", "This invitation has already been accepted", 400)
    if inv.classroom.is_archived:
        return api_error("class_archived", "This class has been archived", 400)
    if not is_enrolled(current_user.user_id, inv.class_id_fk):
        db.session.add(Enrollment(student_id_fk=current_user.user_id, class_id_fk=inv.class_id_fk))
    inv.status = "ACCEPTED"
    inv.accepted_at = utc_now()
    db.session.commit()
    return api_success({"class_id": inv.class_id_fk, "status": inv.status})


# --- Student self-service ---

@classes_bp.route("/api/enrollments", methods=["POST"])
@login_required
@role_required("student")
@csrf_required
def enroll():
    data = request_data()
    try:
        class_id = parse_int(data.get("class_id"), "class_id")
    except ValidationError as e:
        return validation_error(e)
    c = db.session.get(Classroom, class_id)
    if not c:
        return not_found("Class")
    if c.is_archived:
        return api_error("class_archived", "This class has been archived", 400)
    if is_enrolled(current_user.user_id, class_id):
        return api_error("already_enrolled", "Already enrolled in this class", 400)
    if c.is_private:
        return forbidden("This class is private; an invitation is required")
    e = Enrollment(student_id_fk=current_user.user_id, class_id_fk=class_id)
    db.session.add(e)
    db.session.commit()
    return api_success({
        "enrollment_id": e.enrollment_id,
        "class": c.to_dict(),
        "enrolled_at": e.enrolled_at.isoformat(),
    }, status=201)


@classes_bp.route("/api/enrollments", methods=["GET"])
@login_required
def my_enrollments():
    q = select(Enrollment).filter_by(student_id_fk=current_user.user_id)
    if current_user.role in ("professor", "admin") and request.args.get("student_id"):
        try:
            student_id = parse_int(request.args.get("student_id"), "student_id")
        except ValidationError as e:
            return validation_error(e)
        q = select(Enrollment).filter_by(student_id_fk=student_id)
        if current_user.role == "professor":
            # Only memberships in the professor's own classes
            q = q.join(Classroom, Classroom.class_id == Enrollment.class_id_fk).filter(
                Classroom.professor_id_fk == current_user.user_id
            )
    rows = db.session.execute(q.order_by(Enrollment.enrolled_at.desc())).scalars().all()
    items = [{
        "enrollment_id": e.enrollment_id,
        "enrolled_at": e.enrolled_at.isoformat() if e.enrolled_at else None,
        "class": _class_payload(e.classroom),
    } for e in rows]
    return api_success({"enrollments": items}, {"total": len(items)})


@classes_bp.route("/api/enrollments/<int:class_id>", methods=["DELETE"])
@login_required
@role_required("student")
@csrf_required
def leave_class(class_id):
    e = db.session.execute(
        select(Enrollment).filter_by(class_id_fk=class_id, student_id_fk=current_user.user_id)
    ).scalars().first()
    if not e:
        return not_found("Enrollment")
    db.session.delete(e)
    db.session.commit()
    return api_success({"left": class_id})
