from flask import request, current_app
from flask_login import login_required, current_user
from sqlalchemy import select, or_, func
from . import notes_bp
from .. import db, csrf_required
from ..access import owned_class, can_view_class, is_enrolled, enrolled_class_ids
from ..api_utils import (
    api_success, not_found, request_data, require_str, parse_int, parse_choice,
    parse_pagination, pagination_meta, validation_error, ValidationError,
)
from ..decorators import role_required
from ..models import Note, NoteView, NOTE_STATUSES, utc_now
from ..notifications.services import announce_to_class, email_users


def _announce(note):
    return announce_to_class(
        note.classroom,
        "New note published",
        f"{note.title} was published in {note.classroom.name}.",
        "new_note",
    )


@notes_bp.route("/api/notes", methods=["POST"])
@login_required
@role_required("professor")
@csrf_required
def create_note():
    data = request_data()
    try:
        title = require_str(data, "title", max_length=255)
        content = require_str(data, "content")
        class_id = parse_int(data.get("class_id"), "class_id")
        status = parse_choice(data.get("status"), "status", NOTE_STATUSES, default="DRAFT")
    except ValidationError as e:
        return validation_error(e)
    c = owned_class(class_id)
    if not c:
        return not_found("Class")
    note = Note(title=title, content=content, status=status, class_id_fk=class_id, professor_id_fk=current_user.user_id)
    db.session.add(note)
    db.session.flush()
    recipients = []
    if status == "PUBLISHED":
        recipients = _announce(note)
    db.session.commit()
    email_users(recipients, "new_note", classroom=note.classroom, note=note)
    current_app.logger.info(f"Note {note.note_id} created in class {class_id} ({status})")
    return api_success(note.to_dict(), status=201)


@notes_bp.route("/api/notes", methods=["GET"])
@login_required
def search_notes():
    args = request.args
    try:
        limit, offset = parse_pagination(args)
        class_id = parse_int(args.get("class_id"), "class_id", default=0) or None
        professor_id = parse_int(args.get("professor_id"), "professor_id", default=0) or None
        status = parse_choice(args.get("status"), "status", NOTE_STATUSES) if args.get("status") else None
    except ValidationError as e:
        return validation_error(e)

    q = select(Note)
    role = (current_user.role or "").lower()
    if role == "student":
        q = q.filter(Note.class_id_fk.in_(enrolled_class_ids(current_user.user_id)), Note.status == "PUBLISHED")
    elif role == "professor":
        q = q.filter(Note.professor_id_fk == current_user.user_id)
    if status:
        q = q.filter(Note.status == status)
    if class_id:
        q = q.filter(Note.class_id_fk == class_id)
    if professor_id:
        q = q.filter(Note.professor_id_fk == professor_id)
    term = (args.get("query") or "").strip()
    if term:
        q = q.filter(or_(Note.title.ilike(f"%{term}%"), Note.content.ilike(f"%{term}%")))

    total = db.session.execute(select(func.count()).select_from(q.subquery())).scalar() or 0
    rows = db.session.execute(
        q.order_by(Note.created_at.desc(), Note.note_id.desc()).limit(limit).offset(offset)
    ).scalars().all()
    viewed = set()
    if role == "student" and rows:
        viewed = {v[0] for v in db.session.execute(
            select(NoteView.note_id_fk).filter(
                NoteView.student_id_fk == current_user.user_id,
                NoteView.note_id_fk.in_([n.note_id for n in rows]),
            )
        ).all()}
    items = []
    for n in rows:
        item = n.to_dict()
        if role == "student":
            item["viewed"] = n.note_id in viewed
        items.append(item)
    return api_success({"notes": items}, pagination_meta(total, limit, offset))


def _readable_note(note_id):
    note = db.session.get(Note, note_id)
    if not note or not can_view_class(note.classroom):
        return None
    if current_user.is_student and note.status != "PUBLISHED":
        return None
    return note


@notes_bp.route("/api/notes/<int:note_id>", methods=["GET"])
@login_required
def get_note(note_id):
    note = _readable_note(note_id)
    if not note:
        return not_found("Note")
    return api_success(note.to_dict())


@notes_bp.route("/api/notes/<int:note_id>", methods=["PUT"])
@login_required
@role_required("professor")
@csrf_required
def update_note(note_id):
    note = db.session.get(Note, note_id)
    if not note or note.professor_id_fk != current_user.user_id:
        return not_found("Note")
    data = request_data()
    was_published = note.status == "PUBLISHED"
    try:
        if "title" in data:
            note.title = require_str(data, "title", max_length=255)
        if "content" in data:
            note.content = require_str(data, "content")
        if "status" in data:
            note.status = parse_choice(data.get("status"), "status", NOTE_STATUSES)
        if "class_id" in data:
            target = owned_class(parse_int(data.get("class_id"), "class_id"))
            if not target:
                db.session.rollback()
                return not_found("Class")
            note.class_id_fk = target.class_id
    except ValidationError as e:
        db.session.rollback()
        return validation_error(e)
    recipients = []
    if note.status == "PUBLISHED" and not was_published:
        db.session.flush()
        db.session.refresh(note)
        recipients = _announce(note)
    db.session.commit()
    email_users(recipients, "new_note", classroom=note.classroom, note=note)
    return api_success(note.to_dict())


@notes_bp.route("/api/notes/<int:note_id>", methods=["DELETE"])
@login_required
@role_required("professor")
@csrf_required
def delete_note(note_id):
    note = db.session.get(Note, note_id)
    if not note or note.professor_id_fk != current_user.user_id:
        return not_found("Note")
    db.session.delete(note)
    db.session.commit()
    return api_success({"deleted": note_id})


@notes_bp.route("/api/notes/<int:note_id>/view", methods=["POST"])
@login_required
@role_required("student")
@csrf_required
def mark_viewed(note_id):
    note = db.session.get(Note, note_id)
    if not note or note.status != "PUBLISHED" or not is_enrolled(current_user.user_id, note.class_id_fk):
        return not_found("Note")
    view = db.session.execute(
        select(NoteView).filter_by(student_id_fk=current_user.user_id, note_id_fk=note_id)
    ).scalars().first()
    if view:
        view.viewed_at = utc_now()
    else:
        db.session.add(NoteView(student_id_fk=current_user.user_id, note_id_fk=note_id))
    db.session.commit()
    return api_success({"viewed": True})
