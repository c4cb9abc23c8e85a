from flask import request, current_app
from flask_login import login_required, current_user
from sqlalchemy import select
from . import events_bp
from .. import db, csrf_required
from ..access import owned_class, enrolled_class_ids
from ..api_utils import (
    api_success, not_found, request_data, require_str, optional_str, parse_int, parse_choice,
    parse_datetime, validation_error, ValidationError,
)
from ..decorators import role_required
from ..models import CalendarEvent, EVENT_TYPES, EVENT_PRIORITIES


def _owned_event(event_id):
    event = db.session.get(CalendarEvent, event_id)
    if not event or event.professor_id_fk != current_user.user_id:
        return None
    return event


def _apply_event(event, data, creating):
    """Validate ``data`` onto ``event``; on update only the fields sent are changed."""
    if creating or "title" in data:
        event.title = require_str(data, "title", max_length=255)
    if creating or "type" in data:
        event.event_type = parse_choice(data.get("type"), "type", EVENT_TYPES)
    if creating or "date" in data:
        event.event_date = parse_datetime(data.get("date"), "date", required=True)
    if "description" in data:
        event.description = optional_str(data, "description")
    if "category" in data:
        event.category = optional_str(data, "category")
        if event.category and len(event.category) > 64:
            raise ValidationError("Category must be at most 64 characters")
    if "priority" in data:
        event.priority = parse_choice(data.get("priority"), "priority", EVENT_PRIORITIES) if data.get("priority") else None
    if "class_id" in data:
        event.class_id_fk = parse_int(data.get("class_id"), "class_id", default=0) or None


@events_bp.route("/api/calendar-events", methods=["POST"])
@login_required
@role_required("professor")
@csrf_required
def create_event():
    event = CalendarEvent(professor_id_fk=current_user.user_id)
    try:
        _apply_event(event, request_data(), creating=True)
    except ValidationError as e:
        return validation_error(e)
    if event.class_id_fk and not owned_class(event.class_id_fk):
        return not_found("Class")
    db.session.add(event)
    db.session.commit()
    current_app.logger.info(f"Calendar event {event.event_id} created by professor {current_user.user_id}")
    return api_success({"event": event.to_dict()}, status=201)


@events_bp.route("/api/calendar-events", methods=["GET"])
@login_required
def list_events():
    args = request.args
    try:
        class_id = parse_int(args.get("class_id"), "class_id", default=0) or None
        start = parse_datetime(args.get("start_date"), "start_date")
        end = parse_datetime(args.get("end_date"), "end_date")
        event_type = parse_choice(args.get("type"), "type", EVENT_TYPES) if args.get("type") else None
    except ValidationError as e:
        return validation_error(e)

    q = select(CalendarEvent)
    if current_user.is_professor:
        q = q.filter(CalendarEvent.professor_id_fk == current_user.user_id)
    elif current_user.is_student:
        q = q.filter(CalendarEvent.class_id_fk.in_(enrolled_class_ids(current_user.user_id)))
    if class_id:
        q = q.filter(CalendarEvent.class_id_fk == class_id)
    if start:
        q = q.filter(CalendarEvent.event_date >= start)
    if end:
        q = q.filter(CalendarEvent.event_date <= end)
    if event_type:
        q = q.filter(CalendarEvent.event_type == event_type)
    events = db.session.execute(
        q.order_by(CalendarEvent.event_date, CalendarEvent.event_id)
    ).scalars().all()
    return api_success({"events": [e.to_dict() for e in events]})


@events_bp.route("/api/calendar-events/<int:event_id>", methods=["PUT"])
@login_required
@role_required("professor")
@csrf_required
def update_event(event_id):
    event = _owned_event(event_id)
    if not event:
        return not_found("Event")
    try:
        _apply_event(event, request_data(), creating=False)
    except ValidationError as e:
        db.session.rollback()
        return validation_error(e)
    if event.class_id_fk and not owned_class(event.class_id_fk):
        db.session.rollback()
        return not_found("Class")
    db.session.commit()
    return api_success({"event": event.to_dict()})


@events_bp.route("/api/calendar-events/<int:event_id>", methods=["DELETE"])
@login_required
@role_required("professor")
@csrf_required
def delete_event(event_id):
    event = _owned_event(event_id)
    if not event:
        return not_found("Event")
    db.session.delete(event)
    db.session.commit()
    current_app.logger.info(f"Calendar event {event_id} deleted")
    return api_success({"deleted": event_id})
