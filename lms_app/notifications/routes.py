from flask import request
from flask_login import login_required, current_user
from sqlalchemy import select
from . import notifications_bp
from .. import db, csrf_required
from ..api_utils import api_success, not_found, parse_bool, parse_pagination, pagination_meta, validation_error, ValidationError
from ..models import Notification


def _own_notification(notification_id):
    n = db.session.get(Notification, notification_id)
    if not n or n.user_id_fk != current_user.user_id:
        return None
    return n


@notifications_bp.route("/api/notifications", methods=["GET"])
@login_required
def list_notifications():
    try:
        limit, offset = parse_pagination(request.args, default_limit=20, max_limit=100)
    except ValidationError as e:
        return validation_error(e)
    q = select(Notification).filter(Notification.user_id_fk == current_user.user_id)
    if parse_bool(request.args.get("unread_only")):
        q = q.filter(Notification.is_read.is_(False))
    total = db.session.query(Notification).filter_by(user_id_fk=current_user.user_id).count()
    unread = db.session.query(Notification).filter_by(user_id_fk=current_user.user_id, is_read=False).count()
    rows = db.session.execute(
        q.order_by(Notification.created_at.desc(), Notification.notification_id.desc()).limit(limit).offset(offset)
    ).scalars().all()
    meta = pagination_meta(total, limit, offset)
    meta["unread"] = unread
    return api_success({"items": [n.to_dict() for n in rows]}, meta)


@notifications_bp.route("/api/notifications/<int:notification_id>", methods=["PUT"])
@login_required
@csrf_required
def mark_read(notification_id):
    n = _own_notification(notification_id)
    if not n:
        return not_found("Notification")
    n.is_read = True
    db.session.commit()
    return api_success(n.to_dict())


@notifications_bp.route("/api/notifications/read-all", methods=["POST"])
@login_required
@csrf_required
def mark_all_read():
    updated = db.session.query(Notification).filter_by(
        user_id_fk=current_user.user_id, is_read=False
    ).update({"is_read": True})
    db.session.commit()
    return api_success({"updated": updated})


@notifications_bp.route("/api/notifications/<int:notification_id>", methods=["DELETE"])
@login_required
@csrf_required
def delete_notification(notification_id):
    n = _own_notification(notification_id)
    if not n:
        return not_found("Notification")
    db.session.delete(n)
    db.session.commit()
    return api_success({"deleted": notification_id})
