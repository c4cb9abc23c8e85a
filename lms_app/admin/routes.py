from flask import request, current_app
from flask_login import login_required, current_user
from sqlalchemy import select, or_, func
from . import admin_bp
from .. import db, csrf_required
from ..api_utils import (
    api_success, api_error, not_found, request_data, parse_bool, parse_choice, parse_pagination,
    pagination_meta, validation_error, ValidationError,
)
from ..decorators import role_required
from ..models import User, ROLES


@admin_bp.route("/users", methods=["GET"])
@login_required
@role_required("admin")
def list_users():
    args = request.args
    try:
        limit, offset = parse_pagination(args, default_limit=25, max_limit=100)
        role = parse_choice(args.get("role"), "role", ROLES) if args.get("role") else None
    except ValidationError as e:
        return validation_error(e)
    q = select(User)
    if role:
        q = q.filter(func.lower(User.role) == role)
    term = (args.get("search") or args.get("query") or "").strip()
    if term:
        q = q.filter(or_(User.name.ilike(f"%{term}%"), User.email.ilike(f"%{term}%")))
    if args.get("is_active") not in (None, ""):
        q = q.filter(User.is_active.is_(parse_bool(args.get("is_active"))))
    total = db.session.execute(select(func.count()).select_from(q.subquery())).scalar() or 0
    rows = db.session.execute(
        q.order_by(User.created_at.desc(), User.user_id.desc()).limit(limit).offset(offset)
    ).scalars().all()
    return api_success({"users": [u.to_dict() for u in rows]}, pagination_meta(total, limit, offset))


@admin_bp.route("/users/<int:user_id>/status", methods=["PUT"])
@login_required
@role_required("admin")
@csrf_required
def set_status(user_id):
    user = db.session.get(User, user_id)
    if not user:
        return not_found("User")
    data = request_data()
    if "is_active" not in data:
        return api_error("validation_error", "is_active is required", 400)
    is_active = parse_bool(data.get("is_active"))
    if user.user_id == current_user.user_id and not is_active:
        return api_error("validation_error", "You cannot deactivate your own account", 400)
    user.is_active = is_active
    db.session.commit()
    current_app.logger.info(f"Admin {current_user.user_id} set user {user_id} active={is_active}")
    return api_success({"user": user.to_dict()})


@admin_bp.route("/users/<int:user_id>", methods=["PUT"])
@login_required
@role_required("admin")
@csrf_required
def update_user(user_id):
    user = db.session.get(User, user_id)
    if not user:
        return not_found("User")
    data = request_data()
    try:
        role = parse_choice(data.get("role"), "role", ROLES)
    except ValidationError as e:
        return validation_error(e)
    if user.user_id == current_user.user_id and role != "admin":
        return api_error("validation_error", "You cannot remove your own admin role", 400)
    user.role = role
    if "name" in data and (data.get("name") or "").strip():
        user.name = data["name"].strip()[:128]
    db.session.commit()
    current_app.logger.info(f"Admin {current_user.user_id} changed role of user {user_id} to {role}")
    return api_success({"user": user.to_dict()})
