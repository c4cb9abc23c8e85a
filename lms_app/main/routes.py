import hashlib
import os
from flask import render_template, request, redirect, url_for, flash, current_app, send_from_directory, abort
from flask_login import login_user, logout_user, login_required, current_user
from itsdangerous import URLSafeTimedSerializer, BadSignature, SignatureExpired
from sqlalchemy import select
from werkzeug.security import check_password_hash, generate_password_hash
from . import main_bp
from .. import db, limiter, csrf_required, issue_csrf_token
from ..access import can_download
from ..api_utils import (
    EMAIL_RE, api_success, api_error, request_data, require_str, optional_str, validation_error, ValidationError,
)
from ..email_utils import send_template_email
from ..models import User

MIN_PASSWORD_LENGTH = 8
SELF_SERVICE_ROLES = ("professor", "student")
PROFILE_FIELDS = ("name", "bio", "university", "department", "avatar_url")
RESET_SALT = "password-reset"


def _get_serializer():
    secret = current_app.config.get("SECRET_KEY") or "dev-secret-key"
    return URLSafeTimedSerializer(secret)


def _password_fingerprint(user):
    # Changes with every new password, so a used reset link stops verifying
    return hashlib.sha256((user.password_hash or "").encode()).hexdigest()[:16]


def _wants_json():
    return request.is_json or request.accept_mimetypes.best == "application/json"


@main_bp.route("/")
def index():
    if current_user.is_authenticated:
        return redirect(url_for("main.dashboard"))
    return redirect(url_for("main.login"))


@main_bp.route("/login", methods=["GET", "POST"])
@limiter.limit("10 per minute", methods=["POST"])
def login():
    if request.method == "POST":
        data = request_data()
        email = (data.get("email") or "").strip().lower()
        password = data.get("password") or ""
        if not email or not password:
            if _wants_json():
                return api_error("validation_error", "Email and password are required.", 400)
            flash("Email and password are required.", "danger")
            return render_template("login.html"), 400
        user = db.session.execute(select(User).filter_by(email=email)).scalars().first()
        if not user or not user.password_hash or not check_password_hash(user.password_hash, password):
            current_app.logger.warning(f"Failed login for {email}")
            if _wants_json():
                return api_error("invalid_credentials", "Invalid credentials.", 401)
            flash("Invalid credentials.", "danger")
            return render_template("login.html"), 401
        if not user.is_active:
            if _wants_json():
                return api_error("account_disabled", "This account has been deactivated.", 403)
            flash("This account has been deactivated.", "danger")
            return render_template("login.html"), 403
        login_user(user)
        current_app.logger.info(f"User {user.user_id} logged in")
        if _wants_json():
            return api_success({"user": user.to_dict(), "csrf_token": issue_csrf_token()})
        flash("Logged in successfully.", "success")
        return redirect(url_for("main.dashboard"))
    return render_template("login.html")


@main_bp.route("/logout")
def logout():
    if current_user.is_authenticated:
        logout_user()
        flash("Logged out.", "info")
    return redirect(url_for("main.login"))


@main_bp.route("/dashboard")
@login_required
def dashboard():
    from ..dashboard import services
    role = (current_user.role or "").lower()
    stats = None
    if role == "professor":
        stats = services.professor_dashboard_stats(current_user.user_id)
    elif role == "student":
        stats = services.student_dashboard_stats(current_user)
    return render_template("dashboard.html", role=role, stats=stats)


@main_bp.route("/api/csrf-token")
def csrf_token():
    return api_success({"csrf_token": issue_csrf_token()})


@main_bp.route("/api/auth/register", methods=["POST"])
@limiter.limit("5 per minute")
def register():
    data = request_data()
    try:
        name = require_str(data, "name", max_length=128)
        email = require_str(data, "email", max_length=128).lower()
        if not EMAIL_RE.match(email):
            raise ValidationError("Email must be a valid email address")
        password = data.get("password") or ""
        if len(password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
        role = (data.get("role") or "student").strip().lower()
        if role not in SELF_SERVICE_ROLES:
            raise ValidationError("Role must be professor or student")
    except ValidationError as e:
        return validation_error(e)

    if db.session.execute(select(User).filter_by(email=email)).scalars().first():
        return api_error("email_taken", "User with this email already exists", 400)

    user = User(
        name=name,
        email=email,
        password_hash=generate_password_hash(password),
        role=role,
        university=optional_str(data, "university"),
        department=optional_str(data, "department"),
    )
    db.session.add(user)
    db.session.commit()
    current_app.logger.info(f"Registered {role} account {user.user_id}")
    send_template_email(user.email, "welcome", recipient=user)
    return api_success({"user": user.to_dict()}, status=201)


@main_bp.route("/api/auth/forgot-password", methods=["POST"])
@limiter.limit("3 per minute", methods=["POST"])
def forgot_password():
    data = request_data()
    email = (data.get("email") or "").strip().lower()
    if not EMAIL_RE.match(email):
        return api_error("validation_error", "Email must be a valid email address", 400)
    user = db.session.execute(select(User).filter_by(email=email)).scalars().first()
    if user and user.is_active:
        token = _get_serializer().dumps(
            {"user_id": user.user_id, "fp": _password_fingerprint(user)}, salt=RESET_SALT
        )
        reset_url = url_for("main.reset_password", token=token, _external=True)
        current_app.logger.info(f"Password reset requested for user {user.user_id}")
        send_template_email(user.email, "password_reset", recipient=user, link=reset_url)
    else:
        current_app.logger.info(f"Password reset requested for unknown or inactive account {email}")
    # Same response whether or not the account exists
    return api_success({"message": "If that account exists, a reset link has been sent."})


def _load_reset_user(token):
    max_age = current_app.config.get("PASSWORD_RESET_MAX_AGE", 3600)
    try:
        data = _get_serializer().loads(token or "", salt=RESET_SALT, max_age=max_age)
    except SignatureExpired:
        return None, api_error("reset_token_expired", "Reset link expired", 400)
    except BadSignature:
        return None, api_error("reset_token_invalid", "Invalid reset link", 400)
    user = db.session.get(User, data.get("user_id"))
    if not user or not user.is_active or data.get("fp") != _password_fingerprint(user):
        return None, api_error("reset_token_invalid", "Invalid reset link", 400)
    return user, None


@main_bp.route("/api/auth/reset-password", methods=["GET", "POST"])
@limiter.limit("5 per minute", methods=["POST"])
def reset_password():
    if request.method == "GET":
        user, error = _load_reset_user(request.args.get("token"))
        if error:
            return error
        return api_success({"email": user.email})

    data = request_data()
    user, error = _load_reset_user(data.get("token"))
    if error:
        return error
    password = data.get("password") or ""
    if len(password) < MIN_PASSWORD_LENGTH:
        return api_error("validation_error", f"Password must be at least {MIN_PASSWORD_LENGTH} characters", 400)
    user.password_hash = generate_password_hash(password)
    db.session.commit()
    current_app.logger.info(f"Password reset for user {user.user_id}")
    return api_success({"message": "Password updated. You can now log in."})


@main_bp.route("/api/auth/profile", methods=["GET"])
@login_required
def get_profile():
    return api_success({"user": current_user.to_dict()})


@main_bp.route("/api/auth/profile", methods=["PUT"])
@login_required
@csrf_required
def update_profile():
    data = request_data()
    try:
        for field in PROFILE_FIELDS:
            if field in data:
                value = optional_str(data, field)
                if field == "name" and not value:
                    raise ValidationError("Name is required")
                setattr(current_user, field, value)
        new_password = data.get("new_password")
        if new_password:
            if not check_password_hash(current_user.password_hash or "", data.get("current_password") or ""):
                return api_error("invalid_password", "Current password is incorrect", 400)
            if len(new_password) < MIN_PASSWORD_LENGTH:
                raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
            current_user.password_hash = generate_password_hash(new_password)
    except ValidationError as e:
        db.session.rollback()
        return validation_error(e)
    db.session.commit()
    return api_success({"user": current_user.to_dict()})


@main_bp.route("/uploads/<path:filename>")
@login_required
def uploaded_file(filename):
    root = current_app.config["UPLOAD_ROOT"]
    if not os.path.isfile(os.path.join(root, filename)) or not can_download(f"/uploads/{filename}"):
        abort(404)
    return send_from_directory(root, filename)
