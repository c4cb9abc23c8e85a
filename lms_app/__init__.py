import os
import secrets
import time
from flask import Flask, session, request, url_for, flash, redirect, current_app
from flask_login import LoginManager
from flask_sqlalchemy import SQLAlchemy
from werkzeug.exceptions import RequestEntityTooLarge
from functools import wraps
from flask_migrate import Migrate
from datetime import timedelta
from flask_limiter import Limiter
from flask_caching import Cache
from werkzeug.exceptions import HTTPException
from flask_limiter.errors import RateLimitExceeded

# Global extensions
db = SQLAlchemy()
login_manager = LoginManager()
migrate = Migrate()
def _rate_key():
    ip = (request.headers.get("X-Forwarded-For") or request.remote_addr or "local")
    token = (session.get("rlid") or "")
    path = (getattr(request, "path", "/") or "/")
    return f"{ip}|{token}|{path}"

limiter = Limiter(key_func=_rate_key)
cache = Cache()


def _env_flag(name, default):
    return (os.environ.get(name, default).lower() == "true")


def is_api_request():
    return (request.path or "").startswith("/api/")


def create_app():
    app = Flask(__name__)
    app.config["SECRET_KEY"] = os.environ.get("SECRET_KEY", "dev-secret-key")

    app.config["PERMANENT_SESSION_LIFETIME"] = timedelta(minutes=int(os.environ.get("SESSION_MINUTES", "60")))

    REDIS_URL = os.environ.get("REDIS_URL")
    if REDIS_URL:
        app.config["CACHE_TYPE"] = "RedisCache"
        app.config["CACHE_REDIS_URL"] = REDIS_URL
        app.config["RATELIMIT_STORAGE_URI"] = REDIS_URL
    else:
        app.config["CACHE_TYPE"] = os.environ.get("CACHE_TYPE", "SimpleCache")
    app.config["RATELIMIT_ENABLED"] = _env_flag("RATELIMIT_ENABLED", "true")
    # Global upload cap (can be overridden via env)
    app.config["MAX_CONTENT_LENGTH"] = int(os.environ.get("MAX_CONTENT_LENGTH", str(64 * 1024 * 1024)))
    app.config["ASSIGNMENT_MAX_UPLOAD_BYTES"] = int(os.environ.get("ASSIGNMENT_MAX_UPLOAD_BYTES", str(50 * 1024 * 1024)))
    app.config["UPLOAD_ROOT"] = os.environ.get("UPLOAD_ROOT") or os.path.join(app.root_path, "static", "uploads")
    # CSRF token TTL (seconds)
    app.config["CSRF_ENABLED"] = _env_flag("CSRF_ENABLED", "true")
    app.config["CSRF_TOKEN_TTL"] = int(os.environ.get("CSRF_TOKEN_TTL", "7200"))
    app.config["INVITATION_TOKEN_MAX_AGE"] = int(os.environ.get("INVITATION_TOKEN_MAX_AGE", str(7 * 24 * 3600)))
    app.config["PASSWORD_RESET_MAX_AGE"] = int(os.environ.get("PASSWORD_RESET_MAX_AGE", "3600"))
    app.config["ANALYTICS_CACHE_SECONDS"] = int(os.environ.get("ANALYTICS_CACHE_SECONDS", "60"))

    # Mail configuration (optional; notifications and analytics reports)
    app.config["MAIL_HOST"] = os.environ.get("MAIL_HOST")
    app.config["MAIL_PORT"] = int(os.environ.get("MAIL_PORT", "587"))
    app.config["MAIL_USER"] = os.environ.get("MAIL_USER")
    app.config["MAIL_PASSWORD"] = os.environ.get("MAIL_PASSWORD")
    app.config["MAIL_FROM"] = os.environ.get("MAIL_FROM", os.environ.get("MAIL_USER", "noreply@example.com"))
    app.config["MAIL_USE_TLS"] = _env_flag("MAIL_USE_TLS", "true")
    app.config["MAIL_USE_SSL"] = _env_flag("MAIL_USE_SSL", "false")

    # Database configuration: use DATABASE_URL if provided, else sqlite file
    database_url = os.environ.get("DATABASE_URL")
    if not database_url:
        db_path = os.path.join(os.path.dirname(__file__), "..", "lms.db")
        database_url = f"sqlite:///{os.path.abspath(db_path)}"

    app.config["SQLALCHEMY_DATABASE_URI"] = database_url
    app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False

    app.config.setdefault("RATELIMIT_STORAGE_URI", "memory://")
    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)
    cache.init_app(app)
    # Flask-Caching decorators look up cache.app outside of init
    if not hasattr(cache, "app"):
        cache.app = app
    # Auth: Flask-Login
    login_manager.init_app(app)
    login_manager.login_view = "main.login"

    # Import models so they are registered with SQLAlchemy
    from . import models  # noqa: F401

    @app.context_processor
    def inject_csrf_token():
        token = issue_csrf_token()
        def _csrf_token():
            return token
        return {"csrf_token": _csrf_token, "csrf_token_value": token}

    @app.before_request
    def ensure_rate_key():
        if not session.get("rlid"):
            session["rlid"] = secrets.token_urlsafe(16)

    @login_manager.user_loader
    def load_user(user_id: str):
        from .models import User
        try:
            return db.session.get(User, int(user_id))
        except (TypeError, ValueError):
            return None

    @login_manager.unauthorized_handler
    def handle_unauthorized():
        if is_api_request():
            from .api_utils import api_error
            return api_error("auth_required", "Authentication required", 401)
        flash("Please log in to continue.", "warning")
        return redirect(url_for("main.login", next=request.path))

    # Blueprints
    from .main import main_bp
    app.register_blueprint(main_bp)

    from .classes import classes_bp
    app.register_blueprint(classes_bp)

    from .notes import notes_bp
    app.register_blueprint(notes_bp)

    from .quizzes import quizzes_bp
    app.register_blueprint(quizzes_bp)

    from .assignments import assignments_bp
    app.register_blueprint(assignments_bp)

    from .attendance import attendance_bp
    app.register_blueprint(attendance_bp)

    from .practice import practice_bp
    app.register_blueprint(practice_bp)

    from .dashboard import dashboard_bp
    app.register_blueprint(dashboard_bp)

    from .notifications import notifications_bp
    app.register_blueprint(notifications_bp)

    from .teachers import teachers_bp
    app.register_blueprint(teachers_bp)

    from .events import events_bp
    app.register_blueprint(events_bp)

    from .admin import admin_bp
    app.register_blueprint(admin_bp, url_prefix="/api/admin")

    @app.errorhandler(RequestEntityTooLarge)
    def handle_large_upload(e):
        limit_bytes = app.config.get("MAX_CONTENT_LENGTH") or (64 * 1024 * 1024)
        limit_mb = max(1, int(limit_bytes / (1024 * 1024)))
        from .api_utils import api_error
        return api_error("file_too_large", f"Upload exceeds the global size limit (max {limit_mb} MB).", 413)

    @app.errorhandler(RateLimitExceeded)
    def handle_rate_limit(e):
        from .api_utils import api_error
        return api_error("rate_limited", "Too many requests", 429)

    @app.errorhandler(HTTPException)
    def handle_http_exception(e):
        from .api_utils import api_error
        return api_error(str(e.code), e.description or "", e.code)

    # Create tables on first run (dev convenience)
    with app.app_context():
        db.create_all()

    return app


def issue_csrf_token():
    token = session.get("csrf_token")
    issued_at = session.get("csrf_token_issued_at")
    ttl = current_app.config.get("CSRF_TOKEN_TTL", 7200)
    # Regenerate token if missing or expired
    now = int(time.time())
    if (not token) or (not issued_at) or (ttl > 0 and (now - int(issued_at)) > ttl):
        token = secrets.token_urlsafe(32)
        session["csrf_token"] = token
        session["csrf_token_issued_at"] = now
    return token


def _csrf_rejected():
    if is_api_request():
        from .api_utils import api_error
        return api_error("csrf_failed", "Refresh the Page or login again", 403)
    flash("Refresh the Page or login again", "warning")
    return redirect(request.referrer or url_for("main.index"))


def csrf_required(view_func):
    @wraps(view_func)
    def _wrapped(*args, **kwargs):
        if not current_app.config.get("CSRF_ENABLED", True):
            return view_func(*args, **kwargs)
        method = (request.method or "GET").upper()
        if method in ("POST", "PUT", "PATCH", "DELETE"):
            token = (request.form.get("csrf_token") or request.headers.get("X-CSRF-Token") or "").strip()
            sess_token = (session.get("csrf_token") or "")
            issued_at = session.get("csrf_token_issued_at")
            ttl = current_app.config.get("CSRF_TOKEN_TTL", 7200)
            now = int(time.time())
            # Expired token
            if not issued_at or (ttl > 0 and (now - int(issued_at)) > ttl):
                return _csrf_rejected()
            # Missing token in request
            if not token:
                return _csrf_rejected()
            # Mismatch
            if not secrets.compare_digest(token, sess_token):
                return _csrf_rejected()
        return view_func(*args, **kwargs)
    return _wrapped
