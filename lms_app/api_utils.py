import math
import re
from datetime import datetime, timezone
from flask import jsonify, request

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class ValidationError(ValueError):
    """Raised by the request parsers below; carries one message per bad field."""

    def __init__(self, details):
        if isinstance(details, str):
            details = [details]
        self.details = list(details)
        super().__init__("; ".join(self.details))


def api_success(data=None, meta=None, status=200):
    body = {"success": True, "data": data if data is not None else {}, "meta": meta or {}}
    return jsonify(body), status


def api_error(code="error", message="", status=400, details=None):
    body = {"success": False, "error": {"code": code, "message": message}}
    if details:
        body["error"]["details"] = details
    return jsonify(body), status


def validation_error(exc):
    return api_error("validation_error", str(exc), 400, exc.details)


def not_found(what="Resource"):
    return api_error("not_found", f"{what} not found", 404)


def forbidden(message="You do not have permission to access this resource."):
    return api_error("forbidden", message, 403)


def request_data():
    """JSON body when present, else form fields."""
    data = request.get_json(silent=True)
    if isinstance(data, dict):
        return data
    return request.form.to_dict()


def require_str(data, field, label=None, max_length=None):
    value = data.get(field)
    value = value.strip() if isinstance(value, str) else ""
    label = label or field.replace("_", " ").capitalize()
    if not value:
        raise ValidationError(f"{label} is required")
    if max_length and len(value) > max_length:
        raise ValidationError(f"{label} must be at most {max_length} characters")
    return value


def optional_str(data, field):
    value = data.get(field)
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def parse_int(value, field, default=None, minimum=None, maximum=None):
    if value is None or value == "":
        if default is None:
            raise ValidationError(f"{field} is required")
        return default
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer")
    if minimum is not None and number < minimum:
        raise ValidationError(f"{field} must be at least {minimum}")
    if maximum is not None and number > maximum:
        raise ValidationError(f"{field} must be at most {maximum}")
    return number


def parse_float(value, field):
    if value is None or value == "":
        raise ValidationError(f"{field} is required")
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be a number")
    if not math.isfinite(number):
        raise ValidationError(f"{field} must be a finite number")
    return number


def parse_bool(value, default=False):
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")


def parse_datetime(value, field, required=False):
    """Accepts ISO-8601 dates or datetimes; returns naive UTC."""
    if value is None or value == "":
        if required:
            raise ValidationError(f"{field} is required")
        return None
    raw = str(value).strip()
    if raw.endswith("Z"):
        raw = raw[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(raw)
    except ValueError:
        raise ValidationError(f"{field} must be an ISO date")
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def parse_choice(value, field, choices, default=None):
    if value is None or value == "":
        if default is None:
            raise ValidationError(f"{field} is required")
        return default
    normalized = str(value).strip().upper()
    upper_choices = {c.upper(): c for c in choices}
    if normalized not in upper_choices:
        raise ValidationError(f"{field} must be one of: {', '.join(choices)}")
    return upper_choices[normalized]


def parse_pagination(args, default_limit=20, max_limit=50):
    limit = parse_int(args.get("limit"), "limit", default=default_limit, minimum=1, maximum=max_limit)
    offset = parse_int(args.get("offset"), "offset", default=0, minimum=0)
    return limit, offset


def pagination_meta(total, limit, offset):
    return {"total": total, "limit": limit, "offset": offset, "has_more": offset + limit < total}
