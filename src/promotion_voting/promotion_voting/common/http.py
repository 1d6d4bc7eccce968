from __future__ import annotations

from datetime import datetime
from functools import wraps

from flask import jsonify, request, session

from ..core.enums import Role
from ..core.exceptions import (
    AuthorizationError,
    DomainError,
    NotFoundError,
    RetryLimitExceeded,
    StateConflict,
    StorageError,
    ValidationError,
)
from .datetime_utils import parse_iso_datetime


def ok(data=None, status: int = 200):
    return jsonify({"ok": True, "data": data}), status


def error_response(exc: DomainError):
    if isinstance(exc, NotFoundError):
        status = 404
    elif isinstance(exc, ValidationError):
        status = 400
    elif isinstance(exc, AuthorizationError):
        status = 403
    elif isinstance(exc, (StateConflict, RetryLimitExceeded)):
        status = 409
    elif isinstance(exc, StorageError):
        status = 503
    else:
        status = 400
    return jsonify({"ok": False, "error": exc.code, "message": str(exc)}), status


def api_view(view):
    """Translate domain errors raised by a view into JSON responses."""

    @wraps(view)
    def wrapper(*args, **kwargs):
        try:
            return view(*args, **kwargs)
        except DomainError as e:
            return error_response(e)

    return wrapper


def login_required(view):
    @wraps(view)
    def wrapper(*args, **kwargs):
        if "user_id" not in session:
            return jsonify({"ok": False, "error": "UNAUTHENTICATED", "message": "Login required"}), 401
        return view(*args, **kwargs)

    return wrapper


def admin_required(view):
    @wraps(view)
    def wrapper(*args, **kwargs):
        if "user_id" not in session:
            return jsonify({"ok": False, "error": "UNAUTHENTICATED", "message": "Login required"}), 401
        if session.get("role") != Role.ADMIN.value:
            return error_response(AuthorizationError("Administrator role required"))
        return view(*args, **kwargs)

    return wrapper


def current_employee_id() -> int:
    return int(session["user_id"])


def current_actor() -> str:
    return f"employee:{session.get('user_id')}"


def json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        data = request.form.to_dict()
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def parse_datetime_field(data: dict, key: str) -> datetime:
    try:
        return parse_iso_datetime(str(data.get(key) or ""))
    except ValueError:
        raise ValidationError(f"{key} must be 'YYYY-MM-DD HH:MM[:SS]'")


def parse_bool(value, default: bool = False) -> bool:
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"1", "true", "yes", "on"}
