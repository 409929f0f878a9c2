from functools import wraps
from flask import jsonify, request
from flask_jwt_extended import verify_jwt_in_request, get_jwt_identity, get_jwt

from giving.services.exceptions import PermissionDeniedError, ValidationError


def current_user_id() -> int | None:
    identity = get_jwt_identity()
    if identity is None:
        return None
    return int(identity)


def is_admin() -> bool:
    claims = get_jwt() or {}
    return bool(claims.get("is_admin")) or claims.get("role") == "admin"


def can_act_for(owner_id) -> bool:
    """Owner-or-admin check against the caller's token."""
    if is_admin():
        return True
    uid = current_user_id()
    return uid is not None and owner_id is not None and int(owner_id) == uid


def ensure_can_act_for(owner_id) -> None:
    if not can_act_for(owner_id):
        raise PermissionDeniedError("forbidden")


def requested_user_id() -> int | None:
    """The caller, or the ``?user_id=`` an admin asked about."""
    if request.args.get("user_id") and is_admin():
        try:
            return int(request.args["user_id"])
        except ValueError:
            raise ValidationError("user_id must be an integer")
    return current_user_id()


def require_admin(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        verify_jwt_in_request()
        if not is_admin():
            return jsonify({"error": "forbidden", "required": "admin"}), 403
        return fn(*args, **kwargs)

    return wrapper
