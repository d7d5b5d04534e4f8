from functools import wraps
from flask import jsonify, g
from flask_jwt_extended import verify_jwt_in_request, get_jwt

ADMIN_ROLES = ("admin",)
STAFF_ROLES = ("admin", "teacher", "staff")
FINANCE_ROLES = ("admin", "bursar")


def _forbidden(message, code=403):
    return jsonify({"status": "error", "message": message, "code": code}), code


def _is_super_admin():
    return bool(get_jwt().get("super_admin")) and g.get("user") is not None and g.user.is_super_admin


def role_required(*roles, message="Forbidden"):
    """Enforce the caller's role in the active school. Super admins pass every role check."""
    def wrapper(fn):
        @wraps(fn)
        def inner(*args, **kwargs):
            verify_jwt_in_request()
            if g.get("user") is None:
                return _forbidden("Authentication required", 401)
            if not _is_super_admin() and g.get("role") not in roles:
                return _forbidden(message)
            return fn(*args, **kwargs)
        return inner
    return wrapper


def admin_required(fn):
    return role_required(*ADMIN_ROLES, message="Admin access required")(fn)


def staff_required(fn):
    return role_required(*STAFF_ROLES, message="Staff access required")(fn)


def finance_required(fn):
    return role_required(*FINANCE_ROLES, message="Finance access required")(fn)


def super_admin_required(fn):
    @wraps(fn)
    def inner(*args, **kwargs):
        verify_jwt_in_request()
        if g.get("user") is None:
            return _forbidden("Authentication required", 401)
        if not _is_super_admin():
            return _forbidden("Super admin access required")
        return fn(*args, **kwargs)
    return inner


def school_required(fn):
    """Routes scoped to the caller's active school."""
    @wraps(fn)
    def inner(*args, **kwargs):
        verify_jwt_in_request()
        if g.get("user") is None:
            return _forbidden("Authentication required", 401)
        if not g.get("school_id"):
            if g.get("token_school_id"):
                return _forbidden("You do not have access to this school")
            return _forbidden("No active school selected", 400)
        return fn(*args, **kwargs)
    return inner
