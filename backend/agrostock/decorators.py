# Overview: Request decorators for API routes (caller identification and role gates).

from functools import wraps
from flask import request, jsonify, g

from .extensions import db
from .models import User


def _is_authenticated() -> bool:
    return hasattr(g, 'current_user')


def require_actor(f):
    """
    Identify the caller from the X-User-Id header.

    Authentication itself happens upstream; the ledger only needs to know
    which user (and therefore which role) is acting.

    Sets:
    - g.current_user: the acting User

    Returns 401 if the header is missing, malformed, or names an unknown
    or deactivated user.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        raw = request.headers.get("X-User-Id")

        if not raw:
            return jsonify({"error": "Authentication required"}), 401

        try:
            user_id = int(raw)
        except ValueError:
            return jsonify({"error": "Invalid X-User-Id header"}), 401

        user = db.session.get(User, user_id)
        if not user or not user.is_active:
            return jsonify({"error": "Unknown or inactive user"}), 401

        g.current_user = user
        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles: str):
    """Require the acting user's role to be one of roles. Use after @require_actor."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not _is_authenticated():
                return jsonify({"error": "Authentication required"}), 401

            if g.current_user.role not in roles:
                return jsonify({
                    "error": "Permission denied",
                    "required_roles": list(roles),
                    "role": g.current_user.role,
                }), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator
