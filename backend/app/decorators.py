# Overview: Request authentication and admin-level decorators for API routes.

from functools import wraps
from flask import request, jsonify, g, current_app

from .services import session_service


# Higher rank satisfies lower requirements
ADMIN_RANK = {"ADMIN": 1, "SUPER": 2}


def _is_authenticated() -> bool:
    return hasattr(g, 'current_user') and hasattr(g, 'session_context')


def is_admin(user, min_level: str = "ADMIN") -> bool:
    """INTERNAL users whose admin_level ranks at or above min_level."""
    if user is None or user.label != "INTERNAL" or not user.admin_level:
        return False
    return ADMIN_RANK.get(user.admin_level, 0) >= ADMIN_RANK[min_level]


def require_auth(f):
    """
    Require a valid bearer session.

    Sets the following Flask g attributes:
    - g.current_user: The authenticated User object
    - g.session_context: The full SessionContext object

    SECURITY: Returns 401 if:
    - No Authorization header
    - Invalid, expired, idle or revoked token
    - User account deactivated
    - Session version invalidated (logout everywhere)
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")

        if not auth_header or not auth_header.startswith("Bearer "):
            return jsonify({"error": "Authentication required"}), 401

        token = auth_header.split(" ", 1)[1]

        context = session_service.validate_session(token)

        if not context:
            return jsonify({"error": "Invalid or expired token"}), 401

        g.current_user = context.user
        g.session_context = context

        return f(*args, **kwargs)

    return decorated_function


def require_admin_level(min_level: str = "ADMIN"):
    """
    Require an INTERNAL user with at least `min_level` (ADMIN < SUPER).

    Must be stacked under @require_auth.
    """
    if min_level not in ADMIN_RANK:
        raise ValueError(f"Unknown admin level: {min_level}")

    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not _is_authenticated():
                return jsonify({"error": "Authentication required"}), 401

            user = g.current_user
            if not is_admin(user, min_level):
                current_app.logger.warning(
                    "Admin access denied: user=%s path=%s required=%s",
                    user.id, request.path, min_level,
                )
                return jsonify({
                    "error": "Permission denied",
                    "required_admin_level": min_level,
                }), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator
