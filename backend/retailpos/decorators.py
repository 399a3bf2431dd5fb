# Overview: Request and role decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .services import session_service


def _bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    token = auth_header.split(" ", 1)[1].strip()
    return token or None


def require_auth(f):
    """
    Require a valid bearer session.

    Sets on Flask g:
    - g.current_user: the authenticated User
    - g.session_token: the raw token (logout revokes it)

    Returns 401 when the header is missing, the token is unknown, revoked
    or expired, or the user was deactivated.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = _bearer_token()
        if not token:
            return jsonify({"code": "UNAUTHORIZED", "message": "Authentication required"}), 401

        result = session_service.validate_session(token)
        if not result:
            return jsonify({"code": "UNAUTHORIZED", "message": "Invalid or expired token"}), 401

        user, _session = result
        g.current_user = user
        g.session_token = token
        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles: str):
    """Restrict a route to the given roles. Use after @require_auth."""
    allowed = {r.lower() for r in roles}

    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            user = getattr(g, "current_user", None)
            if user is None:
                return jsonify({"code": "UNAUTHORIZED", "message": "Authentication required"}), 401
            if (user.role or "").lower() not in allowed:
                return jsonify({
                    "code": "FORBIDDEN",
                    "message": "Permission denied",
                    "details": {"requiredRoles": sorted(allowed)},
                }), 403
            return f(*args, **kwargs)
        return decorated_function
    return decorator
