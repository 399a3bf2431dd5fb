# Overview: Flask API routes for login, logout and the current user.

# backend/retailpos/routes/auth.py
"""
Authentication API routes

- POST /api/login: username + password -> bearer token
- POST /api/logout: revokes the token; refused while the caller still
  has an open shift so nobody walks away from an unreconciled drawer
- GET /api/user: the authenticated user
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..services import auth_service
from ..services import session_service
from ..services import shift_service
from ..errors import BusinessError, internal_error_response
from ..decorators import require_auth
from ..time_utils import to_utc_z


auth_bp = Blueprint("auth", __name__, url_prefix="/api")


@auth_bp.post("/login")
def login_route():
    """
    Authenticate user and create session token.

    Token must be included in Authorization header for protected routes.
    """
    try:
        data = request.get_json(silent=True) or {}
        username = data.get("username")
        password = data.get("password")

        if not username or not password:
            return jsonify({"code": "VALIDATION_ERROR", "message": "username and password required"}), 422

        user = auth_service.authenticate(username, password)
        if not user:
            return jsonify({"code": "INVALID_CREDENTIALS", "message": "Invalid credentials"}), 401

        session, token = session_service.create_session(
            user_id=user.id,
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.remote_addr,
        )
        current_app.logger.info("User %s logged in", user.username)

        return jsonify({
            "token": token,
            "user": user.to_dict(),
            "expiresAt": to_utc_z(session.expires_at),
        }), 200

    except Exception:
        current_app.logger.exception("Failed to login user")
        return internal_error_response()


@auth_bp.post("/logout")
@require_auth
def logout_route():
    try:
        active = shift_service.get_active_shift(g.current_user.id)
        if active:
            return jsonify({
                "code": "SHIFT_STILL_OPEN",
                "message": "Close your shift before logging out",
                "details": {"shiftId": active.id},
            }), 409

        session_service.revoke_session(g.session_token)
        return jsonify({"message": "Logged out"}), 200

    except BusinessError as e:
        return e.to_response()
    except Exception:
        current_app.logger.exception("Failed to logout user")
        return internal_error_response()


@auth_bp.get("/user")
@require_auth
def current_user_route():
    return jsonify(g.current_user.to_dict()), 200
