# Overview: Flask API routes for loyalty program settings.

from flask import Blueprint, request, jsonify, current_app

from ..extensions import db
from ..services import loyalty_service
from ..errors import BusinessError, internal_error_response
from ..decorators import require_auth, require_role

loyalty_bp = Blueprint("loyalty", __name__, url_prefix="/api/loyalty")


@loyalty_bp.get("/settings")
@require_auth
def get_settings_route():
    try:
        settings = loyalty_service.get_settings()
        db.session.commit()
        return jsonify(settings.to_dict()), 200
    except Exception:
        current_app.logger.exception("Failed to load loyalty settings")
        return internal_error_response()


@loyalty_bp.put("/settings")
@require_auth
@require_role("admin")
def update_settings_route():
    try:
        settings = loyalty_service.update_settings(request.get_json(silent=True))
        current_app.logger.info("Loyalty settings updated")
        return jsonify(settings.to_dict()), 200
    except BusinessError as e:
        db.session.rollback()
        return e.to_response()
    except Exception:
        current_app.logger.exception("Failed to update loyalty settings")
        return internal_error_response()
