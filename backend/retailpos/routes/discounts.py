# Overview: Flask API routes for discount campaigns.

from flask import Blueprint, request, jsonify, current_app

from ..services import discount_service
from ..errors import BusinessError, internal_error_response
from ..decorators import require_auth, require_role
from ..validation import parse_bool_arg

discounts_bp = Blueprint("discounts", __name__, url_prefix="/api/discounts")


@discounts_bp.get("")
@require_auth
def list_discounts_route():
    """Terminals poll this with ?active=true to refresh cart previews."""
    try:
        result = discount_service.list_discounts(
            active=parse_bool_arg(request.args.get("active")),
            status=request.args.get("status"),
            page=request.args.get("page", type=int),
            per_page=request.args.get("per_page", type=int),
        )
        return jsonify(result), 200
    except BusinessError as e:
        return e.to_response()
    except Exception:
        current_app.logger.exception("Failed to list discounts")
        return internal_error_response()


@discounts_bp.post("")
@require_auth
@require_role("admin", "supervisor")
def create_discount_route():
    try:
        discount = discount_service.create_discount(request.get_json(silent=True))
        return jsonify(discount.to_dict()), 201
    except BusinessError as e:
        return e.to_response()
    except Exception:
        current_app.logger.exception("Failed to create discount")
        return internal_error_response()


@discounts_bp.patch("/<int:discount_id>")
@require_auth
@require_role("admin", "supervisor")
def update_discount_route(discount_id: int):
    try:
        discount = discount_service.update_discount(discount_id, request.get_json(silent=True))
        return jsonify(discount.to_dict()), 200
    except BusinessError as e:
        return e.to_response()
    except Exception:
        current_app.logger.exception("Failed to update discount")
        return internal_error_response()


@discounts_bp.delete("/<int:discount_id>")
@require_auth
@require_role("admin", "supervisor")
def delete_discount_route(discount_id: int):
    try:
        deleted = discount_service.delete_discount(discount_id)
        if deleted:
            return jsonify({"message": "Discount deleted", "deleted": True}), 200
        return jsonify({"message": "Discount is referenced by sales; deactivated instead", "deleted": False}), 200
    except BusinessError as e:
        return e.to_response()
    except Exception:
        current_app.logger.exception("Failed to delete discount")
        return internal_error_response()
