# Overview: Flask API routes for customers and their point history.

from flask import Blueprint, request, jsonify, current_app

from ..services import customer_service, loyalty_service
from ..errors import BusinessError, internal_error_response
from ..decorators import require_auth

customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


@customers_bp.get("")
@require_auth
def list_customers_route():
    try:
        result = customer_service.list_customers(
            search=request.args.get("search"),
            page=request.args.get("page", type=int),
            per_page=request.args.get("per_page", type=int),
        )
        return jsonify(result), 200
    except BusinessError as e:
        return e.to_response()
    except Exception:
        current_app.logger.exception("Failed to list customers")
        return internal_error_response()


@customers_bp.post("")
@require_auth
def create_customer_route():
    try:
        customer = customer_service.create_customer(request.get_json(silent=True))
        return jsonify(customer.to_dict()), 201
    except BusinessError as e:
        return e.to_response()
    except Exception:
        current_app.logger.exception("Failed to create customer")
        return internal_error_response()


@customers_bp.get("/<int:customer_id>")
@require_auth
def get_customer_route(customer_id: int):
    try:
        return jsonify(customer_service.get_customer(customer_id).to_dict()), 200
    except BusinessError as e:
        return e.to_response()
    except Exception:
        current_app.logger.exception("Failed to get customer")
        return internal_error_response()


@customers_bp.patch("/<int:customer_id>")
@require_auth
def update_customer_route(customer_id: int):
    try:
        customer = customer_service.update_customer(customer_id, request.get_json(silent=True))
        return jsonify(customer.to_dict()), 200
    except BusinessError as e:
        return e.to_response()
    except Exception:
        current_app.logger.exception("Failed to update customer")
        return internal_error_response()


@customers_bp.get("/<int:customer_id>/points")
@require_auth
def customer_points_route(customer_id: int):
    try:
        customer = customer_service.get_customer(customer_id)
        limit = min(request.args.get("limit", 100, type=int) or 100, 500)
        logs = loyalty_service.list_point_logs(customer.id, limit=limit)
        return jsonify({
            "customerId": customer.id,
            "totalPoints": customer.total_points,
            "tierLevel": customer.tier_level,
            "items": [log.to_dict() for log in logs],
        }), 200
    except BusinessError as e:
        return e.to_response()
    except Exception:
        current_app.logger.exception("Failed to list customer points")
        return internal_error_response()
