# Overview: Flask API routes for checkout, sale history, voids and parked carts.

# backend/retailpos/routes/sales.py
"""
Sales API routes

- POST /api/sales/checkout: finalize the terminal's cart
- GET /api/sales, GET /api/sales/<id>: history and receipts
- DELETE /api/sales/<id>: void
- /api/suspended-sales: park, list, recall and discard carts

Checkout bodies are validated strictly; unknown keys are 422.
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..services import checkout_service
from ..errors import BusinessError, internal_error_response
from ..decorators import require_auth
from ..time_utils import parse_iso_datetime
from ..validation import ValidationError, parse_checkout_request

sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")
suspended_bp = Blueprint("suspended_sales", __name__, url_prefix="/api/suspended-sales")


def _date_arg(name: str):
    try:
        return parse_iso_datetime(request.args.get(name))
    except ValueError:
        raise ValidationError(f"{name} must be an ISO-8601 date")


@sales_bp.post("/checkout")
@require_auth
def checkout_route():
    try:
        checkout_request = parse_checkout_request(request.get_json(silent=True))
        sale = checkout_service.checkout(checkout_request, cashier_id=g.current_user.id)
        current_app.logger.info(
            "Sale %s completed by user %s: %s", sale.invoice_no, g.current_user.id, sale.final_amount
        )
        return jsonify(sale.to_dict(include_items=True)), 201
    except BusinessError as e:
        return e.to_response()
    except Exception:
        current_app.logger.exception("Failed to checkout sale")
        return internal_error_response()


@sales_bp.get("")
@require_auth
def list_sales_route():
    try:
        sales = checkout_service.list_sales(
            start=_date_arg("start"),
            end=_date_arg("end"),
            cashier_id=request.args.get("cashier_id", type=int),
            shift_id=request.args.get("shift_id", type=int),
            status=request.args.get("status"),
            search=request.args.get("search"),
            limit=min(request.args.get("limit", 200, type=int) or 200, 1000),
        )
        return jsonify({"items": [s.to_dict() for s in sales], "count": len(sales)}), 200
    except BusinessError as e:
        return e.to_response()
    except Exception:
        current_app.logger.exception("Failed to list sales")
        return internal_error_response()


@sales_bp.get("/<int:sale_id>")
@require_auth
def get_sale_route(sale_id: int):
    try:
        sale = checkout_service.get_sale(sale_id)
        return jsonify(sale.to_dict(include_items=True)), 200
    except BusinessError as e:
        return e.to_response()
    except Exception:
        current_app.logger.exception("Failed to get sale")
        return internal_error_response()


@sales_bp.delete("/<int:sale_id>")
@require_auth
def void_sale_route(sale_id: int):
    try:
        sale = checkout_service.void_sale(sale_id, actor_id=g.current_user.id)
        current_app.logger.info("Sale %s voided by user %s", sale.invoice_no, g.current_user.id)
        return jsonify(sale.to_dict(include_items=True)), 200
    except BusinessError as e:
        return e.to_response()
    except Exception:
        current_app.logger.exception("Failed to void sale")
        return internal_error_response()


@suspended_bp.get("")
@require_auth
def list_suspended_route():
    try:
        rows = checkout_service.list_suspended_sales(g.current_user.id)
        return jsonify({"items": [r.to_dict() for r in rows], "count": len(rows)}), 200
    except Exception:
        current_app.logger.exception("Failed to list suspended sales")
        return internal_error_response()


@suspended_bp.post("")
@require_auth
def suspend_route():
    try:
        data = request.get_json(silent=True)
        note = data.get("note") if isinstance(data, dict) else None
        row = checkout_service.suspend_sale(g.current_user.id, data, note=note)
        return jsonify(row.to_dict()), 201
    except BusinessError as e:
        return e.to_response()
    except Exception:
        current_app.logger.exception("Failed to suspend sale")
        return internal_error_response()


@suspended_bp.post("/<int:suspended_id>/recall")
@require_auth
def recall_route(suspended_id: int):
    try:
        return jsonify(checkout_service.recall_suspended_sale(g.current_user.id, suspended_id)), 200
    except BusinessError as e:
        return e.to_response()
    except Exception:
        current_app.logger.exception("Failed to recall suspended sale")
        return internal_error_response()


@suspended_bp.delete("/<int:suspended_id>")
@require_auth
def discard_route(suspended_id: int):
    try:
        checkout_service.discard_suspended_sale(g.current_user.id, suspended_id)
        return jsonify({"message": "Suspended sale discarded"}), 200
    except BusinessError as e:
        return e.to_response()
    except Exception:
        current_app.logger.exception("Failed to discard suspended sale")
        return internal_error_response()
