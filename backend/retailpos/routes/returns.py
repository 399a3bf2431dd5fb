# Overview: Flask API routes for customer returns.

from flask import Blueprint, request, jsonify, current_app, g

from ..services import return_service
from ..errors import BusinessError, internal_error_response
from ..decorators import require_auth

returns_bp = Blueprint("returns", __name__, url_prefix="/api/returns")


@returns_bp.post("")
@require_auth
def create_return_route():
    """
    Body: {saleId, items: [{productId, quantity}], reason?, refundMethod?}
    Quantities are in pieces regardless of how the sale line was sold.
    """
    try:
        data = return_service.parse_return_request(request.get_json(silent=True))
        ret = return_service.create_return(
            data["sale_id"],
            data["items"],
            actor=g.current_user,
            reason=data["reason"],
            refund_method=data["refund_method"],
        )
        current_app.logger.info(
            "Return %s for sale %s: refund %s", ret.return_number, ret.sale_id, ret.total_refund
        )
        return jsonify(ret.to_dict(include_items=True)), 201
    except BusinessError as e:
        return e.to_response()
    except Exception:
        current_app.logger.exception("Failed to create return")
        return internal_error_response()


@returns_bp.get("")
@require_auth
def list_returns_route():
    try:
        rows = return_service.list_returns(
            sale_id=request.args.get("sale_id", type=int),
            shift_id=request.args.get("shift_id", type=int),
            limit=min(request.args.get("limit", 200, type=int) or 200, 1000),
        )
        return jsonify({"items": [r.to_dict(include_items=True) for r in rows], "count": len(rows)}), 200
    except Exception:
        current_app.logger.exception("Failed to list returns")
        return internal_error_response()
