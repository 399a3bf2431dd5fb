from flask import Blueprint, jsonify, request, current_app

from ..decorators import require_auth, require_role
from ..errors import internal_error_response
from ..services import dashboard_service


dashboard_bp = Blueprint("dashboard", __name__, url_prefix="/api/dashboard")


@dashboard_bp.get("/overview")
@require_auth
@require_role("admin", "supervisor")
def dashboard_overview():
    """Out-of-range window sizes are clamped rather than rejected."""
    try:
        overview = dashboard_service.get_overview(
            days=request.args.get("days", 30),
            months=request.args.get("months", 12),
            top_limit=request.args.get("topLimit", 10),
            low_stock_threshold=request.args.get("lowStockThreshold", 10),
        )
        return jsonify(overview), 200
    except Exception:
        current_app.logger.exception("Failed to build dashboard overview")
        return internal_error_response()
