from flask import Blueprint, jsonify, request, current_app

from ..decorators import require_auth, require_role
from ..errors import BusinessError, internal_error_response
from ..services import report_service
from ..time_utils import parse_iso_datetime


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


def _bad_date(name: str):
    return jsonify({"code": "VALIDATION_ERROR", "message": f"{name} must be an ISO-8601 date"}), 422


@reports_bp.get("/daily")
@require_auth
def daily_report():
    try:
        day = parse_iso_datetime(request.args.get("date"))
    except ValueError:
        return _bad_date("date")

    try:
        return jsonify(report_service.daily_stats(day)), 200
    except Exception:
        current_app.logger.exception("Failed to build daily report")
        return internal_error_response()


@reports_bp.get("/items")
@require_auth
@require_role("admin", "supervisor")
def item_sales_report():
    try:
        start = parse_iso_datetime(request.args.get("start"))
        end = parse_iso_datetime(request.args.get("end"))
    except ValueError:
        return _bad_date("start/end")

    limit = min(request.args.get("limit", 100, type=int) or 100, 1000)
    try:
        rows = report_service.item_sales(start, end, limit=limit)
        return jsonify({"items": rows, "count": len(rows)}), 200
    except Exception:
        current_app.logger.exception("Failed to build item sales report")
        return internal_error_response()


@reports_bp.get("/cash-discrepancies")
@require_auth
@require_role("admin", "supervisor")
def cash_discrepancies_report():
    limit = min(request.args.get("limit", 50, type=int) or 50, 500)
    try:
        rows = report_service.cash_discrepancies(limit)
        return jsonify({"items": rows, "count": len(rows)}), 200
    except Exception:
        current_app.logger.exception("Failed to build cash discrepancy report")
        return internal_error_response()


def _period():
    """(start, end) from the query string; raises ValueError on a bad date."""
    return (
        parse_iso_datetime(request.args.get("start")),
        parse_iso_datetime(request.args.get("end")),
    )


def _limit(default: int = 10) -> int:
    return max(1, min(request.args.get("limit", default, type=int) or default, 100))


@reports_bp.get("/summary")
@require_auth
@require_role("admin", "supervisor")
def summary_report():
    try:
        start, end = _period()
    except ValueError:
        return _bad_date("start/end")

    try:
        return jsonify(report_service.summary(start, end)), 200
    except Exception:
        current_app.logger.exception("Failed to build summary report")
        return internal_error_response()


@reports_bp.get("/sales")
@require_auth
@require_role("admin", "supervisor")
def sales_report():
    try:
        start, end = _period()
    except ValueError:
        return _bad_date("start/end")

    try:
        rows = report_service.sales_by_period(
            start,
            end,
            group_by=request.args.get("groupBy", "day"),
            cashier_id=request.args.get("cashierId", type=int),
            payment_method=request.args.get("paymentMethod"),
            tier=request.args.get("tier"),
        )
        return jsonify({"items": rows, "count": len(rows)}), 200
    except BusinessError as e:
        return e.to_response()
    except Exception:
        current_app.logger.exception("Failed to build sales report")
        return internal_error_response()


@reports_bp.get("/customers")
@require_auth
@require_role("admin", "supervisor")
def customers_report():
    try:
        start, end = _period()
    except ValueError:
        return _bad_date("start/end")

    try:
        return jsonify(report_service.customers_report(start, end, limit=_limit())), 200
    except Exception:
        current_app.logger.exception("Failed to build customer report")
        return internal_error_response()


@reports_bp.get("/products")
@require_auth
@require_role("admin", "supervisor")
def products_report():
    try:
        start, end = _period()
    except ValueError:
        return _bad_date("start/end")

    try:
        return jsonify(report_service.products_report(start, end, limit=_limit())), 200
    except Exception:
        current_app.logger.exception("Failed to build product report")
        return internal_error_response()


@reports_bp.get("/returns")
@require_auth
@require_role("admin", "supervisor")
def returns_report():
    try:
        start, end = _period()
    except ValueError:
        return _bad_date("start/end")

    try:
        return jsonify(report_service.returns_report(start, end, limit=_limit())), 200
    except Exception:
        current_app.logger.exception("Failed to build return report")
        return internal_error_response()
