# Overview: Flask API routes for cashier shifts; open, close, approve and review.

# backend/retailpos/routes/shifts.py
"""
Cashier shift API routes

A cashier must hold an OPEN shift to sell or process returns. Closing a
shift snapshots the totals and compares counted cash to expected cash;
differences at or above SHIFT_CASH_DIFF_APPROVAL_THRESHOLD wait for a
supervisor decision.
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..services import shift_service, checkout_service
from ..errors import BusinessError, internal_error_response
from ..decorators import require_auth, require_role
from ..money import as_number
from ..time_utils import parse_iso_datetime, to_utc_z
from ..validation import (
    ValidationError,
    parse_bool_arg,
    parse_money,
    parse_text,
    reject_unknown,
    require_json,
)

shifts_bp = Blueprint("cashier_shifts", __name__, url_prefix="/api/cashier-shifts")


def _iso(value, name: str):
    try:
        return parse_iso_datetime(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be an ISO-8601 datetime")


@shifts_bp.get("/active")
@require_auth
def active_shift_route():
    """The caller's open shift, or null. Terminals poll this."""
    try:
        shift = shift_service.get_active_shift(g.current_user.id)
        return jsonify({
            "shift": shift.to_dict() if shift else None,
            "suspendedCount": checkout_service.count_suspended_sales(g.current_user.id),
        }), 200
    except Exception:
        current_app.logger.exception("Failed to load active shift")
        return internal_error_response()


@shifts_bp.post("/open")
@require_auth
def open_shift_route():
    try:
        data = require_json(request.get_json(silent=True))
        reject_unknown(data, {"openingCash", "terminalName", "note", "clientOpenedAt"})
        shift = shift_service.open_shift(
            g.current_user.id,
            parse_money(data.get("openingCash"), "openingCash"),
            parse_text(data.get("terminalName"), "terminalName"),
            parse_text(data.get("note"), "note"),
            ip_address=request.remote_addr,
            user_agent=request.headers.get("User-Agent"),
            client_opened_at=_iso(data.get("clientOpenedAt"), "clientOpenedAt"),
        )
        current_app.logger.info("Shift %s opened by user %s", shift.shift_code, g.current_user.id)
        return jsonify(shift.to_dict()), 201
    except BusinessError as e:
        return e.to_response()
    except Exception:
        current_app.logger.exception("Failed to open shift")
        return internal_error_response()


@shifts_bp.post("/close")
@require_auth
def close_shift_route():
    try:
        data = require_json(request.get_json(silent=True))
        reject_unknown(data, {"actualCash", "closeNote"})
        shift, summary = shift_service.close_shift(
            g.current_user.id,
            parse_money(data.get("actualCash"), "actualCash"),
            parse_text(data.get("closeNote"), "closeNote"),
        )
        if shift.approval_status == "PENDING":
            current_app.logger.warning(
                "Shift %s closed with cash difference %s; approval required",
                shift.shift_code, shift.cash_difference,
            )
        return jsonify({"shift": shift.to_dict(), "summary": summary.to_dict()}), 200
    except BusinessError as e:
        return e.to_response()
    except Exception:
        current_app.logger.exception("Failed to close shift")
        return internal_error_response()


@shifts_bp.post("/<int:shift_id>/approve")
@require_auth
@require_role("admin", "supervisor")
def approve_shift_route(shift_id: int):
    try:
        data = require_json(request.get_json(silent=True) or {})
        reject_unknown(data, {"approvalNote", "decision"})
        shift = shift_service.approve_shift(
            shift_id,
            g.current_user,
            parse_text(data.get("approvalNote"), "approvalNote"),
            parse_text(data.get("decision"), "decision") or "APPROVED",
        )
        return jsonify(shift.to_dict()), 200
    except BusinessError as e:
        return e.to_response()
    except Exception:
        current_app.logger.exception("Failed to approve shift")
        return internal_error_response()


@shifts_bp.get("")
@require_auth
@require_role("admin", "supervisor")
def list_shifts_route():
    try:
        args = request.args
        shifts = shift_service.list_shifts(
            start_date=_iso(args.get("startDate"), "startDate"),
            end_date=_iso(args.get("endDate"), "endDate"),
            cashier_name=args.get("cashierName"),
            role=args.get("role"),
            status=args.get("status"),
            approval_status=args.get("approvalStatus"),
            diff_large_only=bool(parse_bool_arg(args.get("diffLargeOnly"))),
            search=args.get("search"),
            limit=args.get("limit", type=int),
        )
        return jsonify({"items": [s.to_dict() for s in shifts], "count": len(shifts)}), 200
    except BusinessError as e:
        return e.to_response()
    except Exception:
        current_app.logger.exception("Failed to list shifts")
        return internal_error_response()


@shifts_bp.get("/<int:shift_id>/summary")
@require_auth
def shift_summary_route(shift_id: int):
    try:
        shift, summary = shift_service.get_shift_summary(shift_id)
        if shift.user_id != g.current_user.id and not g.current_user.is_approver:
            return jsonify({"code": "FORBIDDEN", "message": "Permission denied"}), 403
        return jsonify({"shift": shift.to_dict(), "summary": summary.to_dict()}), 200
    except BusinessError as e:
        return e.to_response()
    except Exception:
        current_app.logger.exception("Failed to load shift summary")
        return internal_error_response()


@shifts_bp.get("/<int:shift_id>/transactions")
@require_auth
def shift_transactions_route(shift_id: int):
    try:
        shift = shift_service.get_shift(shift_id)
        if shift.user_id != g.current_user.id and not g.current_user.is_approver:
            return jsonify({"code": "FORBIDDEN", "message": "Permission denied"}), 403
        rows = shift_service.get_shift_transactions(shift_id)
        items = [
            {
                **row,
                "transactionDate": to_utc_z(row["transactionDate"]),
                "finalAmount": as_number(row["finalAmount"]),
            }
            for row in rows
        ]
        return jsonify({"items": items, "count": len(items)}), 200
    except BusinessError as e:
        return e.to_response()
    except Exception:
        current_app.logger.exception("Failed to list shift transactions")
        return internal_error_response()
