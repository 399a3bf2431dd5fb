"""
Cashier Shift Service

WHY: Cash accountability. Every sale belongs to the shift its cashier had
open; closing a shift compares counted cash with what the system expects.

DESIGN PRINCIPLES:
- One open shift per cashier and one per terminal
- OPEN (ACTIVE is a legacy alias) -> CLOSED, never reopened
- expected = opening + cash sales - cash refunds - cash voids
- difference = actual - expected; |difference| >= threshold -> PENDING
- PENDING -> APPROVED | REJECTED by a supervisor or admin, final
- Closed shifts keep a summary snapshot; open shifts are summarised live
"""

from __future__ import annotations

from dataclasses import dataclass, field, asdict
from datetime import datetime, timedelta
from decimal import Decimal

from flask import current_app
from sqlalchemy import case, func, or_

from ..extensions import db
from ..models import CashierShift, Return, Sale, SuspendedSale, User
from ..models.shifts import APPROVAL_STATUSES, OPEN_STATUSES
from ..errors import ConflictError, ForbiddenError, NotFoundError
from ..money import ZERO, as_number, round_money
from ..time_utils import utcnow
from ..validation import ValidationError
from . import audit_service
from .concurrency import lock_for_update

CLIENT_CLOCK_TOLERANCE = timedelta(hours=36)
NOTE_MAX_LENGTH = 255
CASH_TOLERANCE = Decimal("0.01")


def _clean(text: str | None, max_length: int = NOTE_MAX_LENGTH) -> str | None:
    if text is None:
        return None
    text = str(text).strip()
    return text[:max_length] or None


# =============================================================================
# RECONCILIATION RULES
# =============================================================================

def compute_expected_cash(opening_cash, cash_sales, cash_refunds, cash_voids) -> Decimal:
    return round_money(
        Decimal(opening_cash) + Decimal(cash_sales) - Decimal(cash_refunds) - Decimal(cash_voids)
    )


def compute_cash_difference(actual_cash, expected_cash) -> Decimal:
    return round_money(Decimal(actual_cash) - Decimal(expected_cash))


def resolve_approval_status(cash_difference, threshold) -> str:
    return "PENDING" if abs(Decimal(cash_difference)) >= Decimal(threshold) else "NONE"


@dataclass
class ShiftSummary:
    total_transactions: int = 0
    total_sales: Decimal = ZERO
    cash_sales: Decimal = ZERO
    non_cash_sales: Decimal = ZERO
    total_refunds: Decimal = ZERO
    cash_refunds: Decimal = ZERO
    non_cash_refunds: Decimal = ZERO
    cash_voids: Decimal = ZERO
    expected_cash: Decimal = ZERO
    payment_breakdown: dict = field(default_factory=dict)
    total_discount: Decimal = ZERO
    total_point_used: int = 0
    total_point_earned: int = 0
    total_void: int = 0
    total_returns: int = 0
    point_tx_count: int = 0
    big_discount_tx_count: int = 0
    points_reversed: int = 0
    points_restored: int = 0

    def to_dict(self) -> dict:
        data = {}
        for key, value in asdict(self).items():
            head, *rest = key.split("_")
            camel = head + "".join(part.title() for part in rest)
            if isinstance(value, Decimal):
                value = as_number(value)
            elif isinstance(value, dict):
                value = {k: as_number(v) for k, v in value.items()}
            data[camel] = value
        return data


def _dec(value) -> Decimal:
    return round_money(Decimal(value or 0))


def compute_shift_summary(shift: CashierShift) -> ShiftSummary:
    """
    Aggregate the shift's activity.

    - Sales: rows with shift_id = shift and status != CANCELLED
    - Voids: sales cancelled while this shift was open. Only sales made in
      another shift reduce expected cash; a same-shift void is already
      excluded from cash sales.
    - Returns: COMPLETED returns processed in this shift
    """
    big_discount = current_app.config.get("SHIFT_BIG_DISCOUNT_THRESHOLD", 100000)
    is_cash = Sale.payment_method == "cash"

    agg = (
        db.session.query(
            func.count(Sale.id),
            func.coalesce(func.sum(Sale.final_amount), 0),
            func.coalesce(func.sum(case((is_cash, Sale.final_amount), else_=0)), 0),
            func.coalesce(func.sum(Sale.discount_amount), 0),
            func.coalesce(func.sum(Sale.redeemed_points), 0),
            func.coalesce(func.sum(Sale.points_earned), 0),
            func.coalesce(func.sum(case((Sale.redeemed_points > 0, 1), else_=0)), 0),
            func.coalesce(func.sum(case((Sale.discount_amount >= big_discount, 1), else_=0)), 0),
        )
        .filter(Sale.shift_id == shift.id, Sale.status != "CANCELLED")
        .one()
    )
    (count, total_sales, cash_sales, total_discount,
     point_used, point_earned, point_tx, big_discount_tx) = agg

    void_count, cash_voids = (
        db.session.query(
            func.count(Sale.id),
            func.coalesce(func.sum(case(
                ((is_cash & or_(Sale.shift_id.is_(None), Sale.shift_id != shift.id), Sale.final_amount)),
                else_=0,
            )), 0),
        )
        .filter(Sale.cancelled_shift_id == shift.id, Sale.status == "CANCELLED")
        .one()
    )

    refund_cash = Return.refund_method == "cash"
    total_refunds, cash_refunds, return_count, points_reversed, points_restored = (
        db.session.query(
            func.coalesce(func.sum(Return.total_refund), 0),
            func.coalesce(func.sum(case((refund_cash, Return.total_refund), else_=0)), 0),
            func.count(Return.id),
            func.coalesce(func.sum(Return.points_reversed), 0),
            func.coalesce(func.sum(Return.points_restored), 0),
        )
        .filter(Return.shift_id == shift.id, Return.status == "COMPLETED")
        .one()
    )

    breakdown_rows = (
        db.session.query(Sale.payment_method, func.coalesce(func.sum(Sale.final_amount), 0))
        .filter(Sale.shift_id == shift.id, Sale.status != "CANCELLED")
        .group_by(Sale.payment_method)
        .all()
    )

    summary = ShiftSummary(
        total_transactions=int(count or 0),
        total_sales=_dec(total_sales),
        cash_sales=_dec(cash_sales),
        total_refunds=_dec(total_refunds),
        cash_refunds=_dec(cash_refunds),
        cash_voids=_dec(cash_voids),
        payment_breakdown={(method or "unknown"): _dec(total) for method, total in breakdown_rows},
        total_discount=_dec(total_discount),
        total_point_used=int(point_used or 0),
        total_point_earned=int(point_earned or 0),
        total_void=int(void_count or 0),
        total_returns=int(return_count or 0),
        point_tx_count=int(point_tx or 0),
        big_discount_tx_count=int(big_discount_tx or 0),
        points_reversed=int(points_reversed or 0),
        points_restored=int(points_restored or 0),
    )
    summary.non_cash_sales = summary.total_sales - summary.cash_sales
    summary.non_cash_refunds = summary.total_refunds - summary.cash_refunds
    summary.expected_cash = compute_expected_cash(
        shift.opening_cash, summary.cash_sales, summary.cash_refunds, summary.cash_voids
    )
    return summary


def _summary_from_snapshot(shift: CashierShift) -> ShiftSummary:
    return ShiftSummary(
        total_transactions=shift.total_transactions or 0,
        total_sales=_dec(shift.total_sales),
        cash_sales=_dec(shift.total_cash_sales),
        non_cash_sales=_dec(shift.total_non_cash_sales),
        total_refunds=_dec(shift.total_refund),
        cash_refunds=_dec(shift.cash_refunds),
        non_cash_refunds=_dec(shift.non_cash_refunds),
        cash_voids=_dec(shift.cash_voids),
        expected_cash=_dec(shift.expected_cash),
        payment_breakdown={k: _dec(v) for k, v in (shift.payment_breakdown or {}).items()},
        total_discount=_dec(shift.total_discount),
        total_point_used=shift.total_point_used or 0,
        total_point_earned=shift.total_point_earned or 0,
        total_void=shift.total_void or 0,
        total_returns=shift.total_returns or 0,
        point_tx_count=shift.point_tx_count or 0,
        big_discount_tx_count=shift.big_discount_tx_count or 0,
        points_reversed=shift.points_reversed or 0,
        points_restored=shift.points_restored or 0,
    )


def _write_snapshot(shift: CashierShift, summary: ShiftSummary) -> None:
    shift.expected_cash = summary.expected_cash
    shift.total_transactions = summary.total_transactions
    shift.total_sales = summary.total_sales
    shift.total_cash_sales = summary.cash_sales
    shift.total_non_cash_sales = summary.non_cash_sales
    shift.total_refund = summary.total_refunds
    shift.cash_refunds = summary.cash_refunds
    shift.non_cash_refunds = summary.non_cash_refunds
    shift.cash_voids = summary.cash_voids
    shift.total_discount = summary.total_discount
    shift.total_point_used = summary.total_point_used
    shift.total_point_earned = summary.total_point_earned
    shift.point_tx_count = summary.point_tx_count
    shift.big_discount_tx_count = summary.big_discount_tx_count
    shift.total_void = summary.total_void
    shift.total_returns = summary.total_returns
    shift.points_reversed = summary.points_reversed
    shift.points_restored = summary.points_restored
    shift.payment_breakdown = {k: str(v) for k, v in summary.payment_breakdown.items()}


# =============================================================================
# LIFECYCLE
# =============================================================================

def get_active_shift(user_id: int) -> CashierShift | None:
    return (
        db.session.query(CashierShift)
        .filter(CashierShift.user_id == user_id, CashierShift.status.in_(OPEN_STATUSES))
        .order_by(CashierShift.opened_at.desc())
        .first()
    )


def require_active_shift(user_id: int) -> CashierShift:
    shift = get_active_shift(user_id)
    if not shift:
        raise ConflictError("No active shift. Open a shift first.", code="NO_ACTIVE_SHIFT")
    return shift


def get_shift(shift_id: int) -> CashierShift:
    shift = db.session.get(CashierShift, shift_id)
    if not shift:
        raise NotFoundError("Shift not found", code="SHIFT_NOT_FOUND")
    return shift


def open_shift(
    user_id: int,
    opening_cash,
    terminal_name: str | None,
    note: str | None = None,
    *,
    ip_address: str | None = None,
    user_agent: str | None = None,
    client_opened_at: datetime | None = None,
) -> CashierShift:
    """
    Open a shift for `user_id` on `terminal_name`.

    Raises:
        ValidationError: negative opening cash, TERMINAL_REQUIRED
        NotFoundError: unknown user
        ConflictError: SHIFT_ALREADY_ACTIVE, TERMINAL_ALREADY_ACTIVE
    """
    opening_cash = round_money(Decimal(opening_cash))
    if opening_cash < 0:
        raise ValidationError("openingCash must be >= 0")

    terminal = _clean(terminal_name, 64)
    if not terminal:
        raise ValidationError("Terminal name is required", code="TERMINAL_REQUIRED", status=400)

    user = db.session.get(User, user_id)
    if not user:
        raise NotFoundError("User not found")

    if get_active_shift(user_id):
        raise ConflictError("Cashier already has an active shift", code="SHIFT_ALREADY_ACTIVE")

    terminal_busy = (
        db.session.query(CashierShift.id)
        .filter(CashierShift.terminal_name == terminal, CashierShift.status.in_(OPEN_STATUSES))
        .first()
    )
    if terminal_busy:
        raise ConflictError("Terminal already has an active shift", code="TERMINAL_ALREADY_ACTIVE")

    now = utcnow()
    opened_at = now
    if client_opened_at is not None and abs(now - client_opened_at) <= CLIENT_CLOCK_TOLERANCE:
        opened_at = client_opened_at

    shift = CashierShift(
        user_id=user.id,
        user_name=user.full_name,
        user_role=user.role,
        terminal_name=terminal,
        ip_address=_clean(ip_address, 45),
        user_agent=_clean(user_agent),
        opened_at=opened_at,
        opening_cash=opening_cash,
        note=_clean(note),
        status="OPEN",
        approval_status="NONE",
    )
    db.session.add(shift)
    db.session.flush()

    shift.shift_code = f"SHF-{opened_at:%Y%m%d}-{user.id}-{shift.id:06d}"

    audit_service.record(
        entity_type="SHIFT",
        entity_id=shift.id,
        action="SHIFT_OPENED",
        actor_id=user.id,
        metadata={"shiftCode": shift.shift_code, "terminalName": terminal, "openingCash": str(opening_cash)},
    )
    db.session.commit()
    return shift


def close_shift(user_id: int, actual_cash, close_note: str | None = None) -> tuple[CashierShift, ShiftSummary]:
    """
    Close the cashier's open shift against counted cash.

    Raises:
        ConflictError: PENDING_SUSPENDED_SALES, NO_ACTIVE_SHIFT
        ValidationError: negative cash, CLOSE_NOTE_REQUIRED
    """
    actual_cash = round_money(Decimal(actual_cash))
    if actual_cash < 0:
        raise ValidationError("actualCash must be >= 0")
    note = _clean(close_note)

    pending = db.session.query(SuspendedSale.id).filter_by(cashier_id=user_id).first()
    if pending:
        raise ConflictError(
            "Cannot close shift while suspended sales are pending. Recall or discard them first.",
            code="PENDING_SUSPENDED_SALES",
        )

    shift = lock_for_update(
        db.session.query(CashierShift)
        .filter(CashierShift.user_id == user_id, CashierShift.status.in_(OPEN_STATUSES))
    ).first()
    if not shift:
        raise ConflictError("No active shift to close", code="NO_ACTIVE_SHIFT")

    summary = compute_shift_summary(shift)
    difference = compute_cash_difference(actual_cash, summary.expected_cash)
    if abs(difference) >= CASH_TOLERANCE and not note:
        raise ValidationError(
            "A note is required when counted cash differs from expected cash",
            code="CLOSE_NOTE_REQUIRED",
            status=400,
            details={"expectedCash": as_number(summary.expected_cash), "cashDifference": as_number(difference)},
        )

    threshold = current_app.config.get("SHIFT_CASH_DIFF_APPROVAL_THRESHOLD", 100000)

    _write_snapshot(shift, summary)
    shift.actual_cash = actual_cash
    shift.cash_difference = difference
    shift.close_note = note
    shift.closed_at = utcnow()
    shift.status = "CLOSED"
    shift.approval_status = resolve_approval_status(difference, threshold)

    audit_service.record(
        entity_type="SHIFT",
        entity_id=shift.id,
        action="SHIFT_CLOSED",
        actor_id=user_id,
        metadata={
            "shiftCode": shift.shift_code,
            "expectedCash": str(summary.expected_cash),
            "actualCash": str(actual_cash),
            "cashDifference": str(difference),
            "approvalStatus": shift.approval_status,
        },
    )
    db.session.commit()
    return shift, summary


def approve_shift(
    shift_id: int,
    approver: User,
    approval_note: str | None = None,
    decision: str = "APPROVED",
) -> CashierShift:
    """
    Resolve a PENDING discrepancy. Only supervisors and admins may decide.

    Raises:
        ForbiddenError: approver lacks the role
        NotFoundError: unknown shift
        ConflictError: SHIFT_NOT_CLOSED, SHIFT_NOT_PENDING
    """
    decision = (decision or "APPROVED").upper()
    if decision not in ("APPROVED", "REJECTED"):
        raise ValidationError("decision must be APPROVED or REJECTED")
    if not approver.is_approver:
        raise ForbiddenError("Only a supervisor or admin can approve shifts", code="SUPERVISOR_REQUIRED")

    shift = lock_for_update(db.session.query(CashierShift).filter_by(id=shift_id)).first()
    if not shift:
        raise NotFoundError("Shift not found", code="SHIFT_NOT_FOUND")
    if shift.status != "CLOSED":
        raise ConflictError("Shift is not closed yet", code="SHIFT_NOT_CLOSED")
    if shift.approval_status != "PENDING":
        raise ConflictError("Shift is not waiting for approval", code="SHIFT_NOT_PENDING")

    note = _clean(approval_note)
    shift.approval_status = decision
    shift.approved_by = approver.id
    shift.approved_at = utcnow()
    shift.approval_note = note

    audit_service.record(
        entity_type="SHIFT",
        entity_id=shift.id,
        action=f"SHIFT_{decision}",
        actor_id=approver.id,
        metadata={"shiftId": shift.id, "shiftCode": shift.shift_code, "approvalNote": note},
    )
    db.session.commit()
    return shift


# =============================================================================
# READS
# =============================================================================

def get_shift_summary(shift_id: int) -> tuple[CashierShift, ShiftSummary]:
    shift = get_shift(shift_id)
    if shift.is_open:
        return shift, compute_shift_summary(shift)
    return shift, _summary_from_snapshot(shift)


def list_shifts(
    *,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    cashier_name: str | None = None,
    role: str | None = None,
    status: str | None = None,
    approval_status: str | None = None,
    diff_large_only: bool = False,
    search: str | None = None,
    limit: int | None = None,
) -> list[CashierShift]:
    query = db.session.query(CashierShift)

    if status:
        status = status.upper()
        if status in OPEN_STATUSES:
            query = query.filter(CashierShift.status.in_(OPEN_STATUSES))
        else:
            query = query.filter(CashierShift.status == status)
    if role:
        query = query.filter(CashierShift.user_role == role.lower())
    if cashier_name:
        query = query.filter(CashierShift.user_name.ilike(f"%{cashier_name.strip()}%"))
    if start_date:
        query = query.filter(CashierShift.opened_at >= start_date)
    if end_date:
        query = query.filter(CashierShift.opened_at <= end_date)
    if approval_status:
        approval_status = approval_status.upper()
        if approval_status not in APPROVAL_STATUSES:
            raise ValidationError(f"approvalStatus must be one of: {', '.join(APPROVAL_STATUSES)}")
        query = query.filter(CashierShift.approval_status == approval_status)
    if diff_large_only:
        threshold = current_app.config.get("SHIFT_CASH_DIFF_LARGE_THRESHOLD", 100000)
        query = query.filter(func.abs(func.coalesce(CashierShift.cash_difference, 0)) >= threshold)
    if search and search.strip():
        like = f"%{search.strip()}%"
        query = query.filter(or_(
            CashierShift.shift_code.ilike(like),
            CashierShift.user_name.ilike(like),
            CashierShift.terminal_name.ilike(like),
        ))

    query = query.order_by(CashierShift.opened_at.desc(), CashierShift.id.desc())
    if limit:
        query = query.limit(limit)
    return query.all()


def get_shift_transactions(shift_id: int) -> list[dict]:
    """Sales and returns of the shift, newest first. Returns carry a negative amount."""
    get_shift(shift_id)

    rows = []
    for sale in db.session.query(Sale).filter(Sale.shift_id == shift_id).all():
        rows.append({
            "id": sale.id,
            "kind": "SALE",
            "invoiceNo": sale.invoice_no,
            "transactionDate": sale.created_at,
            "paymentMethod": sale.payment_method,
            "finalAmount": Decimal(sale.final_amount),
            "status": sale.status,
        })
    for ret in db.session.query(Return).filter(Return.shift_id == shift_id).all():
        rows.append({
            "id": ret.id,
            "kind": "RETURN",
            "invoiceNo": ret.return_number,
            "transactionDate": ret.created_at,
            "paymentMethod": ret.refund_method,
            "finalAmount": -Decimal(ret.total_refund),
            "status": "RETURN",
        })

    rows.sort(key=lambda r: r["transactionDate"] or datetime.min, reverse=True)
    return rows
