from __future__ import annotations

from ..extensions import db
from ..money import as_number
from ..time_utils import to_utc_z, shift_elapsed_seconds, format_duration

# ACTIVE is a legacy alias of OPEN; both count as an open shift
OPEN_STATUSES = ("OPEN", "ACTIVE")
APPROVAL_STATUSES = ("NONE", "PENDING", "APPROVED", "REJECTED")


class CashierShift(db.Model):
    """
    Cashier shift and its cash reconciliation.

    LIFECYCLE:
    - OPEN (or ACTIVE): accepting sales for this cashier on this terminal
    - CLOSED: cash counted, summary frozen; never reopened

    APPROVAL (only meaningful once CLOSED):
    - NONE: difference under threshold
    - PENDING: |actual - expected| >= threshold, waiting for a supervisor
    - APPROVED / REJECTED: final

    Summary columns are a snapshot written at close; open shifts are
    summarised live by shift_service.compute_shift_summary.
    """
    __tablename__ = "cashier_shifts"
    __table_args__ = (
        db.Index("ix_cashier_shifts_user_status", "user_id", "status"),
        db.Index("ix_cashier_shifts_terminal_status", "terminal_name", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    shift_code = db.Column(db.String(64), nullable=True, unique=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    user_name = db.Column(db.String(128), nullable=False)
    user_role = db.Column(db.String(16), nullable=False)
    terminal_name = db.Column(db.String(64), nullable=False)
    ip_address = db.Column(db.String(45), nullable=True)
    user_agent = db.Column(db.String(255), nullable=True)

    opened_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    closed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    opening_cash = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    expected_cash = db.Column(db.Numeric(12, 2), nullable=True)
    actual_cash = db.Column(db.Numeric(12, 2), nullable=True)
    cash_difference = db.Column(db.Numeric(12, 2), nullable=True)

    # Snapshot written at close
    total_transactions = db.Column(db.Integer, nullable=False, default=0)
    total_sales = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    total_cash_sales = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    total_non_cash_sales = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    total_refund = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    cash_refunds = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    non_cash_refunds = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    cash_voids = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    total_discount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    total_point_used = db.Column(db.Integer, nullable=False, default=0)
    total_point_earned = db.Column(db.Integer, nullable=False, default=0)
    point_tx_count = db.Column(db.Integer, nullable=False, default=0)
    big_discount_tx_count = db.Column(db.Integer, nullable=False, default=0)
    total_void = db.Column(db.Integer, nullable=False, default=0)
    total_returns = db.Column(db.Integer, nullable=False, default=0)
    points_reversed = db.Column(db.Integer, nullable=False, default=0)
    points_restored = db.Column(db.Integer, nullable=False, default=0)
    payment_breakdown = db.Column(db.JSON, nullable=True)

    note = db.Column(db.String(255), nullable=True)
    close_note = db.Column(db.String(255), nullable=True)

    status = db.Column(db.String(16), nullable=False, default="OPEN", index=True)

    approval_status = db.Column(db.String(16), nullable=False, default="NONE", index=True)
    approved_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    approval_note = db.Column(db.String(255), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    user = db.relationship("User", foreign_keys=[user_id], backref=db.backref("shifts", lazy=True))
    approver = db.relationship("User", foreign_keys=[approved_by])
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_STATUSES

    def to_dict(self, now=None) -> dict:
        elapsed = shift_elapsed_seconds(self.opened_at, self.closed_at, self.status, now)
        return {
            "id": self.id,
            "shiftCode": self.shift_code,
            "userId": self.user_id,
            "userName": self.user_name,
            "userRole": self.user_role,
            "terminalName": self.terminal_name,
            "ipAddress": self.ip_address,
            "openedAt": to_utc_z(self.opened_at),
            "closedAt": to_utc_z(self.closed_at),
            "openingCash": as_number(self.opening_cash),
            "expectedCash": as_number(self.expected_cash),
            "actualCash": as_number(self.actual_cash),
            "cashDifference": as_number(self.cash_difference),
            "totalTransactions": self.total_transactions,
            "totalSales": as_number(self.total_sales),
            "totalRefund": as_number(self.total_refund),
            "totalDiscount": as_number(self.total_discount),
            "note": self.note,
            "closeNote": self.close_note,
            "status": self.status,
            "approvalStatus": self.approval_status,
            "approvedBy": self.approved_by,
            "approvedByName": self.approver.full_name if self.approver else None,
            "approvedAt": to_utc_z(self.approved_at),
            "approvalNote": self.approval_note,
            "durationSeconds": elapsed,
            "duration": format_duration(elapsed),
        }
