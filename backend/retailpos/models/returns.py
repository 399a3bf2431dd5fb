from __future__ import annotations

from ..extensions import db
from ..money import as_number
from ..time_utils import to_utc_z


class Return(db.Model):
    """
    Customer return against a sale.

    total_refund already has the proportional share of the sale's global
    discount and redeemed points removed. Cash refunds reduce the expected
    cash of the shift the return was processed in.
    """
    __tablename__ = "returns"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    return_number = db.Column(db.String(64), nullable=False, unique=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    shift_id = db.Column(db.Integer, db.ForeignKey("cashier_shifts.id"), nullable=True, index=True)
    cashier_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)

    total_refund = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    refund_method = db.Column(db.String(32), nullable=False, default="cash")
    points_reversed = db.Column(db.Integer, nullable=False, default=0)
    points_restored = db.Column(db.Integer, nullable=False, default=0)
    reason = db.Column(db.String(255), nullable=True)

    # COMPLETED only for now; the column leaves room for approval flows
    status = db.Column(db.String(16), nullable=False, default="COMPLETED", index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    sale = db.relationship("Sale", backref=db.backref("returns", lazy=True))
    items = db.relationship("ReturnItem", backref="return_doc", lazy=True, cascade="all, delete-orphan")

    def to_dict(self, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "returnNumber": self.return_number,
            "saleId": self.sale_id,
            "invoiceNo": self.sale.invoice_no if self.sale else None,
            "shiftId": self.shift_id,
            "cashierId": self.cashier_id,
            "totalRefund": as_number(self.total_refund),
            "refundMethod": self.refund_method,
            "pointsReversed": self.points_reversed,
            "pointsRestored": self.points_restored,
            "reason": self.reason,
            "status": self.status,
            "createdAt": to_utc_z(self.created_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class ReturnItem(db.Model):
    __tablename__ = "return_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    return_id = db.Column(db.Integer, db.ForeignKey("returns.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    # Pieces returned
    quantity = db.Column(db.Integer, nullable=False)
    subtotal = db.Column(db.Numeric(12, 2), nullable=False)
    refund_amount = db.Column(db.Numeric(12, 2), nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "productId": self.product_id,
            "quantity": self.quantity,
            "subtotal": as_number(self.subtotal),
            "refundAmount": as_number(self.refund_amount),
        }
