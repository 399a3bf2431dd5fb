from __future__ import annotations

from ..extensions import db
from ..money import as_number
from ..time_utils import to_utc_z

SALE_STATUSES = ("COMPLETED", "CANCELLED", "PARTIAL_REFUND", "REFUNDED")


class Sale(db.Model):
    """
    Finalised sale. Created only by checkout_service.checkout.

    Amount breakdown:
    - subtotal: sum of line subtotals (after per-line discounts)
    - item_discount_amount: sum of per-line discounts
    - global_discount_amount: campaign discount on the subtotal
    - redeemed_amount: points x redeem value
    - final_amount = max(0, subtotal - global - redeemed)

    LIFECYCLE: COMPLETED -> CANCELLED (void) | PARTIAL_REFUND -> REFUNDED
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_shift_status", "shift_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    invoice_no = db.Column(db.String(64), nullable=False, unique=True, index=True)

    shift_id = db.Column(db.Integer, db.ForeignKey("cashier_shifts.id"), nullable=True, index=True)
    cashier_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)

    subtotal = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    item_discount_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    global_discount_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    discount_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    applied_global_discount_id = db.Column(db.Integer, db.ForeignKey("discounts.id"), nullable=True)

    redeemed_points = db.Column(db.Integer, nullable=False, default=0)
    redeemed_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    points_earned = db.Column(db.Integer, nullable=False, default=0)

    final_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    payment_method = db.Column(db.String(32), nullable=False, default="cash")

    status = db.Column(db.String(16), nullable=False, default="COMPLETED", index=True)
    note = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    cancelled_shift_id = db.Column(db.Integer, db.ForeignKey("cashier_shifts.id"), nullable=True, index=True)

    cashier = db.relationship("User", foreign_keys=[cashier_id])
    customer = db.relationship("Customer", backref=db.backref("sales", lazy=True))
    items = db.relationship(
        "SaleItem",
        backref="sale",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="SaleItem.id",
    )

    def to_dict(self, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "invoiceNo": self.invoice_no,
            "shiftId": self.shift_id,
            "cashierId": self.cashier_id,
            "cashierName": self.cashier.full_name if self.cashier else None,
            "customerId": self.customer_id,
            "customerName": self.customer.name if self.customer else None,
            "subtotal": as_number(self.subtotal),
            "itemDiscountAmount": as_number(self.item_discount_amount),
            "globalDiscountAmount": as_number(self.global_discount_amount),
            "discountAmount": as_number(self.discount_amount),
            "appliedGlobalDiscountId": self.applied_global_discount_id,
            "redeemedPoints": self.redeemed_points,
            "redeemedAmount": as_number(self.redeemed_amount),
            "pointsEarned": self.points_earned,
            "finalAmount": as_number(self.final_amount),
            "paymentMethod": self.payment_method,
            "status": self.status,
            "note": self.note,
            "createdAt": to_utc_z(self.created_at),
            "cancelledAt": to_utc_z(self.cancelled_at),
            "cancelledBy": self.cancelled_by,
            "cancelledShiftId": self.cancelled_shift_id,
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class SaleItem(db.Model):
    """
    One cart line as sold.

    quantity is in the sold unit; conversion_qty is the number of pieces
    that left stock (quantity x pcs_per_carton for CARTON lines).
    """
    __tablename__ = "sale_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_type = db.Column(db.String(8), nullable=False, default="PCS")
    conversion_qty = db.Column(db.Integer, nullable=False)

    price_at_sale = db.Column(db.Numeric(12, 2), nullable=False)
    discount_at_sale = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    applied_discount_id = db.Column(db.Integer, db.ForeignKey("discounts.id"), nullable=True)
    subtotal = db.Column(db.Numeric(12, 2), nullable=False)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "saleId": self.sale_id,
            "productId": self.product_id,
            "productName": self.product.name if self.product else None,
            "quantity": self.quantity,
            "unitType": self.unit_type,
            "conversionQty": self.conversion_qty,
            "priceAtSale": as_number(self.price_at_sale),
            "discountAtSale": as_number(self.discount_at_sale),
            "appliedDiscountId": self.applied_discount_id,
            "subtotal": as_number(self.subtotal),
        }


class SuspendedSale(db.Model):
    """Parked cart. payload holds the checkout request body verbatim."""
    __tablename__ = "suspended_sales"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    cashier_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True)
    note = db.Column(db.String(255), nullable=True)
    payload = db.Column(db.JSON, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    customer = db.relationship("Customer")

    def to_dict(self) -> dict:
        items = (self.payload or {}).get("items") or []
        item_count = sum(int(i.get("quantity") or 0) for i in items if isinstance(i, dict))
        return {
            "id": self.id,
            "cashierId": self.cashier_id,
            "customerId": self.customer_id,
            "customerName": self.customer.name if self.customer else None,
            "note": self.note,
            "itemCount": item_count,
            "createdAt": to_utc_z(self.created_at),
        }
