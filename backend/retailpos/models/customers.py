from __future__ import annotations

from ..extensions import db
from ..money import as_number
from ..time_utils import to_utc_z


class Customer(db.Model):
    """
    Loyalty member.

    tier_level is derived from total_spending against LoyaltySettings and is
    recomputed whenever a sale, void or return changes spending.
    """
    __tablename__ = "customers"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False, index=True)
    phone = db.Column(db.String(32), nullable=True, unique=True)
    email = db.Column(db.String(255), nullable=True)

    # regular, member, vip (matched against Discount.customer_type)
    customer_type = db.Column(db.String(16), nullable=False, default="regular")
    # REGULAR, SILVER, GOLD, PLATINUM
    tier_level = db.Column(db.String(16), nullable=False, default="REGULAR")

    total_points = db.Column(db.Integer, nullable=False, default=0)
    total_spending = db.Column(db.Numeric(14, 2), nullable=False, default=0)

    status = db.Column(db.String(16), nullable=False, default="ACTIVE", index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "phone": self.phone,
            "email": self.email,
            "customerType": self.customer_type,
            "tierLevel": self.tier_level,
            "totalPoints": self.total_points,
            "totalSpending": as_number(self.total_spending),
            "status": self.status,
            "createdAt": to_utc_z(self.created_at),
        }


class PointLog(db.Model):
    """Append-only point movements. Never updated in place."""
    __tablename__ = "point_logs"
    __table_args__ = (
        db.Index("ix_point_logs_customer_created", "customer_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True, index=True)
    return_id = db.Column(db.Integer, db.ForeignKey("returns.id"), nullable=True)
    points_change = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.String(128), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    customer = db.relationship("Customer", backref=db.backref("point_logs", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customerId": self.customer_id,
            "saleId": self.sale_id,
            "returnId": self.return_id,
            "pointsChange": self.points_change,
            "reason": self.reason,
            "createdAt": to_utc_z(self.created_at),
        }
