from __future__ import annotations

from ..extensions import db
from ..money import as_number
from ..time_utils import to_utc_z

DISCOUNT_TYPES = ("percentage", "fixed")
APPLIES_TO = ("product", "category", "global", "customer")


class Discount(db.Model):
    """
    Discount campaign.

    Targeting: applies_to selects the scope; product_id / brand_id /
    category_id narrow it. A "global" campaign that names a target behaves
    like a product-level one at checkout.

    Selection: when any non-stackable campaign applies, the best single one
    wins (priority_level desc, amount desc, id asc). Otherwise all stackable
    campaigns are summed, capped at the base amount.
    """
    __tablename__ = "discounts"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False)

    # percentage | fixed (compared case-insensitively)
    type = db.Column(db.String(16), nullable=False)
    value = db.Column(db.Numeric(12, 2), nullable=False)

    applies_to = db.Column(db.String(16), nullable=False, default="product")
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True, index=True)
    brand_id = db.Column(db.Integer, db.ForeignKey("brands.id"), nullable=True)
    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=True)
    customer_type = db.Column(db.String(16), nullable=True)

    minimum_purchase = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    priority_level = db.Column(db.Integer, nullable=False, default=0)
    stackable = db.Column(db.Boolean, nullable=False, default=False)

    start_date = db.Column(db.DateTime(timezone=True), nullable=True)
    end_date = db.Column(db.DateTime(timezone=True), nullable=True)
    active = db.Column(db.Boolean, nullable=False, default=True)
    status = db.Column(db.String(16), nullable=False, default="ACTIVE", index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "value": as_number(self.value),
            "appliesTo": self.applies_to,
            "productId": self.product_id,
            "brandId": self.brand_id,
            "categoryId": self.category_id,
            "customerType": self.customer_type,
            "minimumPurchase": as_number(self.minimum_purchase),
            "priorityLevel": self.priority_level,
            "stackable": self.stackable,
            "startDate": to_utc_z(self.start_date),
            "endDate": to_utc_z(self.end_date),
            "active": self.active,
            "status": self.status,
        }
