from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from ..money import as_number
from ..time_utils import to_utc_z

LOYALTY_DEFAULTS = {
    "earn_amount_per_point": Decimal("10000"),
    "redeem_amount_per_point": Decimal("100"),
    "silver_min_spending": Decimal("1000000"),
    "gold_min_spending": Decimal("5000000"),
    "platinum_min_spending": Decimal("10000000"),
    "silver_point_multiplier": Decimal("1.00"),
    "gold_point_multiplier": Decimal("1.25"),
    "platinum_point_multiplier": Decimal("1.50"),
}


class LoyaltySettings(db.Model):
    """Singleton row (id=1) holding the loyalty program parameters."""
    __tablename__ = "loyalty_settings"

    id = db.Column(db.Integer, primary_key=True)

    # Spend this much to earn one point
    earn_amount_per_point = db.Column(db.Numeric(12, 2), nullable=False, default=LOYALTY_DEFAULTS["earn_amount_per_point"])
    # One point is worth this much at redemption
    redeem_amount_per_point = db.Column(db.Numeric(12, 2), nullable=False, default=LOYALTY_DEFAULTS["redeem_amount_per_point"])

    silver_min_spending = db.Column(db.Numeric(14, 2), nullable=False, default=LOYALTY_DEFAULTS["silver_min_spending"])
    gold_min_spending = db.Column(db.Numeric(14, 2), nullable=False, default=LOYALTY_DEFAULTS["gold_min_spending"])
    platinum_min_spending = db.Column(db.Numeric(14, 2), nullable=False, default=LOYALTY_DEFAULTS["platinum_min_spending"])

    silver_point_multiplier = db.Column(db.Numeric(5, 2), nullable=False, default=LOYALTY_DEFAULTS["silver_point_multiplier"])
    gold_point_multiplier = db.Column(db.Numeric(5, 2), nullable=False, default=LOYALTY_DEFAULTS["gold_point_multiplier"])
    platinum_point_multiplier = db.Column(db.Numeric(5, 2), nullable=False, default=LOYALTY_DEFAULTS["platinum_point_multiplier"])

    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "earnAmountPerPoint": as_number(self.earn_amount_per_point),
            "redeemAmountPerPoint": as_number(self.redeem_amount_per_point),
            "silverMinSpending": as_number(self.silver_min_spending),
            "goldMinSpending": as_number(self.gold_min_spending),
            "platinumMinSpending": as_number(self.platinum_min_spending),
            "silverPointMultiplier": as_number(self.silver_point_multiplier),
            "goldPointMultiplier": as_number(self.gold_point_multiplier),
            "platinumPointMultiplier": as_number(self.platinum_point_multiplier),
            "updatedAt": to_utc_z(self.updated_at),
        }
