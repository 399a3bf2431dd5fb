# Overview: Loyalty program settings, tier thresholds, and point earn/redeem math.

"""
Loyalty

- Tier: highest of SILVER / GOLD / PLATINUM whose minimum spending is met,
  otherwise REGULAR.
- Earn: floor(floor(final_amount / earn_amount_per_point) x tier multiplier).
  REGULAR earns at 1x.
- Redeem: one point is worth redeem_amount_per_point; redemption is capped
  at floor(amount_due / redeem_amount_per_point) and at the points held.

Tier is recomputed by the backend whenever spending changes (sale, void,
return); the cart only reads it.
"""

from __future__ import annotations

from decimal import Decimal, ROUND_FLOOR

from ..extensions import db
from ..models import Customer, LoyaltySettings, PointLog
from ..models.settings import LOYALTY_DEFAULTS
from ..money import ZERO
from ..validation import ValidationError, parse_money

TIERS = ("REGULAR", "SILVER", "GOLD", "PLATINUM")

SETTINGS_FIELDS = {
    "earnAmountPerPoint": "earn_amount_per_point",
    "redeemAmountPerPoint": "redeem_amount_per_point",
    "silverMinSpending": "silver_min_spending",
    "goldMinSpending": "gold_min_spending",
    "platinumMinSpending": "platinum_min_spending",
    "silverPointMultiplier": "silver_point_multiplier",
    "goldPointMultiplier": "gold_point_multiplier",
    "platinumPointMultiplier": "platinum_point_multiplier",
}


def _floor(value: Decimal) -> int:
    return int(Decimal(value).to_integral_value(rounding=ROUND_FLOOR))


# =============================================================================
# SETTINGS
# =============================================================================

def get_settings() -> LoyaltySettings:
    """Return the settings row, creating it with defaults on first use."""
    settings = db.session.get(LoyaltySettings, 1)
    if settings is None:
        settings = LoyaltySettings(id=1, **LOYALTY_DEFAULTS)
        db.session.add(settings)
        db.session.flush()
    return settings


def update_settings(payload: dict) -> LoyaltySettings:
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    unknown = sorted(set(payload) - set(SETTINGS_FIELDS))
    if unknown:
        raise ValidationError(f"Unknown field(s): {', '.join(unknown)}")

    settings = get_settings()
    values = {column: getattr(settings, column) for column in SETTINGS_FIELDS.values()}
    for key, column in SETTINGS_FIELDS.items():
        if key in payload:
            values[column] = parse_money(payload[key], key)

    if values["earn_amount_per_point"] <= 0:
        raise ValidationError("earnAmountPerPoint must be > 0")
    if values["redeem_amount_per_point"] <= 0:
        raise ValidationError("redeemAmountPerPoint must be > 0")
    if not (values["silver_min_spending"] <= values["gold_min_spending"] <= values["platinum_min_spending"]):
        raise ValidationError("Tier thresholds must be ascending: silver <= gold <= platinum")

    for column, value in values.items():
        setattr(settings, column, value)
    db.session.commit()
    return settings


# =============================================================================
# TIERS AND POINTS
# =============================================================================

def compute_tier(total_spending, settings) -> str:
    spending = Decimal(total_spending or 0)
    if spending >= Decimal(settings.platinum_min_spending):
        return "PLATINUM"
    if spending >= Decimal(settings.gold_min_spending):
        return "GOLD"
    if spending >= Decimal(settings.silver_min_spending):
        return "SILVER"
    return "REGULAR"


def tier_multiplier(tier: str | None, settings) -> Decimal:
    tier = (tier or "REGULAR").upper()
    if tier == "PLATINUM":
        return Decimal(settings.platinum_point_multiplier)
    if tier == "GOLD":
        return Decimal(settings.gold_point_multiplier)
    if tier == "SILVER":
        return Decimal(settings.silver_point_multiplier)
    return Decimal("1")


def compute_points_earned(final_amount, tier: str | None, settings) -> int:
    earn = Decimal(settings.earn_amount_per_point)
    if earn <= 0:
        return 0
    base_points = _floor(Decimal(final_amount) / earn)
    return max(0, _floor(base_points * tier_multiplier(tier, settings)))


def max_redeemable_points(amount_due, available_points: int, settings) -> int:
    redeem = Decimal(settings.redeem_amount_per_point)
    if redeem <= 0:
        return 0
    by_amount = max(0, _floor(Decimal(amount_due) / redeem))
    return max(0, min(int(available_points or 0), by_amount))


def redeem_value(points: int, settings) -> Decimal:
    return Decimal(points) * Decimal(settings.redeem_amount_per_point)


def apply_spending_change(customer: Customer, delta, settings) -> None:
    """Adjust spending (never below 0) and recompute tier in one place."""
    spending = Decimal(customer.total_spending or 0) + Decimal(delta)
    customer.total_spending = max(ZERO, spending)
    customer.tier_level = compute_tier(customer.total_spending, settings)


def log_points(customer_id: int, change: int, reason: str, *, sale_id=None, return_id=None) -> PointLog:
    entry = PointLog(
        customer_id=customer_id,
        sale_id=sale_id,
        return_id=return_id,
        points_change=change,
        reason=reason,
    )
    db.session.add(entry)
    return entry


def list_point_logs(customer_id: int, limit: int = 100) -> list[PointLog]:
    return (
        db.session.query(PointLog)
        .filter_by(customer_id=customer_id)
        .order_by(PointLog.created_at.desc(), PointLog.id.desc())
        .limit(limit)
        .all()
    )


def list_sale_point_logs(sale_id: int) -> list[PointLog]:
    """Point movements written by the sale itself (not by its returns)."""
    return (
        db.session.query(PointLog)
        .filter(PointLog.sale_id == sale_id, PointLog.return_id.is_(None))
        .order_by(PointLog.id.asc())
        .all()
    )
