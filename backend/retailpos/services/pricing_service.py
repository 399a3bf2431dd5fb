# Overview: Pure pricing rules: carton eligibility, unit price, campaign discount resolution.

"""
Pricing Rule Resolver

No database access here. Every function takes plain objects that expose
the attribute names used by the ORM models (Product, Discount, Customer),
so the terminal's ProductSnapshot / DiscountRule / CustomerRef work too.

Two discount resolvers exist:

- resolve_unit_discount: what the terminal shows while building the cart
  (best non-stackable vs. sum of stackables, per unit).
- resolve_line_discount / resolve_global_discount: what checkout charges
  (priority ordering, targets, minimum purchase on the line amount).

Checkout is authoritative; the terminal value is a preview.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional

from ..money import ZERO, round_money

HUNDRED = Decimal("100")


# =============================================================================
# UNITS
# =============================================================================

def is_carton_eligible(product) -> bool:
    """A product can be sold by carton only with a flag, a pack size > 1 and a carton price."""
    return bool(
        getattr(product, "supports_carton", False)
        and (getattr(product, "pcs_per_carton", 1) or 1) > 1
        and getattr(product, "carton_price", None) is not None
    )


def coerce_unit_type(product, unit_type: str | None) -> str:
    if (unit_type or "PCS").upper() == "CARTON" and is_carton_eligible(product):
        return "CARTON"
    return "PCS"


def resolve_unit_price(product, unit_type: str | None) -> Decimal:
    if coerce_unit_type(product, unit_type) == "CARTON":
        return Decimal(product.carton_price)
    return Decimal(product.price)


def pieces_for(product, quantity: int, unit_type: str | None) -> int:
    """How many pieces leave stock for `quantity` units of `unit_type`."""
    if coerce_unit_type(product, unit_type) == "CARTON":
        return quantity * int(product.pcs_per_carton)
    return quantity


def stock_breakdown(stock: int, pcs_per_carton: int | None) -> tuple[int, int]:
    """Split a piece count into (full cartons, leftover pieces)."""
    stock = max(0, int(stock or 0))
    per = int(pcs_per_carton or 1)
    if per <= 1:
        return 0, stock
    return divmod(stock, per)


# =============================================================================
# CAMPAIGN MATCHING
# =============================================================================

def _norm(value) -> str:
    return str(value or "").strip().lower()


def is_discount_active(discount, now: datetime) -> bool:
    if not getattr(discount, "active", True):
        return False
    if _norm(getattr(discount, "status", "ACTIVE")) != "active":
        return False
    start = getattr(discount, "start_date", None)
    end = getattr(discount, "end_date", None)
    if start is not None and start > now:
        return False
    if end is not None and end < now:
        return False
    return True


def compute_discount_amount(base, discount_type: str, value) -> Decimal:
    """Campaign amount on `base`, clamped to [0, base]."""
    base = Decimal(base)
    if base <= 0:
        return ZERO
    value = Decimal(value or 0)
    if _norm(discount_type) == "percentage":
        raw = base * value / HUNDRED
    else:
        raw = value
    raw = raw.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    return max(ZERO, min(base, raw))


def _customer_type(customer) -> str:
    return _norm(getattr(customer, "customer_type", None)) if customer else ""


def _customer_matches(discount, customer) -> bool:
    wanted = _norm(getattr(discount, "customer_type", None))
    if not wanted:
        return True
    return _customer_type(customer) == wanted


def _has_target(discount) -> bool:
    return any(
        getattr(discount, attr, None) is not None
        for attr in ("product_id", "brand_id", "category_id")
    )


def _target_matches(discount, product) -> bool:
    if discount.product_id is not None and discount.product_id == product.id:
        return True
    if discount.brand_id is not None and discount.brand_id == getattr(product, "brand_id", None):
        return True
    if discount.category_id is not None and discount.category_id == getattr(product, "category_id", None):
        return True
    return False


def _effective_scope(discount) -> str:
    """A 'global' campaign that names a target is treated as product-level."""
    scope = _norm(discount.applies_to) or "product"
    if scope == "global" and _has_target(discount):
        return "product"
    return scope


# =============================================================================
# TERMINAL PREVIEW
# =============================================================================

def _preview_target_matches(discount, scope: str, product) -> bool:
    if scope == "global":
        return True
    if scope == "product" and discount.product_id is not None and discount.product_id == product.id:
        return True
    if scope == "category" and discount.category_id is not None \
            and discount.category_id == getattr(product, "category_id", None):
        return True
    if discount.brand_id is not None and discount.brand_id == getattr(product, "brand_id", None):
        return True
    return False


def resolve_unit_discount(product, unit_price, discounts: Iterable, customer=None) -> Decimal:
    """
    Per-unit discount the terminal pre-fills into a cart line.

    Eligible campaigns: customer type matches, customer-only campaigns need
    a customer, minimum purchase <= unit price, and the target is global or
    matches the product, its brand or its category.
    Result = max(best non-stackable, sum of stackables), capped at the price.
    """
    unit_price = Decimal(unit_price)
    best_single = ZERO
    stacked = ZERO

    for discount in discounts:
        if not _customer_matches(discount, customer):
            continue
        scope = _norm(discount.applies_to)
        if scope == "customer" and customer is None:
            continue
        if Decimal(getattr(discount, "minimum_purchase", 0) or 0) > unit_price:
            continue
        if not _preview_target_matches(discount, scope, product):
            continue

        amount = compute_discount_amount(unit_price, discount.type, discount.value)
        if getattr(discount, "stackable", False):
            stacked += amount
        else:
            best_single = max(best_single, amount)

    return min(unit_price, max(best_single, stacked))


# =============================================================================
# CHECKOUT RULES
# =============================================================================

def _select(candidates: list[tuple[Decimal, object]], base: Decimal) -> tuple[Decimal, Optional[int]]:
    """
    candidates: (amount, discount). Non-stackables win outright (best by
    priority desc, amount desc, id asc); otherwise stackables are summed.
    """
    if not candidates:
        return ZERO, None

    singles = [c for c in candidates if not getattr(c[1], "stackable", False)]
    if singles:
        singles.sort(key=lambda c: (-(c[1].priority_level or 0), -c[0], c[1].id or 0))
        amount, chosen = singles[0]
        return min(base, amount), chosen.id

    total = sum((amount for amount, _ in candidates), ZERO)
    ordered = sorted(candidates, key=lambda c: (-(c[1].priority_level or 0), -c[0], c[1].id or 0))
    first = ordered[0][1]
    return min(base, total), first.id


def resolve_line_discount(
    product,
    unit_price,
    quantity: int,
    discounts: Iterable,
    customer=None,
) -> tuple[Decimal, Optional[int]]:
    """
    Line discount charged at checkout for `quantity` units at `unit_price`.

    Returns (line amount, applied discount id). The per-unit amount is
    capped at the unit price, the line amount at the line total.
    """
    unit_price = Decimal(unit_price)
    line_amount = unit_price * quantity
    if line_amount <= 0:
        return ZERO, None

    candidates: list[tuple[Decimal, object]] = []
    for discount in discounts:
        if _effective_scope(discount) not in ("product", "category"):
            continue
        if not _target_matches(discount, product):
            continue
        if not _customer_matches(discount, customer):
            continue
        if Decimal(getattr(discount, "minimum_purchase", 0) or 0) > line_amount:
            continue
        per_unit = compute_discount_amount(unit_price, discount.type, discount.value)
        amount = min(line_amount, per_unit * quantity)
        if amount > 0:
            candidates.append((amount, discount))

    amount, discount_id = _select(candidates, line_amount)
    return round_money(amount), discount_id


def resolve_global_discount(subtotal, discounts: Iterable, customer=None) -> tuple[Decimal, Optional[int]]:
    """
    Transaction-level discount on the subtotal after line discounts.

    Only untargeted 'global' campaigns and 'customer' campaigns count;
    customer campaigns require a customer.
    """
    subtotal = Decimal(subtotal)
    if subtotal <= 0:
        return ZERO, None

    candidates: list[tuple[Decimal, object]] = []
    for discount in discounts:
        scope = _effective_scope(discount)
        if scope not in ("global", "customer"):
            continue
        if scope == "customer" and customer is None:
            continue
        if not _customer_matches(discount, customer):
            continue
        if Decimal(getattr(discount, "minimum_purchase", 0) or 0) > subtotal:
            continue
        amount = compute_discount_amount(subtotal, discount.type, discount.value)
        if amount > 0:
            candidates.append((amount, discount))

    amount, discount_id = _select(candidates, subtotal)
    return round_money(amount), discount_id
