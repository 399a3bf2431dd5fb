"""
Returns Service

WHY: Customers bring goods back. A return refunds money, puts the pieces
back on the shelf, and unwinds the loyalty effects of the original sale in
proportion to what came back.

REFUND MATH (per return):
- returned subtotal = sum over products of (sold subtotal / sold pcs) x pcs
- ratio = returned subtotal / sale subtotal
- refund = returned subtotal - ratio x global discount - ratio x redeemed amount
- points restored = round(redeemed points x redeemed share / redeemed amount)
- points reversed = floor(points earned x refund / final amount)
Both point figures are capped by what earlier returns already moved.

Cashiers may refund up to REFUND_APPROVAL_THRESHOLD; above that a
supervisor or admin must process the return.
"""

from __future__ import annotations

import secrets
import time
from decimal import Decimal, ROUND_FLOOR, ROUND_HALF_UP

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import Customer, Product, Return, ReturnItem, Sale, User
from ..errors import ConflictError, ForbiddenError, NotFoundError
from ..money import ZERO, as_number, round_money
from ..time_utils import utcnow
from ..validation import ValidationError, parse_int, parse_text, reject_unknown, require_json
from . import audit_service, loyalty_service, shift_service
from .concurrency import increment, lock_for_update, run_with_retry


def generate_return_number() -> str:
    return f"RET-{int(time.time() * 1000)}-{secrets.randbelow(1000):03d}"


def parse_return_request(payload) -> dict:
    payload = require_json(payload)
    reject_unknown(payload, {"saleId", "items", "reason", "refundMethod"})
    raw_items = payload.get("items")
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError("items must be a non-empty list")
    items = []
    for index, raw in enumerate(raw_items):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{index}] must be an object")
        reject_unknown(raw, {"productId", "quantity"}, where=f"items[{index}]")
        items.append({
            "product_id": parse_int(raw.get("productId"), f"items[{index}].productId", minimum=1),
            "quantity": parse_int(raw.get("quantity"), f"items[{index}].quantity", minimum=0),
        })
    return {
        "sale_id": parse_int(payload.get("saleId"), "saleId", minimum=1),
        "items": items,
        "reason": parse_text(payload.get("reason"), "reason", max_length=255),
        "refund_method": (parse_text(payload.get("refundMethod"), "refundMethod", max_length=32) or "cash").lower(),
    }


def _sold_by_product(sale: Sale) -> dict[int, dict]:
    sold: dict[int, dict] = {}
    for item in sale.items:
        pcs = item.conversion_qty if item.conversion_qty and item.conversion_qty > 0 else item.quantity
        entry = sold.setdefault(item.product_id, {"pcs": 0, "subtotal": ZERO})
        entry["pcs"] += pcs
        entry["subtotal"] += Decimal(item.subtotal)
    return sold


def _already_returned(sale_id: int) -> dict[int, int]:
    rows = (
        db.session.query(ReturnItem.product_id, func.coalesce(func.sum(ReturnItem.quantity), 0))
        .join(Return, ReturnItem.return_id == Return.id)
        .filter(Return.sale_id == sale_id, Return.status == "COMPLETED")
        .group_by(ReturnItem.product_id)
        .all()
    )
    return {product_id: int(qty) for product_id, qty in rows}


def create_return(
    sale_id: int,
    items: list[dict],
    actor: User,
    reason: str | None = None,
    refund_method: str = "cash",
) -> Return:
    """
    Raises:
        ConflictError: NO_ACTIVE_SHIFT, SALE_VOIDED, SALE_REFUNDED
        NotFoundError: unknown sale
        ValidationError: product not in sale, RETURN_QTY_EXCEEDS, nothing to return
        ForbiddenError: SUPERVISOR_REQUIRED
    """
    def _op():
        try:
            ret = _create_return(sale_id, items, actor, reason, refund_method)
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise
        return ret

    return run_with_retry(_op)


def _create_return(sale_id, items, actor, reason, refund_method) -> Return:
    shift = shift_service.require_active_shift(actor.id)

    sale = lock_for_update(db.session.query(Sale).filter_by(id=sale_id)).first()
    if not sale:
        raise NotFoundError("Sale not found", code="SALE_NOT_FOUND")
    if sale.status == "CANCELLED":
        raise ConflictError("Sale was voided", code="SALE_VOIDED")
    if sale.status == "REFUNDED":
        raise ConflictError("Sale is already fully refunded", code="SALE_REFUNDED")

    sold = _sold_by_product(sale)
    returned = _already_returned(sale.id)

    prepared = []
    returned_subtotal = ZERO
    for item in items:
        qty = max(0, int(item["quantity"]))
        if qty == 0:
            continue
        product_id = item["product_id"]
        entry = sold.get(product_id)
        if entry is None:
            raise ValidationError(
                f"Product {product_id} is not part of this sale",
                details={"productId": product_id},
            )
        already = returned.get(product_id, 0)
        remaining = max(0, entry["pcs"] - already)
        if qty > remaining:
            raise ValidationError(
                "Return quantity exceeds quantity sold",
                code="RETURN_QTY_EXCEEDS",
                status=400,
                details={
                    "productId": product_id,
                    "soldQty": entry["pcs"],
                    "alreadyReturned": already,
                    "requested": qty,
                },
            )
        unit_subtotal = entry["subtotal"] / entry["pcs"] if entry["pcs"] else ZERO
        line_subtotal = round_money(unit_subtotal * qty)
        returned_subtotal += line_subtotal
        prepared.append({"product_id": product_id, "quantity": qty, "subtotal": line_subtotal})

    if not prepared:
        raise ValidationError("Nothing to return")

    sale_subtotal = Decimal(sale.subtotal or 0)
    global_share = redeemed_share = ZERO
    if sale_subtotal > 0:
        global_share = round_money(Decimal(sale.global_discount_amount or 0) * returned_subtotal / sale_subtotal)
        redeemed_share = round_money(Decimal(sale.redeemed_amount or 0) * returned_subtotal / sale_subtotal)
    refund = round_money(max(ZERO, returned_subtotal - global_share - redeemed_share))

    threshold = Decimal(current_app.config.get("REFUND_APPROVAL_THRESHOLD", 500000))
    if not actor.is_approver and refund > threshold:
        raise ForbiddenError(
            "Refund exceeds the cashier limit; a supervisor must process it",
            code="SUPERVISOR_REQUIRED",
            details={"refundAmount": as_number(refund), "threshold": as_number(threshold)},
        )

    for line in prepared:
        increment(Product, line["product_id"], "stock", line["quantity"])

    ret = Return(
        return_number=generate_return_number(),
        sale_id=sale.id,
        shift_id=shift.id,
        cashier_id=actor.id,
        total_refund=refund,
        refund_method=refund_method or "cash",
        reason=reason,
        status="COMPLETED",
        created_at=utcnow(),
    )

    allocated = ZERO
    for index, line in enumerate(prepared):
        if index == len(prepared) - 1:
            line_refund = round_money(refund - allocated)
        else:
            weight = line["subtotal"] / returned_subtotal if returned_subtotal > 0 else ZERO
            line_refund = round_money(refund * weight)
        allocated += line_refund
        ret.items.append(ReturnItem(
            product_id=line["product_id"],
            quantity=line["quantity"],
            subtotal=line["subtotal"],
            refund_amount=max(ZERO, line_refund),
        ))

    db.session.add(ret)
    db.session.flush()

    if sale.customer_id is not None:
        _unwind_loyalty(sale, ret, refund, redeemed_share)

    total_returned = (
        db.session.query(func.coalesce(func.sum(ReturnItem.subtotal), 0))
        .join(Return, ReturnItem.return_id == Return.id)
        .filter(Return.sale_id == sale.id, Return.status == "COMPLETED")
        .scalar()
    )
    if Decimal(total_returned or 0) >= sale_subtotal - Decimal("0.01"):
        sale.status = "REFUNDED"
    else:
        sale.status = "PARTIAL_REFUND"

    audit_service.record(
        entity_type="SALE",
        entity_id=sale.id,
        action="RETURN_CREATED",
        actor_id=actor.id,
        metadata={
            "returnId": ret.id,
            "returnNumber": ret.return_number,
            "totalRefund": str(refund),
            "refundMethod": ret.refund_method,
            "pointsRestored": ret.points_restored,
            "pointsReversed": ret.points_reversed,
        },
    )
    return ret


def _unwind_loyalty(sale: Sale, ret: Return, refund: Decimal, redeemed_share: Decimal) -> None:
    customer = db.session.get(Customer, sale.customer_id)
    if customer is None:
        return
    settings = loyalty_service.get_settings()

    already_restored, already_reversed = (
        db.session.query(
            func.coalesce(func.sum(Return.points_restored), 0),
            func.coalesce(func.sum(Return.points_reversed), 0),
        )
        .filter(Return.sale_id == sale.id, Return.status == "COMPLETED", Return.id != ret.id)
        .one()
    )

    restored = 0
    redeemed_amount = Decimal(sale.redeemed_amount or 0)
    if sale.redeemed_points and redeemed_amount > 0:
        remaining = max(0, sale.redeemed_points - int(already_restored))
        proportional = int((Decimal(sale.redeemed_points) * redeemed_share / redeemed_amount)
                           .to_integral_value(rounding=ROUND_HALF_UP))
        restored = min(remaining, max(0, proportional))

    reversed_ = 0
    if sale.points_earned:
        remaining = max(0, sale.points_earned - int(already_reversed))
        final_amount = Decimal(sale.final_amount or 0)
        proportional = 0
        if final_amount > 0:
            proportional = int((Decimal(sale.points_earned) * refund / final_amount)
                               .to_integral_value(rounding=ROUND_FLOOR))
        reversed_ = min(remaining, max(0, proportional))

    ret.points_restored = restored
    ret.points_reversed = reversed_

    if refund > 0:
        loyalty_service.apply_spending_change(customer, -refund, settings)
    customer.total_points = max(0, (customer.total_points or 0) + restored - reversed_)

    if restored > 0:
        loyalty_service.log_points(
            customer.id, restored, f"Return Restore Redeem: {ret.return_number}",
            sale_id=sale.id, return_id=ret.id,
        )
    if reversed_ > 0:
        loyalty_service.log_points(
            customer.id, -reversed_, f"Return Reverse Earned: {ret.return_number}",
            sale_id=sale.id, return_id=ret.id,
        )


def list_returns(*, sale_id: int | None = None, shift_id: int | None = None, limit: int = 200) -> list[Return]:
    query = db.session.query(Return)
    if sale_id is not None:
        query = query.filter(Return.sale_id == sale_id)
    if shift_id is not None:
        query = query.filter(Return.shift_id == shift_id)
    return query.order_by(Return.created_at.desc(), Return.id.desc()).limit(limit).all()
