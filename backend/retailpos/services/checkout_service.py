"""
Checkout and Sales Service

WHY: The terminal's cart total is a preview. This module is the single
place that turns a cart into a Sale: it re-prices every line from the
catalog and active campaigns, moves stock, applies loyalty points, and
writes the audit trail, all in one transaction.

DESIGN PRINCIPLES:
- Server-side prices and campaign discounts are authoritative; the
  request's per-line discount and globalDiscount are validated only
- Stock moves in pieces (CARTON lines convert via pcs_per_carton) through a
  guarded UPDATE, so concurrent terminals cannot oversell
- A sale needs the cashier's open shift; it is recorded against that shift
- Any failure rolls back everything (stock, points, sale rows)
"""

from __future__ import annotations

import secrets
import time
from dataclasses import dataclass
from decimal import Decimal

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import Customer, Product, Return, Sale, SaleItem, SuspendedSale, User
from ..errors import BusinessError, ConflictError, ForbiddenError, NotFoundError
from ..money import ZERO, as_number, round_money
from ..time_utils import utcnow
from ..validation import CheckoutRequest, ValidationError, parse_checkout_request
from . import audit_service, discount_service, loyalty_service, shift_service
from .concurrency import guarded_decrement, increment, lock_for_update, run_with_retry
from .pricing_service import (
    is_carton_eligible,
    pieces_for,
    resolve_global_discount,
    resolve_line_discount,
    resolve_unit_price,
)


def generate_invoice_no() -> str:
    return f"INV-{int(time.time() * 1000)}-{secrets.randbelow(1000):03d}"


@dataclass
class _PreparedLine:
    product: Product
    quantity: int
    unit_type: str
    conversion_qty: int
    unit_price: Decimal
    line_discount: Decimal
    applied_discount_id: int | None
    subtotal: Decimal


# =============================================================================
# CHECKOUT
# =============================================================================

def _load_customer(customer_id: int | None) -> Customer | None:
    if customer_id is None:
        return None
    customer = lock_for_update(db.session.query(Customer).filter_by(id=customer_id)).first()
    if not customer:
        raise NotFoundError("Customer not found", code="CUSTOMER_NOT_FOUND")
    if customer.status != "ACTIVE":
        raise ConflictError("Customer is not active", code="CUSTOMER_INACTIVE")
    return customer


def _prepare_line(line, customer, campaigns) -> _PreparedLine:
    product = db.session.get(Product, line.product_id)
    if not product:
        raise NotFoundError(
            f"Product {line.product_id} not found",
            code="PRODUCT_NOT_FOUND",
            details={"productId": line.product_id},
        )
    if product.status != "ACTIVE":
        raise ConflictError(
            f"{product.name} is not for sale",
            code="PRODUCT_INACTIVE",
            details={"productId": product.id},
        )

    if line.unit_type == "CARTON" and not is_carton_eligible(product):
        raise ValidationError(
            f"{product.name} cannot be sold by carton",
            code="CARTON_NOT_SUPPORTED",
            status=400,
            details={"productId": product.id},
        )

    unit_price = resolve_unit_price(product, line.unit_type)
    conversion_qty = pieces_for(product, line.quantity, line.unit_type)
    line_total = unit_price * line.quantity
    line_discount, discount_id = resolve_line_discount(
        product, unit_price, line.quantity, campaigns, customer
    )

    return _PreparedLine(
        product=product,
        quantity=line.quantity,
        unit_type=line.unit_type,
        conversion_qty=conversion_qty,
        unit_price=unit_price,
        line_discount=line_discount,
        applied_discount_id=discount_id,
        subtotal=round_money(max(ZERO, line_total - line_discount)),
    )


def _take_stock(prepared: _PreparedLine) -> None:
    product = prepared.product
    if guarded_decrement(Product, product.id, "stock", prepared.conversion_qty):
        return
    available = db.session.query(Product.stock).filter_by(id=product.id).scalar() or 0
    raise ConflictError(
        f"Insufficient stock for {product.name}",
        code="INSUFFICIENT_STOCK",
        details={
            "productId": product.id,
            "productName": product.name,
            "unitType": prepared.unit_type,
            "requiredPcs": prepared.conversion_qty,
            "availablePcs": int(available),
        },
    )


def checkout(request: CheckoutRequest, cashier_id: int) -> Sale:
    """
    Finalise a sale for `cashier_id`.

    Raises:
        ValidationError: empty cart, CARTON_NOT_SUPPORTED, CUSTOMER_REQUIRED
        NotFoundError: unknown product or customer
        ConflictError: NO_ACTIVE_SHIFT, CUSTOMER_INACTIVE, INSUFFICIENT_STOCK,
            POINTS_NOT_ENOUGH
    """
    if not request.items:
        raise ValidationError("Cart is empty", code="CART_EMPTY")

    def _op():
        try:
            sale = _checkout(request, cashier_id)
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise
        return sale

    return run_with_retry(_op)


def _checkout(request: CheckoutRequest, cashier_id: int) -> Sale:
    shift = shift_service.require_active_shift(cashier_id)
    settings = loyalty_service.get_settings()
    customer = _load_customer(request.customer_id)
    campaigns = discount_service.active_discounts()

    prepared = [_prepare_line(line, customer, campaigns) for line in request.items]
    for line in prepared:
        _take_stock(line)

    subtotal = sum((line.subtotal for line in prepared), ZERO)
    item_discount = sum((line.line_discount for line in prepared), ZERO)
    global_discount, global_discount_id = resolve_global_discount(subtotal, campaigns, customer)
    amount_after_discounts = max(ZERO, subtotal - global_discount)

    redeemed_points = max(0, request.points_to_redeem)
    if redeemed_points > 0 and customer is None:
        raise ValidationError(
            "Select a customer to redeem points",
            code="CUSTOMER_REQUIRED",
            status=400,
        )
    if customer is not None and redeemed_points > 0:
        redeemed_points = min(
            redeemed_points,
            loyalty_service.max_redeemable_points(amount_after_discounts, redeemed_points, settings),
        )
    redeemed_amount = round_money(loyalty_service.redeem_value(redeemed_points, settings))

    if customer is not None and redeemed_points > 0:
        if not guarded_decrement(Customer, customer.id, "total_points", redeemed_points):
            raise ConflictError(
                "Customer does not have enough points",
                code="POINTS_NOT_ENOUGH",
                details={"requested": redeemed_points, "available": customer.total_points},
            )

    final_amount = round_money(max(ZERO, amount_after_discounts - redeemed_amount))

    points_earned = 0
    if customer is not None:
        points_earned = loyalty_service.compute_points_earned(final_amount, customer.tier_level, settings)

    sale = Sale(
        invoice_no=generate_invoice_no(),
        shift_id=shift.id,
        cashier_id=cashier_id,
        customer_id=customer.id if customer else None,
        subtotal=round_money(subtotal),
        item_discount_amount=round_money(item_discount),
        global_discount_amount=global_discount,
        discount_amount=round_money(item_discount + global_discount),
        applied_global_discount_id=global_discount_id,
        redeemed_points=redeemed_points,
        redeemed_amount=redeemed_amount,
        points_earned=points_earned,
        final_amount=final_amount,
        payment_method=request.payment_method,
        status="COMPLETED",
        note=request.note,
        created_at=utcnow(),
    )
    for line in prepared:
        sale.items.append(SaleItem(
            product_id=line.product.id,
            quantity=line.quantity,
            unit_type=line.unit_type,
            conversion_qty=line.conversion_qty,
            price_at_sale=line.unit_price,
            discount_at_sale=line.line_discount,
            applied_discount_id=line.applied_discount_id,
            subtotal=line.subtotal,
        ))
    db.session.add(sale)
    db.session.flush()

    if customer is not None:
        if redeemed_points > 0:
            loyalty_service.log_points(customer.id, -redeemed_points, "Point Redeem", sale_id=sale.id)
        if points_earned > 0:
            loyalty_service.log_points(customer.id, points_earned, "Purchase Reward", sale_id=sale.id)
            increment(Customer, customer.id, "total_points", points_earned)
        loyalty_service.apply_spending_change(customer, final_amount, settings)

    audit_service.record(
        entity_type="SALE",
        entity_id=sale.id,
        action="SALE_CREATED",
        actor_id=cashier_id,
        metadata={
            "invoiceNo": sale.invoice_no,
            "shiftId": shift.id,
            "customerId": sale.customer_id,
            "subtotal": str(sale.subtotal),
            "itemDiscountAmount": str(sale.item_discount_amount),
            "globalDiscountAmount": str(sale.global_discount_amount),
            "redeemedPoints": redeemed_points,
            "pointsEarned": points_earned,
            "finalAmount": str(final_amount),
            "paymentMethod": sale.payment_method,
        },
    )
    return sale


# =============================================================================
# SALES READS
# =============================================================================

def get_sale(sale_id: int) -> Sale:
    sale = db.session.get(Sale, sale_id)
    if not sale:
        raise NotFoundError("Sale not found", code="SALE_NOT_FOUND")
    return sale


def list_sales(
    *,
    start=None,
    end=None,
    cashier_id: int | None = None,
    shift_id: int | None = None,
    status: str | None = None,
    search: str | None = None,
    limit: int = 200,
) -> list[Sale]:
    query = db.session.query(Sale)
    if start is not None:
        query = query.filter(Sale.created_at >= start)
    if end is not None:
        query = query.filter(Sale.created_at < end)
    if cashier_id is not None:
        query = query.filter(Sale.cashier_id == cashier_id)
    if shift_id is not None:
        query = query.filter(Sale.shift_id == shift_id)
    if status:
        query = query.filter(Sale.status == status.upper())
    if search:
        query = query.filter(Sale.invoice_no.ilike(f"%{search.strip()}%"))
    return query.order_by(Sale.created_at.desc(), Sale.id.desc()).limit(limit).all()


# =============================================================================
# VOID
# =============================================================================

def void_sale(sale_id: int, actor_id: int) -> Sale:
    """
    Cancel a completed sale: stock back, points reversed, spending reduced.

    Voiding an already cancelled sale is a no-op. The actor needs an open
    shift; the void is recorded against it so expected cash drops there.
    Cashiers may only void their own sales up to REFUND_APPROVAL_THRESHOLD;
    supervisors and admins may void any sale.

    Raises:
        NotFoundError: unknown sale
        ConflictError: NO_ACTIVE_SHIFT, SALE_NOT_VOIDABLE, SALE_HAS_RETURNS
        ForbiddenError: VOID_NOT_ALLOWED, SUPERVISOR_REQUIRED
    """
    def _op():
        try:
            sale = _void_sale(sale_id, actor_id)
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise
        return sale

    return run_with_retry(_op)


def _void_sale(sale_id: int, actor_id: int) -> Sale:
    active_shift = shift_service.require_active_shift(actor_id)
    actor = db.session.get(User, actor_id)

    sale = lock_for_update(db.session.query(Sale).filter_by(id=sale_id)).first()
    if not sale:
        raise NotFoundError("Sale not found", code="SALE_NOT_FOUND")
    if sale.status == "CANCELLED":
        return sale
    if sale.status != "COMPLETED":
        raise ConflictError("Sale cannot be voided in its current status", code="SALE_NOT_VOIDABLE")

    has_return = (
        db.session.query(Return.id)
        .filter(Return.sale_id == sale.id, Return.status == "COMPLETED")
        .first()
    )
    if has_return:
        raise ConflictError("Sale already has returns", code="SALE_HAS_RETURNS")

    if not actor.is_approver:
        if sale.cashier_id != actor.id:
            raise ForbiddenError(
                "Only the cashier who made the sale or a supervisor can void it",
                code="VOID_NOT_ALLOWED",
                details={"saleCashierId": sale.cashier_id},
            )
        threshold = Decimal(current_app.config.get("REFUND_APPROVAL_THRESHOLD", 500000))
        if Decimal(sale.final_amount) > threshold:
            raise ForbiddenError(
                "Void exceeds the cashier limit; a supervisor must process it",
                code="SUPERVISOR_REQUIRED",
                details={"finalAmount": as_number(sale.final_amount), "threshold": as_number(threshold)},
            )

    restore: dict[int, int] = {}
    for item in sale.items:
        qty = item.conversion_qty if item.conversion_qty and item.conversion_qty > 0 else item.quantity
        restore[item.product_id] = restore.get(item.product_id, 0) + qty
    for product_id, qty in restore.items():
        increment(Product, product_id, "stock", qty)

    if sale.customer_id is not None:
        customer = db.session.get(Customer, sale.customer_id)
        settings = loyalty_service.get_settings()
        for log in loyalty_service.list_sale_point_logs(sale.id):
            customer.total_points = max(0, (customer.total_points or 0) - log.points_change)
            loyalty_service.log_points(
                customer.id, -log.points_change, f"Sale Cancelled: {sale.id}", sale_id=sale.id
            )
        loyalty_service.apply_spending_change(customer, -Decimal(sale.final_amount), settings)

    sale.status = "CANCELLED"
    sale.cancelled_at = utcnow()
    sale.cancelled_by = actor_id
    sale.cancelled_shift_id = active_shift.id

    audit_service.record(
        entity_type="SALE",
        entity_id=sale.id,
        action="SALE_VOIDED",
        actor_id=actor_id,
        metadata={"invoiceNo": sale.invoice_no, "cancelledShiftId": sale.cancelled_shift_id},
    )
    return sale


# =============================================================================
# SUSPENDED SALES
# =============================================================================

def suspend_sale(cashier_id: int, payload: dict, note: str | None = None) -> SuspendedSale:
    """Park a cart. The body is validated like a checkout, then stored as-is."""
    request = parse_checkout_request(payload)
    row = SuspendedSale(
        cashier_id=cashier_id,
        customer_id=request.customer_id,
        note=(note or "").strip()[:255] or None,
        payload=request.to_payload(),
    )
    db.session.add(row)
    db.session.commit()
    return row


def list_suspended_sales(cashier_id: int) -> list[SuspendedSale]:
    return (
        db.session.query(SuspendedSale)
        .filter_by(cashier_id=cashier_id)
        .order_by(SuspendedSale.created_at.desc(), SuspendedSale.id.desc())
        .all()
    )


def count_suspended_sales(cashier_id: int | None = None) -> int:
    """Parked sales of one cashier, or of every cashier when cashier_id is None."""
    query = db.session.query(func.count(SuspendedSale.id))
    if cashier_id is not None:
        query = query.filter_by(cashier_id=cashier_id)
    return query.scalar() or 0


def _owned_suspended_sale(cashier_id: int, suspended_id: int) -> SuspendedSale:
    row = (
        db.session.query(SuspendedSale)
        .filter_by(id=suspended_id, cashier_id=cashier_id)
        .first()
    )
    if not row:
        raise NotFoundError("Suspended sale not found", code="SUSPENDED_SALE_NOT_FOUND")
    return row


def recall_suspended_sale(cashier_id: int, suspended_id: int) -> dict:
    """
    Take a parked cart back: returns cart-shaped items built from current
    product data and deletes the parked row.
    """
    row = _owned_suspended_sale(cashier_id, suspended_id)
    payload = row.payload or {}

    items = []
    for raw in payload.get("items") or []:
        product = db.session.get(Product, raw.get("productId"))
        if not product:
            raise NotFoundError(
                f"Product {raw.get('productId')} not found",
                code="PRODUCT_NOT_FOUND",
                details={"productId": raw.get("productId")},
            )
        items.append({
            "product": product.to_dict(),
            "quantity": int(raw.get("quantity") or 1),
            "unitType": raw.get("unitType") or "PCS",
            "discount": raw.get("discount") or "0",
        })

    customer = db.session.get(Customer, row.customer_id) if row.customer_id else None
    result = {
        "id": row.id,
        "note": row.note,
        "customer": customer.to_dict() if customer else None,
        "globalDiscount": payload.get("globalDiscount") or "0",
        "pointsToRedeem": int(payload.get("pointsToRedeem") or 0),
        "paymentMethod": payload.get("paymentMethod") or "cash",
        "items": items,
    }
    db.session.delete(row)
    db.session.commit()
    return result


def discard_suspended_sale(cashier_id: int, suspended_id: int) -> None:
    row = _owned_suspended_sale(cashier_id, suspended_id)
    db.session.delete(row)
    db.session.commit()
