# Overview: Service-layer reporting over sales, returns and shifts.

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import func

from ..extensions import db
from ..models import CashierShift, Customer, Product, Return, ReturnItem, Sale, SaleItem, User
from ..money import ZERO, as_number, round_money
from ..time_utils import day_bounds, to_utc_z, utcnow
from ..validation import ValidationError

GROUP_BY = ("day", "week", "month")

# Item quantity in pieces; carton lines carry conversion_qty
_PCS = func.coalesce(func.nullif(SaleItem.conversion_qty, 0), SaleItem.quantity)


def daily_stats(day: datetime | None = None) -> dict:
    """Transactions, pieces sold, revenue and refunds for one UTC day."""
    start, end = day_bounds(day or utcnow())

    count, revenue, discounts = (
        db.session.query(
            func.count(Sale.id),
            func.coalesce(func.sum(Sale.final_amount), 0),
            func.coalesce(func.sum(Sale.discount_amount), 0),
        )
        .filter(Sale.created_at >= start, Sale.created_at < end, Sale.status != "CANCELLED")
        .one()
    )

    items_sold = (
        db.session.query(func.coalesce(func.sum(_PCS), 0))
        .join(Sale, SaleItem.sale_id == Sale.id)
        .filter(Sale.created_at >= start, Sale.created_at < end, Sale.status != "CANCELLED")
        .scalar()
    )

    refunds = (
        db.session.query(func.coalesce(func.sum(Return.total_refund), 0))
        .filter(Return.created_at >= start, Return.created_at < end, Return.status == "COMPLETED")
        .scalar()
    )

    revenue = round_money(Decimal(revenue or 0))
    refunds = round_money(Decimal(refunds or 0))
    return {
        "date": start.date().isoformat(),
        "transactions": int(count or 0),
        "itemsSold": int(items_sold or 0),
        "revenue": as_number(revenue),
        "discounts": as_number(round_money(Decimal(discounts or 0))),
        "refunds": as_number(refunds),
        "netRevenue": as_number(revenue - refunds),
    }


def item_sales(start: datetime | None = None, end: datetime | None = None, limit: int = 100) -> list[dict]:
    """Per product pieces sold and revenue, best sellers first."""
    query = (
        db.session.query(
            Product.id,
            Product.name,
            Product.barcode,
            func.coalesce(func.sum(_PCS), 0).label("qty"),
            func.coalesce(func.sum(SaleItem.subtotal), 0).label("revenue"),
        )
        .join(SaleItem, SaleItem.product_id == Product.id)
        .join(Sale, SaleItem.sale_id == Sale.id)
        .filter(Sale.status != "CANCELLED")
    )
    if start:
        query = query.filter(Sale.created_at >= start)
    if end:
        query = query.filter(Sale.created_at < end)

    rows = (
        query.group_by(Product.id, Product.name, Product.barcode)
        .order_by(func.sum(_PCS).desc(), Product.id.asc())
        .limit(limit)
        .all()
    )
    return [
        {
            "productId": product_id,
            "productName": name,
            "barcode": barcode,
            "quantityPcs": int(qty or 0),
            "revenue": as_number(round_money(Decimal(revenue or 0))),
        }
        for product_id, name, barcode, qty, revenue in rows
    ]


def cash_discrepancies(limit: int = 50) -> list[dict]:
    """Closed shifts whose counted cash differs from expected, newest first."""
    rows = (
        db.session.query(CashierShift, User.full_name)
        .join(User, CashierShift.user_id == User.id)
        .filter(
            CashierShift.status == "CLOSED",
            CashierShift.cash_difference.isnot(None),
            CashierShift.cash_difference != 0,
        )
        .order_by(CashierShift.closed_at.desc(), CashierShift.id.desc())
        .limit(limit)
        .all()
    )
    return [
        {
            "shiftId": shift.id,
            "cashierName": cashier_name,
            "terminalName": shift.terminal_name,
            "closedAt": to_utc_z(shift.closed_at),
            "expectedCash": as_number(shift.expected_cash),
            "actualCash": as_number(shift.actual_cash),
            "cashDifference": as_number(shift.cash_difference),
            "approvalStatus": shift.approval_status,
        }
        for shift, cashier_name in rows
    ]


# =============================================================================
# PERIOD REPORTS
# =============================================================================

def _in_range(query, column, start, end):
    if start:
        query = query.filter(column >= start)
    if end:
        query = query.filter(column < end)
    return query


def _money(value) -> Decimal:
    return round_money(Decimal(value or 0))


def _bucket(moment: datetime, group_by: str) -> str:
    if group_by == "month":
        return moment.strftime("%Y-%m")
    if group_by == "week":
        year, week, _ = moment.isocalendar()
        return f"{year}-W{week:02d}"
    return moment.date().isoformat()


def summary(start: datetime | None = None, end: datetime | None = None) -> dict:
    """Headline totals for a period; refunds count by their own date."""
    sales = db.session.query(
        func.count(Sale.id),
        func.coalesce(func.sum(Sale.final_amount), 0),
        func.coalesce(func.sum(Sale.discount_amount), 0),
        func.coalesce(func.sum(Sale.redeemed_points), 0),
        func.coalesce(func.sum(Sale.points_earned), 0),
    ).filter(Sale.status != "CANCELLED")
    count, total_sales, total_discount, point_used, point_issued = (
        _in_range(sales, Sale.created_at, start, end).one()
    )

    refunds = db.session.query(func.coalesce(func.sum(Return.total_refund), 0)).filter(
        Return.status == "COMPLETED"
    )
    total_refund = _money(_in_range(refunds, Return.created_at, start, end).scalar())

    total_sales = _money(total_sales)
    count = int(count or 0)
    average = round_money(total_sales / count) if count else ZERO
    return {
        "totalSales": as_number(total_sales),
        "totalRefund": as_number(total_refund),
        "netRevenue": as_number(total_sales - total_refund),
        "totalDiscount": as_number(_money(total_discount)),
        "totalPointUsed": int(point_used or 0),
        "totalPointIssued": int(point_issued or 0),
        "totalTransactions": count,
        "averageTransactionValue": as_number(average),
    }


def sales_by_period(
    start: datetime | None = None,
    end: datetime | None = None,
    group_by: str = "day",
    cashier_id: int | None = None,
    payment_method: str | None = None,
    tier: str | None = None,
) -> list[dict]:
    """
    Sales and refunds per day, ISO week or month, oldest bucket first.

    Filters apply to the sale; a refund follows the filters of the sale it
    belongs to but lands in the bucket of its own date.
    """
    group_by = (group_by or "day").lower()
    if group_by not in GROUP_BY:
        raise ValidationError(f"groupBy must be one of: {', '.join(GROUP_BY)}")

    def _filtered(query):
        if cashier_id is not None:
            query = query.filter(Sale.cashier_id == cashier_id)
        if payment_method:
            query = query.filter(Sale.payment_method == payment_method.lower())
        if tier:
            query = query.join(Customer, Sale.customer_id == Customer.id).filter(
                Customer.tier_level == tier.upper()
            )
        return query

    sales = _filtered(
        db.session.query(Sale.created_at, Sale.final_amount).filter(Sale.status != "CANCELLED")
    )
    refunds = _filtered(
        db.session.query(Return.created_at, Return.total_refund)
        .join(Sale, Return.sale_id == Sale.id)
        .filter(Return.status == "COMPLETED")
    )

    buckets: dict[str, dict] = {}

    def _row(key: str) -> dict:
        return buckets.setdefault(key, {"sales": ZERO, "refunds": ZERO, "transactions": 0})

    for created_at, amount in _in_range(sales, Sale.created_at, start, end).all():
        row = _row(_bucket(created_at, group_by))
        row["sales"] += Decimal(amount or 0)
        row["transactions"] += 1
    for created_at, amount in _in_range(refunds, Return.created_at, start, end).all():
        _row(_bucket(created_at, group_by))["refunds"] += Decimal(amount or 0)

    result = []
    for key in sorted(buckets):
        row = buckets[key]
        total_sales, total_refund = _money(row["sales"]), _money(row["refunds"])
        result.append({
            "bucket": key,
            "totalSales": as_number(total_sales),
            "totalRefund": as_number(total_refund),
            "netRevenue": as_number(total_sales - total_refund),
            "transactions": row["transactions"],
        })
    return result


def customers_report(start: datetime | None = None, end: datetime | None = None, limit: int = 10) -> dict:
    """Top spenders net of refunds, and points still outstanding."""
    spend_query = (
        db.session.query(
            Customer.id,
            Customer.name,
            Customer.phone,
            Customer.tier_level,
            func.coalesce(func.sum(Sale.final_amount), 0),
            func.count(Sale.id),
        )
        .join(Sale, Sale.customer_id == Customer.id)
        .filter(Sale.status != "CANCELLED")
    )
    spend_rows = (
        _in_range(spend_query, Sale.created_at, start, end)
        .group_by(Customer.id, Customer.name, Customer.phone, Customer.tier_level)
        .all()
    )

    refund_query = (
        db.session.query(Sale.customer_id, func.coalesce(func.sum(Return.total_refund), 0))
        .join(Return, Return.sale_id == Sale.id)
        .filter(Return.status == "COMPLETED", Sale.customer_id.isnot(None))
    )
    refunds = dict(
        _in_range(refund_query, Return.created_at, start, end).group_by(Sale.customer_id).all()
    )

    spenders = []
    for customer_id, name, phone, tier, spent, count in spend_rows:
        net = _money(spent) - _money(refunds.get(customer_id))
        spenders.append((net, customer_id, name, phone, tier, int(count or 0)))
    spenders.sort(key=lambda row: (-row[0], row[1]))

    outstanding = (
        db.session.query(func.coalesce(func.sum(Customer.total_points), 0))
        .filter(Customer.status == "ACTIVE")
        .scalar()
    )
    return {
        "topSpenders": [
            {
                "customerId": customer_id,
                "name": name,
                "phone": phone,
                "tier": tier,
                "totalSpent": as_number(net),
                "transactions": count,
            }
            for net, customer_id, name, phone, tier, count in spenders[:limit]
        ],
        "totalPointOutstanding": int(outstanding or 0),
    }


def _top_returned(start, end, limit: int) -> list[dict]:
    query = (
        db.session.query(
            Product.id,
            Product.name,
            func.coalesce(func.sum(ReturnItem.quantity), 0).label("qty"),
            func.coalesce(func.sum(ReturnItem.refund_amount), 0),
        )
        .join(ReturnItem, ReturnItem.product_id == Product.id)
        .join(Return, ReturnItem.return_id == Return.id)
        .filter(Return.status == "COMPLETED")
    )
    rows = (
        _in_range(query, Return.created_at, start, end)
        .group_by(Product.id, Product.name)
        .order_by(func.sum(ReturnItem.quantity).desc(), Product.id.asc())
        .limit(limit)
        .all()
    )
    return [
        {
            "productId": product_id,
            "productName": name,
            "quantityReturned": int(qty or 0),
            "totalRefund": as_number(_money(refund)),
        }
        for product_id, name, qty, refund in rows
    ]


def products_report(start: datetime | None = None, end: datetime | None = None, limit: int = 10) -> dict:
    """Best sellers with margin at the current cost price, and most returned products."""
    query = (
        db.session.query(
            Product.id,
            Product.name,
            Product.cost_price,
            func.coalesce(func.sum(_PCS), 0).label("qty"),
            func.coalesce(func.sum(SaleItem.subtotal), 0),
        )
        .join(SaleItem, SaleItem.product_id == Product.id)
        .join(Sale, SaleItem.sale_id == Sale.id)
        .filter(Sale.status != "CANCELLED")
    )
    rows = (
        _in_range(query, Sale.created_at, start, end)
        .group_by(Product.id, Product.name, Product.cost_price)
        .order_by(func.sum(_PCS).desc(), Product.id.asc())
        .limit(limit)
        .all()
    )
    best = []
    for product_id, name, cost_price, qty, revenue in rows:
        revenue = _money(revenue)
        margin = revenue - round_money(Decimal(cost_price or 0) * int(qty or 0))
        best.append({
            "productId": product_id,
            "productName": name,
            "quantitySold": int(qty or 0),
            "totalRevenue": as_number(revenue),
            "margin": as_number(margin),
        })
    return {"bestSelling": best, "mostReturned": _top_returned(start, end, limit)}


def returns_report(start: datetime | None = None, end: datetime | None = None, limit: int = 10) -> dict:
    """
    Return volume for a period.

    returnRatePct = returned line subtotal / sold line subtotal x 100,
    formatted with two decimals ("0.00" when nothing was sold).
    """
    count_query = db.session.query(
        func.count(Return.id), func.coalesce(func.sum(Return.total_refund), 0)
    ).filter(Return.status == "COMPLETED")
    count, total_refund = _in_range(count_query, Return.created_at, start, end).one()

    returned_query = (
        db.session.query(func.coalesce(func.sum(ReturnItem.subtotal), 0))
        .join(Return, ReturnItem.return_id == Return.id)
        .filter(Return.status == "COMPLETED")
    )
    returned = _money(_in_range(returned_query, Return.created_at, start, end).scalar())

    sold_query = (
        db.session.query(func.coalesce(func.sum(SaleItem.subtotal), 0))
        .join(Sale, SaleItem.sale_id == Sale.id)
        .filter(Sale.status != "CANCELLED")
    )
    sold = _money(_in_range(sold_query, Sale.created_at, start, end).scalar())

    rate = round_money(returned / sold * 100) if sold > 0 else ZERO
    return {
        "totalReturns": int(count or 0),
        "totalRefund": as_number(_money(total_refund)),
        "returnRatePct": f"{rate:.2f}",
        "topReturnItems": _top_returned(start, end, limit),
    }
