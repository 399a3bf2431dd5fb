# Overview: Back-office dashboard: today's numbers, sales charts and live shift cash.

"""
Dashboard

- Today and month figures use UTC calendar boundaries
- Charts cover the last `days` days and `months` months, today included;
  empty buckets are returned as zeros so charts keep their shape
- Active shifts report live expected cash from the shift ledger
"""

from __future__ import annotations

from datetime import datetime, timedelta
from decimal import Decimal

from sqlalchemy import func

from ..extensions import db
from ..models import CashierShift, Product, Sale
from ..models.shifts import OPEN_STATUSES
from ..money import ZERO, as_number, round_money
from ..time_utils import day_bounds, utcnow
from . import checkout_service, report_service, shift_service

OPERATIONAL_LIMIT = 8


def _clamp(value, low: int, high: int, default: int) -> int:
    try:
        value = int(value)
    except (TypeError, ValueError):
        return default
    return max(low, min(high, value))


def _month_start(moment: datetime, back: int = 0) -> datetime:
    index = moment.year * 12 + moment.month - 1 - back
    return datetime(index // 12, index % 12 + 1, 1)


def _daily_sales(start: datetime, days: int) -> list[dict]:
    is_cash = Sale.payment_method == "cash"
    rows = (
        db.session.query(Sale.created_at, Sale.final_amount, is_cash)
        .filter(Sale.status != "CANCELLED", Sale.created_at >= start)
        .all()
    )
    buckets = {
        (start + timedelta(days=offset)).date().isoformat(): [ZERO, ZERO, 0]
        for offset in range(days)
    }
    for created_at, amount, cash in rows:
        bucket = buckets.get(created_at.date().isoformat())
        if bucket is None:
            continue
        bucket[0 if cash else 1] += Decimal(amount or 0)
        bucket[2] += 1

    return [
        {
            "date": key,
            "totalSales": as_number(round_money(cash + non_cash)),
            "cashSales": as_number(round_money(cash)),
            "nonCashSales": as_number(round_money(non_cash)),
            "transactions": count,
        }
        for key, (cash, non_cash, count) in buckets.items()
    ]


def _monthly_sales(now: datetime, months: int) -> list[dict]:
    start = _month_start(now, months - 1)
    rows = (
        db.session.query(Sale.created_at, Sale.final_amount)
        .filter(Sale.status != "CANCELLED", Sale.created_at >= start)
        .all()
    )
    buckets = {
        _month_start(now, back).strftime("%Y-%m"): [ZERO, 0]
        for back in range(months - 1, -1, -1)
    }
    for created_at, amount in rows:
        bucket = buckets.get(created_at.strftime("%Y-%m"))
        if bucket is None:
            continue
        bucket[0] += Decimal(amount or 0)
        bucket[1] += 1
    return [
        {"month": key, "totalSales": as_number(round_money(total)), "transactions": count}
        for key, (total, count) in buckets.items()
    ]


def _payment_breakdown(start: datetime) -> list[dict]:
    rows = (
        db.session.query(
            Sale.payment_method,
            func.coalesce(func.sum(Sale.final_amount), 0),
            func.count(Sale.id),
        )
        .filter(Sale.status != "CANCELLED", Sale.created_at >= start)
        .group_by(Sale.payment_method)
        .order_by(func.sum(Sale.final_amount).desc())
        .all()
    )
    return [
        {"method": method, "total": as_number(round_money(Decimal(total or 0))), "transactions": int(count)}
        for method, total, count in rows
    ]


def _active_shifts(now: datetime) -> tuple[list[dict], Decimal]:
    shifts = (
        db.session.query(CashierShift)
        .filter(CashierShift.status.in_(OPEN_STATUSES))
        .order_by(CashierShift.opened_at.asc(), CashierShift.id.asc())
        .all()
    )
    result, expected_total = [], ZERO
    for shift in shifts:
        summary = shift_service.compute_shift_summary(shift)
        data = shift.to_dict(now=now)
        data["expectedCash"] = as_number(summary.expected_cash)
        data["totalTransactions"] = summary.total_transactions
        data["totalSales"] = as_number(summary.total_sales)
        result.append(data)
        expected_total += summary.expected_cash
    return result, expected_total


def get_overview(
    days=30,
    months=12,
    top_limit=10,
    low_stock_threshold=10,
    now: datetime | None = None,
) -> dict:
    days = _clamp(days, 1, 365, 30)
    months = _clamp(months, 1, 36, 12)
    top_limit = _clamp(top_limit, 1, 50, 10)
    low_stock_threshold = _clamp(low_stock_threshold, 0, 1_000_000, 10)
    now = now or utcnow()

    today_start, _ = day_bounds(now)
    window_start = today_start - timedelta(days=days - 1)
    today = report_service.daily_stats(now)

    month_sales = (
        db.session.query(func.coalesce(func.sum(Sale.final_amount), 0))
        .filter(Sale.status != "CANCELLED", Sale.created_at >= _month_start(now))
        .scalar()
    )

    low_stock = (
        db.session.query(Product)
        .filter(Product.status == "ACTIVE", Product.stock <= low_stock_threshold)
        .order_by(Product.stock.asc(), Product.id.asc())
    )
    low_stock_count = low_stock.count()

    active_shifts, expected_total = _active_shifts(now)
    pending_approvals = (
        db.session.query(func.count(CashierShift.id))
        .filter(CashierShift.approval_status == "PENDING")
        .scalar()
    )

    return {
        "summary": {
            "todaySales": today["revenue"],
            "todayTransactions": today["transactions"],
            "todayItemsSold": today["itemsSold"],
            "monthSales": as_number(round_money(Decimal(month_sales or 0))),
            "lowStockCount": low_stock_count,
            "activeShiftCount": len(active_shifts),
            "activeExpectedCash": as_number(round_money(expected_total)),
            "pendingCount": checkout_service.count_suspended_sales(),
            "pendingApprovalCount": int(pending_approvals or 0),
        },
        "charts": {
            "dailySales": _daily_sales(window_start, days),
            "monthlySales": _monthly_sales(now, months),
            "paymentBreakdown": _payment_breakdown(window_start),
            "topProducts": report_service.item_sales(window_start, None, limit=top_limit),
        },
        "operational": {
            "activeShifts": active_shifts,
            "lowStockProducts": [
                {"id": p.id, "name": p.name, "stock": p.stock, "minStock": p.min_stock}
                for p in low_stock.limit(OPERATIONAL_LIMIT).all()
            ],
            "cashDiscrepancies": report_service.cash_discrepancies(OPERATIONAL_LIMIT),
        },
    }
