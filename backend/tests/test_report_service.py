"""
Report tests.

Ledger used throughout (cashier1, one shift):
  2026-03-02  teh x1 cash   10000
  2026-03-03  teh x2 qris   20000   (one piece returned on 2026-04-02)
  2026-04-01  kopi x1 cash   5000
"""

from datetime import datetime
from decimal import Decimal

import pytest

from retailpos.extensions import db
from retailpos.models import Customer
from retailpos.services import checkout_service, report_service, return_service
from retailpos.validation import ValidationError, parse_checkout_request

from conftest import make_customer, make_product, make_user, open_shift_for


def sell(user, product, qty, payment="cash", when=None, **fields):
    payload = {"items": [{"productId": product.id, "quantity": qty}], "paymentMethod": payment}
    payload.update(fields)
    sale = checkout_service.checkout(parse_checkout_request(payload), user.id)
    if when is not None:
        sale.created_at = when
        db.session.commit()
    return sale


def give_back(sale, product, qty, actor, when):
    ret = return_service.create_return(sale.id, [{"product_id": product.id, "quantity": qty}], actor)
    ret.created_at = when
    db.session.commit()
    return ret


@pytest.fixture
def ledger(db_session, cashier):
    teh = make_product("Teh Botol", price="10000", stock=100, cost_price=Decimal("6000"))
    kopi = make_product("Kopi Kapal Api", price="5000", stock=50)
    open_shift_for(cashier)
    first = sell(cashier, teh, 1, when=datetime(2026, 3, 2, 10, 0))
    second = sell(cashier, teh, 2, "qris", when=datetime(2026, 3, 3, 9, 30))
    third = sell(cashier, kopi, 1, when=datetime(2026, 4, 1, 18, 0))
    give_back(second, teh, 1, cashier, when=datetime(2026, 4, 2, 8, 0))
    return {"teh": teh, "kopi": kopi, "sales": [first, second, third]}


class TestSummary:
    def test_totals(self, ledger, cashier):
        voided = sell(cashier, ledger["kopi"], 2)
        checkout_service.void_sale(voided.id, cashier.id)

        result = report_service.summary()

        assert result["totalSales"] == 35000
        assert result["totalRefund"] == 10000
        assert result["netRevenue"] == 25000
        assert result["totalTransactions"] == 3
        assert result["averageTransactionValue"] == 11666.67
        assert result["totalDiscount"] == 0

    def test_period_counts_refunds_by_their_own_date(self, ledger):
        result = report_service.summary(datetime(2026, 4, 1), datetime(2026, 5, 1))

        assert result["totalSales"] == 5000
        assert result["totalRefund"] == 10000
        assert result["netRevenue"] == -5000
        assert result["totalTransactions"] == 1

    def test_empty_period(self, db_session):
        result = report_service.summary(datetime(2020, 1, 1), datetime(2020, 2, 1))
        assert result["totalTransactions"] == 0
        assert result["averageTransactionValue"] == 0


class TestSalesByPeriod:
    def test_by_day(self, ledger):
        rows = report_service.sales_by_period(group_by="day")

        assert [r["bucket"] for r in rows] == ["2026-03-02", "2026-03-03", "2026-04-01", "2026-04-02"]
        assert rows[1]["totalSales"] == 20000
        assert rows[3] == {
            "bucket": "2026-04-02",
            "totalSales": 0,
            "totalRefund": 10000,
            "netRevenue": -10000,
            "transactions": 0,
        }

    def test_by_iso_week(self, ledger):
        rows = report_service.sales_by_period(group_by="week")

        assert [(r["bucket"], r["totalSales"], r["transactions"]) for r in rows] == [
            ("2026-W10", 30000, 2),
            ("2026-W14", 5000, 1),
        ]
        assert rows[1]["totalRefund"] == 10000

    def test_by_month(self, ledger):
        rows = report_service.sales_by_period(group_by="MONTH")

        assert rows == [
            {"bucket": "2026-03", "totalSales": 30000, "totalRefund": 0, "netRevenue": 30000, "transactions": 2},
            {"bucket": "2026-04", "totalSales": 5000, "totalRefund": 10000, "netRevenue": -5000, "transactions": 1},
        ]

    def test_payment_filter_follows_refunds_to_their_sale(self, ledger):
        rows = report_service.sales_by_period(group_by="month", payment_method="QRIS")

        assert [(r["bucket"], r["totalSales"], r["totalRefund"]) for r in rows] == [
            ("2026-03", 20000, 0),
            ("2026-04", 0, 10000),
        ]

    def test_cashier_filter(self, ledger):
        other = make_user("cashier2")
        open_shift_for(other)
        sell(other, ledger["kopi"], 3, when=datetime(2026, 4, 5, 12, 0))

        rows = report_service.sales_by_period(group_by="month", cashier_id=other.id)
        assert rows == [
            {"bucket": "2026-04", "totalSales": 15000, "totalRefund": 0, "netRevenue": 15000, "transactions": 1},
        ]

    def test_tier_filter(self, ledger, cashier):
        gold = make_customer("Sari", spending="6000000", tier="GOLD")
        sell(cashier, ledger["kopi"], 2, when=datetime(2026, 4, 3, 12, 0), customerId=gold.id)

        rows = report_service.sales_by_period(group_by="month", tier="gold")
        assert [(r["bucket"], r["totalSales"]) for r in rows] == [("2026-04", 10000)]

    def test_date_range(self, ledger):
        rows = report_service.sales_by_period(datetime(2026, 3, 3), datetime(2026, 4, 2))
        assert [r["bucket"] for r in rows] == ["2026-03-03", "2026-04-01"]

    def test_unknown_grouping(self, db_session):
        with pytest.raises(ValidationError):
            report_service.sales_by_period(group_by="quarter")


class TestCustomersReport:
    def test_top_spenders_net_of_refunds(self, db_session, cashier):
        teh = make_product(price="10000", stock=100)
        rina = make_customer("Rina", phone="0811")
        budi = make_customer("Budi", phone="0812")
        lapsed = make_customer("Lama", points=1000)
        lapsed.status = "INACTIVE"
        db.session.commit()
        open_shift_for(cashier)

        rina_sale = sell(cashier, teh, 4, customerId=rina.id)
        sell(cashier, teh, 3, customerId=budi.id)
        return_service.create_return(rina_sale.id, [{"product_id": teh.id, "quantity": 2}], cashier)

        result = report_service.customers_report()

        assert [(r["name"], r["totalSpent"], r["transactions"]) for r in result["topSpenders"]] == [
            ("Budi", 30000, 1),
            ("Rina", 20000, 1),
        ]
        assert result["topSpenders"][0]["phone"] == "0812"
        active_points = sum(
            db.session.get(Customer, c.id).total_points for c in (rina, budi)
        )
        assert result["totalPointOutstanding"] == active_points

        assert len(report_service.customers_report(limit=1)["topSpenders"]) == 1


class TestProductsReport:
    def test_best_selling_and_margin(self, ledger):
        result = report_service.products_report()

        best = result["bestSelling"]
        assert [(b["productName"], b["quantitySold"]) for b in best] == [
            ("Teh Botol", 3),
            ("Kopi Kapal Api", 1),
        ]
        assert best[0]["totalRevenue"] == 30000
        assert best[0]["margin"] == 12000
        assert best[1]["margin"] == 5000

    def test_most_returned(self, ledger):
        returned = report_service.products_report()["mostReturned"]
        assert returned == [
            {"productId": ledger["teh"].id, "productName": "Teh Botol", "quantityReturned": 1, "totalRefund": 10000},
        ]


class TestReturnsReport:
    def test_rate(self, ledger):
        result = report_service.returns_report()

        assert result["totalReturns"] == 1
        assert result["totalRefund"] == 10000
        assert result["returnRatePct"] == "28.57"
        assert result["topReturnItems"][0]["productId"] == ledger["teh"].id

    def test_nothing_sold(self, db_session):
        result = report_service.returns_report()
        assert result["returnRatePct"] == "0.00"
        assert result["topReturnItems"] == []

