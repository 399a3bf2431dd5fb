"""
Return service tests.

Worked example used throughout: 10 x 10000 with a 10% global campaign and
100 points redeemed (worth 10000).
  subtotal 100000, global 10000, redeemed 10000, final 80000, earned 8
Returning 5 pieces refunds 50000 - 5000 - 5000 = 40000, restores 50 points
and reverses 4.
"""

from decimal import Decimal

import pytest

from retailpos.errors import ConflictError, ForbiddenError, NotFoundError
from retailpos.models import AuditLog, PointLog, Product
from retailpos.services import checkout_service, return_service
from retailpos.validation import ValidationError, parse_checkout_request

from conftest import make_carton_product, make_customer, make_discount, make_product, open_shift_for


def sell(user, items, **fields):
    payload = {"items": items, "paymentMethod": "cash"}
    payload.update(fields)
    return checkout_service.checkout(parse_checkout_request(payload), user.id)


def give_back(sale, product, qty, actor, **fields):
    return return_service.create_return(sale.id, [{"product_id": product.id, "quantity": qty}], actor, **fields)


@pytest.fixture
def loyalty_sale(db_session, cashier):
    product = make_product(price="10000", stock=100)
    make_discount(type="percentage", value="10", applies_to="global")
    customer = make_customer(points=200)
    open_shift_for(cashier)
    sale = sell(cashier, [{"productId": product.id, "quantity": 10}],
                customerId=customer.id, pointsToRedeem=100)
    assert sale.final_amount == Decimal("80000")
    assert sale.points_earned == 8
    return sale, product, customer


class TestRefundMath:
    def test_partial_return_is_proportional(self, db_session, cashier, loyalty_sale):
        sale, product, customer = loyalty_sale

        ret = give_back(sale, product, 5, cashier, reason="rusak")

        assert ret.total_refund == Decimal("40000")
        assert ret.points_restored == 50
        assert ret.points_reversed == 4
        assert ret.return_number.startswith("RET-")
        assert ret.items[0].refund_amount == Decimal("40000")
        assert sale.status == "PARTIAL_REFUND"
        assert db_session.get(Product, product.id).stock == 95

        db_session.refresh(customer)
        assert customer.total_points == 154
        assert customer.total_spending == Decimal("40000")

    def test_second_return_completes_refund(self, db_session, cashier, loyalty_sale):
        sale, product, customer = loyalty_sale
        give_back(sale, product, 5, cashier)

        ret = give_back(sale, product, 5, cashier)

        assert ret.total_refund == Decimal("40000")
        assert ret.points_restored == 50
        assert ret.points_reversed == 4
        assert sale.status == "REFUNDED"
        db_session.refresh(customer)
        assert customer.total_points == 200
        assert customer.total_spending == Decimal("0")

        with pytest.raises(ConflictError) as exc:
            give_back(sale, product, 1, cashier)
        assert exc.value.code == "SALE_REFUNDED"

    def test_point_logs_reference_return(self, db_session, cashier, loyalty_sale):
        sale, product, _ = loyalty_sale
        ret = give_back(sale, product, 5, cashier)

        logs = db_session.query(PointLog).filter_by(return_id=ret.id).order_by(PointLog.id).all()
        assert [(log.points_change, log.reason) for log in logs] == [
            (50, f"Return Restore Redeem: {ret.return_number}"),
            (-4, f"Return Reverse Earned: {ret.return_number}"),
        ]

    def test_carton_sale_returns_in_pieces(self, db_session, cashier):
        mie = make_carton_product(stock=80)
        open_shift_for(cashier)
        sale = sell(cashier, [{"productId": mie.id, "quantity": 1, "unitType": "CARTON"}])

        ret = give_back(sale, mie, 4, cashier)

        assert ret.total_refund == Decimal("10000")
        assert db_session.get(Product, mie.id).stock == 44

    def test_audit_entry(self, db_session, cashier):
        teh = make_product()
        open_shift_for(cashier)
        sale = sell(cashier, [{"productId": teh.id, "quantity": 2}])
        give_back(sale, teh, 1, cashier, refund_method="qris")

        entry = db_session.query(AuditLog).filter_by(action="RETURN_CREATED").one()
        assert entry.metadata_json["refundMethod"] == "qris"


class TestReturnRules:
    def test_quantity_above_remaining(self, db_session, cashier):
        teh = make_product()
        open_shift_for(cashier)
        sale = sell(cashier, [{"productId": teh.id, "quantity": 3}])
        give_back(sale, teh, 2, cashier)

        with pytest.raises(ValidationError) as exc:
            give_back(sale, teh, 2, cashier)

        assert exc.value.code == "RETURN_QTY_EXCEEDS"
        assert exc.value.details == {"productId": teh.id, "soldQty": 3, "alreadyReturned": 2, "requested": 2}

    def test_product_not_in_sale(self, db_session, cashier):
        teh = make_product()
        kopi = make_product(name="Kopi")
        open_shift_for(cashier)
        sale = sell(cashier, [{"productId": teh.id, "quantity": 1}])

        with pytest.raises(ValidationError):
            give_back(sale, kopi, 1, cashier)

    def test_zero_quantities_only(self, db_session, cashier):
        teh = make_product()
        open_shift_for(cashier)
        sale = sell(cashier, [{"productId": teh.id, "quantity": 1}])

        with pytest.raises(ValidationError):
            give_back(sale, teh, 0, cashier)

    def test_voided_sale(self, db_session, cashier):
        teh = make_product()
        open_shift_for(cashier)
        sale = sell(cashier, [{"productId": teh.id, "quantity": 1}])
        checkout_service.void_sale(sale.id, cashier.id)

        with pytest.raises(ConflictError) as exc:
            give_back(sale, teh, 1, cashier)
        assert exc.value.code == "SALE_VOIDED"

    def test_unknown_sale(self, db_session, cashier):
        open_shift_for(cashier)
        with pytest.raises(NotFoundError):
            return_service.create_return(999, [{"product_id": 1, "quantity": 1}], cashier)

    def test_requires_open_shift(self, db_session, cashier, supervisor):
        teh = make_product()
        open_shift_for(cashier)
        sale = sell(cashier, [{"productId": teh.id, "quantity": 1}])

        with pytest.raises(ConflictError) as exc:
            give_back(sale, teh, 1, supervisor)
        assert exc.value.code == "NO_ACTIVE_SHIFT"

    def test_partially_returned_sale_cannot_be_voided(self, db_session, cashier):
        teh = make_product()
        open_shift_for(cashier)
        sale = sell(cashier, [{"productId": teh.id, "quantity": 2}])
        give_back(sale, teh, 1, cashier)

        with pytest.raises(ConflictError):
            checkout_service.void_sale(sale.id, cashier.id)


class TestRefundApproval:
    def test_large_refund_needs_supervisor(self, app, db_session, cashier, supervisor, monkeypatch):
        monkeypatch.setitem(app.config, "REFUND_APPROVAL_THRESHOLD", 10000)
        teh = make_product(price="10000", stock=10)
        open_shift_for(cashier)
        sale = sell(cashier, [{"productId": teh.id, "quantity": 3}])

        with pytest.raises(ForbiddenError) as exc:
            give_back(sale, teh, 2, cashier)
        assert exc.value.code == "SUPERVISOR_REQUIRED"
        assert db_session.get(Product, teh.id).stock == 7

        open_shift_for(supervisor)
        ret = give_back(sale, teh, 2, supervisor)
        assert ret.total_refund == Decimal("20000")

    def test_small_refund_by_cashier(self, app, db_session, cashier, monkeypatch):
        monkeypatch.setitem(app.config, "REFUND_APPROVAL_THRESHOLD", 10000)
        teh = make_product(price="10000")
        open_shift_for(cashier)
        sale = sell(cashier, [{"productId": teh.id, "quantity": 3}])

        ret = give_back(sale, teh, 1, cashier)
        assert ret.total_refund == Decimal("10000")


class TestParseReturnRequest:
    def test_camel_case_body(self):
        parsed = return_service.parse_return_request({
            "saleId": 7,
            "items": [{"productId": 3, "quantity": 2}],
            "refundMethod": "QRIS",
        })
        assert parsed == {
            "sale_id": 7,
            "items": [{"product_id": 3, "quantity": 2}],
            "reason": None,
            "refund_method": "qris",
        }

    def test_rejects_unknown_keys(self):
        with pytest.raises(ValidationError):
            return_service.parse_return_request({"saleId": 7, "items": [{"productId": 3, "quantity": 1, "x": 1}]})
