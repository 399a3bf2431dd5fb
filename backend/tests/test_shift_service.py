"""
Cashier shift tests.

Verifies:
- expected = opening + cash sales - cash refunds - cross-shift cash voids
- one open shift per cashier and per terminal
- large differences wait for a supervisor; approval is final
"""

from decimal import Decimal

import pytest

from retailpos.errors import BusinessError, ConflictError, ForbiddenError
from retailpos.models import AuditLog, CashierShift
from retailpos.services import audit_service, checkout_service, return_service, shift_service
from retailpos.validation import ValidationError, parse_checkout_request

from conftest import make_product, make_user, open_shift_for


def sell(user, product, qty, payment="cash"):
    request = parse_checkout_request({
        "items": [{"productId": product.id, "quantity": qty, "discount": 0}],
        "globalDiscount": 0,
        "paymentMethod": payment,
    })
    return checkout_service.checkout(request, user.id)


class TestReconciliationRules:
    def test_expected_cash_and_difference(self):
        expected = shift_service.compute_expected_cash(100000, 250000, 20000, 0)
        assert expected == Decimal("330000")
        assert shift_service.compute_cash_difference(328000, expected) == Decimal("-2000")

    @pytest.mark.parametrize("difference,status", [
        (Decimal("-2000"), "NONE"),
        (Decimal("0"), "NONE"),
        (Decimal("100000"), "PENDING"),
        (Decimal("-150000"), "PENDING"),
    ])
    def test_approval_threshold(self, difference, status):
        assert shift_service.resolve_approval_status(difference, 100000) == status


class TestOpenShift:
    def test_open_sets_code_and_audit(self, db_session, cashier):
        shift = open_shift_for(cashier, "150000", "POS-01")

        assert shift.status == "OPEN"
        assert shift.approval_status == "NONE"
        assert shift.opening_cash == Decimal("150000")
        assert shift.shift_code.startswith("SHF-")
        assert [e.action for e in audit_service.list_for_entity("SHIFT", shift.id)] == ["SHIFT_OPENED"]

    def test_second_shift_for_cashier_is_rejected(self, db_session, cashier):
        open_shift_for(cashier, terminal="POS-01")
        with pytest.raises(ConflictError) as exc:
            open_shift_for(cashier, terminal="POS-02")
        assert exc.value.code == "SHIFT_ALREADY_ACTIVE"

    def test_terminal_is_exclusive(self, db_session, cashier):
        other = make_user("cashier2")
        open_shift_for(cashier, terminal="POS-01")
        with pytest.raises(ConflictError) as exc:
            open_shift_for(other, terminal="POS-01")
        assert exc.value.code == "TERMINAL_ALREADY_ACTIVE"

    def test_terminal_required(self, db_session, cashier):
        with pytest.raises(ValidationError) as exc:
            shift_service.open_shift(cashier.id, Decimal("0"), "   ")
        assert exc.value.code == "TERMINAL_REQUIRED"

    def test_negative_opening_cash(self, db_session, cashier):
        with pytest.raises(ValidationError):
            shift_service.open_shift(cashier.id, Decimal("-1"), "POS-01")

    def test_active_alias_counts_as_open(self, db_session, cashier):
        shift = open_shift_for(cashier)
        shift.status = "ACTIVE"
        db_session.commit()

        assert shift_service.get_active_shift(cashier.id).id == shift.id
        assert [s.id for s in shift_service.list_shifts(status="OPEN")] == [shift.id]
        assert [s.id for s in shift_service.list_shifts(status="active")] == [shift.id]


class TestCloseShift:
    def test_close_reconciles_sales_and_refunds(self, db_session, cashier):
        product = make_product(price="10000", stock=100)
        open_shift_for(cashier, "100000")
        sale = sell(cashier, product, 25)
        sell(cashier, product, 3, payment="qris")
        return_service.create_return(sale.id, [{"product_id": product.id, "quantity": 2}], cashier)

        shift, summary = shift_service.close_shift(cashier.id, Decimal("328000"), "short two thousand")

        assert summary.cash_sales == Decimal("250000")
        assert summary.non_cash_sales == Decimal("30000")
        assert summary.cash_refunds == Decimal("20000")
        assert summary.expected_cash == Decimal("330000")
        assert shift.cash_difference == Decimal("-2000")
        assert shift.status == "CLOSED"
        assert shift.approval_status == "NONE"
        assert shift.total_transactions == 2
        assert shift.payment_breakdown == {"cash": "250000.00", "qris": "30000.00"}

    def test_difference_requires_note(self, db_session, cashier):
        open_shift_for(cashier, "100000")
        with pytest.raises(ValidationError) as exc:
            shift_service.close_shift(cashier.id, Decimal("99000"))
        assert exc.value.code == "CLOSE_NOTE_REQUIRED"
        assert shift_service.get_active_shift(cashier.id) is not None

    def test_exact_count_needs_no_note(self, db_session, cashier):
        open_shift_for(cashier, "100000")
        shift, _ = shift_service.close_shift(cashier.id, Decimal("100000"))
        assert shift.cash_difference == Decimal("0")

    def test_pending_suspended_sales_block_close(self, db_session, cashier):
        product = make_product()
        open_shift_for(cashier)
        checkout_service.suspend_sale(cashier.id, {
            "items": [{"productId": product.id, "quantity": 1, "discount": 0}],
            "globalDiscount": 0,
            "paymentMethod": "cash",
        })
        with pytest.raises(ConflictError) as exc:
            shift_service.close_shift(cashier.id, Decimal("100000"))
        assert exc.value.code == "PENDING_SUSPENDED_SALES"

    def test_close_without_shift(self, db_session, cashier):
        with pytest.raises(ConflictError) as exc:
            shift_service.close_shift(cashier.id, Decimal("0"))
        assert exc.value.code == "NO_ACTIVE_SHIFT"

    def test_closed_shift_summary_is_the_snapshot(self, db_session, cashier):
        product = make_product(price="10000")
        open_shift_for(cashier, "0")
        sell(cashier, product, 1)
        shift, _ = shift_service.close_shift(cashier.id, Decimal("10000"))

        # Rows attached to a closed shift afterwards do not change its summary
        open_shift_for(cashier, "0")
        sale = sell(cashier, product, 1)
        sale.shift_id = shift.id
        db_session.commit()

        _, summary = shift_service.get_shift_summary(shift.id)
        assert summary.cash_sales == Decimal("10000")
        assert summary.total_transactions == 1


class TestVoidsAcrossShifts:
    def test_same_shift_void_is_only_excluded(self, db_session, cashier):
        product = make_product(price="10000")
        open_shift_for(cashier, "50000")
        sale = sell(cashier, product, 2)
        checkout_service.void_sale(sale.id, cashier.id)

        shift, summary = shift_service.close_shift(cashier.id, Decimal("50000"))

        assert summary.cash_sales == Decimal("0")
        assert summary.cash_voids == Decimal("0")
        assert summary.total_void == 1
        assert shift.expected_cash == Decimal("50000")

    def test_void_of_earlier_shift_sale_reduces_expected_cash(self, db_session, cashier, supervisor):
        product = make_product(price="10000")
        open_shift_for(cashier, "0")
        sale = sell(cashier, product, 3)
        shift_service.close_shift(cashier.id, Decimal("30000"))

        open_shift_for(supervisor, "100000")
        checkout_service.void_sale(sale.id, supervisor.id)
        shift, summary = shift_service.close_shift(supervisor.id, Decimal("70000"))

        assert summary.cash_voids == Decimal("30000")
        assert shift.expected_cash == Decimal("70000")
        assert shift.cash_difference == Decimal("0")


class TestApproval:
    def _pending_shift(self, cashier) -> CashierShift:
        open_shift_for(cashier, "100000")
        shift, _ = shift_service.close_shift(cashier.id, Decimal("250000"), "found extra cash")
        assert shift.approval_status == "PENDING"
        return shift

    def test_supervisor_approves(self, db_session, cashier, supervisor):
        shift = self._pending_shift(cashier)

        approved = shift_service.approve_shift(shift.id, supervisor, "counted twice")

        assert approved.approval_status == "APPROVED"
        assert approved.approved_by == supervisor.id
        assert db_session.query(AuditLog).filter_by(action="SHIFT_APPROVED").count() == 1

    def test_reject_is_final(self, db_session, cashier, admin):
        shift = self._pending_shift(cashier)
        shift_service.approve_shift(shift.id, admin, decision="REJECTED")

        with pytest.raises(ConflictError) as exc:
            shift_service.approve_shift(shift.id, admin)
        assert exc.value.code == "SHIFT_NOT_PENDING"

    def test_cashier_cannot_approve(self, db_session, cashier):
        shift = self._pending_shift(cashier)
        with pytest.raises(ForbiddenError):
            shift_service.approve_shift(shift.id, cashier)

    def test_open_shift_cannot_be_approved(self, db_session, cashier, supervisor):
        shift = open_shift_for(cashier)
        with pytest.raises(ConflictError) as exc:
            shift_service.approve_shift(shift.id, supervisor)
        assert exc.value.code == "SHIFT_NOT_CLOSED"

    def test_unknown_decision(self, db_session, cashier, supervisor):
        shift = self._pending_shift(cashier)
        with pytest.raises(BusinessError):
            shift_service.approve_shift(shift.id, supervisor, decision="MAYBE")

    def test_diff_large_filter(self, db_session, cashier):
        shift = self._pending_shift(cashier)
        assert [s.id for s in shift_service.list_shifts(diff_large_only=True)] == [shift.id]
        assert [s.id for s in shift_service.list_shifts(approval_status="pending")] == [shift.id]
