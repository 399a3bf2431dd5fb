"""
Terminal client tests.

The ApiClient talks to the real Flask app through httpx.WSGITransport, so
these exercise the same request/response contract a checkout lane uses.
"""

from decimal import Decimal

import httpx
import pytest

from retailpos.cart import CartStore, InMemoryCartPersistence
from retailpos.client import ApiClient, ApiError, PosTerminal, TerminalConfig, TerminalError

from conftest import PASSWORD, make_carton_product, make_discount, make_product


@pytest.fixture
def api(app):
    client = ApiClient("http://testserver", transport=httpx.WSGITransport(app=app))
    yield client
    client.close()


@pytest.fixture
def terminal(api, cashier):
    api.login("cashier1", PASSWORD)
    return PosTerminal(
        api,
        cart=CartStore(InMemoryCartPersistence()),
        config=TerminalConfig(terminal_name="POS-07", poll_interval=0.5),
    )


class TestApiClient:
    def test_login_stores_token(self, api, cashier):
        user = api.login("cashier1", PASSWORD)

        assert user["username"] == "cashier1"
        assert api.is_authenticated
        assert api.current_user()["id"] == cashier.id

    def test_error_body_becomes_api_error(self, api, cashier):
        with pytest.raises(ApiError) as exc:
            api.login("cashier1", "wrong-password1")
        assert exc.value.status == 401
        assert exc.value.code == "INVALID_CREDENTIALS"

    def test_401_clears_token(self, api, db_session):
        api.tokens.set("stale-token")

        with pytest.raises(ApiError) as exc:
            api.current_user()

        assert exc.value.code == "UNAUTHORIZED"
        assert not api.is_authenticated

    def test_network_failure(self):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        api = ApiClient("http://pos.invalid", transport=httpx.MockTransport(refuse))
        with pytest.raises(ApiError) as exc:
            api.get_active_shift()
        assert exc.value.status == 0
        assert exc.value.code == "NETWORK_ERROR"

    def test_non_json_success(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(200, text="<html>proxy</html>"))
        api = ApiClient("http://pos.invalid", transport=transport)
        with pytest.raises(ApiError) as exc:
            api.current_user()
        assert exc.value.code == "INVALID_RESPONSE"

    def test_decimal_bodies_are_sent_as_strings(self):
        seen = {}

        def capture(request):
            seen["body"] = request.content
            return httpx.Response(201, json={"id": 1})

        api = ApiClient("http://pos.invalid", transport=httpx.MockTransport(capture))
        api.open_shift(Decimal("150000.00"), "POS-01")

        assert b'"openingCash": "150000.00"' in seen["body"] or b'"openingCash":"150000.00"' in seen["body"]


class TestTerminalCart:
    def test_scan_adds_and_increments(self, terminal, db_session):
        make_product(name="Teh Botol", barcode="899100")

        terminal.scan("899100")
        item = terminal.scan("899100")

        assert item.quantity == 2
        assert terminal.cart.item_count == 1

    def test_scan_unknown_barcode(self, terminal, db_session):
        with pytest.raises(ApiError) as exc:
            terminal.scan("000")
        assert exc.value.status == 404
        assert terminal.cart.is_empty

    def test_refresh_discounts_reprices_lines(self, terminal, db_session):
        teh = make_product(barcode="899100")
        terminal.scan("899100")
        assert terminal.cart.get_item(teh.id).discount == Decimal("0")

        make_discount(value="500", product_id=teh.id)
        terminal.refresh_discounts()

        assert terminal.cart.get_item(teh.id).discount == Decimal("500")

    def test_unit_change_recomputes_preview(self, terminal, db_session):
        mie = make_carton_product(barcode="899200")
        make_discount(type="percentage", value="10", product_id=mie.id)
        terminal.refresh_discounts()
        terminal.scan("899200")
        assert terminal.cart.get_item(mie.id).discount == Decimal("300")

        terminal.change_unit_type(mie.id, "CARTON")

        item = terminal.cart.get_item(mie.id)
        assert item.unit_type == "CARTON"
        assert item.discount == Decimal("10000")


class TestTerminalCheckout:
    def test_checkout_clears_cart(self, terminal, db_session):
        make_product(price="5000", barcode="899100")
        terminal.open_shift(100000)
        terminal.scan("899100")
        terminal.scan("899100")

        sale = terminal.checkout("cash")

        assert sale["finalAmount"] == 10000
        assert sale["status"] == "COMPLETED"
        assert terminal.cart.is_empty

    def test_rejected_checkout_keeps_cart(self, terminal, db_session):
        make_product(barcode="899100", stock=1)
        terminal.open_shift(0)
        terminal.scan("899100")
        terminal.scan("899100")

        with pytest.raises(ApiError) as exc:
            terminal.checkout()

        assert exc.value.code == "INSUFFICIENT_STOCK"
        assert terminal.cart.item_count == 1
        assert terminal.cart.items[0].quantity == 2

    def test_checkout_without_shift(self, terminal, db_session):
        make_product(barcode="899100")
        terminal.scan("899100")

        with pytest.raises(ApiError) as exc:
            terminal.checkout()
        assert exc.value.code == "NO_ACTIVE_SHIFT"
        assert not terminal.cart.is_empty

    def test_empty_cart_never_reaches_server(self, terminal, db_session):
        with pytest.raises(TerminalError) as exc:
            terminal.checkout()
        assert exc.value.code == "CART_EMPTY"

    def test_suspend_and_recall(self, terminal, db_session):
        teh = make_product(barcode="899100")
        terminal.scan("899100")

        parked = terminal.suspend("customer forgot wallet")
        assert terminal.cart.is_empty

        terminal.scan("899100")
        with pytest.raises(TerminalError) as exc:
            terminal.recall(parked["id"])
        assert exc.value.code == "CART_NOT_EMPTY"

        terminal.cart.clear_cart()
        terminal.recall(parked["id"])
        assert terminal.cart.get_item(teh.id).quantity == 1


class TestTerminalShift:
    def test_open_shift_uses_terminal_name(self, terminal, db_session):
        shift = terminal.open_shift(50000, note="pagi")

        assert shift["terminalName"] == "POS-07"
        assert shift["note"] == "pagi"
        assert terminal.active_shift["id"] == shift["id"]

    def test_poll_reports_changes_once(self, terminal, db_session):
        changes = []
        sleeps = []
        terminal.api.open_shift(0, "POS-07")

        shift = terminal.poll_active_shift(iterations=3, on_change=changes.append, sleep=sleeps.append)

        assert shift["status"] == "OPEN"
        assert [c["id"] for c in changes] == [shift["id"]]
        assert sleeps == [0.5, 0.5]

    def test_logout_refused_while_shift_open(self, terminal, db_session):
        terminal.open_shift(0)

        with pytest.raises(TerminalError) as exc:
            terminal.logout()
        assert exc.value.code == "SHIFT_STILL_OPEN"
        assert terminal.api.is_authenticated

        result = terminal.close_shift(0)
        assert result["shift"]["status"] == "CLOSED"
        terminal.logout()
        assert not terminal.api.is_authenticated


class TestTerminalConfig:
    def test_from_env(self, monkeypatch, tmp_path):
        monkeypatch.setenv("RETAILPOS_API_URL", "http://pos.local:8000/")
        monkeypatch.setenv("RETAILPOS_TERMINAL_NAME", "POS-09")
        monkeypatch.setenv("RETAILPOS_CART_PATH", str(tmp_path / "cart.json"))
        monkeypatch.setenv("POLL_INTERVAL_SECONDS", "2.5")

        config = TerminalConfig.from_env()

        assert config.base_url == "http://pos.local:8000"
        assert config.terminal_name == "POS-09"
        assert config.cart_path == tmp_path / "cart.json"
        assert config.poll_interval == 2.5
        assert config.request_timeout == 10.0

    def test_from_config_uses_file_cart(self, tmp_path):
        config = TerminalConfig(base_url="http://pos.local:8000", cart_path=tmp_path / "cart.json")

        terminal = PosTerminal.from_config(config)
        try:
            assert terminal.api.base_url == "http://pos.local:8000"
            assert terminal.cart.persistence.path == tmp_path / "cart.json"
            assert terminal.cart.is_empty
        finally:
            terminal.api.close()
