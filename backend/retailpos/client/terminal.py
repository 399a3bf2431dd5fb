# Overview: Terminal facade tying the local cart to the RetailPOS API.

"""
PosTerminal

What one checkout lane does between login and logout:
- scan or pick products into the cart with a campaign discount preview
- refresh campaigns and re-price every line
- check out (cart is cleared only after the server accepted the sale)
- park and recall carts
- open and close the cashier shift, poll its state
- log out, refused locally while a shift is still open

The server stays authoritative for prices, discounts, stock and points.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional

from ..cart import CartItem, CartStore, CustomerRef, DiscountRule, JsonFileCartPersistence, ProductSnapshot
from ..services.pricing_service import resolve_unit_discount, resolve_unit_price
from ..time_utils import to_utc_z, utcnow
from .api_client import ApiClient, ApiError
from .config import TerminalConfig

logger = logging.getLogger(__name__)


class TerminalError(Exception):
    """Local refusal before any request is sent."""

    def __init__(self, code: str, message: str):
        super().__init__(message)
        self.code = code
        self.message = message


class PosTerminal:
    def __init__(
        self,
        api: ApiClient,
        cart: Optional[CartStore] = None,
        config: Optional[TerminalConfig] = None,
    ):
        self.config = config or TerminalConfig()
        self.api = api
        self.cart = cart or CartStore(JsonFileCartPersistence(self.config.cart_path))
        self.discounts: list[DiscountRule] = []
        self.active_shift: Optional[dict] = None

    @classmethod
    def from_config(cls, config: TerminalConfig) -> "PosTerminal":
        api = ApiClient(config.base_url, timeout=config.request_timeout)
        return cls(api, config=config)

    # ------------------------------------------------------------------
    # discounts
    # ------------------------------------------------------------------

    def preview_discount(self, item: CartItem):
        unit_price = resolve_unit_price(item.product, item.unit_type)
        return resolve_unit_discount(item.product, unit_price, self.discounts, self.cart.customer)

    def refresh_discounts(self) -> list[DiscountRule]:
        """Reload active campaigns and re-price every cart line."""
        self.discounts = [DiscountRule.from_payload(raw) for raw in self.api.list_active_discounts()]
        self.cart.update_all_discounts(self.preview_discount)
        return self.discounts

    # ------------------------------------------------------------------
    # cart
    # ------------------------------------------------------------------

    def add_product(self, product) -> CartItem:
        if not isinstance(product, ProductSnapshot):
            product = ProductSnapshot.from_payload(product)
        existing = self.cart.get_item(product.id)
        candidate = existing.with_changes(product=product) if existing else CartItem(product=product)
        self.cart.add_item(product, self.preview_discount(candidate))
        return self.cart.get_item(product.id)

    def scan(self, barcode: str) -> CartItem:
        return self.add_product(self.api.get_product_by_barcode(barcode))

    def change_unit_type(self, product_id: int, unit_type: str) -> None:
        """Switch PCS/CARTON; the preview is recomputed against the new unit price."""
        self.cart.update_unit_type(product_id, unit_type)
        item = self.cart.get_item(product_id)
        if item is not None:
            self.cart.update_item_discount(product_id, self.preview_discount(item))

    def set_customer(self, customer) -> None:
        if customer is not None and not isinstance(customer, CustomerRef):
            customer = CustomerRef.from_payload(customer)
        self.cart.set_customer(customer)
        self.cart.update_all_discounts(self.preview_discount)

    def checkout(self, payment_method: str = "cash", points_to_redeem: int = 0) -> dict:
        if self.cart.is_empty:
            raise TerminalError("CART_EMPTY", "Cart is empty")
        payload = self.cart.to_checkout_payload(payment_method, points_to_redeem)
        try:
            sale = self.api.checkout(payload)
        except ApiError as e:
            logger.warning("Checkout rejected: %s %s", e.code, e.message)
            raise
        self.cart.clear_cart()
        logger.info("Checkout complete: %s total %s", sale.get("invoiceNo"), sale.get("finalAmount"))
        return sale

    def suspend(self, note: Optional[str] = None) -> dict:
        if self.cart.is_empty:
            raise TerminalError("CART_EMPTY", "Cart is empty")
        payload = self.cart.to_checkout_payload()
        if note:
            payload["note"] = note
        row = self.api.suspend_sale(payload)
        self.cart.clear_cart()
        return row

    def recall(self, suspended_id: int) -> dict:
        """Replace the cart with a parked one; its discounts are re-previewed."""
        if not self.cart.is_empty:
            raise TerminalError("CART_NOT_EMPTY", "Finish or park the current cart first")
        data = self.api.recall_suspended_sale(suspended_id)
        items = [
            CartItem.from_payload({
                "product": raw["product"],
                "quantity": raw["quantity"],
                "unitType": raw["unitType"],
                "discount": raw.get("discount") or "0",
            })
            for raw in data.get("items") or []
        ]
        self.cart.set_items(items)
        customer = data.get("customer")
        self.cart.set_customer(CustomerRef.from_payload(customer) if customer else None)
        self.cart.set_global_discount(data.get("globalDiscount") or "0")
        if self.discounts:
            self.cart.update_all_discounts(self.preview_discount)
        return data

    # ------------------------------------------------------------------
    # shift / session
    # ------------------------------------------------------------------

    def open_shift(self, opening_cash, note: Optional[str] = None) -> dict:
        self.active_shift = self.api.open_shift(
            opening_cash,
            self.config.terminal_name,
            note=note,
            client_opened_at=to_utc_z(utcnow()),
        )
        return self.active_shift

    def close_shift(self, actual_cash, close_note: Optional[str] = None) -> dict:
        result = self.api.close_shift(actual_cash, close_note)
        self.active_shift = None
        return result

    def poll_active_shift(
        self,
        interval: Optional[float] = None,
        iterations: int = 1,
        on_change: Optional[Callable[[Optional[dict]], None]] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> Optional[dict]:
        """
        Refresh active_shift `iterations` times, `interval` seconds apart.
        on_change fires whenever the shift id or status differs from before.
        """
        interval = self.config.poll_interval if interval is None else interval
        for n in range(iterations):
            if n:
                sleep(interval)
            shift = self.api.get_active_shift()
            before = (self.active_shift or {}).get("id"), (self.active_shift or {}).get("status")
            after = (shift or {}).get("id"), (shift or {}).get("status")
            self.active_shift = shift
            if on_change is not None and before != after:
                on_change(shift)
        return self.active_shift

    def logout(self) -> None:
        if self.api.get_active_shift():
            raise TerminalError("SHIFT_STILL_OPEN", "Close your shift before logging out")
        self.api.logout()
        self.active_shift = None
