# Overview: Terminal cart state container with pluggable persistence.

"""
CartStore

Holds the in-progress sale on a terminal. Every mutation replaces the
immutable CartState and hands the full state to the persistence adapter.

Rules:
- add_item on an existing product bumps quantity by one and overwrites its
  discount with the supplied value (default 0)
- CARTON is only kept for carton-eligible products, otherwise PCS
- update_quantity ignores quantities below 1
- per-line discount may be stored negative; totals clamp it to 0
- total = max(0, subtotal - global discount); get_total and get_totals agree
- malformed amounts or quantities leave the cart untouched
- a failed save is logged; the in-memory cart stays authoritative

Stock is not checked here; checkout is the authority.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from decimal import Decimal
from typing import Callable, Iterable, Optional

from ..money import ZERO, AmountError, to_decimal
from ..services.pricing_service import coerce_unit_type, resolve_unit_price
from .models import PCS, CartItem, CartState, CustomerRef, ProductSnapshot
from .persistence import CartPersistence, InMemoryCartPersistence

logger = logging.getLogger(__name__)


def _as_decimal(value) -> Optional[Decimal]:
    """Decimal for the amount, ZERO for None, None when it cannot be read."""
    if value is None:
        return ZERO
    try:
        return to_decimal(value)
    except AmountError:
        return None


def _is_quantity(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


class CartStore:
    def __init__(self, persistence: Optional[CartPersistence] = None):
        self.persistence = persistence or InMemoryCartPersistence()
        self._state = self.persistence.load() or CartState()

    # ------------------------------------------------------------------
    # reads
    # ------------------------------------------------------------------

    @property
    def state(self) -> CartState:
        return self._state

    @property
    def items(self) -> tuple:
        return self._state.items

    @property
    def customer(self) -> Optional[CustomerRef]:
        return self._state.customer

    @property
    def global_discount(self) -> Decimal:
        return self._state.global_discount

    @property
    def is_empty(self) -> bool:
        return not self._state.items

    @property
    def item_count(self) -> int:
        return sum(item.quantity for item in self._state.items)

    def get_item(self, product_id: int) -> Optional[CartItem]:
        for item in self._state.items:
            if item.product_id == product_id:
                return item
        return None

    # ------------------------------------------------------------------
    # mutations
    # ------------------------------------------------------------------

    def _commit(self, state: CartState) -> None:
        self._state = state
        try:
            self.persistence.save(state)
        except OSError:
            logger.exception("Failed to persist cart; keeping it in memory until the next save")

    def _replace_items(self, items: Iterable[CartItem]) -> None:
        self._commit(replace(self._state, items=tuple(items)))

    def _map_item(self, product_id: int, fn: Callable[[CartItem], CartItem]) -> None:
        self._replace_items(
            fn(item) if item.product_id == product_id else item
            for item in self._state.items
        )

    def add_item(self, product: ProductSnapshot, discount=None) -> None:
        amount = _as_decimal(discount)
        if amount is None or not isinstance(product, ProductSnapshot):
            return
        existing = self.get_item(product.id)
        if existing is not None:
            self._map_item(
                product.id,
                lambda item: item.with_changes(quantity=item.quantity + 1, discount=amount),
            )
            return
        self._replace_items(self._state.items + (CartItem(product=product, quantity=1, unit_type=PCS, discount=amount),))

    def set_items(self, items: Iterable[CartItem]) -> None:
        self._replace_items(
            item.with_changes(unit_type=coerce_unit_type(item.product, item.unit_type))
            for item in items
            if isinstance(item, CartItem)
        )

    def remove_item(self, product_id: int) -> None:
        self._replace_items(item for item in self._state.items if item.product_id != product_id)

    def update_quantity(self, product_id: int, quantity: int) -> None:
        if not _is_quantity(quantity) or quantity < 1:
            return
        self._map_item(product_id, lambda item: item.with_changes(quantity=quantity))

    def update_unit_type(self, product_id: int, unit_type: str) -> None:
        if not isinstance(unit_type, str):
            return
        self._map_item(
            product_id,
            lambda item: item.with_changes(unit_type=coerce_unit_type(item.product, unit_type)),
        )

    def update_item_discount(self, product_id: int, discount) -> None:
        amount = _as_decimal(discount)
        if amount is None:
            return
        self._map_item(product_id, lambda item: item.with_changes(discount=amount))

    def update_all_discounts(self, calculator: Callable[[CartItem], object]) -> None:
        items = []
        for item in self._state.items:
            amount = _as_decimal(calculator(item))
            items.append(item if amount is None else item.with_changes(discount=amount))
        self._replace_items(items)

    def set_customer(self, customer: Optional[CustomerRef]) -> None:
        self._commit(replace(self._state, customer=customer))

    def set_global_discount(self, amount) -> None:
        value = _as_decimal(amount)
        if value is None:
            return
        self._commit(replace(self._state, global_discount=value))

    def clear_cart(self) -> None:
        self._commit(CartState())

    # ------------------------------------------------------------------
    # totals
    # ------------------------------------------------------------------

    @staticmethod
    def line_amounts(item: CartItem) -> tuple[Decimal, Decimal]:
        """(line total, clamped line discount) for one item."""
        unit_price = resolve_unit_price(item.product, item.unit_type)
        line_total = unit_price * item.quantity
        line_discount = max(ZERO, item.discount) * item.quantity
        return line_total, min(line_total, line_discount)

    def get_totals(self) -> dict:
        subtotal_before = ZERO
        discount_total = ZERO
        for item in self._state.items:
            line_total, line_discount = self.line_amounts(item)
            subtotal_before += max(ZERO, line_total)
            discount_total += max(ZERO, line_discount)
        subtotal_after = max(ZERO, subtotal_before - discount_total)
        global_discount = self._state.global_discount
        return {
            "subtotalBeforeDiscount": subtotal_before,
            "discountTotal": discount_total,
            "subtotalAfterDiscount": subtotal_after,
            "globalDiscount": global_discount,
            "total": max(ZERO, subtotal_after - global_discount),
        }

    def get_total(self) -> Decimal:
        return self.get_totals()["total"]

    def to_checkout_payload(self, payment_method: str = "cash", points_to_redeem: int = 0) -> dict:
        return {
            "customerId": self._state.customer.id if self._state.customer else None,
            "pointsToRedeem": max(0, int(points_to_redeem or 0)),
            "items": [
                {
                    "productId": item.product_id,
                    "quantity": item.quantity,
                    "unitType": item.unit_type,
                    "discount": str(max(ZERO, item.discount)),
                }
                for item in self._state.items
            ],
            "globalDiscount": str(max(ZERO, self._state.global_discount)),
            "paymentMethod": payment_method,
        }
