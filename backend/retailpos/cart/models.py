# Overview: Client-side cart value types with boundary validation.

from __future__ import annotations

from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import Any, Optional

from ..money import AmountError, to_decimal
from ..validation import ValidationError

PCS = "PCS"
CARTON = "CARTON"
UNIT_TYPES = (PCS, CARTON)


def _require(payload: dict, key: str, kind: str):
    if key not in payload or payload[key] is None:
        raise ValidationError(f"{kind}.{key} is required")
    return payload[key]


def _int_field(payload: dict, key: str, kind: str, default=None) -> int:
    value = payload.get(key)
    if value is None:
        if default is not None:
            return default
        raise ValidationError(f"{kind}.{key} is required")
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{kind}.{key} must be an integer")
    return value


def _optional_int(payload: dict, key: str, kind: str) -> Optional[int]:
    value = payload.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{kind}.{key} must be an integer")
    return value


def _amount(payload: dict, key: str, kind: str, *, required: bool = True) -> Optional[Decimal]:
    value = payload.get(key)
    if value is None:
        if required:
            raise ValidationError(f"{kind}.{key} is required")
        return None
    try:
        return to_decimal(value, f"{kind}.{key}")
    except AmountError as e:
        raise ValidationError(str(e))


@dataclass(frozen=True)
class ProductSnapshot:
    """
    The product fields the cart needs, copied at add time.

    Built from API payloads with from_payload so a product response with a
    missing price or a string stock is rejected at the boundary instead of
    surfacing as a wrong total later.
    """
    id: int
    name: str
    price: Decimal
    carton_price: Optional[Decimal] = None
    pcs_per_carton: int = 1
    supports_carton: bool = False
    stock: int = 0
    brand_id: Optional[int] = None
    category_id: Optional[int] = None
    barcode: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Any) -> "ProductSnapshot":
        if not isinstance(payload, dict):
            raise ValidationError("product must be an object")
        name = _require(payload, "name", "product")
        if not isinstance(name, str):
            raise ValidationError("product.name must be a string")
        supports_carton = payload.get("supportsCarton", False)
        if not isinstance(supports_carton, bool):
            raise ValidationError("product.supportsCarton must be true or false")
        return cls(
            id=_int_field(payload, "id", "product"),
            name=name,
            price=_amount(payload, "price", "product"),
            carton_price=_amount(payload, "cartonPrice", "product", required=False),
            pcs_per_carton=_int_field(payload, "pcsPerCarton", "product", default=1),
            supports_carton=supports_carton,
            stock=_int_field(payload, "stock", "product", default=0),
            brand_id=_optional_int(payload, "brandId", "product"),
            category_id=_optional_int(payload, "categoryId", "product"),
            barcode=payload.get("barcode"),
        )

    def to_payload(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "price": str(self.price),
            "cartonPrice": str(self.carton_price) if self.carton_price is not None else None,
            "pcsPerCarton": self.pcs_per_carton,
            "supportsCarton": self.supports_carton,
            "stock": self.stock,
            "brandId": self.brand_id,
            "categoryId": self.category_id,
            "barcode": self.barcode,
        }


@dataclass(frozen=True)
class CustomerRef:
    """Customer as attached to a cart (read-only copy)."""
    id: int
    name: str
    tier_level: str = "REGULAR"
    customer_type: str = "regular"
    total_points: int = 0
    total_spending: Decimal = Decimal("0")

    @classmethod
    def from_payload(cls, payload: Any) -> "CustomerRef":
        if not isinstance(payload, dict):
            raise ValidationError("customer must be an object")
        name = _require(payload, "name", "customer")
        return cls(
            id=_int_field(payload, "id", "customer"),
            name=str(name),
            tier_level=str(payload.get("tierLevel") or "REGULAR"),
            customer_type=str(payload.get("customerType") or "regular"),
            total_points=_int_field(payload, "totalPoints", "customer", default=0),
            total_spending=_amount(payload, "totalSpending", "customer", required=False) or Decimal("0"),
        )

    def to_payload(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "tierLevel": self.tier_level,
            "customerType": self.customer_type,
            "totalPoints": self.total_points,
            "totalSpending": str(self.total_spending),
        }


@dataclass(frozen=True)
class DiscountRule:
    """Campaign as the terminal sees it; attribute names match the Discount model."""
    id: int
    type: str
    value: Decimal
    applies_to: str = "product"
    product_id: Optional[int] = None
    brand_id: Optional[int] = None
    category_id: Optional[int] = None
    customer_type: Optional[str] = None
    minimum_purchase: Decimal = Decimal("0")
    priority_level: int = 0
    stackable: bool = False

    @classmethod
    def from_payload(cls, payload: Any) -> "DiscountRule":
        if not isinstance(payload, dict):
            raise ValidationError("discount must be an object")
        discount_type = _require(payload, "type", "discount")
        return cls(
            id=_int_field(payload, "id", "discount"),
            type=str(discount_type).lower(),
            value=_amount(payload, "value", "discount"),
            applies_to=str(payload.get("appliesTo") or "product").lower(),
            product_id=_optional_int(payload, "productId", "discount"),
            brand_id=_optional_int(payload, "brandId", "discount"),
            category_id=_optional_int(payload, "categoryId", "discount"),
            customer_type=payload.get("customerType"),
            minimum_purchase=_amount(payload, "minimumPurchase", "discount", required=False) or Decimal("0"),
            priority_level=_int_field(payload, "priorityLevel", "discount", default=0),
            stackable=bool(payload.get("stackable", False)),
        )


@dataclass(frozen=True)
class CartItem:
    """
    One cart line. `discount` is a per-unit amount; it may be negative
    between updates and is clamped when totals are computed.
    """
    product: ProductSnapshot
    quantity: int = 1
    unit_type: str = PCS
    discount: Decimal = Decimal("0")

    @property
    def product_id(self) -> int:
        return self.product.id

    def with_changes(self, **changes) -> "CartItem":
        return replace(self, **changes)

    def to_payload(self) -> dict:
        return {
            "product": self.product.to_payload(),
            "quantity": self.quantity,
            "unitType": self.unit_type,
            "discount": str(self.discount),
        }

    @classmethod
    def from_payload(cls, payload: Any) -> "CartItem":
        if not isinstance(payload, dict):
            raise ValidationError("cart item must be an object")
        unit_type = str(payload.get("unitType") or PCS).upper()
        if unit_type not in UNIT_TYPES:
            raise ValidationError(f"cart item unitType must be one of: {', '.join(UNIT_TYPES)}")
        quantity = _int_field(payload, "quantity", "cart item", default=1)
        if quantity < 1:
            raise ValidationError("cart item quantity must be >= 1")
        return cls(
            product=ProductSnapshot.from_payload(payload.get("product")),
            quantity=quantity,
            unit_type=unit_type,
            discount=_amount(payload, "discount", "cart item", required=False) or Decimal("0"),
        )


@dataclass(frozen=True)
class CartState:
    items: tuple = field(default_factory=tuple)
    customer: Optional[CustomerRef] = None
    global_discount: Decimal = Decimal("0")

    def to_payload(self) -> dict:
        return {
            "items": [item.to_payload() for item in self.items],
            "customer": self.customer.to_payload() if self.customer else None,
            "globalDiscount": str(self.global_discount),
        }

    @classmethod
    def from_payload(cls, payload: Any) -> "CartState":
        if not isinstance(payload, dict):
            raise ValidationError("cart state must be an object")
        raw_items = payload.get("items") or []
        if not isinstance(raw_items, list):
            raise ValidationError("cart state items must be a list")
        customer = payload.get("customer")
        return cls(
            items=tuple(CartItem.from_payload(raw) for raw in raw_items),
            customer=CustomerRef.from_payload(customer) if customer is not None else None,
            global_discount=_amount(payload, "globalDiscount", "cart state", required=False) or Decimal("0"),
        )
