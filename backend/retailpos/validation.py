# Overview: Request payload validation and normalization at the HTTP boundary.

from __future__ import annotations
import re
from datetime import datetime
from decimal import Decimal

from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import Boolean, Integer, Numeric, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta

from .errors import BusinessError
from .money import AmountError, parse_amount
from .time_utils import parse_iso_datetime


# Largest amount a NUMERIC(12,2) column can hold
MAX_AMOUNT = Decimal("9999999999.99")

UNIT_TYPES = ("PCS", "CARTON")

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


class ValidationError(BusinessError, ValueError):
    """422-level input problem."""

    status = 422
    code = "VALIDATION_ERROR"


def to_snake(key: str) -> str:
    """camelCase -> snake_case (already-snake keys pass through)."""
    return _CAMEL_BOUNDARY.sub("_", key).lower()


def to_camel(key: str) -> str:
    head, *rest = key.split("_")
    return head + "".join(part.title() for part in rest)


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] = field(default_factory=set)


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    # Integers - strict validation to reject floats and scientific notation
    if isinstance(coltype, Integer):
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped or not re.fullmatch(r"-?\d+", stripped):
                raise ValidationError(f"{col.key} must be an integer")
            return int(stripped)
        raise ValidationError(f"{col.key} must be an integer")

    # Money
    if isinstance(coltype, Numeric):
        try:
            amount = parse_amount(value, col.key, allow_negative=True)
        except AmountError as e:
            raise ValidationError(str(e))
        if abs(amount) > MAX_AMOUNT:
            raise ValidationError(f"{col.key} is too large")
        return amount

    # Booleans
    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        raise ValidationError(f"{col.key} must be true or false")

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            if dt is None:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            return dt
        raise ValidationError(f"{col.key} must be a datetime")

    # Strings / Text
    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields, snake_case)
    - required_on_create (if partial=False)
    Keys may arrive camelCase; the returned patch is keyed by column name.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    normalized = {to_snake(k): v for k, v in payload.items()}

    if not partial:
        missing = sorted(f for f in policy.required_on_create if f not in normalized)
        if missing:
            raise ValidationError(
                f"Missing required fields: {', '.join(to_camel(f) for f in missing)}",
                details={"missing": [to_camel(f) for f in missing]},
            )

    cols = _columns_by_key(model)

    # Reject unknown / non-writable fields
    for k in normalized:
        if k not in policy.writable_fields or k not in cols:
            raise ValidationError(f"Field not allowed: {to_camel(k)}")

    patch: dict = {}
    for k, raw in normalized.items():
        col = cols[k]

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{to_camel(k)} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        if isinstance(col.type, (String, Text)):
            if not col.nullable and val == "":
                raise ValidationError(f"{to_camel(k)} cannot be blank")
            max_len = getattr(col.type, "length", None)
            if max_len and len(val) > max_len:
                raise ValidationError(f"{to_camel(k)} exceeds max length {max_len}")

        patch[k] = val

    return patch


# =============================================================================
# FIELD HELPERS
# =============================================================================

def require_json(payload) -> dict:
    if payload is None or not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    return payload


def reject_unknown(payload: dict, allowed: set[str], where: str = "body") -> None:
    unknown = sorted(set(payload) - allowed)
    if unknown:
        raise ValidationError(
            f"Unknown field(s) in {where}: {', '.join(unknown)}",
            details={"fields": unknown},
        )


def parse_int(value, name: str, *, minimum: int | None = None, required: bool = True) -> int | None:
    if value is None:
        if required:
            raise ValidationError(f"{name} is required")
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{name} must be an integer")
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if isinstance(value, str) and re.fullmatch(r"\s*-?\d+\s*", value):
        value = int(value)
    if not isinstance(value, int):
        raise ValidationError(f"{name} must be an integer")
    if minimum is not None and value < minimum:
        raise ValidationError(f"{name} must be >= {minimum}")
    return value


def parse_money(value, name: str, *, required: bool = True, default=None) -> Decimal | None:
    if value is None:
        if required:
            raise ValidationError(f"{name} is required")
        return default
    try:
        amount = parse_amount(value, name)
    except AmountError as e:
        raise ValidationError(str(e))
    if amount > MAX_AMOUNT:
        raise ValidationError(f"{name} is too large")
    return amount


def parse_text(value, name: str, *, max_length: int | None = None, required: bool = False) -> str | None:
    if value is None:
        if required:
            raise ValidationError(f"{name} is required")
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{name} must be a string")
    text = value.strip()
    if required and not text:
        raise ValidationError(f"{name} is required")
    if max_length is not None:
        text = text[:max_length]
    return text or None


def parse_choice(value, name: str, choices, *, default: str | None = None) -> str:
    if value is None or value == "":
        if default is None:
            raise ValidationError(f"{name} is required")
        return default
    normalized = str(value).strip().upper()
    if normalized not in choices:
        raise ValidationError(
            f"{name} must be one of: {', '.join(choices)}",
            details={"value": value},
        )
    return normalized


def parse_bool_arg(value: str | None) -> bool | None:
    """Query-string booleans: true/1/yes vs false/0/no; anything else is None."""
    if value is None:
        return None
    lowered = value.strip().lower()
    if lowered in ("true", "1", "yes"):
        return True
    if lowered in ("false", "0", "no"):
        return False
    return None


# =============================================================================
# CHECKOUT REQUEST
# =============================================================================

CHECKOUT_FIELDS = {
    "customerId",
    "pointsToRedeem",
    "items",
    "globalDiscount",
    "paymentMethod",
    "note",
}
CHECKOUT_ITEM_FIELDS = {"productId", "quantity", "unitType", "discount"}


@dataclass(frozen=True)
class CheckoutLine:
    product_id: int
    quantity: int
    unit_type: str = "PCS"
    discount: Decimal = Decimal("0")


@dataclass(frozen=True)
class CheckoutRequest:
    items: list[CheckoutLine]
    customer_id: int | None = None
    points_to_redeem: int = 0
    global_discount: Decimal = Decimal("0")
    payment_method: str = "cash"
    note: str | None = None

    def to_payload(self) -> dict:
        """Inverse of parse_checkout_request (used for suspended carts)."""
        return {
            "customerId": self.customer_id,
            "pointsToRedeem": self.points_to_redeem,
            "globalDiscount": str(self.global_discount),
            "paymentMethod": self.payment_method,
            "note": self.note,
            "items": [
                {
                    "productId": line.product_id,
                    "quantity": line.quantity,
                    "unitType": line.unit_type,
                    "discount": str(line.discount),
                }
                for line in self.items
            ],
        }


def parse_checkout_request(payload, *, allow_empty: bool = False) -> CheckoutRequest:
    """
    Validate a checkout body.

    Unknown keys are rejected at both levels so a malformed terminal build
    fails loudly instead of silently dropping fields.
    """
    payload = require_json(payload)
    reject_unknown(payload, CHECKOUT_FIELDS)

    raw_items = payload.get("items")
    if raw_items is None:
        raw_items = []
    if not isinstance(raw_items, list):
        raise ValidationError("items must be a list")
    if not raw_items and not allow_empty:
        raise ValidationError("Cart is empty", code="CART_EMPTY")

    lines: list[CheckoutLine] = []
    for index, raw in enumerate(raw_items):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{index}] must be an object")
        reject_unknown(raw, CHECKOUT_ITEM_FIELDS, where=f"items[{index}]")
        lines.append(CheckoutLine(
            product_id=parse_int(raw.get("productId"), f"items[{index}].productId", minimum=1),
            quantity=parse_int(raw.get("quantity"), f"items[{index}].quantity", minimum=1),
            unit_type=parse_choice(raw.get("unitType"), f"items[{index}].unitType", UNIT_TYPES, default="PCS"),
            discount=parse_money(raw.get("discount"), f"items[{index}].discount", required=False, default=Decimal("0")),
        ))

    payment_method = parse_text(payload.get("paymentMethod"), "paymentMethod", max_length=32) or "cash"

    return CheckoutRequest(
        items=lines,
        customer_id=parse_int(payload.get("customerId"), "customerId", minimum=1, required=False),
        points_to_redeem=parse_int(payload.get("pointsToRedeem"), "pointsToRedeem", minimum=0, required=False) or 0,
        global_discount=parse_money(payload.get("globalDiscount"), "globalDiscount", required=False, default=Decimal("0")),
        payment_method=payment_method.lower(),
        note=parse_text(payload.get("note"), "note", max_length=255),
    )
