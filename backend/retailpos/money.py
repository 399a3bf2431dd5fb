# Overview: Currency parsing, rounding, and display helpers shared by backend and terminal.

"""
Money helpers.

All amounts are whole-currency Decimals (Rupiah has no minor unit in
practice, but percentage discounts can produce fractions, so values are
kept at two decimal places).
"""

from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

ZERO = Decimal("0")
TWO_PLACES = Decimal("0.01")

CURRENCY_PREFIX = "Rp"

_NON_DIGITS = re.compile(r"\D")


class AmountError(ValueError):
    """Raised when a value cannot be read as a currency amount."""


def to_decimal(value, field: str = "amount") -> Decimal:
    """
    Coerce JSON-ish input (int, float, numeric string, Decimal) to Decimal.

    Booleans are rejected: `True` is an int in Python but never a price.
    """
    if value is None:
        raise AmountError(f"{field} is required")
    if isinstance(value, bool):
        raise AmountError(f"{field} must be a number")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, int):
        result = Decimal(value)
    elif isinstance(value, float):
        # str() first so 0.1 stays 0.1 instead of its binary expansion
        result = Decimal(str(value))
    elif isinstance(value, str):
        try:
            result = Decimal(value.strip())
        except InvalidOperation:
            raise AmountError(f"{field} must be a number")
    else:
        raise AmountError(f"{field} must be a number")
    if not result.is_finite():
        raise AmountError(f"{field} must be a finite number")
    return result


def parse_amount(value, field: str = "amount", *, allow_negative: bool = False) -> Decimal:
    """Parse and round an amount to two places."""
    amount = round_money(to_decimal(value, field))
    if not allow_negative and amount < 0:
        raise AmountError(f"{field} must be >= 0")
    return amount


def round_money(value) -> Decimal:
    """Round half-up to two decimals."""
    if not isinstance(value, Decimal):
        value = to_decimal(value)
    return value.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def clamp(value: Decimal, low: Decimal, high: Decimal) -> Decimal:
    return max(low, min(high, value))


def as_number(value):
    """
    JSON-friendly representation: int when integral, float otherwise.

    Used by to_dict() so clients see 10000 instead of "10000.00".
    """
    if value is None:
        return None
    value = Decimal(value)
    if value == value.to_integral_value():
        return int(value)
    return float(value)


def format_currency(value) -> str:
    """
    Format an amount the way the till displays it: "Rp 10.000".

    Zero fraction digits, dot thousands separator, plain space after the
    symbol. Negative amounts render as "-Rp 10.000".
    """
    amount = to_decimal(value).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    sign = "-" if amount < 0 else ""
    digits = f"{abs(int(amount)):,}".replace(",", ".")
    return f"{sign}{CURRENCY_PREFIX} {digits}"


def extract_digits(text: str | None) -> str:
    """Strip everything but 0-9 (for masked currency inputs)."""
    if not text:
        return ""
    return _NON_DIGITS.sub("", str(text))


def digits_to_number(digits: str | None) -> int:
    """Digit string to integer; empty input reads as 0."""
    cleaned = extract_digits(digits)
    if not cleaned:
        return 0
    return int(cleaned)
