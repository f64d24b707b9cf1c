from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any


# Upper bound for any amount or quantity accepted by the core.
# Keeps values inside Numeric(18, 3) columns.
MAX_DECIMAL = Decimal("999999999999999")

MONEY_QUANT = Decimal("0.01")
QUANTITY_QUANT = Decimal("0.001")


class ValidationError(ValueError):
    """400-level input problem."""


def to_decimal(value: Any, field: str, *, allow_zero: bool = False, quant: Decimal = MONEY_QUANT) -> Decimal:
    """
    Coerce user input to a Decimal amount.

    - bool is rejected even though it is an int subclass
    - floats go through str() so 0.1 stays 0.1
    - scientific notation, NaN and infinities are rejected
    - value must be > 0 (or >= 0 when allow_zero)
    """
    if value is None or isinstance(value, bool):
        raise ValidationError(f"{field} must be a number")

    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, float)):
        result = Decimal(str(value))
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped or "e" in stripped.lower():
            raise ValidationError(f"{field} must be a plain decimal number")
        try:
            result = Decimal(stripped)
        except InvalidOperation:
            raise ValidationError(f"{field} must be a number")
    else:
        raise ValidationError(f"{field} must be a number")

    if not result.is_finite():
        raise ValidationError(f"{field} must be a finite number")

    if allow_zero:
        if result < 0:
            raise ValidationError(f"{field} cannot be negative")
    elif result <= 0:
        raise ValidationError(f"{field} must be positive")

    if result > MAX_DECIMAL:
        raise ValidationError(f"{field} exceeds maximum allowed value")

    return result.quantize(quant)


def to_quantity(value: Any, field: str = "quantity", *, allow_zero: bool = False) -> Decimal:
    """Weights and volumes keep three decimals (grams / millilitres)."""
    return to_decimal(value, field, allow_zero=allow_zero, quant=QUANTITY_QUANT)


def to_money(value: Any, field: str = "amount", *, allow_zero: bool = False) -> Decimal:
    return to_decimal(value, field, allow_zero=allow_zero, quant=MONEY_QUANT)


def to_non_negative_int(value: Any, field: str) -> int:
    """Plain integers only: no bools, floats, decimals or scientific notation."""
    if isinstance(value, int) and not isinstance(value, bool):
        result = value
    elif isinstance(value, str):
        stripped = value.strip()
        if not (stripped.isascii() and stripped.isdigit()):
            raise ValidationError(f"{field} must be a non-negative integer")
        result = int(stripped)
    else:
        raise ValidationError(f"{field} must be a non-negative integer")

    if result < 0:
        raise ValidationError(f"{field} must be a non-negative integer")
    return result


def decimal_str(value: Decimal | None) -> str | None:
    """JSON-safe rendering of Numeric columns."""
    if value is None:
        return None
    return format(value, "f")
