"""
Module: procurement_kernel.domain.values
Responsibility: Decimal coercion, rounding, and input guards shared by every
    module.  Centralizes precision so that quantities, prices, and money are
    parsed and rounded identically everywhere.
Architecture position: Kernel > Domain.  Pure functions, zero I/O.

Invariants enforced:
    No floats reach stored documents.  Every numeric input passes through
    to_decimal(); every monetary result passes through round_money().
    Documents hold Decimals as strings (decimal_str) so JSON round-trips are
    exact.

Failure modes:
    - ValidationError on non-numeric, NaN, or infinite input.
    - ValidationError from the require_* guards.
"""

from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from procurement_kernel.exceptions import ValidationError

MONEY_DECIMAL_PLACES = 2
DEFAULT_ROUNDING = ROUND_HALF_UP

ZERO = Decimal("0")


def to_decimal(value: Any, field: str) -> Decimal:
    """Coerce ``value`` to Decimal, raising ValidationError when impossible.

    Floats are converted through ``str()`` so ``0.1`` becomes ``Decimal("0.1")``.
    """
    if value is None or isinstance(value, bool):
        raise ValidationError(field, "a number is required")
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            raise ValidationError(field, f"'{value}' is not a number") from None
    if not result.is_finite():
        raise ValidationError(field, "must be finite")
    return result


def optional_decimal(value: Any, field: str) -> Decimal | None:
    if value is None or value == "":
        return None
    return to_decimal(value, field)


def round_money(
    value: Decimal,
    decimal_places: int = MONEY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a monetary value to specified decimal places.

    This is the only sanctioned rounding function for money in the system.
    """
    quantize_str = "0." + "0" * decimal_places
    return value.quantize(Decimal(quantize_str), rounding=rounding)


def decimal_str(value: Decimal | None) -> str | None:
    """Stored form of a Decimal (plain notation, no exponent)."""
    if value is None:
        return None
    if value == value.to_integral_value() and value.as_tuple().exponent > 0:
        value = value.quantize(Decimal(1))
    return format(value, "f")


def require_positive(value: Any, field: str) -> Decimal:
    result = to_decimal(value, field)
    if result <= ZERO:
        raise ValidationError(field, f"must be greater than zero, got {result}")
    return result


def require_non_negative(value: Any, field: str) -> Decimal:
    result = to_decimal(value, field)
    if result < ZERO:
        raise ValidationError(field, f"must not be negative, got {result}")
    return result


def require_text(value: Any, field: str) -> str:
    """Non-empty, stripped string."""
    if value is None or not str(value).strip():
        raise ValidationError(field, "is required")
    return str(value).strip()


def iso_date(value: Any, field: str) -> str:
    """Normalize a date or ``YYYY-MM-DD`` string to its ISO text form."""
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    text = require_text(value, field)
    try:
        return date.fromisoformat(text[:10]).isoformat()
    except ValueError:
        raise ValidationError(field, f"'{text}' is not a YYYY-MM-DD date") from None
