"""Decimal arithmetic utilities for reserves, shares and cash amounts.

All reserves, share counts and amounts are Decimal. Floats are accepted at the
boundary only and converted through their repr so 0.1 stays 0.1.
"""

from decimal import Decimal, InvalidOperation

ZERO = Decimal("0")
ONE = Decimal("1")
HUNDRED = Decimal("100")


def to_decimal(value: Decimal | int | float | str) -> Decimal:
    """Convert a boundary value to Decimal. Raises ValueError on garbage input."""
    if isinstance(value, bool):
        raise ValueError(f"Not a number: {value!r}")
    if isinstance(value, Decimal):
        return value
    try:
        if isinstance(value, float):
            return Decimal(repr(value))
        return Decimal(value)
    except (InvalidOperation, TypeError) as e:
        raise ValueError(f"Not a number: {value!r}") from e


def is_positive_finite(value: Decimal) -> bool:
    return value.is_finite() and value > ZERO


def is_non_negative_finite(value: Decimal) -> bool:
    return value.is_finite() and value >= ZERO


def relative_error(actual: Decimal, expected: Decimal) -> Decimal:
    """|actual - expected| / |expected|; absolute error when expected is zero."""
    diff = abs(actual - expected)
    if expected == ZERO:
        return diff
    return diff / abs(expected)


def format_amount(value: Decimal, places: int = 2) -> str:
    """Display string: Decimal('9.0909') -> '9.09', Decimal('-1234.5') -> '-1,234.50'."""
    quantum = Decimal(1).scaleb(-places)
    rounded = value.quantize(quantum)
    if rounded < ZERO:
        return f"-{-rounded:,.{places}f}"
    return f"{rounded:,.{places}f}"
