"""
Exact money arithmetic.

Amounts are stored as two-place decimals and converted to integer minor
units (cents, paise, haléře) for every calculation, so splitting and
accumulating never leak rounding errors.
"""

from decimal import Decimal, InvalidOperation
from typing import Union

from django.conf import settings

MINOR_UNITS_PER_MAJOR = 100
TWO_PLACES = Decimal('0.01')
ZERO = Decimal('0.00')

# Largest magnitude a DecimalField(max_digits=12, decimal_places=2) holds
MAX_AMOUNT = Decimal('9999999999.99')

AmountLike = Union[Decimal, int, str]


class MoneyFormatError(ValueError):
    """Raised when a value cannot be read as an exact two-place amount."""
    pass


def to_decimal(value: AmountLike) -> Decimal:
    """
    Read an amount without ever going through a binary float.

    Raises:
        MoneyFormatError: For floats, non-numeric input, more than two
            fractional digits, or a magnitude the money columns cannot hold.
    """
    if isinstance(value, float):
        raise MoneyFormatError("Money must not be given as a float")
    if isinstance(value, bool):
        raise MoneyFormatError("Money must be a number")

    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except InvalidOperation:
        raise MoneyFormatError(f"Invalid amount: {value!r}")

    if not amount.is_finite():
        raise MoneyFormatError(f"Invalid amount: {value!r}")
    if abs(amount) > MAX_AMOUNT:
        raise MoneyFormatError(f"Amount {value} exceeds the largest supported amount")

    try:
        quantized = amount.quantize(TWO_PLACES)
    except InvalidOperation:
        raise MoneyFormatError(f"Invalid amount: {value!r}")
    if amount != quantized:
        raise MoneyFormatError(f"Amount {value} has more than two decimal places")

    return quantized


def to_minor_units(value: AmountLike) -> int:
    """Convert an amount to integer minor units: ``Decimal('12.34')`` -> ``1234``."""
    return int(to_decimal(value) * MINOR_UNITS_PER_MAJOR)


def from_minor_units(minor: int) -> Decimal:
    """Convert integer minor units back to a two-place Decimal."""
    return (Decimal(minor) / Decimal(MINOR_UNITS_PER_MAJOR)).quantize(TWO_PLACES)


def normalize_currency(code: str) -> str:
    return (code or '').strip().upper()


def is_supported_currency(code: str) -> bool:
    return normalize_currency(code) in settings.LEDGER_SUPPORTED_CURRENCIES
