"""
Amount Handling Module

All monetary values are Decimal with two places, matching the stored
decimal(15, 2) columns. NEVER uses float arithmetic for balances.
"""

import re
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP, getcontext
from typing import Union

from .errors import ValidationError

# High precision for intermediate results (annuity factors)
getcontext().prec = 28

AMOUNT_QUANTUM = Decimal('0.01')
ZERO = Decimal('0.00')

AmountLike = Union[Decimal, int, str, float]

# Optional three-letter currency label, optional sign, digits (thousands
# separators only in groups of three) and an optional fraction. No exponents.
AMOUNT_PATTERN = re.compile(
    r'^(?:[A-Za-z]{3}\s*)?([+-]?(?:(?:\d{1,3}(?:,\d{3})+|\d+)(?:\.\d+)?|\.\d+))$'
)


def quantize(value: Decimal) -> Decimal:
    """Round to two places, half-up"""
    return value.quantize(AMOUNT_QUANTUM, rounding=ROUND_HALF_UP)


def to_amount(value: AmountLike, field: str = "amount") -> Decimal:
    """
    Convert user input to a two-place Decimal.

    Strings may carry thousands separators and a currency label
    ("UGX 1,200,000"). Floats are converted through str() so that 0.1
    stays 0.1.

    Raises:
        ValidationError: If the value is not a finite number
    """
    if isinstance(value, bool) or value is None:
        raise ValidationError(field, "must be a number")

    if isinstance(value, str):
        match = AMOUNT_PATTERN.match(value.strip())
        if not match:
            raise ValidationError(field, f"cannot convert '{value}' to a number")
        value = match.group(1).replace(',', '')
    elif isinstance(value, float):
        value = str(value)

    try:
        amount = Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(field, f"cannot convert '{value}' to a number")

    if not amount.is_finite():
        raise ValidationError(field, "must be a finite number")

    return quantize(amount)


def positive_amount(value: AmountLike, field: str = "amount") -> Decimal:
    """Convert and require a strictly positive amount"""
    amount = to_amount(value, field)
    if amount <= ZERO:
        raise ValidationError(field, "must be greater than zero")
    return amount


def format_amount(value: Decimal, currency_label: str = "UGX") -> str:
    """Format for display, e.g. 'UGX 1,200,000.00'"""
    return f"{currency_label} {value:,.2f}"
