"""Exact decimal helpers for rupee amounts"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable

from parental_guard.domain.exceptions import InvalidAmountError

ZERO = Decimal("0")
PAISE = Decimal("0.01")


def to_money(value: Decimal | int | str) -> Decimal:
    """Convert to a Decimal quantized to paise. Floats are rejected."""
    if isinstance(value, float):
        raise InvalidAmountError("Use Decimal, int or str for money, not float")
    return Decimal(value).quantize(PAISE, rounding=ROUND_HALF_UP)


def require_positive(amount: Decimal) -> Decimal:
    """Validate a transaction amount"""
    money = to_money(amount)
    if money <= ZERO:
        raise InvalidAmountError(f"Amount must be positive, got {amount}")
    return money


def sum_money(amounts: Iterable[Decimal]) -> Decimal:
    return sum(amounts, ZERO)
