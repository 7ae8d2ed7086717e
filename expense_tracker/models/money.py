"""
Money Helpers

DESIGN DECISION: Money is plain ``decimal.Decimal``.
Decimal already gives exact addition, negation and comparison, so there is
no wrapper type. This module holds the few operations Decimal does not
spell out directly, and refuses floats so binary rounding error can never
leak into a stored amount or a sum.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Union

ZERO = Decimal("0")
CENT = Decimal("0.01")

MoneyLike = Union[Decimal, int, str]


def to_money(value: MoneyLike) -> Decimal:
    """
    Coerce a value to Decimal.

    Floats are rejected: ``Decimal(0.1)`` already carries the binary error
    we are trying to avoid.
    """
    if isinstance(value, bool) or isinstance(value, float):
        raise TypeError(f"Refusing to build money from {type(value).__name__}: {value!r}")
    if isinstance(value, Decimal):
        return value
    return Decimal(value)


def quantize(amount: Decimal) -> Decimal:
    """Round to whole cents (half-up)."""
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def clamp_zero(amount: Decimal) -> Decimal:
    """max(0, amount)."""
    return amount if amount > ZERO else ZERO


def sum_money(amounts: Iterable[Decimal]) -> Decimal:
    """Exact sum. Empty input sums to ZERO."""
    return sum(amounts, ZERO)


def ratio(numerator: Decimal, denominator: Decimal) -> float:
    """
    Display ratio (e.g. progress bar fill).

    Not authoritative: the result is a float and must never be stored or
    summed. Returns 0.0 when the denominator is not positive.
    """
    if denominator <= ZERO:
        return 0.0
    return float(numerator / denominator)
