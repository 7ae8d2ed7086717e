"""
Budget Periods and Period Keys

A period key identifies one concrete instance of a budget period:
monthly -> year * 100 + month (202602), yearly -> year (2026).

All dates are naive local date-times. The key is taken from the local
calendar components, never from a UTC conversion.
"""

from datetime import date, datetime
from enum import Enum
from typing import Optional, Union

DateLike = Union[date, datetime]


class BudgetPeriod(str, Enum):
    """Budgeting cadence. Also used as a category's tracking granularity."""
    MONTHLY = "monthly"
    YEARLY = "yearly"


def _as_datetime(when: DateLike) -> datetime:
    if isinstance(when, datetime):
        return when
    return datetime(when.year, when.month, when.day)


def period_key(period: BudgetPeriod, when: DateLike) -> int:
    """Stable integer key for the period instance containing ``when``."""
    if period == BudgetPeriod.MONTHLY:
        return when.year * 100 + when.month
    return when.year


def month_key(when: DateLike) -> int:
    """YYYYMM key of the calendar month containing ``when``."""
    return period_key(BudgetPeriod.MONTHLY, when)


def month_start(when: DateLike) -> datetime:
    """First instant of the calendar month containing ``when``."""
    return datetime(when.year, when.month, 1)


def add_months(when: DateLike, months: int) -> datetime:
    """
    Shift a month start by ``months`` (negative goes back).

    Only the year/month survive; the result is always a month start.
    """
    index = when.year * 12 + (when.month - 1) + months
    return datetime(index // 12, index % 12 + 1, 1)


def period_start(period: BudgetPeriod, when: DateLike) -> datetime:
    """First instant of the period instance containing ``when``."""
    if period == BudgetPeriod.MONTHLY:
        return month_start(when)
    return datetime(when.year, 1, 1)


def period_end(period: BudgetPeriod, when: DateLike) -> datetime:
    """First instant *after* the period instance containing ``when``."""
    if period == BudgetPeriod.MONTHLY:
        return add_months(when, 1)
    return datetime(when.year + 1, 1, 1)


def period_bounds(period: BudgetPeriod, when: DateLike) -> tuple[datetime, datetime]:
    """Half-open ``[start, end)`` interval of the period containing ``when``."""
    moment = _as_datetime(when)
    return period_start(period, moment), period_end(period, moment)


def is_current_period(
    period: BudgetPeriod,
    when: DateLike,
    now: Optional[datetime] = None,
) -> bool:
    """Does ``when`` fall in the same period instance as ``now``?"""
    now = now or datetime.now()
    return period_key(period, when) == period_key(period, now)
