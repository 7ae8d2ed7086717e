"""
Aggregation Engine

DESIGN DECISION: Aggregation is a set of PURE functions over a snapshot.
They take a list of transactions (and budgets), never touch storage and
never mutate their input. Callers re-run them after every change; there is
no cache to invalidate.

Every time window is half-open: [start, end). A transaction dated exactly
at ``end`` belongs to the next window, which keeps sums additive:
sum(a, c) == sum(a, b) + sum(b, c).

``now`` is injectable everywhere the current period matters.
"""

from datetime import datetime
from decimal import Decimal
from enum import IntEnum
from typing import Iterable, Optional, Sequence

from expense_tracker.models.catalog import Category, categories_for
from expense_tracker.models.ledger import Budget, Transaction
from expense_tracker.models.money import ZERO, clamp_zero, ratio, sum_money
from expense_tracker.models.period import (
    BudgetPeriod,
    add_months,
    month_key,
    month_start,
    period_bounds,
    period_key,
)
from expense_tracker.models.views import (
    BudgetLine,
    BudgetProgress,
    BudgetSummary,
    MonthPoint,
    MonthSection,
)


class SeriesRange(IntEnum):
    """Preset trend ranges offered by the insights screen."""
    LAST_3 = 3
    LAST_6 = 6
    LAST_12 = 12

    @property
    def title(self) -> str:
        return f"{self.value}M"


# =============================================================================
# SUMS
# =============================================================================

def sum_in_range(
    transactions: Iterable[Transaction],
    start: datetime,
    end: datetime,
) -> Decimal:
    """Sum of signed amounts with date in [start, end)."""
    return sum_money(
        tx.signed_amount for tx in transactions
        if start <= tx.date < end
    )


def sum_for_category(
    transactions: Iterable[Transaction],
    category_id: str,
    start: datetime,
    end: datetime,
) -> Decimal:
    """sum_in_range restricted to one category."""
    return sum_in_range(
        (tx for tx in transactions if tx.category_id == category_id),
        start,
        end,
    )


def current_period_used(
    transactions: Iterable[Transaction],
    category: Category,
    now: Optional[datetime] = None,
) -> Decimal:
    """Net spend of a category in its current tracking period."""
    start, end = period_bounds(category.tracking, now or datetime.now())
    return sum_for_category(transactions, category.id, start, end)


def all_time_total(transactions: Iterable[Transaction]) -> Decimal:
    return sum_money(tx.signed_amount for tx in transactions)


def month_subtotal(transactions: Iterable[Transaction], month: datetime) -> Decimal:
    """Unclamped net of the calendar month containing ``month``."""
    start, end = period_bounds(BudgetPeriod.MONTHLY, month)
    return sum_in_range(transactions, start, end)


# =============================================================================
# MONTH SERIES & GROUPING
# =============================================================================

def month_series(
    transactions: Iterable[Transaction],
    months_back: int,
    now: Optional[datetime] = None,
) -> list[MonthPoint]:
    """
    Rolling monthly net spend for the trend chart.

    Exactly ``months_back`` points, oldest first, ending with the current
    month. Months without transactions are zero. ``net_spend`` is clamped at
    zero for display; ``net_total`` keeps the real figure.
    """
    if months_back < 1:
        raise ValueError(f"months_back must be at least 1, got {months_back}")

    this_month = month_start(now or datetime.now())
    starts = [add_months(this_month, -(months_back - 1 - offset)) for offset in range(months_back)]

    sums: dict[int, Decimal] = {}
    for tx in transactions:
        key = month_key(tx.date)
        sums[key] = sums.get(key, ZERO) + tx.signed_amount

    points = []
    for start in starts:
        net = sums.get(month_key(start), ZERO)
        points.append(MonthPoint(month_start=start, net_spend=clamp_zero(net), net_total=net))
    return points


def series_total(points: Sequence[MonthPoint]) -> Decimal:
    """Chart header figure: the sum of the bars as displayed."""
    return sum_money(point.net_spend for point in points)


def month_starts(transactions: Iterable[Transaction]) -> list[datetime]:
    """Distinct calendar months that have transactions, newest first."""
    return sorted({month_start(tx.date) for tx in transactions}, reverse=True)


def month_grouping(transactions: Iterable[Transaction]) -> list[MonthSection]:
    """
    Group the ledger by calendar month.

    Newest month first; inside a month, newest transaction first.
    Subtotals are NOT clamped.
    """
    groups: dict[datetime, list[Transaction]] = {}
    for tx in transactions:
        groups.setdefault(month_start(tx.date), []).append(tx)

    sections = []
    for start in sorted(groups, reverse=True):
        items = sorted(groups[start], key=lambda tx: (tx.date, tx.created_at), reverse=True)
        sections.append(MonthSection(
            month_start=start,
            items=items,
            subtotal=all_time_total(items),
        ))
    return sections


# =============================================================================
# BUDGETS
# =============================================================================

def budget_progress(used: Decimal, limit: Decimal) -> BudgetProgress:
    """
    Usage of a budget.

    left = limit - max(0, used); overspent when left < 0.
    The progress fraction is used/limit clamped to [0, 1], or 0 without a
    limit.
    """
    used_clamped = clamp_zero(used)
    left = limit - used_clamped
    fraction = min(max(ratio(used_clamped, limit), 0.0), 1.0)
    percent = round(ratio(used_clamped, limit) * 100) if limit > ZERO else None

    return BudgetProgress(
        used=used,
        used_clamped=used_clamped,
        limit=limit,
        left=left,
        overspent=left < ZERO,
        progress_fraction=fraction,
        percent=percent,
    )


def budget_summary(
    transactions: Sequence[Transaction],
    budgets: Iterable[Budget],
    period: BudgetPeriod,
    now: Optional[datetime] = None,
) -> BudgetSummary:
    """
    Budgets screen for one granularity.

    One line per catalog category tracked at ``period``, using the budget of
    the current period instance (limit 0 when unset). The card total adds up
    the limits of all current-period budgets and the spend of all categories
    tracked at ``period``.
    """
    now = now or datetime.now()
    key = period_key(period, now)
    start, end = period_bounds(period, now)

    current = {
        budget.category_id: budget
        for budget in budgets
        if budget.period == period and budget.period_key == key
    }

    lines = []
    for category in categories_for(period):
        budget = current.get(category.id)
        used = sum_for_category(transactions, category.id, start, end)
        lines.append(BudgetLine(
            category=category,
            budget=budget,
            progress=budget_progress(used, budget.limit if budget else ZERO),
        ))

    tracked_ids = {category.id for category in categories_for(period)}
    total_used = sum_in_range(
        (tx for tx in transactions if tx.category_id in tracked_ids),
        start,
        end,
    )
    total_limit = sum_money(budget.limit for budget in current.values())

    return BudgetSummary(
        period=period,
        period_key=key,
        period_start=start,
        total=budget_progress(total_used, total_limit),
        lines=lines,
    )
