"""Read-only ledger queries: aggregation, search and ledger navigation."""

from expense_tracker.queries.aggregation import (
    SeriesRange,
    all_time_total,
    budget_progress,
    budget_summary,
    current_period_used,
    month_grouping,
    month_series,
    month_starts,
    month_subtotal,
    series_total,
    sum_for_category,
    sum_in_range,
)
from expense_tracker.queries.ledger import LedgerNavigator, build_ledger_view
from expense_tracker.queries.search import matches, search

__all__ = [
    "LedgerNavigator",
    "SeriesRange",
    "all_time_total",
    "budget_progress",
    "budget_summary",
    "build_ledger_view",
    "current_period_used",
    "matches",
    "month_grouping",
    "month_series",
    "month_starts",
    "month_subtotal",
    "search",
    "series_total",
    "sum_for_category",
    "sum_in_range",
]
