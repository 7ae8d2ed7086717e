"""
Ledger View and Month Navigation

The ledger shows one of three things:
1. A search across all months (a non-blank query wins over everything)
2. A single calendar month, browsable month-by-month
3. Every month

build_ledger_view() is pure. LedgerNavigator only holds the selection
(month + query) and always works against the snapshot it is handed.
"""

from datetime import datetime
from typing import Optional, Sequence

from expense_tracker.models.ledger import Transaction
from expense_tracker.models.period import BudgetPeriod, month_start, period_bounds
from expense_tracker.models.views import LedgerFilter, LedgerView, MonthOption
from expense_tracker.queries.aggregation import (
    all_time_total,
    month_grouping,
    month_starts,
    month_subtotal,
    sum_in_range,
)
from expense_tracker.queries.search import search


def build_ledger_view(
    transactions: Sequence[Transaction],
    ledger_filter: Optional[LedgerFilter] = None,
) -> LedgerView:
    """Sections, header total and navigation flags for one filter."""
    ledger_filter = ledger_filter or LedgerFilter()
    months = month_starts(transactions)
    options = [
        MonthOption(month_start=month, subtotal=month_subtotal(transactions, month))
        for month in months
    ]

    if ledger_filter.is_searching:
        result = search(transactions, ledger_filter.query)
        return LedgerView(
            filter=ledger_filter,
            sections=month_grouping(result.items),
            header_total=result.total,
            available_months=options,
            search=result,
        )

    if ledger_filter.month is not None:
        selected = month_start(ledger_filter.month)
        start, end = period_bounds(BudgetPeriod.MONTHLY, selected)
        items = [tx for tx in transactions if start <= tx.date < end]
        index = months.index(selected) if selected in months else None
        return LedgerView(
            filter=ledger_filter,
            sections=month_grouping(items),
            header_total=sum_in_range(items, start, end),
            selected_month=selected,
            available_months=options,
            can_go_older=index is not None and index < len(months) - 1,
            can_go_newer=index is not None and index > 0,
        )

    return LedgerView(
        filter=ledger_filter,
        sections=month_grouping(transactions),
        header_total=all_time_total(transactions),
        available_months=options,
    )


class LedgerNavigator:
    """
    Month-by-month navigation state for the ledger screen.

    Searching forces "all months": setting a non-blank query clears the
    selected month, and older/newer do nothing while a search is active.
    """

    def __init__(self) -> None:
        self._selected_month: Optional[datetime] = None
        self._query = ""

    @property
    def selected_month(self) -> Optional[datetime]:
        return self._selected_month

    @property
    def query(self) -> str:
        return self._query

    @property
    def filter(self) -> LedgerFilter:
        return LedgerFilter(month=self._selected_month, query=self._query)

    @property
    def is_searching(self) -> bool:
        return self.filter.is_searching

    def select_month(self, month: Optional[datetime]) -> None:
        self._selected_month = month_start(month) if month is not None else None

    def show_all(self) -> None:
        self._selected_month = None

    def set_query(self, query: str) -> None:
        self._query = query
        if query.strip():
            self._selected_month = None

    def go_older(self, transactions: Sequence[Transaction]) -> bool:
        """Step to the previous month that has transactions. False at the end."""
        return self._step(transactions, +1)

    def go_newer(self, transactions: Sequence[Transaction]) -> bool:
        """Step to the next month that has transactions. False at the end."""
        return self._step(transactions, -1)

    def _step(self, transactions: Sequence[Transaction], direction: int) -> bool:
        if self.is_searching or self._selected_month is None:
            return False
        months = month_starts(transactions)
        if self._selected_month not in months:
            return False
        target = months.index(self._selected_month) + direction
        if not 0 <= target < len(months):
            return False
        self._selected_month = months[target]
        return True

    def view(self, transactions: Sequence[Transaction]) -> LedgerView:
        return build_ledger_view(transactions, self.filter)
