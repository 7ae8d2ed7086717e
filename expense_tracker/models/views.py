"""
Query Result Models

Read-only shapes returned by the aggregation, search and ledger queries.
They are derived from a snapshot of the stores and never written back.

DESIGN DECISION: Display policy and financial totals are kept apart.
Anything clamped for a chart or a progress bar sits next to the unclamped
figure it came from, so numeric checks never have to trust a display value.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from expense_tracker.models.catalog import Category
from expense_tracker.models.ledger import Budget, Transaction
from expense_tracker.models.money import ZERO
from expense_tracker.models.period import BudgetPeriod, month_key


def month_title(month_start: datetime) -> str:
    """'February 2026'."""
    return f"{month_start:%B} {month_start.year}"


# =============================================================================
# TRENDS & GROUPING
# =============================================================================

class MonthPoint(BaseModel):
    """One bar of the spending trend chart."""

    month_start: datetime
    net_spend: Decimal = Field(
        ...,
        ge=0,
        description="Net spend clamped at zero (display only)"
    )
    net_total: Decimal = Field(
        ...,
        description="Unclamped expenses minus refunds"
    )

    @property
    def month_key(self) -> int:
        return month_key(self.month_start)


class MonthSection(BaseModel):
    """Ledger items of one calendar month, newest first."""

    month_start: datetime
    items: list[Transaction] = Field(default_factory=list)
    subtotal: Decimal = Field(
        ...,
        description="Unclamped sum of signed amounts"
    )

    @property
    def title(self) -> str:
        return month_title(self.month_start)

    @property
    def month_key(self) -> int:
        return month_key(self.month_start)


# =============================================================================
# BUDGETS
# =============================================================================

class BudgetProgress(BaseModel):
    """
    Budget usage for one category (or a whole card).

    Refund-heavy periods clamp ``used`` at zero before computing what is left.
    """

    used: Decimal = Field(..., description="Raw net spend, may be negative")
    used_clamped: Decimal = Field(..., ge=0)
    limit: Decimal = Field(..., ge=0)
    left: Decimal = Field(..., description="limit - used_clamped, negative when overspent")
    overspent: bool
    progress_fraction: float = Field(
        ...,
        ge=0.0,
        le=1.0,
        description="Progress bar fill (display only)"
    )
    percent: Optional[int] = Field(
        default=None,
        description="Rounded percentage of the limit used; None without a limit"
    )

    @property
    def remaining_display(self) -> Decimal:
        """What the UI shows under 'Left' or 'Overspent'."""
        return abs(self.left)


class BudgetLine(BaseModel):
    """One category row on the budgets screen."""

    category: Category
    budget: Optional[Budget] = None
    progress: BudgetProgress

    @property
    def has_budget(self) -> bool:
        return self.budget is not None


class BudgetSummary(BaseModel):
    """Budgets screen for one granularity, current period."""

    period: BudgetPeriod
    period_key: int
    period_start: datetime
    total: BudgetProgress
    lines: list[BudgetLine] = Field(default_factory=list)


# =============================================================================
# SEARCH & LEDGER
# =============================================================================

class SearchResult(BaseModel):
    """
    Result of a ledger search.

    An inactive search (blank query) and a search with no matches both have
    no items; ``is_searching`` tells them apart.
    """

    query: str = ""
    is_searching: bool = False
    items: list[Transaction] = Field(default_factory=list)
    total: Decimal = ZERO

    @property
    def count(self) -> int:
        return len(self.items)


class MonthOption(BaseModel):
    """Entry of the ledger's month filter menu."""

    month_start: datetime
    subtotal: Decimal

    @property
    def title(self) -> str:
        return month_title(self.month_start)


class LedgerFilter(BaseModel):
    """What the ledger is showing: all months, one month, or a search."""

    month: Optional[datetime] = Field(
        default=None,
        description="Any instant in the selected month; None = all months"
    )
    query: str = ""

    @property
    def is_searching(self) -> bool:
        return bool(self.query.strip())


class LedgerView(BaseModel):
    """Everything the ledger screen renders for one filter."""

    filter: LedgerFilter
    sections: list[MonthSection] = Field(default_factory=list)
    header_total: Decimal = Field(
        ...,
        description="Search total, month subtotal or all-time total"
    )
    selected_month: Optional[datetime] = None
    available_months: list[MonthOption] = Field(default_factory=list)
    search: Optional[SearchResult] = None
    can_go_older: bool = False
    can_go_newer: bool = False

    @property
    def is_searching(self) -> bool:
        return self.filter.is_searching

    @property
    def is_empty(self) -> bool:
        return not self.sections
