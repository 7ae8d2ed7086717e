"""
Data Models Package

This package contains the Pydantic models and value helpers used across
the expense tracker. Everything stored or returned by the core is one of
these shapes.
"""

from expense_tracker.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)
from expense_tracker.models.catalog import (
    CATEGORY_CATALOG,
    Category,
    categories_for,
    get_category,
)
from expense_tracker.models.ledger import (
    Budget,
    EntryKind,
    Transaction,
    TransactionEdit,
)
from expense_tracker.models.period import (
    BudgetPeriod,
    add_months,
    is_current_period,
    month_key,
    month_start,
    period_bounds,
    period_end,
    period_key,
    period_start,
)
from expense_tracker.models.views import (
    BudgetLine,
    BudgetProgress,
    BudgetSummary,
    LedgerFilter,
    LedgerView,
    MonthOption,
    MonthPoint,
    MonthSection,
    SearchResult,
)

__all__ = [
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
    # Catalog
    "CATEGORY_CATALOG",
    "Category",
    "categories_for",
    "get_category",
    # Ledger records
    "Budget",
    "EntryKind",
    "Transaction",
    "TransactionEdit",
    # Periods
    "BudgetPeriod",
    "add_months",
    "is_current_period",
    "month_key",
    "month_start",
    "period_bounds",
    "period_end",
    "period_key",
    "period_start",
    # Query results
    "BudgetLine",
    "BudgetProgress",
    "BudgetSummary",
    "LedgerFilter",
    "LedgerView",
    "MonthOption",
    "MonthPoint",
    "MonthSection",
    "SearchResult",
]
