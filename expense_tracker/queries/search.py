"""
Ledger Search

Free-text search over the whole ledger (all months).

A transaction matches when the trimmed, lower-cased query is a substring
of ANY of:
- category name and category id
- subcategory (empty if none)
- note (empty if none)
- the signed amount as plain decimal text ("45.50", "-20.00")
- the date as "Feb 10, 2026"

A blank query means "not searching": no results, is_searching False.
"""

from datetime import datetime
from decimal import Decimal
from typing import Iterable

from expense_tracker.models.ledger import Transaction
from expense_tracker.models.money import sum_money
from expense_tracker.models.views import SearchResult

_MONTH_ABBREVIATIONS = (
    "Jan", "Feb", "Mar", "Apr", "May", "Jun",
    "Jul", "Aug", "Sep", "Oct", "Nov", "Dec",
)


def format_search_amount(amount: Decimal) -> str:
    """Plain decimal text, never scientific notation."""
    return format(amount, "f")


def format_search_date(when: datetime) -> str:
    """Fixed abbreviated date, independent of the process locale."""
    return f"{_MONTH_ABBREVIATIONS[when.month - 1]} {when.day}, {when.year}"


def searchable_fields(transaction: Transaction) -> tuple[str, ...]:
    return (
        transaction.category_name,
        transaction.category_id,
        transaction.subcategory_name or "",
        transaction.note or "",
        format_search_amount(transaction.signed_amount),
        format_search_date(transaction.date),
    )


def matches(transaction: Transaction, query: str) -> bool:
    """``query`` must already be trimmed and lower-cased."""
    return any(query in field.lower() for field in searchable_fields(transaction))


def search(transactions: Iterable[Transaction], query: str) -> SearchResult:
    """Search the ledger. Results are newest first."""
    needle = query.strip().lower()
    if not needle:
        return SearchResult(query="", is_searching=False)

    found = sorted(
        (tx for tx in transactions if matches(tx, needle)),
        key=lambda tx: (tx.date, tx.created_at),
        reverse=True,
    )
    return SearchResult(
        query=query.strip(),
        is_searching=True,
        items=found,
        total=sum_money(tx.signed_amount for tx in found),
    )
