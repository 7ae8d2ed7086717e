"""
Expense Tracker - Core Package

The core of a personal expense tracker: a ledger of signed transactions,
per-period category budgets, spending trends and free-text search,
persisted in a local SQLite database.

DESIGN PRINCIPLES:
1. Money is exact (Decimal, never float)
2. Validate before touching the store
3. A failed save is an error, never a silent success
4. Reads are pure functions over a fresh snapshot
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Expense Tracker Team"
