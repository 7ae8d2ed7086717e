"""
Storage Services Package

Provides abstract interfaces and the SQL implementation for data storage.
SQLite is the default backend, but the interfaces keep it swappable.
"""

from expense_tracker.services.storage.interface import (
    AuditStorageInterface,
    BudgetStorageInterface,
    ConstraintViolationError,
    NotFoundError,
    PersistenceError,
    StorageError,
    TransactionStorageInterface,
)
from expense_tracker.services.storage.sql import (
    SqlAuditStorage,
    SqlBudgetStorage,
    SqlDatabase,
    SqlTransactionStorage,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "BudgetStorageInterface",
    "TransactionStorageInterface",
    # Exceptions
    "ConstraintViolationError",
    "NotFoundError",
    "PersistenceError",
    "StorageError",
    # SQL implementation
    "SqlAuditStorage",
    "SqlBudgetStorage",
    "SqlDatabase",
    "SqlTransactionStorage",
]
