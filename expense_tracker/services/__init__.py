"""Services package."""

from expense_tracker.services.storage import (
    AuditStorageInterface,
    BudgetStorageInterface,
    ConstraintViolationError,
    NotFoundError,
    PersistenceError,
    SqlAuditStorage,
    SqlBudgetStorage,
    SqlDatabase,
    SqlTransactionStorage,
    StorageError,
    TransactionStorageInterface,
)

__all__ = [
    "AuditStorageInterface",
    "BudgetStorageInterface",
    "ConstraintViolationError",
    "NotFoundError",
    "PersistenceError",
    "SqlAuditStorage",
    "SqlBudgetStorage",
    "SqlDatabase",
    "SqlTransactionStorage",
    "StorageError",
    "TransactionStorageInterface",
]
