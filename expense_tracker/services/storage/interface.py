"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Keep the ledger logic independent of the database engine
2. Use a throwaway SQLite file for testing
3. Swap SQLite for a server database without touching the core

The interface is intentionally simple - we're not building a full ORM.
Just the operations the ledger and the budgets need.

CONTRACT: Every mutation is atomic. It is either durably committed before
the call returns, or it raises and nothing of it is visible to later reads.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from expense_tracker.models.audit import AuditEvent
from expense_tracker.models.ledger import Budget, Transaction
from expense_tracker.models.period import BudgetPeriod


class TransactionStorageInterface(ABC):
    """
    Abstract interface for the transaction ledger.

    The store exclusively owns the transactions. Everything it returns is
    a detached copy; mutating a returned object does not change the store.
    """

    @abstractmethod
    async def insert(self, transaction: Transaction) -> Transaction:
        """
        Save a new transaction.

        Raises:
            ConstraintViolationError: If the id already exists
            PersistenceError: If the commit fails
        """
        pass

    @abstractmethod
    async def update(self, transaction: Transaction) -> Transaction:
        """
        Replace a stored transaction by id (all fields but id/created_at).

        Raises:
            NotFoundError: If no transaction has this id
            PersistenceError: If the commit fails
        """
        pass

    @abstractmethod
    async def delete(self, transaction_id: UUID) -> None:
        """
        Permanently delete a transaction.

        Raises:
            NotFoundError: If no transaction has this id
            PersistenceError: If the commit fails
        """
        pass

    @abstractmethod
    async def delete_all(self) -> int:
        """Delete every transaction. Returns how many were removed."""
        pass

    @abstractmethod
    async def get(self, transaction_id: UUID) -> Optional[Transaction]:
        """Retrieve a transaction by id, None if missing."""
        pass

    @abstractmethod
    async def all(self) -> list[Transaction]:
        """Every transaction, ordered by date ascending (ties by created_at)."""
        pass

    @abstractmethod
    async def list_range(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        category_id: Optional[str] = None,
    ) -> list[Transaction]:
        """
        Transactions with date in [start, end), optionally for one category.

        Either bound may be None (open). Ordered like all().
        """
        pass

    @abstractmethod
    async def count(self) -> int:
        """Number of stored transactions."""
        pass


class BudgetStorageInterface(ABC):
    """
    Abstract interface for budgets.

    (category_id, period, period_key) is unique. The store enforces it.
    """

    @abstractmethod
    async def upsert(
        self,
        category_id: str,
        period: BudgetPeriod,
        period_start: datetime,
        limit: Decimal,
    ) -> Budget:
        """
        Create or update the budget for one period instance.

        The period key is derived from period_start. An existing row for
        the same key gets its limit and period_start replaced; otherwise a
        row is inserted. Read and write happen in one transaction.

        Raises:
            ConstraintViolationError: If a concurrent writer inserted the
                same key first. Re-read and retry.
            PersistenceError: If the commit fails
        """
        pass

    @abstractmethod
    async def fetch(
        self,
        category_id: str,
        period: BudgetPeriod,
        period_key: int,
    ) -> Optional[Budget]:
        """The budget for one period instance, None if unset."""
        pass

    @abstractmethod
    async def list_for_period(
        self,
        period: BudgetPeriod,
        period_key: int,
    ) -> list[Budget]:
        """Every category's budget for one period instance."""
        pass

    @abstractmethod
    async def all(self) -> list[Budget]:
        """Every stored budget."""
        pass

    @abstractmethod
    async def count(self) -> int:
        """Number of stored budgets."""
        pass

    @abstractmethod
    async def delete_all(self) -> int:
        """Delete every budget. Returns how many were removed."""
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        """Events about one entity, chronological."""
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """The most recent events, newest first."""
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class PersistenceError(StorageError):
    """The storage backend failed to read or commit."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class ConstraintViolationError(StorageError):
    """A uniqueness constraint rejected the write."""
    pass
