"""
Main Orchestrator for Expense Tracker

This module ties the components together and exposes the calls the
presentation layer makes:
1. Ledger mutations (add, edit, delete, bulk delete)
2. Budget mutations (set budget for a period instance)
3. Reads (ledger listing, search, spending trend, budget summary)

DESIGN DECISION: The orchestrator enforces the boundaries:
- Input is validated BEFORE any store is touched
- A failed save is raised to the caller, never logged and swallowed
- Reads are pulled from a fresh snapshot on every call; nothing is cached
  and nothing is pushed to observers
- Every mutation is audited, including the failed ones
"""

from datetime import datetime
from decimal import Decimal
from typing import Callable, Optional, Union
from uuid import UUID

import structlog
from pydantic import ValidationError as ModelValidationError
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from expense_tracker.audit import AuditLogger, configure_logging, create_correlation_id
from expense_tracker.config import Settings, get_settings
from expense_tracker.models.ledger import Budget, EntryKind, Transaction, TransactionEdit
from expense_tracker.models.period import BudgetPeriod, period_bounds, period_key, period_start
from expense_tracker.models.views import (
    BudgetSummary,
    LedgerFilter,
    LedgerView,
    MonthPoint,
    SearchResult,
)
from expense_tracker.queries import aggregation
from expense_tracker.queries.search import search as search_ledger
from expense_tracker.queries.ledger import build_ledger_view
from expense_tracker.services.storage import (
    BudgetStorageInterface,
    ConstraintViolationError,
    NotFoundError,
    SqlAuditStorage,
    SqlBudgetStorage,
    SqlDatabase,
    SqlTransactionStorage,
    StorageError,
    TransactionStorageInterface,
)
from expense_tracker.validation import LedgerValidator, ValidationError, validate_category

logger = structlog.get_logger(__name__)

BUDGET_UPSERT_ATTEMPTS = 3


class ExpenseTracker:
    """
    Entry point for every presentation-layer action.

    Mutations are async because the stores are; the read-side math is pure
    and runs on the snapshot each call loads.
    """

    def __init__(
        self,
        transaction_storage: TransactionStorageInterface,
        budget_storage: BudgetStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
        validator: Optional[LedgerValidator] = None,
        clock: Callable[[], datetime] = datetime.now,
        default_series_months: int = 6,
    ):
        self._transactions = transaction_storage
        self._budgets = budget_storage
        self._audit_logger = audit_logger
        self._validator = validator or LedgerValidator()
        self._clock = clock
        self._default_series_months = default_series_months

    def now(self) -> datetime:
        return self._clock()

    # =========================================================================
    # LEDGER MUTATIONS
    # =========================================================================

    async def add_transaction(
        self,
        date: datetime,
        amount: Union[str, Decimal, int],
        category_id: str,
        kind: EntryKind = EntryKind.EXPENSE,
        subcategory_name: Optional[str] = None,
        note: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> Transaction:
        """
        Validate and save a new transaction.

        ``amount`` is the positive amount the user typed; ``kind`` signs it.

        Raises:
            InvalidAmountError, InvalidCategoryError: Nothing was saved
            StorageError: The save failed and was rolled back
        """
        correlation_id = correlation_id or create_correlation_id()

        try:
            transaction = self._validator.build_transaction(
                date=date,
                amount=amount,
                category_id=category_id,
                kind=kind,
                subcategory_name=subcategory_name,
                note=note,
            )
        except ValidationError as e:
            await self._audit_validation_failed("add_transaction", e, correlation_id)
            raise

        try:
            saved = await self._transactions.insert(transaction)
        except StorageError as e:
            await self._audit_save_failed("add_transaction", e, "transaction", transaction.id, correlation_id)
            raise

        if self._audit_logger:
            await self._audit_logger.log_transaction_added(
                transaction_id=saved.id,
                category_id=saved.category_id,
                signed_amount=saved.signed_amount,
                correlation_id=correlation_id,
            )
        return saved

    async def edit_transaction(
        self,
        transaction_id: UUID,
        edit: Optional[TransactionEdit] = None,
        correlation_id: Optional[UUID] = None,
        **fields,
    ) -> Transaction:
        """
        Change any field of a transaction except id and created_at.

        Pass a TransactionEdit, or the fields as keyword arguments.

        Raises:
            NotFoundError: No transaction has this id
            ValidationError: The edit is invalid; the stored row is unchanged
            StorageError: The save failed and was rolled back
        """
        correlation_id = correlation_id or create_correlation_id()

        try:
            edit = edit or TransactionEdit(**fields)
        except ModelValidationError as e:
            error = ValidationError(str(e))
            await self._audit_validation_failed("edit_transaction", error, correlation_id)
            raise error from e

        existing = await self._transactions.get(transaction_id)
        if existing is None:
            raise NotFoundError(f"Transaction {transaction_id} not found")

        try:
            replacement = self._validator.apply_edit(existing, edit)
        except ValidationError as e:
            await self._audit_validation_failed("edit_transaction", e, correlation_id)
            raise

        try:
            saved = await self._transactions.update(replacement)
        except StorageError as e:
            await self._audit_save_failed("edit_transaction", e, "transaction", transaction_id, correlation_id)
            raise

        if self._audit_logger:
            await self._audit_logger.log_transaction_updated(
                transaction_id=saved.id,
                changed_fields=edit.changed_fields(),
                correlation_id=correlation_id,
            )
        return saved

    async def delete_transaction(
        self,
        transaction_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """
        Permanently delete one transaction.

        Raises:
            NotFoundError: No transaction has this id
        """
        correlation_id = correlation_id or create_correlation_id()

        try:
            await self._transactions.delete(transaction_id)
        except StorageError as e:
            await self._audit_save_failed("delete_transaction", e, "transaction", transaction_id, correlation_id)
            raise

        if self._audit_logger:
            await self._audit_logger.log_transaction_deleted(
                transaction_id=transaction_id,
                correlation_id=correlation_id,
            )

    async def delete_all_transactions(self) -> int:
        deleted = await self._transactions.delete_all()
        if self._audit_logger:
            await self._audit_logger.log_transactions_cleared(deleted_count=deleted)
        return deleted

    # =========================================================================
    # BUDGET MUTATIONS
    # =========================================================================

    async def set_budget(
        self,
        category_id: str,
        period: Optional[BudgetPeriod],
        limit: Union[str, Decimal, int],
        when: Optional[datetime] = None,
        correlation_id: Optional[UUID] = None,
    ) -> Budget:
        """
        Create or update the budget of one period instance.

        ``period`` defaults to the category's tracking granularity and
        ``when`` to now. A lost upsert race (ConstraintViolationError) is
        retried: the retry re-reads and updates the winner's row.

        Raises:
            InvalidAmountError, InvalidCategoryError: Nothing was saved
            StorageError: The save failed after all retries
        """
        correlation_id = correlation_id or create_correlation_id()

        try:
            category = validate_category(category_id)
            parsed_limit = self._validator.parse_limit(limit)
        except ValidationError as e:
            await self._audit_validation_failed("set_budget", e, correlation_id)
            raise

        period = period or category.tracking
        start = period_start(period, when or self.now())
        key = period_key(period, start)

        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(BUDGET_UPSERT_ATTEMPTS),
                wait=wait_exponential(multiplier=0.05, max=1),
                retry=retry_if_exception_type(ConstraintViolationError),
                reraise=True,
            ):
                with attempt:
                    attempt_number = attempt.retry_state.attempt_number
                    if attempt_number > 1 and self._audit_logger:
                        await self._audit_logger.log_budget_upsert_retried(
                            category_id=category.id,
                            period=period.value,
                            period_key=key,
                            attempt=attempt_number,
                            correlation_id=correlation_id,
                        )
                    budget = await self._budgets.upsert(category.id, period, start, parsed_limit)
        except StorageError as e:
            await self._audit_save_failed("set_budget", e, "budget", None, correlation_id)
            raise

        if self._audit_logger:
            await self._audit_logger.log_budget_set(
                budget_id=budget.id,
                category_id=budget.category_id,
                period=budget.period.value,
                period_key=budget.period_key,
                limit=budget.limit,
                correlation_id=correlation_id,
            )
        return budget

    async def get_budget(
        self,
        category_id: str,
        period: Optional[BudgetPeriod] = None,
        when: Optional[datetime] = None,
    ) -> Optional[Budget]:
        """Budget of the period instance containing ``when`` (default now)."""
        category = validate_category(category_id)
        period = period or category.tracking
        return await self._budgets.fetch(category.id, period, period_key(period, when or self.now()))

    async def delete_all_budgets(self) -> int:
        deleted = await self._budgets.delete_all()
        if self._audit_logger:
            await self._audit_logger.log_budgets_cleared(deleted_count=deleted)
        return deleted

    async def reset_all(self) -> tuple[int, int]:
        """Delete every transaction and budget. Returns (transactions, budgets)."""
        return await self.delete_all_transactions(), await self.delete_all_budgets()

    # =========================================================================
    # READS
    # =========================================================================

    async def snapshot(self) -> list[Transaction]:
        """A detached copy of the whole ledger, oldest first."""
        return await self._transactions.all()

    async def counts(self) -> dict[str, int]:
        return {
            "transactions": await self._transactions.count(),
            "budgets": await self._budgets.count(),
        }

    async def list_ledger(self, ledger_filter: Optional[LedgerFilter] = None) -> LedgerView:
        return build_ledger_view(await self.snapshot(), ledger_filter)

    async def search(self, query: str) -> SearchResult:
        return search_ledger(await self.snapshot(), query)

    async def monthly_series(self, months_back: Optional[int] = None) -> list[MonthPoint]:
        """Spending trend ending with the current month."""
        if months_back is None:
            months_back = self._default_series_months
        return aggregation.month_series(
            await self.snapshot(),
            months_back,
            now=self.now(),
        )

    async def current_period_used(self, category_id: str) -> Decimal:
        """Net spend of a category in its current tracking period."""
        category = validate_category(category_id)
        start, end = period_bounds(category.tracking, self.now())
        in_period = await self._transactions.list_range(start, end, category.id)
        return aggregation.current_period_used(in_period, category, now=self.now())

    async def budget_summary(self, period: BudgetPeriod) -> BudgetSummary:
        now = self.now()
        start, end = period_bounds(period, now)
        transactions = await self._transactions.list_range(start, end)
        budgets = await self._budgets.list_for_period(period, period_key(period, now))
        return aggregation.budget_summary(transactions, budgets, period, now=now)

    # =========================================================================
    # AUDIT HELPERS
    # =========================================================================

    async def _audit_validation_failed(
        self,
        operation: str,
        error: Exception,
        correlation_id: UUID,
    ) -> None:
        logger.info("validation_failed", operation=operation, error=str(error))
        if self._audit_logger:
            await self._audit_logger.log_validation_failed(
                operation=operation,
                error=error,
                correlation_id=correlation_id,
            )

    async def _audit_save_failed(
        self,
        operation: str,
        error: Exception,
        entity_type: Optional[str],
        entity_id: Optional[UUID],
        correlation_id: UUID,
    ) -> None:
        logger.error("save_failed", operation=operation, error=str(error))
        if self._audit_logger:
            await self._audit_logger.log_save_failed(
                operation=operation,
                error=error,
                entity_type=entity_type,
                entity_id=entity_id,
                correlation_id=correlation_id,
            )


def create_tracker(
    settings: Optional[Settings] = None,
    database: Optional[SqlDatabase] = None,
    clock: Callable[[], datetime] = datetime.now,
) -> ExpenseTracker:
    """
    Factory function to create the SQL-backed tracker from configuration.

    Creates the schema if needed. Audit events go to the same database
    unless disabled in the app settings.
    """
    settings = settings or get_settings()
    app_settings = settings.app
    configure_logging(app_settings.log_level)

    if database is None:
        storage_settings = settings.storage
        database = SqlDatabase(
            url=storage_settings.url,
            busy_timeout_seconds=storage_settings.busy_timeout_seconds,
            echo=storage_settings.echo,
        )
    database.create_schema()

    audit_storage = SqlAuditStorage(database) if app_settings.audit_enabled else None

    return ExpenseTracker(
        transaction_storage=SqlTransactionStorage(database),
        budget_storage=SqlBudgetStorage(database),
        audit_logger=AuditLogger(audit_storage),
        clock=clock,
        default_series_months=app_settings.default_series_months,
    )
