"""
Audit Logger

DESIGN DECISION: Every mutation of the ledger or the budgets is logged.
This provides:
1. Traceability of every add, edit, delete and reset
2. Debugging capability when a save fails
3. A record of bulk resets, which cannot be undone

The audit logger:
- Always writes a structured local log line
- Persists to audit storage when one is configured
- Gracefully handles audit storage failures (a failed audit write never
  turns a successful save into an error, and never hides a failed one)
"""

import logging
from decimal import Decimal
from typing import Optional
from uuid import UUID, uuid4

import structlog

from expense_tracker.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from expense_tracker.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


def configure_logging(level: str = "INFO") -> None:
    """Route structlog output through stdlib logging at ``level``."""
    logging.basicConfig(format="%(message)s")
    logging.getLogger().setLevel(level.upper())


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage (for persistence), if configured
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("expense_tracker.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            return await self._storage.append_event(event)

        return True

    async def log_transaction_added(
        self,
        transaction_id: UUID,
        category_id: str,
        signed_amount: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.transaction_added(
            transaction_id=transaction_id,
            category_id=category_id,
            signed_amount=signed_amount,
            correlation_id=correlation_id,
        ))

    async def log_transaction_updated(
        self,
        transaction_id: UUID,
        changed_fields: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.transaction_updated(
            transaction_id=transaction_id,
            changed_fields=changed_fields,
            correlation_id=correlation_id,
        ))

    async def log_transaction_deleted(
        self,
        transaction_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.transaction_deleted(
            transaction_id=transaction_id,
            correlation_id=correlation_id,
        ))

    async def log_transactions_cleared(
        self,
        deleted_count: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.transactions_cleared(
            deleted_count=deleted_count,
            correlation_id=correlation_id,
        ))

    async def log_budget_set(
        self,
        budget_id: UUID,
        category_id: str,
        period: str,
        period_key: int,
        limit: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.budget_set(
            budget_id=budget_id,
            category_id=category_id,
            period=period,
            period_key=period_key,
            limit=limit,
            correlation_id=correlation_id,
        ))

    async def log_budgets_cleared(
        self,
        deleted_count: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.budgets_cleared(
            deleted_count=deleted_count,
            correlation_id=correlation_id,
        ))

    async def log_budget_upsert_retried(
        self,
        category_id: str,
        period: str,
        period_key: int,
        attempt: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.budget_upsert_retried(
            category_id=category_id,
            period=period,
            period_key=period_key,
            attempt=attempt,
            correlation_id=correlation_id,
        ))

    async def log_validation_failed(
        self,
        operation: str,
        error: Exception,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.validation_failed(
            operation=operation,
            error_type=type(error).__name__,
            error_message=str(error),
            correlation_id=correlation_id,
        ))

    async def log_save_failed(
        self,
        operation: str,
        error: Exception,
        entity_type: Optional[str] = None,
        entity_id: Optional[UUID] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.save_failed(
            operation=operation,
            error_message=str(error),
            entity_type=entity_type,
            entity_id=entity_id,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a user action (e.g. saving a budget) and pass
    it to every event the action produces, including retries.
    """
    return uuid4()
