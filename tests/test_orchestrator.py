"""
Tests for the orchestrator flows.

The stores are real (SQLite under tmp_path); only failure paths use
stand-in budget stores.
"""

import pytest
import pytest_asyncio
from datetime import datetime
from decimal import Decimal
from uuid import uuid4

from expense_tracker.config import Settings
from expense_tracker.models import AuditEventType, BudgetPeriod, EntryKind, LedgerFilter
from expense_tracker.orchestrator import ExpenseTracker, create_tracker
from expense_tracker.audit import AuditLogger
from expense_tracker.services.storage import (
    BudgetStorageInterface,
    ConstraintViolationError,
    NotFoundError,
    PersistenceError,
)
from expense_tracker.validation import InvalidAmountError, InvalidCategoryError, ValidationError

from conftest import NOW
from seeding import seed_budgets, seed_transactions


async def event_types(audit_storage) -> list[AuditEventType]:
    return [event.event_type for event in await audit_storage.get_recent_events()]


class RacingBudgetStorage(BudgetStorageInterface):
    """Loses the first ``failures`` upserts to a concurrent writer."""

    def __init__(self, inner: BudgetStorageInterface, failures: int = 1, error: Exception = None):
        self._inner = inner
        self._failures = failures
        self._error = error or ConstraintViolationError("UNIQUE constraint failed: budgets")
        self.calls = 0

    async def upsert(self, category_id, period, period_start, limit):
        self.calls += 1
        if self.calls <= self._failures:
            raise self._error
        return await self._inner.upsert(category_id, period, period_start, limit)

    async def fetch(self, category_id, period, period_key):
        return await self._inner.fetch(category_id, period, period_key)

    async def list_for_period(self, period, period_key):
        return await self._inner.list_for_period(period, period_key)

    async def all(self):
        return await self._inner.all()

    async def count(self):
        return await self._inner.count()

    async def delete_all(self):
        return await self._inner.delete_all()


class TestLedgerFlows:
    """Tests for add, edit and delete."""

    @pytest.mark.asyncio
    async def test_add_then_current_period_used(self, tracker, audit_storage):
        tx = await tracker.add_transaction(datetime(2026, 2, 10), "45.50", "Groceries")

        assert tx.signed_amount == Decimal("45.50")
        assert await tracker.current_period_used("Groceries") == Decimal("45.50")
        assert AuditEventType.TRANSACTION_ADDED in await event_types(audit_storage)

    @pytest.mark.asyncio
    async def test_refund_reduces_usage(self, tracker):
        await tracker.add_transaction(datetime(2026, 2, 10), "45.50", "Groceries")
        await tracker.add_transaction(datetime(2026, 2, 11), "20", "Groceries", kind=EntryKind.REFUND)

        assert await tracker.current_period_used("Groceries") == Decimal("25.50")
        series = await tracker.monthly_series(1)
        assert series[0].net_spend == Decimal("25.50")

    @pytest.mark.asyncio
    async def test_invalid_amount_leaves_no_trace(self, tracker, audit_storage):
        with pytest.raises(InvalidAmountError):
            await tracker.add_transaction(datetime(2026, 2, 10), "-3", "Groceries")

        assert (await tracker.counts())["transactions"] == 0
        assert await event_types(audit_storage) == [AuditEventType.VALIDATION_FAILED]

    @pytest.mark.asyncio
    async def test_invalid_subcategory_is_rejected(self, tracker):
        with pytest.raises(InvalidCategoryError):
            await tracker.add_transaction(datetime(2026, 2, 10), "3", "Groceries", subcategory_name="Train")

    @pytest.mark.asyncio
    async def test_edit(self, tracker, audit_storage):
        tx = await tracker.add_transaction(datetime(2026, 2, 10), "45.50", "Groceries")

        edited = await tracker.edit_transaction(tx.id, amount="60", note="weekly shop")

        assert edited.id == tx.id
        assert edited.created_at == tx.created_at
        assert edited.signed_amount == Decimal("60.00")
        assert (await tracker.snapshot())[0].note == "weekly shop"

        events = await audit_storage.get_events_by_entity("transaction", tx.id)
        updated = [e for e in events if e.event_type == AuditEventType.TRANSACTION_UPDATED]
        assert updated[0].details["changed_fields"] == ["amount", "note"]

    @pytest.mark.asyncio
    async def test_edit_missing_transaction(self, tracker):
        with pytest.raises(NotFoundError):
            await tracker.edit_transaction(uuid4(), note="nothing here")

    @pytest.mark.asyncio
    async def test_edit_unknown_field(self, tracker):
        tx = await tracker.add_transaction(datetime(2026, 2, 10), "1", "Groceries")
        with pytest.raises(ValidationError):
            await tracker.edit_transaction(tx.id, colour="red")

    @pytest.mark.asyncio
    async def test_edit_rejects_float_amount(self, tracker, audit_storage):
        tx = await tracker.add_transaction(datetime(2026, 2, 10), "45.50", "Groceries")

        with pytest.raises(ValidationError):
            await tracker.edit_transaction(tx.id, amount=0.1)

        assert (await tracker.snapshot())[0].signed_amount == Decimal("45.50")
        assert AuditEventType.VALIDATION_FAILED in await event_types(audit_storage)

    @pytest.mark.asyncio
    async def test_edit_rejects_blank_category(self, tracker):
        tx = await tracker.add_transaction(datetime(2026, 2, 10), "45.50", "Groceries")

        with pytest.raises(InvalidCategoryError):
            await tracker.edit_transaction(tx.id, category_id="")

        assert (await tracker.snapshot())[0].category_id == "Groceries"

    @pytest.mark.asyncio
    async def test_oversized_amount_is_audited(self, tracker, audit_storage):
        with pytest.raises(InvalidAmountError):
            await tracker.add_transaction(datetime(2026, 2, 10), "9" * 29, "Groceries")

        assert (await tracker.counts())["transactions"] == 0
        assert await event_types(audit_storage) == [AuditEventType.VALIDATION_FAILED]

    @pytest.mark.asyncio
    async def test_invalid_edit_keeps_stored_row(self, tracker):
        tx = await tracker.add_transaction(datetime(2026, 2, 10), "45.50", "Groceries")

        with pytest.raises(InvalidAmountError):
            await tracker.edit_transaction(tx.id, amount="abc")

        assert (await tracker.snapshot())[0].signed_amount == Decimal("45.50")

    @pytest.mark.asyncio
    async def test_delete(self, tracker, audit_storage):
        tx = await tracker.add_transaction(datetime(2026, 2, 10), "45.50", "Groceries")

        await tracker.delete_transaction(tx.id)

        assert await tracker.snapshot() == []
        assert AuditEventType.TRANSACTION_DELETED in await event_types(audit_storage)
        with pytest.raises(NotFoundError):
            await tracker.delete_transaction(tx.id)


class TestBudgetFlows:
    """Tests for setting budgets."""

    @pytest.mark.asyncio
    async def test_set_budget_defaults_to_tracking_period(self, tracker):
        budget = await tracker.set_budget("Groceries", None, "400")

        assert budget.period == BudgetPeriod.MONTHLY
        assert budget.period_key == 202602
        assert budget.period_start == datetime(2026, 2, 1)
        assert await tracker.get_budget("Groceries") == budget

    @pytest.mark.asyncio
    async def test_set_budget_is_idempotent(self, tracker):
        first = await tracker.set_budget("Trips", None, "2000")
        second = await tracker.set_budget("Trips", BudgetPeriod.YEARLY, "2500")

        assert second.id == first.id
        assert second.limit == Decimal("2500.00")
        assert (await tracker.counts())["budgets"] == 1

    @pytest.mark.asyncio
    async def test_set_budget_for_another_month(self, tracker):
        budget = await tracker.set_budget("Groceries", None, "300", when=datetime(2026, 3, 9))
        assert budget.period_key == 202603
        assert await tracker.get_budget("Groceries") is None

    @pytest.mark.asyncio
    async def test_negative_limit_rejected(self, tracker):
        with pytest.raises(InvalidAmountError):
            await tracker.set_budget("Groceries", None, "-5")
        assert (await tracker.counts())["budgets"] == 0

    @pytest.mark.asyncio
    async def test_unknown_category_rejected(self, tracker):
        with pytest.raises(InvalidCategoryError):
            await tracker.set_budget("Pets", None, "5")

    @pytest.mark.asyncio
    async def test_lost_race_is_retried(self, transaction_storage, budget_storage, audit_storage):
        racing = RacingBudgetStorage(budget_storage, failures=1)
        tracker = ExpenseTracker(
            transaction_storage,
            racing,
            audit_logger=AuditLogger(audit_storage),
            clock=lambda: NOW,
        )

        budget = await tracker.set_budget("Groceries", None, "400")

        assert racing.calls == 2
        assert budget.limit == Decimal("400.00")
        assert await budget_storage.count() == 1
        types = await event_types(audit_storage)
        assert AuditEventType.BUDGET_UPSERT_RETRIED in types
        assert AuditEventType.BUDGET_SET in types

    @pytest.mark.asyncio
    async def test_failed_save_surfaces(self, transaction_storage, budget_storage, audit_storage):
        failing = RacingBudgetStorage(budget_storage, failures=99, error=PersistenceError("disk I/O error"))
        tracker = ExpenseTracker(
            transaction_storage,
            failing,
            audit_logger=AuditLogger(audit_storage),
            clock=lambda: NOW,
        )

        with pytest.raises(PersistenceError):
            await tracker.set_budget("Groceries", None, "400")

        assert failing.calls == 1
        assert await event_types(audit_storage) == [AuditEventType.SAVE_FAILED]


class TestReadFlows:
    """Tests for the read side against a seeded store."""

    @pytest_asyncio.fixture
    async def seeded(self, tracker, transaction_storage, budget_storage):
        await seed_transactions(transaction_storage, now=NOW)
        await seed_budgets(budget_storage, now=NOW)
        return tracker

    @pytest.mark.asyncio
    async def test_counts(self, seeded):
        assert await seeded.counts() == {"transactions": 63, "budgets": 8}

    @pytest.mark.asyncio
    async def test_seeding_without_duplicates_is_a_no_op(self, seeded, transaction_storage):
        assert await seed_transactions(transaction_storage, now=NOW) == 0
        assert await seed_transactions(transaction_storage, allow_duplicates=True, now=NOW) == 63

    @pytest.mark.asyncio
    async def test_budget_summary(self, seeded):
        summary = await seeded.budget_summary(BudgetPeriod.MONTHLY)

        assert summary.total.used == Decimal("265.00")
        assert summary.total.limit == Decimal("950.00")
        assert all(line.has_budget for line in summary.lines)

    @pytest.mark.asyncio
    async def test_default_series_length(self, seeded):
        series = await seeded.monthly_series()
        assert len(series) == 6
        assert series[-1].net_total == Decimal("665.00")

    @pytest.mark.asyncio
    async def test_empty_series_is_rejected(self, seeded):
        with pytest.raises(ValueError):
            await seeded.monthly_series(0)

    @pytest.mark.asyncio
    async def test_list_ledger_and_search(self, seeded):
        view = await seeded.list_ledger(LedgerFilter(month=NOW))
        assert view.header_total == Decimal("665.00")

        result = await seeded.search("train")
        assert result.count == 12

    @pytest.mark.asyncio
    async def test_reset_all(self, seeded, audit_storage):
        assert await seeded.reset_all() == (63, 8)
        assert await seeded.counts() == {"transactions": 0, "budgets": 0}

        types = await event_types(audit_storage)
        assert AuditEventType.TRANSACTIONS_CLEARED in types
        assert AuditEventType.BUDGETS_CLEARED in types


class TestCreateTracker:
    """Tests for the factory."""

    @pytest.mark.asyncio
    async def test_builds_working_tracker(self, tmp_path, monkeypatch):
        monkeypatch.setenv("EXPENSE_TRACKER_DB_URL", f"sqlite:///{tmp_path / 'app.db'}")
        monkeypatch.setenv("DEFAULT_SERIES_MONTHS", "3")

        tracker = create_tracker(Settings(), clock=lambda: NOW)
        await tracker.add_transaction(datetime(2026, 2, 10), "9.99", "Transport", subcategory_name="Train")

        assert (await tracker.counts())["transactions"] == 1
        assert len(await tracker.monthly_series()) == 3
        assert (tmp_path / "app.db").exists()
