"""
Shared fixtures.

Every test gets its own SQLite file under tmp_path and a fixed clock, so
"current period" assertions never depend on the day the suite runs.
"""

from datetime import datetime

import pytest

from expense_tracker.audit import AuditLogger
from expense_tracker.orchestrator import ExpenseTracker
from expense_tracker.services.storage import (
    SqlAuditStorage,
    SqlBudgetStorage,
    SqlDatabase,
    SqlTransactionStorage,
)

NOW = datetime(2026, 2, 14, 12, 0)


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def database_url(tmp_path) -> str:
    return f"sqlite:///{tmp_path / 'ledger.db'}"


@pytest.fixture
def database(database_url):
    db = SqlDatabase(url=database_url, busy_timeout_seconds=5.0, echo=False)
    db.create_schema()
    yield db
    db.dispose()


@pytest.fixture
def transaction_storage(database) -> SqlTransactionStorage:
    return SqlTransactionStorage(database)


@pytest.fixture
def budget_storage(database) -> SqlBudgetStorage:
    return SqlBudgetStorage(database)


@pytest.fixture
def audit_storage(database) -> SqlAuditStorage:
    return SqlAuditStorage(database)


@pytest.fixture
def tracker(transaction_storage, budget_storage, audit_storage, now) -> ExpenseTracker:
    return ExpenseTracker(
        transaction_storage=transaction_storage,
        budget_storage=budget_storage,
        audit_logger=AuditLogger(audit_storage),
        clock=lambda: now,
    )
