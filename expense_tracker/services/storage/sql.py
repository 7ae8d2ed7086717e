"""
SQL Storage Implementation

DESIGN DECISION: A local SQLite file (through SQLAlchemy) is the default
backend because:
1. The app is single-user and single-process
2. No server to install or keep running
3. Real transactions: every mutation commits or rolls back as a unit
4. A composite unique index backs the budget key invariant

TRADEOFFS:
- SQLite serializes writers; we lean on that instead of fighting it.
  Transactions start with BEGIN IMMEDIATE so a read-then-write (budget
  upsert) holds the write lock from its first read.
- Decimal columns are stored as text. SQLite has no exact numeric type and
  we never sum in SQL, so exactness wins over SQL arithmetic.

Any SQLAlchemy URL works; only the SQLite pragmas are SQLite-specific.
"""

import json
import threading
from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal
from typing import Iterator, Optional
from uuid import UUID

import structlog
from sqlalchemy import (
    Boolean,
    DateTime,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    create_engine,
    delete,
    event,
    func,
    select,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker
from sqlalchemy.types import TypeDecorator
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from expense_tracker.config import get_settings
from expense_tracker.models.audit import AuditEvent, AuditEventType, AuditSeverity
from expense_tracker.models.ledger import Budget, Transaction
from expense_tracker.models.period import BudgetPeriod
from expense_tracker.services.storage.interface import (
    AuditStorageInterface,
    BudgetStorageInterface,
    ConstraintViolationError,
    NotFoundError,
    PersistenceError,
    TransactionStorageInterface,
)

logger = structlog.get_logger(__name__)


# =============================================================================
# SCHEMA
# =============================================================================

class DecimalText(TypeDecorator):
    """Exact Decimal round-trip through a text column."""
    impl = String
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return format(Decimal(value), "f")

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return Decimal(value)


class Base(DeclarativeBase):
    pass


class TransactionRow(Base):
    __tablename__ = "transactions"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    date: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    signed_amount: Mapped[Decimal] = mapped_column(DecimalText(40), nullable=False)
    category_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    category_name: Mapped[str] = mapped_column(String(100), nullable=False)
    subcategory_name: Mapped[Optional[str]] = mapped_column(String(100))
    note: Mapped[Optional[str]] = mapped_column(Text)


class BudgetRow(Base):
    __tablename__ = "budgets"
    __table_args__ = (
        UniqueConstraint(
            "category_id", "period", "period_key",
            name="uq_budgets_category_period_key",
        ),
    )

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    category_id: Mapped[str] = mapped_column(String(100), nullable=False)
    period: Mapped[str] = mapped_column(String(10), nullable=False)
    period_start: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    period_key: Mapped[int] = mapped_column(Integer, nullable=False)
    limit: Mapped[Decimal] = mapped_column(DecimalText(40), nullable=False)


class AuditEventRow(Base):
    __tablename__ = "audit_events"

    event_id: Mapped[UUID] = mapped_column(Uuid, primary_key=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    event_type: Mapped[str] = mapped_column(String(50), nullable=False)
    severity: Mapped[str] = mapped_column(String(10), nullable=False)
    entity_type: Mapped[Optional[str]] = mapped_column(String(20))
    entity_id: Mapped[Optional[UUID]] = mapped_column(Uuid, index=True)
    correlation_id: Mapped[Optional[UUID]] = mapped_column(Uuid)
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    details_json: Mapped[str] = mapped_column(Text, nullable=False, default="{}")
    error_code: Mapped[Optional[str]] = mapped_column(String(100))
    error_message: Mapped[Optional[str]] = mapped_column(Text)
    is_user_action: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


# =============================================================================
# DATABASE
# =============================================================================

def _use_immediate_transactions(engine: Engine) -> None:
    """
    Make every SQLite transaction BEGIN IMMEDIATE.

    pysqlite defers BEGIN until the first write, which lets two upserts both
    read "no row" before either writes. Taking the write lock at BEGIN closes
    that window.
    """

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


class SqlDatabase:
    """
    Engine, sessions and error translation shared by the SQL stores.

    Writes that read before they write also take ``write_lock`` so threads
    of this process queue up before reaching the database lock.
    """

    def __init__(
        self,
        url: Optional[str] = None,
        busy_timeout_seconds: Optional[float] = None,
        echo: Optional[bool] = None,
        engine: Optional[Engine] = None,
    ):
        if engine is None:
            settings = get_settings().storage
            url = url or settings.url
            busy_timeout_seconds = busy_timeout_seconds or settings.busy_timeout_seconds
            echo = settings.echo if echo is None else echo
            engine = self._create_engine(url, busy_timeout_seconds, echo)
        self._engine = engine
        self._session_factory = sessionmaker(
            self._engine,
            expire_on_commit=False,
            autoflush=False,
        )
        self.write_lock = threading.RLock()

    @staticmethod
    def _create_engine(url: str, busy_timeout_seconds: float, echo: bool) -> Engine:
        connect_args = {}
        if url.startswith("sqlite"):
            # Bounds how long a statement waits on a locked database file.
            connect_args["timeout"] = busy_timeout_seconds
        engine = create_engine(url, echo=echo, connect_args=connect_args)
        if engine.dialect.name == "sqlite":
            _use_immediate_transactions(engine)
        return engine

    @property
    def engine(self) -> Engine:
        return self._engine

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.1, min=0.1, max=2),
        retry=retry_if_exception_type(OperationalError),
        reraise=True,
    )
    def _create_all(self) -> None:
        Base.metadata.create_all(self._engine)

    def create_schema(self) -> None:
        """Create missing tables and indexes. Safe to call repeatedly."""
        with self.errors("create schema"):
            self._create_all()
        logger.info("schema_ready", url=self._engine.url.render_as_string(hide_password=True))

    def dispose(self) -> None:
        self._engine.dispose()

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """One SQL transaction: commits on success, rolls back on any error."""
        session = self._session_factory()
        try:
            with session.begin():
                yield session
        finally:
            session.close()

    @contextmanager
    def errors(self, operation: str) -> Iterator[None]:
        """
        Translate SQLAlchemy failures into storage errors.

        Domain errors (NotFoundError etc.) raised inside pass through as is.
        """
        try:
            yield
        except IntegrityError as e:
            logger.warning("storage_constraint_violation", operation=operation, error=str(e.orig))
            raise ConstraintViolationError(f"Failed to {operation}: {e.orig}") from e
        except SQLAlchemyError as e:
            logger.error("storage_failed", operation=operation, error=str(e))
            raise PersistenceError(f"Failed to {operation}: {e}") from e


# =============================================================================
# TRANSACTIONS
# =============================================================================

class SqlTransactionStorage(TransactionStorageInterface):
    """
    SQL implementation of the transaction ledger.

    Rows never leave this class: callers get pydantic copies.
    """

    def __init__(self, database: SqlDatabase):
        self._db = database

    @staticmethod
    def _to_row(transaction: Transaction) -> TransactionRow:
        return TransactionRow(
            id=transaction.id,
            created_at=transaction.created_at,
            date=transaction.date,
            signed_amount=transaction.signed_amount,
            category_id=transaction.category_id,
            category_name=transaction.category_name,
            subcategory_name=transaction.subcategory_name,
            note=transaction.note,
        )

    @staticmethod
    def _to_model(row: TransactionRow) -> Transaction:
        return Transaction.model_validate(row, from_attributes=True)

    async def insert(self, transaction: Transaction) -> Transaction:
        with self._db.errors("insert transaction"), self._db.transaction() as session:
            session.add(self._to_row(transaction))
        logger.debug("transaction_inserted", transaction_id=str(transaction.id))
        return transaction.model_copy(deep=True)

    async def update(self, transaction: Transaction) -> Transaction:
        with self._db.errors("update transaction"), self._db.transaction() as session:
            row = session.get(TransactionRow, transaction.id)
            if row is None:
                raise NotFoundError(f"Transaction not found: {transaction.id}")
            # id and created_at are immutable
            row.date = transaction.date
            row.signed_amount = transaction.signed_amount
            row.category_id = transaction.category_id
            row.category_name = transaction.category_name
            row.subcategory_name = transaction.subcategory_name
            row.note = transaction.note
            session.flush()
            updated = self._to_model(row)
        logger.debug("transaction_updated", transaction_id=str(transaction.id))
        return updated

    async def delete(self, transaction_id: UUID) -> None:
        with self._db.errors("delete transaction"), self._db.transaction() as session:
            row = session.get(TransactionRow, transaction_id)
            if row is None:
                raise NotFoundError(f"Transaction not found: {transaction_id}")
            session.delete(row)
        logger.debug("transaction_deleted", transaction_id=str(transaction_id))

    async def delete_all(self) -> int:
        with self._db.errors("delete all transactions"), self._db.transaction() as session:
            deleted = session.execute(delete(TransactionRow)).rowcount
        logger.info("transactions_cleared", deleted=deleted)
        return deleted

    async def get(self, transaction_id: UUID) -> Optional[Transaction]:
        with self._db.errors("get transaction"), self._db.transaction() as session:
            row = session.get(TransactionRow, transaction_id)
            return self._to_model(row) if row is not None else None

    async def all(self) -> list[Transaction]:
        return await self.list_range()

    async def list_range(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        category_id: Optional[str] = None,
    ) -> list[Transaction]:
        stmt = select(TransactionRow)
        if start is not None:
            stmt = stmt.where(TransactionRow.date >= start)
        if end is not None:
            stmt = stmt.where(TransactionRow.date < end)
        if category_id is not None:
            stmt = stmt.where(TransactionRow.category_id == category_id)
        stmt = stmt.order_by(TransactionRow.date, TransactionRow.created_at)

        with self._db.errors("list transactions"), self._db.transaction() as session:
            return [self._to_model(row) for row in session.scalars(stmt)]

    async def count(self) -> int:
        with self._db.errors("count transactions"), self._db.transaction() as session:
            return session.scalar(select(func.count()).select_from(TransactionRow)) or 0


# =============================================================================
# BUDGETS
# =============================================================================

class SqlBudgetStorage(BudgetStorageInterface):
    """
    SQL implementation of budget storage.

    Upsert is one BEGIN IMMEDIATE transaction under the process write lock;
    the composite unique index is the backstop if anything slips past both.
    """

    def __init__(self, database: SqlDatabase):
        self._db = database

    @staticmethod
    def _to_model(row: BudgetRow) -> Budget:
        return Budget.model_validate(row, from_attributes=True)

    @staticmethod
    def _key_clause(category_id: str, period: BudgetPeriod, period_key: int):
        return (
            BudgetRow.category_id == category_id,
            BudgetRow.period == period.value,
            BudgetRow.period_key == period_key,
        )

    async def upsert(
        self,
        category_id: str,
        period: BudgetPeriod,
        period_start: datetime,
        limit: Decimal,
    ) -> Budget:
        candidate = Budget.for_period(category_id, period, period_start, limit)

        with self._db.write_lock, self._db.errors("upsert budget"), self._db.transaction() as session:
            row = session.scalars(
                select(BudgetRow).where(*self._key_clause(category_id, period, candidate.period_key))
            ).one_or_none()

            if row is None:
                row = BudgetRow(
                    id=candidate.id,
                    created_at=candidate.created_at,
                    category_id=candidate.category_id,
                    period=candidate.period.value,
                    period_start=candidate.period_start,
                    period_key=candidate.period_key,
                    limit=candidate.limit,
                )
                session.add(row)
                action = "inserted"
            else:
                row.limit = candidate.limit
                row.period_start = candidate.period_start
                action = "updated"

            session.flush()
            saved = self._to_model(row)

        logger.info(
            "budget_upserted",
            action=action,
            category_id=category_id,
            period=period.value,
            period_key=saved.period_key,
            limit=str(saved.limit),
        )
        return saved

    async def fetch(
        self,
        category_id: str,
        period: BudgetPeriod,
        period_key: int,
    ) -> Optional[Budget]:
        stmt = select(BudgetRow).where(*self._key_clause(category_id, period, period_key))
        with self._db.errors("fetch budget"), self._db.transaction() as session:
            row = session.scalars(stmt).one_or_none()
            return self._to_model(row) if row is not None else None

    async def list_for_period(
        self,
        period: BudgetPeriod,
        period_key: int,
    ) -> list[Budget]:
        stmt = (
            select(BudgetRow)
            .where(BudgetRow.period == period.value, BudgetRow.period_key == period_key)
            .order_by(BudgetRow.category_id)
        )
        with self._db.errors("list budgets"), self._db.transaction() as session:
            return [self._to_model(row) for row in session.scalars(stmt)]

    async def all(self) -> list[Budget]:
        stmt = select(BudgetRow).order_by(BudgetRow.period_key, BudgetRow.category_id)
        with self._db.errors("list budgets"), self._db.transaction() as session:
            return [self._to_model(row) for row in session.scalars(stmt)]

    async def count(self) -> int:
        with self._db.errors("count budgets"), self._db.transaction() as session:
            return session.scalar(select(func.count()).select_from(BudgetRow)) or 0

    async def delete_all(self) -> int:
        with self._db.write_lock, self._db.errors("delete all budgets"), self._db.transaction() as session:
            deleted = session.execute(delete(BudgetRow)).rowcount
        logger.info("budgets_cleared", deleted=deleted)
        return deleted


# =============================================================================
# AUDIT
# =============================================================================

class SqlAuditStorage(AuditStorageInterface):
    """
    SQL implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, database: SqlDatabase):
        self._db = database

    @staticmethod
    def _to_model(row: AuditEventRow) -> AuditEvent:
        return AuditEvent(
            event_id=row.event_id,
            timestamp=row.timestamp,
            event_type=AuditEventType(row.event_type),
            severity=AuditSeverity(row.severity),
            entity_type=row.entity_type,
            entity_id=row.entity_id,
            correlation_id=row.correlation_id,
            description=row.description,
            details=json.loads(row.details_json) if row.details_json else {},
            error_code=row.error_code,
            error_message=row.error_message,
            is_user_action=row.is_user_action,
        )

    async def append_event(self, event: AuditEvent) -> bool:
        try:
            with self._db.errors("append audit event"), self._db.transaction() as session:
                session.add(AuditEventRow(
                    event_id=event.event_id,
                    timestamp=event.timestamp,
                    event_type=event.event_type.value,
                    severity=event.severity.value,
                    entity_type=event.entity_type,
                    entity_id=event.entity_id,
                    correlation_id=event.correlation_id,
                    description=event.description,
                    details_json=json.dumps(event.details, default=str),
                    error_code=event.error_code,
                    error_message=event.error_message,
                    is_user_action=event.is_user_action,
                ))
            return True
        except (PersistenceError, ConstraintViolationError) as e:
            # Don't raise - audit logging should not break the main flow
            logger.error("audit_append_failed", event_id=str(event.event_id), error=str(e))
            return False

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        stmt = (
            select(AuditEventRow)
            .where(AuditEventRow.entity_type == entity_type, AuditEventRow.entity_id == entity_id)
            .order_by(AuditEventRow.timestamp)
        )
        with self._db.errors("get audit events"), self._db.transaction() as session:
            return [self._to_model(row) for row in session.scalars(stmt)]

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        stmt = select(AuditEventRow).order_by(AuditEventRow.timestamp.desc()).limit(limit)
        with self._db.errors("get audit events"), self._db.transaction() as session:
            return [self._to_model(row) for row in session.scalars(stmt)]
