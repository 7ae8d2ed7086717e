"""
Ledger Records

The two persisted record types: Transaction and Budget.

These models check the invariants that hold for every stored row
(non-zero amount, consistent period key, non-negative limit). Catalog
membership is NOT checked here: it is a write-time rule enforced by
the validation package, and stored rows stay readable even if the
catalog changes later.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional, Union
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictStr,
    field_validator,
    model_validator,
)

from expense_tracker.models.money import ZERO
from expense_tracker.models.period import BudgetPeriod, period_key


def _naive_local(value: Any) -> Any:
    """Dates become midnight; aware date-times become naive local time."""
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            return value.astimezone().replace(tzinfo=None)
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    return value


# =============================================================================
# ENUMS
# =============================================================================

class EntryKind(str, Enum):
    """
    What the user is entering.

    Amounts are always typed as positive numbers; the kind decides the sign.
    """
    EXPENSE = "expense"
    REFUND = "refund"

    def apply(self, amount: Decimal) -> Decimal:
        """Sign a positive amount."""
        return amount if self == EntryKind.EXPENSE else -amount

    @classmethod
    def of(cls, signed_amount: Decimal) -> "EntryKind":
        return cls.REFUND if signed_amount < ZERO else cls.EXPENSE


# =============================================================================
# TRANSACTION
# =============================================================================

class Transaction(BaseModel):
    """
    One ledger entry.

    signed_amount > 0 is an expense, < 0 a refund. Zero is never stored.
    category_name is a snapshot taken at write time.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    # Identity (immutable)
    id: UUID = Field(
        default_factory=uuid4,
        description="Unique transaction ID"
    )
    created_at: datetime = Field(
        default_factory=datetime.now,
        description="When the transaction was first saved (informational)"
    )

    # Effective date, distinct from created_at
    date: datetime = Field(
        ...,
        description="When the money was spent or refunded"
    )
    signed_amount: Decimal = Field(
        ...,
        decimal_places=2,
        description="Positive = expense, negative = refund"
    )

    category_id: str = Field(..., min_length=1, max_length=100)
    category_name: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Category display name at time of write"
    )
    subcategory_name: Optional[str] = Field(default=None, max_length=100)
    note: Optional[str] = Field(default=None, max_length=1000)

    @field_validator('date', 'created_at', mode='before')
    @classmethod
    def normalise_datetime(cls, v: Any) -> Any:
        return _naive_local(v)

    @field_validator('signed_amount')
    @classmethod
    def reject_zero(cls, v: Decimal) -> Decimal:
        if v == ZERO:
            raise ValueError("Transaction amount cannot be zero")
        return v

    @field_validator('subcategory_name', 'note')
    @classmethod
    def empty_to_none(cls, v: Optional[str]) -> Optional[str]:
        return v or None

    @property
    def kind(self) -> EntryKind:
        return EntryKind.of(self.signed_amount)

    @property
    def amount(self) -> Decimal:
        """Unsigned amount, as the user typed it."""
        return abs(self.signed_amount)


class TransactionEdit(BaseModel):
    """
    Fields a user may change on an existing transaction.

    Every field is optional; None means "leave as is". id and created_at
    are deliberately absent. ``amount`` is the unsigned amount (text or
    Decimal) and ``kind`` its sign; either may change on its own.
    """
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    date: Optional[datetime] = None
    amount: Optional[Union[StrictStr, Decimal]] = None
    kind: Optional[EntryKind] = None
    category_id: Optional[str] = None
    subcategory_name: Optional[str] = None
    note: Optional[str] = None

    @field_validator('date', mode='before')
    @classmethod
    def normalise_datetime(cls, v: Any) -> Any:
        return _naive_local(v)

    @field_validator('amount', mode='before')
    @classmethod
    def reject_binary_floats(cls, v: Any) -> Any:
        if isinstance(v, (bool, float)):
            raise ValueError(f"Amount must be text or Decimal, got {type(v).__name__}")
        return v

    def changed_fields(self) -> list[str]:
        return sorted(self.model_dump(exclude_unset=True).keys())


# =============================================================================
# BUDGET
# =============================================================================

class Budget(BaseModel):
    """
    Spending limit for one category in one period instance.

    (category_id, period, period_key) is unique across the store.
    period_start is kept for display/debugging only.
    """

    id: UUID = Field(default_factory=uuid4)
    created_at: datetime = Field(default_factory=datetime.now)

    category_id: str = Field(..., min_length=1, max_length=100)
    period: BudgetPeriod
    period_start: datetime
    period_key: int = Field(..., ge=0)
    limit: Decimal = Field(
        ...,
        ge=0,
        decimal_places=2,
        description="Budget limit for the period"
    )

    @field_validator('period_start', 'created_at', mode='before')
    @classmethod
    def normalise_datetime(cls, v: Any) -> Any:
        return _naive_local(v)

    @model_validator(mode='after')
    def validate_period_key(self) -> 'Budget':
        expected = period_key(self.period, self.period_start)
        if self.period_key != expected:
            raise ValueError(
                f"Period key {self.period_key} does not match "
                f"{self.period.value} period starting {self.period_start:%Y-%m-%d} "
                f"(expected {expected})"
            )
        return self

    @classmethod
    def for_period(
        cls,
        category_id: str,
        period: BudgetPeriod,
        period_start: datetime,
        limit: Decimal,
    ) -> 'Budget':
        """Build a budget, deriving the period key from period_start."""
        return cls(
            category_id=category_id,
            period=period,
            period_start=period_start,
            period_key=period_key(period, period_start),
            limit=limit,
        )

    @property
    def identity(self) -> tuple[str, BudgetPeriod, int]:
        """The uniqueness key."""
        return (self.category_id, self.period, self.period_key)
