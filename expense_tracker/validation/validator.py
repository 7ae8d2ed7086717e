"""
Write-Time Validation

DESIGN DECISION: Everything a user types is checked here, BEFORE any store
is touched. A rejected entry leaves no trace in the ledger:
- Amount text must parse as a plain decimal (no floats, no signs)
- Transaction amounts must be strictly positive; the entry kind decides
  the sign
- Budget limits may be zero but never negative
- The category must exist and the subcategory must belong to it

Catalog checks apply at write time only. Rows already stored are never
re-validated against the catalog.

IMPORTANT: Validation NEVER silently fixes input (beyond trimming
whitespace and accepting ',' as the decimal separator). It raises.
"""

import re
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Optional, Union

from pydantic import ValidationError as ModelValidationError

from expense_tracker.models.catalog import Category, get_category
from expense_tracker.models.ledger import EntryKind, Transaction, TransactionEdit
from expense_tracker.models.money import CENT, ZERO, quantize


class ValidationError(Exception):
    """Base exception for rejected user input."""
    pass


class InvalidAmountError(ValidationError):
    """Amount is unparsable, negative, zero where positive is required, or sub-cent."""
    pass


class InvalidCategoryError(ValidationError):
    """Unknown category, or a subcategory the category does not allow."""
    pass


MAX_WHOLE_DIGITS = 15

_AMOUNT_PATTERN = re.compile(r"^(\d{1,15}(\.\d{0,2})?|\.\d{1,2})$")


def parse_amount(
    value: Union[str, Decimal, int],
    require_positive: bool = True,
) -> Decimal:
    """
    Parse a user-entered amount.

    Text is trimmed and may use ',' or '.' as the decimal separator.
    The result is a Decimal with exactly two fractional digits.

    Raises:
        InvalidAmountError: If the value is not a valid non-negative amount,
            has more than two fractional digits, or is zero while
            ``require_positive`` is set.
    """
    if isinstance(value, bool) or isinstance(value, float):
        raise InvalidAmountError(f"Amount must be text or Decimal, got {type(value).__name__}")

    if isinstance(value, str):
        cleaned = value.strip().replace(",", ".")
        if not _AMOUNT_PATTERN.match(cleaned):
            raise InvalidAmountError(f"Not a valid amount: {value!r}")
        amount = Decimal(cleaned)
    else:
        try:
            amount = Decimal(value)
        except (InvalidOperation, TypeError, ValueError) as e:
            raise InvalidAmountError(f"Not a valid amount: {value!r}") from e
        if not amount.is_finite():
            raise InvalidAmountError(f"Not a valid amount: {value!r}")
        if amount.adjusted() >= MAX_WHOLE_DIGITS:
            raise InvalidAmountError(f"Amount is too large: {value!r}")
        if amount != amount.quantize(CENT, rounding="ROUND_DOWN"):
            raise InvalidAmountError(f"Amount has more than two decimal places: {value!r}")

    if amount < ZERO:
        raise InvalidAmountError(f"Amount cannot be negative: {value!r}")
    if require_positive and amount == ZERO:
        raise InvalidAmountError("Amount must be greater than zero")

    return quantize(amount)


def validate_category(
    category_id: str,
    subcategory_name: Optional[str] = None,
) -> Category:
    """
    Resolve a category and check the subcategory against it.

    Raises:
        InvalidCategoryError: If the category is unknown or does not list
            the subcategory.
    """
    category = get_category(category_id)
    if category is None:
        raise InvalidCategoryError(f"Unknown category: {category_id!r}")
    if not category.allows_subcategory(subcategory_name):
        raise InvalidCategoryError(
            f"Subcategory {subcategory_name!r} is not allowed for {category.name}. "
            f"Allowed: {', '.join(category.subcategories)}"
        )
    return category


def _clean_optional(text: Optional[str]) -> Optional[str]:
    if text is None:
        return None
    return text.strip() or None


class LedgerValidator:
    """
    Turns raw user entries into valid records.

    Stateless; a class so the orchestrator can hold (and tests can swap) one.
    """

    def build_transaction(
        self,
        date: datetime,
        amount: Union[str, Decimal, int],
        category_id: str,
        kind: EntryKind = EntryKind.EXPENSE,
        subcategory_name: Optional[str] = None,
        note: Optional[str] = None,
    ) -> Transaction:
        """Validate an Add-flow entry and build the transaction to save."""
        parsed = parse_amount(amount, require_positive=True)
        subcategory_name = _clean_optional(subcategory_name)
        category = validate_category(category_id, subcategory_name)

        try:
            return Transaction(
                date=date,
                signed_amount=kind.apply(parsed),
                category_id=category.id,
                category_name=category.name,
                subcategory_name=subcategory_name,
                note=_clean_optional(note),
            )
        except ModelValidationError as e:
            raise ValidationError(str(e)) from e

    def apply_edit(self, existing: Transaction, edit: TransactionEdit) -> Transaction:
        """
        Validate an Edit-flow change and build the replacement transaction.

        id and created_at are carried over untouched. When the category
        changes without a new subcategory, a subcategory the new category
        does not allow is dropped. An explicitly supplied subcategory must
        be valid.
        """
        changes = edit.model_dump(exclude_unset=True)

        amount = (
            parse_amount(changes["amount"], require_positive=True)
            if changes.get("amount") is not None
            else existing.amount
        )
        kind = changes.get("kind") or existing.kind

        category_changed = changes.get("category_id") is not None
        category_id = changes["category_id"] if category_changed else existing.category_id
        if "subcategory_name" in changes:
            subcategory_name = _clean_optional(changes["subcategory_name"])
        else:
            subcategory_name = existing.subcategory_name
            if category_changed and category_id != existing.category_id:
                new_category = get_category(category_id)
                if new_category is not None and not new_category.allows_subcategory(subcategory_name):
                    subcategory_name = None

        if category_changed or "subcategory_name" in changes:
            category = validate_category(category_id, subcategory_name)
            category_name = category.name
        else:
            # Untouched category keeps its write-time snapshot.
            category_name = existing.category_name

        note = _clean_optional(changes["note"]) if "note" in changes else existing.note

        try:
            return Transaction(
                id=existing.id,
                created_at=existing.created_at,
                date=changes.get("date") or existing.date,
                signed_amount=kind.apply(amount),
                category_id=category_id,
                category_name=category_name,
                subcategory_name=subcategory_name,
                note=note,
            )
        except ModelValidationError as e:
            raise ValidationError(str(e)) from e

    def parse_limit(self, limit: Union[str, Decimal, int]) -> Decimal:
        """Budget limits are non-negative; zero clears a budget's allowance."""
        return parse_amount(limit, require_positive=False)
