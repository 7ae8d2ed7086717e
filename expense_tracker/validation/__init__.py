"""Write-time validation package."""

from expense_tracker.validation.validator import (
    InvalidAmountError,
    InvalidCategoryError,
    LedgerValidator,
    ValidationError,
    parse_amount,
    validate_category,
)

__all__ = [
    "InvalidAmountError",
    "InvalidCategoryError",
    "LedgerValidator",
    "ValidationError",
    "parse_amount",
    "validate_category",
]
