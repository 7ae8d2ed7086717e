"""Tests for write-time validation."""

import pytest
from datetime import datetime
from decimal import Decimal

from expense_tracker.models import EntryKind, TransactionEdit
from expense_tracker.validation import (
    InvalidAmountError,
    InvalidCategoryError,
    LedgerValidator,
    parse_amount,
    validate_category,
)


class TestParseAmount:
    """Tests for amount parsing."""

    @pytest.mark.parametrize("text,expected", [
        ("45.50", Decimal("45.50")),
        ("  12,5 ", Decimal("12.50")),
        ("12", Decimal("12.00")),
        (".5", Decimal("0.50")),
        ("0.01", Decimal("0.01")),
    ])
    def test_valid_text(self, text, expected):
        assert parse_amount(text) == expected

    @pytest.mark.parametrize("text", ["", "   ", "abc", "-5", "1.234", "1e3", "12.3.4", "£5"])
    def test_invalid_text(self, text):
        with pytest.raises(InvalidAmountError):
            parse_amount(text)

    def test_zero_rejected_when_positive_required(self):
        with pytest.raises(InvalidAmountError):
            parse_amount("0")
        with pytest.raises(InvalidAmountError):
            parse_amount("0.00")

    def test_zero_allowed_otherwise(self):
        assert parse_amount("0", require_positive=False) == Decimal("0.00")

    def test_decimal_and_int_inputs(self):
        assert parse_amount(Decimal("7.5")) == Decimal("7.50")
        assert parse_amount(5) == Decimal("5.00")

    def test_rejects_sub_cent_decimal(self):
        with pytest.raises(InvalidAmountError):
            parse_amount(Decimal("1.005"))

    def test_rejects_negative_decimal(self):
        with pytest.raises(InvalidAmountError):
            parse_amount(Decimal("-1.00"))

    def test_rejects_non_finite(self):
        with pytest.raises(InvalidAmountError):
            parse_amount(Decimal("NaN"))
        with pytest.raises(InvalidAmountError):
            parse_amount(Decimal("Infinity"))

    def test_rejects_float(self):
        with pytest.raises(InvalidAmountError):
            parse_amount(0.1)

    @pytest.mark.parametrize("value", ["1" * 30, "9" * 16, 10 ** 30, Decimal("1E+40")])
    def test_rejects_oversized_amounts(self, value):
        with pytest.raises(InvalidAmountError):
            parse_amount(value)

    def test_largest_whole_amount_is_accepted(self):
        assert parse_amount("9" * 15 + ".99") == Decimal("999999999999999.99")


class TestValidateCategory:
    """Tests for catalog checks."""

    def test_known_category_and_subcategory(self):
        assert validate_category("Groceries", "Snacks").id == "Groceries"

    def test_subcategory_is_optional(self):
        assert validate_category("Trips").id == "Trips"

    def test_unknown_category(self):
        with pytest.raises(InvalidCategoryError):
            validate_category("Pets")

    def test_subcategory_from_another_category(self):
        with pytest.raises(InvalidCategoryError):
            validate_category("Groceries", "Train")


class TestLedgerValidator:
    """Tests for building and editing transactions."""

    @pytest.fixture
    def validator(self) -> LedgerValidator:
        return LedgerValidator()

    @pytest.fixture
    def existing(self, validator):
        return validator.build_transaction(
            date=datetime(2026, 2, 10),
            amount="45.50",
            category_id="Groceries",
            subcategory_name="Supermarket",
            note="Weekly shop",
        )

    def test_build_expense(self, existing):
        assert existing.signed_amount == Decimal("45.50")
        assert existing.category_name == "Groceries"
        assert existing.subcategory_name == "Supermarket"

    def test_build_refund(self, validator):
        tx = validator.build_transaction(
            date=datetime(2026, 2, 12),
            amount="20",
            category_id="Groceries",
            kind=EntryKind.REFUND,
        )
        assert tx.signed_amount == Decimal("-20.00")

    def test_blank_note_is_dropped(self, validator):
        tx = validator.build_transaction(datetime(2026, 2, 1), "5", "Transport", note="   ")
        assert tx.note is None

    def test_build_rejects_zero(self, validator):
        with pytest.raises(InvalidAmountError):
            validator.build_transaction(datetime(2026, 2, 1), "0", "Transport")

    def test_build_rejects_foreign_subcategory(self, validator):
        with pytest.raises(InvalidCategoryError):
            validator.build_transaction(datetime(2026, 2, 1), "5", "Transport", subcategory_name="Snacks")

    def test_edit_keeps_identity(self, validator, existing):
        edited = validator.apply_edit(existing, TransactionEdit(amount="60"))
        assert edited.id == existing.id
        assert edited.created_at == existing.created_at
        assert edited.signed_amount == Decimal("60.00")
        assert edited.note == "Weekly shop"

    def test_edit_kind_only_flips_sign(self, validator, existing):
        edited = validator.apply_edit(existing, TransactionEdit(kind=EntryKind.REFUND))
        assert edited.signed_amount == Decimal("-45.50")

    def test_category_change_drops_foreign_subcategory(self, validator, existing):
        edited = validator.apply_edit(existing, TransactionEdit(category_id="Transport"))
        assert edited.category_id == "Transport"
        assert edited.category_name == "Transport"
        assert edited.subcategory_name is None

    def test_explicit_foreign_subcategory_is_rejected(self, validator, existing):
        with pytest.raises(InvalidCategoryError):
            validator.apply_edit(existing, TransactionEdit(subcategory_name="Train"))

    def test_unknown_category_is_rejected(self, validator, existing):
        with pytest.raises(InvalidCategoryError):
            validator.apply_edit(existing, TransactionEdit(category_id="Pets"))

    @pytest.mark.parametrize("category_id", ["", "   "])
    def test_blank_category_is_rejected(self, validator, existing, category_id):
        with pytest.raises(InvalidCategoryError):
            validator.apply_edit(existing, TransactionEdit(category_id=category_id))

    def test_edit_model_rejects_float_amount(self):
        with pytest.raises(ValueError):
            TransactionEdit(amount=0.1)

    def test_untouched_category_keeps_name_snapshot(self, validator, existing):
        renamed = existing.model_copy(update={"category_name": "Food Shopping"})
        edited = validator.apply_edit(renamed, TransactionEdit(note="Big shop"))
        assert edited.category_name == "Food Shopping"
        assert edited.note == "Big shop"

    def test_edit_rejects_zero_amount(self, validator, existing):
        with pytest.raises(InvalidAmountError):
            validator.apply_edit(existing, TransactionEdit(amount="0"))

    def test_parse_limit_allows_zero(self, validator):
        assert validator.parse_limit("0") == Decimal("0.00")

    def test_parse_limit_rejects_negative(self, validator):
        with pytest.raises(InvalidAmountError):
            validator.parse_limit("-5")
