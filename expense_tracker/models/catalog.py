"""
Category Catalog

The catalog is static, process-wide configuration. It is loaded once at
import, never persisted and never mutated: categories are frozen models
held in a tuple.

DESIGN DECISION: The category id IS its name. Transactions copy the name
at write time, so a future rename would not rewrite history.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from expense_tracker.models.period import BudgetPeriod


class Category(BaseModel):
    """A spending category and the subcategories it allows."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    icon: str = Field(
        default="",
        description="Presentation-only symbol name"
    )
    tracking: BudgetPeriod
    subcategories: tuple[str, ...] = ()

    def allows_subcategory(self, name: Optional[str]) -> bool:
        """None always passes: a subcategory is optional."""
        return name is None or name in self.subcategories


def _category(
    name: str,
    icon: str,
    tracking: BudgetPeriod,
    subcategories: tuple[str, ...],
) -> Category:
    return Category(
        id=name,
        name=name,
        icon=icon,
        tracking=tracking,
        subcategories=subcategories,
    )


CATEGORY_CATALOG: tuple[Category, ...] = (
    _category("Groceries", "cart", BudgetPeriod.MONTHLY, ("Supermarket", "Snacks", "Household")),
    _category("Eating Out", "fork.knife", BudgetPeriod.MONTHLY, ("Lunch", "Dinner", "Coffee")),
    _category("Transport", "bus", BudgetPeriod.MONTHLY, ("Train", "Taxi", "Fuel")),
    _category("Self Care", "heart", BudgetPeriod.MONTHLY, ("Skincare", "Haircut", "Gym")),

    _category("Shopping", "bag", BudgetPeriod.YEARLY, ("Clothes", "Shoes", "Other")),
    _category("Gifts", "gift", BudgetPeriod.YEARLY, ("Birthday", "Occasion")),
    _category("Trips", "airplane", BudgetPeriod.YEARLY, ("Flight", "Hotel", "Food")),
    _category("Electronics", "desktopcomputer", BudgetPeriod.YEARLY, ("Accessories", "Gadgets")),
)

_BY_ID = {category.id: category for category in CATEGORY_CATALOG}


def get_category(category_id: str) -> Optional[Category]:
    """Look up a category by id. Returns None for unknown ids."""
    return _BY_ID.get(category_id)


def categories_for(tracking: BudgetPeriod) -> list[Category]:
    """Catalog categories budgeted at the given granularity, catalog order."""
    return [category for category in CATEGORY_CATALOG if category.tracking == tracking]
