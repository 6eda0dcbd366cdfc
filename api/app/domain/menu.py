"""Menu vocabulary shared by the catalog and its validators."""

from __future__ import annotations

from enum import Enum


class Category(str, Enum):
    BREAKFAST = "BREAKFAST"
    LUNCH = "LUNCH"
    DINNER = "DINNER"
    SNACKS = "SNACKS"
    BEVERAGES = "BEVERAGES"


CATEGORY_VALUES: frozenset[str] = frozenset(c.value for c in Category)
