# schemas.py

"""Pydantic models for API payloads."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field


class VariantIn(BaseModel):
    """Priced option of a menu item."""

    name: str
    price: Decimal
    is_default: bool = False
    is_active: bool = True


class MenuItemIn(BaseModel):
    """Input schema for creating or replacing a menu item.

    Categories and the default-variant rule are checked by the catalog so
    that every problem is reported at once.
    """

    name: str
    description: Optional[str] = None
    base_price: Decimal
    categories: List[str] = Field(default_factory=list)
    is_vegetarian: bool = False
    is_vegan: bool = False
    allergens: List[str] = Field(default_factory=list)
    variants: List[VariantIn] = Field(default_factory=list)
    university_id: Optional[int] = None


class ActiveIn(BaseModel):
    is_active: bool


class AvailabilityIn(BaseModel):
    is_available: bool = True
    max_quantity: Optional[int] = None


class CartLineIn(BaseModel):
    item_id: int
    variant_id: Optional[int] = None
    # positivity is checked by the pricing layer
    quantity: int


class QuoteIn(BaseModel):
    items: List[CartLineIn]


class OrderIn(QuoteIn):
    order_date: date
    special_instructions: Optional[str] = None
    payment_method: Optional[str] = None


class TransitionIn(BaseModel):
    status: str
    reason: Optional[str] = None


class ForceLogoutIn(BaseModel):
    reason: Optional[str] = None


class UserStatusIn(BaseModel):
    status: str
