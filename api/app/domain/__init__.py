"""Domain models and helpers."""

from .menu import CATEGORY_VALUES, Category
from .order_status import (
    ACTIVE,
    RELEASES_STOCK,
    TERMINAL,
    TRANSITIONS,
    OrderStatus,
    PaymentStatus,
    can_transition,
    is_terminal,
    status_message,
)
from .roles import STAFF_ROLES, Role, UserStatus

__all__ = [
    "ACTIVE",
    "CATEGORY_VALUES",
    "Category",
    "OrderStatus",
    "PaymentStatus",
    "RELEASES_STOCK",
    "Role",
    "STAFF_ROLES",
    "TERMINAL",
    "TRANSITIONS",
    "UserStatus",
    "can_transition",
    "is_terminal",
    "status_message",
]
