"""Order status enumeration and allowed transitions."""

from __future__ import annotations

from enum import Enum


class OrderStatus(str, Enum):
    """Enumerate the lifecycle states for an order."""

    PENDING = "PENDING"
    APPROVED = "APPROVED"
    PREPARING = "PREPARING"
    READY = "READY"
    SERVED = "SERVED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"


class PaymentStatus(str, Enum):
    """Payment state recorded on an order; settlement happens elsewhere."""

    PENDING = "PENDING"


TRANSITIONS: dict[OrderStatus, list[OrderStatus]] = {
    OrderStatus.PENDING: [
        OrderStatus.APPROVED,
        OrderStatus.REJECTED,
        OrderStatus.CANCELLED,
    ],
    OrderStatus.APPROVED: [
        OrderStatus.PREPARING,
        OrderStatus.REJECTED,
        OrderStatus.CANCELLED,
    ],
    OrderStatus.PREPARING: [
        OrderStatus.READY,
        OrderStatus.REJECTED,
        OrderStatus.CANCELLED,
    ],
    OrderStatus.READY: [OrderStatus.SERVED, OrderStatus.CANCELLED],
    OrderStatus.SERVED: [],
    OrderStatus.REJECTED: [],
    OrderStatus.CANCELLED: [],
}

TERMINAL: frozenset[OrderStatus] = frozenset(
    status for status, targets in TRANSITIONS.items() if not targets
)

# Orders still holding reserved availability and visible to the kitchen.
ACTIVE: tuple[OrderStatus, ...] = (
    OrderStatus.PENDING,
    OrderStatus.APPROVED,
    OrderStatus.PREPARING,
    OrderStatus.READY,
)

# Statuses that hand reserved units back to the availability pool.
RELEASES_STOCK: frozenset[OrderStatus] = frozenset(
    {OrderStatus.REJECTED, OrderStatus.CANCELLED}
)

STATUS_MESSAGES: dict[OrderStatus, str] = {
    OrderStatus.APPROVED: "Your order has been approved and is being prepared.",
    OrderStatus.PREPARING: "Your order is now being prepared in the kitchen.",
    OrderStatus.READY: "Your order is ready for pickup!",
    OrderStatus.SERVED: "Your order has been served. Thank you!",
    OrderStatus.REJECTED: "Your order has been rejected.",
    OrderStatus.CANCELLED: "Your order has been cancelled.",
}


def can_transition(src: OrderStatus, dst: OrderStatus) -> bool:
    """Return ``True`` if an order can move from ``src`` to ``dst``."""

    return dst in TRANSITIONS.get(src, [])


def is_terminal(status: OrderStatus) -> bool:
    return status in TERMINAL


def status_message(status: OrderStatus, reason: str | None = None) -> str:
    """Return the student-facing message announcing ``status``."""

    message = STATUS_MESSAGES.get(status, "Your order status has been updated.")
    if status is OrderStatus.REJECTED and reason:
        message = f"{message} Reason: {reason}"
    return message
