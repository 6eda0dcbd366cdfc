"""Order status notifications.

The engine only decides *when* a student is told about a status change and
*what* the payload is. Delivery belongs to a :class:`Notifier`; the default
one queues rows in ``notifications_outbox`` for an external worker.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Protocol

from ..db import get_session
from ..domain import OrderStatus, status_message
from ..models import NotificationOutbox
from ..routes_metrics import notifications_failed_total

logger = logging.getLogger("notify")


@dataclass(frozen=True)
class StatusNotification:
    order_id: int
    order_number: str
    status: str
    recipient_contact: str | None
    status_message: str


class Notifier(Protocol):
    async def send(self, notification: StatusNotification) -> None: ...


class OutboxNotifier:
    """Persist notifications to the outbox using a dedicated session."""

    event = "order.status_changed"

    async def send(self, notification: StatusNotification) -> None:
        async with get_session() as session:
            session.add(
                NotificationOutbox(
                    event=self.event,
                    payload=asdict(notification),
                    target=notification.recipient_contact,
                )
            )
            await session.commit()
        logger.info(
            "queued notification order=%s status=%s",
            notification.order_id,
            notification.status,
        )


def build_notification(order, contact: str | None) -> StatusNotification:
    status = OrderStatus(order.status)
    return StatusNotification(
        order_id=order.id,
        order_number=order.order_number,
        status=status.value,
        recipient_contact=contact,
        status_message=status_message(status, order.rejection_reason),
    )


async def notify_status(notifier: Notifier | None, notification: StatusNotification) -> bool:
    """Hand ``notification`` to ``notifier``.

    Runs after the status change is committed; a failing notifier is logged
    and counted but never undoes the change. Returns ``True`` on success.
    """

    if notifier is None:
        return False
    try:
        await notifier.send(notification)
    except Exception:
        notifications_failed_total.inc()
        logger.exception(
            "notification failed order=%s status=%s",
            notification.order_id,
            notification.status,
        )
        return False
    return True


__all__ = [
    "Notifier",
    "OutboxNotifier",
    "StatusNotification",
    "build_notification",
    "notify_status",
]
