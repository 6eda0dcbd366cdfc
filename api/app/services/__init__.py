"""Service layer helpers for the API."""

from .notifications import Notifier, OutboxNotifier, notify_status

__all__ = ["Notifier", "OutboxNotifier", "notify_status"]
