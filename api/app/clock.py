"""Time helpers.

Business code reads the time through :func:`utcnow` so tests can patch a
single attribute. SQLite drops ``tzinfo`` on round-trips; :func:`as_utc`
restores it.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo


def utcnow() -> datetime:
    """Return the current time as an aware UTC datetime."""

    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """Return ``value`` as an aware UTC datetime, assuming UTC when naive."""

    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def local_today(tz: str, now: datetime | None = None) -> date:
    """Return the calendar date in ``tz`` at ``now``."""

    now = as_utc(now) or utcnow()
    return now.astimezone(ZoneInfo(tz)).date()


__all__ = ["utcnow", "as_utc", "local_today"]
