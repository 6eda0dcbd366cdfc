"""Ordering-window guard.

Orders for a given date close at ``cutoff_hour`` on the previous day, in the
university's local time. Three further rules apply, checked after the cutoff
and in this order: a minimum lead time before the start of the target day, a
maximum number of days ahead and an optional weekend ban.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from zoneinfo import ZoneInfo

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from . import clock
from .errors import NotFound, OrderingWindowClosed
from .models import OrderingSettings, University

logger = logging.getLogger("orders")


@dataclass(frozen=True)
class TenantRules:
    """Ordering rules of one university, with defaults for missing settings."""

    university_id: int
    code: str
    timezone: str = "Asia/Ho_Chi_Minh"
    cutoff_hour: int = 22
    min_advance_hours: int = 12
    max_advance_days: int = 7
    allow_weekend_orders: bool = True
    tax_rate: Decimal = Decimal("0.10")


async def load_rules(session: AsyncSession, university_id: int) -> TenantRules:
    """Return the :class:`TenantRules` for ``university_id``."""

    uni = await session.get(University, university_id)
    if uni is None or not uni.is_active:
        raise NotFound("university", university_id)
    row = await session.scalar(
        select(OrderingSettings).where(OrderingSettings.university_id == university_id)
    )
    if row is None:
        return TenantRules(university_id=uni.id, code=uni.code, timezone=uni.timezone)
    return TenantRules(
        university_id=uni.id,
        code=uni.code,
        timezone=uni.timezone,
        cutoff_hour=row.cutoff_hour,
        min_advance_hours=row.min_advance_hours,
        max_advance_days=row.max_advance_days,
        allow_weekend_orders=row.allow_weekend_orders,
        tax_rate=Decimal(str(row.tax_rate)),
    )


def cutoff_for(target: date, rules: TenantRules) -> datetime:
    """Return the aware instant after which orders for ``target`` are refused."""

    tz = ZoneInfo(rules.timezone)
    return datetime.combine(target - timedelta(days=1), time(rules.cutoff_hour), tzinfo=tz)


def is_past_cutoff(now: datetime, target: date, rules: TenantRules) -> bool:
    return clock.as_utc(now) >= cutoff_for(target, rules)


def _violation(now: datetime, target: date, rules: TenantRules) -> OrderingWindowClosed | None:
    now = clock.as_utc(now)
    tz = ZoneInfo(rules.timezone)
    cutoff_at = cutoff_for(target, rules)
    if now >= cutoff_at:
        return OrderingWindowClosed(
            "cutoff",
            f"ordering for {target.isoformat()} closed at "
            f"{cutoff_at.strftime('%Y-%m-%d %H:%M')}",
            order_date=target.isoformat(),
            cutoff_at=cutoff_at.isoformat(),
        )
    day_start = datetime.combine(target, time(0), tzinfo=tz)
    if day_start - now < timedelta(hours=rules.min_advance_hours):
        return OrderingWindowClosed(
            "min_advance",
            f"orders must be placed at least {rules.min_advance_hours} hours in advance",
            order_date=target.isoformat(),
            min_advance_hours=rules.min_advance_hours,
        )
    today = clock.local_today(rules.timezone, now)
    if (target - today).days > rules.max_advance_days:
        return OrderingWindowClosed(
            "max_advance",
            f"orders can be placed at most {rules.max_advance_days} days ahead",
            order_date=target.isoformat(),
            max_advance_days=rules.max_advance_days,
        )
    if not rules.allow_weekend_orders and target.weekday() >= 5:
        return OrderingWindowClosed(
            "weekend",
            "weekend orders are not accepted",
            order_date=target.isoformat(),
        )
    return None


def ensure_open(target: date, rules: TenantRules, now: datetime | None = None) -> None:
    """Raise :class:`OrderingWindowClosed` if ``target`` cannot be ordered now."""

    now = now or clock.utcnow()
    exc = _violation(now, target, rules)
    if exc is not None:
        logger.info(
            "ordering window closed tenant=%s date=%s rule=%s",
            rules.university_id,
            target,
            exc.rule,
            extra={"tenant": rules.university_id},
        )
        raise exc


def check_ordering_window(
    target: date, rules: TenantRules, now: datetime | None = None
) -> dict:
    """Describe the ordering window for ``target`` without raising."""

    now = clock.as_utc(now) or clock.utcnow()
    cutoff_at = cutoff_for(target, rules)
    exc = _violation(now, target, rules)
    remaining = (cutoff_at - now).total_seconds()
    return {
        "order_date": target.isoformat(),
        "cutoff_at": cutoff_at.isoformat(),
        "is_past_cutoff": now >= cutoff_at,
        "seconds_until_cutoff": max(int(remaining), 0),
        "allowed": exc is None,
        "rule": exc.rule if exc else None,
        "message": exc.message if exc else None,
    }


__all__ = [
    "TenantRules",
    "check_ordering_window",
    "cutoff_for",
    "ensure_open",
    "is_past_cutoff",
    "load_rules",
]
