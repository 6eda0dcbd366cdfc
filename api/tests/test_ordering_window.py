from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from api.app.errors import OrderingWindowClosed
from api.app.ordering_window import (
    TenantRules,
    check_ordering_window,
    cutoff_for,
    ensure_open,
    is_past_cutoff,
    load_rules,
)

# 2025-03-10 is a Monday; Ho Chi Minh City is UTC+7 all year.
MONDAY = date(2025, 3, 10)
SATURDAY = date(2025, 3, 8)


def _rules(**overrides) -> TenantRules:
    return TenantRules(university_id=1, code="AH", **overrides)


def _utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


def test_cutoff_is_previous_evening_local_time():
    cutoff = cutoff_for(MONDAY, _rules())
    assert cutoff.astimezone(timezone.utc) == _utc(2025, 3, 9, 15, 0)


def test_cutoff_boundary_is_inclusive():
    rules = _rules(min_advance_hours=0)
    assert not is_past_cutoff(_utc(2025, 3, 9, 14, 59, 59), MONDAY, rules)
    assert is_past_cutoff(_utc(2025, 3, 9, 15, 0), MONDAY, rules)


def test_after_cutoff_raises_cutoff_rule():
    with pytest.raises(OrderingWindowClosed) as exc:
        ensure_open(MONDAY, _rules(min_advance_hours=0), now=_utc(2025, 3, 9, 15, 0))
    assert exc.value.rule == "cutoff"
    assert exc.value.details["order_date"] == "2025-03-10"


def test_before_cutoff_without_lead_time_is_open():
    ensure_open(MONDAY, _rules(min_advance_hours=0), now=_utc(2025, 3, 9, 14, 0))


def test_min_advance_applies_before_cutoff():
    # 13:00 local on Sunday: before the 22:00 cutoff but only 11h before Monday
    with pytest.raises(OrderingWindowClosed) as exc:
        ensure_open(MONDAY, _rules(), now=_utc(2025, 3, 9, 6, 0))
    assert exc.value.rule == "min_advance"
    ensure_open(MONDAY, _rules(), now=_utc(2025, 3, 9, 4, 59))


def test_max_advance_days():
    now = _utc(2025, 3, 1, 0, 0)
    with pytest.raises(OrderingWindowClosed) as exc:
        ensure_open(MONDAY, _rules(), now=now)
    assert exc.value.rule == "max_advance"
    ensure_open(SATURDAY, _rules(), now=now)


def test_weekend_orders_can_be_disabled():
    now = _utc(2025, 3, 5, 0, 0)
    ensure_open(SATURDAY, _rules(), now=now)
    with pytest.raises(OrderingWindowClosed) as exc:
        ensure_open(SATURDAY, _rules(allow_weekend_orders=False), now=now)
    assert exc.value.rule == "weekend"


def test_cutoff_reported_before_weekend_rule():
    with pytest.raises(OrderingWindowClosed) as exc:
        ensure_open(SATURDAY, _rules(allow_weekend_orders=False), now=_utc(2025, 3, 9, 0, 0))
    assert exc.value.rule == "cutoff"


def test_check_ordering_window_countdown():
    info = check_ordering_window(MONDAY, _rules(min_advance_hours=0), now=_utc(2025, 3, 9, 14, 0))
    assert info["allowed"] is True
    assert info["is_past_cutoff"] is False
    assert info["seconds_until_cutoff"] == 3600
    assert info["rule"] is None


def test_check_ordering_window_closed_does_not_raise():
    info = check_ordering_window(MONDAY, _rules(), now=_utc(2025, 3, 9, 16, 0))
    assert info["allowed"] is False
    assert info["is_past_cutoff"] is True
    assert info["seconds_until_cutoff"] == 0
    assert info["rule"] == "cutoff"


@pytest.mark.anyio
async def test_load_rules_uses_settings_row_and_defaults(session, world):
    a = await load_rules(session, world.uni_a.id)
    b = await load_rules(session, world.uni_b.id)
    assert a.cutoff_hour == 22 and a.tax_rate == Decimal("0.10")
    assert b.max_advance_days == 7 and b.code == "BK"
