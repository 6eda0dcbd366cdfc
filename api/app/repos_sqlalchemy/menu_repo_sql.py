"""SQLAlchemy implementation of the catalog and availability store.

Menu items belong to a single university and own one or more priced
variants plus optional per-date availability records. A missing record for a
date means the item is sellable without a cap.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping

from sqlalchemy import and_, case, delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from config import get_settings

from .. import clock
from ..domain import CATEGORY_VALUES
from ..errors import InvalidItem, NotFound, ValidationError
from ..models import (
    MenuItem,
    MenuItemAvailability,
    MenuItemVariant,
    Order,
    OrderItem,
    University,
)

logger = logging.getLogger("menu")


@dataclass(frozen=True)
class ResolvedVariant:
    """Item and variant chosen for a cart line, with the unit price to charge."""

    item: MenuItem
    variant: MenuItemVariant | None
    unit_price: Decimal


def _money(value: Any) -> Decimal:
    try:
        return Decimal(str(value)).quantize(Decimal("0.01"))
    except (InvalidOperation, ValueError):
        raise ValidationError(
            "invalid price", errors=[f"{value!r} is not a price"]
        ) from None


def validate_draft(draft: Mapping[str, Any]) -> dict:
    """Return a normalised copy of ``draft`` or raise :class:`ValidationError`.

    Categories are compared case-insensitively and every invalid value is
    reported at once. Exactly one variant must be flagged default.
    """

    errors: list[str] = []
    name = (draft.get("name") or "").strip()
    if not name:
        errors.append("name is required")

    base_price = draft.get("base_price")
    if base_price is None:
        errors.append("base_price is required")
    else:
        base_price = _money(base_price)
        if base_price < 0:
            errors.append("base_price must not be negative")

    categories = [str(c).strip().upper() for c in draft.get("categories") or []]
    invalid = [c for c in categories if c not in CATEGORY_VALUES]
    if invalid:
        errors.append(
            f"Invalid categories: {', '.join(invalid)}. "
            f"Valid categories are: {', '.join(sorted(CATEGORY_VALUES))}"
        )

    variants = []
    for idx, raw in enumerate(draft.get("variants") or []):
        vname = (raw.get("name") or "").strip()
        if not vname:
            errors.append(f"variants[{idx}].name is required")
        price = _money(raw.get("price", base_price or 0))
        if price < 0:
            errors.append(f"variants[{idx}].price must not be negative")
        is_default = bool(raw.get("is_default"))
        is_active = bool(raw.get("is_active", True))
        if is_default and not is_active:
            errors.append(f"variants[{idx}] is the default and must be active")
        variants.append(
            {
                "name": vname,
                "price": price,
                "is_default": is_default,
                "is_active": is_active,
            }
        )
    if not variants:
        errors.append("at least one variant is required")
    else:
        defaults = sum(1 for v in variants if v["is_default"] and v["is_active"])
        if defaults != 1:
            errors.append(f"exactly one default variant is required, got {defaults}")

    if errors:
        raise ValidationError("invalid menu item", errors=errors)

    return {
        "name": name,
        "description": draft.get("description"),
        "base_price": base_price,
        # de-duplicate while keeping order
        "categories": list(dict.fromkeys(categories)),
        "is_vegetarian": bool(draft.get("is_vegetarian")),
        "is_vegan": bool(draft.get("is_vegan")),
        "allergens": list(draft.get("allergens") or []),
        "variants": variants,
    }


def _default_variant(variants: list[MenuItemVariant]) -> MenuItemVariant | None:
    for variant in variants:
        if variant.is_default and variant.is_active:
            return variant
    return None


def _serialize_variant(variant: MenuItemVariant) -> dict:
    return {
        "id": variant.id,
        "name": variant.name,
        "price": float(variant.price),
        "is_default": variant.is_default,
        "is_active": variant.is_active,
    }


def _serialize_availability(rec: MenuItemAvailability) -> dict:
    return {
        "date": rec.date.isoformat(),
        "is_available": rec.is_available,
        "max_quantity": rec.max_quantity,
        "current_quantity": rec.current_quantity,
        "remaining": (
            None
            if rec.max_quantity is None
            else max(rec.max_quantity - rec.current_quantity, 0)
        ),
    }


def serialize_item(
    item: MenuItem,
    variants: list[MenuItemVariant],
    availability: list[MenuItemAvailability] | None = None,
) -> dict:
    default = _default_variant(variants)
    data = {
        "id": item.id,
        "university_id": item.university_id,
        "name": item.name,
        "description": item.description,
        "base_price": float(item.base_price),
        "price": float(default.price if default else item.base_price),
        "categories": item.categories or [],
        "is_vegetarian": item.is_vegetarian,
        "is_vegan": item.is_vegan,
        "allergens": item.allergens or [],
        "is_active": item.is_active,
        "variants": [_serialize_variant(v) for v in variants],
    }
    if availability is not None:
        data["availability"] = [_serialize_availability(a) for a in availability]
    return data


async def _variants_for(
    session: AsyncSession, item_ids: list[int]
) -> dict[int, list[MenuItemVariant]]:
    out: dict[int, list[MenuItemVariant]] = {i: [] for i in item_ids}
    if not item_ids:
        return out
    result = await session.scalars(
        select(MenuItemVariant)
        .where(MenuItemVariant.menu_item_id.in_(item_ids))
        .order_by(MenuItemVariant.id)
    )
    for variant in result:
        out[variant.menu_item_id].append(variant)
    return out


async def list_available_items(
    session: AsyncSession,
    university_id: int,
    day: date,
    category: str | None = None,
    vegetarian: bool | None = None,
    vegan: bool | None = None,
    search: str | None = None,
) -> list[dict]:
    """Return active items of ``university_id`` sellable on ``day``.

    Each entry carries the resolved unit price and the day's quantity
    counters (``max_quantity`` is ``None`` when uncapped).
    """

    stmt = (
        select(MenuItem, MenuItemAvailability)
        .outerjoin(
            MenuItemAvailability,
            and_(
                MenuItemAvailability.menu_item_id == MenuItem.id,
                MenuItemAvailability.date == day,
            ),
        )
        .where(
            MenuItem.university_id == university_id,
            MenuItem.is_active.is_(True),
            or_(
                MenuItemAvailability.id.is_(None),
                MenuItemAvailability.is_available.is_(True),
            ),
        )
        .order_by(MenuItem.name)
        .execution_options(populate_existing=True)
    )
    if vegetarian:
        stmt = stmt.where(MenuItem.is_vegetarian.is_(True))
    if vegan:
        stmt = stmt.where(MenuItem.is_vegan.is_(True))
    if search:
        stmt = stmt.where(MenuItem.name.ilike(f"%{search.strip()}%"))
    rows = (await session.execute(stmt)).all()

    wanted = category.strip().upper() if category else None
    if wanted:
        # categories is a JSON list; filter here to stay backend-neutral
        rows = [row for row in rows if wanted in (row[0].categories or [])]

    variants = await _variants_for(session, [row[0].id for row in rows])
    items = []
    for item, rec in rows:
        data = serialize_item(item, [v for v in variants[item.id] if v.is_active])
        data["date"] = day.isoformat()
        data["max_quantity"] = rec.max_quantity if rec else None
        data["current_quantity"] = rec.current_quantity if rec else 0
        data["remaining"] = (
            max(rec.max_quantity - rec.current_quantity, 0)
            if rec is not None and rec.max_quantity is not None
            else None
        )
        items.append(data)
    return items


async def list_items(
    session: AsyncSession,
    university_id: int | None = None,
    status: str | None = None,
    category: str | None = None,
    search: str | None = None,
) -> list[dict]:
    """Return items for staff, including inactive ones.

    ``university_id=None`` lists every tenant. ``status`` is ``active``,
    ``inactive`` or ``None`` for both. Availability from the tenant's local
    today onwards is attached.
    """

    stmt = select(MenuItem, University.timezone).join(
        University, University.id == MenuItem.university_id
    )
    if university_id is not None:
        stmt = stmt.where(MenuItem.university_id == university_id)
    if status == "active":
        stmt = stmt.where(MenuItem.is_active.is_(True))
    elif status == "inactive":
        stmt = stmt.where(MenuItem.is_active.is_(False))
    if search:
        stmt = stmt.where(MenuItem.name.ilike(f"%{search.strip()}%"))
    rows = (await session.execute(stmt.order_by(MenuItem.created_at.desc()))).all()
    if category:
        wanted = category.strip().upper()
        rows = [row for row in rows if wanted in (row[0].categories or [])]

    ids = [row[0].id for row in rows]
    variants = await _variants_for(session, ids)
    availability: dict[int, list[MenuItemAvailability]] = {i: [] for i in ids}
    if ids:
        oldest = min(clock.local_today(tz) for _, tz in rows)
        result = await session.scalars(
            select(MenuItemAvailability)
            .where(
                MenuItemAvailability.menu_item_id.in_(ids),
                MenuItemAvailability.date >= oldest,
            )
            .order_by(MenuItemAvailability.date)
            .execution_options(populate_existing=True)
        )
        for rec in result:
            availability[rec.menu_item_id].append(rec)

    out = []
    for item, tz in rows:
        today = clock.local_today(tz)
        upcoming = [a for a in availability[item.id] if a.date >= today]
        out.append(serialize_item(item, variants[item.id], upcoming))
    return out


async def popular_items(
    session: AsyncSession,
    university_id: int,
    limit: int = 6,
    days: int = 30,
    now: datetime | None = None,
) -> list[dict]:
    """Return the tenant's active items ranked by recent order lines.

    Only lines of orders created in the last ``days`` days count. Items
    nobody ordered still show up, after the ordered ones, by name.
    """

    since = (clock.as_utc(now) or clock.utcnow()) - timedelta(days=days)
    orders = func.count(Order.id).label("orders")
    stmt = (
        select(MenuItem, orders)
        .outerjoin(OrderItem, OrderItem.menu_item_id == MenuItem.id)
        .outerjoin(Order, and_(Order.id == OrderItem.order_id, Order.created_at >= since))
        .where(MenuItem.university_id == university_id, MenuItem.is_active.is_(True))
        .group_by(MenuItem.id)
        .order_by(orders.desc(), MenuItem.name)
        .limit(limit)
    )
    rows = (await session.execute(stmt)).all()
    variants = await _variants_for(session, [item.id for item, _ in rows])
    out = []
    for item, count in rows:
        data = serialize_item(item, [v for v in variants[item.id] if v.is_active])
        data["orders"] = count
        out.append(data)
    return out


async def get_item(session: AsyncSession, item_id: int) -> MenuItem:
    item = await session.get(MenuItem, item_id)
    if item is None:
        raise NotFound("menu item", item_id)
    return item


async def item_detail(session: AsyncSession, item_id: int) -> dict:
    item = await get_item(session, item_id)
    variants = await _variants_for(session, [item.id])
    result = await session.scalars(
        select(MenuItemAvailability)
        .where(MenuItemAvailability.menu_item_id == item.id)
        .order_by(MenuItemAvailability.date)
        .execution_options(populate_existing=True)
    )
    return serialize_item(item, variants[item.id], list(result))


def _add_variants(session: AsyncSession, item_id: int, variants: list[dict]) -> None:
    for v in variants:
        session.add(MenuItemVariant(menu_item_id=item_id, **v))


async def create_item(
    session: AsyncSession,
    university_id: int,
    draft: Mapping[str, Any],
    today: date | None = None,
) -> dict:
    """Persist a new item with its variants.

    Availability is provisioned for the next ``availability_horizon_days``
    (tenant-local today inclusive) with the default quantity cap.
    """

    data = validate_draft(draft)
    uni = await session.get(University, university_id)
    if uni is None:
        raise NotFound("university", university_id)
    settings = get_settings()
    variants = data.pop("variants")
    try:
        item = MenuItem(university_id=university_id, **data)
        session.add(item)
        await session.flush()
        _add_variants(session, item.id, variants)
        start = today or clock.local_today(uni.timezone)
        for offset in range(settings.availability_horizon_days):
            session.add(
                MenuItemAvailability(
                    menu_item_id=item.id,
                    date=start + timedelta(days=offset),
                    is_available=True,
                    max_quantity=settings.default_max_quantity,
                    current_quantity=0,
                )
            )
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    logger.info(
        "menu item created id=%s tenant=%s", item.id, university_id,
        extra={"tenant": university_id},
    )
    return await item_detail(session, item.id)


async def update_item(
    session: AsyncSession, item_id: int, draft: Mapping[str, Any]
) -> dict:
    """Replace the fields and the whole variant set of ``item_id``.

    Old variant rows are deleted; order lines keep their own snapshots.
    """

    data = validate_draft(draft)
    item = await get_item(session, item_id)
    variants = data.pop("variants")
    try:
        for key, value in data.items():
            setattr(item, key, value)
        item.updated_at = clock.utcnow()
        await session.execute(
            delete(MenuItemVariant).where(MenuItemVariant.menu_item_id == item.id)
        )
        _add_variants(session, item.id, variants)
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    logger.info("menu item updated id=%s", item_id, extra={"tenant": item.university_id})
    return await item_detail(session, item_id)


async def set_active(session: AsyncSession, item_id: int, active: bool) -> dict:
    """Soft delete or restore ``item_id``."""

    item = await get_item(session, item_id)
    item.is_active = active
    item.updated_at = clock.utcnow()
    await session.commit()
    logger.info(
        "menu item %s id=%s", "restored" if active else "deactivated", item_id,
        extra={"tenant": item.university_id},
    )
    return await item_detail(session, item_id)


async def set_availability(
    session: AsyncSession,
    item_id: int,
    day: date,
    is_available: bool,
    max_quantity: int | None,
) -> dict:
    """Create or update the availability record of ``item_id`` on ``day``.

    Units already reserved by orders are preserved.
    """

    if max_quantity is not None and max_quantity < 0:
        raise ValidationError(
            "invalid availability", errors=["max_quantity must not be negative"]
        )
    await get_item(session, item_id)
    rec = await session.scalar(
        select(MenuItemAvailability).where(
            MenuItemAvailability.menu_item_id == item_id,
            MenuItemAvailability.date == day,
        ).execution_options(populate_existing=True)
    )
    if rec is None:
        rec = MenuItemAvailability(
            menu_item_id=item_id, date=day, current_quantity=0
        )
        session.add(rec)
    rec.is_available = is_available
    rec.max_quantity = max_quantity
    await session.commit()
    return _serialize_availability(rec)


async def resolve_variant(
    session: AsyncSession,
    item_id: int,
    variant_id: int | None = None,
    university_id: int | None = None,
) -> ResolvedVariant:
    """Return the item and variant to price a cart line with.

    Without ``variant_id`` the item's default variant is used, falling back
    to the base price when none is flagged. Missing, inactive or foreign
    items and variants raise :class:`NotFound`.
    """

    item = await session.get(MenuItem, item_id)
    if item is None or not item.is_active:
        raise NotFound("menu item", item_id)
    if university_id is not None and item.university_id != university_id:
        raise NotFound("menu item", item_id)

    if variant_id is not None:
        variant = await session.get(MenuItemVariant, variant_id)
        if variant is None or variant.menu_item_id != item.id or not variant.is_active:
            raise NotFound("variant", variant_id)
        return ResolvedVariant(item, variant, Decimal(str(variant.price)))

    variants = (await _variants_for(session, [item.id]))[item.id]
    default = _default_variant(variants)
    if default is None:
        return ResolvedVariant(item, None, Decimal(str(item.base_price)))
    return ResolvedVariant(item, default, Decimal(str(default.price)))


async def reserve(
    session: AsyncSession, item_id: int, day: date, quantity: int
) -> None:
    """Claim ``quantity`` units of ``item_id`` on ``day``.

    The increment is a single conditional ``UPDATE`` bounded by
    ``max_quantity``. The caller owns the transaction.
    """

    rec = (
        await session.execute(
            select(
                MenuItemAvailability.id,
                MenuItemAvailability.is_available,
                MenuItemAvailability.max_quantity,
                MenuItemAvailability.current_quantity,
            ).where(
                MenuItemAvailability.menu_item_id == item_id,
                MenuItemAvailability.date == day,
            )
        )
    ).one_or_none()
    if rec is None:
        return
    if not rec.is_available:
        raise InvalidItem(
            item_id, reason="unavailable", message=f"menu item {item_id} is not available on {day}"
        )
    stmt = (
        update(MenuItemAvailability)
        .where(
            MenuItemAvailability.id == rec.id,
            MenuItemAvailability.is_available.is_(True),
        )
        .values(current_quantity=MenuItemAvailability.current_quantity + quantity)
        .execution_options(synchronize_session=False)
    )
    if rec.max_quantity is not None:
        stmt = stmt.where(
            MenuItemAvailability.current_quantity + quantity
            <= MenuItemAvailability.max_quantity
        )
    result = await session.execute(stmt)
    if result.rowcount == 0:
        remaining = (
            max(rec.max_quantity - rec.current_quantity, 0)
            if rec.max_quantity is not None
            else None
        )
        logger.info(
            "sold out item=%s date=%s requested=%s remaining=%s",
            item_id, day, quantity, remaining,
        )
        raise InvalidItem(
            item_id,
            reason="sold_out",
            message=f"menu item {item_id} has only {remaining} left for {day}",
        )


async def release(
    session: AsyncSession, item_id: int, day: date, quantity: int
) -> None:
    """Return ``quantity`` reserved units, never going below zero."""

    current = MenuItemAvailability.current_quantity
    await session.execute(
        update(MenuItemAvailability)
        .where(
            MenuItemAvailability.menu_item_id == item_id,
            MenuItemAvailability.date == day,
        )
        .values(current_quantity=case((current >= quantity, current - quantity), else_=0))
        .execution_options(synchronize_session=False)
    )


__all__ = [
    "ResolvedVariant",
    "create_item",
    "get_item",
    "item_detail",
    "list_available_items",
    "list_items",
    "release",
    "reserve",
    "resolve_variant",
    "serialize_item",
    "set_active",
    "set_availability",
    "update_item",
    "validate_draft",
]
