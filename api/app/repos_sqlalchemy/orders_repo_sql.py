"""SQLAlchemy-backed repository helpers for orders.

These helpers implement the order lifecycle: checkout, staff transitions and
the caterer serve step. Order lines snapshot names and prices so historical
orders are unaffected by later menu changes. Status changes are
compare-and-swap updates on the expected current status, so two staff
members acting on one order cannot both win.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import date
from math import ceil
from typing import Iterable, Sequence

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from config import get_settings

from .. import clock
from ..authz import Action, Principal, authorize, tenant_scope
from ..domain import (
    ACTIVE,
    RELEASES_STOCK,
    OrderStatus,
    PaymentStatus,
    can_transition,
)
from ..errors import InvalidTransition, NotFound, ValidationError
from ..models import Order, OrderItem, User
from ..ordering_window import ensure_open, load_rules
from ..pricing import CartLine, quote_cart
from ..routes_metrics import order_transitions_total, orders_created_total
from ..services.notifications import Notifier, build_notification, notify_status
from ..utils.order_numbers import next_order_number
from . import menu_repo_sql

logger = logging.getLogger("orders")

# Statuses a caterer sees in the kitchen queue.
KITCHEN_STATUSES = (*ACTIVE, OrderStatus.SERVED)


def _iso(value) -> str | None:
    if value is None:
        return None
    return clock.as_utc(value).isoformat()


def serialize_order(
    order: Order, items: Sequence[OrderItem], user: User | None = None
) -> dict:
    data = {
        "id": order.id,
        "order_number": order.order_number,
        "university_id": order.university_id,
        "user_id": order.user_id,
        "order_date": order.order_date.isoformat(),
        "status": order.status,
        "payment_status": order.payment_status,
        "payment_method": order.payment_method,
        "subtotal_amount": float(order.subtotal_amount),
        "tax_amount": float(order.tax_amount),
        "total_amount": float(order.total_amount),
        "special_instructions": order.special_instructions,
        "rejection_reason": order.rejection_reason,
        "created_at": _iso(order.created_at),
        "updated_at": _iso(order.updated_at),
        "completed_at": _iso(order.completed_at),
        "items": [
            {
                "menu_item_id": it.menu_item_id,
                "variant_id": it.variant_id,
                "name": it.name_snapshot,
                "variant_name": it.variant_name_snapshot,
                "quantity": it.quantity,
                "unit_price": float(it.unit_price),
            }
            for it in items
        ],
    }
    if user is not None:
        data["student"] = {"id": user.id, "name": user.name, "email": user.email, "phone": user.phone}
    return data


async def _items_for(
    session: AsyncSession, order_ids: Iterable[int]
) -> dict[int, list[OrderItem]]:
    ids = list(order_ids)
    out: dict[int, list[OrderItem]] = defaultdict(list)
    if not ids:
        return out
    result = await session.scalars(
        select(OrderItem).where(OrderItem.order_id.in_(ids)).order_by(OrderItem.id)
    )
    for item in result:
        out[item.order_id].append(item)
    return out


async def _load(session: AsyncSession, order_id: int) -> Order:
    order = await session.scalar(
        select(Order)
        .where(Order.id == order_id)
        .execution_options(populate_existing=True)
    )
    if order is None:
        raise NotFound("order", order_id)
    return order


async def _detail(session: AsyncSession, order: Order, with_user: bool = False) -> dict:
    items = await _items_for(session, [order.id])
    user = await session.get(User, order.user_id) if with_user else None
    return serialize_order(order, items[order.id], user)


async def create_order(
    session: AsyncSession,
    principal: Principal,
    order_date: date,
    cart: Sequence[CartLine],
    special_instructions: str | None = None,
    payment_method: str | None = None,
) -> dict:
    """Place a PENDING order for ``principal`` on ``order_date``.

    The ordering window is checked first, then every line is priced. Stock
    reservation, order number allocation and the inserts share one
    transaction; any failure rolls all of it back.
    """

    authorize(principal, Action.PLACE_ORDER, principal.tenant_id)
    tenant_id = principal.tenant_id
    rules = await load_rules(session, tenant_id)
    ensure_open(order_date, rules)
    quote = await quote_cart(session, tenant_id, cart, rules.tax_rate)

    wanted: dict[int, int] = defaultdict(int)
    for line in quote.lines:
        wanted[line.item_id] += line.quantity

    try:
        # stable order keeps concurrent checkouts from deadlocking
        for item_id in sorted(wanted):
            await menu_repo_sql.reserve(session, item_id, order_date, wanted[item_id])
        number = await next_order_number(session, tenant_id, rules.code)
        order = Order(
            order_number=number,
            university_id=tenant_id,
            user_id=principal.user_id,
            order_date=order_date,
            status=OrderStatus.PENDING.value,
            payment_status=PaymentStatus.PENDING.value,
            payment_method=payment_method,
            subtotal_amount=quote.subtotal,
            tax_amount=quote.tax,
            total_amount=quote.total,
            special_instructions=(special_instructions or "").strip() or None,
        )
        session.add(order)
        await session.flush()
        for line in quote.lines:
            session.add(
                OrderItem(
                    order_id=order.id,
                    menu_item_id=line.item_id,
                    variant_id=line.variant_id,
                    name_snapshot=line.name,
                    variant_name_snapshot=line.variant_name,
                    quantity=line.quantity,
                    unit_price=line.unit_price,
                )
            )
        await session.commit()
    except Exception:
        await session.rollback()
        raise

    orders_created_total.inc()
    logger.info(
        "order created id=%s number=%s total=%s",
        order.id,
        order.order_number,
        quote.total,
        extra={"tenant": tenant_id, "user": principal.user_id},
    )
    return await _detail(session, order)


async def _apply_transition(
    session: AsyncSession,
    order: Order,
    current: OrderStatus,
    target: OrderStatus,
    reason: str | None = None,
) -> Order:
    # a rollback expires ``order``
    order_id = order.id
    now = clock.utcnow()
    values: dict = {"status": target.value, "updated_at": now}
    if target is OrderStatus.SERVED:
        values["completed_at"] = now
    if target is OrderStatus.REJECTED:
        values["rejection_reason"] = reason
    try:
        result = await session.execute(
            update(Order)
            .where(Order.id == order_id, Order.status == current.value)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            await session.rollback()
            actual = await _load(session, order_id)
            logger.info(
                "lost transition race order=%s expected=%s actual=%s",
                order_id,
                current.value,
                actual.status,
            )
            raise InvalidTransition(actual.status, target.value)
        if target in RELEASES_STOCK:
            items = await _items_for(session, [order_id])
            for item in items[order_id]:
                await menu_repo_sql.release(
                    session, item.menu_item_id, order.order_date, item.quantity
                )
        await session.commit()
    except InvalidTransition:
        raise
    except Exception:
        await session.rollback()
        raise

    order_transitions_total.labels(status=target.value).inc()
    logger.info(
        "order %s %s -> %s",
        order_id,
        current.value,
        target.value,
        extra={"tenant": order.university_id},
    )
    return await _load(session, order_id)


async def _notify(session: AsyncSession, order: Order, notifier: Notifier | None) -> None:
    user = await session.get(User, order.user_id)
    contact = None
    if user is not None:
        contact = user.phone or user.email
    await notify_status(notifier, build_notification(order, contact))


def _parse_status(value: str | OrderStatus) -> OrderStatus:
    if isinstance(value, OrderStatus):
        return value
    try:
        return OrderStatus(str(value).strip().upper())
    except ValueError:
        raise ValidationError(
            "invalid status",
            errors=[f"{value!r} is not one of {', '.join(s.value for s in OrderStatus)}"],
        ) from None


async def transition_order(
    session: AsyncSession,
    order_id: int,
    principal: Principal,
    target_status: str | OrderStatus,
    reason: str | None = None,
    notifier: Notifier | None = None,
) -> dict:
    """Move ``order_id`` to ``target_status`` on behalf of an ADMIN or MANAGER.

    ``REJECTED`` needs a non-blank ``reason``. Rejection and cancellation
    hand reserved units back to the day's availability. The student is
    notified once the change is committed.
    """

    target = _parse_status(target_status)
    order = await _load(session, order_id)
    authorize(principal, Action.TRANSITION_ORDER, order.university_id, resource_id=order.id)
    current = OrderStatus(order.status)
    if not can_transition(current, target):
        raise InvalidTransition(current.value, target.value)
    reason = (reason or "").strip() or None
    if target is OrderStatus.REJECTED and reason is None:
        raise ValidationError(
            "rejection reason required", errors=["reason is required to reject an order"]
        )
    order = await _apply_transition(session, order, current, target, reason)
    await _notify(session, order, notifier)
    return await _detail(session, order, with_user=True)


async def serve_order(
    session: AsyncSession,
    order_id: int,
    principal: Principal,
    notifier: Notifier | None = None,
) -> dict:
    """Mark a READY order as SERVED for the caterer at the counter."""

    order = await _load(session, order_id)
    authorize(principal, Action.SERVE_ORDER, order.university_id, resource_id=order.id)
    current = OrderStatus(order.status)
    if current is not OrderStatus.READY:
        raise InvalidTransition(
            current.value,
            OrderStatus.SERVED.value,
            f"order is {current.value}, only READY orders can be served",
        )
    order = await _apply_transition(session, order, current, OrderStatus.SERVED)
    await _notify(session, order, notifier)
    return await _detail(session, order, with_user=True)


async def get_order(session: AsyncSession, order_id: int, principal: Principal) -> dict:
    order = await _load(session, order_id)
    authorize(
        principal,
        Action.VIEW_ORDER,
        order.university_id,
        resource_owner_id=order.user_id if principal.is_student else None,
        resource_id=order.id,
    )
    return await _detail(session, order, with_user=principal.is_staff)


def _page(total: int, page: int, page_size: int) -> dict:
    return {
        "page": page,
        "page_size": page_size,
        "total": total,
        "pages": ceil(total / page_size) if total else 0,
    }


async def list_user_orders(
    session: AsyncSession,
    principal: Principal,
    page: int = 1,
    page_size: int | None = None,
    status: str | None = None,
) -> dict:
    """Return ``principal``'s own orders, newest first."""

    authorize(principal, Action.VIEW_ORDER, principal.tenant_id)
    page = max(page, 1)
    page_size = page_size or get_settings().order_page_size
    stmt = select(Order).where(Order.user_id == principal.user_id)
    if status:
        stmt = stmt.where(Order.status == _parse_status(status).value)
    total = await session.scalar(select(func.count()).select_from(stmt.subquery()))
    result = await session.scalars(
        stmt.order_by(Order.created_at.desc(), Order.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    orders = list(result)
    items = await _items_for(session, [o.id for o in orders])
    return {
        "orders": [serialize_order(o, items[o.id]) for o in orders],
        **_page(total or 0, page, page_size),
    }


async def list_tenant_orders(
    session: AsyncSession,
    principal: Principal,
    university_id: int | None = None,
    status: str | None = None,
    order_date: date | None = None,
    page: int = 1,
    page_size: int | None = None,
) -> dict:
    """Return orders for staff review; ADMIN may span universities."""

    scope = tenant_scope(principal, university_id)
    authorize(principal, Action.TRANSITION_ORDER, scope)
    page = max(page, 1)
    page_size = page_size or get_settings().order_page_size
    stmt = select(Order)
    if scope is not None:
        stmt = stmt.where(Order.university_id == scope)
    if status:
        stmt = stmt.where(Order.status == _parse_status(status).value)
    if order_date:
        stmt = stmt.where(Order.order_date == order_date)
    total = await session.scalar(select(func.count()).select_from(stmt.subquery()))
    result = await session.execute(
        stmt.add_columns(User)
        .join(User, User.id == Order.user_id)
        .order_by(Order.created_at.desc(), Order.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    rows = result.all()
    items = await _items_for(session, [order.id for order, _ in rows])
    return {
        "orders": [serialize_order(order, items[order.id], user) for order, user in rows],
        **_page(total or 0, page, page_size),
    }


async def list_kitchen_orders(
    session: AsyncSession,
    principal: Principal,
    university_id: int | None = None,
    status: str | None = None,
    limit: int | None = None,
) -> list[dict]:
    """Return the caterer queue: PENDING through SERVED, oldest first."""

    scope = tenant_scope(principal, university_id)
    authorize(principal, Action.VIEW_KITCHEN, scope)
    statuses = [s.value for s in KITCHEN_STATUSES]
    if status:
        wanted = _parse_status(status)
        statuses = [wanted.value] if wanted in KITCHEN_STATUSES else []
    stmt = (
        select(Order, User)
        .join(User, User.id == Order.user_id)
        .where(Order.status.in_(statuses))
    )
    if scope is not None:
        stmt = stmt.where(Order.university_id == scope)
    stmt = stmt.order_by(Order.order_date, Order.created_at, Order.id).limit(
        limit or get_settings().kitchen_queue_limit
    )
    rows = (await session.execute(stmt)).all()
    items = await _items_for(session, [order.id for order, _ in rows])
    return [serialize_order(order, items[order.id], user) for order, user in rows]


async def kitchen_stats(
    session: AsyncSession,
    principal: Principal,
    university_id: int | None = None,
    today: date | None = None,
) -> dict:
    """Return queue counters for the caterer dashboard."""

    scope = tenant_scope(principal, university_id)
    authorize(principal, Action.VIEW_KITCHEN, scope)
    if today is None:
        rules = await load_rules(session, scope) if scope is not None else None
        today = clock.local_today(
            rules.timezone if rules else get_settings().default_timezone
        )

    def _count(*conds):
        stmt = select(func.count(Order.id)).where(*conds)
        if scope is not None:
            stmt = stmt.where(Order.university_id == scope)
        return session.scalar(stmt)

    return {
        "date": today.isoformat(),
        "pending_orders": await _count(Order.status == OrderStatus.PENDING.value),
        "ready_orders": await _count(Order.status == OrderStatus.READY.value),
        "served_today": await _count(
            Order.status == OrderStatus.SERVED.value, Order.order_date == today
        ),
        "total_today": await _count(Order.order_date == today),
    }


__all__ = [
    "create_order",
    "get_order",
    "kitchen_stats",
    "list_kitchen_orders",
    "list_tenant_orders",
    "list_user_orders",
    "serialize_order",
    "serve_order",
    "transition_order",
]
