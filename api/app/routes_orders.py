"""Student checkout and order history routes."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from .auth import get_current_principal
from .authz import Action, Principal, authorize
from .db import get_db
from .ordering_window import load_rules
from .pricing import parse_cart, quote_cart
from .repos_sqlalchemy import orders_repo_sql
from .schemas import OrderIn, QuoteIn
from .utils.responses import ok

router = APIRouter()


@router.post("/api/orders/quote")
async def quote(
    payload: QuoteIn,
    principal: Principal = Depends(get_current_principal),
    session: AsyncSession = Depends(get_db),
) -> dict:
    """Price a cart without placing it."""

    authorize(principal, Action.PLACE_ORDER, principal.tenant_id)
    cart = parse_cart(line.model_dump() for line in payload.items)
    rules = await load_rules(session, principal.tenant_id)
    result = await quote_cart(session, principal.tenant_id, cart, rules.tax_rate)
    return ok(result.as_dict())


@router.post("/api/orders", status_code=201)
async def create_order(
    payload: OrderIn,
    principal: Principal = Depends(get_current_principal),
    session: AsyncSession = Depends(get_db),
) -> dict:
    cart = parse_cart(line.model_dump() for line in payload.items)
    order = await orders_repo_sql.create_order(
        session,
        principal,
        payload.order_date,
        cart,
        special_instructions=payload.special_instructions,
        payment_method=payload.payment_method,
    )
    return ok(order)


@router.get("/api/orders")
async def list_my_orders(
    page: int = 1,
    page_size: Optional[int] = None,
    status: Optional[str] = None,
    principal: Principal = Depends(get_current_principal),
    session: AsyncSession = Depends(get_db),
) -> dict:
    """Return the caller's orders, newest first."""

    data = await orders_repo_sql.list_user_orders(
        session, principal, page=page, page_size=page_size, status=status
    )
    return ok(data)


@router.get("/api/orders/{order_id}")
async def get_order(
    order_id: int,
    principal: Principal = Depends(get_current_principal),
    session: AsyncSession = Depends(get_db),
) -> dict:
    return ok(await orders_repo_sql.get_order(session, order_id, principal))
