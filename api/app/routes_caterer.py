"""Kitchen routes: the caterer queue, counters and the serve step."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from .auth import get_current_principal
from .authz import Principal
from .db import get_db
from .repos_sqlalchemy import orders_repo_sql
from .utils.responses import ok

router = APIRouter()


@router.get("/api/caterer/orders")
async def kitchen_queue(
    status: Optional[str] = None,
    university_id: Optional[int] = None,
    limit: Optional[int] = None,
    principal: Principal = Depends(get_current_principal),
    session: AsyncSession = Depends(get_db),
) -> dict:
    orders = await orders_repo_sql.list_kitchen_orders(
        session, principal, university_id=university_id, status=status, limit=limit
    )
    return ok(orders)


@router.get("/api/caterer/stats")
async def kitchen_stats(
    university_id: Optional[int] = None,
    principal: Principal = Depends(get_current_principal),
    session: AsyncSession = Depends(get_db),
) -> dict:
    return ok(await orders_repo_sql.kitchen_stats(session, principal, university_id))


@router.post("/api/caterer/orders/{order_id}/serve")
async def serve_order(
    order_id: int,
    request: Request,
    principal: Principal = Depends(get_current_principal),
    session: AsyncSession = Depends(get_db),
) -> dict:
    """Hand a READY order to the student at the counter."""

    order = await orders_repo_sql.serve_order(
        session,
        order_id,
        principal,
        notifier=getattr(request.app.state, "notifier", None),
    )
    return ok(order)
