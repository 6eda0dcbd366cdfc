"""Staff order review and status transitions."""

from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from .auth import get_current_principal
from .authz import Principal
from .db import get_db
from .repos_sqlalchemy import orders_repo_sql
from .schemas import TransitionIn
from .utils.responses import ok

router = APIRouter()


@router.get("/api/admin/orders")
async def list_orders(
    university_id: Optional[int] = None,
    status: Optional[str] = None,
    day: Optional[date] = Query(None, alias="date"),
    page: int = 1,
    page_size: Optional[int] = None,
    principal: Principal = Depends(get_current_principal),
    session: AsyncSession = Depends(get_db),
) -> dict:
    data = await orders_repo_sql.list_tenant_orders(
        session,
        principal,
        university_id=university_id,
        status=status,
        order_date=day,
        page=page,
        page_size=page_size,
    )
    return ok(data)


@router.patch("/api/admin/orders/{order_id}")
async def transition_order(
    order_id: int,
    payload: TransitionIn,
    request: Request,
    principal: Principal = Depends(get_current_principal),
    session: AsyncSession = Depends(get_db),
) -> dict:
    """Move an order along its lifecycle and notify the student."""

    order = await orders_repo_sql.transition_order(
        session,
        order_id,
        principal,
        payload.status,
        reason=payload.reason,
        notifier=getattr(request.app.state, "notifier", None),
    )
    return ok(order)
