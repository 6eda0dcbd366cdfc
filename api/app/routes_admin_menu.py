"""Admin menu routes for managing menu items.

ADMIN may work on any university's menu; MANAGER only on its own. Every
mutation bumps the tenant's menu version so cached student listings are
dropped.
"""

from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from . import menu_cache
from .auth import get_current_principal
from .authz import Action, Principal, authorize, tenant_scope
from .db import get_db
from .errors import ValidationError
from .repos_sqlalchemy import menu_repo_sql
from .schemas import ActiveIn, AvailabilityIn, MenuItemIn
from .utils.responses import ok

router = APIRouter()


async def _owned_item(session: AsyncSession, principal: Principal, item_id: int):
    item = await menu_repo_sql.get_item(session, item_id)
    authorize(principal, Action.MANAGE_MENU, item.university_id, resource_id=item.id)
    return item


async def _bump(request: Request, tenant_id: int) -> None:
    await menu_cache.bump(getattr(request.app.state, "redis", None), tenant_id)


@router.get("/api/admin/menu")
async def list_menu_items(
    university_id: Optional[int] = None,
    status: Optional[str] = None,
    category: Optional[str] = None,
    search: Optional[str] = None,
    principal: Principal = Depends(get_current_principal),
    session: AsyncSession = Depends(get_db),
) -> dict:
    """Return menu items for staff, inactive ones included."""

    tenant = tenant_scope(principal, university_id)
    authorize(principal, Action.MANAGE_MENU, tenant)
    items = await menu_repo_sql.list_items(
        session, tenant, status=status, category=category, search=search
    )
    return ok(items)


@router.post("/api/admin/menu", status_code=201)
async def create_menu_item(
    payload: MenuItemIn,
    request: Request,
    principal: Principal = Depends(get_current_principal),
    session: AsyncSession = Depends(get_db),
) -> dict:
    tenant = tenant_scope(principal, payload.university_id)
    if tenant is None:
        raise ValidationError(
            "university_id is required", errors=["university_id is required"]
        )
    authorize(principal, Action.MANAGE_MENU, tenant)
    item = await menu_repo_sql.create_item(session, tenant, payload.model_dump())
    await _bump(request, tenant)
    return ok(item)


@router.put("/api/admin/menu/{item_id}")
async def update_menu_item(
    item_id: int,
    payload: MenuItemIn,
    request: Request,
    principal: Principal = Depends(get_current_principal),
    session: AsyncSession = Depends(get_db),
) -> dict:
    """Replace an item's fields and its whole variant set."""

    item = await _owned_item(session, principal, item_id)
    tenant = item.university_id
    data = await menu_repo_sql.update_item(session, item_id, payload.model_dump())
    await _bump(request, tenant)
    return ok(data)


@router.patch("/api/admin/menu/{item_id}")
async def set_menu_item_active(
    item_id: int,
    payload: ActiveIn,
    request: Request,
    principal: Principal = Depends(get_current_principal),
    session: AsyncSession = Depends(get_db),
) -> dict:
    item = await _owned_item(session, principal, item_id)
    tenant = item.university_id
    data = await menu_repo_sql.set_active(session, item_id, payload.is_active)
    await _bump(request, tenant)
    return ok(data)


@router.delete("/api/admin/menu/{item_id}")
async def delete_menu_item(
    item_id: int,
    request: Request,
    principal: Principal = Depends(get_current_principal),
    session: AsyncSession = Depends(get_db),
) -> dict:
    """Soft delete a menu item."""

    item = await _owned_item(session, principal, item_id)
    tenant = item.university_id
    data = await menu_repo_sql.set_active(session, item_id, False)
    await _bump(request, tenant)
    return ok(data)


@router.put("/api/admin/menu/{item_id}/availability/{day}")
async def set_menu_item_availability(
    item_id: int,
    day: date,
    payload: AvailabilityIn,
    request: Request,
    principal: Principal = Depends(get_current_principal),
    session: AsyncSession = Depends(get_db),
) -> dict:
    """Open, close or cap an item for one date."""

    item = await _owned_item(session, principal, item_id)
    tenant = item.university_id
    data = await menu_repo_sql.set_availability(
        session, item_id, day, payload.is_available, payload.max_quantity
    )
    await _bump(request, tenant)
    return ok({"menu_item_id": item_id, **data})
