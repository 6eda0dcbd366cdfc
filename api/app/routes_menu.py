"""Student-facing menu and ordering-window routes."""

from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from . import clock, menu_cache
from .auth import get_current_principal
from .authz import Action, Principal, authorize, tenant_scope
from .db import get_db
from .errors import ValidationError
from .ordering_window import check_ordering_window, load_rules
from .repos_sqlalchemy import menu_repo_sql
from .utils.responses import ok

router = APIRouter()


def _tenant_for(principal: Principal, university_id: Optional[int]) -> int:
    tenant = tenant_scope(principal, university_id)
    if tenant is None:
        raise ValidationError("university_id is required", errors=["university_id is required"])
    return tenant


@router.get("/api/menu")
async def list_menu(
    request: Request,
    day: Optional[date] = Query(None, alias="date"),
    category: Optional[str] = None,
    vegetarian: bool = False,
    vegan: bool = False,
    search: Optional[str] = None,
    university_id: Optional[int] = None,
    principal: Principal = Depends(get_current_principal),
    session: AsyncSession = Depends(get_db),
) -> dict:
    """Return items orderable on ``day`` (tenant-local today by default)."""

    tenant = _tenant_for(principal, university_id)
    authorize(principal, Action.VIEW_MENU, tenant)
    rules = await load_rules(session, tenant)
    day = day or clock.local_today(rules.timezone)
    filters = {
        "category": category.strip().upper() if category else None,
        "vegetarian": vegetarian,
        "vegan": vegan,
        "search": search.strip().lower() if search else None,
    }

    async def load() -> list[dict]:
        return await menu_repo_sql.list_available_items(session, tenant, day, **filters)

    redis = getattr(request.app.state, "redis", None)
    items = await menu_cache.cached_listing(redis, tenant, day, filters, load)
    return ok({"date": day.isoformat(), "items": items})


@router.get("/api/ordering-window")
async def ordering_window(
    day: Optional[date] = Query(None, alias="date"),
    university_id: Optional[int] = None,
    principal: Principal = Depends(get_current_principal),
    session: AsyncSession = Depends(get_db),
) -> dict:
    """Describe whether ``day`` can still be ordered and how long is left."""

    tenant = _tenant_for(principal, university_id)
    authorize(principal, Action.VIEW_MENU, tenant)
    rules = await load_rules(session, tenant)
    day = day or clock.local_today(rules.timezone)
    return ok(check_ordering_window(day, rules))


@router.get("/api/menu/popular")
async def popular_menu(
    limit: int = Query(6, ge=1, le=50),
    university_id: Optional[int] = None,
    principal: Principal = Depends(get_current_principal),
    session: AsyncSession = Depends(get_db),
) -> dict:
    tenant = _tenant_for(principal, university_id)
    authorize(principal, Action.VIEW_MENU, tenant)
    items = await menu_repo_sql.popular_items(session, tenant, limit=limit)
    return ok({"items": items})
