"""User administration and forced logout routes."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from .auth import get_current_principal
from .authz import Principal
from .db import get_db
from .repos_sqlalchemy import users_repo_sql
from .revocation import force_logout_all_students
from .schemas import ForceLogoutIn, UserStatusIn
from .utils.responses import ok

router = APIRouter()


@router.post("/api/admin/force-logout-students")
async def force_logout_students(
    payload: Optional[ForceLogoutIn] = None,
    principal: Principal = Depends(get_current_principal),
    session: AsyncSession = Depends(get_db),
) -> dict:
    """Invalidate every active student session."""

    result = await force_logout_all_students(
        session, principal, reason=payload.reason if payload else None
    )
    return ok(result)


@router.patch("/api/admin/users/{user_id}")
async def update_user_status(
    user_id: int,
    payload: UserStatusIn,
    principal: Principal = Depends(get_current_principal),
    session: AsyncSession = Depends(get_db),
) -> dict:
    return ok(await users_repo_sql.set_user_status(session, user_id, principal, payload.status))


@router.delete("/api/admin/users/{user_id}")
async def delete_user(
    user_id: int,
    principal: Principal = Depends(get_current_principal),
    session: AsyncSession = Depends(get_db),
) -> dict:
    """Soft delete a user by rejecting the account."""

    return ok(await users_repo_sql.delete_user(session, user_id, principal))
