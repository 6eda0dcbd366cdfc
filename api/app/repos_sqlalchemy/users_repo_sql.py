"""User administration helpers."""

from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from .. import clock
from ..audit import log_event
from ..authz import Action, Principal, authorize
from ..domain import UserStatus
from ..errors import AccessDenied, NotFound, ValidationError
from ..models import User

logger = logging.getLogger("api")


def serialize_user(user: User) -> dict:
    return {
        "id": user.id,
        "university_id": user.university_id,
        "name": user.name,
        "email": user.email,
        "phone": user.phone,
        "role": user.role,
        "status": user.status,
    }


async def set_user_status(
    session: AsyncSession, user_id: int, principal: Principal, status: str
) -> dict:
    """Change the account status of ``user_id`` within the caller's tenant."""

    try:
        new_status = UserStatus(str(status).strip().upper())
    except ValueError:
        raise ValidationError(
            "invalid status",
            errors=[f"{status!r} is not one of {', '.join(s.value for s in UserStatus)}"],
        ) from None
    user = await session.get(User, user_id)
    if user is None:
        raise NotFound("user", user_id)
    authorize(principal, Action.MANAGE_USERS, user.university_id, resource_id=user.id)
    previous = user.status
    user.status = new_status.value
    user.updated_at = clock.utcnow()
    await log_event(
        session,
        actor=principal.email or str(principal.user_id),
        action="USER_STATUS",
        entity=f"user:{user.id}",
        meta={"from": previous, "to": new_status.value},
    )
    await session.commit()
    logger.info("user %s status %s -> %s", user.id, previous, new_status.value)
    return serialize_user(user)


async def delete_user(session: AsyncSession, user_id: int, principal: Principal) -> dict:
    """Soft delete ``user_id`` by marking it REJECTED; self-deletion is refused."""

    if user_id == principal.user_id:
        raise AccessDenied("cannot delete your own account", {"reason": "self"})
    return await set_user_status(session, user_id, principal, UserStatus.REJECTED.value)
