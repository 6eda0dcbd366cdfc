"""Session revocation ledger.

An ADMIN can invalidate every active student session at once. Each use
appends a versioned :class:`~api.app.models.SessionRevocation` entry and
stamps ``forced_logout_at`` on all students; credential validation rejects
tokens issued before either mark.
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from . import clock
from .audit import log_event
from .authz import Action, Principal, authorize
from .domain import Role
from .models import SessionRevocation, User
from .routes_metrics import forced_logouts_total

logger = logging.getLogger("revocation")

STUDENTS = "STUDENTS"


async def force_logout_all_students(
    session: AsyncSession, principal: Principal, reason: str | None = None
) -> dict:
    """Revoke all student sessions issued before now."""

    authorize(principal, Action.FORCE_LOGOUT)
    now = clock.utcnow()
    try:
        result = await session.execute(
            update(User)
            .where(User.role == Role.STUDENT.value)
            .values(forced_logout_at=now)
            .execution_options(synchronize_session=False)
        )
        affected = result.rowcount or 0
        entry = SessionRevocation(
            scope=STUDENTS,
            actor_id=principal.user_id,
            reason=reason,
            affected_count=affected,
            revoked_at=now,
        )
        session.add(entry)
        await log_event(
            session,
            actor=principal.email or str(principal.user_id),
            action="FORCE_LOGOUT_ALL_STUDENTS",
            entity="users",
            meta={
                "reason": reason,
                "affected_students": affected,
                "timestamp": now.isoformat(),
            },
        )
        await session.commit()
    except Exception:
        await session.rollback()
        raise

    forced_logouts_total.inc()
    logger.warning(
        "forced logout of all students by user=%s affected=%s version=%s",
        principal.user_id,
        affected,
        entry.id,
        extra={"user": principal.user_id, "action": "FORCE_LOGOUT"},
    )
    return {
        "version": entry.id,
        "affected_students": affected,
        "revoked_at": now.isoformat(),
    }


async def latest_checkpoint(session: AsyncSession, scope: str = STUDENTS) -> datetime | None:
    value = await session.scalar(
        select(func.max(SessionRevocation.revoked_at)).where(
            SessionRevocation.scope == scope
        )
    )
    return clock.as_utc(value)


async def is_revoked(session: AsyncSession, user: User, issued_at: datetime) -> bool:
    """Return ``True`` if a token issued at ``issued_at`` for ``user`` is revoked."""

    issued_at = clock.as_utc(issued_at)
    marks = [clock.as_utc(user.forced_logout_at)]
    if user.role == Role.STUDENT.value:
        marks.append(await latest_checkpoint(session))
    return any(mark is not None and issued_at < mark for mark in marks)


__all__ = ["force_logout_all_students", "is_revoked", "latest_checkpoint"]
