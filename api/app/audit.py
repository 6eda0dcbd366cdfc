# audit.py

"""Audit logging helpers.

Staff actions with tenant-wide effect are recorded in ``audit_log`` inside
the caller's transaction, so the audit row commits or rolls back together
with the change it describes.
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .models import AuditLog

logger = logging.getLogger("audit")


async def log_event(
    session: AsyncSession,
    actor: str,
    action: str,
    entity: str,
    meta: dict[str, Any] | None = None,
) -> AuditLog:
    """Stage an audit entry for ``actor`` performing ``action`` on ``entity``."""

    entry = AuditLog(actor=actor, action=action, entity=entity, meta=meta)
    session.add(entry)
    logger.info("%s %s %s", actor, action, entity, extra={"action": action})
    return entry


async def recent_events(
    session: AsyncSession, action: str | None = None, limit: int = 50
) -> list[AuditLog]:
    """Return the newest audit entries, optionally filtered by ``action``."""

    stmt = select(AuditLog).order_by(AuditLog.id.desc()).limit(limit)
    if action:
        stmt = stmt.where(AuditLog.action == action)
    return list(await session.scalars(stmt))
