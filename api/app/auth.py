# auth.py

"""Bearer token helpers for FastAPI routes.

Tokens are HS256 JWTs carrying the user id, role, tenant and issue time.
Login itself happens elsewhere; this module only issues tokens for a known
user and turns a presented token back into a :class:`~api.app.authz.Principal`.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from config import get_settings

from . import clock
from .authz import Principal
from .db import get_db
from .domain import Role, UserStatus
from .errors import Unauthorized
from .models import User
from .revocation import is_revoked

logger = logging.getLogger("api")

bearer_scheme = HTTPBearer(auto_error=False)


def create_access_token(
    user: User,
    expires_delta: Optional[timedelta] = None,
    issued_at: Optional[datetime] = None,
) -> str:
    """Create a signed JWT for ``user``."""

    settings = get_settings()
    now = clock.as_utc(issued_at) or clock.utcnow()
    expire = now + (
        expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    )
    claims = {
        "sub": str(user.id),
        "role": user.role,
        "tenant": user.university_id,
        "status": user.status,
        # fractional seconds so a token minted right after a revocation survives it
        "iat": now.timestamp(),
        "exp": expire,
    }
    return jwt.encode(claims, settings.secret_key, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> dict:
    """Return the verified claims of ``token`` or raise :class:`Unauthorized`."""

    settings = get_settings()
    try:
        claims = jwt.decode(
            token,
            settings.secret_key,
            algorithms=[settings.jwt_algorithm],
            options={"require": ["sub", "iat", "exp"]},
        )
    except jwt.ExpiredSignatureError:
        raise Unauthorized("token expired") from None
    except jwt.PyJWTError as exc:
        raise Unauthorized("invalid token", {"reason": str(exc)}) from None
    return claims


async def get_current_principal(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    session: AsyncSession = Depends(get_db),
) -> Principal:
    """Resolve the caller from a bearer token or raise :class:`Unauthorized`."""

    if credentials is None or credentials.scheme.lower() != "bearer":
        raise Unauthorized("missing bearer token")
    claims = decode_token(credentials.credentials)
    try:
        user_id = int(claims["sub"])
    except (TypeError, ValueError):
        raise Unauthorized("invalid token subject") from None
    user = await session.get(User, user_id)
    if user is None:
        raise Unauthorized("unknown user")
    issued_at = datetime.fromtimestamp(float(claims["iat"]), tz=timezone.utc)
    if await is_revoked(session, user, issued_at):
        logger.info("revoked token rejected user=%s", user.id, extra={"user": user.id})
        raise Unauthorized("session revoked", {"reason": "forced_logout"})
    return Principal(
        user_id=user.id,
        role=Role(user.role),
        tenant_id=user.university_id,
        status=UserStatus(user.status),
        name=user.name,
        email=user.email,
    )
