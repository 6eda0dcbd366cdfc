"""Short-lived Redis cache for student menu listings.

Keys embed a per-tenant menu version. Any catalog mutation bumps the version
so stale listings are simply never read again and expire on their own.
"""

from __future__ import annotations

import hashlib
import json
import logging
from datetime import date
from typing import Awaitable, Callable

from config import get_settings

from .routes_metrics import menu_cache_hits_total

logger = logging.getLogger("menu")


def version_key(tenant_id: int) -> str:
    return f"menu:ver:{tenant_id}"


def listing_key(tenant_id: int, version: int, day: date, filters: dict) -> str:
    digest = hashlib.sha1(
        json.dumps(filters, sort_keys=True, default=str).encode()
    ).hexdigest()[:16]
    return f"menu:{tenant_id}:v{version}:{day.isoformat()}:{digest}"


async def current_version(redis, tenant_id: int) -> int:
    raw = await redis.get(version_key(tenant_id))
    return int(raw) if raw else 0


async def bump(redis, tenant_id: int) -> int:
    """Invalidate cached listings for ``tenant_id``; returns the new version."""
    if redis is None:
        return 0
    version = await redis.incr(version_key(tenant_id))
    logger.info("menu version bumped tenant=%s v=%s", tenant_id, version, extra={"tenant": tenant_id})
    return int(version)


async def cached_listing(
    redis,
    tenant_id: int,
    day: date,
    filters: dict,
    loader: Callable[[], Awaitable[list[dict]]],
    ttl: int | None = None,
) -> list[dict]:
    """Return the listing from Redis or call ``loader`` and store its result."""

    if redis is None:
        return await loader()
    version = await current_version(redis, tenant_id)
    key = listing_key(tenant_id, version, day, filters)
    cached = await redis.get(key)
    if cached:
        menu_cache_hits_total.inc()
        return json.loads(cached)
    data = await loader()
    ttl = ttl if ttl is not None else get_settings().menu_cache_ttl_secs
    await redis.set(key, json.dumps(data), ex=ttl)
    return data


__all__ = ["bump", "cached_listing", "current_version", "listing_key", "version_key"]
