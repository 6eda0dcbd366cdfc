from datetime import date

import pytest

from api.app import menu_cache

DAY = date(2025, 3, 10)


@pytest.mark.anyio
async def test_listing_is_served_from_cache(redis):
    calls = []

    async def loader():
        calls.append(1)
        return [{"id": 1, "name": "Pho Bo"}]

    first = await menu_cache.cached_listing(redis, 1, DAY, {"vegan": False}, loader, ttl=60)
    second = await menu_cache.cached_listing(redis, 1, DAY, {"vegan": False}, loader, ttl=60)
    assert first == second == [{"id": 1, "name": "Pho Bo"}]
    assert len(calls) == 1


@pytest.mark.anyio
async def test_filters_and_dates_get_their_own_keys(redis):
    calls = []

    async def loader():
        calls.append(1)
        return []

    await menu_cache.cached_listing(redis, 1, DAY, {"vegan": False}, loader)
    await menu_cache.cached_listing(redis, 1, DAY, {"vegan": True}, loader)
    await menu_cache.cached_listing(redis, 1, date(2025, 3, 11), {"vegan": False}, loader)
    await menu_cache.cached_listing(redis, 2, DAY, {"vegan": False}, loader)
    assert len(calls) == 4


@pytest.mark.anyio
async def test_bump_orphans_old_listings(redis):
    data = {"name": "old"}

    async def loader():
        return [dict(data)]

    assert await menu_cache.cached_listing(redis, 1, DAY, {}, loader) == [{"name": "old"}]
    data["name"] = "new"
    assert await menu_cache.cached_listing(redis, 1, DAY, {}, loader) == [{"name": "old"}]
    assert await menu_cache.bump(redis, 1) == 1
    assert await menu_cache.cached_listing(redis, 1, DAY, {}, loader) == [{"name": "new"}]


@pytest.mark.anyio
async def test_cached_entries_expire(redis):
    async def loader():
        return []

    await menu_cache.cached_listing(redis, 1, DAY, {}, loader, ttl=120)
    key = menu_cache.listing_key(1, 0, DAY, {})
    assert 0 < await redis.ttl(key) <= 120


@pytest.mark.anyio
async def test_without_redis_loader_is_called():
    async def loader():
        return [1]

    assert await menu_cache.cached_listing(None, 1, DAY, {}, loader) == [1]
    assert await menu_cache.bump(None, 1) == 0
