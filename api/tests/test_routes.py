from datetime import timedelta

import pytest
from httpx import ASGITransport, AsyncClient
from prometheus_client import REGISTRY

from api.app import clock
from api.app.auth import create_access_token
from api.app.main import app

TZ = "Asia/Ho_Chi_Minh"


@pytest.fixture
async def client(engine, redis, notifier):
    app.state.redis = redis
    app.state.notifier = notifier
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


def auth_for(user, **kw):
    return {"Authorization": f"Bearer {create_access_token(user, **kw)}"}


def cart(order_day, item_id, quantity=1, variant_id=None):
    return {
        "order_date": order_day.isoformat(),
        "items": [{"item_id": item_id, "variant_id": variant_id, "quantity": quantity}],
    }


@pytest.mark.anyio
async def test_missing_token_is_401_envelope(client):
    labels = {"status": "401", "area": "orders"}
    before = REGISTRY.get_sample_value("http_errors_total", labels) or 0
    resp = await client.get("/api/orders", headers={"X-Request-ID": "req-1"})
    assert resp.status_code == 401
    assert resp.headers["www-authenticate"] == "Bearer"
    assert resp.headers["x-request-id"] == "req-1"
    body = resp.json()
    assert body["ok"] is False
    assert body["request_id"] == "req-1"
    assert body["error"]["code"] == "UNAUTHORIZED"
    assert REGISTRY.get_sample_value("http_errors_total", labels) == before + 1


@pytest.mark.anyio
async def test_health(client):
    resp = await client.get("/health")
    assert resp.json() == {"ok": True, "data": {"status": "ok", "env": "test"}}


@pytest.mark.anyio
async def test_menu_listing_is_cached_until_bumped(client, world, dish, salad, order_day):
    hits = REGISTRY.get_sample_value("menu_cache_hits_total") or 0
    params = {"date": order_day.isoformat()}
    first = await client.get("/api/menu", params=params, headers=auth_for(world.student))
    assert first.status_code == 200
    names = {i["name"] for i in first.json()["data"]["items"]}
    assert names == {"Pho Bo", "Garden Salad"}

    again = await client.get("/api/menu", params=params, headers=auth_for(world.student))
    assert again.json() == first.json()
    assert REGISTRY.get_sample_value("menu_cache_hits_total") == hits + 1

    closed = await client.put(
        f"/api/admin/menu/{salad['id']}/availability/{order_day.isoformat()}",
        json={"is_available": False},
        headers=auth_for(world.manager),
    )
    assert closed.status_code == 200
    after = await client.get("/api/menu", params=params, headers=auth_for(world.student))
    assert [i["name"] for i in after.json()["data"]["items"]] == ["Pho Bo"]

    vegan = await client.get(
        "/api/menu", params={**params, "vegan": "true"}, headers=auth_for(world.student)
    )
    assert vegan.json()["data"]["items"] == []


@pytest.mark.anyio
async def test_popular_menu_route(client, world, dish, salad, order_day):
    await client.post("/api/orders", json=cart(order_day, salad["id"]), headers=auth_for(world.student))
    resp = await client.get("/api/menu/popular", headers=auth_for(world.student))
    assert resp.status_code == 200
    items = resp.json()["data"]["items"]
    assert [(i["name"], i["orders"]) for i in items] == [("Garden Salad", 1), ("Pho Bo", 0)]

    other = await client.get("/api/menu/popular", headers=auth_for(world.student_b))
    assert other.json()["data"]["items"] == []
    bad = await client.get("/api/menu/popular", params={"limit": 0}, headers=auth_for(world.student))
    assert bad.status_code == 422


@pytest.mark.anyio
async def test_ordering_window_route(client, world, order_day):
    resp = await client.get(
        "/api/ordering-window",
        params={"date": order_day.isoformat()},
        headers=auth_for(world.student),
    )
    data = resp.json()["data"]
    assert data["allowed"] is True
    assert data["is_past_cutoff"] is False
    assert data["seconds_until_cutoff"] > 0


@pytest.mark.anyio
async def test_quote_then_checkout(client, world, dish, order_day):
    large = next(v for v in dish["variants"] if v["name"] == "Large")
    quote = await client.post(
        "/api/orders/quote",
        json={"items": [{"item_id": dish["id"], "variant_id": large["id"], "quantity": 2}]},
        headers=auth_for(world.student),
    )
    assert quote.status_code == 200
    assert quote.json()["data"]["total"] == 121.0

    resp = await client.post(
        "/api/orders", json=cart(order_day, dish["id"], 2), headers=auth_for(world.student)
    )
    assert resp.status_code == 201
    order = resp.json()["data"]
    assert order["total_amount"] == 99.0
    assert order["order_number"] == "AH000001"

    mine = await client.get("/api/orders", headers=auth_for(world.student))
    assert mine.json()["data"]["total"] == 1
    other = await client.get(f"/api/orders/{order['id']}", headers=auth_for(world.student2))
    assert other.status_code == 403
    assert other.json()["error"]["details"]["reason"] == "owner"


@pytest.mark.anyio
async def test_bad_quantities_are_reported_together(client, world, dish, order_day):
    body = cart(order_day, dish["id"], 0)
    body["items"].append({"item_id": dish["id"], "quantity": -1})
    resp = await client.post("/api/orders", json=body, headers=auth_for(world.student))
    assert resp.status_code == 400
    assert len(resp.json()["error"]["details"]["errors"]) == 2


@pytest.mark.anyio
async def test_past_cutoff_is_422(client, world, dish):
    today = clock.local_today(TZ)
    resp = await client.post("/api/orders", json=cart(today, dish["id"]), headers=auth_for(world.student))
    assert resp.status_code == 422
    error = resp.json()["error"]
    assert error["code"] == "ORDERING_WINDOW_CLOSED"
    assert error["details"]["rule"] == "cutoff"


@pytest.mark.anyio
async def test_staff_lifecycle_over_http(client, world, dish, order_day, notifier):
    created = await client.post(
        "/api/orders", json=cart(order_day, dish["id"]), headers=auth_for(world.student)
    )
    order_id = created.json()["data"]["id"]

    early = await client.post(f"/api/caterer/orders/{order_id}/serve", headers=auth_for(world.caterer))
    assert early.status_code == 409
    assert early.json()["error"]["details"]["current"] == "PENDING"

    for status in ("APPROVED", "PREPARING", "READY"):
        resp = await client.patch(
            f"/api/admin/orders/{order_id}", json={"status": status}, headers=auth_for(world.manager)
        )
        assert resp.status_code == 200
        assert resp.json()["data"]["status"] == status

    queue = await client.get("/api/caterer/orders", headers=auth_for(world.caterer))
    assert [o["id"] for o in queue.json()["data"]] == [order_id]

    served = await client.post(f"/api/caterer/orders/{order_id}/serve", headers=auth_for(world.caterer))
    assert served.status_code == 200
    assert served.json()["data"]["status"] == "SERVED"
    assert [n.status for n in notifier.sent] == ["APPROVED", "PREPARING", "READY", "SERVED"]

    listing = await client.get("/api/admin/orders", params={"status": "SERVED"}, headers=auth_for(world.manager))
    assert listing.json()["data"]["total"] == 1


@pytest.mark.anyio
async def test_reject_without_reason_is_400(client, world, dish, order_day):
    created = await client.post(
        "/api/orders", json=cart(order_day, dish["id"]), headers=auth_for(world.student)
    )
    resp = await client.patch(
        f"/api/admin/orders/{created.json()['data']['id']}",
        json={"status": "REJECTED"},
        headers=auth_for(world.manager),
    )
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "VALIDATION_ERROR"


@pytest.mark.anyio
async def test_invalid_categories_are_listed(client, world):
    resp = await client.post(
        "/api/admin/menu",
        json={
            "name": "Mystery",
            "base_price": "10.00",
            "categories": ["BRUNCH", "lunch", "SUPPER"],
            "variants": [{"name": "One", "price": "10.00", "is_default": True}],
        },
        headers=auth_for(world.manager),
    )
    assert resp.status_code == 400
    (message,) = resp.json()["error"]["details"]["errors"]
    assert message.startswith("Invalid categories: BRUNCH, SUPPER")


@pytest.mark.anyio
async def test_admin_menu_requires_staff(client, world):
    resp = await client.get("/api/admin/menu", headers=auth_for(world.student))
    assert resp.status_code == 403
    assert resp.json()["error"]["code"] == "ACCESS_DENIED"


@pytest.mark.anyio
async def test_force_logout_over_http(client, world):
    old = auth_for(world.student, issued_at=clock.utcnow() - timedelta(minutes=1))
    assert (await client.get("/api/orders", headers=old)).status_code == 200

    resp = await client.post(
        "/api/admin/force-logout-students", json={"reason": "rotation"}, headers=auth_for(world.admin)
    )
    assert resp.status_code == 200
    assert resp.json()["data"]["affected_students"] == 4

    revoked = await client.get("/api/orders", headers=old)
    assert revoked.status_code == 401
    assert revoked.json()["error"]["details"]["reason"] == "forced_logout"
    assert (await client.get("/api/orders", headers=auth_for(world.student))).status_code == 200


@pytest.mark.anyio
async def test_user_admin_routes(client, world):
    resp = await client.patch(
        f"/api/admin/users/{world.pending_student.id}",
        json={"status": "APPROVED"},
        headers=auth_for(world.manager),
    )
    assert resp.json()["data"]["status"] == "APPROVED"
    me = await client.delete(f"/api/admin/users/{world.manager.id}", headers=auth_for(world.manager))
    assert me.status_code == 403
    admin = await client.patch(
        f"/api/admin/users/{world.admin.id}",
        json={"status": "SUSPENDED"},
        headers=auth_for(world.manager),
    )
    assert admin.status_code == 403
    assert admin.json()["error"]["details"]["reason"] == "tenant"


@pytest.mark.anyio
async def test_metrics_endpoint(client):
    resp = await client.get("/metrics")
    assert resp.status_code == 200
    assert "orders_created_total" in resp.text
