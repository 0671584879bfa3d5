from sweepstakes.core.config import settings
from sweepstakes.integrations.notifier_client import NotifierClient
from tests.factories import purchase_json


async def _seed_serial(client, admin_headers, serial_number: str = "TV-1", multiplier: int = 2) -> int:
    r = await client.post(
        "/admin/products",
        json={"model_name": f"QLED {serial_number}", "tier": "premium", "coupon_multiplier": multiplier, "points_value": 10},
        headers=admin_headers,
    )
    assert r.status_code == 201, r.text
    product_id = r.json()["id"]

    r = await client.post(
        "/admin/serials",
        json={"serial_number": serial_number, "product_id": product_id},
        headers=admin_headers,
    )
    assert r.status_code == 201, r.text
    return product_id


async def test_health_echoes_request_id(client):
    r = await client.get("/health", headers={"X-Request-ID": "req-42"})
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}
    assert r.headers["X-Request-ID"] == "req-42"


async def test_admin_routes_require_key(client):
    r = await client.get("/admin/stats")
    assert r.status_code == 401

    r = await client.get("/admin/stats", headers={"X-Admin-Key": "wrong"})
    assert r.status_code == 401

    r = await client.put("/purchases/1/approve")
    assert r.status_code == 401


async def test_public_submit_and_sanitized_conflict(client, admin_headers):
    await _seed_serial(client, admin_headers)

    r = await client.get("/serials/tv-1/check")
    assert r.status_code == 200
    assert r.json()["status"] == "AVAILABLE"
    assert r.json()["multiplier"] == 2
    assert "owner_ref" not in r.json()

    r = await client.post("/purchases", json=purchase_json("TV-1"))
    assert r.status_code == 201, r.text
    assert r.json()["status"] == "PENDING"
    assert r.json()["coupon_multiplier"] == 2

    r = await client.post(
        "/purchases", json=purchase_json("TV-1", document_number="999", email="other@example.com")
    )
    assert r.status_code == 409
    detail = r.json()["detail"]
    assert detail["code"] == "already_used"
    assert "context" not in detail

    r = await client.get("/serials/TV-1/check")
    assert r.json()["status"] == "USED"


async def test_public_submit_validation_message(client, admin_headers):
    await _seed_serial(client, admin_headers)

    r = await client.post("/purchases", json=purchase_json("TV-1", phone="12"))
    assert r.status_code == 422
    assert r.json()["detail"]["code"] == "validation_error"

    r = await client.post("/purchases", json=purchase_json("TV-404"))
    assert r.status_code == 404


async def test_review_flow(client, admin_headers):
    await _seed_serial(client, admin_headers, "TV-1")
    await _seed_serial(client, admin_headers, "TV-2")
    first = (await client.post("/purchases", json=purchase_json("TV-1"))).json()
    second = (await client.post("/purchases", json=purchase_json("TV-2", document_number="555"))).json()

    r = await client.put(f"/purchases/{first['id']}/approve", json={"notes": "Invoice checked"}, headers=admin_headers)
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["purchase"]["status"] == "APPROVED"
    assert body["purchase"]["reviewer_ref"] == "reviewer@test"
    assert len(body["coupons"]) == 2

    r = await client.put(f"/purchases/{second['id']}/reject", json={"reason": "Blurry"}, headers=admin_headers)
    assert r.status_code == 200
    assert r.json()["status"] == "REJECTED"

    r = await client.put(f"/purchases/{second['id']}/approve", headers=admin_headers)
    assert r.status_code == 409
    assert r.json()["detail"]["code"] == "invalid_transition"
    # admins see the context
    assert r.json()["detail"]["context"]["status"] == "REJECTED"

    r = await client.get("/admin/purchases", params={"status": "approved"}, headers=admin_headers)
    assert r.json()["total"] == 1

    r = await client.get(f"/admin/purchases/{first['id']}/coupons", headers=admin_headers)
    assert len(r.json()) == 2

    r = await client.get("/admin/stats", headers=admin_headers)
    stats = r.json()
    assert stats["purchases"] == {"PENDING": 0, "APPROVED": 1, "REJECTED": 1}
    assert stats["active_tickets"] == 2
    assert stats["active_participants"] == 1


async def test_draw_and_public_winners(client, admin_headers):
    await _seed_serial(client, admin_headers)
    p = (await client.post("/purchases", json=purchase_json("TV-1"))).json()
    await client.put(f"/purchases/{p['id']}/approve", headers=admin_headers)

    r = await client.post("/draws", json={"preselected_count": 2, "finalists_count": 1})
    assert r.status_code == 401

    r = await client.post("/draws", json={"preselected_count": 2, "finalists_count": 1}, headers=admin_headers)
    assert r.status_code == 201, r.text
    draw = r.json()
    assert draw["status"] == "EXECUTED"
    assert draw["total_tickets"] == 2

    r = await client.get(f"/draws/{draw['id']}/winners")
    winners = r.json()
    assert len(winners) == 3
    assert all("owner_email" not in w for w in winners)
    assert {w["owner_name"] for w in winners} == {"Ana Rojas"}

    r = await client.post("/draws", json={"preselected_count": 1, "finalists_count": 1}, headers=admin_headers)
    assert r.status_code == 409
    assert r.json()["detail"]["code"] == "already_executed"

    r = await client.get(f"/admin/exports/draws/{draw['id']}/winners.csv", headers=admin_headers)
    assert r.status_code == 200
    assert r.text.startswith("winner_type,")


async def test_seller_token_flow(client, admin_headers):
    await _seed_serial(client, admin_headers)
    r = await client.post(
        "/admin/sellers",
        json={"full_name": "Luis Vaca", "store_name": "Electro Centro", "store_city": "Santa Cruz"},
        headers=admin_headers,
    )
    assert r.status_code == 201
    seller_id = r.json()["seller"]["id"]
    token = r.json()["access_token"]

    sale = {"serial_number": "TV-1", "client_name": "Maria Lopez", "sale_date": "2024-06-02"}

    r = await client.post(f"/sellers/{seller_id}/sales", json=sale, headers={"X-Seller-Token": "nope"})
    assert r.status_code == 401

    r = await client.post(f"/sellers/{seller_id}/sales", json=sale, headers={"X-Seller-Token": token})
    assert r.status_code == 201, r.text
    assert len(r.json()["coupons"]) == 2

    r = await client.get(f"/sellers/{seller_id}/sales", headers={"X-Seller-Token": token})
    assert r.json()["total"] == 1

    # buyer track is untouched
    r = await client.get("/serials/TV-1/check")
    assert r.json()["status"] == "AVAILABLE"

    r = await client.patch(f"/admin/sellers/{seller_id}", json={"is_active": False}, headers=admin_headers)
    assert r.status_code == 200

    r = await client.get(f"/sellers/{seller_id}/sales", headers={"X-Seller-Token": token})
    assert r.status_code == 403


async def test_broken_notifier_never_fails_the_request(client, admin_headers, monkeypatch):
    async def explode(self, **kw):
        raise RuntimeError("gateway exploded")

    monkeypatch.setattr(settings, "NOTIFIER_URL", "http://notifier.test/messages")
    monkeypatch.setattr(NotifierClient, "send", explode)

    await _seed_serial(client, admin_headers, "TV-1")
    await _seed_serial(client, admin_headers, "TV-2")
    first = (await client.post("/purchases", json=purchase_json("TV-1"))).json()
    second = (await client.post("/purchases", json=purchase_json("TV-2", document_number="555"))).json()

    r = await client.put(f"/purchases/{first['id']}/approve", headers=admin_headers)
    assert r.status_code == 200, r.text
    r = await client.put(f"/purchases/{second['id']}/reject", json={"reason": "Blurry"}, headers=admin_headers)
    assert r.status_code == 200, r.text

    r = await client.post("/draws", json={"preselected_count": 1, "finalists_count": 1}, headers=admin_headers)
    assert r.status_code == 201, r.text
    assert r.json()["status"] == "EXECUTED"

    r = await client.get("/admin/notifications", params={"status": "failed"}, headers=admin_headers)
    failed = r.json()
    # approval pair, rejection email, finalist pair
    assert len(failed) == 5
    assert all(n["error_message"] == "gateway exploded" for n in failed)


async def test_failed_draw_leaves_nothing_behind(client, admin_headers):
    for _ in range(3):
        r = await client.post("/draws", json={"preselected_count": 2, "finalists_count": 1}, headers=admin_headers)
        assert r.status_code == 422
        assert r.json()["detail"]["code"] == "validation_error"

    r = await client.get("/draws")
    assert r.json() == []
