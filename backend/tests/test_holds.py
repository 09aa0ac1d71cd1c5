"""
Held order (parked cart) tests.

A hold belongs to the user who created it, defaults to a 24 hour lifetime
and has no stock side effects.
"""

from datetime import datetime, timedelta, timezone

from digitalshop.models import HeldOrder, InventoryBatch


CART = {
    "customer_name": "Table 4",
    "hold_reason": "Customer fetching wallet",
    "items": [
        {"product_name": "Bottled Water 500ml", "product_sku": "SKU-001", "quantity": 2, "unit_price": 10},
        {"product_name": "Gift wrapping", "quantity": 1, "unit_price": 3},
    ],
}


def _parse(ts: str) -> datetime:
    return datetime.fromisoformat(ts.replace("Z", "+00:00"))


class TestCreateHold:

    def test_create_defaults_to_24h_expiry(self, client, cashier_headers):
        resp = client.post("/api/pos/hold", json=CART, headers=cashier_headers)
        assert resp.status_code == 201
        assert resp.get_json()["message"] == "Order held successfully"

        hold = resp.get_json()["data"]
        assert hold["hold_number"].startswith("HOLD-")
        assert hold["status"] == "ACTIVE"
        assert hold["subtotal"] == 23.0
        assert hold["total_amount"] == 23.0
        assert hold["item_count"] == 2

        lifetime = _parse(hold["expires_at"]) - _parse(hold["created_at"])
        assert timedelta(hours=23, minutes=59) <= lifetime <= timedelta(hours=24, minutes=1)

    def test_items_required(self, client, cashier_headers):
        resp = client.post("/api/pos/hold", json={"items": []}, headers=cashier_headers)
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "At least one item is required"

    def test_item_needs_price(self, client, cashier_headers):
        resp = client.post(
            "/api/pos/hold",
            json={"items": [{"product_name": "Thing", "quantity": 1}]},
            headers=cashier_headers,
        )
        assert resp.status_code == 400

    def test_hold_does_not_touch_stock(self, client, cashier_headers, db_session, stocked_product):
        cart = {"items": [{"product_id": stocked_product.id, "product_name": "Bottled Water 500ml",
                           "quantity": 15, "unit_price": 10}]}
        client.post("/api/pos/hold", json=cart, headers=cashier_headers)

        remaining = sum(float(b.remaining_quantity) for b in db_session.query(InventoryBatch).all())
        assert remaining == 20


class TestHoldAccess:

    def _hold(self, client, headers, **extra):
        return client.post("/api/pos/hold", json={**CART, **extra}, headers=headers).get_json()["data"]

    def test_list_shows_only_own_active_holds(self, client, cashier_headers, manager_headers):
        mine = self._hold(client, cashier_headers)
        self._hold(client, manager_headers)

        resp = client.get("/api/pos/hold", headers=cashier_headers)
        holds = resp.get_json()["data"]
        assert [h["id"] for h in holds] == [mine["id"]]

    def test_missing_hold_is_404(self, client, cashier_headers):
        resp = client.get("/api/pos/hold/9999", headers=cashier_headers)
        assert resp.status_code == 404
        assert resp.get_json()["error"] == "Hold order not found"

    def test_other_users_hold_is_403(self, client, cashier_headers, manager_headers):
        theirs = self._hold(client, manager_headers)

        resp = client.get(f"/api/pos/hold/{theirs['id']}", headers=cashier_headers)
        assert resp.status_code == 403
        assert resp.get_json()["error"] == "Forbidden - not your hold order"

        resp = client.delete(f"/api/pos/hold/{theirs['id']}", headers=cashier_headers)
        assert resp.status_code == 403

    def test_expired_hold_is_410(self, client, cashier_headers, db_session):
        past = (datetime.now(timezone.utc) - timedelta(hours=1)).isoformat()
        hold = self._hold(client, cashier_headers, expires_at=past)

        resp = client.get(f"/api/pos/hold/{hold['id']}", headers=cashier_headers)
        assert resp.status_code == 410
        assert resp.get_json()["error"] == "Hold order has expired"

        assert db_session.get(HeldOrder, hold["id"]).status == "EXPIRED"

        resp = client.post(f"/api/pos/hold/{hold['id']}/resume", headers=cashier_headers)
        assert resp.status_code == 410

    def test_expired_holds_not_listed(self, client, cashier_headers):
        past = (datetime.now(timezone.utc) - timedelta(minutes=5)).isoformat()
        self._hold(client, cashier_headers, expires_at=past)

        resp = client.get("/api/pos/hold", headers=cashier_headers)
        assert resp.get_json()["data"] == []


class TestResumeAndCancel:

    def _hold(self, client, headers):
        return client.post("/api/pos/hold", json=CART, headers=headers).get_json()["data"]

    def test_resume_returns_items_and_closes_hold(self, client, cashier_headers):
        hold = self._hold(client, cashier_headers)

        resp = client.post(f"/api/pos/hold/{hold['id']}/resume", headers=cashier_headers)
        assert resp.status_code == 200
        assert resp.get_json()["message"] == "Order resumed successfully"
        data = resp.get_json()["data"]
        assert data["status"] == "RESUMED"
        assert data["resumed_at"] is not None
        assert [i["product_name"] for i in data["items"]] == ["Bottled Water 500ml", "Gift wrapping"]

        resp = client.post(f"/api/pos/hold/{hold['id']}/resume", headers=cashier_headers)
        assert resp.status_code == 409

    def test_cancel(self, client, cashier_headers):
        hold = self._hold(client, cashier_headers)

        resp = client.delete(f"/api/pos/hold/{hold['id']}", headers=cashier_headers)
        assert resp.status_code == 200
        assert resp.get_json()["message"] == "Hold order cancelled"

        resp = client.get("/api/pos/hold", headers=cashier_headers)
        assert resp.get_json()["data"] == []

        resp = client.delete(f"/api/pos/hold/{hold['id']}", headers=cashier_headers)
        assert resp.status_code == 409

    def test_cleanup_expires_overdue_holds(self, client, cashier_headers, db_session):
        from digitalshop.services.hold_service import expire_overdue_holds

        past = (datetime.now(timezone.utc) - timedelta(hours=2)).isoformat()
        client.post("/api/pos/hold", json={**CART, "expires_at": past}, headers=cashier_headers)
        self._hold(client, cashier_headers)

        assert expire_overdue_holds() == 1
        statuses = sorted(h.status for h in db_session.query(HeldOrder).all())
        assert statuses == ["ACTIVE", "EXPIRED"]
