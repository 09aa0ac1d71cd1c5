"""Stock movement ledger reads: filters, per-product/batch views and reference numbers."""

from digitalshop.models import InventoryBatch


def _sell(client, headers, product, qty):
    resp = client.post(
        "/api/sales",
        json={"items": [{"product_id": product.id, "quantity": qty}], "amount_paid": 1000},
        headers=headers,
    )
    assert resp.status_code == 201
    return resp.get_json()["data"]


def _adjust(client, headers, product, adjustment_type, qty):
    resp = client.post("/api/stock-adjustments", json={
        "product_id": product.id,
        "adjustment_type": adjustment_type,
        "quantity": qty,
        "reason": "Shelf count",
    }, headers=headers)
    assert resp.status_code == 201
    return resp.get_json()["data"]


class TestMovementLedger:

    def test_sale_movement_names_the_sale(self, client, cashier_headers, manager_headers, stocked_product):
        sale = _sell(client, cashier_headers, stocked_product, 3)

        listing = client.get("/api/stock-movements", headers=manager_headers).get_json()["data"]
        assert listing["count"] == 1
        movement = listing["items"][0]
        assert movement["movement_type"] == "SALE"
        assert movement["quantity"] == -3

        resp = client.get(f"/api/stock-movements/{movement['id']}", headers=manager_headers)
        assert resp.status_code == 200
        assert resp.get_json()["data"]["reference_number"] == sale["sale_number"]

    def test_filters(self, client, cashier_headers, manager_headers, stocked_product):
        _sell(client, cashier_headers, stocked_product, 2)
        _adjust(client, manager_headers, stocked_product, "ADJUSTMENT_IN", 5)

        sales = client.get("/api/stock-movements?movement_type=sale", headers=manager_headers)
        assert sales.get_json()["data"]["count"] == 1

        manual = client.get("/api/stock-movements?reference_type=MANUAL_ADJUSTMENT", headers=manager_headers)
        assert [m["movement_type"] for m in manual.get_json()["data"]["items"]] == ["ADJUSTMENT_IN"]

        resp = client.get("/api/stock-movements?movement_type=TELEPORT", headers=manager_headers)
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "Unknown movement type: TELEPORT"

        resp = client.get(
            "/api/stock-movements?start_date=2026-03-10&end_date=2026-03-01", headers=manager_headers
        )
        assert resp.status_code == 400

    def test_product_and_batch_views(self, client, db_session, cashier_headers, manager_headers, stocked_product):
        _sell(client, cashier_headers, stocked_product, 2)
        early = db_session.query(InventoryBatch).filter_by(batch_number="LOT-EARLY").one()
        late = db_session.query(InventoryBatch).filter_by(batch_number="LOT-LATE").one()

        by_product = client.get(f"/api/stock-movements/product/{stocked_product.id}", headers=manager_headers)
        assert by_product.get_json()["data"]["count"] == 1

        by_batch = client.get(f"/api/stock-movements/batch/{early.id}", headers=manager_headers)
        assert by_batch.get_json()["data"]["items"][0]["batch_number"] == "LOT-EARLY"

        untouched = client.get(f"/api/stock-movements/batch/{late.id}", headers=manager_headers)
        assert untouched.get_json()["data"]["count"] == 0

    def test_summary_buckets(self, client, cashier_headers, manager_headers, stocked_product):
        _sell(client, cashier_headers, stocked_product, 1)
        _adjust(client, manager_headers, stocked_product, "ADJUSTMENT_IN", 4)

        data = client.get("/api/stock-movements/summary", headers=manager_headers).get_json()["data"]
        assert data["total_movements"] == 2
        assert data["out_movements"] == 1
        assert data["in_movements"] == 1
        assert data["adjustment_movements"] == 1
        assert data["today"] == {"in": 1, "out": 1, "adjustment": 1}

    def test_unknown_movement(self, client, manager_headers):
        resp = client.get("/api/stock-movements/999", headers=manager_headers)
        assert resp.status_code == 404
        assert resp.get_json()["error"] == "Stock movement not found"

    def test_cashier_cannot_read_ledger(self, client, cashier_headers):
        resp = client.get("/api/stock-movements", headers=cashier_headers)
        assert resp.status_code == 403
