"""
Goods receipt tests: DRAFT -> COMPLETED | CANCELLED.

Finalizing validates every line before any batch is written, merges into
existing batches by batch number, and refreshes product costs.
"""

from datetime import date

from digitalshop.models import GoodsReceipt, InventoryBatch, Product, StockMovement


def _receipt(client, headers, items, **extra):
    return client.post("/api/goods-receipts", json={"items": items, **extra}, headers=headers)


class TestCreateGoodsReceipt:

    def test_creates_draft_without_stock(self, client, manager_headers, db_session, product, supplier):
        resp = _receipt(
            client, manager_headers,
            [{"product_id": product.id, "quantity": 10, "cost_price": 4.5}],
            supplier_id=supplier.id,
        )
        assert resp.status_code == 201
        data = resp.get_json()["data"]
        receipt = data["goods_receipt"]
        assert receipt["receipt_number"] == f"GR-{date.today().year}-0001"
        assert receipt["status"] == "DRAFT"
        assert receipt["total_value"] == 45.0
        assert receipt["supplier_name"] == "Acme Wholesale"
        assert data["cost_alerts"] == []

        assert db_session.query(InventoryBatch).count() == 0

    def test_items_required(self, client, manager_headers, db_session):
        resp = _receipt(client, manager_headers, [])
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "At least one item is required"

    def test_unknown_supplier(self, client, manager_headers, product):
        resp = _receipt(
            client, manager_headers,
            [{"product_id": product.id, "quantity": 1, "cost_price": 1}],
            supplier_id=999,
        )
        assert resp.status_code == 404

    def test_cashier_cannot_receive(self, client, cashier_headers, product):
        resp = _receipt(client, cashier_headers, [{"product_id": product.id, "quantity": 1, "cost_price": 1}])
        assert resp.status_code == 403


class TestFinalize:

    def _draft(self, client, headers, items):
        return _receipt(client, headers, items).get_json()["data"]["goods_receipt"]

    def test_finalize_receives_stock_and_updates_costs(self, client, manager_headers, db_session, product):
        draft = self._draft(client, manager_headers, [
            {"product_id": product.id, "quantity": 10, "cost_price": 5, "expiry_date": "2030-01-31"},
        ])

        resp = client.post(f"/api/goods-receipts/{draft['id']}/finalize", headers=manager_headers)
        assert resp.status_code == 200
        data = resp.get_json()["data"]
        assert data["goods_receipt"]["status"] == "COMPLETED"
        assert data["cost_alerts"] == [{
            "product_id": product.id,
            "product_name": "Bottled Water 500ml",
            "old_cost": 4.0,
            "new_cost": 5.0,
            "change_percent": 25.0,
        }]

        batch = db_session.query(InventoryBatch).one()
        assert batch.batch_number == f"BATCH-{draft['receipt_number']}-1"
        assert float(batch.remaining_quantity) == 10
        assert batch.expiry_date == date(2030, 1, 31)

        refreshed = db_session.get(Product, product.id)
        assert float(refreshed.quantity_on_hand) == 10
        assert float(refreshed.cost_price) == 5
        assert float(refreshed.last_cost) == 5
        assert float(refreshed.average_cost) == 5

        movement = db_session.query(StockMovement).one()
        assert movement.movement_type == "GOODS_RECEIPT"
        assert float(movement.quantity) == 10

    def test_weighted_average_cost(self, client, manager_headers, db_session, stocked_product):
        # 20 on hand at 4.00, receive 20 at 6.00
        draft = self._draft(client, manager_headers, [
            {"product_id": stocked_product.id, "quantity": 20, "cost_price": 6},
        ])
        client.post(f"/api/goods-receipts/{draft['id']}/finalize", headers=manager_headers)

        refreshed = db_session.get(Product, stocked_product.id)
        assert float(refreshed.average_cost) == 5
        assert float(refreshed.quantity_on_hand) == 40

    def test_same_batch_number_merges(self, client, manager_headers, db_session, stocked_product):
        draft = self._draft(client, manager_headers, [
            {"product_id": stocked_product.id, "quantity": 5, "cost_price": 4, "batch_number": "LOT-LATE"},
        ])
        client.post(f"/api/goods-receipts/{draft['id']}/finalize", headers=manager_headers)

        late = db_session.query(InventoryBatch).filter_by(batch_number="LOT-LATE").one()
        assert float(late.quantity) == 15
        assert float(late.remaining_quantity) == 15

    def test_invalid_line_blocks_whole_receipt(self, client, manager_headers, db_session, product):
        draft = self._draft(client, manager_headers, [
            {"product_id": product.id, "quantity": 4, "cost_price": 4},
            {"product_id": product.id, "quantity": 0, "cost_price": 4},
        ])

        resp = client.post(f"/api/goods-receipts/{draft['id']}/finalize", headers=manager_headers)
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "Item 2 (Bottled Water 500ml) has invalid quantity"

        assert db_session.query(InventoryBatch).count() == 0
        assert db_session.query(StockMovement).count() == 0
        assert db_session.get(GoodsReceipt, draft["id"]).status == "DRAFT"

    def test_finalize_twice_rejected(self, client, manager_headers, product):
        draft = self._draft(client, manager_headers, [{"product_id": product.id, "quantity": 1, "cost_price": 4}])
        client.post(f"/api/goods-receipts/{draft['id']}/finalize", headers=manager_headers)

        resp = client.post(f"/api/goods-receipts/{draft['id']}/finalize", headers=manager_headers)
        assert resp.status_code == 400
        assert "Only DRAFT receipts can be finalized" in resp.get_json()["error"]

    def test_auto_complete(self, client, manager_headers, db_session, product):
        resp = _receipt(
            client, manager_headers,
            [{"product_id": product.id, "quantity": 3, "cost_price": 4}],
            auto_complete=True,
        )
        assert resp.status_code == 201
        assert resp.get_json()["data"]["goods_receipt"]["status"] == "COMPLETED"
        assert float(db_session.get(Product, product.id).quantity_on_hand) == 3


class TestEditAndCancel:

    def _draft(self, client, headers, product):
        return _receipt(
            client, headers, [{"product_id": product.id, "quantity": 2, "cost_price": 4}]
        ).get_json()["data"]["goods_receipt"]

    def test_edit_draft_line(self, client, manager_headers, product):
        draft = self._draft(client, manager_headers, product)
        item_id = draft["items"][0]["id"]

        resp = client.put(
            f"/api/goods-receipts/{draft['id']}/items/{item_id}",
            json={"quantity": 6, "cost_price": 4.25},
            headers=manager_headers,
        )
        assert resp.status_code == 200
        receipt = resp.get_json()["data"]
        assert receipt["total_value"] == 25.5

    def test_cannot_edit_completed(self, client, manager_headers, product):
        draft = self._draft(client, manager_headers, product)
        item_id = draft["items"][0]["id"]
        client.post(f"/api/goods-receipts/{draft['id']}/finalize", headers=manager_headers)

        resp = client.put(
            f"/api/goods-receipts/{draft['id']}/items/{item_id}",
            json={"quantity": 6},
            headers=manager_headers,
        )
        assert resp.status_code == 400
        assert resp.get_json()["error"] == (
            "Cannot modify COMPLETED goods receipt. Only DRAFT receipts can be edited."
        )

    def test_cancel_draft(self, client, manager_headers, product):
        draft = self._draft(client, manager_headers, product)

        resp = client.post(f"/api/goods-receipts/{draft['id']}/cancel", headers=manager_headers)
        assert resp.status_code == 200
        assert resp.get_json()["data"]["status"] == "CANCELLED"

        resp = client.post(f"/api/goods-receipts/{draft['id']}/cancel", headers=manager_headers)
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "Goods receipt is already cancelled"

    def test_cannot_cancel_completed(self, client, manager_headers, product):
        draft = self._draft(client, manager_headers, product)
        client.post(f"/api/goods-receipts/{draft['id']}/finalize", headers=manager_headers)

        resp = client.post(f"/api/goods-receipts/{draft['id']}/cancel", headers=manager_headers)
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "Cannot cancel a completed goods receipt"

    def test_summary(self, client, manager_headers, product):
        self._draft(client, manager_headers, product)
        done = self._draft(client, manager_headers, product)
        client.post(f"/api/goods-receipts/{done['id']}/finalize", headers=manager_headers)

        resp = client.get("/api/goods-receipts/summary", headers=manager_headers)
        assert resp.status_code == 200
