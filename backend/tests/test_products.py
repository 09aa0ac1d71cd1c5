"""
Product master data tests.

Uniqueness of sku / barcode / name is enforced among active products only,
and quantity_on_hand can never be written by a client.
"""


class TestProductCreate:

    def test_blank_sku_gets_generated(self, client, manager_headers, db_session):
        resp = client.post(
            "/api/products",
            json={"name": "Instant Coffee 100g", "sku": "", "selling_price": 25},
            headers=manager_headers,
        )
        assert resp.status_code == 201
        assert resp.get_json()["message"] == "Product created successfully"
        assert resp.get_json()["data"]["sku"] == "PRD-00001"

        resp = client.post(
            "/api/products",
            json={"name": "Green Tea 50 bags"},
            headers=manager_headers,
        )
        assert resp.get_json()["data"]["sku"] == "PRD-00002"

    def test_cost_price_seeds_average_and_last_cost(self, client, manager_headers):
        resp = client.post(
            "/api/products",
            json={"name": "Sugar 1kg", "sku": "SUG-1", "cost_price": 3.5, "selling_price": 5},
            headers=manager_headers,
        )
        data = resp.get_json()["data"]
        assert data["average_cost"] == 3.5
        assert data["last_cost"] == 3.5

    def test_name_required(self, client, manager_headers):
        resp = client.post("/api/products", json={"sku": "X-1"}, headers=manager_headers)
        assert resp.status_code == 400

    def test_negative_price_rejected(self, client, manager_headers):
        resp = client.post(
            "/api/products",
            json={"name": "Broken", "selling_price": -1},
            headers=manager_headers,
        )
        assert resp.status_code == 400

    def test_quantity_on_hand_not_writable(self, client, manager_headers):
        resp = client.post(
            "/api/products",
            json={"name": "Phantom Stock", "quantity_on_hand": 500},
            headers=manager_headers,
        )
        assert resp.status_code == 400
        assert "quantity_on_hand" in resp.get_json()["error"]

    def test_invalid_costing_method(self, client, manager_headers):
        resp = client.post(
            "/api/products",
            json={"name": "Odd", "costing_method": "LIFO"},
            headers=manager_headers,
        )
        assert resp.status_code == 400


class TestProductUniqueness:

    def test_duplicate_sku(self, client, manager_headers, product):
        resp = client.post(
            "/api/products",
            json={"name": "Something Else", "sku": "SKU-001"},
            headers=manager_headers,
        )
        assert resp.status_code == 409
        assert resp.get_json()["error"] == (
            'A product with SKU "SKU-001" already exists: "Bottled Water 500ml". '
            'Please use a different SKU.'
        )

    def test_duplicate_barcode(self, client, manager_headers, product):
        resp = client.post(
            "/api/products",
            json={"name": "Something Else", "barcode": "4006381333931"},
            headers=manager_headers,
        )
        assert resp.status_code == 409
        assert 'barcode "4006381333931"' in resp.get_json()["error"]

    def test_duplicate_name_is_case_insensitive(self, client, manager_headers, product):
        resp = client.post(
            "/api/products",
            json={"name": "BOTTLED WATER 500ML"},
            headers=manager_headers,
        )
        assert resp.status_code == 409
        assert "(SKU: SKU-001)" in resp.get_json()["error"]

    def test_update_to_own_values_allowed(self, client, manager_headers, product):
        resp = client.put(
            f"/api/products/{product.id}",
            json={"name": "Bottled Water 500ml", "sku": "SKU-001", "selling_price": 12},
            headers=manager_headers,
        )
        assert resp.status_code == 200
        assert resp.get_json()["data"]["selling_price"] == 12.0

    def test_update_blank_sku_rejected(self, client, manager_headers, product):
        resp = client.put(f"/api/products/{product.id}", json={"sku": "  "}, headers=manager_headers)
        assert resp.status_code == 400

    def test_soft_delete_frees_identifiers(self, client, manager_headers, product):
        resp = client.delete(f"/api/products/{product.id}", headers=manager_headers)
        assert resp.status_code == 200
        assert resp.get_json()["message"] == "Product deleted successfully"

        resp = client.post(
            "/api/products",
            json={"name": "Bottled Water 500ml", "sku": "SKU-001", "barcode": "4006381333931"},
            headers=manager_headers,
        )
        assert resp.status_code == 201

        # History row remains, inactive
        resp = client.get(f"/api/products/{product.id}", headers=manager_headers)
        assert resp.status_code == 200
        assert resp.get_json()["data"]["is_active"] is False

    def test_reactivation_checks_identifiers(self, client, manager_headers, db_session):
        alpha = client.post(
            "/api/products", json={"name": "Alpha", "sku": "DUP-1"}, headers=manager_headers
        ).get_json()["data"]
        client.delete(f"/api/products/{alpha['id']}", headers=manager_headers)
        resp = client.post("/api/products", json={"name": "Beta", "sku": "DUP-1"}, headers=manager_headers)
        assert resp.status_code == 201

        resp = client.put(f"/api/products/{alpha['id']}", json={"is_active": True}, headers=manager_headers)
        assert resp.status_code == 409
        assert resp.get_json()["error"].startswith('A product with SKU "DUP-1" already exists: "Beta"')

        # with a fresh SKU it comes back
        resp = client.put(
            f"/api/products/{alpha['id']}",
            json={"is_active": True, "sku": "DUP-2"},
            headers=manager_headers,
        )
        assert resp.status_code == 200
        assert resp.get_json()["data"]["is_active"] is True


class TestProductReads:

    def test_lookup_by_sku_and_barcode(self, client, cashier_headers, product):
        resp = client.get("/api/products/sku/SKU-001", headers=cashier_headers)
        assert resp.get_json()["data"]["id"] == product.id

        resp = client.get("/api/products/barcode/4006381333931", headers=cashier_headers)
        assert resp.get_json()["data"]["id"] == product.id

        resp = client.get("/api/products/barcode/000", headers=cashier_headers)
        assert resp.status_code == 404

    def test_listing_paginates_when_asked(self, client, cashier_headers, product):
        resp = client.get("/api/products?page=1&per_page=10", headers=cashier_headers)
        data = resp.get_json()["data"]
        assert data["count"] == 1
        assert data["pagination"]["total"] == 1

        resp = client.get("/api/products", headers=cashier_headers)
        assert "pagination" not in resp.get_json()["data"]

    def test_low_stock(self, client, cashier_headers, product, batch_factory):
        batch_factory(product, 3)
        resp = client.get("/api/products/low-stock", headers=cashier_headers)
        names = [p["name"] for p in resp.get_json()["data"]]
        assert names == ["Bottled Water 500ml"]

    def test_categories(self, client, cashier_headers, product):
        resp = client.get("/api/products/categories", headers=cashier_headers)
        assert resp.get_json()["data"] == ["Beverages"]

    def test_search_sees_changes_after_update(self, client, manager_headers, product):
        resp = client.get("/api/products/search?q=water", headers=manager_headers)
        assert len(resp.get_json()["data"]) == 1

        client.put(
            f"/api/products/{product.id}",
            json={"name": "Sparkling Soda"},
            headers=manager_headers,
        )
        resp = client.get("/api/products/search?q=water", headers=manager_headers)
        assert resp.get_json()["data"] == []


class TestInventoryReads:

    def test_expiring_batches(self, client, cashier_headers, stocked_product):
        resp = client.get("/api/inventory/batches/expiring?days=45", headers=cashier_headers)
        assert [b["batch_number"] for b in resp.get_json()["data"]] == ["LOT-EARLY"]

    def test_batches_for_product(self, client, cashier_headers, stocked_product):
        resp = client.get(
            f"/api/inventory/batches?product_id={stocked_product.id}",
            headers=cashier_headers,
        )
        assert {b["batch_number"] for b in resp.get_json()["data"]} == {"LOT-EARLY", "LOT-LATE"}

    def test_valuation_is_manager_only(self, client, cashier_headers, manager_headers, stocked_product):
        assert client.get("/api/inventory/valuation", headers=cashier_headers).status_code == 403

        resp = client.get("/api/inventory/valuation", headers=manager_headers)
        assert resp.status_code == 200
