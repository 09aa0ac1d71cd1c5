"""
POS checkout, void and refund tests.

Stock is drawn FEFO (earliest expiry first) and every batch allocation is
its own sale item so voids and refunds can put stock back where it came from.
"""

from datetime import date
from decimal import Decimal

from digitalshop.models import Invoice, InventoryBatch, Product, StockMovement


def _batch(db_session, number):
    return db_session.query(InventoryBatch).filter_by(batch_number=number).one()


def _sell(client, headers, items, **extra):
    return client.post("/api/sales", json={"items": items, **extra}, headers=headers)


class TestCheckout:

    def test_cash_sale_totals_and_change(self, client, cashier_headers, stocked_product):
        resp = _sell(
            client, cashier_headers,
            [{"product_id": stocked_product.id, "quantity": 3}],
            amount_paid=50,
        )
        assert resp.status_code == 201
        body = resp.get_json()
        assert body["message"] == "Sale completed successfully"

        sale = body["data"]
        assert sale["sale_number"] == f"SALE-{date.today().year}-0001"
        assert sale["subtotal"] == 30.0
        assert sale["total_amount"] == 30.0
        assert sale["change_amount"] == 20.0
        assert sale["total_cost"] == 12.0
        assert sale["profit"] == 18.0
        assert sale["status"] == "COMPLETED"

    def test_fefo_draws_earliest_expiry_first(self, client, cashier_headers, db_session, stocked_product):
        resp = _sell(client, cashier_headers, [{"product_id": stocked_product.id, "quantity": 12}])
        assert resp.status_code == 201

        items = resp.get_json()["data"]["items"]
        assert [(i["batch_number"], i["quantity"]) for i in items] == [("LOT-EARLY", 10.0), ("LOT-LATE", 2.0)]

        early = _batch(db_session, "LOT-EARLY")
        late = _batch(db_session, "LOT-LATE")
        assert float(early.remaining_quantity) == 0
        assert early.status == "DEPLETED"
        assert float(late.remaining_quantity) == 8

        product = db_session.get(Product, stocked_product.id)
        assert float(product.quantity_on_hand) == 8

        movements = db_session.query(StockMovement).filter_by(movement_type="SALE").all()
        assert sorted(float(m.quantity) for m in movements) == [-10.0, -2.0]

    def test_insufficient_stock_changes_nothing(self, client, cashier_headers, db_session, stocked_product):
        resp = _sell(client, cashier_headers, [{"product_id": stocked_product.id, "quantity": 25}])
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "Insufficient stock for Bottled Water 500ml. Available: 20, requested: 25"

        assert float(_batch(db_session, "LOT-EARLY").remaining_quantity) == 10
        assert db_session.query(StockMovement).count() == 0

    def test_stock_check_aggregates_lines(self, client, cashier_headers, stocked_product):
        resp = _sell(
            client, cashier_headers,
            [
                {"product_id": stocked_product.id, "quantity": 15},
                {"product_id": stocked_product.id, "quantity": 6},
            ],
        )
        assert resp.status_code == 400
        assert "requested: 21" in resp.get_json()["error"]

    def test_walk_in_must_pay_in_full(self, client, cashier_headers, stocked_product):
        resp = _sell(
            client, cashier_headers,
            [{"product_id": stocked_product.id, "quantity": 2}],
            amount_paid=5,
        )
        assert resp.status_code == 400
        assert resp.get_json()["error"] == (
            "Walk-in customers must pay in full. Select a customer for partial payment."
        )

    def test_empty_cart_rejected(self, client, cashier_headers, db_session):
        resp = _sell(client, cashier_headers, [])
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "At least one item is required"

    def test_unknown_product(self, client, cashier_headers, db_session):
        resp = _sell(client, cashier_headers, [{"product_id": 999, "quantity": 1}])
        assert resp.status_code == 404

    def test_invalid_payment_method(self, client, cashier_headers, stocked_product):
        resp = _sell(
            client, cashier_headers,
            [{"product_id": stocked_product.id, "quantity": 1}],
            payment_method="BITCOIN",
        )
        assert resp.status_code == 400

    def test_discounts_and_tax(self, client, cashier_headers, db_session, stocked_product):
        product = db_session.get(Product, stocked_product.id)
        product.tax_rate = Decimal("0.10")
        db_session.commit()

        resp = _sell(
            client, cashier_headers,
            [{"product_id": stocked_product.id, "quantity": 2, "discount_amount": 2}],
        )
        sale = resp.get_json()["data"]
        # (20 - 2) * 10% tax
        assert sale["tax_amount"] == 1.8
        assert sale["discount_amount"] == 2.0
        assert sale["total_amount"] == 19.8
        # Tax is never profit: 18 net - 8 cost
        assert sale["profit"] == 10.0

    def test_discount_cannot_exceed_subtotal(self, client, cashier_headers, stocked_product):
        resp = _sell(
            client, cashier_headers,
            [{"product_id": stocked_product.id, "quantity": 1}],
            discount_amount=11,
        )
        assert resp.status_code == 400

    def test_custom_item_needs_no_stock(self, client, cashier_headers, db_session):
        resp = _sell(
            client, cashier_headers,
            [{"item_type": "SERVICE", "description": "Gift wrapping", "quantity": 1, "unit_price": 3}],
        )
        assert resp.status_code == 201
        item = resp.get_json()["data"]["items"][0]
        assert item["product_id"] is None
        assert item["product_name"] == "Gift wrapping"
        assert db_session.query(StockMovement).count() == 0

    def test_custom_item_requires_description(self, client, cashier_headers, db_session):
        resp = _sell(client, cashier_headers, [{"item_type": "CUSTOM", "quantity": 1, "unit_price": 3}])
        assert resp.status_code == 400

    def test_sale_numbers_are_sequential(self, client, cashier_headers, stocked_product):
        numbers = []
        for _ in range(3):
            resp = _sell(client, cashier_headers, [{"product_id": stocked_product.id, "quantity": 1}])
            numbers.append(resp.get_json()["data"]["sale_number"])
        year = date.today().year
        assert numbers == [f"SALE-{year}-0001", f"SALE-{year}-0002", f"SALE-{year}-0003"]


class TestCreditSales:

    def test_credit_sale_raises_invoice(self, client, cashier_headers, db_session, stocked_product, customer):
        resp = _sell(
            client, cashier_headers,
            [{"product_id": stocked_product.id, "quantity": 5}],
            customer_id=customer.id,
            payment_method="CREDIT",
        )
        assert resp.status_code == 201
        sale = resp.get_json()["data"]
        assert sale["amount_paid"] == 0.0

        invoice = db_session.query(Invoice).filter_by(sale_id=sale["id"]).one()
        assert float(invoice.total_amount) == 50
        assert float(invoice.amount_due) == 50
        assert float(invoice.customer.balance) == -50

    def test_partial_payment_recorded_on_invoice(self, client, cashier_headers, db_session,
                                                 stocked_product, customer):
        resp = _sell(
            client, cashier_headers,
            [{"product_id": stocked_product.id, "quantity": 5}],
            customer_id=customer.id,
            amount_paid=20,
        )
        sale = resp.get_json()["data"]

        invoice = db_session.query(Invoice).filter_by(sale_id=sale["id"]).one()
        assert invoice.status == "PARTIALLY_PAID"
        assert float(invoice.amount_paid) == 20
        assert float(invoice.amount_due) == 30

    def test_fully_paid_customer_sale_has_no_invoice(self, client, cashier_headers, db_session,
                                                     stocked_product, customer):
        resp = _sell(
            client, cashier_headers,
            [{"product_id": stocked_product.id, "quantity": 1}],
            customer_id=customer.id,
        )
        assert resp.status_code == 201
        assert db_session.query(Invoice).count() == 0


class TestVoid:

    def _sale(self, client, headers, product, qty=12, **extra):
        resp = _sell(client, headers, [{"product_id": product.id, "quantity": qty}], **extra)
        return resp.get_json()["data"]

    def test_void_restores_original_batches(self, client, cashier_headers, manager_headers,
                                            db_session, stocked_product):
        sale = self._sale(client, cashier_headers, stocked_product)

        resp = client.post(
            f"/api/sales/{sale['id']}/void",
            json={"reason": "Customer changed mind", "notes": "Counter 2"},
            headers=manager_headers,
        )
        assert resp.status_code == 200
        assert resp.get_json()["message"] == "Sale voided successfully"
        data = resp.get_json()["data"]
        assert data["status"] == "VOID"
        assert "VOID: Customer changed mind" in data["notes"]

        early = _batch(db_session, "LOT-EARLY")
        assert float(early.remaining_quantity) == 10
        assert early.status == "ACTIVE"
        assert float(_batch(db_session, "LOT-LATE").remaining_quantity) == 10
        assert float(db_session.get(Product, stocked_product.id).quantity_on_hand) == 20

    def test_void_twice_rejected(self, client, cashier_headers, manager_headers, stocked_product):
        sale = self._sale(client, cashier_headers, stocked_product, qty=1)
        client.post(f"/api/sales/{sale['id']}/void", json={"reason": "Mistake"}, headers=manager_headers)

        resp = client.post(f"/api/sales/{sale['id']}/void", json={"reason": "Again"}, headers=manager_headers)
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "Sale is already voided"

    def test_void_requires_reason(self, client, cashier_headers, manager_headers, stocked_product):
        sale = self._sale(client, cashier_headers, stocked_product, qty=1)
        resp = client.post(f"/api/sales/{sale['id']}/void", json={}, headers=manager_headers)
        assert resp.status_code == 400

    def test_void_unknown_sale(self, client, manager_headers):
        resp = client.post("/api/sales/4242/void", json={"reason": "Nope"}, headers=manager_headers)
        assert resp.status_code == 404

    def test_void_cancels_credit_invoice(self, client, cashier_headers, manager_headers, db_session,
                                         stocked_product, customer):
        sale = self._sale(
            client, cashier_headers, stocked_product, qty=2,
            customer_id=customer.id, payment_method="CREDIT",
        )
        client.post(f"/api/sales/{sale['id']}/void", json={"reason": "Wrong customer"}, headers=manager_headers)

        invoice = db_session.query(Invoice).filter_by(sale_id=sale["id"]).one()
        assert invoice.status == "CANCELLED"
        assert float(invoice.customer.balance) == 0


class TestRefund:

    def _sale(self, client, headers, product, qty=4, **extra):
        resp = _sell(client, headers, [{"product_id": product.id, "quantity": qty}], **extra)
        return resp.get_json()["data"]

    def test_partial_refund(self, client, cashier_headers, manager_headers, db_session, stocked_product):
        sale = self._sale(client, cashier_headers, stocked_product)
        item_id = sale["items"][0]["id"]

        resp = client.post(
            f"/api/sales/{sale['id']}/refund",
            json={"reason": "Damaged seal", "items": [{"sale_item_id": item_id, "quantity": 1}]},
            headers=manager_headers,
        )
        assert resp.status_code == 201
        refund = resp.get_json()["data"]
        assert refund["refund_number"] == f"REF-{date.today().year}-0001"
        assert refund["total_amount"] == 10.0

        assert float(_batch(db_session, "LOT-EARLY").remaining_quantity) == 7

        resp = client.get(f"/api/sales/{sale['id']}", headers=manager_headers)
        assert resp.get_json()["data"]["status"] == "COMPLETED"

    def test_full_refund_marks_sale_refunded(self, client, cashier_headers, manager_headers, stocked_product):
        sale = self._sale(client, cashier_headers, stocked_product)

        resp = client.post(
            f"/api/sales/{sale['id']}/refund",
            json={"reason": "Recall", "refund_type": "FULL"},
            headers=manager_headers,
        )
        assert resp.status_code == 201
        assert resp.get_json()["data"]["total_amount"] == 40.0

        resp = client.get(f"/api/sales/{sale['id']}", headers=manager_headers)
        assert resp.get_json()["data"]["status"] == "REFUNDED"

        resp = client.post(
            f"/api/sales/{sale['id']}/void",
            json={"reason": "Too late"},
            headers=manager_headers,
        )
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "Cannot void a refunded sale"

    def test_refund_cannot_exceed_sold_quantity(self, client, cashier_headers, manager_headers, stocked_product):
        sale = self._sale(client, cashier_headers, stocked_product)
        item_id = sale["items"][0]["id"]

        resp = client.post(
            f"/api/sales/{sale['id']}/refund",
            json={"reason": "Greedy", "items": [{"sale_item_id": item_id, "quantity": 5}]},
            headers=manager_headers,
        )
        assert resp.status_code == 400

    def test_refund_item_must_be_an_object(self, client, cashier_headers, manager_headers, stocked_product):
        sale = self._sale(client, cashier_headers, stocked_product)

        resp = client.post(
            f"/api/sales/{sale['id']}/refund",
            json={"reason": "Bad body", "items": ["x"]},
            headers=manager_headers,
        )
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "Item 1 is invalid"

    def test_refund_without_restock(self, client, cashier_headers, manager_headers, db_session, stocked_product):
        sale = self._sale(client, cashier_headers, stocked_product)
        item_id = sale["items"][0]["id"]

        client.post(
            f"/api/sales/{sale['id']}/refund",
            json={
                "reason": "Spoiled",
                "return_to_inventory": False,
                "items": [{"sale_item_id": item_id, "quantity": 2}],
            },
            headers=manager_headers,
        )
        assert float(_batch(db_session, "LOT-EARLY").remaining_quantity) == 6

    def test_refund_credits_open_invoice(self, client, cashier_headers, manager_headers, db_session,
                                         stocked_product, customer):
        sale = self._sale(
            client, cashier_headers, stocked_product,
            customer_id=customer.id, payment_method="CREDIT",
        )
        item_id = sale["items"][0]["id"]

        client.post(
            f"/api/sales/{sale['id']}/refund",
            json={"reason": "Short shelf life", "items": [{"sale_item_id": item_id, "quantity": 1}]},
            headers=manager_headers,
        )
        invoice = db_session.query(Invoice).filter_by(sale_id=sale["id"]).one()
        assert float(invoice.amount_due) == 30
        assert [p.payment_method for p in invoice.payments] == ["CREDIT_NOTE"]
        assert float(invoice.customer.balance) == -30


class TestSaleReads:

    def test_lookup_by_number(self, client, cashier_headers, stocked_product):
        sale = _sell(client, cashier_headers, [{"product_id": stocked_product.id, "quantity": 1}]).get_json()["data"]

        resp = client.get(f"/api/sales/number/{sale['sale_number']}", headers=cashier_headers)
        assert resp.status_code == 200
        assert resp.get_json()["data"]["id"] == sale["id"]

    def test_summary_counts_completed_sales(self, client, cashier_headers, stocked_product):
        _sell(client, cashier_headers, [{"product_id": stocked_product.id, "quantity": 2}])
        _sell(client, cashier_headers, [{"product_id": stocked_product.id, "quantity": 1}])

        resp = client.get("/api/sales/summary", headers=cashier_headers)
        assert resp.status_code == 200
        summary = resp.get_json()["data"]
        assert summary["total_sales"] == 2
        assert summary["total_revenue"] == 30.0
