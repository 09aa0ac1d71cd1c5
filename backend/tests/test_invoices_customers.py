"""
Invoices, payments and customer accounts.

A customer's balance is derived: minus the amount due on its open invoices.
"""

from datetime import timedelta

from digitalshop.models import Customer
from digitalshop.time_utils import today


def _invoice(client, headers, customer, total, **extra):
    return client.post(
        "/api/invoices",
        json={"customer_id": customer.id, "total_amount": total, **extra},
        headers=headers,
    )


def _pay(client, headers, invoice_id, amount, **extra):
    return client.post(
        f"/api/invoices/{invoice_id}/payments",
        json={"amount": amount, **extra},
        headers=headers,
    )


class TestInvoices:

    def test_create_invoice(self, client, manager_headers, db_session, customer):
        resp = _invoice(client, manager_headers, customer, 300)
        assert resp.status_code == 201
        invoice = resp.get_json()["data"]
        assert invoice["invoice_number"] == f"INV-{today().year}-0001"
        assert invoice["status"] == "SENT"
        assert invoice["amount_due"] == 300.0
        assert invoice["due_date"] == (today() + timedelta(days=30)).isoformat()

        assert float(db_session.get(Customer, customer.id).balance) == -300

    def test_totals_must_add_up(self, client, manager_headers, customer):
        resp = _invoice(client, manager_headers, customer, 100, subtotal=90, tax_amount=5)
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "Invoice total does not match subtotal + tax - discount"

    def test_due_date_before_issue_date(self, client, manager_headers, customer):
        resp = _invoice(
            client, manager_headers, customer, 100,
            issue_date="2026-03-10", due_date="2026-03-01",
        )
        assert resp.status_code == 400

    def test_credit_limit_enforced(self, client, manager_headers, customer):
        assert _invoice(client, manager_headers, customer, 800).status_code == 201

        resp = _invoice(client, manager_headers, customer, 300)
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "Credit limit exceeded"

    def test_unknown_customer(self, client, manager_headers, db_session):
        resp = client.post(
            "/api/invoices",
            json={"customer_id": 404, "total_amount": 10},
            headers=manager_headers,
        )
        assert resp.status_code == 404


class TestPayments:

    def test_partial_then_full_payment(self, client, manager_headers, db_session, customer):
        invoice = _invoice(client, manager_headers, customer, 300).get_json()["data"]

        resp = _pay(client, manager_headers, invoice["id"], 100, payment_method="MOBILE_MONEY")
        assert resp.status_code == 201
        data = resp.get_json()["data"]
        assert data["payment"]["receipt_number"] == f"RCP-{today().year}-0001"
        assert data["invoice"]["status"] == "PARTIALLY_PAID"
        assert data["invoice"]["amount_paid"] == 100.0
        assert data["invoice"]["amount_due"] == 200.0
        assert float(db_session.get(Customer, customer.id).balance) == -200

        resp = _pay(client, manager_headers, invoice["id"], 200)
        assert resp.get_json()["data"]["invoice"]["status"] == "PAID"
        assert float(db_session.get(Customer, customer.id).balance) == 0

        resp = _pay(client, manager_headers, invoice["id"], 1)
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "Invoice is already paid"

    def test_overpayment_rejected(self, client, manager_headers, customer):
        invoice = _invoice(client, manager_headers, customer, 50).get_json()["data"]

        resp = _pay(client, manager_headers, invoice["id"], 60)
        assert resp.status_code == 400
        assert "exceeds amount due" in resp.get_json()["error"]

    def test_amount_must_be_positive(self, client, manager_headers, customer):
        invoice = _invoice(client, manager_headers, customer, 50).get_json()["data"]

        resp = _pay(client, manager_headers, invoice["id"], 0)
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "Payment amount must be greater than 0"

    def test_invalid_method(self, client, manager_headers, customer):
        invoice = _invoice(client, manager_headers, customer, 50).get_json()["data"]

        resp = _pay(client, manager_headers, invoice["id"], 10, payment_method="SEASHELLS")
        assert resp.status_code == 400

    def test_payment_history(self, client, manager_headers, customer):
        invoice = _invoice(client, manager_headers, customer, 90).get_json()["data"]
        _pay(client, manager_headers, invoice["id"], 30)
        _pay(client, manager_headers, invoice["id"], 30)

        resp = client.get(f"/api/invoices/{invoice['id']}/payments", headers=manager_headers)
        assert [p["amount"] for p in resp.get_json()["data"]] == [30.0, 30.0]

    def test_summary(self, client, manager_headers, customer):
        invoice = _invoice(client, manager_headers, customer, 100).get_json()["data"]
        _pay(client, manager_headers, invoice["id"], 40)

        resp = client.get("/api/invoices/summary", headers=manager_headers)
        summary = resp.get_json()["data"]
        assert summary["total_invoiced"] == 100.0
        assert summary["total_paid"] == 40.0
        assert summary["total_outstanding"] == 60.0


class TestCustomerAccounts:

    def test_ledger_running_balance(self, client, manager_headers, customer):
        first = _invoice(client, manager_headers, customer, 300).get_json()["data"]
        _invoice(client, manager_headers, customer, 200)
        _pay(client, manager_headers, first["id"], 100)

        resp = client.get(f"/api/customers/{customer.id}/ledger", headers=manager_headers)
        rows = resp.get_json()["data"]
        assert [(r["type"], r["debit"], r["credit"], r["running_balance"]) for r in rows] == [
            ("INVOICE", 300.0, 0.0, 300.0),
            ("INVOICE", 200.0, 0.0, 500.0),
            ("PAYMENT", 0.0, 100.0, 400.0),
        ]

    def test_filtered_ledger_starts_from_zero(self, client, manager_headers, customer):
        earlier = (today() - timedelta(days=60)).isoformat()
        _invoice(client, manager_headers, customer, 150, issue_date=earlier)
        _invoice(client, manager_headers, customer, 50)

        resp = client.get(
            f"/api/customers/{customer.id}/ledger?start_date={today().isoformat()}",
            headers=manager_headers,
        )
        rows = resp.get_json()["data"]
        assert len(rows) == 1
        assert rows[0]["debit"] == 50.0
        assert rows[0]["running_balance"] == 50.0

    def test_ledger_names_the_source_sale(self, client, cashier_headers, manager_headers,
                                          stocked_product, customer):
        _invoice(client, manager_headers, customer, 40)
        sale = client.post(
            "/api/sales",
            json={
                "items": [{"product_id": stocked_product.id, "quantity": 2}],
                "customer_id": customer.id,
                "payment_method": "CREDIT",
            },
            headers=cashier_headers,
        ).get_json()["data"]

        rows = client.get(f"/api/customers/{customer.id}/ledger", headers=manager_headers).get_json()["data"]
        assert [r["description"] for r in rows] == [
            "Invoice from direct",
            f"Invoice from {sale['sale_number']}",
        ]

    def test_account_summary(self, client, manager_headers, customer):
        invoice = _invoice(client, manager_headers, customer, 300).get_json()["data"]
        _pay(client, manager_headers, invoice["id"], 120)

        resp = client.get(f"/api/customers/{customer.id}/account-summary", headers=manager_headers)
        summary = resp.get_json()["data"]
        assert summary["total_invoiced"] == 300.0
        assert summary["total_paid"] == 120.0
        assert summary["total_outstanding"] == 180.0
        assert summary["aging"]["current"] == 180.0
        assert summary["open_invoice_count"] == 1

    def test_check_credit(self, client, cashier_headers, manager_headers, customer):
        _invoice(client, manager_headers, customer, 700)

        resp = client.post(
            f"/api/customers/{customer.id}/check-credit",
            json={"amount": 250},
            headers=cashier_headers,
        )
        result = resp.get_json()["data"]
        assert result["can_purchase"] is True
        assert result["available_credit"] == 300.0

        resp = client.post(
            f"/api/customers/{customer.id}/check-credit",
            json={"amount": 301},
            headers=cashier_headers,
        )
        assert resp.get_json()["data"]["can_purchase"] is False

    def test_transactions_newest_first(self, client, cashier_headers, manager_headers,
                                       stocked_product, customer):
        client.post(
            "/api/sales",
            json={
                "items": [{"product_id": stocked_product.id, "quantity": 3}],
                "customer_id": customer.id,
                "payment_method": "CREDIT",
            },
            headers=cashier_headers,
        )
        invoice = client.get(f"/api/customers/{customer.id}/invoices", headers=cashier_headers).get_json()["data"][0]
        _pay(client, manager_headers, invoice["id"], 10)

        resp = client.get(f"/api/customers/{customer.id}/transactions", headers=cashier_headers)
        rows = resp.get_json()["data"]
        assert [(r["type"], r["amount"]) for r in rows] == [("PAYMENT", -10.0), ("SALE", 30.0)]

    def test_with_balance(self, client, manager_headers, customer):
        _invoice(client, manager_headers, customer, 75)

        resp = client.get("/api/customers/with-balance", headers=manager_headers)
        assert [c["name"] for c in resp.get_json()["data"]] == ["Jane Buyer"]


class TestCustomerMasterData:

    def test_create_customer(self, client, manager_headers, db_session):
        resp = client.post(
            "/api/customers",
            json={"name": "Sam Shopper", "phone": "0711111111", "credit_limit": 500},
            headers=manager_headers,
        )
        assert resp.status_code == 201
        assert resp.get_json()["message"] == "Customer created successfully"

    def test_duplicate_phone(self, client, manager_headers, customer):
        resp = client.post(
            "/api/customers",
            json={"name": "Someone Else", "phone": "0700000001"},
            headers=manager_headers,
        )
        assert resp.status_code == 409
        assert resp.get_json()["error"] == 'A customer with phone number "0700000001" already exists: Jane Buyer'

    def test_negative_credit_limit(self, client, manager_headers, db_session):
        resp = client.post(
            "/api/customers",
            json={"name": "Bad Limit", "credit_limit": -1},
            headers=manager_headers,
        )
        assert resp.status_code == 400

    def test_cashier_cannot_create(self, client, cashier_headers):
        resp = client.post("/api/customers", json={"name": "Nope"}, headers=cashier_headers)
        assert resp.status_code == 403

    def test_delete_hides_from_search(self, client, manager_headers, customer):
        assert client.delete(f"/api/customers/{customer.id}", headers=manager_headers).status_code == 200

        resp = client.get("/api/customers/search?q=Jane", headers=manager_headers)
        assert resp.get_json()["data"] == []

    def test_reactivation_checks_phone(self, client, manager_headers, customer):
        client.delete(f"/api/customers/{customer.id}", headers=manager_headers)
        resp = client.post(
            "/api/customers",
            json={"name": "Joan Buyer", "phone": "0700000001"},
            headers=manager_headers,
        )
        assert resp.status_code == 201

        resp = client.put(f"/api/customers/{customer.id}", json={"is_active": True}, headers=manager_headers)
        assert resp.status_code == 409
        assert resp.get_json()["error"] == 'A customer with phone number "0700000001" already exists: Joan Buyer'


class TestSuppliers:

    def test_create_and_duplicate(self, client, manager_headers, supplier):
        resp = client.post(
            "/api/suppliers",
            json={"name": "Fresh Farms", "email": "sales@freshfarms.example"},
            headers=manager_headers,
        )
        assert resp.status_code == 201

        resp = client.post(
            "/api/suppliers",
            json={"name": "Acme Retail", "email": "ORDERS@acme.example"},
            headers=manager_headers,
        )
        assert resp.status_code == 409

    def test_search(self, client, cashier_headers, supplier):
        resp = client.get("/api/suppliers/search?q=acme", headers=cashier_headers)
        assert [s["name"] for s in resp.get_json()["data"]] == ["Acme Wholesale"]

    def test_reactivation_checks_email(self, client, manager_headers, supplier):
        client.delete(f"/api/suppliers/{supplier.id}", headers=manager_headers)
        resp = client.post(
            "/api/suppliers",
            json={"name": "Acme Two", "email": "orders@acme.example"},
            headers=manager_headers,
        )
        assert resp.status_code == 201

        resp = client.put(f"/api/suppliers/{supplier.id}", json={"is_active": True}, headers=manager_headers)
        assert resp.status_code == 409
        assert resp.get_json()["error"] == 'A supplier with email "orders@acme.example" already exists: Acme Two'
