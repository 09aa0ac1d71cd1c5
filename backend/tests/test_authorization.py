"""
Authentication and authorization tests.

Verifies:
- Unauthenticated requests return 401 (missing, malformed, expired tokens)
- Cashier role denied manager and admin operations (403)
- Report access follows role -> permission grants
- Admin role can perform privileged operations
"""

from datetime import timedelta

import pytest

from digitalshop.services.token_service import issue_token

PASSWORD = "Password123"


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


# =============================================================================
# UNAUTHENTICATED ACCESS (401)
# =============================================================================


PROTECTED_ROUTES = [
    ("GET", "/api/auth/me"),
    ("GET", "/api/users"),
    ("GET", "/api/products"),
    ("POST", "/api/products"),
    ("GET", "/api/inventory/batches"),
    ("POST", "/api/stock-adjustments"),
    ("POST", "/api/pos/hold"),
    ("GET", "/api/goods-receipts"),
    ("POST", "/api/sales"),
    ("GET", "/api/invoices"),
    ("GET", "/api/customers"),
    ("GET", "/api/suppliers"),
    ("GET", "/api/expenses"),
    ("GET", "/api/reports/dashboard"),
    ("GET", "/api/system/settings"),
]


class TestUnauthenticatedAccess:
    """All protected endpoints return 401 without a usable token."""

    @pytest.mark.parametrize("method,path", PROTECTED_ROUTES)
    def test_requires_auth(self, client, db_session, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"
        assert resp.get_json()["success"] is False

    def test_non_bearer_header_rejected(self, client, db_session):
        resp = client.get("/api/auth/me", headers={"Authorization": "Basic abc"})
        assert resp.status_code == 401
        assert resp.get_json()["error"] == "No authorization token provided"

    def test_garbage_token_rejected(self, client, db_session):
        resp = client.get("/api/auth/me", headers=bearer("not-a-jwt"))
        assert resp.status_code == 401
        assert resp.get_json()["error"] == "Invalid token"

    def test_expired_token_rejected(self, client, cashier_user):
        token = issue_token(cashier_user, expires_in=timedelta(seconds=-5))
        resp = client.get("/api/auth/me", headers=bearer(token))
        assert resp.status_code == 401
        assert resp.get_json()["error"] == "Token expired"

    def test_deactivated_user_token_rejected(self, client, db_session, user_factory):
        user = user_factory("gone@test.local", "CASHIER")
        token = issue_token(user)
        user.is_active = False
        db_session.commit()

        resp = client.get("/api/auth/me", headers=bearer(token))
        assert resp.status_code == 401

    def test_health_is_public(self, client, db_session):
        resp = client.get("/health")
        assert resp.status_code == 200
        data = resp.get_json()["data"]
        assert data["status"] == "ok"
        assert data["database"]["status"] == "healthy"

    def test_unknown_route_is_json_404(self, client, db_session):
        resp = client.get("/api/nope")
        assert resp.status_code == 404
        assert resp.get_json()["error"] == "Route not found"


# =============================================================================
# LOGIN
# =============================================================================


class TestLogin:

    def test_login_returns_token_and_user(self, client, cashier_user):
        resp = client.post("/api/auth/login", json={
            "email": "CASHIER@test.local",
            "password": PASSWORD,
        })
        assert resp.status_code == 200
        data = resp.get_json()["data"]
        assert data["token"]
        assert data["user"]["role"] == "CASHIER"
        assert "password_hash" not in data["user"]

    def test_wrong_password(self, client, cashier_user):
        resp = client.post("/api/auth/login", json={
            "email": cashier_user.email,
            "password": "Wrong12345",
        })
        assert resp.status_code == 401
        assert resp.get_json()["error"] == "Invalid email or password"

    def test_missing_fields(self, client, db_session):
        resp = client.post("/api/auth/login", json={"email": "a@b.c"})
        assert resp.status_code == 400

    def test_inactive_account(self, client, user_factory):
        user_factory("inactive@test.local", "STAFF", is_active=False)
        resp = client.post("/api/auth/login", json={
            "email": "inactive@test.local",
            "password": PASSWORD,
        })
        assert resp.status_code == 401
        assert "inactive" in resp.get_json()["error"]

    def test_me_returns_caller(self, client, cashier_headers):
        resp = client.get("/api/auth/me", headers=cashier_headers)
        assert resp.status_code == 200
        assert resp.get_json()["data"]["email"] == "cashier@test.local"


# =============================================================================
# CASHIER DENIED HIGH-RISK OPERATIONS (403)
# =============================================================================


class TestCashierDeniedHighRisk:
    """Cashier role cannot perform privileged operations."""

    def test_cannot_list_users(self, client, cashier_headers):
        resp = client.get("/api/users", headers=cashier_headers)
        assert resp.status_code == 403

    def test_cannot_register_user(self, client, cashier_headers):
        resp = client.post(
            "/api/auth/register",
            json={"email": "x@x.com", "password": "Password123", "full_name": "X"},
            headers=cashier_headers,
        )
        assert resp.status_code == 403

    def test_cannot_create_product(self, client, cashier_headers):
        resp = client.post("/api/products", json={"name": "Contraband"}, headers=cashier_headers)
        assert resp.status_code == 403

    def test_cannot_adjust_stock(self, client, cashier_headers, stocked_product):
        resp = client.post(
            "/api/stock-adjustments",
            json={
                "product_id": stocked_product.id,
                "adjustment_type": "DAMAGE",
                "quantity": 1,
                "reason": "Dropped",
            },
            headers=cashier_headers,
        )
        assert resp.status_code == 403

    def test_cannot_void_sale(self, client, cashier_headers):
        resp = client.post("/api/sales/1/void", json={"reason": "x"}, headers=cashier_headers)
        assert resp.status_code == 403

    def test_cannot_view_financial_reports(self, client, cashier_headers):
        resp = client.get("/api/reports/profit-loss", headers=cashier_headers)
        assert resp.status_code == 403
        assert resp.get_json()["required_permission"] == "reports.financial"

    def test_cannot_reset_system(self, client, cashier_headers):
        resp = client.post(
            "/api/system/reset",
            json={"confirm_text": "RESET ALL TRANSACTIONS", "reason": "cleaning up test data"},
            headers=cashier_headers,
        )
        assert resp.status_code == 403

    def test_cashier_can_sell_and_browse(self, client, cashier_headers, stocked_product):
        assert client.get("/api/products", headers=cashier_headers).status_code == 200
        resp = client.post(
            "/api/sales",
            json={"items": [{"product_id": stocked_product.id, "quantity": 1}]},
            headers=cashier_headers,
        )
        assert resp.status_code == 201


# =============================================================================
# PRIVILEGED ROLES
# =============================================================================


class TestPrivilegedAccess:

    def test_manager_can_view_reports(self, client, manager_headers):
        resp = client.get("/api/reports/dashboard", headers=manager_headers)
        assert resp.status_code == 200

    def test_manager_cannot_touch_system(self, client, manager_headers):
        resp = client.get("/api/system/settings", headers=manager_headers)
        assert resp.status_code == 403

    def test_admin_can_register_user(self, client, admin_headers):
        resp = client.post(
            "/api/auth/register",
            json={
                "email": "new.cashier@test.local",
                "password": "Password123",
                "full_name": "New Cashier",
                "role": "CASHIER",
            },
            headers=admin_headers,
        )
        assert resp.status_code == 201
        assert resp.get_json()["data"]["user"]["role"] == "CASHIER"

    def test_register_rejects_weak_password(self, client, admin_headers):
        resp = client.post(
            "/api/auth/register",
            json={"email": "weak@test.local", "password": "short", "full_name": "Weak"},
            headers=admin_headers,
        )
        assert resp.status_code == 400

    def test_register_duplicate_email(self, client, admin_headers, cashier_user):
        resp = client.post(
            "/api/auth/register",
            json={"email": cashier_user.email, "password": "Password123", "full_name": "Dup"},
            headers=admin_headers,
        )
        assert resp.status_code == 409

    def test_granted_permission_opens_report(self, client, db_session, cashier_headers):
        from digitalshop.services import permission_service

        permission_service.grant_permission("CASHIER", "reports.sales")
        resp = client.get("/api/reports/sales-summary", headers=cashier_headers)
        assert resp.status_code == 200


# =============================================================================
# ROLE ADMINISTRATION
# =============================================================================


class TestRoleAdministration:

    def test_catalog_grouped_by_category(self, client, cashier_headers):
        resp = client.get("/api/roles/permissions", headers=cashier_headers)
        assert resp.status_code == 200
        groups = {g["category"]: [p["key"] for p in g["permissions"]] for g in resp.get_json()["data"]}
        assert "purchases.create" in groups["purchases"]
        assert "inventory.movements" in groups["inventory"]

    def test_roles_listed_highest_first(self, client, cashier_headers):
        data = client.get("/api/roles", headers=cashier_headers).get_json()["data"]
        assert [r["role"] for r in data] == ["ADMIN", "MANAGER", "CASHIER", "STAFF"]
        assert data[0]["is_locked"] is True
        assert "sales.create" in data[2]["permissions"]

    def test_unknown_role(self, client, admin_headers):
        resp = client.get("/api/roles/OWNER", headers=admin_headers)
        assert resp.status_code == 404
        assert resp.get_json()["error"] == "Role not found"

    def test_admin_replaces_grants(self, client, admin_headers, cashier_headers):
        resp = client.put(
            "/api/roles/cashier",
            json={"permissions": ["sales.read", "sales.create", "inventory.movements"]},
            headers=admin_headers,
        )
        assert resp.status_code == 200
        assert resp.get_json()["message"] == "Role updated successfully"
        data = resp.get_json()["data"]
        assert data["role"] == "CASHIER"
        assert sorted(p["key"] for p in data["permissions"]) == [
            "inventory.movements", "sales.create", "sales.read",
        ]

        # New grants apply on the next request
        assert client.get("/api/stock-movements", headers=cashier_headers).status_code == 200

    def test_admin_role_is_locked(self, client, admin_headers):
        resp = client.put("/api/roles/ADMIN", json={"permissions": []}, headers=admin_headers)
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "Cannot modify permissions of the ADMIN role"

    def test_unknown_key_rejected(self, client, admin_headers):
        resp = client.put("/api/roles/STAFF", json={"permissions": ["sales.read", "bogus.key"]}, headers=admin_headers)
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "Unknown permission: bogus.key"

    def test_manager_cannot_edit_roles(self, client, manager_headers):
        resp = client.put("/api/roles/CASHIER", json={"permissions": []}, headers=manager_headers)
        assert resp.status_code == 403
