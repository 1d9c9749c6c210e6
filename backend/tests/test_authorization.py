"""
Authorization tests for Tyre POS.

Verifies:
- Unauthenticated requests return 401
- Role gating returns 403 for cashier / manager where required
- Login issues tokens; inactive users and bad credentials are rejected
"""

import pytest

from conftest import TEST_PASSWORD, auth_headers
from tyrepos.services import token_service


# =============================================================================
# UNAUTHENTICATED ACCESS (401)
# =============================================================================


class TestUnauthenticatedAccess:
    """All protected endpoints return 401 without a token."""

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/auth/me"),
            ("GET", "/api/users"),
            ("GET", "/api/categories"),
            ("GET", "/api/items"),
            ("POST", "/api/items"),
            ("PATCH", "/api/items/code/RT0001/stock"),
            ("GET", "/api/sales"),
            ("POST", "/api/sales"),
            ("GET", "/api/sales/reports"),
            ("GET", "/api/customers"),
            ("GET", "/api/analytics/real-time-sales"),
            ("GET", "/api/dashboard/stats"),
            ("GET", "/api/item-balance"),
            ("GET", "/api/logs/activity"),
            ("GET", "/api/email-subscriptions/sales-reports"),
        ],
    )
    def test_requires_auth(self, client, db_session, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"

    def test_malformed_token_rejected(self, client, db_session):
        resp = client.get("/api/items", headers=auth_headers("not-a-jwt"))
        assert resp.status_code == 401
        assert resp.get_json()["error"] == "Invalid or expired token"

    def test_token_for_deactivated_user_rejected(self, client, db_session, cashier_user):
        token = token_service.issue_token(cashier_user)
        cashier_user.is_active = False
        db_session.commit()

        resp = client.get("/api/items", headers=auth_headers(token))
        assert resp.status_code == 401

    def test_health_is_public(self, client, db_session):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.get_json()["checks"]["database"]["status"] == "healthy"


# =============================================================================
# ROLE GATING (403)
# =============================================================================


class TestCashierDenied:
    """Cashier role cannot reach admin / manager operations."""

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/users"),
            ("GET", "/api/sales/reports"),
            ("DELETE", "/api/sales/1"),
            ("GET", "/api/analytics/profit-loss"),
            ("GET", "/api/analytics/peak-hours"),
            ("GET", "/api/item-balance"),
            ("GET", "/api/logs/activity"),
            ("GET", "/api/logs/summary"),
            ("GET", "/api/email-subscriptions/sales-reports"),
            ("POST", "/api/email-subscriptions/send-report-now"),
            ("GET", "/api/items/export"),
            ("PUT", "/api/items/1"),
            ("DELETE", "/api/items/1"),
            ("DELETE", "/api/customers/1"),
        ],
    )
    def test_forbidden(self, client, cashier_headers, method, path):
        resp = getattr(client, method.lower())(path, headers=cashier_headers)
        assert resp.status_code == 403, f"{method} {path} returned {resp.status_code}"
        body = resp.get_json()
        assert body["error"] == "Permission denied"
        assert "cashier" not in body["required_roles"]


class TestManagerAccess:
    def test_manager_cannot_manage_users(self, client, manager_headers):
        resp = client.get("/api/users", headers=manager_headers)
        assert resp.status_code == 403

    def test_manager_cannot_create_items(self, client, manager_headers, category):
        resp = client.post(
            "/api/items",
            json={"name": "X", "category_id": category.id, "purchase_price": 1, "retail_price": 2},
            headers=manager_headers,
        )
        assert resp.status_code == 403

    def test_manager_can_read_reports(self, client, manager_headers):
        resp = client.get("/api/sales/reports", headers=manager_headers)
        assert resp.status_code == 200

    def test_cashier_can_sell_and_list(self, client, cashier_headers):
        resp = client.get("/api/sales", headers=cashier_headers)
        assert resp.status_code == 200


# =============================================================================
# LOGIN
# =============================================================================


class TestLogin:
    def test_login_success_returns_token(self, client, admin_user):
        resp = client.post("/api/auth/login", json={"email": "ADMIN@shop.test", "password": TEST_PASSWORD})
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["user"]["email"] == "admin@shop.test"
        assert body["user"]["role"] == "admin"
        assert "password_hash" not in body["user"]

        me = client.get("/api/auth/me", headers=auth_headers(body["token"]))
        assert me.status_code == 200
        assert me.get_json()["user"]["id"] == admin_user.id

    def test_login_writes_activity(self, client, admin_user, admin_headers):
        client.post("/api/auth/login", json={"email": "admin@shop.test", "password": TEST_PASSWORD})
        resp = client.get("/api/logs/activity?activity=user_login", headers=admin_headers)
        assert resp.get_json()["count"] == 1

    def test_wrong_password(self, client, admin_user):
        resp = client.post("/api/auth/login", json={"email": "admin@shop.test", "password": "wrong-one"})
        assert resp.status_code == 401
        assert resp.get_json()["error"] == "Invalid credentials"

    def test_inactive_user_cannot_login(self, client, db_session, cashier_user):
        cashier_user.is_active = False
        db_session.commit()
        resp = client.post("/api/auth/login", json={"email": "cashier@shop.test", "password": TEST_PASSWORD})
        assert resp.status_code == 401

    def test_missing_fields(self, client, db_session):
        resp = client.post("/api/auth/login", json={"email": "admin@shop.test"})
        assert resp.status_code == 400


# =============================================================================
# USER MANAGEMENT
# =============================================================================


class TestUserManagement:
    def test_create_user_maps_user_role_to_cashier(self, client, admin_headers):
        resp = client.post(
            "/api/users",
            json={"name": "Nimal", "email": "Nimal@Shop.test", "password": "secret1", "role": "user"},
            headers=admin_headers,
        )
        assert resp.status_code == 201
        body = resp.get_json()
        assert body["role"] == "cashier"
        assert body["email"] == "nimal@shop.test"

    def test_duplicate_email_conflicts(self, client, admin_headers, cashier_user):
        resp = client.post(
            "/api/users",
            json={"name": "Other", "email": "cashier@shop.test", "password": "secret1"},
            headers=admin_headers,
        )
        assert resp.status_code == 409

    def test_short_password_rejected(self, client, admin_headers):
        resp = client.post(
            "/api/users",
            json={"name": "Short", "email": "short@shop.test", "password": "123"},
            headers=admin_headers,
        )
        assert resp.status_code == 400

    def test_admin_cannot_deactivate_self(self, client, admin_user, admin_headers):
        resp = client.delete(f"/api/users/{admin_user.id}", headers=admin_headers)
        assert resp.status_code == 400

    def test_deactivate_user(self, client, admin_headers, cashier_user):
        resp = client.delete(f"/api/users/{cashier_user.id}", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.get_json()["is_active"] is False
