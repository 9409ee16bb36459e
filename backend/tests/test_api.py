"""
HTTP API tests.

Verifies:
- Unauthenticated requests return 401, customer access to admin routes 403
- Errors come back as tagged JSON: {"error": CODE, "message", "details"}
- The order flow end to end through the JSON API
"""

import pytest

from conftest import auth_headers, get_auth_token
from stockroom.services import catalog_service, inventory_service, order_service, projection_service


# =============================================================================
# UNAUTHENTICATED ACCESS: 401
# =============================================================================


class TestUnauthenticatedAccess:

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/products"),
            ("POST", "/api/products"),
            ("GET", "/api/categories"),
            ("GET", "/api/suppliers"),
            ("GET", "/api/orders"),
            ("POST", "/api/orders"),
            ("GET", "/api/users"),
            ("POST", "/api/inventory/1/adjust"),
            ("GET", "/api/reports/dashboard"),
            ("GET", "/api/reconciliation/issues"),
            ("GET", "/api/auth/me"),
        ],
    )
    def test_requires_auth(self, client, db_session, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"
        assert resp.json["error"] == "UNAUTHORIZED"

    def test_garbage_token(self, client, db_session):
        resp = client.get("/api/products", headers=auth_headers("not-a-token"))
        assert resp.status_code == 401

    def test_health_is_public(self, client, db_session):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json["status"] == "ok"


# =============================================================================
# CUSTOMER DENIED ADMIN OPERATIONS: 403
# =============================================================================


class TestCustomerDeniedAdmin:

    @pytest.mark.parametrize(
        "method,path",
        [
            ("POST", "/api/products"),
            ("POST", "/api/categories"),
            ("GET", "/api/users"),
            ("POST", "/api/inventory/1/adjust"),
            ("GET", "/api/reports/low-stock"),
            ("GET", "/api/reconciliation/issues"),
        ],
    )
    def test_forbidden(self, client, customer_headers, method, path):
        resp = getattr(client, method.lower())(path, json={}, headers=customer_headers)
        assert resp.status_code == 403
        assert resp.json["error"] == "FORBIDDEN"


# =============================================================================
# UNEXPECTED FAILURES: JSON 500
# =============================================================================


class TestUnexpectedFailures:

    @pytest.mark.parametrize(
        "module,attr,path",
        [
            (order_service, "list_orders", "/api/orders"),
            (order_service, "get_order", "/api/orders/1"),
            (projection_service, "out_of_stock", "/api/reports/out-of-stock"),
            (projection_service, "low_stock", "/api/reports/low-stock"),
            (inventory_service, "list_movements", "/api/inventory/1/movements"),
            (catalog_service, "list_categories", "/api/categories"),
        ],
    )
    def test_unexpected_error_is_json_500(self, client, admin_headers, monkeypatch, module, attr, path):
        def _explode(*args, **kwargs):
            raise RuntimeError("boom")

        monkeypatch.setattr(module, attr, _explode)
        resp = client.get(path, headers=admin_headers)

        assert resp.status_code == 500
        assert resp.json == {"error": "Internal server error"}


class TestAuth:

    def test_register_login_me_logout(self, client, db_session):
        resp = client.post("/api/auth/register", json={
            "name": "Fay", "email": "fay@example.com", "password": "TestPass123!",
        })
        assert resp.status_code == 201
        assert resp.json["user"]["role"] == "customer"

        token = get_auth_token(client, "fay@example.com")
        assert token

        resp = client.get("/api/auth/me", headers=auth_headers(token))
        assert resp.status_code == 200
        assert resp.json["user"]["email"] == "fay@example.com"

        assert client.post("/api/auth/logout", headers=auth_headers(token)).status_code == 200
        assert client.get("/api/auth/me", headers=auth_headers(token)).status_code == 401

    def test_bad_credentials(self, client, customer):
        resp = client.post("/api/auth/login", json={"email": customer.email, "password": "WrongPass1!"})
        assert resp.status_code == 401

    def test_missing_credentials(self, client, db_session):
        resp = client.post("/api/auth/login", json={"email": "x@example.com"})
        assert resp.status_code == 400
        assert resp.json["error"] == "VALIDATION_ERROR"

    def test_duplicate_registration(self, client, customer):
        resp = client.post("/api/auth/register", json={
            "name": "Copy", "email": customer.email, "password": "TestPass123!",
        })
        assert resp.status_code == 409
        assert resp.json["error"] == "DUPLICATE"


class TestCatalogApi:

    def test_product_crud(self, client, admin_headers):
        resp = client.post("/api/categories", json={"name": "Hardware"}, headers=admin_headers)
        assert resp.status_code == 201
        category_id = resp.json["category"]["id"]

        resp = client.post("/api/products", json={
            "name": "Drill", "price_cents": 4999, "stock": 5, "category_id": category_id,
        }, headers=admin_headers)
        assert resp.status_code == 201
        product = resp.json["product"]
        assert (product["stock"], product["reserved"], product["available"]) == (5, 0, 5)

        resp = client.get(f"/api/products/{product['id']}", headers=admin_headers)
        assert resp.json["product"]["category_name"] == "Hardware"

        resp = client.patch(f"/api/products/{product['id']}", json={
            "expected_version": product["version"], "price_cents": 3999,
        }, headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json["product"]["version"] == product["version"] + 1

        resp = client.patch(f"/api/products/{product['id']}", json={
            "expected_version": product["version"], "price_cents": 2999,
        }, headers=admin_headers)
        assert resp.status_code == 409
        assert resp.json["error"] == "VERSION_CONFLICT"

        resp = client.delete(f"/api/categories/{category_id}", headers=admin_headers)
        assert resp.status_code == 409
        assert resp.json["error"] == "REFERENTIAL_CONFLICT"

        resp = client.delete(f"/api/products/{product['id']}", headers=admin_headers)
        assert resp.status_code == 200
        assert client.get(f"/api/products/{product['id']}", headers=admin_headers).status_code == 404

    def test_patch_requires_expected_version(self, client, admin_headers, widget):
        resp = client.patch(f"/api/products/{widget.id}", json={"name": "X"}, headers=admin_headers)
        assert resp.status_code == 400

    def test_product_search(self, client, customer_headers, widget, gadget):
        resp = client.get("/api/products?q=gad", headers=customer_headers)
        assert resp.status_code == 200
        assert [p["name"] for p in resp.json["items"]] == ["Gadget"]


class TestOrderFlowApi:

    def test_place_complete(self, client, admin_headers, customer_headers, widget, gadget):
        resp = client.post("/api/orders", json={
            "items": [
                {"product_id": widget.id, "quantity": 2},
                {"product_id": gadget.id, "quantity": 1},
            ],
            "shipping_address": "1 High Street",
        }, headers=customer_headers)
        assert resp.status_code == 201
        order = resp.json["order"]
        assert order["status"] == "pending"
        assert order["total_cents"] == 1500
        assert [i["unit_price_cents"] for i in order["items"]] == [250, 1000]

        resp = client.post(f"/api/orders/{order['id']}/complete", json={
            "expected_version": order["version"],
        }, headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json["order"]["status"] == "completed"

        resp = client.get(f"/api/products/{widget.id}", headers=admin_headers)
        assert (resp.json["product"]["stock"], resp.json["product"]["reserved"]) == (8, 0)

        resp = client.get(f"/api/inventory/{widget.id}/movements?order_id={order['id']}", headers=admin_headers)
        assert [m["movement_type"] for m in resp.json["items"]] == ["COMMIT", "RESERVE"]

    def test_insufficient_stock_is_tagged(self, client, customer_headers, gadget):
        resp = client.post("/api/orders", json={
            "items": [{"product_id": gadget.id, "quantity": 4}],
        }, headers=customer_headers)
        assert resp.status_code == 409
        assert resp.json["error"] == "INSUFFICIENT_STOCK"
        assert resp.json["details"] == {
            "product_id": gadget.id, "requested_quantity": 4, "available_quantity": 3,
        }

    def test_customer_cancels_own_order(self, client, customer_headers, widget):
        order = client.post("/api/orders", json={
            "items": [{"product_id": widget.id, "quantity": 1}],
        }, headers=customer_headers).json["order"]

        resp = client.post(f"/api/orders/{order['id']}/cancel", json={
            "expected_version": order["version"], "reason": "duplicate",
        }, headers=customer_headers)
        assert resp.status_code == 200
        assert resp.json["order"]["cancel_reason"] == "duplicate"

        resp = client.patch(f"/api/orders/{order['id']}/status", json={
            "status": "completed", "expected_version": resp.json["order"]["version"],
        }, headers=customer_headers)
        assert resp.status_code == 409
        assert resp.json["error"] == "INVALID_TRANSITION"

    def test_customer_cannot_see_other_orders(self, client, db_session, admin_headers, other_customer, customer_headers, widget):
        resp = client.post("/api/orders", json={
            "customer_id": other_customer.id,
            "items": [{"product_id": widget.id, "quantity": 1}],
        }, headers=admin_headers)
        assert resp.status_code == 201
        order_id = resp.json["order"]["id"]

        assert client.get(f"/api/orders/{order_id}", headers=customer_headers).status_code == 403
        assert client.get("/api/orders", headers=customer_headers).json["count"] == 0

    def test_edit_order_details(self, client, customer_headers, widget):
        order = client.post("/api/orders", json={
            "items": [{"product_id": widget.id, "quantity": 1}],
        }, headers=customer_headers).json["order"]

        resp = client.patch(f"/api/orders/{order['id']}", json={
            "expected_version": order["version"], "notes": "leave at door",
        }, headers=customer_headers)
        assert resp.status_code == 200
        assert resp.json["order"]["notes"] == "leave at door"


class TestAdminApi:

    def test_adjust_and_low_stock_report(self, client, admin_headers, gadget):
        resp = client.get("/api/reports/low-stock", headers=admin_headers)
        assert [p["name"] for p in resp.json["items"]] == ["Gadget"]

        resp = client.post(f"/api/inventory/{gadget.id}/adjust", json={
            "delta": 7, "expected_version": gadget.version,
        }, headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json["product"]["stock"] == 10

        assert client.get("/api/reports/low-stock", headers=admin_headers).json["count"] == 0

    def test_dashboard(self, client, admin_headers, widget):
        resp = client.get("/api/reports/dashboard", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json["product_count"] == 1
        assert client.get("/api/reports/dashboard?date=yesterday", headers=admin_headers).status_code == 400

    def test_delete_customer_with_orders_is_anonymised(self, client, admin_headers, customer, customer_headers, widget):
        client.post("/api/orders", json={"items": [{"product_id": widget.id, "quantity": 1}]}, headers=customer_headers)

        resp = client.delete(f"/api/users/{customer.id}", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json["anonymized"] is True
        assert client.get("/api/auth/me", headers=customer_headers).status_code == 401

    def test_reconciliation_listing(self, client, admin_headers):
        resp = client.get("/api/reconciliation/issues?status=all", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json["count"] == 0

        resp = client.post("/api/reconciliation/issues/1/resolve", json={}, headers=admin_headers)
        assert resp.status_code == 400
