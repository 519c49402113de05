"""
HTTP API tests.

Verifies:
- Unauthenticated requests return 401; user management needs ADMIN
- Domain errors come back with their kind and status code
- The sale / purchase / adjustment flows end to end through the routes
"""

import pytest

from conftest import TEST_PASSWORD, auth_headers, get_auth_token


class TestUnauthenticatedAccess:
    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/auth/me"),
            ("GET", "/api/users"),
            ("GET", "/api/products"),
            ("POST", "/api/sales"),
            ("GET", "/api/stock/movements"),
            ("POST", "/api/purchases"),
            ("GET", "/api/customers"),
            ("GET", "/api/transactions"),
            ("GET", "/api/dashboard"),
        ],
    )
    def test_requires_auth(self, client, db_session, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"

    def test_health_is_public(self, client, db_session):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json["status"] == "healthy"


class TestAuth:
    def test_login_and_me(self, client, admin_user):
        resp = client.post("/api/auth/login", json={"email": "OWNER@petshop.local", "password": TEST_PASSWORD})
        assert resp.status_code == 200
        token = resp.json["token"]

        me = client.get("/api/auth/me", headers=auth_headers(token))
        assert me.status_code == 200
        assert me.json["user"]["email"] == "owner@petshop.local"

    def test_bad_credentials(self, client, admin_user):
        resp = client.post("/api/auth/login", json={"email": admin_user.email, "password": "wrong-password"})
        assert resp.status_code == 401

    def test_missing_fields(self, client, db_session):
        resp = client.post("/api/auth/login", json={"email": "x@y.z"})
        assert resp.status_code == 400

    def test_logout_revokes_token(self, client, admin_user):
        token = get_auth_token(client, admin_user.email, TEST_PASSWORD)

        assert client.post("/api/auth/logout", headers=auth_headers(token)).status_code == 200
        assert client.get("/api/auth/me", headers=auth_headers(token)).status_code == 401


class TestUserManagement:
    def test_clerk_cannot_manage_users(self, client, clerk_headers):
        assert client.get("/api/users", headers=clerk_headers).status_code == 403
        resp = client.post(
            "/api/users",
            json={"name": "x", "email": "x@x.com", "password": "Password123!"},
            headers=clerk_headers,
        )
        assert resp.status_code == 403

    def test_admin_creates_user(self, client, admin_headers):
        resp = client.post(
            "/api/users",
            json={"name": "New Clerk", "email": "new@petshop.local", "password": "Password123!"},
            headers=admin_headers,
        )
        assert resp.status_code == 201
        assert resp.json["user"]["role"] == "USER"

    def test_short_password_rejected(self, client, admin_headers):
        resp = client.post(
            "/api/users",
            json={"name": "Short", "email": "short@petshop.local", "password": "abc"},
            headers=admin_headers,
        )
        assert resp.status_code == 400
        assert resp.json["kind"] == "validation_error"

    def test_deactivated_user_loses_sessions(self, client, admin_headers, clerk_user):
        token = get_auth_token(client, clerk_user.email, TEST_PASSWORD)

        resp = client.put(f"/api/users/{clerk_user.id}", json={"is_active": False}, headers=admin_headers)
        assert resp.status_code == 200
        assert client.get("/api/auth/me", headers=auth_headers(token)).status_code == 401


class TestProductsApi:
    def test_create_with_initial_stock(self, client, admin_headers, category):
        resp = client.post(
            "/api/products",
            json={
                "name": "Cat litter 4kg",
                "category_id": category.id,
                "price_cents": 3290,
                "cost_cents": 2100,
                "min_stock": 5,
                "barcode": "7891000000001",
                "initial_stock": 12,
            },
            headers=admin_headers,
        )
        assert resp.status_code == 201
        product = resp.json["product"]
        assert product["stock_quantity"] == 12.0
        assert product["margin_pct"] == pytest.approx(56.67)

        movements = client.get(
            f"/api/stock/movements?product_id={product['id']}", headers=admin_headers
        ).json
        assert movements["count"] == 1
        assert movements["items"][0]["reason"] == "INITIAL_STOCK"

    def test_duplicate_barcode(self, client, admin_headers, category):
        body = {"name": "A", "category_id": category.id, "price_cents": 100, "barcode": "123"}
        assert client.post("/api/products", json=body, headers=admin_headers).status_code == 201
        resp = client.post("/api/products", json={**body, "name": "B"}, headers=admin_headers)
        assert resp.status_code == 409
        assert resp.json["kind"] == "conflict"

    def test_stock_not_writable_through_update(self, client, admin_headers, product):
        resp = client.put(f"/api/products/{product.id}", json={"stock_quantity": 999}, headers=admin_headers)
        assert resp.status_code == 400

    def test_unknown_field_rejected(self, client, admin_headers, category):
        resp = client.post(
            "/api/products",
            json={"name": "A", "category_id": category.id, "price_cents": 100, "version_id": 7},
            headers=admin_headers,
        )
        assert resp.status_code == 400

    def test_adjust_stock(self, client, admin_headers, product):
        resp = client.post(
            f"/api/products/{product.id}/adjust-stock",
            json={"new_quantity": 7, "reason": "MANUAL_ADJUSTMENT", "note": "monthly count"},
            headers=admin_headers,
        )
        assert resp.status_code == 200
        assert resp.json["previous_quantity"] == 10.0
        assert resp.json["new_quantity"] == 7.0
        assert resp.json["movement"]["direction"] == "EXIT"
        assert resp.json["movement"]["quantity"] == 3.0

    def test_delete_product_with_history_conflicts(self, client, admin_headers, product):
        resp = client.delete(f"/api/products/{product.id}", headers=admin_headers)
        assert resp.status_code == 409

    def test_low_stock_listing(self, client, admin_headers, make_product):
        make_product("Flea collar", stock=1, min_stock=3)
        resp = client.get("/api/products/low-stock", headers=admin_headers)
        assert resp.status_code == 200
        assert [p["name"] for p in resp.json["items"]] == ["Flea collar"]


class TestSalesApi:
    def test_sale_then_insufficient_stock(self, client, admin_headers, product):
        resp = client.post(
            "/api/sales",
            json={"payment_type": "CASH", "lines": [{"product_id": product.id, "quantity": 10}]},
            headers=admin_headers,
        )
        assert resp.status_code == 201
        assert resp.json["sale"]["sale_number"] == "000001"

        resp = client.post(
            "/api/sales",
            json={"payment_type": "CASH", "lines": [{"product_id": product.id, "quantity": 1}]},
            headers=admin_headers,
        )
        assert resp.status_code == 409
        assert resp.json["kind"] == "insufficient_stock"
        assert resp.json["details"]["available"] == 0.0
        assert resp.json["details"]["requested"] == 1.0

    def test_cancel_twice(self, client, admin_headers, product):
        sale = client.post(
            "/api/sales",
            json={"payment_type": "PIX", "lines": [{"product_id": product.id, "quantity": 2}]},
            headers=admin_headers,
        ).json["sale"]

        first = client.post(f"/api/sales/{sale['id']}/cancel", json={"reason": "customer request"}, headers=admin_headers)
        assert first.status_code == 200
        assert first.json["sale"]["status"] == "CANCELLED"
        assert "CANCELLED: customer request" in first.json["sale"]["notes"]

        second = client.post(f"/api/sales/{sale['id']}/cancel", headers=admin_headers)
        assert second.status_code == 409
        assert second.json["kind"] == "already_cancelled"

        stock = client.get(f"/api/products/{product.id}", headers=admin_headers).json["product"]["stock_quantity"]
        assert stock == 10.0

    def test_unknown_sale(self, client, admin_headers):
        resp = client.get("/api/sales/999999", headers=admin_headers)
        assert resp.status_code == 404
        assert resp.json["kind"] == "not_found"

    def test_report_and_dashboard_stats(self, client, admin_headers, product):
        client.post(
            "/api/sales",
            json={"payment_type": "CARD", "lines": [{"product_id": product.id, "quantity": 2}]},
            headers=admin_headers,
        )

        report = client.get("/api/sales/report", headers=admin_headers).json
        assert report["sale_count"] == 1
        assert report["net_total_cents"] == 5000
        assert report["by_payment_type"]["CARD"]["count"] == 1
        assert report["top_products"][0]["product_id"] == product.id

        stats = client.get("/api/sales/dashboard-stats", headers=admin_headers).json
        assert stats["today"]["sale_count"] == 1
        assert stats["today"]["net_total_cents"] == 5000

    def test_bad_date_filter(self, client, admin_headers):
        resp = client.get("/api/sales?from=yesterday", headers=admin_headers)
        assert resp.status_code == 400


class TestPurchasesApi:
    def test_create_confirm_flow(self, client, admin_headers, supplier, product):
        resp = client.post(
            "/api/purchases",
            json={
                "supplier_id": supplier.id,
                "invoice_number": "NF-77",
                "lines": [{"product_id": product.id, "quantity": 6, "unit_cost_cents": 1650}],
            },
            headers=admin_headers,
        )
        assert resp.status_code == 201
        purchase = resp.json["purchase"]
        assert purchase["status"] == "PENDING"
        assert purchase["total_cents"] == 6 * 1650

        confirmed = client.post(f"/api/purchases/{purchase['id']}/confirm", headers=admin_headers)
        assert confirmed.status_code == 200
        assert confirmed.json["purchase"]["status"] == "CONFIRMED"

        again = client.post(f"/api/purchases/{purchase['id']}/confirm", headers=admin_headers)
        assert again.status_code == 409
        assert again.json["kind"] == "invalid_state"

        product_json = client.get(f"/api/products/{product.id}", headers=admin_headers).json["product"]
        assert product_json["stock_quantity"] == 16.0
        assert product_json["cost_cents"] == 1650

        report = client.get("/api/purchases/report", headers=admin_headers).json
        assert report["confirmed_count"] == 1

    def test_supplier_report(self, client, admin_headers, supplier, product):
        created = client.post(
            "/api/purchases",
            json={
                "supplier_id": supplier.id,
                "lines": [{"product_id": product.id, "quantity": 4, "unit_cost_cents": 1500}],
            },
            headers=admin_headers,
        ).json["purchase"]
        client.post(f"/api/purchases/{created['id']}/confirm", headers=admin_headers)
        client.post("/api/suppliers", json={"name": "Idle supplier"}, headers=admin_headers)

        resp = client.get("/api/suppliers/report", headers=admin_headers)
        assert resp.status_code == 200
        report = resp.json
        assert report["active_suppliers"] == 2
        assert report["suppliers_with_products"] == 1
        assert report["confirmed_purchase_count"] == 1
        assert report["confirmed_purchase_total_cents"] == 6000
        assert [s["supplier_id"] for s in report["top_suppliers"]] == [supplier.id]
        assert report["by_category"] == [{
            "category_id": product.category_id,
            "category_name": "Dog food",
            "suppliers": ["Pet Distribuidora"],
            "supplier_count": 1,
        }]

        bad = client.get("/api/suppliers/report?from=not-a-date", headers=admin_headers)
        assert bad.status_code == 400


class TestStockApi:
    def test_manual_movement_and_reconcile(self, client, admin_headers, clerk_headers, product):
        resp = client.post(
            "/api/stock/movements",
            json={"product_id": product.id, "direction": "EXIT", "quantity": 2, "note": "damaged bag"},
            headers=clerk_headers,
        )
        assert resp.status_code == 201
        movement_id = resp.json["movement"]["id"]

        detail = client.get(f"/api/stock/movements/{movement_id}", headers=clerk_headers)
        assert detail.json["movement"]["note"] == "damaged bag"

        assert client.post("/api/stock/reconcile", headers=clerk_headers).status_code == 403
        resp = client.post("/api/stock/reconcile", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json["consistent"] is True

    def test_inventory_and_report(self, client, admin_headers, product):
        inventory = client.get("/api/stock/inventory", headers=admin_headers).json
        assert inventory["count"] == 1
        assert inventory["items"][0]["total_quantity"] == 10.0

        report = client.get("/api/stock/report", headers=admin_headers).json
        assert report["movements"]["by_reason"]["INITIAL_STOCK"]["quantity"] == 10.0
        assert report["stock_value_cents"] == 15000


class TestCustomersApi:
    def test_adjust_debt_clamp(self, client, admin_headers, customer):
        client.post(
            f"/api/customers/{customer.id}/adjust-debt",
            json={"amount_cents": 50, "operation": "ADD"},
            headers=admin_headers,
        )
        resp = client.post(
            f"/api/customers/{customer.id}/adjust-debt",
            json={"amount_cents": 80, "operation": "SUBTRACT", "note": "paid"},
            headers=admin_headers,
        )
        assert resp.status_code == 200
        assert resp.json["new_debt_cents"] == 0
        assert resp.json["discarded_cents"] == 30
        assert resp.json["operation"] == "SUBTRACT"
        assert resp.json["amount_cents"] == 80
        assert resp.json["note"] == "paid"

    def test_debt_not_writable_through_update(self, client, admin_headers, customer):
        resp = client.put(f"/api/customers/{customer.id}", json={"debt_cents": 0}, headers=admin_headers)
        assert resp.status_code == 400

    def test_credit_sale_shows_in_report(self, client, admin_headers, customer, product):
        client.post(
            "/api/sales",
            json={
                "payment_type": "CREDIT_TERM",
                "customer_id": customer.id,
                "lines": [{"product_id": product.id, "quantity": 1}],
            },
            headers=admin_headers,
        )
        report = client.get("/api/customers/report", headers=admin_headers).json
        assert report["receivable_cents"] == 2500
        assert report["top_debtors"][0]["id"] == customer.id


class TestFinanceApi:
    def test_transactions_and_dashboard(self, client, admin_headers):
        category = client.post(
            "/api/categories", json={"name": "Consultations", "kind": "INCOME"}, headers=admin_headers
        ).json["category"]

        resp = client.post(
            "/api/transactions",
            json={
                "category_id": category["id"],
                "kind": "INCOME",
                "description": "Vet consultation",
                "amount_cents": 15000,
                "occurred_on": "2026-10-01",
                "tags": [" vet ", ""],
            },
            headers=admin_headers,
        )
        assert resp.status_code == 201
        assert resp.json["transaction"]["tags"] == ["vet"]

        dashboard = client.get("/api/dashboard", headers=admin_headers).json
        assert dashboard["balance"]["balance_cents"] == 15000

        summary = client.get("/api/dashboard/summary?period=decade", headers=admin_headers)
        assert summary.status_code == 400

    def test_zero_amount_rejected(self, client, admin_headers):
        category = client.post(
            "/api/categories", json={"name": "Supplies", "kind": "EXPENSE"}, headers=admin_headers
        ).json["category"]
        resp = client.post(
            "/api/transactions",
            json={
                "category_id": category["id"],
                "kind": "EXPENSE",
                "description": "Nothing",
                "amount_cents": 0,
                "occurred_on": "2026-10-01",
            },
            headers=admin_headers,
        )
        assert resp.status_code == 400

    def test_categories_are_private(self, client, admin_headers, clerk_headers):
        category = client.post(
            "/api/categories", json={"name": "Private"}, headers=admin_headers
        ).json["category"]
        resp = client.get(f"/api/categories/{category['id']}", headers=clerk_headers)
        assert resp.status_code == 404
