"""HTTP tests against the FastAPI app with an in-memory database."""
import pytest
from bson import ObjectId

from security import create_access_token


def order_body(product_doc, **overrides):
    body = {
        "customer_name": "Nadia Rahman",
        "customer_email": "nadia@example.com",
        "customer_phone": "01711111111",
        "product": str(product_doc["_id"]),
        "quantity": 2,
        "shipping_address": "House 4, Road 2, Dhanmondi",
        "delivery_zone": "outside",
    }
    body.update(overrides)
    return body


@pytest.fixture
def placed(client, auth, customer, product):
    _, token = customer
    resp = client.post("/api/orders", json=order_body(product), headers=auth(token))
    assert resp.status_code == 201
    return resp.json()["order"]


def test_root_and_health(client):
    assert client.get("/").json() == {"message": "Rong Chapa backend is running"}
    assert client.get("/health").json()["status"] == "ok"


class TestAuth:
    def test_register_then_login_then_me(self, client, auth):
        resp = client.post("/api/auth/register", json={
            "name": "Reader", "email": "reader@example.com", "password": "reader-pass",
        })
        assert resp.status_code == 201

        resp = client.post("/api/auth/login", json={"email": "reader@example.com", "password": "reader-pass"})
        assert resp.status_code == 200
        token = resp.json()["token"]

        me = client.get("/api/auth/me", headers=auth(token))
        assert me.json()["user"]["email"] == "reader@example.com"

    def test_wrong_password(self, client, customer):
        user, _ = customer
        resp = client.post("/api/auth/login", json={"email": user["email"], "password": "not-it"})
        assert resp.status_code == 401
        assert resp.json()["error_type"] == "Unauthorized"

    def test_duplicate_register(self, client, customer):
        user, _ = customer
        resp = client.post("/api/auth/register", json={"name": "X", "email": user["email"], "password": "abcdef"})
        assert resp.status_code == 409

    def test_update_me(self, client, auth, customer):
        _, token = customer
        resp = client.put("/api/auth/me", json={"organization": "AUST"}, headers=auth(token))
        assert resp.status_code == 200
        assert resp.json()["user"]["organization"] == "AUST"
        assert resp.json()["token"]

        assert client.put("/api/auth/me", json={}, headers=auth(token)).status_code == 422

    def test_me_requires_token(self, client):
        assert client.get("/api/auth/me").status_code == 401

    def test_garbage_token(self, client, auth):
        resp = client.get("/api/auth/me", headers=auth("not-a-jwt"))
        assert resp.status_code == 401
        assert resp.json()["detail"] == "Invalid or expired token"

    def test_signed_token_with_malformed_subject(self, client, auth, settings):
        token = create_access_token({"sub": "not-an-id", "role": "customer"}, settings)
        resp = client.get("/api/orders/mine", headers=auth(token))
        assert resp.status_code == 401
        assert resp.json()["error_type"] == "Unauthorized"

    def test_garbage_token_on_guest_route(self, client, auth, product):
        resp = client.post("/api/orders", json=order_body(product), headers=auth("not-a-jwt"))
        assert resp.status_code == 401


class TestPermissions:
    @pytest.mark.parametrize("method,path", [
        ("get", "/api/orders"),
        ("get", "/api/print-orders"),
        ("get", "/api/admin/dashboard"),
        ("get", "/api/admin/customers"),
        ("get", "/api/products/admin/all"),
    ])
    def test_customers_are_forbidden(self, client, auth, customer, method, path):
        _, token = customer
        assert getattr(client, method)(path, headers=auth(token)).status_code == 403

    @pytest.mark.parametrize("path", ["/api/orders", "/api/admin/dashboard"])
    def test_anonymous_is_unauthorized(self, client, path):
        assert client.get(path).status_code == 401


class TestOrderFlow:
    def test_order_billing_amount(self, placed):
        assert placed["billing"]["amount"] == 310.0
        assert placed["delivery_charge"] == 110.0
        assert placed["billing"]["number"].startswith("INV-")

    def test_missing_address_is_structured_422(self, client, product):
        body = order_body(product)
        del body["shipping_address"]
        resp = client.post("/api/orders", json=body)
        assert resp.status_code == 422
        data = resp.json()
        assert data["error_type"] == "ValidationFailed"
        assert ["body", "shipping_address"] in [e["loc"] for e in data["errors"]]

    def test_bad_product_id_is_422(self, client, auth, customer, product):
        _, token = customer
        resp = client.post("/api/orders", json=order_body(product, product="nope"), headers=auth(token))
        assert resp.status_code == 422
        assert resp.json()["errors"]

    def test_unknown_product_is_404(self, client, auth, customer, product):
        _, token = customer
        resp = client.post("/api/orders", json=order_body(product, product=str(ObjectId())), headers=auth(token))
        assert resp.status_code == 404

    def test_guest_order_for_unknown_product_creates_no_account(self, client, product, db):
        body = order_body(product, product=str(ObjectId()), account_password="guest-pass")
        resp = client.post("/api/orders", json=body)
        assert resp.status_code == 404
        assert resp.json()["error_type"] == "NotFound"
        assert db["user"].count_documents({"email": "nadia@example.com"}) == 0
        assert db["order"].count_documents({}) == 0

    def test_guest_order_returns_account(self, client, auth, product):
        resp = client.post("/api/orders", json=order_body(product, account_password="guest-pass"))
        assert resp.status_code == 201
        account = resp.json()["account"]
        mine = client.get("/api/orders/mine", headers=auth(account["token"]))
        assert len(mine.json()["orders"]) == 1

    def test_guest_with_taken_email_conflicts(self, client, customer, product):
        user, _ = customer
        body = order_body(product, customer_email=user["email"], account_password="guest-pass")
        assert client.post("/api/orders", json=body).status_code == 409

    def test_checkout(self, client, auth, customer, product, make_product):
        _, token = customer
        poster = make_product(name="Poster", slug="poster", base_price=50.0)
        resp = client.post("/api/orders/checkout", headers=auth(token), json={
            "customer_name": "Nadia Rahman",
            "shipping_address": "Mirpur 10",
            "delivery_zone": "dhaka",
            "items": [
                {"product": str(product["_id"]), "quantity": 1},
                {"product": str(poster["_id"]), "quantity": 3},
            ],
        })
        assert resp.status_code == 201
        data = resp.json()
        assert data["total"] == 310.0
        assert [o["delivery_charge"] for o in data["orders"]] == [60.0, 0.0]

    def test_empty_checkout_rejected(self, client, auth, customer):
        _, token = customer
        resp = client.post("/api/orders/checkout", headers=auth(token), json={
            "customer_name": "Nadia", "shipping_address": "Mirpur 10", "items": [],
        })
        assert resp.status_code == 422


class TestCancellationFlow:
    def test_request_review_and_repeat(self, client, auth, customer, admin, placed):
        _, token = customer
        _, admin_token = admin
        url = f"/api/orders/{placed['id']}/cancel-request"

        resp = client.post(url, json={"reason": "Ordered the wrong size"}, headers=auth(token))
        assert resp.status_code == 200
        assert resp.json()["order"]["cancel_request"]["status"] == "pending"

        again = client.post(url, json={"reason": "Ordered the wrong size"}, headers=auth(token))
        assert again.status_code == 409

        resp = client.patch(url, json={"action": "approve", "admin_note": "Refunded"}, headers=auth(admin_token))
        assert resp.status_code == 200
        assert resp.json()["message"] == "Order cancelled successfully."
        assert resp.json()["order"]["status"] == "cancelled"

        assert client.patch(url, json={"action": "decline"}, headers=auth(admin_token)).status_code == 409

    def test_short_reason_rejected(self, client, auth, customer, placed):
        _, token = customer
        resp = client.post(f"/api/orders/{placed['id']}/cancel-request", json={"reason": "   short   "},
                           headers=auth(token))
        assert resp.status_code == 422

    def test_other_customer_gets_404(self, client, auth, make_user, placed):
        _, other_token = make_user(email="other@example.com")
        resp = client.post(f"/api/orders/{placed['id']}/cancel-request",
                           json={"reason": "Ordered the wrong size"}, headers=auth(other_token))
        assert resp.status_code == 404

    def test_unknown_action(self, client, auth, admin, placed):
        _, admin_token = admin
        resp = client.patch(f"/api/orders/{placed['id']}/cancel-request", json={"action": "maybe"},
                            headers=auth(admin_token))
        assert resp.status_code == 422


class TestStaffOrderTools:
    def test_status_and_billing(self, client, auth, admin, placed):
        _, admin_token = admin
        resp = client.patch(f"/api/orders/{placed['id']}/status", json={"status": "processing"},
                            headers=auth(admin_token))
        assert resp.json()["order"]["status"] == "processing"

        resp = client.patch(f"/api/orders/{placed['id']}/billing", json={"amount": "275", "notes": "Discount"},
                            headers=auth(admin_token))
        assert resp.status_code == 200
        assert resp.json()["order"]["billing"]["amount"] == 275.0

    def test_unknown_status(self, client, auth, admin, placed):
        _, admin_token = admin
        resp = client.patch(f"/api/orders/{placed['id']}/status", json={"status": "shipped"},
                            headers=auth(admin_token))
        assert resp.status_code == 422

    def test_empty_billing_patch(self, client, auth, admin, placed):
        _, admin_token = admin
        resp = client.patch(f"/api/orders/{placed['id']}/billing", json={}, headers=auth(admin_token))
        assert resp.status_code == 422
        assert resp.json()["detail"] == "Please provide billing number, amount, or notes."

    def test_negative_billing_amount(self, client, auth, admin, placed):
        _, admin_token = admin
        resp = client.patch(f"/api/orders/{placed['id']}/billing", json={"amount": -5},
                            headers=auth(admin_token))
        assert resp.status_code == 422

    def test_invoice_pdf(self, client, auth, admin, placed):
        _, admin_token = admin
        resp = client.get(f"/api/orders/{placed['id']}/invoice", headers=auth(admin_token))
        assert resp.status_code == 200
        assert resp.headers["content-type"] == "application/pdf"
        number = placed["billing"]["number"]
        assert resp.headers["content-disposition"] == f'attachment; filename="invoice-{number}.pdf"'
        assert resp.content.startswith(b"%PDF")

    def test_invoice_unknown_order(self, client, auth, admin):
        _, admin_token = admin
        resp = client.get(f"/api/orders/{ObjectId()}/invoice", headers=auth(admin_token))
        assert resp.status_code == 404

    def test_lists(self, client, auth, admin, placed):
        _, admin_token = admin
        assert len(client.get("/api/orders", headers=auth(admin_token)).json()["orders"]) == 1
        assert len(client.get("/api/admin/orders", headers=auth(admin_token)).json()["orders"]) == 1

    def test_dashboard_and_customers(self, client, auth, admin, placed):
        _, admin_token = admin
        stats = client.get("/api/admin/dashboard", headers=auth(admin_token)).json()["stats"]
        assert stats["orders_count"] == 1
        assert stats["recent_orders"][0]["product"]["name"] == "Business Cards"

        directory = client.get("/api/admin/customers?limit=5", headers=auth(admin_token)).json()
        assert directory["total_customers"] == 1


class TestPrintOrders:
    body = {
        "description": "Lab report",
        "color_mode": "color",
        "sides": "double",
        "paper_size": "a4",
        "quantity": 3,
        "collection_time": "2024-05-02T15:30:00+06:00",
        "delivery_location": "AUST",
        "payment_transaction": "BKASH-1",
    }

    def test_requires_login(self, client):
        assert client.post("/api/print-orders", json=self.body).status_code == 401

    def test_create_and_invoice(self, client, auth, customer, admin):
        _, token = customer
        _, admin_token = admin
        resp = client.post("/api/print-orders", json=self.body, headers=auth(token))
        assert resp.status_code == 201
        created = resp.json()["print_order"]
        assert created["security_amount"] == 20.0

        mine = client.get("/api/print-orders/mine", headers=auth(token)).json()["print_orders"]
        assert [p["id"] for p in mine] == [created["id"]]

        resp = client.patch(f"/api/print-orders/{created['id']}/billing", json={"number": "PO-1"},
                            headers=auth(admin_token))
        assert resp.json()["print_order"]["billing"]["number"] == "PO-1"

        resp = client.get(f"/api/print-orders/{created['id']}/invoice", headers=auth(admin_token))
        assert resp.status_code == 200
        assert resp.headers["content-disposition"] == 'attachment; filename="invoice-PO-1.pdf"'

    def test_other_location_needs_address(self, client, auth, customer):
        _, token = customer
        resp = client.post("/api/print-orders", json={**self.body, "delivery_location": "OTHER"},
                           headers=auth(token))
        assert resp.status_code == 422

    def test_estimate(self, client):
        resp = client.get("/api/print-orders/estimate",
                          params={"color_mode": "black_white", "sides": "single", "quantity": 10,
                                  "delivery_location": "OTHER"})
        assert resp.json() == {"rate": 3.0, "quantity": 10, "estimate": 90.0}

    def test_estimate_bad_quantity(self, client):
        resp = client.get("/api/print-orders/estimate",
                          params={"color_mode": "color", "sides": "single", "quantity": 0})
        assert resp.status_code == 422


class TestCatalogRoutes:
    def test_admin_creates_and_public_lists(self, client, auth, admin):
        _, admin_token = admin
        resp = client.post("/api/products/categories", json={"name": "Cards", "slug": "cards"},
                           headers=auth(admin_token))
        assert resp.status_code == 201
        category_id = resp.json()["category"]["id"]

        resp = client.post("/api/products", headers=auth(admin_token), json={
            "name": "Flyer", "slug": "flyer", "base_price": 5, "categories": [category_id],
        })
        assert resp.status_code == 201

        products = client.get("/api/products").json()["products"]
        assert [p["slug"] for p in products] == ["flyer"]
        assert products[0]["categories"][0]["name"] == "Cards"
        assert client.get("/api/products/categories").json()["categories"][0]["slug"] == "cards"

    def test_customer_cannot_create(self, client, auth, customer):
        _, token = customer
        resp = client.post("/api/products", headers=auth(token), json={
            "name": "Flyer", "slug": "flyer", "base_price": 5,
        })
        assert resp.status_code == 403
