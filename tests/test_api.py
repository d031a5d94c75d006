from datetime import timedelta

from fastapi import FastAPI
from pymongo.errors import PyMongoError

from conftest import ADMIN_EMAIL, auth_header, login, register
from errors import InternalError, ValidationError
from security import TokenService
from stores import SEED_PRODUCTS


def checkout(client, token, items, customer=None):
    body = {"items": items, "customer": customer or {"name": "Sara", "phone": "+971500000001", "address": "JLT"}}
    return client.post("/api/checkout", json=body, headers=auth_header(token))


ONE_ITEM = [{"productId": "p1", "name": "Oud Perfume 50ml", "price": 220.0, "quantity": 1}]


def test_root(client):
    res = client.get("/")
    assert res.status_code == 200
    assert res.json()["status"] == "ok"


# --------------------- Auth ---------------------

def test_register_and_duplicate(client):
    res = register(client)
    assert res.status_code == 201
    assert res.json() == {"success": True, "message": "User registered successfully"}

    res = register(client)
    assert res.status_code == 400
    assert res.json() == {"success": False, "message": "Email already registered"}


def test_register_missing_field_is_400(client):
    res = client.post("/api/auth/register", json={"name": "Sara", "email": "sara@example.com", "password": "x"})
    assert res.status_code == 400
    body = res.json()
    assert body["success"] is False
    assert "phone" in body["message"]


def test_register_blank_field_is_400(client):
    res = register(client, name="")
    assert res.status_code == 400


def test_login_returns_token_and_user_without_hash(client):
    register(client)
    res = client.post("/api/auth/login", json={"email": "sara@example.com", "password": "secret123"})
    assert res.status_code == 200
    body = res.json()
    assert body["success"] is True
    assert body["token"]
    assert body["user"]["email"] == "sara@example.com"
    assert body["user"]["role"] == "customer"
    assert "passwordHash" not in body["user"]
    assert "password_hash" not in body["user"]


def test_login_failures_look_the_same(client):
    register(client)
    wrong_password = client.post("/api/auth/login", json={"email": "sara@example.com", "password": "nope"})
    unknown_email = client.post("/api/auth/login", json={"email": "ghost@example.com", "password": "nope"})
    assert wrong_password.status_code == unknown_email.status_code == 400
    assert wrong_password.json() == unknown_email.json()


def test_me(client, customer_token):
    res = client.get("/api/auth/me", headers=auth_header(customer_token))
    assert res.status_code == 200
    body = res.json()
    assert body["name"] == "Sara"
    assert body["phone"] == "+971500000001"
    assert "passwordHash" not in body


def test_me_requires_token(client):
    assert client.get("/api/auth/me").status_code == 401
    assert client.get("/api/auth/me", headers={"Authorization": "Token abc"}).status_code == 401
    assert client.get("/api/auth/me", headers={"Authorization": "Bearer"}).status_code == 401
    res = client.get("/api/auth/me", headers=auth_header("not.a.token"))
    assert res.status_code == 401
    assert res.json()["success"] is False


def test_me_rejects_expired_token(client, customer_token):
    user_id = client.get("/api/auth/me", headers=auth_header(customer_token)).json()["id"]
    expired = TokenService("test-secret", lifetime=timedelta(seconds=-5)).issue(user_id, "sara@example.com", "customer")
    res = client.get("/api/auth/me", headers=auth_header(expired))
    assert res.status_code == 401
    assert res.json()["message"] == "Token has expired"


def test_me_for_deleted_user_is_404(client, customer_token):
    client.app.state.database["user"].delete_many({"email": "sara@example.com"})
    assert client.get("/api/auth/me", headers=auth_header(customer_token)).status_code == 404


# --------------------- Products ---------------------

def test_seed_and_list_products(client):
    res = client.post("/api/products/seed")
    assert res.status_code == 200
    body = res.json()
    assert body["success"] is True
    assert len(body["data"]) == len(SEED_PRODUCTS)

    client.post("/api/products/seed")
    products = client.get("/api/products").json()
    assert [p["name"] for p in products] == [p["name"] for p in SEED_PRODUCTS]
    assert all(p["currency"] == "AED" and "id" in p for p in products)


# --------------------- Checkout ---------------------

def test_checkout_requires_token(client):
    res = client.post("/api/checkout", json={"items": ONE_ITEM, "customer": {}})
    assert res.status_code == 401


def test_checkout_empty_cart(client, customer_token):
    res = checkout(client, customer_token, [])
    assert res.status_code == 400
    assert res.json()["message"] == "Cart is empty"
    assert client.get("/orders").json() == []


def test_checkout_creates_order(client, customer_token):
    res = checkout(client, customer_token, ONE_ITEM)
    assert res.status_code == 201
    body = res.json()
    assert body["success"] is True
    assert body["orderId"]

    orders = client.get("/orders").json()
    assert len(orders) == 1
    assert orders[0]["id"] == body["orderId"]
    assert orders[0]["status"] == "PENDING_PAYMENT"
    assert orders[0]["createdAt"]
    assert orders[0]["ownerUserId"]
    assert orders[0]["customer"]["address"] == "JLT"


# --------------------- Legacy orders ---------------------

def test_place_and_list_orders(client):
    for name in ("Amal", "Bilal", "Chen"):
        res = client.post("/orders", json={
            "customerName": name,
            "phone": "+97150",
            "address": "Deira",
            "items": [{"name": "Dates", "quantity": 2, "price": 30}],
        })
        assert res.status_code == 201
        assert res.json()["total"] == 60

    orders = client.get("/orders").json()
    assert [o["customer"]["name"] for o in orders] == ["Chen", "Bilal", "Amal"]
    assert all(o["ownerUserId"] is None for o in orders)


def test_place_order_without_items_is_rejected(client):
    res = client.post("/orders", json={"customerName": "Amal", "phone": "1", "address": "Deira"})
    assert res.status_code == 400
    assert res.json()["message"] == "Cart is empty"


# --------------------- Admin ---------------------

def test_admin_orders_without_token(client):
    assert client.get("/api/orders").status_code == 401


def test_admin_orders_forbidden_for_customer(client, customer_token):
    res = client.get("/api/orders", headers=auth_header(customer_token))
    assert res.status_code == 403
    assert res.json()["success"] is False


def test_admin_orders_resolves_owner(client, customer_token, admin_token):
    checkout(client, customer_token, ONE_ITEM)
    client.post("/orders", json={"customerName": "Guest", "items": ONE_ITEM})

    res = client.get("/api/orders", headers=auth_header(admin_token))
    assert res.status_code == 200
    orders = res.json()
    assert len(orders) == 2
    assert orders[0]["owner"] is None
    assert orders[1]["owner"] == {"name": "Sara", "email": "sara@example.com", "phone": "+971500000001"}


def test_admin_bootstrap_account(client):
    token = login(client, ADMIN_EMAIL, "admin-pass")
    res = client.get("/api/auth/me", headers=auth_header(token))
    assert res.json()["role"] == "admin"
    assert res.json()["name"] == "Store Admin"


# --------------------- Errors ---------------------

class BrokenOrders:
    def list_all(self):
        raise PyMongoError("connection reset")


def test_database_failure_is_500_without_details(client):
    client.app.state.orders = BrokenOrders()
    res = client.get("/orders")
    assert res.status_code == 500
    assert res.json() == {"success": False, "message": "Database error"}


def test_unknown_route_has_message(client):
    res = client.get("/nope")
    assert res.status_code == 404
    assert res.json()["success"] is False


def test_created_at_matches_between_create_and_list(client):
    created = client.post("/orders", json={"customerName": "Amal", "items": ONE_ITEM}).json()
    listed = client.get("/orders").json()[0]
    assert listed["id"] == created["id"]
    assert listed["createdAt"] == created["createdAt"]
    assert created["createdAt"].endswith("Z")


def test_error_handlers_use_error_classes(client):
    res = client.post("/api/auth/login", json={})
    assert res.status_code == ValidationError.status_code
    assert res.json()["message"].startswith("Missing or invalid fields")

    client.app.state.orders = BrokenOrders()
    res = client.get("/orders")
    assert res.status_code == InternalError.status_code


def test_module_level_app_builds_from_environment(monkeypatch):
    import main

    monkeypatch.setenv("JWT_SECRET", "env-secret")
    monkeypatch.setattr(main, "_app", None)
    app = main.app
    assert isinstance(app, FastAPI)
    assert main.app is app
