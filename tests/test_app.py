"""Tests for the public JSON API."""

import pytest

from app import create_app
from database import RecordStore


def _json(response):
    return response.get_json()


def test_index_reports_seeded_catalogue(client):
    body = _json(client.get("/"))
    assert body["success"] is True
    assert body["data"]["products"] == 6


def test_register_and_login_flow(app, client):
    response = client.post(
        "/api/auth/register",
        json={"name": "Ama Mensah", "email": "Ama@Example.com", "password": "s3cure-pass"},
    )
    assert response.status_code == 201
    body = _json(response)
    assert body["success"] is True
    assert body["data"]["email"] == "ama@example.com"
    assert body["data"]["role"] == "user"
    assert "password" not in body["data"] and "passwordHash" not in body["data"]

    response = client.post("/api/auth/login", json={"email": "ama@example.com", "password": "s3cure-pass"})
    assert response.status_code == 200
    body = _json(response)
    token = body["data"]["token"]
    assert body["message"] == "Login successful"
    assert app.config["AUTH_COOKIE_NAME"] in response.headers.get("Set-Cookie", "")

    me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert _json(me)["data"]["email"] == "ama@example.com"


def test_cookie_session_is_accepted(client):
    client.post(
        "/api/auth/register",
        json={"name": "Ama Mensah", "email": "ama@example.com", "password": "s3cure-pass"},
    )
    client.post("/api/auth/login", json={"email": "ama@example.com", "password": "s3cure-pass"})
    assert client.get("/api/auth/me").status_code == 200

    client.post("/api/auth/logout")
    assert client.get("/api/auth/me").status_code == 401


def test_duplicate_registration_is_400(client):
    payload = {"name": "Ama Mensah", "email": "ama@example.com", "password": "s3cure-pass"}
    assert client.post("/api/auth/register", json=payload).status_code == 201
    payload["email"] = "AMA@example.com"
    response = client.post("/api/auth/register", json=payload)
    assert response.status_code == 400
    assert _json(response)["success"] is False


@pytest.mark.parametrize("body", [{"email": "ama@example.com"}, {"password": "x"}, []])
def test_login_requires_fields(client, body):
    response = client.post("/api/auth/login", json=body)
    assert response.status_code == 400
    assert _json(response)["success"] is False


def test_login_failures_are_indistinguishable(client):
    wrong_password = client.post("/api/auth/login", json={"email": "admin@ttech.com", "password": "nope-nope1"})
    unknown_email = client.post("/api/auth/login", json={"email": "ghost@ttech.com", "password": "nope-nope1"})
    assert wrong_password.status_code == unknown_email.status_code == 401
    assert _json(wrong_password) == _json(unknown_email) == {
        "success": False,
        "error": "Invalid email or password",
    }


def test_me_without_session_is_401(client):
    response = client.get("/api/auth/me", headers={"Authorization": "Bearer garbage token"})
    assert response.status_code == 401


def test_product_listing_and_detail(client):
    products = _json(client.get("/api/products"))["data"]
    assert len(products) == 6
    phones = _json(client.get("/api/products?category=Phones"))["data"]
    assert {p["name"] for p in phones} == {"iPhone 16", "Samsung Galaxy S8"}

    detail = _json(client.get(f"/api/products/{phones[0]['id']}"))["data"]
    assert detail == phones[0]
    assert detail["currency"] == "GHS"

    assert client.get("/api/products/missing").status_code == 404
    assert "Phones" in _json(client.get("/api/categories"))["data"]


def test_cart_requires_login(client):
    assert client.get("/api/cart").status_code == 401
    assert client.post("/api/cart", json={"productId": "x"}).status_code == 401


def test_cart_add_replace_remove(client, store, user_headers):
    product = store.list_products(category="Speakers")[0]

    response = client.post("/api/cart", json={"productId": product.id, "quantity": 2}, headers=user_headers)
    assert response.status_code == 201
    client.post("/api/cart", json={"productId": product.id, "quantity": 3}, headers=user_headers)

    cart = _json(client.get("/api/cart", headers=user_headers))["data"]
    assert len(cart["items"]) == 1
    assert cart["items"][0]["quantity"] == 3
    assert cart["total"] == "540.00"

    assert client.delete(f"/api/cart/{product.id}", headers=user_headers).status_code == 200
    assert client.delete(f"/api/cart/{product.id}", headers=user_headers).status_code == 404


@pytest.mark.parametrize("quantity", [0, -2, 1.5, "two", True, 999])
def test_cart_rejects_bad_quantities(client, store, user_headers, quantity):
    product = store.list_products(category="Speakers")[0]
    response = client.post("/api/cart", json={"productId": product.id, "quantity": quantity}, headers=user_headers)
    assert response.status_code == 400


def test_cart_unknown_product_is_404(client, user_headers):
    response = client.post("/api/cart", json={"productId": "missing"}, headers=user_headers)
    assert response.status_code == 404


def test_checkout_and_cancel(client, store, user_headers):
    product = store.list_products(category="Laptops")[0]
    client.post("/api/cart", json={"productId": product.id, "quantity": 2}, headers=user_headers)

    response = client.post("/api/orders", headers=user_headers)
    assert response.status_code == 201
    order = _json(response)["data"]
    assert order["status"] == "pending"
    assert order["total"] == "8400.00"
    assert store.get_product(product.id).count_in_stock == 6
    assert _json(client.get("/api/cart", headers=user_headers))["data"]["items"] == []

    history = _json(client.get("/api/orders", headers=user_headers))["data"]
    assert [o["id"] for o in history] == [order["id"]]
    assert client.get(f"/api/orders/{order['id']}", headers=user_headers).status_code == 200

    response = client.post(f"/api/orders/{order['id']}/cancel", headers=user_headers)
    assert response.status_code == 200
    assert _json(response)["data"]["status"] == "cancelled"
    assert store.get_product(product.id).count_in_stock == 8

    assert client.post(f"/api/orders/{order['id']}/cancel", headers=user_headers).status_code == 400


def test_checkout_empty_cart_is_400(client, user_headers):
    assert client.post("/api/orders", headers=user_headers).status_code == 400


def test_other_users_orders_are_hidden(client, store, user_headers, sign_in):
    product = store.list_products(category="Laptops")[0]
    client.post("/api/cart", json={"productId": product.id, "quantity": 1}, headers=user_headers)
    order = _json(client.post("/api/orders", headers=user_headers))["data"]

    client.post(
        "/api/auth/register",
        json={"name": "Yaw Asante", "email": "yaw@example.com", "password": "an0ther-pass"},
    )
    other = sign_in("yaw@example.com", "an0ther-pass")
    assert client.get(f"/api/orders/{order['id']}", headers=other).status_code == 404
    assert client.post(f"/api/orders/{order['id']}/cancel", headers=other).status_code == 404


def test_non_json_body_is_400(client):
    response = client.post("/api/auth/login", data="email=a", content_type="application/x-www-form-urlencoded")
    assert response.status_code == 400


def test_unknown_route_uses_envelope(client):
    response = client.get("/api/nothing-here")
    assert response.status_code == 404
    assert _json(response)["success"] is False


def test_unexpected_errors_are_generic_500(app, client, monkeypatch):
    def explode(*args, **kwargs):
        raise RuntimeError("database exploded with secret detail")

    monkeypatch.setattr(app.extensions["store"], "list_products", explode)
    response = client.get("/api/products")
    assert response.status_code == 500
    assert _json(response) == {"success": False, "error": "Internal server error"}


def test_store_is_injected_not_shared():
    first = create_app(RecordStore(), {"TESTING": True, "BCRYPT_ROUNDS": 4, "SEED_DATA": False})
    second = create_app(RecordStore(), {"TESTING": True, "BCRYPT_ROUNDS": 4})
    assert first.extensions["store"] is not second.extensions["store"]
    assert len(first.extensions["store"].products) == 0
    assert len(second.extensions["store"].products) == 6


def test_cleanup_sessions_command(app, store, clock):
    sessions = app.extensions["sessions"]
    sessions.create("user-1")
    clock.advance(days=8)
    result = app.test_cli_runner().invoke(args=["cleanup-sessions"])
    assert "Removed 1 expired session(s)" in result.output
    assert sessions.active_count() == 0


def test_no_signed_flask_session_is_configured(app, client, sign_in):
    assert app.config["SECRET_KEY"] is None
    client.post("/api/auth/login", json={"email": "admin@ttech.com", "password": "admin123"})
    assert client.get_cookie("session") is None
    assert client.get("/api/auth/me", headers=sign_in("admin@ttech.com", "admin123")).status_code == 200
