"""Integration tests for the HTTP endpoints and the response envelope."""
import asyncio
import time

import httpx

from models import Product
from services.cart_service import CartService
from tests.factories import auth_headers

API = "/api/v1"


def _stock(db, product_id):
    db.expire_all()
    return db.get(Product, product_id).stock


class TestEnvelope:

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}

    def test_success_envelope(self, client, category):
        response = client.get(f"{API}/categories")

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["status_code"] == 200
        assert body["errors"] == []
        assert body["message"] == "Categories fetched successfully"
        assert [c["name"] for c in body["data"]] == ["Electronics"]
        assert "owner_id" not in body["data"][0]

    def test_not_found_envelope(self, client):
        response = client.get(f"{API}/products/12345")

        assert response.status_code == 404
        assert response.json() == {
            "success": False,
            "status_code": 404,
            "data": None,
            "message": "Product not found",
            "errors": [],
        }

    def test_validation_errors_are_listed(self, client, buyer):
        response = client.post(f"{API}/cart", json={"quantity": 0}, headers=auth_headers(buyer))

        assert response.status_code == 400
        body = response.json()
        assert body["success"] is False
        fields = {error["field"] for error in body["errors"]}
        assert {"product_id", "quantity"} <= fields


class TestAccessControl:

    def test_cart_requires_token(self, client):
        response = client.get(f"{API}/cart")
        assert response.status_code == 401
        assert response.json()["success"] is False

    def test_unknown_token(self, client):
        response = client.get(f"{API}/orders", headers={"Authorization": "Bearer not-a-token"})
        assert response.status_code == 401

    def test_malformed_header(self, client):
        response = client.get(f"{API}/orders", headers={"Authorization": "Token abc"})
        assert response.status_code == 401
        assert response.json()["message"] == "Invalid authorization header format"


class TestUsers:

    def test_register_login_logout(self, client, db):
        response = client.post(f"{API}/users/register", json={
            "username": "Carol",
            "email": "carol@example.com",
            "full_name": "Carol Buyer",
            "phone_number": "9811111111",
            "password": "carolpass",
            "city": "Pokhara",
        })
        assert response.status_code == 201
        user = response.json()["data"]
        assert user["username"] == "carol"
        assert user["city"] == "Pokhara"
        assert "password_hash" not in user
        assert "access_token" not in user

        response = client.post(f"{API}/users/login", json={"username": "carol", "password": "carolpass"})
        assert response.status_code == 200
        token = response.json()["data"]["access_token"]
        headers = {"Authorization": f"Bearer {token}"}

        assert client.get(f"{API}/cart", headers=headers).status_code == 200

        assert client.post(f"{API}/users/logout", headers=headers).status_code == 200
        assert client.get(f"{API}/cart", headers=headers).status_code == 401

    def test_duplicate_registration(self, client, buyer):
        response = client.post(f"{API}/users/register", json={
            "username": "buyer",
            "email": "new@example.com",
            "full_name": "Someone",
            "phone_number": "9811111111",
            "password": "secret123",
        })
        assert response.status_code == 409

    def test_bad_credentials(self, client, buyer):
        response = client.post(f"{API}/users/login", json={"username": "buyer", "password": "wrong"})
        assert response.status_code == 401


class TestCatalogEndpoints:

    def test_create_and_patch_product(self, client, seller, category):
        response = client.post(f"{API}/products", headers=auth_headers(seller), json={
            "name": "Camera",
            "description": "Mirrorless camera",
            "product_image": "https://images.example.com/camera.jpg",
            "price": 450.0,
            "stock": 4,
            "category_id": category.id,
        })
        assert response.status_code == 201
        product = response.json()["data"]
        assert product["owner_id"] == seller.id
        assert product["category"] == {"id": category.id, "name": "Electronics"}

        response = client.patch(
            f"{API}/products/{product['id']}",
            headers=auth_headers(seller),
            json={"price": 400.0}
        )
        assert response.status_code == 200
        assert response.json()["data"]["price"] == 400.0
        assert response.json()["data"]["name"] == "Camera"

    def test_negative_price_rejected(self, client, seller, category):
        response = client.post(f"{API}/products", headers=auth_headers(seller), json={
            "name": "Camera",
            "description": "Mirrorless camera",
            "product_image": "https://images.example.com/camera.jpg",
            "price": -1,
            "stock": 4,
            "category_id": category.id,
        })
        assert response.status_code == 400

    def test_non_owner_patch_is_forbidden(self, client, buyer, product_a):
        response = client.patch(
            f"{API}/products/{product_a.id}",
            headers=auth_headers(buyer),
            json={"price": 1.0}
        )
        assert response.status_code == 403

    def test_category_in_use_cannot_be_deleted(self, client, seller, category, product_a):
        response = client.delete(f"{API}/categories/{category.id}", headers=auth_headers(seller))
        assert response.status_code == 409

    def test_list_products_by_category(self, client, category, product_a, product_b):
        response = client.get(f"{API}/products", params={"category_id": category.id})
        assert response.status_code == 200
        assert {p["id"] for p in response.json()["data"]} == {product_a.id, product_b.id}


class TestCartAndOrderFlow:

    def test_order_scenario(self, client, db, buyer, product_a):
        headers = auth_headers(buyer)

        response = client.post(f"{API}/cart", headers=headers, json={"product_id": product_a.id, "quantity": 2})
        assert response.status_code == 200
        assert response.json()["data"]["cart_total"] == 20.0

        response = client.post(f"{API}/orders", headers=headers, json={"address": "X"})
        assert response.status_code == 201
        body = response.json()
        assert body["message"] == "Order placed successfully"
        assert body["status_code"] == 201
        assert body["data"]["order_price"] == 20.0
        assert body["data"]["status"] == "PENDING"

        assert _stock(db, product_a.id) == 3
        assert client.get(f"{API}/cart", headers=headers).json()["data"]["items"] == []

        orders = client.get(f"{API}/orders", headers=headers).json()["data"]
        assert len(orders) == 1
        assert orders[0]["items"][0]["name"] == "ProductA"

    def test_insufficient_stock_scenario(self, client, db, buyer, product_b):
        headers = auth_headers(buyer)
        client.post(f"{API}/cart", headers=headers, json={"product_id": product_b.id, "quantity": 3})
        product_b.stock = 2
        db.commit()

        response = client.post(f"{API}/orders", headers=headers, json={"address": "X"})

        assert response.status_code == 400
        body = response.json()
        assert "ProductB" in body["message"]
        assert body["errors"] == [{"product_id": product_b.id, "requested": 3, "available": 2}]
        assert _stock(db, product_b.id) == 2
        assert len(client.get(f"{API}/cart", headers=headers).json()["data"]["items"]) == 1

    def test_add_above_stock(self, client, buyer, product_b):
        response = client.post(
            f"{API}/cart",
            headers=auth_headers(buyer),
            json={"product_id": product_b.id, "quantity": 10}
        )
        assert response.status_code == 400
        assert response.json()["message"] == "Product is out of stock"

    def test_order_with_empty_cart(self, client, buyer):
        response = client.post(f"{API}/orders", headers=auth_headers(buyer), json={"address": "X"})
        assert response.status_code == 400
        assert response.json()["message"] == "Cart is empty"

    def test_order_without_address(self, client, buyer, product_a):
        headers = auth_headers(buyer)
        client.post(f"{API}/cart", headers=headers, json={"product_id": product_a.id})

        response = client.post(f"{API}/orders", headers=headers, json={})
        assert response.status_code == 400
        assert response.json()["message"] == "Shipping address is required"

    def test_remove_item_without_cart(self, client, buyer, product_a):
        response = client.delete(f"{API}/cart/item/{product_a.id}", headers=auth_headers(buyer))
        assert response.status_code == 404

    def test_clear_cart(self, client, buyer, product_a, product_b):
        headers = auth_headers(buyer)
        client.post(f"{API}/cart", headers=headers, json={"product_id": product_a.id})
        client.post(f"{API}/cart", headers=headers, json={"product_id": product_b.id})

        response = client.delete(f"{API}/cart/item/{product_a.id}", headers=headers)
        assert [line["product_id"] for line in response.json()["data"]["items"]] == [product_b.id]

        response = client.delete(f"{API}/cart", headers=headers)
        assert response.status_code == 200
        assert response.json()["data"]["items"] == []


class TestConcurrentRequests:

    def test_slow_storage_does_not_stall_other_requests(self, db, buyer, monkeypatch):
        from main import app

        load_cart = CartService.get_cart

        def slow_get_cart(self, session, user_id):
            time.sleep(1.0)
            return load_cart(self, session, user_id)

        monkeypatch.setattr(CartService, "get_cart", slow_get_cart)

        async def cart_and_health():
            transport = httpx.ASGITransport(app=app)
            async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
                started = time.perf_counter()
                cart_request = asyncio.create_task(
                    client.get(f"{API}/cart", headers=auth_headers(buyer))
                )
                await asyncio.sleep(0.2)
                health = await client.get("/health")
                health_latency = time.perf_counter() - started
                cart = await cart_request
            return cart, health, health_latency

        cart, health, health_latency = asyncio.run(cart_and_health())

        assert health.status_code == 200
        assert health_latency < 0.6
        assert cart.status_code == 200
        assert cart.json()["data"]["items"] == []
