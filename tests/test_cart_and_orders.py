"""Cart and order endpoints."""

import pytest
from bson import ObjectId


@pytest.fixture()
def user_id(client):
    response = client.post("/api/users/register", json={"name": "Ana", "email": "ana@example.com"})
    return response.json()["data"]["id"]


def _add_item(client, user_id, product_id="p-1", name="Pizza", price=10.0, quantity=1):
    response = client.post(
        f"/api/users/{user_id}/cart",
        json={"productId": product_id, "name": name, "price": price, "quantity": quantity},
    )
    assert response.status_code == 200
    return response.json()["data"]


class TestAddToCart:
    def test_add_new_item(self, client, user_id):
        cart = _add_item(client, user_id, quantity=2)
        assert len(cart) == 1
        assert cart[0]["productId"] == "p-1"
        assert cart[0]["quantity"] == 2
        assert "addedAt" in cart[0]

    def test_same_product_accumulates_quantity(self, client, user_id):
        _add_item(client, user_id, product_id="1", quantity=2)
        cart = _add_item(client, user_id, product_id="1", quantity=3)
        assert len(cart) == 1
        assert cart[0]["quantity"] == 5

    def test_different_products_get_separate_lines(self, client, user_id):
        _add_item(client, user_id, product_id="1")
        cart = _add_item(client, user_id, product_id="2", name="Cola", price=2.5)
        assert [it["productId"] for it in cart] == ["1", "2"]

    def test_quantity_defaults_to_one(self, client, user_id):
        response = client.post(f"/api/users/{user_id}/cart", json={"productId": "1", "price": 3})
        assert response.json()["data"][0]["quantity"] == 1

    def test_cart_is_persisted(self, client, user_id, mock_db):
        _add_item(client, user_id)
        stored = mock_db["user"].find_one({"_id": ObjectId(user_id)})
        assert stored["cart"][0]["name"] == "Pizza"
        assert stored["cart"][0]["productId"] == "p-1"
        assert stored["name"] == "Ana"

    def test_unknown_user(self, client):
        response = client.post(
            f"/api/users/{ObjectId()}/cart",
            json={"productId": "1", "price": 1, "quantity": 1},
        )
        assert response.status_code == 404
        assert response.json()["error"] == "User not found"

    def test_missing_price_is_validation_failure(self, client, user_id):
        response = client.post(f"/api/users/{user_id}/cart", json={"productId": "1"})
        assert response.status_code == 400
        assert "price" in response.json()["error"]


class TestGetCart:
    def test_new_user_has_empty_cart(self, client, user_id):
        assert client.get(f"/api/users/{user_id}/cart").json() == {"success": True, "data": []}

    def test_repeated_reads_are_identical(self, client, user_id):
        _add_item(client, user_id)
        first = client.get(f"/api/users/{user_id}/cart").json()
        second = client.get(f"/api/users/{user_id}/cart").json()
        assert first == second

    def test_unknown_user(self, client):
        assert client.get(f"/api/users/{ObjectId()}/cart").status_code == 404


class TestPlaceOrder:
    def test_order_snapshots_cart_and_clears_it(self, client, user_id):
        _add_item(client, user_id, product_id="pizza", price=10, quantity=2)
        _add_item(client, user_id, product_id="cola", name="Cola", price=5, quantity=1)

        response = client.post(f"/api/users/{user_id}/orders")
        assert response.status_code == 200
        order = response.json()["data"]
        assert order["total"] == 25
        assert len(order["products"]) == 2
        assert order["status"] == "pending"
        assert order["orderId"].startswith("ORDER_")
        assert all("addedAt" not in line for line in order["products"])

        assert client.get(f"/api/users/{user_id}/cart").json()["data"] == []

    def test_empty_cart_still_creates_order(self, client, user_id):
        response = client.post(f"/api/users/{user_id}/orders")
        assert response.status_code == 200
        order = response.json()["data"]
        assert order["total"] == 0
        assert order["products"] == []

    def test_order_is_appended_to_history(self, client, user_id):
        _add_item(client, user_id)
        placed = client.post(f"/api/users/{user_id}/orders").json()["data"]

        orders = client.get(f"/api/users/{user_id}/orders").json()["data"]
        assert len(orders) == 1
        assert orders[0]["orderId"] == placed["orderId"]
        assert orders[0]["products"][0]["productId"] == "p-1"

    def test_later_cart_changes_do_not_touch_placed_orders(self, client, user_id):
        _add_item(client, user_id, quantity=1)
        client.post(f"/api/users/{user_id}/orders")
        _add_item(client, user_id, quantity=7)

        orders = client.get(f"/api/users/{user_id}/orders").json()["data"]
        assert orders[0]["products"][0]["quantity"] == 1

    def test_unknown_user(self, client):
        response = client.post(f"/api/users/{ObjectId()}/orders")
        assert response.status_code == 404


class TestListOrders:
    def test_no_orders_yet(self, client, user_id):
        assert client.get(f"/api/users/{user_id}/orders").json() == {"success": True, "data": []}

    def test_repeated_reads_are_identical(self, client, user_id):
        _add_item(client, user_id)
        client.post(f"/api/users/{user_id}/orders")
        first = client.get(f"/api/users/{user_id}/orders").json()
        second = client.get(f"/api/users/{user_id}/orders").json()
        assert first == second

    def test_unknown_user(self, client):
        assert client.get("/api/users/bad-id/orders").status_code == 404
