"""Tests for the order endpoints."""

import pytest

from common.exceptions import StoreError
from modules.catalog.service import ProductService
from modules.order.checkout import CheckoutService, get_checkout_service
from modules.order.service import OrderService
from main import app

CHECKOUT = {"delivery_address": "7 Mill Road", "payment_method": "cash_on_delivery"}


class FailSecondDecrement(ProductService):
    def __init__(self):
        self.calls = 0

    def conditional_decrement(self, db, product_id, amount):
        self.calls += 1
        if self.calls == 2:
            raise StoreError("Database operation failed: product.conditional_decrement")
        return super().conditional_decrement(db, product_id, amount)


@pytest.fixture
def placed_order(client, buyer, make_product, add_to_cart, headers):
    """A pending order for `buyer` containing one product of the default producer."""
    product = make_product("8.00", quantity=10)
    add_to_cart(buyer, product, 2)
    response = client.post("/api/orders/checkout", json=CHECKOUT, headers=headers(buyer))
    assert response.status_code == 201
    return response.json()["data"]["order"]


class TestCheckoutEndpoint:
    def test_created(self, client, buyer, make_product, add_to_cart, headers):
        a = make_product("10.00", quantity=5)
        b = make_product("5.00", quantity=5)
        add_to_cart(buyer, a, 2)
        add_to_cart(buyer, b, 3)

        response = client.post("/api/orders/checkout", json=CHECKOUT, headers=headers(buyer))

        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        assert body["message"] == "Order created successfully"
        assert body["data"]["order"]["total_amount"] == 35.0
        assert body["data"]["order"]["status"] == "pending"
        assert len(body["data"]["order_items"]) == 2
        assert body["data"]["summary"]["item_count"] == 2

        cart = client.get("/api/cart", headers=headers(buyer)).json()["data"]
        assert cart["items"] == []

    def test_requires_token(self, client):
        response = client.post("/api/orders/checkout", json=CHECKOUT)
        assert response.status_code == 401
        assert response.json()["message"] == "Access token is required"

    def test_invalid_token(self, client):
        response = client.post(
            "/api/orders/checkout", json=CHECKOUT, headers={"Authorization": "Bearer not-a-jwt"},
        )
        assert response.status_code == 403

    def test_producer_cannot_checkout(self, client, producer, headers):
        response = client.post("/api/orders/checkout", json=CHECKOUT, headers=headers(producer))
        assert response.status_code == 403

    def test_empty_cart(self, client, buyer, headers):
        response = client.post("/api/orders/checkout", json=CHECKOUT, headers=headers(buyer))
        assert response.status_code == 400
        assert response.json() == {"success": False, "message": "Cart is empty"}

    def test_validation_errors(self, client, buyer, headers):
        response = client.post(
            "/api/orders/checkout", json={"payment_method": "barter"}, headers=headers(buyer),
        )
        assert response.status_code == 400
        body = response.json()
        assert body["message"] == "Validation failed"
        assert "Delivery address is required" in body["errors"]

    def test_conflict(self, client, buyer, make_product, add_to_cart, headers):
        c = make_product("3.00", quantity=3)
        add_to_cart(buyer, c, 10)

        response = client.post("/api/orders/checkout", json=CHECKOUT, headers=headers(buyer))

        assert response.status_code == 400
        item = response.json()["unavailable_items"][0]
        assert (item["product_id"], item["requested"], item["available"]) == (c.id, 10, 3)

    def test_store_fault_before_any_write_is_500(self, client, buyer, make_product, add_to_cart, headers):
        add_to_cart(buyer, make_product("1.00", quantity=5), 1)

        class DownOrders(OrderService):
            def create_header(self, db, **kwargs):
                raise StoreError("Database operation failed: order.create_header", operation="order.create_header")

        app.dependency_overrides[get_checkout_service] = lambda: CheckoutService(orders=DownOrders())

        response = client.post("/api/orders/checkout", json=CHECKOUT, headers=headers(buyer))

        assert response.status_code == 500
        assert response.json()["success"] is False
        assert client.get("/api/cart/summary", headers=headers(buyer)).json()["data"]["item_count"] == 1

    def test_partial_failure_is_207(self, client, buyer, make_product, add_to_cart, headers):
        a = make_product("10.00", quantity=5)
        b = make_product("5.00", quantity=5)
        add_to_cart(buyer, a, 2)
        add_to_cart(buyer, b, 3)
        app.dependency_overrides[get_checkout_service] = lambda: CheckoutService(products=FailSecondDecrement())

        response = client.post("/api/orders/checkout", json=CHECKOUT, headers=headers(buyer))

        assert response.status_code == 207
        body = response.json()
        assert body["partial"] is True
        assert [line["product_id"] for line in body["data"]["succeeded_lines"]] == [a.id]
        assert [line["product_id"] for line in body["data"]["failed_lines"]] == [b.id]

        order = client.get(f"/api/orders/{body['data']['order_id']}", headers=headers(buyer)).json()["data"]
        assert order["needs_reconciliation"] is True
        assert [it["product_id"] for it in order["order_items"]] == [a.id]


class TestOrderQueries:
    def test_buyer_lists_own_orders(self, client, buyer, make_user, placed_order, headers):
        other = make_user("buyer")

        mine = client.get("/api/orders", headers=headers(buyer)).json()
        theirs = client.get("/api/orders", headers=headers(other)).json()

        assert [o["id"] for o in mine["data"]] == [placed_order["id"]]
        assert mine["pagination"] == {"page": 1, "limit": 10, "total": 1, "total_pages": 1}
        assert theirs["data"] == []

    def test_producer_sees_orders_with_their_products(self, client, producer, make_user, placed_order, headers):
        stranger = make_user("producer")

        assert client.get(f"/api/orders/{placed_order['id']}", headers=headers(producer)).status_code == 200
        assert client.get(f"/api/orders/{placed_order['id']}", headers=headers(stranger)).status_code == 403
        assert client.get("/api/orders", headers=headers(stranger)).json()["data"] == []

    def test_other_buyer_cannot_view(self, client, make_user, placed_order, headers):
        other = make_user("buyer")
        response = client.get(f"/api/orders/{placed_order['id']}", headers=headers(other))
        assert response.status_code == 403

    def test_unknown_order(self, client, buyer, headers):
        assert client.get("/api/orders/999", headers=headers(buyer)).status_code == 404

    def test_status_filter(self, client, buyer, placed_order, headers):
        response = client.get("/api/orders?status=delivered", headers=headers(buyer))
        assert response.json()["data"] == []

    def test_stats(self, client, buyer, producer, placed_order, headers):
        buyer_stats = client.get("/api/orders/stats/summary", headers=headers(buyer)).json()["data"]
        assert buyer_stats["total_orders"] == 1
        assert buyer_stats["pending_orders"] == 1
        assert buyer_stats["total_spent"] == 16.0
        assert buyer_stats["profile"]["total_orders"] == 1

        producer_stats = client.get("/api/orders/stats/summary", headers=headers(producer)).json()["data"]
        assert producer_stats["total_revenue"] == 16.0
        assert producer_stats["active_orders"] == 0
        assert producer_stats["profile"]["total_sales"] == 16.0

    def test_payment_methods(self, client):
        response = client.get("/api/orders/config/payment-methods")
        values = [m["value"] for m in response.json()["data"]]
        assert values == ["cash_on_delivery", "bank_transfer", "gcash", "paypal"]
