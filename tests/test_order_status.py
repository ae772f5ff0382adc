"""Tests for order status and payment transitions."""

import pytest

from modules.order.models import OrderStatus, can_transition, can_transition_payment


def patch_status(client, order_id, status, user, headers):
    return client.patch(f"/api/orders/{order_id}/status", json={"status": status}, headers=headers(user))


@pytest.fixture
def order(client, buyer, make_product, add_to_cart, headers):
    add_to_cart(buyer, make_product("5.00", quantity=10), 1)
    response = client.post(
        "/api/orders/checkout",
        json={"delivery_address": "1 Barn St", "payment_method": "bank_transfer"},
        headers=headers(buyer),
    )
    return response.json()["data"]["order"]


class TestTransitionTable:
    @pytest.mark.parametrize("current,target,allowed", [
        ("pending", "confirmed", True),
        ("pending", "delivered", False),
        ("confirmed", "preparing", True),
        ("preparing", "ready_for_pickup", True),
        ("ready_for_pickup", "out_for_delivery", True),
        ("out_for_delivery", "delivered", True),
        ("delivered", "cancelled", False),
        ("cancelled", "pending", False),
    ])
    def test_order_transitions(self, current, target, allowed):
        assert can_transition(current, target) is allowed

    @pytest.mark.parametrize("current,target,allowed", [
        ("pending", "completed", True),
        ("pending", "refunded", False),
        ("failed", "pending", True),
        ("completed", "refunded", True),
        ("refunded", "completed", False),
    ])
    def test_payment_transitions(self, current, target, allowed):
        assert can_transition_payment(current, target) is allowed


class TestStatusEndpoint:
    def test_producer_walks_order_to_delivered(self, client, producer, order, headers):
        for status in ("confirmed", "preparing", "ready_for_pickup", "out_for_delivery", "delivered"):
            response = patch_status(client, order["id"], status, producer, headers)
            assert response.status_code == 200, response.json()

        data = response.json()["data"]
        assert data["status"] == OrderStatus.DELIVERED
        assert data["payment_status"] == "completed"
        assert data["confirmed_at"] is not None
        assert data["delivered_at"] is not None

    def test_skipping_a_step_is_rejected(self, client, producer, order, headers):
        response = patch_status(client, order["id"], "delivered", producer, headers)
        assert response.status_code == 400
        assert response.json()["message"] == "Cannot change order status from pending to delivered"

    def test_unknown_status(self, client, producer, order, headers):
        response = patch_status(client, order["id"], "teleported", producer, headers)
        assert response.status_code == 400

    def test_buyer_may_cancel_pending(self, client, buyer, order, headers):
        response = patch_status(client, order["id"], "cancelled", buyer, headers)
        assert response.status_code == 200
        assert response.json()["data"]["cancelled_at"] is not None

    def test_buyer_cannot_confirm(self, client, buyer, order, headers):
        response = patch_status(client, order["id"], "confirmed", buyer, headers)
        assert response.status_code == 400
        assert response.json()["message"] == "Buyers can only cancel pending orders"

    def test_buyer_cannot_cancel_confirmed(self, client, buyer, producer, order, headers):
        patch_status(client, order["id"], "confirmed", producer, headers)
        response = patch_status(client, order["id"], "cancelled", buyer, headers)
        assert response.status_code == 400

    def test_unrelated_producer_forbidden(self, client, make_user, order, headers):
        stranger = make_user("producer")
        response = patch_status(client, order["id"], "confirmed", stranger, headers)
        assert response.status_code == 403


class TestPaymentEndpoint:
    def test_admin_completes_then_refunds(self, client, make_user, order, headers):
        admin = make_user("admin")
        url = f"/api/orders/{order['id']}/payment"

        response = client.patch(url, json={"payment_status": "completed"}, headers=headers(admin))
        assert response.status_code == 200
        assert response.json()["data"]["payment_status"] == "completed"

        response = client.patch(url, json={"payment_status": "refunded"}, headers=headers(admin))
        assert response.json()["data"]["payment_status"] == "refunded"

        response = client.patch(url, json={"payment_status": "pending"}, headers=headers(admin))
        assert response.status_code == 400

    def test_only_admin(self, client, producer, order, headers):
        response = client.patch(
            f"/api/orders/{order['id']}/payment", json={"payment_status": "completed"}, headers=headers(producer),
        )
        assert response.status_code == 403
