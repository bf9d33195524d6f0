"""Tests for the REST API."""

import base64
from datetime import timedelta

from canteen_shared.datetime_utils import utcnow
from canteen_shared.services import order_service


def order_body(seed, **overrides):
    body = {
        "concession_id": seed["concession_id"],
        "payment_method": "gcash",
        "items": [
            {
                "menu_item_id": seed["adobo_id"],
                "quantity": 1,
                "variations": [{"variation_id": seed["rice_id"], "quantity": 2}],
            }
        ],
    }
    body.update(overrides)
    return body


class TestAuthentication:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.get_json()["status"] == "ok"

    def test_missing_headers(self, client, seed):
        response = client.get(f"/api/orders/customer/{seed['customer_id']}")
        assert response.status_code == 401
        assert response.get_json()["error"] == "Authentication required"

    def test_unknown_role(self, client, seed):
        response = client.get(
            f"/api/orders/customer/{seed['customer_id']}",
            headers={"X-User-Id": str(seed["customer_id"]), "X-User-Role": "janitor"},
        )
        assert response.status_code == 401

    def test_wrong_role(self, client, seed, headers_for):
        response = client.get(
            f"/api/orders/concessionaire/{seed['concessionaire_id']}",
            headers=headers_for(seed["customer_id"], "customer"),
        )
        assert response.status_code == 403

    def test_other_customers_orders(self, client, seed, place_order, headers_for):
        order = place_order()
        response = client.get(
            f"/api/orders/{order['id']}", headers=headers_for(seed["other_customer_id"], "customer")
        )
        assert response.status_code == 403

    def test_unknown_order(self, client, seed, headers_for):
        response = client.get("/api/orders/9999", headers=headers_for(seed["customer_id"], "customer"))
        assert response.status_code == 404
        assert response.get_json()["status"] == "error"


class TestOrders:
    def test_create_order(self, client, seed, headers_for):
        response = client.post(
            "/api/orders", json=order_body(seed), headers=headers_for(seed["customer_id"], "customer")
        )
        assert response.status_code == 201
        data = response.get_json()["data"]
        assert data["status"] == "pending"
        assert data["total_price"] == "80.00"
        assert data["customer_id"] == seed["customer_id"]

    def test_invalid_body(self, client, seed, headers_for):
        response = client.post(
            "/api/orders", json=order_body(seed, items=[]), headers=headers_for(seed["customer_id"], "customer")
        )
        assert response.status_code == 400
        body = response.get_json()
        assert body["error"] == "Invalid request data"
        assert body["details"]["details"][0]["loc"] == ["items"]

    def test_accept_then_cancel_conflicts(self, client, seed, place_order, headers_for):
        order = place_order(payment_method="on-counter")
        accepted = client.put(
            f"/api/orders/status/{order['id']}",
            json={"status": "accepted"},
            headers=headers_for(seed["concessionaire_id"], "concessionaire"),
        )
        assert accepted.status_code == 200
        assert accepted.get_json()["data"]["status"] == "accepted"

        cancelled = client.put(
            f"/api/orders/cancel/{order['id']}", headers=headers_for(seed["customer_id"], "customer")
        )
        assert cancelled.status_code == 409
        assert cancelled.get_json()["details"]["current_status"] == "accepted"

    def test_accept_with_price_override(self, client, seed, place_order, headers_for):
        order = place_order(payment_method="on-counter")
        response = client.put(
            f"/api/orders/status/{order['id']}",
            json={"status": "accepted", "updated_total_price": "70.00", "price_change_reason": "promo"},
            headers=headers_for(seed["concessionaire_id"], "concessionaire"),
        )
        data = response.get_json()["data"]
        assert data["updated_total_price"] == "70.00"
        assert data["total_price"] == "80.00"

    def test_concessionaire_listing(self, client, seed, place_order, headers_for):
        place_order()
        place_order(in_cart=True)
        response = client.get(
            f"/api/orders/concessionaire/{seed['concessionaire_id']}",
            headers=headers_for(seed["concessionaire_id"], "concessionaire"),
        )
        assert response.status_code == 200
        assert response.get_json()["meta"]["total"] == 1

    def test_cart_editing(self, client, seed, place_order, headers_for):
        cart = place_order(in_cart=True)
        headers = headers_for(seed["customer_id"], "customer")
        added = client.post(
            f"/api/orders/{cart['id']}/details",
            json={"menu_item_id": seed["iced_tea_id"], "quantity": 1},
            headers=headers,
        )
        assert added.status_code == 201
        assert added.get_json()["data"]["total_price"] == "105.00"

        checked_out = client.put(f"/api/orders/{cart['id']}/checkout", headers=headers)
        assert checked_out.get_json()["data"]["status"] == "pending"

    def test_recalculate_total(self, client, seed, place_order, headers_for):
        order = place_order()
        owner = client.put(
            f"/api/orders/{order['id']}/recalculate", headers=headers_for(seed["customer_id"], "customer")
        )
        assert owner.status_code == 200
        assert owner.get_json()["data"]["total_price"] == "80.00"

        stranger = client.put(
            f"/api/orders/{order['id']}/recalculate",
            headers=headers_for(seed["other_customer_id"], "customer"),
        )
        assert stranger.status_code == 403


class TestReceipts:
    def test_base64_upload(self, client, seed, place_order, concessionaire, headers_for):
        order = place_order()
        order_service.accept_order(order["id"], concessionaire, now=utcnow())
        encoded = base64.b64encode(b"\x89PNG fake image").decode()
        response = client.put(
            f"/api/orders/{order['id']}/receipt",
            json={"gcash_screenshot": f"data:image/png;base64,{encoded}"},
            headers=headers_for(seed["customer_id"], "customer"),
        )
        assert response.status_code == 200
        assert response.get_json()["data"]["has_gcash_screenshot"] is True

    def test_invalid_base64(self, client, seed, place_order, concessionaire, headers_for):
        order = place_order()
        order_service.accept_order(order["id"], concessionaire, now=utcnow())
        response = client.put(
            f"/api/orders/{order['id']}/receipt",
            json={"gcash_screenshot": "not base64!"},
            headers=headers_for(seed["customer_id"], "customer"),
        )
        assert response.status_code == 400

    def test_expired_upload_declines_order(self, client, seed, place_order, concessionaire, headers_for):
        order = place_order()
        order_service.accept_order(order["id"], concessionaire, now=utcnow() - timedelta(minutes=20))
        headers = headers_for(seed["customer_id"], "customer")
        encoded = base64.b64encode(b"late").decode()

        response = client.put(
            f"/api/orders/{order['id']}/receipt", json={"gcash_screenshot": encoded}, headers=headers
        )
        assert response.status_code == 409

        stored = client.get(f"/api/orders/{order['id']}", headers=headers).get_json()["data"]
        assert stored["status"] == "declined"
        assert stored["decline_reason_data"]["category"] == "receipt_timeout"

        eligibility = client.get(f"/api/reopening/order/{order['id']}/can-reopen", headers=headers)
        assert eligibility.get_json()["data"]["can_reopen"] is True

    def test_receipt_timer_is_not_cached(self, client, seed, place_order, concessionaire, headers_for):
        order = place_order()
        order_service.accept_order(order["id"], concessionaire, now=utcnow())
        response = client.get(
            f"/api/orders/{order['id']}/receipt-timer", headers=headers_for(seed["customer_id"], "customer")
        )
        assert response.status_code == 200
        assert response.headers["Cache-Control"].startswith("no-cache")
        assert response.get_json()["data"]["state"] == "running"


class TestReopeningAndSettings:
    def test_reopening_round_trip(self, client, seed, place_order, concessionaire, headers_for):
        order = place_order()
        order_service.accept_order(order["id"], concessionaire, now=utcnow() - timedelta(minutes=20))
        order_service.check_expired(order["id"])

        filed = client.post(
            f"/api/reopening/order/{order['id']}/request",
            json={"request_type": "network_issue"},
            headers=headers_for(seed["customer_id"], "customer"),
        )
        assert filed.status_code == 201
        request_id = filed.get_json()["data"]["id"]

        owner = headers_for(seed["concessionaire_id"], "concessionaire")
        pending = client.get(f"/api/reopening/concessionaire/{seed['concessionaire_id']}", headers=owner)
        assert [r["id"] for r in pending.get_json()["data"]] == [request_id]

        approved = client.put(
            f"/api/reopening/request/{request_id}/respond", json={"action": "approve"}, headers=owner
        )
        assert approved.status_code == 200
        assert approved.get_json()["data"]["order"]["status"] == "accepted"

    def test_update_receipt_timer(self, client, seed, headers_for):
        response = client.patch(
            f"/api/concessions/{seed['concession_id']}/receipt-timer",
            json={"receipt_timer": "00:25:00"},
            headers=headers_for(seed["concessionaire_id"], "concessionaire"),
        )
        assert response.status_code == 200
        assert response.get_json()["data"]["receipt_timer"] == "00:25:00"

    def test_receipt_timer_out_of_range(self, client, seed, headers_for):
        response = client.patch(
            f"/api/concessions/{seed['concession_id']}/receipt-timer",
            json={"receipt_timer": "02:00:00"},
            headers=headers_for(seed["concessionaire_id"], "concessionaire"),
        )
        assert response.status_code == 400
