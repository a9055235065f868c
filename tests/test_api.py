"""
HTTP surface tests.
"""
import re
from decimal import Decimal
from unittest.mock import patch

import mongomock
import pytest
from bson import ObjectId
from fastapi.testclient import TestClient
from pymongo.errors import ServerSelectionTimeoutError

from main import Services, app
from payment_provider import CheckoutSession
from tests.conftest import checkout_session


@pytest.fixture
def client(database, provider, test_settings):
    app.state.services = Services(database, provider, test_settings)
    yield TestClient(app)
    del app.state.services


@pytest.fixture
def order_payload() -> dict:
    return {
        "foodId": "6650f1c2a1b2c3d4e5f60718",
        "mealName": "Chicken Biryani",
        "price": "12.50",
        "quantity": 2,
        "chefId": "chef-4821",
        "chefName": "Rahim Uddin",
        "deliveryTime": "45 minutes",
        "userEmail": "customer@example.com",
        "userAddress": "12 Lake Road, Dhaka",
    }


class TestOrdersApi:
    @pytest.mark.api
    def test_create_order(self, client, order_payload) -> None:
        response = client.post("/orders", json=order_payload)

        assert response.status_code == 201
        body = response.json()
        assert body["_id"]
        assert body["payment_status"] == "Pending"
        assert body["order_status"] == "pending"
        assert Decimal(str(body["price"])) == Decimal("12.50")

    @pytest.mark.api
    def test_update_status(self, client, order_payload) -> None:
        order_id = client.post("/orders", json=order_payload).json()["_id"]

        response = client.put(f"/orders/{order_id}/status", json={"orderStatus": "confirmed"})

        assert response.status_code == 200
        assert response.json()["orderStatus"] == "confirmed"

    @pytest.mark.api
    def test_unknown_status_value(self, client, order_payload) -> None:
        order_id = client.post("/orders", json=order_payload).json()["_id"]

        response = client.put(f"/orders/{order_id}/status", json={"orderStatus": "shipped"})

        assert response.status_code == 400
        assert response.json()["error"] == "InvalidState"

    @pytest.mark.api
    def test_update_status_unknown_order(self, client) -> None:
        response = client.put(f"/orders/{ObjectId()}/status", json={"orderStatus": "confirmed"})

        assert response.status_code == 404
        assert response.json() == {"error": "NotFound", "message": "Order not found"}

    @pytest.mark.api
    def test_customer_orders(self, client, order_payload) -> None:
        client.post("/orders", json=order_payload)

        response = client.get("/orders/user/customer@example.com")

        assert response.status_code == 200
        assert len(response.json()) == 1


class TestPaymentsApi:
    @pytest.mark.api
    def test_checkout_and_confirm(self, client, provider, order_payload) -> None:
        order_id = client.post("/orders", json=order_payload).json()["_id"]
        provider.create_checkout_session.return_value = CheckoutSession(
            id="cs_test_1", url="https://checkout.stripe.com/c/pay/cs_test_1"
        )
        provider.retrieve_session.return_value = checkout_session("cs_test_1", order_id)

        started = client.post("/checkout-sessions", json={"orderId": order_id})
        confirmed = client.post("/payments/confirm", json={"sessionId": "cs_test_1", "orderId": order_id})
        repeated = client.post("/payments/confirm", json={"sessionId": "cs_test_1", "orderId": order_id})

        assert started.status_code == 200
        assert started.json() == {"url": "https://checkout.stripe.com/c/pay/cs_test_1", "sessionId": "cs_test_1"}
        assert confirmed.status_code == 200
        assert confirmed.json()["amount"] == 25.0
        assert confirmed.json()["currency"] == "usd"
        assert repeated.json()["paymentId"] == confirmed.json()["paymentId"]
        assert client.get(f"/orders/{order_id}").json()["payment_status"] == "Paid"
        assert len(client.get(f"/orders/{order_id}/payments").json()) == 1

    @pytest.mark.api
    def test_checkout_unknown_order(self, client) -> None:
        response = client.post("/checkout-sessions", json={"orderId": str(ObjectId())})

        assert response.status_code == 404

    @pytest.mark.api
    def test_confirm_unpaid(self, client, provider, order_payload) -> None:
        order_id = client.post("/orders", json=order_payload).json()["_id"]
        provider.retrieve_session.return_value = checkout_session("cs_test_1", order_id, payment_status="unpaid")

        response = client.post("/payments/confirm", json={"sessionId": "cs_test_1", "orderId": order_id})

        assert response.status_code == 400
        assert response.json()["error"] == "PaymentNotVerified"


class TestRoleRequestsApi:
    @pytest.mark.api
    def test_submit_and_approve(self, client, make_user) -> None:
        make_user()
        created = client.post(
            "/requests",
            json={"userName": "Nadia Karim", "userEmail": "aspiring@example.com", "requestType": "chef"},
        )
        request_id = created.json()["_id"]

        decided = client.put(f"/requests/{request_id}", json={"requestStatus": "approved"})

        assert created.status_code == 201
        assert created.json()["request_status"] == "pending"
        assert decided.status_code == 200
        assert decided.json()["role"] == "chef"
        assert re.match(r"^chef-\d{4}$", decided.json()["chefId"])

    @pytest.mark.api
    def test_submit_unknown_type(self, client) -> None:
        response = client.post(
            "/requests",
            json={"userName": "Nadia Karim", "userEmail": "aspiring@example.com", "requestType": "owner"},
        )

        assert response.status_code == 400
        assert response.json()["error"] == "InvalidArgument"

    @pytest.mark.api
    def test_decide_unknown_request(self, client) -> None:
        response = client.put(f"/requests/{ObjectId()}", json={"requestStatus": "approved"})

        assert response.status_code == 404

    @pytest.mark.api
    def test_conflicting_decision(self, client, make_user) -> None:
        make_user()
        request_id = client.post(
            "/requests",
            json={"userName": "Nadia Karim", "userEmail": "aspiring@example.com", "requestType": "admin"},
        ).json()["_id"]
        client.put(f"/requests/{request_id}", json={"requestStatus": "rejected"})

        response = client.put(f"/requests/{request_id}", json={"requestStatus": "approved"})

        assert response.status_code == 409
        assert response.json()["error"] == "InvalidTransition"


class TestStoreFailuresApi:
    @pytest.mark.api
    def test_store_timeout_is_503(self, client) -> None:
        with patch.object(
            mongomock.collection.Collection,
            "find_one",
            side_effect=ServerSelectionTimeoutError("No servers found yet"),
        ):
            response = client.get(f"/orders/{ObjectId()}")

        assert response.status_code == 503
        assert response.json()["error"] == "Unavailable"
