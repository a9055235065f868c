"""
Tests for the Stripe checkout client.
"""
from types import SimpleNamespace
from unittest.mock import patch

import pytest
import stripe

from errors import PaymentProviderError, Unavailable
from payment_provider import CheckoutRequest, LineItem, StripePaymentProvider


@pytest.fixture
def stripe_provider() -> StripePaymentProvider:
    return StripePaymentProvider("sk_test_fake_key_for_testing", timeout_seconds=3)


@pytest.fixture
def checkout_request() -> CheckoutRequest:
    return CheckoutRequest(
        line_item=LineItem(name="Chicken Biryani", unit_amount=1250, quantity=2),
        currency="usd",
        success_url="https://chef-origin.test/payment/success?session_id={CHECKOUT_SESSION_ID}&orderId=abc",
        cancel_url="https://chef-origin.test/dashboard/orders?orderId=abc",
        metadata={"orderId": "abc", "userEmail": "customer@example.com"},
        customer_email="customer@example.com",
    )


class TestStripePaymentProvider:
    @pytest.mark.unit
    def test_configures_sdk(self, stripe_provider) -> None:
        assert stripe.api_key == "sk_test_fake_key_for_testing"
        assert stripe.max_network_retries == 0

    @pytest.mark.unit
    def test_create_checkout_session_params(self, stripe_provider, checkout_request) -> None:
        created = SimpleNamespace(id="cs_test_123", url="https://checkout.stripe.com/c/pay/cs_test_123", metadata={})
        with patch("stripe.checkout.Session.create", return_value=created) as create:
            session = stripe_provider.create_checkout_session(checkout_request)

        assert session.id == "cs_test_123"
        assert session.url == "https://checkout.stripe.com/c/pay/cs_test_123"
        params = create.call_args.kwargs
        assert params["mode"] == "payment"
        assert params["line_items"] == [
            {
                "price_data": {
                    "currency": "usd",
                    "product_data": {"name": "Chicken Biryani"},
                    "unit_amount": 1250,
                },
                "quantity": 2,
            }
        ]
        assert params["metadata"] == {"orderId": "abc", "userEmail": "customer@example.com"}
        assert params["customer_email"] == "customer@example.com"

    @pytest.mark.unit
    def test_omits_customer_email_when_absent(self, stripe_provider, checkout_request) -> None:
        checkout_request.customer_email = None
        created = SimpleNamespace(id="cs_test_123", url=None, metadata={})
        with patch("stripe.checkout.Session.create", return_value=created) as create:
            stripe_provider.create_checkout_session(checkout_request)

        assert "customer_email" not in create.call_args.kwargs

    @pytest.mark.unit
    def test_retrieve_session(self, stripe_provider) -> None:
        retrieved = SimpleNamespace(
            id="cs_test_123",
            url=None,
            payment_status="paid",
            amount_total=2500,
            currency="usd",
            metadata={"orderId": "abc", "userEmail": "customer@example.com"},
        )
        with patch("stripe.checkout.Session.retrieve", return_value=retrieved):
            session = stripe_provider.retrieve_session("cs_test_123")

        assert session.is_paid
        assert session.amount_total == 2500
        assert session.metadata["orderId"] == "abc"

    @pytest.mark.unit
    def test_connection_error_is_unavailable(self, stripe_provider) -> None:
        with patch("stripe.checkout.Session.retrieve", side_effect=stripe.APIConnectionError("timed out")):
            with pytest.raises(Unavailable):
                stripe_provider.retrieve_session("cs_test_123")

    @pytest.mark.unit
    def test_rejected_request_is_provider_error(self, stripe_provider, checkout_request) -> None:
        error = stripe.InvalidRequestError("Invalid currency: usx", "currency")
        with patch("stripe.checkout.Session.create", side_effect=error):
            with pytest.raises(PaymentProviderError) as exc_info:
                stripe_provider.create_checkout_session(checkout_request)

        assert exc_info.value.original_error is error
