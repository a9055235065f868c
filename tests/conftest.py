"""
Pytest configuration and fixtures.

MongoDB is replaced by mongomock behind a real ``Database`` handle, and
the Stripe client by a ``MagicMock`` with the provider's interface.
"""
from decimal import Decimal
from typing import Any, Optional
from unittest.mock import MagicMock

import mongomock
import pytest

from config import Settings
from database import Database
from orders import OrderService
from payment_provider import CheckoutSession, StripePaymentProvider
from payments import PaymentReconciliationEngine
from role_requests import ChefIdIssuer, RoleRequestWorkflow
from schemas import Role, User
from stores import OrderStore, PaymentLedger, RequestStore, UserStore


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        stripe_secret_key="sk_test_fake_key_for_testing",
        site_domain="https://chef-origin.test",
        checkout_currency="usd",
        chef_id_max_attempts=5,
        app_env="test",
        log_level="DEBUG",
    )


@pytest.fixture
def database():
    db = Database("chef_origin_test", client=mongomock.MongoClient())
    db.open()
    yield db
    db.close()


@pytest.fixture
def provider() -> MagicMock:
    return MagicMock(spec=StripePaymentProvider)


@pytest.fixture
def order_store(database) -> OrderStore:
    return OrderStore(database)


@pytest.fixture
def ledger(database) -> PaymentLedger:
    return PaymentLedger(database)


@pytest.fixture
def request_store(database) -> RequestStore:
    return RequestStore(database)


@pytest.fixture
def user_store(database) -> UserStore:
    return UserStore(database)


@pytest.fixture
def order_service(order_store) -> OrderService:
    return OrderService(order_store)


@pytest.fixture
def engine(order_store, ledger, provider, test_settings) -> PaymentReconciliationEngine:
    return PaymentReconciliationEngine(
        order_store,
        ledger,
        provider,
        site_domain=test_settings.site_domain,
        currency=test_settings.checkout_currency,
    )


@pytest.fixture
def chef_ids(user_store, request_store, test_settings) -> ChefIdIssuer:
    return ChefIdIssuer(user_store, request_store, max_attempts=test_settings.chef_id_max_attempts)


@pytest.fixture
def workflow(request_store, user_store, chef_ids) -> RoleRequestWorkflow:
    return RoleRequestWorkflow(request_store, user_store, chef_ids)


@pytest.fixture
def sample_order_data() -> dict[str, Any]:
    return {
        "food_id": "6650f1c2a1b2c3d4e5f60718",
        "meal_name": "Chicken Biryani",
        "price": Decimal("12.50"),
        "quantity": 2,
        "chef_id": "chef-4821",
        "chef_name": "Rahim Uddin",
        "delivery_time": "45 minutes",
        "user_email": "customer@example.com",
        "user_address": "12 Lake Road, Dhaka",
    }


@pytest.fixture
def place_order(order_service, sample_order_data):
    def _place(**overrides):
        return order_service.place_order(**{**sample_order_data, **overrides})

    return _place


@pytest.fixture
def make_user(user_store):
    def _make(email: str = "aspiring@example.com", role: Role = Role.USER, chef_id: Optional[str] = None) -> User:
        return user_store.insert(User(uid=f"uid-{email}", name="Nadia Karim", email=email, role=role, chef_id=chef_id))

    return _make


def checkout_session(
    session_id: str = "cs_test_a1B2c3",
    order_id: Optional[str] = None,
    payment_status: str = "paid",
    amount_total: Optional[int] = 2500,
    currency: str = "usd",
) -> CheckoutSession:
    metadata = {"userEmail": "customer@example.com"}
    if order_id:
        metadata["orderId"] = order_id
    return CheckoutSession(
        id=session_id,
        url=None,
        payment_status=payment_status,
        amount_total=amount_total,
        currency=currency,
        metadata=metadata,
    )
