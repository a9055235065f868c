"""
Stripe hosted-checkout client.

Opens checkout sessions and reads back their settlement state. Calls are
bounded by an HTTP timeout and never retried here: connection problems,
rate limiting and Stripe-side 5xx surface as ``Unavailable`` so the
caller can decide to retry, everything else as ``PaymentProviderError``.
"""
from typing import Any, Dict, Optional

import stripe
import structlog
from pydantic import BaseModel, Field

from errors import PaymentProviderError, Unavailable

logger = structlog.get_logger(__name__)

SESSION_ID_PLACEHOLDER = "{CHECKOUT_SESSION_ID}"


class LineItem(BaseModel):
    name: str
    unit_amount: int = Field(..., ge=0, description="Minor currency units")
    quantity: int = Field(..., ge=1)


class CheckoutRequest(BaseModel):
    line_item: LineItem
    currency: str
    success_url: str
    cancel_url: str
    metadata: Dict[str, str] = {}
    customer_email: Optional[str] = None


class CheckoutSession(BaseModel):
    id: str
    url: Optional[str] = None
    payment_status: Optional[str] = None
    amount_total: Optional[int] = Field(None, description="Minor currency units")
    currency: Optional[str] = None
    metadata: Dict[str, str] = {}

    @property
    def is_paid(self) -> bool:
        return self.payment_status == "paid"


def _to_session(session: Any) -> CheckoutSession:
    metadata = getattr(session, "metadata", None) or {}
    return CheckoutSession(
        id=session.id,
        url=getattr(session, "url", None),
        payment_status=getattr(session, "payment_status", None),
        amount_total=getattr(session, "amount_total", None),
        currency=getattr(session, "currency", None),
        metadata={key: str(metadata[key]) for key in metadata.keys() if metadata[key] is not None},
    )


class StripePaymentProvider:
    def __init__(self, secret_key: str, timeout_seconds: float = 10.0):
        stripe.api_key = secret_key
        stripe.max_network_retries = 0
        stripe.default_http_client = stripe.RequestsClient(timeout=timeout_seconds)
        self.timeout_seconds = timeout_seconds
        logger.info(
            "stripe_client_initialized",
            test_mode=secret_key.startswith("sk_test_"),
            timeout_seconds=timeout_seconds,
        )

    @staticmethod
    def _translate_error(error: stripe.StripeError, operation: str) -> Exception:
        logger.error(
            "stripe_api_error",
            operation=operation,
            error_class=type(error).__name__,
            error_code=getattr(error, "code", None),
            error_message=str(error),
        )
        if isinstance(error, (stripe.APIConnectionError, stripe.RateLimitError, stripe.APIError)):
            return Unavailable(f"Payment provider unavailable during {operation}")
        return PaymentProviderError(str(error) or f"Payment provider rejected {operation}", original_error=error)

    def create_checkout_session(self, request: CheckoutRequest) -> CheckoutSession:
        params: Dict[str, Any] = {
            "mode": "payment",
            "payment_method_types": ["card"],
            "line_items": [
                {
                    "price_data": {
                        "currency": request.currency,
                        "product_data": {"name": request.line_item.name},
                        "unit_amount": request.line_item.unit_amount,
                    },
                    "quantity": request.line_item.quantity,
                }
            ],
            "success_url": request.success_url,
            "cancel_url": request.cancel_url,
            "metadata": request.metadata,
        }
        if request.customer_email:
            params["customer_email"] = request.customer_email

        try:
            session = stripe.checkout.Session.create(**params)
        except stripe.StripeError as e:
            raise self._translate_error(e, "create checkout session") from e

        logger.info("checkout_session_opened", session_id=session.id)
        return _to_session(session)

    def retrieve_session(self, session_id: str) -> CheckoutSession:
        try:
            session = stripe.checkout.Session.retrieve(session_id)
        except stripe.StripeError as e:
            raise self._translate_error(e, "retrieve checkout session") from e
        return _to_session(session)
