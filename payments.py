"""
Payment reconciliation for hosted checkout.

Flow:
1. ``create_checkout_session`` opens a provider session for an existing
   order (one line item, amounts in minor units).
2. The customer pays on the provider's page and is redirected back with
   the session id.
3. ``confirm_payment`` asks the provider whether the session settled and,
   if so, records one Payment in the ledger and marks the order Paid.

Confirmation is idempotent per session id. The ledger's unique
transaction index decides concurrent inserts and the order flag only
flips Pending -> Paid, so repeated or racing confirmations converge on a
single Payment. A confirmation that died between the two writes is
completed by the next call for the same session.
"""
from decimal import ROUND_HALF_UP, Decimal
from typing import List, Optional

import structlog
from pydantic import BaseModel

from errors import Conflict, InvalidArgument, PaymentNotVerified, PaymentProviderError
from payment_provider import SESSION_ID_PLACEHOLDER, CheckoutRequest, CheckoutSession, LineItem, StripePaymentProvider
from schemas import Order, Payment, PaymentStatus
from stores import OrderStore, PaymentLedger

logger = structlog.get_logger(__name__)

CENT = Decimal("0.01")


def to_minor_units(amount: Decimal) -> int:
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_minor_units(amount: int) -> Decimal:
    return (Decimal(amount) / 100).quantize(CENT)


class CheckoutResult(BaseModel):
    session_id: str
    url: Optional[str] = None


class PaymentConfirmation(BaseModel):
    payment_id: str
    order_id: str
    transaction_id: str
    amount: Decimal
    currency: str
    already_recorded: bool = False


class PaymentReconciliationEngine:
    def __init__(
        self,
        orders: OrderStore,
        ledger: PaymentLedger,
        provider: StripePaymentProvider,
        site_domain: str,
        currency: str = "usd",
    ):
        self.orders = orders
        self.ledger = ledger
        self.provider = provider
        self.site_domain = site_domain.rstrip("/")
        self.currency = currency.lower()

    def success_url(self, order_id: str) -> str:
        return f"{self.site_domain}/payment/success?session_id={SESSION_ID_PLACEHOLDER}&orderId={order_id}"

    def cancel_url(self, order_id: str) -> str:
        return f"{self.site_domain}/dashboard/orders?orderId={order_id}"

    def build_checkout_request(self, order: Order) -> CheckoutRequest:
        return CheckoutRequest(
            line_item=LineItem(
                name=order.meal_name,
                unit_amount=to_minor_units(order.price),
                quantity=order.quantity,
            ),
            currency=self.currency,
            success_url=self.success_url(order.id),
            cancel_url=self.cancel_url(order.id),
            metadata={"orderId": order.id, "userEmail": order.user_email or ""},
            customer_email=order.user_email or None,
        )

    def create_checkout_session(self, order_id: str) -> CheckoutResult:
        order = self.orders.get(order_id)
        if order.payment_status == PaymentStatus.PAID.value:
            raise Conflict("Order is already paid", order_id=order_id)

        session = self.provider.create_checkout_session(self.build_checkout_request(order))
        logger.info("checkout_session_created", order_id=order.id, session_id=session.id)
        return CheckoutResult(session_id=session.id, url=session.url)

    def _resolve_order_id(self, session: CheckoutSession, fallback_order_id: Optional[str]) -> str:
        # provider-side metadata cannot be edited by the client
        order_id = session.metadata.get("orderId") or fallback_order_id
        if not order_id:
            raise InvalidArgument("Checkout session carries no order id", session_id=session.id)
        if fallback_order_id and fallback_order_id != order_id:
            logger.warning(
                "order_id_mismatch",
                session_id=session.id,
                session_order_id=order_id,
                supplied_order_id=fallback_order_id,
            )
        return order_id

    def confirm_payment(self, session_id: str, fallback_order_id: Optional[str] = None) -> PaymentConfirmation:
        session = self.provider.retrieve_session(session_id)
        if not session.is_paid:
            logger.info("payment_not_verified", session_id=session_id, payment_status=session.payment_status)
            raise PaymentNotVerified("Payment not verified", session_id=session_id)

        order = self.orders.get(self._resolve_order_id(session, fallback_order_id))

        payment = self.ledger.find_by_transaction(session.id)
        created = False
        if payment is None:
            if session.amount_total is None:
                raise PaymentProviderError("Settled session has no amount total", session_id=session.id)
            payment, created = self.ledger.append(
                Payment(
                    order_id=order.id,
                    transaction_id=session.id,
                    amount=from_minor_units(session.amount_total),
                    currency=(session.currency or self.currency).lower(),
                )
            )

        self._settle_order(order, session.id)

        if created:
            logger.info(
                "payment_confirmed",
                payment_id=payment.id,
                order_id=order.id,
                session_id=session.id,
                amount=str(payment.amount),
                currency=payment.currency,
            )
        else:
            logger.info("payment_already_recorded", payment_id=payment.id, session_id=session.id)

        return PaymentConfirmation(
            payment_id=payment.id,
            order_id=payment.order_id,
            transaction_id=payment.transaction_id,
            amount=payment.amount,
            currency=payment.currency,
            already_recorded=not created,
        )

    def _settle_order(self, order: Order, transaction_id: str) -> None:
        if order.payment_status != PaymentStatus.PAID.value:
            updated = self.orders.mark_paid(order.id, transaction_id)
            if updated is not None:
                return
            order = self.orders.get(order.id)
            if order.payment_status != PaymentStatus.PAID.value:
                raise Conflict("Order payment state changed concurrently", order_id=order.id)

        if order.transaction_id != transaction_id:
            # a second session settled for an order that was already paid
            logger.warning(
                "order_paid_by_other_transaction",
                order_id=order.id,
                order_transaction_id=order.transaction_id,
                transaction_id=transaction_id,
            )

    def payments_for_order(self, order_id: str) -> List[Payment]:
        order = self.orders.get(order_id)
        return self.ledger.find_by_order(order.id)
