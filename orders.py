"""
Order placement and fulfilment status.

Order status is a closed set with an explicit transition graph. Status
changes are conditional on the status the caller observed, so two
concurrent updates cannot both apply.
"""
from typing import Dict, FrozenSet, List, Union

import structlog
from pydantic import ValidationError

from errors import Conflict, InvalidArgument, InvalidState, InvalidTransition
from schemas import Order, OrderStatus
from stores import OrderStore

logger = structlog.get_logger(__name__)

ORDER_TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.CONFIRMED, OrderStatus.CANCELLED}),
    OrderStatus.CONFIRMED: frozenset({OrderStatus.PREPARING, OrderStatus.CANCELLED}),
    OrderStatus.PREPARING: frozenset({OrderStatus.OUT_FOR_DELIVERY}),
    OrderStatus.OUT_FOR_DELIVERY: frozenset({OrderStatus.DELIVERED}),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}


def parse_order_status(value: Union[str, OrderStatus]) -> OrderStatus:
    try:
        return OrderStatus(value)
    except ValueError:
        allowed = ", ".join(status.value for status in OrderStatus)
        raise InvalidState(f"Unknown order status '{value}'. Must be one of: {allowed}")


def can_transition(current: OrderStatus, new: OrderStatus) -> bool:
    return new in ORDER_TRANSITIONS[current]


class OrderService:
    def __init__(self, orders: OrderStore):
        self.orders = orders

    def place_order(self, **fields) -> Order:
        """Store a new order as Pending payment, ``pending`` fulfilment."""
        fields.pop("payment_status", None)
        fields.pop("order_status", None)
        fields.pop("transaction_id", None)
        try:
            order = Order(**fields)
        except ValidationError as e:
            raise InvalidArgument(f"Invalid order: {e.errors()[0]['msg']}")
        created = self.orders.insert(order)
        logger.info("order_placed", order_id=created.id, food_id=created.food_id, quantity=created.quantity)
        return created

    def get_order(self, order_id: str) -> Order:
        return self.orders.get(order_id)

    def orders_for_customer(self, email: str) -> List[Order]:
        return self.orders.find_by_customer(email)

    def orders_for_chef(self, chef_id: str) -> List[Order]:
        return self.orders.find_by_chef(chef_id)

    def update_order_status(self, order_id: str, new_status: Union[str, OrderStatus]) -> Order:
        new = parse_order_status(new_status)
        order = self.orders.get(order_id)
        current = OrderStatus(order.order_status)

        if current == new:
            return order
        if not can_transition(current, new):
            raise InvalidTransition(
                f"Order cannot move from '{current.value}' to '{new.value}'",
                order_id=order_id,
            )
        updated = self.orders.transition_status(order_id, current, new)
        if updated is None:
            raise Conflict("Order status changed concurrently; reload and retry", order_id=order_id)

        logger.info("order_status_updated", order_id=order_id, previous=current.value, status=new.value)
        return updated
