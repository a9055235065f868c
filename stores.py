"""
Collection stores for orders, payments, role requests and users.

Each store wraps one MongoDB collection. Besides plain inserts and
lookups they expose the conditional (compare-and-set) writes the
workflows rely on: a write only lands when the document is still in the
expected pre-state, and the caller learns whether it won.
"""

from typing import List, Optional

from pymongo import DESCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError

from database import ORDERS, PAYMENTS, REQUESTS, USERS, Database, parse_object_id, serialize_doc, store_errors, utcnow
from errors import NotFound
from schemas import Order, OrderStatus, Payment, PaymentStatus, RequestStatus, Role, RoleRequest, User


class OrderStore:
    def __init__(self, database: Database):
        self.database = database

    @property
    def collection(self):
        return self.database.collection(ORDERS)

    def insert(self, order: Order) -> Order:
        order_id = self.database.create_document(ORDERS, order)
        return self.get(order_id)

    def get(self, order_id: str) -> Order:
        doc = self.database.get_document(ORDERS, {"_id": parse_object_id(order_id, "Order")})
        if not doc:
            raise NotFound("Order not found", order_id=order_id)
        return Order.model_validate(doc)

    def find_by_customer(self, email: str) -> List[Order]:
        docs = self.database.get_documents(ORDERS, {"user_email": email}, sort=[("created_at", DESCENDING)])
        return [Order.model_validate(doc) for doc in docs]

    def find_by_chef(self, chef_id: str) -> List[Order]:
        docs = self.database.get_documents(ORDERS, {"chef_id": chef_id}, sort=[("created_at", DESCENDING)])
        return [Order.model_validate(doc) for doc in docs]

    def mark_paid(self, order_id: str, transaction_id: str) -> Optional[Order]:
        """Pending -> Paid. Returns None when the order was not Pending."""
        with store_errors("mark order paid"):
            doc = self.collection.find_one_and_update(
                {"_id": parse_object_id(order_id, "Order"), "payment_status": PaymentStatus.PENDING.value},
                {"$set": {
                    "payment_status": PaymentStatus.PAID.value,
                    "transaction_id": transaction_id,
                    "updated_at": utcnow(),
                }},
                return_document=ReturnDocument.AFTER,
            )
        return Order.model_validate(serialize_doc(doc)) if doc else None

    def transition_status(self, order_id: str, expected: OrderStatus, new: OrderStatus) -> Optional[Order]:
        with store_errors("update order status"):
            doc = self.collection.find_one_and_update(
                {"_id": parse_object_id(order_id, "Order"), "order_status": OrderStatus(expected).value},
                {"$set": {"order_status": OrderStatus(new).value, "updated_at": utcnow()}},
                return_document=ReturnDocument.AFTER,
            )
        return Order.model_validate(serialize_doc(doc)) if doc else None


class PaymentLedger:
    """Append-only. At most one entry per provider transaction id."""

    def __init__(self, database: Database):
        self.database = database

    def find_by_transaction(self, transaction_id: str) -> Optional[Payment]:
        doc = self.database.get_document(PAYMENTS, {"transaction_id": transaction_id})
        return Payment.model_validate(doc) if doc else None

    def find_by_order(self, order_id: str) -> List[Payment]:
        docs = self.database.get_documents(PAYMENTS, {"order_id": order_id}, sort=[("created_at", DESCENDING)])
        return [Payment.model_validate(doc) for doc in docs]

    def append(self, payment: Payment) -> tuple:
        """Insert ``payment``; returns ``(stored, created)``.

        A concurrent writer that already recorded the same transaction wins
        and its entry is returned with ``created=False``.
        """
        try:
            payment_id = self.database.create_document(PAYMENTS, payment)
        except DuplicateKeyError:
            existing = self.find_by_transaction(payment.transaction_id)
            if existing is None:
                raise
            return existing, False
        return Payment.model_validate(self.database.get_document_by_id(PAYMENTS, payment_id)), True


class RequestStore:
    def __init__(self, database: Database):
        self.database = database

    @property
    def collection(self):
        return self.database.collection(REQUESTS)

    def insert(self, request: RoleRequest) -> RoleRequest:
        request_id = self.database.create_document(REQUESTS, request)
        return self.get(request_id)

    def get(self, request_id: str) -> RoleRequest:
        doc = self.database.get_document(REQUESTS, {"_id": parse_object_id(request_id, "Request")})
        if not doc:
            raise NotFound("Request not found", role_request_id=request_id)
        return RoleRequest.model_validate(doc)

    def find_pending(self, email: str, request_type: str) -> Optional[RoleRequest]:
        doc = self.database.get_document(REQUESTS, {
            "user_email": email,
            "request_type": request_type,
            "request_status": RequestStatus.PENDING.value,
        })
        return RoleRequest.model_validate(doc) if doc else None

    def chef_id_reserved(self, chef_id: str) -> bool:
        return self.database.get_document(REQUESTS, {"issued_chef_id": chef_id}) is not None

    def decide(
        self,
        request_id: str,
        status: RequestStatus,
        granted_role: Optional[Role] = None,
        chef_id: Optional[str] = None,
        reserve_chef_id: bool = False,
    ) -> Optional[RoleRequest]:
        """pending -> ``status``. Returns None when the request was no longer pending.

        With ``reserve_chef_id`` the chef id is also recorded as issued by
        this request; DuplicateKeyError is raised when another request
        already issued it.
        """
        update = {"request_status": RequestStatus(status).value, "updated_at": utcnow()}
        if granted_role is not None:
            update["granted_role"] = Role(granted_role).value
        if chef_id is not None:
            update["chef_id"] = chef_id
            if reserve_chef_id:
                update["issued_chef_id"] = chef_id
        with store_errors("decide request"):
            doc = self.collection.find_one_and_update(
                {"_id": parse_object_id(request_id, "Request"), "request_status": RequestStatus.PENDING.value},
                {"$set": update},
                return_document=ReturnDocument.AFTER,
            )
        return RoleRequest.model_validate(serialize_doc(doc)) if doc else None

    def mark_role_applied(self, request_id: str) -> bool:
        """Flag an approved request's grant as written. Only the first call wins."""
        with store_errors("mark role applied"):
            result = self.collection.update_one(
                {
                    "_id": parse_object_id(request_id, "Request"),
                    "request_status": RequestStatus.APPROVED.value,
                    "role_applied": {"$ne": True},
                },
                {"$set": {"role_applied": True, "updated_at": utcnow()}},
            )
        return result.modified_count > 0


class UserStore:
    def __init__(self, database: Database):
        self.database = database

    def insert(self, user: User) -> User:
        user_id = self.database.create_document(USERS, user)
        return User.model_validate(self.database.get_document_by_id(USERS, user_id))

    def get_by_email(self, email: str) -> Optional[User]:
        doc = self.database.get_document(USERS, {"email": email})
        return User.model_validate(doc) if doc else None

    def chef_id_taken(self, chef_id: str) -> bool:
        return self.database.get_document(USERS, {"chef_id": chef_id}) is not None

    def apply_role(self, email: str, role: Role, chef_id: Optional[str] = None) -> bool:
        """Set ``role``; chef ids only live on chef accounts."""
        update = {"$set": {"role": Role(role).value, "updated_at": utcnow()}}
        if chef_id is not None:
            update["$set"]["chef_id"] = chef_id
        else:
            update["$unset"] = {"chef_id": ""}
        with store_errors("update user role"):
            result = self.database.collection(USERS).update_one({"email": email}, update)
        return result.matched_count > 0
