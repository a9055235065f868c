"""
Database Schemas for the Chef Origin ordering service

Each Pydantic model below corresponds to a MongoDB collection:
- Order -> "orders"
- Payment -> "payments" (append-only ledger)
- RoleRequest -> "requests"
- User -> "users" (only the fields the role workflow touches)

References between collections are plain string ids and emails; nothing
in storage enforces them, so they are checked at lookup time.
"""
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import NewType, Optional, Literal

from pydantic import BaseModel, ConfigDict, Field, EmailStr

OrderId = NewType("OrderId", str)
PaymentId = NewType("PaymentId", str)
RequestId = NewType("RequestId", str)
TransactionId = NewType("TransactionId", str)


class PaymentStatus(str, Enum):
    PENDING = "Pending"
    PAID = "Paid"


class OrderStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PREPARING = "preparing"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class RequestType(str, Enum):
    CHEF = "chef"
    ADMIN = "admin"


class RequestStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class Role(str, Enum):
    USER = "user"
    CHEF = "chef"
    ADMIN = "admin"


class Record(BaseModel):
    model_config = ConfigDict(populate_by_name=True, use_enum_values=True, validate_default=True)

    id: Optional[str] = Field(None, alias="_id", description="Stringified ObjectId")
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class Order(Record):
    food_id: str = Field(..., description="Reference to meal _id")
    meal_name: str
    price: Decimal = Field(..., ge=0, description="Unit price in currency units")
    quantity: int = Field(..., ge=1)
    chef_id: Optional[str] = Field(None, description="Reference to user.chef_id")
    chef_name: Optional[str] = None
    delivery_time: Optional[str] = Field(None, description="Delivery time estimate as shown to the customer")
    user_email: Optional[EmailStr] = Field(None, description="Customer email")
    user_address: Optional[str] = None
    payment_status: PaymentStatus = PaymentStatus.PENDING
    order_status: OrderStatus = OrderStatus.PENDING
    transaction_id: Optional[str] = Field(None, description="Checkout session id, set on settlement")


class Payment(Record):
    order_id: str = Field(..., description="Reference to order _id")
    transaction_id: str = Field(..., description="Provider checkout session id")
    amount: Decimal = Field(..., ge=0, description="Settled amount in currency units")
    currency: str
    status: Literal["paid"] = "paid"


class RoleRequest(Record):
    user_name: str
    user_email: EmailStr
    request_type: RequestType
    request_status: RequestStatus = RequestStatus.PENDING
    granted_role: Optional[Role] = Field(None, description="Role applied on approval")
    chef_id: Optional[str] = Field(None, description="Chef identifier granted on approval")
    issued_chef_id: Optional[str] = Field(None, description="Chef identifier newly drawn for this request")
    role_applied: bool = Field(False, description="Set once the grant has been written to the user")


class User(Record):
    uid: Optional[str] = Field(None, description="External auth subject id")
    name: Optional[str] = None
    email: str
    role: Role = Role.USER
    chef_id: Optional[str] = None
