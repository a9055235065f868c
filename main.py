import time
import uuid
from contextlib import asynccontextmanager
from decimal import Decimal
from typing import Any, List, Optional

import structlog
from fastapi import Depends, FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel

from config import Settings, get_settings
from database import Database
from errors import ServiceError
from logging_config import setup_logging
from orders import OrderService
from payment_provider import StripePaymentProvider
from payments import PaymentReconciliationEngine
from role_requests import ChefIdIssuer, RoleRequestWorkflow
from stores import OrderStore, PaymentLedger, RequestStore, UserStore

logger = structlog.get_logger(__name__)


class Services:
    """Everything a request handler needs, built once per process."""

    def __init__(self, database: Database, provider: StripePaymentProvider, settings: Settings):
        self.database = database
        orders = OrderStore(database)
        requests = RequestStore(database)
        users = UserStore(database)
        self.orders = OrderService(orders)
        self.payments = PaymentReconciliationEngine(
            orders,
            PaymentLedger(database),
            provider,
            site_domain=settings.site_domain,
            currency=settings.checkout_currency,
        )
        self.role_requests = RoleRequestWorkflow(
            requests,
            users,
            ChefIdIssuer(users, requests, max_attempts=settings.chef_id_max_attempts),
        )


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    setup_logging(settings)
    database = Database(settings.database_name, url=settings.database_url, timeout_ms=settings.database_timeout_ms)
    database.open()
    provider = StripePaymentProvider(settings.stripe_secret_key or "", timeout_seconds=settings.stripe_timeout_seconds)
    app.state.services = Services(database, provider, settings)
    logger.info("application_startup", env=settings.app_env)
    try:
        yield
    finally:
        database.close()
        logger.info("application_shutdown")


app = FastAPI(title="Chef Origin Ordering API", version="1.0.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().get_allowed_origins_list(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def bind_request_context(request: Request, call_next: Any):
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(request_id=request_id, method=request.method, path=request.url.path)
    start_time = time.time()
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    logger.info(
        "request_completed",
        status_code=response.status_code,
        duration_ms=round((time.time() - start_time) * 1000, 2),
    )
    return response


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    log = logger.warning if exc.status_code < 500 else logger.error
    log("request_failed", error=exc.kind, message=exc.message, **exc.context)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def get_services(request: Request) -> Services:
    return request.app.state.services


def _record(model: BaseModel) -> dict:
    return jsonable_encoder(model.model_dump(by_alias=True))


# ============ Request bodies (camelCase or snake_case accepted) ==========
class Body(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CreateOrderRequest(Body):
    food_id: str
    meal_name: str
    price: Decimal = Field(..., ge=0)
    quantity: int = Field(..., ge=1)
    chef_id: Optional[str] = None
    chef_name: Optional[str] = None
    delivery_time: Optional[str] = None
    user_email: Optional[EmailStr] = None
    user_address: Optional[str] = None


class UpdateOrderStatusRequest(Body):
    order_status: str


class CheckoutSessionRequest(Body):
    order_id: str


class ConfirmPaymentRequest(Body):
    session_id: str
    order_id: Optional[str] = None


class SubmitRoleRequest(Body):
    user_name: str
    user_email: EmailStr
    request_type: str


class DecideRoleRequest(Body):
    request_status: str
    new_role: Optional[str] = None


# ===================== Health =====================
@app.get("/")
def root():
    return {"message": "Chef Origin API is running!"}


@app.get("/health")
def health(services: Services = Depends(get_services)):
    response = {"backend": "running", "database": "unavailable", "collections": []}
    if services.database.ping():
        response["database"] = "connected"
        response["collections"] = services.database.list_collection_names()
    return response


# ===================== Orders =====================
@app.post("/orders", status_code=status.HTTP_201_CREATED)
def create_order(payload: CreateOrderRequest, services: Services = Depends(get_services)):
    order = services.orders.place_order(**payload.model_dump())
    return _record(order)


@app.get("/orders/user/{email}")
def list_customer_orders(email: str, services: Services = Depends(get_services)) -> List[dict]:
    return [_record(order) for order in services.orders.orders_for_customer(email)]


@app.get("/orders/chef/{chef_id}")
def list_chef_orders(chef_id: str, services: Services = Depends(get_services)) -> List[dict]:
    return [_record(order) for order in services.orders.orders_for_chef(chef_id)]


@app.get("/orders/{order_id}")
def get_order(order_id: str, services: Services = Depends(get_services)):
    return _record(services.orders.get_order(order_id))


@app.put("/orders/{order_id}/status")
def update_order_status(order_id: str, payload: UpdateOrderStatusRequest, services: Services = Depends(get_services)):
    order = services.orders.update_order_status(order_id, payload.order_status)
    return {"message": "Order status updated successfully", "orderStatus": order.order_status}


@app.get("/orders/{order_id}/payments")
def list_order_payments(order_id: str, services: Services = Depends(get_services)) -> List[dict]:
    return [_record(payment) for payment in services.payments.payments_for_order(order_id)]


# ===================== Payments =====================
@app.post("/checkout-sessions")
def create_checkout_session(payload: CheckoutSessionRequest, services: Services = Depends(get_services)):
    result = services.payments.create_checkout_session(payload.order_id)
    return {"url": result.url, "sessionId": result.session_id}


@app.post("/payments/confirm")
def confirm_payment(payload: ConfirmPaymentRequest, services: Services = Depends(get_services)):
    confirmation = services.payments.confirm_payment(payload.session_id, payload.order_id)
    return jsonable_encoder({
        "success": True,
        "paymentId": confirmation.payment_id,
        "orderId": confirmation.order_id,
        "amount": confirmation.amount,
        "currency": confirmation.currency,
    })


# ===================== Role Requests =====================
@app.post("/requests", status_code=status.HTTP_201_CREATED)
def submit_request(payload: SubmitRoleRequest, services: Services = Depends(get_services)):
    request = services.role_requests.submit_request(payload.user_name, payload.user_email, payload.request_type)
    return _record(request)


@app.get("/requests/{request_id}")
def get_request(request_id: str, services: Services = Depends(get_services)):
    return _record(services.role_requests.get_request(request_id))


@app.put("/requests/{request_id}")
def decide_request(request_id: str, payload: DecideRoleRequest, services: Services = Depends(get_services)):
    request = services.role_requests.decide_request(request_id, payload.request_status, payload.new_role)
    return {
        "message": "Request updated successfully",
        "requestStatus": request.request_status,
        "role": request.granted_role,
        "chefId": request.chef_id,
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=get_settings().port)
