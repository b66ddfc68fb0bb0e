"""FastAPI REST API for agromart checkout, orders and carts."""

import logging
import math
from functools import lru_cache
from typing import Optional

from fastapi import Depends, FastAPI, Header, Query, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from . import __version__
from .cart_store import CartStore
from .checkout import OrderCoordinator
from .config import load_settings
from .database import Database
from .errors import (
    AgromartError,
    AuthenticationError,
    AuthorizationError,
    CartItemNotFoundError,
    CatalogViolationError,
    InvalidRequestError,
    InvalidStatusTransitionError,
    OrderNotFoundError,
    TransactionFailureError,
    UserNotFoundError,
)
from .models import CouponResolution, Role
from .order_store import OrderStore
from .pricing import PricingEngine
from .schemas import (
    CartAddRequest,
    CartItemResponse,
    CartResponse,
    CartUpdateRequest,
    CouponResultSchema,
    MessageResponse,
    OrderCreateRequest,
    OrderCreatedResponse,
    OrderListResponse,
    OrderSchema,
    OrderUpdateRequest,
    OrderUpdatedResponse,
    PaginationSchema,
    QuoteLineSchema,
    QuoteRequest,
    QuoteResponse,
    cart_item_to_schema,
    order_to_schema,
)
from .tables import User

logger = logging.getLogger(__name__)


# --- Dependencies ---


@lru_cache(maxsize=1)
def get_database() -> Database:
    """Get the process-wide Database built from settings."""
    return Database.from_settings()


def get_coordinator(database: Database = Depends(get_database)) -> OrderCoordinator:
    return OrderCoordinator(database, pricing=PricingEngine.from_settings(load_settings()))


def get_order_store(database: Database = Depends(get_database)) -> OrderStore:
    return OrderStore(database)


def get_cart_store(database: Database = Depends(get_database)) -> CartStore:
    return CartStore(database)


def get_current_user(
    x_user_id: Optional[str] = Header(default=None),
    database: Database = Depends(get_database),
) -> User:
    """Resolve the acting user from the X-User-Id header."""
    if not x_user_id:
        raise AuthenticationError()
    with database.session() as session:
        user = session.get(User, x_user_id)
    if user is None:
        raise AuthenticationError()
    return user


def coupon_to_schema(coupon: CouponResolution) -> CouponResultSchema:
    return CouponResultSchema(
        code=coupon.code,
        applied=coupon.applied,
        reason=coupon.reason,
        discount=coupon.discount,
    )


# --- FastAPI App ---


app = FastAPI(
    title="agromart API",
    description="REST API for marketplace checkout, orders and carts",
    version=__version__,
)

# CORS for local development
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:5173",
        "http://localhost:3000",
        "http://127.0.0.1:5173",
        "http://127.0.0.1:3000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- Global Exception Handler ---


# Map exception types to HTTP status codes; subclasses inherit their base's code
ERROR_STATUS_CODES: dict[type, int] = {
    InvalidRequestError: 400,
    CatalogViolationError: 400,
    InvalidStatusTransitionError: 400,
    AuthenticationError: 401,
    AuthorizationError: 403,
    UserNotFoundError: 404,
    OrderNotFoundError: 404,
    CartItemNotFoundError: 404,
    TransactionFailureError: 500,
}


def status_for(exc: AgromartError) -> int:
    for cls in type(exc).__mro__:
        if cls in ERROR_STATUS_CODES:
            return ERROR_STATUS_CODES[cls]
    return 500


@app.exception_handler(AgromartError)
async def agromart_error_handler(request: Request, exc: AgromartError) -> JSONResponse:
    """Map AgromartError subclasses to appropriate HTTP responses."""
    status_code = status_for(exc)
    content = {"detail": str(exc), "error_type": type(exc).__name__}
    if isinstance(exc, CatalogViolationError):
        content["product_id"] = exc.product_id
        content["rule"] = exc.rule
    return JSONResponse(status_code=status_code, content=content)


def _describe_validation_error(error: dict) -> str:
    location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
    return f"{location}: {error.get('msg')}" if location else str(error.get("msg"))


@app.exception_handler(RequestValidationError)
async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Missing or malformed request fields are a 400, like InvalidRequestError."""
    problems = "; ".join(_describe_validation_error(e) for e in exc.errors())
    return JSONResponse(
        status_code=ERROR_STATUS_CODES[InvalidRequestError],
        content={
            "detail": f"Invalid request: {problems}",
            "error_type": InvalidRequestError.__name__,
        },
    )


# --- Endpoints ---


@app.get("/api/health")
def health_check(database: Database = Depends(get_database)):
    """Report service and database status."""
    try:
        initialized = database.is_initialized()
    except SQLAlchemyError as e:
        return {"status": "error", "detail": str(e)}
    return {"status": "ok", "database_initialized": initialized, "version": __version__}


# --- Order Endpoints ---


@app.post("/api/orders", response_model=OrderCreatedResponse, status_code=201)
def create_order(
    request: OrderCreateRequest,
    user: User = Depends(get_current_user),
    coordinator: OrderCoordinator = Depends(get_coordinator),
):
    """Create an order from the submitted items (customers only)."""
    if user.role != Role.CUSTOMER:
        raise AuthorizationError("Only customers can create orders")
    order, priced = coordinator.create_order(
        customer_id=user.id,
        address_id=request.shipping_address_id or "",
        payment_method=request.payment_method or "",
        items=[item.to_request() for item in request.order_items],
        coupon_code=request.coupon_code,
    )
    return OrderCreatedResponse(
        message="Order created successfully",
        order=order_to_schema(order),
        coupon=coupon_to_schema(priced.coupon),
    )


@app.post("/api/orders/quote", response_model=QuoteResponse)
def quote_order(
    request: QuoteRequest,
    user: User = Depends(get_current_user),
    coordinator: OrderCoordinator = Depends(get_coordinator),
):
    """Preview pricing for items without placing an order."""
    priced = coordinator.quote(
        customer_id=user.id,
        items=[item.to_request() for item in request.order_items],
        coupon_code=request.coupon_code,
        address_id=request.shipping_address_id,
    )
    return QuoteResponse(
        items=[
            QuoteLineSchema(
                product_id=i.product_id,
                name=i.product_name,
                quantity=i.quantity,
                unit_price=i.unit_price,
                total_price=i.total_price,
            )
            for i in priced.items
        ],
        subtotal=priced.subtotal,
        shipping_fee=priced.shipping_fee,
        discount=priced.discount,
        total=priced.total,
        coupon=coupon_to_schema(priced.coupon),
    )


@app.get("/api/orders", response_model=OrderListResponse)
def list_orders(
    status: Optional[str] = Query(default=None),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    user: User = Depends(get_current_user),
    store: OrderStore = Depends(get_order_store),
):
    """List orders visible to the acting user."""
    orders, total = store.list_orders(user, status=status, page=page, limit=limit)
    return OrderListResponse(
        orders=[order_to_schema(o) for o in orders],
        pagination=PaginationSchema(
            page=page,
            limit=limit,
            total=total,
            total_pages=math.ceil(total / limit),
        ),
    )


@app.get("/api/orders/{order_id}", response_model=OrderSchema)
def get_order(
    order_id: str,
    user: User = Depends(get_current_user),
    store: OrderStore = Depends(get_order_store),
):
    """Get a single order the acting user may see."""
    return order_to_schema(store.get_order(user, order_id))


@app.put("/api/orders/{order_id}", response_model=OrderUpdatedResponse)
def update_order(
    order_id: str,
    request: OrderUpdateRequest,
    user: User = Depends(get_current_user),
    store: OrderStore = Depends(get_order_store),
):
    """Change an order's status and/or assign a rider."""
    order = store.update_order(user, order_id, status=request.status, rider_id=request.rider_id)
    return OrderUpdatedResponse(message="Order updated successfully", order=order_to_schema(order))


# --- Cart Endpoints ---


@app.get("/api/cart", response_model=CartResponse)
def get_cart(
    user: User = Depends(get_current_user),
    store: CartStore = Depends(get_cart_store),
):
    """Get the acting user's cart."""
    items, total_items, total_price = store.summary(user.id)
    return CartResponse(
        cart_items=[cart_item_to_schema(i) for i in items],
        total_items=total_items,
        total_price=total_price,
    )


@app.post("/api/cart", response_model=CartItemResponse)
def add_to_cart(
    request: CartAddRequest,
    response: Response,
    user: User = Depends(get_current_user),
    store: CartStore = Depends(get_cart_store),
):
    """Add a product to the cart; 201 for a new line, 200 when incremented."""
    item, created = store.add_item(user.id, request.product_id, request.quantity)
    if created:
        response.status_code = 201
        message = "Item added to cart successfully"
    else:
        message = "Cart updated successfully"
    return CartItemResponse(message=message, cart_item=cart_item_to_schema(item))


@app.put("/api/cart/{item_id}", response_model=CartItemResponse)
def update_cart_item(
    item_id: str,
    request: CartUpdateRequest,
    user: User = Depends(get_current_user),
    store: CartStore = Depends(get_cart_store),
):
    """Set the quantity of a cart line."""
    item = store.update_item(user.id, item_id, request.quantity)
    return CartItemResponse(
        message="Cart item updated successfully", cart_item=cart_item_to_schema(item)
    )


@app.delete("/api/cart/{item_id}", response_model=MessageResponse)
def remove_cart_item(
    item_id: str,
    user: User = Depends(get_current_user),
    store: CartStore = Depends(get_cart_store),
):
    """Remove a line from the cart."""
    store.remove_item(user.id, item_id)
    return MessageResponse(message="Cart item removed successfully")


@app.delete("/api/cart", response_model=MessageResponse)
def clear_cart(
    user: User = Depends(get_current_user),
    store: CartStore = Depends(get_cart_store),
):
    """Remove every line from the cart."""
    removed = store.clear(user.id)
    return MessageResponse(message=f"Cart cleared ({removed} item(s) removed)")
