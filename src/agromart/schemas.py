"""
Request and response schemas for agromart.

Field names are snake_case in Python and camelCase on the wire
(``shipping_address_id`` <-> ``shippingAddressId``).
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from sqlalchemy import inspect

from .models import OrderItemRequest
from .tables import Address, CartItem, Order, OrderItem, Product, User


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# --- Requests ---


class OrderItemIn(CamelModel):
    product_id: str = Field(..., min_length=1)
    quantity: int

    def to_request(self) -> OrderItemRequest:
        return OrderItemRequest(product_id=self.product_id, quantity=self.quantity)


class OrderCreateRequest(CamelModel):
    """Request body for creating an order."""

    shipping_address_id: Optional[str] = None
    payment_method: Optional[str] = None
    order_items: list[OrderItemIn] = Field(default_factory=list)
    coupon_code: Optional[str] = None


class QuoteRequest(CamelModel):
    """Request body for a pricing preview."""

    order_items: list[OrderItemIn] = Field(default_factory=list)
    coupon_code: Optional[str] = None
    shipping_address_id: Optional[str] = None


class OrderUpdateRequest(CamelModel):
    status: Optional[str] = None
    rider_id: Optional[str] = None


class CartAddRequest(CamelModel):
    product_id: str = ""
    quantity: int = 0


class CartUpdateRequest(CamelModel):
    quantity: int = 0


# --- Responses ---


class UserSummarySchema(CamelModel):
    id: str
    name: str
    email: str
    phone: Optional[str] = None


class AddressSchema(CamelModel):
    id: str
    name: str
    phone: Optional[str] = None
    address_line1: str
    address_line2: Optional[str] = None
    city: str
    state: Optional[str] = None
    postal_code: Optional[str] = None
    country: str
    is_default: bool


class ProductSummarySchema(CamelModel):
    id: str
    name: str
    unit: str
    price: Decimal


class OrderItemSchema(CamelModel):
    id: str
    product_id: str
    seller_id: str
    quantity: int
    unit_price: Decimal
    total_price: Decimal
    product: Optional[ProductSummarySchema] = None


class OrderSchema(CamelModel):
    id: str
    order_number: str
    status: str
    subtotal: Decimal
    delivery_fee: Decimal
    discount: Decimal
    total: Decimal
    payment_method: str
    payment_status: str
    coupon_code: Optional[str] = None
    customer_id: str
    rider_id: Optional[str] = None
    customer: Optional[UserSummarySchema] = None
    rider: Optional[UserSummarySchema] = None
    delivery_address: Optional[AddressSchema] = None
    items: list[OrderItemSchema]
    created_at: datetime
    updated_at: datetime


class CouponResultSchema(CamelModel):
    code: Optional[str] = None
    applied: bool
    reason: str
    discount: Decimal


class OrderCreatedResponse(CamelModel):
    message: str
    order: OrderSchema
    coupon: CouponResultSchema


class PaginationSchema(CamelModel):
    page: int
    limit: int
    total: int
    total_pages: int


class OrderListResponse(CamelModel):
    orders: list[OrderSchema]
    pagination: PaginationSchema


class OrderUpdatedResponse(CamelModel):
    message: str
    order: OrderSchema


class QuoteLineSchema(CamelModel):
    product_id: str
    name: str
    quantity: int
    unit_price: Decimal
    total_price: Decimal


class QuoteResponse(CamelModel):
    items: list[QuoteLineSchema]
    subtotal: Decimal
    shipping_fee: Decimal
    discount: Decimal
    total: Decimal
    coupon: CouponResultSchema


class CartItemSchema(CamelModel):
    id: str
    product_id: str
    name: str
    price: Decimal
    unit: str
    quantity: int
    max_quantity: int
    min_quantity: int
    seller_id: str
    stock_quantity: int


class CartResponse(CamelModel):
    cart_items: list[CartItemSchema]
    total_items: int
    total_price: Decimal


class CartItemResponse(CamelModel):
    message: str
    cart_item: CartItemSchema


class MessageResponse(CamelModel):
    message: str


# --- Converters ---


def _loaded(obj, attr: str) -> bool:
    """True if a relationship was loaded (safe to read on a detached row)."""
    return attr not in inspect(obj).unloaded


def user_to_schema(user: User | None) -> UserSummarySchema | None:
    if user is None:
        return None
    return UserSummarySchema(id=user.id, name=user.name, email=user.email, phone=user.phone)


def address_to_schema(address: Address) -> AddressSchema:
    return AddressSchema(
        id=address.id,
        name=address.name,
        phone=address.phone,
        address_line1=address.address_line1,
        address_line2=address.address_line2,
        city=address.city,
        state=address.state,
        postal_code=address.postal_code,
        country=address.country,
        is_default=address.is_default,
    )


def _product_summary(product: Product) -> ProductSummarySchema:
    return ProductSummarySchema(
        id=product.id, name=product.name, unit=product.unit, price=product.price
    )


def order_item_to_schema(item: OrderItem) -> OrderItemSchema:
    product = None
    if _loaded(item, "product") and item.product is not None:
        product = _product_summary(item.product)
    return OrderItemSchema(
        id=item.id,
        product_id=item.product_id,
        seller_id=item.seller_id,
        quantity=item.quantity,
        unit_price=item.unit_price,
        total_price=item.total_price,
        product=product,
    )


def order_to_schema(order: Order) -> OrderSchema:
    """Convert an Order row (with whatever relations are loaded) to its schema."""
    customer = user_to_schema(order.customer) if _loaded(order, "customer") else None
    rider = user_to_schema(order.rider) if _loaded(order, "rider") else None
    address = None
    if _loaded(order, "delivery_address") and order.delivery_address is not None:
        address = address_to_schema(order.delivery_address)
    return OrderSchema(
        id=order.id,
        order_number=order.order_number,
        status=order.status.value,
        subtotal=order.subtotal,
        delivery_fee=order.delivery_fee,
        discount=order.discount,
        total=order.total,
        payment_method=order.payment_method.value,
        payment_status=order.payment_status.value,
        coupon_code=order.coupon_code,
        customer_id=order.customer_id,
        rider_id=order.rider_id,
        customer=customer,
        rider=rider,
        delivery_address=address,
        items=[order_item_to_schema(i) for i in order.items],
        created_at=order.created_at,
        updated_at=order.updated_at,
    )


def cart_item_to_schema(item: CartItem) -> CartItemSchema:
    product = item.product
    return CartItemSchema(
        id=item.id,
        product_id=product.id,
        name=product.name,
        price=product.price,
        unit=product.unit,
        quantity=item.quantity,
        max_quantity=product.max_order_quantity or product.stock_quantity,
        min_quantity=product.min_order_quantity,
        seller_id=product.seller_id,
        stock_quantity=product.stock_quantity,
    )
