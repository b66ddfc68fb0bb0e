"""Data models for agromart."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any
import uuid

CENTS = Decimal("0.01")


def _utc_now() -> datetime:
    """Return current UTC time as an aware datetime."""
    return datetime.now(timezone.utc)


def _generate_id() -> str:
    """Generate a new row ID."""
    return str(uuid.uuid4())


def quantize_money(amount: Decimal) -> Decimal:
    """Round a currency amount to cents."""
    return Decimal(amount).quantize(CENTS, rounding=ROUND_HALF_UP)


class Role(str, Enum):
    CUSTOMER = "CUSTOMER"
    SELLER = "SELLER"
    SHOP_OWNER = "SHOP_OWNER"
    RIDER = "RIDER"
    ADMIN = "ADMIN"


class ProductStatus(str, Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    OUT_OF_STOCK = "OUT_OF_STOCK"
    DISCONTINUED = "DISCONTINUED"


class DiscountType(str, Enum):
    PERCENTAGE = "PERCENTAGE"
    FIXED = "FIXED"


class PaymentMethod(str, Enum):
    CASH_ON_DELIVERY = "CASH_ON_DELIVERY"
    BKASH = "BKASH"
    NAGAD = "NAGAD"
    ROCKET = "ROCKET"
    BANK_TRANSFER = "BANK_TRANSFER"
    STRIPE = "STRIPE"

    @classmethod
    def parse(cls, value: str) -> "PaymentMethod | None":
        """Accept 'cash_on_delivery' as well as 'CASH_ON_DELIVERY'."""
        try:
            return cls(value.strip().upper())
        except (AttributeError, ValueError):
            return None


class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"


class OrderStatus(str, Enum):
    """Order lifecycle.

    Orders move forward one step at a time along the delivery pipeline.
    CANCELLED is reachable from any state before DELIVERED.
    """

    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    PREPARING = "PREPARING"
    READY_FOR_PICKUP = "READY_FOR_PICKUP"
    PICKED_UP = "PICKED_UP"
    OUT_FOR_DELIVERY = "OUT_FOR_DELIVERY"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self in (OrderStatus.DELIVERED, OrderStatus.CANCELLED)

    def allowed_transitions(self) -> set["OrderStatus"]:
        if self.is_terminal:
            return set()
        idx = ORDER_PIPELINE.index(self)
        return {ORDER_PIPELINE[idx + 1], OrderStatus.CANCELLED}

    def can_transition_to(self, target: "OrderStatus") -> bool:
        return target in self.allowed_transitions()


ORDER_PIPELINE: list[OrderStatus] = [
    OrderStatus.PENDING,
    OrderStatus.CONFIRMED,
    OrderStatus.PREPARING,
    OrderStatus.READY_FOR_PICKUP,
    OrderStatus.PICKED_UP,
    OrderStatus.OUT_FOR_DELIVERY,
    OrderStatus.DELIVERED,
]


# Models for checkout


@dataclass(frozen=True)
class OrderItemRequest:
    """A requested (product, quantity) line."""

    product_id: str
    quantity: int

    @classmethod
    def parse(cls, spec: str) -> "OrderItemRequest":
        """Parse 'PRODUCT_ID:QTY' (quantity defaults to 1)."""
        product_id, _, qty = spec.rpartition(":")
        if not product_id:
            return cls(product_id=spec, quantity=1)
        return cls(product_id=product_id, quantity=int(qty))


@dataclass(frozen=True)
class ValidatedItem:
    """A line item accepted by the catalog validator.

    unit_price is the live product price captured at validation time and
    becomes the frozen price on the order line.
    """

    product_id: str
    product_name: str
    seller_id: str
    quantity: int
    unit_price: Decimal

    @property
    def total_price(self) -> Decimal:
        return self.unit_price * self.quantity


@dataclass(frozen=True)
class CouponResolution:
    """Outcome of looking up a coupon code during pricing."""

    code: str | None
    applied: bool
    reason: str  # "applied" | "not_found" | "inactive" | "not_yet_valid" | "expired" | "below_minimum" | "none"
    discount: Decimal = Decimal("0.00")

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "applied": self.applied,
            "reason": self.reason,
            "discount": str(self.discount),
        }


NO_COUPON = CouponResolution(code=None, applied=False, reason="none")


@dataclass(frozen=True)
class PricingBreakdown:
    """Amounts computed for a set of validated items."""

    subtotal: Decimal
    shipping_fee: Decimal
    discount: Decimal
    total: Decimal
    coupon: CouponResolution = NO_COUPON
    items: list[ValidatedItem] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "subtotal": str(self.subtotal),
            "shippingFee": str(self.shipping_fee),
            "discount": str(self.discount),
            "total": str(self.total),
            "coupon": self.coupon.to_dict(),
            "items": [
                {
                    "productId": item.product_id,
                    "name": item.product_name,
                    "quantity": item.quantity,
                    "unitPrice": str(item.unit_price),
                    "totalPrice": str(item.total_price),
                }
                for item in self.items
            ],
        }
