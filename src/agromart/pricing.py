"""Pricing of validated order lines: subtotal, shipping and coupon discount."""

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, Protocol

from sqlalchemy import select
from sqlalchemy.orm import Session

from .config import Settings
from .models import (
    NO_COUPON,
    CouponResolution,
    DiscountType,
    PricingBreakdown,
    ValidatedItem,
    _utc_now,
    quantize_money,
)
from .tables import Address, Coupon

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")


class ShippingPolicy(Protocol):
    """Decides the delivery fee for an order."""

    def fee(self, subtotal: Decimal, address: Address | None = None) -> Decimal:
        ...


class FlatThresholdShipping:
    """Flat fee, waived when the subtotal is strictly above the threshold."""

    def __init__(self, threshold: Decimal = Decimal("1000"), fee: Decimal = Decimal("50")):
        self.threshold = Decimal(threshold)
        self.flat_fee = Decimal(fee)

    def fee(self, subtotal: Decimal, address: Address | None = None) -> Decimal:
        if subtotal > self.threshold:
            return ZERO
        return quantize_money(self.flat_fee)


class DeliveryAreaShipping(FlatThresholdShipping):
    """Uses the delivery area's fee when the address has an active area."""

    def fee(self, subtotal: Decimal, address: Address | None = None) -> Decimal:
        if subtotal > self.threshold:
            return ZERO
        area = address.delivery_area if address is not None else None
        if area is not None and area.is_active:
            return quantize_money(area.delivery_fee)
        return quantize_money(self.flat_fee)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; they are stored as UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def coupon_discount(coupon: Coupon, subtotal: Decimal) -> Decimal:
    """Discount a coupon grants on a subtotal, ignoring eligibility."""
    value = Decimal(coupon.discount_value)
    if coupon.discount_type == DiscountType.PERCENTAGE:
        discount = subtotal * value / Decimal(100)
        if coupon.max_discount is not None:
            discount = min(discount, Decimal(coupon.max_discount))
    else:
        discount = value
    return quantize_money(discount)


def resolve_coupon(
    session: Session,
    code: str | None,
    subtotal: Decimal,
    now: datetime | None = None,
) -> CouponResolution:
    """
    Look up a coupon code and decide whether it applies to a subtotal.

    An unknown, inactive, out-of-window or under-minimum code never raises:
    it yields a resolution with applied=False, zero discount and the reason.
    """
    if not code:
        return NO_COUPON

    now = now or _utc_now()
    coupon = session.scalars(select(Coupon).where(Coupon.code == code)).first()

    reason = "applied"
    if coupon is None:
        reason = "not_found"
    elif not coupon.is_active:
        reason = "inactive"
    elif now < _as_utc(coupon.valid_from):
        reason = "not_yet_valid"
    elif now > _as_utc(coupon.valid_until):
        reason = "expired"
    elif subtotal < Decimal(coupon.min_order_value or 0):
        reason = "below_minimum"

    if reason != "applied":
        logger.info("coupon_not_applied code=%s reason=%s subtotal=%s", code, reason, subtotal)
        return CouponResolution(code=code, applied=False, reason=reason)

    discount = coupon_discount(coupon, subtotal)
    return CouponResolution(code=code, applied=True, reason=reason, discount=discount)


class PricingEngine:
    """Computes the amounts for an order from validated items."""

    def __init__(
        self,
        shipping: ShippingPolicy | None = None,
        clock: Callable[[], datetime] = _utc_now,
    ):
        """
        Initialize PricingEngine.

        Args:
            shipping: Shipping fee policy (defaults to free over 1000, else 50).
            clock: Source of "now" for coupon validity windows.
        """
        self.shipping = shipping or FlatThresholdShipping()
        self.clock = clock

    @classmethod
    def from_settings(cls, settings: Settings) -> "PricingEngine":
        return cls(
            shipping=DeliveryAreaShipping(
                threshold=settings.free_shipping_threshold,
                fee=settings.flat_shipping_fee,
            )
        )

    @staticmethod
    def subtotal(items: list[ValidatedItem]) -> Decimal:
        return quantize_money(sum((item.total_price for item in items), ZERO))

    def quote(
        self,
        session: Session,
        items: list[ValidatedItem],
        coupon_code: str | None = None,
        address: Address | None = None,
    ) -> PricingBreakdown:
        """Price validated items: total = subtotal + shipping - discount."""
        subtotal = self.subtotal(items)
        shipping_fee = self.shipping.fee(subtotal, address)
        coupon = resolve_coupon(session, coupon_code, subtotal, now=self.clock())
        total = subtotal + shipping_fee - coupon.discount

        return PricingBreakdown(
            subtotal=subtotal,
            shipping_fee=shipping_fee,
            discount=coupon.discount,
            total=quantize_money(total),
            coupon=coupon,
            items=list(items),
        )
