"""Order creation: validation, pricing and the atomic checkout commit."""

import logging
from typing import Callable, Iterable, Sequence

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .cart_store import CartStore
from .database import Database
from .errors import (
    AgromartError,
    AuthorizationError,
    InsufficientStockError,
    InvalidRequestError,
    TransactionFailureError,
    UserNotFoundError,
)
from .models import (
    OrderItemRequest,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    PricingBreakdown,
    Role,
    ValidatedItem,
    quantize_money,
)
from .numbering import OrderNumberGenerator
from .pricing import PricingEngine
from .tables import Address, Order, OrderItem, Product, User
from .validator import CatalogValidator

logger = logging.getLogger(__name__)

CartCleanup = Callable[[Session, str, Iterable[str]], int]


def _check_items(items: Sequence[OrderItemRequest]) -> list[OrderItemRequest]:
    if not items:
        raise InvalidRequestError("Shipping address, payment method, and order items are required")
    for item in items:
        qty = item.quantity
        if not item.product_id or isinstance(qty, bool) or not isinstance(qty, int) or qty <= 0:
            raise InvalidRequestError("Each order item needs a product ID and a positive quantity")
    return list(items)


class OrderCoordinator:
    """
    Creates orders as one all-or-nothing unit of work.

    The validator, pricing engine, number generator and cart cleanup are
    injected so each can be exercised or replaced on its own.
    """

    def __init__(
        self,
        database: Database,
        validator: CatalogValidator | None = None,
        pricing: PricingEngine | None = None,
        numbering: OrderNumberGenerator | None = None,
        cart_cleanup: CartCleanup = CartStore.remove_products,
    ):
        self.database = database
        self.validator = validator or CatalogValidator()
        self.pricing = pricing or PricingEngine()
        self.numbering = numbering or OrderNumberGenerator()
        self.cart_cleanup = cart_cleanup

    # --- Preconditions ---

    @staticmethod
    def _require_customer(session: Session, customer_id: str) -> User:
        customer = session.get(User, customer_id)
        if customer is None:
            raise UserNotFoundError(customer_id)
        if customer.role != Role.CUSTOMER:
            raise AuthorizationError("Only customers can create orders")
        return customer

    @staticmethod
    def _owned_address(session: Session, customer_id: str, address_id: str) -> Address:
        address = session.scalars(
            select(Address).where(Address.id == address_id, Address.user_id == customer_id)
        ).first()
        if address is None:
            raise InvalidRequestError("Invalid shipping address")
        return address

    # --- Commit phase ---

    @staticmethod
    def _decrement_stock(session: Session, item: ValidatedItem) -> None:
        """Take stock for one line; refuses to go below zero."""
        result = session.execute(
            update(Product)
            .where(Product.id == item.product_id, Product.stock_quantity >= item.quantity)
            .values(stock_quantity=Product.stock_quantity - item.quantity)
        )
        if result.rowcount != 1:
            available = session.scalar(
                select(Product.stock_quantity).where(Product.id == item.product_id)
            )
            logger.warning(
                "stock_decrement_rejected product_id=%s requested=%s available=%s",
                item.product_id,
                item.quantity,
                available,
            )
            raise InsufficientStockError(
                item.product_id, item.product_name, item.quantity, available
            )

    def _write_order(
        self,
        session: Session,
        customer: User,
        address: Address,
        method: PaymentMethod,
        priced: PricingBreakdown,
    ) -> Order:
        order = Order(
            order_number=self.numbering.next_number(session),
            status=OrderStatus.PENDING,
            subtotal=priced.subtotal,
            delivery_fee=priced.shipping_fee,
            discount=priced.discount,
            total=priced.total,
            payment_method=method,
            payment_status=PaymentStatus.PENDING,
            coupon_code=priced.coupon.code if priced.coupon.applied else None,
        )
        order.customer = customer
        order.delivery_address = address
        session.add(order)
        session.flush()

        for position, item in enumerate(priced.items):
            line = OrderItem(
                position=position,
                seller_id=item.seller_id,
                quantity=item.quantity,
                unit_price=item.unit_price,
                total_price=quantize_money(item.total_price),
            )
            line.product = session.get(Product, item.product_id)
            order.items.append(line)
            session.flush()
            self._decrement_stock(session, item)

        self.cart_cleanup(session, customer.id, [item.product_id for item in priced.items])
        session.flush()
        return order

    # --- Public operations ---

    def quote(
        self,
        customer_id: str,
        items: Sequence[OrderItemRequest],
        coupon_code: str | None = None,
        address_id: str | None = None,
    ) -> PricingBreakdown:
        """Validate and price items without writing anything."""
        requests = _check_items(items)
        with self.database.transaction() as session:
            address = None
            if address_id:
                address = self._owned_address(session, customer_id, address_id)
            validated = self.validator.validate(session, requests)
            return self.pricing.quote(session, validated, coupon_code, address)

    def create_order(
        self,
        customer_id: str,
        address_id: str,
        payment_method: str,
        items: Sequence[OrderItemRequest],
        coupon_code: str | None = None,
    ) -> tuple[Order, PricingBreakdown]:
        """
        Create a PENDING order for a customer.

        Validation, pricing, the order row, its lines, the stock decrements
        and the cart cleanup all run in one transaction. Any failure rolls
        the whole unit back: no order, no lines, no stock change, no cart
        change.

        Returns:
            The persisted order (lines, products and delivery address
            loaded) and the pricing breakdown it was built from.

        Raises:
            InvalidRequestError: Missing fields, unknown payment method, or
                an address the customer doesn't own.
            AuthorizationError: The user is not a customer.
            CatalogViolationError: The first line that breaks a catalog rule,
                including stock taken by a concurrent checkout.
            TransactionFailureError: The datastore rejected the commit.
        """
        if not address_id or not payment_method:
            raise InvalidRequestError(
                "Shipping address, payment method, and order items are required"
            )
        method = PaymentMethod.parse(payment_method)
        if method is None:
            raise InvalidRequestError(f"Unsupported payment method: {payment_method}")
        requests = _check_items(items)

        try:
            with self.database.transaction() as session:
                customer = self._require_customer(session, customer_id)
                address = self._owned_address(session, customer_id, address_id)
                validated = self.validator.validate(session, requests)
                priced = self.pricing.quote(session, validated, coupon_code, address)
                order = self._write_order(session, customer, address, method, priced)
        except AgromartError:
            raise
        except SQLAlchemyError as e:
            logger.exception(
                "order_transaction_failed customer_id=%s address_id=%s products=%s",
                customer_id,
                address_id,
                [item.product_id for item in requests],
            )
            raise TransactionFailureError(e.__class__.__name__) from e

        logger.info(
            "order_created order_number=%s customer_id=%s lines=%s total=%s coupon=%s",
            order.order_number,
            customer_id,
            len(order.items),
            order.total,
            priced.coupon.reason,
        )
        return order, priced
