"""Order queries and status updates for agromart."""

import logging

from sqlalchemy import Select, func, select
from sqlalchemy.orm import joinedload, selectinload

from .database import Database
from .errors import (
    AuthorizationError,
    InvalidRequestError,
    InvalidStatusTransitionError,
    OrderNotFoundError,
    UserNotFoundError,
)
from .models import OrderStatus, Role
from .tables import Order, OrderItem, User

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100

SELLER_ROLES = (Role.SELLER, Role.SHOP_OWNER)


def _order_options():
    return (
        joinedload(Order.customer),
        joinedload(Order.rider),
        joinedload(Order.delivery_address),
        selectinload(Order.items).joinedload(OrderItem.product),
    )


def scope_to_user(stmt: Select, user: User) -> Select:
    """Restrict an order query to what the user's role may see."""
    if user.role == Role.ADMIN:
        return stmt
    if user.role in SELLER_ROLES:
        return stmt.where(Order.items.any(OrderItem.seller_id == user.id))
    if user.role == Role.RIDER:
        return stmt.where(Order.rider_id == user.id)
    return stmt.where(Order.customer_id == user.id)


def parse_status(value: str | OrderStatus) -> OrderStatus:
    if isinstance(value, OrderStatus):
        return value
    try:
        return OrderStatus(value.strip().upper())
    except (AttributeError, ValueError):
        raise InvalidRequestError(f"Unknown order status: {value}") from None


class OrderStore:
    """Reads and updates orders on behalf of a user."""

    def __init__(self, database: Database):
        self.database = database

    def list_orders(
        self,
        user: User,
        status: str | OrderStatus | None = None,
        page: int = 1,
        limit: int = 10,
    ) -> tuple[list[Order], int]:
        """
        List orders visible to the user, newest first.

        Returns:
            (orders on the requested page, total matching orders)
        """
        if page < 1 or limit < 1:
            raise InvalidRequestError("page and limit must be positive")
        limit = min(limit, MAX_PAGE_SIZE)

        base = scope_to_user(select(Order), user)
        if status:
            base = base.where(Order.status == parse_status(status))

        with self.database.transaction() as session:
            total = session.scalar(select(func.count()).select_from(base.subquery()))
            stmt = (
                base.options(*_order_options())
                .order_by(Order.created_at.desc(), Order.order_number.desc())
                .offset((page - 1) * limit)
                .limit(limit)
            )
            orders = list(session.scalars(stmt).unique())
        return orders, total or 0

    def get_order(self, user: User, order_id: str) -> Order:
        """
        Get an order the user may see.

        Raises:
            OrderNotFoundError: If it doesn't exist or is outside the user's scope.
        """
        stmt = scope_to_user(select(Order), user).where(Order.id == order_id)
        with self.database.transaction() as session:
            order = session.scalars(stmt.options(*_order_options())).unique().first()
        if order is None:
            raise OrderNotFoundError(order_id)
        return order

    @staticmethod
    def _can_update(user: User, order: Order) -> bool:
        if user.role == Role.ADMIN:
            return True
        if user.role in SELLER_ROLES:
            return any(item.seller_id == user.id for item in order.items)
        if user.role == Role.RIDER:
            return order.rider_id == user.id
        return False

    def update_order(
        self,
        user: User,
        order_id: str,
        status: str | OrderStatus | None = None,
        rider_id: str | None = None,
    ) -> Order:
        """
        Move an order along its lifecycle and/or assign a rider.

        Raises:
            OrderNotFoundError: If the order doesn't exist.
            AuthorizationError: If the user may not update it, or a
                non-admin tries to assign a rider.
            InvalidStatusTransitionError: If the state machine forbids the change.
        """
        if status is None and rider_id is None:
            raise InvalidRequestError("Nothing to update: provide status or riderId")
        target = parse_status(status) if status is not None else None

        with self.database.transaction() as session:
            order = session.scalars(
                select(Order).options(*_order_options()).where(Order.id == order_id)
            ).unique().first()
            if order is None:
                raise OrderNotFoundError(order_id)
            if not self._can_update(user, order):
                raise AuthorizationError("Access denied")

            if rider_id is not None:
                if user.role != Role.ADMIN:
                    raise AuthorizationError("Only admins can assign riders")
                rider = session.get(User, rider_id)
                if rider is None:
                    raise UserNotFoundError(rider_id)
                if rider.role != Role.RIDER:
                    raise InvalidRequestError(f"User {rider_id} is not a rider")
                order.rider = rider

            if target is not None and target != order.status:
                current = OrderStatus(order.status)
                if not current.can_transition_to(target):
                    raise InvalidStatusTransitionError(current.value, target.value)
                order.status = target
                logger.info(
                    "order_status_changed order_number=%s from=%s to=%s by=%s",
                    order.order_number,
                    current.value,
                    target.value,
                    user.id,
                )

            session.flush()
            return order
