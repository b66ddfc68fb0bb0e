"""Cart storage for agromart."""

import logging
from decimal import Decimal
from typing import Iterable

from sqlalchemy import delete, select
from sqlalchemy.orm import Session, joinedload

from .database import Database
from .errors import (
    AuthorizationError,
    CartItemNotFoundError,
    InvalidRequestError,
    ProductNotFoundError,
)
from .models import quantize_money
from .tables import CartItem, Product
from .validator import check_quantity

logger = logging.getLogger(__name__)


def _require_positive(quantity: int) -> None:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise InvalidRequestError("Valid quantity is required")


class CartStore:
    """Manages a user's cart lines."""

    def __init__(self, database: Database):
        self.database = database

    def list_items(self, user_id: str) -> list[CartItem]:
        """List cart lines, newest first, with their products loaded."""
        with self.database.transaction() as session:
            stmt = (
                select(CartItem)
                .options(joinedload(CartItem.product))
                .where(CartItem.user_id == user_id)
                .order_by(CartItem.created_at.desc(), CartItem.id)
            )
            return list(session.scalars(stmt))

    def summary(self, user_id: str) -> tuple[list[CartItem], int, Decimal]:
        """Return (items, total item count, total price at current prices)."""
        items = self.list_items(user_id)
        total_items = sum(item.quantity for item in items)
        total_price = quantize_money(
            sum((item.product.price * item.quantity for item in items), Decimal("0"))
        )
        return items, total_items, total_price

    def add_item(self, user_id: str, product_id: str, quantity: int) -> tuple[CartItem, bool]:
        """
        Add a product to the cart, or increase the quantity of an existing line.

        Returns:
            (cart item, created) where created is False when an existing
            line was incremented.

        Raises:
            InvalidRequestError: Bad quantity or the user's own product.
            CatalogViolationError: The resulting quantity breaks a catalog rule.
        """
        if not product_id:
            raise InvalidRequestError("Product ID and valid quantity are required")
        _require_positive(quantity)

        with self.database.transaction() as session:
            product = session.get(Product, product_id)
            if product is None:
                raise ProductNotFoundError(product_id)
            if product.seller_id == user_id:
                raise InvalidRequestError("Cannot add your own products to cart")
            check_quantity(product, quantity)

            existing = session.scalars(
                select(CartItem)
                .options(joinedload(CartItem.product))
                .where(CartItem.user_id == user_id, CartItem.product_id == product_id)
            ).first()

            if existing is not None:
                check_quantity(product, existing.quantity + quantity)
                existing.quantity += quantity
                session.flush()
                logger.debug(
                    "cart_item_incremented user_id=%s product_id=%s quantity=%s",
                    user_id,
                    product_id,
                    existing.quantity,
                )
                return existing, False

            item = CartItem(user_id=user_id, product_id=product_id, quantity=quantity)
            item.product = product
            session.add(item)
            session.flush()
            logger.debug(
                "cart_item_added user_id=%s product_id=%s quantity=%s",
                user_id,
                product_id,
                quantity,
            )
            return item, True

    def _get_owned(self, session: Session, user_id: str, item_id: str) -> CartItem:
        item = session.get(CartItem, item_id, options=[joinedload(CartItem.product)])
        if item is None:
            raise CartItemNotFoundError(item_id)
        if item.user_id != user_id:
            raise AuthorizationError("Unauthorized to modify this cart item")
        return item

    def update_item(self, user_id: str, item_id: str, quantity: int) -> CartItem:
        """
        Set the quantity of a cart line.

        Raises:
            CartItemNotFoundError: If the line doesn't exist.
            AuthorizationError: If the line belongs to another user.
            CatalogViolationError: If the new quantity breaks a catalog rule.
        """
        _require_positive(quantity)
        with self.database.transaction() as session:
            item = self._get_owned(session, user_id, item_id)
            check_quantity(item.product, quantity)
            item.quantity = quantity
            session.flush()
            return item

    def remove_item(self, user_id: str, item_id: str) -> None:
        with self.database.transaction() as session:
            item = self._get_owned(session, user_id, item_id)
            session.delete(item)

    def clear(self, user_id: str) -> int:
        """Delete every line in the user's cart. Returns the number removed."""
        with self.database.transaction() as session:
            result = session.execute(delete(CartItem).where(CartItem.user_id == user_id))
            return result.rowcount

    @staticmethod
    def remove_products(session: Session, user_id: str, product_ids: Iterable[str]) -> int:
        """
        Delete the user's cart lines for the given products.

        Runs in the caller's session; lines for other products are kept.
        """
        ids = list(product_ids)
        if not ids:
            return 0
        result = session.execute(
            delete(CartItem).where(CartItem.user_id == user_id, CartItem.product_id.in_(ids))
        )
        return result.rowcount
