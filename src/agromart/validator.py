"""Catalog validation of requested order lines."""

import logging
from typing import Iterable

from sqlalchemy.orm import Session

from .errors import (
    AboveMaximumQuantityError,
    BelowMinimumQuantityError,
    CatalogViolationError,
    InsufficientStockError,
    ProductNotFoundError,
    ProductUnavailableError,
)
from .models import OrderItemRequest, ProductStatus, ValidatedItem
from .tables import Product

logger = logging.getLogger(__name__)


def check_quantity(product: Product, quantity: int) -> None:
    """
    Check a quantity against a product's status, stock and order bounds.

    Rules run in a fixed order and the first failure is raised:
    status, stock, minimum, maximum.

    Raises:
        ProductUnavailableError: If the product is not ACTIVE.
        InsufficientStockError: If quantity exceeds stock on hand.
        BelowMinimumQuantityError: If quantity is under min_order_quantity.
        AboveMaximumQuantityError: If max_order_quantity is set (non-zero) and exceeded.
    """
    if product.status != ProductStatus.ACTIVE:
        raise ProductUnavailableError(product.id, product.name)
    if quantity > product.stock_quantity:
        raise InsufficientStockError(
            product.id, product.name, quantity, product.stock_quantity
        )
    if quantity < product.min_order_quantity:
        raise BelowMinimumQuantityError(product.id, product.name, product.min_order_quantity)
    if product.max_order_quantity and quantity > product.max_order_quantity:
        raise AboveMaximumQuantityError(product.id, product.name, product.max_order_quantity)


class CatalogValidator:
    """Checks requested lines against the live product catalog."""

    def validate(
        self, session: Session, items: Iterable[OrderItemRequest]
    ) -> list[ValidatedItem]:
        """
        Validate each requested line, failing on the first violation.

        Reads only; nothing is written.

        Returns:
            One ValidatedItem per requested line, in request order, carrying
            the product's current price as unit_price.

        Raises:
            CatalogViolationError: The first line that breaks a rule.
        """
        validated: list[ValidatedItem] = []
        for item in items:
            product = session.get(Product, item.product_id)
            try:
                if product is None:
                    raise ProductNotFoundError(item.product_id)
                check_quantity(product, item.quantity)
            except CatalogViolationError as e:
                logger.info(
                    "catalog_violation product_id=%s rule=%s quantity=%s",
                    e.product_id,
                    e.rule,
                    item.quantity,
                )
                raise

            validated.append(
                ValidatedItem(
                    product_id=product.id,
                    product_name=product.name,
                    seller_id=product.seller_id,
                    quantity=item.quantity,
                    unit_price=product.price,
                )
            )
        return validated
