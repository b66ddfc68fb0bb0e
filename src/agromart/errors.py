"""Custom exceptions for agromart."""


class AgromartError(Exception):
    """Base exception for all agromart errors."""

    pass


class InvalidRequestError(AgromartError):
    """Raised when request input is missing or malformed."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


class AuthenticationError(AgromartError):
    """Raised when the acting user cannot be identified."""

    def __init__(self, reason: str = "Unauthorized"):
        self.reason = reason
        super().__init__(reason)


class AuthorizationError(AgromartError):
    """Raised when the acting user may not perform the operation."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


class UserNotFoundError(AgromartError):
    """Raised when a user ID doesn't exist."""

    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__(f"User not found: {user_id}")


class OrderNotFoundError(AgromartError):
    """Raised when an order ID doesn't exist or isn't visible to the user."""

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Order not found: {order_id}")


class CartItemNotFoundError(AgromartError):
    """Raised when a cart item ID doesn't exist."""

    def __init__(self, item_id: str):
        self.item_id = item_id
        super().__init__(f"Cart item not found: {item_id}")


class InvalidStatusTransitionError(AgromartError):
    """Raised when an order status change is not allowed by the state machine."""

    def __init__(self, current: str, requested: str):
        self.current = current
        self.requested = requested
        super().__init__(f"Cannot change order status from {current} to {requested}")


class TransactionFailureError(AgromartError):
    """Raised when the datastore rejects the checkout unit of work."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Order could not be committed: {reason}")


# Catalog violations


class CatalogViolationError(AgromartError):
    """Base for line items rejected against the live catalog."""

    rule = "catalog"

    def __init__(self, product_id: str, message: str):
        self.product_id = product_id
        super().__init__(message)


class ProductNotFoundError(CatalogViolationError):
    """Raised when a requested product doesn't exist."""

    rule = "not_found"

    def __init__(self, product_id: str):
        super().__init__(product_id, f"Product {product_id} not found")


class ProductUnavailableError(CatalogViolationError):
    """Raised when a product is not ACTIVE."""

    rule = "unavailable"

    def __init__(self, product_id: str, name: str):
        self.name = name
        super().__init__(product_id, f"Product {name} is not available")


class InsufficientStockError(CatalogViolationError):
    """Raised when the requested quantity exceeds stock on hand."""

    rule = "insufficient_stock"

    def __init__(self, product_id: str, name: str, requested: int, available: int | None = None):
        self.name = name
        self.requested = requested
        self.available = available
        msg = f"Insufficient stock for {name}"
        if available is not None:
            msg = f"{msg} (requested {requested}, available {available})"
        super().__init__(product_id, msg)


class BelowMinimumQuantityError(CatalogViolationError):
    """Raised when the requested quantity is under the product's minimum."""

    rule = "below_minimum"

    def __init__(self, product_id: str, name: str, minimum: int):
        self.name = name
        self.minimum = minimum
        super().__init__(product_id, f"Minimum order quantity for {name} is {minimum}")


class AboveMaximumQuantityError(CatalogViolationError):
    """Raised when the requested quantity is over the product's maximum."""

    rule = "above_maximum"

    def __init__(self, product_id: str, name: str, maximum: int):
        self.name = name
        self.maximum = maximum
        super().__init__(product_id, f"Maximum order quantity for {name} is {maximum}")
