"""Exceptions raised by order lifecycle operations."""

from typing import Optional


class OrderServiceError(Exception):
    """Base exception for all order service errors."""

    pass


class NotFoundError(OrderServiceError):
    """Base for missing products, orders and order lines."""

    pass


class ProductNotFound(NotFoundError):
    """Raised when a product id does not resolve to a catalog product."""

    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__(f"Product not found: {product_id}")


class OrderNotFound(NotFoundError):
    """Raised when an order id does not exist."""

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Order not found: {order_id}")


class LineNotFound(NotFoundError):
    """Raised when no line of an order matches a line key."""

    def __init__(self, order_id: str, line_key: str):
        self.order_id = order_id
        self.line_key = line_key
        super().__init__(f"Product not found in order {order_id}: {line_key}")


class InvalidQuantity(OrderServiceError):
    """Raised when a removal asks for more units than the line holds."""

    def __init__(self, requested: int, available: Optional[int] = None):
        self.requested = requested
        self.available = available
        msg = f"Invalid quantity: {requested}"
        if available is not None:
            msg = f"Cannot remove {requested} units, line holds {available}"
        super().__init__(msg)


class InvalidRequest(OrderServiceError):
    """Raised for structurally invalid input (empty order, bad key, bad id)."""

    def __init__(self, message: str):
        super().__init__(message)


class ResolutionFailure(OrderServiceError):
    """Raised by the ledger when a stock bucket cannot be located.

    Lifecycle operations catch this and log a skipped adjustment.
    """

    def __init__(self, product_id: str, reason: str, color: Optional[str] = None):
        self.product_id = product_id
        self.reason = reason
        self.color = color
        msg = f"Cannot resolve stock bucket for product {product_id}: {reason}"
        if color:
            msg = f"{msg} ({color})"
        super().__init__(msg)


class StockConflict(OrderServiceError):
    """Raised when a variant's stock kept changing under concurrent writers."""

    def __init__(self, product_id: str, variant_index: int, attempts: int):
        self.product_id = product_id
        self.variant_index = variant_index
        self.attempts = attempts
        super().__init__(
            f"Stock for product {product_id} variant {variant_index} changed "
            f"concurrently; gave up after {attempts} attempts"
        )


class NotificationFailed(OrderServiceError):
    """Raised when a progress e-mail could not be delivered."""

    def __init__(self, recipient: str, reason: Optional[str] = None):
        self.recipient = recipient
        self.reason = reason
        msg = f"Failed to send notification to {recipient}"
        if reason:
            msg = f"{msg}: {reason}"
        super().__init__(msg)
