"""Typed failures raised by the cart engine and order lifecycle.

Every expected failure (missing entity, stock, authorization, state machine)
is one of these. ``messages`` follows the shape of Protean's
``ValidationError.messages`` so callers can render either uniformly.
"""


class OrderingError(Exception):
    """Base class for all expected ordering failures."""

    code = "ordering_error"

    def __init__(self, message: str, field: str = "_entity") -> None:
        super().__init__(message)
        self.message = message
        self.messages = {field: [message]}


class NotFound(OrderingError):
    code = "not_found"


class Unavailable(OrderingError):
    """The entity exists but is not in a usable state (e.g. inactive product)."""

    code = "unavailable"

    def __init__(self, message: str, product_id: str | None = None) -> None:
        super().__init__(message, field="product_id")
        self.product_id = product_id


class InsufficientStock(OrderingError):
    code = "insufficient_stock"

    def __init__(self, product_id: str, requested: int, available: int, name: str | None = None) -> None:
        label = name or product_id
        super().__init__(
            f"Insufficient stock for {label}. Requested: {requested}, available: {available}",
            field="quantity",
        )
        self.product_id = product_id
        self.requested = requested
        self.available = available


class EmptyCart(OrderingError):
    code = "empty_cart"

    def __init__(self, message: str = "Cart is empty") -> None:
        super().__init__(message, field="cart")


class InvalidTransition(OrderingError):
    code = "invalid_transition"

    def __init__(self, source: str, target: str, message: str | None = None) -> None:
        super().__init__(message or f"Cannot change status from {source} to {target}", field="status")
        self.source = source
        self.target = target


class Unauthorized(OrderingError):
    code = "unauthorized"


class Conflict(OrderingError):
    """A concurrent update won the race, or a mutation sequence broke midway."""

    code = "conflict"


class ReconciliationRequired(Conflict):
    """Stock could not be adjusted after the order was written.

    The order stays ``pending`` and is flagged ``requires_reconciliation``.
    """

    code = "reconciliation_required"

    def __init__(self, order_id: str, message: str) -> None:
        super().__init__(message, field="order")
        self.order_id = order_id


class UpstreamFailure(OrderingError):
    """The payment processor (or another collaborator) failed."""

    code = "upstream_failure"

    def __init__(self, message: str, order_id: str | None = None) -> None:
        super().__init__(message, field="payment")
        self.order_id = order_id
