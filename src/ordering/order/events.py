"""Domain events for the Order aggregate.

Events are immutable facts, persisted to the event store alongside the
order and used by projections and downstream contexts.
"""

from protean.fields import DateTime, Float, Identifier, String, Text

from ordering.domain import ordering


@ordering.event(part_of="Order")
class OrderPlaced:
    """A cart was checked out into a new pending order."""

    __version__ = 1

    order_id = Identifier(required=True)
    order_number = String(required=True)
    user_id = Identifier(required=True)
    vendor_ids = Text(required=True)  # JSON: list of vendor ids
    items = Text(required=True)  # JSON: list of line snapshots
    subtotal = Float(required=True)
    tax = Float()
    shipping_cost = Float()
    discount = Float()
    total = Float(required=True)
    currency = String(default="INR")
    created_at = DateTime(required=True)


@ordering.event(part_of="Order")
class OrderStatusChanged:
    """The order moved along the status state machine."""

    __version__ = 1

    order_id = Identifier(required=True)
    order_number = String(required=True)
    user_id = Identifier(required=True)
    previous_status = String(required=True)
    status = String(required=True)
    actor_id = Identifier(required=True)
    note = String(max_length=500)
    changed_at = DateTime(required=True)


@ordering.event(part_of="Order")
class OrderCancelled:
    """The buyer cancelled the order before fulfillment started."""

    __version__ = 1

    order_id = Identifier(required=True)
    reason = String(required=True, max_length=500)
    cancelled_by = Identifier(required=True)
    cancelled_at = DateTime(required=True)


@ordering.event(part_of="Order")
class PaymentIntentRecorded:
    """A payment intent was opened for the order."""

    __version__ = 1

    order_id = Identifier(required=True)
    intent_id = String(required=True)
    amount = Float(required=True)


@ordering.event(part_of="Order")
class PaymentCompleted:
    """The processor reported the payment as captured."""

    __version__ = 1

    order_id = Identifier(required=True)
    transaction_id = String(required=True)
    amount = Float(required=True)
    paid_at = DateTime(required=True)


@ordering.event(part_of="Order")
class OrderRefunded:
    """Money was returned to the buyer through the processor."""

    __version__ = 1

    order_id = Identifier(required=True)
    refund_id = String(required=True)
    amount = Float(required=True)
    reason = String(max_length=500)
    refunded_at = DateTime(required=True)


@ordering.event(part_of="Order")
class OrderFlaggedForReconciliation:
    """A side effect (stock or refund) failed after the order was written."""

    __version__ = 1

    order_id = Identifier(required=True)
    note = Text(required=True)
    flagged_at = DateTime(required=True)
