"""Order aggregate: an immutable purchase snapshot with a status state machine.

State Machine (8 states):
    pending → confirmed → processing → shipped → delivered → returned
    pending / confirmed / processing → cancelled
    refunded is reached only through ``record_refund``, from any state.

cancelled and returned are terminal for the transition table. Every change
appends to the status history; the last history entry always names the
current status.
"""

import json
from datetime import UTC, datetime
from enum import Enum

from protean import atomic_change, invariant
from protean.exceptions import ValidationError
from protean.fields import (
    Boolean,
    DateTime,
    Float,
    HasMany,
    Identifier,
    Integer,
    String,
    Text,
    ValueObject,
)
from protean.utils.reflection import declared_fields

from ordering.domain import ordering
from ordering.errors import InvalidTransition
from ordering.order.events import (
    OrderCancelled,
    OrderFlaggedForReconciliation,
    OrderPlaced,
    OrderRefunded,
    OrderStatusChanged,
    PaymentCompleted,
    PaymentIntentRecorded,
)
from ordering.shared.variant import Variant


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class OrderStatus(Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    RETURNED = "returned"
    REFUNDED = "refunded"


class ShippingMethod(Enum):
    STANDARD = "standard"
    EXPRESS = "express"
    OVERNIGHT = "overnight"


class PaymentMethod(Enum):
    STRIPE = "stripe"
    PAYPAL = "paypal"
    RAZORPAY = "razorpay"
    COD = "cod"


class PaymentStatus(Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


# State machine transition map
_VALID_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.CONFIRMED, OrderStatus.CANCELLED},
    OrderStatus.CONFIRMED: {OrderStatus.PROCESSING, OrderStatus.CANCELLED},
    OrderStatus.PROCESSING: {OrderStatus.SHIPPED, OrderStatus.CANCELLED},
    OrderStatus.SHIPPED: {OrderStatus.DELIVERED},
    OrderStatus.DELIVERED: {OrderStatus.RETURNED},
    OrderStatus.CANCELLED: set(),  # Terminal
    OrderStatus.RETURNED: set(),  # Terminal
    OrderStatus.REFUNDED: set(),
}

# States from which the buyer may cancel
CANCELLABLE_STATES = {OrderStatus.PENDING, OrderStatus.CONFIRMED}

_STATUS_TIMESTAMPS = {
    OrderStatus.CONFIRMED: "confirmed_at",
    OrderStatus.SHIPPED: "shipped_at",
    OrderStatus.DELIVERED: "delivered_at",
    OrderStatus.CANCELLED: "cancelled_at",
    OrderStatus.RETURNED: "returned_at",
}


def _replace(value_object, **changes):
    """Copy a value object with some attributes changed."""
    data = {name: getattr(value_object, name) for name in declared_fields(type(value_object))}
    data.update(changes)
    return type(value_object)(**data)


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
@ordering.value_object(part_of="Order")
class ShippingInfo:
    """Where and how the order ships. The address is frozen at checkout."""

    street = String(required=True, max_length=255)
    city = String(required=True, max_length=100)
    state = String(required=True, max_length=100)
    zip_code = String(required=True, max_length=20)
    country = String(required=True, max_length=100, default="India")
    method = String(choices=ShippingMethod, default=ShippingMethod.STANDARD.value)
    cost = Float(default=0.0, min_value=0.0)
    tracking_number = String(max_length=255)
    carrier = String(max_length=100)
    estimated_delivery = DateTime()


@ordering.value_object(part_of="Order")
class PaymentInfo:
    """Payment record for the order, separate from the order's own status."""

    method = String(required=True, choices=PaymentMethod)
    transaction_id = String(max_length=255)
    status = String(choices=PaymentStatus, default=PaymentStatus.PENDING.value)
    amount = Float(required=True, min_value=0.0)
    currency = String(max_length=3, default="INR")
    paid_at = DateTime()
    refund_id = String(max_length=255)
    refund_amount = Float()
    refunded_at = DateTime()

    @property
    def is_completed(self):
        return self.status == PaymentStatus.COMPLETED.value


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@ordering.entity(part_of="Order")
class OrderItem:
    """A line captured from the cart and the product at checkout.

    Never modified after creation: later catalogue changes (price, name,
    image) do not reach existing orders.
    """

    product_id = Identifier(required=True)
    vendor_id = Identifier(required=True)
    name = String(required=True, max_length=255)
    image = String(max_length=500, default="")
    unit_price = Float(required=True, min_value=0.0)
    quantity = Integer(required=True, min_value=1)
    variant = ValueObject(Variant)
    stock_tracked = Boolean(default=True)
    position = Integer(default=0)

    @property
    def line_total(self):
        return round(self.unit_price * self.quantity, 2)


@ordering.entity(part_of="Order")
class StatusChange:
    """One entry of the append-only status history."""

    sequence = Integer(required=True, min_value=1)
    status = String(required=True, choices=OrderStatus)
    actor_id = Identifier(required=True)
    note = String(max_length=500)
    timestamp = DateTime(required=True)


# ---------------------------------------------------------------------------
# Aggregate Root
# ---------------------------------------------------------------------------
@ordering.aggregate
class Order:
    order_number = String(required=True, max_length=50)
    user_id = Identifier(required=True)
    items = HasMany(OrderItem)
    history = HasMany(StatusChange)
    subtotal = Float(required=True, min_value=0.0)
    tax = Float(default=0.0)
    shipping_cost = Float(default=0.0)
    discount = Float(default=0.0)
    total = Float(required=True, min_value=0.0)
    currency = String(max_length=3, default="INR")
    coupon_code = String(max_length=50)
    shipping = ValueObject(ShippingInfo)
    payment = ValueObject(PaymentInfo)
    status = String(choices=OrderStatus, default=OrderStatus.PENDING.value)
    notes = Text()
    cancellation_reason = String(max_length=500)
    requires_reconciliation = Boolean(default=False)
    reconciliation_note = Text()
    confirmed_at = DateTime()
    shipped_at = DateTime()
    delivered_at = DateTime()
    cancelled_at = DateTime()
    returned_at = DateTime()
    created_at = DateTime()
    updated_at = DateTime()

    @invariant.post
    def history_must_end_in_current_status(self):
        if not self.history:
            return
        latest = max(self.history, key=lambda entry: entry.sequence)
        if latest.status != self.status:
            raise ValidationError({"history": ["Latest status history entry must match the current status"]})

    # -------------------------------------------------------------------
    # Factory method
    # -------------------------------------------------------------------
    @classmethod
    def place(cls, order_number, user_id, lines, shipping, payment, pricing, notes=None, coupon_code=None):
        """Create a pending order from checkout data.

        Args:
            order_number: Unique human-readable reference.
            user_id: The buyer.
            lines: List of dicts with product_id, vendor_id, name, image,
                unit_price, quantity, variant (Variant or None), stock_tracked.
            shipping: ShippingInfo value object.
            payment: PaymentInfo value object.
            pricing: Dict with subtotal, tax, shipping_cost, discount, total,
                currency.
        """
        if not lines:
            raise ValidationError({"items": ["An order must contain at least one item"]})

        now = datetime.now(UTC)
        items = [OrderItem(position=index, **line) for index, line in enumerate(lines, start=1)]

        order = cls(
            order_number=order_number,
            user_id=user_id,
            items=items,
            subtotal=pricing["subtotal"],
            tax=pricing.get("tax", 0.0),
            shipping_cost=pricing.get("shipping_cost", 0.0),
            discount=pricing.get("discount", 0.0),
            total=pricing["total"],
            currency=pricing.get("currency", "INR"),
            coupon_code=coupon_code,
            shipping=shipping,
            payment=payment,
            status=OrderStatus.PENDING.value,
            notes=notes,
            created_at=now,
            updated_at=now,
        )
        with atomic_change(order):
            order._append_history(OrderStatus.PENDING, user_id, "Order placed", now)

        order.raise_(
            OrderPlaced(
                order_id=str(order.id),
                order_number=order_number,
                user_id=str(user_id),
                vendor_ids=json.dumps(order.vendor_ids),
                items=json.dumps(
                    [
                        {
                            "product_id": str(item.product_id),
                            "vendor_id": str(item.vendor_id),
                            "quantity": item.quantity,
                            "unit_price": item.unit_price,
                        }
                        for item in order.ordered_lines()
                    ]
                ),
                subtotal=order.subtotal,
                tax=order.tax,
                shipping_cost=order.shipping_cost,
                discount=order.discount,
                total=order.total,
                currency=order.currency,
                created_at=now,
            )
        )
        return order

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    @property
    def vendor_ids(self):
        seen = []
        for item in self.ordered_lines():
            if str(item.vendor_id) not in seen:
                seen.append(str(item.vendor_id))
        return seen

    def is_vendor(self, actor_id):
        return str(actor_id) in self.vendor_ids

    def ordered_lines(self):
        return sorted(self.items, key=lambda i: i.position or 0)

    def ordered_history(self):
        return sorted(self.history, key=lambda entry: entry.sequence)

    def can_transition_to(self, target):
        return OrderStatus(target) in _VALID_TRANSITIONS.get(OrderStatus(self.status), set())

    # -------------------------------------------------------------------
    # State transition helpers
    # -------------------------------------------------------------------
    def _assert_can_transition(self, target):
        if not self.can_transition_to(target):
            raise InvalidTransition(self.status, OrderStatus(target).value)

    def _append_history(self, status, actor_id, note, timestamp):
        sequence = max((entry.sequence for entry in self.history), default=0) + 1
        self.add_history(
            StatusChange(
                sequence=sequence,
                status=status.value,
                actor_id=str(actor_id),
                note=note,
                timestamp=timestamp,
            )
        )

    def _move_to(self, target, actor_id, note=None):
        previous = self.status
        now = datetime.now(UTC)
        with atomic_change(self):
            self.status = target.value
            self._append_history(target, actor_id, note, now)
            timestamp_field = _STATUS_TIMESTAMPS.get(target)
            if timestamp_field:
                setattr(self, timestamp_field, now)
            self.updated_at = now

        self.raise_(
            OrderStatusChanged(
                order_id=str(self.id),
                order_number=self.order_number,
                user_id=str(self.user_id),
                previous_status=previous,
                status=target.value,
                actor_id=str(actor_id),
                note=note,
                changed_at=now,
            )
        )

    # -------------------------------------------------------------------
    # Lifecycle transitions
    # -------------------------------------------------------------------
    def transition_to(self, target, actor_id, note=None):
        """Move to ``target`` following the transition table."""
        target = OrderStatus(target)
        self._assert_can_transition(target)
        self._move_to(target, actor_id, note)

    def cancel(self, actor_id, reason):
        current = OrderStatus(self.status)
        if current not in CANCELLABLE_STATES:
            raise InvalidTransition(
                current.value,
                OrderStatus.CANCELLED.value,
                f"Order cannot be cancelled in {current.value} state. "
                f"Cancellation is only allowed from: {', '.join(sorted(s.value for s in CANCELLABLE_STATES))}",
            )

        self._move_to(OrderStatus.CANCELLED, actor_id, reason)
        self.cancellation_reason = reason

        self.raise_(
            OrderCancelled(
                order_id=str(self.id),
                reason=reason,
                cancelled_by=str(actor_id),
                cancelled_at=self.cancelled_at,
            )
        )

    def record_tracking(self, tracking_number=None, carrier=None):
        if self.shipping is None or not (tracking_number and carrier):
            return
        self.shipping = _replace(self.shipping, tracking_number=tracking_number, carrier=carrier)

    # -------------------------------------------------------------------
    # Payment
    # -------------------------------------------------------------------
    def record_payment_intent(self, intent_id):
        self.payment = _replace(self.payment, transaction_id=intent_id, status=PaymentStatus.PENDING.value)
        self.updated_at = datetime.now(UTC)

        self.raise_(
            PaymentIntentRecorded(
                order_id=str(self.id),
                intent_id=intent_id,
                amount=self.payment.amount,
            )
        )

    def mark_payment_completed(self, transaction_id, actor_id):
        """Record the captured payment and confirm the order."""
        self._assert_can_transition(OrderStatus.CONFIRMED)

        now = datetime.now(UTC)
        self.payment = _replace(
            self.payment,
            transaction_id=transaction_id,
            status=PaymentStatus.COMPLETED.value,
            paid_at=now,
        )
        self._move_to(OrderStatus.CONFIRMED, actor_id, "Payment completed")

        self.raise_(
            PaymentCompleted(
                order_id=str(self.id),
                transaction_id=transaction_id,
                amount=self.payment.amount,
                paid_at=now,
            )
        )

    def record_refund(self, refund_id, amount, actor_id, reason=None, move_status=True):
        """Record a successful refund.

        ``move_status`` is False when the refund is a side effect of a
        cancellation: the order stays ``cancelled`` and only the payment
        record changes.
        """
        now = datetime.now(UTC)
        self.payment = _replace(
            self.payment,
            status=PaymentStatus.REFUNDED.value,
            refund_id=refund_id,
            refund_amount=amount,
            refunded_at=now,
        )
        if move_status:
            self._move_to(OrderStatus.REFUNDED, actor_id, reason)
        else:
            self.updated_at = now

        self.raise_(
            OrderRefunded(
                order_id=str(self.id),
                refund_id=refund_id,
                amount=amount,
                reason=reason,
                refunded_at=now,
            )
        )

    # -------------------------------------------------------------------
    # Reconciliation
    # -------------------------------------------------------------------
    def flag_for_reconciliation(self, note):
        now = datetime.now(UTC)
        self.requires_reconciliation = True
        # A cancelled order can fail both restock and refund; keep both notes.
        self.reconciliation_note = f"{self.reconciliation_note}; {note}" if self.reconciliation_note else note
        self.updated_at = now

        self.raise_(
            OrderFlaggedForReconciliation(
                order_id=str(self.id),
                note=note,
                flagged_at=now,
            )
        )
