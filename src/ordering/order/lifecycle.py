"""Order lifecycle: checkout, status changes, cancellation, payment and refunds.

Checkout re-validates every cart line against the catalog store (the check
at cart-read time is only advisory), writes the order, then adjusts stock
one product at a time through the store's atomic adjustments. If an
adjustment fails after the order is written, the adjustments already
applied are reversed, the order stays ``pending`` with
``requires_reconciliation`` set, and ``ReconciliationRequired`` is raised.

Status changes are persisted with ``add_if_status`` so two writers acting on
the same order cannot both move it out of the same state.

Notifications are best-effort: a failing sink is logged, never raised.
Payment failures always surface as ``UpstreamFailure``.
"""

import math

import structlog
from catalogue.store.port import CatalogStore
from notifications.channel.sink_port import NotificationSink
from payments.gateway.port import PaymentGateway
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.utils.globals import current_domain

from ordering.cart.engine import CartEngine
from ordering.config import OrderingSettings, get_settings
from ordering.errors import (
    Conflict,
    EmptyCart,
    InsufficientStock,
    InvalidTransition,
    NotFound,
    ReconciliationRequired,
    Unauthorized,
    Unavailable,
    UpstreamFailure,
)
from ordering.order.numbering import OrderNumberGenerator
from ordering.order.order import (
    Order,
    OrderStatus,
    PaymentInfo,
    PaymentStatus,
    ShippingInfo,
    ShippingMethod,
)
from ordering.projections.vendor_orders import record_vendor_orders, vendor_orders_page
from ordering.shared.actor import Actor
from ordering.shared.variant import Variant

logger = structlog.get_logger(__name__)

_ADDRESS_FIELDS = ("street", "city", "state", "zip_code", "country")


class OrderLifecycle:
    def __init__(
        self,
        catalog: CatalogStore,
        gateway: PaymentGateway,
        sink: NotificationSink,
        carts: CartEngine,
        settings: OrderingSettings | None = None,
        numbers: OrderNumberGenerator | None = None,
    ) -> None:
        self.catalog = catalog
        self.gateway = gateway
        self.sink = sink
        self.carts = carts
        self.settings = settings or get_settings()
        self.numbers = numbers or OrderNumberGenerator(seed=lambda: self._repo.count())

    # -------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------
    @property
    def _repo(self):
        return current_domain.repository_for(Order)

    def _get(self, order_id) -> Order:
        try:
            return self._repo.get(order_id)
        except ObjectNotFoundError as exc:
            raise NotFound(f"Order {order_id} not found", field="order_id") from exc

    def _save_transition(self, order: Order, expected_status: str) -> Order:
        order = self._repo.add_if_status(order, expected_status)
        record_vendor_orders(order)
        return order

    def _notify(self, target_id, event_name: str, payload: dict) -> None:
        try:
            self.sink.emit(str(target_id), event_name, payload)
        except Exception as exc:
            logger.warning(
                "Notification delivery failed",
                target_id=str(target_id),
                event_name=event_name,
                error=str(exc),
            )

    def _notify_status(self, order: Order, note=None) -> None:
        self._notify(
            order.user_id,
            "order-status-changed",
            {
                "order_id": str(order.id),
                "order_number": order.order_number,
                "status": order.status,
                "note": note,
            },
        )

    def _shipping_cost(self, subtotal: float) -> float:
        if subtotal > self.settings.free_shipping_threshold:
            return 0.0
        return self.settings.flat_shipping_fee

    def _page(self, page, limit) -> tuple[int, int]:
        page = max(int(page or 1), 1)
        limit = min(max(int(limit or self.settings.default_page_size), 1), self.settings.max_page_size)
        return page, limit

    @staticmethod
    def _paginated(items, page, limit, total) -> dict:
        return {
            "items": items,
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "total_pages": math.ceil(total / limit) if total else 0,
            },
        }

    @staticmethod
    def _is_manager(order: Order, actor: Actor) -> bool:
        return actor.is_admin or order.is_vendor(actor.id)

    def _validated_products(self, cart) -> dict:
        """Authoritative availability check for every line, before anything is written.

        Variant lines of one product draw on the same stock, so quantities
        are summed per product before the stock check.
        """
        products = {}
        requested = {}
        for item in cart.ordered_lines():
            product_id = str(item.product_id)
            product = self.catalog.get_product(product_id)
            if product is None:
                raise NotFound(f"Product {product_id} not found", field="product_id")
            if not product.is_active:
                raise Unavailable(f"Product {product.name} is not available", product_id=str(product.id))
            products[product_id] = product
            requested[product_id] = requested.get(product_id, 0) + item.quantity

        for product_id, quantity in requested.items():
            product = products[product_id]
            if not product.can_supply(quantity):
                raise InsufficientStock(
                    product_id=product_id,
                    requested=quantity,
                    available=product.stock,
                    name=product.name,
                )
        return products

    def _apply_stock(self, order: Order) -> None:
        """Decrement tracked stock and bump purchases; undo everything on failure."""
        applied = []
        try:
            for item in order.ordered_lines():
                product_id = str(item.product_id)
                if item.stock_tracked:
                    self.catalog.adjust_stock(product_id, -item.quantity)
                    applied.append((self.catalog.adjust_stock, product_id, item.quantity))
                self.catalog.adjust_purchases(product_id, item.quantity)
                applied.append((self.catalog.adjust_purchases, product_id, -item.quantity))
        except (InsufficientStock, NotFound) as exc:
            for adjust, product_id, delta in reversed(applied):
                adjust(product_id, delta)

            note = f"Stock adjustment failed at checkout: {exc.message}"
            order.flag_for_reconciliation(note)
            self._repo.add(order)
            logger.error(
                "Order requires reconciliation",
                order_id=str(order.id),
                order_number=order.order_number,
                error=exc.message,
            )
            raise ReconciliationRequired(str(order.id), note) from exc

    def _restore_stock(self, order: Order) -> Order:
        """Give back stock and purchases for every line.

        Lines whose product no longer exists cannot be restored; the order
        is flagged for reconciliation and persisted with their ids.
        """
        missing = []
        for item in order.ordered_lines():
            product_id = str(item.product_id)
            try:
                if item.stock_tracked:
                    self.catalog.adjust_stock(product_id, item.quantity)
                self.catalog.adjust_purchases(product_id, -item.quantity)
            except NotFound:
                missing.append(product_id)

        if not missing:
            return order

        note = f"Stock not restored after cancellation, products missing: {', '.join(missing)}"
        order.flag_for_reconciliation(note)
        order = self._repo.add(order)
        logger.error("Stock restoration incomplete", order_id=str(order.id), product_ids=missing)
        return order

    def _refund_cancelled(self, order: Order, actor: Actor, reason) -> Order:
        """Refund a cancelled order in full, once. Failure flags the order."""
        payment = order.payment
        if payment is None or not payment.is_completed or payment.refund_id:
            return order

        try:
            result = self.gateway.create_refund(payment.transaction_id, None, reason or "Order cancelled")
            failure = None if result.success else result.failure_reason
        except Exception as exc:
            result, failure = None, str(exc)

        if failure is not None:
            note = f"Refund failed after cancellation: {failure}"
            order.flag_for_reconciliation(note)
            self._repo.add(order)
            logger.error("Refund failed for cancelled order", order_id=str(order.id), error=failure)
            raise UpstreamFailure(note, order_id=str(order.id))

        amount = result.amount if result.amount is not None else payment.amount
        order.record_refund(result.refund_id, amount, actor.id, reason, move_status=False)
        order = self._repo.add(order)
        logger.info("Cancelled order refunded", order_id=str(order.id), refund_id=result.refund_id, amount=amount)
        return order

    # -------------------------------------------------------------------
    # Checkout
    # -------------------------------------------------------------------
    def create_order(
        self,
        user_id,
        shipping_address: dict,
        payment_method: str,
        payment_details: dict | None = None,
        notes: str | None = None,
        shipping_method: str = ShippingMethod.STANDARD.value,
    ) -> Order:
        """Turn the user's cart into a pending order.

        Raises:
            EmptyCart: the cart has no lines.
            NotFound / Unavailable / InsufficientStock: a line failed the
                commit-time check. Nothing was written.
            ReconciliationRequired: stock could not be adjusted after the
                order was written. The cart is kept.
        """
        cart = self.carts.load(user_id)
        if cart.is_empty:
            raise EmptyCart()

        products = self._validated_products(cart)

        subtotal = cart.subtotal
        shipping_cost = self._shipping_cost(subtotal)
        total = round(subtotal + cart.tax + shipping_cost - cart.discount, 2)

        lines = []
        for item in cart.ordered_lines():
            product = products[str(item.product_id)]
            lines.append(
                {
                    "product_id": str(product.id),
                    "vendor_id": str(product.vendor_id),
                    "name": product.name,
                    "image": product.image,
                    "unit_price": item.unit_price,
                    "quantity": item.quantity,
                    "variant": Variant(name=item.variant.name, value=item.variant.value) if item.variant else None,
                    "stock_tracked": product.track_quantity,
                }
            )

        address = {key: shipping_address[key] for key in _ADDRESS_FIELDS if shipping_address.get(key)}
        details = payment_details or {}

        order = Order.place(
            order_number=self.numbers.next(),
            user_id=str(user_id),
            lines=lines,
            shipping=ShippingInfo(method=shipping_method, cost=shipping_cost, **address),
            payment=PaymentInfo(
                method=payment_method,
                transaction_id=details.get("transaction_id") or details.get("payment_intent_id"),
                status=PaymentStatus.PENDING.value,
                amount=total,
                currency=self.settings.currency,
            ),
            pricing={
                "subtotal": subtotal,
                "tax": cart.tax,
                "shipping_cost": shipping_cost,
                "discount": cart.discount,
                "total": total,
                "currency": self.settings.currency,
            },
            notes=notes,
            coupon_code=cart.coupon.code if cart.coupon else None,
        )
        order = self._repo.add(order)
        record_vendor_orders(order)

        self._apply_stock(order)
        self.carts.clear(user_id)

        logger.info(
            "Order placed",
            order_id=str(order.id),
            order_number=order.order_number,
            user_id=str(user_id),
            total=order.total,
            vendor_count=len(order.vendor_ids),
        )

        for vendor_id in order.vendor_ids:
            self._notify(
                vendor_id,
                "new-order",
                {
                    "order_id": str(order.id),
                    "order_number": order.order_number,
                    "message": "You have received a new order!",
                },
            )
        return order

    # -------------------------------------------------------------------
    # Status machine
    # -------------------------------------------------------------------
    def update_status(
        self,
        order_id,
        new_status: str,
        actor: Actor,
        note: str | None = None,
        tracking_number: str | None = None,
        carrier: str | None = None,
    ) -> Order:
        order = self._get(order_id)
        if not self._is_manager(order, actor):
            raise Unauthorized("Not authorized to update this order")

        try:
            target = OrderStatus(new_status)
        except ValueError as exc:
            raise InvalidTransition(order.status, str(new_status)) from exc

        expected = order.status
        order.transition_to(target, actor.id, note)
        order.record_tracking(tracking_number, carrier)
        if target == OrderStatus.CANCELLED:
            order.cancellation_reason = note

        order = self._save_transition(order, expected)
        logger.info(
            "Order status changed",
            order_id=str(order.id),
            previous_status=expected,
            status=order.status,
            actor_id=actor.id,
        )

        if target == OrderStatus.CANCELLED:
            order = self._restore_stock(order)
            order = self._refund_cancelled(order, actor, note)

        self._notify_status(order, note)
        return order

    def cancel_order(self, order_id, actor: Actor, reason: str) -> Order:
        """Buyer cancellation from ``pending`` or ``confirmed``.

        Restores stock for every line and refunds a completed payment in
        full, exactly once.
        """
        order = self._get(order_id)
        if str(order.user_id) != str(actor.id):
            raise Unauthorized("You are not authorized to cancel this order")

        expected = order.status
        order.cancel(actor.id, reason)
        order = self._save_transition(order, expected)
        logger.info("Order cancelled", order_id=str(order.id), previous_status=expected, reason=reason)

        order = self._restore_stock(order)
        order = self._refund_cancelled(order, actor, reason)

        self._notify_status(order, reason)
        return order

    # -------------------------------------------------------------------
    # Payment
    # -------------------------------------------------------------------
    def start_payment(self, order_id, actor: Actor) -> dict:
        """Open a payment intent for the order total."""
        order = self._get(order_id)
        if str(order.user_id) != str(actor.id):
            raise Unauthorized("You are not authorized to pay for this order")
        if order.status != OrderStatus.PENDING.value:
            raise InvalidTransition(order.status, OrderStatus.CONFIRMED.value, "Only pending orders can be paid")
        if order.payment.is_completed:
            raise Conflict("Order is already paid", field="payment")

        try:
            intent = self.gateway.create_payment_intent(
                order.total,
                order.currency,
                {"order_id": str(order.id), "order_number": order.order_number, "user_id": str(order.user_id)},
            )
        except Exception as exc:
            logger.error("Payment intent creation failed", order_id=str(order.id), error=str(exc))
            raise UpstreamFailure(f"Payment intent creation failed: {exc}", order_id=str(order.id)) from exc

        expected = order.status
        order.record_payment_intent(intent.intent_id)
        self._repo.add_if_status(order, expected)
        return {"client_secret": intent.client_secret, "intent_id": intent.intent_id}

    def confirm_payment(self, order_id, actor: Actor, intent_id: str | None = None) -> Order:
        """Confirm the order once the processor reports the intent as succeeded."""
        order = self._get(order_id)
        if str(order.user_id) != str(actor.id) and not actor.is_admin:
            raise Unauthorized("You are not authorized to confirm payment for this order")

        intent_id = intent_id or order.payment.transaction_id
        if not intent_id:
            raise NotFound("No payment found for this order", field="payment")
        if not order.can_transition_to(OrderStatus.CONFIRMED):
            raise InvalidTransition(order.status, OrderStatus.CONFIRMED.value)

        try:
            intent = self.gateway.retrieve_payment_intent(intent_id)
        except Exception as exc:
            raise UpstreamFailure(f"Payment confirmation failed: {exc}", order_id=str(order.id)) from exc
        if intent.status != "succeeded":
            raise UpstreamFailure("Payment not completed", order_id=str(order.id))

        expected = order.status
        order.mark_payment_completed(intent_id, actor.id)
        order = self._save_transition(order, expected)
        logger.info("Payment confirmed", order_id=str(order.id), transaction_id=intent_id, amount=order.total)

        self._notify_status(order, "Payment completed")
        return order

    def process_refund(self, order_id, actor: Actor, reason: str, amount: float | None = None) -> Order:
        """Refund the order (in full unless ``amount`` is given) and mark it refunded.

        Raises:
            Unauthorized: actor is neither a vendor of the order nor an admin.
            NotFound: the order carries no payment transaction.
            InvalidTransition: the order was already refunded.
            ValidationError: ``amount`` is not positive or exceeds the amount paid.
            UpstreamFailure: the processor rejected the refund. The order is
                left unchanged.
        """
        order = self._get(order_id)
        if not self._is_manager(order, actor):
            raise Unauthorized("Not authorized to process refund")

        payment = order.payment
        if payment is None or not payment.transaction_id:
            raise NotFound("No payment found for this order", field="payment")
        if payment.status == PaymentStatus.REFUNDED.value or order.status == OrderStatus.REFUNDED.value:
            raise InvalidTransition(order.status, OrderStatus.REFUNDED.value, "Order has already been refunded")
        if amount is not None and not 0 < amount <= (payment.amount or 0.0):
            raise ValidationError({"amount": [f"Refund amount must be above 0 and at most {payment.amount}"]})

        try:
            result = self.gateway.create_refund(payment.transaction_id, amount, reason)
        except Exception as exc:
            raise UpstreamFailure(f"Refund failed: {exc}", order_id=str(order.id)) from exc
        if not result.success:
            raise UpstreamFailure(f"Refund failed: {result.failure_reason}", order_id=str(order.id))

        refunded = result.amount if result.amount is not None else (amount if amount is not None else payment.amount)
        expected = order.status
        order.record_refund(result.refund_id, refunded, actor.id, reason)
        order = self._save_transition(order, expected)
        logger.info("Order refunded", order_id=str(order.id), refund_id=result.refund_id, amount=refunded)

        self._notify_status(order, reason)
        return order

    # -------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------
    def get_order(self, order_id, actor: Actor) -> Order:
        order = self._get(order_id)
        if str(order.user_id) != str(actor.id) and not self._is_manager(order, actor):
            raise Unauthorized("You are not authorized to view this order")
        return order

    def find_by_order_number(self, order_number: str) -> Order:
        order = self._repo.find_by_order_number(order_number)
        if order is None:
            raise NotFound(f"Order {order_number} not found", field="order_number")
        return order

    def list_user_orders(self, user_id, page: int = 1, limit: int | None = None) -> dict:
        page, limit = self._page(page, limit)
        result = self._repo.find_for_user(user_id, (page - 1) * limit, limit)
        return self._paginated(list(result.items), page, limit, result.total)

    def list_vendor_orders(self, vendor_id, page: int = 1, limit: int | None = None) -> dict:
        page, limit = self._page(page, limit)
        result = vendor_orders_page(vendor_id, (page - 1) * limit, limit)
        orders = [self._repo.get(row.order_id) for row in result.items]
        return self._paginated(orders, page, limit, result.total)
