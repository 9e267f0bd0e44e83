"""Cart aggregate: one durable, price-accurate list of intended purchases per user.

Lines hold *copies* of the price and quantity at the time they were last
validated, never live references to the product. The cart engine refreshes
them against the catalogue on every read (see ``reconcile``), and the order
lifecycle re-validates them once more at checkout.

Totals are derived state: every mutating method recalculates them inside
``atomic_change`` so the ``totals_must_balance`` invariant is only checked
against a consistent cart.
"""

import json
from datetime import UTC, datetime, timedelta
from enum import Enum

from protean import atomic_change, invariant
from protean.exceptions import ValidationError
from protean.fields import DateTime, Float, HasMany, Identifier, Integer, String, ValueObject

from ordering.cart.events import (
    CartCleared,
    CartCouponApplied,
    CartCouponRemoved,
    CartItemAdded,
    CartItemQuantityUpdated,
    CartItemRemoved,
    CartReconciled,
)
from ordering.domain import ordering
from ordering.shared.variant import Variant


class DiscountType(Enum):
    FIXED = "fixed"
    PERCENTAGE = "percentage"


def _money(amount):
    return round(amount, 2)


def _variant_json(variant):
    return json.dumps(variant.to_dict()) if variant is not None else None


@ordering.value_object(part_of="Cart")
class Coupon:
    """A discount attached to the cart: a fixed amount or a percentage of the subtotal."""

    code = String(required=True, max_length=50)
    discount_type = String(choices=DiscountType, default=DiscountType.FIXED.value)
    amount = Float(required=True, min_value=0.0)

    @invariant.post
    def percentage_cannot_exceed_hundred(self):
        if self.discount_type == DiscountType.PERCENTAGE.value and self.amount > 100:
            raise ValidationError({"amount": ["Percentage discount cannot exceed 100"]})

    def discount_on(self, subtotal):
        if self.discount_type == DiscountType.PERCENTAGE.value:
            return subtotal * (self.amount / 100)
        return self.amount


@ordering.entity(part_of="Cart")
class CartItem:
    product_id = Identifier(required=True)
    quantity = Integer(required=True, min_value=1)
    unit_price = Float(required=True, min_value=0.0)
    variant = ValueObject(Variant)
    position = Integer(default=0)
    added_at = DateTime()

    def matches(self, product_id, variant=None):
        """Line identity is the pair (product, structurally-equal variant)."""
        return str(self.product_id) == str(product_id) and self.variant == variant

    @property
    def line_total(self):
        return _money(self.unit_price * self.quantity)


@ordering.aggregate
class Cart:
    user_id = Identifier(required=True)
    items = HasMany(CartItem)
    subtotal = Float(default=0.0)
    tax_rate = Float(default=0.0, min_value=0.0)
    tax = Float(default=0.0)
    discount = Float(default=0.0)
    total = Float(default=0.0)
    coupon = ValueObject(Coupon)
    expires_at = DateTime()
    created_at = DateTime()
    updated_at = DateTime()

    @invariant.post
    def totals_must_balance(self):
        expected = (self.subtotal or 0.0) + (self.tax or 0.0) - (self.discount or 0.0)
        if abs((self.total or 0.0) - expected) > 0.01:
            raise ValidationError({"total": ["Cart total must equal subtotal + tax - discount"]})

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def create(cls, user_id, tax_rate, retention_days):
        now = datetime.now(UTC)
        return cls(
            user_id=user_id,
            tax_rate=tax_rate,
            subtotal=0.0,
            tax=0.0,
            discount=0.0,
            total=0.0,
            created_at=now,
            updated_at=now,
            expires_at=now + timedelta(days=retention_days),
        )

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    def find_line(self, product_id, variant=None):
        return next((i for i in self.items if i.matches(product_id, variant)), None)

    def ordered_lines(self):
        return sorted(self.items, key=lambda i: i.position or 0)

    @property
    def is_empty(self):
        return not self.items

    def is_expired(self, now=None):
        if self.expires_at is None:
            return False
        now = now or datetime.now(UTC)
        expires_at = self.expires_at
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=UTC)
        return expires_at <= now

    # -------------------------------------------------------------------
    # Derived totals
    # -------------------------------------------------------------------
    def _recalculate(self):
        """Recompute subtotal, tax, discount and total. Call inside atomic_change."""
        subtotal = _money(sum(item.unit_price * item.quantity for item in self.items))
        tax = _money(subtotal * (self.tax_rate or 0.0))
        discount = 0.0
        if self.coupon is not None:
            # A coupon can zero the cart but never push the total below zero
            discount = _money(min(self.coupon.discount_on(subtotal), subtotal + tax))

        self.subtotal = subtotal
        self.tax = tax
        self.discount = discount
        self.total = _money(subtotal + tax - discount)

    def touch(self, retention_days):
        """Reset the retention window; called before every save."""
        now = datetime.now(UTC)
        self.updated_at = now
        self.expires_at = now + timedelta(days=retention_days)

    # -------------------------------------------------------------------
    # Line management
    # -------------------------------------------------------------------
    def add_line(self, product_id, quantity, unit_price, variant=None):
        """Add ``quantity`` units, merging into an existing line when one matches.

        The price snapshot of a merged line is refreshed to ``unit_price``.
        """
        if quantity < 1:
            raise ValidationError({"quantity": ["Quantity must be at least 1"]})

        existing = self.find_line(product_id, variant)
        with atomic_change(self):
            if existing:
                existing.quantity += quantity
                existing.unit_price = unit_price
                line = existing
            else:
                position = max((i.position or 0 for i in self.items), default=0) + 1
                line = CartItem(
                    product_id=product_id,
                    quantity=quantity,
                    unit_price=unit_price,
                    variant=variant,
                    position=position,
                    added_at=datetime.now(UTC),
                )
                self.add_items(line)
            self._recalculate()

        self.raise_(
            CartItemAdded(
                cart_id=str(self.id),
                user_id=str(self.user_id),
                product_id=str(product_id),
                variant=_variant_json(variant),
                quantity=quantity,
                line_quantity=line.quantity,
                unit_price=unit_price,
            )
        )
        return line

    def set_line_quantity(self, product_id, quantity, unit_price, variant=None):
        """Overwrite quantity and price of an existing line; ``quantity <= 0`` removes it."""
        line = self.find_line(product_id, variant)
        if line is None:
            raise ValidationError({"product_id": ["Item not found in cart"]})

        if quantity <= 0:
            self.remove_line(product_id, variant)
            return None

        previous_quantity = line.quantity
        with atomic_change(self):
            line.quantity = quantity
            line.unit_price = unit_price
            self._recalculate()

        self.raise_(
            CartItemQuantityUpdated(
                cart_id=str(self.id),
                product_id=str(product_id),
                variant=_variant_json(variant),
                previous_quantity=previous_quantity,
                new_quantity=quantity,
            )
        )
        return line

    def remove_line(self, product_id, variant=None):
        """Remove the matching line. Returns False (and does nothing) when absent."""
        line = self.find_line(product_id, variant)
        if line is None:
            return False

        with atomic_change(self):
            self.remove_items(line)
            self._recalculate()

        self.raise_(
            CartItemRemoved(
                cart_id=str(self.id),
                product_id=str(product_id),
                variant=_variant_json(variant),
            )
        )
        return True

    def clear(self, reason="checkout"):
        """Empty items and drop the coupon. The cart itself survives."""
        with atomic_change(self):
            for item in list(self.items):
                self.remove_items(item)
            self.coupon = None
            self._recalculate()

        self.raise_(
            CartCleared(
                cart_id=str(self.id),
                reason=reason,
                cleared_at=datetime.now(UTC),
            )
        )

    # -------------------------------------------------------------------
    # Coupons
    # -------------------------------------------------------------------
    def apply_coupon(self, coupon):
        with atomic_change(self):
            self.coupon = coupon
            self._recalculate()

        self.raise_(
            CartCouponApplied(
                cart_id=str(self.id),
                coupon_code=coupon.code,
                discount=self.discount,
            )
        )

    def remove_coupon(self):
        if self.coupon is None:
            return False

        code = self.coupon.code
        with atomic_change(self):
            self.coupon = None
            self._recalculate()

        self.raise_(CartCouponRemoved(cart_id=str(self.id), coupon_code=code))
        return True

    # -------------------------------------------------------------------
    # Reconciliation against the live catalogue
    # -------------------------------------------------------------------
    def reconcile(self, products, tax_rate=None):
        """Bring every line in line with current product state.

        Args:
            products: mapping of product id to the current product record,
                or None for products that no longer exist.
            tax_rate: current tax rate; applied when it differs from the
                rate the cart was last priced with.

        Lines for missing or inactive products are dropped, stale prices are
        refreshed, and quantities above available tracked stock are clamped
        (the line is dropped when nothing is left). Returns True when the
        cart changed.
        """
        dropped = repriced = clamped = 0
        rate_changed = tax_rate is not None and tax_rate != self.tax_rate

        with atomic_change(self):
            if rate_changed:
                self.tax_rate = tax_rate

            for line in list(self.items):
                product = products.get(str(line.product_id))
                if product is None or not product.is_active:
                    self.remove_items(line)
                    dropped += 1
                    continue

                if line.unit_price != product.discount_price:
                    line.unit_price = product.discount_price
                    repriced += 1

                if not product.can_supply(line.quantity):
                    clamped += 1
                    available = max(product.stock, 0)
                    if available == 0:
                        self.remove_items(line)
                        continue
                    line.quantity = available

            changed = rate_changed or bool(dropped or repriced or clamped)
            if changed:
                self._recalculate()

        if dropped or repriced or clamped:
            self.raise_(
                CartReconciled(
                    cart_id=str(self.id),
                    dropped_count=dropped,
                    repriced_count=repriced,
                    clamped_count=clamped,
                )
            )
        return changed
