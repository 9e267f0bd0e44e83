"""Domain events for the Cart aggregate."""

from protean.fields import DateTime, Float, Identifier, Integer, String

from ordering.domain import ordering


@ordering.event(part_of="Cart")
class CartItemAdded:
    """A product was added to the cart (or merged into an existing line)."""

    __version__ = 1

    cart_id = Identifier(required=True)
    user_id = Identifier(required=True)
    product_id = Identifier(required=True)
    variant = String(max_length=200)
    quantity = Integer(required=True)
    line_quantity = Integer(required=True)
    unit_price = Float(required=True)


@ordering.event(part_of="Cart")
class CartItemQuantityUpdated:
    """The quantity of a cart line was overwritten."""

    __version__ = 1

    cart_id = Identifier(required=True)
    product_id = Identifier(required=True)
    variant = String(max_length=200)
    previous_quantity = Integer(required=True)
    new_quantity = Integer(required=True)


@ordering.event(part_of="Cart")
class CartItemRemoved:
    """A line was removed from the cart."""

    __version__ = 1

    cart_id = Identifier(required=True)
    product_id = Identifier(required=True)
    variant = String(max_length=200)


@ordering.event(part_of="Cart")
class CartReconciled:
    """A read brought the cart back in line with the live catalogue."""

    __version__ = 1

    cart_id = Identifier(required=True)
    dropped_count = Integer(default=0)
    repriced_count = Integer(default=0)
    clamped_count = Integer(default=0)


@ordering.event(part_of="Cart")
class CartCouponApplied:
    """A coupon was attached to the cart."""

    __version__ = 1

    cart_id = Identifier(required=True)
    coupon_code = String(required=True)
    discount = Float(required=True)


@ordering.event(part_of="Cart")
class CartCouponRemoved:
    """The coupon was detached from the cart."""

    __version__ = 1

    cart_id = Identifier(required=True)
    coupon_code = String(required=True)


@ordering.event(part_of="Cart")
class CartCleared:
    """All lines and the coupon were removed (checkout or expiry)."""

    __version__ = 1

    cart_id = Identifier(required=True)
    reason = String(max_length=50)
    cleared_at = DateTime(required=True)
