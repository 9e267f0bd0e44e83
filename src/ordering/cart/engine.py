"""Cart engine: per-user carts kept consistent with the live catalogue.

Every read is a self-healing read: lines are reconciled against the catalog
store before the cart is returned, and any change is persisted. Stock checks
here are opportunistic; the authoritative check happens again at checkout.
"""

from datetime import UTC, datetime

import structlog
from catalogue.store.port import CatalogStore
from protean.utils.globals import current_domain

from ordering.cart.cart import Cart, Coupon
from ordering.cart.repository import creation_lock
from ordering.config import OrderingSettings, get_settings
from ordering.errors import InsufficientStock, NotFound, Unavailable
from ordering.shared.variant import variant_from_dict

logger = structlog.get_logger(__name__)


class CartEngine:
    def __init__(self, catalog: CatalogStore, settings: OrderingSettings | None = None) -> None:
        self.catalog = catalog
        self.settings = settings or get_settings()

    # -------------------------------------------------------------------
    # Persistence helpers
    # -------------------------------------------------------------------
    @property
    def _repo(self):
        return current_domain.repository_for(Cart)

    def _save(self, cart: Cart) -> Cart:
        cart.touch(self.settings.cart_retention_days)
        return self._repo.add(cart)

    def _load(self, user_id) -> Cart:
        with creation_lock:
            cart = self._repo.find_by_user(user_id)
            if cart is None:
                cart = Cart.create(
                    user_id=str(user_id),
                    tax_rate=self.settings.tax_rate,
                    retention_days=self.settings.cart_retention_days,
                )
                self._repo.add(cart)
                logger.info("Cart created", user_id=str(user_id), cart_id=str(cart.id))
            return cart

    def _products_for(self, cart: Cart) -> dict:
        ids = {str(item.product_id) for item in cart.items}
        return {product_id: self.catalog.get_product(product_id) for product_id in ids}

    def _fresh(self, user_id) -> Cart:
        """Load (or create) the cart and reconcile it against the catalogue."""
        cart = self._load(user_id)
        changed = False

        if cart.is_expired() and (cart.items or cart.coupon):
            cart.clear(reason="expired")
            changed = True
            logger.info("Expired cart cleared on read", user_id=str(user_id), cart_id=str(cart.id))

        if cart.reconcile(self._products_for(cart), tax_rate=self.settings.tax_rate):
            changed = True
            logger.info(
                "Cart reconciled with catalogue",
                user_id=str(user_id),
                cart_id=str(cart.id),
                item_count=len(cart.items),
                total=cart.total,
            )

        if changed:
            cart = self._save(cart)
        return cart

    def _available_product(self, product_id):
        product = self.catalog.get_product(product_id)
        if product is None:
            raise NotFound(f"Product {product_id} not found", field="product_id")
        if not product.is_active:
            raise Unavailable(f"Product {product.name} is not available", product_id=str(product_id))
        return product

    # -------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------
    def get_or_create(self, user_id) -> Cart:
        """Return the user's reconciled cart, creating an empty one if needed."""
        return self._fresh(user_id)

    def load(self, user_id) -> Cart:
        """Return the stored cart without reconciling it.

        Checkout validates the lines itself and must fail on a stale line
        rather than have it silently dropped. An expired cart comes back
        empty.
        """
        cart = self._load(user_id)
        if cart.is_expired() and (cart.items or cart.coupon):
            cart.clear(reason="expired")
            cart = self._save(cart)
        return cart

    def add_item(self, user_id, product_id, quantity: int, variant=None) -> Cart:
        variant = variant_from_dict(variant)
        product = self._available_product(product_id)
        cart = self._fresh(user_id)

        existing = cart.find_line(product_id, variant)
        requested = quantity + (existing.quantity if existing else 0)
        if not product.can_supply(requested):
            raise InsufficientStock(
                product_id=str(product_id),
                requested=requested,
                available=product.stock,
                name=product.name,
            )

        cart.add_line(str(product_id), quantity, product.discount_price, variant)
        cart = self._save(cart)
        logger.info(
            "Item added to cart",
            user_id=str(user_id),
            product_id=str(product_id),
            quantity=quantity,
            line_quantity=requested,
        )
        return cart

    def update_quantity(self, user_id, product_id, quantity: int, variant=None) -> Cart:
        """Overwrite a line's quantity; ``quantity <= 0`` removes the line."""
        variant = variant_from_dict(variant)
        if quantity <= 0:
            return self.remove_item(user_id, product_id, variant)

        cart = self._fresh(user_id)
        if cart.find_line(product_id, variant) is None:
            raise NotFound("Item not found in cart", field="product_id")

        product = self._available_product(product_id)
        if not product.can_supply(quantity):
            raise InsufficientStock(
                product_id=str(product_id),
                requested=quantity,
                available=product.stock,
                name=product.name,
            )

        cart.set_line_quantity(product_id, quantity, product.discount_price, variant)
        return self._save(cart)

    def remove_item(self, user_id, product_id, variant=None) -> Cart:
        """Remove the matching line. Removing an absent line is a no-op."""
        variant = variant_from_dict(variant)
        cart = self._fresh(user_id)
        if cart.remove_line(product_id, variant):
            cart = self._save(cart)
        return cart

    def clear(self, user_id, reason: str = "checkout") -> Cart:
        cart = self._load(user_id)
        cart.clear(reason=reason)
        return self._save(cart)

    def apply_coupon(self, user_id, code: str, discount_type: str, amount: float) -> Cart:
        cart = self._fresh(user_id)
        cart.apply_coupon(Coupon(code=code, discount_type=discount_type, amount=amount))
        cart = self._save(cart)
        logger.info("Coupon applied", user_id=str(user_id), coupon_code=code, discount=cart.discount)
        return cart

    def remove_coupon(self, user_id) -> Cart:
        cart = self._fresh(user_id)
        if cart.remove_coupon():
            cart = self._save(cart)
        return cart

    def purge_expired(self, now: datetime | None = None) -> int:
        """Clear every cart whose retention window has passed. Returns the count."""
        now = now or datetime.now(UTC)
        repo = self._repo
        purged = 0
        for cart in repo.find_expired(now):
            cart.clear(reason="expired")
            # Cleared carts keep their expiry; the next user write starts a new window
            repo.add(cart)
            purged += 1

        if purged:
            logger.info("Expired carts purged", count=purged)
        return purged
