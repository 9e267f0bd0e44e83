"""Repository for the Cart aggregate."""

import threading

from ordering.cart.cart import Cart
from ordering.domain import ordering

# Serializes lazy cart creation so one user never ends up with two carts
creation_lock = threading.RLock()

PAGE_SIZE = 100


@ordering.repository(part_of=Cart)
class CartRepository:
    def find_by_user(self, user_id) -> Cart | None:
        """Return the user's cart, or None when they have never had one."""
        carts = self._dao.query.filter(user_id=str(user_id)).all().items
        return carts[0] if carts else None

    def find_expired(self, now) -> list[Cart]:
        """Every non-empty cart whose retention window has passed."""
        expired = []
        offset = 0
        while True:
            page = self._dao.query.order_by("created_at").offset(offset).limit(PAGE_SIZE).all()
            expired.extend(cart for cart in page.items if cart.items and cart.is_expired(now))
            offset += PAGE_SIZE
            if offset >= page.total:
                break
        return expired
