"""Repository for the Order aggregate.

Status changes go through ``add_if_status``: the stored status is compared
with the one the caller read before writing, so two writers racing on the
same order cannot both apply a transition.
"""

import threading

from protean.exceptions import ObjectNotFoundError

from ordering.domain import ordering
from ordering.errors import Conflict, NotFound
from ordering.order.order import Order

_write_lock = threading.RLock()


@ordering.repository(part_of=Order)
class OrderRepository:
    def find_by_order_number(self, order_number: str) -> Order | None:
        orders = self._dao.query.filter(order_number=order_number).all().items
        return orders[0] if orders else None

    def find_for_user(self, user_id, offset: int, limit: int):
        """Newest-first page of a buyer's orders, as a Protean ResultSet."""
        return (
            self._dao.query.filter(user_id=str(user_id)).order_by("-created_at").offset(offset).limit(limit).all()
        )

    def count(self) -> int:
        return self._dao.query.all().total

    def add_if_status(self, order: Order, expected_status: str) -> Order:
        """Persist ``order`` only if the stored copy is still ``expected_status``.

        Raises:
            NotFound: the order was never persisted.
            Conflict: another writer changed the status first.
        """
        with _write_lock:
            try:
                stored = self._dao.get(order.id)
            except ObjectNotFoundError as exc:
                raise NotFound(f"Order {order.id} not found", field="order_id") from exc

            if stored.status != expected_status:
                raise Conflict(
                    f"Order {order.order_number} changed from {expected_status} to {stored.status} concurrently",
                    field="status",
                )
            return self.add(order)
