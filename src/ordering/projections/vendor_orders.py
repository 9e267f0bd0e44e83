"""Vendor orders: one row per (order, vendor) pair for the seller dashboard.

An order with lines from three vendors shows up on three dashboards. Rows
are written by the order lifecycle in the same call that persists the
order, so listings never lag behind a status change.
"""

from protean.exceptions import ObjectNotFoundError
from protean.fields import DateTime, Float, Identifier, Integer, String
from protean.utils.globals import current_domain

from ordering.domain import ordering


@ordering.projection
class VendorOrder:
    id = Identifier(identifier=True, required=True)  # "<order_id>:<vendor_id>"
    order_id = Identifier(required=True)
    vendor_id = Identifier(required=True)
    order_number = String(required=True)
    user_id = Identifier(required=True)
    status = String(required=True)
    item_count = Integer(default=0)
    vendor_subtotal = Float(default=0.0)
    created_at = DateTime()
    updated_at = DateTime()


def record_vendor_orders(order):
    """Insert or refresh the rows of every vendor with lines in ``order``."""
    repo = current_domain.repository_for(VendorOrder)
    for vendor_id in order.vendor_ids:
        lines = [item for item in order.items if str(item.vendor_id) == vendor_id]
        row_id = f"{order.id}:{vendor_id}"
        try:
            row = repo.get(row_id)
        except ObjectNotFoundError:
            row = VendorOrder(
                id=row_id,
                order_id=str(order.id),
                vendor_id=vendor_id,
                order_number=order.order_number,
                user_id=str(order.user_id),
                status=order.status,
                created_at=order.created_at,
            )

        row.status = order.status
        row.item_count = sum(item.quantity for item in lines)
        row.vendor_subtotal = round(sum(item.line_total for item in lines), 2)
        row.updated_at = order.updated_at
        repo.add(row)


def vendor_orders_page(vendor_id, offset, limit):
    """Newest-first page of a vendor's rows, as a Protean ResultSet."""
    repo = current_domain.repository_for(VendorOrder)
    return repo._dao.query.filter(vendor_id=str(vendor_id)).order_by("-created_at").offset(offset).limit(limit).all()
