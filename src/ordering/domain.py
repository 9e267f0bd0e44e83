"""Ordering bounded context: Shopping Cart and Order Lifecycle.

Owns the per-user cart (reconciled against the catalogue on every read),
the checkout that turns a cart into an immutable order snapshot, and the
order status state machine with its side effects (stock restoration,
refunds, notifications).
"""

import structlog
from protean.domain import Domain

ordering = Domain(name="ordering")

logger = structlog.get_logger(__name__)
