"""Composition root: wires settings, collaborators and services once per process.

Usage:
    marketplace = build_marketplace(activate=True)
    cart = marketplace.carts.add_item(user_id, product_id, 2)
    ...
    marketplace.close()

Collaborators not passed in fall back to the process-wide defaults
(in-memory catalog, the registered payment gateway and notification sink).
"""

from dataclasses import dataclass, field

import structlog
from catalogue.store.memory_adapter import InMemoryCatalogStore
from catalogue.store.port import CatalogStore
from notifications.channel import get_sink, reset_sink
from notifications.channel.sink_port import NotificationSink
from payments.gateway import get_gateway, reset_gateway
from payments.gateway.port import PaymentGateway
from protean.utils.globals import current_domain

from ordering.cart.engine import CartEngine
from ordering.config import OrderingSettings, get_settings
from ordering.domain import ordering
from ordering.order.lifecycle import OrderLifecycle
from ordering.order.numbering import OrderNumberGenerator
from ordering.order.order import Order
from ordering.utils.logging import configure_logging

logger = structlog.get_logger(__name__)


@dataclass
class Marketplace:
    settings: OrderingSettings
    catalog: CatalogStore
    gateway: PaymentGateway
    sink: NotificationSink
    carts: CartEngine
    orders: OrderLifecycle
    _context: object = field(default=None, repr=False)
    _registry_gateway: bool = field(default=False, repr=False)
    _registry_sink: bool = field(default=False, repr=False)

    def close(self) -> None:
        """Release process-wide resources acquired by ``build_marketplace``.

        Only the registry defaults the marketplace pulled itself are reset;
        injected collaborators belong to the caller.
        """
        if self._registry_gateway:
            reset_gateway()
        if self._registry_sink:
            reset_sink()
        if self._context is not None:
            self._context.pop()
            self._context = None
        logger.info("Marketplace closed")


def _existing_order_count() -> int:
    return current_domain.repository_for(Order).count()


def build_marketplace(
    settings: OrderingSettings | None = None,
    catalog: CatalogStore | None = None,
    gateway: PaymentGateway | None = None,
    sink: NotificationSink | None = None,
    activate: bool = False,
    log_dir: str | None = None,
) -> Marketplace:
    """Construct the cart engine and order lifecycle with their collaborators.

    With ``activate=True`` the ordering domain is initialized, its context
    pushed for the lifetime of the marketplace, and logging configured.
    Tests leave it False and run inside their own domain context.
    """
    if activate:
        configure_logging(log_dir)
        ordering.init()

    settings = settings or get_settings()
    catalog = catalog or InMemoryCatalogStore()
    registry_gateway, registry_sink = gateway is None, sink is None
    gateway = get_gateway() if registry_gateway else gateway
    sink = get_sink() if registry_sink else sink

    carts = CartEngine(catalog, settings)
    orders = OrderLifecycle(
        catalog,
        gateway,
        sink,
        carts,
        settings=settings,
        numbers=OrderNumberGenerator(seed=_existing_order_count),
    )

    context = None
    if activate:
        context = ordering.domain_context()
        context.push()

    logger.info("Marketplace ready", currency=settings.currency, tax_rate=settings.tax_rate)
    return Marketplace(
        settings=settings,
        catalog=catalog,
        gateway=gateway,
        sink=sink,
        carts=carts,
        orders=orders,
        _context=context,
        _registry_gateway=registry_gateway,
        _registry_sink=registry_sink,
    )
