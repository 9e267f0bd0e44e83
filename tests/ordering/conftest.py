import pytest
from catalogue.store.memory_adapter import InMemoryCatalogStore
from catalogue.store.port import ProductRecord
from notifications.channel.fake_sink import FakeNotificationSink
from ordering.config import OrderingSettings
from ordering.marketplace import build_marketplace
from payments.gateway.fake_adapter import FakeGateway
from protean import current_domain
from protean.integrations.pytest import DomainFixture


@pytest.fixture(scope="session")
def ordering_bed():
    from ordering.domain import ordering

    bed = DomainFixture(ordering)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(autouse=True)
def _ctx(ordering_bed):
    with ordering_bed.domain_context():
        yield

        # Clear all databases
        for _, provider in current_domain.providers.items():
            provider._data_reset()

        # Drain event stores
        current_domain.event_store.store._data_reset()


# ---------------------------------------------------------------------------
# Collaborators
# ---------------------------------------------------------------------------
@pytest.fixture()
def settings():
    return OrderingSettings(
        _env_file=None,
        tax_rate=0.18,
        currency="INR",
        free_shipping_threshold=500.0,
        flat_shipping_fee=50.0,
        cart_retention_days=30,
        default_page_size=10,
    )


@pytest.fixture()
def catalog():
    return InMemoryCatalogStore()


@pytest.fixture()
def gateway():
    return FakeGateway()


@pytest.fixture()
def sink():
    return FakeNotificationSink()


@pytest.fixture()
def marketplace(settings, catalog, gateway, sink):
    marketplace = build_marketplace(settings=settings, catalog=catalog, gateway=gateway, sink=sink)
    yield marketplace
    marketplace.close()


@pytest.fixture()
def carts(marketplace):
    return marketplace.carts


@pytest.fixture()
def orders(marketplace):
    return marketplace.orders


@pytest.fixture()
def add_product(catalog):
    """Factory: put a product into the catalog and return its record."""

    def _add(product_id="prod-a", vendor_id="vendor-1", name=None, price=100.0, stock=10, **overrides):
        product = ProductRecord(
            id=product_id,
            vendor_id=vendor_id,
            name=name or f"Product {product_id}",
            price=price,
            stock=stock,
            **overrides,
        )
        return catalog.save(product)

    return _add


SHIPPING_ADDRESS = {
    "street": "12 MG Road",
    "city": "Bengaluru",
    "state": "Karnataka",
    "zip_code": "560001",
    "country": "India",
}


@pytest.fixture()
def shipping_address():
    return dict(SHIPPING_ADDRESS)


@pytest.fixture()
def place_order(carts, orders, shipping_address):
    """Factory: fill the buyer's cart with ``lines`` and check it out."""

    def _place(user_id="user-1", lines=(("prod-a", 2),), payment_method="stripe", **kwargs):
        for product_id, quantity in lines:
            carts.add_item(user_id, product_id, quantity)
        return orders.create_order(user_id, shipping_address, payment_method, **kwargs)

    return _place
