"""In-memory catalog store for development and testing.

All mutations run under a single lock, which gives ``adjust_stock`` the same
compare-and-decrement semantics a document store offers with a conditional
``$inc`` (``{stock: {$gte: n}}``). Reads return immutable records, so callers
never hold a live handle into the store.
"""

import threading
from dataclasses import replace

import structlog
from ordering.errors import InsufficientStock, NotFound

from catalogue.store.port import CatalogStore, ProductRecord, ProductStatus

logger = structlog.get_logger(__name__)


class InMemoryCatalogStore(CatalogStore):
    """Lock-guarded product table."""

    def __init__(self, products: list[ProductRecord] | None = None) -> None:
        self._lock = threading.Lock()
        self._products: dict[str, ProductRecord] = {}
        self.calls: list[dict] = []
        for product in products or []:
            self.save(product)

    def save(self, product: ProductRecord) -> ProductRecord:
        """Insert or overwrite a product (catalogue-side writes only)."""
        with self._lock:
            self._products[str(product.id)] = product
        return product

    def get_product(self, product_id: str) -> ProductRecord | None:
        with self._lock:
            return self._products.get(str(product_id))

    def find_products(self, **filters) -> list[ProductRecord]:
        with self._lock:
            products = list(self._products.values())
        return [p for p in products if all(getattr(p, key) == value for key, value in filters.items())]

    def adjust_stock(self, product_id: str, delta: int) -> int:
        with self._lock:
            self.calls.append({"method": "adjust_stock", "product_id": str(product_id), "delta": delta})
            product = self._products.get(str(product_id))
            if product is None:
                raise NotFound(f"Product {product_id} not found", field="product_id")

            new_stock = product.stock + delta
            if new_stock < 0 and not product.allow_backorder:
                raise InsufficientStock(
                    product_id=str(product_id),
                    requested=-delta,
                    available=product.stock,
                    name=product.name,
                )

            status = product.status
            if product.track_quantity and not product.allow_backorder:
                if new_stock <= 0 and status == ProductStatus.ACTIVE.value:
                    status = ProductStatus.OUT_OF_STOCK.value
                elif new_stock > 0 and status == ProductStatus.OUT_OF_STOCK.value:
                    status = ProductStatus.ACTIVE.value

            self._products[str(product_id)] = replace(product, stock=new_stock, status=status)

        if status != product.status:
            logger.info(
                "Product availability changed",
                product_id=str(product_id),
                previous_status=product.status,
                status=status,
            )
        return new_stock

    def adjust_purchases(self, product_id: str, delta: int) -> int:
        with self._lock:
            self.calls.append({"method": "adjust_purchases", "product_id": str(product_id), "delta": delta})
            product = self._products.get(str(product_id))
            if product is None:
                raise NotFound(f"Product {product_id} not found", field="product_id")

            purchases = max(product.purchases + delta, 0)
            self._products[str(product_id)] = replace(product, purchases=purchases)
            return purchases

    def reset(self) -> None:
        """Drop all products and recorded calls."""
        with self._lock:
            self._products.clear()
            self.calls.clear()
