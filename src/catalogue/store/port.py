"""Catalog store port (abstract interface).

The ordering core reads products and adjusts stock through this contract
only. Adapters must implement ``adjust_stock`` as a single conditional
field-level update: the read-check-write happens inside the store, never in
the caller, so concurrent checkouts cannot oversell.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum


class ProductStatus(Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    INACTIVE = "inactive"
    OUT_OF_STOCK = "out_of_stock"


@dataclass(frozen=True)
class ProductRecord:
    """The subset of a catalogue product the ordering core consumes."""

    id: str
    vendor_id: str
    name: str
    price: float
    image: str = ""
    discount: float = 0.0  # percent, 0..100
    stock: int = 0
    track_quantity: bool = True
    allow_backorder: bool = False
    status: str = ProductStatus.ACTIVE.value
    purchases: int = 0

    @property
    def discount_price(self) -> float:
        if self.discount > 0:
            return round(self.price - self.price * (self.discount / 100), 2)
        return self.price

    @property
    def is_active(self) -> bool:
        return self.status == ProductStatus.ACTIVE.value

    def can_supply(self, quantity: int) -> bool:
        """Whether ``quantity`` units can be sold right now."""
        if not self.track_quantity or self.allow_backorder:
            return True
        return self.stock >= quantity


class CatalogStore(ABC):
    """Abstract catalog store interface."""

    @abstractmethod
    def get_product(self, product_id: str) -> ProductRecord | None:
        """Return the product, or None when it does not exist."""
        ...

    @abstractmethod
    def find_products(self, **filters) -> list[ProductRecord]:
        """Return products whose attributes equal every given filter."""
        ...

    @abstractmethod
    def adjust_stock(self, product_id: str, delta: int) -> int:
        """Atomically add ``delta`` to stock and return the new level.

        Raises:
            NotFound: the product does not exist.
            InsufficientStock: the result would be negative and the product
                does not allow backorder. Stock is left untouched.
        """
        ...

    @abstractmethod
    def adjust_purchases(self, product_id: str, delta: int) -> int:
        """Atomically add ``delta`` to the purchase counter and return it."""
        ...
