"""Product catalogue port (abstract interface).

Both cart stores denormalise product data at add-time. They resolve it
through this contract so that an in-memory catalogue (dev/test) and a real
catalogue client can be swapped without touching cart code.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal


@dataclass(frozen=True)
class ProductInfo:
    """Purchasable product as seen by the cart."""

    product_id: str
    name: str
    price: Decimal
    image: str | None = None
    sku: str | None = None


class ProductCatalogue(ABC):
    """Abstract product catalogue interface."""

    @abstractmethod
    def get_product(self, product_id: str) -> ProductInfo | None:
        """Return the product, or None when the id is unknown."""
        ...
