"""Guest cart store: the anonymous cart kept on the client.

Every mutation is local and synchronous, and is written through to the
storage backend before it returns. Each guest cart carries a generation id
that changes whenever the cart is cleared; together with a digest of the
lines it forms the key that makes a merge into the server cart idempotent.
"""

import hashlib
import json
from decimal import Decimal
from uuid import uuid4

import structlog

from shared.catalogue import get_catalogue
from shared.catalogue.port import ProductCatalogue
from shared.pricing import PricingPolicy
from storefront.cart.errors import InvalidOperand
from storefront.cart.snapshot import CartItem, CartSnapshot, ProductSnapshot
from storefront.guest.storage import CartStorage, MemoryStorage

logger = structlog.get_logger(__name__)

STORAGE_VERSION = 1


def check_quantity(quantity) -> None:
    """Reject anything but a positive integer quantity."""
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
        raise InvalidOperand(f"Quantity must be a positive integer, got {quantity!r}", quantity=quantity)


class GuestCartStore:
    def __init__(
        self,
        catalogue: ProductCatalogue | None = None,
        storage: CartStorage | None = None,
        pricing: PricingPolicy | None = None,
    ) -> None:
        self._catalogue = catalogue or get_catalogue()
        self._storage = storage or MemoryStorage()
        self._pricing = pricing or PricingPolicy()
        self._generation, self._items = self._restore()

    @property
    def generation(self) -> str:
        return self._generation

    def snapshot(self) -> CartSnapshot:
        return CartSnapshot.priced(self._items, self._pricing)

    # -------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------
    def add(self, product_id: str, quantity: int = 1) -> CartSnapshot:
        """Add a product, or increase the quantity of its existing line."""
        check_quantity(quantity)
        product_id = str(product_id)

        existing = self._find(product_id)
        if existing is not None:
            self._replace(existing.with_quantity(existing.quantity + quantity))
        else:
            product = self._catalogue.get_product(product_id)
            if product is None:
                raise InvalidOperand(f"Unknown product {product_id}", product_id=product_id)
            self._items.append(
                CartItem(
                    id=uuid4().hex,
                    product_id=product_id,
                    quantity=quantity,
                    unit_price=product.price,
                    product=ProductSnapshot(name=product.name, image=product.image, sku=product.sku),
                )
            )

        self._persist()
        logger.debug("guest_cart_item_added", product_id=product_id, quantity=quantity)
        return self.snapshot()

    def update(self, product_id: str, quantity: int) -> CartSnapshot:
        check_quantity(quantity)
        item = self._require(product_id)
        self._replace(item.with_quantity(quantity))
        self._persist()
        return self.snapshot()

    def remove(self, product_id: str) -> CartSnapshot:
        item = self._require(product_id)
        self._items = [i for i in self._items if i.product_id != item.product_id]
        self._persist()
        return self.snapshot()

    def clear(self) -> None:
        """Empty the cart and start a new generation."""
        self._items = []
        self._generation = uuid4().hex
        self._storage.delete()
        logger.debug("guest_cart_cleared", generation=self._generation)

    # -------------------------------------------------------------------
    # Merge support
    # -------------------------------------------------------------------
    def discard_merged(self, lines: list[dict]) -> CartSnapshot:
        """Take confirmed merge lines out of the cart.

        Quantities added after the lines were read stay behind under a new
        generation. The cart is cleared when nothing is left.
        """
        merged: dict[str, int] = {}
        for line in lines:
            product_id = str(line["product_id"])
            merged[product_id] = merged.get(product_id, 0) + line["quantity"]

        remaining = []
        for item in self._items:
            left = item.quantity - merged.get(item.product_id, 0)
            if left > 0:
                remaining.append(item.with_quantity(left))

        if not remaining:
            self.clear()
            return self.snapshot()

        self._items = remaining
        self._generation = uuid4().hex
        self._persist()
        logger.info("guest_cart_lines_kept", generation=self._generation, lines=len(remaining))
        return self.snapshot()

    def merge_key(self) -> str:
        """Key that identifies the current contents of this guest cart."""
        lines = sorted((item.product_id, item.quantity) for item in self._items)
        digest = hashlib.sha256(json.dumps(lines).encode("utf-8")).hexdigest()[:16]
        return f"{self._generation}:{digest}"

    # -------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------
    def _find(self, product_id: str) -> CartItem | None:
        return next((i for i in self._items if i.product_id == str(product_id)), None)

    def _require(self, product_id: str) -> CartItem:
        item = self._find(product_id)
        if item is None:
            raise InvalidOperand(f"Product {product_id} is not in the cart", product_id=str(product_id))
        return item

    def _replace(self, updated: CartItem) -> None:
        self._items = [updated if i.product_id == updated.product_id else i for i in self._items]

    def _persist(self) -> None:
        self._storage.save(
            {
                "version": STORAGE_VERSION,
                "generation": self._generation,
                "items": [
                    {
                        "id": item.id,
                        "product_id": item.product_id,
                        "quantity": item.quantity,
                        "unit_price": str(item.unit_price),
                        "name": item.product.name,
                        "image": item.product.image,
                        "sku": item.product.sku,
                    }
                    for item in self._items
                ],
            }
        )

    def _restore(self) -> tuple[str, list[CartItem]]:
        """Load the persisted cart, starting fresh when it is missing or unreadable."""
        try:
            payload = self._storage.load()
        except (OSError, ValueError) as exc:
            logger.warning("guest_cart_storage_unreadable", error=str(exc))
            return uuid4().hex, []

        if not payload:
            return uuid4().hex, []

        try:
            items = [
                CartItem(
                    id=str(raw["id"]),
                    product_id=str(raw["product_id"]),
                    quantity=raw["quantity"],
                    unit_price=Decimal(str(raw["unit_price"])),
                    product=ProductSnapshot(name=raw.get("name"), image=raw.get("image"), sku=raw.get("sku")),
                )
                for raw in payload.get("items", [])
            ]
            # Validates line uniqueness
            CartSnapshot(items=tuple(items))
        except (KeyError, TypeError, ValueError, ArithmeticError) as exc:
            logger.warning("guest_cart_storage_invalid", error=str(exc))
            return uuid4().hex, []

        return str(payload.get("generation") or uuid4().hex), items
