"""Configurable fake authenticated cart service for development and testing.

Simulates the server cart in memory. It can be configured at runtime to:
- fail the next N calls of a given method, or every call (an outage)
- acknowledge a merge without making it visible for a few reads
  (read-after-write lag)
- report a merge as unsuccessful without raising
- hold merges in flight until a gate is opened
"""

import asyncio

from shared.catalogue import get_catalogue
from shared.catalogue.port import ProductCatalogue
from shared.pricing import PricingPolicy
from storefront.cart.errors import InvalidOperand, RemoteUnavailable
from storefront.cart.snapshot import CartItem, CartSnapshot, ProductSnapshot
from storefront.remote.port import AuthenticatedCartService, MergeResult


def merge_items(existing: list[CartItem], guest_lines: list[dict]) -> list[CartItem]:
    """Fold guest lines into existing lines.

    A product on both sides gets the summed quantity and keeps the existing
    line's price. A guest-only product is appended with the guest's price.
    """
    merged = list(existing)
    for line in guest_lines:
        product_id = str(line["product_id"])
        index = next((n for n, item in enumerate(merged) if item.product_id == product_id), None)
        if index is not None:
            merged[index] = merged[index].with_quantity(merged[index].quantity + line["quantity"])
        else:
            merged.append(
                CartItem(
                    id=f"srv-{product_id}",
                    product_id=product_id,
                    quantity=line["quantity"],
                    unit_price=line["unit_price"],
                    product=ProductSnapshot(name=line.get("name"), image=line.get("image"), sku=line.get("sku")),
                )
            )
    return merged


class FakeCartService(AuthenticatedCartService):
    """Configurable in-memory authenticated cart."""

    def __init__(self, catalogue: ProductCatalogue | None = None, pricing: PricingPolicy | None = None) -> None:
        super().__init__()
        self._catalogue = catalogue or get_catalogue()
        self._pricing = pricing or PricingPolicy()
        self._items: list[CartItem] = []
        self._exists = False
        self._merge_keys: set[str] = set()
        self._lagged_reads = 0
        self._lagged_view: CartSnapshot | None = None

        self.calls: list[dict] = []
        self.should_succeed: bool = True
        self.failure_reason: str = "Cart service unavailable"
        self.failures: dict[str, int] = {}
        self.visibility_lag: int = 0
        self.merge_reports_failure: bool = False
        self.merge_gate: asyncio.Event | None = None

    # -------------------------------------------------------------------
    # Runtime configuration
    # -------------------------------------------------------------------
    def configure(
        self,
        should_succeed: bool = True,
        failure_reason: str = "Cart service unavailable",
        visibility_lag: int = 0,
        merge_reports_failure: bool = False,
    ) -> None:
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason
        self.visibility_lag = visibility_lag
        self.merge_reports_failure = merge_reports_failure

    def fail_next(self, method: str, times: int = 1) -> None:
        """Make the next `times` calls of `method` raise RemoteUnavailable."""
        self.failures[method] = self.failures.get(method, 0) + times

    def seed(self, product_id: str, quantity: int, unit_price=None) -> None:
        """Put a line in the server cart directly, bypassing call recording."""
        product = self._catalogue.get_product(product_id)
        if product is None and unit_price is None:
            raise ValueError(f"Seeding unknown product {product_id} needs a unit price")
        price = unit_price if unit_price is not None else product.price
        self._items = merge_items(
            self._items,
            [
                {
                    "product_id": product_id,
                    "quantity": quantity,
                    "unit_price": price,
                    "name": product.name if product else None,
                }
            ],
        )
        self._exists = True

    def calls_to(self, method: str) -> list[dict]:
        return [call for call in self.calls if call["method"] == method]

    # -------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------
    async def _enter(self, method: str, **arguments) -> None:
        self.calls.append({"method": method, **arguments})
        # Every call is a real suspension point
        await asyncio.sleep(0)

    def _maybe_fail(self, method: str) -> None:
        remaining = self.failures.get(method, 0)
        if remaining:
            self.failures[method] = remaining - 1
            raise RemoteUnavailable(self.failure_reason, method=method)
        if not self.should_succeed:
            raise RemoteUnavailable(self.failure_reason, method=method)

    def _current(self) -> CartSnapshot | None:
        if not self._exists:
            return None
        return CartSnapshot.priced(self._items, self._pricing)

    def _require(self, product_id: str) -> int:
        index = next((n for n, item in enumerate(self._items) if item.product_id == str(product_id)), None)
        if index is None or not self._exists:
            raise InvalidOperand(f"Product {product_id} is not in the cart", product_id=str(product_id))
        return index

    # -------------------------------------------------------------------
    # AuthenticatedCartService
    # -------------------------------------------------------------------
    async def snapshot(self) -> CartSnapshot | None:
        await self._enter("snapshot")
        self._maybe_fail("snapshot")
        if self._lagged_reads:
            self._lagged_reads -= 1
            return self._remember(self._lagged_view)
        return self._remember(self._current())

    async def add(self, product_id: str, quantity: int) -> CartSnapshot:
        await self._enter("add", product_id=product_id, quantity=quantity)
        self._maybe_fail("add")
        product = self._catalogue.get_product(product_id)
        if product is None:
            raise InvalidOperand(f"Unknown product {product_id}", product_id=str(product_id))
        self._items = merge_items(
            self._items,
            [
                {
                    "product_id": product.product_id,
                    "quantity": quantity,
                    "unit_price": product.price,
                    "name": product.name,
                    "image": product.image,
                    "sku": product.sku,
                }
            ],
        )
        self._exists = True
        return self._remember(self._current())

    async def update(self, product_id: str, quantity: int) -> CartSnapshot:
        await self._enter("update", product_id=product_id, quantity=quantity)
        self._maybe_fail("update")
        index = self._require(product_id)
        self._items[index] = self._items[index].with_quantity(quantity)
        return self._remember(self._current())

    async def remove(self, product_id: str) -> CartSnapshot:
        await self._enter("remove", product_id=product_id)
        self._maybe_fail("remove")
        index = self._require(product_id)
        del self._items[index]
        return self._remember(self._current())

    async def clear(self) -> CartSnapshot:
        await self._enter("clear")
        self._maybe_fail("clear")
        self._items = []
        self._exists = True
        return self._remember(self._current())

    async def merge_in(self, lines: list[dict], merge_key: str) -> MergeResult:
        await self._enter("merge_in", lines=lines, merge_key=merge_key)
        if self.merge_gate is not None:
            await self.merge_gate.wait()
        self._maybe_fail("merge_in")

        if self.merge_reports_failure:
            return MergeResult(success=False, failure_reason=self.failure_reason)
        if merge_key in self._merge_keys:
            return MergeResult(success=True, items_merged=0)

        before = self._current()
        self._items = merge_items(self._items, lines)
        self._exists = True
        self._merge_keys.add(merge_key)

        if self.visibility_lag:
            self._lagged_reads = self.visibility_lag
            self._lagged_view = before
        return MergeResult(success=True, items_merged=len(lines))
