"""Authenticated cart service port (abstract interface).

Defines the contract for the server-persisted cart of the signed-in
customer. This enables swapping between FakeCartService (dev/test) and
HttpCartService (the Carts API) without changing the engine.

Every adapter keeps the last snapshot it fetched or received. A failed call
must leave that snapshot untouched.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass

from storefront.cart.snapshot import CartSnapshot


@dataclass(frozen=True)
class MergeResult:
    """Result of a merge-in attempt."""

    success: bool
    items_merged: int = 0
    failure_reason: str | None = None


class AuthenticatedCartService(ABC):
    """Abstract authenticated cart interface."""

    def __init__(self) -> None:
        self._last_snapshot: CartSnapshot | None = None

    @property
    def last_snapshot(self) -> CartSnapshot | None:
        """Most recent snapshot seen, or None when absent or never fetched."""
        return self._last_snapshot

    def reset(self) -> None:
        """Forget the cached snapshot (on sign-out)."""
        self._last_snapshot = None

    def _remember(self, snapshot: CartSnapshot | None) -> CartSnapshot | None:
        self._last_snapshot = snapshot
        return snapshot

    @abstractmethod
    async def snapshot(self) -> CartSnapshot | None:
        """Fetch the cart. None when the customer has no cart yet."""
        ...

    @abstractmethod
    async def add(self, product_id: str, quantity: int) -> CartSnapshot: ...

    @abstractmethod
    async def update(self, product_id: str, quantity: int) -> CartSnapshot: ...

    @abstractmethod
    async def remove(self, product_id: str) -> CartSnapshot: ...

    @abstractmethod
    async def clear(self) -> CartSnapshot: ...

    @abstractmethod
    async def merge_in(self, lines: list[dict], merge_key: str) -> MergeResult:
        """Merge guest lines into the cart.

        Must be safe to retry: a merge_key the server already applied is
        acknowledged without changing the cart again.
        """
        ...
