"""Immutable cart snapshots exchanged between the stores and the engine.

Snapshots are validated when they are built, so everything downstream can
rely on their shape. Subtotal, total and item count are derived from the
lines on every access and can never drift from them.
"""

from dataclasses import dataclass, field
from decimal import Decimal

from shared.pricing import PricingPolicy, to_money

ZERO = Decimal("0.00")


@dataclass(frozen=True)
class ProductSnapshot:
    """Product details captured when a line was added."""

    name: str | None = None
    image: str | None = None
    sku: str | None = None


@dataclass(frozen=True)
class CartItem:
    id: str
    product_id: str
    quantity: int
    unit_price: Decimal
    product: ProductSnapshot = field(default_factory=ProductSnapshot)

    def __post_init__(self) -> None:
        if isinstance(self.quantity, bool) or not isinstance(self.quantity, int) or self.quantity < 1:
            raise ValueError(f"Quantity for {self.product_id} must be a positive integer, got {self.quantity!r}")
        object.__setattr__(self, "unit_price", to_money(self.unit_price))
        if self.unit_price < ZERO:
            raise ValueError(f"Unit price for {self.product_id} must not be negative")

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity

    def with_quantity(self, quantity: int) -> "CartItem":
        return CartItem(
            id=self.id,
            product_id=self.product_id,
            quantity=quantity,
            unit_price=self.unit_price,
            product=self.product,
        )


@dataclass(frozen=True)
class CartSnapshot:
    items: tuple[CartItem, ...] = ()
    tax: Decimal = ZERO
    shipping: Decimal = ZERO

    def __post_init__(self) -> None:
        object.__setattr__(self, "items", tuple(self.items))
        object.__setattr__(self, "tax", to_money(self.tax))
        object.__setattr__(self, "shipping", to_money(self.shipping))
        if self.tax < ZERO or self.shipping < ZERO:
            raise ValueError("Tax and shipping must not be negative")

        seen = set()
        for item in self.items:
            if item.product_id in seen:
                raise ValueError(f"Duplicate line for product {item.product_id}")
            seen.add(item.product_id)

    @classmethod
    def empty(cls) -> "CartSnapshot":
        return cls()

    @classmethod
    def priced(cls, items, policy: PricingPolicy) -> "CartSnapshot":
        """Build a snapshot whose tax and shipping come from a pricing policy."""
        items = tuple(items)
        subtotal = sum((item.line_total for item in items), ZERO)
        tax, shipping = policy.charges_for(subtotal)
        return cls(items=items, tax=tax, shipping=shipping)

    @property
    def subtotal(self) -> Decimal:
        return sum((item.line_total for item in self.items), ZERO)

    @property
    def total(self) -> Decimal:
        return self.subtotal + self.tax + self.shipping

    @property
    def item_count(self) -> int:
        return sum(item.quantity for item in self.items)

    @property
    def is_empty(self) -> bool:
        return not self.items

    def find(self, product_id: str) -> CartItem | None:
        return next((i for i in self.items if i.product_id == str(product_id)), None)

    def quantities(self) -> dict[str, int]:
        """Map of product id to quantity, in line order."""
        return {item.product_id: item.quantity for item in self.items}

    def merge_lines(self) -> list[dict]:
        """Lines in the shape the merge-in call expects."""
        return [
            {
                "product_id": item.product_id,
                "quantity": item.quantity,
                "unit_price": float(item.unit_price),
                "name": item.product.name,
                "image": item.product.image,
                "sku": item.product.sku,
            }
            for item in self.items
        ]
