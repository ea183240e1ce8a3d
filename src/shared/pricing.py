"""Cart pricing policy shared by the guest store and the carts domain.

Only tax and shipping are decided here. Subtotals and totals are always
derived from the cart lines by whoever holds them.
"""

import os
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

CENT = Decimal("0.01")


def to_money(value) -> Decimal:
    """Coerce a number (float, int, str or Decimal) to a 2-place Decimal."""
    if isinstance(value, Decimal):
        amount = value
    else:
        amount = Decimal(str(value))
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class PricingPolicy:
    tax_rate: Decimal = Decimal("0")
    flat_shipping: Decimal = Decimal("0")
    free_shipping_over: Decimal | None = None

    @classmethod
    def from_env(cls) -> "PricingPolicy":
        threshold = os.environ.get("CART_FREE_SHIPPING_OVER")
        return cls(
            tax_rate=Decimal(os.environ.get("CART_TAX_RATE", "0")),
            flat_shipping=to_money(os.environ.get("CART_FLAT_SHIPPING", "0")),
            free_shipping_over=to_money(threshold) if threshold else None,
        )

    def tax_for(self, subtotal: Decimal) -> Decimal:
        return to_money(subtotal * self.tax_rate)

    def shipping_for(self, subtotal: Decimal) -> Decimal:
        # Empty carts ship nothing
        if subtotal <= 0:
            return to_money(0)
        if self.free_shipping_over is not None and subtotal >= self.free_shipping_over:
            return to_money(0)
        return to_money(self.flat_shipping)

    def charges_for(self, subtotal: Decimal) -> tuple[Decimal, Decimal]:
        """Return (tax, shipping) for a line subtotal."""
        return self.tax_for(subtotal), self.shipping_for(subtotal)
