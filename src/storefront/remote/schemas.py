"""Pydantic models for Carts API responses, as read by the storefront.

Responses are validated here before any snapshot is built from them.
"""

from decimal import Decimal

from pydantic import BaseModel, Field

from storefront.cart.snapshot import CartItem, CartSnapshot, ProductSnapshot


class CartItemBody(BaseModel):
    id: str
    product_id: str
    quantity: int = Field(ge=1)
    unit_price: Decimal = Field(ge=0)
    name: str | None = None
    image: str | None = None
    sku: str | None = None


class CartBody(BaseModel):
    customer_id: str
    items: list[CartItemBody]
    tax: Decimal = Field(default=Decimal("0"), ge=0)
    shipping: Decimal = Field(default=Decimal("0"), ge=0)

    def to_snapshot(self) -> CartSnapshot:
        # Server subtotal/total/item_count are ignored; the snapshot derives them
        return CartSnapshot(
            items=tuple(
                CartItem(
                    id=item.id,
                    product_id=item.product_id,
                    quantity=item.quantity,
                    unit_price=item.unit_price,
                    product=ProductSnapshot(name=item.name, image=item.image, sku=item.sku),
                )
                for item in self.items
            ),
            tax=self.tax,
            shipping=self.shipping,
        )


class MergeBody(BaseModel):
    status: str
    items_merged: int = Field(ge=0)
