"""Shopping Cart aggregate (CQRS): the authenticated customer's cart.

The cart is a standard CQRS aggregate (not event sourced). There is one cart
per customer and its identity is the customer id. Lines are unique by
product and carry the price and product details captured when they were
added, so reads never need the catalogue.
"""

import json
from datetime import UTC, datetime

from protean.exceptions import ValidationError
from protean.fields import DateTime, Float, HasMany, Identifier, Integer, String, Text

from carts.cart.events import (
    CartCleared,
    CartItemAdded,
    CartItemRemoved,
    CartQuantityUpdated,
    CartsMerged,
)
from carts.domain import carts


@carts.entity(part_of="ShoppingCart")
class CartItem:
    product_id = Identifier(required=True)
    quantity = Integer(required=True, min_value=1)
    unit_price = Float(required=True, min_value=0.0)
    name = String(max_length=255)
    image = String(max_length=1024)
    sku = String(max_length=100)
    added_at = DateTime()


@carts.aggregate
class ShoppingCart:
    customer_id = Identifier(required=True)
    items = HasMany(CartItem)
    merge_tokens = Text()  # JSON array of applied guest merge keys
    created_at = DateTime()
    updated_at = DateTime()

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def create(cls, customer_id):
        now = datetime.now(UTC)
        return cls(
            id=str(customer_id),
            customer_id=str(customer_id),
            merge_tokens=json.dumps([]),
            created_at=now,
            updated_at=now,
        )

    def find_item(self, product_id):
        return next((i for i in self.items if str(i.product_id) == str(product_id)), None)

    def _require_item(self, product_id):
        item = self.find_item(product_id)
        if item is None:
            raise ValidationError({"product_id": ["Product is not in the cart"]})
        return item

    # -------------------------------------------------------------------
    # Item management
    # -------------------------------------------------------------------
    def add_item(self, product_id, quantity, unit_price, name=None, image=None, sku=None):
        """Add a product to the cart (or increase quantity if already present).

        An existing line keeps the price it was added at.
        """
        if quantity < 1:
            raise ValidationError({"quantity": ["Quantity must be at least 1"]})

        now = datetime.now(UTC)
        existing = self.find_item(product_id)
        if existing:
            existing.quantity += quantity
            price = existing.unit_price
        else:
            self.add_items(
                CartItem(
                    product_id=product_id,
                    quantity=quantity,
                    unit_price=unit_price,
                    name=name,
                    image=image,
                    sku=sku,
                    added_at=now,
                )
            )
            price = unit_price

        self.updated_at = now

        self.raise_(
            CartItemAdded(
                cart_id=str(self.id),
                product_id=str(product_id),
                quantity=quantity,
                unit_price=price,
            )
        )

    def update_item_quantity(self, product_id, new_quantity):
        """Set the quantity of an existing line."""
        if new_quantity < 1:
            raise ValidationError({"quantity": ["Quantity must be at least 1"]})

        item = self._require_item(product_id)
        previous_quantity = item.quantity
        item.quantity = new_quantity
        self.updated_at = datetime.now(UTC)

        self.raise_(
            CartQuantityUpdated(
                cart_id=str(self.id),
                product_id=str(product_id),
                previous_quantity=previous_quantity,
                new_quantity=new_quantity,
            )
        )

    def remove_item(self, product_id):
        item = self._require_item(product_id)
        self.remove_items(item)
        self.updated_at = datetime.now(UTC)

        self.raise_(
            CartItemRemoved(
                cart_id=str(self.id),
                product_id=str(product_id),
            )
        )

    def clear(self):
        """Remove every line from the cart."""
        removed = list(self.items)
        for item in removed:
            self.remove_items(item)
        self.updated_at = datetime.now(UTC)

        self.raise_(
            CartCleared(
                cart_id=str(self.id),
                items_removed_count=len(removed),
            )
        )

    # -------------------------------------------------------------------
    # Cart merging (guest → authenticated)
    # -------------------------------------------------------------------
    def has_merged(self, merge_token):
        tokens = json.loads(self.merge_tokens) if self.merge_tokens else []
        return merge_token in tokens

    def merge_guest_cart(self, guest_cart_items, merge_token):
        """Merge lines from a guest cart into this cart.

        Quantities of products present on both sides are summed and the
        cart's own price is kept. A merge token that was already applied
        makes the call a no-op, so clients can retry blindly.

        Args:
            guest_cart_items: List of dicts with product_id, quantity,
                unit_price and optionally name, image, sku.
            merge_token: Key identifying this guest cart's contents.

        Returns:
            Number of guest lines merged (0 for a repeated token).
        """
        if not merge_token:
            raise ValidationError({"merge_token": ["Merge token is required"]})
        if self.has_merged(merge_token):
            return 0

        for guest_item in guest_cart_items:
            quantity = guest_item.get("quantity")
            if not isinstance(quantity, int) or quantity < 1:
                raise ValidationError({"quantity": ["Merged quantities must be positive integers"]})
            if guest_item.get("unit_price") is None:
                raise ValidationError({"unit_price": [f"No price for product {guest_item.get('product_id')}"]})

        now = datetime.now(UTC)
        for guest_item in guest_cart_items:
            existing = self.find_item(guest_item["product_id"])
            if existing:
                existing.quantity += guest_item["quantity"]
            else:
                self.add_items(
                    CartItem(
                        product_id=guest_item["product_id"],
                        quantity=guest_item["quantity"],
                        unit_price=guest_item["unit_price"],
                        name=guest_item.get("name"),
                        image=guest_item.get("image"),
                        sku=guest_item.get("sku"),
                        added_at=now,
                    )
                )

        tokens = json.loads(self.merge_tokens) if self.merge_tokens else []
        tokens.append(merge_token)
        self.merge_tokens = json.dumps(tokens)
        self.updated_at = now

        self.raise_(
            CartsMerged(
                cart_id=str(self.id),
                merge_token=merge_token,
                items_merged_count=len(guest_cart_items),
            )
        )
        return len(guest_cart_items)
