"""Cart management: commands and handler.

Handles clearing a cart and merging a guest cart into it.
"""

import json

import structlog
from protean import handle
from protean.fields import Identifier, String, Text
from protean.utils.globals import current_domain

from carts.cart.cart import ShoppingCart
from carts.cart.items import load_or_create_cart
from carts.domain import carts
from shared.catalogue import get_catalogue

logger = structlog.get_logger(__name__)


@carts.command(part_of="ShoppingCart")
class ClearCart:
    customer_id = Identifier(required=True)


@carts.command(part_of="ShoppingCart")
class MergeGuestCart:
    """Merge lines from a guest cart into a registered customer's cart."""

    customer_id = Identifier(required=True)
    merge_token = String(required=True, max_length=255)
    guest_cart_items = Text(required=True)  # JSON: list of {product_id, quantity, unit_price?, name?, image?, sku?}


def _fill_from_catalogue(guest_items):
    """Complete guest lines that arrived without a price or product details."""
    catalogue = get_catalogue()
    completed = []
    for item in guest_items:
        line = dict(item)
        line["product_id"] = str(line.get("product_id"))
        if line.get("unit_price") is None or not line.get("name"):
            product = catalogue.get_product(line["product_id"])
            if product is not None:
                if line.get("unit_price") is None:
                    line["unit_price"] = float(product.price)
                for field in ("name", "image", "sku"):
                    if not line.get(field):
                        line[field] = getattr(product, field)
        completed.append(line)
    return completed


@carts.command_handler(part_of=ShoppingCart)
class ManageCartHandler:
    @handle(ClearCart)
    def clear_cart(self, command):
        repo = current_domain.repository_for(ShoppingCart)
        cart = repo.get(command.customer_id)
        cart.clear()
        repo.add(cart)

    @handle(MergeGuestCart)
    def merge_guest_cart(self, command):
        repo = current_domain.repository_for(ShoppingCart)
        cart = load_or_create_cart(command.customer_id)

        guest_items = (
            json.loads(command.guest_cart_items)
            if isinstance(command.guest_cart_items, str)
            else command.guest_cart_items
        )

        merged = cart.merge_guest_cart(
            guest_cart_items=_fill_from_catalogue(guest_items),
            merge_token=command.merge_token,
        )
        if merged == 0 and guest_items:
            logger.info("guest_cart_merge_replayed", customer_id=command.customer_id, merge_token=command.merge_token)
            return 0

        repo.add(cart)
        return merged
