"""Domain events for the ShoppingCart aggregate."""

from protean.fields import Float, Identifier, Integer, String

from carts.domain import carts


@carts.event(part_of="ShoppingCart")
class CartItemAdded:
    """A product was added to the cart, or its quantity increased."""

    __version__ = 1

    cart_id = Identifier(required=True)
    product_id = Identifier(required=True)
    quantity = Integer(required=True)
    unit_price = Float(required=True)


@carts.event(part_of="ShoppingCart")
class CartQuantityUpdated:
    __version__ = 1

    cart_id = Identifier(required=True)
    product_id = Identifier(required=True)
    previous_quantity = Integer(required=True)
    new_quantity = Integer(required=True)


@carts.event(part_of="ShoppingCart")
class CartItemRemoved:
    __version__ = 1

    cart_id = Identifier(required=True)
    product_id = Identifier(required=True)


@carts.event(part_of="ShoppingCart")
class CartCleared:
    """Every line was removed from the cart at once."""

    __version__ = 1

    cart_id = Identifier(required=True)
    items_removed_count = Integer(required=True)


@carts.event(part_of="ShoppingCart")
class CartsMerged:
    """A guest cart's lines were merged into a customer's cart."""

    __version__ = 1

    cart_id = Identifier(required=True)
    merge_token = String(required=True)
    items_merged_count = Integer(required=True)
