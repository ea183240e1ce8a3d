"""Cart item management: commands and handler."""

from protean import handle
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.fields import Identifier, Integer
from protean.utils.globals import current_domain

from carts.cart.cart import ShoppingCart
from carts.domain import carts
from shared.catalogue import get_catalogue


@carts.command(part_of="ShoppingCart")
class AddToCart:
    customer_id = Identifier(required=True)
    product_id = Identifier(required=True)
    quantity = Integer(required=True, min_value=1)


@carts.command(part_of="ShoppingCart")
class UpdateCartQuantity:
    customer_id = Identifier(required=True)
    product_id = Identifier(required=True)
    new_quantity = Integer(required=True, min_value=1)


@carts.command(part_of="ShoppingCart")
class RemoveFromCart:
    customer_id = Identifier(required=True)
    product_id = Identifier(required=True)


def load_or_create_cart(customer_id):
    """Return the customer's cart, starting an empty one if none exists yet."""
    try:
        return current_domain.repository_for(ShoppingCart).get(customer_id)
    except ObjectNotFoundError:
        return ShoppingCart.create(customer_id=customer_id)


@carts.command_handler(part_of=ShoppingCart)
class ManageCartItemsHandler:
    @handle(AddToCart)
    def add_to_cart(self, command):
        product = get_catalogue().get_product(command.product_id)
        if product is None:
            raise ValidationError({"product_id": [f"Unknown product {command.product_id}"]})

        repo = current_domain.repository_for(ShoppingCart)
        cart = load_or_create_cart(command.customer_id)
        cart.add_item(
            product_id=product.product_id,
            quantity=command.quantity,
            unit_price=float(product.price),
            name=product.name,
            image=product.image,
            sku=product.sku,
        )
        repo.add(cart)

    @handle(UpdateCartQuantity)
    def update_cart_quantity(self, command):
        repo = current_domain.repository_for(ShoppingCart)
        cart = repo.get(command.customer_id)
        cart.update_item_quantity(
            product_id=command.product_id,
            new_quantity=command.new_quantity,
        )
        repo.add(cart)

    @handle(RemoveFromCart)
    def remove_from_cart(self, command):
        repo = current_domain.repository_for(ShoppingCart)
        cart = repo.get(command.customer_id)
        cart.remove_item(product_id=command.product_id)
        repo.add(cart)
