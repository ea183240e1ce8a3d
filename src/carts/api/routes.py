"""FastAPI routes for the Carts domain."""

import json
from decimal import Decimal

from fastapi import APIRouter, HTTPException
from protean.exceptions import ObjectNotFoundError
from protean.utils.globals import current_domain

from carts.api.schemas import (
    AddToCartRequest,
    CartItemSchema,
    CartResponse,
    MergeGuestCartRequest,
    MergeResponse,
    UpdateCartQuantityRequest,
)
from carts.cart.cart import ShoppingCart
from carts.cart.items import AddToCart, RemoveFromCart, UpdateCartQuantity
from carts.cart.management import ClearCart, MergeGuestCart
from shared.pricing import PricingPolicy, to_money

cart_router = APIRouter(prefix="/customers/{customer_id}/cart", tags=["carts"])


def _load_cart(customer_id: str) -> ShoppingCart:
    try:
        return current_domain.repository_for(ShoppingCart).get(customer_id)
    except ObjectNotFoundError:
        raise HTTPException(status_code=404, detail=f"No cart for customer {customer_id}")


def _cart_response(cart: ShoppingCart) -> CartResponse:
    """Serialize a cart with totals derived from its lines."""
    items = [
        CartItemSchema(
            id=str(item.id),
            product_id=str(item.product_id),
            quantity=item.quantity,
            unit_price=item.unit_price,
            name=item.name,
            image=item.image,
            sku=item.sku,
        )
        for item in cart.items
    ]
    subtotal = sum((to_money(item.unit_price) * item.quantity for item in cart.items), Decimal("0"))
    tax, shipping = PricingPolicy.from_env().charges_for(subtotal)
    return CartResponse(
        customer_id=str(cart.customer_id),
        items=items,
        subtotal=float(subtotal),
        tax=float(tax),
        shipping=float(shipping),
        total=float(subtotal + tax + shipping),
        item_count=sum(item.quantity for item in cart.items),
    )


@cart_router.get("", response_model=CartResponse)
async def get_cart(customer_id: str) -> CartResponse:
    return _cart_response(_load_cart(customer_id))


@cart_router.delete("", response_model=CartResponse)
async def clear_cart(customer_id: str) -> CartResponse:
    _load_cart(customer_id)
    current_domain.process(ClearCart(customer_id=customer_id), asynchronous=False)
    return _cart_response(_load_cart(customer_id))


@cart_router.post("/items", response_model=CartResponse)
async def add_cart_item(customer_id: str, body: AddToCartRequest) -> CartResponse:
    command = AddToCart(
        customer_id=customer_id,
        product_id=body.product_id,
        quantity=body.quantity,
    )
    current_domain.process(command, asynchronous=False)
    return _cart_response(_load_cart(customer_id))


@cart_router.put("/items/{product_id}", response_model=CartResponse)
async def update_cart_item_quantity(customer_id: str, product_id: str, body: UpdateCartQuantityRequest) -> CartResponse:
    _load_cart(customer_id)
    command = UpdateCartQuantity(
        customer_id=customer_id,
        product_id=product_id,
        new_quantity=body.quantity,
    )
    current_domain.process(command, asynchronous=False)
    return _cart_response(_load_cart(customer_id))


@cart_router.delete("/items/{product_id}", response_model=CartResponse)
async def remove_cart_item(customer_id: str, product_id: str) -> CartResponse:
    _load_cart(customer_id)
    command = RemoveFromCart(
        customer_id=customer_id,
        product_id=product_id,
    )
    current_domain.process(command, asynchronous=False)
    return _cart_response(_load_cart(customer_id))


@cart_router.post("/merge", response_model=MergeResponse)
async def merge_guest_cart(customer_id: str, body: MergeGuestCartRequest) -> MergeResponse:
    """Merge a guest cart into the customer's cart.

    Replaying a merge token returns items_merged=0 and changes nothing.
    """
    command = MergeGuestCart(
        customer_id=customer_id,
        merge_token=body.merge_token,
        guest_cart_items=json.dumps([item.model_dump() for item in body.items]),
    )
    merged = current_domain.process(command, asynchronous=False)
    return MergeResponse(items_merged=merged or 0)
