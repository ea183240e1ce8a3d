"""Shared BDD fixtures and step definitions for the Carts domain."""

import pytest
from carts.cart.cart import ShoppingCart
from pytest_bdd import given, parsers


@pytest.fixture()
def customer_id():
    return "cust-001"


@pytest.fixture()
def error():
    """Container for captured validation errors."""
    return {"exc": None}


@given("a customer cart", target_fixture="cart")
def customer_cart(customer_id):
    return ShoppingCart.create(customer_id=customer_id)


@given(parsers.cfparse('the cart holds product "{product_id}" quantity {qty:d} at price {price:f}'))
def cart_holds_product(cart, product_id, qty, price):
    cart.add_item(product_id=product_id, quantity=qty, unit_price=price)
