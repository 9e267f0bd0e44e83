"""Shared BDD fixtures and step definitions for carts and orders."""

from dataclasses import replace

import pytest
from ordering.cart.cart import Cart
from ordering.errors import OrderingError
from ordering.order.order import Order
from ordering.shared.actor import Actor
from protean import current_domain
from pytest_bdd import given, parsers, then, when

BUYER = Actor.customer("user-1")
VENDOR = Actor.vendor("vendor-1")


@pytest.fixture()
def error():
    """Container for the failure raised by the last When step."""
    return {"exc": None}


@pytest.fixture()
def context():
    return {"order": None}


def attempt(error, operation, *args, **kwargs):
    """Run ``operation`` and capture an expected failure instead of raising."""
    error["exc"] = None
    try:
        return operation(*args, **kwargs)
    except OrderingError as exc:
        error["exc"] = exc
        return None


def reload_order(context) -> Order:
    return current_domain.repository_for(Order).get(context["order"].id)


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given(parsers.cfparse('a product "{product_id}" priced {price:g} with {stock:d} in stock'))
def _(add_product, product_id, price, stock):
    add_product(product_id, price=float(price), stock=stock)


@given(parsers.cfparse('the customer has {quantity:d} of "{product_id}" in the cart'))
def _(carts, quantity, product_id):
    carts.add_item(BUYER.id, product_id, quantity)


@given(parsers.cfparse('the customer has placed an order for {quantity:d} of "{product_id}"'))
def _(carts, orders, shipping_address, context, quantity, product_id):
    carts.add_item(BUYER.id, product_id, quantity)
    context["order"] = orders.create_order(BUYER.id, shipping_address, "stripe")


# ---------------------------------------------------------------------------
# When steps
# ---------------------------------------------------------------------------
@when(parsers.cfparse('the customer adds {quantity:d} of "{product_id}" to the cart'))
def _(carts, error, quantity, product_id):
    attempt(error, carts.add_item, BUYER.id, product_id, quantity)


@when(parsers.cfparse('product "{product_id}" is deactivated'))
def _(catalog, product_id):
    catalog.save(replace(catalog.get_product(product_id), status="inactive"))


@when("the customer checks out")
def _(orders, shipping_address, context, error):
    order = attempt(error, orders.create_order, BUYER.id, shipping_address, "stripe")
    if order is not None:
        context["order"] = order


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse('the operation fails with "{error_name}"'))
def _(error, error_name):
    assert error["exc"] is not None, f"expected {error_name}, nothing was raised"
    assert type(error["exc"]).__name__ == error_name


@then("the cart is empty")
def _(carts):
    assert carts.get_or_create(BUYER.id).items == []


@then(parsers.cfparse('the cart holds {quantity:d} of "{product_id}"'))
def _(carts, quantity, product_id):
    line = carts.get_or_create(BUYER.id).find_line(product_id)
    assert line is not None
    assert line.quantity == quantity


@then(parsers.cfparse("the cart {field} is {amount:g}"))
def _(carts, field, amount):
    assert getattr(carts.get_or_create(BUYER.id), field) == pytest.approx(amount)


@then(parsers.cfparse('product "{product_id}" has {stock:d} in stock and {purchases:d} purchases'))
def _(catalog, product_id, stock, purchases):
    product = catalog.get_product(product_id)
    assert product.stock == stock
    assert product.purchases == purchases


@then(parsers.cfparse('the order is "{status}"'))
def _(context, status):
    assert reload_order(context).status == status


@then("no order exists")
def _():
    assert current_domain.repository_for(Order).count() == 0
    assert current_domain.repository_for(Cart).find_by_user(BUYER.id).items == []
