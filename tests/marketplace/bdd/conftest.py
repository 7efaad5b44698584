"""Shared BDD fixtures and step definitions for the marketplace."""

import pytest
from protean import current_domain
from pytest_bdd import given, parsers, then

from marketplace.order import lifecycle
from marketplace.order.order import Order


@pytest.fixture()
def context():
    """Container for values carried between steps (results, captured errors)."""
    return {"exc": None}


def _order(order_id):
    return current_domain.repository_for(Order).get(order_id)


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given(parsers.cfparse("a mobile money order totalling {amount:d}"), target_fixture="order_id")
def _(place_order, amount):
    return place_order(amount=amount)


@given(parsers.cfparse("two mobile money orders totalling {amount:d}"), target_fixture="order_ids")
def _(place_order, amount):
    return [place_order(amount=amount), place_order(amount=amount)]


@given(parsers.cfparse('the order is moved to "{status}"'))
def _(order_id, status):
    lifecycle.update_status(order_id, status)


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then("the order is paid")
def _(order_id):
    order = _order(order_id)
    assert order.is_paid is True
    assert order.payment_status == "paid"


@then(parsers.cfparse('the order is "{status}"'))
def _(order_id, status):
    assert _order(order_id).status == status


@then(parsers.cfparse('the order payment status is "{status}"'))
def _(order_id, status):
    assert _order(order_id).payment_status == status


@then("the first order is paid")
def _(order_ids):
    assert _order(order_ids[0]).is_paid is True


@then("no order is paid")
def _():
    orders = current_domain.repository_for(Order)._dao.query.all().items
    assert orders
    assert not any(order.is_paid for order in orders)
