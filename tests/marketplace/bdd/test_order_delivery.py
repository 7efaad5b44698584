"""BDD tests for courier delivery confirmation."""

from protean import current_domain
from protean.exceptions import ValidationError
from pytest_bdd import given, parsers, scenarios, then, when

from marketplace.order import lifecycle
from marketplace.order.order import Order

scenarios("features/order_delivery.feature")


def _scan(context, order_id, token):
    try:
        context["result"] = lifecycle.confirm_delivery(order_id, token, actor="courier-001")
    except ValidationError as exc:
        context["exc"] = exc


@given("the courier scanned the delivery code")
@when("the courier scans the delivery code")
def _(context, order_id):
    token = current_domain.repository_for(Order).get(order_id).delivery_token
    _scan(context, order_id, token)


@when(parsers.cfparse('the courier scans the code "{token}"'))
def _(context, order_id, token):
    _scan(context, order_id, token)


@then(parsers.cfparse('the history reads "{statuses}"'))
def _(order_id, statuses):
    order = current_domain.repository_for(Order).get(order_id)
    assert [entry.status for entry in order.history()] == [s.strip() for s in statuses.split(",")]


@then("the scan reports the order was already delivered")
def _(context):
    assert context["exc"] is None
    assert context["result"]["already_delivered"] is True
    assert context["result"]["status"] == "delivered"


@then("the scan is rejected")
def _(context):
    assert isinstance(context["exc"], ValidationError)
