"""BDD tests for payment reconciliation."""

from protean import current_domain
from pytest_bdd import given, parsers, scenarios, then, when

from marketplace.order.order import Order
from marketplace.reconciliation.manual import resolve_parked_payment
from marketplace.reconciliation.payloads import InboundPayment
from marketplace.reconciliation.reconciler import reconcile

scenarios("features/payment_reconciliation.feature")


def _mtn_payment(amount, reference=None):
    return InboundPayment(
        provider="mtn",
        transaction_id="MP250110.1200.A00001",
        amount=amount,
        status="SUCCESSFUL",
        reference=reference,
        sender_phone="+256772555666",
    )


def _receive(context, inbound):
    context["inbound"] = inbound
    context["result"] = reconcile(inbound)
    return context["result"]


# ---------------------------------------------------------------------------
# Given / When steps
# ---------------------------------------------------------------------------
@when(parsers.cfparse("MTN reports a payment of {amount:d} quoting the order number"))
def _(context, order_id, amount):
    number = current_domain.repository_for(Order).get(order_id).order_number
    _receive(context, _mtn_payment(amount, reference=number))


@when(parsers.cfparse("MTN reports a payment of {amount:d} without a reference"))
def _(context, amount):
    _receive(context, _mtn_payment(amount))


@given(parsers.cfparse("MTN reported a payment of {amount:d} without a reference"))
def _(context, amount):
    _receive(context, _mtn_payment(amount))


@when("the same notification is delivered again")
def _(context):
    _receive(context, context["inbound"])


@when("an operator applies the parked payment to the first order")
def _(context, order_ids):
    record = resolve_parked_payment(
        context["result"].notification_id, order_ids[0], actor="ops@example.com", note="Buyer sent a receipt"
    )
    context["result"] = record


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse('the notification is "{status}" by "{match_type}"'))
def _(context, status, match_type):
    assert context["result"].status == status
    assert context["result"].match_type == match_type


@then(parsers.cfparse('the notification is parked as "{reason}"'))
def _(context, reason):
    assert context["result"].status == "parked"
    assert context["result"].park_reason == reason


@then("the last delivery is reported as a duplicate")
def _(context):
    assert context["result"].duplicate is True


@then(parsers.cfparse("the order history has {count:d} entries"))
def _(order_id, count):
    assert len(current_domain.repository_for(Order).get(order_id).status_history) == count
