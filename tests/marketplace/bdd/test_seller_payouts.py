"""BDD tests for seller payouts."""

from protean import current_domain
from pytest_bdd import given, parsers, scenarios, then, when

from marketplace.exceptions import InsufficientReserve, InvalidTransition
from marketplace.order import lifecycle
from marketplace.order.order import Order
from marketplace.payout import engine
from marketplace.reconciliation.payloads import InboundPayment
from marketplace.reconciliation.reconciler import reconcile

scenarios("features/seller_payouts.feature")

DESTINATION = {"provider": "mtn", "account_number": "+256772000111", "account_name": "Kato Traders"}


def _order(order_id):
    return current_domain.repository_for(Order).get(order_id)


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given(parsers.cfparse("the platform commission is {percent:d} percent"))
def _(settings_env, percent):
    settings_env(COMMISSION_PERCENT=percent)


@given(
    parsers.cfparse('{count:d} delivered MTN orders of {amount:d} for seller "{seller_id}"'),
    target_fixture="delivered_orders",
)
def _(place_order, count, amount, seller_id):
    order_ids = []
    for n in range(count):
        order_id = place_order(amount=amount, seller_id=seller_id)
        order = _order(order_id)
        reconcile(
            InboundPayment(
                provider="mtn",
                transaction_id=f"MP-{n}",
                amount=amount,
                status="SUCCESSFUL",
                reference=order.order_number,
            )
        )
        lifecycle.confirm_delivery(order_id, order.delivery_token, actor="courier-001")
        order_ids.append(order_id)
    return {"seller_id": seller_id, "order_ids": order_ids}


@given("the transfer provider is failing")
def _(transfer):
    transfer.configure(should_succeed=False, failure_reason="Insufficient float balance")


@given("a payout for all of them", target_fixture="payout_id")
@when("a payout is created for all of them", target_fixture="payout_id")
def _(delivered_orders):
    return engine.create_payout(
        delivered_orders["seller_id"], delivered_orders["order_ids"], DESTINATION, actor="ops"
    )


@given("the payout was processed")
@when("the payout is processed")
def _(payout_id):
    engine.process_payout(payout_id, actor="ops").result(timeout=5)


# ---------------------------------------------------------------------------
# When steps
# ---------------------------------------------------------------------------
@when("the payout is retried straight away")
def _(context, payout_id):
    try:
        engine.retry_payout(payout_id, actor="ops")
    except InsufficientReserve as exc:
        context["exc"] = exc


@when("the first order is refunded")
def _(context, delivered_orders):
    try:
        lifecycle.update_status(delivered_orders["order_ids"][0], "refunded", note="Damaged goods")
    except InvalidTransition as exc:
        context["exc"] = exc


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse("the payout net amount is {amount:d}"))
def _(payout_id, amount):
    assert engine.get_payout(payout_id).net_amount == amount


@then(parsers.cfparse('the payout is "{status}"'))
def _(payout_id, status):
    assert engine.get_payout(payout_id).status == status


@then(parsers.cfparse('each order share is "{status}"'))
def _(delivered_orders, status):
    for order_id in delivered_orders["order_ids"]:
        assert _order(order_id).settlement_for(delivered_orders["seller_id"]).status == status


@then("the retry is refused with a wait")
def _(context):
    assert isinstance(context["exc"], InsufficientReserve)
    assert context["exc"].wait_minutes >= 1


@then("the refund is rejected")
def _(context):
    assert isinstance(context["exc"], InvalidTransition)


@then(parsers.cfparse('the first order is "{status}"'))
def _(delivered_orders, status):
    assert _order(delivered_orders["order_ids"][0]).status == status
