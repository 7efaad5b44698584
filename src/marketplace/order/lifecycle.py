"""Order lifecycle application service.

Every mutating order command runs under that order's lock, so concurrent
webhook deliveries, buyer verifications and operator actions on the same
order are applied one at a time and each sees the previous one's result.
Notifications are raised as domain events and dispatched off-thread by the
channel handlers; nothing here waits for them.
"""

import json

from protean.utils.globals import current_domain

from marketplace.order.delivery import ConfirmDelivery
from marketplace.order.payment import CollectCash, InitiatePayment, SettleOrderPayment, VerifyPayment
from marketplace.order.placement import PlaceOrder
from marketplace.order.status import AssignCourier, CancelOrder, UpdateOrderStatus
from marketplace.utils.locks import order_locks, sequence_lock


def _locked(order_id: str, command):
    with order_locks.hold(order_id):
        return current_domain.process(command, asynchronous=False)


def place_order(
    buyer: dict,
    items: list[dict],
    payment_method: str,
    tax: int = 0,
    shipping_cost: int = 0,
    currency: str | None = None,
    seller_email: str | None = None,
    notes: str | None = None,
) -> str:
    command = PlaceOrder(
        buyer_id=buyer["user_id"],
        buyer_name=buyer.get("name"),
        buyer_email=buyer.get("email"),
        buyer_phone=buyer.get("phone"),
        seller_email=seller_email,
        items=json.dumps(items),
        payment_method=payment_method,
        tax=tax,
        shipping_cost=shipping_cost,
        currency=currency,
        notes=notes,
    )
    # Serializes order number allocation within the month
    with sequence_lock:
        return current_domain.process(command, asynchronous=False)


def update_status(order_id: str, status: str, note: str | None = None, actor: str | None = None) -> None:
    _locked(order_id, UpdateOrderStatus(order_id=order_id, status=status, note=note, actor=actor))


def cancel_order(order_id: str, reason: str | None = None, actor: str | None = None) -> None:
    _locked(order_id, CancelOrder(order_id=order_id, reason=reason, actor=actor))


def assign_courier(order_id: str, courier_id: str, actor: str | None = None) -> None:
    _locked(order_id, AssignCourier(order_id=order_id, courier_id=courier_id, actor=actor))


def initiate_payment(order_id: str, provider: str, phone: str | None = None) -> dict:
    return _locked(order_id, InitiatePayment(order_id=order_id, provider=provider, phone=phone))


def verify_payment(order_id: str, transaction_ref: str, actor: str | None = None) -> dict:
    return _locked(order_id, VerifyPayment(order_id=order_id, transaction_ref=transaction_ref, actor=actor))


def settle_payment(
    order_id: str,
    provider: str,
    transaction_id: str,
    amount: int,
    partial: bool = False,
    actor: str | None = None,
    within_tolerance: bool = False,
) -> str:
    return _locked(
        order_id,
        SettleOrderPayment(
            order_id=order_id,
            provider=provider,
            transaction_id=transaction_id,
            amount=amount,
            partial=partial,
            within_tolerance=within_tolerance,
            actor=actor,
        ),
    )


def collect_cash(order_id: str, courier_id: str, amount: int) -> str:
    return _locked(order_id, CollectCash(order_id=order_id, courier_id=courier_id, amount=amount))


def confirm_delivery(order_id: str, token: str, actor: str | None = None) -> dict:
    return _locked(order_id, ConfirmDelivery(order_id=order_id, token=token, actor=actor))
