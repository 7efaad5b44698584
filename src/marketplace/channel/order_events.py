"""Order notifications: reacts to Order events with buyer and seller messages.

Handlers only render and hand messages to the dispatcher; delivery happens
off-thread and its outcome never reaches the order transition.
"""

import structlog
from protean.utils.globals import current_domain
from protean.utils.mixins import handle

from marketplace.channel.dispatcher import get_dispatcher
from marketplace.channel.templates import NotificationType, render
from marketplace.domain import marketplace
from marketplace.order.events import (
    DeliveryConfirmed,
    OrderPlaced,
    OrderStatusChanged,
    PartialPaymentRecorded,
    PaymentConfirmed,
)
from marketplace.order.order import Order, OrderStatus, TransitionCause

logger = structlog.get_logger(__name__)

# Statuses the buyer hears about from a plain status change
_ANNOUNCED_STATUSES = {
    OrderStatus.SHIPPED.value,
    OrderStatus.DELIVERED.value,
    OrderStatus.CANCELLED.value,
    OrderStatus.REFUNDED.value,
}

# Causes whose own events carry the message
_SILENT_CAUSES = {TransitionCause.PAYMENT.value, TransitionCause.DELIVERY_SCAN.value}


def _notify_buyer(order: Order, message: dict) -> None:
    dispatcher = get_dispatcher()
    dispatcher.send_email(order.buyer_email, message["subject"], message["body"])
    if message.get("sms"):
        dispatcher.send_sms(order.buyer_phone, message["sms"])


@marketplace.event_handler(part_of=Order)
class OrderNotificationsHandler:
    """Sends buyer and seller messages for order lifecycle events."""

    @handle(OrderPlaced)
    def on_order_placed(self, event: OrderPlaced) -> None:
        order = current_domain.repository_for(Order).get(event.order_id)
        context = {
            "order_number": event.order_number,
            "total_amount": event.total_amount,
            "currency": event.currency,
            "payment_method": event.payment_method,
        }
        _notify_buyer(order, render(NotificationType.ORDER_CONFIRMATION, context))
        seller_message = render(NotificationType.NEW_ORDER_FOR_SELLER, context)
        get_dispatcher().send_email(order.seller_email, seller_message["subject"], seller_message["body"])

    @handle(PaymentConfirmed)
    def on_payment_confirmed(self, event: PaymentConfirmed) -> None:
        order = current_domain.repository_for(Order).get(event.order_id)
        message = render(
            NotificationType.PAYMENT_RECEIPT,
            {
                "order_number": event.order_number,
                "amount": event.amount,
                "currency": order.currency,
                "provider": event.provider,
                "transaction_id": event.transaction_id,
            },
        )
        _notify_buyer(order, message)
        get_dispatcher().send_email(order.seller_email, message["subject"], message["body"])

    @handle(PartialPaymentRecorded)
    def on_partial_payment(self, event: PartialPaymentRecorded) -> None:
        order = current_domain.repository_for(Order).get(event.order_id)
        _notify_buyer(
            order,
            render(
                NotificationType.PARTIAL_PAYMENT,
                {
                    "order_number": event.order_number,
                    "amount": event.amount,
                    "expected_amount": event.expected_amount,
                    "currency": order.currency,
                },
            ),
        )

    @handle(OrderStatusChanged)
    def on_status_changed(self, event: OrderStatusChanged) -> None:
        if event.cause in _SILENT_CAUSES or event.new_status not in _ANNOUNCED_STATUSES:
            return
        order = current_domain.repository_for(Order).get(event.order_id)
        _notify_buyer(
            order,
            render(
                NotificationType.STATUS_UPDATE,
                {"order_number": event.order_number, "new_status": event.new_status, "note": event.note},
            ),
        )

    @handle(DeliveryConfirmed)
    def on_delivery_confirmed(self, event: DeliveryConfirmed) -> None:
        order = current_domain.repository_for(Order).get(event.order_id)
        _notify_buyer(
            order,
            render(
                NotificationType.DELIVERY_CONFIRMATION,
                {"order_number": event.order_number, "confirmed_at": event.confirmed_at.isoformat()},
            ),
        )
