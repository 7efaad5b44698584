"""Payout notifications: tells the seller when a payout lands or fails."""

from protean.utils.mixins import handle

from marketplace.channel.dispatcher import get_dispatcher
from marketplace.channel.templates import NotificationType, render
from marketplace.domain import marketplace
from marketplace.payout.events import PayoutCompleted, PayoutFailed
from marketplace.payout.payout import Payout, PayoutMethod
from marketplace.utils.phone import normalize_phone


def _notify_seller(event, message: dict) -> None:
    dispatcher = get_dispatcher()
    dispatcher.send_email(event.seller_email, message["subject"], message["body"])
    if event.payment_method == PayoutMethod.MOBILE_MONEY.value:
        dispatcher.send_sms(normalize_phone(event.account_number), message["sms"])


@marketplace.event_handler(part_of=Payout)
class PayoutNotificationsHandler:
    @handle(PayoutCompleted)
    def on_payout_completed(self, event: PayoutCompleted) -> None:
        _notify_seller(
            event,
            render(
                NotificationType.PAYOUT_COMPLETED,
                {
                    "payout_id": event.payout_id,
                    "net_amount": event.net_amount,
                    "currency": event.currency,
                    "transaction_id": event.transaction_id,
                },
            ),
        )

    @handle(PayoutFailed)
    def on_payout_failed(self, event: PayoutFailed) -> None:
        _notify_seller(
            event,
            render(
                NotificationType.PAYOUT_FAILED,
                {
                    "payout_id": event.payout_id,
                    "net_amount": event.net_amount,
                    "currency": event.currency,
                    "reason": event.reason,
                },
            ),
        )
