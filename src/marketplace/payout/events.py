"""Domain events for the Payout aggregate."""

from protean.fields import DateTime, Identifier, Integer, String

from marketplace.domain import marketplace


@marketplace.event(part_of="Payout")
class PayoutCreated:
    __version__ = 1

    payout_id = String(required=True)
    seller_id = Identifier(required=True)
    order_count = Integer(required=True)
    net_amount = Integer(required=True)
    created_at = DateTime(required=True)


@marketplace.event(part_of="Payout")
class PayoutProcessingStarted:
    __version__ = 1

    payout_id = String(required=True)
    attempt = Integer(required=True)
    started_at = DateTime(required=True)


@marketplace.event(part_of="Payout")
class PayoutCompleted:
    __version__ = 1

    payout_id = String(required=True)
    seller_id = Identifier(required=True)
    seller_email = String()
    account_number = String()
    payment_method = String()
    net_amount = Integer(required=True)
    currency = String()
    transaction_id = String()
    completed_at = DateTime(required=True)


@marketplace.event(part_of="Payout")
class PayoutFailed:
    __version__ = 1

    payout_id = String(required=True)
    seller_id = Identifier(required=True)
    seller_email = String()
    account_number = String()
    payment_method = String()
    net_amount = Integer(required=True)
    currency = String()
    reason = String()
    attempts = Integer(required=True)
    failed_at = DateTime(required=True)


@marketplace.event(part_of="Payout")
class PayoutRetried:
    __version__ = 1

    payout_id = String(required=True)
    attempts = Integer(required=True)
    retried_at = DateTime(required=True)


@marketplace.event(part_of="Payout")
class PayoutCancelled:
    __version__ = 1

    payout_id = String(required=True)
    reason = String()
    cancelled_at = DateTime(required=True)
