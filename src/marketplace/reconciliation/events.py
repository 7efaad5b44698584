"""Domain events for the PaymentNotification aggregate."""

from protean.fields import Boolean, DateTime, Identifier, Integer, String

from marketplace.domain import marketplace


@marketplace.event(part_of="PaymentNotification")
class PaymentNotificationMatched:
    __version__ = 1

    notification_id = String(required=True)
    order_id = Identifier(required=True)
    match_type = String(required=True)
    partial = Boolean(default=False)
    amount = Integer(required=True)
    matched_at = DateTime(required=True)


@marketplace.event(part_of="PaymentNotification")
class PaymentNotificationParked:
    __version__ = 1

    notification_id = String(required=True)
    reason = String(required=True)
    amount = Integer(required=True)
    reference = String()
    parked_at = DateTime(required=True)


@marketplace.event(part_of="PaymentNotification")
class PaymentNotificationResolved:
    __version__ = 1

    notification_id = String(required=True)
    order_id = Identifier(required=True)
    resolved_by = String()
    resolved_at = DateTime(required=True)
