"""Manual reconciliation queue.

Operators list parked and partial notifications and resolve each against an
order. The received amount must be within the reconciliation tolerance of the
order total; the order is then confirmed as paid.
"""

import structlog
from protean.exceptions import ValidationError
from protean.utils.globals import current_domain

from marketplace.order import lifecycle
from marketplace.order.order import Order
from marketplace.order.payment import PaymentOutcome
from marketplace.reconciliation.notification import OPEN_STATUSES, PaymentNotification
from marketplace.utils.locks import notification_locks

logger = structlog.get_logger(__name__)


def open_notifications(limit: int = 100) -> list[PaymentNotification]:
    """Parked and partial notifications, oldest first."""
    dao = current_domain.repository_for(PaymentNotification)._dao
    records = []
    for status in OPEN_STATUSES:
        records.extend(dao.query.filter(status=status.value).limit(limit).all().items)
    return sorted(records, key=lambda r: r.received_at)[:limit]


def resolve_parked_payment(notification_id: str, order_id: str, actor: str, note: str | None = None) -> PaymentNotification:
    """Apply a parked (or partially matched) payment to ``order_id`` and close the record."""
    repo = current_domain.repository_for(PaymentNotification)
    with notification_locks.hold(notification_id):
        record = repo.get(notification_id)
        record.assert_resolvable(order_id)

        outcome = lifecycle.settle_payment(
            order_id=order_id,
            provider=record.provider,
            transaction_id=record.transaction_id,
            amount=record.amount,
            within_tolerance=True,
            actor=actor,
        )
        if outcome == PaymentOutcome.ALREADY_PAID:
            order = current_domain.repository_for(Order).get(order_id)
            if order.payment_details.payment_id != record.transaction_id:
                raise ValidationError({"order_id": [f"Order {order.order_number} is already paid"]})
        elif outcome != PaymentOutcome.CONFIRMED:
            raise ValidationError({"order_id": ["Order can no longer take a payment"]})

        record.resolve(order_id=order_id, outcome=outcome, actor=actor, note=note)
        repo.add(record)

    logger.info(
        "Parked payment resolved",
        notification_id=notification_id,
        order_id=order_id,
        actor=actor,
    )
    return record
