"""Webhook reconciler: applies inbound provider payments to orders.

Each notification is processed once per ``(provider, transaction_id)``: the
key is locked while the record is looked up, matched and stored, and a
redelivery returns the stored outcome without touching any order. Matches
are applied through the order lifecycle under the order's own lock, which
re-checks payability; anything that cannot be applied is parked rather than
dropped.
"""

from dataclasses import dataclass
from datetime import datetime

import structlog
from protean.exceptions import ObjectNotFoundError
from protean.utils.globals import current_domain

from marketplace.exceptions import AmbiguousMatchError
from marketplace.order import lifecycle
from marketplace.order.order import Order
from marketplace.order.payment import PaymentOutcome
from marketplace.reconciliation.matching import find_match
from marketplace.reconciliation.notification import ParkReason, PaymentNotification
from marketplace.reconciliation.payloads import InboundPayment
from marketplace.utils.locks import notification_locks

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ReconciliationResult:
    notification_id: str
    status: str
    order_id: str | None = None
    match_type: str | None = None
    park_reason: str | None = None
    duplicate: bool = False

    @classmethod
    def from_record(cls, record: PaymentNotification, duplicate: bool = False):
        return cls(
            notification_id=record.notification_id,
            status=record.status,
            order_id=str(record.order_id) if record.order_id else None,
            match_type=record.match_type,
            park_reason=record.park_reason,
            duplicate=duplicate,
        )


def _existing(notification_id: str) -> PaymentNotification | None:
    try:
        return current_domain.repository_for(PaymentNotification).get(notification_id)
    except ObjectNotFoundError:
        return None


def _paid_by(order_id: str, transaction_id: str) -> bool:
    order = current_domain.repository_for(Order).get(order_id)
    return bool(order.payment_details and order.payment_details.payment_id == transaction_id)


def _apply(inbound: InboundPayment, now: datetime | None) -> PaymentNotification:
    try:
        match = find_match(inbound, now=now)
    except AmbiguousMatchError as exc:
        logger.warning(
            "Payment notification ambiguous, parked",
            notification_id=inbound.notification_id,
            step=exc.step,
            candidates=exc.candidate_ids,
        )
        return PaymentNotification.parked(inbound, ParkReason.AMBIGUOUS, exc.candidate_ids)

    if match is None:
        logger.warning(
            "Payment notification unmatched, parked",
            notification_id=inbound.notification_id,
            amount=inbound.amount,
            reference=inbound.reference,
        )
        return PaymentNotification.parked(inbound, ParkReason.NO_MATCH)

    # The receipt is built before the order is touched: a notification that
    # cannot be recorded must not confirm anything.
    expected = PaymentOutcome.PARTIAL if match.partial else PaymentOutcome.CONFIRMED
    receipt = PaymentNotification.matched(inbound, match.order_id, match.match_type, expected, partial=match.partial)

    outcome = lifecycle.settle_payment(
        order_id=match.order_id,
        provider=inbound.provider,
        transaction_id=inbound.transaction_id,
        amount=inbound.amount,
        partial=match.partial,
        actor=f"webhook:{inbound.provider}",
    )

    if outcome in (PaymentOutcome.CONFIRMED, PaymentOutcome.PARTIAL):
        logger.info(
            "Payment notification matched",
            notification_id=inbound.notification_id,
            order_id=match.order_id,
            match_type=match.match_type.value,
            outcome=outcome,
        )
        if outcome == expected:
            return receipt
        return PaymentNotification.matched(
            inbound, match.order_id, match.match_type, outcome, partial=outcome == PaymentOutcome.PARTIAL
        )

    if outcome == PaymentOutcome.ALREADY_PAID and _paid_by(match.order_id, inbound.transaction_id):
        # Same money seen through another path (direct verify, earlier record)
        return PaymentNotification.matched(inbound, match.order_id, match.match_type, outcome, partial=False)

    logger.warning(
        "Matched order cannot take the payment, parked",
        notification_id=inbound.notification_id,
        order_id=match.order_id,
        outcome=outcome,
    )
    return PaymentNotification.parked(inbound, ParkReason.ORDER_NOT_PAYABLE, [match.order_id], order_id=match.order_id)


def reconcile(inbound: InboundPayment, now: datetime | None = None) -> ReconciliationResult:
    """Match ``inbound`` to an order and apply it, at most once per transaction."""
    with notification_locks.hold(inbound.notification_id):
        existing = _existing(inbound.notification_id)
        if existing is not None:
            logger.info(
                "Duplicate payment notification ignored",
                notification_id=inbound.notification_id,
                status=existing.status,
            )
            return ReconciliationResult.from_record(existing, duplicate=True)

        record = _apply(inbound, now)
        current_domain.repository_for(PaymentNotification).add(record)
        return ReconciliationResult.from_record(record)

