"""PaymentNotification aggregate: the reconciler's receipt log.

One record per ``(provider, transaction_id)``. The record carries the outcome
of the first delivery so that redeliveries are answered from it without
touching any order. Parked records (and partial matches awaiting an operator)
form the manual reconciliation queue.
"""

import json
from datetime import UTC, datetime
from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import DateTime, Identifier, Integer, String, Text

from marketplace.domain import marketplace
from marketplace.exceptions import InvalidTransition
from marketplace.reconciliation.events import (
    PaymentNotificationMatched,
    PaymentNotificationParked,
    PaymentNotificationResolved,
)


class NotificationStatus(Enum):
    MATCHED = "matched"
    PARTIAL = "partial"
    PARKED = "parked"
    RESOLVED = "resolved"


class MatchType(Enum):
    EXACT_REFERENCE = "exact_reference"
    EXACT_AMOUNT = "exact_amount"
    COURIER = "courier"
    TOLERANCE = "tolerance"
    MANUAL = "manual"


class ParkReason(Enum):
    NO_MATCH = "no_match"
    AMBIGUOUS = "ambiguous"
    ORDER_NOT_PAYABLE = "order_not_payable"


# Statuses an operator can still act on
OPEN_STATUSES = (NotificationStatus.PARKED, NotificationStatus.PARTIAL)


@marketplace.aggregate
class PaymentNotification:
    notification_id = String(identifier=True, max_length=300)
    provider = String(required=True, max_length=50)
    transaction_id = String(required=True, max_length=255)
    amount = Integer(required=True)
    reference = String(max_length=255)
    sender_phone = String(max_length=20)
    payload = Text()
    received_at = DateTime(required=True)

    status = String(choices=NotificationStatus, required=True)
    match_type = String(choices=MatchType)
    order_id = Identifier()
    outcome = String(max_length=50)
    park_reason = String(choices=ParkReason)
    candidate_order_ids = Text()  # JSON list

    resolved_by = String(max_length=255)
    resolved_at = DateTime()
    resolution_note = String(max_length=500)

    @classmethod
    def matched(cls, inbound, order_id: str, match_type: MatchType, outcome: str, partial: bool):
        notification = cls._from_inbound(
            inbound,
            status=(NotificationStatus.PARTIAL if partial else NotificationStatus.MATCHED).value,
            match_type=match_type.value,
            order_id=order_id,
            outcome=outcome,
        )
        notification.raise_(
            PaymentNotificationMatched(
                notification_id=notification.notification_id,
                order_id=order_id,
                match_type=match_type.value,
                partial=partial,
                amount=inbound.amount,
                matched_at=notification.received_at,
            )
        )
        return notification

    @classmethod
    def parked(cls, inbound, reason: ParkReason, candidate_ids: list[str] | None = None, order_id: str | None = None):
        notification = cls._from_inbound(
            inbound,
            status=NotificationStatus.PARKED.value,
            park_reason=reason.value,
            candidate_order_ids=json.dumps(sorted(candidate_ids or [])),
            order_id=order_id,
        )
        notification.raise_(
            PaymentNotificationParked(
                notification_id=notification.notification_id,
                reason=reason.value,
                amount=inbound.amount,
                reference=inbound.reference,
                parked_at=notification.received_at,
            )
        )
        return notification

    @classmethod
    def _from_inbound(cls, inbound, **fields):
        return cls(
            notification_id=inbound.notification_id,
            provider=inbound.provider,
            transaction_id=inbound.transaction_id,
            amount=inbound.amount,
            reference=inbound.reference,
            sender_phone=inbound.sender_phone,
            payload=json.dumps(inbound.payload, default=str),
            received_at=datetime.now(UTC),
            **fields,
        )

    def candidates(self) -> list[str]:
        return json.loads(self.candidate_order_ids) if self.candidate_order_ids else []

    def is_open(self) -> bool:
        return NotificationStatus(self.status) in OPEN_STATUSES

    def assert_resolvable(self, order_id: str) -> None:
        if not self.is_open():
            raise InvalidTransition(self.status, NotificationStatus.RESOLVED.value)
        if NotificationStatus(self.status) == NotificationStatus.PARTIAL and str(self.order_id) != str(order_id):
            raise ValidationError({"order_id": ["A partial match can only be resolved against its matched order"]})

    def resolve(self, order_id: str, outcome: str, actor: str, note: str | None = None) -> None:
        """Close a parked or partial record after an operator applied it to ``order_id``."""
        self.assert_resolvable(order_id)

        now = datetime.now(UTC)
        self.status = NotificationStatus.RESOLVED.value
        self.match_type = MatchType.MANUAL.value
        self.order_id = order_id
        self.outcome = outcome
        self.resolved_by = actor
        self.resolved_at = now
        self.resolution_note = note
        self.raise_(
            PaymentNotificationResolved(
                notification_id=self.notification_id,
                order_id=order_id,
                resolved_by=actor,
                resolved_at=now,
            )
        )
