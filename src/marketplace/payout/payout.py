"""Payout aggregate (CQRS): a batched remittance of net proceeds to one seller.

Every status transition and every accepted retry appends exactly one entry
to the audit trail.

State Machine:
    PENDING → PROCESSING → COMPLETED
                         → FAILED → PENDING (retry after backoff)
    PENDING/FAILED → CANCELLED
"""

import secrets
import time
from datetime import UTC, datetime
from enum import Enum

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import DateTime, HasMany, Identifier, Integer, String, Text, ValueObject

from marketplace.domain import marketplace
from marketplace.exceptions import InsufficientReserve, InvalidTransition
from marketplace.payout.backoff import retry_window
from marketplace.payout.events import (
    PayoutCancelled,
    PayoutCompleted,
    PayoutCreated,
    PayoutFailed,
    PayoutProcessingStarted,
    PayoutRetried,
)


class PayoutStatus(Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class PayoutMethod(Enum):
    MOBILE_MONEY = "mobile_money"
    BANK_TRANSFER = "bank_transfer"


_VALID_TRANSITIONS = {
    PayoutStatus.PENDING: {PayoutStatus.PROCESSING, PayoutStatus.CANCELLED},
    PayoutStatus.PROCESSING: {PayoutStatus.COMPLETED, PayoutStatus.FAILED},
    PayoutStatus.FAILED: {PayoutStatus.PENDING, PayoutStatus.CANCELLED},
    PayoutStatus.COMPLETED: set(),  # Terminal
    PayoutStatus.CANCELLED: set(),  # Terminal
}

NON_TERMINAL = (PayoutStatus.PENDING, PayoutStatus.PROCESSING, PayoutStatus.FAILED)


def generate_payout_id() -> str:
    return f"PAY-{int(time.time() * 1000)}-{secrets.token_hex(4).upper()}"


@marketplace.value_object(part_of="Payout")
class PayoutDestination:
    provider = String(required=True, max_length=50)
    account_number = String(required=True, max_length=50)
    account_name = String(max_length=255)
    transaction_id = String(max_length=255)
    reference = String(max_length=255)


@marketplace.entity(part_of="Payout")
class PayoutLine:
    """One order's seller share included in the payout."""

    order_id = Identifier(required=True)
    order_number = String(required=True, max_length=20)
    gross = Integer(required=True)
    commission = Integer(required=True)
    fees = Integer(required=True)
    net = Integer(required=True)


@marketplace.entity(part_of="Payout")
class AuditEntry:
    action = String(required=True, max_length=50)
    timestamp = DateTime(required=True)
    actor = String(max_length=255)
    details = String(max_length=1000)
    sequence = Integer(required=True)


@marketplace.aggregate
class Payout:
    payout_id = String(identifier=True, max_length=40)
    seller_id = Identifier(required=True)
    seller_email = String(max_length=255)
    lines = HasMany(PayoutLine)
    gross_amount = Integer(required=True)
    total_commission = Integer(required=True)
    total_fees = Integer(default=0)
    net_amount = Integer(required=True)
    currency = String(max_length=3, default="UGX")
    status = String(choices=PayoutStatus, default=PayoutStatus.PENDING.value)
    payment_method = String(choices=PayoutMethod, default=PayoutMethod.MOBILE_MONEY.value)
    destination = ValueObject(PayoutDestination)
    attempts = Integer(default=0)
    last_attempt_at = DateTime()
    completed_at = DateTime()
    failure_reason = String(max_length=500)
    notes = Text()
    audit_trail = HasMany(AuditEntry)
    created_at = DateTime()
    updated_at = DateTime()

    @invariant.post
    def net_is_gross_minus_commission_and_fees(self):
        if self.net_amount != self.gross_amount - self.total_commission - self.total_fees:
            raise ValidationError(
                {"net_amount": ["Net amount must equal gross amount - commission - fees"]}
            )

    @classmethod
    def create(
        cls,
        seller_id: str,
        lines: list[dict],
        destination: dict,
        currency: str = "UGX",
        payment_method: str = PayoutMethod.MOBILE_MONEY.value,
        seller_email: str | None = None,
        notes: str | None = None,
        actor: str | None = None,
    ):
        if not lines:
            raise ValidationError({"order_ids": ["A payout needs at least one order"]})

        now = datetime.now(UTC)
        gross = sum(line["gross"] for line in lines)
        commission = sum(line["commission"] for line in lines)
        fees = sum(line["fees"] for line in lines)
        payout = cls(
            payout_id=generate_payout_id(),
            seller_id=seller_id,
            seller_email=seller_email,
            gross_amount=gross,
            total_commission=commission,
            total_fees=fees,
            net_amount=gross - commission - fees,
            currency=currency,
            payment_method=payment_method,
            destination=PayoutDestination(
                provider=destination["provider"],
                account_number=destination["account_number"],
                account_name=destination.get("account_name"),
            ),
            notes=notes,
            created_at=now,
            updated_at=now,
        )
        for line in lines:
            payout.add_lines(PayoutLine(**line))
        payout._audit("created", actor, f"Payout created for {len(lines)} orders", now)

        payout.raise_(
            PayoutCreated(
                payout_id=payout.payout_id,
                seller_id=str(seller_id),
                order_count=len(lines),
                net_amount=payout.net_amount,
                created_at=now,
            )
        )
        return payout

    # -------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------
    def order_ids(self) -> list[str]:
        return [str(line.order_id) for line in self.lines]

    def history(self) -> list:
        return sorted(self.audit_trail, key=lambda e: e.sequence)

    def is_terminal(self) -> bool:
        return PayoutStatus(self.status) not in NON_TERMINAL

    def _audit(self, action: str, actor: str | None, details: str | None, now: datetime) -> None:
        self.add_audit_trail(
            AuditEntry(
                action=action,
                timestamp=now,
                actor=actor,
                details=details,
                sequence=len(self.audit_trail) + 1,
            )
        )

    def _transition(self, target: PayoutStatus, actor: str | None, details: str | None, now: datetime) -> None:
        current = PayoutStatus(self.status)
        if target not in _VALID_TRANSITIONS.get(current, set()):
            raise InvalidTransition(current.value, target.value)
        self.status = target.value
        self.updated_at = now
        self._audit(target.value, actor, details, now)

    # -------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------
    def start_processing(self, actor: str | None = None, now: datetime | None = None) -> None:
        now = now or datetime.now(UTC)
        self._transition(PayoutStatus.PROCESSING, actor, f"Initiating {self.payment_method} transfer", now)
        self.attempts = (self.attempts or 0) + 1
        self.last_attempt_at = now
        self.raise_(PayoutProcessingStarted(payout_id=self.payout_id, attempt=self.attempts, started_at=now))

    def complete(self, transaction_id: str, reference: str | None = None, actor: str | None = None) -> None:
        now = datetime.now(UTC)
        self._transition(PayoutStatus.COMPLETED, actor, "Transfer successful", now)
        self.completed_at = now
        self.failure_reason = None
        self.destination = PayoutDestination(
            provider=self.destination.provider,
            account_number=self.destination.account_number,
            account_name=self.destination.account_name,
            transaction_id=transaction_id,
            reference=reference,
        )
        self.raise_(
            PayoutCompleted(
                payout_id=self.payout_id,
                seller_id=str(self.seller_id),
                seller_email=self.seller_email,
                account_number=self.destination.account_number,
                payment_method=self.payment_method,
                net_amount=self.net_amount,
                currency=self.currency,
                transaction_id=transaction_id,
                completed_at=now,
            )
        )

    def fail(self, reason: str, actor: str | None = None) -> None:
        now = datetime.now(UTC)
        self._transition(PayoutStatus.FAILED, actor, f"Transfer failed: {reason}", now)
        self.failure_reason = reason
        self.raise_(
            PayoutFailed(
                payout_id=self.payout_id,
                seller_id=str(self.seller_id),
                seller_email=self.seller_email,
                account_number=self.destination.account_number,
                payment_method=self.payment_method,
                net_amount=self.net_amount,
                currency=self.currency,
                reason=reason,
                attempts=self.attempts,
                failed_at=now,
            )
        )

    def retry(self, now: datetime, max_attempts: int, actor: str | None = None) -> None:
        """Put a failed payout back to PENDING once its backoff window has passed.

        ``attempts`` is kept, so every later retry waits longer.
        """
        current = PayoutStatus(self.status)
        if current != PayoutStatus.FAILED:
            raise InvalidTransition(current.value, PayoutStatus.PENDING.value, "only failed payouts can be retried")
        if self.attempts >= max_attempts:
            raise InvalidTransition(
                current.value, PayoutStatus.PENDING.value, f"maximum of {max_attempts} attempts reached"
            )
        window = retry_window(self.attempts, self.last_attempt_at, now)
        if not window.eligible:
            raise InsufficientReserve(window.wait_minutes)

        self.status = PayoutStatus.PENDING.value
        self.updated_at = now
        self._audit("retry", actor, f"Retry after {self.attempts} attempt(s)", now)
        self.raise_(PayoutRetried(payout_id=self.payout_id, attempts=self.attempts, retried_at=now))

    def cancel(self, reason: str | None = None, actor: str | None = None) -> None:
        now = datetime.now(UTC)
        self._transition(PayoutStatus.CANCELLED, actor, reason or "Cancelled by operator", now)
        self.raise_(PayoutCancelled(payout_id=self.payout_id, reason=reason, cancelled_at=now))
