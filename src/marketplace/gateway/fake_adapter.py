"""Configurable fake payment gateway for development and testing.

Records every call and can be switched between success, failure (verified
but unpaid) and rejection (``GatewayError``) at runtime, either from tests or
through the non-production ``/payments/gateway/configure`` endpoint.
"""

from datetime import UTC, datetime
from uuid import uuid4

from marketplace.exceptions import GatewayError
from marketplace.gateway.port import PaymentGateway, PaymentLink, PaymentSubject, VerificationResult


class FakeGateway(PaymentGateway):
    """Configurable fake payment gateway."""

    def __init__(self, provider: str = "fake") -> None:
        self.provider = provider
        self.should_succeed: bool = True
        self.should_reject: bool = False
        self.failure_reason: str = "Payment declined"
        self.calls: list[dict] = []
        self._intents: dict[str, PaymentSubject] = {}
        self._amount_overrides: dict[str, int] = {}

    def configure(
        self,
        should_succeed: bool = True,
        failure_reason: str = "Payment declined",
        should_reject: bool = False,
    ) -> None:
        """Configure gateway behavior at runtime."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason
        self.should_reject = should_reject

    def settle_with_amount(self, transaction_ref: str, amount: int) -> None:
        """Make a later verify report ``amount`` instead of the requested one."""
        self._amount_overrides[transaction_ref] = amount

    def create_payment(self, subject: PaymentSubject) -> PaymentLink:
        self.calls.append(
            {
                "method": "create_payment",
                "kind": subject.kind.value,
                "merchant_reference": subject.merchant_reference,
                "amount": subject.amount,
            }
        )
        if self.should_reject:
            raise GatewayError(self.provider, self.failure_reason)

        transaction_ref = f"{self.provider}_{uuid4().hex[:12]}"
        self._intents[transaction_ref] = subject
        return PaymentLink(
            payment_link=f"https://pay.example.test/{transaction_ref}",
            transaction_ref=transaction_ref,
            merchant_reference=subject.merchant_reference,
        )

    def verify_payment(self, transaction_ref: str) -> VerificationResult:
        self.calls.append({"method": "verify_payment", "transaction_ref": transaction_ref})
        if self.should_reject:
            raise GatewayError(self.provider, self.failure_reason)

        subject = self._intents.get(transaction_ref)
        if subject is None:
            raise GatewayError(self.provider, f"Unknown transaction {transaction_ref}", status_code=404)

        if not self.should_succeed:
            return VerificationResult(
                success=False,
                transaction_id=transaction_ref,
                merchant_reference=subject.merchant_reference,
                status="failed",
            )

        return VerificationResult(
            success=True,
            transaction_id=f"txn_{transaction_ref}",
            amount=self._amount_overrides.get(transaction_ref, subject.amount),
            currency=subject.currency,
            method=self.provider,
            created_at=datetime.now(UTC),
            merchant_reference=subject.merchant_reference,
            status="completed",
        )

    def reset(self) -> None:
        self.should_succeed = True
        self.should_reject = False
        self.failure_reason = "Payment declined"
        self.calls.clear()
        self._intents.clear()
        self._amount_overrides.clear()
