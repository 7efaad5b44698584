"""Stripe card gateway adapter.

Uses Stripe hosted Checkout: ``create_payment`` opens a checkout session
tagged with the merchant reference, ``verify_payment`` retrieves the session
and reports it successful once Stripe says it is paid. Retrieval has no side
effects, so verify can be repeated freely.
"""

from datetime import UTC, datetime

import stripe
import structlog

from marketplace.exceptions import GatewayError
from marketplace.gateway.port import PaymentGateway, PaymentLink, PaymentSubject, VerificationResult

logger = structlog.get_logger(__name__)


class StripeGateway(PaymentGateway):
    provider = "stripe"

    def __init__(self, api_key: str, frontend_url: str, timeout: float = 15.0) -> None:
        self.api_key = api_key
        self.frontend_url = frontend_url.rstrip("/")
        self.timeout = timeout

    def _client(self) -> stripe.StripeClient:
        return stripe.StripeClient(
            self.api_key,
            http_client=stripe.RequestsClient(timeout=self.timeout),
            max_network_retries=0,
        )

    def create_payment(self, subject: PaymentSubject) -> PaymentLink:
        path = f"{subject.kind.value}s/{subject.subject_id}"
        params = {
            "mode": "payment",
            "payment_method_types": ["card"],
            "client_reference_id": subject.merchant_reference,
            "line_items": [
                {
                    "price_data": {
                        "currency": subject.currency.lower(),
                        "product_data": {"name": subject.description},
                        "unit_amount": subject.amount,
                    },
                    "quantity": 1,
                }
            ],
            "metadata": {
                "subject_kind": subject.kind.value,
                "subject_id": subject.subject_id,
                "merchant_reference": subject.merchant_reference,
            },
            "success_url": f"{self.frontend_url}/{path}/payment/success?session_id={{CHECKOUT_SESSION_ID}}",
            "cancel_url": f"{self.frontend_url}/{path}/payment/cancel",
        }
        if subject.customer_email:
            params["customer_email"] = subject.customer_email

        try:
            session = self._client().checkout.sessions.create(
                params=params,
                options={"idempotency_key": f"checkout-{subject.kind.value}-{subject.merchant_reference}-{subject.amount}"},
            )
        except stripe.StripeError as exc:
            logger.error(
                "Stripe checkout session creation failed",
                merchant_reference=subject.merchant_reference,
                error=str(exc),
            )
            raise GatewayError(self.provider, exc.user_message or str(exc), exc.http_status) from exc

        return PaymentLink(
            payment_link=session.url,
            transaction_ref=session.id,
            merchant_reference=subject.merchant_reference,
        )

    def verify_payment(self, transaction_ref: str) -> VerificationResult:
        try:
            session = self._client().checkout.sessions.retrieve(transaction_ref)
        except stripe.StripeError as exc:
            logger.error("Stripe session lookup failed", session_id=transaction_ref, error=str(exc))
            raise GatewayError(self.provider, exc.user_message or str(exc), exc.http_status) from exc

        paid = session.payment_status == "paid"
        return VerificationResult(
            success=paid,
            transaction_id=session.payment_intent if isinstance(session.payment_intent, str) else session.id,
            amount=session.amount_total,
            currency=(session.currency or "").upper() or None,
            method="card",
            created_at=datetime.fromtimestamp(session.created, UTC) if session.created else None,
            merchant_reference=session.client_reference_id,
            status=session.payment_status,
        )
