"""Payment gateway port (abstract interface).

Every provider adapter exposes the same two calls: ``create_payment`` for a
payment subject (an order or an invoice) and ``verify_payment`` for a
provider transaction reference. The merchant reference sent to a provider is
always the platform's own order or invoice number, which is what the webhook
reconciler later matches on.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from marketplace.exceptions import GatewayError


class SubjectKind(Enum):
    ORDER = "order"
    INVOICE = "invoice"


@dataclass(frozen=True)
class PaymentSubject:
    """The thing being paid for. Build it with ``for_order`` or ``for_invoice``."""

    kind: SubjectKind
    subject_id: str
    merchant_reference: str
    amount: int
    currency: str
    description: str
    customer_email: str | None = None
    customer_phone: str | None = None
    customer_name: str | None = None

    @classmethod
    def for_order(cls, order) -> "PaymentSubject":
        return cls(
            kind=SubjectKind.ORDER,
            subject_id=str(order.id),
            merchant_reference=order.order_number,
            amount=order.total_amount,
            currency=order.currency,
            description=f"Order {order.order_number}",
            customer_email=order.buyer_email,
            customer_phone=order.buyer_phone,
            customer_name=order.buyer_name,
        )

    @classmethod
    def for_invoice(cls, invoice) -> "PaymentSubject":
        return cls(
            kind=SubjectKind.INVOICE,
            subject_id=str(invoice.id),
            merchant_reference=invoice.invoice_number,
            amount=invoice.total,
            currency=invoice.currency,
            description=f"Invoice {invoice.invoice_number}",
            customer_email=invoice.buyer_email,
            customer_phone=invoice.buyer_phone,
            customer_name=invoice.buyer_name,
        )


@dataclass(frozen=True)
class PaymentLink:
    """Result of creating a provider payment intent."""

    payment_link: str
    transaction_ref: str
    merchant_reference: str


@dataclass(frozen=True)
class VerificationResult:
    """Result of looking up a provider transaction."""

    success: bool
    transaction_id: str | None = None
    amount: int | None = None
    currency: str | None = None
    method: str | None = None
    created_at: datetime | None = None
    merchant_reference: str | None = None
    status: str | None = None


def raise_for_embedded_error(provider: str, body) -> None:
    """Treat an HTTP 200 body that carries an ``error`` object as a failure."""
    if not isinstance(body, dict):
        return
    error = body.get("error")
    if not error:
        return
    if isinstance(error, dict):
        # Pesapal sends an all-null error object on success
        if not any(error.values()):
            return
        message = error.get("message") or error.get("code") or error.get("error_type") or str(error)
    else:
        message = str(error)
    raise GatewayError(provider, message)


class PaymentGateway(ABC):
    """Abstract payment gateway interface."""

    provider: str = ""

    @abstractmethod
    def create_payment(self, subject: PaymentSubject) -> PaymentLink:
        """Create a provider payment intent for ``subject``."""
        ...

    @abstractmethod
    def verify_payment(self, transaction_ref: str) -> VerificationResult:
        """Look up a transaction. Safe to call repeatedly."""
        ...
