"""Invoice aggregate (CQRS): seller-issued bills payable through a gateway.

Invoices are the second kind of payment subject next to orders. They follow a
simple Draft → Issued → Paid lifecycle and are paid through the same gateway
adapters, with the invoice number as the merchant reference.

State Machine:
    DRAFT → ISSUED → PAID
    DRAFT → VOIDED
    ISSUED → VOIDED
"""

from datetime import UTC, datetime
from enum import Enum
from uuid import uuid4

from protean.exceptions import ValidationError
from protean.fields import DateTime, HasMany, Identifier, Integer, String, ValueObject

from marketplace.domain import marketplace
from marketplace.exceptions import InvalidTransition
from marketplace.invoice.events import InvoiceIssued, InvoicePaid, InvoiceVoided


class InvoiceStatus(Enum):
    DRAFT = "draft"
    ISSUED = "issued"
    PAID = "paid"
    VOIDED = "voided"


_VALID_TRANSITIONS = {
    InvoiceStatus.DRAFT: {InvoiceStatus.ISSUED, InvoiceStatus.VOIDED},
    InvoiceStatus.ISSUED: {InvoiceStatus.PAID, InvoiceStatus.VOIDED},
    InvoiceStatus.PAID: set(),  # Terminal
    InvoiceStatus.VOIDED: set(),  # Terminal
}


@marketplace.entity(part_of="Invoice")
class InvoiceLineItem:
    description = String(required=True, max_length=500)
    quantity = Integer(required=True, min_value=1)
    unit_price = Integer(required=True, min_value=0)
    total = Integer(required=True)


@marketplace.value_object(part_of="Invoice")
class InvoicePayment:
    payment_id = String(required=True, max_length=255)
    provider = String(required=True, max_length=50)
    amount = Integer(required=True)
    paid_at = DateTime(required=True)


@marketplace.aggregate
class Invoice:
    invoice_number = String(required=True, max_length=20, unique=True)
    seller_id = Identifier(required=True)
    buyer_id = Identifier(required=True)
    buyer_name = String(max_length=255)
    buyer_email = String(max_length=255)
    buyer_phone = String(max_length=20)
    line_items = HasMany(InvoiceLineItem)
    subtotal = Integer(default=0)
    tax = Integer(default=0)
    total = Integer(default=0)
    currency = String(max_length=3, default="UGX")
    status = String(choices=InvoiceStatus, default=InvoiceStatus.DRAFT.value)
    gateway_provider = String(max_length=50)  # payment_provider is the shadow column of payment.provider
    gateway_reference = String(max_length=255)
    payment = ValueObject(InvoicePayment)
    issued_at = DateTime()
    created_at = DateTime()
    updated_at = DateTime()

    def _assert_can_transition(self, target: InvoiceStatus) -> None:
        current = InvoiceStatus(self.status)
        if target not in _VALID_TRANSITIONS.get(current, set()):
            raise InvalidTransition(current.value, target.value)

    @classmethod
    def create(
        cls,
        seller_id: str,
        buyer: dict,
        line_items_data: list[dict],
        tax: int = 0,
        currency: str = "UGX",
    ):
        if not line_items_data:
            raise ValidationError({"line_items": ["An invoice needs at least one line item"]})

        now = datetime.now(UTC)
        items = []
        for data in line_items_data:
            quantity = int(data["quantity"])
            unit_price = int(data["unit_price"])
            items.append(
                InvoiceLineItem(
                    description=data["description"],
                    quantity=quantity,
                    unit_price=unit_price,
                    total=quantity * unit_price,
                )
            )
        subtotal = sum(item.total for item in items)

        invoice = cls(
            invoice_number=f"INV-{uuid4().hex[:8].upper()}",
            seller_id=seller_id,
            buyer_id=buyer["user_id"],
            buyer_name=buyer.get("name"),
            buyer_email=buyer.get("email"),
            buyer_phone=buyer.get("phone"),
            subtotal=subtotal,
            tax=tax,
            total=subtotal + tax,
            currency=currency,
            created_at=now,
            updated_at=now,
        )
        for item in items:
            invoice.add_line_items(item)
        return invoice

    def issue(self) -> None:
        self._assert_can_transition(InvoiceStatus.ISSUED)
        now = datetime.now(UTC)
        self.status = InvoiceStatus.ISSUED.value
        self.issued_at = now
        self.updated_at = now
        self.raise_(
            InvoiceIssued(
                invoice_id=str(self.id),
                invoice_number=self.invoice_number,
                total=self.total,
                issued_at=now,
            )
        )

    def record_payment_attempt(self, provider: str, provider_ref: str) -> None:
        if InvoiceStatus(self.status) != InvoiceStatus.ISSUED:
            raise ValidationError({"status": ["Only issued invoices can be paid"]})
        self.gateway_provider = provider
        self.gateway_reference = provider_ref
        self.updated_at = datetime.now(UTC)

    def mark_paid(self, payment_id: str, provider: str, amount: int) -> bool:
        """Stamp the payment; a repeat for an already-paid invoice is a no-op."""
        if InvoiceStatus(self.status) == InvoiceStatus.PAID:
            return False
        self._assert_can_transition(InvoiceStatus.PAID)
        if amount < self.total:
            raise ValidationError({"amount": [f"Payment of {amount} does not cover invoice total {self.total}"]})
        now = datetime.now(UTC)
        self.status = InvoiceStatus.PAID.value
        self.payment = InvoicePayment(payment_id=payment_id, provider=provider, amount=amount, paid_at=now)
        self.updated_at = now
        self.raise_(
            InvoicePaid(
                invoice_id=str(self.id),
                invoice_number=self.invoice_number,
                payment_id=payment_id,
                provider=provider,
                paid_at=now,
            )
        )
        return True

    def void(self, reason: str) -> None:
        self._assert_can_transition(InvoiceStatus.VOIDED)
        now = datetime.now(UTC)
        self.status = InvoiceStatus.VOIDED.value
        self.updated_at = now
        self.raise_(
            InvoiceVoided(
                invoice_id=str(self.id),
                invoice_number=self.invoice_number,
                reason=reason,
                voided_at=now,
            )
        )
