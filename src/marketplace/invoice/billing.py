"""Invoice commands: generation, issuing, voiding and payment."""

import json
from dataclasses import replace

from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Identifier, Integer, String, Text
from protean.utils.globals import current_domain

from marketplace.config import get_settings
from marketplace.domain import marketplace
from marketplace.gateway import MOBILE_MONEY_PROVIDERS, SUPPORTED_PROVIDERS, get_gateway
from marketplace.gateway.port import PaymentSubject
from marketplace.invoice.invoice import Invoice, InvoiceStatus
from marketplace.utils.phone import require_e164


@marketplace.command(part_of="Invoice")
class GenerateInvoice:
    seller_id = Identifier(required=True)
    buyer_id = Identifier(required=True)
    buyer_name = String(max_length=255)
    buyer_email = String(max_length=255)
    buyer_phone = String(max_length=20)
    line_items = Text(required=True)  # JSON: list of {description, quantity, unit_price}
    tax = Integer(default=0)
    currency = String(max_length=3)


@marketplace.command(part_of="Invoice")
class IssueInvoice:
    invoice_id = Identifier(required=True)


@marketplace.command(part_of="Invoice")
class VoidInvoice:
    invoice_id = Identifier(required=True)
    reason = String(required=True, max_length=500)


@marketplace.command(part_of="Invoice")
class InitiateInvoicePayment:
    invoice_id = Identifier(required=True)
    provider = String(required=True, max_length=50)
    phone = String(max_length=20)


@marketplace.command(part_of="Invoice")
class VerifyInvoicePayment:
    invoice_id = Identifier(required=True)
    transaction_ref = String(required=True, max_length=255)


@marketplace.command_handler(part_of=Invoice)
class InvoiceHandler:
    @handle(GenerateInvoice)
    def generate_invoice(self, command):
        line_items_data = json.loads(command.line_items) if isinstance(command.line_items, str) else command.line_items
        invoice = Invoice.create(
            seller_id=command.seller_id,
            buyer={
                "user_id": command.buyer_id,
                "name": command.buyer_name,
                "email": command.buyer_email,
                "phone": command.buyer_phone,
            },
            line_items_data=line_items_data,
            tax=command.tax or 0,
            currency=command.currency or get_settings().currency,
        )
        current_domain.repository_for(Invoice).add(invoice)
        return str(invoice.id)

    @handle(IssueInvoice)
    def issue_invoice(self, command):
        repo = current_domain.repository_for(Invoice)
        invoice = repo.get(command.invoice_id)
        invoice.issue()
        repo.add(invoice)

    @handle(VoidInvoice)
    def void_invoice(self, command):
        repo = current_domain.repository_for(Invoice)
        invoice = repo.get(command.invoice_id)
        invoice.void(reason=command.reason)
        repo.add(invoice)

    @handle(InitiateInvoicePayment)
    def initiate_payment(self, command):
        if command.provider not in SUPPORTED_PROVIDERS:
            raise ValidationError({"provider": [f"Unknown payment provider '{command.provider}'"]})

        repo = current_domain.repository_for(Invoice)
        invoice = repo.get(command.invoice_id)
        if invoice.status != InvoiceStatus.ISSUED.value:
            raise ValidationError({"status": ["Only issued invoices can be paid"]})

        subject = PaymentSubject.for_invoice(invoice)
        if command.provider in MOBILE_MONEY_PROVIDERS:
            subject = replace(subject, customer_phone=require_e164(command.phone or invoice.buyer_phone))

        link = get_gateway(command.provider).create_payment(subject)
        invoice.record_payment_attempt(provider=command.provider, provider_ref=link.transaction_ref)
        repo.add(invoice)
        return {
            "payment_link": link.payment_link,
            "transaction_ref": link.transaction_ref,
            "merchant_reference": link.merchant_reference,
        }

    @handle(VerifyInvoicePayment)
    def verify_payment(self, command):
        repo = current_domain.repository_for(Invoice)
        invoice = repo.get(command.invoice_id)

        if invoice.payment is not None:
            return {"status": "already_paid", "transaction_id": invoice.payment.payment_id}
        if not invoice.gateway_provider or invoice.gateway_reference != command.transaction_ref:
            raise ValidationError({"transaction_ref": ["No payment attempt with this reference on the invoice"]})

        result = get_gateway(invoice.gateway_provider).verify_payment(command.transaction_ref)
        if result.merchant_reference and result.merchant_reference != invoice.invoice_number:
            raise ValidationError({"transaction_ref": ["Transaction was made for a different invoice"]})
        if not result.success:
            return {"status": "unpaid", "transaction_id": result.transaction_id}

        amount = result.amount if result.amount is not None else invoice.total
        invoice.mark_paid(payment_id=result.transaction_id, provider=invoice.gateway_provider, amount=amount)
        repo.add(invoice)
        return {"status": "confirmed", "transaction_id": result.transaction_id}
