import json

import pytest
from protean import current_domain
from protean.exceptions import ValidationError

from marketplace.exceptions import InvalidTransition
from marketplace.invoice.billing import (
    GenerateInvoice,
    InitiateInvoicePayment,
    IssueInvoice,
    VerifyInvoicePayment,
    VoidInvoice,
)
from marketplace.invoice.invoice import Invoice


def _process(command):
    return current_domain.process(command, asynchronous=False)


def _generate(**overrides):
    params = {
        "seller_id": "seller-001",
        "buyer_id": "buyer-001",
        "buyer_name": "Okello Stores",
        "buyer_email": "okello@example.com",
        "buyer_phone": "+256772123456",
        "line_items": json.dumps(
            [
                {"description": "Sugar 50kg", "quantity": 2, "unit_price": 180_000},
                {"description": "Delivery", "quantity": 1, "unit_price": 15_000},
            ]
        ),
        "tax": 0,
    }
    params.update(overrides)
    return _process(GenerateInvoice(**params))


def _invoice(invoice_id):
    return current_domain.repository_for(Invoice).get(invoice_id)


class TestInvoicing:
    def test_generate(self):
        invoice = _invoice(_generate(tax=5_000))
        assert invoice.status == "draft"
        assert invoice.total == 380_000
        assert invoice.currency == "UGX"

    def test_draft_cannot_be_paid(self, pesapal):
        invoice_id = _generate()
        with pytest.raises(ValidationError) as exc:
            _process(InitiateInvoicePayment(invoice_id=invoice_id, provider="pesapal"))
        assert "status" in exc.value.messages
        assert pesapal.calls == []

    def test_unknown_provider(self):
        invoice_id = _generate()
        _process(IssueInvoice(invoice_id=invoice_id))
        with pytest.raises(ValidationError):
            _process(InitiateInvoicePayment(invoice_id=invoice_id, provider="paypal"))

    def test_pay_issued_invoice(self, pesapal):
        invoice_id = _generate()
        _process(IssueInvoice(invoice_id=invoice_id))

        link = _process(InitiateInvoicePayment(invoice_id=invoice_id, provider="pesapal"))
        result = _process(VerifyInvoicePayment(invoice_id=invoice_id, transaction_ref=link["transaction_ref"]))

        assert link["merchant_reference"].startswith("INV-")
        assert result == {"status": "confirmed", "transaction_id": f"txn_{link['transaction_ref']}"}
        invoice = _invoice(invoice_id)
        assert invoice.status == "paid"
        assert pesapal.calls[0]["kind"] == "invoice"

    def test_payment_attempt_survives_reload(self):
        invoice_id = _generate()
        _process(IssueInvoice(invoice_id=invoice_id))
        link = _process(InitiateInvoicePayment(invoice_id=invoice_id, provider="stripe"))

        invoice = _invoice(invoice_id)

        assert invoice.gateway_provider == "stripe"
        assert invoice.gateway_reference == link["transaction_ref"]
        assert invoice.payment is None

    def test_paid_invoice_reloads_with_payment_stamp(self):
        invoice_id = _generate()
        _process(IssueInvoice(invoice_id=invoice_id))
        ref = _process(InitiateInvoicePayment(invoice_id=invoice_id, provider="stripe"))["transaction_ref"]
        _process(VerifyInvoicePayment(invoice_id=invoice_id, transaction_ref=ref))

        invoice = _invoice(invoice_id)

        assert invoice.payment.provider == "stripe"
        assert invoice.payment.amount == 375_000
        assert invoice.gateway_provider == "stripe"

    def test_verify_twice(self):
        invoice_id = _generate()
        _process(IssueInvoice(invoice_id=invoice_id))
        ref = _process(InitiateInvoicePayment(invoice_id=invoice_id, provider="pesapal"))["transaction_ref"]
        _process(VerifyInvoicePayment(invoice_id=invoice_id, transaction_ref=ref))

        again = _process(VerifyInvoicePayment(invoice_id=invoice_id, transaction_ref=ref))

        assert again["status"] == "already_paid"

    def test_short_payment_leaves_invoice_issued(self, pesapal):
        invoice_id = _generate()
        _process(IssueInvoice(invoice_id=invoice_id))
        ref = _process(InitiateInvoicePayment(invoice_id=invoice_id, provider="pesapal"))["transaction_ref"]
        pesapal.settle_with_amount(ref, 100_000)

        with pytest.raises(ValidationError):
            _process(VerifyInvoicePayment(invoice_id=invoice_id, transaction_ref=ref))
        assert _invoice(invoice_id).status == "issued"

    def test_card_payment(self, stripe_gateway):
        invoice_id = _generate()
        _process(IssueInvoice(invoice_id=invoice_id))
        link = _process(InitiateInvoicePayment(invoice_id=invoice_id, provider="stripe"))
        assert stripe_gateway.calls[-1]["merchant_reference"] == link["merchant_reference"]

    def test_void(self):
        invoice_id = _generate()
        _process(IssueInvoice(invoice_id=invoice_id))
        _process(VoidInvoice(invoice_id=invoice_id, reason="Raised in error"))
        assert _invoice(invoice_id).status == "voided"

    def test_voided_invoice_cannot_be_issued(self):
        invoice_id = _generate()
        _process(VoidInvoice(invoice_id=invoice_id, reason="Raised in error"))
        with pytest.raises(InvalidTransition):
            _process(IssueInvoice(invoice_id=invoice_id))
