"""Domain events for the Invoice aggregate."""

from protean.fields import DateTime, Identifier, Integer, String

from marketplace.domain import marketplace


@marketplace.event(part_of="Invoice")
class InvoiceIssued:
    __version__ = 1

    invoice_id = Identifier(required=True)
    invoice_number = String(required=True)
    total = Integer(required=True)
    issued_at = DateTime(required=True)


@marketplace.event(part_of="Invoice")
class InvoicePaid:
    __version__ = 1

    invoice_id = Identifier(required=True)
    invoice_number = String(required=True)
    payment_id = String(required=True)
    provider = String(required=True)
    paid_at = DateTime(required=True)


@marketplace.event(part_of="Invoice")
class InvoiceVoided:
    __version__ = 1

    invoice_id = Identifier(required=True)
    invoice_number = String(required=True)
    reason = String()
    voided_at = DateTime(required=True)
