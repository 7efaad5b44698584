"""Pesapal instant payment notifications.

An IPN only says "something changed for this tracking id"; the status is
always fetched back from Pesapal before anything is applied. The merchant
reference is our own order or invoice number.
"""

import structlog
from protean.utils.globals import current_domain

from marketplace.invoice.billing import VerifyInvoicePayment
from marketplace.invoice.invoice import Invoice
from marketplace.order import lifecycle, queries

logger = structlog.get_logger(__name__)

INVOICE_PREFIX = "INV-"


def _find_invoice(invoice_number: str) -> Invoice | None:
    dao = current_domain.repository_for(Invoice)._dao
    matches = dao.query.filter(invoice_number=invoice_number).limit(1).all().items
    return matches[0] if matches else None


def handle_pesapal_ipn(order_tracking_id: str, merchant_reference: str) -> dict:
    """Verify the tracking id with Pesapal and apply it to the referenced order or invoice."""
    if merchant_reference.startswith(INVOICE_PREFIX):
        invoice = _find_invoice(merchant_reference)
        if invoice is None:
            logger.warning("IPN for unknown invoice", merchant_reference=merchant_reference)
            return {"status": "unknown_reference"}
        return current_domain.process(
            VerifyInvoicePayment(invoice_id=str(invoice.id), transaction_ref=order_tracking_id),
            asynchronous=False,
        )

    order = queries.find_by_number(merchant_reference)
    if order is None:
        logger.warning("IPN for unknown order", merchant_reference=merchant_reference)
        return {"status": "unknown_reference"}
    return lifecycle.verify_payment(str(order.id), order_tracking_id, actor="ipn:pesapal")
