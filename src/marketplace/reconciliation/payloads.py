"""Inbound payment notification parsing.

Providers post either the platform's generic body

    {"amount": 50000, "reference": "ORD-25-01-0001", "transactionId": "...",
     "senderPhone": "+256...", "status": "SUCCESSFUL"}

or their own native callback shape (MTN MoMo, Airtel Money). Every parser
returns an ``InboundPayment``; anything without a success status is
acknowledged and dropped by the caller.
"""

import hashlib
import hmac
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation

from protean.exceptions import ValidationError

from marketplace.utils.money import round_half_up
from marketplace.utils.phone import normalize_phone

SUCCESS_STATUSES = {"SUCCESSFUL", "SUCCESS", "COMPLETED", "TS"}


@dataclass(frozen=True)
class InboundPayment:
    provider: str
    transaction_id: str
    amount: int
    status: str
    reference: str | None = None
    sender_phone: str | None = None
    payload: dict = field(default_factory=dict, compare=False)

    @property
    def is_success(self) -> bool:
        return (self.status or "").upper() in SUCCESS_STATUSES

    @property
    def notification_id(self) -> str:
        return f"{self.provider}:{self.transaction_id}"


def _amount(raw) -> int:
    if raw is None or isinstance(raw, bool):
        raise ValidationError({"amount": ["Amount is required"]})
    try:
        value = Decimal(str(raw))
    except InvalidOperation:
        raise ValidationError({"amount": [f"'{raw}' is not a valid amount"]}) from None
    if value <= 0:
        raise ValidationError({"amount": ["Amount must be positive"]})
    return round_half_up(value)


def _required(value, name: str) -> str:
    if value is None or str(value).strip() == "":
        raise ValidationError({name: [f"{name} is required"]})
    return str(value).strip()


def parse_generic(provider: str, body: dict) -> InboundPayment:
    return InboundPayment(
        provider=provider,
        transaction_id=_required(body.get("transactionId"), "transactionId"),
        amount=_amount(body.get("amount")),
        status=_required(body.get("status"), "status"),
        reference=body.get("reference") or None,
        sender_phone=normalize_phone(body.get("senderPhone")),
        payload=body,
    )


def parse_mtn(body: dict) -> InboundPayment:
    transaction_id = body.get("financialTransactionId")
    return InboundPayment(
        provider="mtn",
        transaction_id=_required(transaction_id, "financialTransactionId"),
        amount=_amount(body.get("amount")),
        status=_required(body.get("status"), "status"),
        reference=body.get("externalId") or None,
        sender_phone=normalize_phone(body.get("payerMobileNumber") or (body.get("payer") or {}).get("partyId")),
        payload=body,
    )


def parse_airtel(body: dict) -> InboundPayment:
    transaction = body.get("transaction") or {}
    source = transaction.get("source") or {}
    return InboundPayment(
        provider="airtel",
        transaction_id=_required(transaction.get("id"), "transaction.id"),
        amount=_amount(transaction.get("amount")),
        status=_required(transaction.get("status") or transaction.get("status_code"), "transaction.status"),
        reference=transaction.get("reference") or None,
        sender_phone=normalize_phone(source.get("phone")),
        payload=body,
    )


_NATIVE_PARSERS = {
    "mtn": ("financialTransactionId", parse_mtn),
    "airtel": ("transaction", parse_airtel),
}


def parse_notification(provider: str, body: dict) -> InboundPayment:
    """Parse a provider body, accepting the generic shape or the provider's native one."""
    if not isinstance(body, dict):
        raise ValidationError({"body": ["Notification body must be a JSON object"]})
    native = _NATIVE_PARSERS.get(provider)
    if native and native[0] in body and "transactionId" not in body:
        return native[1](body)
    return parse_generic(provider, body)


def verify_signature(raw_body: bytes, signature: str | None, secret: str) -> bool:
    """HMAC-SHA256 of the raw request body, hex encoded."""
    if not signature:
        return False
    expected = hmac.new(secret.encode(), raw_body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, signature.strip().lower())
