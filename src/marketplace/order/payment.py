"""Order payment: initiation, direct verification and settlement commands.

``InitiatePayment`` opens a provider payment intent whose merchant reference
is the order number. ``VerifyPayment`` is the direct path used when the buyer
returns from a hosted checkout. ``SettleOrderPayment`` applies a payment the
webhook reconciler (or an operator) has already attributed to this order.

Gateway failures raise ``GatewayError`` out of the handler, so the unit of
work is rolled back and the order is left exactly as it was.
"""

from dataclasses import replace

import structlog
from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Boolean, Identifier, Integer, String
from protean.utils.globals import current_domain

from marketplace.config import get_settings
from marketplace.domain import marketplace
from marketplace.gateway import CARD_PROVIDERS, MOBILE_MONEY_PROVIDERS, get_gateway
from marketplace.gateway.port import PaymentSubject
from marketplace.order.order import Order, PaymentMethod
from marketplace.utils.phone import require_e164

logger = structlog.get_logger(__name__)

_PROVIDERS_BY_METHOD = {
    PaymentMethod.CARD.value: CARD_PROVIDERS,
    PaymentMethod.MOBILE_MONEY.value: MOBILE_MONEY_PROVIDERS,
}


class PaymentOutcome:
    CONFIRMED = "confirmed"
    PARTIAL = "partial"
    ALREADY_PAID = "already_paid"
    UNPAID = "unpaid"
    NOT_PAYABLE = "not_payable"


def apply_verified_amount(order: Order, transaction_id: str, provider: str, amount: int, actor: str | None) -> str:
    """Confirm the order when ``amount`` covers its total, otherwise record a partial payment."""
    if order.is_paid:
        return PaymentOutcome.ALREADY_PAID
    if not order.is_awaiting_payment():
        return PaymentOutcome.NOT_PAYABLE
    if amount >= order.total_amount:
        order.confirm_payment(transaction_id=transaction_id, provider=provider, amount=amount, actor=actor)
        return PaymentOutcome.CONFIRMED
    order.record_partial_payment(transaction_id=transaction_id, provider=provider, amount=amount, actor=actor)
    return PaymentOutcome.PARTIAL


@marketplace.command(part_of="Order")
class InitiatePayment:
    order_id = Identifier(required=True)
    provider = String(required=True, max_length=50)
    phone = String(max_length=20)  # overrides the buyer phone captured at placement


@marketplace.command(part_of="Order")
class VerifyPayment:
    order_id = Identifier(required=True)
    transaction_ref = String(required=True, max_length=255)
    actor = String(max_length=255)


@marketplace.command(part_of="Order")
class SettleOrderPayment:
    """Apply an attributed provider payment to an order."""

    order_id = Identifier(required=True)
    provider = String(required=True, max_length=50)
    transaction_id = String(required=True, max_length=255)
    amount = Integer(required=True)
    partial = Boolean(default=False)
    within_tolerance = Boolean(default=False)  # operator accepts a shortfall up to the tolerance
    actor = String(max_length=255)


@marketplace.command(part_of="Order")
class CollectCash:
    order_id = Identifier(required=True)
    courier_id = Identifier(required=True)
    amount = Integer(required=True)


@marketplace.command_handler(part_of=Order)
class OrderPaymentHandler:
    @handle(InitiatePayment)
    def initiate_payment(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)

        allowed = _PROVIDERS_BY_METHOD.get(order.payment_method)
        if not allowed:
            raise ValidationError({"payment_method": ["Cash on delivery orders are paid to the courier"]})
        if command.provider not in allowed:
            raise ValidationError(
                {"provider": [f"Provider '{command.provider}' cannot collect {order.payment_method} payments"]}
            )
        if not order.is_awaiting_payment():
            raise ValidationError({"payment": [f"Order {order.order_number} is not awaiting payment"]})

        subject = PaymentSubject.for_order(order)
        if command.provider in MOBILE_MONEY_PROVIDERS:
            phone = require_e164(command.phone or order.buyer_phone)
            subject = replace(subject, customer_phone=phone)

        link = get_gateway(command.provider).create_payment(subject)
        order.record_payment_attempt(provider=command.provider, provider_ref=link.transaction_ref)
        repo.add(order)

        logger.info(
            "Payment initiated",
            order_number=order.order_number,
            provider=command.provider,
            transaction_ref=link.transaction_ref,
        )
        return {
            "payment_link": link.payment_link,
            "transaction_ref": link.transaction_ref,
            "merchant_reference": link.merchant_reference,
        }

    @handle(VerifyPayment)
    def verify_payment(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)

        if order.is_paid:
            return {"status": PaymentOutcome.ALREADY_PAID, "transaction_id": order.payment_details.payment_id}

        attempt = next((a for a in order.payment_attempts if a.provider_ref == command.transaction_ref), None)
        if attempt is None:
            raise ValidationError({"transaction_ref": ["No payment attempt with this reference on the order"]})

        result = get_gateway(attempt.provider).verify_payment(command.transaction_ref)
        if result.merchant_reference and result.merchant_reference != order.order_number:
            raise ValidationError({"transaction_ref": ["Transaction was made for a different order"]})
        if not result.success:
            return {"status": PaymentOutcome.UNPAID, "transaction_id": result.transaction_id}

        amount = result.amount if result.amount is not None else order.total_amount
        outcome = apply_verified_amount(order, result.transaction_id, attempt.provider, amount, command.actor)
        repo.add(order)
        return {"status": outcome, "transaction_id": result.transaction_id}

    @handle(SettleOrderPayment)
    def settle_payment(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)

        # Re-checked under the caller's order lock; another delivery may have won
        if order.is_paid:
            return PaymentOutcome.ALREADY_PAID
        if not order.is_awaiting_payment():
            return PaymentOutcome.NOT_PAYABLE

        if command.partial:
            order.record_partial_payment(
                transaction_id=command.transaction_id,
                provider=command.provider,
                amount=command.amount,
                actor=command.actor,
            )
            outcome = PaymentOutcome.PARTIAL
        elif command.within_tolerance:
            tolerance = get_settings().reconciliation_tolerance
            if abs(order.total_amount - command.amount) > tolerance:
                raise ValidationError(
                    {
                        "amount": [
                            f"Amount {command.amount} differs from order total {order.total_amount} "
                            f"by more than {tolerance}"
                        ]
                    }
                )
            order.confirm_payment(
                transaction_id=command.transaction_id,
                provider=command.provider,
                amount=command.amount,
                note="Payment matched manually",
                actor=command.actor,
            )
            outcome = PaymentOutcome.CONFIRMED
        else:
            outcome = apply_verified_amount(
                order, command.transaction_id, command.provider, command.amount, command.actor
            )
        repo.add(order)
        return outcome

    @handle(CollectCash)
    def collect_cash(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        changed = order.collect_cash(
            courier_id=command.courier_id,
            amount=command.amount,
            tolerance=get_settings().reconciliation_tolerance,
        )
        repo.add(order)
        return PaymentOutcome.CONFIRMED if changed else PaymentOutcome.ALREADY_PAID
