"""Payout creation and cancellation: commands and handler.

Creating a payout reserves each included seller share on its order in the
same unit of work, so an order can never sit in two live payouts.
"""

import json

from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Identifier, String, Text
from protean.utils.globals import current_domain

from marketplace.domain import marketplace
from marketplace.order.order import Order
from marketplace.payout.calculation import payout_line
from marketplace.payout.payout import Payout, PayoutMethod
from marketplace.utils.phone import require_e164


@marketplace.command(part_of="Payout")
class CreatePayout:
    seller_id = Identifier(required=True)
    seller_email = String(max_length=255)
    order_ids = Text(required=True)  # JSON list
    provider = String(required=True, max_length=50)
    account_number = String(required=True, max_length=50)
    account_name = String(max_length=255)
    payment_method = String(max_length=20)
    notes = Text()
    actor = String(max_length=255)


@marketplace.command(part_of="Payout")
class CancelPayout:
    payout_id = String(required=True, max_length=40)
    reason = String(max_length=500)
    actor = String(max_length=255)


@marketplace.command_handler(part_of=Payout)
class PayoutCreationHandler:
    @handle(CreatePayout)
    def create_payout(self, command):
        order_ids = json.loads(command.order_ids) if isinstance(command.order_ids, str) else command.order_ids
        if not order_ids:
            raise ValidationError({"order_ids": ["A payout needs at least one order"]})
        if len(set(order_ids)) != len(order_ids):
            raise ValidationError({"order_ids": ["An order can only appear once in a payout"]})

        payment_method = command.payment_method or PayoutMethod.MOBILE_MONEY.value
        account_number = command.account_number
        if payment_method == PayoutMethod.MOBILE_MONEY.value:
            account_number = require_e164(account_number, field="account_number")

        order_repo = current_domain.repository_for(Order)
        orders = [order_repo.get(order_id) for order_id in order_ids]
        seller_id = str(command.seller_id)
        for order in orders:
            if not order.is_payout_eligible(seller_id):
                raise ValidationError(
                    {"order_ids": [f"Order {order.order_number} is not eligible for payout to seller {seller_id}"]}
                )

        payout = Payout.create(
            seller_id=seller_id,
            lines=[payout_line(order, seller_id) for order in orders],
            destination={
                "provider": command.provider,
                "account_number": account_number,
                "account_name": command.account_name,
            },
            currency=orders[0].currency,
            payment_method=payment_method,
            seller_email=command.seller_email,
            notes=command.notes,
            actor=command.actor,
        )
        for order in orders:
            order.reserve_settlement(seller_id, payout.payout_id)
            order_repo.add(order)
        current_domain.repository_for(Payout).add(payout)
        return payout.payout_id

    @handle(CancelPayout)
    def cancel_payout(self, command):
        repo = current_domain.repository_for(Payout)
        payout = repo.get(command.payout_id)
        payout.cancel(reason=command.reason, actor=command.actor)

        order_repo = current_domain.repository_for(Order)
        for order_id in payout.order_ids():
            order = order_repo.get(order_id)
            if order.release_settlement(str(payout.seller_id), payout.payout_id):
                order_repo.add(order)
        repo.add(payout)
