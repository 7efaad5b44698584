"""Payout processing: start, completion, failure and retry commands.

Completion marks every reserved seller share paid; failure hands them back
to the eligible pool. A retry re-reserves the same shares before the payout
returns to PENDING, and fails if any of them has been claimed or voided in
the meantime.
"""

from datetime import UTC, datetime

from protean import handle
from protean.fields import DateTime, String
from protean.utils.globals import current_domain

from marketplace.config import get_settings
from marketplace.domain import marketplace
from marketplace.order.order import Order
from marketplace.payout.payout import Payout


@marketplace.command(part_of="Payout")
class StartPayout:
    payout_id = String(required=True, max_length=40)
    actor = String(max_length=255)


@marketplace.command(part_of="Payout")
class CompletePayout:
    payout_id = String(required=True, max_length=40)
    transaction_id = String(required=True, max_length=255)
    reference = String(max_length=255)


@marketplace.command(part_of="Payout")
class FailPayout:
    payout_id = String(required=True, max_length=40)
    reason = String(required=True, max_length=500)


@marketplace.command(part_of="Payout")
class RetryPayout:
    payout_id = String(required=True, max_length=40)
    actor = String(max_length=255)
    now = DateTime()


@marketplace.command_handler(part_of=Payout)
class PayoutProcessingHandler:
    @handle(StartPayout)
    def start_payout(self, command):
        repo = current_domain.repository_for(Payout)
        payout = repo.get(command.payout_id)
        payout.start_processing(actor=command.actor)
        repo.add(payout)

    @handle(CompletePayout)
    def complete_payout(self, command):
        repo = current_domain.repository_for(Payout)
        payout = repo.get(command.payout_id)
        payout.complete(transaction_id=command.transaction_id, reference=command.reference)

        order_repo = current_domain.repository_for(Order)
        for order_id in payout.order_ids():
            order = order_repo.get(order_id)
            order.settle(str(payout.seller_id), payout.payout_id)
            order_repo.add(order)
        repo.add(payout)

    @handle(FailPayout)
    def fail_payout(self, command):
        repo = current_domain.repository_for(Payout)
        payout = repo.get(command.payout_id)
        payout.fail(reason=command.reason)

        order_repo = current_domain.repository_for(Order)
        for order_id in payout.order_ids():
            order = order_repo.get(order_id)
            if order.release_settlement(str(payout.seller_id), payout.payout_id):
                order_repo.add(order)
        repo.add(payout)

    @handle(RetryPayout)
    def retry_payout(self, command):
        repo = current_domain.repository_for(Payout)
        payout = repo.get(command.payout_id)
        payout.retry(
            now=command.now or datetime.now(UTC),
            max_attempts=get_settings().max_payout_attempts,
            actor=command.actor,
        )

        order_repo = current_domain.repository_for(Order)
        for order_id in payout.order_ids():
            order = order_repo.get(order_id)
            order.reserve_settlement(str(payout.seller_id), payout.payout_id)
            order_repo.add(order)
        repo.add(payout)
