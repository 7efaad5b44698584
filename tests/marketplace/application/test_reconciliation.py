"""Webhook reconciliation: ranked matching, parking, idempotency and manual resolution."""

import threading
from datetime import UTC, datetime, timedelta
from unittest.mock import patch

import pytest
from protean import current_domain
from protean.exceptions import ValidationError

from marketplace.courier.courier import RegisterCourier
from marketplace.domain import marketplace
from marketplace.exceptions import InvalidTransition
from marketplace.order import lifecycle
from marketplace.reconciliation.ipn import handle_pesapal_ipn
from marketplace.reconciliation.manual import open_notifications, resolve_parked_payment
from marketplace.reconciliation.notification import PaymentNotification
from marketplace.reconciliation.payloads import InboundPayment
from marketplace.reconciliation.reconciler import reconcile

_counter = iter(range(1, 1_000_000))


def _inbound(amount, reference=None, sender_phone="+256772555666", transaction_id=None, provider="mtn"):
    return InboundPayment(
        provider=provider,
        transaction_id=transaction_id or f"MP250110.{next(_counter):06d}",
        amount=amount,
        status="SUCCESSFUL",
        reference=reference,
        sender_phone=sender_phone,
    )


def _notification(notification_id):
    return current_domain.repository_for(PaymentNotification).get(notification_id)


class TestMatchingLadder:
    def test_exact_reference(self, place_order, load_order):
        order_id = place_order()
        order_number = load_order(order_id).order_number

        result = reconcile(_inbound(50_000, reference=order_number))

        assert result.status == "matched"
        assert result.match_type == "exact_reference"
        assert result.order_id == order_id
        assert load_order(order_id).is_paid is True

    def test_stored_payment_reference(self, place_order, load_order):
        order_id = place_order()
        ref = lifecycle.initiate_payment(order_id, "pesapal")["transaction_ref"]

        result = reconcile(_inbound(50_000, reference=ref))

        assert result.match_type == "exact_reference"
        assert result.order_id == order_id

    def test_reference_wins_over_amount(self, place_order, load_order):
        place_order(amount=50_000)
        target = place_order(amount=50_000)

        result = reconcile(_inbound(50_000, reference=load_order(target).order_number))

        assert result.order_id == target

    def test_exact_amount(self, place_order, load_order):
        place_order(amount=30_000)
        order_id = place_order(amount=50_000)

        result = reconcile(_inbound(50_000))

        assert result.status == "matched"
        assert result.match_type == "exact_amount"
        assert result.order_id == order_id
        order = load_order(order_id)
        assert order.status == "confirmed"
        assert order.payment_details.payment_id == _notification(result.notification_id).transaction_id

    def test_exact_amount_ignores_other_payment_methods(self, place_order):
        place_order(amount=50_000, payment_method="card")
        result = reconcile(_inbound(50_000))
        assert result.status == "parked"
        assert result.park_reason == "no_match"

    def test_ambiguous_amount_is_parked(self, place_order, load_order):
        first = place_order(amount=20_000)
        second = place_order(amount=20_000)

        result = reconcile(_inbound(20_000))

        assert result.status == "parked"
        assert result.park_reason == "ambiguous"
        assert result.order_id is None
        assert _notification(result.notification_id).candidates() == sorted([first, second])
        assert load_order(first).payment_status == "pending"
        assert load_order(second).payment_status == "pending"

    def test_courier_breaks_amount_tie(self, place_order):
        place_order(amount=20_000)
        carried = place_order(amount=20_000)
        courier_id = current_domain.process(
            RegisterCourier(name="Musa", phone="+256700111222"), asynchronous=False
        )
        lifecycle.assign_courier(carried, courier_id)

        result = reconcile(_inbound(20_000, sender_phone="+256700111222"))

        assert result.status == "matched"
        assert result.match_type == "courier"
        assert result.order_id == carried

    def test_tolerance_is_partial(self, place_order, load_order):
        order_id = place_order(amount=50_000)

        result = reconcile(_inbound(49_950))

        assert result.status == "partial"
        assert result.match_type == "tolerance"
        order = load_order(order_id)
        assert order.payment_status == "partial"
        assert order.is_paid is False

    def test_outside_tolerance_is_unmatched(self, place_order):
        place_order(amount=50_000)
        result = reconcile(_inbound(49_000))
        assert result.park_reason == "no_match"

    def test_orders_outside_window_are_skipped(self, place_order):
        place_order(amount=50_000)
        later = datetime.now(UTC) + timedelta(hours=25)

        result = reconcile(_inbound(50_000), now=later)

        assert result.status == "parked"
        assert result.park_reason == "no_match"

    def test_window_from_settings(self, place_order, settings_env):
        settings_env(RECONCILIATION_WINDOW_HOURS=48)
        order_id = place_order(amount=50_000)
        later = datetime.now(UTC) + timedelta(hours=25)

        assert reconcile(_inbound(50_000), now=later).order_id == order_id

    def test_ambiguous_reference_stops_the_ladder(self, place_order, load_order):
        first = place_order(amount=40_000)
        second = place_order(amount=45_000)
        unrelated = place_order(amount=50_000)
        named = [load_order(first), load_order(second)]

        with patch("marketplace.reconciliation.matching.queries.find_by_reference", return_value=named):
            result = reconcile(_inbound(50_000, reference="SHARED-REF"))

        assert result.status == "parked"
        assert result.park_reason == "ambiguous"
        assert _notification(result.notification_id).candidates() == sorted([first, second])
        assert load_order(unrelated).payment_status == "pending"


class TestIdempotency:
    def test_redelivery_returns_stored_outcome(self, place_order, load_order):
        order_id = place_order()
        inbound = _inbound(50_000, transaction_id="MP-DUP-1")
        first = reconcile(inbound)

        second = reconcile(inbound)

        assert second.duplicate is True
        assert second.status == first.status
        assert second.order_id == order_id
        assert len(load_order(order_id).status_history) == 2

    def test_redelivery_of_parked_stays_parked(self, place_order):
        inbound = _inbound(12_345, transaction_id="MP-DUP-2")
        reconcile(inbound)
        place_order(amount=12_345)

        second = reconcile(inbound)

        assert second.duplicate is True
        assert second.status == "parked"

    def test_same_transaction_seen_through_direct_verify(self, place_order, load_order):
        order_id = place_order()
        ref = lifecycle.initiate_payment(order_id, "pesapal")["transaction_ref"]
        txn = lifecycle.verify_payment(order_id, ref)["transaction_id"]

        result = reconcile(_inbound(50_000, reference=ref, transaction_id=txn, provider="pesapal"))

        assert result.status == "matched"
        assert result.order_id == order_id


class TestNotPayable:
    def test_cancelled_order(self, place_order, load_order):
        order_id = place_order()
        lifecycle.cancel_order(order_id)

        result = reconcile(_inbound(50_000, reference=load_order(order_id).order_number))

        assert result.status == "parked"
        assert result.park_reason == "order_not_payable"
        assert result.order_id == order_id

    def test_already_paid_by_another_transaction(self, place_order, load_order):
        order_id = place_order()
        number = load_order(order_id).order_number
        reconcile(_inbound(50_000, reference=number, transaction_id="MP-A"))

        result = reconcile(_inbound(50_000, reference=number, transaction_id="MP-B"))

        assert result.park_reason == "order_not_payable"
        assert load_order(order_id).payment_details.payment_id == "MP-A"


class TestManualResolution:
    def test_open_queue(self, place_order):
        place_order(amount=50_000)
        parked = reconcile(_inbound(12_345))
        partial = reconcile(_inbound(49_950))
        reconcile(_inbound(77_000, reference="nothing"))

        open_ids = [r.notification_id for r in open_notifications()]

        assert parked.notification_id in open_ids
        assert partial.notification_id in open_ids
        assert len(open_ids) == 3

    def test_resolve_parked(self, place_order, load_order):
        first = place_order(amount=20_000)
        place_order(amount=20_000)
        parked = reconcile(_inbound(20_000))

        record = resolve_parked_payment(parked.notification_id, first, actor="ops@example.com", note="Buyer sent receipt")

        assert record.status == "resolved"
        assert record.match_type == "manual"
        order = load_order(first)
        assert order.is_paid is True
        assert order.payment_details.payment_id == record.transaction_id

    def test_resolve_partial_against_its_order(self, place_order, load_order):
        order_id = place_order(amount=50_000)
        partial = reconcile(_inbound(49_950))

        resolve_parked_payment(partial.notification_id, order_id, actor="ops")

        order = load_order(order_id)
        assert order.is_paid is True
        assert order.amount_received == 49_950

    def test_amount_must_be_within_tolerance(self, place_order, load_order):
        order_id = place_order(amount=50_000)
        parked = reconcile(_inbound(12_345))

        with pytest.raises(ValidationError):
            resolve_parked_payment(parked.notification_id, order_id, actor="ops")

        assert _notification(parked.notification_id).status == "parked"
        assert load_order(order_id).is_paid is False

    def test_resolved_record_cannot_be_resolved_again(self, place_order):
        first = place_order(amount=20_000)
        place_order(amount=20_000)
        parked = reconcile(_inbound(20_000))
        resolve_parked_payment(parked.notification_id, first, actor="ops")

        with pytest.raises(InvalidTransition):
            resolve_parked_payment(parked.notification_id, first, actor="ops")

    def test_paid_order_rejects_another_payment(self, place_order, load_order):
        first = place_order(amount=20_000)
        reconcile(_inbound(20_000, reference=load_order(first).order_number, transaction_id="MP-PAID"))
        parked = reconcile(_inbound(99_999))

        with pytest.raises(ValidationError):
            resolve_parked_payment(parked.notification_id, first, actor="ops")


class TestPesapalIPN:
    def test_confirms_order(self, place_order, load_order):
        order_id = place_order()
        ref = lifecycle.initiate_payment(order_id, "pesapal")["transaction_ref"]

        result = handle_pesapal_ipn(ref, load_order(order_id).order_number)

        assert result["status"] == "confirmed"
        assert load_order(order_id).is_paid is True

    def test_unknown_reference(self):
        assert handle_pesapal_ipn("track-1", "ORD-99-01-9999") == {"status": "unknown_reference"}

    def test_invoice_reference(self):
        from marketplace.invoice.billing import GenerateInvoice, InitiateInvoicePayment, IssueInvoice
        from marketplace.invoice.invoice import Invoice

        invoice_id = current_domain.process(
            GenerateInvoice(
                seller_id="seller-001",
                buyer_id="buyer-001",
                buyer_phone="+256772123456",
                line_items='[{"description": "Sugar 50kg", "quantity": 1, "unit_price": 180000}]',
            ),
            asynchronous=False,
        )
        current_domain.process(IssueInvoice(invoice_id=invoice_id), asynchronous=False)
        link = current_domain.process(
            InitiateInvoicePayment(invoice_id=invoice_id, provider="pesapal"), asynchronous=False
        )

        result = handle_pesapal_ipn(link["transaction_ref"], link["merchant_reference"])

        assert result["status"] == "confirmed"
        assert current_domain.repository_for(Invoice).get(invoice_id).status == "paid"


class TestReceiptBeforeSettlement:
    def test_unrecordable_notification_leaves_order_untouched(self, place_order, load_order):
        order_id = place_order(amount=50_000)

        with pytest.raises(ValidationError):
            reconcile(_inbound(50_000, reference="R" * 300))

        order = load_order(order_id)
        assert order.status == "pending"
        assert order.is_paid is False
        assert len(order.status_history) == 1


class TestConcurrentDelivery:
    def _run(self, inbounds):
        barrier = threading.Barrier(len(inbounds))
        results, errors = [], []
        guard = threading.Lock()

        def worker(inbound):
            with marketplace.domain_context():
                barrier.wait(5)
                try:
                    result = reconcile(inbound)
                except Exception as exc:
                    with guard:
                        errors.append(exc)
                    return
                with guard:
                    results.append(result)

        threads = [threading.Thread(target=worker, args=(inbound,)) for inbound in inbounds]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(10)
        assert errors == []
        return results

    def test_one_confirmation_per_order(self, place_order, load_order, email_channel, wait_for_notifications):
        order_id = place_order(amount=50_000)
        number = load_order(order_id).order_number
        repeated = [_inbound(50_000, reference=number, transaction_id="MP-RACE-1") for _ in range(6)]
        competing = [_inbound(50_000, reference=number, transaction_id=f"MP-RACE-{n}") for n in range(2, 6)]

        results = self._run(repeated + competing)
        wait_for_notifications()

        order = load_order(order_id)
        assert [e.status for e in order.history()].count("confirmed") == 1
        assert len(order.settlements) == 1

        fresh = [r for r in results if not r.duplicate]
        assert len(results) == 10
        assert len(fresh) == 5
        assert [r.status for r in fresh].count("matched") == 1
        parked = [r for r in fresh if r.status == "parked"]
        assert len(parked) == 4
        assert {r.park_reason for r in parked} == {"order_not_payable"}

        winner = next(r for r in fresh if r.status == "matched")
        assert winner.notification_id == f"mtn:{order.payment_details.payment_id}"

        receipts = [
            m
            for m in email_channel.sent_emails
            if m["to"] == "amina@example.com" and m["subject"] == f"Payment received for order {number}"
        ]
        assert len(receipts) == 1
