"""Payout engine: eligibility, reservation, transfer outcomes, retries and the sweep."""

from datetime import UTC, datetime, timedelta

import pytest
from protean.exceptions import ValidationError

from marketplace.exceptions import InsufficientReserve, InvalidTransition
from marketplace.order import lifecycle
from marketplace.payout import engine
from marketplace.payout.calculation import calculate_pending
from marketplace.reconciliation.payloads import InboundPayment
from marketplace.reconciliation.reconciler import reconcile

SELLER = "seller-kato"
DESTINATION = {"provider": "mtn", "account_number": "0772000111", "account_name": "Kato Traders"}


@pytest.fixture()
def delivered_order(place_order, load_order):
    """Place, pay (MTN notification by reference) and deliver an order."""

    def _make(amount=100_000, seller_id=SELLER):
        order_id = place_order(amount=amount, seller_id=seller_id)
        order = load_order(order_id)
        reconcile(
            InboundPayment(
                provider="mtn",
                transaction_id=f"MP-{order.order_number}",
                amount=amount,
                status="SUCCESSFUL",
                reference=order.order_number,
            )
        )
        lifecycle.confirm_delivery(order_id, order.delivery_token, actor="courier-001")
        return order_id

    return _make


@pytest.fixture()
def three_orders(settings_env, delivered_order):
    settings_env(COMMISSION_PERCENT=10)
    return [delivered_order() for _ in range(3)]


def _create(order_ids, **kwargs):
    return engine.create_payout(SELLER, order_ids, DESTINATION, seller_email="kato@example.com", actor="ops", **kwargs)


class TestPendingCalculation:
    def test_groups_eligible_orders_by_seller(self, three_orders, delivered_order):
        delivered_order(amount=40_000, seller_id="seller-zed")

        pending = calculate_pending()

        assert [p.seller_id for p in pending] == [SELLER, "seller-zed"]
        kato = pending[0]
        assert sorted(kato.order_ids) == sorted(three_orders)
        assert kato.gross_amount == 300_000
        assert kato.total_commission == 30_000
        assert kato.total_fees == 1_500
        assert kato.net_amount == 268_500

    def test_undelivered_orders_are_not_owed(self, place_order):
        order_id = place_order(amount=100_000, seller_id=SELLER)
        lifecycle.settle_payment(order_id=order_id, provider="mtn", transaction_id="MP1", amount=100_000)
        assert calculate_pending() == []

    def test_reserved_orders_drop_out(self, three_orders):
        _create(three_orders[:2])
        pending = calculate_pending()
        assert pending[0].order_ids == [three_orders[2]]


class TestCreatePayout:
    def test_totals_and_reservation(self, three_orders, load_order):
        payout_id = _create(three_orders)

        payout = engine.get_payout(payout_id)
        assert payout.status == "pending"
        assert payout.gross_amount == 300_000
        assert payout.total_commission == 30_000
        assert payout.total_fees == 1_500
        assert payout.net_amount == 268_500
        assert payout.destination.account_number == "+256772000111"
        for order_id in three_orders:
            settlement = load_order(order_id).settlement_for(SELLER)
            assert settlement.status == "processing"
            assert settlement.payout_id == payout_id

    def test_order_cannot_be_in_two_payouts(self, three_orders):
        _create(three_orders[:1])
        with pytest.raises(ValidationError):
            _create(three_orders)
        assert len(engine.list_payouts(seller_id=SELLER)) == 1

    def test_duplicate_order_ids(self, three_orders):
        with pytest.raises(ValidationError):
            _create([three_orders[0], three_orders[0]])

    def test_wrong_seller(self, three_orders):
        with pytest.raises(ValidationError):
            engine.create_payout("seller-other", three_orders, DESTINATION)

    def test_undelivered_order(self, place_order):
        order_id = place_order(amount=100_000, seller_id=SELLER)
        with pytest.raises(ValidationError):
            _create([order_id])

    def test_invalid_mobile_money_account(self, three_orders):
        with pytest.raises(ValidationError) as exc:
            engine.create_payout(SELLER, three_orders, {"provider": "mtn", "account_number": "123"})
        assert "account_number" in exc.value.messages


class TestProcessPayout:
    def test_success_settles_orders(self, three_orders, load_order, transfer):
        payout_id = _create(three_orders)

        assert engine.process_payout(payout_id, actor="ops").result(timeout=5) == "completed"

        payout = engine.get_payout(payout_id)
        assert payout.attempts == 1
        assert payout.destination.transaction_id.startswith("TXN-")
        assert transfer.calls[0].amount == 268_500
        assert [e.action for e in payout.history()] == ["created", "processing", "completed"]
        for order_id in three_orders:
            order = load_order(order_id)
            assert order.settlement_for(SELLER).status == "paid"
            assert order.commission.status == "paid"

    def test_failure_releases_orders(self, three_orders, load_order, transfer):
        transfer.configure(should_succeed=False, failure_reason="Insufficient float balance")
        payout_id = _create(three_orders)

        assert engine.process_payout(payout_id).result(timeout=5) == "failed"

        payout = engine.get_payout(payout_id)
        assert payout.failure_reason == "Insufficient float balance"
        for order_id in three_orders:
            settlement = load_order(order_id).settlement_for(SELLER)
            assert settlement.status == "collected"
            assert settlement.payout_id is None

    def test_transfer_exception_becomes_failure(self, three_orders, transfer):
        transfer.configure(error=ConnectionError("provider unreachable"))
        payout_id = _create(three_orders)

        assert engine.process_payout(payout_id).result(timeout=5) == "failed"
        assert engine.get_payout(payout_id).failure_reason == "provider unreachable"

    def test_cannot_process_twice(self, three_orders):
        payout_id = _create(three_orders)
        engine.process_payout(payout_id).result(timeout=5)
        with pytest.raises(InvalidTransition):
            engine.process_payout(payout_id)

    def test_seller_is_notified(self, three_orders, email_channel, wait_for_notifications):
        payout_id = _create(three_orders)
        engine.process_payout(payout_id).result(timeout=5)
        wait_for_notifications()

        subjects = [m["subject"] for m in email_channel.sent_emails if m["to"] == "kato@example.com"]
        assert any(payout_id in subject for subject in subjects)


class TestRetry:
    @pytest.fixture()
    def failed_payout(self, three_orders, transfer):
        transfer.configure(should_succeed=False)
        payout_id = _create(three_orders)
        engine.process_payout(payout_id).result(timeout=5)
        transfer.configure(should_succeed=True)
        return payout_id

    def test_retry_after_backoff(self, failed_payout, load_order, three_orders):
        engine.retry_payout(failed_payout, actor="ops", now=datetime.now(UTC) + timedelta(minutes=3))

        payout = engine.get_payout(failed_payout)
        assert payout.status == "pending"
        assert payout.attempts == 1
        assert load_order(three_orders[0]).settlement_for(SELLER).status == "processing"

        assert engine.process_payout(failed_payout).result(timeout=5) == "completed"
        assert engine.get_payout(failed_payout).attempts == 2

    def test_retry_too_early(self, failed_payout):
        with pytest.raises(InsufficientReserve) as exc:
            engine.retry_payout(failed_payout)
        assert exc.value.wait_minutes >= 1
        assert engine.get_payout(failed_payout).status == "failed"

    def test_max_attempts(self, failed_payout, settings_env):
        settings_env(MAX_PAYOUT_ATTEMPTS=1)
        with pytest.raises(InvalidTransition):
            engine.retry_payout(failed_payout, now=datetime.now(UTC) + timedelta(hours=1))

    def test_retry_fails_when_an_order_was_claimed_meanwhile(self, failed_payout, three_orders):
        other = _create(three_orders[:1])
        assert engine.get_payout(other).status == "pending"

        with pytest.raises(ValidationError):
            engine.retry_payout(failed_payout, now=datetime.now(UTC) + timedelta(minutes=3))
        assert engine.get_payout(failed_payout).status == "failed"


class TestCancel:
    def test_cancel_pending_releases_orders(self, three_orders, load_order):
        payout_id = _create(three_orders)

        engine.cancel_payout(payout_id, reason="Seller changed account", actor="ops")

        assert engine.get_payout(payout_id).status == "cancelled"
        assert load_order(three_orders[0]).settlement_for(SELLER).status == "collected"
        assert calculate_pending()[0].net_amount == 268_500

    def test_cannot_cancel_completed(self, three_orders):
        payout_id = _create(three_orders)
        engine.process_payout(payout_id).result(timeout=5)
        with pytest.raises(InvalidTransition):
            engine.cancel_payout(payout_id)


class TestSweep:
    def test_retries_eligible_failed_payouts(self, three_orders, transfer):
        transfer.configure(should_succeed=False)
        payout_id = _create(three_orders)
        engine.process_payout(payout_id).result(timeout=5)
        transfer.configure(should_succeed=True)

        assert engine.sweep_failed_payouts(now=datetime.now(UTC)) == []
        retried = engine.sweep_failed_payouts(now=datetime.now(UTC) + timedelta(minutes=3), actor="cron")

        assert retried == [payout_id]
        engine.shutdown_executor(wait=True)
        assert engine.get_payout(payout_id).status == "completed"


class TestRefundFreeze:
    def test_refund_blocked_while_reserved(self, three_orders, load_order):
        _create(three_orders)
        with pytest.raises(InvalidTransition):
            lifecycle.update_status(three_orders[0], "refunded")
        assert load_order(three_orders[0]).status == "delivered"

    def test_refund_before_payout_voids_share(self, three_orders, load_order):
        lifecycle.update_status(three_orders[0], "refunded", note="Damaged goods")

        order = load_order(three_orders[0])
        assert order.status == "refunded"
        assert order.settlement_for(SELLER).status == "voided"
        with pytest.raises(ValidationError):
            _create(three_orders)
