"""Application tests for order placement, status changes, couriers and delivery."""

import re
from datetime import UTC, datetime

import pytest
from protean import current_domain
from protean.exceptions import ObjectNotFoundError, ValidationError

from marketplace.courier.courier import DeactivateCourier, DeliveryPerson, RegisterCourier, find_courier_by_phone
from marketplace.exceptions import InvalidTransition
from marketplace.order import lifecycle
from marketplace.order.numbering import allocate_order_number
from marketplace.order.order import Order, OrderStatus


def _place(amount=50_000, payment_method="mobile_money", **kwargs):
    return lifecycle.place_order(
        buyer={"user_id": "buyer-001", "name": "Amina", "email": "amina@example.com", "phone": "+256772123456"},
        items=[{"product_id": "prod-001", "seller_id": "seller-001", "title": "Maize flour", "quantity": 1, "unit_price": amount}],
        payment_method=payment_method,
        seller_email="seller@example.com",
        **kwargs,
    )


def _order(order_id):
    return current_domain.repository_for(Order).get(order_id)


def _register_courier(phone="0700111222", name="Musa"):
    return current_domain.process(RegisterCourier(name=name, phone=phone), asynchronous=False)


class TestPlacement:
    def test_persists_pending_order(self):
        order = _order(_place(shipping_cost=5_000))
        assert order.status == OrderStatus.PENDING.value
        assert order.total_amount == 55_000
        assert order.currency == "UGX"
        assert len(order.status_history) == 1

    def test_default_commission(self):
        assert _order(_place()).commission.percentage == 3.0

    def test_cod_commission(self):
        assert _order(_place(payment_method="cod")).commission.percentage == 4.0

    def test_commission_from_settings(self, settings_env):
        settings_env(COMMISSION_PERCENT="10")
        order = _order(_place(amount=100_000))
        assert order.commission.amount == 10_000

    def test_order_number_format(self):
        order = _order(_place())
        assert re.fullmatch(r"ORD-\d{2}-\d{2}-\d{4}", order.order_number)

    def test_order_numbers_are_sequential(self):
        numbers = [_order(_place()).order_number for _ in range(3)]
        suffixes = [int(n.rsplit("-", 1)[1]) for n in numbers]
        assert suffixes == [suffixes[0], suffixes[0] + 1, suffixes[0] + 2]

    def test_sequence_restarts_each_month(self):
        assert allocate_order_number(datetime(2025, 1, 31, tzinfo=UTC)) == "ORD-25-01-0001"
        assert allocate_order_number(datetime(2025, 1, 31, tzinfo=UTC)) == "ORD-25-01-0002"
        assert allocate_order_number(datetime(2025, 2, 1, tzinfo=UTC)) == "ORD-25-02-0001"


class TestStatusUpdates:
    def test_update_status(self):
        order_id = _place()
        lifecycle.update_status(order_id, "confirmed", note="Seller accepted", actor="seller-001")
        order = _order(order_id)
        assert order.status == "confirmed"
        assert order.history()[-1].actor == "seller-001"

    def test_invalid_transition_leaves_order_unchanged(self):
        order_id = _place()
        with pytest.raises(InvalidTransition):
            lifecycle.update_status(order_id, "delivered")
        order = _order(order_id)
        assert order.status == "pending"
        assert len(order.status_history) == 1

    def test_cancel(self):
        order_id = _place()
        lifecycle.cancel_order(order_id, reason="Out of stock", actor="seller-001")
        assert _order(order_id).status == "cancelled"

    def test_unknown_order(self):
        with pytest.raises(ObjectNotFoundError):
            lifecycle.update_status("missing-order", "confirmed")


class TestCouriers:
    def test_register_normalizes_phone(self):
        courier_id = _register_courier("0700 111 222")
        courier = current_domain.repository_for(DeliveryPerson).get(courier_id)
        assert courier.phone == "+256700111222"
        assert courier.active is True

    def test_duplicate_phone_rejected(self):
        _register_courier()
        with pytest.raises(ValidationError):
            _register_courier("+256700111222", name="Someone else")

    def test_find_by_phone_skips_inactive(self):
        courier_id = _register_courier()
        assert str(find_courier_by_phone("+256700111222").id) == courier_id
        current_domain.process(DeactivateCourier(courier_id=courier_id), asynchronous=False)
        assert find_courier_by_phone("+256700111222") is None

    def test_assign(self):
        order_id = _place()
        courier_id = _register_courier()
        lifecycle.assign_courier(order_id, courier_id, actor="dispatch")
        assert str(_order(order_id).assigned_courier_id) == courier_id

    def test_inactive_courier_cannot_be_assigned(self):
        order_id = _place()
        courier_id = _register_courier()
        current_domain.process(DeactivateCourier(courier_id=courier_id), asynchronous=False)
        with pytest.raises(ValidationError):
            lifecycle.assign_courier(order_id, courier_id)


class TestDelivery:
    def test_confirm_delivery(self):
        order_id = _place()
        lifecycle.update_status(order_id, "confirmed")
        token = _order(order_id).delivery_token

        result = lifecycle.confirm_delivery(order_id, token, actor="courier-001")

        assert result["status"] == "delivered"
        assert result["already_delivered"] is False
        assert result["confirmed_by"] == "courier-001"
        order = _order(order_id)
        assert [e.status for e in order.history()] == ["pending", "confirmed", "processing", "shipped", "delivered"]

    def test_repeat_scan(self):
        order_id = _place()
        lifecycle.update_status(order_id, "confirmed")
        token = _order(order_id).delivery_token
        first = lifecycle.confirm_delivery(order_id, token, actor="courier-001")

        second = lifecycle.confirm_delivery(order_id, token, actor="courier-001")

        assert second["already_delivered"] is True
        assert second["confirmed_at"] == first["confirmed_at"]
        assert len(_order(order_id).status_history) == 5

    def test_wrong_token(self):
        order_id = _place()
        lifecycle.update_status(order_id, "confirmed")
        with pytest.raises(ValidationError):
            lifecycle.confirm_delivery(order_id, "wrong")
        assert _order(order_id).status == "confirmed"
