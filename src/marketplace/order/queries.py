"""Read-side lookups over orders used by reconciliation and payouts.

Repository filters stay on plain equality; time windows and nested fields
are narrowed in Python.
"""

from datetime import UTC, datetime, timedelta

from protean.utils.globals import current_domain

from marketplace.order.order import Order, OrderStatus, PaymentMethod, PaymentStatus


# Upper bound on rows pulled into a scan
SCAN_LIMIT = 10_000


def _aware(moment: datetime) -> datetime:
    return moment if moment.tzinfo else moment.replace(tzinfo=UTC)


def _orders(**filters) -> list[Order]:
    return current_domain.repository_for(Order)._dao.query.filter(**filters).limit(SCAN_LIMIT).all().items


def find_by_reference(reference: str) -> list[Order]:
    """Orders whose order number or stored payment reference equals ``reference``."""
    if not reference:
        return []
    found = {str(o.id): o for o in _orders(order_number=reference)}
    for order in _orders(payment_reference=reference):
        found.setdefault(str(order.id), order)
    return list(found.values())


def find_by_number(order_number: str) -> Order | None:
    matches = _orders(order_number=order_number)
    return matches[0] if matches else None


def pending_mobile_money_orders(now: datetime, window: timedelta) -> list[Order]:
    """Unpaid mobile-money orders created within ``window`` of ``now``."""
    since = now - window
    return [
        order
        for order in _orders(payment_method=PaymentMethod.MOBILE_MONEY.value, payment_status=PaymentStatus.PENDING.value)
        if order.is_awaiting_payment() and order.created_at and _aware(order.created_at) >= since
    ]


def pending_orders_for_courier(courier_id: str) -> list[Order]:
    return [
        order
        for order in _orders(assigned_courier_id=courier_id)
        if order.is_awaiting_payment() and order.payment_status == PaymentStatus.PENDING.value
    ]


def delivered_paid_orders() -> list[Order]:
    return _orders(status=OrderStatus.DELIVERED.value, payment_status=PaymentStatus.PAID.value)
