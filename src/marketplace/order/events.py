"""Domain events for the Order aggregate."""

from protean.fields import DateTime, Identifier, Integer, String

from marketplace.domain import marketplace


@marketplace.event(part_of="Order")
class OrderPlaced:
    """A buyer placed a new order."""

    __version__ = 1

    order_id = Identifier(required=True)
    order_number = String(required=True)
    buyer_id = Identifier(required=True)
    total_amount = Integer(required=True)
    currency = String(required=True)
    payment_method = String(required=True)
    placed_at = DateTime(required=True)


@marketplace.event(part_of="Order")
class OrderStatusChanged:
    """The order moved along its state machine."""

    __version__ = 1

    order_id = Identifier(required=True)
    order_number = String(required=True)
    previous_status = String(required=True)
    new_status = String(required=True)
    note = String()
    actor = String()
    cause = String(default="manual")  # manual, payment, delivery_scan
    changed_at = DateTime(required=True)


@marketplace.event(part_of="Order")
class PaymentAttemptRecorded:
    """A payment intent was opened with a provider."""

    __version__ = 1

    order_id = Identifier(required=True)
    provider = String(required=True)
    provider_ref = String(required=True)
    amount_expected = Integer(required=True)
    created_at = DateTime(required=True)


@marketplace.event(part_of="Order")
class PaymentConfirmed:
    """A verified payment was stamped on the order."""

    __version__ = 1

    order_id = Identifier(required=True)
    order_number = String(required=True)
    provider = String(required=True)
    transaction_id = String(required=True)
    amount = Integer(required=True)
    commission = Integer(required=True)
    estimated_fees = Integer(required=True)
    confirmed_at = DateTime(required=True)


@marketplace.event(part_of="Order")
class PartialPaymentRecorded:
    """A payment close to, but not equal to, the order total was received."""

    __version__ = 1

    order_id = Identifier(required=True)
    order_number = String(required=True)
    provider = String(required=True)
    transaction_id = String(required=True)
    amount = Integer(required=True)
    expected_amount = Integer(required=True)
    recorded_at = DateTime(required=True)


@marketplace.event(part_of="Order")
class CourierAssigned:
    __version__ = 1

    order_id = Identifier(required=True)
    courier_id = Identifier(required=True)
    assigned_at = DateTime(required=True)


@marketplace.event(part_of="Order")
class DeliveryConfirmed:
    """The courier's scan of the delivery code was accepted."""

    __version__ = 1

    order_id = Identifier(required=True)
    order_number = String(required=True)
    confirmed_by = String()
    confirmed_at = DateTime(required=True)
