"""Delivery confirmation: the courier scans the code printed on the parcel."""

from protean import handle
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from marketplace.domain import marketplace
from marketplace.order.order import Order


@marketplace.command(part_of="Order")
class ConfirmDelivery:
    order_id = Identifier(required=True)
    token = String(required=True, max_length=64)
    actor = String(max_length=255)


@marketplace.command_handler(part_of=Order)
class ConfirmDeliveryHandler:
    @handle(ConfirmDelivery)
    def confirm_delivery(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        already_delivered = order.delivery_confirmation is not None

        confirmation = order.confirm_delivery(command.token, actor=command.actor)
        if not already_delivered:
            repo.add(order)

        return {
            "order_id": str(order.id),
            "status": order.status,
            "confirmed_at": confirmation.confirmed_at.isoformat(),
            "confirmed_by": confirmation.confirmed_by,
            "already_delivered": already_delivered,
        }
