"""Order status transitions: commands and handler."""

from protean import handle
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from marketplace.courier.courier import DeliveryPerson
from marketplace.domain import marketplace
from marketplace.order.order import Order


@marketplace.command(part_of="Order")
class UpdateOrderStatus:
    order_id = Identifier(required=True)
    status = String(required=True, max_length=20)
    note = String(max_length=500)
    actor = String(max_length=255)


@marketplace.command(part_of="Order")
class CancelOrder:
    order_id = Identifier(required=True)
    reason = String(max_length=500)
    actor = String(max_length=255)


@marketplace.command(part_of="Order")
class AssignCourier:
    order_id = Identifier(required=True)
    courier_id = Identifier(required=True)
    actor = String(max_length=255)


@marketplace.command_handler(part_of=Order)
class OrderStatusHandler:
    @handle(UpdateOrderStatus)
    def update_status(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.update_status(command.status, note=command.note, actor=command.actor)
        repo.add(order)

    @handle(CancelOrder)
    def cancel_order(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.cancel(note=command.reason, actor=command.actor)
        repo.add(order)

    @handle(AssignCourier)
    def assign_courier(self, command):
        courier = current_domain.repository_for(DeliveryPerson).get(command.courier_id)
        courier.ensure_can_take_orders()

        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.assign_courier(str(courier.id), actor=command.actor)
        repo.add(order)
