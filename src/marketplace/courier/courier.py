"""DeliveryPerson aggregate: couriers who carry orders and collect cash.

The reconciler uses the courier directory to correlate a mobile-money
sender phone with the orders that courier is currently carrying.
"""

from datetime import UTC, datetime

from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Identifier, String
from protean.utils.globals import current_domain

from marketplace.domain import marketplace
from marketplace.utils.phone import require_e164


@marketplace.aggregate
class DeliveryPerson:
    name = String(required=True, max_length=255)
    phone = String(required=True, max_length=20)
    active = Boolean(default=True)
    registered_at = DateTime()

    @classmethod
    def register(cls, name: str, phone: str):
        return cls(name=name, phone=require_e164(phone), active=True, registered_at=datetime.now(UTC))

    def deactivate(self) -> None:
        self.active = False

    def ensure_can_take_orders(self) -> None:
        if not self.active:
            raise ValidationError({"courier_id": [f"Courier {self.name} is not active"]})


def find_courier_by_phone(phone: str | None):
    """Active courier registered with ``phone`` (already E.164), or None."""
    if not phone:
        return None
    repo = current_domain.repository_for(DeliveryPerson)
    matches = repo._dao.query.filter(phone=phone).limit(100).all().items
    return next((c for c in matches if c.active), None)


@marketplace.command(part_of="DeliveryPerson")
class RegisterCourier:
    name = String(required=True, max_length=255)
    phone = String(required=True, max_length=20)


@marketplace.command(part_of="DeliveryPerson")
class DeactivateCourier:
    courier_id = Identifier(required=True)


@marketplace.command_handler(part_of=DeliveryPerson)
class CourierHandler:
    @handle(RegisterCourier)
    def register_courier(self, command):
        repo = current_domain.repository_for(DeliveryPerson)
        courier = DeliveryPerson.register(name=command.name, phone=command.phone)
        if find_courier_by_phone(courier.phone) is not None:
            raise ValidationError({"phone": [f"A courier with phone {courier.phone} already exists"]})
        repo.add(courier)
        return str(courier.id)

    @handle(DeactivateCourier)
    def deactivate_courier(self, command):
        repo = current_domain.repository_for(DeliveryPerson)
        courier = repo.get(command.courier_id)
        courier.deactivate()
        repo.add(courier)
