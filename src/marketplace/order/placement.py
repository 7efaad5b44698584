"""Order placement: command and handler.

Catalog prices arrive with the command and are never re-derived; the
commission percentage is fixed at placement (cash on delivery carries a
higher platform cut).
"""

import json

from protean import handle
from protean.fields import Identifier, Integer, String, Text
from protean.utils.globals import current_domain

from marketplace.config import get_settings
from marketplace.domain import marketplace
from marketplace.order.numbering import allocate_order_number
from marketplace.order.order import Order, PaymentMethod


@marketplace.command(part_of="Order")
class PlaceOrder:
    """Place an order for catalog-priced items."""

    buyer_id = Identifier(required=True)
    buyer_name = String(max_length=255)
    buyer_email = String(max_length=255)
    buyer_phone = String(max_length=20)
    seller_email = String(max_length=255)
    items = Text(required=True)  # JSON: list of {product_id, seller_id, title, quantity, unit_price}
    payment_method = String(required=True, max_length=20)
    tax = Integer(default=0)
    shipping_cost = Integer(default=0)
    currency = String(max_length=3)
    notes = Text()


@marketplace.command_handler(part_of=Order)
class PlaceOrderHandler:
    @handle(PlaceOrder)
    def place_order(self, command):
        settings = get_settings()
        items_data = json.loads(command.items) if isinstance(command.items, str) else command.items

        commission_percent = (
            settings.cod_commission_percent
            if command.payment_method == PaymentMethod.COD.value
            else settings.commission_percent
        )

        order = Order.place(
            order_number=allocate_order_number(),
            buyer={
                "user_id": command.buyer_id,
                "name": command.buyer_name,
                "email": command.buyer_email,
                "phone": command.buyer_phone,
            },
            items_data=items_data,
            payment_method=command.payment_method,
            tax=command.tax or 0,
            shipping_cost=command.shipping_cost or 0,
            currency=command.currency or settings.currency,
            commission_percent=commission_percent,
            seller_email=command.seller_email,
            notes=command.notes,
        )
        current_domain.repository_for(Order).add(order)
        return str(order.id)
