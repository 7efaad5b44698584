"""Pending payout calculation: what each seller is currently owed.

A seller's share of an order was apportioned when the payment was confirmed
(``Order.settlements``); here the collected, unclaimed shares of delivered
and paid orders are grouped per seller.
"""

from dataclasses import dataclass, field

from marketplace.order import queries
from marketplace.order.order import Order


@dataclass
class PendingPayout:
    seller_id: str
    lines: list[dict] = field(default_factory=list)
    gross_amount: int = 0
    total_commission: int = 0
    total_fees: int = 0

    @property
    def net_amount(self) -> int:
        return self.gross_amount - self.total_commission - self.total_fees

    @property
    def order_ids(self) -> list[str]:
        return [line["order_id"] for line in self.lines]

    def add(self, line: dict) -> None:
        self.lines.append(line)
        self.gross_amount += line["gross"]
        self.total_commission += line["commission"]
        self.total_fees += line["fees"]


def payout_line(order: Order, seller_id: str) -> dict:
    settlement = order.settlement_for(seller_id)
    return {
        "order_id": str(order.id),
        "order_number": order.order_number,
        "gross": settlement.gross_amount,
        "commission": settlement.commission,
        "fees": settlement.fees,
        "net": settlement.net_amount,
    }


def calculate_pending() -> list[PendingPayout]:
    """One candidate per seller, sellers ordered by id and lines by order number."""
    pending: dict[str, PendingPayout] = {}
    for order in sorted(queries.delivered_paid_orders(), key=lambda o: o.order_number):
        for seller_id in order.seller_ids():
            if not order.is_payout_eligible(seller_id):
                continue
            candidate = pending.setdefault(seller_id, PendingPayout(seller_id=seller_id))
            candidate.add(payout_line(order, seller_id))
    return [pending[seller_id] for seller_id in sorted(pending)]
