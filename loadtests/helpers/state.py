"""Per-user state tracking for Locust load test scenarios.

Each Locust user instance keeps its own state; ids returned by creation
endpoints are carried into the follow-up requests of the same journey.
"""

from dataclasses import dataclass


@dataclass
class OrderState:
    """Tracks a single order from placement to payment."""

    order_id: str | None = None
    order_number: str | None = None
    total_amount: int = 0
    payment_ref: str | None = None
    payment_status: str = "pending"


@dataclass
class InvoiceState:
    invoice_id: str | None = None
    payment_ref: str | None = None
    status: str = "draft"
