"""Faker-based data generators for Locust load test scenarios.

Each generator produces payloads that pass the marketplace's validation
rules (local Ugandan phone numbers, whole-shilling amounts, known payment
methods) and match the field names of the API's Pydantic request schemas.
"""

import random
import uuid

from faker import Faker

fake = Faker()

SELLERS = [f"seller-lt-{n:03d}" for n in range(1, 21)]


def local_phone() -> str:
    """Generate phones like '0772123456' that normalize to +256 E.164."""
    prefix = random.choice(["070", "071", "075", "077", "078"])
    return f"{prefix}{random.randint(1000000, 9999999)}"


def ugx_amount(low: int = 5_000, high: int = 500_000) -> int:
    """Whole shillings, rounded to the nearest 500 like real shelf prices."""
    return random.randint(low // 500, high // 500) * 500


def buyer_data() -> dict:
    return {
        "user_id": f"buyer-lt-{uuid.uuid4().hex[:8]}",
        "name": fake.name()[:100],
        "email": f"{fake.user_name()[:20]}.{uuid.uuid4().hex[:4]}@{fake.free_email_domain()}",
        "phone": local_phone(),
    }


def order_data(payment_method: str = "mobile_money", seller_id: str | None = None) -> dict:
    """Generate PlaceOrderRequest payload with one to three items from one seller."""
    seller_id = seller_id or random.choice(SELLERS)
    return {
        "buyer": buyer_data(),
        "items": [
            {
                "product_id": f"prod-{uuid.uuid4().hex[:6]}",
                "seller_id": seller_id,
                "title": f"{fake.word().capitalize()} {fake.word()}"[:100],
                "quantity": random.randint(1, 5),
                "unit_price": ugx_amount(1_000, 150_000),
            }
            for _ in range(random.randint(1, 3))
        ],
        "payment_method": payment_method,
        "shipping_cost": random.choice([0, 3_000, 5_000, 10_000]),
    }


def mtn_callback(amount: int, reference: str | None = None, status: str = "SUCCESSFUL") -> dict:
    """Generate an MTN-style payment notification, optionally quoting a reference."""
    body = {
        "amount": amount,
        "transactionId": f"MP{fake.date_time_this_month():%y%m%d.%H%M}.{uuid.uuid4().hex[:6].upper()}",
        "senderPhone": local_phone(),
        "status": status,
    }
    if reference:
        body["reference"] = reference
    return body


def invoice_data(seller_id: str | None = None) -> dict:
    """Generate GenerateInvoiceRequest payload."""
    return {
        "seller_id": seller_id or random.choice(SELLERS),
        "buyer": {**buyer_data(), "name": fake.company()[:100]},
        "line_items": [
            {
                "description": f"{fake.word().capitalize()} {fake.word().capitalize()}"[:100],
                "quantity": random.randint(1, 10),
                "unit_price": ugx_amount(10_000, 250_000),
            }
            for _ in range(random.randint(1, 4))
        ],
        "tax": random.choice([0, 0, 5_000, 18_000]),
    }
