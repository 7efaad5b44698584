import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from marketplace.api.errors import register_exception_handlers
from marketplace.api.routes import (
    delivery_router,
    invoice_router,
    order_router,
    payment_router,
    payout_router,
    webhook_router,
)


@pytest.fixture()
def client():
    app = FastAPI()
    app.include_router(order_router)
    app.include_router(delivery_router)
    app.include_router(payment_router)
    app.include_router(webhook_router)
    app.include_router(payout_router)
    app.include_router(invoice_router)
    register_exception_handlers(app)
    return TestClient(app)


@pytest.fixture()
def api_order(client):
    """POST /orders and return the new order id."""

    def _create(amount=50_000, payment_method="mobile_money", seller_id="seller-001"):
        response = client.post(
            "/orders",
            json={
                "buyer": {"user_id": "buyer-001", "name": "Amina", "email": "amina@example.com", "phone": "0772123456"},
                "items": [{"product_id": "prod-001", "seller_id": seller_id, "quantity": 1, "unit_price": amount}],
                "payment_method": payment_method,
                "seller_email": "seller@example.com",
            },
        )
        assert response.status_code == 201
        return response.json()["id"]

    return _create
