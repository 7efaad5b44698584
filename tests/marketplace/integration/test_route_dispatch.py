"""Handlers that reach a gateway or a keyed lock must not run on the event loop."""

import asyncio

from fastapi.routing import APIRoute

from marketplace.api import routes
from marketplace.api.routes import (
    delivery_router,
    invoice_router,
    order_router,
    payment_router,
    payout_router,
    webhook_router,
)

_ROUTERS = (order_router, delivery_router, payment_router, webhook_router, payout_router, invoice_router)


def _endpoints():
    for router in _ROUTERS:
        for route in router.routes:
            if isinstance(route, APIRoute):
                yield route.path, route.endpoint


def test_only_the_webhook_body_read_is_async():
    coroutines = sorted(path for path, endpoint in _endpoints() if asyncio.iscoroutinefunction(endpoint))
    assert coroutines == ["/webhooks/{provider}"]


def test_webhook_reconciliation_is_synchronous():
    assert not asyncio.iscoroutinefunction(routes._handle_notification)


def test_signed_webhook_still_checked(client, settings_env):
    settings_env(MTN_WEBHOOK_SECRET="s3cret")

    response = client.post(
        "/webhooks/mtn",
        json={"amount": 50_000, "transactionId": "MP-SIG-1", "status": "SUCCESSFUL"},
        headers={"X-Signature": "bad"},
    )

    assert response.status_code == 401
