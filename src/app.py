"""Tradehub FastAPI application.

Web server for the marketplace payment core. Commands are processed
synchronously per request inside the marketplace domain context.

Usage:
    uvicorn src.app:app --host 0.0.0.0 --port 8000 --reload
"""

# ---------------------------------------------------------------------------
# Domain initialization
# ---------------------------------------------------------------------------
# The domain is initialized at module level so uvicorn workers share it.
# PROTEAN_ENV controls which config overlay is applied:
#   - "test"       → in-memory providers
#   - "production" → PostgreSQL via DATABASE_URL
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from marketplace.domain import marketplace
from marketplace.utils.logging import add_context, clear_context, configure_logging

configure_logging()
marketplace.init()

_DOMAIN_PREFIXES = ("/orders", "/deliveries", "/couriers", "/payments", "/webhooks", "/payouts", "/invoices")


# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------
app = FastAPI(
    title="Tradehub API",
    description="B2B marketplace: order payments, reconciliation and seller payouts",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def domain_context_middleware(request: Request, call_next):
    """Push the marketplace domain context for every domain route."""
    if request.url.path.startswith(_DOMAIN_PREFIXES):
        add_context(method=request.method, path=request.url.path)
        try:
            with marketplace.domain_context():
                return await call_next(request)
        finally:
            clear_context()
    # Health check, docs
    return await call_next(request)


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------
from marketplace.api.errors import register_exception_handlers  # noqa: E402
from marketplace.api.routes import (  # noqa: E402
    delivery_router,
    invoice_router,
    order_router,
    payment_router,
    payout_router,
    webhook_router,
)

register_exception_handlers(app)

app.include_router(order_router)
app.include_router(delivery_router)
app.include_router(payment_router)
app.include_router(webhook_router)
app.include_router(payout_router)
app.include_router(invoice_router)


# ---------------------------------------------------------------------------
# Health / root
# ---------------------------------------------------------------------------
@app.get("/health")
async def health():
    return JSONResponse(content={"status": "ok", "domain": marketplace.name})
