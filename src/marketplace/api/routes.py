"""FastAPI routes for the marketplace payment core.

Orders, deliveries, couriers, provider webhooks, payouts and invoices.
Domain errors are mapped to status codes in ``marketplace.api.errors``.
"""

import json
import os
from dataclasses import asdict

import structlog
from fastapi import APIRouter, Header, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from protean.utils.globals import current_domain

from marketplace.api.schemas import (
    AssignCourierRequest,
    AuditEntryResponse,
    CancelOrderRequest,
    CollectCashRequest,
    ConfigureGatewayRequest,
    ConfirmDeliveryRequest,
    CreatePayoutRequest,
    DeliveryResponse,
    GatewayConfigResponse,
    GenerateInvoiceRequest,
    IdResponse,
    InitiatePaymentRequest,
    OrderResponse,
    ParkedPaymentResponse,
    PaymentLinkResponse,
    PaymentResultResponse,
    PayoutActionRequest,
    PayoutLineResponse,
    PayoutResponse,
    PendingPayoutResponse,
    PesapalIPNRequest,
    PlaceOrderRequest,
    ReconciliationResponse,
    RegisterCourierRequest,
    ResolvePaymentRequest,
    StatusEntryResponse,
    StatusResponse,
    UpdateStatusRequest,
    VerifyPaymentRequest,
    VoidInvoiceRequest,
)
from marketplace.config import get_settings
from marketplace.courier.courier import DeactivateCourier, RegisterCourier
from marketplace.gateway import SUPPORTED_PROVIDERS, get_gateway
from marketplace.gateway.fake_adapter import FakeGateway
from marketplace.invoice.billing import (
    GenerateInvoice,
    InitiateInvoicePayment,
    IssueInvoice,
    VerifyInvoicePayment,
    VoidInvoice,
)
from marketplace.order import lifecycle
from marketplace.order.order import Order
from marketplace.payout import engine
from marketplace.payout.calculation import calculate_pending
from marketplace.reconciliation.ipn import handle_pesapal_ipn
from marketplace.reconciliation.manual import open_notifications, resolve_parked_payment
from marketplace.reconciliation.payloads import parse_notification, verify_signature
from marketplace.reconciliation.reconciler import reconcile

logger = structlog.get_logger(__name__)


def _order_response(order: Order) -> OrderResponse:
    return OrderResponse(
        id=str(order.id),
        order_number=order.order_number,
        status=order.status,
        payment_method=order.payment_method,
        payment_status=order.payment_status,
        is_paid=order.is_paid,
        subtotal=order.subtotal,
        tax=order.tax,
        shipping_cost=order.shipping_cost,
        total_amount=order.total_amount,
        currency=order.currency,
        commission_amount=order.commission.amount if order.commission else None,
        commission_status=order.commission.status if order.commission else None,
        estimated_fees=order.estimated_fees,
        net_amount=order.net_amount,
        payment_provider=order.payment_provider,
        payment_id=order.payment_details.payment_id if order.payment_details else None,
        status_history=[
            StatusEntryResponse(status=e.status, timestamp=e.timestamp, note=e.note, actor=e.actor)
            for e in order.history()
        ],
    )


def _payout_response(payout) -> PayoutResponse:
    return PayoutResponse(
        payout_id=payout.payout_id,
        seller_id=str(payout.seller_id),
        status=payout.status,
        gross_amount=payout.gross_amount,
        total_commission=payout.total_commission,
        total_fees=payout.total_fees,
        net_amount=payout.net_amount,
        currency=payout.currency,
        attempts=payout.attempts,
        last_attempt_at=payout.last_attempt_at,
        completed_at=payout.completed_at,
        transaction_id=payout.destination.transaction_id if payout.destination else None,
        lines=[
            PayoutLineResponse(
                order_id=str(line.order_id),
                order_number=line.order_number,
                gross=line.gross,
                commission=line.commission,
                fees=line.fees,
                net=line.net,
            )
            for line in payout.lines
        ],
        audit_trail=[
            AuditEntryResponse(action=e.action, timestamp=e.timestamp, actor=e.actor, details=e.details)
            for e in payout.history()
        ],
    )


# ---------------------------------------------------------------------------
# Order Router
# ---------------------------------------------------------------------------
order_router = APIRouter(prefix="/orders", tags=["orders"])


@order_router.post("", status_code=201, response_model=IdResponse)
def place_order(body: PlaceOrderRequest) -> IdResponse:
    """Place an order from catalog-priced items."""
    order_id = lifecycle.place_order(
        buyer=body.buyer.model_dump(),
        items=[item.model_dump() for item in body.items],
        payment_method=body.payment_method,
        tax=body.tax,
        shipping_cost=body.shipping_cost,
        currency=body.currency,
        seller_email=body.seller_email,
        notes=body.notes,
    )
    return IdResponse(id=order_id)


@order_router.get("/{order_id}", response_model=OrderResponse)
def get_order(order_id: str) -> OrderResponse:
    return _order_response(current_domain.repository_for(Order).get(order_id))


@order_router.put("/{order_id}/status", response_model=StatusResponse)
def update_status(order_id: str, body: UpdateStatusRequest) -> StatusResponse:
    lifecycle.update_status(order_id, body.status, note=body.note, actor=body.actor)
    return StatusResponse(status=body.status)


@order_router.post("/{order_id}/cancel", response_model=StatusResponse)
def cancel_order(order_id: str, body: CancelOrderRequest) -> StatusResponse:
    lifecycle.cancel_order(order_id, reason=body.reason, actor=body.actor)
    return StatusResponse(status="cancelled")


@order_router.post("/{order_id}/courier", response_model=StatusResponse)
def assign_courier(order_id: str, body: AssignCourierRequest) -> StatusResponse:
    lifecycle.assign_courier(order_id, body.courier_id, actor=body.actor)
    return StatusResponse(status="assigned")


@order_router.post("/{order_id}/payments", status_code=201, response_model=PaymentLinkResponse)
def initiate_payment(order_id: str, body: InitiatePaymentRequest) -> PaymentLinkResponse:
    """Open a hosted payment with the provider. The merchant reference is the order number."""
    return PaymentLinkResponse(**lifecycle.initiate_payment(order_id, body.provider, phone=body.phone))


@order_router.post("/{order_id}/payments/verify", response_model=PaymentResultResponse)
def verify_payment(order_id: str, body: VerifyPaymentRequest) -> PaymentResultResponse:
    """Check a payment with the provider; safe to call repeatedly."""
    return PaymentResultResponse(**lifecycle.verify_payment(order_id, body.transaction_ref, actor=body.actor))


@order_router.post("/{order_id}/cash", response_model=StatusResponse)
def collect_cash(order_id: str, body: CollectCashRequest) -> StatusResponse:
    """Cash handed to the courier on a cash-on-delivery order."""
    return StatusResponse(status=lifecycle.collect_cash(order_id, body.courier_id, body.amount))


# ---------------------------------------------------------------------------
# Delivery Router
# ---------------------------------------------------------------------------
delivery_router = APIRouter(tags=["deliveries"])


@delivery_router.post("/deliveries/confirm", response_model=DeliveryResponse)
def confirm_delivery(body: ConfirmDeliveryRequest) -> DeliveryResponse:
    """Courier scan of the delivery code; repeating it returns the original confirmation."""
    return DeliveryResponse(**lifecycle.confirm_delivery(body.order_id, body.token, actor=body.actor))


@delivery_router.post("/couriers", status_code=201, response_model=IdResponse)
def register_courier(body: RegisterCourierRequest) -> IdResponse:
    courier_id = current_domain.process(RegisterCourier(name=body.name, phone=body.phone), asynchronous=False)
    return IdResponse(id=courier_id)


@delivery_router.post("/couriers/{courier_id}/deactivate", response_model=StatusResponse)
def deactivate_courier(courier_id: str) -> StatusResponse:
    current_domain.process(DeactivateCourier(courier_id=courier_id), asynchronous=False)
    return StatusResponse(status="deactivated")


# ---------------------------------------------------------------------------
# Payment gateway configuration (non-production)
# ---------------------------------------------------------------------------
payment_router = APIRouter(prefix="/payments", tags=["payments"])


@payment_router.post("/gateway/{provider}/configure", response_model=GatewayConfigResponse)
def configure_gateway(provider: str, body: ConfigureGatewayRequest) -> GatewayConfigResponse:
    """Configure the FakeGateway behavior (non-production only).

    This endpoint is only available when PROTEAN_ENV is not 'production'.
    It allows toggling success/failure behavior for manual API testing.
    """
    if os.environ.get("PROTEAN_ENV") == "production":
        raise HTTPException(status_code=403, detail="Gateway configuration not available in production")
    if provider not in SUPPORTED_PROVIDERS:
        raise HTTPException(status_code=404, detail=f"Unknown payment provider '{provider}'")

    gateway = get_gateway(provider)
    if not isinstance(gateway, FakeGateway):
        raise HTTPException(status_code=400, detail="Gateway configuration only available for FakeGateway")

    gateway.configure(
        should_succeed=body.should_succeed,
        failure_reason=body.failure_reason,
        should_reject=body.should_reject,
    )
    return GatewayConfigResponse(
        gateway=type(gateway).__name__,
        should_succeed=gateway.should_succeed,
        should_reject=gateway.should_reject,
        failure_reason=gateway.failure_reason,
    )


# ---------------------------------------------------------------------------
# Webhook Router
# ---------------------------------------------------------------------------
webhook_router = APIRouter(prefix="/webhooks", tags=["webhooks"])

_WEBHOOK_PROVIDERS = {
    "mtn": "mtn",
    "mtn-momo": "mtn",
    "airtel": "airtel",
    "airtel-money": "airtel",
}


@webhook_router.post("/pesapal/ipn")
def pesapal_ipn(body: PesapalIPNRequest) -> dict:
    """Pesapal IPN: verify the tracking id, then apply it by merchant reference."""
    result = handle_pesapal_ipn(body.order_tracking_id, body.order_merchant_reference)
    logger.info("Pesapal IPN processed", merchant_reference=body.order_merchant_reference, result=result.get("status"))
    return {
        "orderNotificationType": body.order_notification_type,
        "orderTrackingId": body.order_tracking_id,
        "orderMerchantReference": body.order_merchant_reference,
        "status": 200,
    }


@webhook_router.get("/unmatched", response_model=list[ParkedPaymentResponse])
def list_unmatched(limit: int = 100) -> list[ParkedPaymentResponse]:
    """Manual reconciliation queue: parked and partially matched payments."""
    return [
        ParkedPaymentResponse(
            notification_id=record.notification_id,
            provider=record.provider,
            transaction_id=record.transaction_id,
            amount=record.amount,
            reference=record.reference,
            sender_phone=record.sender_phone,
            status=record.status,
            park_reason=record.park_reason,
            order_id=str(record.order_id) if record.order_id else None,
            candidate_order_ids=record.candidates(),
            received_at=record.received_at,
        )
        for record in open_notifications(limit=limit)
    ]


@webhook_router.post("/unmatched/{notification_id}/resolve", response_model=ReconciliationResponse)
def resolve_unmatched(notification_id: str, body: ResolvePaymentRequest) -> ReconciliationResponse:
    record = resolve_parked_payment(notification_id, body.order_id, actor=body.actor, note=body.note)
    return ReconciliationResponse(
        status=record.status,
        notification_id=record.notification_id,
        order_id=str(record.order_id),
        match_type=record.match_type,
    )


@webhook_router.post("/{provider}", response_model=ReconciliationResponse)
async def receive_payment_notification(
    provider: str,
    request: Request,
    x_signature: str = Header(default=""),
) -> ReconciliationResponse:
    """Inbound mobile-money notification.

    Always acknowledged with 200 once parsed: non-success statuses are
    ignored and unmatched payments are parked for an operator. Reconciliation
    runs in the threadpool, off the event loop.
    """
    provider_key = _WEBHOOK_PROVIDERS.get(provider)
    if provider_key is None:
        raise HTTPException(status_code=404, detail=f"Unknown webhook provider '{provider}'")

    raw_body = await request.body()
    return await run_in_threadpool(_handle_notification, provider_key, raw_body, x_signature)


def _handle_notification(provider_key: str, raw_body: bytes, x_signature: str) -> ReconciliationResponse:
    secret = get_settings().webhook_secret_for(provider_key)
    if secret and not verify_signature(raw_body, x_signature, secret):
        raise HTTPException(status_code=401, detail="Invalid webhook signature")

    try:
        body = json.loads(raw_body or b"null")
    except ValueError:
        raise HTTPException(status_code=400, detail="Body must be JSON") from None

    inbound = parse_notification(provider_key, body)
    if not inbound.is_success:
        logger.info(
            "Non-success payment notification acknowledged",
            provider=provider_key,
            transaction_id=inbound.transaction_id,
            status=inbound.status,
        )
        return ReconciliationResponse(status="ignored", notification_id=inbound.notification_id)

    return ReconciliationResponse(**asdict(reconcile(inbound)))


# ---------------------------------------------------------------------------
# Payout Router
# ---------------------------------------------------------------------------
payout_router = APIRouter(prefix="/payouts", tags=["payouts"])


@payout_router.get("/pending", response_model=list[PendingPayoutResponse])
def pending_payouts() -> list[PendingPayoutResponse]:
    """What each seller is currently owed, one candidate per seller."""
    return [
        PendingPayoutResponse(
            seller_id=candidate.seller_id,
            order_ids=candidate.order_ids,
            gross_amount=candidate.gross_amount,
            total_commission=candidate.total_commission,
            total_fees=candidate.total_fees,
            net_amount=candidate.net_amount,
            lines=[PayoutLineResponse(**line) for line in candidate.lines],
        )
        for candidate in calculate_pending()
    ]


@payout_router.post("", status_code=201, response_model=PayoutResponse)
def create_payout(body: CreatePayoutRequest) -> PayoutResponse:
    payout_id = engine.create_payout(
        seller_id=body.seller_id,
        order_ids=body.order_ids,
        destination=body.destination.model_dump(),
        seller_email=body.seller_email,
        payment_method=body.payment_method,
        notes=body.notes,
        actor=body.actor,
    )
    return _payout_response(engine.get_payout(payout_id))


@payout_router.get("", response_model=list[PayoutResponse])
def list_payouts(seller_id: str | None = None, status: str | None = None) -> list[PayoutResponse]:
    return [_payout_response(p) for p in engine.list_payouts(seller_id=seller_id, status=status)]


@payout_router.get("/{payout_id}", response_model=PayoutResponse)
def get_payout(payout_id: str) -> PayoutResponse:
    return _payout_response(engine.get_payout(payout_id))


@payout_router.post("/{payout_id}/process", status_code=202, response_model=PayoutResponse)
def process_payout(payout_id: str, body: PayoutActionRequest) -> PayoutResponse:
    """Start the transfer; the payout completes or fails in the background."""
    engine.process_payout(payout_id, actor=body.actor)
    return _payout_response(engine.get_payout(payout_id))


@payout_router.post("/{payout_id}/retry", response_model=PayoutResponse)
def retry_payout(payout_id: str, body: PayoutActionRequest) -> PayoutResponse:
    engine.retry_payout(payout_id, actor=body.actor)
    return _payout_response(engine.get_payout(payout_id))


@payout_router.post("/{payout_id}/cancel", response_model=PayoutResponse)
def cancel_payout(payout_id: str, body: PayoutActionRequest) -> PayoutResponse:
    engine.cancel_payout(payout_id, reason=body.reason, actor=body.actor)
    return _payout_response(engine.get_payout(payout_id))


# ---------------------------------------------------------------------------
# Invoice Router
# ---------------------------------------------------------------------------
invoice_router = APIRouter(prefix="/invoices", tags=["invoices"])


@invoice_router.post("", status_code=201, response_model=IdResponse)
def generate_invoice(body: GenerateInvoiceRequest) -> IdResponse:
    command = GenerateInvoice(
        seller_id=body.seller_id,
        buyer_id=body.buyer.user_id,
        buyer_name=body.buyer.name,
        buyer_email=body.buyer.email,
        buyer_phone=body.buyer.phone,
        line_items=json.dumps([item.model_dump() for item in body.line_items]),
        tax=body.tax,
        currency=body.currency,
    )
    return IdResponse(id=current_domain.process(command, asynchronous=False))


@invoice_router.post("/{invoice_id}/issue", response_model=StatusResponse)
def issue_invoice(invoice_id: str) -> StatusResponse:
    current_domain.process(IssueInvoice(invoice_id=invoice_id), asynchronous=False)
    return StatusResponse(status="issued")


@invoice_router.post("/{invoice_id}/void", response_model=StatusResponse)
def void_invoice(invoice_id: str, body: VoidInvoiceRequest) -> StatusResponse:
    current_domain.process(VoidInvoice(invoice_id=invoice_id, reason=body.reason), asynchronous=False)
    return StatusResponse(status="voided")


@invoice_router.post("/{invoice_id}/payments", status_code=201, response_model=PaymentLinkResponse)
def initiate_invoice_payment(invoice_id: str, body: InitiatePaymentRequest) -> PaymentLinkResponse:
    result = current_domain.process(
        InitiateInvoicePayment(invoice_id=invoice_id, provider=body.provider, phone=body.phone),
        asynchronous=False,
    )
    return PaymentLinkResponse(**result)


@invoice_router.post("/{invoice_id}/payments/verify", response_model=PaymentResultResponse)
def verify_invoice_payment(invoice_id: str, body: VerifyPaymentRequest) -> PaymentResultResponse:
    result = current_domain.process(
        VerifyInvoicePayment(invoice_id=invoice_id, transaction_ref=body.transaction_ref),
        asynchronous=False,
    )
    return PaymentResultResponse(**result)
