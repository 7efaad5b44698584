"""Pydantic request/response schemas for the marketplace API.

These are external contracts (anti-corruption layer), separate from
internal Protean commands.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Shared sub-models
# ---------------------------------------------------------------------------
class BuyerSchema(BaseModel):
    """Authenticated principal, as supplied by the identity service."""

    user_id: str
    name: str | None = None
    email: str | None = None
    phone: str | None = None


class OrderItemSchema(BaseModel):
    """Catalog-priced line item, immutable once the order is placed."""

    product_id: str
    seller_id: str
    title: str | None = None
    quantity: int = Field(ge=1)
    unit_price: int = Field(ge=0)


class InvoiceLineItemSchema(BaseModel):
    description: str
    quantity: int = Field(ge=1)
    unit_price: int = Field(ge=0)


class DestinationSchema(BaseModel):
    provider: str
    account_number: str
    account_name: str | None = None


# ---------------------------------------------------------------------------
# Order Request Schemas
# ---------------------------------------------------------------------------
class PlaceOrderRequest(BaseModel):
    buyer: BuyerSchema
    items: list[OrderItemSchema] = Field(min_length=1)
    payment_method: str
    tax: int = Field(default=0, ge=0)
    shipping_cost: int = Field(default=0, ge=0)
    currency: str | None = None
    seller_email: str | None = None
    notes: str | None = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "buyer": {"user_id": "buyer-001", "name": "Amina", "phone": "0772123456"},
                    "items": [{"product_id": "prod-001", "seller_id": "seller-001", "quantity": 2, "unit_price": 25000}],
                    "payment_method": "mobile_money",
                    "shipping_cost": 5000,
                }
            ]
        }
    }


class UpdateStatusRequest(BaseModel):
    status: str
    note: str | None = None
    actor: str | None = None


class CancelOrderRequest(BaseModel):
    reason: str | None = None
    actor: str | None = None


class AssignCourierRequest(BaseModel):
    courier_id: str
    actor: str | None = None


class InitiatePaymentRequest(BaseModel):
    provider: str
    phone: str | None = None


class VerifyPaymentRequest(BaseModel):
    transaction_ref: str
    actor: str | None = None


class CollectCashRequest(BaseModel):
    courier_id: str
    amount: int = Field(gt=0)


class ConfirmDeliveryRequest(BaseModel):
    order_id: str
    token: str
    actor: str | None = None


class RegisterCourierRequest(BaseModel):
    name: str
    phone: str


# ---------------------------------------------------------------------------
# Webhook Schemas
# ---------------------------------------------------------------------------
class ResolvePaymentRequest(BaseModel):
    order_id: str
    actor: str
    note: str | None = None


class PesapalIPNRequest(BaseModel):
    """Pesapal posts PascalCase keys."""

    model_config = ConfigDict(populate_by_name=True)

    order_tracking_id: str = Field(alias="OrderTrackingId")
    order_merchant_reference: str = Field(alias="OrderMerchantReference")
    order_notification_type: str = Field(default="IPNCHANGE", alias="OrderNotificationType")


# ---------------------------------------------------------------------------
# Payout Schemas
# ---------------------------------------------------------------------------
class CreatePayoutRequest(BaseModel):
    seller_id: str
    order_ids: list[str] = Field(min_length=1)
    destination: DestinationSchema
    seller_email: str | None = None
    payment_method: str | None = None
    notes: str | None = None
    actor: str | None = None


class PayoutActionRequest(BaseModel):
    actor: str | None = None
    reason: str | None = None


# ---------------------------------------------------------------------------
# Invoice Schemas
# ---------------------------------------------------------------------------
class GenerateInvoiceRequest(BaseModel):
    seller_id: str
    buyer: BuyerSchema
    line_items: list[InvoiceLineItemSchema] = Field(min_length=1)
    tax: int = Field(default=0, ge=0)
    currency: str | None = None


class VoidInvoiceRequest(BaseModel):
    reason: str


# ---------------------------------------------------------------------------
# Gateway configuration (non-production)
# ---------------------------------------------------------------------------
class ConfigureGatewayRequest(BaseModel):
    should_succeed: bool = True
    should_reject: bool = False
    failure_reason: str = "Payment declined"


# ---------------------------------------------------------------------------
# Response Schemas
# ---------------------------------------------------------------------------
class IdResponse(BaseModel):
    id: str


class StatusResponse(BaseModel):
    status: str


class PaymentLinkResponse(BaseModel):
    payment_link: str
    transaction_ref: str
    merchant_reference: str


class PaymentResultResponse(BaseModel):
    status: str
    transaction_id: str | None = None


class DeliveryResponse(BaseModel):
    order_id: str
    status: str
    confirmed_at: str
    confirmed_by: str | None = None
    already_delivered: bool


class StatusEntryResponse(BaseModel):
    status: str
    timestamp: datetime
    note: str | None = None
    actor: str | None = None


class OrderResponse(BaseModel):
    id: str
    order_number: str
    status: str
    payment_method: str
    payment_status: str
    is_paid: bool
    subtotal: int
    tax: int
    shipping_cost: int
    total_amount: int
    currency: str
    commission_amount: int | None = None
    commission_status: str | None = None
    estimated_fees: int
    net_amount: int
    payment_provider: str | None = None
    payment_id: str | None = None
    status_history: list[StatusEntryResponse]


class ReconciliationResponse(BaseModel):
    status: str
    notification_id: str | None = None
    order_id: str | None = None
    match_type: str | None = None
    park_reason: str | None = None
    duplicate: bool = False


class ParkedPaymentResponse(BaseModel):
    notification_id: str
    provider: str
    transaction_id: str
    amount: int
    reference: str | None = None
    sender_phone: str | None = None
    status: str
    park_reason: str | None = None
    order_id: str | None = None
    candidate_order_ids: list[str]
    received_at: datetime


class PayoutLineResponse(BaseModel):
    order_id: str
    order_number: str
    gross: int
    commission: int
    fees: int
    net: int


class PendingPayoutResponse(BaseModel):
    seller_id: str
    order_ids: list[str]
    gross_amount: int
    total_commission: int
    total_fees: int
    net_amount: int
    lines: list[PayoutLineResponse]


class AuditEntryResponse(BaseModel):
    action: str
    timestamp: datetime
    actor: str | None = None
    details: str | None = None


class PayoutResponse(BaseModel):
    payout_id: str
    seller_id: str
    status: str
    gross_amount: int
    total_commission: int
    total_fees: int
    net_amount: int
    currency: str
    attempts: int
    last_attempt_at: datetime | None = None
    completed_at: datetime | None = None
    transaction_id: str | None = None
    lines: list[PayoutLineResponse]
    audit_trail: list[AuditEntryResponse]


class GatewayConfigResponse(BaseModel):
    gateway: str
    should_succeed: bool
    should_reject: bool
    failure_reason: str
