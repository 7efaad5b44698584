"""Order aggregate (CQRS): the order-of-record for a purchase.

Every status change goes through one guard table and appends exactly one
entry to the append-only status history. Payment confirmation stamps
``payment_details`` once; a repeated confirmation is a no-op so duplicate
webhook deliveries collapse to a single transition.

State Machine:
    PENDING → CONFIRMED → PROCESSING → SHIPPED → DELIVERED → REFUNDED
    PENDING/CONFIRMED → CANCELLED

Commission:
    PENDING (unpaid) → COLLECTED (payment stamped) → PROCESSING (reserved
    by a payout) → PAID. Tracked per seller in ``settlements``; the order
    level status is derived from them.
"""

from datetime import UTC, datetime
from enum import Enum
from uuid import uuid4

import structlog
from protean import atomic_change, invariant
from protean.exceptions import ValidationError
from protean.fields import (
    Boolean,
    DateTime,
    Float,
    HasMany,
    Identifier,
    Integer,
    String,
    Text,
    ValueObject,
)

from marketplace.domain import marketplace
from marketplace.exceptions import InvalidTransition
from marketplace.fees.schedule import has_schedule, quote
from marketplace.order.events import (
    CourierAssigned,
    DeliveryConfirmed,
    OrderPlaced,
    OrderStatusChanged,
    PartialPaymentRecorded,
    PaymentAttemptRecorded,
    PaymentConfirmed,
)
from marketplace.utils.money import percent_of, split_by_weight

logger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class OrderStatus(Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class PaymentMethod(Enum):
    CARD = "card"
    MOBILE_MONEY = "mobile_money"
    COD = "cod"


class PaymentStatus(Enum):
    PENDING = "pending"
    PARTIAL = "partial"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


class CommissionStatus(Enum):
    PENDING = "pending"
    COLLECTED = "collected"
    PROCESSING = "processing"
    PAID = "paid"
    VOIDED = "voided"


class SettlementStatus(Enum):
    COLLECTED = "collected"
    PROCESSING = "processing"
    PAID = "paid"
    VOIDED = "voided"


class TransitionCause(Enum):
    MANUAL = "manual"
    PAYMENT = "payment"
    DELIVERY_SCAN = "delivery_scan"


_VALID_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.CONFIRMED, OrderStatus.CANCELLED},
    OrderStatus.CONFIRMED: {OrderStatus.PROCESSING, OrderStatus.CANCELLED},
    OrderStatus.PROCESSING: {OrderStatus.SHIPPED},
    OrderStatus.SHIPPED: {OrderStatus.DELIVERED},
    OrderStatus.DELIVERED: {OrderStatus.REFUNDED},
    OrderStatus.CANCELLED: set(),  # Terminal
    OrderStatus.REFUNDED: set(),  # Terminal
}

_CANCELLABLE_STATES = {OrderStatus.PENDING, OrderStatus.CONFIRMED}

# Path walked when a delivery scan lands before the order reached SHIPPED
_DELIVERY_PATH = {
    OrderStatus.CONFIRMED: [OrderStatus.PROCESSING, OrderStatus.SHIPPED, OrderStatus.DELIVERED],
    OrderStatus.PROCESSING: [OrderStatus.SHIPPED, OrderStatus.DELIVERED],
    OrderStatus.SHIPPED: [OrderStatus.DELIVERED],
}

_PAYABLE_STATES = {
    OrderStatus.PENDING,
    OrderStatus.CONFIRMED,
    OrderStatus.PROCESSING,
    OrderStatus.SHIPPED,
    OrderStatus.DELIVERED,
}


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
@marketplace.value_object(part_of="Order")
class PaymentDetails:
    """Stamp of the verified payment that settled the order."""

    payment_id = String(required=True, max_length=255)
    payment_status = String(max_length=50, default="completed")
    payment_date = DateTime(required=True)
    provider = String(required=True, max_length=50)


@marketplace.value_object(part_of="Order")
class Commission:
    percentage = Float(required=True)
    amount = Integer(required=True)
    status = String(choices=CommissionStatus, default=CommissionStatus.PENDING.value)


@marketplace.value_object(part_of="Order")
class DeliveryConfirmation:
    confirmed_at = DateTime(required=True)
    confirmed_by = String(max_length=255)


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@marketplace.entity(part_of="Order")
class OrderItem:
    """A line item, priced from the catalog at placement time."""

    product_id = Identifier(required=True)
    seller_id = Identifier(required=True)
    title = String(max_length=255)
    quantity = Integer(required=True, min_value=1)
    unit_price = Integer(required=True, min_value=0)
    subtotal = Integer(required=True, min_value=0)

    @invariant.post
    def subtotal_is_quantity_times_unit_price(self):
        if self.subtotal != self.quantity * self.unit_price:
            raise ValidationError(
                {"subtotal": [f"Item subtotal {self.subtotal} != {self.quantity} x {self.unit_price}"]}
            )


@marketplace.entity(part_of="Order")
class StatusEntry:
    status = String(choices=OrderStatus, required=True)
    timestamp = DateTime(required=True)
    note = String(max_length=500)
    actor = String(max_length=255)
    sequence = Integer(required=True)


@marketplace.entity(part_of="Order")
class PaymentAttempt:
    """One outbound request to a provider to collect money for this order."""

    provider = String(required=True, max_length=50)
    provider_ref = String(required=True, max_length=255)
    amount_expected = Integer(required=True)
    created_at = DateTime(required=True)


@marketplace.entity(part_of="Order")
class SellerSettlement:
    """One seller's share of a paid order, reserved and paid out by payouts."""

    seller_id = Identifier(required=True)
    gross_amount = Integer(required=True)
    commission = Integer(required=True)
    fees = Integer(required=True)
    status = String(choices=SettlementStatus, default=SettlementStatus.COLLECTED.value)
    payout_id = String(max_length=64)

    @property
    def net_amount(self) -> int:
        return self.gross_amount - self.commission - self.fees


# ---------------------------------------------------------------------------
# Aggregate Root
# ---------------------------------------------------------------------------
@marketplace.aggregate
class Order:
    order_number = String(required=True, max_length=20, unique=True)
    buyer_id = Identifier(required=True)
    seller_id = Identifier(required=True)
    buyer_name = String(max_length=255)
    buyer_email = String(max_length=255)
    buyer_phone = String(max_length=20)
    seller_email = String(max_length=255)

    items = HasMany(OrderItem)
    subtotal = Integer(default=0)
    tax = Integer(default=0)
    shipping_cost = Integer(default=0)
    total_amount = Integer(default=0)
    currency = String(max_length=3, default="UGX")

    status = String(choices=OrderStatus, default=OrderStatus.PENDING.value)
    status_history = HasMany(StatusEntry)

    payment_method = String(choices=PaymentMethod, required=True)
    payment_provider = String(max_length=50)
    payment_status = String(choices=PaymentStatus, default=PaymentStatus.PENDING.value)
    payment_reference = String(max_length=255)
    is_paid = Boolean(default=False)
    amount_received = Integer(default=0)
    partial_payment_id = String(max_length=255)
    payment_details = ValueObject(PaymentDetails)
    payment_attempts = HasMany(PaymentAttempt)

    commission = ValueObject(Commission)
    estimated_fees = Integer(default=0)
    fee_modeled = Boolean(default=True)
    net_amount = Integer(default=0)
    settlements = HasMany(SellerSettlement)

    assigned_courier_id = Identifier()
    delivery_token = String(max_length=64)
    delivery_confirmation = ValueObject(DeliveryConfirmation)

    notes = Text()
    created_at = DateTime()
    updated_at = DateTime()

    @invariant.post
    def total_is_subtotal_plus_tax_plus_shipping(self):
        if self.total_amount != self.subtotal + self.tax + self.shipping_cost:
            raise ValidationError(
                {"total_amount": ["Total must equal subtotal + tax + shipping cost"]}
            )

    @invariant.post
    def subtotal_matches_items(self):
        if self.items and sum(item.subtotal for item in self.items) != self.subtotal:
            raise ValidationError({"subtotal": ["Subtotal must equal the sum of item subtotals"]})

    @invariant.post
    def history_starts_pending(self):
        if self.status_history and self.history()[0].status != OrderStatus.PENDING.value:
            raise ValidationError({"status_history": ["Status history must start with pending"]})

    # -------------------------------------------------------------------
    # Factory method
    # -------------------------------------------------------------------
    @classmethod
    def place(
        cls,
        order_number: str,
        buyer: dict,
        items_data: list[dict],
        payment_method: str,
        tax: int = 0,
        shipping_cost: int = 0,
        currency: str = "UGX",
        commission_percent: float = 3.0,
        seller_email: str | None = None,
        notes: str | None = None,
    ):
        """Create a new order from the buyer principal and catalog-priced items.

        Args:
            buyer: Principal from the identity collaborator: user_id and
                optionally name, email, phone.
            items_data: List of dicts with product_id, seller_id, title,
                quantity, unit_price.
        """
        if not items_data:
            raise ValidationError({"items": ["An order needs at least one item"]})
        if tax < 0 or shipping_cost < 0:
            raise ValidationError({"total_amount": ["Tax and shipping cost cannot be negative"]})

        items = []
        for data in items_data:
            quantity = int(data["quantity"])
            unit_price = int(data["unit_price"])
            if quantity < 1:
                raise ValidationError({"quantity": ["Quantity must be at least 1"]})
            if unit_price < 0:
                raise ValidationError({"unit_price": ["Unit price cannot be negative"]})
            items.append(
                OrderItem(
                    product_id=data["product_id"],
                    seller_id=data["seller_id"],
                    title=data.get("title"),
                    quantity=quantity,
                    unit_price=unit_price,
                    subtotal=quantity * unit_price,
                )
            )

        subtotal = sum(item.subtotal for item in items)
        total_amount = subtotal + tax + shipping_cost
        now = datetime.now(UTC)

        order = cls(
            order_number=order_number,
            buyer_id=buyer["user_id"],
            seller_id=items[0].seller_id,
            buyer_name=buyer.get("name"),
            buyer_email=buyer.get("email"),
            buyer_phone=buyer.get("phone"),
            seller_email=seller_email,
            subtotal=subtotal,
            tax=tax,
            shipping_cost=shipping_cost,
            total_amount=total_amount,
            currency=currency,
            payment_method=payment_method,
            commission=Commission(
                percentage=commission_percent,
                amount=percent_of(total_amount, commission_percent),
                status=CommissionStatus.PENDING.value,
            ),
            delivery_token=uuid4().hex,
            notes=notes,
            created_at=now,
            updated_at=now,
        )
        with atomic_change(order):
            for item in items:
                order.add_items(item)
            order._append_history(OrderStatus.PENDING, "Order created", str(buyer["user_id"]), now)
        order._refresh_net_amount()

        order.raise_(
            OrderPlaced(
                order_id=str(order.id),
                order_number=order_number,
                buyer_id=str(order.buyer_id),
                total_amount=total_amount,
                currency=currency,
                payment_method=payment_method,
                placed_at=now,
            )
        )
        return order

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    def history(self) -> list:
        """Status history in the order it was written."""
        return sorted(self.status_history, key=lambda entry: entry.sequence)

    def seller_ids(self) -> list[str]:
        seen = []
        for item in self.items:
            if str(item.seller_id) not in seen:
                seen.append(str(item.seller_id))
        return seen

    def seller_subtotal(self, seller_id: str) -> int:
        return sum(item.subtotal for item in self.items if str(item.seller_id) == str(seller_id))

    def settlement_for(self, seller_id: str):
        return next((s for s in self.settlements if str(s.seller_id) == str(seller_id)), None)

    def has_reserved_settlement(self) -> bool:
        return any(s.status == SettlementStatus.PROCESSING.value for s in self.settlements)

    def is_awaiting_payment(self) -> bool:
        """True while the order can still be settled by an inbound payment."""
        return (
            not self.is_paid
            and OrderStatus(self.status) in _PAYABLE_STATES
            and PaymentStatus(self.payment_status) in (PaymentStatus.PENDING, PaymentStatus.PARTIAL)
        )

    def is_payout_eligible(self, seller_id: str) -> bool:
        settlement = self.settlement_for(seller_id)
        return (
            settlement is not None
            and settlement.status == SettlementStatus.COLLECTED.value
            and not settlement.payout_id
            and self.payment_status == PaymentStatus.PAID.value
            and self.status == OrderStatus.DELIVERED.value
        )

    # -------------------------------------------------------------------
    # State transition helpers
    # -------------------------------------------------------------------
    def _assert_can_transition(self, target: OrderStatus) -> None:
        current = OrderStatus(self.status)
        if target not in _VALID_TRANSITIONS.get(current, set()):
            raise InvalidTransition(current.value, target.value)
        if target == OrderStatus.REFUNDED and self.has_reserved_settlement():
            raise InvalidTransition(current.value, target.value, "a seller payout for this order is in progress")

    def _append_history(self, status: OrderStatus, note: str | None, actor: str | None, now: datetime) -> None:
        history = self.history()
        # Keep the history monotonic even if the clock steps backwards
        if history and history[-1].timestamp and now < history[-1].timestamp:
            now = history[-1].timestamp
        self.add_status_history(
            StatusEntry(
                status=status.value,
                timestamp=now,
                note=note,
                actor=actor,
                sequence=len(history) + 1,
            )
        )

    def _transition(
        self,
        target: OrderStatus,
        note: str | None,
        actor: str | None,
        cause: TransitionCause = TransitionCause.MANUAL,
    ) -> None:
        self._assert_can_transition(target)
        previous = self.status
        now = datetime.now(UTC)
        self._append_history(target, note, actor, now)
        self.status = target.value
        self.updated_at = now
        self.raise_(
            OrderStatusChanged(
                order_id=str(self.id),
                order_number=self.order_number,
                previous_status=previous,
                new_status=target.value,
                note=note,
                actor=actor,
                cause=cause.value,
                changed_at=now,
            )
        )

    # -------------------------------------------------------------------
    # Status lifecycle
    # -------------------------------------------------------------------
    def update_status(self, new_status: str, note: str | None = None, actor: str | None = None) -> None:
        """Apply a guarded status transition; illegal edges leave the order untouched."""
        try:
            target = OrderStatus(new_status)
        except ValueError as exc:
            raise ValidationError({"status": [f"Unknown order status '{new_status}'"]}) from exc

        if target == OrderStatus.CANCELLED:
            self.cancel(note=note, actor=actor)
            return

        self._transition(target, note, actor)
        if target == OrderStatus.REFUNDED:
            self._void_open_settlements()
            self.payment_status = PaymentStatus.REFUNDED.value if self.is_paid else self.payment_status

    def cancel(self, note: str | None = None, actor: str | None = None) -> None:
        current = OrderStatus(self.status)
        if current not in _CANCELLABLE_STATES:
            raise InvalidTransition(current.value, OrderStatus.CANCELLED.value)
        self._transition(OrderStatus.CANCELLED, note or "Order cancelled", actor)

    def assign_courier(self, courier_id: str, actor: str | None = None) -> None:
        if OrderStatus(self.status) in (OrderStatus.DELIVERED, OrderStatus.CANCELLED, OrderStatus.REFUNDED):
            raise ValidationError({"status": [f"Cannot assign a courier to a {self.status} order"]})
        now = datetime.now(UTC)
        self.assigned_courier_id = courier_id
        self.updated_at = now
        logger.info("Courier assigned", order_number=self.order_number, courier_id=courier_id, actor=actor)
        self.raise_(CourierAssigned(order_id=str(self.id), courier_id=courier_id, assigned_at=now))

    def confirm_delivery(self, token: str, actor: str | None = None) -> "DeliveryConfirmation":
        """Accept a scanned delivery code.

        Already-delivered orders return the existing confirmation unchanged.
        From CONFIRMED or PROCESSING the order walks the remaining edges so
        the history records every state it passed through.
        """
        if not token or token != self.delivery_token:
            raise ValidationError({"token": ["Delivery code does not match this order"]})
        current = OrderStatus(self.status)
        if current == OrderStatus.DELIVERED and self.delivery_confirmation is not None:
            return self.delivery_confirmation
        if current not in _DELIVERY_PATH:
            raise InvalidTransition(current.value, OrderStatus.DELIVERED.value)

        with atomic_change(self):
            for step in _DELIVERY_PATH[current]:
                self._transition(step, "Delivery code scanned", actor, TransitionCause.DELIVERY_SCAN)
            now = datetime.now(UTC)
            self.delivery_confirmation = DeliveryConfirmation(confirmed_at=now, confirmed_by=actor)

        self.raise_(
            DeliveryConfirmed(
                order_id=str(self.id),
                order_number=self.order_number,
                confirmed_by=actor,
                confirmed_at=self.delivery_confirmation.confirmed_at,
            )
        )
        return self.delivery_confirmation

    # -------------------------------------------------------------------
    # Payment
    # -------------------------------------------------------------------
    def record_payment_attempt(self, provider: str, provider_ref: str) -> None:
        if not self.is_awaiting_payment():
            raise ValidationError({"payment": [f"Order {self.order_number} is not awaiting payment"]})
        now = datetime.now(UTC)
        self.add_payment_attempts(
            PaymentAttempt(
                provider=provider,
                provider_ref=provider_ref,
                amount_expected=self.total_amount,
                created_at=now,
            )
        )
        self.payment_provider = provider
        self.payment_reference = provider_ref
        self.updated_at = now
        self.raise_(
            PaymentAttemptRecorded(
                order_id=str(self.id),
                provider=provider,
                provider_ref=provider_ref,
                amount_expected=self.total_amount,
                created_at=now,
            )
        )

    def confirm_payment(
        self,
        transaction_id: str,
        provider: str,
        amount: int,
        note: str | None = None,
        actor: str | None = None,
    ) -> bool:
        """Stamp a verified payment on the order.

        Returns False, without touching anything, when the order is already
        paid. A PENDING order transitions to CONFIRMED; an order that was
        confirmed earlier (cash on delivery, seller confirmation) keeps its
        status and only records the payment.
        """
        if self.is_paid:
            logger.info(
                "Payment already confirmed, ignoring",
                order_number=self.order_number,
                transaction_id=transaction_id,
                existing_payment_id=self.payment_details.payment_id if self.payment_details else None,
            )
            return False

        current = OrderStatus(self.status)
        if current not in _PAYABLE_STATES:
            raise InvalidTransition(current.value, OrderStatus.CONFIRMED.value, "order can no longer be paid")

        now = datetime.now(UTC)
        with atomic_change(self):
            if current == OrderStatus.PENDING:
                self._transition(
                    OrderStatus.CONFIRMED,
                    note or f"Payment confirmed via {provider}",
                    actor,
                    TransitionCause.PAYMENT,
                )
            self.payment_details = PaymentDetails(
                payment_id=transaction_id,
                payment_status="completed",
                payment_date=now,
                provider=provider,
            )
            self.payment_provider = provider
            self.payment_status = PaymentStatus.PAID.value
            self.is_paid = True
            self.amount_received = amount
            self.updated_at = now
            self._collect_commission(provider)

        self.raise_(
            PaymentConfirmed(
                order_id=str(self.id),
                order_number=self.order_number,
                provider=provider,
                transaction_id=transaction_id,
                amount=amount,
                commission=self.commission.amount,
                estimated_fees=self.estimated_fees,
                confirmed_at=now,
            )
        )
        return True

    def record_partial_payment(
        self,
        transaction_id: str,
        provider: str,
        amount: int,
        actor: str | None = None,
    ) -> bool:
        """Record a low-confidence payment. Never marks the order paid."""
        if self.is_paid:
            return False
        if self.partial_payment_id == transaction_id:
            return False
        if OrderStatus(self.status) not in _PAYABLE_STATES:
            raise InvalidTransition(self.status, OrderStatus.CONFIRMED.value, "order can no longer be paid")

        now = datetime.now(UTC)
        self.payment_status = PaymentStatus.PARTIAL.value
        self.is_paid = False
        self.partial_payment_id = transaction_id
        self.payment_provider = provider
        self.amount_received = amount
        self.updated_at = now
        logger.info(
            "Partial payment recorded",
            order_number=self.order_number,
            amount=amount,
            expected=self.total_amount,
            actor=actor,
        )
        self.raise_(
            PartialPaymentRecorded(
                order_id=str(self.id),
                order_number=self.order_number,
                provider=provider,
                transaction_id=transaction_id,
                amount=amount,
                expected_amount=self.total_amount,
                recorded_at=now,
            )
        )
        return True

    def collect_cash(self, courier_id: str, amount: int, tolerance: int, actor: str | None = None) -> bool:
        """Record cash handed to the assigned courier on a cash-on-delivery order."""
        if self.payment_method != PaymentMethod.COD.value:
            raise ValidationError({"payment_method": ["Cash collection only applies to cash on delivery orders"]})
        if str(self.assigned_courier_id or "") != str(courier_id):
            raise ValidationError({"courier_id": ["Only the assigned courier can collect cash for this order"]})
        if OrderStatus(self.status) == OrderStatus.PENDING:
            raise ValidationError({"status": ["Order must be confirmed before cash is collected"]})
        if abs(amount - self.total_amount) > tolerance:
            raise ValidationError(
                {"amount": [f"Collected {amount} does not match order total {self.total_amount}"]}
            )
        return self.confirm_payment(
            transaction_id=f"cash-{self.order_number}",
            provider="cod",
            amount=amount,
            note="Cash collected on delivery",
            actor=actor or str(courier_id),
        )

    # -------------------------------------------------------------------
    # Commission & settlements
    # -------------------------------------------------------------------
    def _collect_commission(self, provider: str) -> None:
        if has_schedule(provider):
            fee_quote = quote(self.total_amount, provider)
            self.estimated_fees = fee_quote.fee
            self.fee_modeled = fee_quote.modeled
        else:
            self.estimated_fees = 0
            self.fee_modeled = True

        weights = {seller_id: self.seller_subtotal(seller_id) for seller_id in self.seller_ids()}
        commission_shares = split_by_weight(self.commission.amount, weights)
        fee_shares = split_by_weight(self.estimated_fees, weights)
        for seller_id in weights:
            self.add_settlements(
                SellerSettlement(
                    seller_id=seller_id,
                    gross_amount=weights[seller_id],
                    commission=commission_shares[seller_id],
                    fees=fee_shares[seller_id],
                    status=SettlementStatus.COLLECTED.value,
                )
            )
        self._refresh_net_amount()
        self._sync_commission_status()

    def _refresh_net_amount(self) -> None:
        self.net_amount = self.total_amount - self.commission.amount - self.estimated_fees

    def _sync_commission_status(self) -> None:
        live = [s.status for s in self.settlements if s.status != SettlementStatus.VOIDED.value]
        if not self.settlements:
            return
        if not live:
            status = CommissionStatus.VOIDED
        elif SettlementStatus.PROCESSING.value in live:
            status = CommissionStatus.PROCESSING
        elif all(s == SettlementStatus.PAID.value for s in live):
            status = CommissionStatus.PAID
        else:
            status = CommissionStatus.COLLECTED
        if self.commission.status != status.value:
            self.commission = Commission(
                percentage=self.commission.percentage,
                amount=self.commission.amount,
                status=status.value,
            )

    def _void_open_settlements(self) -> None:
        for settlement in self.settlements:
            if settlement.status == SettlementStatus.COLLECTED.value:
                settlement.status = SettlementStatus.VOIDED.value
        self._sync_commission_status()

    def reserve_settlement(self, seller_id: str, payout_id: str) -> None:
        """Claim a seller's share for a payout (collected → processing)."""
        if not self.is_payout_eligible(seller_id):
            raise ValidationError(
                {"order_ids": [f"Order {self.order_number} is not eligible for payout to seller {seller_id}"]}
            )
        settlement = self.settlement_for(seller_id)
        settlement.status = SettlementStatus.PROCESSING.value
        settlement.payout_id = payout_id
        self.updated_at = datetime.now(UTC)
        self._sync_commission_status()

    def release_settlement(self, seller_id: str, payout_id: str) -> bool:
        """Return a reserved share to the eligible pool after a failed payout."""
        settlement = self.settlement_for(seller_id)
        if settlement is None or settlement.payout_id != payout_id:
            return False
        if settlement.status != SettlementStatus.PROCESSING.value:
            return False
        settlement.status = SettlementStatus.COLLECTED.value
        settlement.payout_id = None
        self.updated_at = datetime.now(UTC)
        self._sync_commission_status()
        return True

    def settle(self, seller_id: str, payout_id: str) -> None:
        settlement = self.settlement_for(seller_id)
        if settlement is None or settlement.payout_id != payout_id:
            raise ValidationError({"payout_id": [f"Order {self.order_number} is not reserved by payout {payout_id}"]})
        if settlement.status != SettlementStatus.PROCESSING.value:
            raise InvalidTransition(settlement.status, SettlementStatus.PAID.value, field="settlement")
        settlement.status = SettlementStatus.PAID.value
        self.updated_at = datetime.now(UTC)
        self._sync_commission_status()
