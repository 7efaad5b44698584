"""Message templates: render email and SMS content from event context."""

from enum import Enum


class NotificationType(Enum):
    ORDER_CONFIRMATION = "order_confirmation"
    NEW_ORDER_FOR_SELLER = "new_order_for_seller"
    PAYMENT_RECEIPT = "payment_receipt"
    PARTIAL_PAYMENT = "partial_payment"
    STATUS_UPDATE = "status_update"
    DELIVERY_CONFIRMATION = "delivery_confirmation"
    PAYOUT_COMPLETED = "payout_completed"
    PAYOUT_FAILED = "payout_failed"


def _money(context: dict, key: str = "amount") -> str:
    return f"{context.get('currency', 'UGX')} {int(context.get(key, 0)):,}"


class OrderConfirmationTemplate:
    @staticmethod
    def render(context: dict) -> dict:
        number = context["order_number"]
        return {
            "subject": f"Order {number} received",
            "body": (
                f"Thank you for your order {number}.\n\n"
                f"Total: {_money(context, 'total_amount')}\n"
                f"Payment method: {context.get('payment_method', '').replace('_', ' ')}\n\n"
                "We will let you know as soon as your payment is confirmed."
            ),
            "sms": f"Order {number} received. Total {_money(context, 'total_amount')}.",
        }


class NewOrderForSellerTemplate:
    @staticmethod
    def render(context: dict) -> dict:
        number = context["order_number"]
        return {
            "subject": f"New order {number}",
            "body": f"You have a new order {number} worth {_money(context, 'total_amount')}.",
        }


class PaymentReceiptTemplate:
    @staticmethod
    def render(context: dict) -> dict:
        number = context["order_number"]
        return {
            "subject": f"Payment received for order {number}",
            "body": (
                f"Payment of {_money(context)} has been received for order {number} "
                f"via {context.get('provider', 'unknown')}.\n\n"
                f"Transaction: {context.get('transaction_id', 'N/A')}"
            ),
            "sms": f"Payment of {_money(context)} received for order {number}. Ref {context.get('transaction_id')}.",
        }


class PartialPaymentTemplate:
    @staticmethod
    def render(context: dict) -> dict:
        number = context["order_number"]
        return {
            "subject": f"Payment under review for order {number}",
            "body": (
                f"We received {_money(context)} for order {number}, which expects "
                f"{_money(context, 'expected_amount')}. Our team is reviewing the payment."
            ),
            "sms": f"We received {_money(context)} for order {number}. The payment is under review.",
        }


class StatusUpdateTemplate:
    MESSAGES = {
        "shipped": "has been shipped",
        "delivered": "has been delivered",
        "cancelled": "has been cancelled",
        "refunded": "has been refunded",
    }

    @classmethod
    def render(cls, context: dict) -> dict:
        number = context["order_number"]
        phrase = cls.MESSAGES.get(context["new_status"], f"is now {context['new_status']}")
        note = f"\n\nNote: {context['note']}" if context.get("note") else ""
        return {
            "subject": f"Order {number} {phrase}",
            "body": f"Your order {number} {phrase}.{note}",
            "sms": f"Order {number} {phrase}.",
        }


class DeliveryConfirmationTemplate:
    @staticmethod
    def render(context: dict) -> dict:
        number = context["order_number"]
        return {
            "subject": f"Order {number} delivered",
            "body": f"Order {number} was delivered at {context.get('confirmed_at', '')}. Thank you for shopping with us.",
            "sms": f"Order {number} delivered. Thank you!",
        }


class PayoutCompletedTemplate:
    @staticmethod
    def render(context: dict) -> dict:
        return {
            "subject": f"Payout {context['payout_id']} sent",
            "body": (
                f"{_money(context, 'net_amount')} has been sent to your account.\n\n"
                f"Transaction: {context.get('transaction_id', 'N/A')}"
            ),
            "sms": f"Payout of {_money(context, 'net_amount')} sent. Ref {context.get('transaction_id')}.",
        }


class PayoutFailedTemplate:
    @staticmethod
    def render(context: dict) -> dict:
        return {
            "subject": f"Payout {context['payout_id']} delayed",
            "body": (
                f"We could not send your payout of {_money(context, 'net_amount')} "
                f"({context.get('reason', 'transfer failed')}). It will be retried."
            ),
            "sms": f"Your payout of {_money(context, 'net_amount')} is delayed and will be retried.",
        }


TEMPLATE_REGISTRY: dict[str, type] = {
    NotificationType.ORDER_CONFIRMATION.value: OrderConfirmationTemplate,
    NotificationType.NEW_ORDER_FOR_SELLER.value: NewOrderForSellerTemplate,
    NotificationType.PAYMENT_RECEIPT.value: PaymentReceiptTemplate,
    NotificationType.PARTIAL_PAYMENT.value: PartialPaymentTemplate,
    NotificationType.STATUS_UPDATE.value: StatusUpdateTemplate,
    NotificationType.DELIVERY_CONFIRMATION.value: DeliveryConfirmationTemplate,
    NotificationType.PAYOUT_COMPLETED.value: PayoutCompletedTemplate,
    NotificationType.PAYOUT_FAILED.value: PayoutFailedTemplate,
}


def get_template(notification_type: str):
    """Look up a template class by notification type string."""
    template_cls = TEMPLATE_REGISTRY.get(notification_type)
    if template_cls is None:
        raise ValueError(f"No template registered for notification type: {notification_type}")
    return template_cls


def render(notification_type: NotificationType, context: dict) -> dict:
    return get_template(notification_type.value).render(context)
