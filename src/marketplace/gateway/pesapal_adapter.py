"""Pesapal mobile-money gateway adapter.

Pesapal is token gated: every call carries a bearer token obtained from
``Auth/RequestToken``. Tokens are cached process-wide and refreshed 60
seconds before they expire; concurrent callers that find the token stale
wait on a single refresh instead of each requesting a new one.

Pesapal frequently answers HTTP 200 with an ``error`` object in the body;
that is treated exactly like an HTTP error.
"""

import threading
from datetime import UTC, datetime, timedelta

import requests
import structlog

from marketplace.exceptions import GatewayError
from marketplace.gateway.port import (
    PaymentGateway,
    PaymentLink,
    PaymentSubject,
    VerificationResult,
    raise_for_embedded_error,
)
from marketplace.utils.phone import require_e164

logger = structlog.get_logger(__name__)

TOKEN_SAFETY_MARGIN = timedelta(seconds=60)
DEFAULT_TOKEN_LIFETIME = timedelta(minutes=5)

# Pesapal status_code values from GetTransactionStatus
STATUS_COMPLETED = 1


def _parse_expiry(value: str | None, now: datetime) -> datetime:
    if not value:
        return now + DEFAULT_TOKEN_LIFETIME
    text = value.replace("Z", "+00:00")
    # Pesapal sends 7 fractional digits; datetime accepts at most 6
    if "." in text:
        head, _, tail = text.partition(".")
        digits = "".join(c for c in tail if c.isdigit())
        zone = tail[len(digits):]
        text = f"{head}.{digits[:6]}{zone}"
    try:
        expires = datetime.fromisoformat(text)
    except ValueError:
        return now + DEFAULT_TOKEN_LIFETIME
    if expires.tzinfo is None:
        expires = expires.replace(tzinfo=UTC)
    return expires


class BearerTokenCache:
    """Read-mostly token cache with single-flight refresh."""

    def __init__(self, fetch, clock=None) -> None:
        self._fetch = fetch  # () -> (token, expires_at)
        self._clock = clock or (lambda: datetime.now(UTC))
        self._refresh_lock = threading.Lock()
        self._token: str | None = None
        self._expires_at: datetime | None = None
        self.refresh_count = 0

    def _is_fresh(self) -> bool:
        return (
            self._token is not None
            and self._expires_at is not None
            and self._clock() < self._expires_at - TOKEN_SAFETY_MARGIN
        )

    def get(self) -> str:
        if self._is_fresh():
            return self._token
        with self._refresh_lock:
            # Another thread may have refreshed while we waited
            if self._is_fresh():
                return self._token
            token, expires_at = self._fetch()
            self._token, self._expires_at = token, expires_at
            self.refresh_count += 1
            return token

    def invalidate(self) -> None:
        with self._refresh_lock:
            self._token = None
            self._expires_at = None


class PesapalGateway(PaymentGateway):
    provider = "pesapal"

    def __init__(
        self,
        base_url: str,
        consumer_key: str,
        consumer_secret: str,
        callback_url: str,
        ipn_url: str = "",
        ipn_id: str = "",
        timeout: tuple[float, float] = (5.0, 15.0),
        session: requests.Session | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.consumer_key = consumer_key
        self.consumer_secret = consumer_secret
        self.callback_url = callback_url
        self.ipn_url = ipn_url
        self.timeout = timeout
        self.session = session or requests.Session()
        self.tokens = BearerTokenCache(self._request_token)
        self._ipn_id = ipn_id or None
        self._ipn_lock = threading.Lock()

    # -------------------------------------------------------------------
    # HTTP plumbing
    # -------------------------------------------------------------------
    def _call(self, method: str, path: str, *, json=None, params=None, auth: bool = True) -> dict:
        headers = {"Accept": "application/json", "Content-Type": "application/json"}
        if auth:
            headers["Authorization"] = f"Bearer {self.tokens.get()}"
        try:
            response = self.session.request(
                method,
                f"{self.base_url}{path}",
                json=json,
                params=params,
                headers=headers,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise GatewayError(self.provider, f"{path} unreachable: {exc}") from exc

        try:
            body = response.json()
        except ValueError:
            body = None

        if response.status_code == 401 and auth:
            self.tokens.invalidate()
        if response.status_code >= 400:
            message = response.text[:200] or response.reason
            if isinstance(body, dict) and isinstance(body.get("error"), dict):
                message = body["error"].get("message") or message
            raise GatewayError(self.provider, message, response.status_code)

        if body is None:
            raise GatewayError(self.provider, f"{path} returned a non-JSON body", response.status_code)
        raise_for_embedded_error(self.provider, body)
        return body

    def _request_token(self) -> tuple[str, datetime]:
        body = self._call(
            "POST",
            "/api/Auth/RequestToken",
            json={"consumer_key": self.consumer_key, "consumer_secret": self.consumer_secret},
            auth=False,
        )
        token = body.get("token")
        if not token:
            raise GatewayError(self.provider, "Token response did not include a token")
        logger.debug("Pesapal token refreshed")
        return token, _parse_expiry(body.get("expiryDate"), datetime.now(UTC))

    def notification_id(self) -> str | None:
        """IPN id to attach to order requests.

        Registration failures are logged and the payment goes ahead without an
        IPN; the buyer's redirect still triggers a verify.
        """
        if self._ipn_id or not self.ipn_url:
            return self._ipn_id
        with self._ipn_lock:
            if self._ipn_id:
                return self._ipn_id
            try:
                body = self._call(
                    "POST",
                    "/api/URLSetup/RegisterIPN",
                    json={"url": self.ipn_url, "ipn_notification_type": "POST"},
                )
                self._ipn_id = body.get("ipn_id")
            except GatewayError as exc:
                logger.warning("Pesapal IPN registration failed", error=str(exc))
            return self._ipn_id

    # -------------------------------------------------------------------
    # Gateway contract
    # -------------------------------------------------------------------
    def create_payment(self, subject: PaymentSubject) -> PaymentLink:
        phone = require_e164(subject.customer_phone)

        first_name, _, last_name = (subject.customer_name or "").partition(" ")
        payload = {
            "id": subject.merchant_reference,
            "currency": subject.currency,
            "amount": subject.amount,
            "description": subject.description[:100],
            "callback_url": self.callback_url,
            "billing_address": {
                "email_address": subject.customer_email or "",
                "phone_number": phone,
                "country_code": "UG",
                "first_name": first_name,
                "last_name": last_name,
            },
        }
        ipn_id = self.notification_id()
        if ipn_id:
            payload["notification_id"] = ipn_id

        body = self._call("POST", "/api/Transactions/SubmitOrderRequest", json=payload)

        tracking_id = body.get("order_tracking_id")
        redirect_url = body.get("redirect_url")
        if not tracking_id or not redirect_url:
            raise GatewayError(self.provider, "Order request response is missing tracking id or redirect url")

        logger.info(
            "Pesapal order request submitted",
            merchant_reference=subject.merchant_reference,
            order_tracking_id=tracking_id,
        )
        return PaymentLink(
            payment_link=redirect_url,
            transaction_ref=tracking_id,
            merchant_reference=body.get("merchant_reference") or subject.merchant_reference,
        )

    def verify_payment(self, transaction_ref: str) -> VerificationResult:
        body = self._call(
            "GET",
            "/api/Transactions/GetTransactionStatus",
            params={"orderTrackingId": transaction_ref},
        )

        status = body.get("payment_status_description") or ""
        success = body.get("status_code") == STATUS_COMPLETED or status.lower() == "completed"
        created_at = None
        if body.get("created_date"):
            created_at = _parse_expiry(body["created_date"], datetime.now(UTC))

        amount = body.get("amount")
        return VerificationResult(
            success=success,
            transaction_id=body.get("confirmation_code") or transaction_ref,
            amount=int(round(amount)) if amount is not None else None,
            currency=body.get("currency"),
            method=body.get("payment_method"),
            created_at=created_at,
            merchant_reference=body.get("merchant_reference"),
            status=status.lower() or None,
        )
