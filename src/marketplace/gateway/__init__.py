"""Payment gateway registry.

Provides get_gateway() / set_gateway() per provider:
- FakeGateway for development and testing (default)
- StripeGateway (card) and PesapalGateway (mobile money) when
  PAYMENT_GATEWAY=live
"""

from marketplace.config import get_settings
from marketplace.gateway.fake_adapter import FakeGateway
from marketplace.gateway.port import PaymentGateway

CARD_PROVIDERS = {"stripe"}
MOBILE_MONEY_PROVIDERS = {"pesapal"}
SUPPORTED_PROVIDERS = CARD_PROVIDERS | MOBILE_MONEY_PROVIDERS

_gateways: dict[str, PaymentGateway] = {}


def _build(provider: str) -> PaymentGateway:
    settings = get_settings()
    if settings.payment_gateway != "live":
        return FakeGateway(provider)

    if provider == "stripe":
        from marketplace.gateway.stripe_adapter import StripeGateway

        return StripeGateway(
            api_key=settings.stripe_secret_key,
            frontend_url=settings.frontend_url,
            timeout=settings.http_read_timeout,
        )

    from marketplace.gateway.pesapal_adapter import PesapalGateway

    return PesapalGateway(
        base_url=settings.pesapal_base_url,
        consumer_key=settings.pesapal_consumer_key,
        consumer_secret=settings.pesapal_consumer_secret,
        callback_url=settings.pesapal_callback_url,
        ipn_url=settings.pesapal_ipn_url,
        ipn_id=settings.pesapal_ipn_id,
        timeout=settings.http_timeout,
    )


def get_gateway(provider: str) -> PaymentGateway:
    """Return the gateway for ``provider`` (one instance per provider)."""
    if provider not in SUPPORTED_PROVIDERS:
        raise ValueError(f"Unknown payment provider: {provider}")
    if provider not in _gateways:
        _gateways[provider] = _build(provider)
    return _gateways[provider]


def set_gateway(provider: str, gateway: PaymentGateway) -> None:
    """Override the gateway for ``provider`` (useful for tests)."""
    _gateways[provider] = gateway


def reset_gateways() -> None:
    _gateways.clear()
