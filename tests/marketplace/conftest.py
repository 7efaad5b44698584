import pytest
from protean.integrations.pytest import DomainFixture

from marketplace.channel import EMAIL, SMS, get_channel, reset_channels
from marketplace.channel.dispatcher import get_dispatcher, reset_dispatcher
from marketplace.config import reset_settings
from marketplace.gateway import get_gateway, reset_gateways
from marketplace.payout.engine import shutdown_executor
from marketplace.payout.transfer import get_transfer, reset_transfer


@pytest.fixture(scope="session")
def marketplace_bed():
    from marketplace.domain import marketplace

    bed = DomainFixture(marketplace)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(autouse=True)
def _ctx(marketplace_bed):
    with marketplace_bed.domain_context():
        yield

        # Let background work land before the data goes away
        shutdown_executor(wait=True)
        get_dispatcher().wait(timeout=5)

        from protean import current_domain

        for _, provider in current_domain.providers.items():
            provider._data_reset()
        for _, broker in current_domain.brokers.items():
            broker._data_reset()
        current_domain.event_store.store._data_reset()

    reset_dispatcher()
    reset_channels()
    reset_gateways()
    reset_transfer()
    reset_settings()


@pytest.fixture()
def settings_env(monkeypatch):
    """Override settings through the environment: ``settings_env(COMMISSION_PERCENT="10")``."""

    def _apply(**values):
        for key, value in values.items():
            monkeypatch.setenv(key, str(value))
        reset_settings()

    return _apply


@pytest.fixture()
def email_channel():
    return get_channel(EMAIL)


@pytest.fixture()
def sms_channel():
    return get_channel(SMS)


@pytest.fixture()
def transfer():
    return get_transfer()


@pytest.fixture()
def pesapal():
    return get_gateway("pesapal")


@pytest.fixture()
def stripe_gateway():
    return get_gateway("stripe")


@pytest.fixture()
def wait_for_notifications():
    def _wait():
        get_dispatcher().wait(timeout=5)

    return _wait


@pytest.fixture()
def place_order():
    """Place a single-item order and return its id."""
    from marketplace.order import lifecycle

    def _place(amount=50_000, payment_method="mobile_money", seller_id="seller-001", buyer_phone="+256772123456", **kwargs):
        return lifecycle.place_order(
            buyer={"user_id": "buyer-001", "name": "Amina", "email": "amina@example.com", "phone": buyer_phone},
            items=[
                {
                    "product_id": "prod-001",
                    "seller_id": seller_id,
                    "title": "Maize flour 25kg",
                    "quantity": 1,
                    "unit_price": amount,
                }
            ],
            payment_method=payment_method,
            seller_email="seller@example.com",
            **kwargs,
        )

    return _place


@pytest.fixture()
def load_order():
    from protean import current_domain

    from marketplace.order.order import Order

    def _load(order_id):
        return current_domain.repository_for(Order).get(order_id)

    return _load
