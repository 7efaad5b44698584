"""Marketplace settings loaded from environment variables.

Protean's own configuration (databases, brokers, processing mode) lives in
``domain.toml``; this module holds the business and integration knobs.
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Commission
    commission_percent: float = Field(default=3.0, ge=0, le=100)
    cod_commission_percent: float = Field(default=4.0, ge=0, le=100)

    # Reconciliation
    reconciliation_window_hours: int = Field(default=24, gt=0)
    reconciliation_tolerance: int = Field(default=100, ge=0)

    # Payouts
    max_payout_attempts: int = Field(default=5, gt=0)
    payout_workers: int = Field(default=4, gt=0)

    # Outbound I/O
    http_connect_timeout: float = Field(default=5.0, gt=0)
    http_read_timeout: float = Field(default=15.0, gt=0)
    notification_timeout: float = Field(default=10.0, gt=0)
    notification_workers: int = Field(default=4, gt=0)

    # Gateways: "fake" wires in-memory adapters, "live" the real providers
    payment_gateway: str = Field(default="fake")
    frontend_url: str = Field(default="http://localhost:3000")
    currency: str = Field(default="UGX", max_length=3)

    stripe_secret_key: str = Field(default="")

    pesapal_env: str = Field(default="sandbox")
    pesapal_consumer_key: str = Field(default="")
    pesapal_consumer_secret: str = Field(default="")
    pesapal_ipn_id: str = Field(default="")
    pesapal_ipn_url: str = Field(default="")
    pesapal_callback_url: str = Field(default="")

    # Webhook HMAC secrets; empty disables signature checks for that provider
    mtn_webhook_secret: str = Field(default="")
    airtel_webhook_secret: str = Field(default="")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @property
    def pesapal_base_url(self) -> str:
        if self.pesapal_env == "live":
            return "https://pay.pesapal.com/v3"
        return "https://cybqa.pesapal.com/pesapalv3"

    @property
    def http_timeout(self) -> tuple[float, float]:
        return (self.http_connect_timeout, self.http_read_timeout)

    def webhook_secret_for(self, provider: str) -> str:
        return {
            "mtn": self.mtn_webhook_secret,
            "airtel": self.airtel_webhook_secret,
        }.get(provider, "")


@lru_cache
def get_settings() -> Settings:
    return Settings()


def reset_settings() -> None:
    """Drop the cached settings so the next call re-reads the environment."""
    get_settings.cache_clear()
