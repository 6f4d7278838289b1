"""Runtime configuration for the storefront fulfillment pipeline.

Values come from the environment (or a local ``.env`` file). Components never
read settings at import time: the bootstrap code passes the values each
collaborator needs into its constructor.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Webhook verification
    PAYMENT_WEBHOOK_SECRET: str = Field("", description="Signing secret of the payment provider")
    EMAIL_WEBHOOK_SECRET: str = Field("", description="whsec_ secret of the email provider")
    CARRIER_WEBHOOK_SECRET: str = Field("", description="HMAC secret for carrier push updates")
    WEBHOOK_TOLERANCE_SECONDS: int = Field(300, description="Accepted clock skew for signed timestamps")

    # Carrier
    CARRIER_ADAPTER: str = Field("fake", description="fake | packeta")
    PACKETA_API_URL: str = Field("https://api.packeta.com/v1", description="Packeta REST base URL")
    PACKETA_API_KEY: str = Field("", description="Packeta API key")
    PACKETA_ESHOP_ID: str = Field("", description="Sender/e-shop identifier registered with Packeta")
    CARRIER_MAX_RETRIES: int = Field(2, description="Retries per provider call; POSTs only on 429 or failed connect")
    CARRIER_BACKOFF_SECONDS: float = Field(1.0, description="Initial exponential backoff")

    # Email
    EMAIL_ADAPTER: str = Field("fake", description="fake | resend")
    RESEND_API_URL: str = Field("https://api.resend.com", description="Resend REST base URL")
    RESEND_API_KEY: str = Field("", description="Resend API key")
    EMAIL_FROM: str = Field("Storefront <orders@example.com>", description="Sender address")

    # Outbound calls
    OUTBOUND_TIMEOUT_SECONDS: float = Field(15.0, description="Timeout applied to every provider call")

    # Links rendered into emails
    SITE_URL: str = Field("http://localhost:3000", description="Public storefront URL")

    # Idempotency
    IDEMPOTENCY_LEASE_SECONDS: int = Field(300, description="How long an in-flight reservation blocks retries")
    IDEMPOTENCY_RETENTION_DAYS: int = Field(30, description="Completed records older than this may be pruned")

    # Abandoned carts
    ABANDONED_CART_IDLE_MINUTES: int = Field(60, description="Idle time before a cart counts as abandoned")
    ABANDONED_CART_BATCH_SIZE: int = Field(50, description="Max carts handled per sweep")

    # Returns
    # Reconciliation
    RECONCILIATION_WORKERS: int = Field(1, ge=1, description="Shipments polled from the carrier in parallel per run")

    RETURN_WINDOW_DAYS: int = Field(14, description="Days after delivery a return may be requested")

    # Shipping quotes
    SHIPPING_CATALOG_PATH: str | None = Field(None, description="JSON file with product/category weights")


_settings_instance = None


def get_settings() -> Settings:
    """Return the cached settings instance."""
    global _settings_instance
    if _settings_instance is None:
        _settings_instance = Settings()
    return _settings_instance


def reset_settings() -> None:
    """Drop the cached settings (useful for testing)."""
    global _settings_instance
    _settings_instance = None
