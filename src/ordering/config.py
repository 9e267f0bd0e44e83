"""Business settings for carts and orders.

Infrastructure (databases, brokers, event store) is configured through
``domain.toml``; the values here are pricing and retention rules that vary
per deployment. Every field can be overridden with an ``ORDERING_``-prefixed
environment variable, e.g. ``ORDERING_TAX_RATE=0.05``.
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class OrderingSettings(BaseSettings):
    """Pricing, shipping and retention rules."""

    model_config = SettingsConfigDict(
        env_prefix="ORDERING_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    tax_rate: float = Field(default=0.18, ge=0.0, le=1.0)
    currency: str = Field(default="INR", min_length=3, max_length=3)

    # Orders whose subtotal is strictly above the threshold ship for free
    free_shipping_threshold: float = Field(default=500.0, ge=0.0)
    flat_shipping_fee: float = Field(default=50.0, ge=0.0)

    cart_retention_days: int = Field(default=30, ge=1)

    default_page_size: int = Field(default=10, ge=1)
    max_page_size: int = Field(default=100, ge=1)


@lru_cache
def get_settings() -> OrderingSettings:
    """Return the process-wide settings instance."""
    return OrderingSettings()
