"""
Payment provider settings using pydantic-settings v2 with nested env keys.

Kept apart from core.config.Settings so provider secrets can be rotated
without touching the rest of the configuration
(e.g. PAYMENT__MONEROO__SECRET_KEY, PAYMENT__MONEROO__WEBHOOK_SECRET).
"""
from __future__ import annotations

from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import BaseModel, Field


class PaymentTimeouts(BaseModel):
    connect: float = 3.0
    read: float = 10.0
    write: float = 10.0
    total: float = 15.0


class PaymentRetry(BaseModel):
    max: int = 2
    base_backoff: float = 0.2


class MonerooSettings(BaseModel):
    base_url: str = "https://api.moneroo.io/v1"
    secret_key: Optional[str] = None
    webhook_secret: Optional[str] = None


class PaymentSettings(BaseSettings):
    default_provider: str = Field(default="moneroo")
    site_url: str = Field(default="http://localhost:3001")
    # Currencies without a minor unit at the provider (internal amounts are still x100)
    zero_decimal_currencies: list[str] = Field(default_factory=lambda: ["XOF", "XAF", "GNF", "RWF"])
    timeouts: PaymentTimeouts = Field(default_factory=PaymentTimeouts)
    retry: PaymentRetry = Field(default_factory=PaymentRetry)

    moneroo: MonerooSettings = Field(default_factory=MonerooSettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="PAYMENT__",
        case_sensitive=False,
        extra="allow",
        env_nested_delimiter="__",
    )


payment_settings = PaymentSettings()
