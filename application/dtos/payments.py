"""
Provider-facing DTOs (Pydantic v2) used at the payment gateway boundary.

All amounts here are internal integers in the smallest currency unit; the
gateway adapter converts to the provider's unit.
"""
from __future__ import annotations

from typing import Any, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator


def _validate_currency(v: str) -> str:
    u = (v or "").upper()
    if len(u) != 3 or not u.isalpha():
        raise ValueError("currency must be ISO-4217 alpha-3")
    return u


class Customer(BaseModel):
    email: str
    first_name: str
    last_name: str
    phone: Optional[str] = None

    @classmethod
    def from_full_name(
        cls,
        name: Optional[str],
        email: str,
        *,
        phone: Optional[str] = None,
        fallback_first: str = "Client",
        fallback_last: str = "Marketplace",
    ) -> "Customer":
        """Split a display name into the first/last pair the provider requires."""
        parts = (name or "").split()
        first = parts[0] if parts else fallback_first
        last = " ".join(parts[1:]) or fallback_last
        return cls(email=email, first_name=first, last_name=last, phone=phone)


class InitializePayment(BaseModel):
    amount: int = Field(gt=0)
    currency: str
    description: str
    customer: Customer
    return_url: str
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("currency")
    @classmethod
    def _currency(cls, v: str) -> str:
        return _validate_currency(v)


class CheckoutSession(BaseModel):
    payment_id: str
    checkout_url: str


class InitializePayout(BaseModel):
    amount: int = Field(gt=0)
    currency: str
    description: str
    customer: Customer
    # Provider method code, e.g. mtn_bj; refunds let the provider pick
    method: Optional[str] = None
    recipient: dict[str, str] = Field(default_factory=dict)
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("currency")
    @classmethod
    def _currency(cls, v: str) -> str:
        return _validate_currency(v)


class PayoutReceipt(BaseModel):
    payout_id: str


class ProviderStatus(BaseModel):
    """Result of a verify call (payment or payout)."""

    id: str
    status: str
    amount: Optional[int] = None  # internal smallest unit
    currency: Optional[str] = None
    failure_message: Optional[str] = None


class WebhookData(BaseModel):
    id: str
    status: str
    amount: Optional[float] = None
    currency: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(extra="allow")

    @field_validator("id", mode="before")
    @classmethod
    def _id_as_str(cls, v: Any) -> str:
        if v is None or v == "":
            raise ValueError("data.id is required")
        return str(v)

    @field_validator("currency", mode="before")
    @classmethod
    def _currency_code(cls, v: Any) -> Optional[str]:
        if isinstance(v, dict):
            v = v.get("code")
        return str(v).upper() if v else None

    @field_validator("metadata", mode="before")
    @classmethod
    def _metadata_or_empty(cls, v: Any) -> dict:
        return v if isinstance(v, dict) else {}


class WebhookEvent(BaseModel):
    event: Optional[str] = None
    data: WebhookData

    model_config = ConfigDict(extra="allow")
