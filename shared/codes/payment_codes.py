"""
Provider specific codes and provider status mapping.
"""
from __future__ import annotations

from enum import IntEnum


class PaymentCode(IntEnum):
    # Generic success
    SUCCESS = 0

    # Provider/Network errors (6xxxx)
    PROVIDER_ERROR = 60000
    PROVIDER_UNREACHABLE = 60001
    SIGNATURE_ERROR = 60002
    MALFORMED_PAYLOAD = 60003
    WEBHOOK_PROCESSING_ERROR = 60004


class ProviderOutcome:
    """Internal outcome of a provider status, shared by payments, payouts and refunds."""

    CONFIRM = "confirm"
    FAIL = "fail"
    WAIT = "wait"
    # Local record already final; provider not consulted
    NOOP = "noop"


# Provider→internal outcome mapping (unknown statuses are treated as WAIT)
PROVIDER_STATUS_TO_OUTCOME = {
    "moneroo": {
        "initiated": ProviderOutcome.WAIT,
        "pending": ProviderOutcome.WAIT,
        "success": ProviderOutcome.CONFIRM,
        "failed": ProviderOutcome.FAIL,
        "cancelled": ProviderOutcome.FAIL,
    },
}


def map_provider_status(provider: str, status: str | None) -> str:
    mapping = PROVIDER_STATUS_TO_OUTCOME.get(provider, {})
    return mapping.get((status or "").lower(), ProviderOutcome.WAIT)
