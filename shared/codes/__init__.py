"""
Shared business codes used across layers (Domain/Core/API).

This package exposes BusinessCode at `shared.codes` and keeps
provider-specific codes under `shared.codes.payment_codes`.
"""
from enum import IntEnum


class BusinessCode(IntEnum):
    """Unified business status codes (single source of truth)."""

    # Success
    SUCCESS = 0

    # Parameter errors (1xxxx)
    PARAM_ERROR = 10000
    PARAM_MISSING = 10001
    PARAM_TYPE_ERROR = 10002
    PARAM_VALIDATION_ERROR = 10003

    # Business errors (2xxxx)
    BUSINESS_ERROR = 20000
    NOT_FOUND = 20006  # Generic resource not found
    ACCOUNT_NOT_FOUND = 20010
    ORDER_NOT_FOUND = 20011
    PAYOUT_NOT_FOUND = 20012
    RETURN_NOT_FOUND = 20013
    INVALID_STATE_TRANSITION = 20020

    # Ledger errors (21xxx)
    INVALID_AMOUNT = 21000
    INSUFFICIENT_FUNDS = 21001
    ALREADY_PROCESSED = 21002
    ACCOUNT_INACTIVE = 21003
    PAYOUT_NOT_ALLOWED = 21004

    # Authorization errors (3xxxx)
    PERMISSION_ERROR = 30000
    UNAUTHORIZED = 30001
    FORBIDDEN = 30002

    # System errors (4xxxx)
    SYSTEM_ERROR = 40000
    DATABASE_ERROR = 40001
    NETWORK_ERROR = 40002
    SERVICE_UNAVAILABLE = 40003
    CONFIGURATION_ERROR = 40004


__all__ = ["BusinessCode"]
