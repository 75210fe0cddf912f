"""
Exceptions for payment providers mapped to unified BusinessException variants.
"""
from __future__ import annotations

from typing import Optional
from domain.common.exceptions import BusinessException
from shared.codes.payment_codes import PaymentCode


class ProviderError(BusinessException):
    """Provider answered with a non-success status or an unexpected payload."""

    def __init__(
        self,
        message: str,
        *,
        provider: str,
        status_code: int | None = None,
        details: Optional[dict] = None,
    ):
        full_details = {"provider": provider, "status_code": status_code}
        if details:
            full_details.update(details)
        super().__init__(
            code=PaymentCode.PROVIDER_ERROR,
            message=message,
            error_type="ProviderError",
            details=full_details,
        )


class ProviderUnreachableError(BusinessException):
    """Network error or timeout talking to the provider."""

    def __init__(self, message: str, *, provider: str, details: Optional[dict] = None):
        full_details = {"provider": provider}
        if details:
            full_details.update(details)
        super().__init__(
            code=PaymentCode.PROVIDER_UNREACHABLE,
            message=message,
            error_type="ProviderUnreachable",
            details=full_details,
        )


class SignatureInvalidError(BusinessException):
    def __init__(self, message: str, *, provider: str):
        super().__init__(
            code=PaymentCode.SIGNATURE_ERROR,
            message=message,
            error_type="SignatureInvalid",
            details={"provider": provider},
        )


class MalformedPayloadError(BusinessException):
    def __init__(self, message: str, *, provider: str, details: Optional[dict] = None):
        full_details = {"provider": provider}
        if details:
            full_details.update(details)
        super().__init__(
            code=PaymentCode.MALFORMED_PAYLOAD,
            message=message,
            error_type="MalformedPayload",
            details=full_details,
        )


class WebhookProcessingError(BusinessException):
    """An authenticated event could not be applied; the provider should redeliver."""

    def __init__(self, cause: BusinessException, *, provider: str, provider_id: str):
        super().__init__(
            code=PaymentCode.WEBHOOK_PROCESSING_ERROR,
            message=f"Webhook {provider_id} could not be processed: {cause.message}",
            error_type="WebhookProcessingError",
            details={
                "provider": provider,
                "provider_id": provider_id,
                "cause": cause.error_type,
            },
        )
