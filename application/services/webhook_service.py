"""
Webhook intake: authenticate provider callbacks and route them to the
payment, payout or refund flow.

Routing is decided by `data.metadata`, in this order: `payout_id`, then
`type == "refund"` with `return_id`, then `order_id`. Unknown identifiers are
acknowledged so the provider stops redelivering.
Any other business error while applying an event is raised as
WebhookProcessingError (HTTP 500).
"""
from __future__ import annotations

import json
from typing import Any, Iterable, Optional

from pydantic import ValidationError

from application.dtos.payments import WebhookEvent
from application.services.payment_service import PaymentService
from application.services.payout_service import PayoutService
from application.services.refund_service import RefundService
from core.logging_config import get_logger
from domain.common.exceptions import (
    AlreadyProcessedException,
    BusinessException,
    ConfigurationException,
    OrderNotFoundException,
    PayoutNotFoundException,
    ReturnNotFoundException,
)
from infrastructure.external.payments.base import from_provider_amount
from infrastructure.external.payments.exceptions import (
    MalformedPayloadError,
    SignatureInvalidError,
    WebhookProcessingError,
)
from infrastructure.external.payments.moneroo_client import verify_signature
from shared.codes.payment_codes import ProviderOutcome, map_provider_status


logger = get_logger(__name__)

PROVIDER = "moneroo"


def _as_id(value: Any) -> Optional[int]:
    """Metadata values come back stringified; non numeric ids are unknown."""
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(str(value).strip())
    except ValueError:
        return None


class WebhookService:
    def __init__(
        self,
        payments: PaymentService,
        payouts: PayoutService,
        refunds: RefundService,
        *,
        secret: Optional[str],
        zero_decimal_currencies: Iterable[str] = (),
    ) -> None:
        self.payments = payments
        self.payouts = payouts
        self.refunds = refunds
        self._secret = secret
        self._zero_decimal = list(zero_decimal_currencies)

    def parse(self, raw_body: bytes, signature: Optional[str]) -> WebhookEvent:
        if not self._secret:
            raise ConfigurationException("PAYMENT__MONEROO__WEBHOOK_SECRET")
        if not verify_signature(self._secret, raw_body, signature):
            logger.warning("webhook_signature_invalid", provider=PROVIDER, has_signature=bool(signature))
            raise SignatureInvalidError("Invalid webhook signature", provider=PROVIDER)
        try:
            payload = json.loads(raw_body or b"")
        except ValueError as exc:
            raise MalformedPayloadError("Webhook body is not valid JSON", provider=PROVIDER) from exc
        if not isinstance(payload, dict):
            raise MalformedPayloadError("Webhook body must be a JSON object", provider=PROVIDER)
        try:
            return WebhookEvent.model_validate(payload)
        except ValidationError as exc:
            raise MalformedPayloadError(
                "Webhook payload is missing data.id or data.status",
                provider=PROVIDER,
                details={"errors": exc.errors(include_url=False, include_input=False)},
            ) from exc

    async def handle(self, event: WebhookEvent) -> dict[str, Any]:
        data = event.data
        metadata = data.metadata
        outcome = map_provider_status(PROVIDER, data.status)
        logger.info(
            "webhook_received",
            provider=PROVIDER,
            webhook_event=event.event,
            provider_id=data.id,
            status=data.status,
            outcome=outcome,
        )

        payout_id = _as_id(metadata.get("payout_id"))
        return_id = _as_id(metadata.get("return_id"))
        order_id = _as_id(metadata.get("order_id"))
        try:
            if payout_id is not None:
                target = "payout"
                applied = await self._handle_payout(payout_id, outcome, event)
            elif metadata.get("type") == "refund" and return_id is not None:
                target = "refund"
                applied = await self._handle_refund(return_id, outcome, event)
            elif order_id is not None:
                target = "payment"
                applied = await self._handle_payment(order_id, outcome, event)
            else:
                logger.info("webhook_unroutable", provider_id=data.id, metadata_keys=sorted(metadata))
                return {"target": None, "outcome": ProviderOutcome.NOOP}
        except (OrderNotFoundException, PayoutNotFoundException, ReturnNotFoundException) as exc:
            logger.warning("webhook_unknown_reference", provider_id=data.id, error=exc.message)
            return {"target": None, "outcome": ProviderOutcome.NOOP}
        except BusinessException as exc:
            logger.error(
                "webhook_processing_failed",
                provider_id=data.id,
                error_type=exc.error_type,
                error=exc.message,
            )
            raise WebhookProcessingError(exc, provider=PROVIDER, provider_id=data.id) from exc

        if not applied and outcome != ProviderOutcome.WAIT:
            outcome = ProviderOutcome.NOOP
        return {"target": target, "outcome": outcome}

    def _failure_reason(self, event: WebhookEvent) -> str:
        extra = event.data.model_extra or {}
        return extra.get("failure_message") or f"Provider status: {event.data.status}"

    async def _handle_payout(self, payout_id: int, outcome: str, event: WebhookEvent) -> bool:
        if outcome == ProviderOutcome.CONFIRM:
            return await self.payouts.confirm_payout(payout_id, event.data.id) is not None
        if outcome == ProviderOutcome.FAIL:
            return await self.payouts.fail_payout(payout_id, self._failure_reason(event)) is not None
        return False

    async def _handle_refund(self, return_id: int, outcome: str, event: WebhookEvent) -> bool:
        try:
            if outcome == ProviderOutcome.CONFIRM:
                await self.refunds.confirm_refund(return_id, event.data.id)
                return True
            if outcome == ProviderOutcome.FAIL:
                await self.refunds.fail_refund(return_id, self._failure_reason(event))
                return True
        except AlreadyProcessedException:
            logger.info("webhook_refund_noop", return_id=return_id)
        return False

    async def _handle_payment(self, order_id: int, outcome: str, event: WebhookEvent) -> bool:
        data = event.data
        try:
            if outcome == ProviderOutcome.CONFIRM:
                amount_paid = None
                if data.amount is not None and data.currency:
                    amount_paid = from_provider_amount(data.amount, data.currency, self._zero_decimal)
                await self.payments.confirm_payment(
                    order_id,
                    data.id,
                    amount_paid=amount_paid,
                    currency=data.currency,
                )
                return True
            if outcome == ProviderOutcome.FAIL:
                await self.payments.fail_payment(order_id, self._failure_reason(event))
                return True
        except AlreadyProcessedException:
            logger.info("webhook_payment_noop", order_id=order_id)
        return False
