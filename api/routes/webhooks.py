"""
Provider webhook intake.

Acknowledge with 200 whenever the event was authenticated and processed
(including unknown references). A business error while applying the event
answers 500 so the provider redelivers.
"""
from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from api.dependencies import get_webhook_service
from application.services.webhook_service import WebhookService
from core.response import success_response
from infrastructure.external.payments.moneroo_client import SIGNATURE_HEADER


router = APIRouter(prefix="/webhooks", tags=["Webhooks"])


@router.post("/moneroo", summary="Moneroo webhook")
async def moneroo_webhook(request: Request, service: WebhookService = Depends(get_webhook_service)):
    # Signature covers the raw bytes; read before any JSON parsing
    raw_body = await request.body()
    event = service.parse(raw_body, request.headers.get(SIGNATURE_HEADER))
    result = await service.handle(event)
    return success_response(data={"id": event.data.id, **result}, message="Webhook received")
