"""
Payments API routes.

Checkout initialization and the verify fallback for lost webhooks. Keep this
thin: provider details stay in the gateway adapter.
"""
from __future__ import annotations

from fastapi import APIRouter, Depends

from api.dependencies import get_payment_service
from application.services.payment_service import PaymentService
from core.response import success_response


router = APIRouter(prefix="/payments", tags=["Payments"])


@router.post("/orders/{order_id}/initialize", summary="Create checkout session")
async def initialize_payment(order_id: int, service: PaymentService = Depends(get_payment_service)):
    checkout = await service.initialize_payment(order_id)
    return success_response(data=checkout.model_dump(), message="Checkout created")


@router.post("/orders/{order_id}/verify", summary="Verify payment with the provider")
async def verify_payment(order_id: int, service: PaymentService = Depends(get_payment_service)):
    result = await service.verify_payment(order_id)
    return success_response(data=result.model_dump())
