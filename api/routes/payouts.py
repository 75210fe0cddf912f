"""
Payout API routes (seller withdrawals).
"""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from api.dependencies import get_current_account_id, get_payout_service
from application.dtos.ledger import PaginationParams, PayoutRequestDTO
from application.services.payout_service import PayoutService
from core.response import success_response
from domain.payout.entity import PayoutStatus


router = APIRouter(prefix="/payouts", tags=["Payouts"])


@router.post("", summary="Request a payout")
async def request_payout(
    payload: PayoutRequestDTO,
    account_id: int = Depends(get_current_account_id),
    service: PayoutService = Depends(get_payout_service),
):
    payout = await service.request_payout(account_id, payload)
    return success_response(data=payout.model_dump(), message=f"Payout {payout.status}")


@router.get("", summary="List payouts")
async def list_payouts(
    pagination: PaginationParams = Depends(),
    status: Optional[PayoutStatus] = Query(default=None),
    account_id: int = Depends(get_current_account_id),
    service: PayoutService = Depends(get_payout_service),
):
    payouts = await service.list_payouts(
        account_id, status=status, skip=pagination.skip, limit=pagination.limit
    )
    return success_response(data=[p.model_dump() for p in payouts])


@router.get("/eligibility", summary="Check whether the full balance can be withdrawn")
async def get_eligibility(
    account_id: int = Depends(get_current_account_id),
    service: PayoutService = Depends(get_payout_service),
):
    result = await service.eligibility(account_id)
    return success_response(data=result.model_dump())


@router.get("/{payout_id}", summary="Get payout")
async def get_payout(
    payout_id: int,
    account_id: int = Depends(get_current_account_id),
    service: PayoutService = Depends(get_payout_service),
):
    payout = await service.get_payout(account_id, payout_id)
    return success_response(data=payout.model_dump())


@router.post("/{payout_id}/verify", summary="Verify payout with the provider")
async def verify_payout(
    payout_id: int,
    account_id: int = Depends(get_current_account_id),
    service: PayoutService = Depends(get_payout_service),
):
    result = await service.verify_payout(payout_id, account_id=account_id)
    return success_response(data=result.model_dump())
