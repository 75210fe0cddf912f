"""
Return and refund API routes.

Customers open returns; the seller (X-Account-Id) moves them through
approval and receipt, then triggers the provider refund.
"""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from api.dependencies import get_current_account_id, get_refund_service
from application.dtos.ledger import ReturnCreateDTO
from application.services.refund_service import RefundService
from core.response import success_response
from domain.refund.entity import ReturnStatus


router = APIRouter(prefix="/refunds", tags=["Refunds"])


class RefundContact(BaseModel):
    """Optional override of the customer contact stored on the order."""
    customer_email: Optional[str] = None
    customer_name: Optional[str] = None


@router.post("/returns", summary="Open a return request")
async def request_return(payload: ReturnCreateDTO, service: RefundService = Depends(get_refund_service)):
    ret = await service.request_return(payload)
    return success_response(data=ret.model_dump(), message="Return requested")


@router.get("/returns/{return_id}", summary="Get return request")
async def get_return(
    return_id: int,
    account_id: int = Depends(get_current_account_id),
    service: RefundService = Depends(get_refund_service),
):
    ret = await service.get_return(return_id, account_id=account_id)
    return success_response(data=ret.model_dump())


async def _transition(service: RefundService, return_id: int, target: ReturnStatus, account_id: int):
    ret = await service.transition_return(return_id, target, account_id=account_id)
    return success_response(data=ret.model_dump(), message=f"Return {ret.status}")


@router.post("/returns/{return_id}/approve", summary="Approve return")
async def approve_return(
    return_id: int,
    account_id: int = Depends(get_current_account_id),
    service: RefundService = Depends(get_refund_service),
):
    return await _transition(service, return_id, ReturnStatus.APPROVED, account_id)


@router.post("/returns/{return_id}/reject", summary="Reject return")
async def reject_return(
    return_id: int,
    account_id: int = Depends(get_current_account_id),
    service: RefundService = Depends(get_refund_service),
):
    return await _transition(service, return_id, ReturnStatus.REJECTED, account_id)


@router.post("/returns/{return_id}/receive", summary="Confirm returned goods received")
async def receive_return(
    return_id: int,
    account_id: int = Depends(get_current_account_id),
    service: RefundService = Depends(get_refund_service),
):
    return await _transition(service, return_id, ReturnStatus.RECEIVED, account_id)


@router.post("/returns/{return_id}", summary="Initiate the provider refund")
async def initiate_refund(
    return_id: int,
    contact: Optional[RefundContact] = None,
    account_id: int = Depends(get_current_account_id),
    service: RefundService = Depends(get_refund_service),
):
    contact = contact or RefundContact()
    result = await service.initiate_refund(
        return_id,
        account_id=account_id,
        customer_email=contact.customer_email,
        customer_name=contact.customer_name,
    )
    return success_response(data=result.model_dump(), message="Refund initiated")
