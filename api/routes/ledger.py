"""
账本查询路由：余额、流水、收支汇总、对账
"""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from api.dependencies import get_current_account_id, get_ledger_service
from application.dtos.ledger import PaginationParams
from application.services.ledger_service import LedgerApplicationService
from core.response import success_response
from domain.ledger.entity import TransactionType


router = APIRouter(prefix="/ledger", tags=["账本"])


def _ensure_owner(account_id: int, caller_id: int) -> None:
    if account_id != caller_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not your account")


@router.get("/accounts/{account_id}", summary="账户余额")
async def get_balance(
    account_id: int,
    caller_id: int = Depends(get_current_account_id),
    service: LedgerApplicationService = Depends(get_ledger_service),
):
    _ensure_owner(account_id, caller_id)
    account = await service.get_balance(account_id)
    return success_response(data=account.model_dump())


@router.get("/accounts/{account_id}/transactions", summary="交易流水（新到旧）")
async def list_transactions(
    account_id: int,
    pagination: PaginationParams = Depends(),
    type: Optional[TransactionType] = Query(default=None, description="按交易类型过滤"),
    caller_id: int = Depends(get_current_account_id),
    service: LedgerApplicationService = Depends(get_ledger_service),
):
    _ensure_owner(account_id, caller_id)
    items = await service.list_transactions(
        account_id, skip=pagination.skip, limit=pagination.limit, type=type
    )
    return success_response(data=[tx.model_dump() for tx in items])


@router.get("/accounts/{account_id}/reconcile", summary="按流水重放校验余额")
async def reconcile(
    account_id: int,
    caller_id: int = Depends(get_current_account_id),
    service: LedgerApplicationService = Depends(get_ledger_service),
):
    _ensure_owner(account_id, caller_id)
    report = await service.replay(account_id)
    return success_response(data=report.model_dump())


@router.get("/accounts/{account_id}/overview", summary="收支汇总")
async def get_overview(
    account_id: int,
    caller_id: int = Depends(get_current_account_id),
    service: LedgerApplicationService = Depends(get_ledger_service),
):
    _ensure_owner(account_id, caller_id)
    overview = await service.overview(account_id)
    return success_response(data=overview.model_dump())
