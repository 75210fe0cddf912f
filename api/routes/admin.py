"""
运维路由：手动触发结算任务（与 Celery beat 调用同一处理函数）
"""
from fastapi import APIRouter, Depends

from api.dependencies import get_payout_service, get_settlement_service
from application.services.payout_service import PayoutService
from application.services.settlement_service import SettlementService
from core.response import success_response


router = APIRouter(prefix="/admin", tags=["运维"])


@router.post("/settlement/release", summary="释放到期订单资金")
async def release_funds(service: SettlementService = Depends(get_settlement_service)):
    report = await service.release_eligible_orders()
    return success_response(data=report.model_dump())


@router.post("/payouts/check-stale", summary="核对超时提现")
async def check_stale_payouts(service: PayoutService = Depends(get_payout_service)):
    report = await service.check_stale_payouts()
    return success_response(data=report.model_dump())
