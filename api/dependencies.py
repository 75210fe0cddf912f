"""
API依赖项 - 服务装配与调用方身份
"""
from typing import AsyncIterator, Callable, Optional

from fastapi import Depends, Header, HTTPException, status

from application.ports.notifier import Notifier
from application.ports.payment_gateway import PaymentGateway
from application.services.ledger_service import LedgerApplicationService
from application.services.payment_service import PaymentService
from application.services.payout_service import PayoutService, policy_from_settings
from application.services.refund_service import RefundService
from application.services.settlement_service import SettlementService
from application.services.webhook_service import WebhookService
from core.config import settings
from core.settings import payment_settings
from domain.common.unit_of_work import AbstractUnitOfWork
from infrastructure.external.payments import get_payment_gateway
from infrastructure.tasks.utils.dispatcher import TaskNotifier
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork


def get_uow_factory() -> Callable[..., AbstractUnitOfWork]:
    return SQLAlchemyUnitOfWork


def get_notifier() -> Notifier:
    return TaskNotifier()


async def get_gateway() -> AsyncIterator[PaymentGateway]:
    """每个请求一个渠道客户端，请求结束时关闭连接"""
    gateway = get_payment_gateway()
    try:
        yield gateway
    finally:
        await gateway.aclose()


async def get_current_account_id(
    x_account_id: Optional[str] = Header(default=None, alias="X-Account-Id"),
) -> int:
    """调用方账户由上游认证层写入 X-Account-Id"""
    if not x_account_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-Account-Id header",
        )
    try:
        return int(x_account_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-Account-Id must be an integer",
        )


async def get_ledger_service(
    uow_factory=Depends(get_uow_factory),
    notifier: Notifier = Depends(get_notifier),
) -> LedgerApplicationService:
    return LedgerApplicationService(uow_factory=uow_factory, notifier=notifier)


async def get_settlement_service(
    uow_factory=Depends(get_uow_factory),
    notifier: Notifier = Depends(get_notifier),
) -> SettlementService:
    return SettlementService(
        uow_factory,
        hold_hours=settings.ledger.release_hold_hours,
        batch_size=settings.ledger.release_batch_size,
        notifier=notifier,
    )


async def get_payment_service(
    uow_factory=Depends(get_uow_factory),
    gateway: PaymentGateway = Depends(get_gateway),
    notifier: Notifier = Depends(get_notifier),
) -> PaymentService:
    return PaymentService(uow_factory, gateway, site_url=payment_settings.site_url, notifier=notifier)


async def get_payout_service(
    uow_factory=Depends(get_uow_factory),
    gateway: PaymentGateway = Depends(get_gateway),
    notifier: Notifier = Depends(get_notifier),
) -> PayoutService:
    return PayoutService(
        uow_factory,
        gateway,
        policy=policy_from_settings(),
        stale_hours=settings.ledger.stale_payout_hours,
        notifier=notifier,
    )


async def get_refund_service(
    uow_factory=Depends(get_uow_factory),
    gateway: PaymentGateway = Depends(get_gateway),
    notifier: Notifier = Depends(get_notifier),
) -> RefundService:
    return RefundService(
        uow_factory,
        gateway,
        return_window_hours=settings.ledger.return_window_hours,
        notifier=notifier,
    )


async def get_webhook_service(
    payments: PaymentService = Depends(get_payment_service),
    payouts: PayoutService = Depends(get_payout_service),
    refunds: RefundService = Depends(get_refund_service),
) -> WebhookService:
    return WebhookService(
        payments,
        payouts,
        refunds,
        secret=payment_settings.moneroo.webhook_secret,
        zero_decimal_currencies=payment_settings.zero_decimal_currencies,
    )
