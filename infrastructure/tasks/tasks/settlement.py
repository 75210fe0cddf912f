"""
Periodic settlement jobs: fund release and stale payout reconciliation.

Each task runs the async handler with asyncio.run and disposes the engine
afterwards; pooled connections must not outlive the loop that opened them.
"""
from __future__ import annotations

import asyncio

from celery import shared_task

from application.services.payout_service import PayoutService, policy_from_settings
from application.services.settlement_service import SettlementService
from core.config import settings
from infrastructure.database import engine
from infrastructure.external.payments import get_payment_gateway
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork
from ..utils.base_task import BaseTask
from ..utils.dispatcher import TaskNotifier


@shared_task(name="settlement.release_eligible_orders", bind=True, base=BaseTask)
def release_eligible_orders(self) -> dict:
    async def _run():
        service = SettlementService(
            SQLAlchemyUnitOfWork,
            hold_hours=settings.ledger.release_hold_hours,
            batch_size=settings.ledger.release_batch_size,
            notifier=TaskNotifier(),
        )
        try:
            return await service.release_eligible_orders()
        finally:
            await engine.dispose()

    report = asyncio.run(_run())
    return report.model_dump()


@shared_task(name="settlement.check_stale_payouts", bind=True, base=BaseTask)
def check_stale_payouts(self) -> dict:
    async def _run():
        gateway = get_payment_gateway()
        service = PayoutService(
            SQLAlchemyUnitOfWork,
            gateway,
            policy=policy_from_settings(),
            stale_hours=settings.ledger.stale_payout_hours,
            notifier=TaskNotifier(),
        )
        try:
            return await service.check_stale_payouts()
        finally:
            await gateway.aclose()
            await engine.dispose()

    report = asyncio.run(_run())
    return report.model_dump()
