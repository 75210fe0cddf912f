"""
Settlement scheduler handler: promote pending funds to available balance.

Invoked by an external clock (Celery beat, admin endpoint, tests). Each order
is released in its own Unit of Work so one failure never aborts the batch.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional

from application.dtos.ledger import ReleaseReport
from application.ports.notifier import Notifier, NullNotifier
from application.services.ledger_service import ledger_for, publish_events
from core.logging_config import get_logger
from domain.common.exceptions import AlreadyProcessedException
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.ledger.entity import BalanceField, Direction, TransactionType
from domain.order.entity import OrderStatus, PaymentStatus


logger = get_logger(__name__)

_SKIPPED = "skipped"
_RELEASED = "released"


class SettlementService:
    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        *,
        hold_hours: int = 48,
        batch_size: int = 500,
        notifier: Optional[Notifier] = None,
    ) -> None:
        self._uow_factory = uow_factory
        self._hold = timedelta(hours=hold_hours)
        self._batch_size = batch_size
        self._notifier = notifier or NullNotifier()

    async def release_eligible_orders(self, now: Optional[datetime] = None) -> ReleaseReport:
        now = now or datetime.now(timezone.utc)
        cutoff = now - self._hold

        async with self._uow_factory(readonly=True) as uow:
            candidates = await uow.order_repository.list_releasable(cutoff, limit=self._batch_size)

        report = ReleaseReport()
        for order in candidates:
            try:
                outcome = await self._release_one(order.id, cutoff, now)
            except AlreadyProcessedException:
                report.skipped += 1
                logger.info("release_already_processed", order_id=order.id)
                continue
            except Exception as exc:
                report.failed += 1
                logger.error("release_failed", order_id=order.id, error=str(exc), exc_info=True)
                continue
            if outcome == _RELEASED:
                report.released += 1
                report.released_order_ids.append(order.id)
            else:
                report.skipped += 1

        logger.info(
            "release_batch_finished",
            candidates=len(candidates),
            released=report.released,
            skipped=report.skipped,
            failed=report.failed,
        )
        return report

    async def _release_one(self, order_id: int, cutoff: datetime, now: datetime) -> str:
        events: List = []
        async with self._uow_factory() as uow:
            order = await uow.order_repository.get_for_update(order_id)
            # Re-check under lock: another run may have released it meanwhile
            if (
                order is None
                or order.funds_released_at is not None
                or order.status != OrderStatus.DELIVERED
                or order.payment_status != PaymentStatus.PAID
                or order.delivered_at is None
                or order.delivered_at > cutoff
            ):
                return _SKIPPED

            account = await uow.account_repository.get_by_id(order.account_id)
            if account is None or not account.is_active:
                logger.warning(
                    "release_skipped_inactive_account",
                    order_id=order.id,
                    account_id=order.account_id,
                    status=account.status.value if account else None,
                )
                return _SKIPPED

            ledger = ledger_for(uow)
            net = order.releasable_amount
            # Never debit pending below zero even if the books drifted
            pending_leg = min(net, account.pending_balance)
            if pending_leg < net:
                logger.warning(
                    "release_pending_clamped",
                    order_id=order.id,
                    net=net,
                    pending_balance=account.pending_balance,
                )

            if pending_leg > 0:
                await ledger.apply_entry(
                    account.id,
                    type=TransactionType.TRANSFER,
                    direction=Direction.DEBIT,
                    amount=pending_leg,
                    description=f"Release of order {order.order_number} from pending",
                    balance_field=BalanceField.PENDING,
                    idempotency_key=f"order:{order.id}:release:debit",
                    order_id=order.id,
                )
            if net > 0:
                await ledger.apply_entry(
                    account.id,
                    type=TransactionType.TRANSFER,
                    direction=Direction.CREDIT,
                    amount=net,
                    description=f"Release of order {order.order_number} to available balance",
                    balance_field=BalanceField.AVAILABLE,
                    idempotency_key=f"order:{order.id}:release:credit",
                    order_id=order.id,
                )

            order.mark_funds_released(now)
            await uow.order_repository.update(order)
            events = ledger.clear_events()

        logger.info("order_funds_released", order_id=order_id, net=net)
        publish_events(self._notifier, events)
        return _RELEASED
