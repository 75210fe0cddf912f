"""Application layer orchestration for ledger reads and entries (application/services)."""
from __future__ import annotations

from dataclasses import asdict
from datetime import datetime
from typing import Callable, Iterable, List, Optional

from application.dtos.ledger import AccountDTO, FinanceOverviewDTO, ReplayReportDTO, TransactionDTO
from application.ports.notifier import Notifier, NullNotifier
from core.logging_config import get_logger
from domain.common.exceptions import AccountNotFoundException
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.ledger.entity import (
    Account,
    BalanceField,
    Direction,
    Transaction,
    TransactionType,
)
from domain.ledger.events import LedgerEntryRecorded
from domain.ledger.service import LedgerDomainService, LedgerEntryResult


logger = get_logger(__name__)


def account_to_dto(account: Account) -> AccountDTO:
    return AccountDTO(
        id=account.id,
        name=account.name,
        currency=account.currency,
        balance=account.balance,
        pending_balance=account.pending_balance,
        status=account.status.value,
        updated_at=account.updated_at,
    )


def transaction_to_dto(tx: Transaction) -> TransactionDTO:
    return TransactionDTO(
        id=tx.id,
        account_id=tx.account_id,
        order_id=tx.order_id,
        type=tx.type.value,
        direction=tx.direction.value,
        amount=tx.amount,
        currency=tx.currency,
        balance_field=tx.balance_field.value,
        balance_before=tx.balance_before,
        balance_after=tx.balance_after,
        status=tx.status.value,
        reference=tx.reference,
        description=tx.description,
        metadata=tx.metadata,
        created_at=tx.created_at,
    )


def ledger_for(uow: AbstractUnitOfWork) -> LedgerDomainService:
    """Ledger domain service bound to the repositories of one Unit of Work."""
    return LedgerDomainService(uow.account_repository, uow.transaction_repository)


def publish_events(notifier: Notifier, events: Iterable) -> None:
    """Forward domain events to the notifier after commit; failures never propagate."""
    for event in events:
        try:
            kind = type(event).__name__
            account_id = getattr(event, "account_id", None)
            if account_id is None:
                continue
            payload = {
                k: (v.isoformat() if hasattr(v, "isoformat") else v)
                for k, v in asdict(event).items()
            }
            notifier.notify(account_id, kind, payload)
        except Exception as exc:
            logger.warning("notification_dispatch_failed", event_type=type(event).__name__, error=str(exc))


class LedgerApplicationService:
    """Ledger use-cases: single entries, balance reads, history and replay."""

    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        notifier: Optional[Notifier] = None,
    ):
        self._uow_factory = uow_factory
        self._notifier = notifier or NullNotifier()

    async def apply_entry(
        self,
        account_id: int,
        *,
        type: TransactionType,
        direction: Direction,
        amount: int,
        description: str,
        balance_field: BalanceField,
        idempotency_key: str,
        order_id: Optional[int] = None,
        reference: Optional[str] = None,
        metadata: Optional[dict] = None,
    ) -> LedgerEntryResult:
        """Record one balance change in its own Unit of Work."""
        async with self._uow_factory() as uow:
            ledger = ledger_for(uow)
            result = await ledger.apply_entry(
                account_id,
                type=type,
                direction=direction,
                amount=amount,
                description=description,
                balance_field=balance_field,
                idempotency_key=idempotency_key,
                order_id=order_id,
                reference=reference,
                metadata=metadata,
            )
            events: List[LedgerEntryRecorded] = ledger.clear_events()
        publish_events(self._notifier, events)
        return result

    async def get_balance(self, account_id: int) -> AccountDTO:
        async with self._uow_factory(readonly=True) as uow:
            account = await uow.account_repository.get_by_id(account_id)
            if account is None:
                raise AccountNotFoundException(account_id)
            return account_to_dto(account)

    async def list_transactions(
        self,
        account_id: int,
        *,
        skip: int = 0,
        limit: int = 100,
        type: Optional[TransactionType] = None,
    ) -> List[TransactionDTO]:
        async with self._uow_factory(readonly=True) as uow:
            if await uow.account_repository.get_by_id(account_id) is None:
                raise AccountNotFoundException(account_id)
            txs = await uow.transaction_repository.list_by_account(
                account_id, skip=skip, limit=limit, type=type
            )
            return [transaction_to_dto(t) for t in txs]

    async def replay(self, account_id: int) -> ReplayReportDTO:
        async with self._uow_factory(readonly=True) as uow:
            report = await ledger_for(uow).replay(account_id)
        if not report.consistent:
            logger.error(
                "ledger_replay_mismatch",
                account_id=account_id,
                balance=report.balance,
                replayed_balance=report.replayed_balance,
                pending_balance=report.pending_balance,
                replayed_pending_balance=report.replayed_pending_balance,
            )
        return ReplayReportDTO(
            account_id=report.account_id,
            balance=report.balance,
            pending_balance=report.pending_balance,
            replayed_balance=report.replayed_balance,
            replayed_pending_balance=report.replayed_pending_balance,
            transaction_count=report.transaction_count,
            consistent=report.consistent,
        )

    async def overview(self, account_id: int, now: Optional[datetime] = None) -> FinanceOverviewDTO:
        async with self._uow_factory(readonly=True) as uow:
            summary = await ledger_for(uow).overview(account_id, now=now)
        return FinanceOverviewDTO(
            account_id=summary.account_id,
            currency=summary.currency,
            balance=summary.balance,
            pending_balance=summary.pending_balance,
            total_credits=summary.total_credits,
            total_debits=summary.total_debits,
            total_commissions=summary.total_commissions,
            total_payouts=summary.total_payouts,
            net_revenue=summary.net_revenue,
            revenue_30d=summary.revenue_30d,
            commissions_30d=summary.commissions_30d,
            revenue_trend=summary.revenue_trend,
            transaction_count=summary.transaction_count,
        )
