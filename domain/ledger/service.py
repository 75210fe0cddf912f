"""
账本领域服务 - 余额变动的唯一入口
"""
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from .entity import (
    Account,
    BalanceField,
    Direction,
    FinanceOverview,
    ReplayReport,
    Transaction,
    TransactionStatus,
    TransactionType,
    validate_amount,
)
from .events import LedgerEntryRecorded
from .repository import AccountRepository, TransactionRepository
from domain.common.exceptions import (
    AccountNotFoundException,
    AlreadyProcessedException,
)


@dataclass
class LedgerEntryResult:
    transaction: Transaction
    account: Account


class LedgerDomainService:
    """
    账本领域服务

    职责：
    1. 锁定账户行并校验金额/余额
    2. 同一事务内写入余额与交易记录
    3. 幂等键去重
    4. 重放交易用于对账

    必须在调用方的 Unit of Work 内使用：本服务不提交事务。
    """

    def __init__(
        self,
        account_repository: AccountRepository,
        transaction_repository: TransactionRepository,
    ):
        self.account_repository = account_repository
        self.transaction_repository = transaction_repository
        self.events: List = []

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
        """
        记录一笔余额变动

        业务规则：
        1. 金额必须为正整数，否则 InvalidAmount（不做任何修改）
        2. 借记后余额不能为负，否则 InsufficientFunds（不做任何修改）
        3. 幂等键重复 -> AlreadyProcessed
        """
        validate_amount(amount)

        if await self.transaction_repository.exists_by_idempotency_key(idempotency_key):
            raise AlreadyProcessedException("ledger_entry", idempotency_key)

        account = await self.account_repository.get_for_update(account_id)
        if account is None:
            raise AccountNotFoundException(account_id)

        # 实体方法负责非负校验，失败时账户未被修改
        before, after = account.apply(balance_field, direction, amount)

        now = datetime.now(timezone.utc)
        transaction = Transaction(
            id=None,
            account_id=account.id,
            type=type,
            direction=direction,
            amount=amount,
            currency=account.currency,
            balance_field=balance_field,
            balance_before=before,
            balance_after=after,
            description=description,
            idempotency_key=idempotency_key,
            status=TransactionStatus.COMPLETED,
            order_id=order_id,
            reference=reference,
            metadata=metadata or {},
            processed_at=now,
            created_at=now,
        )

        created = await self.transaction_repository.add(transaction)
        saved = await self.account_repository.save_balances(account)

        self.events.append(LedgerEntryRecorded(
            account_id=saved.id,
            transaction_id=created.id,
            type=created.type.value,
            direction=created.direction.value,
            balance_field=created.balance_field.value,
            amount=created.amount,
            balance_after=created.balance_after,
            order_id=order_id,
        ))

        return LedgerEntryResult(transaction=created, account=saved)

    async def replay(self, account_id: int) -> ReplayReport:
        """按创建顺序重放已完成交易，重建余额对"""
        account = await self.account_repository.get_by_id(account_id)
        if account is None:
            raise AccountNotFoundException(account_id)

        totals = {BalanceField.AVAILABLE: 0, BalanceField.PENDING: 0}
        transactions = await self.transaction_repository.list_for_replay(account_id)
        for tx in transactions:
            if tx.status != TransactionStatus.COMPLETED:
                continue
            totals[tx.balance_field] += tx.signed_amount

        return ReplayReport(
            account_id=account_id,
            balance=account.balance,
            pending_balance=account.pending_balance,
            replayed_balance=totals[BalanceField.AVAILABLE],
            replayed_pending_balance=totals[BalanceField.PENDING],
            transaction_count=len(transactions),
        )

    async def overview(self, account_id: int, now: Optional[datetime] = None) -> FinanceOverview:
        """
        收支汇总

        业务规则：
        1. 只统计 completed 交易；transfer 是余额字段间的内部划转，不计入收支
        2. 佣金 = 关联订单的 fee 借记；提现 = payout 借记
        3. 近 30 天与前 30 天收入用于计算趋势
        """
        account = await self.account_repository.get_by_id(account_id)
        if account is None:
            raise AccountNotFoundException(account_id)

        now = now or datetime.now(timezone.utc)
        recent_start = now - timedelta(days=30)
        previous_start = now - timedelta(days=60)

        transactions = await self.transaction_repository.list_for_replay(account_id)
        summary = FinanceOverview(
            account_id=account_id,
            currency=account.currency,
            balance=account.balance,
            pending_balance=account.pending_balance,
            transaction_count=len(transactions),
        )
        for tx in transactions:
            if tx.status != TransactionStatus.COMPLETED or tx.type == TransactionType.TRANSFER:
                continue
            recent = tx.created_at is not None and tx.created_at >= recent_start
            previous = tx.created_at is not None and previous_start <= tx.created_at < recent_start
            if tx.direction == Direction.CREDIT:
                summary.total_credits += tx.amount
                if recent:
                    summary.revenue_30d += tx.amount
                elif previous:
                    summary.previous_revenue_30d += tx.amount
                continue

            summary.total_debits += tx.amount
            if tx.type == TransactionType.PAYOUT:
                summary.total_payouts += tx.amount
            elif tx.type == TransactionType.FEE and tx.order_id is not None:
                summary.total_commissions += tx.amount
                if recent:
                    summary.commissions_30d += tx.amount
        return summary

    def clear_events(self) -> List:
        """清空并返回领域事件"""
        events = self.events.copy()
        self.events.clear()
        return events
