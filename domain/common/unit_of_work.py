"""Unit of Work 抽象定义"""
from __future__ import annotations

from abc import ABC, abstractmethod

from domain.ledger.repository import AccountRepository, TransactionRepository
from domain.order.repository import OrderRepository
from domain.payout.repository import PayoutRepository
from domain.refund.repository import ReturnRequestRepository


class AbstractUnitOfWork(ABC):
    """应用层事务边界控制抽象

    一个 Unit of Work 对应一个原子步骤：余额变动与对应交易记录
    必须在同一个 Unit of Work 内写入。
    """

    account_repository: AccountRepository
    transaction_repository: TransactionRepository
    order_repository: OrderRepository
    payout_repository: PayoutRepository
    return_repository: ReturnRequestRepository

    def __init__(self, *, readonly: bool = False) -> None:
        self._committed = False
        self._readonly = readonly
        self.account_repository = None  # type: ignore[assignment]
        self.transaction_repository = None  # type: ignore[assignment]
        self.order_repository = None  # type: ignore[assignment]
        self.payout_repository = None  # type: ignore[assignment]
        self.return_repository = None  # type: ignore[assignment]

    async def __aenter__(self) -> "AbstractUnitOfWork":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if exc:
            await self.rollback()
        else:
            # 只在非只读且未显式提交时自动提交
            if not self._readonly and not self._committed:
                await self.commit()

    @abstractmethod
    async def commit(self) -> None:
        """提交事务"""
        ...

    @abstractmethod
    async def rollback(self) -> None:
        """回滚事务"""
