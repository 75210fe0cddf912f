"""
账本仓储接口 - 定义账户与交易数据访问的抽象接口
"""
from abc import ABC, abstractmethod
from typing import Optional, List

from .entity import Account, Transaction, TransactionType


class AccountRepository(ABC):
    """账户仓储抽象接口"""

    @abstractmethod
    async def create(self, account: Account) -> Account:
        """创建账户（余额为0）"""
        pass

    @abstractmethod
    async def get_by_id(self, account_id: int) -> Optional[Account]:
        """根据ID获取账户（不加锁）"""
        pass

    @abstractmethod
    async def get_for_update(self, account_id: int) -> Optional[Account]:
        """根据ID获取账户并锁定行，直到当前事务结束"""
        pass

    @abstractmethod
    async def save_balances(self, account: Account) -> Account:
        """写回 balance / pending_balance / updated_at"""
        pass


class TransactionRepository(ABC):
    """交易仓储抽象接口 - 只追加，不更新金额"""

    @abstractmethod
    async def add(self, transaction: Transaction) -> Transaction:
        """追加交易；幂等键重复时抛出 AlreadyProcessedException"""
        pass

    @abstractmethod
    async def get_by_id(self, transaction_id: int) -> Optional[Transaction]:
        """根据ID获取交易"""
        pass

    @abstractmethod
    async def exists_by_idempotency_key(self, key: str) -> bool:
        """检查幂等键是否已存在"""
        pass

    @abstractmethod
    async def list_by_account(
        self,
        account_id: int,
        skip: int = 0,
        limit: int = 100,
        type: Optional[TransactionType] = None,
    ) -> List[Transaction]:
        """获取账户交易（按创建时间倒序）"""
        pass

    @abstractmethod
    async def list_for_replay(self, account_id: int) -> List[Transaction]:
        """获取账户全部已完成交易（按创建顺序）"""
        pass
