"""
提现仓储接口
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional

from .entity import Payout, PayoutStatus


class PayoutRepository(ABC):
    """提现仓储抽象接口"""

    @abstractmethod
    async def create(self, payout: Payout) -> Payout:
        """创建提现记录"""
        pass

    @abstractmethod
    async def get_by_id(self, payout_id: int) -> Optional[Payout]:
        """根据ID获取提现"""
        pass

    @abstractmethod
    async def get_for_update(self, payout_id: int) -> Optional[Payout]:
        """根据ID获取提现并锁定行"""
        pass

    @abstractmethod
    async def update(self, payout: Payout) -> Payout:
        """更新状态、引用、失败原因、关联交易"""
        pass

    @abstractmethod
    async def has_open_payout(self, account_id: int) -> bool:
        """账户是否存在 pending/processing 的提现"""
        pass

    @abstractmethod
    async def get_last_completed(self, account_id: int) -> Optional[Payout]:
        """获取最近一次完成的提现（按处理时间）"""
        pass

    @abstractmethod
    async def list_by_account(
        self,
        account_id: int,
        skip: int = 0,
        limit: int = 100,
        status: Optional[PayoutStatus] = None,
    ) -> List[Payout]:
        """获取账户提现列表（按申请时间倒序）"""
        pass

    @abstractmethod
    async def list_stale(self, requested_before: datetime, limit: int = 200) -> List[Payout]:
        """获取超时未终结（pending/processing）的提现"""
        pass
