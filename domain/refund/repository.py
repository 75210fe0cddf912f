"""
退货仓储接口
"""
from abc import ABC, abstractmethod
from typing import List, Optional

from .entity import ReturnRequest


class ReturnRequestRepository(ABC):
    """退货请求仓储抽象接口"""

    @abstractmethod
    async def create(self, request: ReturnRequest) -> ReturnRequest:
        """创建退货请求"""
        pass

    @abstractmethod
    async def get_by_id(self, return_id: int) -> Optional[ReturnRequest]:
        """根据ID获取退货请求"""
        pass

    @abstractmethod
    async def get_for_update(self, return_id: int) -> Optional[ReturnRequest]:
        """根据ID获取退货请求并锁定行"""
        pass

    @abstractmethod
    async def update(self, request: ReturnRequest) -> ReturnRequest:
        """更新状态、退款引用、退款金额"""
        pass

    @abstractmethod
    async def list_by_order(self, order_id: int) -> List[ReturnRequest]:
        """获取订单的全部退货请求"""
        pass
