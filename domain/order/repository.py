"""
订单仓储接口 - 账本只读取订单并修补结算字段
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional

from .entity import Order


class OrderRepository(ABC):
    """订单仓储抽象接口"""

    @abstractmethod
    async def create(self, order: Order) -> Order:
        """创建订单（由结账流程调用，测试中用于准备数据）"""
        pass

    @abstractmethod
    async def get_by_id(self, order_id: int) -> Optional[Order]:
        """根据ID获取订单"""
        pass

    @abstractmethod
    async def get_for_update(self, order_id: int) -> Optional[Order]:
        """根据ID获取订单并锁定行"""
        pass

    @abstractmethod
    async def update(self, order: Order) -> Order:
        """修补状态、支付状态、支付引用、释放时间、退款累计"""
        pass

    @abstractmethod
    async def list_releasable(self, delivered_before: datetime, limit: int = 500) -> List[Order]:
        """
        获取可释放资金的订单

        条件：status=delivered，payment_status=paid，
        funds_released_at 为空，delivered_at <= delivered_before
        """
        pass
