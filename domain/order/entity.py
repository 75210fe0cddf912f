"""
订单领域实体 - 账本只关心订单的结算相关字段
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from domain.common.exceptions import (
    DomainValidationException,
    InvalidStateTransitionException,
)
from domain.ledger.entity import ensure_utc


class OrderStatus(str, Enum):
    """订单状态枚举"""
    PENDING = "pending"
    PAID = "paid"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class PaymentStatus(str, Enum):
    """订单支付状态"""
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


@dataclass
class OrderItem:
    product_id: int
    title: str
    quantity: int
    unit_price: int
    variant_id: Optional[int] = None

    @property
    def line_total(self) -> int:
        return self.unit_price * self.quantity


@dataclass
class Order:
    """
    订单聚合（结算视角）

    业务规则：
    1. commission_amount <= total_amount
    2. refunded_amount 只增不减
    3. funds_released_at 设置后订单不再进入释放批次
    """

    id: Optional[int]
    account_id: int
    order_number: str
    total_amount: int
    currency: str
    status: OrderStatus = OrderStatus.PENDING
    payment_status: PaymentStatus = PaymentStatus.PENDING
    commission_amount: int = 0
    refunded_amount: int = 0
    customer_id: Optional[int] = None
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    payment_reference: Optional[str] = None
    payment_failure_reason: Optional[str] = None
    items: List[OrderItem] = field(default_factory=list)
    paid_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    funds_released_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        if self.total_amount < 0:
            raise DomainValidationException("订单金额不能为负", field="total_amount")
        if self.commission_amount < 0:
            raise DomainValidationException("佣金不能为负", field="commission_amount")
        self.items = [
            item if isinstance(item, OrderItem) else OrderItem(**item)
            for item in (self.items or [])
        ]
        self.paid_at = ensure_utc(self.paid_at)
        self.delivered_at = ensure_utc(self.delivered_at)
        self.funds_released_at = ensure_utc(self.funds_released_at)
        self.created_at = ensure_utc(self.created_at)
        self.updated_at = ensure_utc(self.updated_at)

    @property
    def is_paid(self) -> bool:
        return self.payment_status == PaymentStatus.PAID

    @property
    def effective_commission(self) -> int:
        """佣金上限为订单总额"""
        return min(self.commission_amount, self.total_amount)

    @property
    def releasable_amount(self) -> int:
        """释放时从 pending 转入 available 的净额（不小于0）"""
        return max(self.total_amount - self.effective_commission - self.refunded_amount, 0)

    def seller_share_of(self, refund_amount: int) -> int:
        """退款中由卖家承担的部分：扣除按比例的佣金"""
        if self.total_amount <= 0:
            return 0
        commission_part = self.effective_commission * refund_amount // self.total_amount
        return max(refund_amount - commission_part, 0)

    def mark_paid(self, reference: Optional[str] = None) -> None:
        """
        标记已支付

        业务规则：已取消/已退款的订单不能再确认支付
        """
        if self.status in (OrderStatus.CANCELLED, OrderStatus.REFUNDED):
            raise InvalidStateTransitionException("order", self.status.value, OrderStatus.PAID.value)
        now = datetime.now(timezone.utc)
        self.payment_status = PaymentStatus.PAID
        if self.status == OrderStatus.PENDING:
            self.status = OrderStatus.PAID
        if reference:
            self.payment_reference = reference
        self.payment_failure_reason = None
        self.paid_at = now
        self.updated_at = now

    def mark_payment_failed(self, reason: Optional[str] = None) -> None:
        """支付失败：订单状态保持不变以便重试"""
        if self.is_paid:
            raise InvalidStateTransitionException(
                "order.payment", self.payment_status.value, PaymentStatus.FAILED.value
            )
        self.payment_status = PaymentStatus.FAILED
        self.payment_failure_reason = reason
        self.updated_at = datetime.now(timezone.utc)

    def mark_funds_released(self, at: Optional[datetime] = None) -> None:
        self.funds_released_at = ensure_utc(at) or datetime.now(timezone.utc)
        self.updated_at = datetime.now(timezone.utc)

    def apply_refund(self, seller_share: int, *, full: bool) -> None:
        self.refunded_amount += seller_share
        # 部分退货保持 paid，剩余金额仍需按期释放
        if full:
            self.status = OrderStatus.REFUNDED
            self.payment_status = PaymentStatus.REFUNDED
        self.updated_at = datetime.now(timezone.utc)
