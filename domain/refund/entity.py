"""
退货/退款领域实体
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple

from domain.common.exceptions import (
    DomainValidationException,
    InvalidStateTransitionException,
)
from domain.ledger.entity import ensure_utc
from domain.order.entity import OrderItem


class ReturnStatus(str, Enum):
    """退货状态枚举"""
    REQUESTED = "requested"
    APPROVED = "approved"
    REJECTED = "rejected"    # 终态
    RECEIVED = "received"
    REFUNDED = "refunded"    # 终态


VALID_TRANSITIONS = {
    ReturnStatus.REQUESTED: {ReturnStatus.APPROVED, ReturnStatus.REJECTED},
    ReturnStatus.APPROVED: {ReturnStatus.RECEIVED},
    ReturnStatus.RECEIVED: {ReturnStatus.REFUNDED},
}


@dataclass
class ReturnItem:
    product_id: int
    title: str
    quantity: int
    unit_price: int
    variant_id: Optional[int] = None

    def matches(self, item: OrderItem) -> bool:
        return self.product_id == item.product_id and self.variant_id == item.variant_id


ItemKey = Tuple[int, Optional[int]]


def validate_return_items(
    order_items: List[OrderItem],
    requested: Iterable[dict],
    already_returned: Optional[Dict[ItemKey, int]] = None,
) -> List[ReturnItem]:
    """
    按原订单校验退货明细

    规则：至少一项；每项必须存在于订单中；同一商品（含规格）的多行合并计算；
    合并后数量 + 已退款数量 <= 下单数量。标题与单价取自订单。
    """
    already_returned = already_returned or {}
    merged: Dict[ItemKey, ReturnItem] = {}
    for raw in requested:
        product_id = raw["product_id"]
        variant_id = raw.get("variant_id")
        quantity = raw["quantity"]
        order_item = next(
            (oi for oi in order_items if oi.product_id == product_id and oi.variant_id == variant_id),
            None,
        )
        if order_item is None:
            raise DomainValidationException(
                f"商品 {product_id} 不在订单中",
                field="items",
            )
        if quantity <= 0:
            raise DomainValidationException(f"退货数量 {quantity} 无效", field="items")

        key = (product_id, variant_id)
        line = merged.get(key)
        if line is None:
            line = merged[key] = ReturnItem(
                product_id=product_id,
                variant_id=variant_id,
                title=order_item.title,
                quantity=0,
                unit_price=order_item.unit_price,
            )
        line.quantity += quantity

        returnable = order_item.quantity - already_returned.get(key, 0)
        if line.quantity > returnable:
            raise DomainValidationException(
                f"退货数量 {line.quantity} 超过可退数量 {returnable}（下单数量 {order_item.quantity}）",
                field="items",
                details={"product_id": product_id, "variant_id": variant_id, "returnable": returnable},
            )
    if not merged:
        raise DomainValidationException("至少需要退回一件商品", field="items")
    return list(merged.values())


def calculate_refund_amount(items: Iterable[ReturnItem]) -> int:
    """退款金额 = sum(单价 * 数量)"""
    return sum(item.unit_price * item.quantity for item in items)


def is_full_return(
    order_items: Iterable[OrderItem],
    items: Iterable[ReturnItem],
    already_returned: Optional[Dict[ItemKey, int]] = None,
) -> bool:
    """本次退货加上已退款数量是否覆盖订单全部商品与数量"""
    items = list(items)
    already_returned = already_returned or {}
    for order_item in order_items:
        returned = sum(ri.quantity for ri in items if ri.matches(order_item))
        returned += already_returned.get((order_item.product_id, order_item.variant_id), 0)
        if returned < order_item.quantity:
            return False
    return True


@dataclass
class ReturnRequest:
    """
    退货请求聚合

    业务规则：
    1. requested -> approved/rejected，approved -> received，received -> refunded
    2. refund_reference 存在表示渠道退款进行中，不能重复发起
    3. 只有 received 状态才能发起退款
    """

    id: Optional[int]
    order_id: int
    account_id: int
    items: List[ReturnItem]
    reason: str
    status: ReturnStatus = ReturnStatus.REQUESTED
    customer_id: Optional[int] = None
    refund_amount: Optional[int] = None
    refund_reference: Optional[str] = None
    failure_reason: Optional[str] = None
    requested_at: Optional[datetime] = None
    refunded_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        self.items = [
            item if isinstance(item, ReturnItem) else ReturnItem(**item)
            for item in (self.items or [])
        ]
        self.status = ReturnStatus(self.status)
        if self.refund_amount is None and self.items:
            self.refund_amount = calculate_refund_amount(self.items)
        self.requested_at = ensure_utc(self.requested_at)
        self.refunded_at = ensure_utc(self.refunded_at)
        self.updated_at = ensure_utc(self.updated_at)

    def transition(self, target: ReturnStatus) -> None:
        target = ReturnStatus(target)
        if target not in VALID_TRANSITIONS.get(self.status, set()):
            raise InvalidStateTransitionException("return", self.status.value, target.value)
        self.status = target
        self.updated_at = datetime.now(timezone.utc)

    @property
    def refund_in_flight(self) -> bool:
        return self.refund_reference is not None

    def begin_refund(self, reference: str) -> None:
        self.refund_reference = reference
        self.failure_reason = None
        self.updated_at = datetime.now(timezone.utc)

    def clear_refund(self, reason: Optional[str] = None) -> None:
        """渠道失败：清除引用，保持 received 以便人工重试"""
        self.refund_reference = None
        self.failure_reason = reason
        self.updated_at = datetime.now(timezone.utc)

    def mark_refunded(self, reference: Optional[str] = None) -> None:
        self.transition(ReturnStatus.REFUNDED)
        if reference:
            self.refund_reference = reference
        self.refunded_at = self.updated_at


def returned_quantities(returns: Iterable[ReturnRequest]) -> Dict[ItemKey, int]:
    """已退款的退货按 (商品, 规格) 累计数量"""
    totals: Dict[ItemKey, int] = {}
    for ret in returns:
        if ret.status != ReturnStatus.REFUNDED:
            continue
        for item in ret.items:
            key = (item.product_id, item.variant_id)
            totals[key] = totals.get(key, 0) + item.quantity
    return totals


def refunded_total(returns: Iterable[ReturnRequest]) -> int:
    """已退款的退货金额合计（面向顾客的全额）"""
    return sum(ret.refund_amount or 0 for ret in returns if ret.status == ReturnStatus.REFUNDED)
