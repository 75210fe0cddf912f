"""
订单数据库模型（结算相关字段）
"""
from sqlalchemy import (
    BigInteger, Column, DateTime, ForeignKey, Index, Integer, JSON, String, Text
)
from datetime import datetime, timezone

from .base import Base


class OrderModel(Base):
    """订单数据库模型，订单本身由结账流程拥有"""
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    account_id = Column(Integer, ForeignKey("accounts.id"), nullable=False, index=True, comment="卖家账户ID")
    order_number = Column(String(50), nullable=False, unique=True, comment="订单号")

    status = Column(
        String(20),
        nullable=False,
        default="pending",
        comment="订单状态: pending/paid/processing/shipped/delivered/cancelled/refunded"
    )
    payment_status = Column(
        String(20),
        nullable=False,
        default="pending",
        comment="支付状态: pending/paid/failed/refunded"
    )

    total_amount = Column(BigInteger, nullable=False, comment="订单总额")
    commission_amount = Column(BigInteger, nullable=False, default=0, comment="平台佣金")
    refunded_amount = Column(BigInteger, nullable=False, default=0, comment="卖家已承担的退款")
    currency = Column(String(3), nullable=False, default="XOF", comment="货币代码")

    # 下单时的客户联系信息快照
    customer_id = Column(Integer, nullable=True, index=True, comment="客户ID")
    customer_name = Column(String(200), nullable=True, comment="客户姓名")
    customer_email = Column(String(255), nullable=True, comment="客户邮箱")
    customer_phone = Column(String(50), nullable=True, comment="客户电话")

    items = Column(JSON, nullable=False, default=list, comment="订单明细")

    payment_reference = Column(String(200), nullable=True, index=True, comment="渠道支付ID")
    payment_failure_reason = Column(Text, nullable=True, comment="支付失败原因")

    paid_at = Column(DateTime(timezone=True), nullable=True, comment="支付时间")
    delivered_at = Column(DateTime(timezone=True), nullable=True, comment="签收时间")
    funds_released_at = Column(DateTime(timezone=True), nullable=True, comment="资金释放时间")
    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="创建时间"
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="更新时间"
    )

    __table_args__ = (
        Index(
            "ix_orders_release_scan",
            "status", "payment_status", "funds_released_at", "delivered_at",
        ),
    )

    def __repr__(self):
        return (
            f"<OrderModel(id={self.id}, order_number='{self.order_number}', "
            f"status='{self.status}', payment_status='{self.payment_status}')>"
        )
