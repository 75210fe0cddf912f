"""
退货请求数据库模型
"""
from sqlalchemy import (
    BigInteger, Column, DateTime, ForeignKey, Integer, JSON, String, Text
)
from datetime import datetime, timezone

from .base import Base


class ReturnRequestModel(Base):
    """退货请求数据库模型"""
    __tablename__ = "return_requests"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True, comment="订单ID")
    account_id = Column(Integer, ForeignKey("accounts.id"), nullable=False, index=True, comment="卖家账户ID")
    customer_id = Column(Integer, nullable=True, comment="客户ID")

    items = Column(JSON, nullable=False, default=list, comment="退货明细")
    reason = Column(Text, nullable=False, comment="退货原因")
    status = Column(
        String(20),
        nullable=False,
        default="requested",
        comment="状态: requested/approved/rejected/received/refunded"
    )

    refund_amount = Column(BigInteger, nullable=True, comment="退款金额")
    refund_reference = Column(String(200), nullable=True, index=True, comment="渠道退款（提现）ID")
    failure_reason = Column(Text, nullable=True, comment="最近一次退款失败原因")

    requested_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="申请时间"
    )
    refunded_at = Column(DateTime(timezone=True), nullable=True, comment="退款完成时间")
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="更新时间"
    )

    def __repr__(self):
        return (
            f"<ReturnRequestModel(id={self.id}, order_id={self.order_id}, status='{self.status}')>"
        )
