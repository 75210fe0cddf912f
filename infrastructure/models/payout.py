"""
提现数据库模型
"""
from sqlalchemy import (
    BigInteger, Boolean, Column, DateTime, ForeignKey, Index, Integer, JSON, String, Text
)
from datetime import datetime, timezone

from .base import Base


class PayoutModel(Base):
    """提现数据库模型"""
    __tablename__ = "payouts"

    id = Column(Integer, primary_key=True, index=True)
    account_id = Column(Integer, ForeignKey("accounts.id"), nullable=False, index=True, comment="账户ID")

    amount = Column(BigInteger, nullable=False, comment="提现总额（扣减可用余额的金额）")
    fee = Column(BigInteger, nullable=False, default=0, comment="手续费")
    currency = Column(String(3), nullable=False, comment="货币代码")

    status = Column(
        String(20),
        nullable=False,
        default="pending",
        comment="提现状态: pending/processing/completed/failed/cancelled"
    )
    method = Column(String(30), nullable=False, comment="提现方式: mobile_money/bank_transfer/paypal")
    details = Column(JSON, nullable=True, comment="收款信息（已脱敏）")
    reference = Column(String(200), nullable=True, index=True, comment="渠道提现ID")

    requires_2fa = Column(Boolean, nullable=False, default=False, comment="是否需要二次验证")
    verified_2fa = Column(Boolean, nullable=False, default=False, comment="是否已二次验证")

    transaction_id = Column(Integer, ForeignKey("transactions.id"), nullable=True, comment="扣款交易ID")
    failure_reason = Column(Text, nullable=True, comment="失败原因")

    requested_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="申请时间"
    )
    processed_at = Column(DateTime(timezone=True), nullable=True, comment="终结时间")
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="更新时间"
    )

    __table_args__ = (
        Index("ix_payouts_account_status", "account_id", "status"),
        Index("ix_payouts_status_requested", "status", "requested_at"),
    )

    def __repr__(self):
        return (
            f"<PayoutModel(id={self.id}, account_id={self.account_id}, "
            f"amount={self.amount}, status='{self.status}')>"
        )
