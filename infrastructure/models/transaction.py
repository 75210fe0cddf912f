"""
交易数据库模型 - 只追加的账本流水
"""
from sqlalchemy import (
    BigInteger, Column, DateTime, ForeignKey, Index, Integer, JSON, String, Text
)
from datetime import datetime, timezone

from .base import Base


class TransactionModel(Base):
    """
    交易数据库模型

    idempotency_key 唯一约束替代按描述文本匹配的去重方式
    """
    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True, index=True)

    account_id = Column(
        Integer,
        ForeignKey("accounts.id"),
        nullable=False,
        index=True,
        comment="账户ID"
    )
    order_id = Column(Integer, nullable=True, index=True, comment="关联订单ID")

    type = Column(
        String(30),
        nullable=False,
        comment="交易类型: sale/refund/payout/fee/credit/transfer/ad_payment/subscription"
    )
    direction = Column(String(10), nullable=False, comment="方向: credit/debit")
    amount = Column(BigInteger, nullable=False, comment="金额（最小货币单位，恒为正）")
    currency = Column(String(3), nullable=False, comment="货币代码")
    balance_field = Column(String(20), nullable=False, comment="作用的余额: available/pending")
    balance_before = Column(BigInteger, nullable=False, comment="变动前余额")
    balance_after = Column(BigInteger, nullable=False, comment="变动后余额")

    status = Column(
        String(20),
        nullable=False,
        default="completed",
        comment="状态: pending/completed/failed/reversed"
    )
    reference = Column(String(200), nullable=True, index=True, comment="渠道引用")
    description = Column(Text, nullable=False, comment="描述")
    idempotency_key = Column(String(200), nullable=False, unique=True, comment="幂等键")

    # 使用 extra_metadata 避免与 SQLAlchemy 的 metadata 冲突
    extra_metadata = Column("metadata", JSON, nullable=True, comment="扩展元数据")

    processed_at = Column(DateTime(timezone=True), nullable=True, comment="处理时间")
    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="创建时间"
    )

    __table_args__ = (
        Index("ix_transactions_account_created", "account_id", "created_at"),
        Index("ix_transactions_account_type", "account_id", "type"),
    )

    def __repr__(self):
        return (
            f"<TransactionModel(id={self.id}, account_id={self.account_id}, type='{self.type}', "
            f"direction='{self.direction}', amount={self.amount})>"
        )
