"""
账户数据库模型 - 余额对缓存
"""
from sqlalchemy import BigInteger, CheckConstraint, Column, DateTime, Integer, String
from datetime import datetime, timezone

from .base import Base


class AccountModel(Base):
    """
    账户数据库模型

    balance / pending_balance 为交易记录的缓存投影，
    只能由账本服务修改
    """
    __tablename__ = "accounts"

    id = Column(Integer, primary_key=True, index=True)
    owner_id = Column(Integer, nullable=True, index=True, comment="店主用户ID")
    name = Column(String(200), nullable=False, comment="店铺名称")
    currency = Column(String(3), nullable=False, default="XOF", comment="货币代码 ISO-4217")

    # 金额均为最小货币单位的整数
    balance = Column(BigInteger, nullable=False, default=0, comment="可用余额")
    pending_balance = Column(BigInteger, nullable=False, default=0, comment="冻结中余额")

    status = Column(
        String(20),
        nullable=False,
        default="active",
        index=True,
        comment="账户状态: active/suspended/closed"
    )

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
        CheckConstraint("balance >= 0", name="ck_accounts_balance_non_negative"),
        CheckConstraint("pending_balance >= 0", name="ck_accounts_pending_balance_non_negative"),
    )

    def __repr__(self):
        return (
            f"<AccountModel(id={self.id}, balance={self.balance}, "
            f"pending_balance={self.pending_balance}, status='{self.status}')>"
        )
