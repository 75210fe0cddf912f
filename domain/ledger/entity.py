"""
账本领域实体 - 账户余额对与不可变交易记录
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from fractions import Fraction
from typing import Optional

from domain.common.exceptions import (
    DomainValidationException,
    InsufficientFundsException,
    InvalidAmountException,
)


class AccountStatus(str, Enum):
    """账户状态枚举"""
    ACTIVE = "active"
    SUSPENDED = "suspended"
    CLOSED = "closed"


class BalanceField(str, Enum):
    """交易作用的余额字段"""
    AVAILABLE = "available"  # balance，可提现
    PENDING = "pending"      # pending_balance，冻结期内


class TransactionType(str, Enum):
    SALE = "sale"
    REFUND = "refund"
    PAYOUT = "payout"
    FEE = "fee"
    CREDIT = "credit"
    TRANSFER = "transfer"
    AD_PAYMENT = "ad_payment"
    SUBSCRIPTION = "subscription"


class Direction(str, Enum):
    CREDIT = "credit"
    DEBIT = "debit"


class TransactionStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REVERSED = "reversed"


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """确保时间为 UTC 时区"""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def validate_amount(amount: object) -> int:
    """金额必须是正整数（最小货币单位）；bool 不是合法金额"""
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise InvalidAmountException(amount)
    return amount


@dataclass
class Account:
    """
    账户聚合根（一个卖家店铺一个账本主体）

    业务规则：
    1. balance 与 pending_balance 始终 >= 0
    2. 余额变动只能通过 apply()，且必须伴随一条交易记录
    3. 币种在账户创建时固定
    """

    id: Optional[int]
    owner_id: Optional[int]
    name: str
    currency: str
    balance: int = 0
    pending_balance: int = 0
    status: AccountStatus = AccountStatus.ACTIVE
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        if not self.currency or len(self.currency) != 3 or not self.currency.isalpha():
            raise DomainValidationException(
                f"Invalid currency code: {self.currency}",
                field="currency",
            )
        if self.balance < 0 or self.pending_balance < 0:
            raise DomainValidationException(
                "Account balances cannot be negative",
                field="balance",
            )
        self.created_at = ensure_utc(self.created_at)
        self.updated_at = ensure_utc(self.updated_at)

    @property
    def is_active(self) -> bool:
        return self.status == AccountStatus.ACTIVE

    def read(self, balance_field: BalanceField) -> int:
        if balance_field == BalanceField.AVAILABLE:
            return self.balance
        return self.pending_balance

    def apply(self, balance_field: BalanceField, direction: Direction, amount: int) -> tuple[int, int]:
        """
        对指定余额字段施加变动，返回 (before, after)

        业务规则：借记不能使余额为负；失败时不修改任何字段
        """
        validate_amount(amount)
        before = self.read(balance_field)
        if direction == Direction.CREDIT:
            after = before + amount
        else:
            after = before - amount
            if after < 0:
                raise InsufficientFundsException(
                    account_id=self.id or 0,
                    balance_field=balance_field.value,
                    available=before,
                    requested=amount,
                )
        if balance_field == BalanceField.AVAILABLE:
            self.balance = after
        else:
            self.pending_balance = after
        self.updated_at = datetime.now(timezone.utc)
        return before, after


@dataclass
class Transaction:
    """
    交易实体 - 唯一的审计线索

    completed 状态的交易写入后永不修改；纠错只能写一条反向交易。
    """

    id: Optional[int]
    account_id: int
    type: TransactionType
    direction: Direction
    amount: int
    currency: str
    balance_field: BalanceField
    balance_before: int
    balance_after: int
    description: str
    idempotency_key: str
    status: TransactionStatus = TransactionStatus.COMPLETED
    order_id: Optional[int] = None
    reference: Optional[str] = None
    metadata: dict = field(default_factory=dict)
    processed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    def __post_init__(self):
        validate_amount(self.amount)
        expected = (
            self.balance_before + self.amount
            if self.direction == Direction.CREDIT
            else self.balance_before - self.amount
        )
        if self.balance_after != expected:
            raise DomainValidationException(
                f"balance_after {self.balance_after} does not match {self.direction.value} of {self.amount}",
                field="balance_after",
            )
        if self.metadata is None:
            self.metadata = {}
        self.processed_at = ensure_utc(self.processed_at)
        self.created_at = ensure_utc(self.created_at)

    @property
    def signed_amount(self) -> int:
        return self.amount if self.direction == Direction.CREDIT else -self.amount


@dataclass
class ReplayReport:
    """按创建顺序重放已完成交易得到的余额，与缓存余额对比"""

    account_id: int
    balance: int
    pending_balance: int
    replayed_balance: int
    replayed_pending_balance: int
    transaction_count: int

    @property
    def consistent(self) -> bool:
        return (
            self.balance == self.replayed_balance
            and self.pending_balance == self.replayed_pending_balance
        )


@dataclass
class FinanceOverview:
    """账户收支汇总：只统计 completed 交易，transaction_count 统计全部"""

    account_id: int
    currency: str
    balance: int
    pending_balance: int
    total_credits: int = 0
    total_debits: int = 0
    total_commissions: int = 0
    total_payouts: int = 0
    revenue_30d: int = 0
    previous_revenue_30d: int = 0
    commissions_30d: int = 0
    transaction_count: int = 0

    @property
    def net_revenue(self) -> int:
        return self.total_credits - self.total_debits

    @property
    def revenue_trend(self) -> int:
        """近 30 天收入相对前 30 天的变化百分比（四舍五入）"""
        if self.previous_revenue_30d > 0:
            change = Fraction((self.revenue_30d - self.previous_revenue_30d) * 100, self.previous_revenue_30d)
            return math.floor(change + Fraction(1, 2))
        return 100 if self.revenue_30d > 0 else 0
