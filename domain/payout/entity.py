"""
提现领域实体 - 提现状态机与手续费规则
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from domain.common.exceptions import (
    DomainValidationException,
    InvalidStateTransitionException,
)
from domain.ledger.entity import ensure_utc, validate_amount


class PayoutStatus(str, Enum):
    """提现状态枚举"""
    PENDING = "pending"         # 已扣款，等待提交渠道
    PROCESSING = "processing"   # 渠道已受理
    COMPLETED = "completed"     # 渠道确认到账（终态）
    FAILED = "failed"           # 失败并已冲正（终态）
    CANCELLED = "cancelled"     # 已取消（终态）


class PayoutMethod(str, Enum):
    MOBILE_MONEY = "mobile_money"
    BANK_TRANSFER = "bank_transfer"
    PAYPAL = "paypal"


TERMINAL_STATUSES = frozenset({PayoutStatus.COMPLETED, PayoutStatus.FAILED, PayoutStatus.CANCELLED})
OPEN_STATUSES = frozenset({PayoutStatus.PENDING, PayoutStatus.PROCESSING})

# 各提现方式必填的收款字段
REQUIRED_DETAILS = {
    PayoutMethod.MOBILE_MONEY: "phone_number",
    PayoutMethod.BANK_TRANSFER: "account_number",
    PayoutMethod.PAYPAL: "email",
}

# 收款渠道代码（mobile money 运营商）
PROVIDER_METHODS = {
    "mtn_bj": "MTN Mobile Money (Benin)",
    "moov_bj": "Moov Money (Benin)",
    "mtn_ci": "MTN Mobile Money (Cote d'Ivoire)",
    "orange_ci": "Orange Money (Cote d'Ivoire)",
    "wave_ci": "Wave (Cote d'Ivoire)",
    "wave_sn": "Wave (Senegal)",
    "orange_sn": "Orange Money (Senegal)",
    "togocel": "Togocel Money (Togo)",
}


def _percent_half_up(amount: int, per_mille: int) -> int:
    """amount * per_mille / 1000，四舍五入（整数运算）"""
    return (amount * per_mille + 500) // 1000


def calculate_fee(amount: int, method: PayoutMethod | str) -> int:
    """
    计算提现手续费（最小货币单位）

    mobile_money: 1%，最低 100
    bank_transfer: 1.5%，最低 500
    paypal: 2%
    其他: 0
    """
    if method == PayoutMethod.MOBILE_MONEY:
        return max(100, _percent_half_up(amount, 10))
    if method == PayoutMethod.BANK_TRANSFER:
        return max(500, _percent_half_up(amount, 15))
    if method == PayoutMethod.PAYPAL:
        return _percent_half_up(amount, 20)
    return 0


def mask_value(value: Optional[str], visible: int = 4) -> Optional[str]:
    """仅保留末尾几位，其余替换为 *"""
    if not value:
        return value
    if len(value) <= visible:
        return "*" * len(value)
    return "*" * (len(value) - visible) + value[-visible:]


def mask_email(value: Optional[str]) -> Optional[str]:
    if not value or "@" not in value:
        return mask_value(value)
    local, domain = value.split("@", 1)
    return f"{local[:1]}***@{domain}"


def mask_details(details: dict) -> dict:
    """存储用的收款信息：账号/手机号/邮箱脱敏"""
    masked = dict(details)
    for key in ("phone_number", "account_number"):
        if masked.get(key):
            masked[key] = mask_value(masked[key])
    if masked.get("email"):
        masked["email"] = mask_email(masked["email"])
    return masked


@dataclass
class Payout:
    """
    提现聚合根

    业务规则：
    1. 创建即扣款（先扣款后提交渠道）
    2. pending -> processing -> completed，completed 之前任意时刻可 -> failed
    3. completed / failed / cancelled 为终态
    4. 失败必须伴随一笔补偿入账
    """

    id: Optional[int]
    account_id: int
    amount: int
    currency: str
    fee: int
    method: PayoutMethod
    details: dict = field(default_factory=dict)
    status: PayoutStatus = PayoutStatus.PENDING
    reference: Optional[str] = None
    requires_2fa: bool = False
    verified_2fa: bool = False
    transaction_id: Optional[int] = None
    failure_reason: Optional[str] = None
    requested_at: Optional[datetime] = None
    processed_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        validate_amount(self.amount)
        if self.fee < 0 or self.fee >= self.amount:
            raise DomainValidationException(
                f"手续费 {self.fee} 必须小于提现金额 {self.amount}",
                field="amount",
            )
        self.method = PayoutMethod(self.method)
        self.status = PayoutStatus(self.status)
        if self.details is None:
            self.details = {}
        self.requested_at = ensure_utc(self.requested_at)
        self.processed_at = ensure_utc(self.processed_at)
        self.updated_at = ensure_utc(self.updated_at)

    @property
    def net_amount(self) -> int:
        """收款方实际到账金额"""
        return self.amount - self.fee

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def _transition(self, target: PayoutStatus, allowed: frozenset) -> None:
        if self.status not in allowed:
            raise InvalidStateTransitionException("payout", self.status.value, target.value)
        self.status = target
        self.updated_at = datetime.now(timezone.utc)

    def mark_processing(self, reference: str) -> None:
        """渠道受理：记录渠道引用"""
        self._transition(PayoutStatus.PROCESSING, frozenset({PayoutStatus.PENDING}))
        self.reference = reference

    def mark_completed(self, reference: Optional[str] = None) -> None:
        self._transition(PayoutStatus.COMPLETED, OPEN_STATUSES)
        if reference:
            self.reference = reference
        self.processed_at = self.updated_at
        self.failure_reason = None

    def mark_failed(self, reason: Optional[str] = None) -> None:
        self._transition(PayoutStatus.FAILED, OPEN_STATUSES)
        self.failure_reason = reason
        self.processed_at = self.updated_at

    def is_stale(self, cutoff: datetime) -> bool:
        return self.status in OPEN_STATUSES and self.requested_at is not None and self.requested_at <= cutoff
