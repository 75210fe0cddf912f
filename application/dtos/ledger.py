"""
数据传输对象（DTO）- 账本、结算、提现、退款的应用层出入参
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, model_serializer

from core.config import settings
from domain.payout.entity import PayoutMethod


class DTOBase(BaseModel):
    """Base DTO: unify datetime serialization to UTC-Z for all subclasses."""

    @model_serializer(mode="wrap")
    def _serialize_model(self, handler):  # type: ignore[override]
        data = handler(self)

        def convert(value):
            if isinstance(value, datetime):
                ts = value if value.tzinfo else value.replace(tzinfo=timezone.utc)
                s = ts.astimezone(timezone.utc).isoformat()
                return s.replace("+00:00", "Z")
            if isinstance(value, list):
                return [convert(v) for v in value]
            if isinstance(value, dict):
                return {k: convert(v) for k, v in value.items()}
            return value

        return convert(data)


class PaginationParams(DTOBase):
    """分页参数（页码/每页大小），自动派生 skip/limit"""
    page: int = Field(1, ge=1, description="页码，从1开始")
    size: int = Field(
        default=settings.DEFAULT_PAGE_SIZE,
        ge=1,
        le=settings.MAX_PAGE_SIZE,
        description="每页大小",
    )

    @property
    def skip(self) -> int:
        return (self.page - 1) * self.size

    @property
    def limit(self) -> int:
        return self.size


# ─── 账本 ────────────────────────────────────────────────


class AccountDTO(DTOBase):
    id: int
    name: str
    currency: str
    balance: int
    pending_balance: int
    status: str
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class TransactionDTO(DTOBase):
    id: int
    account_id: int
    order_id: Optional[int] = None
    type: str
    direction: str
    amount: int
    currency: str
    balance_field: str
    balance_before: int
    balance_after: int
    status: str
    reference: Optional[str] = None
    description: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class ReplayReportDTO(DTOBase):
    account_id: int
    balance: int
    pending_balance: int
    replayed_balance: int
    replayed_pending_balance: int
    transaction_count: int
    consistent: bool

    model_config = ConfigDict(from_attributes=True)


class FinanceOverviewDTO(DTOBase):
    """收支汇总：金额均为最小货币单位，revenue_trend 为百分比"""
    account_id: int
    currency: str
    balance: int
    pending_balance: int
    total_credits: int
    total_debits: int
    total_commissions: int
    total_payouts: int
    net_revenue: int
    revenue_30d: int
    commissions_30d: int
    revenue_trend: int
    transaction_count: int


# ─── 结算 / 后台任务报告 ─────────────────────────────────


class ReleaseReport(DTOBase):
    released: int = 0
    skipped: int = 0
    failed: int = 0
    released_order_ids: list[int] = Field(default_factory=list)


class StaleReport(DTOBase):
    checked: int = 0
    completed: int = 0
    failed: int = 0
    unchanged: int = 0
    errors: int = 0


# ─── 提现 ────────────────────────────────────────────────


class PayoutDetailsDTO(DTOBase):
    """收款信息；provider 为渠道方式代码（如 mtn_bj）"""
    provider: str
    account_name: Optional[str] = None
    account_number: Optional[str] = None
    bank_code: Optional[str] = None
    phone_number: Optional[str] = None
    email: Optional[str] = None


class PayoutRequestDTO(DTOBase):
    amount: int = Field(gt=0, description="最小货币单位")
    method: PayoutMethod
    details: PayoutDetailsDTO
    verified_2fa: bool = False
    # 卖家联系人（由上游身份层提供，用于渠道 customer 字段）
    contact_email: str
    contact_name: Optional[str] = None


class PayoutDTO(DTOBase):
    id: int
    account_id: int
    amount: int
    fee: int
    net_amount: int
    currency: str
    status: str
    method: str
    details: dict[str, Any] = Field(default_factory=dict)
    reference: Optional[str] = None
    requires_2fa: bool = False
    failure_reason: Optional[str] = None
    requested_at: Optional[datetime] = None
    processed_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class PayoutEligibilityDTO(DTOBase):
    account_id: int
    balance: int
    currency: str
    min_amount: int
    can_request_payout: bool
    reason: Optional[str] = None
    validation_error: Optional[str] = None


# ─── 支付 / 退款 ─────────────────────────────────────────


class CheckoutDTO(DTOBase):
    order_id: int
    payment_id: str
    checkout_url: str


class VerifyResultDTO(DTOBase):
    """主动查询结果：provider_status 为渠道原始状态，outcome 为内部处理结果"""
    provider_status: Optional[str] = None
    outcome: str


class RefundInitiationDTO(DTOBase):
    return_id: int
    refund_reference: str
    refund_amount: int


class ReturnItemInput(DTOBase):
    product_id: int
    variant_id: Optional[int] = None
    quantity: int = Field(gt=0)


class ReturnCreateDTO(DTOBase):
    order_id: int
    customer_id: Optional[int] = None
    reason: str = Field(min_length=1, max_length=1000)
    items: list[ReturnItemInput] = Field(min_length=1)


class ReturnItemDTO(DTOBase):
    product_id: int
    variant_id: Optional[int] = None
    title: str
    quantity: int
    unit_price: int

    model_config = ConfigDict(from_attributes=True)


class ReturnDTO(DTOBase):
    id: int
    order_id: int
    account_id: int
    customer_id: Optional[int] = None
    status: str
    reason: str
    items: list[ReturnItemDTO] = Field(default_factory=list)
    refund_amount: int
    refund_reference: Optional[str] = None
    failure_reason: Optional[str] = None
    requested_at: Optional[datetime] = None
    refunded_at: Optional[datetime] = None
