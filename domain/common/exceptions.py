"""领域层业务异常定义，供领域与基础设施使用。

核心（core）层仅负责全局映射与异常处理，尽量避免领域层反向依赖核心层。
"""
from __future__ import annotations

from typing import Optional
from shared.codes import BusinessCode


class BusinessException(Exception):
    """业务异常基类"""

    def __init__(
        self,
        code: int,
        message: str,
        error_type: str = "BusinessError",
        details: Optional[dict] = None,
        field: Optional[str] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.error_type = error_type
        self.details = details
        self.field = field
        super().__init__(self.message)


class DomainValidationException(BusinessException):
    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        details: dict | None = None,
    ):
        super().__init__(
            code=BusinessCode.PARAM_VALIDATION_ERROR,
            message=message,
            error_type="DomainValidationError",
            details=details,
            field=field,
        )


# ─── 账本异常 ─────────────────────────────────────────────


class InvalidAmountException(BusinessException):
    """金额非正整数（最小货币单位）"""

    def __init__(self, amount: object):
        super().__init__(
            code=BusinessCode.INVALID_AMOUNT,
            message=f"Amount must be a positive integer in the smallest currency unit: {amount!r}",
            error_type="InvalidAmount",
            details={"amount": repr(amount)},
            field="amount",
        )


class InsufficientFundsException(BusinessException):
    """借记会使余额变为负数"""

    def __init__(self, account_id: int, balance_field: str, available: int, requested: int):
        super().__init__(
            code=BusinessCode.INSUFFICIENT_FUNDS,
            message=f"Insufficient funds on {balance_field}: available {available}, requested {requested}",
            error_type="InsufficientFunds",
            details={
                "account_id": account_id,
                "balance_field": balance_field,
                "available": available,
                "requested": requested,
            },
        )


class AlreadyProcessedException(BusinessException):
    """幂等保护命中：调用方视为成功的空操作"""

    def __init__(self, operation: str, key: str):
        super().__init__(
            code=BusinessCode.ALREADY_PROCESSED,
            message=f"{operation} already processed: {key}",
            error_type="AlreadyProcessed",
            details={"operation": operation, "key": key},
        )


class InvalidStateTransitionException(BusinessException):
    def __init__(self, entity: str, current: str, target: str):
        super().__init__(
            code=BusinessCode.INVALID_STATE_TRANSITION,
            message=f"{entity} cannot move from {current} to {target}",
            error_type="InvalidStateTransition",
            details={"entity": entity, "current": current, "target": target},
            field="status",
        )


class AccountInactiveException(BusinessException):
    def __init__(self, account_id: int, status: str):
        super().__init__(
            code=BusinessCode.ACCOUNT_INACTIVE,
            message=f"Account {account_id} is {status}",
            error_type="AccountInactive",
            details={"account_id": account_id, "status": status},
        )


class PayoutNotAllowedException(BusinessException):
    """提现请求未通过业务校验（冷却期、进行中的提现、2FA 等）"""

    def __init__(self, message: str, *, reason: str, field: str | None = None):
        super().__init__(
            code=BusinessCode.PAYOUT_NOT_ALLOWED,
            message=message,
            error_type="PayoutNotAllowed",
            details={"reason": reason},
            field=field,
        )


# ─── 资源不存在 ───────────────────────────────────────────


class AccountNotFoundException(BusinessException):
    def __init__(self, account_id: int):
        super().__init__(
            code=BusinessCode.ACCOUNT_NOT_FOUND,
            message="Account not found",
            error_type="AccountNotFound",
            details={"account_id": account_id},
        )


class OrderNotFoundException(BusinessException):
    def __init__(self, order_id: int):
        super().__init__(
            code=BusinessCode.ORDER_NOT_FOUND,
            message="Order not found",
            error_type="OrderNotFound",
            details={"order_id": order_id},
        )


class PayoutNotFoundException(BusinessException):
    def __init__(self, payout_id: int):
        super().__init__(
            code=BusinessCode.PAYOUT_NOT_FOUND,
            message="Payout not found",
            error_type="PayoutNotFound",
            details={"payout_id": payout_id},
        )


class ReturnNotFoundException(BusinessException):
    def __init__(self, return_id: int):
        super().__init__(
            code=BusinessCode.RETURN_NOT_FOUND,
            message="Return request not found",
            error_type="ReturnNotFound",
            details={"return_id": return_id},
        )


class ConfigurationException(BusinessException):
    """必需的密钥/URL 未配置"""

    def __init__(self, setting: str):
        super().__init__(
            code=BusinessCode.CONFIGURATION_ERROR,
            message=f"Required setting {setting} is not configured",
            error_type="ConfigurationError",
            details={"setting": setting},
        )
