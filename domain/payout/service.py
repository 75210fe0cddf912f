"""
提现领域服务 - 校验、先扣款后提交、失败补偿
"""
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from .entity import (
    Payout,
    PayoutMethod,
    PayoutStatus,
    REQUIRED_DETAILS,
    calculate_fee,
    mask_details,
)
from .events import PayoutCompleted, PayoutFailed, PayoutRequested
from .repository import PayoutRepository
from domain.common.exceptions import (
    AccountInactiveException,
    AccountNotFoundException,
    AlreadyProcessedException,
    InsufficientFundsException,
    PayoutNotAllowedException,
    PayoutNotFoundException,
)
from domain.ledger.entity import (
    Account,
    BalanceField,
    Direction,
    TransactionType,
    validate_amount,
)
from domain.ledger.service import LedgerDomainService


@dataclass(frozen=True)
class PayoutPolicy:
    """提现限制（来自配置）"""
    min_amount: int = 100
    cooldown: timedelta = timedelta(hours=24)
    two_factor_threshold: Optional[int] = None

    def requires_2fa(self, amount: int) -> bool:
        return self.two_factor_threshold is not None and amount >= self.two_factor_threshold


@dataclass
class PayoutEligibility:
    account_id: int
    balance: int
    currency: str
    min_amount: int
    reason: Optional[str] = None
    validation_error: Optional[str] = None

    @property
    def can_request_payout(self) -> bool:
        return self.validation_error is None


class PayoutDomainService:
    """
    提现领域服务

    职责：
    1. 提现请求校验（最低金额、余额、收款信息、2FA、并发、冷却期）
    2. 同一事务内创建提现并扣减可用余额（净额 payout + 手续费 fee 两笔）
    3. 确认 / 失败状态转换；失败时写入补偿入账
    """

    def __init__(
        self,
        payout_repository: PayoutRepository,
        ledger: LedgerDomainService,
        policy: Optional[PayoutPolicy] = None,
    ):
        self.payout_repository = payout_repository
        self.ledger = ledger
        self.policy = policy or PayoutPolicy()
        self.events: List = []

    async def request_payout(
        self,
        account_id: int,
        *,
        amount: int,
        method: PayoutMethod,
        details: dict,
        verified_2fa: bool = False,
        now: Optional[datetime] = None,
    ) -> Payout:
        """
        创建提现并立即扣款

        业务规则：
        1. amount >= 最低提现金额，且 amount > 手续费
        2. amount <= 可用余额
        3. 必填收款字段存在
        4. 需要 2FA 时必须已验证
        5. 不允许同时存在进行中的提现
        6. 距上次完成的提现需超过冷却期
        """
        validate_amount(amount)
        now = now or datetime.now(timezone.utc)
        method = PayoutMethod(method)

        if amount < self.policy.min_amount:
            raise PayoutNotAllowedException(
                f"Minimum payout amount is {self.policy.min_amount}",
                reason="below_minimum",
                field="amount",
            )

        fee = calculate_fee(amount, method)
        if amount <= fee:
            raise PayoutNotAllowedException(
                f"Payout amount {amount} does not cover the fee {fee}",
                reason="below_fee",
                field="amount",
            )

        required = REQUIRED_DETAILS[method]
        if not details.get(required):
            raise PayoutNotAllowedException(
                f"{required} is required for {method.value} payouts",
                reason="missing_details",
                field=required,
            )

        requires_2fa = self.policy.requires_2fa(amount)
        if requires_2fa and not verified_2fa:
            raise PayoutNotAllowedException(
                "Two-factor verification is required for this payout",
                reason="2fa_required",
                field="verified_2fa",
            )

        account = await self.ledger.account_repository.get_for_update(account_id)
        if account is None:
            raise AccountNotFoundException(account_id)
        await self.check_account(account, amount, now)

        payout = await self.payout_repository.create(Payout(
            id=None,
            account_id=account_id,
            amount=amount,
            currency=account.currency,
            fee=fee,
            method=method,
            details=mask_details(details),
            status=PayoutStatus.PENDING,
            requires_2fa=requires_2fa,
            verified_2fa=verified_2fa,
            requested_at=now,
            updated_at=now,
        ))

        # 总额一次性扣减：净额记为 payout，手续费单独记为 fee
        entry = await self.ledger.apply_entry(
            account_id,
            type=TransactionType.PAYOUT,
            direction=Direction.DEBIT,
            amount=payout.net_amount,
            description=f"Payout #{payout.id} ({method.value})",
            balance_field=BalanceField.AVAILABLE,
            idempotency_key=f"payout:{payout.id}:debit",
            metadata={"payout_id": payout.id},
        )
        if fee > 0:
            await self.ledger.apply_entry(
                account_id,
                type=TransactionType.FEE,
                direction=Direction.DEBIT,
                amount=fee,
                description=f"Payout #{payout.id} fee",
                balance_field=BalanceField.AVAILABLE,
                idempotency_key=f"payout:{payout.id}:fee",
                metadata={"payout_id": payout.id},
            )

        payout.transaction_id = entry.transaction.id
        payout = await self.payout_repository.update(payout)

        self.events.append(PayoutRequested(
            payout_id=payout.id,
            account_id=account_id,
            amount=amount,
            currency=payout.currency,
        ))
        return payout

    async def check_account(self, account: Account, amount: int, now: datetime) -> None:
        """账户级校验：状态、可用余额、进行中的提现、冷却期"""
        if not account.is_active:
            raise AccountInactiveException(account.id, account.status.value)
        if account.balance < amount:
            raise InsufficientFundsException(
                account_id=account.id,
                balance_field=BalanceField.AVAILABLE.value,
                available=account.balance,
                requested=amount,
            )

        if await self.payout_repository.has_open_payout(account.id):
            raise PayoutNotAllowedException(
                "Another payout is already in progress",
                reason="payout_in_progress",
            )

        last = await self.payout_repository.get_last_completed(account.id)
        if last is not None and last.processed_at is not None:
            if now - last.processed_at < self.policy.cooldown:
                raise PayoutNotAllowedException(
                    "Please wait before requesting another payout",
                    reason="cooldown",
                )

    async def eligibility(self, account_id: int, now: Optional[datetime] = None) -> PayoutEligibility:
        """以全部可用余额为金额预检提现条件，不加锁、不写入"""
        now = now or datetime.now(timezone.utc)
        account = await self.ledger.account_repository.get_by_id(account_id)
        if account is None:
            raise AccountNotFoundException(account_id)

        result = PayoutEligibility(
            account_id=account_id,
            balance=account.balance,
            currency=account.currency,
            min_amount=self.policy.min_amount,
        )
        try:
            if account.balance < self.policy.min_amount:
                raise PayoutNotAllowedException(
                    f"Minimum payout amount is {self.policy.min_amount}",
                    reason="below_minimum",
                    field="amount",
                )
            await self.check_account(account, account.balance, now)
        except (AccountInactiveException, InsufficientFundsException, PayoutNotAllowedException) as exc:
            result.reason = exc.details.get("reason") or exc.error_type
            result.validation_error = exc.message
        return result

    async def _load_open(self, payout_id: int, operation: str) -> Payout:
        payout = await self.payout_repository.get_for_update(payout_id)
        if payout is None:
            raise PayoutNotFoundException(payout_id)
        # 幂等：终态提现不再处理
        if payout.is_terminal:
            raise AlreadyProcessedException(operation, f"payout:{payout_id}:{payout.status.value}")
        return payout

    async def mark_processing(self, payout_id: int, reference: str) -> Payout:
        payout = await self._load_open(payout_id, "payout_submit")
        payout.mark_processing(reference)
        return await self.payout_repository.update(payout)

    async def complete_payout(self, payout_id: int, reference: Optional[str] = None) -> Payout:
        """确认到账：不再变动余额"""
        payout = await self._load_open(payout_id, "payout_confirm")
        payout.mark_completed(reference)
        updated = await self.payout_repository.update(payout)

        self.events.append(PayoutCompleted(
            payout_id=updated.id,
            account_id=updated.account_id,
            amount=updated.amount,
            currency=updated.currency,
            reference=updated.reference,
        ))
        return updated

    async def fail_payout(self, payout_id: int, reason: Optional[str] = None) -> Payout:
        """
        标记失败并补偿

        业务规则：状态转换与补偿入账在同一事务内完成；
        原扣款交易不修改，补偿是一笔新的 credit。
        """
        payout = await self._load_open(payout_id, "payout_fail")
        payout.mark_failed(reason)

        await self.ledger.apply_entry(
            payout.account_id,
            type=TransactionType.CREDIT,
            direction=Direction.CREDIT,
            amount=payout.amount,
            description=f"Payout #{payout.id} reversal",
            balance_field=BalanceField.AVAILABLE,
            idempotency_key=f"payout:{payout.id}:reversal",
            reference=payout.reference,
            metadata={
                "payout_id": payout.id,
                "reverses_transaction_id": payout.transaction_id,
                "reason": reason,
            },
        )

        updated = await self.payout_repository.update(payout)
        self.events.append(PayoutFailed(
            payout_id=updated.id,
            account_id=updated.account_id,
            amount=updated.amount,
            currency=updated.currency,
            reference=updated.reference,
            reason=reason,
        ))
        return updated

    def clear_events(self) -> List:
        """清空并返回领域事件"""
        events = self.events.copy()
        self.events.clear()
        return events
