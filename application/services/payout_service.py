"""
Payout use-cases: debit-then-attempt withdrawals with compensation.

Pattern per request: transactional step (validate + debit + persist intent)
-> provider call outside any Unit of Work -> transactional step applying the
provider's answer.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional

from application.dtos.ledger import (
    PayoutDTO,
    PayoutEligibilityDTO,
    PayoutRequestDTO,
    StaleReport,
    VerifyResultDTO,
)
from application.dtos.payments import Customer, InitializePayout
from application.ports.notifier import Notifier, NullNotifier
from application.ports.payment_gateway import PaymentGateway
from application.services.ledger_service import ledger_for, publish_events
from core.config import settings
from core.logging_config import get_logger
from domain.common.exceptions import (
    AccountNotFoundException,
    AlreadyProcessedException,
    BusinessException,
    PayoutNotFoundException,
)
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.payout.entity import Payout, PayoutMethod, PayoutStatus
from domain.payout.service import PayoutDomainService, PayoutPolicy
from shared.codes.payment_codes import ProviderOutcome, map_provider_status


logger = get_logger(__name__)


def policy_from_settings() -> PayoutPolicy:
    ledger = settings.ledger
    return PayoutPolicy(
        min_amount=ledger.min_payout_amount,
        cooldown=timedelta(hours=ledger.payout_cooldown_hours),
        two_factor_threshold=ledger.payout_2fa_threshold,
    )


def payout_to_dto(payout: Payout) -> PayoutDTO:
    return PayoutDTO(
        id=payout.id,
        account_id=payout.account_id,
        amount=payout.amount,
        fee=payout.fee,
        net_amount=payout.net_amount,
        currency=payout.currency,
        status=payout.status.value,
        method=payout.method.value,
        details=payout.details,
        reference=payout.reference,
        requires_2fa=payout.requires_2fa,
        failure_reason=payout.failure_reason,
        requested_at=payout.requested_at,
        processed_at=payout.processed_at,
    )


def build_recipient(method: PayoutMethod, details: dict) -> dict[str, str]:
    """Provider recipient block from the unmasked payout details."""
    if method == PayoutMethod.MOBILE_MONEY:
        return {"msisdn": details["phone_number"]}
    if method == PayoutMethod.BANK_TRANSFER:
        recipient = {"account_number": details["account_number"]}
        for key in ("bank_code", "account_name"):
            if details.get(key):
                recipient[key] = details[key]
        return recipient
    return {"email": details["email"]}


class PayoutService:
    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        gateway: PaymentGateway,
        *,
        policy: Optional[PayoutPolicy] = None,
        stale_hours: int = 72,
        notifier: Optional[Notifier] = None,
    ) -> None:
        self._uow_factory = uow_factory
        self.gateway = gateway
        self._policy = policy or PayoutPolicy()
        self._stale = timedelta(hours=stale_hours)
        self._notifier = notifier or NullNotifier()

    def _domain(self, uow: AbstractUnitOfWork) -> PayoutDomainService:
        return PayoutDomainService(uow.payout_repository, ledger_for(uow), self._policy)

    async def request_payout(self, account_id: int, req: PayoutRequestDTO) -> PayoutDTO:
        raw_details = req.details.model_dump(exclude_none=True)

        # 1. Transactional: validate, create payout, debit gross amount
        async with self._uow_factory() as uow:
            domain = self._domain(uow)
            payout = await domain.request_payout(
                account_id,
                amount=req.amount,
                method=req.method,
                details=raw_details,
                verified_2fa=req.verified_2fa,
            )
            events = domain.clear_events() + domain.ledger.clear_events()
        publish_events(self._notifier, events)
        logger.info(
            "payout_requested",
            payout_id=payout.id,
            account_id=account_id,
            amount=payout.amount,
            fee=payout.fee,
        )

        # 2. Provider call outside the Unit of Work, net amount to the recipient
        customer = Customer.from_full_name(
            req.contact_name,
            req.contact_email,
            fallback_first="Vendor",
        )
        try:
            receipt = await self.gateway.initialize_payout(InitializePayout(
                amount=payout.net_amount,
                currency=payout.currency,
                description=f"Payout #{payout.id}",
                customer=customer,
                method=req.details.provider,
                recipient=build_recipient(payout.method, raw_details),
                metadata={"payout_id": payout.id, "account_id": account_id},
            ))
        except BusinessException as exc:
            # ProviderError / ProviderUnreachable / ConfigurationError: compensate
            logger.warning("payout_provider_rejected", payout_id=payout.id, error=exc.message)
            failed = await self.fail_payout(payout.id, exc.message)
            return payout_to_dto(failed) if failed else payout_to_dto(payout)

        # 3. Transactional: record the provider reference
        async with self._uow_factory() as uow:
            try:
                payout = await self._domain(uow).mark_processing(payout.id, receipt.payout_id)
            except AlreadyProcessedException:
                # A webhook already finalized it between steps 2 and 3
                payout = await uow.payout_repository.get_by_id(payout.id)
        return payout_to_dto(payout)

    async def confirm_payout(self, payout_id: int, reference: Optional[str] = None) -> Optional[Payout]:
        """processing|pending -> completed; terminal payouts are a no-op (returns None)."""
        try:
            async with self._uow_factory() as uow:
                domain = self._domain(uow)
                payout = await domain.complete_payout(payout_id, reference)
                events = domain.clear_events()
        except AlreadyProcessedException:
            logger.info("payout_confirm_noop", payout_id=payout_id)
            return None
        logger.info("payout_completed", payout_id=payout_id, reference=payout.reference)
        publish_events(self._notifier, events)
        return payout

    async def fail_payout(self, payout_id: int, reason: Optional[str] = None) -> Optional[Payout]:
        """Fail + compensating credit in one Unit of Work; terminal payouts are a no-op."""
        try:
            async with self._uow_factory() as uow:
                domain = self._domain(uow)
                payout = await domain.fail_payout(payout_id, reason)
                events = domain.clear_events() + domain.ledger.clear_events()
        except AlreadyProcessedException:
            logger.info("payout_fail_noop", payout_id=payout_id)
            return None
        logger.warning("payout_failed", payout_id=payout_id, reason=reason, amount=payout.amount)
        publish_events(self._notifier, events)
        return payout

    async def verify_payout(self, payout_id: int, account_id: Optional[int] = None) -> VerifyResultDTO:
        """Re-query the provider and apply confirm/fail; terminal payouts are left alone."""
        async with self._uow_factory(readonly=True) as uow:
            payout = await uow.payout_repository.get_by_id(payout_id)
        if payout is None or (account_id is not None and payout.account_id != account_id):
            raise PayoutNotFoundException(payout_id)
        if payout.is_terminal:
            return VerifyResultDTO(provider_status=None, outcome=ProviderOutcome.NOOP)
        if not payout.reference:
            return VerifyResultDTO(provider_status=None, outcome=ProviderOutcome.WAIT)

        status = await self.gateway.verify_payout(payout.reference)
        outcome = map_provider_status(self.gateway.provider, status.status)
        logger.info("payout_verified", payout_id=payout_id, provider_status=status.status, outcome=outcome)
        if outcome == ProviderOutcome.CONFIRM:
            await self.confirm_payout(payout_id, payout.reference)
        elif outcome == ProviderOutcome.FAIL:
            await self.fail_payout(payout_id, status.failure_message or f"Provider status: {status.status}")
        return VerifyResultDTO(provider_status=status.status, outcome=outcome)

    async def check_stale_payouts(self, now: Optional[datetime] = None) -> StaleReport:
        now = now or datetime.now(timezone.utc)
        cutoff = now - self._stale

        async with self._uow_factory(readonly=True) as uow:
            stale = await uow.payout_repository.list_stale(cutoff)

        report = StaleReport(checked=len(stale))
        for payout in stale:
            try:
                if not payout.reference:
                    result = await self.fail_payout(payout.id, "Stale payout without provider reference")
                    if result is not None:
                        report.failed += 1
                    else:
                        report.unchanged += 1
                    continue
                outcome = (await self.verify_payout(payout.id)).outcome
                if outcome == ProviderOutcome.CONFIRM:
                    report.completed += 1
                elif outcome == ProviderOutcome.FAIL:
                    report.failed += 1
                else:
                    report.unchanged += 1
            except Exception as exc:
                report.errors += 1
                logger.error("stale_payout_check_failed", payout_id=payout.id, error=str(exc))

        logger.info(
            "stale_payout_check_finished",
            checked=report.checked,
            completed=report.completed,
            failed=report.failed,
            unchanged=report.unchanged,
            errors=report.errors,
        )
        return report

    async def list_payouts(
        self,
        account_id: int,
        *,
        status: Optional[PayoutStatus] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[PayoutDTO]:
        async with self._uow_factory(readonly=True) as uow:
            if await uow.account_repository.get_by_id(account_id) is None:
                raise AccountNotFoundException(account_id)
            payouts = await uow.payout_repository.list_by_account(
                account_id, skip=skip, limit=limit, status=status
            )
            return [payout_to_dto(p) for p in payouts]

    async def get_payout(self, account_id: int, payout_id: int) -> PayoutDTO:
        async with self._uow_factory(readonly=True) as uow:
            payout = await uow.payout_repository.get_by_id(payout_id)
        if payout is None or payout.account_id != account_id:
            raise PayoutNotFoundException(payout_id)
        return payout_to_dto(payout)

    async def eligibility(self, account_id: int, now: Optional[datetime] = None) -> PayoutEligibilityDTO:
        async with self._uow_factory(readonly=True) as uow:
            result = await self._domain(uow).eligibility(account_id, now=now)
        return PayoutEligibilityDTO(
            account_id=result.account_id,
            balance=result.balance,
            currency=result.currency,
            min_amount=result.min_amount,
            can_request_payout=result.can_request_payout,
            reason=result.reason,
            validation_error=result.validation_error,
        )
