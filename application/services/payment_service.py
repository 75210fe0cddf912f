"""
Application service orchestrating incoming payment settlement.

Checkout initialization and verification call the provider outside any
Unit of Work; confirm/fail are single transactional steps and are safe to
call repeatedly (webhook redelivery, verify after webhook, ...).
"""
from __future__ import annotations

from typing import Callable, Optional

from application.dtos.ledger import CheckoutDTO, VerifyResultDTO
from application.dtos.payments import Customer, InitializePayment
from application.ports.notifier import Notifier, NullNotifier
from application.ports.payment_gateway import PaymentGateway
from application.services.ledger_service import ledger_for, publish_events
from core.logging_config import get_logger
from domain.common.exceptions import (
    AlreadyProcessedException,
    DomainValidationException,
    InvalidStateTransitionException,
    OrderNotFoundException,
)
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.ledger.entity import BalanceField, Direction, TransactionType
from domain.order.entity import Order, OrderStatus
from infrastructure.external.payments.exceptions import ProviderUnreachableError
from shared.codes.payment_codes import ProviderOutcome, map_provider_status


logger = get_logger(__name__)


class PaymentService:
    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        gateway: PaymentGateway,
        *,
        site_url: str = "http://localhost:3001",
        notifier: Optional[Notifier] = None,
    ) -> None:
        self._uow_factory = uow_factory
        self.gateway = gateway
        self._site_url = site_url.rstrip("/")
        self._notifier = notifier or NullNotifier()

    async def _load(self, order_id: int) -> Order:
        async with self._uow_factory(readonly=True) as uow:
            order = await uow.order_repository.get_by_id(order_id)
        if order is None:
            raise OrderNotFoundException(order_id)
        return order

    async def initialize_payment(self, order_id: int) -> CheckoutDTO:
        order = await self._load(order_id)
        if order.status != OrderStatus.PENDING:
            raise InvalidStateTransitionException("order", order.status.value, "checkout")
        if order.is_paid:
            raise AlreadyProcessedException("payment_confirm", f"order:{order.id}")
        if not order.customer_email:
            raise DomainValidationException("Order has no customer email", field="customer_email")

        logger.info("payment_init_request", order_id=order.id, amount=order.total_amount, currency=order.currency)
        session = await self.gateway.initialize_payment(InitializePayment(
            amount=order.total_amount,
            currency=order.currency,
            description=f"Order {order.order_number}",
            customer=Customer.from_full_name(
                order.customer_name, order.customer_email, phone=order.customer_phone
            ),
            return_url=f"{self._site_url}/checkout/payment-callback?orderId={order.id}",
            metadata={
                "order_id": order.id,
                "order_number": order.order_number,
                "store_id": order.account_id,
            },
        ))

        async with self._uow_factory() as uow:
            locked = await uow.order_repository.get_for_update(order.id)
            if locked is None:
                raise OrderNotFoundException(order.id)
            locked.payment_reference = session.payment_id
            await uow.order_repository.update(locked)

        logger.info("payment_init_response", order_id=order.id, payment_id=session.payment_id)
        return CheckoutDTO(order_id=order.id, payment_id=session.payment_id, checkout_url=session.checkout_url)

    async def confirm_payment(
        self,
        order_id: int,
        reference: Optional[str] = None,
        amount_paid: Optional[int] = None,
        currency: Optional[str] = None,
    ) -> Order:
        """
        Mark paid and credit pending: sale (+total) then fee (-commission).

        Raises AlreadyProcessedException when the order is already paid.
        """
        async with self._uow_factory() as uow:
            order = await uow.order_repository.get_for_update(order_id)
            if order is None:
                raise OrderNotFoundException(order_id)
            if order.is_paid:
                raise AlreadyProcessedException("payment_confirm", f"order:{order_id}")

            if reference and order.payment_reference and reference != order.payment_reference:
                logger.warning(
                    "payment_reference_mismatch",
                    order_id=order_id,
                    expected=order.payment_reference,
                    received=reference,
                )
            if amount_paid is not None and amount_paid != order.total_amount:
                logger.warning(
                    "payment_amount_mismatch",
                    order_id=order_id,
                    expected=order.total_amount,
                    paid=amount_paid,
                    currency=currency,
                )

            order.mark_paid(reference)
            order = await uow.order_repository.update(order)

            ledger = ledger_for(uow)
            if order.total_amount > 0:
                await ledger.apply_entry(
                    order.account_id,
                    type=TransactionType.SALE,
                    direction=Direction.CREDIT,
                    amount=order.total_amount,
                    description=f"Sale of order {order.order_number}",
                    balance_field=BalanceField.PENDING,
                    idempotency_key=f"order:{order.id}:sale",
                    order_id=order.id,
                    reference=order.payment_reference,
                )
            commission = order.effective_commission
            if commission > 0:
                await ledger.apply_entry(
                    order.account_id,
                    type=TransactionType.FEE,
                    direction=Direction.DEBIT,
                    amount=commission,
                    description=f"Commission on order {order.order_number}",
                    balance_field=BalanceField.PENDING,
                    idempotency_key=f"order:{order.id}:fee",
                    order_id=order.id,
                )
            events = ledger.clear_events()

        logger.info("payment_confirmed", order_id=order_id, reference=reference, net=order.total_amount - commission)
        publish_events(self._notifier, events)
        return order

    async def fail_payment(self, order_id: int, reason: Optional[str] = None) -> Order:
        """payment_status=failed, order left payable; no ledger effect."""
        async with self._uow_factory() as uow:
            order = await uow.order_repository.get_for_update(order_id)
            if order is None:
                raise OrderNotFoundException(order_id)
            if order.is_paid:
                raise AlreadyProcessedException("payment_fail", f"order:{order_id}")
            order.mark_payment_failed(reason)
            order = await uow.order_repository.update(order)
        logger.info("payment_failed", order_id=order_id, reason=reason)
        return order

    async def verify_payment(self, order_id: int) -> VerifyResultDTO:
        """Poll fallback when a webhook was lost; network errors leave the order untouched."""
        order = await self._load(order_id)
        if not order.payment_reference:
            raise DomainValidationException("Order has no payment reference", field="payment_reference")
        if order.is_paid:
            return VerifyResultDTO(provider_status=None, outcome=ProviderOutcome.NOOP)

        try:
            status = await self.gateway.verify_payment(order.payment_reference)
        except ProviderUnreachableError as exc:
            logger.warning("payment_verify_unreachable", order_id=order_id, error=exc.message)
            return VerifyResultDTO(provider_status="pending", outcome=ProviderOutcome.WAIT)

        outcome = map_provider_status(self.gateway.provider, status.status)
        logger.info("payment_verified", order_id=order_id, provider_status=status.status, outcome=outcome)
        try:
            if outcome == ProviderOutcome.CONFIRM:
                await self.confirm_payment(
                    order_id,
                    order.payment_reference,
                    amount_paid=status.amount,
                    currency=status.currency,
                )
            elif outcome == ProviderOutcome.FAIL:
                await self.fail_payment(order_id, f"Provider status: {status.status}")
        except AlreadyProcessedException:
            outcome = ProviderOutcome.NOOP
        return VerifyResultDTO(provider_status=status.status, outcome=outcome)
