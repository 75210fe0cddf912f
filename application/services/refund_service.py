"""
Refund engine: return lifecycle and provider-side refunds to the customer.

The seller share of a refund is debited only once the provider confirms it;
initiating a refund just records the provider reference.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from application.dtos.ledger import (
    RefundInitiationDTO,
    ReturnCreateDTO,
    ReturnDTO,
    ReturnItemDTO,
)
from application.dtos.payments import Customer, InitializePayout
from application.ports.notifier import Notifier, NullNotifier
from application.ports.payment_gateway import PaymentGateway
from application.services.ledger_service import ledger_for, publish_events
from core.logging_config import get_logger
from domain.common.exceptions import (
    AccountNotFoundException,
    AlreadyProcessedException,
    DomainValidationException,
    InsufficientFundsException,
    InvalidStateTransitionException,
    OrderNotFoundException,
    ReturnNotFoundException,
)
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.ledger.entity import BalanceField, Direction, TransactionType
from domain.order.entity import Order, OrderStatus
from domain.refund.entity import (
    ReturnRequest,
    ReturnStatus,
    calculate_refund_amount,
    is_full_return,
    refunded_total,
    returned_quantities,
    validate_return_items,
)


logger = get_logger(__name__)

ACTIVE_RETURN_STATUSES = {ReturnStatus.REQUESTED, ReturnStatus.APPROVED, ReturnStatus.RECEIVED}


def refund_balance_field(order: Order) -> BalanceField:
    """Funds still on hold are reversed from pending, released funds from available."""
    return BalanceField.AVAILABLE if order.funds_released_at is not None else BalanceField.PENDING


def return_to_dto(ret: ReturnRequest) -> ReturnDTO:
    return ReturnDTO(
        id=ret.id,
        order_id=ret.order_id,
        account_id=ret.account_id,
        customer_id=ret.customer_id,
        status=ret.status.value,
        reason=ret.reason,
        items=[ReturnItemDTO.model_validate(item) for item in ret.items],
        refund_amount=ret.refund_amount or 0,
        refund_reference=ret.refund_reference,
        failure_reason=ret.failure_reason,
        requested_at=ret.requested_at,
        refunded_at=ret.refunded_at,
    )


class RefundService:
    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        gateway: PaymentGateway,
        *,
        return_window_hours: int = 48,
        notifier: Optional[Notifier] = None,
    ) -> None:
        self._uow_factory = uow_factory
        self.gateway = gateway
        self._window = timedelta(hours=return_window_hours)
        self._notifier = notifier or NullNotifier()

    # ─── Return lifecycle ───────────────────────────────────

    async def request_return(self, req: ReturnCreateDTO, now: Optional[datetime] = None) -> ReturnDTO:
        now = now or datetime.now(timezone.utc)
        async with self._uow_factory() as uow:
            order = await uow.order_repository.get_by_id(req.order_id)
            if order is None:
                raise OrderNotFoundException(req.order_id)
            if order.status != OrderStatus.DELIVERED or order.delivered_at is None:
                raise InvalidStateTransitionException("order", order.status.value, "return")
            if now - order.delivered_at > self._window:
                raise DomainValidationException("Return window has expired", field="order_id")

            existing = await uow.return_repository.list_by_order(order.id)
            if any(r.status in ACTIVE_RETURN_STATUSES for r in existing):
                raise DomainValidationException("A return is already open for this order", field="order_id")

            items = validate_return_items(
                order.items,
                [item.model_dump() for item in req.items],
                already_returned=returned_quantities(existing),
            )
            refund_amount = calculate_refund_amount(items)
            remaining = order.total_amount - refunded_total(existing)
            if refund_amount > remaining:
                raise DomainValidationException(
                    "Refund amount exceeds what is left to refund on this order",
                    field="items",
                    details={"refund_amount": refund_amount, "remaining": remaining},
                )
            ret = await uow.return_repository.create(ReturnRequest(
                id=None,
                order_id=order.id,
                account_id=order.account_id,
                customer_id=req.customer_id,
                items=items,
                reason=req.reason,
                refund_amount=refund_amount,
                requested_at=now,
            ))

        logger.info("return_requested", return_id=ret.id, order_id=ret.order_id, refund_amount=ret.refund_amount)
        self._notifier.notify(ret.account_id, "return_requested", {
            "return_id": ret.id,
            "order_id": ret.order_id,
            "refund_amount": ret.refund_amount,
        })
        return return_to_dto(ret)

    async def transition_return(
        self,
        return_id: int,
        target: ReturnStatus,
        account_id: Optional[int] = None,
    ) -> ReturnDTO:
        """Vendor-driven transitions: approve, reject, mark received."""
        if target == ReturnStatus.REFUNDED:
            raise InvalidStateTransitionException("return", "manual", target.value)
        async with self._uow_factory() as uow:
            ret = await uow.return_repository.get_for_update(return_id)
            if ret is None or (account_id is not None and ret.account_id != account_id):
                raise ReturnNotFoundException(return_id)
            ret.transition(target)
            ret = await uow.return_repository.update(ret)
        logger.info("return_transitioned", return_id=return_id, status=ret.status.value)
        return return_to_dto(ret)

    async def get_return(self, return_id: int, account_id: Optional[int] = None) -> ReturnDTO:
        async with self._uow_factory(readonly=True) as uow:
            ret = await uow.return_repository.get_by_id(return_id)
        if ret is None or (account_id is not None and ret.account_id != account_id):
            raise ReturnNotFoundException(return_id)
        return return_to_dto(ret)

    # ─── Refund ─────────────────────────────────────────────

    async def initiate_refund(
        self,
        return_id: int,
        *,
        account_id: Optional[int] = None,
        customer_email: Optional[str] = None,
        customer_name: Optional[str] = None,
    ) -> RefundInitiationDTO:
        async with self._uow_factory(readonly=True) as uow:
            ret = await uow.return_repository.get_by_id(return_id)
            if ret is None or (account_id is not None and ret.account_id != account_id):
                raise ReturnNotFoundException(return_id)
            if ret.status != ReturnStatus.RECEIVED:
                raise InvalidStateTransitionException("return", ret.status.value, ReturnStatus.REFUNDED.value)
            if ret.refund_in_flight:
                raise AlreadyProcessedException("refund_initiate", f"return:{return_id}")
            order = await uow.order_repository.get_by_id(ret.order_id)
            if order is None:
                raise OrderNotFoundException(ret.order_id)
            account = await uow.account_repository.get_by_id(ret.account_id)
            if account is None:
                raise AccountNotFoundException(ret.account_id)

        field = refund_balance_field(order)
        seller_share = order.seller_share_of(ret.refund_amount)
        if account.read(field) < seller_share:
            raise InsufficientFundsException(account.id, field.value, account.read(field), seller_share)

        email = customer_email or order.customer_email
        if not email:
            raise DomainValidationException("No customer email for refund", field="customer_email")

        receipt = await self.gateway.initialize_payout(InitializePayout(
            amount=ret.refund_amount,
            currency=order.currency,
            description=f"Refund for order {order.order_number}",
            customer=Customer.from_full_name(customer_name or order.customer_name, email),
            metadata={"return_id": ret.id, "order_id": order.id, "type": "refund"},
        ))

        async with self._uow_factory() as uow:
            locked = await uow.return_repository.get_for_update(return_id)
            if locked is None:
                raise ReturnNotFoundException(return_id)
            locked.begin_refund(receipt.payout_id)
            await uow.return_repository.update(locked)

        logger.info(
            "refund_initiated",
            return_id=return_id,
            reference=receipt.payout_id,
            refund_amount=ret.refund_amount,
            seller_share=seller_share,
        )
        return RefundInitiationDTO(
            return_id=return_id,
            refund_reference=receipt.payout_id,
            refund_amount=ret.refund_amount,
        )

    async def confirm_refund(self, return_id: int, reference: Optional[str] = None) -> ReturnRequest:
        """
        Provider confirmed the refund: debit the seller share and close the return.

        Raises AlreadyProcessedException when the return is already refunded.
        """
        async with self._uow_factory() as uow:
            ret = await uow.return_repository.get_for_update(return_id)
            if ret is None:
                raise ReturnNotFoundException(return_id)
            if ret.status == ReturnStatus.REFUNDED:
                raise AlreadyProcessedException("refund_confirm", f"return:{return_id}")
            order = await uow.order_repository.get_for_update(ret.order_id)
            if order is None:
                raise OrderNotFoundException(ret.order_id)
            earlier = [r for r in await uow.return_repository.list_by_order(order.id) if r.id != ret.id]

            seller_share = order.seller_share_of(ret.refund_amount)
            field = refund_balance_field(order)
            ledger = ledger_for(uow)
            if seller_share > 0:
                await ledger.apply_entry(
                    ret.account_id,
                    type=TransactionType.REFUND,
                    direction=Direction.DEBIT,
                    amount=seller_share,
                    description=f"Refund for return #{ret.id} on order {order.order_number}",
                    balance_field=field,
                    idempotency_key=f"return:{ret.id}:refund",
                    order_id=order.id,
                    reference=reference or ret.refund_reference,
                    metadata={"return_id": ret.id, "refund_amount": ret.refund_amount},
                )

            ret.mark_refunded(reference)
            ret = await uow.return_repository.update(ret)
            full = is_full_return(order.items, ret.items, already_returned=returned_quantities(earlier))
            order.apply_refund(seller_share, full=full)
            await uow.order_repository.update(order)
            events = ledger.clear_events()

        logger.info(
            "refund_confirmed",
            return_id=return_id,
            order_id=ret.order_id,
            seller_share=seller_share,
            balance_field=field.value,
            full_return=full,
        )
        publish_events(self._notifier, events)
        return ret

    async def fail_refund(self, return_id: int, reason: Optional[str] = None) -> ReturnRequest:
        """Clear the in-flight reference; the return stays received for a manual retry."""
        async with self._uow_factory() as uow:
            ret = await uow.return_repository.get_for_update(return_id)
            if ret is None:
                raise ReturnNotFoundException(return_id)
            if ret.status == ReturnStatus.REFUNDED:
                raise AlreadyProcessedException("refund_fail", f"return:{return_id}")
            ret.clear_refund(reason)
            ret = await uow.return_repository.update(ret)
        logger.warning("refund_failed", return_id=return_id, reason=reason)
        return ret
