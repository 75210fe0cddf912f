import pytest

from application.dtos.payments import ProviderStatus
from application.services import payment_service
from application.services.payment_service import PaymentService
from domain.common.exceptions import (
    AlreadyProcessedException,
    DomainValidationException,
    InvalidStateTransitionException,
    OrderNotFoundException,
)
from domain.ledger.entity import BalanceField, Direction, TransactionType
from domain.order.entity import OrderStatus, PaymentStatus
from infrastructure.external.payments.exceptions import ProviderUnreachableError
from shared.codes.payment_codes import ProviderOutcome


@pytest.fixture
def service(uow_factory, gateway, notifier):
    return PaymentService(uow_factory, gateway, site_url="https://shop.test/", notifier=notifier)


@pytest.mark.asyncio
async def test_initialize_payment_stores_provider_reference(store, service, gateway, seller):
    order = store.add_order(seller.id)

    checkout = await service.initialize_payment(order.id)

    assert checkout.payment_id == "py_test_1"
    assert checkout.checkout_url.endswith("/py_test_1")
    assert store.orders[order.id].payment_reference == "py_test_1"

    (req,) = gateway.requests("initialize_payment")
    assert req.amount == 10000
    assert req.currency == "XOF"
    assert req.return_url == f"https://shop.test/checkout/payment-callback?orderId={order.id}"
    assert req.metadata == {"order_id": order.id, "order_number": order.order_number, "store_id": seller.id}
    assert (req.customer.first_name, req.customer.last_name) == ("Kofi", "Mensah")


@pytest.mark.asyncio
async def test_initialize_payment_preconditions(store, service, gateway, seller):
    shipped = store.add_order(seller.id, status=OrderStatus.SHIPPED)
    anonymous = store.add_order(seller.id, customer_email=None)

    with pytest.raises(InvalidStateTransitionException):
        await service.initialize_payment(shipped.id)
    with pytest.raises(DomainValidationException):
        await service.initialize_payment(anonymous.id)
    with pytest.raises(OrderNotFoundException):
        await service.initialize_payment(999)
    assert gateway.calls == []


@pytest.mark.asyncio
async def test_confirm_payment_credits_pending_net_of_commission(store, service, seller, notifier):
    order = store.add_order(seller.id, total_amount=10000, commission_amount=1000)

    paid = await service.confirm_payment(order.id, "py_test_1")

    assert paid.status == OrderStatus.PAID
    assert paid.payment_status == PaymentStatus.PAID
    assert paid.paid_at is not None
    account = store.accounts[seller.id]
    assert (account.pending_balance, account.balance) == (9000, 0)

    sale, fee = store.transactions_for(seller.id)
    assert (sale.type, sale.direction, sale.amount) == (TransactionType.SALE, Direction.CREDIT, 10000)
    assert (fee.type, fee.direction, fee.amount) == (TransactionType.FEE, Direction.DEBIT, 1000)
    assert {sale.balance_field, fee.balance_field} == {BalanceField.PENDING}
    assert sale.idempotency_key == f"order:{order.id}:sale"
    assert fee.idempotency_key == f"order:{order.id}:fee"
    assert notifier.kinds() == ["LedgerEntryRecorded", "LedgerEntryRecorded"]


@pytest.mark.asyncio
async def test_confirm_payment_is_idempotent(store, service, seller):
    order = store.add_order(seller.id)
    await service.confirm_payment(order.id, "py_test_1")

    with pytest.raises(AlreadyProcessedException):
        await service.confirm_payment(order.id, "py_test_1")

    assert store.accounts[seller.id].pending_balance == 9000
    assert len(store.transactions) == 2


@pytest.mark.asyncio
async def test_commission_is_capped_at_order_total(store, service, seller):
    order = store.add_order(seller.id, total_amount=500, commission_amount=800)

    await service.confirm_payment(order.id)

    assert store.accounts[seller.id].pending_balance == 0
    assert [t.amount for t in store.transactions_for(seller.id)] == [500, 500]


@pytest.mark.asyncio
async def test_amount_mismatch_still_confirms(store, service, seller):
    order = store.add_order(seller.id)

    await service.confirm_payment(order.id, "py_test_1", amount_paid=9900, currency="XOF")

    assert store.orders[order.id].is_paid


@pytest.mark.asyncio
async def test_fail_payment_keeps_order_payable(store, service, seller):
    order = store.add_order(seller.id)

    failed = await service.fail_payment(order.id, "Insufficient wallet balance")

    assert failed.payment_status == PaymentStatus.FAILED
    assert failed.status == OrderStatus.PENDING
    assert failed.payment_failure_reason == "Insufficient wallet balance"
    assert store.transactions == {}

    # A later success still settles the order
    await service.confirm_payment(order.id, "py_test_2")
    assert store.orders[order.id].payment_status == PaymentStatus.PAID
    assert store.orders[order.id].payment_failure_reason is None


@pytest.mark.asyncio
async def test_fail_after_paid_is_a_noop(store, service, seller):
    order = store.add_order(seller.id)
    await service.confirm_payment(order.id)

    with pytest.raises(AlreadyProcessedException):
        await service.fail_payment(order.id, "late failure")

    assert store.orders[order.id].payment_status == PaymentStatus.PAID


@pytest.mark.asyncio
async def test_verify_payment_confirms_on_success(store, service, gateway, seller):
    order = store.add_order(seller.id, payment_reference="py_test_1")
    gateway.payment_status = ProviderStatus(id="py_test_1", status="success", amount=10000, currency="XOF")

    result = await service.verify_payment(order.id)

    assert result.outcome == ProviderOutcome.CONFIRM
    assert result.provider_status == "success"
    assert store.orders[order.id].is_paid
    assert store.accounts[seller.id].pending_balance == 9000


@pytest.mark.asyncio
async def test_verify_payment_marks_failure(store, service, gateway, seller):
    order = store.add_order(seller.id, payment_reference="py_test_1")
    gateway.payment_status = ProviderStatus(id="py_test_1", status="cancelled")

    result = await service.verify_payment(order.id)

    assert result.outcome == ProviderOutcome.FAIL
    assert store.orders[order.id].payment_status == PaymentStatus.FAILED


@pytest.mark.asyncio
async def test_verify_payment_unreachable_reports_pending(store, service, gateway, seller):
    order = store.add_order(seller.id, payment_reference="py_test_1")
    gateway.verify_error = ProviderUnreachableError("timeout", provider="moneroo")

    result = await service.verify_payment(order.id)

    assert result.outcome == ProviderOutcome.WAIT
    assert result.provider_status == "pending"
    assert store.orders[order.id].payment_status == PaymentStatus.PENDING


@pytest.mark.asyncio
async def test_verify_paid_order_skips_provider(store, service, gateway, seller):
    order = store.add_order(seller.id, payment_reference="py_test_1")
    await service.confirm_payment(order.id, "py_test_1")

    result = await service.verify_payment(order.id)

    assert result.outcome == ProviderOutcome.NOOP
    assert gateway.requests("verify_payment") == []


@pytest.mark.asyncio
async def test_verify_without_reference(store, service, seller):
    order = store.add_order(seller.id)

    with pytest.raises(DomainValidationException):
        await service.verify_payment(order.id)


@pytest.mark.asyncio
async def test_confirm_payment_logs_unexpected_provider_reference(store, service, seller, monkeypatch):
    warnings = []
    monkeypatch.setattr(payment_service.logger, "warning", lambda event, **kw: warnings.append((event, kw)))
    order = store.add_order(seller.id, payment_reference="py_checkout_1")

    paid = await service.confirm_payment(order.id, "py_other_9")

    assert paid.is_paid
    assert warnings == [(
        "payment_reference_mismatch",
        {"order_id": order.id, "expected": "py_checkout_1", "received": "py_other_9"},
    )]
