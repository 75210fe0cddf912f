from datetime import datetime, timedelta, timezone

import pytest

from application.services.payment_service import PaymentService
from application.services.settlement_service import SettlementService
from domain.ledger.entity import AccountStatus, BalanceField, Direction, TransactionType


NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


async def _paid_and_delivered(store, uow_factory, gateway, account_id, delivered_ago, **order_fields):
    order = store.add_order(account_id, **order_fields)
    await PaymentService(uow_factory, gateway).confirm_payment(order.id, "py_test_1")
    store.deliver(order.id, NOW - delivered_ago)
    return order


@pytest.fixture
def settlement(uow_factory, notifier):
    return SettlementService(uow_factory, hold_hours=48, notifier=notifier)


@pytest.mark.asyncio
async def test_release_moves_net_to_available(store, uow_factory, gateway, seller, settlement):
    order = await _paid_and_delivered(store, uow_factory, gateway, seller.id, timedelta(hours=49))

    report = await settlement.release_eligible_orders(now=NOW)

    assert report.released == 1
    assert report.released_order_ids == [order.id]
    account = store.accounts[seller.id]
    assert (account.pending_balance, account.balance) == (0, 9000)
    assert store.orders[order.id].funds_released_at == NOW

    debit, credit = store.transactions_for(seller.id, TransactionType.TRANSFER)
    assert (debit.direction, debit.balance_field, debit.amount) == (Direction.DEBIT, BalanceField.PENDING, 9000)
    assert (credit.direction, credit.balance_field, credit.amount) == (Direction.CREDIT, BalanceField.AVAILABLE, 9000)


@pytest.mark.asyncio
async def test_release_runs_once_per_order(store, uow_factory, gateway, seller, settlement):
    await _paid_and_delivered(store, uow_factory, gateway, seller.id, timedelta(days=3))
    await settlement.release_eligible_orders(now=NOW)

    again = await settlement.release_eligible_orders(now=NOW + timedelta(hours=6))

    assert again.released == 0
    assert store.accounts[seller.id].balance == 9000
    assert len(store.transactions_for(seller.id, TransactionType.TRANSFER)) == 2


@pytest.mark.asyncio
async def test_orders_inside_hold_window_stay_pending(store, uow_factory, gateway, seller, settlement):
    order = await _paid_and_delivered(store, uow_factory, gateway, seller.id, timedelta(hours=47))
    store.add_order(seller.id)  # unpaid, never delivered

    report = await settlement.release_eligible_orders(now=NOW)

    assert report.released == 0
    assert store.accounts[seller.id].pending_balance == 9000
    assert store.orders[order.id].funds_released_at is None


@pytest.mark.asyncio
async def test_refunded_part_is_not_released(store, uow_factory, gateway, seller, settlement):
    order = await _paid_and_delivered(store, uow_factory, gateway, seller.id, timedelta(hours=50))
    # Seller share of an earlier partial refund already left pending
    store.orders[order.id].refunded_amount = 4500
    store.accounts[seller.id].pending_balance = 4500

    await settlement.release_eligible_orders(now=NOW)

    account = store.accounts[seller.id]
    assert (account.pending_balance, account.balance) == (0, 4500)


@pytest.mark.asyncio
async def test_zero_net_order_is_marked_released(store, uow_factory, gateway, seller, settlement):
    order = await _paid_and_delivered(
        store, uow_factory, gateway, seller.id, timedelta(hours=50), total_amount=1000, commission_amount=1000
    )

    report = await settlement.release_eligible_orders(now=NOW)

    assert report.released == 1
    assert store.orders[order.id].funds_released_at == NOW
    assert store.transactions_for(seller.id, TransactionType.TRANSFER) == []


@pytest.mark.asyncio
async def test_pending_debit_is_clamped(store, uow_factory, gateway, seller, settlement):
    await _paid_and_delivered(store, uow_factory, gateway, seller.id, timedelta(hours=50))
    store.accounts[seller.id].pending_balance = 6000

    await settlement.release_eligible_orders(now=NOW)

    account = store.accounts[seller.id]
    assert account.pending_balance == 0
    assert account.balance == 9000


@pytest.mark.asyncio
async def test_inactive_account_is_skipped(store, uow_factory, gateway, settlement):
    frozen = store.add_account(name="Frozen shop")
    order = await _paid_and_delivered(store, uow_factory, gateway, frozen.id, timedelta(hours=50))
    store.accounts[frozen.id].status = AccountStatus.SUSPENDED

    report = await settlement.release_eligible_orders(now=NOW)

    assert report.skipped == 1
    assert store.orders[order.id].funds_released_at is None
    assert store.accounts[frozen.id].pending_balance == 9000


@pytest.mark.asyncio
async def test_one_failing_order_does_not_abort_the_batch(
    store, uow_factory, gateway, seller, settlement, monkeypatch
):
    broken = await _paid_and_delivered(store, uow_factory, gateway, seller.id, timedelta(hours=60))
    healthy = await _paid_and_delivered(store, uow_factory, gateway, seller.id, timedelta(hours=50))

    original = SettlementService._release_one

    async def flaky(self, order_id, cutoff, now):
        if order_id == broken.id:
            raise RuntimeError("connection reset")
        return await original(self, order_id, cutoff, now)

    monkeypatch.setattr(SettlementService, "_release_one", flaky)

    report = await settlement.release_eligible_orders(now=NOW)

    assert report.failed == 1
    assert report.released_order_ids == [healthy.id]
    assert store.orders[broken.id].funds_released_at is None
    assert store.accounts[seller.id].balance == 9000
    assert store.accounts[seller.id].pending_balance == 9000
