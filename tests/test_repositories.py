"""SQLAlchemy repositories and Unit of Work against an in-memory SQLite database."""
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from application.dtos.ledger import PayoutDetailsDTO, PayoutRequestDTO
from application.services.ledger_service import LedgerApplicationService, ledger_for
from application.services.payment_service import PaymentService
from application.services.payout_service import PayoutService
from application.services.settlement_service import SettlementService
from domain.common.exceptions import AlreadyProcessedException
from domain.ledger.entity import Account, BalanceField, Direction, TransactionType
from domain.order.entity import Order, OrderItem, OrderStatus
from domain.payout.entity import PayoutMethod, PayoutStatus
from infrastructure.models import Base
from infrastructure.repositories.ledger_repository import SQLAlchemyTransactionRepository
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork


@pytest.fixture
async def sql_uow_factory():
    engine = create_async_engine("sqlite+aiosqlite://", poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    session_factory = async_sessionmaker(bind=engine, expire_on_commit=False)

    def factory(*, readonly: bool = False) -> SQLAlchemyUnitOfWork:
        return SQLAlchemyUnitOfWork(session_factory, readonly=readonly)

    yield factory
    await engine.dispose()


async def _seed(uow_factory, **order_fields):
    async with uow_factory() as uow:
        account = await uow.account_repository.create(Account(id=None, owner_id=1, name="Boutique Adjoa", currency="XOF"))
        fields = dict(
            id=None,
            account_id=account.id,
            order_number="MK-00001",
            total_amount=10000,
            currency="XOF",
            commission_amount=1000,
            customer_email="kofi@example.com",
            items=[OrderItem(product_id=1, title="Wax print", quantity=2, unit_price=5000)],
        )
        fields.update(order_fields)
        order = await uow.order_repository.create(Order(**fields))
    return account, order


@pytest.mark.asyncio
async def test_payment_and_release_round_trip(sql_uow_factory, gateway):
    # Delivery is recorded by the order flow; the ledger only reads it
    delivered_at = datetime.now(timezone.utc) - timedelta(hours=72)
    account, order = await _seed(sql_uow_factory, status=OrderStatus.DELIVERED, delivered_at=delivered_at)
    ledger = LedgerApplicationService(sql_uow_factory)

    await PaymentService(sql_uow_factory, gateway).confirm_payment(order.id, "py_test_1")
    with pytest.raises(AlreadyProcessedException):
        await PaymentService(sql_uow_factory, gateway).confirm_payment(order.id, "py_test_1")

    balance = await ledger.get_balance(account.id)
    assert (balance.pending_balance, balance.balance) == (9000, 0)

    async with sql_uow_factory(readonly=True) as uow:
        stored = await uow.order_repository.get_by_id(order.id)
    assert stored.is_paid
    assert stored.status == OrderStatus.DELIVERED
    assert stored.items[0].title == "Wax print"

    report = await SettlementService(sql_uow_factory, hold_hours=48).release_eligible_orders()

    assert report.released_order_ids == [order.id]
    balance = await ledger.get_balance(account.id)
    assert (balance.pending_balance, balance.balance) == (0, 9000)
    replay = await ledger.replay(account.id)
    assert replay.consistent is True
    assert replay.transaction_count == 4


@pytest.mark.asyncio
async def test_unique_idempotency_key_rolls_back_the_unit_of_work(sql_uow_factory, monkeypatch):
    account, _ = await _seed(sql_uow_factory)
    ledger = LedgerApplicationService(sql_uow_factory)
    entry = dict(
        type=TransactionType.CREDIT,
        direction=Direction.CREDIT,
        amount=700,
        description="Goodwill credit",
        balance_field=BalanceField.AVAILABLE,
        idempotency_key="credit:goodwill:1",
    )
    await ledger.apply_entry(account.id, **entry)

    # Simulate a concurrent writer that passed the pre-check
    async def never_seen(self, key):
        return False

    monkeypatch.setattr(SQLAlchemyTransactionRepository, "exists_by_idempotency_key", never_seen)

    with pytest.raises(AlreadyProcessedException):
        async with sql_uow_factory() as uow:
            await ledger_for(uow).apply_entry(account.id, **entry)

    balance = await ledger.get_balance(account.id)
    assert balance.balance == 700
    assert len(await ledger.list_transactions(account.id)) == 1


@pytest.mark.asyncio
async def test_payout_queries_and_reversal_link(sql_uow_factory, gateway):
    account, _ = await _seed(sql_uow_factory)
    await LedgerApplicationService(sql_uow_factory).apply_entry(
        account.id,
        type=TransactionType.CREDIT,
        direction=Direction.CREDIT,
        amount=50000,
        description="Opening balance",
        balance_field=BalanceField.AVAILABLE,
        idempotency_key="opening:1",
    )
    service = PayoutService(sql_uow_factory, gateway)

    payout = await service.request_payout(account.id, PayoutRequestDTO(
        amount=20000,
        method=PayoutMethod.MOBILE_MONEY,
        details=PayoutDetailsDTO(provider="mtn_bj", phone_number="22997000001"),
        contact_email="adjoa@example.com",
    ))

    async with sql_uow_factory(readonly=True) as uow:
        assert await uow.payout_repository.has_open_payout(account.id) is True
        later = datetime.now(timezone.utc) + timedelta(hours=1)
        stale = await uow.payout_repository.list_stale(later)
        assert [p.id for p in stale] == [payout.id]
        assert await uow.payout_repository.list_stale(later - timedelta(days=1)) == []

    await service.fail_payout(payout.id, "Operator timeout")

    async with sql_uow_factory(readonly=True) as uow:
        stored = await uow.payout_repository.get_by_id(payout.id)
        assert stored.status == PayoutStatus.FAILED
        assert stored.details["phone_number"] == "*******0001"
        debit = await uow.transaction_repository.get_by_id(stored.transaction_id)
        assert debit.metadata == {"payout_id": payout.id}
        history = await uow.transaction_repository.list_by_account(account.id, type=TransactionType.CREDIT)
        reversal = next(t for t in history if t.idempotency_key == f"payout:{payout.id}:reversal")
        assert reversal.metadata["reverses_transaction_id"] == debit.id
        account_row = await uow.account_repository.get_by_id(account.id)
        assert account_row.balance == 50000
