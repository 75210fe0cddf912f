"""Pytest bootstrap configuration.

Ensure mandatory environment variables are set before test collection
and module imports that depend on application settings. Service tests run
against the in-memory Unit of Work below; repository tests use SQLite.
"""
import copy
import os
from datetime import datetime, timezone
from typing import List, Optional

os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("DATABASE__URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("PAYMENT__MONEROO__SECRET_KEY", "sk_test_123")
os.environ.setdefault("PAYMENT__MONEROO__WEBHOOK_SECRET", "whsec_test")

import pytest

from application.dtos.payments import (
    CheckoutSession,
    InitializePayment,
    InitializePayout,
    PayoutReceipt,
    ProviderStatus,
)
from domain.common.exceptions import AccountNotFoundException, AlreadyProcessedException
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.ledger.entity import Account, AccountStatus, Transaction, TransactionType
from domain.ledger.repository import AccountRepository, TransactionRepository
from domain.order.entity import Order, OrderItem, OrderStatus, PaymentStatus
from domain.order.repository import OrderRepository
from domain.payout.entity import OPEN_STATUSES, Payout, PayoutStatus
from domain.payout.repository import PayoutRepository
from domain.refund.entity import ReturnRequest
from domain.refund.repository import ReturnRequestRepository


def _now() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryStore:
    """Tables as dicts keyed by id; ids are never reused, like DB sequences."""

    TABLES = ("accounts", "transactions", "orders", "payouts", "returns")

    def __init__(self) -> None:
        self.accounts: dict = {}
        self.transactions: dict = {}
        self.orders: dict = {}
        self.payouts: dict = {}
        self.returns: dict = {}
        self._sequences = {name: 0 for name in self.TABLES}
        self.commits = 0
        self.rollbacks = 0

    def next_id(self, table: str) -> int:
        self._sequences[table] += 1
        return self._sequences[table]

    def snapshot(self) -> dict:
        return copy.deepcopy({name: getattr(self, name) for name in self.TABLES})

    def restore(self, snapshot: dict) -> None:
        for name, rows in snapshot.items():
            setattr(self, name, rows)

    # Seeding helpers (bypass the ledger on purpose)

    def add_account(
        self,
        *,
        balance: int = 0,
        pending_balance: int = 0,
        currency: str = "XOF",
        status: AccountStatus = AccountStatus.ACTIVE,
        name: str = "Boutique Adjoa",
    ) -> Account:
        account = Account(
            id=self.next_id("accounts"),
            owner_id=None,
            name=name,
            currency=currency,
            balance=balance,
            pending_balance=pending_balance,
            status=status,
            created_at=_now(),
            updated_at=_now(),
        )
        self.accounts[account.id] = account
        return copy.deepcopy(account)

    def add_order(self, account_id: int, **overrides) -> Order:
        fields = dict(
            id=self.next_id("orders"),
            account_id=account_id,
            order_number=f"MK-{len(self.orders) + 1:05d}",
            total_amount=10000,
            currency="XOF",
            commission_amount=1000,
            customer_name="Kofi Mensah",
            customer_email="kofi@example.com",
            items=[OrderItem(product_id=1, title="Wax print", quantity=2, unit_price=5000)],
            created_at=_now(),
        )
        fields.update(overrides)
        order = Order(**fields)
        self.orders[order.id] = order
        return copy.deepcopy(order)

    def deliver(self, order_id: int, at: datetime) -> None:
        order = self.orders[order_id]
        order.status = OrderStatus.DELIVERED
        order.delivered_at = at

    def transactions_for(self, account_id: int, type: Optional[TransactionType] = None) -> List[Transaction]:
        return [
            t for t in sorted(self.transactions.values(), key=lambda t: t.id)
            if t.account_id == account_id and (type is None or t.type == type)
        ]


class FakeAccountRepository(AccountRepository):
    def __init__(self, store: InMemoryStore):
        self.store = store

    async def create(self, account: Account) -> Account:
        account = copy.deepcopy(account)
        account.id = self.store.next_id("accounts")
        account.balance = 0
        account.pending_balance = 0
        self.store.accounts[account.id] = account
        return copy.deepcopy(account)

    async def get_by_id(self, account_id: int) -> Optional[Account]:
        return copy.deepcopy(self.store.accounts.get(account_id))

    async def get_for_update(self, account_id: int) -> Optional[Account]:
        return copy.deepcopy(self.store.accounts.get(account_id))

    async def save_balances(self, account: Account) -> Account:
        stored = self.store.accounts.get(account.id)
        if stored is None:
            raise AccountNotFoundException(account.id)
        stored.balance = account.balance
        stored.pending_balance = account.pending_balance
        stored.updated_at = account.updated_at
        return copy.deepcopy(stored)


class FakeTransactionRepository(TransactionRepository):
    def __init__(self, store: InMemoryStore):
        self.store = store

    async def add(self, transaction: Transaction) -> Transaction:
        if any(t.idempotency_key == transaction.idempotency_key for t in self.store.transactions.values()):
            raise AlreadyProcessedException("ledger_entry", transaction.idempotency_key)
        tx = copy.deepcopy(transaction)
        tx.id = self.store.next_id("transactions")
        self.store.transactions[tx.id] = tx
        return copy.deepcopy(tx)

    async def get_by_id(self, transaction_id: int) -> Optional[Transaction]:
        return copy.deepcopy(self.store.transactions.get(transaction_id))

    async def exists_by_idempotency_key(self, key: str) -> bool:
        return any(t.idempotency_key == key for t in self.store.transactions.values())

    async def list_by_account(self, account_id, skip=0, limit=100, type=None):
        rows = [
            t for t in self.store.transactions.values()
            if t.account_id == account_id and (type is None or t.type == type)
        ]
        rows.sort(key=lambda t: t.id, reverse=True)
        return copy.deepcopy(rows[skip:skip + limit])

    async def list_for_replay(self, account_id: int):
        return copy.deepcopy(self.store.transactions_for(account_id))


class FakeOrderRepository(OrderRepository):
    def __init__(self, store: InMemoryStore):
        self.store = store

    async def create(self, order: Order) -> Order:
        order = copy.deepcopy(order)
        order.id = self.store.next_id("orders")
        self.store.orders[order.id] = order
        return copy.deepcopy(order)

    async def get_by_id(self, order_id: int) -> Optional[Order]:
        return copy.deepcopy(self.store.orders.get(order_id))

    async def get_for_update(self, order_id: int) -> Optional[Order]:
        return copy.deepcopy(self.store.orders.get(order_id))

    async def update(self, order: Order) -> Order:
        self.store.orders[order.id] = copy.deepcopy(order)
        return copy.deepcopy(order)

    async def list_releasable(self, delivered_before: datetime, limit: int = 500):
        rows = [
            o for o in self.store.orders.values()
            if o.status == OrderStatus.DELIVERED
            and o.payment_status == PaymentStatus.PAID
            and o.funds_released_at is None
            and o.delivered_at is not None
            and o.delivered_at <= delivered_before
        ]
        rows.sort(key=lambda o: o.delivered_at)
        return copy.deepcopy(rows[:limit])


class FakePayoutRepository(PayoutRepository):
    def __init__(self, store: InMemoryStore):
        self.store = store

    async def create(self, payout: Payout) -> Payout:
        payout = copy.deepcopy(payout)
        payout.id = self.store.next_id("payouts")
        self.store.payouts[payout.id] = payout
        return copy.deepcopy(payout)

    async def get_by_id(self, payout_id: int) -> Optional[Payout]:
        return copy.deepcopy(self.store.payouts.get(payout_id))

    async def get_for_update(self, payout_id: int) -> Optional[Payout]:
        return copy.deepcopy(self.store.payouts.get(payout_id))

    async def update(self, payout: Payout) -> Payout:
        self.store.payouts[payout.id] = copy.deepcopy(payout)
        return copy.deepcopy(payout)

    async def has_open_payout(self, account_id: int) -> bool:
        return any(
            p.account_id == account_id and p.status in OPEN_STATUSES
            for p in self.store.payouts.values()
        )

    async def get_last_completed(self, account_id: int) -> Optional[Payout]:
        done = [
            p for p in self.store.payouts.values()
            if p.account_id == account_id and p.status == PayoutStatus.COMPLETED and p.processed_at
        ]
        return copy.deepcopy(max(done, key=lambda p: p.processed_at)) if done else None

    async def list_by_account(self, account_id, skip=0, limit=100, status=None):
        rows = [
            p for p in self.store.payouts.values()
            if p.account_id == account_id and (status is None or p.status == status)
        ]
        rows.sort(key=lambda p: p.id, reverse=True)
        return copy.deepcopy(rows[skip:skip + limit])

    async def list_stale(self, requested_before: datetime, limit: int = 200):
        rows = [p for p in self.store.payouts.values() if p.is_stale(requested_before)]
        rows.sort(key=lambda p: p.requested_at)
        return copy.deepcopy(rows[:limit])


class FakeReturnRequestRepository(ReturnRequestRepository):
    def __init__(self, store: InMemoryStore):
        self.store = store

    async def create(self, request: ReturnRequest) -> ReturnRequest:
        request = copy.deepcopy(request)
        request.id = self.store.next_id("returns")
        self.store.returns[request.id] = request
        return copy.deepcopy(request)

    async def get_by_id(self, return_id: int) -> Optional[ReturnRequest]:
        return copy.deepcopy(self.store.returns.get(return_id))

    async def get_for_update(self, return_id: int) -> Optional[ReturnRequest]:
        return copy.deepcopy(self.store.returns.get(return_id))

    async def update(self, request: ReturnRequest) -> ReturnRequest:
        self.store.returns[request.id] = copy.deepcopy(request)
        return copy.deepcopy(request)

    async def list_by_order(self, order_id: int):
        return copy.deepcopy([r for r in self.store.returns.values() if r.order_id == order_id])


class FakeUnitOfWork(AbstractUnitOfWork):
    """Snapshot on enter, restore on rollback."""

    def __init__(self, store: InMemoryStore, *, readonly: bool = False) -> None:
        super().__init__(readonly=readonly)
        self.store = store
        self.account_repository = FakeAccountRepository(store)
        self.transaction_repository = FakeTransactionRepository(store)
        self.order_repository = FakeOrderRepository(store)
        self.payout_repository = FakePayoutRepository(store)
        self.return_repository = FakeReturnRequestRepository(store)
        self._snapshot: Optional[dict] = None

    async def __aenter__(self) -> "FakeUnitOfWork":
        self._snapshot = self.store.snapshot()
        return self

    async def commit(self) -> None:
        self._committed = True
        self.store.commits += 1

    async def rollback(self) -> None:
        if self._snapshot is not None:
            self.store.restore(self._snapshot)
        self.store.rollbacks += 1
        self._committed = False


class StubGateway:
    """Scriptable provider: set *_error to raise, *_status to answer verify calls."""

    provider = "moneroo"

    def __init__(self) -> None:
        self.calls: list = []
        self.payment_id = "py_test_1"
        self.payout_ids = iter(f"po_test_{n}" for n in range(1, 1000))
        self.payment_error: Optional[Exception] = None
        self.payout_error: Optional[Exception] = None
        self.verify_error: Optional[Exception] = None
        self.payment_status = ProviderStatus(id="py_test_1", status="pending")
        self.payout_status = ProviderStatus(id="po_test_1", status="pending")
        self.closed = False

    async def initialize_payment(self, req: InitializePayment) -> CheckoutSession:
        self.calls.append(("initialize_payment", req))
        if self.payment_error:
            raise self.payment_error
        return CheckoutSession(payment_id=self.payment_id, checkout_url=f"https://checkout.test/{self.payment_id}")

    async def verify_payment(self, payment_id: str) -> ProviderStatus:
        self.calls.append(("verify_payment", payment_id))
        if self.verify_error:
            raise self.verify_error
        return self.payment_status

    async def initialize_payout(self, req: InitializePayout) -> PayoutReceipt:
        self.calls.append(("initialize_payout", req))
        if self.payout_error:
            raise self.payout_error
        return PayoutReceipt(payout_id=next(self.payout_ids))

    async def verify_payout(self, payout_id: str) -> ProviderStatus:
        self.calls.append(("verify_payout", payout_id))
        if self.verify_error:
            raise self.verify_error
        return self.payout_status

    async def aclose(self) -> None:
        self.closed = True

    def requests(self, name: str) -> list:
        return [req for call, req in self.calls if call == name]


class RecordingNotifier:
    def __init__(self) -> None:
        self.sent: list = []

    def notify(self, account_id: int, kind: str, payload: dict) -> None:
        self.sent.append((account_id, kind, payload))

    def kinds(self) -> list:
        return [kind for _, kind, _ in self.sent]


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def uow_factory(store):
    def factory(*, readonly: bool = False) -> FakeUnitOfWork:
        return FakeUnitOfWork(store, readonly=readonly)
    return factory


@pytest.fixture
def gateway() -> StubGateway:
    return StubGateway()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def seller(store) -> Account:
    return store.add_account()
