from datetime import datetime, timedelta, timezone

import pytest

from application.services import ledger_service
from application.services.ledger_service import LedgerApplicationService
from domain.common.exceptions import (
    AccountNotFoundException,
    AlreadyProcessedException,
    DomainValidationException,
    InsufficientFundsException,
    InvalidAmountException,
)
from domain.ledger.entity import (
    BalanceField,
    Direction,
    FinanceOverview,
    Transaction,
    TransactionType,
)


def _entry(**overrides):
    entry = dict(
        type=TransactionType.CREDIT,
        direction=Direction.CREDIT,
        amount=5000,
        description="Manual credit",
        balance_field=BalanceField.AVAILABLE,
        idempotency_key="credit:1",
    )
    entry.update(overrides)
    return entry


@pytest.mark.asyncio
async def test_credit_updates_balance_and_records_transaction(store, uow_factory, seller, notifier):
    service = LedgerApplicationService(uow_factory, notifier=notifier)

    result = await service.apply_entry(seller.id, **_entry())

    assert result.account.balance == 5000
    assert result.account.pending_balance == 0
    tx = result.transaction
    assert (tx.balance_before, tx.balance_after) == (0, 5000)
    assert tx.currency == "XOF"
    assert store.accounts[seller.id].balance == 5000
    assert notifier.kinds() == ["LedgerEntryRecorded"]
    assert notifier.sent[0][0] == seller.id


@pytest.mark.asyncio
async def test_debit_on_pending_only_touches_pending(store, uow_factory):
    account = store.add_account(balance=700, pending_balance=3000)
    service = LedgerApplicationService(uow_factory)

    await service.apply_entry(
        account.id,
        **_entry(
            type=TransactionType.FEE,
            direction=Direction.DEBIT,
            amount=1200,
            balance_field=BalanceField.PENDING,
            idempotency_key="order:9:fee",
        ),
    )

    assert store.accounts[account.id].pending_balance == 1800
    assert store.accounts[account.id].balance == 700


@pytest.mark.asyncio
async def test_overdraft_is_rejected_without_side_effects(store, uow_factory):
    account = store.add_account(balance=300)
    service = LedgerApplicationService(uow_factory)

    with pytest.raises(InsufficientFundsException) as exc_info:
        await service.apply_entry(
            account.id,
            **_entry(type=TransactionType.PAYOUT, direction=Direction.DEBIT, amount=301),
        )

    assert exc_info.value.details["available"] == 300
    assert store.accounts[account.id].balance == 300
    assert store.transactions == {}


@pytest.mark.asyncio
@pytest.mark.parametrize("amount", [0, -100, 10.5, True, "100"])
async def test_non_positive_integer_amounts_are_rejected(store, uow_factory, seller, amount):
    service = LedgerApplicationService(uow_factory)

    with pytest.raises(InvalidAmountException):
        await service.apply_entry(seller.id, **_entry(amount=amount))

    assert store.accounts[seller.id].balance == 0
    assert store.transactions == {}


@pytest.mark.asyncio
async def test_duplicate_idempotency_key_applies_once(store, uow_factory, seller):
    service = LedgerApplicationService(uow_factory)
    await service.apply_entry(seller.id, **_entry(idempotency_key="order:1:sale"))

    with pytest.raises(AlreadyProcessedException):
        await service.apply_entry(seller.id, **_entry(idempotency_key="order:1:sale"))

    assert store.accounts[seller.id].balance == 5000
    assert len(store.transactions) == 1


@pytest.mark.asyncio
async def test_unknown_account(uow_factory):
    service = LedgerApplicationService(uow_factory)

    with pytest.raises(AccountNotFoundException):
        await service.apply_entry(404, **_entry())

    with pytest.raises(AccountNotFoundException):
        await service.get_balance(404)


@pytest.mark.asyncio
async def test_transactions_listed_newest_first_with_type_filter(uow_factory, seller):
    service = LedgerApplicationService(uow_factory)
    await service.apply_entry(seller.id, **_entry(idempotency_key="a"))
    await service.apply_entry(
        seller.id,
        **_entry(type=TransactionType.SALE, balance_field=BalanceField.PENDING, idempotency_key="b"),
    )
    await service.apply_entry(seller.id, **_entry(amount=100, idempotency_key="c"))

    history = await service.list_transactions(seller.id)
    assert [t.balance_after for t in history] == [5100, 5000, 5000]
    assert [t.balance_field for t in history] == ["available", "pending", "available"]

    sales = await service.list_transactions(seller.id, type=TransactionType.SALE)
    assert [t.type for t in sales] == ["sale"]

    page = await service.list_transactions(seller.id, skip=1, limit=1)
    assert len(page) == 1 and page[0].type == "sale"


@pytest.mark.asyncio
async def test_replay_matches_cached_balances(uow_factory, seller):
    service = LedgerApplicationService(uow_factory)
    await service.apply_entry(
        seller.id,
        **_entry(type=TransactionType.SALE, balance_field=BalanceField.PENDING, amount=10000, idempotency_key="s"),
    )
    await service.apply_entry(
        seller.id,
        **_entry(
            type=TransactionType.FEE,
            direction=Direction.DEBIT,
            balance_field=BalanceField.PENDING,
            amount=1000,
            idempotency_key="f",
        ),
    )
    await service.apply_entry(seller.id, **_entry(amount=2500, idempotency_key="c"))

    report = await service.replay(seller.id)

    assert report.consistent is True
    assert report.replayed_pending_balance == 9000
    assert report.replayed_balance == 2500
    assert report.transaction_count == 3


@pytest.mark.asyncio
async def test_replay_detects_drift(store, uow_factory, seller):
    service = LedgerApplicationService(uow_factory)
    await service.apply_entry(seller.id, **_entry())
    # Balance edited outside the ledger
    store.accounts[seller.id].balance = 9999

    report = await service.replay(seller.id)

    assert report.consistent is False
    assert report.balance == 9999
    assert report.replayed_balance == 5000


def test_transaction_rejects_inconsistent_snapshot():
    with pytest.raises(DomainValidationException):
        Transaction(
            id=None,
            account_id=1,
            type=TransactionType.SALE,
            direction=Direction.CREDIT,
            amount=100,
            currency="XOF",
            balance_field=BalanceField.PENDING,
            balance_before=0,
            balance_after=50,
            description="bad",
            idempotency_key="x",
        )


class _BrokenNotifier:
    def notify(self, account_id, kind, payload):
        raise RuntimeError("broker down")


@pytest.mark.asyncio
async def test_notifier_failure_does_not_fail_the_entry(store, uow_factory, seller, monkeypatch):
    warnings = []
    monkeypatch.setattr(ledger_service.logger, "warning", lambda event, **kw: warnings.append((event, kw)))
    service = LedgerApplicationService(uow_factory, notifier=_BrokenNotifier())

    result = await service.apply_entry(seller.id, **_entry())

    assert result.account.balance == 5000
    assert store.accounts[seller.id].balance == 5000
    assert warnings == [(
        "notification_dispatch_failed",
        {"event_type": "LedgerEntryRecorded", "error": "broker down"},
    )]


@pytest.mark.asyncio
async def test_overview_summarizes_completed_activity(store, uow_factory, seller):
    service = LedgerApplicationService(uow_factory)
    sale = dict(type=TransactionType.SALE, balance_field=BalanceField.PENDING)
    commission = dict(type=TransactionType.FEE, direction=Direction.DEBIT, balance_field=BalanceField.PENDING)
    older = [
        await service.apply_entry(seller.id, **_entry(amount=10000, order_id=1, idempotency_key="s1", **sale)),
        await service.apply_entry(seller.id, **_entry(amount=1000, order_id=1, idempotency_key="f1", **commission)),
    ]
    await service.apply_entry(seller.id, **_entry(
        type=TransactionType.TRANSFER, direction=Direction.DEBIT, balance_field=BalanceField.PENDING,
        amount=9000, order_id=1, idempotency_key="t1",
    ))
    await service.apply_entry(seller.id, **_entry(
        type=TransactionType.TRANSFER, amount=9000, order_id=1, idempotency_key="t2",
    ))
    await service.apply_entry(seller.id, **_entry(amount=15000, order_id=2, idempotency_key="s2", **sale))
    await service.apply_entry(seller.id, **_entry(amount=1500, order_id=2, idempotency_key="f2", **commission))
    await service.apply_entry(seller.id, **_entry(
        type=TransactionType.PAYOUT, direction=Direction.DEBIT, amount=5000, idempotency_key="p",
    ))
    await service.apply_entry(seller.id, **_entry(
        type=TransactionType.FEE, direction=Direction.DEBIT, amount=100, idempotency_key="pf",
    ))
    now = datetime.now(timezone.utc)
    for result in older:
        store.transactions[result.transaction.id].created_at = now - timedelta(days=40)

    overview = await service.overview(seller.id, now=now)

    assert (overview.balance, overview.pending_balance) == (3900, 13500)
    assert overview.total_credits == 25000
    assert overview.total_debits == 7600
    assert overview.net_revenue == 17400
    assert overview.total_commissions == 2500
    assert overview.total_payouts == 5000
    assert overview.revenue_30d == 15000
    assert overview.commissions_30d == 1500
    assert overview.revenue_trend == 50
    assert overview.transaction_count == 8
    assert overview.currency == "XOF"


@pytest.mark.parametrize(
    "recent, previous, trend",
    [(4, 3, 33), (7, 8, -12), (5, 0, 100), (0, 0, 0), (0, 10, -100)],
)
def test_revenue_trend_rounds_half_up(recent, previous, trend):
    overview = FinanceOverview(
        account_id=1,
        currency="XOF",
        balance=0,
        pending_balance=0,
        revenue_30d=recent,
        previous_revenue_30d=previous,
    )
    assert overview.revenue_trend == trend


@pytest.mark.asyncio
async def test_overview_of_unknown_account(uow_factory):
    with pytest.raises(AccountNotFoundException):
        await LedgerApplicationService(uow_factory).overview(404)
