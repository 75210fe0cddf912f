from datetime import datetime, timedelta, timezone

import pytest

from application.dtos.ledger import PayoutDetailsDTO, PayoutRequestDTO
from application.dtos.payments import ProviderStatus
from application.services.payout_service import PayoutService
from domain.common.exceptions import (
    AccountInactiveException,
    InsufficientFundsException,
    PayoutNotAllowedException,
    PayoutNotFoundException,
)
from domain.ledger.entity import AccountStatus, Direction, TransactionType
from domain.payout.entity import PayoutMethod, PayoutStatus, calculate_fee, mask_details
from domain.payout.service import PayoutPolicy
from infrastructure.external.payments.exceptions import ProviderError
from shared.codes.payment_codes import ProviderOutcome


def _mobile_money(amount: int, **overrides) -> PayoutRequestDTO:
    fields = dict(
        amount=amount,
        method=PayoutMethod.MOBILE_MONEY,
        details=PayoutDetailsDTO(provider="mtn_bj", phone_number="22997000001"),
        contact_email="adjoa@example.com",
        contact_name="Adjoa Boateng",
    )
    fields.update(overrides)
    return PayoutRequestDTO(**fields)


@pytest.fixture
def service(uow_factory, gateway, notifier):
    policy = PayoutPolicy(min_amount=1000, two_factor_threshold=500000)
    return PayoutService(uow_factory, gateway, policy=policy, stale_hours=72, notifier=notifier)


@pytest.fixture
def funded(store):
    return store.add_account(balance=100000)


@pytest.mark.parametrize(
    "amount, method, fee",
    [
        (5000, PayoutMethod.MOBILE_MONEY, 100),
        (12345, PayoutMethod.MOBILE_MONEY, 123),
        (50000, PayoutMethod.MOBILE_MONEY, 500),
        (10000, PayoutMethod.BANK_TRANSFER, 500),
        (100000, PayoutMethod.BANK_TRANSFER, 1500),
        (10000, PayoutMethod.PAYPAL, 200),
        (10000, "crypto", 0),
    ],
)
def test_calculate_fee(amount, method, fee):
    assert calculate_fee(amount, method) == fee


def test_details_are_masked_for_storage():
    masked = mask_details({"phone_number": "22997000001", "email": "adjoa@example.com", "provider": "mtn_bj"})
    assert masked == {"phone_number": "*******0001", "email": "a***@example.com", "provider": "mtn_bj"}


@pytest.mark.asyncio
async def test_request_payout_debits_gross_and_submits_net(store, service, gateway, funded, notifier):
    payout = await service.request_payout(funded.id, _mobile_money(20000))

    assert payout.status == PayoutStatus.PROCESSING.value
    assert payout.reference == "po_test_1"
    assert (payout.amount, payout.fee, payout.net_amount) == (20000, 200, 19800)
    assert payout.details["phone_number"] == "*******0001"
    assert store.accounts[funded.id].balance == 80000

    debit, fee = store.transactions_for(funded.id)
    assert (debit.type, debit.direction, debit.amount) == (TransactionType.PAYOUT, Direction.DEBIT, 19800)
    assert (fee.type, fee.amount) == (TransactionType.FEE, 200)
    assert store.payouts[payout.id].transaction_id == debit.id

    (req,) = gateway.requests("initialize_payout")
    assert req.amount == 19800
    assert req.method == "mtn_bj"
    assert req.recipient == {"msisdn": "22997000001"}
    assert req.metadata == {"payout_id": payout.id, "account_id": funded.id}
    assert "PayoutRequested" in notifier.kinds()


@pytest.mark.asyncio
async def test_below_minimum_is_rejected(store, service, funded):
    with pytest.raises(PayoutNotAllowedException) as exc_info:
        await service.request_payout(funded.id, _mobile_money(999))
    assert exc_info.value.details["reason"] == "below_minimum"
    assert store.payouts == {}


@pytest.mark.asyncio
async def test_amount_above_available_balance(store, service, gateway):
    account = store.add_account(balance=5000, pending_balance=90000)

    with pytest.raises(InsufficientFundsException):
        await service.request_payout(account.id, _mobile_money(6000))

    assert store.accounts[account.id].balance == 5000
    assert store.payouts == {}
    assert gateway.calls == []


@pytest.mark.asyncio
async def test_required_details_per_method(service, funded):
    bank = _mobile_money(
        20000,
        method=PayoutMethod.BANK_TRANSFER,
        details=PayoutDetailsDTO(provider="bank_bj", account_name="Adjoa B."),
    )
    with pytest.raises(PayoutNotAllowedException) as exc_info:
        await service.request_payout(funded.id, bank)
    assert exc_info.value.field == "account_number"


@pytest.mark.asyncio
async def test_two_factor_threshold(store, service):
    rich = store.add_account(balance=1000000)

    with pytest.raises(PayoutNotAllowedException) as exc_info:
        await service.request_payout(rich.id, _mobile_money(500000))
    assert exc_info.value.details["reason"] == "2fa_required"

    payout = await service.request_payout(rich.id, _mobile_money(500000, verified_2fa=True))
    assert payout.requires_2fa is True


@pytest.mark.asyncio
async def test_inactive_account_cannot_withdraw(store, service):
    account = store.add_account(balance=50000, status=AccountStatus.SUSPENDED)

    with pytest.raises(AccountInactiveException):
        await service.request_payout(account.id, _mobile_money(20000))


@pytest.mark.asyncio
async def test_one_open_payout_at_a_time(service, funded):
    await service.request_payout(funded.id, _mobile_money(20000))

    with pytest.raises(PayoutNotAllowedException) as exc_info:
        await service.request_payout(funded.id, _mobile_money(20000))
    assert exc_info.value.details["reason"] == "payout_in_progress"


@pytest.mark.asyncio
async def test_cooldown_after_completed_payout(store, service, funded):
    first = await service.request_payout(funded.id, _mobile_money(20000))
    await service.confirm_payout(first.id, first.reference)

    with pytest.raises(PayoutNotAllowedException) as exc_info:
        await service.request_payout(funded.id, _mobile_money(20000))
    assert exc_info.value.details["reason"] == "cooldown"

    store.payouts[first.id].processed_at = datetime.now(timezone.utc) - timedelta(hours=25)
    second = await service.request_payout(funded.id, _mobile_money(20000))
    assert second.status == PayoutStatus.PROCESSING.value


@pytest.mark.asyncio
async def test_provider_rejection_compensates(store, service, gateway, funded, notifier):
    gateway.payout_error = ProviderError("Recipient wallet not found", provider="moneroo", status_code=422)

    payout = await service.request_payout(funded.id, _mobile_money(20000))

    assert payout.status == PayoutStatus.FAILED.value
    assert payout.failure_reason == "Recipient wallet not found"
    assert store.accounts[funded.id].balance == 100000

    debit, fee, reversal = store.transactions_for(funded.id)
    assert (reversal.type, reversal.direction, reversal.amount) == (TransactionType.CREDIT, Direction.CREDIT, 20000)
    assert reversal.idempotency_key == f"payout:{payout.id}:reversal"
    # Completed debit stays untouched; the reversal carries the link
    assert debit.metadata == {"payout_id": payout.id}
    assert reversal.metadata["reverses_transaction_id"] == debit.id
    assert "PayoutFailed" in notifier.kinds()


@pytest.mark.asyncio
async def test_confirm_and_fail_are_idempotent(store, service, funded):
    payout = await service.request_payout(funded.id, _mobile_money(20000))

    completed = await service.confirm_payout(payout.id, payout.reference)
    assert completed.status == PayoutStatus.COMPLETED
    assert completed.processed_at is not None

    assert await service.confirm_payout(payout.id, payout.reference) is None
    assert await service.fail_payout(payout.id, "late failure") is None
    assert store.accounts[funded.id].balance == 80000
    assert store.payouts[payout.id].status == PayoutStatus.COMPLETED


@pytest.mark.asyncio
async def test_failure_is_compensated_once(store, service, funded):
    payout = await service.request_payout(funded.id, _mobile_money(20000))

    await service.fail_payout(payout.id, "Operator timeout")
    assert await service.fail_payout(payout.id, "Operator timeout") is None

    assert store.accounts[funded.id].balance == 100000
    assert len(store.transactions_for(funded.id, TransactionType.CREDIT)) == 1


@pytest.mark.asyncio
async def test_verify_payout_applies_provider_answer(store, service, gateway, funded):
    payout = await service.request_payout(funded.id, _mobile_money(20000))
    gateway.payout_status = ProviderStatus(id=payout.reference, status="success")

    result = await service.verify_payout(payout.id, account_id=funded.id)

    assert result.outcome == ProviderOutcome.CONFIRM
    assert store.payouts[payout.id].status == PayoutStatus.COMPLETED

    again = await service.verify_payout(payout.id)
    assert again.outcome == ProviderOutcome.NOOP


@pytest.mark.asyncio
async def test_payouts_are_scoped_to_their_account(store, service, funded):
    payout = await service.request_payout(funded.id, _mobile_money(20000))
    other = store.add_account(balance=0)

    with pytest.raises(PayoutNotFoundException):
        await service.get_payout(other.id, payout.id)
    with pytest.raises(PayoutNotFoundException):
        await service.verify_payout(payout.id, account_id=other.id)

    listed = await service.list_payouts(funded.id, status=PayoutStatus.PROCESSING)
    assert [p.id for p in listed] == [payout.id]


@pytest.mark.asyncio
async def test_stale_payouts_are_reconciled(store, service, gateway):
    confirmed_shop = store.add_account(balance=50000)
    orphan_shop = store.add_account(balance=50000)
    waiting_shop = store.add_account(balance=50000)

    confirmed = await service.request_payout(confirmed_shop.id, _mobile_money(20000))
    orphan = await service.request_payout(orphan_shop.id, _mobile_money(20000))
    waiting = await service.request_payout(waiting_shop.id, _mobile_money(20000))

    old = datetime.now(timezone.utc) - timedelta(hours=80)
    for payout_id in (confirmed.id, orphan.id):
        store.payouts[payout_id].requested_at = old
    # Never reached the provider
    store.payouts[orphan.id].status = PayoutStatus.PENDING
    store.payouts[orphan.id].reference = None

    gateway.payout_status = ProviderStatus(id=confirmed.reference, status="success")
    report = await service.check_stale_payouts()

    assert (report.checked, report.completed, report.failed) == (2, 1, 1)
    assert store.payouts[confirmed.id].status == PayoutStatus.COMPLETED
    assert store.payouts[orphan.id].status == PayoutStatus.FAILED
    assert store.accounts[orphan_shop.id].balance == 50000
    assert store.payouts[waiting.id].status == PayoutStatus.PROCESSING


@pytest.mark.asyncio
async def test_eligibility_uses_the_full_available_balance(store, service, funded):
    result = await service.eligibility(funded.id)

    assert result.can_request_payout is True
    assert (result.balance, result.min_amount, result.currency) == (100000, 1000, "XOF")
    assert result.validation_error is None

    short = store.add_account(balance=999)
    below = await service.eligibility(short.id)
    assert below.can_request_payout is False
    assert below.reason == "below_minimum"
    assert below.validation_error == "Minimum payout amount is 1000"


@pytest.mark.asyncio
async def test_eligibility_reports_the_blocking_rule_without_writing(store, service, funded):
    await service.request_payout(funded.id, _mobile_money(20000))
    rows = len(store.transactions_for(funded.id))

    busy = await service.eligibility(funded.id)
    assert busy.can_request_payout is False
    assert busy.reason == "payout_in_progress"
    assert busy.balance == 80000
    assert len(store.transactions_for(funded.id)) == rows

    suspended = store.add_account(balance=50000, status=AccountStatus.SUSPENDED)
    inactive = await service.eligibility(suspended.id)
    assert inactive.reason == "AccountInactive"
    assert inactive.validation_error == f"Account {suspended.id} is suspended"


@pytest.mark.asyncio
async def test_eligibility_respects_cooldown(store, service, funded):
    first = await service.request_payout(funded.id, _mobile_money(20000))
    await service.confirm_payout(first.id, first.reference)

    now = datetime.now(timezone.utc)
    assert (await service.eligibility(funded.id, now=now)).reason == "cooldown"
    assert (await service.eligibility(funded.id, now=now + timedelta(hours=25))).can_request_payout is True
