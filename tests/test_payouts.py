import asyncio
from decimal import Decimal

import pytest

from application.dtos.payouts import PayoutApproveDTO, PayoutCompleteDTO, PayoutCreateDTO, PayoutFailDTO
from application.dtos.wallets import AdjustmentDTO
from domain.common.exceptions import (
    AlreadyTerminalException,
    DomainValidationException,
    DuplicateResourceException,
    ForbiddenActionException,
    InsufficientBalanceException,
    InvalidTransitionException,
)
from domain.payout.entity import PayoutStatus
from domain.wallet.entity import TransactionType

from conftest import ADMIN, CUSTOMER, VENDOR_A, VENDOR_B


def payout_request(amount: str, **overrides) -> PayoutCreateDTO:
    fields = {
        "amount": Decimal(amount),
        "bank_name": "Bank of Ceylon",
        "account_number": "0012345678",
        "account_holder": "Nimal Perera",
        "branch_code": "042",
    }
    fields.update(overrides)
    return PayoutCreateDTO(**fields)


@pytest.fixture
def funded(two_vendors):
    async def _funded(amount: str = "2500.00"):
        await two_vendors.fund(VENDOR_A.user_id, amount)
        return two_vendors

    return _funded


@pytest.mark.asyncio
async def test_request_does_not_move_money(funded):
    market = await funded()

    result = await market.payouts.request_payout(VENDOR_A, payout_request("2000.00"))
    assert result.current_status is PayoutStatus.PENDING
    assert result.previous_status is None
    assert result.transaction_id is None
    assert result.payout.account_number == "****5678"

    wallet = await market.wallet(VENDOR_A.user_id)
    assert wallet.available_balance == Decimal("2500.00")


@pytest.mark.asyncio
async def test_approve_rechecks_balance_and_leaves_request_pending(funded):
    market = await funded()
    requested = await market.payouts.request_payout(VENDOR_A, payout_request("2000.00"))
    await market.wallets.adjust(
        ADMIN, VENDOR_A.user_id, AdjustmentDTO(amount=Decimal("-1000.00"), reason="Chargeback from bank")
    )

    with pytest.raises(InsufficientBalanceException):
        await market.payouts.approve(requested.payout.id, ADMIN, PayoutApproveDTO())

    payout = await market.payouts.get_payout(requested.payout.id, ADMIN)
    assert payout.status is PayoutStatus.PENDING
    assert payout.processed_by is None
    wallet = await market.wallet(VENDOR_A.user_id)
    assert wallet.available_balance == Decimal("1500.00")
    assert wallet.total_withdrawn == Decimal("0.00")


@pytest.mark.asyncio
async def test_approve_debits_once(funded):
    market = await funded()
    requested = await market.payouts.request_payout(VENDOR_A, payout_request("2000.00"))

    approved = await market.payouts.approve(requested.payout.id, ADMIN, PayoutApproveDTO(notes="Batch 12"))
    assert approved.previous_status is PayoutStatus.PENDING
    assert approved.current_status is PayoutStatus.PROCESSING
    assert approved.available_after == Decimal("500.00")
    assert approved.payout.admin_notes == "Batch 12"

    with pytest.raises(AlreadyTerminalException):
        await market.payouts.approve(requested.payout.id, ADMIN, PayoutApproveDTO())

    wallet = await market.wallet(VENDOR_A.user_id)
    assert wallet.available_balance == Decimal("500.00")
    assert wallet.total_withdrawn == Decimal("2000.00")
    _, total = await market.wallets.list_transactions(VENDOR_A, type=TransactionType.PAYOUT)
    assert total == 1


@pytest.mark.asyncio
async def test_concurrent_approvals_spend_the_balance_once(funded):
    market = await funded("2000.00")
    requested = await market.payouts.request_payout(VENDOR_A, payout_request("2000.00"))

    results = await asyncio.gather(
        market.payouts.approve(requested.payout.id, ADMIN, PayoutApproveDTO()),
        market.payouts.approve(requested.payout.id, ADMIN, PayoutApproveDTO()),
        return_exceptions=True,
    )

    approved = [r for r in results if not isinstance(r, BaseException)]
    rejected = [r for r in results if isinstance(r, BaseException)]
    assert len(approved) == 1
    assert approved[0].current_status is PayoutStatus.PROCESSING
    assert len(rejected) == 1
    assert isinstance(rejected[0], (AlreadyTerminalException, InsufficientBalanceException))

    wallet = await market.wallet(VENDOR_A.user_id)
    assert wallet.available_balance == Decimal("0.00")
    assert wallet.total_withdrawn == Decimal("2000.00")
    rows, total = await market.wallets.list_transactions(VENDOR_A, type=TransactionType.PAYOUT)
    assert total == 1
    assert rows[0].amount == Decimal("-2000.00")


@pytest.mark.asyncio
async def test_failure_while_processing_credits_funds_back(funded):
    market = await funded()
    requested = await market.payouts.request_payout(VENDOR_A, payout_request("2000.00"))
    await market.payouts.approve(requested.payout.id, ADMIN, PayoutApproveDTO())

    with pytest.raises(DomainValidationException):
        await market.payouts.fail(requested.payout.id, ADMIN, PayoutFailDTO(reason="bounced"))

    failed = await market.payouts.fail(
        requested.payout.id, ADMIN, PayoutFailDTO(reason="Account closed by the bank")
    )
    assert failed.previous_status is PayoutStatus.PROCESSING
    assert failed.current_status is PayoutStatus.FAILED
    assert failed.transaction_id is not None
    assert failed.payout.failure_reason == "Account closed by the bank"

    wallet = await market.wallet(VENDOR_A.user_id)
    assert wallet.available_balance == Decimal("2500.00")
    assert wallet.total_withdrawn == Decimal("0.00")
    assert (await market.wallets.reconcile(ADMIN, VENDOR_A.user_id)).consistent

    with pytest.raises(AlreadyTerminalException):
        await market.payouts.fail(requested.payout.id, ADMIN, PayoutFailDTO(reason="Account closed by the bank"))


@pytest.mark.asyncio
async def test_rejecting_a_pending_request_posts_nothing(funded):
    market = await funded()
    requested = await market.payouts.request_payout(VENDOR_A, payout_request("1200.00"))

    failed = await market.payouts.fail(requested.payout.id, ADMIN, PayoutFailDTO(reason="Bank details mismatch"))
    assert failed.previous_status is PayoutStatus.PENDING
    assert failed.transaction_id is None

    _, total = await market.wallets.list_transactions(VENDOR_A)
    assert total == 1


@pytest.mark.asyncio
async def test_complete_is_terminal(funded):
    market = await funded()
    requested = await market.payouts.request_payout(VENDOR_A, payout_request("2000.00"))
    payout_id = requested.payout.id

    with pytest.raises(InvalidTransitionException):
        await market.payouts.complete(payout_id, ADMIN, PayoutCompleteDTO(transaction_ref="BOC-TX-99812"))

    await market.payouts.approve(payout_id, ADMIN, PayoutApproveDTO())
    with pytest.raises(DomainValidationException):
        await market.payouts.complete(payout_id, ADMIN, PayoutCompleteDTO(transaction_ref="TX1"))

    completed = await market.payouts.complete(payout_id, ADMIN, PayoutCompleteDTO(transaction_ref="BOC-TX-99812"))
    assert completed.current_status is PayoutStatus.COMPLETED
    assert completed.payout.transaction_ref == "BOC-TX-99812"
    assert completed.payout.completed_at is not None

    with pytest.raises(AlreadyTerminalException):
        await market.payouts.complete(payout_id, ADMIN, PayoutCompleteDTO(transaction_ref="BOC-TX-99812"))
    with pytest.raises(InvalidTransitionException):
        await market.payouts.fail(payout_id, ADMIN, PayoutFailDTO(reason="Changed our mind later"))

    wallet = await market.wallet(VENDOR_A.user_id)
    assert wallet.available_balance == Decimal("500.00")
    assert wallet.total_withdrawn == Decimal("2000.00")


@pytest.mark.asyncio
async def test_one_pending_request_per_wallet(funded):
    market = await funded("5000.00")
    first = await market.payouts.request_payout(VENDOR_A, payout_request("1500.00"))

    with pytest.raises(DuplicateResourceException):
        await market.payouts.request_payout(VENDOR_A, payout_request("1000.00"))

    await market.payouts.approve(first.payout.id, ADMIN, PayoutApproveDTO())
    second = await market.payouts.request_payout(VENDOR_A, payout_request("1000.00"))
    assert second.current_status is PayoutStatus.PENDING


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "amount, overrides",
    [
        ("999.99", {}),
        ("1000000.01", {}),
        ("1500.00", {"bank_name": "Bank of Atlantis"}),
        ("1500.00", {"account_number": "12AB5678"}),
        ("1500.00", {"account_number": "1234567"}),
        ("1500.00", {"account_holder": " N "}),
        ("1500.00", {"branch_code": "4A"}),
    ],
)
async def test_request_validation(funded, amount, overrides):
    market = await funded()
    with pytest.raises(DomainValidationException):
        await market.payouts.request_payout(VENDOR_A, payout_request(amount, **overrides))


@pytest.mark.asyncio
async def test_request_above_available_is_rejected(funded):
    market = await funded("1200.00")
    with pytest.raises(InsufficientBalanceException):
        await market.payouts.request_payout(VENDOR_A, payout_request("1200.01"))


@pytest.mark.asyncio
async def test_payout_access_is_scoped(funded):
    market = await funded()
    requested = await market.payouts.request_payout(VENDOR_A, payout_request("1000.00"))

    with pytest.raises(ForbiddenActionException):
        await market.payouts.request_payout(CUSTOMER, payout_request("1000.00"))
    with pytest.raises(ForbiddenActionException):
        await market.payouts.get_payout(requested.payout.id, VENDOR_B)
    with pytest.raises(ForbiddenActionException):
        await market.payouts.approve(requested.payout.id, VENDOR_A, PayoutApproveDTO())

    rows, total = await market.payouts.list_payouts(VENDOR_B)
    assert (rows, total) == ([], 0)
    rows, total = await market.payouts.list_payouts(ADMIN, status=PayoutStatus.PENDING)
    assert total == 1
    assert rows[0].vendor_id == VENDOR_A.user_id
