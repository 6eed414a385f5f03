from datetime import datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy import update

from application.dtos.wallets import AdjustmentDTO
from domain.common.exceptions import (
    ConcurrencyConflictException,
    DomainValidationException,
    DuplicateResourceException,
    ForbiddenActionException,
    InsufficientBalanceException,
)
from domain.wallet.entity import LedgerBucket, Posting, ReferenceType, TransactionType, Wallet
from domain.wallet.service import WalletLedger, replay
from infrastructure.models.wallet import WalletModel

from conftest import ADMIN, VENDOR_A, VENDOR_B


NOW = datetime(2026, 3, 2, 9, 30, tzinfo=timezone.utc)


def _wallet(**balances) -> Wallet:
    return Wallet(id=1, vendor_id="vendor-a", commission_rate=Decimal("10"), **balances)


class TestPostingRules:
    def test_hold_then_release_moves_net_to_available(self):
        wallet = _wallet()
        wallet.apply(Posting(type=TransactionType.HOLD, amount=Decimal("1000.00")), NOW)
        wallet.apply(Posting(type=TransactionType.COMMISSION, amount=Decimal("-100.00")), NOW)
        txn = wallet.apply(
            Posting(type=TransactionType.RELEASE, amount=Decimal("900.00"), gross_amount=Decimal("1000.00")),
            NOW,
        )

        assert wallet.pending_balance == Decimal("0.00")
        assert wallet.available_balance == Decimal("900.00")
        assert wallet.total_earnings == Decimal("900.00")
        assert (txn.pending_before, txn.pending_after) == (Decimal("1000.00"), Decimal("0.00"))
        assert (txn.available_before, txn.available_after) == (Decimal("0.00"), Decimal("900.00"))

    def test_refund_from_available_reduces_by_net(self):
        wallet = _wallet(available_balance=Decimal("900.00"), total_earnings=Decimal("900.00"))
        wallet.apply(
            Posting(
                type=TransactionType.REFUND,
                amount=Decimal("-1000.00"),
                net_amount=Decimal("900.00"),
                bucket=LedgerBucket.AVAILABLE,
            ),
            NOW,
        )
        assert wallet.available_balance == Decimal("0.00")
        assert wallet.total_earnings == Decimal("0.00")

    def test_payout_and_reversal_track_withdrawn(self):
        wallet = _wallet(available_balance=Decimal("1500.00"))
        wallet.apply(Posting(type=TransactionType.PAYOUT, amount=Decimal("-1200.00")), NOW)
        assert wallet.total_withdrawn == Decimal("1200.00")

        wallet.apply(
            Posting(type=TransactionType.CREDIT, amount=Decimal("1200.00"), reference_type=ReferenceType.PAYOUT),
            NOW,
        )
        assert wallet.available_balance == Decimal("1500.00")
        assert wallet.total_withdrawn == Decimal("0.00")
        assert wallet.total_earnings == Decimal("0.00")

    def test_overdraw_leaves_wallet_untouched(self):
        wallet = _wallet(available_balance=Decimal("10.00"))
        with pytest.raises(InsufficientBalanceException):
            wallet.apply(Posting(type=TransactionType.PAYOUT, amount=Decimal("-10.01")), NOW)
        assert wallet.available_balance == Decimal("10.00")
        assert wallet.total_withdrawn == Decimal("0.00")

    @pytest.mark.parametrize(
        "posting",
        [
            {"type": TransactionType.HOLD, "amount": Decimal("-1.00")},
            {"type": TransactionType.RELEASE, "amount": Decimal("5.00")},
            {"type": TransactionType.REFUND, "amount": Decimal("-5.00")},
            {"type": TransactionType.PAYOUT, "amount": Decimal("5.00")},
            {"type": TransactionType.CREDIT, "amount": Decimal("-5.00")},
        ],
    )
    def test_malformed_postings_rejected(self, posting):
        with pytest.raises(DomainValidationException):
            Posting(**posting)


@pytest.mark.asyncio
async def test_open_wallet_once_per_vendor(market):
    wallet = await market.open_wallet(VENDOR_A.user_id, "12.50")
    assert wallet.commission_rate == Decimal("12.50")
    assert wallet.available_balance == Decimal("0.00")

    with pytest.raises(DuplicateResourceException):
        await market.open_wallet(VENDOR_A.user_id, "10.00")


@pytest.mark.asyncio
async def test_vendor_cannot_open_wallet(market):
    from application.dtos.wallets import WalletCreateDTO

    with pytest.raises(ForbiddenActionException):
        await market.wallets.open_wallet(VENDOR_A, WalletCreateDTO(vendor_id=VENDOR_A.user_id))


@pytest.mark.asyncio
async def test_debit_beyond_available_is_rejected_without_rows(two_vendors):
    market = two_vendors
    await market.fund(VENDOR_A.user_id, "100.00")

    with pytest.raises(InsufficientBalanceException):
        await market.wallets.adjust(
            ADMIN, VENDOR_A.user_id, AdjustmentDTO(amount=Decimal("-100.01"), reason="Chargeback from bank")
        )

    wallet = await market.wallet(VENDOR_A.user_id)
    assert wallet.available_balance == Decimal("100.00")
    rows, total = await market.wallets.list_transactions(VENDOR_A)
    assert total == 1
    assert rows[0].type is TransactionType.CREDIT


@pytest.mark.asyncio
async def test_adjustment_requires_reason(two_vendors):
    with pytest.raises(DomainValidationException):
        await two_vendors.wallets.adjust(
            ADMIN, VENDOR_A.user_id, AdjustmentDTO(amount=Decimal("5.00"), reason="short")
        )


@pytest.mark.asyncio
async def test_replay_reconstructs_cached_balances(two_vendors):
    market = two_vendors
    await market.confirmed_order((VENDOR_A.user_id, "1000.00", 1), (VENDOR_B.user_id, "250.00", 2))
    await market.paid_order((VENDOR_A.user_id, "300.00", 1))
    await market.fund(VENDOR_B.user_id, "75.50")

    for vendor in (VENDOR_A, VENDOR_B):
        report = await market.wallets.reconcile(ADMIN, vendor.user_id)
        assert report.consistent, report.issues
        assert report.expected == report.actual

    wallet_a = await market.wallet(VENDOR_A.user_id)
    assert wallet_a.pending_balance == Decimal("300.00")
    assert wallet_a.available_balance == Decimal("900.00")


@pytest.mark.asyncio
async def test_reconcile_flags_tampered_balance(two_vendors, uow_factory):
    market = two_vendors
    await market.fund(VENDOR_A.user_id, "500.00")

    async with uow_factory() as uow:
        await uow.session.execute(
            update(WalletModel)
            .where(WalletModel.vendor_id == VENDOR_A.user_id)
            .values(available_balance=Decimal("650.00"))
        )

    report = await market.wallets.reconcile(ADMIN, VENDOR_A.user_id)
    assert not report.consistent
    assert report.expected.available == Decimal("500.00")
    assert report.actual.available == Decimal("650.00")
    assert any(issue.startswith("available") for issue in report.issues)

    reports = await market.wallets.reconcile_all()
    assert [r.consistent for r in reports] == [False, True]


@pytest.mark.asyncio
async def test_stale_wallet_write_raises_conflict(two_vendors, uow_factory, clock):
    async with uow_factory() as uow:
        ledger = WalletLedger(uow.wallet_repository, uow.wallet_transaction_repository, clock)
        stale = await uow.wallet_repository.get_by_vendor_id(VENDOR_A.user_id)
        await ledger.post_for_vendor(VENDOR_A.user_id, Posting(type=TransactionType.HOLD, amount=Decimal("10.00")))

        stale.apply(Posting(type=TransactionType.HOLD, amount=Decimal("20.00")), clock())
        with pytest.raises(ConcurrencyConflictException):
            await uow.wallet_repository.update(stale)
        await uow.rollback()


@pytest.mark.asyncio
async def test_replay_of_listed_transactions_matches_wallet(two_vendors, uow_factory):
    market = two_vendors
    await market.confirmed_order((VENDOR_B.user_id, "500.00", 1))

    async with uow_factory(readonly=True) as uow:
        wallet = await uow.wallet_repository.get_by_vendor_id(VENDOR_B.user_id)
        rows = await uow.wallet_transaction_repository.list_for_replay(wallet.id)

    assert [r.type for r in rows] == [TransactionType.HOLD, TransactionType.COMMISSION, TransactionType.RELEASE]
    assert replay(rows) == wallet.balances
