from decimal import Decimal

import pytest

from application.services.outbox_relay import OutboxRelay
from application.services.wallet_service import WalletApplicationService
from domain.common.exceptions import ConcurrencyConflictException, DomainValidationException
from domain.common.outbox import OutboxStatus

from conftest import VENDOR_A, Marketplace, RecordingNotifier


async def _pending(uow_factory):
    async with uow_factory(readonly=True) as uow:
        return await uow.outbox_repository.list_pending(limit=100, max_attempts=100)


@pytest.mark.asyncio
async def test_events_are_published_after_commit(two_vendors, notifier):
    market = two_vendors
    order = await market.paid_order((VENDOR_A.user_id, "1000.00", 1))

    assert notifier.event_types == ["WalletOpened", "WalletOpened", "OrderPlaced", "OrderPaymentConfirmed"]
    confirmed = notifier.published[-1]
    assert confirmed.aggregate_type == "order"
    assert confirmed.aggregate_id == str(order.id)
    assert confirmed.payload["held"] == {VENDOR_A.user_id: "1000.00"}
    assert confirmed.payload["to_status"] == "PAYMENT_CONFIRMED"
    assert await _pending(market.uow_factory) == []


@pytest.mark.asyncio
async def test_broker_failure_keeps_the_committed_change(uow_factory, clock):
    market = Marketplace(uow_factory, RecordingNotifier(fail=True), clock)

    wallet = await market.open_wallet(VENDOR_A.user_id, "10.00")
    assert wallet.vendor_id == VENDOR_A.user_id
    assert (await market.wallet(VENDOR_A.user_id)).id == wallet.id

    [message] = await _pending(uow_factory)
    assert message.event_type == "WalletOpened"
    assert message.status is OutboxStatus.PENDING
    assert message.attempts == 1
    assert "broker unreachable" in message.last_error


@pytest.mark.asyncio
async def test_events_stay_pending_without_a_notifier(uow_factory, clock):
    market = Marketplace(uow_factory, None, clock)
    await market.open_wallet(VENDOR_A.user_id, "10.00")
    await market.fund(VENDOR_A.user_id, "50.00")

    pending = await _pending(uow_factory)
    assert [m.event_type for m in pending] == ["WalletOpened", "WalletAdjusted"]
    assert all(m.attempts == 0 for m in pending)
    assert pending[1].payload["amount"] == "50.00"


@pytest.mark.asyncio
async def test_relay_delivers_pending_events(uow_factory, clock):
    market = Marketplace(uow_factory, RecordingNotifier(fail=True), clock)
    await market.open_wallet(VENDOR_A.user_id, "10.00")
    await market.fund(VENDOR_A.user_id, "50.00")

    delivered = RecordingNotifier()
    result = await OutboxRelay(uow_factory, delivered, batch_size=10, max_attempts=5, clock=clock).run_once()

    assert (result.fetched, result.dispatched, result.failed) == (2, 2, 0)
    assert delivered.event_types == ["WalletOpened", "WalletAdjusted"]
    assert await _pending(uow_factory) == []

    again = await OutboxRelay(uow_factory, delivered, batch_size=10, max_attempts=5, clock=clock).run_once()
    assert again.fetched == 0


@pytest.mark.asyncio
async def test_relay_abandons_after_max_attempts(uow_factory, clock):
    market = Marketplace(uow_factory, None, clock)
    await market.open_wallet(VENDOR_A.user_id, "10.00")

    relay = OutboxRelay(uow_factory, RecordingNotifier(fail=True), batch_size=10, max_attempts=2, clock=clock)
    first = await relay.run_once()
    assert (first.failed, first.abandoned) == (1, 0)

    second = await relay.run_once()
    assert (second.failed, second.abandoned) == (1, 1)

    third = await relay.run_once()
    assert third.fetched == 0
    assert await _pending(uow_factory) == []


@pytest.mark.asyncio
async def test_conflicts_are_retried(uow_factory, clock):
    service = WalletApplicationService(uow_factory, clock=clock, conflict_retries=2)
    calls = []

    async def flaky(services):
        calls.append(services)
        if len(calls) < 3:
            raise ConcurrencyConflictException("wallet", 1, expected_version=0)
        return Decimal("1.00")

    assert await service._execute(flaky, name="flaky") == Decimal("1.00")
    assert len(calls) == 3
    assert calls[0] is not calls[2]


@pytest.mark.asyncio
async def test_conflict_retries_are_bounded(uow_factory, clock):
    service = WalletApplicationService(uow_factory, clock=clock, conflict_retries=1)
    calls = []

    async def always_conflicts(services):
        calls.append(services)
        raise ConcurrencyConflictException("wallet", 1)

    with pytest.raises(ConcurrencyConflictException):
        await service._execute(always_conflicts, name="always_conflicts")
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_only_conflicts_are_retried(uow_factory, clock):
    service = WalletApplicationService(uow_factory, clock=clock, conflict_retries=3)
    calls = []

    async def rejected(services):
        calls.append(services)
        raise DomainValidationException("Adjustment reason is too short", field="reason")

    with pytest.raises(DomainValidationException):
        await service._execute(rejected, name="rejected")
    assert len(calls) == 1
    assert await _pending(uow_factory) == []
