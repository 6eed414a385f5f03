from decimal import Decimal

import pytest

from application.dtos.orders import (
    AdminNoteDTO,
    CancelOrderDTO,
    ItemStatusUpdateDTO,
    ReturnRequestDTO,
    StatusOverrideDTO,
)
from domain.common.exceptions import (
    AlreadyTerminalException,
    DomainValidationException,
    ForbiddenActionException,
    InvalidTransitionException,
    WalletNotFoundException,
)
from domain.order.entity import OrderStatus
from domain.wallet.entity import TransactionType

from conftest import ADMIN, CUSTOMER, OTHER_CUSTOMER, VENDOR_A, VENDOR_B


TWO_VENDOR_CART = ((VENDOR_A.user_id, "1000.00", 1), (VENDOR_B.user_id, "250.00", 2))


@pytest.mark.asyncio
async def test_place_order_snapshots_rates_and_totals(two_vendors):
    order = await two_vendors.place_order(*TWO_VENDOR_CART, discount="100.00", shipping_fee="350.00")

    assert order.status is OrderStatus.PENDING_PAYMENT
    assert order.order_number.startswith("ORD-20260302-")
    assert order.subtotal == Decimal("1500.00")
    assert order.total == Decimal("1750.00")
    assert [i.commission_rate for i in order.items] == [Decimal("10.00"), Decimal("20.00")]
    assert [h.status for h in order.history] == [OrderStatus.PENDING_PAYMENT]
    assert order.address["city"] == "Colombo"


@pytest.mark.asyncio
async def test_place_order_requires_vendor_wallet(two_vendors):
    with pytest.raises(WalletNotFoundException):
        await two_vendors.place_order(("vendor-without-wallet", "10.00", 1))


@pytest.mark.asyncio
async def test_discount_cannot_exceed_subtotal(two_vendors):
    with pytest.raises(DomainValidationException):
        await two_vendors.place_order((VENDOR_A.user_id, "100.00", 1), discount="100.01")


@pytest.mark.asyncio
async def test_two_vendor_settlement(two_vendors):
    market = two_vendors
    order = await market.place_order((VENDOR_A.user_id, "1000.00", 1), (VENDOR_B.user_id, "500.00", 1))

    paid = await market.pay(order)
    assert paid.previous_status is OrderStatus.PENDING_PAYMENT
    assert paid.current_status is OrderStatus.PAYMENT_CONFIRMED
    assert paid.amounts == {VENDOR_A.user_id: Decimal("1000.00"), VENDOR_B.user_id: Decimal("500.00")}

    a, b = await market.wallet(VENDOR_A.user_id), await market.wallet(VENDOR_B.user_id)
    assert (a.pending_balance, a.available_balance) == (Decimal("1000.00"), Decimal("0.00"))
    assert (b.pending_balance, b.available_balance) == (Decimal("500.00"), Decimal("0.00"))

    await market.ship(order)
    await market.orders.mark_delivered(order.id, VENDOR_A)
    released = await market.orders.confirm_delivery(order.id, CUSTOMER)
    assert released.current_status is OrderStatus.DELIVERY_CONFIRMED
    assert released.amounts == {VENDOR_A.user_id: Decimal("900.00"), VENDOR_B.user_id: Decimal("400.00")}

    a, b = await market.wallet(VENDOR_A.user_id), await market.wallet(VENDOR_B.user_id)
    assert (a.pending_balance, a.available_balance, a.total_earnings) == (
        Decimal("0.00"), Decimal("900.00"), Decimal("900.00")
    )
    assert (b.pending_balance, b.available_balance, b.total_earnings) == (
        Decimal("0.00"), Decimal("400.00"), Decimal("400.00")
    )


@pytest.mark.asyncio
async def test_duplicate_payment_confirmation_does_not_double_hold(two_vendors):
    market = two_vendors
    order = await market.paid_order((VENDOR_A.user_id, "1000.00", 1))

    again = await market.pay(order)
    assert again.changed is False
    assert again.current_status is OrderStatus.PAYMENT_CONFIRMED

    wallet = await market.wallet(VENDOR_A.user_id)
    assert wallet.pending_balance == Decimal("1000.00")
    _, total = await market.wallets.list_transactions(VENDOR_A, type=TransactionType.HOLD)
    assert total == 1


@pytest.mark.asyncio
async def test_failed_payment_cancels_without_ledger_effects(two_vendors):
    market = two_vendors
    order = await market.place_order((VENDOR_A.user_id, "1000.00", 1))

    result = await market.pay(order, status="failed")
    assert result.current_status is OrderStatus.CANCELLED
    duplicate = await market.pay(order, status="FAILED")
    assert duplicate.changed is False

    _, total = await market.wallets.list_transactions(VENDOR_A)
    assert total == 0
    with pytest.raises(InvalidTransitionException):
        await market.pay(order)


@pytest.mark.asyncio
async def test_item_status_rolls_up_to_slowest_item(two_vendors):
    market = two_vendors
    order = await market.paid_order(*TWO_VENDOR_CART)
    item_a, item_b = order.items

    step = await market.orders.update_item_status(
        item_a.id, VENDOR_A, ItemStatusUpdateDTO(status=OrderStatus.PROCESSING)
    )
    assert step.current_status is OrderStatus.PAYMENT_CONFIRMED
    assert step.changed is False

    step = await market.orders.update_item_status(
        item_b.id, VENDOR_B, ItemStatusUpdateDTO(status=OrderStatus.PROCESSING)
    )
    assert step.current_status is OrderStatus.PROCESSING

    with pytest.raises(DomainValidationException):
        await market.orders.update_item_status(item_a.id, VENDOR_A, ItemStatusUpdateDTO(status=OrderStatus.SHIPPED))
    with pytest.raises(ForbiddenActionException):
        await market.orders.update_item_status(
            item_a.id, VENDOR_B, ItemStatusUpdateDTO(status=OrderStatus.SHIPPED, tracking_number="TRK-1")
        )
    with pytest.raises(InvalidTransitionException):
        await market.orders.update_item_status(
            item_a.id, VENDOR_A, ItemStatusUpdateDTO(status=OrderStatus.DELIVERED)
        )


@pytest.mark.asyncio
async def test_confirm_delivery_twice_is_rejected(two_vendors):
    market = two_vendors
    order = await market.confirmed_order((VENDOR_A.user_id, "1000.00", 1))

    with pytest.raises(AlreadyTerminalException):
        await market.orders.confirm_delivery(order.id, CUSTOMER)

    wallet = await market.wallet(VENDOR_A.user_id)
    assert wallet.available_balance == Decimal("900.00")


@pytest.mark.asyncio
async def test_only_the_buyer_confirms_delivery(two_vendors):
    market = two_vendors
    order = await market.delivered_order((VENDOR_A.user_id, "1000.00", 1))

    with pytest.raises(ForbiddenActionException):
        await market.orders.confirm_delivery(order.id, OTHER_CUSTOMER)
    with pytest.raises(ForbiddenActionException):
        await market.orders.get_order(order.id, OTHER_CUSTOMER)
    assert (await market.orders.get_order(order.id, VENDOR_A)).status is OrderStatus.DELIVERED


@pytest.mark.asyncio
async def test_cancel_paid_order_reverses_hold_and_commission(two_vendors):
    market = two_vendors
    order = await market.paid_order(*TWO_VENDOR_CART)
    market.clock.advance(hours=23)

    result = await market.orders.cancel(order.id, CUSTOMER, CancelOrderDTO(reason="Found it cheaper"))
    assert result.current_status is OrderStatus.CANCELLED
    assert result.amounts == {VENDOR_A.user_id: Decimal("1000.00"), VENDOR_B.user_id: Decimal("500.00")}

    for vendor in (VENDOR_A, VENDOR_B):
        wallet = await market.wallet(vendor.user_id)
        assert wallet.pending_balance == Decimal("0.00")
        assert wallet.available_balance == Decimal("0.00")
        assert (await market.wallets.reconcile(ADMIN, vendor.user_id)).consistent

    with pytest.raises(AlreadyTerminalException):
        await market.orders.cancel(order.id, CUSTOMER, CancelOrderDTO(reason="Again"))


@pytest.mark.asyncio
async def test_cancel_window_expires_after_a_day(two_vendors):
    market = two_vendors
    order = await market.paid_order((VENDOR_A.user_id, "1000.00", 1))
    market.clock.advance(hours=24, seconds=1)

    with pytest.raises(InvalidTransitionException) as exc:
        await market.orders.cancel(order.id, CUSTOMER, CancelOrderDTO(reason="Too slow"))
    assert exc.value.current == OrderStatus.PAYMENT_CONFIRMED.value

    wallet = await market.wallet(VENDOR_A.user_id)
    assert wallet.pending_balance == Decimal("1000.00")


@pytest.mark.asyncio
async def test_cannot_cancel_once_processing(two_vendors):
    market = two_vendors
    order = await market.paid_order((VENDOR_A.user_id, "1000.00", 1))
    await market.orders.update_item_status(
        order.items[0].id, VENDOR_A, ItemStatusUpdateDTO(status=OrderStatus.PROCESSING)
    )

    with pytest.raises(InvalidTransitionException):
        await market.orders.cancel(order.id, CUSTOMER, CancelOrderDTO(reason="Changed my mind"))


@pytest.mark.asyncio
async def test_return_completed_reverses_released_funds(two_vendors):
    market = two_vendors
    order = await market.confirmed_order((VENDOR_A.user_id, "1000.00", 1), (VENDOR_B.user_id, "500.00", 1))
    market.clock.advance(hours=2)

    requested = await market.orders.request_return(
        order.id, CUSTOMER, ReturnRequestDTO(reason="Wrong size", description="Ordered M, got XL")
    )
    assert requested.current_status is OrderStatus.RETURN_REQUESTED

    returned = await market.orders.complete_return(order.id, ADMIN, AdminNoteDTO(note="Parcel received"))
    assert returned.current_status is OrderStatus.RETURNED
    assert returned.amounts == {VENDOR_A.user_id: Decimal("1000.00"), VENDOR_B.user_id: Decimal("500.00")}

    for vendor in (VENDOR_A, VENDOR_B):
        wallet = await market.wallet(vendor.user_id)
        assert wallet.available_balance == Decimal("0.00")
        assert wallet.total_earnings == Decimal("0.00")


@pytest.mark.asyncio
async def test_return_window_measured_from_delivery(two_vendors):
    market = two_vendors
    order = await market.delivered_order((VENDOR_A.user_id, "1000.00", 1))
    market.clock.advance(hours=25)

    with pytest.raises(InvalidTransitionException):
        await market.orders.request_return(order.id, CUSTOMER, ReturnRequestDTO(reason="Late regret"))


@pytest.mark.asyncio
async def test_rejected_return_restores_previous_status(two_vendors):
    market = two_vendors
    order = await market.delivered_order((VENDOR_A.user_id, "1000.00", 1))
    await market.orders.request_return(order.id, CUSTOMER, ReturnRequestDTO(reason="Scratched"))

    result = await market.orders.reject_return(order.id, ADMIN, AdminNoteDTO(note="Photos show no damage"))
    assert result.current_status is OrderStatus.DELIVERED

    with pytest.raises(DomainValidationException):
        await market.orders.request_return(order.id, CUSTOMER, ReturnRequestDTO(reason="  "))


@pytest.mark.asyncio
async def test_rejected_return_does_not_reopen_the_window(two_vendors):
    market = two_vendors
    order = await market.delivered_order((VENDOR_A.user_id, "1000.00", 1))
    market.clock.advance(hours=20)
    await market.orders.request_return(order.id, CUSTOMER, ReturnRequestDTO(reason="Scratched"))
    market.clock.advance(days=3)
    await market.orders.reject_return(order.id, ADMIN, AdminNoteDTO(note="Photos show no damage"))

    with pytest.raises(InvalidTransitionException):
        await market.orders.request_return(order.id, CUSTOMER, ReturnRequestDTO(reason="Scratched again"))


@pytest.mark.asyncio
async def test_override_to_same_status_appends_no_history(two_vendors):
    market = two_vendors
    order = await market.place_order((VENDOR_A.user_id, "1000.00", 1))

    with pytest.raises(InvalidTransitionException):
        await market.orders.override_status(
            order.id, ADMIN, StatusOverrideDTO(status=OrderStatus.PENDING_PAYMENT, reason="Customer called support")
        )

    reloaded = await market.orders.get_order(order.id, ADMIN)
    assert len(reloaded.history) == 1


@pytest.mark.asyncio
async def test_override_moves_status_without_money(two_vendors):
    market = two_vendors
    order = await market.paid_order((VENDOR_A.user_id, "1000.00", 1))

    with pytest.raises(DomainValidationException):
        await market.orders.override_status(order.id, ADMIN, StatusOverrideDTO(status=OrderStatus.SHIPPED, reason="ok"))
    with pytest.raises(ForbiddenActionException):
        await market.orders.override_status(
            order.id, VENDOR_A, StatusOverrideDTO(status=OrderStatus.SHIPPED, reason="Courier picked it up")
        )

    result = await market.orders.override_status(
        order.id, ADMIN, StatusOverrideDTO(status=OrderStatus.SHIPPED, reason="Courier picked it up")
    )
    assert result.previous_status is OrderStatus.PAYMENT_CONFIRMED
    assert result.current_status is OrderStatus.SHIPPED

    reloaded = await market.orders.get_order(order.id, ADMIN)
    assert [h.sequence for h in reloaded.history] == [1, 2, 3]
    assert reloaded.history[-1].actor_id == ADMIN.user_id
    assert all(i.status is OrderStatus.SHIPPED for i in reloaded.items)

    wallet = await market.wallet(VENDOR_A.user_id)
    assert wallet.pending_balance == Decimal("1000.00")


@pytest.mark.asyncio
async def test_list_orders_is_scoped_to_customer(two_vendors):
    market = two_vendors
    await market.place_order((VENDOR_A.user_id, "10.00", 1))
    await market.place_order((VENDOR_A.user_id, "20.00", 1))
    await market.place_order((VENDOR_A.user_id, "30.00", 1), customer=OTHER_CUSTOMER)

    orders, total = await market.orders.list_orders(CUSTOMER)
    assert total == 2
    assert {o.customer_id for o in orders} == {CUSTOMER.user_id}
