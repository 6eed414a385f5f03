from decimal import Decimal

import pytest

from application.dtos.disputes import CommentCreateDTO, DisputeCreateDTO, DisputeResolveDTO
from domain.common.exceptions import (
    AlreadyTerminalException,
    DomainValidationException,
    ForbiddenActionException,
    InvalidTransitionException,
)
from domain.dispute.entity import DisputeReason, DisputeStatus, ResolutionType
from domain.dispute.refund import RefundEngine, _allocate
from domain.order.entity import Order, OrderItem, OrderStatus
from domain.wallet.entity import LedgerBucket, TransactionType

from conftest import ADMIN, CUSTOMER, OTHER_CUSTOMER, VENDOR_A, VENDOR_B


CLAIM = "The blender arrived with a cracked jug and leaks"


def _order(*lines, discount="0.00", shipping_fee="0.00") -> Order:
    items = [
        OrderItem(
            id=n,
            order_id=1,
            vendor_id=vendor_id,
            product_snapshot={"sku": f"SKU-{n}"},
            unit_price=Decimal(price),
            quantity=qty,
            commission_rate=Decimal(rate),
        )
        for n, (vendor_id, price, qty, rate) in enumerate(lines, start=1)
    ]
    subtotal = sum((i.total for i in items), Decimal("0.00"))
    return Order(
        id=1,
        order_number="ORD-20260302-TEST0001",
        customer_id=CUSTOMER.user_id,
        items=items,
        subtotal=subtotal,
        discount=Decimal(discount),
        shipping_fee=Decimal(shipping_fee),
        total=subtotal - Decimal(discount) + Decimal(shipping_fee),
        address_snapshot={"city": "Kandy"},
    )


class TestRefundCalculation:
    def test_full_refund_splits_by_items(self):
        calc = RefundEngine.calculate_refund(_order(("vendor-a", "1000.00", 1, "10"), ("vendor-b", "500.00", 1, "20")))

        assert calc.refund_amount == Decimal("1500.00")
        assert [(s.vendor_id, s.share, s.commission_reversed) for s in calc.shares] == [
            ("vendor-a", Decimal("1000.00"), Decimal("100.00")),
            ("vendor-b", Decimal("500.00"), Decimal("100.00")),
        ]
        assert calc.shares[0].net_reversed == Decimal("900.00")

    def test_partial_refund_with_discount_and_shipping(self):
        order = _order(
            ("vendor-a", "1000.00", 1, "10"),
            ("vendor-b", "500.00", 1, "20"),
            discount="100.00",
            shipping_fee="50.00",
        )
        calc = RefundEngine.calculate_refund(order, Decimal("725.00"))

        assert [s.share for s in calc.shares] == [Decimal("500.00"), Decimal("250.00")]
        assert [s.commission_reversed for s in calc.shares] == [Decimal("50.00"), Decimal("50.00")]
        assert calc.vendor_total == Decimal("750.00")

    def test_items_from_one_vendor_are_grouped(self):
        order = _order(("vendor-a", "100.00", 2, "10"), ("vendor-a", "50.00", 1, "10"), ("vendor-b", "50.00", 1, "5"))
        calc = RefundEngine.calculate_refund(order)

        assert [(s.vendor_id, s.items_total) for s in calc.shares] == [
            ("vendor-a", Decimal("250.00")),
            ("vendor-b", Decimal("50.00")),
        ]

    @pytest.mark.parametrize("amount", ["0.00", "-5.00", "1500.01", "10.005"])
    def test_custom_amount_bounds(self, amount):
        order = _order(("vendor-a", "1000.00", 1, "10"), ("vendor-b", "500.00", 1, "20"))
        with pytest.raises(DomainValidationException):
            RefundEngine.calculate_refund(order, Decimal(amount))


def test_allocate_assigns_remainder_cents():
    shares = _allocate(Decimal("100.00"), [Decimal("1"), Decimal("1"), Decimal("1")])
    assert sum(shares) == Decimal("100.00")
    assert sorted(shares) == [Decimal("33.33"), Decimal("33.33"), Decimal("33.34")]

    assert _allocate(Decimal("10.00"), [Decimal("0"), Decimal("0")]) == [Decimal("0"), Decimal("0")]


async def _open(market, order, customer=CUSTOMER, reason=DisputeReason.DAMAGED_PRODUCT, **kwargs):
    return await market.disputes.open_dispute(
        customer, DisputeCreateDTO(order_id=order.id, reason=reason, description=CLAIM, **kwargs)
    )


def _resolution(kind: ResolutionType, amount=None, notes="Photos confirm the damage"):
    return DisputeResolveDTO(
        resolution_type=kind,
        admin_notes=notes,
        custom_refund_amount=Decimal(amount) if amount else None,
    )


@pytest.mark.asyncio
async def test_full_refund_after_release_zeroes_wallets(two_vendors):
    market = two_vendors
    order = await market.confirmed_order((VENDOR_A.user_id, "1000.00", 1), (VENDOR_B.user_id, "500.00", 1))

    dispute = await _open(market, order)
    assert dispute.status is DisputeStatus.OPEN
    assert (await market.orders.get_order(order.id, ADMIN)).status is OrderStatus.DISPUTED

    await market.disputes.start_review(dispute.id, ADMIN)
    result = await market.disputes.resolve(dispute.id, ADMIN, _resolution(ResolutionType.CUSTOMER_FAVOR))

    assert result.current_status is DisputeStatus.RESOLVED_CUSTOMER_FAVOR
    assert result.order_previous_status is OrderStatus.DISPUTED
    assert result.order_status is OrderStatus.REFUNDED
    assert result.refund.refund_amount == Decimal("1500.00")
    assert {a.bucket for a in result.refund.allocations} == {LedgerBucket.AVAILABLE}
    assert result.dispute.refund_processed_at is not None
    assert [c.content for c in result.dispute.comments] == [
        "Dispute resolved: CUSTOMER_FAVOR\n\nPhotos confirm the damage",
        "Refund processed. Amount: 1500.00",
    ]

    for vendor in (VENDOR_A, VENDOR_B):
        wallet = await market.wallet(vendor.user_id)
        assert wallet.pending_balance == Decimal("0.00")
        assert wallet.available_balance == Decimal("0.00")
        assert wallet.total_earnings == Decimal("0.00")
        assert (await market.wallets.reconcile(ADMIN, vendor.user_id)).consistent


@pytest.mark.asyncio
async def test_partial_refund_before_release_releases_the_rest(two_vendors):
    market = two_vendors
    order = await market.delivered_order((VENDOR_A.user_id, "1000.00", 1), (VENDOR_B.user_id, "500.00", 1))
    dispute = await _open(market, order, reason=DisputeReason.NOT_AS_DESCRIBED)
    await market.disputes.start_review(dispute.id, ADMIN)

    result = await market.disputes.resolve(
        dispute.id, ADMIN, _resolution(ResolutionType.CUSTOMER_FAVOR, amount="750.00")
    )
    allocations = {a.vendor_id: a for a in result.refund.allocations}

    a = allocations[VENDOR_A.user_id]
    assert (a.bucket, a.share, a.commission_reversed, a.released_remainder) == (
        LedgerBucket.PENDING, Decimal("500.00"), Decimal("50.00"), Decimal("450.00")
    )
    b = allocations[VENDOR_B.user_id]
    assert (b.share, b.commission_reversed, b.released_remainder) == (
        Decimal("250.00"), Decimal("50.00"), Decimal("200.00")
    )

    wallet_a = await market.wallet(VENDOR_A.user_id)
    assert (wallet_a.pending_balance, wallet_a.available_balance) == (Decimal("0.00"), Decimal("450.00"))
    wallet_b = await market.wallet(VENDOR_B.user_id)
    assert (wallet_b.pending_balance, wallet_b.available_balance) == (Decimal("0.00"), Decimal("200.00"))
    assert result.dispute.refund_amount == Decimal("750.00")


@pytest.mark.asyncio
async def test_refund_is_processed_once(two_vendors):
    market = two_vendors
    order = await market.confirmed_order((VENDOR_A.user_id, "1000.00", 1))
    dispute = await _open(market, order)
    await market.disputes.start_review(dispute.id, ADMIN)
    await market.disputes.resolve(dispute.id, ADMIN, _resolution(ResolutionType.CUSTOMER_FAVOR))
    _, before = await market.wallets.list_transactions(VENDOR_A)

    assert await market.disputes.process_refund(dispute.id, ADMIN) is None

    _, after = await market.wallets.list_transactions(VENDOR_A)
    assert after == before
    with pytest.raises(AlreadyTerminalException):
        await market.disputes.resolve(dispute.id, ADMIN, _resolution(ResolutionType.VENDOR_FAVOR))


@pytest.mark.asyncio
async def test_vendor_favor_restores_order_status(two_vendors):
    market = two_vendors
    order = await market.confirmed_order((VENDOR_A.user_id, "1000.00", 1))
    dispute = await _open(market, order, reason=DisputeReason.QUALITY_ISSUE)
    await market.disputes.start_review(dispute.id, ADMIN)

    with pytest.raises(DomainValidationException):
        await market.disputes.resolve(
            dispute.id, ADMIN, _resolution(ResolutionType.VENDOR_FAVOR, amount="100.00")
        )

    result = await market.disputes.resolve(
        dispute.id, ADMIN, _resolution(ResolutionType.VENDOR_FAVOR, notes="Item matches the listing")
    )
    assert result.current_status is DisputeStatus.RESOLVED_VENDOR_FAVOR
    assert result.order_status is OrderStatus.DELIVERY_CONFIRMED
    assert result.refund is None

    wallet = await market.wallet(VENDOR_A.user_id)
    assert wallet.available_balance == Decimal("900.00")
    with pytest.raises(InvalidTransitionException):
        await market.disputes.process_refund(dispute.id, ADMIN)


@pytest.mark.asyncio
async def test_resolution_requires_review_and_notes(two_vendors):
    market = two_vendors
    order = await market.delivered_order((VENDOR_A.user_id, "1000.00", 1))
    dispute = await _open(market, order)

    with pytest.raises(InvalidTransitionException):
        await market.disputes.resolve(dispute.id, ADMIN, _resolution(ResolutionType.CUSTOMER_FAVOR))
    with pytest.raises(DomainValidationException):
        await market.disputes.resolve(dispute.id, ADMIN, _resolution(ResolutionType.CLOSED_NO_ACTION, notes="ok"))
    with pytest.raises(ForbiddenActionException):
        await market.disputes.start_review(dispute.id, VENDOR_A)

    closed = await market.disputes.resolve(
        dispute.id, ADMIN, _resolution(ResolutionType.CLOSED_NO_ACTION, notes="Customer withdrew the claim")
    )
    assert closed.current_status is DisputeStatus.CLOSED
    assert closed.order_status is OrderStatus.DELIVERED


@pytest.mark.asyncio
async def test_open_dispute_rules(two_vendors):
    market = two_vendors
    unshipped = await market.paid_order((VENDOR_A.user_id, "100.00", 1))
    with pytest.raises(InvalidTransitionException):
        await _open(market, unshipped)

    order = await market.delivered_order((VENDOR_A.user_id, "100.00", 1))
    with pytest.raises(ForbiddenActionException):
        await _open(market, order, customer=OTHER_CUSTOMER)
    with pytest.raises(DomainValidationException):
        await market.disputes.open_dispute(
            CUSTOMER, DisputeCreateDTO(order_id=order.id, reason=DisputeReason.OTHER, description="Too short")
        )
    with pytest.raises(DomainValidationException):
        await _open(market, order, evidence=["http://example.com/photo.jpg"])

    dispute = await _open(market, order, evidence=["https://cdn.example.com/photo-1.jpg"])
    assert dispute.evidence == ["https://cdn.example.com/photo-1.jpg"]
    with pytest.raises(InvalidTransitionException):
        await _open(market, order)


@pytest.mark.asyncio
async def test_dispute_window_is_seven_days(two_vendors):
    market = two_vendors
    order = await market.confirmed_order((VENDOR_A.user_id, "100.00", 1))
    market.clock.advance(days=7, seconds=1)

    with pytest.raises(InvalidTransitionException):
        await _open(market, order)


@pytest.mark.asyncio
async def test_restored_status_does_not_reopen_the_window(two_vendors):
    market = two_vendors
    order = await market.confirmed_order((VENDOR_A.user_id, "100.00", 1))
    market.clock.advance(days=6)
    dispute = await _open(market, order)
    await market.disputes.start_review(dispute.id, ADMIN)
    market.clock.advance(days=3)
    result = await market.disputes.resolve(
        dispute.id, ADMIN, _resolution(ResolutionType.VENDOR_FAVOR, notes="Item matches the listing")
    )
    assert result.order_status is OrderStatus.DELIVERY_CONFIRMED

    with pytest.raises(InvalidTransitionException):
        await _open(market, order)


@pytest.mark.asyncio
async def test_comments_by_participants_only(two_vendors):
    market = two_vendors
    order = await market.delivered_order((VENDOR_A.user_id, "100.00", 1), (VENDOR_B.user_id, "100.00", 1))
    dispute = await _open(market, order)

    comment = await market.disputes.add_comment(dispute.id, VENDOR_B, CommentCreateDTO(content="Replacement sent"))
    assert comment.author_role == "VENDOR"
    await market.disputes.add_comment(dispute.id, CUSTOMER, CommentCreateDTO(content="Thanks"))

    with pytest.raises(ForbiddenActionException):
        await market.disputes.add_comment(dispute.id, OTHER_CUSTOMER, CommentCreateDTO(content="Me too"))
    with pytest.raises(DomainValidationException):
        await market.disputes.add_comment(dispute.id, CUSTOMER, CommentCreateDTO(content="   "))
    with pytest.raises(DomainValidationException):
        await market.disputes.add_comment(dispute.id, CUSTOMER, CommentCreateDTO(content="x" * 1001))
    await market.disputes.add_comment(dispute.id, VENDOR_A, CommentCreateDTO(content="y" * 1000))

    loaded = await market.disputes.get_dispute(dispute.id, VENDOR_A)
    assert [c.content for c in loaded.comments] == ["Replacement sent", "Thanks", "y" * 1000]

    await market.disputes.resolve(dispute.id, ADMIN, _resolution(ResolutionType.CLOSED_NO_ACTION))
    with pytest.raises(AlreadyTerminalException):
        await market.disputes.add_comment(dispute.id, CUSTOMER, CommentCreateDTO(content="One more thing"))

    closed = await market.disputes.get_dispute(dispute.id, CUSTOMER)
    assert len(closed.comments) == 4
    assert closed.comments[-1].author_role == "ADMIN"
    assert closed.comments[-1].content == "Dispute resolved: CLOSED_NO_ACTION\n\nPhotos confirm the damage"


@pytest.mark.asyncio
async def test_refund_ledger_rows_reference_the_dispute(two_vendors, uow_factory):
    market = two_vendors
    order = await market.confirmed_order((VENDOR_B.user_id, "500.00", 1))
    dispute = await _open(market, order)
    await market.disputes.start_review(dispute.id, ADMIN)
    await market.disputes.resolve(dispute.id, ADMIN, _resolution(ResolutionType.CUSTOMER_FAVOR))

    rows, _ = await market.wallets.list_transactions(VENDOR_B, type=TransactionType.REFUND)
    assert len(rows) == 1
    assert rows[0].reference_type == "DISPUTE"
    assert rows[0].reference_id == dispute.id
    assert rows[0].amount == Decimal("-500.00")
