"""
争议退款引擎 - 多商家按比例分摊退款并冲销佣金

所有余额变更都经由 WalletLedger 记账。
"""
from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, ROUND_DOWN, ROUND_HALF_UP
from typing import List, Optional

from domain.common.exceptions import DomainValidationException
from domain.common.money import CENT, ZERO, ensure_cents, to_money
from domain.order.entity import Order
from domain.wallet.commission import compute_commission
from domain.wallet.entity import LedgerBucket, Posting, ReferenceType, TransactionType
from domain.wallet.service import WalletLedger


@dataclass(frozen=True)
class VendorRefundShare:
    vendor_id: str
    items_total: Decimal
    commission_total: Decimal
    share: Decimal
    commission_reversed: Decimal

    @property
    def net_reversed(self) -> Decimal:
        return self.share - self.commission_reversed


@dataclass(frozen=True)
class RefundCalculation:
    order_id: int
    refund_amount: Decimal
    shares: List[VendorRefundShare]

    @property
    def vendor_total(self) -> Decimal:
        return sum((s.share for s in self.shares), ZERO)


@dataclass
class AppliedVendorRefund:
    vendor_id: str
    wallet_id: int
    bucket: LedgerBucket
    share: Decimal
    commission_reversed: Decimal
    net_reversed: Decimal
    released_remainder: Decimal = ZERO
    transaction_ids: List[int] = field(default_factory=list)


def _allocate(amount: Decimal, weights: List[Decimal]) -> List[Decimal]:
    """按权重把 amount 分到分，舍入余数按最大余数法分配，保证总和等于 amount"""
    total_weight = sum(weights, ZERO)
    if total_weight == 0:
        return [ZERO for _ in weights]
    exact = [amount * w / total_weight for w in weights]
    floors = [e.quantize(CENT, rounding=ROUND_DOWN) for e in exact]
    remainder = int(((amount - sum(floors, ZERO)) / CENT).to_integral_value())
    order = sorted(range(len(weights)), key=lambda i: (exact[i] - floors[i], weights[i]), reverse=True)
    for i in order[:remainder]:
        floors[i] += CENT
    return floors


class RefundEngine:
    """
    退款引擎

    职责：
    1. calculate_refund：按商家分组，按订单金额占比分摊退款额
    2. apply：逐商家记 REFUND 与佣金冲销（COMMISSION 正数），自动判断资金所在余额桶
    """

    def __init__(self, ledger: WalletLedger):
        self.ledger = ledger

    @staticmethod
    def calculate_refund(order: Order, custom_amount: Optional[Decimal] = None) -> RefundCalculation:
        if custom_amount is not None:
            refund = ensure_cents(Decimal(str(custom_amount)), field="custom_refund_amount")
            if refund <= 0:
                raise DomainValidationException("Refund amount must be positive", field="custom_refund_amount")
            if refund > order.total:
                raise DomainValidationException(
                    f"Refund amount {refund} exceeds order total {order.total}",
                    field="custom_refund_amount",
                )
        else:
            refund = order.total
        if refund <= 0:
            raise DomainValidationException("Order total is zero, nothing to refund", field="custom_refund_amount")

        groups = order.items_by_vendor()
        vendor_totals = [sum((i.total for i in items), ZERO) for items in groups.values()]
        commissions = [
            sum((compute_commission(i.total, i.commission_rate).commission for i in items), ZERO)
            for items in groups.values()
        ]
        # 商家承担部分 = refund * 商品合计 / 订单总额；运费/优惠差额由平台承担
        borne = to_money(refund * order.subtotal / order.total)
        shares = _allocate(borne, vendor_totals)

        result: List[VendorRefundShare] = []
        for vendor_id, items_total, commission_total, share in zip(groups.keys(), vendor_totals, commissions, shares):
            if items_total == 0:
                reversed_commission = ZERO
            else:
                reversed_commission = (share * commission_total / items_total).quantize(CENT, rounding=ROUND_HALF_UP)
            result.append(
                VendorRefundShare(
                    vendor_id=vendor_id,
                    items_total=items_total,
                    commission_total=commission_total,
                    share=share,
                    commission_reversed=min(reversed_commission, share),
                )
            )
        return RefundCalculation(order_id=order.id, refund_amount=refund, shares=result)

    async def apply(
        self,
        order: Order,
        calculation: RefundCalculation,
        *,
        reference_type: ReferenceType,
        reference_id: int,
        description: str,
    ) -> List[AppliedVendorRefund]:
        applied: List[AppliedVendorRefund] = []
        for share in calculation.shares:
            if share.share <= 0:
                continue
            applied.append(
                await self._apply_vendor(order, share, reference_type, reference_id, description)
            )
        return applied

    async def _apply_vendor(
        self,
        order: Order,
        share: VendorRefundShare,
        reference_type: ReferenceType,
        reference_id: int,
        description: str,
    ) -> AppliedVendorRefund:
        wallet = await self.ledger.get_wallet(share.vendor_id)
        rows = await self.ledger.transaction_repository.list_by_reference(wallet.id, ReferenceType.ORDER, order.id)
        released = any(r.type is TransactionType.RELEASE for r in rows)
        bucket = LedgerBucket.AVAILABLE if released else LedgerBucket.PENDING

        result = AppliedVendorRefund(
            vendor_id=share.vendor_id,
            wallet_id=wallet.id,
            bucket=bucket,
            share=share.share,
            commission_reversed=share.commission_reversed,
            net_reversed=share.net_reversed,
        )

        refund_txn = await self.ledger.post(
            wallet.id,
            Posting(
                type=TransactionType.REFUND,
                amount=-share.share,
                net_amount=share.net_reversed if released else None,
                bucket=bucket,
                description=description,
                reference_type=reference_type,
                reference_id=reference_id,
            ),
        )
        result.transaction_ids.append(refund_txn.id)

        if share.commission_reversed > 0:
            commission_txn = await self.ledger.post(
                wallet.id,
                Posting(
                    type=TransactionType.COMMISSION,
                    amount=share.commission_reversed,
                    description=f"Commission reversed: {description}",
                    reference_type=reference_type,
                    reference_id=reference_id,
                ),
            )
            result.transaction_ids.append(commission_txn.id)

        if not released:
            # 订单进入终态，剩余冻结款扣除剩余佣金后释放给商家
            held = sum((r.amount for r in rows if r.type is TransactionType.HOLD), ZERO)
            held_commission = -sum((r.amount for r in rows if r.type is TransactionType.COMMISSION), ZERO)
            remaining = held - share.share
            if remaining > 0:
                remaining_commission = min(max(held_commission - share.commission_reversed, ZERO), remaining)
                release_txn = await self.ledger.post(
                    wallet.id,
                    Posting(
                        type=TransactionType.RELEASE,
                        amount=remaining - remaining_commission,
                        gross_amount=remaining,
                        description=f"Release of unrefunded balance for order {order.order_number}",
                        reference_type=ReferenceType.ORDER,
                        reference_id=order.id,
                    ),
                )
                result.released_remainder = remaining - remaining_commission
                result.transaction_ids.append(release_txn.id)
        return result
