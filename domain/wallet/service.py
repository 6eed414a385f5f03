"""
钱包账本领域服务 - 所有余额变更的唯一入口
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Callable, Iterable, List, Optional

from domain.common.exceptions import (
    DomainValidationException,
    DuplicateResourceException,
    WalletNotFoundException,
)
from domain.common.money import ZERO, to_money, utcnow
from domain.common.principal import Principal, Role

from .entity import (
    Balances,
    Posting,
    ReferenceType,
    TransactionType,
    Wallet,
    WalletTransaction,
)
from .events import WalletAdjusted, WalletOpened
from .repository import WalletRepository, WalletTransactionRepository


@dataclass
class ReconciliationReport:
    wallet_id: int
    vendor_id: str
    transaction_count: int
    expected: Balances
    actual: Balances
    broken_chain_at: Optional[int] = None
    issues: List[str] = field(default_factory=list)

    @property
    def is_consistent(self) -> bool:
        return not self.issues


def replay(transactions: Iterable[WalletTransaction]) -> Balances:
    """从零重放流水，得到余额投影"""
    state = Balances()
    for txn in transactions:
        state = state + txn.to_posting().deltas()
    return state


class WalletLedger:
    """
    钱包账本 - 记账的单一入口

    职责：
    1. 行锁读取钱包、按类型规则计算新余额并校验非负
    2. 写入带前后快照的流水，并以版本号条件写回钱包
    3. 重放流水核对缓存余额
    """

    def __init__(
        self,
        wallet_repository: WalletRepository,
        transaction_repository: WalletTransactionRepository,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.wallet_repository = wallet_repository
        self.transaction_repository = transaction_repository
        self.clock = clock
        self.events: List = []

    async def open_wallet(self, vendor_id: str, commission_rate: Decimal) -> Wallet:
        if await self.wallet_repository.get_by_vendor_id(vendor_id) is not None:
            raise DuplicateResourceException(
                f"Vendor {vendor_id} already has a wallet",
                details={"vendor_id": vendor_id},
                field="vendor_id",
            )
        now = self.clock()
        wallet = await self.wallet_repository.create(
            Wallet(
                id=None,
                vendor_id=vendor_id,
                commission_rate=commission_rate,
                created_at=now,
                updated_at=now,
            )
        )
        self.events.append(
            WalletOpened(wallet_id=wallet.id, vendor_id=vendor_id, commission_rate=wallet.commission_rate)
        )
        return wallet

    async def get_wallet(self, vendor_id: str) -> Wallet:
        wallet = await self.wallet_repository.get_by_vendor_id(vendor_id)
        if wallet is None:
            raise WalletNotFoundException(vendor_id)
        return wallet

    async def post(self, wallet_id: int, posting: Posting) -> WalletTransaction:
        """对指定钱包记账；余额不足或版本冲突时抛出异常，由工作单元回滚"""
        wallet = await self.wallet_repository.get_by_id(wallet_id, for_update=True)
        if wallet is None:
            raise WalletNotFoundException(wallet_id)
        return await self._apply(wallet, posting)

    async def post_for_vendor(self, vendor_id: str, posting: Posting) -> WalletTransaction:
        wallet = await self.wallet_repository.get_by_vendor_id(vendor_id, for_update=True)
        if wallet is None:
            raise WalletNotFoundException(vendor_id)
        return await self._apply(wallet, posting)

    async def _apply(self, wallet: Wallet, posting: Posting) -> WalletTransaction:
        txn = wallet.apply(posting, self.clock())
        await self.wallet_repository.update(wallet)
        return await self.transaction_repository.add(txn)

    async def adjust(
        self,
        vendor_id: str,
        amount: Decimal,
        reason: str,
        actor: Principal,
    ) -> WalletTransaction:
        """管理员调账：正数记 CREDIT，负数记 DEBIT"""
        actor.require(Role.ADMIN)
        value = to_money(amount)
        if value == 0:
            raise DomainValidationException("Adjustment amount must not be zero", field="amount")
        if not reason or len(reason.strip()) < 10:
            raise DomainValidationException("Adjustment reason must be at least 10 characters", field="reason")
        posting = Posting(
            type=TransactionType.CREDIT if value > 0 else TransactionType.DEBIT,
            amount=value,
            description=reason.strip(),
            reference_type=ReferenceType.ADJUSTMENT,
        )
        txn = await self.post_for_vendor(vendor_id, posting)
        self.events.append(
            WalletAdjusted(
                wallet_id=txn.wallet_id,
                vendor_id=vendor_id,
                transaction_id=txn.id,
                amount=value,
                reason=posting.description,
                actor_id=actor.user_id,
            )
        )
        return txn

    async def has_release(self, wallet_id: int, order_id: int) -> bool:
        """订单资金是否已从待结算释放到可用余额"""
        rows = await self.transaction_repository.list_by_reference(wallet_id, ReferenceType.ORDER, order_id)
        return any(r.type is TransactionType.RELEASE for r in rows)

    async def reconcile(self, wallet_id: int) -> ReconciliationReport:
        wallet = await self.wallet_repository.get_by_id(wallet_id)
        if wallet is None:
            raise WalletNotFoundException(wallet_id)
        transactions = await self.transaction_repository.list_for_replay(wallet_id)

        report = ReconciliationReport(
            wallet_id=wallet_id,
            vendor_id=wallet.vendor_id,
            transaction_count=len(transactions),
            expected=replay(transactions),
            actual=wallet.balances,
        )

        pending, available = ZERO, ZERO
        for txn in transactions:
            if txn.pending_before != pending or txn.available_before != available:
                report.broken_chain_at = txn.id
                report.issues.append(f"snapshot chain broken at transaction {txn.id}")
                break
            pending, available = txn.pending_after, txn.available_after

        for name in ("pending", "available", "total_earnings", "total_withdrawn"):
            expected, actual = getattr(report.expected, name), getattr(report.actual, name)
            if expected != actual:
                report.issues.append(f"{name}: ledger {expected} != wallet {actual}")
        return report

    def clear_events(self) -> List:
        """清空并返回领域事件"""
        events = self.events.copy()
        self.events.clear()
        return events
