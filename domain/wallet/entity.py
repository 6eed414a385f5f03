"""
钱包领域实体 - 商家钱包聚合根与不可变流水
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from domain.common.exceptions import DomainValidationException, InsufficientBalanceException
from domain.common.money import ZERO, ensure_utc, to_money
from domain.wallet.commission import normalize_rate


class TransactionType(str, Enum):
    """流水类型"""
    HOLD = "HOLD"                # 支付确认后冻结到待结算余额
    COMMISSION = "COMMISSION"    # 平台佣金记账（不改余额）
    RELEASE = "RELEASE"          # 确认收货后扣佣转入可用余额
    REFUND = "REFUND"            # 退款冲销
    PAYOUT = "PAYOUT"            # 提现扣款
    CREDIT = "CREDIT"            # 补偿/调账入账
    DEBIT = "DEBIT"              # 调账扣款


class ReferenceType(str, Enum):
    ORDER = "ORDER"
    DISPUTE = "DISPUTE"
    PAYOUT = "PAYOUT"
    ADJUSTMENT = "ADJUSTMENT"


class LedgerBucket(str, Enum):
    PENDING = "PENDING"
    AVAILABLE = "AVAILABLE"


@dataclass(frozen=True)
class Balances:
    pending: Decimal = ZERO
    available: Decimal = ZERO
    total_earnings: Decimal = ZERO
    total_withdrawn: Decimal = ZERO

    def __add__(self, other: "Balances") -> "Balances":
        return Balances(
            pending=self.pending + other.pending,
            available=self.available + other.available,
            total_earnings=self.total_earnings + other.total_earnings,
            total_withdrawn=self.total_withdrawn + other.total_withdrawn,
        )


@dataclass(frozen=True)
class Posting:
    """
    一次待记账指令

    amount 为带符号的主金额；RELEASE 需提供 gross_amount（从待结算扣除的毛额），
    REFUND 需提供 bucket，且从可用余额冲销时提供 net_amount。
    """

    type: TransactionType
    amount: Decimal
    description: str = ""
    reference_type: Optional[ReferenceType] = None
    reference_id: Optional[int] = None
    order_item_id: Optional[int] = None
    gross_amount: Optional[Decimal] = None
    net_amount: Optional[Decimal] = None
    bucket: Optional[LedgerBucket] = None

    def __post_init__(self):
        object.__setattr__(self, "amount", to_money(self.amount))
        if self.gross_amount is not None:
            object.__setattr__(self, "gross_amount", to_money(self.gross_amount, field="gross_amount"))
        if self.net_amount is not None:
            object.__setattr__(self, "net_amount", to_money(self.net_amount, field="net_amount"))
        self._validate()

    def _fail(self, message: str) -> None:
        raise DomainValidationException(f"{self.type.value}: {message}", field="amount")

    def _validate(self) -> None:
        t = self.type
        if t is TransactionType.HOLD and self.amount <= 0:
            self._fail("hold amount must be positive")
        elif t is TransactionType.COMMISSION and self.amount == 0:
            self._fail("commission amount must not be zero")
        elif t is TransactionType.RELEASE:
            if self.gross_amount is None or self.gross_amount <= 0:
                self._fail("release requires a positive gross amount")
            if self.amount < 0 or self.amount > self.gross_amount:
                self._fail("release net must be between 0 and the gross amount")
        elif t is TransactionType.REFUND:
            if self.amount >= 0:
                self._fail("refund amount must be negative")
            if self.bucket is None:
                self._fail("refund requires a bucket")
            if self.bucket is LedgerBucket.AVAILABLE and (
                self.net_amount is None or self.net_amount < 0 or self.net_amount > -self.amount
            ):
                self._fail("refund from available balance requires a net amount within the share")
        elif t in (TransactionType.PAYOUT, TransactionType.DEBIT) and self.amount >= 0:
            self._fail("amount must be negative")
        elif t is TransactionType.CREDIT and self.amount <= 0:
            self._fail("amount must be positive")

    def deltas(self) -> Balances:
        """按类型计算四个余额字段的变动"""
        t = self.type
        if t is TransactionType.HOLD:
            return Balances(pending=self.amount)
        if t is TransactionType.COMMISSION:
            return Balances()
        if t is TransactionType.RELEASE:
            return Balances(
                pending=-self.gross_amount,
                available=self.amount,
                total_earnings=self.amount,
            )
        if t is TransactionType.REFUND:
            if self.bucket is LedgerBucket.AVAILABLE:
                return Balances(available=-self.net_amount, total_earnings=-self.net_amount)
            return Balances(pending=self.amount)
        if t is TransactionType.PAYOUT:
            return Balances(available=self.amount, total_withdrawn=-self.amount)
        if t is TransactionType.CREDIT and self.reference_type is ReferenceType.PAYOUT:
            # 提现失败补偿：退回可用余额并冲减累计提现
            return Balances(available=self.amount, total_withdrawn=-self.amount)
        # CREDIT / DEBIT 调账
        return Balances(available=self.amount, total_earnings=self.amount)


@dataclass
class WalletTransaction:
    """不可变流水；创建后不更新、不删除"""

    id: Optional[int]
    wallet_id: int
    type: TransactionType
    amount: Decimal
    pending_before: Decimal
    pending_after: Decimal
    available_before: Decimal
    available_after: Decimal
    description: str = ""
    reference_type: Optional[ReferenceType] = None
    reference_id: Optional[int] = None
    order_item_id: Optional[int] = None
    gross_amount: Optional[Decimal] = None
    net_amount: Optional[Decimal] = None
    bucket: Optional[LedgerBucket] = None
    created_at: Optional[datetime] = None

    def __post_init__(self):
        self.created_at = ensure_utc(self.created_at)

    def to_posting(self) -> Posting:
        return Posting(
            type=self.type,
            amount=self.amount,
            description=self.description,
            reference_type=self.reference_type,
            reference_id=self.reference_id,
            order_item_id=self.order_item_id,
            gross_amount=self.gross_amount,
            net_amount=self.net_amount,
            bucket=self.bucket,
        )


@dataclass
class Wallet:
    """
    商家钱包聚合根

    业务规则：
    1. 每个商家一个钱包
    2. pending_balance 与 available_balance 任意时刻不得为负
    3. 余额只能通过 apply(posting) 变更，且每次变更产生一条流水
    """

    id: Optional[int]
    vendor_id: str
    commission_rate: Decimal
    pending_balance: Decimal = ZERO
    available_balance: Decimal = ZERO
    total_earnings: Decimal = ZERO
    total_withdrawn: Decimal = ZERO
    version: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        if not self.vendor_id:
            raise DomainValidationException("Vendor id is required", field="vendor_id")
        self.commission_rate = normalize_rate(self.commission_rate)
        self.pending_balance = to_money(self.pending_balance)
        self.available_balance = to_money(self.available_balance)
        self.total_earnings = to_money(self.total_earnings)
        self.total_withdrawn = to_money(self.total_withdrawn)
        self.created_at = ensure_utc(self.created_at)
        self.updated_at = ensure_utc(self.updated_at)

    @property
    def balances(self) -> Balances:
        return Balances(
            pending=self.pending_balance,
            available=self.available_balance,
            total_earnings=self.total_earnings,
            total_withdrawn=self.total_withdrawn,
        )

    def apply(self, posting: Posting, now: datetime) -> WalletTransaction:
        """
        应用一次记账并返回对应流水（尚未持久化）

        违反非负约束时抛出 InsufficientBalanceException，钱包保持不变。
        """
        before = self.balances
        after = before + posting.deltas()
        if after.pending < 0:
            raise InsufficientBalanceException(self.id, "pending", before.pending, -(after.pending - before.pending))
        if after.available < 0:
            raise InsufficientBalanceException(
                self.id, "available", before.available, -(after.available - before.available)
            )

        self.pending_balance = after.pending
        self.available_balance = after.available
        self.total_earnings = after.total_earnings
        self.total_withdrawn = after.total_withdrawn
        self.updated_at = now

        return WalletTransaction(
            id=None,
            wallet_id=self.id,
            type=posting.type,
            amount=posting.amount,
            pending_before=before.pending,
            pending_after=after.pending,
            available_before=before.available,
            available_after=after.available,
            description=posting.description,
            reference_type=posting.reference_type,
            reference_id=posting.reference_id,
            order_item_id=posting.order_item_id,
            gross_amount=posting.gross_amount,
            net_amount=posting.net_amount,
            bucket=posting.bucket,
            created_at=now,
        )
