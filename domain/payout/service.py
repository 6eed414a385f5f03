"""
提现领域服务 - 提现状态机与 PAYOUT / CREDIT 记账
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Callable, List, Optional

from domain.common.exceptions import (
    DomainValidationException,
    DuplicateResourceException,
    ForbiddenActionException,
    InsufficientBalanceException,
    PayoutNotFoundException,
)
from domain.common.money import ensure_cents, utcnow
from domain.common.policy import SettlementPolicy
from domain.common.principal import Principal, Role
from domain.wallet.entity import Posting, ReferenceType, TransactionType, WalletTransaction
from domain.wallet.service import WalletLedger

from .entity import BankDetails, PayoutRequest, PayoutStatus
from .events import PayoutApproved, PayoutCompleted, PayoutFailed, PayoutRequested
from .repository import PayoutRepository


@dataclass
class PayoutTransition:
    payout: PayoutRequest
    previous_status: Optional[PayoutStatus]
    transaction: Optional[WalletTransaction] = None


class PayoutDomainService:
    """
    提现领域服务

    业务规则：
    1. 申请金额在配置上下限内，同一钱包只允许一笔待审核申请
    2. 申请时只校验可用余额，不扣款
    3. 批准时在钱包行锁内复核余额并记 PAYOUT
    4. 处理中失败记 CREDIT 补偿
    """

    def __init__(
        self,
        payout_repository: PayoutRepository,
        ledger: WalletLedger,
        policy: SettlementPolicy,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.payout_repository = payout_repository
        self.ledger = ledger
        self.policy = policy
        self.clock = clock
        self.events: List = []

    async def get_payout(self, payout_id: int, *, for_update: bool = False) -> PayoutRequest:
        payout = await self.payout_repository.get_by_id(payout_id, for_update=for_update)
        if payout is None:
            raise PayoutNotFoundException(payout_id)
        return payout

    @staticmethod
    def ensure_can_view(payout: PayoutRequest, actor: Principal) -> None:
        if actor.is_admin or (actor.role is Role.VENDOR and actor.user_id == payout.vendor_id):
            return
        raise ForbiddenActionException("You do not have access to this payout")

    async def request(
        self,
        vendor: Principal,
        amount: Decimal,
        bank: BankDetails,
        notes: Optional[str] = None,
    ) -> PayoutTransition:
        vendor.require(Role.VENDOR)
        value = ensure_cents(Decimal(str(amount)))
        if value < self.policy.payout_min or value > self.policy.payout_max:
            raise DomainValidationException(
                f"Payout amount must be between {self.policy.payout_min} and {self.policy.payout_max}",
                field="amount",
            )
        bank.validate(self.policy.banks)
        if notes and len(notes) > 500:
            raise DomainValidationException("Notes must be at most 500 characters", field="notes")

        wallet = await self.ledger.get_wallet(vendor.user_id)
        if await self.payout_repository.exists_pending(wallet.id):
            raise DuplicateResourceException(
                "A payout request is already pending for this wallet",
                details={"wallet_id": wallet.id},
            )
        if wallet.available_balance < value:
            raise InsufficientBalanceException(wallet.id, "available", wallet.available_balance, value)

        now = self.clock()
        payout = await self.payout_repository.create(
            PayoutRequest(
                id=None,
                wallet_id=wallet.id,
                vendor_id=wallet.vendor_id,
                amount=value,
                bank=bank,
                notes=notes,
                created_at=now,
                updated_at=now,
            )
        )
        self.events.append(
            PayoutRequested(
                payout_id=payout.id,
                vendor_id=payout.vendor_id,
                amount=payout.amount,
                to_status=payout.status.value,
                bank_name=bank.bank_name,
            )
        )
        return PayoutTransition(payout=payout, previous_status=None)

    async def approve(self, payout_id: int, admin: Principal, notes: Optional[str] = None) -> PayoutTransition:
        """
        PENDING → PROCESSING，并在同一工作单元内记 PAYOUT

        余额不足时抛出 InsufficientBalanceException，事务回滚后申请仍为 PENDING。
        """
        admin.require(Role.ADMIN)
        payout = await self.get_payout(payout_id, for_update=True)
        now = self.clock()
        previous = payout.approve(admin.user_id, now, notes)

        txn = await self.ledger.post(
            payout.wallet_id,
            Posting(
                type=TransactionType.PAYOUT,
                amount=-payout.amount,
                description=f"Payout #{payout.id} to {payout.bank.bank_name}",
                reference_type=ReferenceType.PAYOUT,
                reference_id=payout.id,
            ),
        )
        payout = await self.payout_repository.update(payout)
        self.events.append(
            PayoutApproved(
                payout_id=payout.id,
                vendor_id=payout.vendor_id,
                amount=payout.amount,
                from_status=previous.value,
                to_status=payout.status.value,
                transaction_id=txn.id,
                available_after=txn.available_after,
            )
        )
        return PayoutTransition(payout=payout, previous_status=previous, transaction=txn)

    async def complete(
        self,
        payout_id: int,
        admin: Principal,
        transaction_ref: str,
        notes: Optional[str] = None,
    ) -> PayoutTransition:
        """PROCESSING → COMPLETED；款项已在批准时扣除，不再记账"""
        admin.require(Role.ADMIN)
        ref = (transaction_ref or "").strip()
        if len(ref) < self.policy.transaction_ref_min_length:
            raise DomainValidationException(
                f"Transaction reference must be at least {self.policy.transaction_ref_min_length} characters",
                field="transaction_ref",
            )
        payout = await self.get_payout(payout_id, for_update=True)
        previous = payout.complete(ref, self.clock(), notes)
        payout = await self.payout_repository.update(payout)
        self.events.append(
            PayoutCompleted(
                payout_id=payout.id,
                vendor_id=payout.vendor_id,
                amount=payout.amount,
                from_status=previous.value,
                to_status=payout.status.value,
                transaction_ref=ref,
            )
        )
        return PayoutTransition(payout=payout, previous_status=previous)

    async def fail(self, payout_id: int, admin: Principal, reason: str) -> PayoutTransition:
        """PENDING/PROCESSING → FAILED；来自 PROCESSING 时记 CREDIT 退回可用余额"""
        admin.require(Role.ADMIN)
        reason = (reason or "").strip()
        if len(reason) < self.policy.payout_fail_reason_min_length:
            raise DomainValidationException(
                f"Reason must be at least {self.policy.payout_fail_reason_min_length} characters",
                field="reason",
            )
        payout = await self.get_payout(payout_id, for_update=True)
        previous = payout.fail(reason, admin.user_id, self.clock())

        txn = None
        if previous is PayoutStatus.PROCESSING:
            txn = await self.ledger.post(
                payout.wallet_id,
                Posting(
                    type=TransactionType.CREDIT,
                    amount=payout.amount,
                    description=f"Payout #{payout.id} failed: {reason}",
                    reference_type=ReferenceType.PAYOUT,
                    reference_id=payout.id,
                ),
            )
        payout = await self.payout_repository.update(payout)
        self.events.append(
            PayoutFailed(
                payout_id=payout.id,
                vendor_id=payout.vendor_id,
                amount=payout.amount,
                from_status=previous.value,
                to_status=payout.status.value,
                reason=reason,
                refunded=txn is not None,
            )
        )
        return PayoutTransition(payout=payout, previous_status=previous, transaction=txn)

    def clear_events(self) -> List:
        """清空并返回领域事件"""
        events = self.events.copy()
        self.events.clear()
        return events
