"""
提现领域实体 - 提现申请聚合根
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Dict, Optional

from domain.common.exceptions import (
    AlreadyTerminalException,
    DomainValidationException,
    InvalidTransitionException,
)
from domain.common.money import ensure_utc, to_money


class PayoutStatus(str, Enum):
    """提现状态枚举"""
    PENDING = "PENDING"          # 待审核
    PROCESSING = "PROCESSING"    # 已批准，银行转账中（已扣款）
    COMPLETED = "COMPLETED"      # 转账完成
    FAILED = "FAILED"            # 拒绝或转账失败


TRANSITIONS: Dict[PayoutStatus, frozenset] = {
    PayoutStatus.PENDING: frozenset({PayoutStatus.PROCESSING, PayoutStatus.FAILED}),
    PayoutStatus.PROCESSING: frozenset({PayoutStatus.COMPLETED, PayoutStatus.FAILED}),
    PayoutStatus.COMPLETED: frozenset(),
    PayoutStatus.FAILED: frozenset(),
}

_ACCOUNT_NUMBER = re.compile(r"^\d{8,20}$")
_BRANCH_CODE = re.compile(r"^\d{3}$")


@dataclass(frozen=True)
class BankDetails:
    bank_name: str
    account_number: str
    account_holder: str
    branch_code: Optional[str] = None

    def validate(self, banks: tuple[str, ...]) -> None:
        if self.bank_name not in banks:
            raise DomainValidationException(f"Unsupported bank: {self.bank_name}", field="bank_name")
        if not _ACCOUNT_NUMBER.match(self.account_number or ""):
            raise DomainValidationException("Account number must be 8-20 digits", field="account_number")
        holder = (self.account_holder or "").strip()
        if not 2 <= len(holder) <= 100:
            raise DomainValidationException("Account holder must be 2-100 characters", field="account_holder")
        if self.branch_code and not _BRANCH_CODE.match(self.branch_code):
            raise DomainValidationException("Branch code must be 3 digits", field="branch_code")


@dataclass
class PayoutRequest:
    """
    提现申请聚合根

    业务规则：
    1. 状态只能按 PENDING → PROCESSING → COMPLETED / FAILED 前进
    2. 批准时扣款（PAYOUT），处理中失败需补偿（CREDIT）
    3. 终态不可再变更
    """

    id: Optional[int]
    wallet_id: int
    vendor_id: str
    amount: Decimal
    bank: BankDetails
    status: PayoutStatus = PayoutStatus.PENDING
    notes: Optional[str] = None
    admin_notes: Optional[str] = None
    transaction_ref: Optional[str] = None
    failure_reason: Optional[str] = None
    processed_by: Optional[str] = None
    processed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    version: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        self.amount = to_money(self.amount)
        if self.amount <= 0:
            raise DomainValidationException(f"Payout amount must be positive: {self.amount}", field="amount")
        self.processed_at = ensure_utc(self.processed_at)
        self.completed_at = ensure_utc(self.completed_at)
        self.created_at = ensure_utc(self.created_at)
        self.updated_at = ensure_utc(self.updated_at)

    @property
    def is_terminal(self) -> bool:
        return not TRANSITIONS[self.status]

    def _move(self, target: PayoutStatus, now: datetime) -> PayoutStatus:
        if target not in TRANSITIONS[self.status]:
            raise InvalidTransitionException("payout", self.status.value, target.value)
        previous = self.status
        self.status = target
        self.updated_at = now
        return previous

    def approve(self, admin_id: str, now: datetime, notes: Optional[str] = None) -> PayoutStatus:
        if self.status is not PayoutStatus.PENDING:
            # 重复批准：已离开 PENDING 的申请视为已处理
            raise AlreadyTerminalException("payout", self.id, self.status.value)
        previous = self._move(PayoutStatus.PROCESSING, now)
        self.processed_by = admin_id
        self.processed_at = now
        if notes:
            self.admin_notes = notes
        return previous

    def complete(self, transaction_ref: str, now: datetime, notes: Optional[str] = None) -> PayoutStatus:
        if self.status is PayoutStatus.COMPLETED:
            raise AlreadyTerminalException("payout", self.id, self.status.value)
        previous = self._move(PayoutStatus.COMPLETED, now)
        self.transaction_ref = transaction_ref
        self.completed_at = now
        if notes:
            self.admin_notes = notes
        return previous

    def fail(self, reason: str, admin_id: str, now: datetime) -> PayoutStatus:
        if self.status is PayoutStatus.FAILED:
            raise AlreadyTerminalException("payout", self.id, self.status.value)
        previous = self._move(PayoutStatus.FAILED, now)
        self.failure_reason = reason
        self.processed_by = admin_id
        if self.processed_at is None:
            self.processed_at = now
        return previous
