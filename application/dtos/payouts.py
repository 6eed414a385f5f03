"""
Payout DTOs (Pydantic v2) used at application boundaries.
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import Field

from application.dto import DTOBase, Money
from domain.payout.entity import BankDetails, PayoutRequest, PayoutStatus
from domain.payout.service import PayoutTransition


class PayoutCreateDTO(DTOBase):
    amount: Money = Field(..., gt=0)
    bank_name: str = Field(..., min_length=1, max_length=100)
    account_number: str = Field(..., min_length=1, max_length=20)
    account_holder: str = Field(..., min_length=1, max_length=100)
    branch_code: Optional[str] = Field(None, max_length=3)
    notes: Optional[str] = Field(None, max_length=500)

    def bank(self) -> BankDetails:
        return BankDetails(
            bank_name=self.bank_name,
            account_number=self.account_number,
            account_holder=self.account_holder.strip(),
            branch_code=self.branch_code or None,
        )


class PayoutApproveDTO(DTOBase):
    notes: Optional[str] = Field(None, max_length=500)


class PayoutCompleteDTO(DTOBase):
    transaction_ref: str = Field(..., max_length=128)
    notes: Optional[str] = Field(None, max_length=500)


class PayoutFailDTO(DTOBase):
    reason: str = Field(..., max_length=500)


class PayoutDTO(DTOBase):
    id: int
    wallet_id: int
    vendor_id: str
    amount: Decimal
    status: PayoutStatus
    bank_name: str
    account_number: str
    account_holder: str
    branch_code: Optional[str] = None
    notes: Optional[str] = None
    admin_notes: Optional[str] = None
    transaction_ref: Optional[str] = None
    failure_reason: Optional[str] = None
    processed_by: Optional[str] = None
    processed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_entity(cls, payout: PayoutRequest) -> "PayoutDTO":
        return cls(
            id=payout.id,
            wallet_id=payout.wallet_id,
            vendor_id=payout.vendor_id,
            amount=payout.amount,
            status=payout.status,
            bank_name=payout.bank.bank_name,
            # 只返回账号后四位
            account_number=f"****{payout.bank.account_number[-4:]}",
            account_holder=payout.bank.account_holder,
            branch_code=payout.bank.branch_code,
            notes=payout.notes,
            admin_notes=payout.admin_notes,
            transaction_ref=payout.transaction_ref,
            failure_reason=payout.failure_reason,
            processed_by=payout.processed_by,
            processed_at=payout.processed_at,
            completed_at=payout.completed_at,
            created_at=payout.created_at,
            updated_at=payout.updated_at,
        )


class PayoutTransitionDTO(DTOBase):
    payout: PayoutDTO
    previous_status: Optional[PayoutStatus] = None
    current_status: PayoutStatus
    amount: Decimal
    transaction_id: Optional[int] = None
    available_after: Optional[Decimal] = None

    @classmethod
    def from_transition(cls, result: PayoutTransition) -> "PayoutTransitionDTO":
        txn = result.transaction
        return cls(
            payout=PayoutDTO.from_entity(result.payout),
            previous_status=result.previous_status,
            current_status=result.payout.status,
            amount=result.payout.amount,
            transaction_id=txn.id if txn else None,
            available_after=txn.available_after if txn else None,
        )
