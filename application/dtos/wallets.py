"""
Wallet DTOs (Pydantic v2) used at application boundaries.
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import ConfigDict, Field

from application.dto import DTOBase, Money
from domain.wallet.entity import LedgerBucket, ReferenceType, TransactionType
from domain.wallet.service import ReconciliationReport


class WalletCreateDTO(DTOBase):
    vendor_id: str = Field(..., min_length=1, max_length=64)
    commission_rate: Decimal = Field(Decimal("10.00"), ge=0, le=100, decimal_places=2)


class WalletDTO(DTOBase):
    model_config = ConfigDict(from_attributes=True)

    id: int
    vendor_id: str
    commission_rate: Decimal
    pending_balance: Decimal
    available_balance: Decimal
    total_earnings: Decimal
    total_withdrawn: Decimal
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class WalletTransactionDTO(DTOBase):
    model_config = ConfigDict(from_attributes=True)

    id: int
    type: TransactionType
    amount: Decimal
    gross_amount: Optional[Decimal] = None
    net_amount: Optional[Decimal] = None
    bucket: Optional[LedgerBucket] = None
    pending_before: Decimal
    pending_after: Decimal
    available_before: Decimal
    available_after: Decimal
    description: str = ""
    reference_type: Optional[ReferenceType] = None
    reference_id: Optional[int] = None
    order_item_id: Optional[int] = None
    created_at: Optional[datetime] = None


class AdjustmentDTO(DTOBase):
    amount: Money = Field(..., description="正数入账（CREDIT），负数扣款（DEBIT）")
    reason: str = Field(..., max_length=500)


class AdjustmentResultDTO(DTOBase):
    wallet: WalletDTO
    transaction: WalletTransactionDTO


class BalancesDTO(DTOBase):
    model_config = ConfigDict(from_attributes=True)

    pending: Decimal
    available: Decimal
    total_earnings: Decimal
    total_withdrawn: Decimal


class ReconciliationDTO(DTOBase):
    wallet_id: int
    vendor_id: str
    consistent: bool
    transaction_count: int
    expected: BalancesDTO
    actual: BalancesDTO
    broken_chain_at: Optional[int] = None
    issues: list[str] = Field(default_factory=list)

    @classmethod
    def from_report(cls, report: ReconciliationReport) -> "ReconciliationDTO":
        return cls(
            wallet_id=report.wallet_id,
            vendor_id=report.vendor_id,
            consistent=report.is_consistent,
            transaction_count=report.transaction_count,
            expected=BalancesDTO.model_validate(report.expected),
            actual=BalancesDTO.model_validate(report.actual),
            broken_chain_at=report.broken_chain_at,
            issues=report.issues,
        )
