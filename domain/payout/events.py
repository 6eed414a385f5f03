"""Payout domain events."""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from domain.common.events import DomainEvent


@dataclass
class PayoutEvent(DomainEvent):
    aggregate_type = "payout"
    aggregate_key = "payout_id"

    payout_id: int
    vendor_id: str
    amount: Decimal
    from_status: Optional[str] = None
    to_status: str = ""


@dataclass
class PayoutRequested(PayoutEvent):
    bank_name: str = ""


@dataclass
class PayoutApproved(PayoutEvent):
    transaction_id: Optional[int] = None
    available_after: Optional[Decimal] = None


@dataclass
class PayoutCompleted(PayoutEvent):
    transaction_ref: str = ""


@dataclass
class PayoutFailed(PayoutEvent):
    reason: str = ""
    refunded: bool = False
