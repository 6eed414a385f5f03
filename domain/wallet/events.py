"""Wallet domain events."""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from domain.common.events import DomainEvent


@dataclass
class WalletEvent(DomainEvent):
    aggregate_type = "wallet"
    aggregate_key = "wallet_id"

    wallet_id: int
    vendor_id: str


@dataclass
class WalletOpened(WalletEvent):
    commission_rate: Decimal = Decimal("0")


@dataclass
class WalletAdjusted(WalletEvent):
    transaction_id: Optional[int] = None
    amount: Decimal = Decimal("0")
    reason: str = ""
    actor_id: Optional[str] = None
