"""Dispute domain events."""
from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional

from domain.common.events import DomainEvent


@dataclass
class DisputeEvent(DomainEvent):
    aggregate_type = "dispute"
    aggregate_key = "dispute_id"

    dispute_id: int
    order_id: int
    customer_id: str


@dataclass
class DisputeOpened(DisputeEvent):
    reason: str = ""
    vendor_ids: List[str] = field(default_factory=list)


@dataclass
class DisputeCommentAdded(DisputeEvent):
    comment_id: Optional[int] = None
    author_id: str = ""
    author_role: str = ""


@dataclass
class DisputeStatusChanged(DisputeEvent):
    from_status: str = ""
    to_status: str = ""


@dataclass
class DisputeResolved(DisputeStatusChanged):
    resolution_type: str = ""
    refund_amount: Optional[Decimal] = None
    vendor_ids: List[str] = field(default_factory=list)


@dataclass
class DisputeRefundProcessed(DisputeEvent):
    refund_amount: Decimal = Decimal("0")
    allocations: dict = field(default_factory=dict)  # vendor_id -> {share, commission_reversed, bucket}
