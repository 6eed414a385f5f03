"""
争议领域实体 - 争议聚合根与评论
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional

from domain.common.exceptions import AlreadyTerminalException, InvalidTransitionException
from domain.common.money import ensure_utc


class DisputeReason(str, Enum):
    DAMAGED_PRODUCT = "DAMAGED_PRODUCT"
    WRONG_ITEM = "WRONG_ITEM"
    NOT_AS_DESCRIBED = "NOT_AS_DESCRIBED"
    NOT_RECEIVED = "NOT_RECEIVED"
    QUALITY_ISSUE = "QUALITY_ISSUE"
    OTHER = "OTHER"


class DisputeStatus(str, Enum):
    OPEN = "OPEN"
    IN_REVIEW = "IN_REVIEW"
    RESOLVED_CUSTOMER_FAVOR = "RESOLVED_CUSTOMER_FAVOR"
    RESOLVED_VENDOR_FAVOR = "RESOLVED_VENDOR_FAVOR"
    CLOSED = "CLOSED"


class ResolutionType(str, Enum):
    CUSTOMER_FAVOR = "CUSTOMER_FAVOR"
    VENDOR_FAVOR = "VENDOR_FAVOR"
    CLOSED_NO_ACTION = "CLOSED_NO_ACTION"


RESOLUTION_STATUS: Dict[ResolutionType, DisputeStatus] = {
    ResolutionType.CUSTOMER_FAVOR: DisputeStatus.RESOLVED_CUSTOMER_FAVOR,
    ResolutionType.VENDOR_FAVOR: DisputeStatus.RESOLVED_VENDOR_FAVOR,
    ResolutionType.CLOSED_NO_ACTION: DisputeStatus.CLOSED,
}

TRANSITIONS: Dict[DisputeStatus, frozenset] = {
    DisputeStatus.OPEN: frozenset({DisputeStatus.IN_REVIEW, DisputeStatus.CLOSED}),
    DisputeStatus.IN_REVIEW: frozenset({
        DisputeStatus.RESOLVED_CUSTOMER_FAVOR,
        DisputeStatus.RESOLVED_VENDOR_FAVOR,
        DisputeStatus.CLOSED,
    }),
    DisputeStatus.RESOLVED_CUSTOMER_FAVOR: frozenset(),
    DisputeStatus.RESOLVED_VENDOR_FAVOR: frozenset(),
    DisputeStatus.CLOSED: frozenset(),
}

ACTIVE_STATUSES = (DisputeStatus.OPEN, DisputeStatus.IN_REVIEW)


@dataclass
class DisputeComment:
    id: Optional[int]
    dispute_id: Optional[int]
    author_id: str
    author_role: str
    content: str
    created_at: Optional[datetime] = None

    def __post_init__(self):
        self.created_at = ensure_utc(self.created_at)


@dataclass
class Dispute:
    """
    争议聚合根

    业务规则：
    1. OPEN → IN_REVIEW → {客户胜诉, 商家胜诉, 关闭}；OPEN 可直接关闭
    2. 终态不再接受评论或裁决
    3. 客户胜诉时退款只执行一次（refund_processed_at 标记）
    """

    id: Optional[int]
    order_id: int
    customer_id: str
    reason: DisputeReason
    description: str
    evidence: List[str] = field(default_factory=list)
    status: DisputeStatus = DisputeStatus.OPEN
    resolution_type: Optional[ResolutionType] = None
    resolution_notes: Optional[str] = None
    refund_amount: Optional[Decimal] = None
    refund_processed_at: Optional[datetime] = None
    resolved_by: Optional[str] = None
    resolved_at: Optional[datetime] = None
    comments: List[DisputeComment] = field(default_factory=list)
    version: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        self.refund_processed_at = ensure_utc(self.refund_processed_at)
        self.resolved_at = ensure_utc(self.resolved_at)
        self.created_at = ensure_utc(self.created_at)
        self.updated_at = ensure_utc(self.updated_at)

    @property
    def is_terminal(self) -> bool:
        return not TRANSITIONS[self.status]

    def ensure_open(self) -> None:
        if self.is_terminal:
            raise AlreadyTerminalException("dispute", self.id, self.status.value)

    def move_to(self, target: DisputeStatus, now: datetime) -> DisputeStatus:
        self.ensure_open()
        if target not in TRANSITIONS[self.status]:
            raise InvalidTransitionException("dispute", self.status.value, target.value)
        previous = self.status
        self.status = target
        self.updated_at = now
        return previous

    def resolve(
        self,
        resolution: ResolutionType,
        notes: str,
        admin_id: str,
        now: datetime,
        refund_amount: Optional[Decimal] = None,
    ) -> DisputeStatus:
        previous = self.move_to(RESOLUTION_STATUS[resolution], now)
        self.resolution_type = resolution
        self.resolution_notes = notes
        self.resolved_by = admin_id
        self.resolved_at = now
        self.refund_amount = refund_amount
        return previous

    def add_comment(self, comment: DisputeComment) -> None:
        self.ensure_open()
        self.comments.append(comment)
