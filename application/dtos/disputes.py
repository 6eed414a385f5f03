"""
Dispute DTOs (Pydantic v2) used at application boundaries.
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import ConfigDict, Field

from application.dto import DTOBase, Money
from domain.dispute.entity import Dispute, DisputeReason, DisputeStatus, ResolutionType
from domain.dispute.service import DisputeResolution, RefundOutcome
from domain.order.entity import OrderStatus
from domain.wallet.entity import LedgerBucket


class DisputeCreateDTO(DTOBase):
    order_id: int
    reason: DisputeReason
    description: str = Field(..., max_length=1000)
    evidence: list[str] = Field(default_factory=list)


class CommentCreateDTO(DTOBase):
    content: str


class DisputeResolveDTO(DTOBase):
    resolution_type: ResolutionType
    admin_notes: str = Field(..., max_length=2000)
    custom_refund_amount: Optional[Money] = Field(None, gt=0)


class CommentDTO(DTOBase):
    model_config = ConfigDict(from_attributes=True)

    id: int
    author_id: str
    author_role: str
    content: str
    created_at: Optional[datetime] = None


class DisputeDTO(DTOBase):
    model_config = ConfigDict(from_attributes=True)

    id: int
    order_id: int
    customer_id: str
    reason: DisputeReason
    description: str
    evidence: list[str]
    status: DisputeStatus
    resolution_type: Optional[ResolutionType] = None
    resolution_notes: Optional[str] = None
    refund_amount: Optional[Decimal] = None
    refund_processed_at: Optional[datetime] = None
    resolved_by: Optional[str] = None
    resolved_at: Optional[datetime] = None
    comments: list[CommentDTO] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_entity(cls, dispute: Dispute) -> "DisputeDTO":
        return cls.model_validate(dispute)


class RefundAllocationDTO(DTOBase):
    vendor_id: str
    wallet_id: int
    bucket: LedgerBucket
    share: Decimal
    commission_reversed: Decimal
    net_reversed: Decimal
    released_remainder: Decimal


class RefundDTO(DTOBase):
    order_id: int
    refund_amount: Decimal
    allocations: list[RefundAllocationDTO]

    @classmethod
    def from_outcome(cls, outcome: RefundOutcome) -> "RefundDTO":
        return cls(
            order_id=outcome.calculation.order_id,
            refund_amount=outcome.calculation.refund_amount,
            allocations=[
                RefundAllocationDTO(
                    vendor_id=a.vendor_id,
                    wallet_id=a.wallet_id,
                    bucket=a.bucket,
                    share=a.share,
                    commission_reversed=a.commission_reversed,
                    net_reversed=a.net_reversed,
                    released_remainder=a.released_remainder,
                )
                for a in outcome.applied
            ],
        )


class DisputeResolutionDTO(DTOBase):
    dispute: DisputeDTO
    previous_status: DisputeStatus
    current_status: DisputeStatus
    order_previous_status: OrderStatus
    order_status: OrderStatus
    refund: Optional[RefundDTO] = None

    @classmethod
    def from_resolution(cls, result: DisputeResolution) -> "DisputeResolutionDTO":
        return cls(
            dispute=DisputeDTO.from_entity(result.dispute),
            previous_status=result.previous_status,
            current_status=result.dispute.status,
            order_previous_status=result.order_previous_status,
            order_status=result.order_status,
            refund=RefundDTO.from_outcome(result.refund) if result.refund else None,
        )
