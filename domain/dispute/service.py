"""
争议领域服务 - 争议状态机与退款触发
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Callable, List, Optional, Sequence

from domain.common.exceptions import (
    DisputeNotFoundException,
    DomainValidationException,
    DuplicateResourceException,
    ForbiddenActionException,
    InvalidTransitionException,
    OrderNotFoundException,
)
from domain.common.money import utcnow
from domain.common.policy import SettlementPolicy
from domain.common.principal import Principal, Role
from domain.order.entity import DELIVERY_STATUSES, Order, OrderStatus
from domain.order.repository import OrderRepository
from domain.wallet.entity import ReferenceType
from domain.wallet.service import WalletLedger

from .entity import (
    Dispute,
    DisputeComment,
    DisputeReason,
    DisputeStatus,
    ResolutionType,
)
from .events import (
    DisputeCommentAdded,
    DisputeOpened,
    DisputeRefundProcessed,
    DisputeResolved,
    DisputeStatusChanged,
)
from .refund import AppliedVendorRefund, RefundCalculation, RefundEngine
from .repository import DisputeRepository


@dataclass
class RefundOutcome:
    calculation: RefundCalculation
    applied: List[AppliedVendorRefund] = field(default_factory=list)


@dataclass
class DisputeResolution:
    dispute: Dispute
    previous_status: DisputeStatus
    order_previous_status: OrderStatus
    order_status: OrderStatus
    refund: Optional[RefundOutcome] = None


class DisputeDomainService:
    """
    争议领域服务

    职责：
    1. 开启争议（送达后窗口期内、同一订单仅一个进行中的争议）
    2. 评论、进入审核、裁决
    3. 客户胜诉时调用退款引擎，且每个争议只退款一次
    """

    def __init__(
        self,
        dispute_repository: DisputeRepository,
        order_repository: OrderRepository,
        ledger: WalletLedger,
        policy: SettlementPolicy,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.dispute_repository = dispute_repository
        self.order_repository = order_repository
        self.refund_engine = RefundEngine(ledger)
        self.policy = policy
        self.clock = clock
        self.events: List = []

    async def get_dispute(self, dispute_id: int, *, for_update: bool = False) -> Dispute:
        dispute = await self.dispute_repository.get_by_id(dispute_id, for_update=for_update)
        if dispute is None:
            raise DisputeNotFoundException(dispute_id)
        return dispute

    async def _get_order(self, order_id: int) -> Order:
        order = await self.order_repository.get_by_id(order_id, for_update=True)
        if order is None:
            raise OrderNotFoundException(order_id)
        return order

    async def ensure_participant(self, dispute: Dispute, actor: Principal) -> None:
        if actor.is_admin or actor.user_id == dispute.customer_id:
            return
        if actor.role is Role.VENDOR:
            order = await self.order_repository.get_by_id(dispute.order_id)
            if order is not None and actor.user_id in order.vendor_ids:
                return
        raise ForbiddenActionException("You are not a participant in this dispute")

    def _validate_claim(self, description: str, evidence: Sequence[str]) -> None:
        text = (description or "").strip()
        if not self.policy.dispute_description_min_length <= len(text) <= self.policy.dispute_description_max_length:
            raise DomainValidationException(
                f"Description must be {self.policy.dispute_description_min_length}-"
                f"{self.policy.dispute_description_max_length} characters",
                field="description",
            )
        if len(evidence) > self.policy.dispute_max_evidence:
            raise DomainValidationException(
                f"At most {self.policy.dispute_max_evidence} evidence files are allowed",
                field="evidence",
            )
        for url in evidence:
            if not url.startswith("https://"):
                raise DomainValidationException("Evidence must be HTTPS URLs", field="evidence")

    async def open_dispute(
        self,
        customer: Principal,
        order_id: int,
        reason: DisputeReason,
        description: str,
        evidence: Sequence[str] = (),
    ) -> Dispute:
        """
        开启争议

        业务规则：
        1. 仅订单所属客户可发起
        2. 订单为 DELIVERED / DELIVERY_CONFIRMED，且在送达后窗口期内
        3. 同一订单不能同时存在进行中的争议
        """
        customer.require(Role.CUSTOMER)
        self._validate_claim(description, evidence)
        order = await self._get_order(order_id)
        if not customer.is_admin and order.customer_id != customer.user_id:
            raise ForbiddenActionException("Only the customer who placed the order can open a dispute")
        if order.status not in DELIVERY_STATUSES:
            raise InvalidTransitionException("order", order.status.value, OrderStatus.DISPUTED.value)
        now = self.clock()
        if not order.within_window(order.delivered_at(), self.policy.dispute_window, now):
            raise InvalidTransitionException(
                "order", order.status.value, OrderStatus.DISPUTED.value, reason="dispute window has expired"
            )
        if await self.dispute_repository.exists_active_for_order(order.id):
            raise DuplicateResourceException(
                "An active dispute already exists for this order",
                details={"order_id": order.id},
            )

        dispute = await self.dispute_repository.create(
            Dispute(
                id=None,
                order_id=order.id,
                customer_id=order.customer_id,
                reason=reason,
                description=description.strip(),
                evidence=list(evidence),
                created_at=now,
                updated_at=now,
            )
        )
        order.transition(OrderStatus.DISPUTED, actor=customer, now=now, note=f"Dispute #{dispute.id} opened")
        await self.order_repository.update(order)

        self.events.append(
            DisputeOpened(
                dispute_id=dispute.id,
                order_id=order.id,
                customer_id=order.customer_id,
                reason=reason.value,
                vendor_ids=order.vendor_ids,
            )
        )
        return dispute

    async def add_comment(self, dispute_id: int, author: Principal, content: str) -> DisputeComment:
        text = (content or "").strip()
        if not 1 <= len(text) <= self.policy.comment_max_length:
            raise DomainValidationException(
                f"Comment must be 1-{self.policy.comment_max_length} characters",
                field="content",
            )
        dispute = await self.get_dispute(dispute_id)
        await self.ensure_participant(dispute, author)
        comment = DisputeComment(
            id=None,
            dispute_id=dispute.id,
            author_id=author.user_id,
            author_role=author.role.value,
            content=text,
            created_at=self.clock(),
        )
        dispute.add_comment(comment)
        saved = await self.dispute_repository.add_comment(comment)
        self.events.append(
            DisputeCommentAdded(
                dispute_id=dispute.id,
                order_id=dispute.order_id,
                customer_id=dispute.customer_id,
                comment_id=saved.id,
                author_id=author.user_id,
                author_role=author.role.value,
            )
        )
        return saved

    async def start_review(self, dispute_id: int, admin: Principal) -> Dispute:
        admin.require(Role.ADMIN)
        dispute = await self.get_dispute(dispute_id, for_update=True)
        previous = dispute.move_to(DisputeStatus.IN_REVIEW, self.clock())
        dispute = await self.dispute_repository.update(dispute)
        self.events.append(
            DisputeStatusChanged(
                dispute_id=dispute.id,
                order_id=dispute.order_id,
                customer_id=dispute.customer_id,
                from_status=previous.value,
                to_status=dispute.status.value,
            )
        )
        return dispute

    async def resolve(
        self,
        dispute_id: int,
        admin: Principal,
        resolution: ResolutionType,
        notes: str,
        custom_refund_amount: Optional[Decimal] = None,
    ) -> DisputeResolution:
        """
        裁决争议

        客户胜诉：同一工作单元内执行退款并将订单置为 REFUNDED；
        商家胜诉 / 无责关闭：订单恢复到争议前状态。
        """
        admin.require(Role.ADMIN)
        notes = (notes or "").strip()
        if len(notes) < self.policy.resolution_notes_min_length:
            raise DomainValidationException(
                f"Resolution notes must be at least {self.policy.resolution_notes_min_length} characters",
                field="admin_notes",
            )
        if custom_refund_amount is not None and resolution is not ResolutionType.CUSTOMER_FAVOR:
            raise DomainValidationException(
                "A refund amount is only allowed when resolving in the customer's favor",
                field="custom_refund_amount",
            )

        dispute = await self.get_dispute(dispute_id, for_update=True)
        order = await self._get_order(dispute.order_id)
        now = self.clock()
        if custom_refund_amount is not None:
            # 提前校验金额，避免状态已变更后才失败
            self.refund_engine.calculate_refund(order, custom_refund_amount)
        previous = dispute.resolve(resolution, notes, admin.user_id, now, custom_refund_amount)
        order_previous = order.status

        refund = None
        if resolution is ResolutionType.CUSTOMER_FAVOR:
            refund = await self._process_refund(dispute, order, admin)
        elif order.status is OrderStatus.DISPUTED:
            restored = order.status_before_latest(OrderStatus.DISPUTED) or OrderStatus.DELIVERED
            order.record(restored, actor=admin, now=now, note=f"Dispute #{dispute.id} {dispute.status.value}")
            await self.order_repository.update(order)

        await self._system_comment(dispute, admin, f"Dispute resolved: {resolution.value}\n\n{notes}")
        if refund:
            await self._system_comment(
                dispute, admin, f"Refund processed. Amount: {refund.calculation.refund_amount}"
            )
        dispute = await self.dispute_repository.update(dispute)
        self.events.append(
            DisputeResolved(
                dispute_id=dispute.id,
                order_id=dispute.order_id,
                customer_id=dispute.customer_id,
                from_status=previous.value,
                to_status=dispute.status.value,
                resolution_type=resolution.value,
                refund_amount=dispute.refund_amount if refund else None,
                vendor_ids=order.vendor_ids,
            )
        )
        return DisputeResolution(
            dispute=dispute,
            previous_status=previous,
            order_previous_status=order_previous,
            order_status=order.status,
            refund=refund,
        )

    async def _system_comment(self, dispute: Dispute, admin: Principal, content: str) -> DisputeComment:
        """裁决记录写入评论流；争议已结束，不走 add_comment 的开放校验"""
        comment = await self.dispute_repository.add_comment(
            DisputeComment(
                id=None,
                dispute_id=dispute.id,
                author_id=admin.user_id,
                author_role=admin.role.value,
                content=content,
                created_at=self.clock(),
            )
        )
        dispute.comments.append(comment)
        return comment

    async def process_refund(self, dispute_id: int, actor: Principal) -> Optional[RefundOutcome]:
        """
        对客户胜诉的争议执行退款

        幂等：已退款的争议直接返回 None，不会重复记账。
        """
        actor.require(Role.ADMIN)
        dispute = await self.get_dispute(dispute_id, for_update=True)
        if dispute.status is not DisputeStatus.RESOLVED_CUSTOMER_FAVOR:
            raise InvalidTransitionException("dispute", dispute.status.value, "REFUNDED")
        if dispute.refund_processed_at is not None:
            return None
        order = await self._get_order(dispute.order_id)
        outcome = await self._process_refund(dispute, order, actor)
        await self._system_comment(
            dispute, actor, f"Refund processed. Amount: {outcome.calculation.refund_amount}"
        )
        await self.dispute_repository.update(dispute)
        return outcome

    async def _process_refund(self, dispute: Dispute, order: Order, actor: Principal) -> RefundOutcome:
        calculation = self.refund_engine.calculate_refund(order, dispute.refund_amount)
        applied = await self.refund_engine.apply(
            order,
            calculation,
            reference_type=ReferenceType.DISPUTE,
            reference_id=dispute.id,
            description=f"Refund for dispute #{dispute.id} on order {order.order_number}",
        )
        now = self.clock()
        dispute.refund_amount = calculation.refund_amount
        dispute.refund_processed_at = now
        order.transition(OrderStatus.REFUNDED, actor=actor, now=now, note=f"Refunded via dispute #{dispute.id}")
        await self.order_repository.update(order)

        self.events.append(
            DisputeRefundProcessed(
                dispute_id=dispute.id,
                order_id=order.id,
                customer_id=order.customer_id,
                refund_amount=calculation.refund_amount,
                allocations={
                    a.vendor_id: {
                        "share": a.share,
                        "commission_reversed": a.commission_reversed,
                        "bucket": a.bucket,
                    }
                    for a in applied
                },
            )
        )
        return RefundOutcome(calculation=calculation, applied=applied)

    def clear_events(self) -> List:
        """清空并返回领域事件"""
        events = self.events.copy()
        self.events.clear()
        return events
