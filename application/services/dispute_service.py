"""
争议应用服务 - 开启、评论、审核、裁决与退款
"""
from __future__ import annotations

from typing import List, Optional, Tuple

from application.dtos.disputes import (
    CommentCreateDTO,
    CommentDTO,
    DisputeCreateDTO,
    DisputeDTO,
    DisputeResolutionDTO,
    DisputeResolveDTO,
    RefundDTO,
)
from application.services.base import DomainServices, SettlementApplicationService
from core.logging_config import get_logger
from domain.common.principal import Principal
from domain.dispute.entity import DisputeStatus


logger = get_logger(__name__)


class DisputeApplicationService(SettlementApplicationService):

    async def open_dispute(self, customer: Principal, data: DisputeCreateDTO) -> DisputeDTO:
        async def _op(s: DomainServices):
            return await s.disputes.open_dispute(
                customer, data.order_id, data.reason, data.description, data.evidence
            )

        dispute = await self._execute(_op, name="open_dispute")
        logger.info("dispute_opened", dispute_id=dispute.id, order_id=dispute.order_id, reason=dispute.reason.value)
        return DisputeDTO.from_entity(dispute)

    async def get_dispute(self, dispute_id: int, actor: Principal) -> DisputeDTO:
        async def _op(s: DomainServices):
            dispute = await s.disputes.get_dispute(dispute_id)
            await s.disputes.ensure_participant(dispute, actor)
            return dispute

        return DisputeDTO.from_entity(await self._read(_op))

    async def list_disputes(
        self,
        actor: Principal,
        *,
        status: Optional[DisputeStatus] = None,
        skip: int = 0,
        limit: int = 20,
    ) -> Tuple[List[DisputeDTO], int]:
        """客户只看到自己的争议，管理员看到全部"""
        customer_id = None if actor.is_admin else actor.user_id

        async def _op(s: DomainServices):
            repo = s.uow.dispute_repository
            rows = await repo.list(customer_id=customer_id, status=status, skip=skip, limit=limit)
            return rows, await repo.count(customer_id=customer_id, status=status)

        rows, total = await self._read(_op)
        return [DisputeDTO.from_entity(d) for d in rows], int(total)

    async def add_comment(self, dispute_id: int, author: Principal, data: CommentCreateDTO) -> CommentDTO:
        async def _op(s: DomainServices):
            return await s.disputes.add_comment(dispute_id, author, data.content)

        comment = await self._execute(_op, name="add_dispute_comment")
        return CommentDTO.model_validate(comment)

    async def start_review(self, dispute_id: int, admin: Principal) -> DisputeDTO:
        async def _op(s: DomainServices):
            return await s.disputes.start_review(dispute_id, admin)

        return DisputeDTO.from_entity(await self._execute(_op, name="start_dispute_review"))

    async def resolve(self, dispute_id: int, admin: Principal, data: DisputeResolveDTO) -> DisputeResolutionDTO:
        async def _op(s: DomainServices):
            return await s.disputes.resolve(
                dispute_id,
                admin,
                data.resolution_type,
                data.admin_notes,
                data.custom_refund_amount,
            )

        result = await self._execute(_op, name="resolve_dispute")
        logger.info(
            "dispute_resolved",
            dispute_id=dispute_id,
            resolution=data.resolution_type.value,
            order_status=result.order_status.value,
            refund_amount=str(result.refund.calculation.refund_amount) if result.refund else None,
        )
        return DisputeResolutionDTO.from_resolution(result)

    async def process_refund(self, dispute_id: int, admin: Principal) -> Optional[RefundDTO]:
        """补偿入口：对已判客户胜诉但尚未退款的争议执行退款，重复调用返回 None"""
        async def _op(s: DomainServices):
            return await s.disputes.process_refund(dispute_id, admin)

        outcome = await self._execute(_op, name="process_dispute_refund")
        if outcome is None:
            logger.info("dispute_refund_already_processed", dispute_id=dispute_id)
            return None
        logger.info("dispute_refund_processed", dispute_id=dispute_id, amount=str(outcome.calculation.refund_amount))
        return RefundDTO.from_outcome(outcome)
