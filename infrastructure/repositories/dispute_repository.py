"""
争议仓储实现
"""
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from core.logging_config import get_logger
from domain.common.exceptions import ConcurrencyConflictException
from domain.dispute.entity import (
    ACTIVE_STATUSES,
    Dispute,
    DisputeComment,
    DisputeReason,
    DisputeStatus,
    ResolutionType,
)
from domain.dispute.repository import DisputeRepository
from infrastructure.models.dispute import DisputeCommentModel, DisputeModel


logger = get_logger(__name__)


class SQLAlchemyDisputeRepository(DisputeRepository):
    """争议仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    @staticmethod
    def _comment_to_entity(model: DisputeCommentModel) -> DisputeComment:
        return DisputeComment(
            id=model.id,
            dispute_id=model.dispute_id,
            author_id=model.author_id,
            author_role=model.author_role,
            content=model.content,
            created_at=model.created_at,
        )

    def _to_entity(self, model: DisputeModel, comments: List[DisputeCommentModel]) -> Dispute:
        """将数据库模型转换为领域实体"""
        return Dispute(
            id=model.id,
            order_id=model.order_id,
            customer_id=model.customer_id,
            reason=DisputeReason(model.reason),
            description=model.description,
            evidence=list(model.evidence or []),
            status=DisputeStatus(model.status),
            resolution_type=ResolutionType(model.resolution_type) if model.resolution_type else None,
            resolution_notes=model.resolution_notes,
            refund_amount=Decimal(str(model.refund_amount)) if model.refund_amount is not None else None,
            refund_processed_at=model.refund_processed_at,
            resolved_by=model.resolved_by,
            resolved_at=model.resolved_at,
            comments=[self._comment_to_entity(c) for c in comments],
            version=model.version,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    async def _load(self, model: DisputeModel) -> Dispute:
        result = await self.session.execute(
            select(DisputeCommentModel)
            .where(DisputeCommentModel.dispute_id == model.id)
            .order_by(DisputeCommentModel.id)
        )
        return self._to_entity(model, list(result.scalars().all()))

    async def create(self, dispute: Dispute) -> Dispute:
        """创建争议"""
        db_dispute = DisputeModel(
            order_id=dispute.order_id,
            customer_id=dispute.customer_id,
            reason=dispute.reason.value,
            description=dispute.description,
            evidence=list(dispute.evidence),
            status=dispute.status.value,
            version=dispute.version,
            created_at=dispute.created_at,
            updated_at=dispute.updated_at,
        )
        self.session.add(db_dispute)
        await self.session.flush()
        await self.session.refresh(db_dispute)
        logger.info(
            "dispute_created",
            dispute_id=db_dispute.id,
            order_id=db_dispute.order_id,
            reason=db_dispute.reason,
        )
        return self._to_entity(db_dispute, [])

    async def get_by_id(self, dispute_id: int, *, for_update: bool = False) -> Optional[Dispute]:
        """根据ID获取争议（含评论）"""
        query = select(DisputeModel).where(DisputeModel.id == dispute_id).execution_options(populate_existing=True)
        if for_update:
            query = query.with_for_update()
        result = await self.session.execute(query)
        db_dispute = result.scalar_one_or_none()
        return await self._load(db_dispute) if db_dispute else None

    async def update(self, dispute: Dispute) -> Dispute:
        result = await self.session.execute(
            update(DisputeModel)
            .where(DisputeModel.id == dispute.id, DisputeModel.version == dispute.version)
            .values(
                status=dispute.status.value,
                resolution_type=dispute.resolution_type.value if dispute.resolution_type else None,
                resolution_notes=dispute.resolution_notes,
                refund_amount=dispute.refund_amount,
                refund_processed_at=dispute.refund_processed_at,
                resolved_by=dispute.resolved_by,
                resolved_at=dispute.resolved_at,
                updated_at=dispute.updated_at,
                version=DisputeModel.version + 1,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            logger.warning("dispute_version_conflict", dispute_id=dispute.id, expected_version=dispute.version)
            raise ConcurrencyConflictException("dispute", dispute.id, dispute.version)
        dispute.version += 1
        logger.info("dispute_updated", dispute_id=dispute.id, status=dispute.status.value)
        return dispute

    async def add_comment(self, comment: DisputeComment) -> DisputeComment:
        db_comment = DisputeCommentModel(
            dispute_id=comment.dispute_id,
            author_id=comment.author_id,
            author_role=comment.author_role,
            content=comment.content,
            created_at=comment.created_at,
        )
        self.session.add(db_comment)
        await self.session.flush()
        comment.id = db_comment.id
        return comment

    async def exists_active_for_order(self, order_id: int) -> bool:
        result = await self.session.execute(
            select(func.count(DisputeModel.id)).where(
                DisputeModel.order_id == order_id,
                DisputeModel.status.in_([s.value for s in ACTIVE_STATUSES]),
            )
        )
        return result.scalar_one() > 0

    def _filtered(self, query, customer_id, status):
        if customer_id:
            query = query.where(DisputeModel.customer_id == customer_id)
        if status:
            query = query.where(DisputeModel.status == status.value)
        return query

    async def list(
        self,
        *,
        customer_id: Optional[str] = None,
        status: Optional[DisputeStatus] = None,
        skip: int = 0,
        limit: int = 20,
    ) -> List[Dispute]:
        query = self._filtered(select(DisputeModel), customer_id, status)
        query = query.order_by(DisputeModel.created_at.desc(), DisputeModel.id.desc()).offset(skip).limit(limit)
        result = await self.session.execute(query)
        return [await self._load(m) for m in result.scalars().all()]

    async def count(self, *, customer_id: Optional[str] = None, status: Optional[DisputeStatus] = None) -> int:
        result = await self.session.execute(
            self._filtered(select(func.count(DisputeModel.id)), customer_id, status)
        )
        return int(result.scalar_one())
